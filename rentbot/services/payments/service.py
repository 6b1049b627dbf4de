from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping

import aiohttp
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rentbot.bot import texts
from rentbot.bot.sender import ReplySender, safe_send
from rentbot.core.packages import Package
from rentbot.core.time import Clock, utcnow
from rentbot.db.models import Group, Payment, PaymentStatus
from rentbot.db.session import SessionMaker
from rentbot.services.payments.payos import PaymentGateway, PayOSError
from rentbot.services.subscriptions.service import SubscriptionService

log = logging.getLogger(__name__)

# PayOS success code, both for API responses and webhooks
SUCCESS_CODE = "00"


class PaymentError(RuntimeError):
    pass


@dataclass(frozen=True)
class PaymentInit:
    payment_id: str
    payment_link: str
    qr_code: str
    order_code: int


def new_order_code(now: datetime) -> int:
    # millisecond clock + 3 random digits, fits PayOS' safe-integer order code
    return int(now.timestamp() * 1000) % 10**12 * 1000 + secrets.randbelow(1000)


class PaymentService:
    """Bridges gateway payments to group subscriptions.

    ``initialize`` raises on validation and gateway errors. Everything reachable from
    the webhook or the sweeps returns a value instead of raising.
    """

    def __init__(
        self,
        sm: SessionMaker,
        gateway: PaymentGateway,
        subscriptions: SubscriptionService,
        packages: Mapping[str, Package],
        *,
        sender: ReplySender | None = None,
        bot_name: str = "Rent Bot",
        clock: Clock = utcnow,
    ) -> None:
        self._sm = sm
        self.gateway = gateway
        self._subscriptions = subscriptions
        self.packages = dict(packages)
        self.sender = sender
        self._bot_name = bot_name
        self._clock = clock

    def get_package(self, package_type: str) -> Package | None:
        return self.packages.get((package_type or "").strip().lower())

    async def initialize(self, user_id: int, group_id: int, package_type: str) -> PaymentInit:
        package = self.get_package(package_type)
        if package is None:
            raise PaymentError(f"Unknown package: {package_type}")

        now = self._clock()
        payment = None
        try:
            async with self._sm() as session:
                if await session.get(Group, group_id) is None:
                    raise PaymentError(f"Unknown group: {group_id}")
                for _ in range(3):
                    payment = Payment(
                        id=str(uuid.uuid4()),
                        user_id=user_id,
                        group_id=group_id,
                        amount=package.price,
                        package_type=package.id,
                        order_code=new_order_code(now),
                        status=PaymentStatus.PENDING,
                        description=f"{self._bot_name} {package.name}",
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(payment)
                    try:
                        await session.commit()
                        break
                    except IntegrityError:
                        await session.rollback()
                        payment = None
                if payment is None:
                    raise PaymentError("Could not allocate an order code")
        except SQLAlchemyError as e:
            log.exception("payment_create_failed group_id=%s", group_id)
            raise PaymentError("Could not create payment") from e

        log.info(
            "payment_created payment_id=%s group_id=%s package=%s amount=%s",
            payment.id, group_id, package.id, package.price,
        )

        try:
            checkout = await self.gateway.create_payment_link(
                amount=package.price,
                order_code=payment.order_code,
                description=f"Rent {package.id} {payment.order_code}",
            )
        except (PayOSError, aiohttp.ClientError, TimeoutError):
            log.exception("payment_link_failed payment_id=%s", payment.id)
            await self.process_failure(payment.id)
            raise

        try:
            async with self._sm() as session:
                await session.execute(
                    update(Payment).where(Payment.id == payment.id).values(checkout_url=checkout.checkout_url)
                )
                await session.commit()
        except SQLAlchemyError:
            log.exception("payment_link_store_failed payment_id=%s", payment.id)

        return PaymentInit(
            payment_id=payment.id,
            payment_link=checkout.checkout_url,
            qr_code=checkout.qr_code,
            order_code=payment.order_code,
        )

    async def get_payment(self, payment_id: str) -> Payment | None:
        async with self._sm() as session:
            return await session.get(Payment, payment_id)

    async def find_by_order_code(self, order_code: int) -> Payment | None:
        async with self._sm() as session:
            return await session.scalar(select(Payment).where(Payment.order_code == int(order_code)))

    async def process_success(self, payment_id: str, transaction_id: str | None = None) -> bool:
        """Mark the payment completed and grant its package days to the group. Never raises.

        The status change and the subscription write commit together, so a failed grant
        leaves the payment pending for the next callback or reconcile pass.
        """
        group_id: int | None = None
        try:
            now = self._clock()
            async with self._sm() as session:
                payment = await session.get(Payment, payment_id)
                if payment is None:
                    log.warning("payment_success_unknown payment_id=%s", payment_id)
                    return False
                group_id = payment.group_id
                package = self.get_package(payment.package_type)
                if package is None:
                    raise PaymentError(f"Unknown package on payment: {payment.package_type}")

                res = await session.execute(
                    update(Payment)
                    .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
                    .values(status=PaymentStatus.COMPLETED, transaction_id=transaction_id, updated_at=now)
                )
                if res.rowcount != 1:
                    status = await session.scalar(select(Payment.status).where(Payment.id == payment_id))
                    if status == PaymentStatus.COMPLETED:
                        log.info("payment_already_completed payment_id=%s", payment_id)
                        return True
                    log.warning("payment_success_rejected payment_id=%s status=%s", payment_id, status)
                    return False

                sub = await self._subscriptions.grant(session, payment.group_id, payment.user_id, package.days, now=now)
                group = await session.get(Group, payment.group_id)
                expires_at = group.expires_at if group is not None else sub.end_date
                await session.commit()

            log.info("payment_completed payment_id=%s group_id=%s days=%s", payment_id, payment.group_id, package.days)
            await safe_send(self.sender, texts.activation_success(package, expires_at), payment.group_id, True)
            return True
        except Exception:
            log.exception("payment_success_failed payment_id=%s", payment_id)
            if group_id is not None:
                try:
                    await safe_send(self.sender, texts.activation_error(), group_id, True)
                except Exception:
                    log.exception("payment_error_notify_failed group_id=%s", group_id)
            return False

    async def process_failure(self, payment_id: str) -> bool:
        try:
            async with self._sm() as session:
                res = await session.execute(
                    update(Payment)
                    .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
                    .values(status=PaymentStatus.FAILED, updated_at=self._clock())
                )
                await session.commit()
        except SQLAlchemyError:
            log.exception("payment_failure_update_failed payment_id=%s", payment_id)
            return False
        if res.rowcount == 1:
            log.info("payment_failed payment_id=%s", payment_id)
            return True
        return False

    async def cancel_expired(self, older_than_hours: int = 24) -> int:
        """Fail pending payments older than the threshold."""
        cutoff = self._clock() - timedelta(hours=older_than_hours)
        try:
            async with self._sm() as session:
                res = await session.execute(
                    update(Payment)
                    .where(Payment.status == PaymentStatus.PENDING, Payment.created_at < cutoff)
                    .values(status=PaymentStatus.FAILED, updated_at=self._clock())
                )
                await session.commit()
        except SQLAlchemyError:
            log.exception("payment_expiry_sweep_failed")
            return 0
        count = res.rowcount or 0
        if count:
            log.info("payments_expired count=%s", count)
        return count

    async def reconcile_pending(self) -> dict[str, int]:
        """Poll the gateway for pending payments whose webhook may have been missed."""
        out = {"completed": 0, "failed": 0, "pending": 0, "errors": 0}
        try:
            async with self._sm() as session:
                pending = list(await session.scalars(select(Payment).where(Payment.status == PaymentStatus.PENDING)))
        except SQLAlchemyError:
            log.exception("payment_reconcile_query_failed")
            return out

        for p in pending:
            try:
                status = await self.gateway.get_payment_status(p.order_code)
            except (PayOSError, aiohttp.ClientError, TimeoutError):
                log.warning("payment_status_check_failed payment_id=%s", p.id, exc_info=True)
                out["errors"] += 1
                continue
            if status == "PAID":
                if await self.process_success(p.id, p.transaction_id or f"order-{p.order_code}"):
                    out["completed"] += 1
                else:
                    out["errors"] += 1
            elif status in ("CANCELLED", "EXPIRED"):
                if await self.process_failure(p.id):
                    out["failed"] += 1
            else:
                out["pending"] += 1
        if pending:
            log.info("payment_reconcile %s", out)
        return out

    async def handle_webhook(self, body: dict[str, Any]) -> bool:
        """Verify and apply a gateway webhook. True when a payment was completed."""
        data = body.get("data") if isinstance(body, dict) else None
        signature = str(body.get("signature") or "") if isinstance(body, dict) else ""
        if not isinstance(data, dict) or not self.gateway.verify_webhook(data, signature):
            log.warning("webhook_bad_signature")
            return False

        code = str(data.get("code") or body.get("code") or "")
        try:
            order_code = int(data.get("orderCode"))
        except (TypeError, ValueError):
            log.warning("webhook_bad_order_code value=%s", data.get("orderCode"))
            return False

        try:
            payment = await self.find_by_order_code(order_code)
        except SQLAlchemyError:
            log.exception("webhook_lookup_failed order_code=%s", order_code)
            return False
        if payment is None:
            log.info("webhook_unknown_order order_code=%s", order_code)
            return False

        if code != SUCCESS_CODE:
            log.info("webhook_not_paid payment_id=%s code=%s", payment.id, code)
            return False

        transaction_id = str(data.get("reference") or data.get("paymentLinkId") or "") or None
        return await self.process_success(payment.id, transaction_id)

    async def revenue_by_package(self, since: datetime | None = None) -> dict[str, tuple[int, int]]:
        """{package: (completed payments, total amount)}."""
        q = (
            select(Payment.package_type, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
            .where(Payment.status == PaymentStatus.COMPLETED)
            .group_by(Payment.package_type)
        )
        if since is not None:
            q = q.where(Payment.updated_at >= since)
        try:
            async with self._sm() as session:
                rows = (await session.execute(q)).all()
        except SQLAlchemyError:
            log.exception("payment_revenue_failed")
            return {}
        return {pkg: (int(cnt), int(total)) for pkg, cnt, total in rows}

    async def history_for_group(self, group_id: int, limit: int = 10) -> list[Payment]:
        try:
            async with self._sm() as session:
                rows = await session.scalars(
                    select(Payment).where(Payment.group_id == group_id).order_by(Payment.created_at.desc()).limit(limit)
                )
                return list(rows)
        except SQLAlchemyError:
            log.exception("payment_history_failed group_id=%s", group_id)
            return []
