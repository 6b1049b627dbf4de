from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentbot import repo
from rentbot.core.time import Clock, utcnow
from rentbot.db.models import Group, LicenseKey, Subscription
from rentbot.db.session import SessionMaker

log = logging.getLogger(__name__)


class SubscriptionService:
    """Group subscription lifecycle: none -> active -> expired, active -> active on extension.

    Apart from ``grant``, public operations never raise; failures are logged and reported as
    ``None`` / ``0`` / ``[]``.
    """

    def __init__(self, sm: SessionMaker, clock: Clock = utcnow) -> None:
        self._sm = sm
        self._clock = clock

    async def _activate_group(self, session: AsyncSession, group_id: int, days: int, now: datetime) -> Group:
        """Extend from the current expiry if it is still ahead, else start a fresh window now."""
        group = await repo.ensure_group(session, group_id, now=now)
        delta = timedelta(days=days)
        if group.is_active and group.expires_at is not None and group.expires_at > now:
            group.expires_at = group.expires_at + delta
        else:
            group.expires_at = now + delta
            group.activated_at = now
        group.is_active = True
        await session.flush()
        log.info("group_activated group_id=%s days=%s expires_at=%s", group_id, days, group.expires_at.isoformat())
        return group

    async def _mark_keys_used(self, session: AsyncSession, keys: Sequence[str], user_id: int, now: datetime) -> None:
        if not keys:
            return
        await session.execute(
            update(LicenseKey)
            .where(LicenseKey.key.in_(list(keys)), LicenseKey.is_used.is_(False))
            .values(is_used=True, used_by=user_id, used_at=now)
        )

    async def _create(
        self, session: AsyncSession, group_id: int, user_id: int, days: int, keys: Sequence[str], now: datetime
    ) -> Subscription:
        await self._activate_group(session, group_id, days, now)
        sub = Subscription(
            group_id=group_id,
            activated_by=user_id,
            start_date=now,
            end_date=now + timedelta(days=days),
            is_active=True,
            keys_used=list(keys),
            created_at=now,
            updated_at=now,
        )
        session.add(sub)
        await self._mark_keys_used(session, keys, user_id, now)
        await session.flush()
        log.info("subscription_created group_id=%s sub_id=%s days=%s", group_id, sub.id, days)
        return sub

    async def _find_active(self, session: AsyncSession, group_id: int, now: datetime) -> Subscription | None:
        return await session.scalar(
            select(Subscription)
            .where(
                Subscription.group_id == group_id,
                Subscription.is_active.is_(True),
                Subscription.end_date > now,
            )
            .order_by(Subscription.end_date.desc())
            .limit(1)
        )

    async def create_subscription(
        self, group_id: int, user_id: int, days: int, keys: Sequence[str] = ()
    ) -> Subscription | None:
        now = self._clock()
        try:
            async with self._sm() as session:
                sub = await self._create(session, group_id, user_id, days, keys, now)
                await session.commit()
                return sub
        except SQLAlchemyError:
            log.exception("subscription_create_failed group_id=%s", group_id)
            return None

    async def grant(
        self,
        session: AsyncSession,
        group_id: int,
        user_id: int,
        days: int,
        keys: Sequence[str] = (),
        now: datetime | None = None,
    ) -> Subscription:
        """Chain ``days`` onto the active subscription's end date, or open a new one.

        Runs in the caller's transaction and does not commit. Storage errors propagate.
        """
        now = now or self._clock()
        sub = await self._find_active(session, group_id, now)
        if sub is None:
            return await self._create(session, group_id, user_id, days, keys, now)
        sub.end_date = sub.end_date + timedelta(days=days)
        if keys:
            sub.keys_used = list(sub.keys_used or []) + [k for k in keys if k not in (sub.keys_used or [])]
        sub.updated_at = now
        await self._activate_group(session, group_id, days, now)
        await self._mark_keys_used(session, keys, user_id, now)
        log.info("subscription_extended group_id=%s sub_id=%s days=%s", group_id, sub.id, days)
        return sub

    async def extend_subscription(
        self, group_id: int, user_id: int, days: int, keys: Sequence[str] = ()
    ) -> Subscription | None:
        try:
            async with self._sm() as session:
                sub = await self.grant(session, group_id, user_id, days, keys)
                await session.commit()
                return sub
        except SQLAlchemyError:
            log.exception("subscription_extend_failed group_id=%s", group_id)
            return None

    async def find_active_subscription(self, group_id: int) -> Subscription | None:
        try:
            async with self._sm() as session:
                return await self._find_active(session, group_id, self._clock())
        except SQLAlchemyError:
            log.exception("subscription_find_failed group_id=%s", group_id)
            return None

    async def deactivate_group(self, group_id: int) -> bool:
        try:
            async with self._sm() as session:
                res = await session.execute(update(Group).where(Group.id == group_id).values(is_active=False))
                await session.commit()
        except SQLAlchemyError:
            log.exception("group_deactivate_failed group_id=%s", group_id)
            return False
        return bool(res.rowcount)

    async def deactivate_expired_subscriptions(self) -> int:
        """Returns the number of subscriptions expired."""
        count, _ = await self.sweep_expired()
        return count

    async def sweep_expired(self) -> tuple[int, list[int]]:
        """Expire stale subscriptions and deactivate their groups.

        Returns (subscriptions expired, ids of groups that lost access).
        """
        now = self._clock()
        group_ids: list[int] = []
        deactivated: list[int] = []
        try:
            async with self._sm() as session:
                expired = list(
                    await session.scalars(
                        select(Subscription).where(Subscription.is_active.is_(True), Subscription.end_date < now)
                    )
                )
                for sub in expired:
                    sub.is_active = False
                    sub.updated_at = now
                    if sub.group_id not in group_ids:
                        group_ids.append(sub.group_id)
                for gid in group_ids:
                    # a newer window may still be running for this group
                    if await self._find_active(session, gid, now) is None:
                        await session.execute(update(Group).where(Group.id == gid).values(is_active=False))
                        deactivated.append(gid)
                await session.commit()
        except SQLAlchemyError:
            log.exception("subscription_expiry_sweep_failed")
            return 0, []
        if expired:
            log.info("subscriptions_expired count=%s groups=%s", len(expired), deactivated)
        return len(expired), deactivated

    async def get_subscriptions_expiring_soon(self, days_threshold: int = 3) -> list[Subscription]:
        now = self._clock()
        try:
            async with self._sm() as session:
                rows = await session.scalars(
                    select(Subscription)
                    .where(
                        Subscription.is_active.is_(True),
                        Subscription.end_date >= now,
                        Subscription.end_date <= now + timedelta(days=days_threshold),
                    )
                    .order_by(Subscription.end_date)
                )
                return list(rows)
        except SQLAlchemyError:
            log.exception("subscription_expiring_query_failed")
            return []
