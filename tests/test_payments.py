import asyncio
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from rentbot import repo
from rentbot.db.models import Payment, PaymentStatus, Subscription
from rentbot.services.payments.payos import PayOSError, sign_data
from rentbot.services.payments.service import PaymentError, PaymentService

GROUP_ID = -1001
USER_ID = 10


@pytest.fixture
async def group(sessionmaker, clock):
    async with sessionmaker() as session:
        g = await repo.ensure_group(session, GROUP_ID, "Test group", now=clock())
        await session.commit()
    return g


async def _load(sm, payment_id):
    async with sm() as session:
        return await session.get(Payment, payment_id)


async def _subscriptions(sm):
    async with sm() as session:
        return list(await session.scalars(select(Subscription).where(Subscription.group_id == GROUP_ID)))


def _webhook(order_code, key, code="00"):
    data = {"orderCode": order_code, "amount": 99000, "code": code, "desc": "success", "reference": "FT0001"}
    return {"code": code, "desc": "success", "success": code == "00", "data": data, "signature": sign_data(data, key)}


async def test_initialize_creates_pending_payment(ctx, group):
    init = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")

    payment = await _load(ctx.sessionmaker, init.payment_id)
    assert payment.status == PaymentStatus.PENDING
    assert payment.amount == 99000
    assert payment.package_type == "basic"
    assert payment.order_code == init.order_code
    assert payment.checkout_url == init.payment_link
    assert init.qr_code


async def test_initialize_rejects_unknown_package(ctx, group):
    with pytest.raises(PaymentError):
        await ctx.payments.initialize(USER_ID, GROUP_ID, "platinum")


async def test_initialize_rejects_unknown_group(ctx):
    with pytest.raises(PaymentError):
        await ctx.payments.initialize(USER_ID, -5, "basic")


async def test_gateway_error_propagates_and_fails_payment(ctx, group, settings, clock):
    gateway = SimpleNamespace(create_payment_link=AsyncMock(side_effect=PayOSError("gateway down")))
    svc = PaymentService(ctx.sessionmaker, gateway, ctx.subscriptions, settings.packages, clock=clock)

    with pytest.raises(PayOSError):
        await svc.initialize(USER_ID, GROUP_ID, "basic")

    async with ctx.sessionmaker() as session:
        payments = list(await session.scalars(select(Payment)))
    assert [p.status for p in payments] == [PaymentStatus.FAILED]


async def test_process_success_is_idempotent(ctx, group, clock, sender):
    init = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")

    assert await ctx.payments.process_success(init.payment_id, "tx-1") is True
    assert await ctx.payments.process_success(init.payment_id, "tx-1") is True

    payment = await _load(ctx.sessionmaker, init.payment_id)
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.transaction_id == "tx-1"
    subs = await _subscriptions(ctx.sessionmaker)
    assert len(subs) == 1
    assert subs[0].end_date == clock() + timedelta(days=30)
    assert sum("Payment received" in t for t in sender.texts(GROUP_ID)) == 1


async def test_second_payment_extends_existing_subscription(ctx, group, clock):
    start = clock()
    first = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")
    await ctx.payments.process_success(first.payment_id, "tx-1")

    clock.advance(days=5)
    second = await ctx.payments.initialize(USER_ID, GROUP_ID, "premium")
    await ctx.payments.process_success(second.payment_id, "tx-2")

    subs = await _subscriptions(ctx.sessionmaker)
    assert len(subs) == 1
    assert subs[0].end_date == start + timedelta(days=30 + 90)


async def test_process_success_unknown_payment(ctx):
    assert await ctx.payments.process_success("no-such-payment", "tx") is False


async def test_failed_payment_cannot_complete(ctx, group):
    init = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")

    assert await ctx.payments.process_failure(init.payment_id) is True
    assert await ctx.payments.process_failure(init.payment_id) is False
    assert await ctx.payments.process_success(init.payment_id, "tx") is False
    assert await _subscriptions(ctx.sessionmaker) == []


async def test_failed_activation_keeps_payment_pending(ctx, group, clock, sender, monkeypatch):
    init = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")
    monkeypatch.setattr(ctx.subscriptions, "grant", AsyncMock(side_effect=SQLAlchemyError("database is locked")))

    assert await ctx.payments.process_success(init.payment_id, "tx") is False
    assert any("activation failed" in t for t in sender.texts(GROUP_ID))
    assert (await _load(ctx.sessionmaker, init.payment_id)).status == PaymentStatus.PENDING
    assert await _subscriptions(ctx.sessionmaker) == []

    monkeypatch.undo()
    assert await ctx.payments.process_success(init.payment_id, "tx") is True

    payment = await _load(ctx.sessionmaker, init.payment_id)
    assert payment.status == PaymentStatus.COMPLETED
    [sub] = await _subscriptions(ctx.sessionmaker)
    assert sub.end_date == clock() + timedelta(days=30)
    assert await ctx.activation.is_activated(GROUP_ID) is True


async def test_concurrent_success_callbacks_grant_once(ctx, group, clock, sender):
    init = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")

    results = await asyncio.gather(*(ctx.payments.process_success(init.payment_id, "tx-1") for _ in range(3)))

    assert results == [True, True, True]
    [sub] = await _subscriptions(ctx.sessionmaker)
    assert sub.end_date == clock() + timedelta(days=30)
    async with ctx.sessionmaker() as session:
        g = await repo.get_group(session, GROUP_ID)
    assert g.expires_at == clock() + timedelta(days=30)
    assert sum("Payment received" in t for t in sender.texts(GROUP_ID)) == 1


async def test_webhook_completes_payment(ctx, group, gateway):
    init = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")

    assert await ctx.payments.handle_webhook(_webhook(init.order_code, gateway.checksum_key)) is True

    payment = await _load(ctx.sessionmaker, init.payment_id)
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.transaction_id == "FT0001"
    assert await ctx.activation.is_activated(GROUP_ID) is True


async def test_webhook_with_bad_signature_is_ignored(ctx, group):
    init = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")

    assert await ctx.payments.handle_webhook(_webhook(init.order_code, "forged")) is False
    assert (await _load(ctx.sessionmaker, init.payment_id)).status == PaymentStatus.PENDING


async def test_webhook_not_paid_and_unknown_order(ctx, group, gateway):
    init = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")

    assert await ctx.payments.handle_webhook(_webhook(init.order_code, gateway.checksum_key, code="01")) is False
    assert await ctx.payments.handle_webhook(_webhook(123, gateway.checksum_key)) is False
    assert await ctx.payments.handle_webhook({"data": "nope"}) is False
    assert (await _load(ctx.sessionmaker, init.payment_id)).status == PaymentStatus.PENDING


async def test_cancel_expired_pending_payments(ctx, group, clock):
    old = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")
    clock.advance(hours=20)
    fresh = await ctx.payments.initialize(USER_ID, GROUP_ID, "vip")
    clock.advance(hours=5)

    assert await ctx.payments.cancel_expired(24) == 1
    assert (await _load(ctx.sessionmaker, old.payment_id)).status == PaymentStatus.FAILED
    assert (await _load(ctx.sessionmaker, fresh.payment_id)).status == PaymentStatus.PENDING


async def test_reconcile_pending(ctx, group, gateway):
    paid = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")
    cancelled = await ctx.payments.initialize(USER_ID, GROUP_ID, "premium")
    waiting = await ctx.payments.initialize(USER_ID, GROUP_ID, "vip")
    gateway.statuses[paid.order_code] = "PAID"
    gateway.statuses[cancelled.order_code] = "CANCELLED"

    result = await ctx.payments.reconcile_pending()

    assert result == {"completed": 1, "failed": 1, "pending": 1, "errors": 0}
    assert (await _load(ctx.sessionmaker, paid.payment_id)).status == PaymentStatus.COMPLETED
    assert (await _load(ctx.sessionmaker, cancelled.payment_id)).status == PaymentStatus.FAILED
    assert (await _load(ctx.sessionmaker, waiting.payment_id)).status == PaymentStatus.PENDING


async def test_revenue_and_history(ctx, group):
    a = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")
    b = await ctx.payments.initialize(USER_ID, GROUP_ID, "basic")
    await ctx.payments.initialize(USER_ID, GROUP_ID, "vip")
    await ctx.payments.process_success(a.payment_id, "tx-a")
    await ctx.payments.process_success(b.payment_id, "tx-b")

    assert await ctx.payments.revenue_by_package() == {"basic": (2, 198000)}
    assert len(await ctx.payments.history_for_group(GROUP_ID)) == 3
