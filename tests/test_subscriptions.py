from datetime import timedelta

from sqlalchemy import select

from rentbot import repo
from rentbot.db.models import LicenseKey, Subscription
from rentbot.services.subscriptions.service import SubscriptionService

GROUP_ID = -1001
USER_ID = 10


async def _group(sm, group_id=GROUP_ID):
    async with sm() as session:
        group = await repo.get_group(session, group_id)
        subs = list(await session.scalars(select(Subscription).where(Subscription.group_id == group_id)))
    return group, subs


async def test_create_activates_group(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)
    start = clock()

    sub = await svc.create_subscription(GROUP_ID, USER_ID, 30)

    assert sub is not None
    assert sub.start_date == start
    assert sub.end_date == start + timedelta(days=30)
    group, subs = await _group(sessionmaker)
    assert group.is_active is True
    assert group.activated_at == start
    assert group.expires_at == start + timedelta(days=30)
    assert len(subs) == 1


async def test_extension_before_expiry_preserves_unused_time(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)
    start = clock()
    await svc.create_subscription(GROUP_ID, USER_ID, 30)

    clock.advance(days=10)
    sub = await svc.extend_subscription(GROUP_ID, USER_ID, 30)

    assert sub.end_date == start + timedelta(days=60)
    group, subs = await _group(sessionmaker)
    assert group.expires_at == start + timedelta(days=60)
    assert group.activated_at == start
    assert len(subs) == 1


async def test_lapsed_renewal_starts_from_now(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)
    await svc.create_subscription(GROUP_ID, USER_ID, 30)

    clock.advance(days=40)
    renewed_at = clock()
    sub = await svc.extend_subscription(GROUP_ID, USER_ID, 10)

    assert sub.start_date == renewed_at
    assert sub.end_date == renewed_at + timedelta(days=10)
    group, subs = await _group(sessionmaker)
    assert group.expires_at == renewed_at + timedelta(days=10)
    assert group.activated_at == renewed_at
    assert len(subs) == 2


async def test_grant_is_rolled_back_with_the_caller(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)

    async with sessionmaker() as session:
        sub = await svc.grant(session, GROUP_ID, USER_ID, 30)
        assert sub.end_date == clock() + timedelta(days=30)
        await session.rollback()

    group, subs = await _group(sessionmaker)
    assert group is None
    assert subs == []


async def test_extend_appends_keys(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)
    await svc.create_subscription(GROUP_ID, USER_ID, 30, ["DAY-1-aaaa"])
    sub = await svc.extend_subscription(GROUP_ID, USER_ID, 7, ["WEEK-1-bbbb"])

    assert sub.keys_used == ["DAY-1-aaaa", "WEEK-1-bbbb"]


async def test_create_marks_supplied_keys_used(sessionmaker, clock):
    async with sessionmaker() as session:
        session.add(LicenseKey(key="DAY-3-abc", duration=3, duration_type="day", is_used=False))
        await session.commit()

    svc = SubscriptionService(sessionmaker, clock)
    await svc.create_subscription(GROUP_ID, USER_ID, 3, ["DAY-3-abc"])

    async with sessionmaker() as session:
        lk = await session.scalar(select(LicenseKey).where(LicenseKey.key == "DAY-3-abc"))
    assert lk.is_used is True
    assert lk.used_by == USER_ID


async def test_find_active_subscription(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)
    assert await svc.find_active_subscription(GROUP_ID) is None

    created = await svc.create_subscription(GROUP_ID, USER_ID, 5)
    found = await svc.find_active_subscription(GROUP_ID)
    assert found.id == created.id

    clock.advance(days=6)
    assert await svc.find_active_subscription(GROUP_ID) is None


async def test_expiry_sweep_deactivates_subscription_and_group(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)
    await svc.create_subscription(GROUP_ID, USER_ID, 30)
    await svc.create_subscription(-2002, USER_ID, 90)

    clock.advance(days=31)
    assert await svc.deactivate_expired_subscriptions() == 1

    group, subs = await _group(sessionmaker)
    assert group.is_active is False
    assert [s.is_active for s in subs] == [False]
    other, _ = await _group(sessionmaker, -2002)
    assert other.is_active is True

    # nothing left to expire
    assert await svc.deactivate_expired_subscriptions() == 0


async def test_sweep_reports_groups_that_lost_access(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)
    await svc.create_subscription(GROUP_ID, USER_ID, 1)

    clock.advance(days=2)
    count, group_ids = await svc.sweep_expired()

    assert count == 1
    assert group_ids == [GROUP_ID]


async def test_expiring_soon(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)
    await svc.create_subscription(GROUP_ID, USER_ID, 2)
    await svc.create_subscription(-2002, USER_ID, 30)

    soon = await svc.get_subscriptions_expiring_soon(3)

    assert [s.group_id for s in soon] == [GROUP_ID]


async def test_deactivate_group(sessionmaker, clock):
    svc = SubscriptionService(sessionmaker, clock)
    await svc.create_subscription(GROUP_ID, USER_ID, 2)

    assert await svc.deactivate_group(GROUP_ID) is True
    group, _ = await _group(sessionmaker)
    assert group.is_active is False
    assert await svc.deactivate_group(-999) is False
