from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from rentbot.core.roles import Role
from rentbot.core.time import utcnow
from rentbot.db.models import Group, User

log = logging.getLogger(__name__)

# experience granted per observed message
EXP_PER_MESSAGE = 1


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)


async def get_group(session: AsyncSession, group_id: int) -> Group | None:
    return await session.get(Group, group_id)


async def ensure_user(
    session: AsyncSession,
    user_id: int,
    display_name: str | None = None,
    *,
    count_message: bool = True,
    now: datetime | None = None,
) -> User:
    """Create the user on first sight, then bump activity counters."""
    now = now or utcnow()
    user = await session.get(User, user_id)
    if not user:
        user = User(id=user_id, display_name=display_name, role=Role.USER.value, created_at=now, updated_at=now)
        session.add(user)
        log.info("user_created user_id=%s", user_id)
    elif display_name and user.display_name != display_name:
        user.display_name = display_name

    if count_message:
        user.message_count = (user.message_count or 0) + 1
        user.exp = (user.exp or 0) + EXP_PER_MESSAGE
        user.last_active = now
    await session.flush()
    return user


async def ensure_group(
    session: AsyncSession,
    group_id: int,
    name: str | None = None,
    *,
    count_message: bool = False,
    now: datetime | None = None,
) -> Group:
    """New groups start unactivated."""
    now = now or utcnow()
    group = await session.get(Group, group_id)
    if not group:
        group = Group(
            id=group_id,
            name=name or "",
            is_active=False,
            admin_ids=[],
            settings={},
            created_at=now,
            updated_at=now,
        )
        session.add(group)
        log.info("group_created group_id=%s", group_id)
    elif name and group.name != name:
        group.name = name

    if count_message:
        group.message_count = (group.message_count or 0) + 1
    await session.flush()
    return group


async def set_group_admins(session: AsyncSession, group_id: int, admin_ids: list[int]) -> None:
    group = await session.get(Group, group_id)
    if not group:
        return
    # JSON column: reassign so the change is tracked
    group.admin_ids = sorted({int(x) for x in admin_ids})
    await session.flush()


async def set_user_role(session: AsyncSession, user_id: int, role: Role) -> User:
    user = await ensure_user(session, user_id, count_message=False)
    user.role = role.value
    await session.flush()
    log.info("user_role_set user_id=%s role=%s", user_id, role.value)
    return user


async def ban_user(session: AsyncSession, user_id: int, reason: str | None = None) -> None:
    user = await ensure_user(session, user_id, count_message=False)
    user.banned = True
    user.ban_reason = reason
    await session.flush()
    log.info("user_banned user_id=%s", user_id)


async def unban_user(session: AsyncSession, user_id: int) -> bool:
    res = await session.execute(
        update(User).where(User.id == user_id, User.banned.is_(True)).values(banned=False, ban_reason=None)
    )
    return bool(res.rowcount)


async def ban_group(session: AsyncSession, group_id: int, reason: str | None = None) -> None:
    group = await ensure_group(session, group_id)
    group.banned = True
    group.ban_reason = reason
    await session.flush()
    log.info("group_banned group_id=%s", group_id)


async def unban_group(session: AsyncSession, group_id: int) -> bool:
    res = await session.execute(
        update(Group).where(Group.id == group_id, Group.banned.is_(True)).values(banned=False, ban_reason=None)
    )
    return bool(res.rowcount)
