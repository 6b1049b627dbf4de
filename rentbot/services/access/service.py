from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from rentbot.core.roles import Role
from rentbot.core.time import Clock, utcnow
from rentbot.db.models import Group, User
from rentbot.db.session import SessionMaker

log = logging.getLogger(__name__)


class ActivationGate:
    """Is the group inside a paid window right now. Storage errors deny."""

    def __init__(self, sm: SessionMaker, clock: Clock = utcnow) -> None:
        self._sm = sm
        self._clock = clock

    async def is_activated(self, group_id: int | None) -> bool:
        if group_id is None:
            return True
        try:
            async with self._sm() as session:
                group = await session.get(Group, group_id)
        except SQLAlchemyError:
            log.exception("activation_check_failed group_id=%s", group_id)
            return False

        if group is None:
            log.info("activation_unknown_group group_id=%s", group_id)
            return False
        return group.is_entitled(self._clock())


class PermissionGate:
    def __init__(self, sm: SessionMaker, admin_ids: Iterable[int] = ()) -> None:
        self._sm = sm
        self.admin_ids = frozenset(int(x) for x in admin_ids)

    def is_super_admin(self, user_id: int) -> bool:
        return user_id in self.admin_ids

    async def role_of(self, user_id: int) -> Role:
        """Effective role; raises on storage errors."""
        if self.is_super_admin(user_id):
            return Role.ADMIN
        async with self._sm() as session:
            user = await session.get(User, user_id)
        if user is None:
            return Role.USER
        return user.role_enum

    async def has_permission(self, user_id: int, required: Role) -> bool:
        if self.is_super_admin(user_id):
            return True
        try:
            role = await self.role_of(user_id)
        except SQLAlchemyError:
            log.exception("permission_check_failed user_id=%s", user_id)
            return False
        return role.satisfies(required)
