from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import SQLAlchemyError

from rentbot.core.config import Settings
from rentbot.core.time import Clock, utcnow
from rentbot.db.models import CommandUsage
from rentbot.db.session import SessionMaker

log = logging.getLogger(__name__)


class AntiSpamService:
    """Sliding-window command rate limiter backed by the command_usage table.

    A user who issued ``max_commands`` within ``time_window`` seconds is blocked
    until ``cooldown`` seconds pass with no further usage. Storage errors let the
    command through.
    """

    def __init__(
        self,
        sm: SessionMaker,
        *,
        max_commands: int = 5,
        time_window: int = 10,
        cooldown: int = 60,
        excluded: Iterable[str] = ("help", "status"),
        per_command: bool = True,
        clock: Clock = utcnow,
    ) -> None:
        self._sm = sm
        self.max_commands = max_commands
        self.time_window = timedelta(seconds=time_window)
        self.cooldown = timedelta(seconds=cooldown)
        self.excluded = frozenset(c.lower() for c in excluded)
        self.per_command = per_command
        self._clock = clock

    @classmethod
    def from_settings(cls, sm: SessionMaker, settings: Settings, clock: Clock = utcnow) -> AntiSpamService:
        return cls(
            sm,
            max_commands=settings.anti_spam_max_commands,
            time_window=settings.anti_spam_time_window,
            cooldown=settings.anti_spam_cooldown,
            excluded=settings.anti_spam_excluded,
            per_command=settings.anti_spam_per_command,
            clock=clock,
        )

    def is_excluded(self, command_name: str) -> bool:
        return command_name.lower() in self.excluded

    def _count_since(self, user_id: int, command_name: str, since: datetime):
        q = select(func.count(CommandUsage.id)).where(
            CommandUsage.user_id == user_id,
            CommandUsage.used_at >= since,
        )
        if self.per_command:
            q = q.where(CommandUsage.command_name == command_name)
        return q

    async def check(self, user_id: int, command_name: str) -> bool:
        """True when the command may run."""
        command_name = command_name.lower()
        if self.is_excluded(command_name):
            return True

        now = self._clock()
        try:
            async with self._sm() as session:
                count = await session.scalar(self._count_since(user_id, command_name, now - self.time_window))
                if (count or 0) < self.max_commands:
                    return True
                in_cooldown = await session.scalar(self._count_since(user_id, command_name, now - self.cooldown))
        except SQLAlchemyError:
            log.exception("antispam_check_failed user_id=%s command=%s", user_id, command_name)
            return True

        if in_cooldown:
            log.info("antispam_blocked user_id=%s command=%s count=%s", user_id, command_name, count)
            return False
        return True

    async def record(self, user_id: int, command_name: str) -> None:
        try:
            async with self._sm() as session:
                session.add(CommandUsage(user_id=user_id, command_name=command_name.lower(), used_at=self._clock()))
                await session.commit()
        except SQLAlchemyError:
            log.exception("antispam_record_failed user_id=%s command=%s", user_id, command_name)

    async def cleanup(self, older_than: timedelta = timedelta(hours=24)) -> int:
        """Delete usage records older than ``older_than``; returns the number removed."""
        cutoff = self._clock() - older_than
        try:
            async with self._sm() as session:
                res = await session.execute(delete(CommandUsage).where(CommandUsage.used_at < cutoff))
                await session.commit()
        except SQLAlchemyError:
            log.exception("antispam_cleanup_failed")
            return 0
        deleted = res.rowcount or 0
        log.info("antispam_cleanup deleted=%s", deleted)
        return deleted

    async def command_stats(self, since: datetime | None = None, until: datetime | None = None) -> dict[str, int]:
        q = select(CommandUsage.command_name, func.count(CommandUsage.id)).group_by(CommandUsage.command_name)
        if since is not None:
            q = q.where(CommandUsage.used_at >= since)
        if until is not None:
            q = q.where(CommandUsage.used_at <= until)
        try:
            async with self._sm() as session:
                rows = (await session.execute(q)).all()
        except SQLAlchemyError:
            log.exception("antispam_stats_failed")
            return {}
        return {name: int(cnt) for name, cnt in rows}

    async def user_activity(self, since: datetime | None = None, limit: int = 10) -> list[tuple[int, int]]:
        cnt = func.count(CommandUsage.id).label("cnt")
        q = select(CommandUsage.user_id, cnt).group_by(CommandUsage.user_id).order_by(desc(cnt)).limit(limit)
        if since is not None:
            q = q.where(CommandUsage.used_at >= since)
        try:
            async with self._sm() as session:
                rows = (await session.execute(q)).all()
        except SQLAlchemyError:
            log.exception("antispam_activity_failed")
            return []
        return [(int(uid), int(c)) for uid, c in rows]
