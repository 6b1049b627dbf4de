from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, Iterable

from rentbot.bot import texts
from rentbot.bot.registry import Command
from rentbot.bot.sender import ReplySender
from rentbot.core.packages import Package
from rentbot.services.access.service import ActivationGate, PermissionGate
from rentbot.services.antispam.service import AntiSpamService

log = logging.getLogger(__name__)


class Outcome(str, Enum):
    EXECUTED = "executed"
    SPAM_BLOCKED = "spam_blocked"
    NOT_ACTIVATED = "not_activated"
    NO_PERMISSION = "no_permission"
    FAILED = "failed"


class CommandPipeline:
    """anti-spam -> activation (groups only) -> permission -> execute.

    Each failing stage replies once and stops. The usage record is written as soon as
    the anti-spam stage lets a command through, so the next check from the same user
    already counts it.
    """

    def __init__(
        self,
        antispam: AntiSpamService,
        activation: ActivationGate,
        permissions: PermissionGate,
        sender: ReplySender,
        packages: Iterable[Package],
        prefix: str = "/",
    ) -> None:
        self.antispam = antispam
        self.activation = activation
        self.permissions = permissions
        self.sender = sender
        self._packages = list(packages)
        self._prefix = prefix

    async def _reply(self, text: str, user_id: int, group_id: int | None, is_group: bool) -> None:
        target = group_id if is_group and group_id is not None else user_id
        try:
            await self.sender.send_reply(text, target, is_group)
        except Exception:
            log.exception("pipeline_reply_failed target_id=%s", target)

    async def dispatch(
        self,
        user_id: int,
        group_id: int | None,
        is_group: bool,
        command: Command,
        execute: Callable[[], Awaitable[None]],
    ) -> Outcome:
        extra = {"user_id": user_id, "group_id": group_id, "command": command.name}
        name = command.name.lower()

        if not await self.antispam.check(user_id, name):
            await self._reply(texts.SPAM_BLOCKED, user_id, group_id, is_group)
            return Outcome.SPAM_BLOCKED
        await self.antispam.record(user_id, name)

        if is_group and command.requires_activation and not await self.activation.is_activated(group_id):
            if not self.antispam.is_excluded(name):
                await self._reply(texts.rent_prompt(self._packages, self._prefix), user_id, group_id, is_group)
            log.info("command_not_activated", extra=extra)
            return Outcome.NOT_ACTIVATED

        if not await self.permissions.has_permission(user_id, command.required_role):
            await self._reply(texts.permission_denied(command.required_role), user_id, group_id, is_group)
            log.info("command_forbidden role=%s", command.required_role.value, extra=extra)
            return Outcome.NO_PERMISSION

        try:
            await execute()
        except Exception:
            log.exception("command_failed", extra=extra)
            await self._reply(texts.GENERIC_ERROR, user_id, group_id, is_group)
            return Outcome.FAILED

        log.info("command_executed", extra=extra)
        return Outcome.EXECUTED
