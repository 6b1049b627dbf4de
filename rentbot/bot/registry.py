from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable

from rentbot.core.roles import Role

if TYPE_CHECKING:
    from rentbot.bot.context import AppContext

log = logging.getLogger(__name__)


@dataclass
class CommandCall:
    """One invocation of a command, as handed to its executor."""

    ctx: AppContext
    command: Command
    user_id: int
    group_id: int | None
    is_group: bool
    args: list[str] = field(default_factory=list)
    display_name: str | None = None

    @property
    def target_id(self) -> int:
        return self.group_id if self.is_group and self.group_id is not None else self.user_id

    async def reply(self, text: str, reply_markup=None) -> None:
        await self.ctx.sender.send_reply(text, self.target_id, self.is_group, reply_markup=reply_markup)

    async def reply_photo(self, photo: bytes, caption: str | None = None) -> None:
        await self.ctx.sender.send_photo(photo, self.target_id, caption, self.is_group)


Executor = Callable[[CommandCall], Awaitable[None]]


@dataclass(frozen=True)
class Command:
    name: str
    execute: Executor
    description: str = ""
    usage: str = ""
    aliases: tuple[str, ...] = ()
    required_role: Role = Role.USER
    # groups without a paid window may still run commands that opt out
    requires_activation: bool = True


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}
        self._aliases: dict[str, str] = {}

    def register(self, command: Command) -> bool:
        name = command.name.lower()
        if name in self._commands or name in self._aliases:
            log.error("command_duplicate name=%s", name)
            return False
        self._commands[name] = command

        for alias in command.aliases:
            a = alias.lower()
            if a == name:
                continue
            if a in self._commands or a in self._aliases:
                log.warning("command_alias_collision alias=%s command=%s", a, name)
                continue
            self._aliases[a] = name
        log.debug("command_registered name=%s aliases=%s", name, command.aliases)
        return True

    def resolve(self, token: str) -> Command | None:
        t = (token or "").strip().lower()
        if not t:
            return None
        cmd = self._commands.get(t)
        if cmd is not None:
            return cmd
        target = self._aliases.get(t)
        return self._commands.get(target) if target else None

    def list(self) -> list[Command]:
        return list(self._commands.values())

    def __len__(self) -> int:
        return len(self._commands)
