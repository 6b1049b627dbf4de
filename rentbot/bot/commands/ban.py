from __future__ import annotations

import logging

from rentbot import repo
from rentbot.bot.registry import Command, CommandCall
from rentbot.core.roles import Role

log = logging.getLogger(__name__)

TARGETS = ("user", "group")


def _parse(call: CommandCall) -> tuple[str, int] | None:
    if len(call.args) < 2:
        return None
    target = call.args[0].lower()
    if target not in TARGETS or not call.args[1].lstrip("-").isdigit():
        return None
    return target, int(call.args[1])


async def execute_ban(call: CommandCall) -> None:
    ctx = call.ctx
    parsed = _parse(call)
    if parsed is None:
        await call.reply(f"Usage: {ctx.settings.command_prefix}ban <user|group> <id> [reason]")
        return
    target, target_id = parsed
    if target == "user" and ctx.permissions.is_super_admin(target_id):
        await call.reply("Bot admins cannot be banned.")
        return

    reason = " ".join(call.args[2:]) or None
    async with ctx.sessionmaker() as session:
        if target == "user":
            await repo.ban_user(session, target_id, reason)
        else:
            await repo.ban_group(session, target_id, reason)
        await session.commit()
    log.info("ban_applied target=%s target_id=%s by=%s", target, target_id, call.user_id)
    await call.reply(f"🚫 {target.capitalize()} {target_id} is banned." + (f"\nReason: {reason}" if reason else ""))


async def execute_unban(call: CommandCall) -> None:
    ctx = call.ctx
    parsed = _parse(call)
    if parsed is None:
        await call.reply(f"Usage: {ctx.settings.command_prefix}unban <user|group> <id>")
        return
    target, target_id = parsed

    async with ctx.sessionmaker() as session:
        if target == "user":
            lifted = await repo.unban_user(session, target_id)
        else:
            lifted = await repo.unban_group(session, target_id)
        await session.commit()
    if not lifted:
        await call.reply(f"{target.capitalize()} {target_id} is not banned.")
        return
    log.info("ban_lifted target=%s target_id=%s by=%s", target, target_id, call.user_id)
    await call.reply(f"✅ {target.capitalize()} {target_id} is unbanned.")


ban_command = Command(
    name="ban",
    execute=execute_ban,
    description="Stop the bot from answering a user or group",
    usage="ban <user|group> <id> [reason]",
    required_role=Role.ADMIN,
    requires_activation=False,
)

unban_command = Command(
    name="unban",
    execute=execute_unban,
    description="Lift a user or group ban",
    usage="unban <user|group> <id>",
    required_role=Role.ADMIN,
    requires_activation=False,
)
