from __future__ import annotations

from rentbot import repo
from rentbot.bot.registry import Command, CommandCall
from rentbot.core.roles import Role


async def execute(call: CommandCall) -> None:
    ctx = call.ctx
    usage = f"Usage: {ctx.settings.command_prefix}setrole <user_id> <user|manager|admin>"
    if len(call.args) < 2 or not call.args[0].lstrip("-").isdigit():
        await call.reply(usage)
        return
    role = Role.parse(call.args[1])
    if role is None:
        await call.reply(usage)
        return

    user_id = int(call.args[0])
    async with ctx.sessionmaker() as session:
        await repo.set_user_role(session, user_id, role)
        await session.commit()
    await call.reply(f"✅ User {user_id} now has the {role.value} role.")


setrole_command = Command(
    name="setrole",
    execute=execute,
    description="Change a user's bot role",
    usage="setrole <user_id> <user|manager|admin>",
    aliases=("role",),
    required_role=Role.ADMIN,
    requires_activation=False,
)
