from __future__ import annotations

from rentbot import repo
from rentbot.bot import texts
from rentbot.bot.registry import Command, CommandCall
from rentbot.core.roles import Role


async def execute(call: CommandCall) -> None:
    ctx = call.ctx
    if not call.is_group or call.group_id is None:
        role = await ctx.permissions.role_of(call.user_id)
        await call.reply(f"👤 Your role: {role.value}\nUse {ctx.settings.command_prefix}status in a group to see its rental.")
        return

    async with ctx.sessionmaker() as session:
        group = await repo.get_group(session, call.group_id)
    active = await ctx.activation.is_activated(call.group_id)
    await call.reply(
        texts.group_status(
            group.name if group else "",
            active,
            group.expires_at if group else None,
            ctx.clock(),
        )
    )


status_command = Command(
    name="status",
    execute=execute,
    description="Show the bot rental status of this group",
    usage="status",
    aliases=("info",),
    required_role=Role.USER,
    requires_activation=False,
)
