from __future__ import annotations

from rentbot import repo
from rentbot.bot import texts
from rentbot.bot.registry import Command, CommandCall
from rentbot.core.roles import Role


async def execute(call: CommandCall) -> None:
    ctx = call.ctx
    if not call.is_group or call.group_id is None:
        await call.reply(texts.GROUP_ONLY)
        return
    if not call.args:
        await call.reply(f"Usage: {ctx.settings.command_prefix}redeem <KEY>")
        return

    result = await ctx.licenses.redeem(call.args[0], call.group_id, call.user_id)
    if not result.success:
        await call.reply(f"❌ {result.message}")
        return

    async with ctx.sessionmaker() as session:
        group = await repo.get_group(session, call.group_id)
    await call.reply(texts.redeem_success(result.days or 0, group.expires_at if group else None))


redeem_command = Command(
    name="redeem",
    execute=execute,
    description="Activate this group with a license key",
    usage="redeem <KEY>",
    aliases=("key", "activate"),
    required_role=Role.MANAGER,
    requires_activation=False,
)
