from __future__ import annotations

from rentbot.bot.registry import Command, CommandCall
from rentbot.core.roles import Role
from rentbot.core.time import fmt_dt
from rentbot.services.licenses.service import DURATION_MULTIPLIERS, duration_days

MAX_BATCH = 50


async def execute(call: CommandCall) -> None:
    ctx = call.ctx
    usage = f"Usage: {ctx.settings.command_prefix}genkey <n> <{'|'.join(DURATION_MULTIPLIERS)}> [count]"
    if len(call.args) < 2:
        await call.reply(usage)
        return

    try:
        duration = int(call.args[0])
        count = int(call.args[2]) if len(call.args) > 2 else 1
    except ValueError:
        await call.reply(usage)
        return
    duration_type = call.args[1].lower()
    if duration <= 0 or duration_type not in DURATION_MULTIPLIERS or not 1 <= count <= MAX_BATCH:
        await call.reply(usage + f"\nn must be positive and count between 1 and {MAX_BATCH}.")
        return

    keys = await ctx.licenses.generate_batch(count, duration, duration_type, created_by=call.user_id)
    if not keys:
        await call.reply("⚠️ Could not generate license keys, try again later.")
        return

    days = duration_days(duration, duration_type)
    lines = [f"🔑 Generated {len(keys)} key(s), {days} days each:", ""]
    lines += [k.key for k in keys]
    lines += ["", f"Keys expire if unused by {fmt_dt(keys[0].expires_at)}"]
    await call.reply("\n".join(lines))


genkey_command = Command(
    name="genkey",
    execute=execute,
    description="Generate license keys",
    usage="genkey <n> <day|week|month|year|custom> [count]",
    aliases=("keys",),
    required_role=Role.ADMIN,
    requires_activation=False,
)
