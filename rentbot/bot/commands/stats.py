from __future__ import annotations

from datetime import timedelta

from rentbot.bot import texts
from rentbot.bot.registry import Command, CommandCall
from rentbot.core.roles import Role


async def execute(call: CommandCall) -> None:
    ctx = call.ctx
    since = ctx.clock() - timedelta(hours=24)
    usage = await ctx.antispam.command_stats(since=since)
    top_users = await ctx.antispam.user_activity(since=since, limit=5)
    revenue = await ctx.payments.revenue_by_package()

    lines = ["📈 STATS (last 24h)", ""]
    if usage:
        lines += [f"  {name}: {cnt}" for name, cnt in sorted(usage.items(), key=lambda kv: -kv[1])]
    else:
        lines.append("  no commands")
    if top_users:
        lines += ["", "Most active users:"]
        lines += [f"  {uid}: {cnt}" for uid, cnt in top_users]
    lines += ["", "💰 Revenue by package (all time):"]
    if revenue:
        total = 0
        for pkg, (cnt, amount) in sorted(revenue.items()):
            lines.append(f"  {pkg}: {cnt} payment(s), {texts.fmt_price(amount)}")
            total += amount
        lines.append(f"  total: {texts.fmt_price(total)}")
    else:
        lines.append("  no completed payments")
    await call.reply("\n".join(lines))


stats_command = Command(
    name="stats",
    execute=execute,
    description="Command usage and revenue statistics",
    usage="stats",
    required_role=Role.ADMIN,
    requires_activation=False,
)
