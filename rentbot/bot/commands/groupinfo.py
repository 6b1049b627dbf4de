from __future__ import annotations

from rentbot import repo
from rentbot.bot import texts
from rentbot.bot.registry import Command, CommandCall
from rentbot.core.roles import Role
from rentbot.core.time import fmt_dt
from rentbot.db.models import PaymentStatus


async def execute(call: CommandCall) -> None:
    ctx = call.ctx
    if not call.is_group or call.group_id is None:
        await call.reply(texts.GROUP_ONLY)
        return

    async with ctx.sessionmaker() as session:
        group = await repo.get_group(session, call.group_id)
    if group is None:
        await call.reply("This group is not registered yet.")
        return

    sub = await ctx.subscriptions.find_active_subscription(call.group_id)
    payments = await ctx.payments.history_for_group(call.group_id, limit=100)
    paid = [p for p in payments if p.status == PaymentStatus.COMPLETED]

    lines = [
        "ℹ️ GROUP INFO",
        "",
        f"Name: {group.name or '—'}",
        f"ID: {group.id}",
        f"Admins: {len(group.admin_ids or [])}",
        f"Messages seen: {group.message_count}",
        f"Activated since: {fmt_dt(group.activated_at)}",
        f"Expires: {fmt_dt(group.expires_at)}",
    ]
    if sub is not None:
        lines.append(f"Subscription: #{sub.id} until {fmt_dt(sub.end_date)}")
        if sub.keys_used:
            lines.append(f"License keys used: {len(sub.keys_used)}")
    lines.append(f"Payments: {len(paid)} completed of {len(payments)}")
    await call.reply("\n".join(lines))


groupinfo_command = Command(
    name="groupinfo",
    execute=execute,
    description="Show details about this group",
    usage="groupinfo",
    aliases=("group",),
    required_role=Role.USER,
    requires_activation=True,
)
