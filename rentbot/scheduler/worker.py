from __future__ import annotations

import logging
from datetime import timedelta

from rentbot.bot import texts
from rentbot.bot.context import AppContext
from rentbot.bot.sender import safe_send
from rentbot.core.scheduler import Scheduler
from rentbot.core.time import days_left

log = logging.getLogger(__name__)


async def job_expire_subscriptions(ctx: AppContext) -> int:
    count, group_ids = await ctx.subscriptions.sweep_expired()
    for group_id in group_ids:
        await safe_send(ctx.sender, texts.subscription_expired(), group_id, True)
    return count


async def job_expiry_reminders(ctx: AppContext) -> int:
    """One reminder per group, for the subscription ending last."""
    subs = await ctx.subscriptions.get_subscriptions_expiring_soon(ctx.settings.reminder_days)
    latest = {}
    for sub in subs:
        cur = latest.get(sub.group_id)
        if cur is None or sub.end_date > cur.end_date:
            latest[sub.group_id] = sub

    now = ctx.clock()
    sent = 0
    for group_id, sub in latest.items():
        if await safe_send(ctx.sender, texts.expiry_reminder(days_left(sub.end_date, now), sub.end_date), group_id, True):
            sent += 1
    if latest:
        log.info("expiry_reminders_sent groups=%s sent=%s", len(latest), sent)
    return sent


async def job_payments(ctx: AppContext) -> None:
    await ctx.payments.reconcile_pending()
    await ctx.payments.cancel_expired(ctx.settings.pending_payment_ttl_hours)


async def job_usage_retention(ctx: AppContext) -> int:
    return await ctx.antispam.cleanup(timedelta(hours=ctx.settings.usage_retention_hours))


def register_jobs(ctx: AppContext, scheduler: Scheduler | None = None) -> Scheduler:
    """Put the periodic sweeps on the scheduler; caller starts and stops it."""
    scheduler = scheduler or ctx.scheduler
    s = ctx.settings
    scheduler.schedule(s.expiry_sweep_seconds, lambda: job_expire_subscriptions(ctx), name="expire_subscriptions", run_immediately=True)
    scheduler.schedule(s.reminder_sweep_seconds, lambda: job_expiry_reminders(ctx), name="expiry_reminders")
    scheduler.schedule(s.payment_sweep_seconds, lambda: job_payments(ctx), name="payments")
    scheduler.schedule(s.usage_sweep_seconds, lambda: job_usage_retention(ctx), name="usage_retention")
    return scheduler
