from __future__ import annotations

import logging

import aiohttp
from aiogram.exceptions import TelegramAPIError

from rentbot import repo
from rentbot.bot import texts
from rentbot.bot.keyboards import kb_pay_link, qr_png
from rentbot.bot.registry import Command, CommandCall
from rentbot.core.roles import Role
from rentbot.services.payments.payos import PayOSError
from rentbot.services.payments.service import PaymentError

log = logging.getLogger(__name__)


async def _payment_flow(call: CommandCall, command_name: str) -> None:
    """``<cmd>`` shows packages, ``<cmd> <pkg>`` asks to confirm, ``<cmd> <pkg> confirm`` starts checkout."""
    ctx = call.ctx
    prefix = ctx.settings.command_prefix
    if not call.is_group or call.group_id is None:
        await call.reply(texts.GROUP_ONLY)
        return

    expires_at = None
    if command_name == "extend":
        async with ctx.sessionmaker() as session:
            group = await repo.get_group(session, call.group_id)
        expires_at = group.expires_at if group and group.is_entitled(ctx.clock()) else None

    if not call.args:
        menu = texts.rent_menu(ctx.payments.packages.values(), prefix, command_name)
        if expires_at is not None:
            menu = texts.current_expiry(expires_at, ctx.clock()) + "\n\n" + menu
        await call.reply(menu)
        return

    package = ctx.payments.get_package(call.args[0])
    if package is None:
        await call.reply(f'Package "{call.args[0]}" does not exist. Use {prefix}{command_name} to see the list.')
        return

    if len(call.args) < 2 or call.args[1].lower() != "confirm":
        await call.reply(texts.rent_confirm(package, command_name, prefix, expires_at))
        return

    try:
        init = await ctx.payments.initialize(call.user_id, call.group_id, package.id)
    except (PaymentError, PayOSError, aiohttp.ClientError, TimeoutError):
        log.exception("payment_start_failed group_id=%s package=%s", call.group_id, package.id)
        await call.reply(texts.payment_failed_to_start())
        return

    await call.reply(
        texts.payment_created(package, init.payment_link, ctx.settings.bot_name),
        reply_markup=kb_pay_link(init.payment_link),
    )
    try:
        await call.reply_photo(qr_png(init.qr_code), caption="Payment QR code")
    except TelegramAPIError:
        log.warning("payment_qr_send_failed payment_id=%s", init.payment_id, exc_info=True)


async def execute_rent(call: CommandCall) -> None:
    await _payment_flow(call, "rent")


async def execute_extend(call: CommandCall) -> None:
    await _payment_flow(call, "extend")


rent_command = Command(
    name="rent",
    execute=execute_rent,
    description="Rent the bot for this group",
    usage="rent [package] [confirm]",
    aliases=("hire",),
    required_role=Role.MANAGER,
    requires_activation=False,
)

extend_command = Command(
    name="extend",
    execute=execute_extend,
    description="Extend the bot rental of this group",
    usage="extend [package] [confirm]",
    aliases=("renew",),
    required_role=Role.MANAGER,
    requires_activation=False,
)
