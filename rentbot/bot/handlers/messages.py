from __future__ import annotations

import logging

from aiogram import Bot, F, Router
from aiogram.enums import ChatMemberStatus, ChatType
from aiogram.exceptions import TelegramAPIError
from aiogram.types import ChatMemberUpdated, Message
from sqlalchemy.exc import SQLAlchemyError

from rentbot import repo
from rentbot.bot import texts
from rentbot.bot.context import AppContext
from rentbot.bot.registry import CommandCall

log = logging.getLogger(__name__)

router = Router()

GROUP_CHAT_TYPES = (ChatType.GROUP, ChatType.SUPERGROUP)


def parse_command(text: str | None, prefix: str = "/") -> tuple[str, list[str]] | None:
    """'/rent@MyBot basic confirm' -> ('rent', ['basic', 'confirm'])."""
    if not text or not prefix or not text.startswith(prefix):
        return None
    parts = text[len(prefix):].split()
    if not parts:
        return None
    name = parts[0].split("@", 1)[0].lower()
    if not name:
        return None
    return name, parts[1:]


@router.message(F.text)
async def on_text(message: Message, ctx: AppContext, corr_id: str | None = None) -> None:
    from_user = message.from_user
    if from_user is None or from_user.is_bot:
        return

    is_group = message.chat.type in GROUP_CHAT_TYPES
    group_id = message.chat.id if is_group else None
    user_id = from_user.id

    try:
        async with ctx.sessionmaker() as session:
            user = await repo.ensure_user(session, user_id, from_user.full_name, now=ctx.clock())
            group = None
            if is_group:
                group = await repo.ensure_group(session, group_id, message.chat.title, count_message=True, now=ctx.clock())
            await session.commit()
    except SQLAlchemyError:
        log.exception("message_tracking_failed", extra={"corr_id": corr_id, "user_id": user_id})
        user = group = None

    if user is not None and user.banned:
        return
    if group is not None and group.banned:
        return

    parsed = parse_command(message.text, ctx.settings.command_prefix)
    if parsed is None:
        return
    name, args = parsed
    command = ctx.registry.resolve(name)
    if command is None:
        return

    call = CommandCall(
        ctx=ctx,
        command=command,
        user_id=user_id,
        group_id=group_id,
        is_group=is_group,
        args=args,
        display_name=from_user.full_name,
    )
    log.info("command_received", extra={"corr_id": corr_id, "user_id": user_id, "group_id": group_id, "command": command.name})
    await ctx.pipeline.dispatch(user_id, group_id, is_group, command, lambda: command.execute(call))


async def _sync_admins(bot: Bot, ctx: AppContext, chat_id: int) -> None:
    try:
        admins = await bot.get_chat_administrators(chat_id)
    except TelegramAPIError:
        log.warning("group_admins_fetch_failed group_id=%s", chat_id, exc_info=True)
        return
    async with ctx.sessionmaker() as session:
        await repo.set_group_admins(session, chat_id, [a.user.id for a in admins if not a.user.is_bot])
        await session.commit()


@router.my_chat_member(F.chat.type.in_(GROUP_CHAT_TYPES))
async def on_bot_membership(event: ChatMemberUpdated, bot: Bot, ctx: AppContext) -> None:
    status = event.new_chat_member.status
    chat = event.chat
    if status in (ChatMemberStatus.LEFT, ChatMemberStatus.KICKED):
        log.info("bot_removed_from_group group_id=%s", chat.id)
        return
    if event.old_chat_member.status not in (ChatMemberStatus.LEFT, ChatMemberStatus.KICKED):
        return

    async with ctx.sessionmaker() as session:
        await repo.ensure_group(session, chat.id, chat.title, now=ctx.clock())
        await session.commit()
    await _sync_admins(bot, ctx, chat.id)
    log.info("bot_added_to_group group_id=%s", chat.id)

    prefix = ctx.settings.command_prefix
    welcome = (
        f"👋 Hi, I'm {ctx.settings.bot_name}!\n"
        f"Type {prefix}help to see what I can do.\n\n" + texts.rent_menu(ctx.settings.packages.values(), prefix)
    )
    await ctx.sender.send_reply(welcome, chat.id, True)
