from __future__ import annotations

import logging
from typing import Any, Protocol

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import BufferedInputFile

log = logging.getLogger(__name__)


class ReplySender(Protocol):
    async def send_reply(self, text: str, target_id: int, is_group: bool = False, *, reply_markup: Any = None) -> None: ...

    async def send_photo(self, photo: bytes, target_id: int, caption: str | None = None, is_group: bool = False) -> None: ...


class BotReplySender:
    """Telegram transport: chat id is the target for both DMs and groups."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send_reply(self, text: str, target_id: int, is_group: bool = False, *, reply_markup: Any = None) -> None:
        await self.bot.send_message(chat_id=target_id, text=text, reply_markup=reply_markup)

    async def send_photo(self, photo: bytes, target_id: int, caption: str | None = None, is_group: bool = False) -> None:
        await self.bot.send_photo(
            chat_id=target_id,
            photo=BufferedInputFile(photo, filename="qr.png"),
            caption=caption,
        )


async def safe_send(sender: ReplySender | None, text: str, target_id: int, is_group: bool = True) -> bool:
    """Best-effort notification; delivery failures are logged, never raised."""
    if sender is None:
        return False
    try:
        await sender.send_reply(text, target_id, is_group)
    except TelegramAPIError:
        log.warning("notify_failed target_id=%s", target_id, exc_info=True)
        return False
    return True
