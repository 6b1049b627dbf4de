from __future__ import annotations

import logging

from aiogram import Bot, Dispatcher

from rentbot.bot.context import AppContext
from rentbot.bot.handlers.messages import router as messages_router
from rentbot.bot.middlewares import CorrelationIdMiddleware, ErrorHandlingMiddleware

log = logging.getLogger(__name__)


def build_dispatcher(ctx: AppContext) -> Dispatcher:
    dp = Dispatcher(ctx=ctx)
    for observer in (dp.message, dp.my_chat_member):
        observer.outer_middleware(CorrelationIdMiddleware())
        observer.outer_middleware(ErrorHandlingMiddleware())
    dp.include_router(messages_router)
    return dp


async def run_bot(bot: Bot, ctx: AppContext) -> None:
    dp = build_dispatcher(ctx)
    log.info("bot_start commands=%s", len(ctx.registry))
    await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
