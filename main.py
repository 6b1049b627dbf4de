import asyncio
import logging

from aiogram import Bot

from rentbot.bot.app import run_bot
from rentbot.bot.context import build_context
from rentbot.bot.sender import BotReplySender
from rentbot.core.config import load_settings
from rentbot.core.logging import setup_logging
from rentbot.db.session import create_engine, create_schema, create_sessionmaker
from rentbot.scheduler.worker import register_jobs
from rentbot.web.webhook import start_webhook_server

log = logging.getLogger(__name__)


async def main() -> None:
    setup_logging()
    settings = load_settings()

    engine = create_engine(settings.database_url)
    if engine.dialect.name == "sqlite":
        # PostgreSQL schema is managed by alembic
        await create_schema(engine)
    sm = create_sessionmaker(engine)

    bot = Bot(token=settings.bot_token)
    ctx = build_context(settings, sm, BotReplySender(bot))

    runner = None
    if settings.webhook_enabled:
        runner = await start_webhook_server(ctx)
    if settings.scheduler_enabled:
        register_jobs(ctx)
        ctx.scheduler.start()

    try:
        await run_bot(bot, ctx)
    finally:
        await ctx.scheduler.stop()
        if runner is not None:
            await runner.cleanup()
        await bot.session.close()
        await engine.dispose()
        log.info("shutdown_complete")


if __name__ == "__main__":
    asyncio.run(main())
