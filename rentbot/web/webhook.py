from __future__ import annotations

import json
import logging

from aiohttp import web

from rentbot.bot.context import AppContext

log = logging.getLogger(__name__)

CTX_KEY = web.AppKey("ctx", AppContext)


async def payos_webhook(request: web.Request) -> web.Response:
    """Gateway callback. Always 200 with a JSON body so the gateway does not retry forever."""
    ctx = request.app[CTX_KEY]
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        log.warning("webhook_bad_json")
        return web.json_response({"success": False, "error": "invalid json"})

    if not isinstance(body, dict):
        return web.json_response({"success": False, "error": "invalid body"})

    processed = await ctx.payments.handle_webhook(body)
    return web.json_response({"success": True, "processed": processed})


async def health(request: web.Request) -> web.Response:
    return web.json_response({"ok": True})


def build_app(ctx: AppContext) -> web.Application:
    app = web.Application()
    app[CTX_KEY] = ctx
    app.router.add_post("/webhook/payos", payos_webhook)
    app.router.add_get("/health", health)
    return app


async def start_webhook_server(ctx: AppContext) -> web.AppRunner:
    runner = web.AppRunner(build_app(ctx))
    await runner.setup()
    site = web.TCPSite(runner, ctx.settings.webhook_host, ctx.settings.webhook_port)
    await site.start()
    log.info("webhook_start host=%s port=%s", ctx.settings.webhook_host, ctx.settings.webhook_port)
    return runner
