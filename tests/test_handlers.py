from types import SimpleNamespace
from unittest.mock import AsyncMock

from rentbot import repo
from rentbot.bot.app import build_dispatcher
from rentbot.bot.handlers.messages import on_bot_membership, on_text
from rentbot.bot.middlewares import CorrelationIdMiddleware, ErrorHandlingMiddleware

GROUP_ID = -100777
USER_ID = 55


def _message(text, *, chat_type="supergroup", user_id=USER_ID, is_bot=False):
    chat_id = GROUP_ID if chat_type != "private" else user_id
    return SimpleNamespace(
        text=text,
        chat=SimpleNamespace(id=chat_id, type=chat_type, title="Readers"),
        from_user=SimpleNamespace(id=user_id, is_bot=is_bot, full_name="Reader"),
    )


def _membership(old, new):
    return SimpleNamespace(
        chat=SimpleNamespace(id=GROUP_ID, type="supergroup", title="Readers"),
        old_chat_member=SimpleNamespace(status=old),
        new_chat_member=SimpleNamespace(status=new),
    )


async def test_plain_text_is_tracked_but_not_answered(ctx, sender):
    await on_text(_message("hello there"), ctx)

    assert sender.messages == []
    async with ctx.sessionmaker() as session:
        user = await repo.get_user(session, USER_ID)
        group = await repo.get_group(session, GROUP_ID)
    assert user.message_count == 1
    assert group.name == "Readers"
    assert group.message_count == 1
    assert group.is_active is False


async def test_command_is_dispatched(ctx, sender):
    await on_text(_message("/status"), ctx)

    assert "Not activated" in sender.texts(GROUP_ID)[-1]


async def test_unknown_command_is_ignored(ctx, sender):
    await on_text(_message("/dance now"), ctx)
    assert sender.messages == []


async def test_bots_and_banned_users_are_ignored(ctx, sender):
    await on_text(_message("/status", is_bot=True), ctx)

    async with ctx.sessionmaker() as session:
        await repo.ensure_user(session, USER_ID, count_message=False)
        await repo.ban_user(session, USER_ID, "spam")
        await session.commit()
    await on_text(_message("/status"), ctx)

    assert sender.messages == []


async def test_banned_group_is_ignored(ctx, sender):
    async with ctx.sessionmaker() as session:
        await repo.ensure_group(session, GROUP_ID, "Readers")
        await repo.ban_group(session, GROUP_ID)
        await session.commit()

    await on_text(_message("/help"), ctx)
    assert sender.messages == []


async def test_bot_added_to_group(ctx, sender):
    admins = [
        SimpleNamespace(user=SimpleNamespace(id=7, is_bot=False)),
        SimpleNamespace(user=SimpleNamespace(id=8, is_bot=True)),
    ]
    bot = SimpleNamespace(get_chat_administrators=AsyncMock(return_value=admins))

    await on_bot_membership(_membership("left", "member"), bot, ctx)

    async with ctx.sessionmaker() as session:
        group = await repo.get_group(session, GROUP_ID)
    assert group.admin_ids == [7]
    [welcome] = sender.texts(GROUP_ID)
    assert "/help" in welcome
    assert "basic" in welcome


async def test_bot_promoted_is_not_welcomed_again(ctx, sender):
    bot = SimpleNamespace(get_chat_administrators=AsyncMock(return_value=[]))

    await on_bot_membership(_membership("member", "administrator"), bot, ctx)
    await on_bot_membership(_membership("member", "kicked"), bot, ctx)

    assert sender.messages == []
    bot.get_chat_administrators.assert_not_awaited()


async def test_correlation_id_middleware():
    seen = {}

    async def handler(event, data):
        seen.update(data)
        return "ok"

    data = {"event_update": SimpleNamespace(update_id=17)}
    assert await CorrelationIdMiddleware()(handler, SimpleNamespace(), data) == "ok"
    assert seen["corr_id"] == "u17"


async def test_error_middleware_drops_failed_update():
    async def handler(event, data):
        raise RuntimeError("boom")

    assert await ErrorHandlingMiddleware()(handler, SimpleNamespace(from_user=None), {}) is None


def test_build_dispatcher(ctx):
    dp = build_dispatcher(ctx)
    assert dp["ctx"] is ctx
    assert "message" in dp.resolve_used_update_types()
