from rentbot import repo
from rentbot.bot.registry import CommandCall
from rentbot.core.roles import Role


async def run_command(ctx, text_name, args=(), *, user_id, group_id=None):
    """Resolve and dispatch a command the way the message handler does."""
    command = ctx.registry.resolve(text_name)
    assert command is not None, text_name
    is_group = group_id is not None
    call = CommandCall(
        ctx=ctx,
        command=command,
        user_id=user_id,
        group_id=group_id,
        is_group=is_group,
        args=list(args),
    )
    return await ctx.pipeline.dispatch(user_id, group_id, is_group, command, lambda: command.execute(call))


async def make_user(ctx, user_id, role=Role.USER):
    async with ctx.sessionmaker() as session:
        await repo.set_user_role(session, user_id, role)
        await session.commit()


async def make_group(ctx, group_id, name="Test group"):
    async with ctx.sessionmaker() as session:
        await repo.ensure_group(session, group_id, name, now=ctx.clock())
        await session.commit()
