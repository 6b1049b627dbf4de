from __future__ import annotations

from rentbot.bot.registry import Command, CommandCall
from rentbot.core.roles import Role

ROLE_TITLES = {
    Role.USER: "👥 General",
    Role.MANAGER: "🛠 Group managers",
    Role.ADMIN: "👑 Bot admins",
}


def _detail(cmd: Command, prefix: str) -> str:
    lines = [f"📚 COMMAND: {cmd.name.upper()}", ""]
    if cmd.description:
        lines.append(cmd.description)
    lines.append(f"Usage: {prefix}{cmd.usage or cmd.name}")
    if cmd.aliases:
        lines.append("Aliases: " + ", ".join(cmd.aliases))
    lines.append(f"Role: {cmd.required_role.value}")
    return "\n".join(lines)


async def execute(call: CommandCall) -> None:
    ctx = call.ctx
    prefix = ctx.settings.command_prefix

    if call.args:
        cmd = ctx.registry.resolve(call.args[0])
        if cmd is None:
            await call.reply(f"Unknown command: {call.args[0]}. Type {prefix}help for the list.")
            return
        await call.reply(_detail(cmd, prefix))
        return

    role = await ctx.permissions.role_of(call.user_id)
    lines = [f"🤖 {ctx.settings.bot_name}: available commands", ""]
    for r in Role:
        if not role.satisfies(r):
            continue
        cmds = sorted((c for c in ctx.registry.list() if c.required_role == r), key=lambda c: c.name)
        if not cmds:
            continue
        lines.append(ROLE_TITLES[r])
        lines += [f"  {prefix}{c.name}: {c.description}" for c in cmds]
        lines.append("")
    lines.append(f"Details: {prefix}help <command>")
    await call.reply("\n".join(lines))


help_command = Command(
    name="help",
    execute=execute,
    description="Show the command list or details of one command",
    usage="help [command]",
    aliases=("h", "guide", "commands"),
    required_role=Role.USER,
    requires_activation=False,
)
