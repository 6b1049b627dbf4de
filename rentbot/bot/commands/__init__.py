from rentbot.bot.registry import CommandRegistry

from .ban import ban_command, unban_command
from .genkey import genkey_command
from .groupinfo import groupinfo_command
from .help import help_command
from .redeem import redeem_command
from .rent import extend_command, rent_command
from .setrole import setrole_command
from .stats import stats_command
from .status import status_command

ALL_COMMANDS = (
    help_command,
    status_command,
    groupinfo_command,
    rent_command,
    extend_command,
    redeem_command,
    genkey_command,
    setrole_command,
    ban_command,
    unban_command,
    stats_command,
)


def register_all(registry: CommandRegistry) -> None:
    for command in ALL_COMMANDS:
        registry.register(command)
