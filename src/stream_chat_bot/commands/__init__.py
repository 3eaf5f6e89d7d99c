from .command_parser import CommandParser, ParsedCommand, VfxCommand
from .cooldown_service import CommandCooldownService
from .global_cooldown import GlobalCommandCooldownManager

__all__ = [
    "CommandParser",
    "ParsedCommand",
    "VfxCommand",
    "CommandCooldownService",
    "GlobalCommandCooldownManager",
]
