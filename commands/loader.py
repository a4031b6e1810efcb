"""Command loader - registers every coordinator-side command"""

import logging
from typing import Optional

from .mode_commands import mode_commands
from .registry import CommandRegistry, get_registry
from .session_commands import console_commands, hint_commands
from .tab_commands import tab_commands


def load_all_commands(registry: Optional[CommandRegistry] = None) -> CommandRegistry:
    """Register background, hint and console commands.

    Frame commands live with the frames (frames.frame_commands).
    """
    if registry is None:
        registry = get_registry()
    for command in mode_commands() + tab_commands() + hint_commands() + console_commands():
        if registry.has(command.name):
            continue
        registry.register(command)
    logging.info(f"Loaded {len(registry.names())} commands")
    return registry
