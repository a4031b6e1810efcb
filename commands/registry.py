"""Command Registry - central registry for all commands

This is the deterministic router from command names to handlers. Key
mappings are validated against catalog() at configuration load.
"""

import logging
from typing import Dict, List, Optional, Set

from .base import SCOPES, Command


class CommandRegistry:
    """Central registry for commands"""

    def __init__(self):
        self._commands: Dict[str, Command] = {}

    def register(self, command: Command):
        """Register a command"""
        if not isinstance(command, Command):
            raise TypeError("Command must inherit from Command base class")

        if command.name in self._commands:
            raise ValueError(f"Command '{command.name}' is already registered")

        if command.scope not in SCOPES:
            raise ValueError(f"Command '{command.name}' has unknown scope '{command.scope}'")

        self._commands[command.name] = command

    def get(self, name: str) -> Optional[Command]:
        """Get a command by name"""
        return self._commands.get(name)

    def has(self, name: str) -> bool:
        """Check if command exists"""
        return name in self._commands

    def names(self, scope: Optional[str] = None) -> List[str]:
        return sorted(
            name for name, command in self._commands.items()
            if scope is None or command.scope == scope
        )

    def list_all(self) -> Dict[str, Dict[str, object]]:
        """List all registered commands with metadata"""
        return {
            name: command.to_dict()
            for name, command in self._commands.items()
        }

    def catalog(self) -> Dict[str, Set[str]]:
        """Key mapping section -> command names allowed in it."""
        catalog: Dict[str, Set[str]] = {}
        for name, command in self._commands.items():
            for mode in command.modes:
                catalog.setdefault(mode, set()).add(name)
        logging.debug(f"Command catalog: { {mode: len(names) for mode, names in catalog.items()} }")
        return catalog


# Global registry instance
_registry: Optional[CommandRegistry] = None


def get_registry() -> CommandRegistry:
    """Get global command registry"""
    global _registry
    if _registry is None:
        _registry = CommandRegistry()
    return _registry
