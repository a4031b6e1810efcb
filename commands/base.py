"""Command base class - ALL commands must inherit from this

A command is what a key sequence resolves to. Where it runs is fixed by
its scope:
- "frame": inside the frame that received the key (FrameAgent)
- "background": in the tab's coordinator context (TabContext)
- "hint": against the tab's hint session
- "console": against the tab's console session
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


SCOPES = ("frame", "background", "hint", "console")

# Key mapping sections a command may appear in, by scope.
DEFAULT_MODES = {
    "frame": ("normal", "insert", "visual", "suspend", "hint"),
    "background": ("normal", "insert", "visual", "suspend"),
    "hint": ("hint",),
    "console": ("console",),
}


@dataclass(frozen=True)
class Invocation:
    """One resolved command call."""
    name: str
    args: str = ""
    count: int = 0
    frame_id: Optional[int] = None


class Command(ABC):
    """Base class for all commands

    Commands:
    - Have a unique name and a description
    - Declare the scope they execute in
    - Execute against the context object of that scope
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Command name (must be unique)"""
        raise NotImplementedError

    @property
    @abstractmethod
    def description(self) -> str:
        """One line shown in command listings"""
        raise NotImplementedError

    @property
    def scope(self) -> str:
        """Where the command runs. MUST be one of SCOPES."""
        return "background"

    @property
    def modes(self) -> Tuple[str, ...]:
        """Key mapping sections this command may be mapped in."""
        return DEFAULT_MODES[self.scope]

    @abstractmethod
    def execute(self, context: Any, invocation: Invocation) -> Any:
        """Run the command.

        Args:
            context: FrameAgent for "frame" scope, TabContext otherwise
            invocation: name, args, count and originating frame

        Returns:
            Frame commands return True when the key was handled.
            Other scopes may return an awaitable.
        """
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "scope": self.scope,
            "modes": list(self.modes),
        }
