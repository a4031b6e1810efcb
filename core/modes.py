"""Interaction modes shared by the coordinator and every frame."""

from enum import Enum
from typing import Optional


class Mode(str, Enum):
    NORMAL = "NORMAL"
    INSERT = "INSERT"
    VISUAL = "VISUAL"
    HINT = "HINT"
    CONSOLE = "CONSOLE"
    SUSPEND = "SUSPEND"

    @property
    def keymap_name(self) -> str:
        """Section of the key mapping table that drives this mode."""
        return self.value.lower()

    @classmethod
    def parse(cls, value: Optional[str]) -> "Mode":
        """Mode from its wire name. "default" is an alias of NORMAL."""
        if value is None or value.lower() == "default":
            return cls.NORMAL
        try:
            return cls(value.upper())
        except ValueError:
            raise ValueError(f"Unknown mode: {value}")
