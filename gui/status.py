"""Status line of a tab, shown by its top frame.

The coordinator decides what is shown (showMessage notifications) and the
top frame's agent is the only caller of emit(). A new line replaces the
previous one and stays visible for its duration. Child frames get
NULL_EMITTER.

Lines the user sees:
- "No hints are found"
- "No elements matched by {filter}"
- "{name} is ambiguous ({candidates})"
- "{name} is unknown"
- "{command} error ({reason})"
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional


# (message, seconds visible)
StatusCallback = Callable[[str, float], None]


@dataclass
class StatusEmitter:
    """Current status line plus an optional display callback."""
    callback: Optional[StatusCallback] = None
    clock: Callable[[], float] = time.monotonic
    message: Optional[str] = field(default=None, init=False)
    expires_at: float = field(default=0.0, init=False)

    def emit(self, message: str, duration: float = 3.0) -> None:
        self.message = message
        self.expires_at = self.clock() + max(duration, 0.0)
        logging.debug(f"Status: {message} ({duration}s)")
        if self.callback is not None:
            self.callback(message, duration)

    def visible(self) -> Optional[str]:
        """The line still on screen, or None once it expired."""
        if self.message is None or self.clock() >= self.expires_at:
            return None
        return self.message

    def clear(self) -> None:
        self.message = None
        self.expires_at = 0.0


class _NullEmitter(StatusEmitter):
    """Shared by every frame without a status line; keeps nothing."""

    def emit(self, message: str, duration: float = 3.0) -> None:
        return None


NULL_EMITTER = _NullEmitter()
