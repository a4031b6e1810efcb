"""Frame windows and the window arena

Windows are addressed by integer ids only. Nothing outside this module
holds a window object to identify a window; lookups go through the
arena.

RESPONSIBILITY:
- Allocate window ids
- Keep the window tree (parent / children)
- Deliver window-level messages asynchronously

DOES NOT:
- Know about frameIds (FrameRegistry maps window ids to frameIds)
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from messaging.transport import ListenerList


MAX_WINDOW_ID = 2 ** 53 - 1


class WindowArena:
    """Owns every live window of one process."""

    def __init__(self):
        self._windows: Dict[int, "FrameWindow"] = {}
        self._last_id = 0

    def allocate(self, window: "FrameWindow") -> int:
        candidate = self._last_id
        while True:
            candidate = candidate + 1 if candidate < MAX_WINDOW_ID else 1
            if candidate not in self._windows:
                break
        self._last_id = candidate
        self._windows[candidate] = window
        return candidate

    def resolve(self, window_id: Optional[int]) -> Optional["FrameWindow"]:
        if window_id is None:
            return None
        return self._windows.get(window_id)

    def release(self, window_id: int) -> None:
        self._windows.pop(window_id, None)

    def __len__(self) -> int:
        return len(self._windows)


class FrameWindow:
    """One browsing context in a page.

    Listeners on on_message receive (data, source_window_id).
    """

    def __init__(self, arena: WindowArena, parent: Optional["FrameWindow"] = None):
        self.arena = arena
        self.parent_id: Optional[int] = parent.window_id if parent is not None else None
        self.child_ids: List[int] = []
        self.on_message = ListenerList()
        self.closed = False
        self.window_id = arena.allocate(self)
        if parent is not None:
            parent.child_ids.append(self.window_id)

    @property
    def parent(self) -> Optional["FrameWindow"]:
        return self.arena.resolve(self.parent_id)

    @property
    def is_top(self) -> bool:
        return self.parent_id is None

    def is_direct_child(self, window_id: int) -> bool:
        child = self.arena.resolve(window_id)
        return child is not None and not child.closed and window_id in self.child_ids

    def post_message(self, data: Any, source_id: Optional[int]) -> None:
        """Queue a message for this window's listeners."""
        if self.closed:
            logging.debug(f"Window {self.window_id} is closed, message dropped")
            return
        asyncio.get_running_loop().call_soon(self._deliver, data, source_id)

    def _deliver(self, data: Any, source_id: Optional[int]) -> None:
        if self.closed:
            return
        for listener in self.on_message:
            try:
                listener(data, source_id)
            except Exception as e:
                logging.warning(f"Window {self.window_id} listener failed: {e}")

    def close(self) -> None:
        """Close this window and every descendant."""
        if self.closed:
            return
        for child_id in list(self.child_ids):
            child = self.arena.resolve(child_id)
            if child is not None:
                child.close()
        self.closed = True
        parent = self.parent
        if parent is not None and self.window_id in parent.child_ids:
            parent.child_ids.remove(self.window_id)
        self.on_message.clear()
        self.arena.release(self.window_id)
