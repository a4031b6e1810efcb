"""Frame Registry - parent/child discovery inside one page

Each frame announces its frameId to its parent window until the parent
acknowledges. The parent keeps child window id -> frameId, which is what
recursive hint collection and full-tree messaging walk.

RESPONSIBILITY:
- Announce this frame to its parent (repeat until acked)
- Accept announcements from DIRECT child windows only
- Record a child once the coordinator confirms its frameId
- Forget children on unregister or when their window closed

DOES NOT:
- Talk to the coordinator except through the confirm callback
- Assign frameIds (the coordinator does)

INVARIANT:
- A mapping entry only exists for a window that was a direct child
  when it announced itself
  and whose frameId the coordinator confirmed
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from messaging.exceptions import ChannelError

from .window import FrameWindow


REGISTER_CHILD = "registerChild"
COMPLETE_REGISTER_CHILD = "completeRegisterChild"
UNREGISTER_CHILD = "unregisterChild"


class FrameRegistry:
    """Registration state of one frame (as a child and as a parent)."""

    def __init__(
        self,
        window: FrameWindow,
        interval: float = 0.1,
        confirm: Optional[Callable[[int], Awaitable[Any]]] = None,
    ):
        self.window = window
        self.interval = interval
        self._confirm = confirm
        self._confirming: Dict[int, asyncio.Future] = {}
        self.frame_id: Optional[int] = None
        self.parent_frame_id: Optional[int] = None
        self._children: Dict[int, int] = {}
        self._registered = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        window.on_message.add_listener(self._on_window_message)

    @property
    def registered(self) -> bool:
        return self._registered.is_set()

    def start(self, frame_id: int) -> None:
        """Begin announcing frame_id to the parent window."""
        self.frame_id = frame_id
        if self.window.is_top:
            self._registered.set()
            return
        if self._task is None:
            self._task = asyncio.ensure_future(self._announce())

    async def wait_registered(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._registered.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _announce(self) -> None:
        while not self._registered.is_set():
            parent = self.window.parent
            if parent is None or parent.closed:
                logging.debug(f"Frame {self.frame_id}: parent window gone, registration stopped")
                return
            parent.post_message(
                {"command": REGISTER_CHILD, "frameId": self.frame_id},
                self.window.window_id,
            )
            try:
                await asyncio.wait_for(self._registered.wait(), self.interval)
            except asyncio.TimeoutError:
                continue

    # =========================================================================
    # CHILD LOOKUP
    # =========================================================================

    def child_frame_id(self, window_id: Optional[int]) -> Optional[int]:
        """frameId announced by a child window, if it is still open."""
        if window_id is None:
            return None
        frame_id = self._children.get(window_id)
        if frame_id is None:
            return None
        child = self.window.arena.resolve(window_id)
        if child is None or child.closed:
            del self._children[window_id]
            return None
        return frame_id

    @property
    def children(self) -> Dict[int, int]:
        return dict(self._children)

    # =========================================================================
    # WINDOW MESSAGES
    # =========================================================================

    def _on_window_message(self, data: Any, source_id: Optional[int]) -> None:
        if not isinstance(data, dict):
            return
        command = data.get("command")
        if command == REGISTER_CHILD:
            self._register_child(source_id, data.get("frameId"))
        elif command == COMPLETE_REGISTER_CHILD:
            if source_id is not None and source_id == self.window.parent_id:
                self.parent_frame_id = data.get("frameId")
                self._registered.set()
        elif command == UNREGISTER_CHILD:
            if source_id in self._children and self._children[source_id] == data.get("frameId"):
                del self._children[source_id]

    def _register_child(self, source_id: Optional[int], frame_id: Any) -> None:
        if not isinstance(frame_id, int) or source_id is None:
            logging.warning(f"Frame {self.frame_id}: malformed registerChild dropped")
            return
        if not self.window.is_direct_child(source_id):
            logging.warning(f"Frame {self.frame_id}: registerChild from non-child window {source_id}")
            return
        if self._confirm is None:
            self._record_child(source_id, frame_id)
            return
        if source_id in self._confirming:
            return
        self._confirming[source_id] = asyncio.ensure_future(self._confirm_child(source_id, frame_id))

    async def _confirm_child(self, source_id: int, frame_id: int) -> None:
        try:
            confirmed = await self._confirm(frame_id)
        except ChannelError as e:
            logging.warning(f"Frame {self.frame_id}: registerChild {frame_id} not confirmed: {e}")
            return
        finally:
            self._confirming.pop(source_id, None)
        if confirmed is not True:
            logging.warning(f"Frame {self.frame_id}: coordinator refused child frame {frame_id}")
            return
        self._record_child(source_id, frame_id)

    def _record_child(self, source_id: int, frame_id: int) -> None:
        child = self.window.arena.resolve(source_id)
        if child is None or child.closed:
            return
        self._children[source_id] = frame_id
        child.post_message(
            {"command": COMPLETE_REGISTER_CHILD, "frameId": self.frame_id},
            self.window.window_id,
        )

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def reset(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        for task in list(self._confirming.values()):
            task.cancel()
        self._confirming.clear()
        parent = self.window.parent
        if parent is not None and not parent.closed and self.frame_id is not None:
            parent.post_message(
                {"command": UNREGISTER_CHILD, "frameId": self.frame_id},
                self.window.window_id,
            )
        self.window.on_message.remove_listener(self._on_window_message)
        self._children.clear()
