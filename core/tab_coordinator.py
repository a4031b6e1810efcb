"""Tab Coordinator - explicit per-tab state passed to every handler

RESPONSIBILITY:
- Own the tab's frameId -> Channel records
- Hold exactly one interaction mode and its session
- Fan mode changes out to every frame
- Route background/hint/console commands to their executors

DOES NOT:
- Create or accept connections (CoordinatorHub's job)
- Touch frame documents (frames do)

INVARIANT:
- Every mode change replaces the previous session and bumps generation
- A request to a frame without a live record fails immediately
"""

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set, Tuple

from commands.base import Invocation
from messaging.channel import MAX_TRANSACTION_ID, Channel
from messaging.exceptions import DisconnectedError

from .console_session import ConsoleSession
from .hint_session import HintSession
from .keymap import parse_command, resolve_hint_pattern
from .modes import Mode

if TYPE_CHECKING:
    from host.base import TabState
    from .coordinator_hub import CoordinatorHub


TOP_FRAME_ID = 0


class TabContext:
    """Coordinator state for one tab.

    Usage:
        ctx = hub.tabs[tab_id]
        ctx.change_mode(Mode.VISUAL)
        reply = await ctx.request(0, {"command": "collectFrameId"})
    """

    def __init__(self, tab_id: int, hub: "CoordinatorHub"):
        self.tab_id = tab_id
        self.hub = hub
        self.frames: Dict[int, Channel] = {}
        self.mode = Mode.NORMAL
        self.hint_session: Optional[HintSession] = None
        self.console_session: Optional[ConsoleSession] = None
        self.last_command: Optional[Tuple[str, str, int]] = None
        self.focused_frame_id = TOP_FRAME_ID
        self.closed = False
        self.generation = 0
        self._last_frame_id = TOP_FRAME_ID
        self._tasks: Set[asyncio.Future] = set()

    # =========================================================================
    # FRAME RECORDS
    # =========================================================================

    def allocate_frame_id(self, is_top: bool) -> int:
        if is_top:
            return TOP_FRAME_ID
        candidate = self._last_frame_id
        while True:
            candidate = candidate + 1 if candidate < MAX_TRANSACTION_ID else 1
            if candidate not in self.frames:
                self._last_frame_id = candidate
                return candidate

    def set_frame(self, frame_id: int, channel: Channel) -> None:
        previous = self.frames.get(frame_id)
        if previous is not None and previous is not channel:
            logging.info(f"Tab {self.tab_id}: frame {frame_id} replaced by a new connection")
        self.frames[frame_id] = channel

    def remove_frame(self, frame_id: int, channel: Channel) -> bool:
        """Drop the record if it still holds this channel."""
        if self.frames.get(frame_id) is not channel:
            return False
        del self.frames[frame_id]
        if self.focused_frame_id == frame_id:
            self.focused_frame_id = TOP_FRAME_ID
        return True

    def is_live_frame(self, frame_id: Optional[int]) -> bool:
        channel = self.frames.get(frame_id)
        return channel is not None and not channel.closed

    def frame_ids(self) -> List[int]:
        return sorted(self.frames)

    # =========================================================================
    # MESSAGING
    # =========================================================================

    def post(self, frame_id: int, payload: Dict[str, Any]) -> None:
        channel = self.frames.get(frame_id)
        if channel is None:
            logging.debug(f"Tab {self.tab_id}: no frame {frame_id}, {payload.get('command')} dropped")
            return
        channel.notify(payload)

    def request(self, frame_id: int, payload: Dict[str, Any]) -> asyncio.Future:
        channel = self.frames.get(frame_id)
        if channel is None:
            logging.warning(f"Tab {self.tab_id}: {payload.get('command')} to disconnected frame {frame_id}")
            future = asyncio.get_running_loop().create_future()
            future.set_exception(DisconnectedError(f"frame {frame_id} is not connected", frame_id))
            return future
        return channel.request(payload)

    def broadcast(self, payload: Dict[str, Any], frame_ids: Optional[Iterable[int]] = None) -> None:
        for frame_id in (frame_ids if frame_ids is not None else list(self.frames)):
            self.post(frame_id, payload)

    def show_message(self, message: str, duration: float = 3.0) -> None:
        logging.info(f"Tab {self.tab_id}: {message}")
        self.post(TOP_FRAME_ID, {"command": "showMessage", "message": message, "duration": duration})

    def spawn(self, coro, label: str) -> asyncio.Future:
        """Run a coroutine; failures become a status line."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _done(finished: asyncio.Future) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logging.warning(f"Tab {self.tab_id}: {label} failed: {error}")
                if not self.closed:
                    self.show_message(f"{label} error ({error})")

        task.add_done_callback(_done)
        return task

    # =========================================================================
    # MODES
    # =========================================================================

    def change_mode(
        self,
        mode: Mode,
        target_frame_id: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
        per_frame_data: Optional[Dict[int, Dict[str, Any]]] = None,
        session: Any = None,
    ) -> None:
        """Switch every frame of the tab to mode.

        data goes to target_frame_id only; per_frame_data[frameId] is
        merged into each frame's payload.
        """
        old_hint, old_console = self.hint_session, self.console_session
        self.hint_session = session if mode is Mode.HINT else None
        self.console_session = session if mode is Mode.CONSOLE else None
        if old_hint is not None and old_hint is not self.hint_session:
            old_hint.close()
        if old_console is not None and old_console is not self.console_session:
            old_console.close()

        self.mode = mode
        self.generation += 1
        for frame_id in list(self.frames):
            frame_data: Dict[str, Any] = {}
            if per_frame_data and frame_id in per_frame_data:
                frame_data.update(per_frame_data[frame_id])
            if data and frame_id == target_frame_id:
                frame_data.update(data)
            self.post(frame_id, {"command": "changeMode", "mode": mode.value, "data": frame_data})
        logging.debug(f"Tab {self.tab_id}: mode {mode.value} (generation {self.generation})")

    def start_hint(self, hint_type: str, pattern: Optional[str] = None) -> Optional[HintSession]:
        if pattern is None:
            pattern = resolve_hint_pattern(self.hub.hint_pattern, hint_type)
        if not pattern:
            self.show_message(f"{hint_type} is unknown")
            return None
        options = self.hub.options
        session = HintSession(
            self,
            hint_type,
            pattern,
            self.hub.tries.get("hint"),
            auto_focus=options.auto_focus,
            overlap=options.overlap_hint_labels,
        )
        self.spawn(session.start(), "toHintMode")
        return session

    def start_console(self, default_input: str = "", frame_id: Optional[int] = None) -> ConsoleSession:
        session = ConsoleSession(self, self.hub.tries.get("console"), default_input)
        self.change_mode(
            Mode.CONSOLE,
            target_frame_id=frame_id,
            data={"input": default_input},
            session=session,
        )
        return session

    async def execute_console_command(self, line: str) -> bool:
        ok, result = await self.hub.ex_commands.execute(line, self)
        if not ok:
            self.show_message(str(result))
        elif isinstance(result, list):
            self.show_message(", ".join(": ".join(map(str, entry)) for entry in result) or "(empty)")
        elif result is not None:
            self.show_message(str(result))
        return ok

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def run_command(self, value: str, frame_id: Optional[int] = None, count: int = 0) -> None:
        """Run "name|args" in the scope its command declares."""
        name, args = parse_command(value)
        command = self.hub.registry.get(name)
        if command is None:
            # Frame commands mapped in hint mode run in the focused hint's frame.
            if self.hint_session is not None and self.hub.is_frame_command(name):
                self.hint_session.invoke_command(value, count)
                return
            logging.warning(f"Tab {self.tab_id}: unknown command {name!r}")
            self.show_message(f"{name} is unknown")
            return

        if command.scope == "hint" and self.hint_session is None:
            logging.debug(f"Tab {self.tab_id}: {name} outside hint mode dropped")
            return
        if command.scope == "console" and self.console_session is None:
            logging.debug(f"Tab {self.tab_id}: {name} outside console mode dropped")
            return

        try:
            result = command.execute(self, Invocation(name, args, count, frame_id))
        except Exception as e:
            logging.warning(f"Tab {self.tab_id}: {name} failed: {e}")
            self.show_message(f"{name} error ({e})")
            return
        if inspect.isawaitable(result):
            self.spawn(result, name)

    async def host_tab(self) -> Optional["TabState"]:
        """This tab as the host reports it."""
        for tab in await self.hub.require_host().list_tabs():
            if tab.tab_id == self.tab_id:
                return tab
        return None

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def reset(self) -> None:
        """Tear down the tab. Remaining frame records are orphaned."""
        if self.closed:
            return
        self.closed = True
        for session in (self.hint_session, self.console_session):
            if session is not None:
                session.close()
        self.hint_session = None
        self.console_session = None
        for task in list(self._tasks):
            task.cancel()
        self.frames.clear()
        logging.info(f"Tab {self.tab_id}: torn down")
