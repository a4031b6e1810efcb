"""Frame Agent - the per-frame end of the coordinator protocol

RESPONSIBILITY:
- Interpret key tokens in the frame's current mode
- Run frame commands against the mode's target element
- Answer coordinator requests (hint collection, filter results, ...)
- Walk child frames through forwardFrameMessage for recursive requests

DOES NOT:
- Decide mode transitions for the tab (coordinator does)
- Keep hint session state beyond its own candidates

INVARIANT:
- A changeMode replaces the mode object, so no partial chord match
  survives a mode change
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from core.chord_mapper import KeyEvent, regulate_key
from core.keymap import build_tries, parse_command, resolve_hint_pattern
from core.modes import Mode
from commands.base import Invocation
from gui.status import NULL_EMITTER, StatusEmitter
from messaging.channel import STALE_POLICIES, Channel
from messaging.transport import Sender, Transport

from .document import FRAME_SELECTOR, Area, FrameDocument
from .frame_commands import frame_command_registry
from .frame_modes import FrameMode, HintMode, NormalMode, create_mode
from .frame_registry import FrameRegistry
from .hint_collector import SELF_SLOT, HintCollector
from .window import FrameWindow


class FrameAgent:
    """Keyboard driver for one frame.

    Usage:
        agent = FrameAgent(window, document, transport)
        await agent.wait_ready()
        agent.handle_key("j")
    """

    def __init__(
        self,
        window: FrameWindow,
        document: FrameDocument,
        transport: Transport,
        status: StatusEmitter = NULL_EMITTER,
        register_interval: float = 0.1,
    ):
        self.window = window
        self.document = document
        self.status = status
        self.channel = Channel(transport, name=f"window:{window.window_id}")
        self.registry = FrameRegistry(window, register_interval, confirm=self._confirm_child_frame)
        self.hints = HintCollector(document)
        self.commands = frame_command_registry()

        self.frame_id: Optional[int] = None
        self.tries: Dict[str, Any] = {}
        self.hint_pattern: Dict[str, Any] = {"global": {}, "local": {}}
        self.macro_recording = False
        self.last_message: Optional[str] = None
        self.mode: FrameMode = NormalMode(self)
        self._ready = asyncio.Event()

        self._request_handlers = {
            "collectHint": self._collect_hint,
            "getFilterResult": self._get_filter_result,
            "getTargetIndex": self._get_target_index,
            "collectFrameId": self._collect_frame_id,
            "playMacroKey": self._play_macro_key,
        }
        self._notification_handlers = {
            "initFrame": self._init_frame,
            "updateOptions": self._update_options,
            "changeMode": self._change_mode,
            "setHintLabel": self._set_hint_label,
            "focusHintLink": self._focus_hint_link,
            "blurHintLink": self._blur_hint_link,
            "applyFilter": self._apply_filter,
            "forwardHintCommand": self._forward_hint_command,
            "setOverlap": self._set_overlap,
            "showMessage": self._show_message,
            "focusFrame": self._focus_frame,
            "startMacro": self._start_macro,
            "stopMacro": self._stop_macro,
        }
        self.channel.on_request.add_listener(self._on_request)
        self.channel.on_notification.add_listener(self._on_notification)
        self.channel.on_disconnect.add_listener(self._on_disconnect)

    @property
    def is_top(self) -> bool:
        return self.window.is_top

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for initFrame from the coordinator."""
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # =========================================================================
    # KEYS AND COMMANDS
    # =========================================================================

    def handle_key(self, key: Union[str, KeyEvent]) -> bool:
        """Feed one key; True when it was handled and must not reach the page."""
        token = regulate_key(key) if isinstance(key, KeyEvent) else key
        if not token:
            return False
        return self.mode.handle_key(token)

    def invoke(self, value: str, count: int = 0, remember: bool = True) -> bool:
        """Run "name|args": locally for frame commands, else in the coordinator."""
        name, args = parse_command(value)
        if remember and name != "repeatLastCommand":
            self.notify({"command": "setLastCommand", "name": name, "args": args, "count": count})

        command = self.commands.get(name)
        if command is not None:
            return command.execute(self, Invocation(name, args, count, self.frame_id))
        self.run_background(name, args, count)
        return True

    def run_background(self, name: str, args: str = "", count: int = 0) -> None:
        self.notify({"command": "runCommand", "name": name, "args": args, "count": count})

    def request_mode(self, mode: Mode, data: Optional[Dict[str, Any]] = None) -> None:
        """Ask the coordinator to switch the whole tab to mode."""
        self.notify({"command": "changeMode", "mode": mode.value, "data": data or {}})

    # =========================================================================
    # MESSAGING
    # =========================================================================

    def notify(self, payload: Dict[str, Any]) -> None:
        self.channel.notify(payload)

    def request(self, payload: Dict[str, Any]) -> asyncio.Future:
        return self.channel.request(payload)

    def _confirm_child_frame(self, frame_id: int) -> asyncio.Future:
        return self.request({"command": "registerChild", "frameId": frame_id})

    def forward(self, frame_id: int, data: Dict[str, Any]) -> asyncio.Future:
        """Request data from another frame of this tab via the coordinator."""
        return self.request({"command": "forwardFrameMessage", "frameId": frame_id, "data": data})

    def spawn(self, coro, label: str) -> asyncio.Future:
        task = asyncio.ensure_future(coro)

        def _done(finished: asyncio.Future) -> None:
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logging.warning(f"Frame {self.frame_id}: {label} failed: {error}")
                self.show_message(f"{label} error ({error})")

        task.add_done_callback(_done)
        return task

    def show_message(self, message: str, duration: float = 3.0) -> None:
        if self.is_top:
            self._emit(message, duration)
        else:
            self.notify({"command": "showMessage", "message": message, "duration": duration})

    def _emit(self, message: str, duration: float) -> None:
        self.last_message = message
        self.status.emit(message, duration)

    def _on_request(self, payload: Any, sender: Optional[Sender]) -> Any:
        command = payload.get("command") if isinstance(payload, dict) else None
        handler = self._request_handlers.get(command)
        if handler is None:
            raise ValueError(f"Unknown request: {command}")
        return handler(payload)

    def _on_notification(self, payload: Any, sender: Optional[Sender]) -> Any:
        command = payload.get("command") if isinstance(payload, dict) else None
        handler = self._notification_handlers.get(command)
        if handler is None:
            logging.warning(f"Frame {self.frame_id}: unknown notification {command!r}")
            return None
        return handler(payload)

    def _on_disconnect(self, channel: Channel) -> None:
        logging.info(f"Frame {self.frame_id}: coordinator disconnected")
        self._set_mode(Mode.NORMAL, {})

    # =========================================================================
    # OPTIONS AND MODE
    # =========================================================================

    def _apply_options(self, payload: Dict[str, Any]) -> None:
        if "keyMapping" in payload:
            self.tries = build_tries(payload["keyMapping"] or {})
        if "hintPattern" in payload:
            self.hint_pattern = payload["hintPattern"] or {"global": {}, "local": {}}
        if "registerInterval" in payload:
            self.registry.interval = payload["registerInterval"]
        if "sweepInterval" in payload:
            self.channel.sweep_interval = payload["sweepInterval"]
        if payload.get("stalePolicy") in STALE_POLICIES:
            self.channel.stale_policy = payload["stalePolicy"]

    def _init_frame(self, payload: Dict[str, Any]) -> None:
        self.frame_id = payload["frameId"]
        self._apply_options(payload)
        try:
            mode = Mode.parse(payload.get("mode"))
        except ValueError as e:
            logging.warning(f"Frame {self.frame_id}: {e}")
            mode = Mode.NORMAL
        self._set_mode(mode, {})
        self.registry.start(self.frame_id)
        self._ready.set()
        logging.debug(f"Frame {self.frame_id} initialised in {mode.value}")

    def _update_options(self, payload: Dict[str, Any]) -> None:
        self._apply_options(payload)
        self.mode.reload()

    def _change_mode(self, payload: Dict[str, Any]) -> None:
        try:
            mode = Mode.parse(payload.get("mode"))
        except ValueError as e:
            logging.warning(f"Frame {self.frame_id}: {e}")
            return
        self._set_mode(mode, payload.get("data") or {})

    def _set_mode(self, mode: Mode, data: Dict[str, Any]) -> None:
        self.mode.exit(mode)
        self.mode = create_mode(mode, self)
        self.mode.enter(data)

    # =========================================================================
    # HINTS
    # =========================================================================

    def _in_hint_mode(self, command: str) -> bool:
        if isinstance(self.mode, HintMode):
            return True
        logging.debug(f"Frame {self.frame_id}: {command} outside hint mode dropped")
        return False

    async def _collect_hint(self, payload: Dict[str, Any]) -> List[int]:
        hint_type = payload.get("type", "link")
        pattern = payload["pattern"]
        local_pattern = pattern
        if pattern == (self.hint_pattern.get("global") or {}).get(hint_type):
            local_pattern = resolve_hint_pattern(self.hint_pattern, hint_type, self.document.host) or pattern

        slots = self.hints.collect(
            hint_type, local_pattern, Area.from_dict(payload.get("area")), self.registry
        )

        # Issue every child request before awaiting any of them.
        child_requests = [
            self.forward(slot.frame_id, {
                "command": "collectHint",
                "type": hint_type,
                "pattern": pattern,
                "area": slot.area.to_dict() if slot.area is not None else None,
            })
            for slot in slots if slot is not SELF_SLOT
        ]
        child_results = iter(await asyncio.gather(*child_requests, return_exceptions=True))

        id_list: List[int] = []
        for slot in slots:
            if slot is SELF_SLOT:
                id_list.append(self.frame_id)
                continue
            result = next(child_results)
            if isinstance(result, BaseException):
                logging.warning(f"Frame {self.frame_id}: collectHint in frame {slot.frame_id} failed: {result}")
                continue
            id_list.extend(result)
        return id_list

    def _get_filter_result(self, payload: Dict[str, Any]) -> List[List[Any]]:
        return [
            [global_index, matched]
            for global_index, matched in self.hints.filter_results(payload.get("filter", ""))
        ]

    def _get_target_index(self, payload: Dict[str, Any]) -> Optional[int]:
        return self.hints.target_index()

    def _set_hint_label(self, payload: Dict[str, Any]) -> None:
        if self._in_hint_mode("setHintLabel"):
            self.hints.set_labels(payload.get("globalIndices") or [], payload.get("labels") or [])

    def _focus_hint_link(self, payload: Dict[str, Any]) -> None:
        if not self._in_hint_mode("focusHintLink"):
            return
        local_index = payload.get("localIndex")
        if local_index is None:
            local_index = self.hints.local_index_of(payload.get("globalIndex"))
        if local_index is None:
            logging.warning(f"Frame {self.frame_id}: no hint with global index {payload.get('globalIndex')}")
            return
        self.hints.focus(local_index, bool(payload.get("autoFocus")))

    def _blur_hint_link(self, payload: Dict[str, Any]) -> None:
        if self._in_hint_mode("blurHintLink"):
            self.hints.blur()

    def _apply_filter(self, payload: Dict[str, Any]) -> None:
        if self._in_hint_mode("applyFilter"):
            self.hints.apply_filter(payload.get("filter", ""))

    def _forward_hint_command(self, payload: Dict[str, Any]) -> None:
        if self._in_hint_mode("forwardHintCommand"):
            self.invoke(payload["name"], payload.get("count", 0), remember=False)

    def _set_overlap(self, payload: Dict[str, Any]) -> None:
        self.hints.overlap = bool(payload.get("overlap"))

    # =========================================================================
    # FRAMES, MESSAGES, MACROS
    # =========================================================================

    async def _collect_frame_id(self, payload: Dict[str, Any]) -> List[int]:
        """This frame's id, then every descendant's, depth first in document order."""
        child_requests = []
        for element in self.document.query(FRAME_SELECTOR):
            child_id = self.registry.child_frame_id(self.document.content_window_id(element))
            if child_id is not None:
                child_requests.append(self.forward(child_id, {"command": "collectFrameId"}))

        frame_ids = [self.frame_id]
        for result in await asyncio.gather(*child_requests, return_exceptions=True):
            if isinstance(result, BaseException):
                logging.warning(f"Frame {self.frame_id}: collectFrameId failed: {result}")
                continue
            frame_ids.extend(result)
        return frame_ids

    def _focus_frame(self, payload: Dict[str, Any]) -> None:
        self.document.has_focus = True
        if self.document.active_element is None:
            body = self.document.soup.find("body")
            if body is not None:
                self.document.focus(body)

    def _show_message(self, payload: Dict[str, Any]) -> None:
        message = payload.get("message", "")
        duration = payload.get("duration", 3.0)
        if self.is_top:
            self._emit(message, duration)
        else:
            self.notify({"command": "showMessage", "message": message, "duration": duration})

    def _play_macro_key(self, payload: Dict[str, Any]) -> bool:
        return self.handle_key(payload["key"])

    def _start_macro(self, payload: Dict[str, Any]) -> None:
        self.macro_recording = True

    def _stop_macro(self, payload: Dict[str, Any]) -> None:
        self.macro_recording = False

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def reset(self) -> None:
        """Unregister from the parent and drop the coordinator connection."""
        self.mode.exit()
        self.hints.forget()
        self.registry.reset()
        self.channel.on_request.remove_listener(self._on_request)
        self.channel.on_notification.remove_listener(self._on_notification)
        self.channel.on_disconnect.remove_listener(self._on_disconnect)
        self.channel.disconnect()
