"""Macro Manager - key recording and playback registers

RESPONSIBILITY:
- Record NORMAL-mode keys of one tab into a register
- Replay a register into a frame, one awaited key at a time
- Replay the last console command for the ":" register

DOES NOT:
- Persist registers across runs
- Decide which keys are NORMAL-mode keys (frames report them)

INVARIANT:
- At most one recording and one playback at a time
"""

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from messaging.exceptions import ChannelError

if TYPE_CHECKING:
    from .tab_coordinator import TabContext


class MacroManager:
    """Usage:
        macro.start("a", ctx)
        macro.record("j")
        macro.stop(notify=True)
        await macro.play("a", frame_id, ctx)
    """

    def __init__(self):
        self.register_map: Dict[str, List[str]] = {}
        self.last_console_command: Optional[str] = None
        self._record_register: Optional[str] = None
        self._record_keys: Optional[List[str]] = None
        self._record_ctx: Optional["TabContext"] = None
        self._playing = False
        self._previous_play_register: Optional[str] = None

    @property
    def recording(self) -> bool:
        return self._record_register is not None

    def is_recording(self, tab_id: int) -> bool:
        return self._record_ctx is not None and self._record_ctx.tab_id == tab_id

    # =========================================================================
    # RECORDING
    # =========================================================================

    def start(self, register: str, ctx: "TabContext") -> None:
        if self.recording:
            self.stop(notify=True)
        if register.isupper():
            register = register.lower()
            self._record_keys = list(self.register_map.get(register, []))
        else:
            self._record_keys = []
        self._record_register = register
        self._record_ctx = ctx
        ctx.broadcast({"command": "startMacro"})
        logging.info(f"Recording macro into register {register!r} (tab {ctx.tab_id})")

    def stop(self, notify: bool) -> None:
        if not self.recording:
            return
        self.register_map[self._record_register] = self._record_keys
        if notify and self._record_ctx is not None and not self._record_ctx.closed:
            self._record_ctx.broadcast({"command": "stopMacro"})
        logging.info(f"Recorded {len(self._record_keys)} keys into {self._record_register!r}")
        self._record_register = None
        self._record_keys = None
        self._record_ctx = None

    def record(self, key: str) -> None:
        if self._record_keys is None:
            logging.warning("Macro key received while not recording")
            return
        self._record_keys.append(key)

    def on_tab_closed(self, tab_id: int) -> None:
        if self.is_recording(tab_id):
            self.stop(notify=False)

    # =========================================================================
    # PLAYBACK
    # =========================================================================

    async def play(self, register: str, frame_id: int, ctx: "TabContext") -> None:
        if self._playing:
            logging.debug("Recursive macro playback refused")
            return
        if register == "@":
            if self._previous_play_register is None:
                return
            register = self._previous_play_register
        else:
            register = register.lower()
            self._previous_play_register = register

        if register == ":":
            if self.last_console_command:
                await ctx.execute_console_command(self.last_console_command)
            return

        keys = self.register_map.get(register)
        if not keys:
            return

        self._playing = True
        try:
            for key in keys:
                if ctx.closed:
                    break
                target = ctx.focused_frame_id if ctx.is_live_frame(ctx.focused_frame_id) else frame_id
                await ctx.request(target, {"command": "playMacroKey", "key": key})
        except ChannelError as e:
            # A rejected or evicted step ends playback.
            logging.warning(f"Macro playback of {register!r} stopped: {e}")
        finally:
            self._playing = False

    def registers(self) -> List[Tuple[str, List[str]]]:
        return sorted(self.register_map.items())
