"""Frame modes - how one frame interprets key tokens

NORMAL, INSERT, VISUAL and SUSPEND match tokens against their own chord
trie and run commands locally. HINT and CONSOLE forward every token to
the coordinator, which owns the session state.

A mode object lives from one changeMode to the next; replacing it is
what resets any partial chord match.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from bs4 import Tag

from core.chord_mapper import ChordMapper, ChordNode
from core.modes import Mode

if TYPE_CHECKING:
    from .frame_agent import FrameAgent


class FrameMode:
    """Base frame mode. Handles nothing."""

    mode = Mode.NORMAL

    def __init__(self, agent: "FrameAgent"):
        self.agent = agent

    def enter(self, data: Dict[str, Any]) -> None:
        pass

    def exit(self, next_mode: Optional[Mode] = None) -> None:
        pass

    def reload(self) -> None:
        """Pick up a new key mapping."""

    def handle_key(self, token: str) -> bool:
        return False

    def target(self) -> Optional[Tag]:
        document = self.agent.document
        if document.active_element is not None:
            return document.active_element
        return document.soup.find("body")


class MappedMode(FrameMode):
    """Mode driven by a chord trie from the key mapping."""

    def __init__(self, agent: "FrameAgent"):
        super().__init__(agent)
        self.mapper = ChordMapper(self._trie())

    def _trie(self) -> ChordNode:
        trie = self.agent.tries.get(self.mode.keymap_name)
        return trie if trie is not None else ChordNode()

    def reload(self) -> None:
        self.mapper = ChordMapper(self._trie())

    def take_count(self) -> int:
        return 0

    def handle_key(self, token: str) -> bool:
        result = self.mapper.feed(token)
        if result.optional_command is not None:
            self.agent.invoke(result.optional_command, self.take_count())
        if result.command is not None:
            return self.agent.invoke(result.command, self.take_count())
        if result.consumed:
            return True
        return self.unmatched(token)

    def unmatched(self, token: str) -> bool:
        return False


class NormalMode(MappedMode):
    """Chord commands with a numeric count prefix and macro registers."""

    mode = Mode.NORMAL

    def __init__(self, agent: "FrameAgent"):
        super().__init__(agent)
        self.count = "0"
        self.pending_register: Optional[str] = None

    def enter(self, data: Dict[str, Any]) -> None:
        # Keys the coordinator could not use in its own mode are replayed here.
        for token in data.get("keys") or []:
            self.handle_key(token)

    def take_count(self) -> int:
        count = int(self.count)
        self.count = "0"
        return count

    def await_register(self, action: str) -> None:
        """The next key names the register for startMacro or playMacro."""
        self.pending_register = action
        self.mapper.reset()

    def handle_key(self, token: str) -> bool:
        was_recording = self.agent.macro_recording
        if self.pending_register is not None:
            handled = self._take_register(token)
        else:
            handled = super().handle_key(token)
        if was_recording and self.agent.macro_recording:
            self.agent.notify({"command": "recordMacroKey", "key": token})
        return handled

    def _take_register(self, token: str) -> bool:
        action, self.pending_register = self.pending_register, None
        if len(token) != 1:
            logging.debug(f"Frame {self.agent.frame_id}: {token} is not a register name")
            return True
        self.agent.notify({
            "command": action,
            "register": token,
            "frameId": self.agent.frame_id,
        })
        return True

    def unmatched(self, token: str) -> bool:
        if len(token) == 1 and "0" <= token <= "9":
            self.count += token
            return True
        self.count = "0"
        return False


class InsertMode(MappedMode):
    """Literal input; only mapped chords are taken."""

    mode = Mode.INSERT


class VisualMode(MappedMode):
    mode = Mode.VISUAL


class SuspendMode(MappedMode):
    """Everything passes through except the suspend map."""

    mode = Mode.SUSPEND


class ForwardingMode(FrameMode):
    """Send every token to the coordinator's session."""

    forward_command = ""

    def handle_key(self, token: str) -> bool:
        self.agent.notify({"command": self.forward_command, "key": token})
        return True


class HintMode(ForwardingMode):
    mode = Mode.HINT
    forward_command = "hintKey"

    def enter(self, data: Dict[str, Any]) -> None:
        hints = self.agent.hints
        hints.overlap = bool(data.get("overlap", hints.overlap))
        if "globalIndices" in data:
            hints.set_labels(data["globalIndices"], data.get("labels") or [])
        focus_index = data.get("focusIndex")
        if focus_index is not None:
            hints.focus(focus_index, bool(data.get("autoFocus")))

    def exit(self, next_mode: Optional[Mode] = None) -> None:
        # Re-entering HINT (reconstruction) keeps the fresh candidates.
        if next_mode is not Mode.HINT:
            self.agent.hints.forget()

    def target(self) -> Optional[Tag]:
        return self.agent.hints.target()


class ConsoleMode(ForwardingMode):
    mode = Mode.CONSOLE
    forward_command = "consoleKey"


MODE_CLASSES = {
    Mode.NORMAL: NormalMode,
    Mode.INSERT: InsertMode,
    Mode.VISUAL: VisualMode,
    Mode.SUSPEND: SuspendMode,
    Mode.HINT: HintMode,
    Mode.CONSOLE: ConsoleMode,
}


def create_mode(mode: Mode, agent: "FrameAgent") -> FrameMode:
    return MODE_CLASSES[mode](agent)
