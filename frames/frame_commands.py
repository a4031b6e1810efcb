"""Frame commands - run inside the frame that received the key

Every command acts on the current mode's target element: the focused
hint in hint mode, the active element otherwise.

Count semantics for mouse and key commands follow modifier bits:
1 = Ctrl, 2 = Shift, 4 = Alt, 8 = Meta.
"""

import logging
from typing import TYPE_CHECKING, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import Tag

from commands.base import Command, Invocation
from commands.registry import CommandRegistry
from core.modes import Mode

if TYPE_CHECKING:
    from .frame_agent import FrameAgent


def modifiers_from_count(count: int) -> Dict[str, bool]:
    return {
        "ctrl": bool(count & 1),
        "shift": bool(count & 2),
        "alt": bool(count & 4),
        "meta": bool(count & 8),
    }


def link_url(agent: "FrameAgent", element: Optional[Tag]) -> Optional[str]:
    """Absolute href of a link element, or None."""
    if element is None or element.name not in ("a", "area"):
        return None
    href = element.get("href")
    if not href:
        return None
    return urljoin(agent.document.url, href)


class FrameCommand(Command):
    """Base for commands executed by a FrameAgent."""

    @property
    def scope(self) -> str:
        return "frame"

    def target(self, agent: "FrameAgent") -> Optional[Tag]:
        element = agent.mode.target()
        if element is None:
            logging.debug(f"{self.name}: no target element")
        return element


# =========================================================================
# FOCUS
# =========================================================================

class FocusIn(FrameCommand):
    """Focus the target; the fixed variant keeps the scroll position."""

    def __init__(self, name: str = "focusin", prevent_scroll: bool = False):
        self._name = name
        self._prevent_scroll = prevent_scroll

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        if self._prevent_scroll:
            return "Focus the target element without scrolling"
        return "Focus the target element"

    def execute(self, agent, invocation: Invocation) -> bool:
        element = self.target(agent)
        if element is not None:
            agent.document.focus(element, preventScroll=self._prevent_scroll)
        return True


class FocusOut(FrameCommand):
    @property
    def name(self) -> str:
        return "focusout"

    @property
    def description(self) -> str:
        return "Blur the focused element"

    def execute(self, agent, invocation: Invocation) -> bool:
        agent.document.blur()
        return True


# =========================================================================
# MOUSE AND KEY EVENTS
# =========================================================================

class DispatchEvent(FrameCommand):
    """Fire one synthetic event at the target."""

    def __init__(self, name: str, event_type: str, description: str):
        self._name = name
        self._event_type = event_type
        self._description = description

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def execute(self, agent, invocation: Invocation) -> bool:
        element = self.target(agent)
        if element is None:
            return True
        detail = modifiers_from_count(invocation.count)
        if self._event_type == "keypress":
            detail["key"] = "Enter"
        agent.document.dispatch(element, self._event_type, **detail)
        return True


# =========================================================================
# LINKS
# =========================================================================

class OpenLink(FrameCommand):
    def __init__(self, name: str, new_tab: bool, smart: bool, description: str):
        self._name = name
        self._new_tab = new_tab
        self._smart = smart
        self._description = description

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def execute(self, agent, invocation: Invocation) -> bool:
        element = self.target(agent)
        url = link_url(agent, element)
        if url is None:
            if self._smart and element is not None:
                # Not a link: behave like a click (Ctrl-click for a new tab).
                count = 1 if self._new_tab else invocation.count
                agent.document.dispatch(element, "click", **modifiers_from_count(count))
            else:
                agent.show_message(f"{self.name}: target is not a link")
            return True
        agent.spawn(
            agent.request({"command": "openLink", "url": url, "newTab": self._new_tab}),
            self.name,
        )
        return True


# =========================================================================
# MODE CHANGES
# =========================================================================

class ToNormalMode(FrameCommand):
    @property
    def name(self) -> str:
        return "toNormalMode"

    @property
    def description(self) -> str:
        return "Return to normal mode"

    def execute(self, agent, invocation: Invocation) -> bool:
        agent.request_mode(Mode.NORMAL)
        return True


class ToInsertMode(FrameCommand):
    """Enter insert mode on the target, first or last editable element."""

    def __init__(self, name: str, position: Optional[str], description: str):
        self._name = name
        self._position = position
        self._description = description

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def execute(self, agent, invocation: Invocation) -> bool:
        if self._position is None:
            element = self.target(agent)
            if element is None or not agent.document.is_editable(element):
                agent.show_message("Target element is not editable")
                return True
        else:
            editable: List[Tag] = agent.document.editable_elements()
            if not editable:
                agent.show_message("No editable element")
                return True
            element = editable[0] if self._position == "first" else editable[-1]
        if agent.document.focus(element):
            agent.request_mode(Mode.INSERT, {"editable": True})
        return True


class ToVisualMode(FrameCommand):
    @property
    def name(self) -> str:
        return "toVisualMode"

    @property
    def description(self) -> str:
        return "Enter visual mode"

    def execute(self, agent, invocation: Invocation) -> bool:
        agent.request_mode(Mode.VISUAL)
        return True


class ToConsoleModeWithURL(FrameCommand):
    @property
    def name(self) -> str:
        return "toConsoleModeWithURL"

    @property
    def description(self) -> str:
        return "Open the console pre-filled with a command and this frame's URL"

    def execute(self, agent, invocation: Invocation) -> bool:
        prefix = f"{invocation.args} " if invocation.args else ""
        agent.run_background("toConsoleMode", prefix + agent.document.url)
        return True


# =========================================================================
# MACRO AND REPEAT
# =========================================================================

class RecordMacro(FrameCommand):
    @property
    def name(self) -> str:
        return "recordMacro"

    @property
    def description(self) -> str:
        return "Record keys into a register, or stop the active recording"

    @property
    def modes(self):
        return ("normal",)

    def execute(self, agent, invocation: Invocation) -> bool:
        if agent.mode.mode is not Mode.NORMAL:
            return False
        if agent.macro_recording:
            agent.macro_recording = False
            agent.notify({"command": "stopMacro"})
            return True
        agent.mode.await_register("startMacro")
        return True


class PlayMacro(FrameCommand):
    @property
    def name(self) -> str:
        return "playMacro"

    @property
    def description(self) -> str:
        return "Replay the key sequence of a specified register"

    @property
    def modes(self):
        return ("normal",)

    def execute(self, agent, invocation: Invocation) -> bool:
        if agent.mode.mode is not Mode.NORMAL:
            return False
        agent.mode.await_register("playMacro")
        return True


class RepeatLastCommand(FrameCommand):
    @property
    def name(self) -> str:
        return "repeatLastCommand"

    @property
    def description(self) -> str:
        return "Repeat the last command"

    def execute(self, agent, invocation: Invocation) -> bool:
        agent.spawn(self._repeat(agent, invocation.count), self.name)
        return True

    async def _repeat(self, agent, count: int) -> None:
        last = await agent.request({"command": "getLastCommand"})
        if not last:
            return
        name, args, last_count = last
        value = f"{name}|{args}" if args else name
        agent.invoke(value, count or last_count, remember=False)


class Ignore(FrameCommand):
    @property
    def name(self) -> str:
        return "ignore"

    @property
    def description(self) -> str:
        return "Pass the key through to the page"

    def execute(self, agent, invocation: Invocation) -> bool:
        return False


class Nop(FrameCommand):
    @property
    def name(self) -> str:
        return "nop"

    @property
    def description(self) -> str:
        return "Swallow the key and do nothing"

    def execute(self, agent, invocation: Invocation) -> bool:
        return True


def frame_commands() -> List[FrameCommand]:
    return [
        FocusIn(),
        FocusIn("fixedFocusin", prevent_scroll=True),
        FocusOut(),
        DispatchEvent("mouseclick", "click", "Click the target element"),
        DispatchEvent("mousedown", "mousedown", "Press a mouse button on the target element"),
        DispatchEvent("mouseup", "mouseup", "Release a mouse button on the target element"),
        DispatchEvent("pressEnter", "keypress", "Press Enter on the target element"),
        OpenLink("openLink", new_tab=False, smart=False, description="Open the target link"),
        OpenLink("openLinkInTab", new_tab=True, smart=False, description="Open the target link in a new tab"),
        OpenLink("smartOpen", new_tab=False, smart=True, description="Open the link, or click the element"),
        OpenLink("smartOpenInTab", new_tab=True, smart=True, description="Open the link in a new tab, or Ctrl-click"),
        ToNormalMode(),
        ToInsertMode("toInsertMode", None, "Enter insert mode on the target element"),
        ToInsertMode("toInsertModeOnFirstElement", "first", "Enter insert mode on the first editable element"),
        ToInsertMode("toInsertModeOnLastElement", "last", "Enter insert mode on the last editable element"),
        ToVisualMode(),
        ToConsoleModeWithURL(),
        RecordMacro(),
        PlayMacro(),
        RepeatLastCommand(),
        Ignore(),
        Nop(),
    ]


def frame_command_registry() -> CommandRegistry:
    registry = CommandRegistry()
    for command in frame_commands():
        registry.register(command)
    return registry
