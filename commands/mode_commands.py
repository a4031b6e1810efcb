"""Commands: mode changes and frame focus, run by the tab coordinator"""

from typing import Callable, List

from core.modes import Mode

from .base import Command, Invocation


class ModeCommand(Command):
    def __init__(self, name: str, description: str, action: Callable):
        self._name = name
        self._description = description
        self._action = action

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def execute(self, ctx, invocation: Invocation):
        return self._action(ctx, invocation)


def console_input(args: str) -> str:
    """A bare "open" becomes "open " so the next key types its argument."""
    if args and " " not in args:
        return args + " "
    return args


class ToHintMode(Command):
    """Start hint mode. Args, when given, replace the type's selector."""

    def __init__(self, name: str, hint_type: str):
        self._name = name
        self.hint_type = hint_type

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"Start {self.hint_type} hint mode"

    def execute(self, ctx, invocation: Invocation) -> None:
        ctx.start_hint(self.hint_type, invocation.args or None)


class FocusFrame(Command):
    """Move keyboard focus to a sibling frame in frame-tree order."""

    def __init__(self, name: str, step: int):
        self._name = name
        self.step = step

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Focus the next frame" if self.step > 0 else "Focus the previous frame"

    async def execute(self, ctx, invocation: Invocation) -> None:
        frame_ids = await ctx.request(0, {"command": "collectFrameId"})
        if not frame_ids:
            return
        current = frame_ids.index(ctx.focused_frame_id) if ctx.focused_frame_id in frame_ids else 0
        target = frame_ids[(current + self.step * max(invocation.count, 1)) % len(frame_ids)]
        ctx.post(target, {"command": "focusFrame"})
        ctx.focused_frame_id = target


def mode_commands() -> List[Command]:
    return [
        ModeCommand("toNormalMode", "Return to normal mode",
                    lambda ctx, inv: ctx.change_mode(Mode.NORMAL)),
        ModeCommand("toSuspendMode", "Ignore every key until toNormalMode",
                    lambda ctx, inv: ctx.change_mode(Mode.SUSPEND)),
        ModeCommand("toConsoleMode", "Open the console",
                    lambda ctx, inv: ctx.start_console(console_input(inv.args), inv.frame_id)),
        ToHintMode("toHintMode", "link"),
        ToHintMode("toHintFocusMode", "focus"),
        ToHintMode("toHintMediaMode", "media"),
        FocusFrame("focusNextFrame", 1),
        FocusFrame("focusPreviousFrame", -1),
    ]
