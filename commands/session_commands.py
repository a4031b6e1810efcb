"""Commands: hint.* and console.*

These run against the tab's live hint or console session. The
coordinator drops them when the session they need is not active.
"""

from typing import Any, Callable, List

from .base import Command, Invocation


class SessionCommand(Command):
    """A command bound to one session operation."""

    def __init__(self, name: str, scope: str, description: str, action: Callable[[Any, Invocation], Any]):
        self._name = name
        self._scope = scope
        self._description = description
        self._action = action

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def scope(self) -> str:
        return self._scope

    def execute(self, ctx, invocation: Invocation) -> Any:
        session = ctx.hint_session if self._scope == "hint" else ctx.console_session
        return self._action(session, invocation)


def hint_commands() -> List[Command]:
    return [
        SessionCommand("hint.nextHint", "hint", "Focus the next hint",
                       lambda session, inv: session.next_hint()),
        SessionCommand("hint.previousHint", "hint", "Focus the previous hint",
                       lambda session, inv: session.previous_hint()),
        SessionCommand("hint.startFilter", "hint", "Filter hints by text",
                       lambda session, inv: session.start_filter()),
        SessionCommand("hint.reconstruct", "hint", "Collect hints again",
                       lambda session, inv: session.reconstruct()),
        SessionCommand("hint.toggleAutoFocus", "hint", "Toggle focusing the element under the hint",
                       lambda session, inv: session.toggle_auto_focus()),
        SessionCommand("hint.toggleOverlap", "hint", "Toggle overlapping hint labels",
                       lambda session, inv: session.toggle_overlap()),
        SessionCommand("hint.invokeCommand", "hint", "Invoke a command on the focused hint",
                       lambda session, inv: session.invoke_command(inv.args, inv.count)),
    ]


def console_commands() -> List[Command]:
    return [
        SessionCommand("console.execute", "console", "Execute the console input",
                       lambda session, inv: session.execute()),
        SessionCommand("console.deleteCharBackward", "console", "Delete the character before the cursor",
                       lambda session, inv: session.delete_char_backward()),
        SessionCommand("console.deleteWordBackward", "console", "Delete the word before the cursor",
                       lambda session, inv: session.delete_word_backward()),
        SessionCommand("console.deleteToBeginningOfLine", "console", "Clear the console input",
                       lambda session, inv: session.delete_to_beginning_of_line()),
        SessionCommand("console.getCandidate", "console", "Show command candidates",
                       lambda session, inv: session.show_candidates()),
        SessionCommand("console.closeConsoleMode", "console", "Close the console",
                       lambda session, inv: session.close()),
    ]
