"""Console session - the coordinator-owned console input of one tab"""

import logging
from typing import TYPE_CHECKING, Optional

from .chord_mapper import ChordMapper, ChordNode
from .modes import Mode

if TYPE_CHECKING:
    from .tab_coordinator import TabContext


class ConsoleSession:
    """Input line edited by forwarded key tokens.

    Mapped tokens run console.* commands; other printable tokens are
    typed into the line.
    """

    def __init__(self, ctx: "TabContext", trie: Optional[ChordNode], default_input: str = ""):
        self.ctx = ctx
        self.mapper = ChordMapper(trie if trie is not None else ChordNode())
        self.input = default_input
        self.closed = False

    def handle_key(self, token: str, frame_id: Optional[int]) -> None:
        if self.closed:
            logging.debug(f"Tab {self.ctx.tab_id}: console key after close dropped")
            return
        result = self.mapper.feed(token)
        if result.optional_command is not None:
            self.ctx.run_command(result.optional_command, frame_id)
        elif result.dropped:
            for dropped in result.dropped:
                self.insert(dropped)
        if result.command is not None:
            self.ctx.run_command(result.command, frame_id)
            return
        if result.consumed:
            return
        self.insert(token)

    def insert(self, token: str) -> None:
        if token == "<Space>":
            self.input += " "
        elif len(token) == 1:
            self.input += token
        else:
            logging.debug(f"Console ignores {token}")

    # =========================================================================
    # EDITING
    # =========================================================================

    def delete_char_backward(self) -> None:
        if not self.input:
            self.close()
            return
        self.input = self.input[:-1]

    def delete_word_backward(self) -> None:
        stripped = self.input.rstrip()
        cut = max(stripped.rfind(" "), -1)
        self.input = stripped[:cut + 1]

    def delete_to_beginning_of_line(self) -> None:
        self.input = ""

    def show_candidates(self) -> None:
        candidates = self.ctx.hub.ex_commands.candidates(self.input)
        if not candidates:
            self.ctx.show_message(f"{self.input.strip()} is unknown")
            return
        self.ctx.show_message(" ".join(name for name, _ in candidates))
        if len(candidates) == 1:
            self.input = candidates[0][0] + " "

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(self) -> None:
        line = self.input
        self.close()
        if line.strip():
            self.ctx.hub.macro.last_console_command = line
            await self.ctx.execute_console_command(line)

    def close(self) -> None:
        """Leave console mode (idempotent)."""
        if self.closed:
            return
        self.closed = True
        if self.ctx.console_session is self and not self.ctx.closed:
            self.ctx.change_mode(Mode.NORMAL)
