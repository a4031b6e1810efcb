"""Hint Session - the coordinator side of hint mode for one tab

States: COLLECTING -> ACTIVE <-> FILTERING -> CLOSED

RESPONSIBILITY:
- Collect candidates from the whole frame tree (one ordered idList)
- Assign labels per owning frame and move the focused hint
- Filter candidates across frames and commit or reject the result
- Rebuild the hint list keeping the focused element

DOES NOT:
- Touch elements (frames own them)
- Interpret non-hint commands (forwarded to the owning frame)

INVARIANT:
- idList maps global index -> owning frameId in frame-tree document order
- filterIndexMap holds ascending global indices, one per display position
- After every await, the session re-checks it is still the tab's live
  session before mutating anything
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from messaging.exceptions import DisconnectedError

from .chord_mapper import ChordMapper, ChordNode
from .modes import Mode

if TYPE_CHECKING:
    from .tab_coordinator import TabContext


FILTER_DELETE_KEYS = ("<Backspace>", "<C-H>")
FILTER_CANCEL_KEYS = ("<Esc>", "<C-[>", "<C-C>")
FILTER_COMMIT_KEYS = ("<Enter>", "<C-M>", "<C-J>")

_COUNTED_COMMAND = re.compile(r"^(\d+)\|(.*)$")


class HintState(Enum):
    COLLECTING = "collecting"
    ACTIVE = "active"
    FILTERING = "filtering"
    CLOSED = "closed"


@dataclass(frozen=True)
class HintTarget:
    """Where a display position lives."""
    global_index: int
    frame_id: int
    local_index: int


class HintSession:
    """Usage:
        session = HintSession(ctx, "link", "a[href]", trie)
        await session.start()
        session.handle_key("3", frame_id=0)
    """

    def __init__(
        self,
        ctx: "TabContext",
        hint_type: str,
        pattern: str,
        trie: Optional[ChordNode] = None,
        auto_focus: bool = False,
        overlap: bool = True,
    ):
        self.ctx = ctx
        self.hint_type = hint_type
        self.pattern = pattern
        self.mapper = ChordMapper(trie if trie is not None else ChordNode())
        self.auto_focus = auto_focus
        self.overlap = overlap

        self.state = HintState.COLLECTING
        self.id_list: List[int] = []
        self.filter_index_map: List[int] = []
        self.filter_text = ""
        self.filter_input = ""
        self.current_index = 0
        self.generation: Optional[int] = None
        self._local_indices: List[int] = []

    @property
    def live(self) -> bool:
        return (
            self.state is not HintState.CLOSED
            and not self.ctx.closed
            and self.ctx.hint_session is self
            and self.ctx.generation == self.generation
        )

    def __len__(self) -> int:
        return len(self.filter_index_map)

    # =========================================================================
    # COLLECTION
    # =========================================================================

    async def start(self) -> bool:
        """Collect and enter hint mode. False when there was nothing to hint."""
        generation = self.ctx.generation
        id_list = await self._collect()
        if self.state is HintState.CLOSED or self.ctx.closed or self.ctx.generation != generation:
            logging.debug(f"Tab {self.ctx.tab_id}: hint collection superseded")
            return False
        if not id_list:
            self.state = HintState.CLOSED
            if self.ctx.mode is not Mode.NORMAL:
                self.ctx.change_mode(Mode.NORMAL)
            self.ctx.show_message("No hints are found")
            return False
        self._enter(id_list)
        return True

    async def _collect(self) -> List[int]:
        id_list = await self.ctx.request(0, {
            "command": "collectHint",
            "type": self.hint_type,
            "pattern": self.pattern,
            "area": None,
        })
        if not isinstance(id_list, list) or not all(isinstance(i, int) for i in id_list):
            raise ValueError(f"malformed hint list from frame 0: {id_list!r}")
        return id_list

    def _set_id_list(self, id_list: List[int], current_index: int) -> None:
        self.id_list = list(id_list)
        self.filter_index_map = list(range(len(id_list)))
        self.filter_text = ""
        self.filter_input = ""
        self.current_index = current_index
        self.mapper.reset()

        counters: Dict[int, int] = {}
        self._local_indices = []
        for frame_id in id_list:
            self._local_indices.append(counters.get(frame_id, 0))
            counters[frame_id] = counters.get(frame_id, 0) + 1

    def _enter(self, id_list: List[int], target_frame_id: Optional[int] = None,
               target_index: Optional[int] = None) -> None:
        if target_index is None:
            target_frame_id, target_index = id_list[0], 0

        global_target = 0
        counter = 0
        for global_index, frame_id in enumerate(id_list):
            if frame_id == target_frame_id:
                if counter == target_index:
                    global_target = global_index
                    break
                counter += 1

        self._set_id_list(id_list, global_target)
        self.state = HintState.ACTIVE
        target = self.target_at(global_target)
        self.ctx.change_mode(
            Mode.HINT,
            target_frame_id=target.frame_id,
            data={"focusIndex": target.local_index, "autoFocus": self.auto_focus},
            per_frame_data=self.entry_payloads(),
            session=self,
        )
        self.generation = self.ctx.generation
        logging.info(f"Tab {self.ctx.tab_id}: {len(id_list)} {self.hint_type} hints")

    def frame_labels(self) -> Dict[int, Tuple[List[int], List[str]]]:
        """frameId -> (global indices, labels) for every owning frame."""
        positions = {g: position for position, g in enumerate(self.filter_index_map)}
        labels: Dict[int, Tuple[List[int], List[str]]] = {}
        for global_index, frame_id in enumerate(self.id_list):
            indices, texts = labels.setdefault(frame_id, ([], []))
            indices.append(global_index)
            position = positions.get(global_index)
            texts.append(str(position) if position is not None else "-")
        return labels

    def entry_payloads(self) -> Dict[int, Dict[str, Any]]:
        labels = self.frame_labels()
        payloads = {}
        for frame_id in self.ctx.frame_ids():
            indices, texts = labels.get(frame_id, ([], []))
            payloads[frame_id] = {"globalIndices": indices, "labels": texts, "overlap": self.overlap}
        return payloads

    def target_at(self, position: int) -> HintTarget:
        global_index = self.filter_index_map[position]
        return HintTarget(global_index, self.id_list[global_index], self._local_indices[global_index])

    @property
    def current_target(self) -> Optional[HintTarget]:
        if not self.filter_index_map:
            return None
        return self.target_at(self.current_index)

    # =========================================================================
    # KEYS
    # =========================================================================

    def handle_key(self, token: str, frame_id: Optional[int]) -> None:
        if not self.live:
            logging.debug(f"Tab {self.ctx.tab_id}: hint key for a closed session dropped")
            return
        if self.state is HintState.FILTERING:
            self._handle_filter_key(token)
            return
        if len(token) == 1 and "0" <= token <= "9":
            self.handle_digit(token)
            return

        result = self.mapper.feed(token)
        if result.optional_command is not None:
            self.ctx.run_command(result.optional_command, frame_id)
        if result.command is not None:
            self.ctx.run_command(result.command, frame_id)
            return
        if result.consumed:
            return
        keys = [token] if result.optional_command is not None else result.dropped + [token]
        self.ctx.change_mode(Mode.NORMAL, target_frame_id=frame_id, data={"keys": keys})

    def handle_digit(self, digit: str) -> None:
        length = len(self.filter_index_map)
        index = str(self.current_index) + digit
        while index and int(index) >= length:
            index = index[1:]
        self.change_focus(int(index) if index else length - 1)

    def change_focus(self, position: int) -> None:
        self._move_focus(self.current_target, position)

    def _move_focus(self, previous: Optional[HintTarget], position: int) -> None:
        self.current_index = position
        target = self.target_at(position)
        if previous is not None and previous.frame_id != target.frame_id:
            self.ctx.post(previous.frame_id, {"command": "blurHintLink"})
        self.ctx.post(target.frame_id, {
            "command": "focusHintLink",
            "globalIndex": target.global_index,
            "localIndex": target.local_index,
            "autoFocus": self.auto_focus,
        })

    def next_hint(self) -> None:
        length = len(self.filter_index_map)
        self.change_focus((self.current_index + 1) % length)

    def previous_hint(self) -> None:
        length = len(self.filter_index_map)
        self.change_focus((self.current_index - 1 + length) % length)

    # =========================================================================
    # FILTER
    # =========================================================================

    def start_filter(self) -> None:
        self.state = HintState.FILTERING
        self.filter_input = self.filter_text
        self.mapper.reset()

    def _handle_filter_key(self, token: str) -> None:
        if token in FILTER_COMMIT_KEYS:
            self.state = HintState.ACTIVE
            self.ctx.spawn(self.commit_filter(self.filter_input), "hint filter")
            return
        if token in FILTER_CANCEL_KEYS:
            self.cancel_filter()
            return
        if token in FILTER_DELETE_KEYS:
            self.filter_input = self.filter_input[:-1]
        elif token == "<Space>":
            self.filter_input += " "
        elif len(token) == 1:
            self.filter_input += token
        else:
            return
        self.ctx.broadcast({"command": "applyFilter", "filter": self.filter_input})

    def cancel_filter(self) -> None:
        self.state = HintState.ACTIVE
        self.filter_input = self.filter_text
        self.ctx.broadcast({"command": "applyFilter", "filter": self.filter_text})

    async def commit_filter(self, filter_text: str) -> bool:
        """Apply filter_text across all frames. False if it was rejected."""
        if filter_text == self.filter_text:
            return True
        generation = self.generation
        requests = [
            self.ctx.request(frame_id, {"command": "getFilterResult", "filter": filter_text})
            for frame_id in self.ctx.frame_ids()
        ]
        replies = await self._gather(requests)
        if not self.live or self.generation != generation:
            return False

        results = sorted(
            (int(global_index), bool(matched))
            for reply in replies for global_index, matched in reply
        )
        index_map = [
            global_index for global_index, matched in results
            if matched and 0 <= global_index < len(self.id_list)
        ]
        if not index_map:
            self.ctx.show_message(f"No elements matched by {filter_text}")
            self.ctx.broadcast({"command": "applyFilter", "filter": self.filter_text})
            return False

        previous = self.current_target
        self.filter_index_map = index_map
        self.filter_text = filter_text
        self.filter_input = filter_text
        for frame_id, (indices, labels) in self.frame_labels().items():
            self.ctx.post(frame_id, {"command": "setHintLabel", "globalIndices": indices, "labels": labels})
        self._move_focus(previous, 0)
        return True

    async def _gather(self, requests) -> List[List[Any]]:
        replies = []
        for reply in await asyncio.gather(*requests, return_exceptions=True):
            if isinstance(reply, BaseException):
                logging.warning(f"Tab {self.ctx.tab_id}: getFilterResult failed: {reply}")
                continue
            replies.append(reply)
        return replies

    # =========================================================================
    # RECONSTRUCT, TOGGLES, INVOKE
    # =========================================================================

    async def reconstruct(self) -> None:
        """Collect again, keeping focus on the same element."""
        generation = self.generation
        previous = self.current_target
        id_list = await self._collect()
        target_frame_id = previous.frame_id if previous is not None else None
        target_index = None
        if target_frame_id is not None and target_frame_id in id_list:
            try:
                target_index = await self.ctx.request(target_frame_id, {"command": "getTargetIndex"})
            except DisconnectedError:
                # A frame that is gone reports no candidates.
                id_list = [frame_id for frame_id in id_list if frame_id != target_frame_id]
        if not self.live or self.generation != generation:
            return

        if not id_list or (target_frame_id is not None and target_frame_id not in id_list):
            logging.info(f"Tab {self.ctx.tab_id}: focused hint frame is gone, leaving hint mode")
            self.state = HintState.CLOSED
            self.ctx.change_mode(Mode.NORMAL)
            return
        self._enter(id_list, target_frame_id, target_index)

    def toggle_auto_focus(self) -> None:
        self.auto_focus = not self.auto_focus
        self.ctx.show_message(f"Auto focus {'ON' if self.auto_focus else 'OFF'}")

    def toggle_overlap(self) -> None:
        self.overlap = not self.overlap
        self.ctx.broadcast({"command": "setOverlap", "overlap": self.overlap})
        self.ctx.show_message(f"Overlapping {'ON' if self.overlap else 'OFF'}")

    def invoke_command(self, args: str, count: int = 0) -> None:
        """Run "[count|]name" in the frame owning the focused hint."""
        match = _COUNTED_COMMAND.match(args)
        if match:
            count, args = int(match.group(1)), match.group(2)
        target = self.current_target
        if target is None:
            return
        self.ctx.post(target.frame_id, {"command": "forwardHintCommand", "name": args, "count": count})

    def close(self) -> None:
        self.state = HintState.CLOSED
        self.mapper.reset()
