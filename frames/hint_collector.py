"""Frame-local hint state

One frame's share of a hint session: its candidates in document order,
the global indices and labels the coordinator assigned to them, and the
locally focused candidate.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from bs4 import Tag

from .document import FRAME_SELECTOR, Area, FrameDocument
from .frame_registry import FrameRegistry


FRAME_TAGS = ("iframe", "frame")


@dataclass(frozen=True)
class ChildSlot:
    """Position in the collection order taken by a child frame's candidates."""
    frame_id: int
    area: Optional[Area]


# A collection slot is either this frame's own candidate or a child frame.
Slot = Union[None, ChildSlot]
SELF_SLOT = None


def filter_matches(text: str, filter_text: str) -> bool:
    """Every whitespace separated word must occur in text.

    Case-insensitive unless the filter contains an upper-case letter.
    """
    words = filter_text.split()
    if not words:
        return True
    if filter_text == filter_text.lower():
        text = text.lower()
    return all(word in text for word in words)


class HintCollector:
    """Candidates of one frame for the current hint session."""

    def __init__(self, document: FrameDocument):
        self.document = document
        self.candidates: List[Tag] = []
        self.global_indices: List[int] = []
        self.labels: List[str] = []
        self.focused_index: Optional[int] = None
        self.previous_target: Optional[Tag] = None
        self.preview_filter = ""
        self.overlap = True

    def __len__(self) -> int:
        return len(self.candidates)

    def collect(self, hint_type: str, pattern: str, area: Optional[Area], registry: FrameRegistry) -> List[Slot]:
        """Enumerate candidates and child frames in document order.

        Replaces the previous candidate list; the previously focused
        element is remembered for target_index().
        """
        previous = self.target()
        if previous is not None:
            self.previous_target = previous
        self.clear()

        own = {id(element) for element in self.document.query(pattern)}
        slots: List[Slot] = []
        for element in self.document.query(f"{FRAME_SELECTOR}, {pattern}"):
            if not self.document.is_visible(element):
                continue
            rect = self.document.rect_of(element)
            if area is not None and rect is not None and not area.contains(rect):
                continue

            if id(element) in own:
                self.candidates.append(element)
                slots.append(SELF_SLOT)

            if element.name in FRAME_TAGS:
                window_id = self.document.content_window_id(element)
                child_frame_id = registry.child_frame_id(window_id)
                if child_frame_id is None:
                    continue
                child_area = None
                if area is not None and rect is not None:
                    child_area = area.for_child(rect)
                    if child_area is None:
                        continue
                slots.append(ChildSlot(child_frame_id, child_area))
        return slots

    def clear(self) -> None:
        self.candidates = []
        self.global_indices = []
        self.labels = []
        self.focused_index = None
        self.preview_filter = ""

    def forget(self) -> None:
        """Leave hint mode: drop everything including the remembered target."""
        self.clear()
        self.previous_target = None

    # =========================================================================
    # LABELS AND FOCUS
    # =========================================================================

    def set_labels(self, global_indices: List[int], labels: List[str]) -> None:
        if len(global_indices) != len(self.candidates) or len(labels) != len(self.candidates):
            logging.warning(
                f"Hint labels for {len(global_indices)} targets, frame has {len(self.candidates)}"
            )
            count = min(len(global_indices), len(labels), len(self.candidates))
            global_indices = global_indices[:count]
            labels = labels[:count]
        self.global_indices = list(global_indices)
        self.labels = list(labels)

    def local_index_of(self, global_index: int) -> Optional[int]:
        try:
            return self.global_indices.index(global_index)
        except ValueError:
            return None

    def focus(self, local_index: int, auto_focus: bool = False) -> bool:
        if not 0 <= local_index < len(self.candidates):
            logging.warning(f"Hint index {local_index} out of range ({len(self.candidates)})")
            return False
        self.focused_index = local_index
        element = self.candidates[local_index]
        if not self.document.is_live(element):
            logging.warning("Focused hint target is no longer in the document")
            return False
        if auto_focus:
            self.document.focus(element)
        return True

    def blur(self) -> None:
        self.focused_index = None

    def target(self) -> Optional[Tag]:
        if self.focused_index is None or self.focused_index >= len(self.candidates):
            return None
        return self.candidates[self.focused_index]

    def target_index(self) -> Optional[int]:
        """New local index of the element that was focused before re-collection."""
        if self.previous_target is None:
            return None
        for index, element in enumerate(self.candidates):
            if element is self.previous_target:
                return index
        return None

    # =========================================================================
    # FILTER
    # =========================================================================

    def filter_results(self, filter_text: str) -> List[Tuple[int, bool]]:
        results = []
        for global_index, element in zip(self.global_indices, self.candidates):
            matched = filter_matches(FrameDocument.text_of(element), filter_text)
            results.append((global_index, matched))
        return results

    def apply_filter(self, filter_text: str) -> List[bool]:
        """Preview a filter; returns the per-candidate match flags."""
        self.preview_filter = filter_text
        return [filter_matches(FrameDocument.text_of(e), filter_text) for e in self.candidates]
