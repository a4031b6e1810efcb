"""Frame document - the DOM of one frame

Wraps a BeautifulSoup tree with the little state a keyboard driver
needs: the active element, the frame's focus, a geometry source and an
event log standing in for dispatched DOM events.

Dependency: beautifulsoup4 (soupsieve for CSS selectors)
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag


FRAME_SELECTOR = "iframe, frame"

EDITABLE_INPUT_TYPES = frozenset({
    "", "text", "search", "email", "url", "tel", "password", "number",
    "date", "datetime-local", "month", "time", "week",
})

_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)


@dataclass(frozen=True)
class Rect:
    """Element box in its frame's coordinates."""
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True)
class Area:
    """Visible region in a frame's coordinates."""
    left: float
    top: float
    right: float
    bottom: float

    def contains(self, rect: Rect) -> bool:
        """True if any part of the rect lies inside the area."""
        return (
            rect.right > self.left and rect.left < self.right
            and rect.bottom > self.top and rect.top < self.bottom
        )

    def for_child(self, frame_rect: Rect) -> Optional["Area"]:
        """The part of this area covered by a child frame, in its coordinates."""
        left = max(self.left, frame_rect.left)
        top = max(self.top, frame_rect.top)
        right = min(self.right, frame_rect.right)
        bottom = min(self.bottom, frame_rect.bottom)
        if right <= left or bottom <= top:
            return None
        return Area(
            left - frame_rect.left,
            top - frame_rect.top,
            right - frame_rect.left,
            bottom - frame_rect.top,
        )

    def to_dict(self) -> Dict[str, float]:
        return {"left": self.left, "top": self.top, "right": self.right, "bottom": self.bottom}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Area"]:
        if not data:
            return None
        return cls(data["left"], data["top"], data["right"], data["bottom"])


Layout = Callable[[Tag], Optional[Rect]]


class DomEvent(NamedTuple):
    """A synthetic event fired at an element."""
    type: str
    element: Tag
    detail: Dict[str, Any]


class FrameDocument:
    """DOM of one frame.

    Usage:
        document = FrameDocument("<a href='/x'>x</a>", url="https://example.com/")
        links = document.query("a")
        document.focus(links[0])
    """

    def __init__(self, html: str, url: str = "about:blank", layout: Optional[Layout] = None):
        self.soup = BeautifulSoup(html, "html.parser")
        self.url = url
        self.layout = layout
        self.active_element: Optional[Tag] = None
        self.has_focus = False
        self.events: List[DomEvent] = []
        self._frame_windows: Dict[int, Tuple[Tag, int]] = {}

    @property
    def host(self) -> Optional[str]:
        return urlsplit(self.url).hostname

    # =========================================================================
    # QUERIES
    # =========================================================================

    def query(self, selector: str) -> List[Tag]:
        """All elements matching selector, in document order."""
        return self.soup.select(selector)

    def is_live(self, element: Optional[Tag]) -> bool:
        if element is None:
            return False
        return any(parent is self.soup for parent in element.parents)

    def is_visible(self, element: Tag) -> bool:
        if element.name == "input" and (element.get("type") or "").lower() == "hidden":
            return False
        node: Optional[Tag] = element
        while node is not None and node is not self.soup:
            if node.has_attr("hidden"):
                return False
            style = node.get("style")
            if style and _HIDDEN_STYLE.search(style):
                return False
            node = node.parent
        return True

    def rect_of(self, element: Tag) -> Optional[Rect]:
        if self.layout is None:
            return None
        return self.layout(element)

    def is_editable(self, element: Tag) -> bool:
        if element.name == "textarea":
            return not element.has_attr("disabled") and not element.has_attr("readonly")
        if element.name == "input":
            input_type = (element.get("type") or "").lower()
            return (
                input_type in EDITABLE_INPUT_TYPES
                and not element.has_attr("disabled")
                and not element.has_attr("readonly")
            )
        return element.get("contenteditable") in ("", "true")

    def editable_elements(self) -> List[Tag]:
        candidates = self.query("input, textarea, [contenteditable]")
        return [e for e in candidates if self.is_editable(e) and self.is_visible(e)]

    @staticmethod
    def text_of(element: Tag) -> str:
        """Text a user would read for the element."""
        text = element.get_text(" ", strip=True)
        if text:
            return text
        for attr in ("value", "alt", "title", "placeholder"):
            value = element.get(attr)
            if value:
                return str(value)
        image = element.find("img")
        if image is not None and image.get("alt"):
            return str(image["alt"])
        return ""

    # =========================================================================
    # CHILD FRAMES
    # =========================================================================

    def bind_frame(self, element: Tag, window_id: int) -> None:
        """Record which window an <iframe>/<frame> element hosts."""
        self._frame_windows[id(element)] = (element, window_id)

    def unbind_frame(self, window_id: int) -> None:
        for key, (_, bound_id) in list(self._frame_windows.items()):
            if bound_id == window_id:
                del self._frame_windows[key]

    def content_window_id(self, element: Tag) -> Optional[int]:
        bound = self._frame_windows.get(id(element))
        if bound is None or bound[0] is not element:
            return None
        return bound[1]

    def frame_element(self, window_id: int) -> Optional[Tag]:
        for element, bound_id in self._frame_windows.values():
            if bound_id == window_id:
                return element
        return None

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def focus(self, element: Tag, **detail: Any) -> bool:
        if not self.is_live(element):
            logging.warning(f"Cannot focus <{element.name}>: element is no longer in the document")
            return False
        if self.active_element is not None and self.active_element is not element:
            self.events.append(DomEvent("blur", self.active_element, {}))
        self.active_element = element
        self.events.append(DomEvent("focus", element, detail))
        return True

    def blur(self) -> None:
        if self.active_element is not None:
            self.events.append(DomEvent("blur", self.active_element, {}))
            self.active_element = None

    def dispatch(self, element: Tag, event_type: str, **detail: Any) -> bool:
        """Fire a synthetic event at element."""
        if not self.is_live(element):
            logging.warning(f"Cannot dispatch {event_type}: <{element.name}> is no longer in the document")
            return False
        self.events.append(DomEvent(event_type, element, detail))
        return True

    def events_of(self, event_type: str) -> List[Tag]:
        return [event.element for event in self.events if event.type == event_type]
