"""Tab page - an in-process frame tree wired to a coordinator hub

Builds FrameWindow/FrameDocument/FrameAgent triples for a page and its
nested frames, connecting each one to the hub through a LocalTransport
pair. This is how a document tree is driven without a browser.
"""

import logging
from typing import TYPE_CHECKING, Dict, Optional, Union

from bs4 import Tag

from gui.status import NULL_EMITTER, StatusEmitter
from messaging.transport import LocalTransport, Sender

from .document import FrameDocument, Layout
from .frame_agent import FrameAgent
from .window import FrameWindow, WindowArena

if TYPE_CHECKING:
    from core.coordinator_hub import CoordinatorHub


class TabPage:
    """All frames of one tab.

    Usage:
        page = TabPage(hub, tab_id=1)
        top = page.load("<a href='/a'>a</a><iframe id='f'></iframe>", "https://example.com/")
        child = page.attach_frame(top, "#f", "<a href='/b'>b</a>", "https://example.com/f")
        await top.wait_ready()
    """

    def __init__(
        self,
        hub: "CoordinatorHub",
        tab_id: int,
        arena: Optional[WindowArena] = None,
        status: StatusEmitter = NULL_EMITTER,
    ):
        self.hub = hub
        self.tab_id = tab_id
        self.arena = arena or WindowArena()
        self.status = status
        self.top: Optional[FrameAgent] = None
        self.agents: Dict[int, FrameAgent] = {}

    def load(self, html: str, url: str = "about:blank", layout: Optional[Layout] = None) -> FrameAgent:
        """Create the top frame. Replaces (closes) any previous document."""
        if self.top is not None:
            self.close()
        window = FrameWindow(self.arena)
        self.top = self._connect(window, FrameDocument(html, url, layout))
        return self.top

    def attach_frame(
        self,
        parent: FrameAgent,
        element: Union[Tag, str],
        html: str,
        url: str = "about:blank",
        layout: Optional[Layout] = None,
    ) -> FrameAgent:
        """Create a child frame hosted by an <iframe>/<frame> element of parent."""
        if isinstance(element, str):
            matches = parent.document.query(element)
            if not matches:
                raise ValueError(f"No frame element matches {element!r}")
            element = matches[0]
        if element.name not in ("iframe", "frame"):
            raise ValueError(f"<{element.name}> cannot host a frame")

        window = FrameWindow(self.arena, parent.window)
        parent.document.bind_frame(element, window.window_id)
        return self._connect(window, FrameDocument(html, url, layout))

    def detach_frame(self, agent: FrameAgent) -> None:
        """Remove a frame and its descendants, like removing the iframe."""
        for child_id in list(agent.window.child_ids):
            child = self.agents.get(child_id)
            if child is not None:
                self.detach_frame(child)
        agent.reset()
        parent = agent.window.parent
        if parent is not None and parent.window_id in self.agents:
            self.agents[parent.window_id].document.unbind_frame(agent.window.window_id)
        self.agents.pop(agent.window.window_id, None)
        agent.window.close()

    def close(self) -> None:
        if self.top is not None:
            self.detach_frame(self.top)
            self.top = None
        logging.debug(f"Tab {self.tab_id}: page closed")

    def _connect(self, window: FrameWindow, document: FrameDocument) -> FrameAgent:
        frame_end, hub_end = LocalTransport.pair(
            sender_a=Sender(self.tab_id, window.is_top, document.url),
        )
        status = self.status if window.is_top else NULL_EMITTER
        agent = FrameAgent(window, document, frame_end, status, self.hub.options.register_interval)
        self.agents[window.window_id] = agent
        self.hub.connect_frame(hub_end)
        return agent
