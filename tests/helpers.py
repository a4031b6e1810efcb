"""Test helpers: an in-memory tab host and hub/page builders."""

import asyncio
from typing import List, Optional

from core.coordinator_hub import CoordinatorHub
from core.options_config import OptionsConfig
from frames.page import TabPage
from host.base import AbstractTabHost, TabState


class FakeTabHost(AbstractTabHost):
    """Tabs kept in a list; every call is recorded in calls."""

    def __init__(self, count: int = 3):
        self.tabs: List[TabState] = [
            TabState(tab_id=i, index=i - 1, url=f"https://example.com/{i}", title=f"Tab {i}", active=i == 1)
            for i in range(1, count + 1)
        ]
        self.closed: List[TabState] = []
        self.calls: List[tuple] = []
        self._next_id = count + 1

    async def list_tabs(self) -> List[TabState]:
        return sorted(self.tabs, key=lambda t: t.index)

    async def activate_tab(self, tab_id: int) -> None:
        self.calls.append(("activate", tab_id))
        for tab in self.tabs:
            tab.active = tab.tab_id == tab_id

    async def open_tab(self, url: str, active: bool = True, index: Optional[int] = None) -> TabState:
        self.calls.append(("open", url, active, index))
        tab = TabState(self._next_id, len(self.tabs) if index is None else index, url)
        self._next_id += 1
        self.tabs.append(tab)
        return tab

    async def navigate(self, tab_id: int, url: str) -> None:
        self.calls.append(("navigate", tab_id, url))

    async def close_tab(self, tab_id: int) -> None:
        self.calls.append(("close", tab_id))
        tab = next(t for t in self.tabs if t.tab_id == tab_id)
        self.tabs.remove(tab)
        self.closed.append(tab)

    async def restore_closed_tab(self) -> Optional[TabState]:
        self.calls.append(("restore",))
        if not self.closed:
            return None
        tab = self.closed.pop()
        self.tabs.append(tab)
        return tab

    async def duplicate_tab(self, tab_id: int) -> TabState:
        self.calls.append(("duplicate", tab_id))
        source = next(t for t in self.tabs if t.tab_id == tab_id)
        return await self.open_tab(source.url, index=source.index + 1)

    async def reload(self, tab_id: int, bypass_cache: bool = False) -> None:
        self.calls.append(("reload", tab_id, bypass_cache))

    async def go_back(self, tab_id: int, steps: int = 1) -> None:
        self.calls.append(("back", tab_id, steps))

    async def go_forward(self, tab_id: int, steps: int = 1) -> None:
        self.calls.append(("forward", tab_id, steps))


def make_hub(host: Optional[AbstractTabHost] = None, **options) -> CoordinatorHub:
    """Hub with default options (no liveness sweeper) and a fake host."""
    raw = {"sweep_interval": 0, "register_interval": 0.01}
    raw.update(options)
    return CoordinatorHub(OptionsConfig.build(raw), host=host if host is not None else FakeTabHost())


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll predicate while the loop delivers messages."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


async def settle(rounds: int = 50) -> None:
    """Let queued deliveries run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


TOP_HTML = """
<body>
  <a href="/one">One</a>
  <iframe id="f"></iframe>
  <a href="/three">Three</a>
</body>
"""

CHILD_HTML = """
<body>
  <a href="/two">Two</a>
  <a href="/four">Four</a>
</body>
"""


async def open_page(hub: CoordinatorHub, tab_id: int = 1, with_child: bool = True):
    """Top frame (and one child frame) connected and registered."""
    page = TabPage(hub, tab_id)
    top = page.load(TOP_HTML, "https://example.com/")
    await top.wait_ready(1.0)
    child = None
    if with_child:
        child = page.attach_frame(top, "#f", CHILD_HTML, "https://child.example.com/")
        await child.wait_ready(1.0)
        await child.registry.wait_registered(1.0)
    return page, top, child
