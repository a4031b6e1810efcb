"""Abstract Tab Host Interface

What background commands need from the browser hosting the tabs.

RESPONSIBILITY:
- Define the tab operations commands may call
- Allow host swapping without command changes

DOES NOT:
- Make policy decisions (HostConfig's job)
- Know about frames, modes or hints
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class TabState:
    """One tab as the host reports it."""
    tab_id: int
    index: int
    url: str
    title: str = ""
    active: bool = False


class AbstractTabHost(ABC):
    """Interface for tab hosts.

    Implementations:
    - PlaywrightTabHost (playwright_host.py)

    All methods are coroutines; failures raise and are reported by the
    calling command as a status line.
    """

    @abstractmethod
    async def list_tabs(self) -> List[TabState]:
        """All open tabs in window order."""
        raise NotImplementedError

    @abstractmethod
    async def activate_tab(self, tab_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def open_tab(self, url: str, active: bool = True, index: Optional[int] = None) -> TabState:
        """Open url in a new tab.

        Args:
            url: Absolute URL
            active: Bring the new tab to front
            index: Window position, None for the end
        """
        raise NotImplementedError

    @abstractmethod
    async def navigate(self, tab_id: int, url: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close_tab(self, tab_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def restore_closed_tab(self) -> Optional[TabState]:
        """Reopen the most recently closed tab. None if there is none."""
        raise NotImplementedError

    @abstractmethod
    async def duplicate_tab(self, tab_id: int) -> TabState:
        raise NotImplementedError

    @abstractmethod
    async def reload(self, tab_id: int, bypass_cache: bool = False) -> None:
        raise NotImplementedError

    @abstractmethod
    async def go_back(self, tab_id: int, steps: int = 1) -> None:
        raise NotImplementedError

    @abstractmethod
    async def go_forward(self, tab_id: int, steps: int = 1) -> None:
        raise NotImplementedError

    async def active_tab(self) -> Optional[TabState]:
        for tab in await self.list_tabs():
            if tab.active:
                return tab
        return None

    async def shutdown(self) -> None:
        """Release host resources. Default: nothing to release."""
