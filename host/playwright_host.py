"""Playwright Tab Host

Implements AbstractTabHost over one Playwright BrowserContext.
Uses the async API so it shares the coordinator's event loop.

Dependency: playwright
Setup: playwright install chromium
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from core.host_config import HostConfig, HostSettings

from .base import AbstractTabHost, TabState


NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}

MAX_CLOSED_TABS = 25


class PlaywrightTabHost(AbstractTabHost):
    """Tabs are Playwright pages; tab ids are assigned in open order.

    Usage:
        host = PlaywrightTabHost()               # launches on first use
        tab = await host.open_tab("https://example.com/")
        await host.reload(tab.tab_id, bypass_cache=True)
        await host.shutdown()
    """

    def __init__(self, context: Any = None, settings: Optional[HostSettings] = None):
        self._context = context
        self._settings = settings
        self._playwright = None
        self._browser = None
        self._pages: Dict[int, Any] = {}
        self._order: List[int] = []
        self._last_id = 0
        self._active_id: Optional[int] = None
        self._closed: List[Tuple[str, int]] = []
        if context is not None:
            self._adopt_context(context)

    @property
    def settings(self) -> HostSettings:
        if self._settings is None:
            self._settings = HostConfig.get().settings
        return self._settings

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _ensure_context(self) -> Any:
        """Lazily start Playwright and a browser context."""
        if self._context is not None:
            return self._context

        try:
            from playwright.async_api import async_playwright
        except ImportError:
            raise RuntimeError(
                "Playwright not installed. Run: pip install playwright && playwright install chromium"
            )

        settings = self.settings
        self._playwright = await async_playwright().start()
        browser_map = {
            "chromium": self._playwright.chromium,
            "chrome": self._playwright.chromium,
            "edge": self._playwright.chromium,
            "firefox": self._playwright.firefox,
        }
        launcher = browser_map.get(settings.default_browser)
        if launcher is None:
            raise ValueError(f"Unknown browser type: {settings.default_browser}")

        launch_opts: Dict[str, Any] = {"headless": settings.headless}
        if settings.default_browser == "chrome":
            launch_opts["channel"] = "chrome"
        elif settings.default_browser == "edge":
            launch_opts["channel"] = "msedge"

        if settings.user_data_dir not in ("auto", "isolated"):
            profile_path = Path(settings.user_data_dir)
            profile_path.mkdir(parents=True, exist_ok=True)
            context = await launcher.launch_persistent_context(str(profile_path), **launch_opts)
            logging.info(f"Launched {settings.default_browser} with persistent profile {profile_path}")
        else:
            self._browser = await launcher.launch(**launch_opts)
            context = await self._browser.new_context()
            logging.info(f"Launched {settings.default_browser} (headless={settings.headless})")

        context.set_default_timeout(settings.timeout_ms)
        self._context = context
        self._adopt_context(context)
        if not self._order and settings.start_url:
            page = await context.new_page()
            self._track(page)
            await page.goto(settings.start_url)
        return context

    def _adopt_context(self, context: Any) -> None:
        for page in context.pages:
            self._track(page)
        context.on("page", self._track)

    async def shutdown(self) -> None:
        """Close the context and stop Playwright if this host started it."""
        try:
            if self._context is not None and self._playwright is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        except Exception as e:
            logging.warning(f"Error closing browser: {e}")
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
                logging.info("Playwright stopped")
            self._playwright = None
            self._browser = None

    # =========================================================================
    # TAB BOOKKEEPING
    # =========================================================================

    def _track(self, page: Any) -> int:
        for tab_id, known in self._pages.items():
            if known is page:
                return tab_id
        self._last_id += 1
        tab_id = self._last_id
        self._pages[tab_id] = page
        self._order.append(tab_id)
        if self._active_id is None:
            self._active_id = tab_id
        page.on("close", lambda _page: self._forget(tab_id))
        return tab_id

    def _forget(self, tab_id: int) -> None:
        self._pages.pop(tab_id, None)
        if tab_id in self._order:
            self._order.remove(tab_id)
        if self._active_id == tab_id:
            self._active_id = self._order[-1] if self._order else None

    def _page(self, tab_id: int) -> Any:
        page = self._pages.get(tab_id)
        if page is None or page.is_closed():
            raise KeyError(f"No tab with id {tab_id}")
        return page

    async def _state(self, tab_id: int) -> TabState:
        page = self._page(tab_id)
        return TabState(
            tab_id=tab_id,
            index=self._order.index(tab_id),
            url=page.url,
            title=await page.title(),
            active=tab_id == self._active_id,
        )

    # =========================================================================
    # TAB API
    # =========================================================================

    async def list_tabs(self) -> List[TabState]:
        await self._ensure_context()
        return [await self._state(tab_id) for tab_id in list(self._order)]

    async def activate_tab(self, tab_id: int) -> None:
        page = self._page(tab_id)
        await page.bring_to_front()
        self._active_id = tab_id

    async def open_tab(self, url: str, active: bool = True, index: Optional[int] = None) -> TabState:
        context = await self._ensure_context()
        page = await context.new_page()
        tab_id = self._track(page)
        if index is not None and 0 <= index < len(self._order):
            self._order.remove(tab_id)
            self._order.insert(index, tab_id)
        if url:
            await page.goto(url)
        if active:
            await self.activate_tab(tab_id)
        logging.info(f"Opened tab {tab_id}: {url}")
        return await self._state(tab_id)

    async def navigate(self, tab_id: int, url: str) -> None:
        await self._page(tab_id).goto(url)

    async def close_tab(self, tab_id: int) -> None:
        page = self._page(tab_id)
        self._closed.append((page.url, self._order.index(tab_id)))
        del self._closed[:-MAX_CLOSED_TABS]
        await page.close()
        self._forget(tab_id)

    async def restore_closed_tab(self) -> Optional[TabState]:
        if not self._closed:
            return None
        url, index = self._closed.pop()
        return await self.open_tab(url, active=True, index=index)

    async def duplicate_tab(self, tab_id: int) -> TabState:
        page = self._page(tab_id)
        return await self.open_tab(page.url, active=True, index=self._order.index(tab_id) + 1)

    async def reload(self, tab_id: int, bypass_cache: bool = False) -> None:
        page = self._page(tab_id)
        if not bypass_cache:
            await page.reload()
            return
        await page.set_extra_http_headers(NO_CACHE_HEADERS)
        try:
            await page.reload()
        finally:
            await page.set_extra_http_headers({})

    async def go_back(self, tab_id: int, steps: int = 1) -> None:
        page = self._page(tab_id)
        for _ in range(max(steps, 1)):
            if await page.go_back() is None:
                break

    async def go_forward(self, tab_id: int, steps: int = 1) -> None:
        page = self._page(tab_id)
        for _ in range(max(steps, 1)):
            if await page.go_forward() is None:
                break
