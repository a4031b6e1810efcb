"""Commands: tab navigation over the tab host

Each command asks the host for the tab list (or acts on this tab) and
awaits the host call. Host failures propagate to the caller, which shows
"<command> error (<reason>)".
"""

from typing import List

from host.base import AbstractTabHost, TabState

from .base import Command, Invocation


def current_position(tabs: List[TabState], tab_id: int) -> int:
    for position, tab in enumerate(tabs):
        if tab.tab_id == tab_id:
            return position
    raise LookupError(f"tab {tab_id} is not open")


class TabCommand(Command):
    """Base for commands that need the host."""

    def __init__(self, name: str, description: str):
        self._name = name
        self._description = description

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    async def execute(self, ctx, invocation: Invocation) -> None:
        await self.run(ctx.hub.require_host(), ctx, invocation)

    async def run(self, host: AbstractTabHost, ctx, invocation: Invocation) -> None:
        raise NotImplementedError


class NextTab(TabCommand):
    """Count 0 moves right (wrapping); a count selects that tab (1-based)."""

    async def run(self, host, ctx, invocation):
        tabs = await host.list_tabs()
        if invocation.count > 0:
            position = min(invocation.count, len(tabs)) - 1
        else:
            position = (current_position(tabs, ctx.tab_id) + 1) % len(tabs)
        await host.activate_tab(tabs[position].tab_id)


class PreviousTab(TabCommand):
    async def run(self, host, ctx, invocation):
        tabs = await host.list_tabs()
        steps = max(invocation.count, 1)
        position = (current_position(tabs, ctx.tab_id) - steps) % len(tabs)
        await host.activate_tab(tabs[position].tab_id)


class FirstTab(TabCommand):
    async def run(self, host, ctx, invocation):
        tabs = await host.list_tabs()
        await host.activate_tab(tabs[0].tab_id)


class LastTab(TabCommand):
    async def run(self, host, ctx, invocation):
        tabs = await host.list_tabs()
        await host.activate_tab(tabs[-1].tab_id)


class RemoveCurrentTab(TabCommand):
    async def run(self, host, ctx, invocation):
        await host.close_tab(ctx.tab_id)


class UndoCloseTab(TabCommand):
    async def run(self, host, ctx, invocation):
        if await host.restore_closed_tab() is None:
            ctx.show_message("no closed tab")


class DuplicateTab(TabCommand):
    async def run(self, host, ctx, invocation):
        await host.duplicate_tab(ctx.tab_id)


class Reload(TabCommand):
    def __init__(self, name: str, description: str, bypass_cache: bool):
        super().__init__(name, description)
        self._bypass_cache = bypass_cache

    async def run(self, host, ctx, invocation):
        await host.reload(ctx.tab_id, bypass_cache=self._bypass_cache)


class Back(TabCommand):
    async def run(self, host, ctx, invocation):
        await host.go_back(ctx.tab_id, max(invocation.count, 1))


class Forward(TabCommand):
    async def run(self, host, ctx, invocation):
        await host.go_forward(ctx.tab_id, max(invocation.count, 1))


def tab_commands() -> List[Command]:
    return [
        NextTab("nextTab", "Select the next tab, or the tab at the count"),
        PreviousTab("previousTab", "Select the previous tab"),
        FirstTab("firstTab", "Select the first tab"),
        LastTab("lastTab", "Select the last tab"),
        RemoveCurrentTab("removeCurrentTab", "Close the current tab"),
        UndoCloseTab("undoCloseTab", "Reopen the last closed tab"),
        DuplicateTab("duplicateTab", "Duplicate the current tab"),
        Reload("reload", "Reload the current tab", bypass_cache=False),
        Reload("reloadSkipCache", "Reload the current tab, skipping the cache", bypass_cache=True),
        Back("back", "Go back in history"),
        Forward("forward", "Go forward in history"),
    ]
