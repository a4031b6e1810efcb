"""Console (ex) commands

A prefix-matching name table and the commands the console can run.

RESPONSIBILITY:
- Resolve a typed name: exact match, unique prefix, default, or a reason
- Run open/tabopen/buffer/hint/registers against a TabContext

DOES NOT:
- Edit the console input (ConsoleSession's job)
- Decide the mode after execution (ConsoleSession's job)
"""

import inspect
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar
from urllib.parse import quote, urlsplit

from frames.hint_collector import filter_matches

if TYPE_CHECKING:
    from .tab_coordinator import TabContext


T = TypeVar("T")

_SCHEME = re.compile(r"^[a-z][a-z0-9-]+:", re.IGNORECASE)


class CommandMap(Generic[T]):
    """Name -> entry with prefix lookup and an optional default entry."""

    def __init__(self):
        self._entries: Dict[str, T] = {}
        self.default_name = ""

    def clear(self) -> None:
        self._entries.clear()

    def set(self, name: str, entry: T) -> None:
        self._entries[name] = entry

    def names(self) -> List[str]:
        return list(self._entries)

    def get_command(self, name: str) -> Tuple[Optional[T], str]:
        """Resolve name. Returns (entry, reason).

        reason is "" for an exact or unique-prefix match and
        "use default command" when the default stands in.
        """
        entry = self._entries.get(name)
        if entry is not None:
            return entry, ""
        matches = [key for key in self._entries if key.startswith(name)]
        if len(matches) == 1:
            return self._entries[matches[0]], ""
        if len(matches) > 1:
            return None, f"{name} is ambiguous ({','.join(matches)})"
        if self.default_name and self.default_name in self._entries:
            return self._entries[self.default_name], "use default command"
        return None, f"{name} is unknown"

    def candidates(self, prefix: str) -> List[str]:
        return [key for key in self._entries if key.startswith(prefix)]


# =========================================================================
# EX COMMANDS
# =========================================================================

ExProc = Callable[[List[str], "TabContext"], Any]


@dataclass
class ExCommand:
    name: str
    description: str
    proc: ExProc

    def invoke(self, args: List[str], ctx: "TabContext") -> Any:
        return self.proc(args, ctx)


class ExCommandError(Exception):
    """An ex command refused its arguments."""


class ExCommandMap:
    """Usage:
        ex_map = build_ex_command_map()
        ok, result = await ex_map.execute("tabopen wikipedia python", ctx)
    """

    def __init__(self):
        self.command_map: CommandMap[ExCommand] = CommandMap()

    def add_command(self, command: ExCommand) -> None:
        self.command_map.set(command.name, command)

    def make_command(self, name: str, description: str, proc: ExProc) -> None:
        self.add_command(ExCommand(name, description, proc))

    async def execute(self, input_command: str, ctx: "TabContext") -> Tuple[bool, Any]:
        """Run one console line. Returns (ok, result or reason)."""
        args = input_command.split()
        if not args:
            return False, "no command"
        name = args.pop(0)
        command, reason = self.command_map.get_command(name)
        if command is None:
            return False, reason
        try:
            result = command.invoke(args, ctx)
            if inspect.isawaitable(result):
                result = await result
        except ExCommandError as e:
            return False, str(e)
        except Exception as e:
            logging.warning(f"Console command {command.name} failed: {e}")
            return False, str(e)
        return True, result

    def candidates(self, value: str) -> List[Tuple[str, str]]:
        """(name, description) of commands completing the first word."""
        prefix = value.strip()
        return [
            (name, self.command_map.get_command(name)[0].description)
            for name in self.command_map.candidates(prefix)
        ]


# =========================================================================
# OPEN / TABOPEN
# =========================================================================

def create_url(maybe_url: str) -> Optional[str]:
    """The text as a URL if it looks like one, else None."""
    if not _SCHEME.match(maybe_url):
        maybe_url = "http://" + maybe_url
    try:
        parts = urlsplit(maybe_url)
        hostname = parts.hostname or ""
    except ValueError:
        return None
    if parts.scheme not in ("http", "https"):
        return maybe_url
    if " " in maybe_url:
        return None
    if ("." in hostname and not hostname.startswith(".")) or parts.netloc.startswith("[") or hostname == "localhost":
        return maybe_url
    return None


def engine_map(search_engine: Dict[str, Any]) -> CommandMap[Dict[str, Any]]:
    engines: CommandMap[Dict[str, Any]] = CommandMap()
    for keyword, engine in (search_engine.get("engines") or {}).items():
        engines.set(keyword, dict(engine, name=keyword))
    engines.default_name = search_engine.get("default_engine", "")
    return engines


def resolve_open_target(args: List[str], search_engine: Dict[str, Any]) -> str:
    """URL for open/tabopen arguments: a URL, or an engine search."""
    if not args:
        return "about:blank"
    engine, reason = engine_map(search_engine).get_command(args[0])
    if engine is None:
        raise ExCommandError(reason)
    if reason:
        # Default engine selected: the words may still be a URL.
        url = create_url(" ".join(args))
        if url:
            return url
    else:
        args = args[1:]
    return engine["search_url"].replace("%s", quote(" ".join(args), safe=""))


def _open(new_tab: bool) -> ExProc:
    async def proc(args: List[str], ctx: "TabContext") -> None:
        url = resolve_open_target(args, ctx.hub.options.search_engine)
        host = ctx.hub.require_host()
        if new_tab:
            current = await ctx.host_tab()
            index = current.index + 1 if current is not None else None
            await host.open_tab(url, active=ctx.hub.options.activate_new_tab, index=index)
        else:
            await host.navigate(ctx.tab_id, url)
        return None
    return proc


# =========================================================================
# BUFFER / HINT / REGISTERS
# =========================================================================

def element_by_index_or_text(items: List[T], args: List[str], text_of: Callable[[T], str]) -> T:
    if len(args) == 1 and args[0].isdecimal():
        index = int(args[0])
        if index >= len(items):
            raise ExCommandError("too large index")
        return items[index]
    filter_text = " ".join(args)
    matched = [item for item in items if filter_matches(text_of(item), filter_text)]
    if not matched:
        raise ExCommandError("no matching")
    if len(matched) != 1:
        raise ExCommandError("multiple matching")
    return matched[0]


async def _buffer(args: List[str], ctx: "TabContext") -> None:
    if not args:
        raise ExCommandError("no argument")
    host = ctx.hub.require_host()
    tabs = await host.list_tabs()
    tab = element_by_index_or_text(tabs, args, lambda t: t.title)
    await host.activate_tab(tab.tab_id)
    return None


class HintExCommand:
    """hint <selector>: hint mode over an arbitrary selector."""

    def __init__(self):
        self.previous_selector = "*"

    def __call__(self, args: List[str], ctx: "TabContext") -> None:
        selector = " ".join(args).strip() or self.previous_selector
        self.previous_selector = selector
        ctx.start_hint("console", selector)
        return None


def _registers(args: List[str], ctx: "TabContext") -> List[List[str]]:
    return [[register, "".join(keys)] for register, keys in ctx.hub.macro.registers()]


def build_ex_command_map() -> ExCommandMap:
    ex_map = ExCommandMap()
    ex_map.make_command("open", "Open or search in current tab", _open(new_tab=False))
    ex_map.make_command("tabopen", "Open or search in new tab", _open(new_tab=True))
    ex_map.make_command("buffer", "Switch tab", _buffer)
    ex_map.make_command("hint", "Start hint mode with input selector", HintExCommand())
    ex_map.make_command("registers", "Show the contents of all registers", _registers)
    return ex_map
