"""Coordinator message handlers - the fixed dispatch tables

Every handler is called as handler(ctx, frame_id, payload) where ctx is
the sending frame's TabContext and frame_id the coordinator-assigned id
of the sending frame.
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .modes import Mode
from .tab_coordinator import TOP_FRAME_ID

if TYPE_CHECKING:
    from .tab_coordinator import TabContext


Handler = Callable[["TabContext", int, Dict[str, Any]], Any]


def _command_value(payload: Dict[str, Any]) -> str:
    name = payload.get("name", "")
    args = payload.get("args") or ""
    return f"{name}|{args}" if args else name


# =========================================================================
# NOTIFICATIONS (frame -> coordinator)
# =========================================================================

def run_command(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    ctx.focused_frame_id = frame_id
    ctx.run_command(_command_value(payload), frame_id, payload.get("count", 0))


def change_mode(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    mode = Mode.parse(payload.get("mode"))
    if mode in (Mode.HINT, Mode.CONSOLE):
        # These modes need a session; frames reach them through commands.
        logging.warning(f"Tab {ctx.tab_id}: frame {frame_id} cannot enter {mode.value} directly")
        return
    ctx.focused_frame_id = frame_id
    ctx.change_mode(mode, target_frame_id=frame_id, data=payload.get("data") or {})


def hint_key(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    if ctx.mode is not Mode.HINT or ctx.hint_session is None:
        logging.debug(f"Tab {ctx.tab_id}: hint key outside hint mode dropped")
        return
    ctx.hint_session.handle_key(payload["key"], frame_id)


def console_key(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    if ctx.mode is not Mode.CONSOLE or ctx.console_session is None:
        logging.debug(f"Tab {ctx.tab_id}: console key outside console mode dropped")
        return
    ctx.console_session.handle_key(payload["key"], frame_id)


def show_message(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    ctx.show_message(payload.get("message", ""), payload.get("duration", 3.0))


def set_last_command(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    ctx.last_command = (payload.get("name", ""), payload.get("args") or "", payload.get("count", 0))


def start_macro(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    ctx.hub.macro.start(payload["register"], ctx)


def stop_macro(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    ctx.hub.macro.stop(notify=True)


def record_macro_key(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    if ctx.hub.macro.is_recording(ctx.tab_id):
        ctx.hub.macro.record(payload["key"])


def play_macro(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    origin = payload.get("frameId", frame_id)
    ctx.focused_frame_id = origin
    ctx.spawn(ctx.hub.macro.play(payload["register"], origin, ctx), "playMacro")


NOTIFICATION_HANDLERS: Dict[str, Handler] = {
    "runCommand": run_command,
    "changeMode": change_mode,
    "hintKey": hint_key,
    "consoleKey": console_key,
    "showMessage": show_message,
    "setLastCommand": set_last_command,
    "startMacro": start_macro,
    "stopMacro": stop_macro,
    "recordMacroKey": record_macro_key,
    "playMacro": play_macro,
}


# =========================================================================
# REQUESTS (frame -> coordinator)
# =========================================================================

def forward_frame_message(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> Any:
    """Relay a request to another frame of the same tab; its reply is ours."""
    return ctx.request(payload["frameId"], payload["data"])


async def open_link(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> None:
    host = ctx.hub.require_host()
    url = payload["url"]
    if payload.get("newTab"):
        current = await ctx.host_tab()
        index = current.index + 1 if current is not None else None
        await host.open_tab(url, active=ctx.hub.options.activate_new_tab, index=index)
    else:
        await host.navigate(ctx.tab_id, url)
    return None


def register_child(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> bool:
    """A parent frame may record a live, non-top frame of its own tab."""
    child = payload.get("frameId")
    if not isinstance(child, int) or child in (TOP_FRAME_ID, frame_id):
        return False
    return ctx.is_live_frame(child)


def get_last_command(ctx: "TabContext", frame_id: int, payload: Dict[str, Any]) -> Optional[List[Any]]:
    if ctx.last_command is None:
        return None
    return list(ctx.last_command)


REQUEST_HANDLERS: Dict[str, Handler] = {
    "forwardFrameMessage": forward_frame_message,
    "openLink": open_link,
    "getLastCommand": get_last_command,
    "registerChild": register_child,
}
