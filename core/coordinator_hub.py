"""Coordinator Hub - the single background coordinator for every tab

RESPONSIBILITY:
- Accept frame connections and assign frame ids
- Dispatch frame messages to the fixed handler tables
- Hold the prepared options (key tries, hint patterns) and push them
- Own tab-independent state: command registry, macros, ex commands, host

DOES NOT:
- Keep per-tab state itself (TabContext does)
- Parse transports or envelopes (Channel does)

INVARIANT:
- Every handler receives the sender's TabContext explicitly
- A disconnected top frame tears down its whole tab
"""

import functools
import logging
from typing import Any, Dict, Optional, Set

from commands.loader import load_all_commands
from commands.registry import CommandRegistry
from frames.frame_commands import frame_command_registry
from host.base import AbstractTabHost
from messaging.channel import Channel
from messaging.exceptions import DisconnectedError
from messaging.transport import Sender, Transport

from .console_commands import build_ex_command_map
from .keymap import build_tries, prepare_hint_pattern, prepare_key_mapping
from .macro import MacroManager
from .message_handlers import NOTIFICATION_HANDLERS, REQUEST_HANDLERS
from .modes import Mode
from .options_config import Options, OptionsConfig
from .tab_coordinator import TOP_FRAME_ID, TabContext


class CoordinatorHub:
    """Usage:
        hub = CoordinatorHub(OptionsConfig.get().options, host=PlaywrightTabHost())
        frame_id = hub.connect_frame(transport)
    """

    def __init__(
        self,
        options: Optional[Options] = None,
        host: Optional[AbstractTabHost] = None,
        registry: Optional[CommandRegistry] = None,
    ):
        self.registry = load_all_commands(registry if registry is not None else CommandRegistry())
        self.frame_commands = frame_command_registry()
        self.host = host
        self.macro = MacroManager()
        self.ex_commands = build_ex_command_map()
        self.tabs: Dict[int, TabContext] = {}

        self.options: Options = options if options is not None else OptionsConfig.get().options
        self.key_mapping: Dict[str, Dict[str, str]] = {}
        self.tries: Dict[str, Any] = {}
        self.hint_pattern: Dict[str, Any] = {}
        self._prepare_options(self.options)

    # =========================================================================
    # OPTIONS
    # =========================================================================

    def catalog(self) -> Dict[str, Set[str]]:
        """Commands allowed per key mapping section, both registries."""
        catalog: Dict[str, Set[str]] = {}
        for source in (self.registry.catalog(), self.frame_commands.catalog()):
            for mode, names in source.items():
                catalog.setdefault(mode, set()).update(names)
        return catalog

    def _prepare_options(self, options: Options) -> None:
        self.key_mapping = prepare_key_mapping(options.key_mapping, self.catalog())
        self.tries = build_tries(self.key_mapping)
        self.hint_pattern = prepare_hint_pattern(options.hint_pattern)

    def frame_payload(self) -> Dict[str, Any]:
        payload = self.options.frame_payload()
        payload["keyMapping"] = self.key_mapping
        payload["hintPattern"] = self.hint_pattern
        return payload

    def update_options(self, options: Options) -> None:
        """Replace the option set and push it to every connected frame."""
        self.options = options
        self._prepare_options(options)
        payload = {"command": "updateOptions", **self.frame_payload()}
        for ctx in list(self.tabs.values()):
            ctx.broadcast(payload)
        logging.info(f"Options pushed to {len(self.tabs)} tabs")

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def is_frame_command(self, name: str) -> bool:
        return self.frame_commands.has(name)

    def require_host(self) -> AbstractTabHost:
        if self.host is None:
            raise RuntimeError("no tab host is attached")
        return self.host

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def connect_frame(self, transport: Transport) -> int:
        """Adopt a new frame connection. Returns the assigned frame id."""
        sender = transport.sender or Sender()
        if sender.tab_id is None:
            raise ValueError("frame connection without a tab id")

        ctx = self.tabs.get(sender.tab_id)
        if ctx is not None and not ctx.closed and sender.is_top and TOP_FRAME_ID in ctx.frames:
            # A new top document replaces the tab's previous frame tree.
            logging.info(f"Tab {ctx.tab_id}: new top frame, previous context torn down")
            self._teardown(ctx)
        if ctx is None or ctx.closed:
            ctx = TabContext(sender.tab_id, self)
            self.tabs[sender.tab_id] = ctx

        frame_id = ctx.allocate_frame_id(sender.is_top)
        channel = Channel(
            transport,
            self.options.sweep_interval,
            self.options.stale_policy,
            name=f"tab:{ctx.tab_id}/frame:{frame_id}",
        )
        ctx.set_frame(frame_id, channel)
        channel.on_notification.add_listener(functools.partial(self._on_notification, ctx, frame_id))
        channel.on_request.add_listener(functools.partial(self._on_request, ctx, frame_id))
        channel.on_disconnect.add_listener(functools.partial(self._on_disconnect, ctx, frame_id))

        channel.notify({
            "command": "initFrame",
            "frameId": frame_id,
            "mode": ctx.mode.value if ctx.mode in (Mode.NORMAL, Mode.SUSPEND) else Mode.NORMAL.value,
            **self.frame_payload(),
        })
        logging.info(f"Tab {ctx.tab_id}: frame {frame_id} connected ({sender.url or 'no url'})")
        return frame_id

    def _on_notification(self, ctx: TabContext, frame_id: int, payload: Any, sender: Optional[Sender]) -> None:
        if ctx.closed:
            return
        command = payload.get("command") if isinstance(payload, dict) else None
        handler = NOTIFICATION_HANDLERS.get(command)
        if handler is None:
            logging.warning(f"Tab {ctx.tab_id}: unknown notification {command!r} from frame {frame_id}")
            return
        try:
            handler(ctx, frame_id, payload)
        except Exception as e:
            logging.warning(f"Tab {ctx.tab_id}: {command} from frame {frame_id} failed: {e}")

    def _on_request(self, ctx: TabContext, frame_id: int, payload: Any, sender: Optional[Sender]) -> Any:
        if ctx.closed:
            raise DisconnectedError(f"tab {ctx.tab_id} is closed", frame_id)
        command = payload.get("command") if isinstance(payload, dict) else None
        handler = REQUEST_HANDLERS.get(command)
        if handler is None:
            raise ValueError(f"unknown request {command!r}")
        return handler(ctx, frame_id, payload)

    def _on_disconnect(self, ctx: TabContext, frame_id: int, channel: Channel) -> None:
        if not ctx.remove_frame(frame_id, channel):
            return
        logging.info(f"Tab {ctx.tab_id}: frame {frame_id} disconnected")
        if frame_id == TOP_FRAME_ID:
            self._teardown(ctx)

    def _teardown(self, ctx: TabContext) -> None:
        ctx.reset()
        self.macro.on_tab_closed(ctx.tab_id)
        if self.tabs.get(ctx.tab_id) is ctx:
            del self.tabs[ctx.tab_id]

    def shutdown(self) -> None:
        for ctx in list(self.tabs.values()):
            for channel in list(ctx.frames.values()):
                channel.disconnect()
            self._teardown(ctx)
