"""Tests for the coordinator hub and per-tab contexts."""

import asyncio

import pytest

from core.modes import Mode
from core.options_config import OptionsConfig
from frames.page import TabPage
from gui.status import StatusEmitter
from messaging.exceptions import DisconnectedError, RemoteError
from messaging.transport import LocalTransport

from helpers import make_hub, open_page, settle, wait_until


class TestConnections:
    """Frame ids, initFrame and teardown."""

    def test_frames_get_ids_and_options(self):
        async def scenario():
            hub = make_hub()
            _, top, child = await open_page(hub)
            ctx = hub.tabs[1]
            return top.frame_id, child.frame_id, ctx.frame_ids(), sorted(top.tries)

        top_id, child_id, frame_ids, tries = asyncio.run(scenario())
        assert (top_id, child_id, frame_ids) == (0, 1, [0, 1])
        assert {"normal", "hint", "console"} <= set(tries)

    def test_connection_without_tab_id_is_refused(self):
        async def scenario():
            hub = make_hub()
            _, hub_end = LocalTransport.pair()
            with pytest.raises(ValueError):
                hub.connect_frame(hub_end)

        asyncio.run(scenario())

    def test_closing_top_frame_tears_down_tab(self):
        async def scenario():
            hub = make_hub()
            page, top, child = await open_page(hub)
            ctx = hub.tabs[1]
            page.close()
            await wait_until(lambda: 1 not in hub.tabs)
            return ctx.closed, ctx.frames

        closed, frames = asyncio.run(scenario())
        assert closed
        assert frames == {}

    def test_reloaded_page_gets_a_fresh_context(self):
        async def scenario():
            hub = make_hub()
            page, top, _ = await open_page(hub, with_child=False)
            first = hub.tabs[1]
            top = page.load("<body><a href='/x'>x</a></body>", "https://example.com/next")
            await top.wait_ready(1.0)
            await wait_until(lambda: 1 in hub.tabs and hub.tabs[1] is not first)
            return first.closed, hub.tabs[1].frame_ids()

        assert asyncio.run(scenario()) == (True, [0])

    def test_child_registration_is_confirmed_by_coordinator(self):
        async def scenario():
            hub = make_hub()
            _, top, child = await open_page(hub)
            claims = [
                top.request({"command": "registerChild", "frameId": frame_id})
                for frame_id in (1, 0, 99)
            ]
            own = child.request({"command": "registerChild", "frameId": 1})
            return await asyncio.gather(*claims, own), top.registry.children

        replies, children = asyncio.run(scenario())
        assert replies == [True, False, False, False]
        assert list(children.values()) == [1]

    def test_detached_child_is_forgotten(self):
        async def scenario():
            hub = make_hub()
            page, top, child = await open_page(hub)
            page.detach_frame(child)
            ctx = hub.tabs[1]
            await wait_until(lambda: ctx.frame_ids() == [0])
            with pytest.raises(DisconnectedError):
                await ctx.request(1, {"command": "collectFrameId"})
            with pytest.raises(RemoteError):
                await top.forward(1, {"command": "collectFrameId"})
            return ctx.closed

        assert asyncio.run(scenario()) is False


class TestModes:
    """Tab-wide mode changes."""

    def test_mode_change_reaches_every_frame(self):
        async def scenario():
            hub = make_hub()
            _, top, child = await open_page(hub)
            ctx = hub.tabs[1]
            child.handle_key("v")
            await wait_until(lambda: top.mode.mode is Mode.VISUAL and child.mode.mode is Mode.VISUAL)
            generation = ctx.generation
            top.handle_key("<Esc>")
            await wait_until(lambda: child.mode.mode is Mode.NORMAL)
            return ctx.mode, ctx.generation > generation, ctx.focused_frame_id

        assert asyncio.run(scenario()) == (Mode.NORMAL, True, 0)

    def test_session_modes_cannot_be_requested_directly(self):
        async def scenario():
            hub = make_hub()
            _, top, child = await open_page(hub)
            top.request_mode(Mode.HINT)
            top.request_mode(Mode.CONSOLE)
            await settle()
            return hub.tabs[1].mode, child.mode.mode

        assert asyncio.run(scenario()) == (Mode.NORMAL, Mode.NORMAL)

    def test_suspend_passes_keys_through(self):
        async def scenario():
            hub = make_hub()
            _, top, _ = await open_page(hub, with_child=False)
            top.handle_key("<C-Z>")
            await wait_until(lambda: top.mode.mode is Mode.SUSPEND)
            passed = top.handle_key("v")
            top.handle_key("<C-Z>")
            await wait_until(lambda: top.mode.mode is Mode.NORMAL)
            return passed

        assert asyncio.run(scenario()) is False

    def test_insert_mode_on_first_editable(self):
        async def scenario():
            hub = make_hub()
            page = TabPage(hub, 1)
            top = page.load(
                "<body><input type='hidden'><input id='q' type='text'><textarea id='t'></textarea></body>",
                "https://example.com/",
            )
            await top.wait_ready(1.0)
            top.handle_key("I")
            await wait_until(lambda: top.mode.mode is Mode.INSERT)
            first = top.document.active_element.get("id")
            top.handle_key("<Esc>")
            await wait_until(lambda: top.mode.mode is Mode.NORMAL)
            top.handle_key("A")
            await wait_until(lambda: top.mode.mode is Mode.INSERT)
            return first, top.document.active_element.get("id")

        assert asyncio.run(scenario()) == ("q", "t")

    def test_insert_mode_needs_editable_target(self):
        async def scenario():
            hub = make_hub()
            _, top, _ = await open_page(hub, with_child=False)
            top.handle_key("i")
            await settle()
            return top.last_message, top.mode.mode

        assert asyncio.run(scenario()) == ("Target element is not editable", Mode.NORMAL)


class TestCommands:
    """Background command routing."""

    def test_unknown_background_command(self):
        async def scenario():
            hub = make_hub()
            _, top, child = await open_page(hub)
            child.run_background("noSuchCommand")
            await wait_until(lambda: top.last_message is not None)
            return top.last_message

        assert asyncio.run(scenario()) == "noSuchCommand is unknown"

    def test_session_command_outside_its_mode_is_dropped(self):
        async def scenario():
            hub = make_hub()
            _, top, _ = await open_page(hub, with_child=False)
            hub.tabs[1].run_command("hint.nextHint")
            hub.tabs[1].run_command("console.execute")
            await settle()
            return top.last_message

        assert asyncio.run(scenario()) is None

    def test_focus_next_and_previous_frame(self):
        async def scenario():
            hub = make_hub()
            _, top, child = await open_page(hub)
            ctx = hub.tabs[1]
            top.handle_key("w")
            top.handle_key("w")
            await wait_until(lambda: ctx.focused_frame_id == 1 and child.document.has_focus)
            child_focused = child.document.has_focus
            child.handle_key("w")
            child.handle_key("W")
            await wait_until(lambda: ctx.focused_frame_id == 0 and top.document.has_focus)
            return child_focused, top.document.has_focus

        assert asyncio.run(scenario()) == (True, True)

    def test_spawned_failure_becomes_status_line(self):
        async def scenario():
            hub = make_hub()
            _, top, _ = await open_page(hub, with_child=False)

            async def broken():
                raise RuntimeError("boom")

            hub.tabs[1].spawn(broken(), "reload")
            await wait_until(lambda: top.last_message is not None)
            return top.last_message

        assert asyncio.run(scenario()) == "reload error (boom)"

    def test_child_messages_are_shown_by_top_frame(self):
        async def scenario():
            hub = make_hub()
            shown = []
            page = TabPage(hub, 1, status=StatusEmitter(lambda message, duration: shown.append(message)))
            top = page.load("<body><iframe id='f'></iframe></body>", "https://example.com/")
            await top.wait_ready(1.0)
            child = page.attach_frame(top, "#f", "<body></body>")
            await child.wait_ready(1.0)
            child.show_message("hello from child")
            await wait_until(lambda: shown)
            return shown, child.last_message

        assert asyncio.run(scenario()) == (["hello from child"], None)


class TestOptions:
    def test_update_options_reaches_frames(self):
        async def scenario():
            hub = make_hub()
            _, top, child = await open_page(hub)
            hub.update_options(OptionsConfig.build({
                "sweep_interval": 0,
                "key_mapping": {"normal": {"x": "toVisualMode"}},
            }))
            await wait_until(lambda: "x" in (child.tries["normal"].children))
            child.handle_key("x")
            await wait_until(lambda: top.mode.mode is Mode.VISUAL)
            return hub.key_mapping["normal"]["x"]

        assert asyncio.run(scenario()) == "toVisualMode"

    def test_catalog_rejects_commands_outside_their_modes(self):
        hub = make_hub(key_mapping={"normal": {"x": "hint.nextHint"}, "hint": {"x": "nextTab"}})
        assert "x" not in hub.key_mapping["normal"]
        assert "x" not in hub.key_mapping["hint"]
        assert "recordMacro" in hub.catalog()["normal"]
        assert "recordMacro" not in hub.catalog()["hint"]
