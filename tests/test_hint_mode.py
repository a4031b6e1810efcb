"""End-to-end hint mode over a two-frame page.

The page has links One and Three in the top frame and Two and Four in a
child frame placed between them, so the global order is
One(0) Two(1) Four(2) Three(3) and the idList is [0, 1, 1, 0].
"""

import asyncio

from core.modes import Mode
from frames.frame_modes import HintMode, NormalMode
from frames.page import TabPage

from helpers import make_hub, open_page, wait_until


async def enter_hint_mode(hub, top, child):
    top.handle_key("f")
    ctx = hub.tabs[1]
    await wait_until(lambda: ctx.mode is Mode.HINT and isinstance(child.mode, HintMode) and top.hints.labels)
    return ctx, ctx.hint_session


def test_entering_hint_mode_labels_every_frame():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        return session.id_list, top.hints.labels, child.hints.labels, top.hints.target().get("href"), child.hints.target()

    id_list, top_labels, child_labels, top_target, child_target = asyncio.run(scenario())
    assert id_list == [0, 1, 1, 0]
    assert top_labels == ["0", "3"]
    assert child_labels == ["1", "2"]
    assert top_target == "/one"
    assert child_target is None


def test_digit_moves_focus_across_frames():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        await enter_hint_mode(hub, top, child)
        top.handle_key("2")
        await wait_until(lambda: child.hints.focused_index == 1)
        return top.hints.focused_index, child.hints.target().get("href")

    assert asyncio.run(scenario()) == (None, "/four")


def test_digits_too_large_are_trimmed_from_the_left():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        session.change_focus(3)
        session.handle_digit("9")
        after_nine = session.current_index
        session.handle_digit("1")
        return after_nine, session.current_index

    # "39" -> "9" -> "" selects the last hint; "31" -> "1".
    assert asyncio.run(scenario()) == (3, 1)


def test_frame_command_runs_on_focused_hint():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        await enter_hint_mode(hub, top, child)
        top.handle_key("2")
        await wait_until(lambda: child.hints.focused_index == 1)
        top.handle_key("c")
        await wait_until(lambda: child.document.events_of("click"))
        top.handle_key("m")
        top.handle_key("C")
        await wait_until(lambda: len(child.document.events_of("click")) == 2)
        return child.document.events

    events = asyncio.run(scenario())
    clicks = [event for event in events if event.type == "click"]
    assert [event.element.get("href") for event in clicks] == ["/four", "/four"]
    assert clicks[0].detail["shift"] is False
    assert clicks[1].detail["shift"] is True


def test_filter_commit_relabels_and_focuses_first_match():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        for key in ["/", "t", "w", "o", "<Enter>"]:
            top.handle_key(key)
        await wait_until(lambda: session.filter_text == "two" and child.hints.focused_index == 0)
        return session.filter_index_map, top.hints.labels, child.hints.labels, top.hints.focused_index

    index_map, top_labels, child_labels, top_focus = asyncio.run(scenario())
    assert index_map == [1]
    assert top_labels == ["-", "-"]
    assert child_labels == ["0", "-"]
    assert top_focus is None


def test_filter_without_match_is_rejected():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        for key in ["/", "z", "z", "<Enter>"]:
            top.handle_key(key)
        await wait_until(lambda: top.last_message == "No elements matched by zz")
        await wait_until(lambda: child.hints.preview_filter == "")
        return session.filter_text, session.filter_index_map

    assert asyncio.run(scenario()) == ("", [0, 1, 2, 3])


def test_filter_preview_and_cancel():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        for key in ["/", "f", "o"]:
            top.handle_key(key)
        await wait_until(lambda: child.hints.preview_filter == "fo")
        top.handle_key("<F1>")
        top.handle_key("<Backspace>")
        await wait_until(lambda: child.hints.preview_filter == "f")
        top.handle_key("<Esc>")
        await wait_until(lambda: child.hints.preview_filter == "")
        return ctx.mode, session.filter_text

    # Esc inside the filter only cancels the filter.
    assert asyncio.run(scenario()) == (Mode.HINT, "")


def test_escape_leaves_hint_mode():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        top.handle_key("<Esc>")
        await wait_until(lambda: isinstance(child.mode, NormalMode) and isinstance(top.mode, NormalMode))
        return ctx.mode, ctx.hint_session, len(top.hints), len(child.hints)

    assert asyncio.run(scenario()) == (Mode.NORMAL, None, 0, 0)


def test_unmapped_key_is_replayed_in_normal_mode():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, _ = await enter_hint_mode(hub, top, child)
        top.handle_key("v")
        await wait_until(lambda: ctx.mode is Mode.VISUAL)
        return top.mode.mode, child.mode.mode

    assert asyncio.run(scenario()) == (Mode.VISUAL, Mode.VISUAL)


def test_toggles_report_state():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        top.handle_key("f")
        top.handle_key("f")
        await wait_until(lambda: top.last_message == "Auto focus ON")
        top.handle_key("f")
        top.handle_key("z")
        await wait_until(lambda: top.last_message == "Overlapping OFF")
        return session.auto_focus, child.hints.overlap

    assert asyncio.run(scenario()) == (True, False)


def test_reconstruct_keeps_focused_element():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        top.handle_key("2")
        await wait_until(lambda: child.hints.focused_index == 1)

        soup = child.document.soup
        new_link = soup.new_tag("a", href="/zero")
        new_link.string = "Zero"
        soup.body.insert(0, new_link)
        top.handle_key("<C-L>")
        await wait_until(lambda: len(session.id_list) == 5 and child.hints.focused_index == 2)
        return session.id_list, session.current_index, child.hints.target().get("href"), ctx.hint_session is session

    id_list, current, href, same_session = asyncio.run(scenario())
    assert id_list == [0, 1, 1, 1, 0]
    assert current == 3
    assert href == "/four"
    assert same_session


def test_no_hints_found():
    async def scenario():
        hub = make_hub()
        page = TabPage(hub, 1)
        top = page.load("<body><p>nothing to click</p></body>", "https://example.com/")
        await top.wait_ready(1.0)
        top.handle_key("f")
        await wait_until(lambda: top.last_message == "No hints are found")
        return hub.tabs[1].mode, top.mode.mode

    assert asyncio.run(scenario()) == (Mode.NORMAL, Mode.NORMAL)


def test_hint_keys_after_child_frame_detached():
    async def scenario():
        hub = make_hub()
        page, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        page.detach_frame(child)
        await wait_until(lambda: 1 not in ctx.frames)
        top.handle_key("3")
        await wait_until(lambda: top.hints.focused_index == 1)
        for key in ["/", "t", "h", "<Enter>"]:
            top.handle_key(key)
        await wait_until(lambda: session.filter_text == "th")
        return session.filter_index_map, ctx.mode

    assert asyncio.run(scenario()) == ([3], Mode.HINT)


def test_focus_change_blurs_old_frame_before_focusing_new():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        sent = []
        post = ctx.post

        def recording_post(frame_id, payload):
            sent.append((frame_id, payload["command"]))
            post(frame_id, payload)

        ctx.post = recording_post
        session.change_focus(1)
        across = list(sent)
        sent.clear()
        session.change_focus(2)
        return across, list(sent)

    across, within = asyncio.run(scenario())
    assert across == [(0, "blurHintLink"), (1, "focusHintLink")]
    assert within == [(1, "focusHintLink")]



def test_same_filter_twice_gives_same_index_map():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        first = await session.commit_filter("o")
        first_map = list(session.filter_index_map)
        cleared = await session.commit_filter("")
        cleared_map = list(session.filter_index_map)
        second = await session.commit_filter("o")
        return (first, cleared, second), first_map, cleared_map, session.filter_index_map

    committed, first_map, cleared_map, second_map = asyncio.run(scenario())
    assert committed == (True, True, True)
    assert cleared_map == [0, 1, 2, 3]
    assert first_map == second_map == [0, 1, 2]


def test_digit_pair_drops_leading_digit_past_the_last_hint():
    async def scenario():
        hub = make_hub()
        page = TabPage(hub, 1)
        links = "".join(f'<a href="/{i}">Link {i}</a>' for i in range(12))
        top = page.load(f"<body>{links}</body>", "https://example.com/")
        await top.wait_ready(1.0)
        top.handle_key("f")
        ctx = hub.tabs[1]
        await wait_until(lambda: ctx.mode is Mode.HINT and ctx.hint_session is not None
                         and len(ctx.hint_session.id_list) == 12)
        session = ctx.hint_session
        start = session.current_index
        session.handle_digit("1")
        after_one = session.current_index
        session.handle_digit("5")
        return start, after_one, session.current_index

    # "0" + "1" is 1; "1" + "5" is 15, past the last hint, so only "5" stays.
    assert asyncio.run(scenario()) == (0, 1, 5)


def test_non_ascii_digit_is_replayed_in_normal_mode():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        session.handle_key("²", 0)
        await wait_until(lambda: ctx.mode is Mode.NORMAL and isinstance(top.mode, NormalMode))
        return session.current_index, ctx.hint_session, top.mode.count

    assert asyncio.run(scenario()) == (0, None, "0")


def test_non_ascii_digit_does_not_become_a_count():
    async def scenario():
        hub = make_hub()
        _, top, child = await open_page(hub)
        handled = top.handle_key("²")
        count = top.mode.count
        top.handle_key("f")
        await wait_until(lambda: hub.tabs[1].mode is Mode.HINT and isinstance(top.mode, HintMode))
        return handled, count

    assert asyncio.run(scenario()) == (False, "0")


def test_reconstruct_leaves_hint_mode_when_focused_frame_is_gone():
    async def scenario():
        hub = make_hub()
        page, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        top.handle_key("2")
        await wait_until(lambda: child.hints.focused_index == 1)
        page.detach_frame(child)
        await wait_until(lambda: 1 not in ctx.frames)
        top.handle_key("<C-L>")
        await wait_until(lambda: ctx.mode is Mode.NORMAL and isinstance(top.mode, NormalMode))
        return ctx.hint_session, session.live, top.last_message or ""

    hint_session, live, message = asyncio.run(scenario())
    assert hint_session is None
    assert not live
    assert "error" not in message


def test_reconstruct_when_focused_frame_goes_after_collection():
    async def scenario():
        hub = make_hub()
        page, top, child = await open_page(hub)
        ctx, session = await enter_hint_mode(hub, top, child)
        session.change_focus(2)

        async def stale_collect():
            # The top frame still reported the child when it answered.
            return [0, 1, 1, 0]

        session._collect = stale_collect
        page.detach_frame(child)
        await wait_until(lambda: 1 not in ctx.frames)
        await session.reconstruct()
        return ctx.mode, ctx.hint_session

    assert asyncio.run(scenario()) == (Mode.NORMAL, None)


async def attach(page, parent, selector, html):
    frame = page.attach_frame(parent, selector, html, "https://frames.example.com/")
    await frame.wait_ready(1.0)
    await frame.registry.wait_registered(1.0)
    return frame


async def hint_id_list(hub, top):
    top.handle_key("f")
    ctx = hub.tabs[1]
    await wait_until(lambda: ctx.mode is Mode.HINT and ctx.hint_session is not None)
    return ctx.hint_session.id_list


def test_hints_follow_document_order_across_sibling_frames():
    async def scenario():
        hub = make_hub()
        page = TabPage(hub, 1)
        top = page.load(
            '<body><a href="/t1">T1</a><a href="/t2">T2</a>'
            '<iframe id="a"></iframe><iframe id="b"></iframe></body>',
            "https://example.com/",
        )
        await top.wait_ready(1.0)
        first = await attach(page, top, "#a",
                             '<body><a href="/a1">A1</a><a href="/a2">A2</a><a href="/a3">A3</a></body>')
        second = await attach(page, top, "#b", "<body><p>no links</p></body>")
        id_list = await hint_id_list(hub, top)
        return first.frame_id, second.frame_id, id_list

    assert asyncio.run(scenario()) == (1, 2, [0, 0, 1, 1, 1])


def test_hints_recurse_into_nested_frames():
    async def scenario():
        hub = make_hub()
        page = TabPage(hub, 1)
        top = page.load(
            '<body><a href="/one">One</a><iframe id="a"></iframe>'
            '<iframe id="b"></iframe><a href="/last">Last</a></body>',
            "https://example.com/",
        )
        await top.wait_ready(1.0)
        middle = await attach(page, top, "#a",
                              '<body><a href="/a1">A1</a><iframe id="g"></iframe>'
                              '<a href="/a2">A2</a><a href="/a3">A3</a></body>')
        inner = await attach(page, middle, "#g", '<body><a href="/g1">G1</a></body>')
        await attach(page, top, "#b", "<body></body>")
        id_list = await hint_id_list(hub, top)
        await wait_until(lambda: inner.hints.labels and middle.hints.labels)
        return id_list, inner.hints.labels, middle.hints.labels

    id_list, inner_labels, middle_labels = asyncio.run(scenario())
    assert id_list == [0, 1, 2, 1, 1, 0]
    assert inner_labels == ["2"]
    assert middle_labels == ["1", "3", "4"]
