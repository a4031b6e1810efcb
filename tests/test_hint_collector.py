"""Tests for frame-local hint candidates, labels and filtering."""

import asyncio

from frames.document import Area, FrameDocument, Rect
from frames.frame_registry import FrameRegistry
from frames.hint_collector import SELF_SLOT, ChildSlot, HintCollector, filter_matches
from frames.window import FrameWindow, WindowArena


HTML = """
<body>
  <a href="/a">Alpha link</a>
  <a href="/hidden" style="display: none">Hidden</a>
  <iframe id="frame"></iframe>
  <button title="Close dialog"></button>
  <a href="/far">Far away</a>
</body>
"""

POSITIONS = {"/a": 10, "/far": 900}


def layout(element):
    if element.name == "iframe":
        return Rect(0, 100, 200, 200)
    if element.name == "button":
        return Rect(0, 50, 20, 20)
    return Rect(0, POSITIONS.get(element.get("href"), 0), 50, 10)


def make_collector(html=HTML, page_layout=None):
    window = FrameWindow(WindowArena())
    document = FrameDocument(html, "https://example.com/", page_layout)
    return HintCollector(document), FrameRegistry(window), window


class TestFilterMatches:
    """Word-wise, smart-case filter."""

    def test_every_word_must_match(self):
        assert filter_matches("Alpha link", "alp lin")
        assert not filter_matches("Alpha link", "alp zzz")

    def test_smart_case(self):
        assert filter_matches("Alpha", "alpha")
        assert not filter_matches("alpha", "Alpha")
        assert filter_matches("Alpha", "Alp")

    def test_empty_filter_matches_everything(self):
        assert filter_matches("anything", "   ")


class TestCollect:
    """Candidate enumeration in document order."""

    def test_hidden_elements_are_skipped(self):
        collector, registry, _ = make_collector()
        slots = collector.collect("link", "a, button", None, registry)
        assert slots == [SELF_SLOT, SELF_SLOT, SELF_SLOT]
        assert [FrameDocument.text_of(e) for e in collector.candidates] == ["Alpha link", "Close dialog", "Far away"]

    def test_area_excludes_offscreen_candidates(self):
        collector, registry, _ = make_collector(page_layout=layout)
        collector.collect("link", "a, button", Area(0, 0, 800, 600), registry)
        assert [e.get("href") for e in collector.candidates] == ["/a", None]

    def test_registered_child_frame_takes_a_slot(self):
        async def scenario():
            collector, registry, window = make_collector(page_layout=layout)
            child_window = FrameWindow(window.arena, window)
            frame_element = collector.document.query("#frame")[0]
            collector.document.bind_frame(frame_element, child_window.window_id)
            child_registry = FrameRegistry(child_window, interval=0.01)
            registry.start(0)
            child_registry.start(4)
            await child_registry.wait_registered(1.0)
            return collector.collect("link", "a", Area(0, 0, 800, 600), registry)

        slots = asyncio.run(scenario())
        assert slots == [SELF_SLOT, ChildSlot(4, Area(0, 0, 200, 200))]

    def test_unregistered_frame_is_skipped(self):
        collector, registry, _ = make_collector()
        slots = collector.collect("link", "a", None, registry)
        assert slots == [SELF_SLOT, SELF_SLOT]


class TestLabelsAndFocus:
    def setup_method(self):
        self.collector, registry, _ = make_collector()
        self.collector.collect("link", "a, button", None, registry)
        self.collector.set_labels([2, 5, 6], ["0", "-", "1"])

    def test_local_index_of(self):
        assert self.collector.local_index_of(5) == 1
        assert self.collector.local_index_of(3) is None

    def test_focus_and_auto_focus(self):
        assert self.collector.focus(2, auto_focus=True)
        assert self.collector.target().get("href") == "/far"
        assert self.collector.document.active_element is self.collector.target()
        assert not self.collector.focus(7)

    def test_target_index_after_recollection(self):
        registry = FrameRegistry(FrameWindow(WindowArena()))
        self.collector.focus(1)
        focused = self.collector.target()
        new_link = self.collector.document.soup.new_tag("a", href="/new")
        new_link.string = "New"
        self.collector.document.soup.body.insert(0, new_link)
        self.collector.collect("link", "a, button", None, registry)
        assert self.collector.target_index() == 2
        assert self.collector.candidates[2] is focused

    def test_mismatched_labels_are_truncated(self):
        self.collector.set_labels([0, 1], ["0", "1"])
        assert self.collector.global_indices == [0, 1]

    def test_filter_results(self):
        assert self.collector.filter_results("close") == [(2, False), (5, True), (6, False)]
        assert self.collector.apply_filter("a") == [True, True, True]
        assert self.collector.preview_filter == "a"

    def test_forget(self):
        self.collector.focus(0)
        self.collector.forget()
        assert len(self.collector) == 0
        assert self.collector.target() is None
        assert self.collector.target_index() is None
