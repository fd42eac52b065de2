"""
Unit tests for ResultStore, filter_history and merge_results.
"""

import threading

from models import DisplayItem
from search import ResultStore, filter_history, merge_results


class TestResultStore:
    def test_starts_empty(self):
        store = ResultStore()
        assert store.snapshot() == ()
        assert store.generation == 0
        assert len(store) == 0

    def test_replace_swaps_whole_list(self, result_factory):
        store = ResultStore()
        first = [DisplayItem.from_result(result_factory("a"), "search")]
        second = [DisplayItem.from_result(result_factory(v), "history") for v in ("b", "c")]

        store.replace(first, generation=1)
        snapshot = store.snapshot()
        store.replace(second, generation=2)

        assert [i.video_id for i in snapshot] == ["a"]
        assert [i.video_id for i in store.snapshot()] == ["b", "c"]
        assert store.generation == 2

    def test_snapshot_is_immutable(self, result_factory):
        store = ResultStore()
        items = [DisplayItem.from_result(result_factory("a"), "search")]
        store.replace(items)
        items.append(DisplayItem.from_result(result_factory("b"), "search"))

        assert isinstance(store.snapshot(), tuple)
        assert len(store) == 1

    def test_concurrent_readers_never_see_partial_lists(self, result_factory):
        store = ResultStore()
        lists = [
            [DisplayItem.from_result(result_factory(f"{n}-{i}"), "history") for i in range(n)]
            for n in (3, 7)
        ]
        seen_lengths = set()
        stop = threading.Event()

        def read():
            while not stop.is_set():
                seen_lengths.add(len(store.snapshot()))

        readers = [threading.Thread(target=read) for _ in range(4)]
        for reader in readers:
            reader.start()
        for n in range(500):
            store.replace(lists[n % 2], generation=n)
        stop.set()
        for reader in readers:
            reader.join()

        assert seen_lengths <= {0, 3, 7}


class TestFilterHistory:
    def test_empty_text_keeps_everything_in_order(self, entry_factory):
        entries = [entry_factory("a"), entry_factory("b")]
        assert filter_history(entries, "") == entries
        assert filter_history(entries, "   ") == entries

    def test_matches_title_and_label_case_insensitively(self, entry_factory):
        entries = [
            entry_factory("daft", title="Daft Punk - Get Lucky"),
            entry_factory("world", title="Around the World"),
            entry_factory("harder", title="Harder Better"),
        ]

        assert [e.video_id for e in filter_history(entries, "DAFT")] == ["daft"]
        assert [e.video_id for e in filter_history(entries, "Artist World")] == ["world"]

    def test_every_term_must_match(self, entry_factory):
        entries = [entry_factory("a", title="Get Lucky"), entry_factory("b", title="Get Up")]
        assert [e.video_id for e in filter_history(entries, "get lucky")] == ["a"]


class TestMergeResults:
    def test_live_result_first_then_history(self, result_factory, entry_factory):
        items = merge_results(result_factory("live"), [entry_factory("h1"), entry_factory("h2")])

        assert [i.video_id for i in items] == ["live", "h1", "h2"]
        assert [i.source for i in items] == ["search", "history", "history"]

    def test_without_live_result_only_history(self, entry_factory):
        items = merge_results(None, [entry_factory("h1")])
        assert [i.video_id for i in items] == ["h1"]

    def test_history_copy_of_live_result_is_not_repeated(self, result_factory, entry_factory):
        items = merge_results(result_factory("same"), [entry_factory("same"), entry_factory("h2")])
        assert [i.video_id for i in items] == ["same", "h2"]

    def test_tags_split_accessibility_label(self, result_factory):
        item = DisplayItem.from_result(result_factory("a"), "search")
        assert item.tags == ["Song", "Artist a", "3:00"]
