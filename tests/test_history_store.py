"""
Unit tests for the JSON-backed HistoryStore.
"""

import json
from datetime import datetime, timezone

from models import HistoryEntry, parse_timestamp
from services import HistoryStore


class TestHistoryStore:
    def test_missing_file_loads_empty(self, history_store):
        assert history_store.load() == []

    def test_loads_newest_first(self, history_store, entry_factory):
        history_store.save(entry_factory("old", minutes_ago=30), limit=5)
        history_store.save(entry_factory("mid", minutes_ago=20), limit=5)
        history_store.save(entry_factory("new", minutes_ago=10), limit=5)

        assert [e.video_id for e in history_store.load()] == ["new", "mid", "old"]

    def test_same_video_id_keeps_most_recent(self, history_store, entry_factory):
        history_store.save(entry_factory("x", title="Old title", minutes_ago=30), limit=5)
        history_store.save(entry_factory("y", minutes_ago=20), limit=5)
        history_store.save(entry_factory("x", title="New title", minutes_ago=10), limit=5)

        entries = history_store.load()
        assert [e.video_id for e in entries] == ["x", "y"]
        assert entries[0].title == "New title"

    def test_older_duplicate_does_not_replace_newer(self, history_store, entry_factory):
        history_store.save(entry_factory("x", title="Newer", minutes_ago=1), limit=5)
        history_store.save(entry_factory("x", title="Older", minutes_ago=60), limit=5)

        entries = history_store.load()
        assert len(entries) == 1
        assert entries[0].title == "Newer"

    def test_limit_evicts_oldest(self, history_store, entry_factory):
        for n in range(7):
            history_store.save(entry_factory(f"v{n}", minutes_ago=100 - n), limit=5)

        assert [e.video_id for e in history_store.load()] == ["v6", "v5", "v4", "v3", "v2"]

    def test_zero_limit_writes_nothing(self, history_store, entry_factory):
        history_store.save(entry_factory("x"), limit=0)
        assert history_store.load() == []

    def test_trim_shrinks_existing_history(self, history_store, entry_factory):
        for n in range(5):
            history_store.save(entry_factory(f"v{n}", minutes_ago=100 - n), limit=20)

        history_store.trim(2)

        assert [e.video_id for e in history_store.load()] == ["v4", "v3"]

    def test_clear_removes_file(self, history_store, entry_factory):
        history_store.save(entry_factory("x"), limit=5)
        history_store.clear()
        history_store.clear()

        assert history_store.load() == []

    def test_malformed_records_are_skipped(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps([
            {"VideoId": "ok", "Title": "Fine", "ThumbnailUrl": "u", "AccessibilityData": "Song",
             "Timestamp": datetime(2024, 1, 1).isoformat()},
            {"VideoId": "broken", "Title": None},
            "not a record",
        ]), encoding="utf-8")

        entries = HistoryStore(str(path)).load()

        assert [e.video_id for e in entries] == ["ok"]

    def test_invalid_json_loads_empty(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("{not json", encoding="utf-8")

        assert HistoryStore(str(path)).load() == []

    def test_non_utf8_file_loads_empty(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_bytes(b"\xff\xfe[garbage")

        assert HistoryStore(str(path)).load() == []

    def test_offset_timestamps_compare_with_local_ones(self, history_store, result_factory):
        records = [{
            "VideoId": "dotnet",
            "Title": "Written elsewhere",
            "ThumbnailUrl": "https://example.com/t.jpg",
            "AccessibilityData": "Song • Someone",
            "Timestamp": "2025-03-10T14:23:45.1234567+09:00",
        }, {
            "VideoId": "zulu",
            "Title": "Also elsewhere",
            "ThumbnailUrl": "https://example.com/t.jpg",
            "AccessibilityData": "Song • Someone",
            "Timestamp": "2025-03-10T05:00:00Z",
        }]
        with open(history_store.filename, "w", encoding="utf-8") as f:
            json.dump(records, f)

        history_store.save(HistoryEntry.from_result(result_factory("new")), limit=5)
        entries = history_store.load()

        assert [e.video_id for e in entries] == ["new", "dotnet", "zulu"]
        assert all(e.timestamp.tzinfo is None for e in entries)

    def test_file_round_trips_field_names(self, history_store, entry_factory):
        history_store.save(entry_factory("x"), limit=5)

        with open(history_store.filename, encoding="utf-8") as f:
            records = json.load(f)

        assert set(records[0]) == {"VideoId", "Title", "ThumbnailUrl", "AccessibilityData", "Timestamp"}


class TestParseTimestamp:
    def test_naive_stamp_is_kept(self):
        assert parse_timestamp("2024-01-01T12:00:00") == datetime(2024, 1, 1, 12, 0)

    def test_aware_stamp_becomes_naive_local_time(self):
        stamp = parse_timestamp("2024-01-01T12:00:00+00:00")

        assert stamp.tzinfo is None
        assert stamp == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)

    def test_seven_fraction_digits_are_truncated(self):
        assert parse_timestamp("2024-01-01T12:00:00.1234567").microsecond == 123456

    def test_short_fraction_is_padded(self):
        assert parse_timestamp("2024-01-01T12:00:00.5").microsecond == 500000
