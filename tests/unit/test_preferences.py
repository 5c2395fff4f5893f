"""
Unit tests for viewer preferences and watch history.
"""

import json
from pathlib import Path

import pytest

from cyclecast.client.preferences import PreferencesStore, ViewerPreferences, WatchRecord


@pytest.mark.unit
class TestViewerPreferences:
    """Tests for ViewerPreferences."""

    def test_newest_first(self):
        prefs = ViewerPreferences()
        prefs.record_watch("abc", "A", watched_at_ms=1)
        prefs.record_watch("abc", "B", watched_at_ms=2)

        assert [r.item_id for r in prefs.previous("abc")] == ["B", "A"]

    def test_rewatch_moves_to_front(self):
        prefs = ViewerPreferences()
        for item_id in ("A", "B", "C", "A"):
            prefs.record_watch("abc", item_id, watched_at_ms=0)

        assert [r.item_id for r in prefs.previous("abc")] == ["A", "C", "B"]

    def test_history_capped_at_30(self):
        prefs = ViewerPreferences()
        for i in range(40):
            prefs.record_watch("abc", f"item-{i}", watched_at_ms=i)

        history = prefs.previous("abc")
        assert len(history) == 30
        assert history[0].item_id == "item-39"
        assert history[-1].item_id == "item-10"

    def test_history_per_channel(self):
        prefs = ViewerPreferences()
        prefs.record_watch("abc", "A", watched_at_ms=0)
        prefs.record_watch("solo", "A", watched_at_ms=0)

        assert len(prefs.previous("abc")) == 1
        assert len(prefs.previous("solo")) == 1
        assert prefs.previous("none") == []

    def test_previous_returns_copy(self):
        prefs = ViewerPreferences()
        prefs.record_watch("abc", "A", watched_at_ms=0)

        prefs.previous("abc").clear()

        assert len(prefs.previous("abc")) == 1


@pytest.mark.unit
class TestPreferencesStore:
    """Tests for JSON persistence."""

    def test_round_trip(self, temp_dir: Path):
        store = PreferencesStore(temp_dir / "prefs.json")
        prefs = ViewerPreferences(preferred_channel_id="abc")
        prefs.record_watch("abc", "B", title="Program B", media_ref="media-b", watched_at_ms=1234)

        store.save(prefs)
        loaded = store.load()

        assert loaded.preferred_channel_id == "abc"
        assert loaded.previous("abc") == [
            WatchRecord(item_id="B", title="Program B", media_ref="media-b", channel_id="abc", watched_at_ms=1234)
        ]

    def test_missing_file(self, temp_dir: Path):
        prefs = PreferencesStore(temp_dir / "absent.json").load()

        assert prefs.preferred_channel_id is None
        assert prefs.history == {}

    def test_corrupt_file(self, temp_dir: Path, caplog):
        path = temp_dir / "prefs.json"
        path.write_text("{not json")

        prefs = PreferencesStore(path).load()

        assert prefs.history == {}
        assert "unreadable" in caplog.text

    def test_malformed_channel_history_dropped(self, temp_dir: Path):
        path = temp_dir / "prefs.json"
        path.write_text(json.dumps({
            "preferred_channel_id": "abc",
            "history": {
                "abc": [{"item_id": "A", "channel_id": "abc", "watched_at_ms": 5}],
                "bad": [{"title": "no ids"}],
            },
        }))

        prefs = PreferencesStore(path).load()

        assert [r.item_id for r in prefs.previous("abc")] == ["A"]
        assert "bad" not in prefs.history

    def test_load_applies_cap(self, temp_dir: Path):
        path = temp_dir / "prefs.json"
        records = [{"item_id": str(i), "channel_id": "abc", "watched_at_ms": i} for i in range(10)]
        path.write_text(json.dumps({"history": {"abc": records}}))

        prefs = PreferencesStore(path, history_cap=4).load()

        assert len(prefs.previous("abc")) == 4
        assert prefs.history_cap == 4

    def test_save_creates_parent_dirs(self, temp_dir: Path):
        path = temp_dir / "nested" / "prefs.json"

        PreferencesStore(path).save(ViewerPreferences())

        assert path.exists()
        assert not path.with_suffix(".json.tmp").exists()
