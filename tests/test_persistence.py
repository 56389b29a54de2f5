"""Tests for persistence stores.

Covers:
  1. JsonStore raw I/O (missing file, round trip, corrupt JSON, atomic write)
  2. SnapshotStore.load() hydration and self-healing of stale data
  3. Debounced scheduling, flush-on-shutdown and write-failure handling
"""

from __future__ import annotations

import json
import threading
import time

import pytest

from chaos_organizer.models import MessageKind
from chaos_organizer.persistence import SnapshotStore
from chaos_organizer.persistence._base import JsonStore
from chaos_organizer.store import MessageStore


# ---------------------------------------------------------------------------
# Base JsonStore
# ---------------------------------------------------------------------------


class TestJsonStore:
    def test_load_raw_nonexistent(self, tmp_path):
        store = JsonStore(tmp_path / "nope.json")
        assert store.load_raw() == {}

    def test_save_and_load_raw(self, tmp_path):
        store = JsonStore(tmp_path / "data.json")
        store.save_raw({"key": "value", "emoji": "\U0001f60a"})
        assert store.load_raw() == {"key": "value", "emoji": "\U0001f60a"}

    def test_load_raw_corrupt_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("not valid json{{{")
        assert JsonStore(path).load_raw() == {}

    def test_save_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "deep" / "nested" / "store.json"
        store = JsonStore(path)
        store.save_raw({"a": 1})
        assert path.exists()
        assert store.load_raw() == {"a": 1}

    def test_save_leaves_no_temp_file(self, tmp_path):
        path = tmp_path / "data.json"
        JsonStore(path).save_raw([1, 2, 3])
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]

    def test_save_overwrites(self, tmp_path):
        store = JsonStore(tmp_path / "data.json")
        store.save_raw({"v": 1})
        store.save_raw({"v": 2})
        assert store.load_raw() == {"v": 2}


# ---------------------------------------------------------------------------
# SnapshotStore.load
# ---------------------------------------------------------------------------


class TestSnapshotLoad:
    def test_missing_file(self, snapshot):
        store = MessageStore(snapshot)
        assert snapshot.load(store) is False
        assert store.messages == []

    def test_corrupt_file_keeps_store_empty(self, snapshot, data_file):
        data_file.parent.mkdir(parents=True)
        data_file.write_text("{broken")
        store = MessageStore(snapshot)
        assert snapshot.load(store) is False
        assert store.counts()["messages"] == 0

    def test_non_object_is_ignored(self, snapshot, data_file):
        data_file.parent.mkdir(parents=True)
        data_file.write_text("[1, 2]")
        assert snapshot.load(MessageStore(snapshot)) is False

    def test_round_trip(self, persisted_store, data_file):
        store, snapshot = persisted_store
        pinned = store.add_message("pin me", pinned=True)
        fav = store.add_message("https://x.test", favorite=True)
        store.add_reminder("r")
        store.add_sticker("s", ":)", "faces")
        assert snapshot.flush() is True

        second = SnapshotStore(data_file, delay=60)
        reloaded = MessageStore(second)
        assert second.load(reloaded) is True
        assert [m.id for m in reloaded.messages] == [pinned.id, fav.id]
        assert reloaded.pinned_message.id == pinned.id
        assert reloaded.favorites == {fav.id}
        assert reloaded.find_message_by_id(fav.id).kind is MessageKind.LINK
        assert reloaded.counts()["reminders"] == 1
        assert reloaded.stickers[0].category == "faces"

    def test_load_does_not_schedule_a_write(self, persisted_store, data_file):
        store, snapshot = persisted_store
        store.add_message("x")
        snapshot.flush()
        assert snapshot.load(store) is True
        assert snapshot.pending is False

    def test_dangling_pinned_id(self, snapshot, data_file):
        data_file.parent.mkdir(parents=True)
        data_file.write_text(
            json.dumps(
                {
                    "messages": [
                        {"id": "a", "type": "text", "content": "a",
                         "timestamp": "2026-01-01T00:00:00.000Z", "pinned": True}
                    ],
                    "favorites": [],
                    "pinnedMessage": {"id": "gone"},
                }
            )
        )
        store = MessageStore(snapshot)
        snapshot.load(store)
        assert store.pinned_message is None
        assert store.find_message_by_id("a").pinned is False

    def test_missing_kind_is_reinferred(self, snapshot, data_file):
        data_file.parent.mkdir(parents=True)
        data_file.write_text(
            json.dumps(
                {
                    "messages": [
                        {"id": "a", "content": "https://x.test",
                         "timestamp": "2026-01-01T00:00:00.000Z"},
                        {"id": "b", "type": "bogus", "content": "/u/p.png",
                         "timestamp": "2026-01-01T00:00:00.000Z",
                         "metadata": {"fileName": "p.png", "mimeType": "image/png"}},
                    ]
                }
            )
        )
        store = MessageStore(snapshot)
        snapshot.load(store)
        assert store.find_message_by_id("a").kind is MessageKind.LINK
        assert store.find_message_by_id("b").kind is MessageKind.IMAGE

    def test_out_of_range_numbers_are_skipped(self, snapshot, data_file):
        data_file.parent.mkdir(parents=True)
        data_file.write_text(
            '{"messages": ['
            '{"id": "huge", "content": "x", "timestamp": 1e22},'
            '{"id": "inf", "content": "x", "timestamp": 1e400},'
            '{"id": "ok", "content": "x", "timestamp": "2026-01-01T00:00:00Z",'
            ' "metadata": [{"fileName": "a.bin", "fileSize": 1e400}]}'
            '], "reminders": [{"id": "r", "text": "x", "triggerAt": -1e22}]}'
        )
        store = MessageStore(snapshot)
        assert snapshot.load(store) is True
        assert [m.id for m in store.messages] == ["ok"]
        assert store.messages[0].metadata[0].file_size == 0
        assert store.reminders == []

    def test_bad_entries_are_skipped(self, snapshot, data_file):
        data_file.parent.mkdir(parents=True)
        data_file.write_text(
            json.dumps(
                {
                    "messages": [
                        "junk",
                        {"id": "bad", "content": "x", "timestamp": "not-a-date"},
                        {"id": "ok", "content": "x", "timestamp": "2026-01-01T00:00:00Z"},
                    ],
                    "reminders": "nope",
                }
            )
        )
        store = MessageStore(snapshot)
        assert snapshot.load(store) is True
        assert [m.id for m in store.messages] == ["ok"]
        assert store.reminders == []

    def test_favorites_fall_back_to_flags(self, snapshot, data_file):
        data_file.parent.mkdir(parents=True)
        data_file.write_text(
            json.dumps(
                {
                    "messages": [
                        {"id": "a", "content": "a", "timestamp": "2026-01-01T00:00:00Z",
                         "favorite": True},
                        {"id": "b", "content": "b", "timestamp": "2026-01-01T00:00:00Z"},
                    ]
                }
            )
        )
        store = MessageStore(snapshot)
        snapshot.load(store)
        assert store.favorites == {"a"}


# ---------------------------------------------------------------------------
# Debounced writes
# ---------------------------------------------------------------------------


class TestDebounce:
    def test_burst_collapses_into_one_write(self, data_file, monkeypatch):
        snapshot = SnapshotStore(data_file, delay=0.05)
        store = MessageStore(snapshot)
        writes = []
        monkeypatch.setattr(snapshot, "save_raw", lambda data: writes.append(data))

        for i in range(10):
            store.add_message(str(i))
        deadline = time.monotonic() + 2
        while not writes and time.monotonic() < deadline:
            time.sleep(0.02)
        time.sleep(0.1)

        assert len(writes) == 1
        assert len(writes[0]["messages"]) == 10
        assert snapshot.pending is False

    def test_schedule_marks_pending(self, persisted_store):
        store, snapshot = persisted_store
        assert snapshot.pending is False
        store.add_message("x")
        assert snapshot.pending is True

    def test_flush_writes_pending_state(self, persisted_store, data_file):
        store, snapshot = persisted_store
        store.add_message("last words")
        assert data_file.exists() is False

        assert snapshot.flush() is True

        on_disk = json.loads(data_file.read_text())
        assert [m["content"] for m in on_disk["messages"]] == ["last words"]
        assert snapshot.pending is False
        assert snapshot.write_count == 1

    def test_flush_without_pending_does_not_write(self, snapshot):
        MessageStore(snapshot)
        assert snapshot.flush() is True
        assert snapshot.write_count == 0

    def test_cancel_drops_pending_write(self, persisted_store, data_file):
        store, snapshot = persisted_store
        store.add_message("x")
        snapshot.cancel()
        assert snapshot.pending is False
        assert snapshot.flush() is True
        assert not data_file.exists()

    def test_write_failure_is_swallowed(self, persisted_store, monkeypatch):
        store, snapshot = persisted_store

        def boom(data):
            raise OSError("disk full")

        monkeypatch.setattr(snapshot, "save_raw", boom)
        store.add_message("x")
        assert snapshot.flush() is False
        # In-memory state is still authoritative
        assert store.counts()["messages"] == 1

    def test_persist_sync_without_source(self, snapshot):
        assert snapshot.persist_sync() is False

    def test_failed_write_is_retried_by_flush(self, persisted_store, data_file, monkeypatch):
        store, snapshot = persisted_store
        real_save = snapshot.save_raw
        calls = []

        def flaky(data):
            calls.append(data)
            if len(calls) == 1:
                raise OSError("disk full")
            real_save(data)

        monkeypatch.setattr(snapshot, "save_raw", flaky)
        store.add_message("x")
        assert snapshot.persist_sync() is False
        assert snapshot.flush() is True
        assert json.loads(data_file.read_text())["messages"][0]["content"] == "x"

    def test_flush_waits_for_write_in_flight(self, data_file, monkeypatch):
        snapshot = SnapshotStore(data_file, delay=0.01)
        store = MessageStore(snapshot)
        real_save = snapshot.save_raw
        started = threading.Event()

        def slow_save(data):
            started.set()
            time.sleep(0.3)
            real_save(data)

        monkeypatch.setattr(snapshot, "save_raw", slow_save)
        store.add_message("last words")
        assert started.wait(timeout=2)

        assert snapshot.flush() is True
        assert data_file.exists()
        assert json.loads(data_file.read_text())["messages"][0]["content"] == "last words"

    def test_flush_writes_when_timer_fired_but_not_yet_written(self, persisted_store, data_file):
        store, snapshot = persisted_store
        store.add_message("last words")
        # Same state _fire() leaves behind just before it takes the write lock
        with snapshot._timer_lock:
            snapshot._timer.cancel()
            snapshot._timer = None
        assert snapshot.pending is False

        assert snapshot.flush() is True
        assert json.loads(data_file.read_text())["messages"][0]["content"] == "last words"
        assert snapshot.write_count == 1

    def test_persist_async(self, persisted_store, data_file):
        store, snapshot = persisted_store
        store.add_message("bg")
        thread = snapshot.persist_async()
        thread.join(timeout=5)
        assert json.loads(data_file.read_text())["messages"][0]["content"] == "bg"

    @pytest.mark.parametrize("delay", [0.0, 0.01])
    def test_short_delays_still_write(self, data_file, delay):
        snapshot = SnapshotStore(data_file, delay=delay)
        store = MessageStore(snapshot)
        store.add_message("x")
        deadline = time.monotonic() + 2
        while snapshot.write_count == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert snapshot.write_count == 1
        assert data_file.exists()
