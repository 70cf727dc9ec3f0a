"""Tests for the plugin cache, throttles and snapshots."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

from healthmon.cache import Cache, create_throttle, is_throttled, snapshot_since_last


class TestCache:
    def test_roundtrip_json_values(self, cache) -> None:
        cache.set("k", {"a": [1, 2], "b": None})
        assert cache.get("k") == {"a": [1, 2], "b": None}
        assert cache.has("k")

    def test_missing_default(self, cache) -> None:
        assert cache.get("nope") is None
        assert cache.get("nope", 5) == 5
        assert not cache.has("nope")

    def test_falsy_values_are_present(self, cache) -> None:
        cache.set("zero", 0)
        assert cache.has("zero")
        assert cache.get("zero", 99) == 0

    def test_overwrite_and_delete(self, cache) -> None:
        cache.set("k", 1)
        cache.set("k", 2)
        assert cache.get("k") == 2
        cache.delete("k")
        assert not cache.has("k")

    def test_expired_reads_as_missing(self, cache) -> None:
        cache.set("old", 1, expires=datetime.now(timezone.utc) - timedelta(seconds=1))
        cache.set("new", 1, expires=timedelta(hours=1))
        assert not cache.has("old")
        assert cache.has("new")
        assert cache.cleanup_expired() == 1

    def test_persists_across_instances(self, tmp_path) -> None:
        path = tmp_path / "c.db"
        first = Cache(path)
        first.set("k", "v")
        first.close()
        second = Cache(path)
        try:
            assert second.get("k") == "v"
        finally:
            second.close()

    def test_wal_mode(self, tmp_path) -> None:
        c = Cache(tmp_path / "c.db")
        c.close()
        conn = sqlite3.connect(str(tmp_path / "c.db"))
        try:
            assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        finally:
            conn.close()


class TestThrottle:
    def test_create_and_check(self, cache) -> None:
        assert is_throttled(cache, "alert") is None
        expires = create_throttle(cache, "alert", 60)
        assert is_throttled(cache, "alert") == expires
        assert cache.get("throttle-alert")["seconds"] == 60

    def test_elapsed_throttle(self, cache) -> None:
        create_throttle(cache, "alert", 0)
        assert is_throttled(cache, "alert") is None


class TestSnapshot:
    def test_first_sample_is_baseline(self, cache) -> None:
        assert snapshot_since_last(cache, "rx", 100) is None
        assert snapshot_since_last(cache, "rx", 160) == 60
        assert snapshot_since_last(cache, "rx", 150) == -10
        assert cache.get("rx-snapshot")["value"] == 150
