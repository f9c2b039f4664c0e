"""Tests for the key-value store (in-memory backend + KeyValueStore facade)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from src.services.store import InMemoryStoreBackend, KeyValueStore, RedisStoreBackend, _escape_glob


# -----------------------------------------------------------------------
# InMemoryStoreBackend tests
# -----------------------------------------------------------------------


class TestInMemoryStoreBackend:
    async def test_get_set_basic(self) -> None:
        backend = InMemoryStoreBackend()
        await backend.set("key1", b"value1")
        assert await backend.get("key1") == b"value1", "get should return the value that was set"

    async def test_get_missing_key_returns_none(self) -> None:
        backend = InMemoryStoreBackend()
        assert await backend.get("nonexistent") is None

    async def test_delete_removes_key(self) -> None:
        backend = InMemoryStoreBackend()
        await backend.set("key1", b"value1")
        await backend.delete("key1")
        assert await backend.get("key1") is None, "get should return None after delete"

    async def test_delete_nonexistent_key_no_error(self) -> None:
        backend = InMemoryStoreBackend()
        await backend.delete("nonexistent")

    async def test_exists(self) -> None:
        backend = InMemoryStoreBackend()
        await backend.set("key1", b"value1")
        assert await backend.exists("key1") is True
        assert await backend.exists("key2") is False

    async def test_nothing_is_evicted_for_space(self) -> None:
        backend = InMemoryStoreBackend()
        for i in range(5000):
            await backend.set(f"k{i}", b"x")
        assert backend.size == 5000, "a store must never drop records to save space"
        assert await backend.get("k0") == b"x"

    async def test_ttl_expiry(self) -> None:
        backend = InMemoryStoreBackend()
        with patch("src.services.store.time.monotonic", return_value=1000.0):
            await backend.set("session", b"user", ttl_seconds=60)
        with patch("src.services.store.time.monotonic", return_value=1059.0):
            assert await backend.get("session") == b"user", "entry should live until its TTL elapses"
        with patch("src.services.store.time.monotonic", return_value=1061.0):
            assert await backend.get("session") is None, "entry should be gone after its TTL"

    async def test_scan_prefix(self) -> None:
        backend = InMemoryStoreBackend()
        await backend.set("ai_log:1", b"a")
        await backend.set("ai_log:2", b"b")
        await backend.set("grievance:1", b"c")
        assert sorted(await backend.scan_prefix("ai_log:")) == [b"a", b"b"]


# -----------------------------------------------------------------------
# KeyValueStore tests
# -----------------------------------------------------------------------


class TestKeyValueStore:
    async def test_json_round_trip(self) -> None:
        store = KeyValueStore.in_memory()
        document = {"id": "g1", "comments": [{"text": "hi"}], "isAnonymous": False}
        await store.set("grievance:g1", document)
        assert await store.get("grievance:g1") == document

    async def test_default_for_missing_key(self) -> None:
        store = KeyValueStore.in_memory()
        assert await store.get("missing", []) == []

    async def test_namespace_isolation(self) -> None:
        store = KeyValueStore.in_memory(namespace="grievease:")
        await store.set("departments", ["x"])
        assert await store.exists("departments") is True
        assert store.backend_name == "memory"

    async def test_scan_prefix_decodes_values(self) -> None:
        store = KeyValueStore.in_memory(namespace="ns:")
        await store.set("ai_log:a", {"n": 1})
        await store.set("ai_log:b", {"n": 2})
        await store.set("user:a", {"n": 3})
        values = await store.scan_prefix("ai_log:")
        assert sorted(v["n"] for v in values) == [1, 2]

    async def test_unreachable_redis_falls_back_to_memory(self) -> None:
        store = KeyValueStore(redis_url="redis://localhost:6379/0")
        with patch.object(RedisStoreBackend, "ping", AsyncMock(return_value=False)):
            await store.set("k", "v")
            assert await store.get("k") == "v"
        assert store.backend_name == "memory"

    async def test_redis_errors_after_probe_propagate(self) -> None:
        store = KeyValueStore(redis_url="redis://localhost:6379/0")
        with (
            patch.object(RedisStoreBackend, "ping", AsyncMock(return_value=True)),
            patch.object(RedisStoreBackend, "set", AsyncMock(side_effect=ConnectionError("down"))),
        ):
            with pytest.raises(ConnectionError):
                await store.set("k", "v")
        assert store.backend_name == "redis"


class TestEscapeGlob:
    def test_metacharacters_are_escaped(self) -> None:
        assert _escape_glob("ai_log:*") == "ai_log:\\*"
        assert _escape_glob("a?[b]") == "a\\?\\[b\\]"

    def test_plain_text_unchanged(self) -> None:
        assert _escape_glob("user_grievances:42") == "user_grievances:42"
