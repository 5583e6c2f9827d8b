"""
Tests for the identity snapshot cache.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest

from facematch.core.cache import IdentityCache
from facematch.core.errors import IdentityStoreError
from facematch.core.schema import Identity


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def identity(identity_id, value=0.0):
    return Identity(identity_id=identity_id, name=identity_id, embeddings=[np.full(4, value, dtype=np.float32)])


def paged_store(identities):
    """Mock store whose get_identities(page, size) slices `identities`."""
    store = MagicMock()
    store.get_identities.side_effect = lambda page, size: identities[(page - 1) * size:page * size]
    return store


class TestRefresh:

    def test_empty_before_first_load(self):
        cache = IdentityCache(MagicMock(), page_size=10)
        assert cache.get() == []

    def test_get_does_not_reload(self):
        store = paged_store([identity("a")])
        cache = IdentityCache(store, page_size=10)

        cache.get()

        store.get_identities.assert_not_called()

    def test_concatenates_pages_until_short_page(self):
        items = [identity(f"id{i}") for i in range(7)]
        store = paged_store(items)
        cache = IdentityCache(store, page_size=3)

        cache.refresh()

        assert [i.identity_id for i in cache.get()] == [f"id{i}" for i in range(7)]
        assert store.get_identities.call_count == 3

    def test_exact_multiple_reads_one_empty_page(self):
        store = paged_store([identity(f"id{i}") for i in range(6)])
        cache = IdentityCache(store, page_size=3)

        cache.refresh()

        assert len(cache.get()) == 6
        assert store.get_identities.call_count == 3

    def test_swap_replaces_collection_object(self):
        cache = IdentityCache(paged_store([identity("a")]), page_size=10)
        cache.refresh()
        before = cache.get()

        cache.refresh()

        assert cache.get() is not before
        assert before[0].identity_id == "a"

    def test_failure_keeps_previous_snapshot(self):
        items = [identity(f"id{i}") for i in range(4)]
        store = paged_store(items)
        cache = IdentityCache(store, page_size=2)
        cache.refresh()

        store.get_identities.side_effect = [items[:2], IdentityStoreError("connection lost")]
        with pytest.raises(IdentityStoreError):
            cache.refresh()

        assert [i.identity_id for i in cache.get()] == ["id0", "id1", "id2", "id3"]

    def test_invalidate_refreshes(self):
        items = [identity("a")]
        store = paged_store(items)
        cache = IdentityCache(store, page_size=10)
        cache.refresh()

        items.append(identity("b"))
        cache.invalidate()

        assert cache.find("b") is not None


class TestWriteThrough:

    def test_add_appends(self):
        cache = IdentityCache(MagicMock(), page_size=10)

        cache.add_or_update(identity("a"))

        assert len(cache.get()) == 1
        assert cache.find("a").identity_id == "a"

    def test_update_replaces_in_place(self):
        cache = IdentityCache(paged_store([identity("a", 0.0), identity("b", 0.0)]), page_size=10)
        cache.refresh()

        cache.add_or_update(identity("a", 1.0))

        assert [i.identity_id for i in cache.get()] == ["a", "b"]
        assert float(cache.find("a").embeddings[0][0]) == 1.0

    def test_does_not_touch_store(self):
        store = MagicMock()
        cache = IdentityCache(store, page_size=10)

        cache.add_or_update(identity("a"))

        assert store.mock_calls == []

    def test_remove(self):
        cache = IdentityCache(MagicMock(), page_size=10)
        cache.add_or_update(identity("a"))

        assert cache.remove("a") is True
        assert cache.remove("a") is False
        assert cache.find("a") is None

    def test_remove_keeps_lookups_consistent(self):
        cache = IdentityCache(paged_store([identity(f"id{i}", float(i)) for i in range(4)]), page_size=10)
        cache.refresh()

        cache.remove("id1")
        cache.add_or_update(identity("id3", 9.0))
        cache.add_or_update(identity("id4", 4.0))

        assert sorted(i.identity_id for i in cache.get()) == ["id0", "id2", "id3", "id4"]
        assert float(cache.find("id3").embeddings[0][0]) == 9.0
        assert cache.find("id4") is cache.get()[-1]
        assert cache.find("id1") is None
        assert len(cache.get()) == 4

    def test_remove_last_identity(self):
        cache = IdentityCache(paged_store([identity("a"), identity("b")]), page_size=10)
        cache.refresh()

        assert cache.remove("b") is True

        assert [i.identity_id for i in cache.get()] == ["a"]
        assert cache.find("a") is cache.get()[0]


class TestStats:

    def test_stats_age_and_ttl(self):
        clock = FakeClock(1000.0)
        cache = IdentityCache(paged_store([identity("a"), identity("b")]), page_size=10, ttl_seconds=300, clock=clock)
        cache.refresh()

        clock.now = 1042.7
        stats = cache.stats()

        assert stats == {"count": 2, "age_seconds": 42, "ttl_seconds": 300}
        assert cache.is_expired() is False

    def test_write_through_updates_timestamp(self):
        clock = FakeClock(1000.0)
        cache = IdentityCache(MagicMock(), page_size=10, ttl_seconds=60, clock=clock)

        clock.now = 1100.0
        cache.add_or_update(identity("a"))

        assert cache.stats()["age_seconds"] == 0

    def test_expired_entries_still_readable(self):
        clock = FakeClock(1000.0)
        cache = IdentityCache(paged_store([identity("a")]), page_size=10, ttl_seconds=60, clock=clock)
        cache.refresh()

        clock.now = 5000.0

        assert cache.is_expired() is True
        assert len(cache.get()) == 1


def test_refresh_against_real_store(store):
    store.upsert_identity("P1", "Alice", np.zeros(128, dtype=np.float32))
    store.upsert_identity("P2", "Bob", np.ones(128, dtype=np.float32))
    cache = IdentityCache(store, page_size=1)

    cache.refresh()

    assert [i.identity_id for i in cache.get()] == ["P1", "P2"]
