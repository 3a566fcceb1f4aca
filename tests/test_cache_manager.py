"""ResourceCache tests: freshness, sharing, degradation, invalidation."""

import threading
from unittest.mock import MagicMock

import pytest

from mineralflow.core.result import PROTOCOL, Err, FetchFailure, Ok
from mineralflow.performance.cache_manager import CachePolicy, CachePolicyError, ResourceCache


def _failure():
    return Err(FetchFailure(PROTOCOL, "API call failed: 500", operation="list", status_code=500))


@pytest.fixture
def cache(clock):
    return ResourceCache(clock=clock, sleep=clock.sleep)


class TestPolicy:

    def test_defaults_valid(self):
        CachePolicy().validate()

    def test_gc_before_stale_rejected(self):
        with pytest.raises(CachePolicyError):
            CachePolicy(stale_after=60, gc_after=30).validate()

    def test_too_many_retries_rejected(self, cache):
        with pytest.raises(CachePolicyError):
            cache.register("trucks", MagicMock(), CachePolicy(max_retries=4))


class TestReads:

    def test_fresh_read_is_cache_hit(self, cache, clock):
        loader = MagicMock(return_value=Ok([1, 2]))
        cache.register("trucks", loader, CachePolicy(stale_after=30))

        first = cache.read("trucks")
        clock.advance(10)
        second = cache.read("trucks")

        assert loader.call_count == 1
        assert first.value == second.value == [1, 2]
        assert second.data_source == "live"
        assert second.fetched_at is not None

    def test_stale_read_refetches(self, cache, clock):
        loader = MagicMock(side_effect=[Ok([1]), Ok([1, 2])])
        cache.register("trucks", loader, CachePolicy(stale_after=30))

        cache.read("trucks")
        clock.advance(31)
        assert cache.is_stale("trucks")
        assert cache.read("trucks").value == [1, 2]
        assert loader.call_count == 2

    def test_concurrent_readers_share_one_fetch(self, cache):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow_loader():
            calls.append(1)
            started.set()
            release.wait(5)
            return Ok(["shared"])

        cache.register("trucks", slow_loader)
        results = []
        readers = [threading.Thread(target=lambda: results.append(cache.read("trucks"))) for _ in range(5)]

        readers[0].start()
        assert started.wait(5)
        for reader in readers[1:]:
            reader.start()
        release.set()
        for reader in readers:
            reader.join(5)

        assert len(calls) == 1
        assert len(results) == 5
        assert all(snapshot.value == ["shared"] for snapshot in results)


class TestDegradation:

    def test_fallback_when_never_fetched(self, cache):
        cache.register("purchase_orders", MagicMock(return_value=_failure()), CachePolicy(max_retries=0),
                       fallback=lambda: ["synthetic"])
        snapshot = cache.read("purchase_orders")

        assert snapshot.value == ["synthetic"]
        assert snapshot.data_source == "mock"
        assert snapshot.is_mock
        assert snapshot.error.status_code == 500

    def test_last_known_good_kept_with_error(self, cache, clock):
        loader = MagicMock(side_effect=[Ok(["real"]), _failure()])
        cache.register("trucks", loader, CachePolicy(stale_after=30, max_retries=0), fallback=lambda: ["synthetic"])

        cache.read("trucks")
        clock.advance(31)
        snapshot = cache.read("trucks")

        assert snapshot.value == ["real"]
        assert snapshot.data_source == "live"
        assert snapshot.error is not None

    def test_no_fallback_leaves_empty(self, cache):
        cache.register("stats", MagicMock(return_value=_failure()), CachePolicy(max_retries=0))
        snapshot = cache.read("stats")
        assert snapshot.value is None
        assert snapshot.data_source == "none"
        assert snapshot.error is not None

    def test_failure_counts_as_checked(self, cache, clock):
        loader = MagicMock(return_value=_failure())
        cache.register("trucks", loader, CachePolicy(stale_after=30, max_retries=0), fallback=list)
        cache.read("trucks")
        clock.advance(5)
        cache.read("trucks")
        assert loader.call_count == 1

    def test_loader_exception_becomes_internal_failure(self, cache):
        cache.register("trucks", MagicMock(side_effect=RuntimeError("bug")), CachePolicy(max_retries=0))
        snapshot = cache.read("trucks")
        assert snapshot.error.kind == "internal"
        assert "bug" in snapshot.error.message


class TestRetries:

    def test_bounded_retries_with_delay(self, cache, clock):
        loader = MagicMock(return_value=_failure())
        cache.register("trucks", loader, CachePolicy(max_retries=3, retry_delay=1.0), fallback=list)
        cache.read("trucks")

        assert loader.call_count == 4
        assert clock.sleeps == [1.0, 1.0, 1.0]

    def test_retry_succeeds(self, cache, clock):
        loader = MagicMock(side_effect=[_failure(), Ok(["late"])])
        cache.register("trucks", loader, CachePolicy(max_retries=1, retry_delay=0.5))
        snapshot = cache.read("trucks")

        assert snapshot.value == ["late"]
        assert snapshot.error is None
        assert clock.sleeps == [0.5]


class TestInvalidation:

    def test_cascade_to_dependents(self, cache):
        cache.register("trucks", MagicMock(return_value=Ok([])))
        cache.register("appointments", MagicMock(return_value=Ok([])), depends_on=("trucks",))
        cache.register("overview", MagicMock(return_value=Ok({})), depends_on=("appointments",))
        cache.register("warehouses", MagicMock(return_value=Ok([])))
        for key in cache.keys():
            cache.read(key)

        invalidated = cache.invalidate("trucks")

        assert invalidated == {"trucks", "appointments", "overview"}
        assert cache.is_stale("overview")
        assert not cache.is_stale("warehouses")

    def test_invalidated_key_refetches(self, cache):
        loader = MagicMock(side_effect=[Ok([1]), Ok([2])])
        cache.register("trucks", loader)
        cache.read("trucks")
        cache.invalidate("trucks")
        assert cache.read("trucks").value == [2]

    def test_last_fetch_wins(self, cache):
        started = threading.Event()
        release = threading.Event()
        responses = iter([Ok(["old"]), Ok(["new"])])

        def loader():
            value = next(responses)
            if value.value == ["old"]:
                started.set()
                release.wait(5)
            return value

        cache.register("trucks", loader, CachePolicy(max_retries=0))
        slow = threading.Thread(target=cache.read, args=("trucks",))
        slow.start()
        assert started.wait(5)

        cache.invalidate("trucks")
        assert cache.read("trucks").value == ["new"]

        release.set()
        slow.join(5)
        assert cache.snapshot("trucks").value == ["new"]

    def test_patch_replaces_value_and_notifies(self, cache):
        cache.register("trucks", MagicMock(return_value=Ok([1])))
        cache.read("trucks")
        listener = MagicMock()
        cache.subscribe("trucks", listener)

        snapshot = cache.patch("trucks", lambda current: current + [2])

        assert snapshot.value == [1, 2]
        listener.assert_called_once()


class TestSubscriptions:

    def test_listener_called_after_fetch(self, cache):
        cache.register("trucks", MagicMock(return_value=Ok(["a"])))
        listener = MagicMock()
        unsubscribe = cache.subscribe("trucks", listener)

        cache.read("trucks")
        assert listener.call_args[0][0].value == ["a"]

        unsubscribe()
        assert cache.subscriber_count("trucks") == 0

    def test_failing_listener_is_isolated(self, cache):
        cache.register("trucks", MagicMock(return_value=Ok(["a"])))
        cache.subscribe("trucks", MagicMock(side_effect=RuntimeError("ui gone")))
        assert cache.read("trucks").value == ["a"]


class TestMaintenance:

    def test_garbage_collection_after_gc_window(self, cache, clock):
        loader = MagicMock(return_value=Ok([1]))
        cache.register("trucks", loader, CachePolicy(stale_after=30, gc_after=300))
        cache.read("trucks")

        clock.advance(100)
        assert cache.collect_garbage() == []

        clock.advance(201)
        assert cache.collect_garbage() == ["trucks"]
        assert cache.snapshot("trucks").value is None
        assert cache.snapshot("trucks").data_source == "none"

    def test_patched_data_kept_for_gc_window(self, cache, clock):
        cache.register("trucks", MagicMock(return_value=Ok([1])), CachePolicy(stale_after=30, gc_after=300))
        cache.patch("trucks", lambda current: [2])

        clock.advance(100)
        assert cache.collect_garbage() == []
        assert cache.snapshot("trucks").value == [2]

        clock.advance(201)
        assert cache.collect_garbage() == ["trucks"]

    def test_subscribed_data_never_collected(self, cache, clock):
        cache.register("trucks", MagicMock(return_value=Ok([1])), CachePolicy(stale_after=30, gc_after=300))
        cache.read("trucks")
        cache.subscribe("trucks", MagicMock())
        clock.advance(1000)
        assert cache.collect_garbage() == []

    def test_revalidate_active_only_subscribed_and_due(self, cache, clock):
        trucks = MagicMock(return_value=Ok([1]))
        warehouses = MagicMock(return_value=Ok([2]))
        cache.register("trucks", trucks, CachePolicy(stale_after=30, refresh_interval=15))
        cache.register("warehouses", warehouses, CachePolicy(stale_after=30, refresh_interval=15))
        cache.read("trucks")
        cache.read("warehouses")
        cache.subscribe("trucks", MagicMock())

        clock.advance(10)
        assert cache.revalidate_active() == []

        clock.advance(6)
        assert cache.revalidate_active() == ["trucks"]
        assert trucks.call_count == 2
        assert warehouses.call_count == 1

    def test_remove_keeps_registration(self, cache):
        cache.register("trucks", MagicMock(return_value=Ok([1])))
        cache.read("trucks")
        cache.remove("trucks")
        assert "trucks" in cache.keys()
        assert cache.snapshot("trucks").value is None
