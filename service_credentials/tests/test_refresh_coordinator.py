"""
Unit tests for RefreshCoordinator.

Several coordinators sharing one in-memory store stand in for separate
processes sharing Redis.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock
from prometheus_client import CollectorRegistry

from service_credentials.app.cache.credential_cache import CredentialCache
from service_credentials.app.coordinator.refresh import RefreshCoordinator
from service_credentials.app.events.notifier import ChangeKind
from service_credentials.app.locking.distributed_lock import DistributedLock
from shared.errors import (
    CredentialNotAvailableError,
    LockContendedError,
    RefreshFailedError,
    StoreUnavailableError,
)
from shared.metrics import MetricsCollector

from conftest import RecordingObserver


class CountingRefresh:
    """Refresh function that counts calls and can pause mid-flight."""

    def __init__(self, value="TOK123", delay=0.0, error=None):
        self.value = value
        self.delay = delay
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


def make_coordinator(store, **kwargs):
    return RefreshCoordinator(
        CredentialCache(store),
        DistributedLock(store, lease_ms=10_000, poll_interval=0.005),
        **kwargs
    )


class TestRefreshCoordinator:
    """Test cases for RefreshCoordinator."""

    @pytest.fixture
    def coordinator(self, store):
        return make_coordinator(store)

    @pytest.mark.asyncio
    async def test_miss_refreshes_stores_and_notifies(self, coordinator, store, token_key, recording_observer):
        """Test a miss refreshes, stores the value and notifies every observer."""
        second = RecordingObserver()
        coordinator.notifier.subscribe(recording_observer)
        coordinator.notifier.subscribe(second)
        refresh = CountingRefresh("TOK123")

        value = await coordinator.get_or_refresh(token_key, refresh)

        assert value == "TOK123"
        assert refresh.calls == 1
        assert await store.get("cred:app1:token") == "TOK123"
        assert store.ttl("cred:app1:token") == pytest.approx(7100)
        assert await store.get("cred:app1:sync") is None

        for observer in (recording_observer, second):
            assert len(observer.events) == 1
            event = observer.events[0]
            assert event.owner_id == "app1"
            assert event.kind is ChangeKind.CREDENTIAL_REFRESHED
            assert event.key == "cred:app1:token"
            assert event.new_value == "TOK123"

    @pytest.mark.asyncio
    async def test_cache_hit_bypasses_refresh(self, coordinator, cache, token_key, recording_observer):
        """Test a cache hit never calls refresh."""
        await cache.write(token_key, "CACHED")
        coordinator.notifier.subscribe(recording_observer)
        refresh = CountingRefresh()

        assert await coordinator.get_or_refresh(token_key, refresh) == "CACHED"
        assert refresh.calls == 0
        assert recording_observer.events == []

    @pytest.mark.asyncio
    async def test_concurrent_callers_blocking_refresh_once(self, store, token_key):
        """Test blocking callers collapse into one refresh."""
        coordinators = [make_coordinator(store, acquire_timeout=2.0) for _ in range(5)]
        refresh = CountingRefresh("TOK123", delay=0.05)

        results = await asyncio.gather(*(
            c.get_or_refresh(token_key, refresh) for c in coordinators
        ))

        assert refresh.calls == 1
        assert results == ["TOK123"] * 5

    @pytest.mark.asyncio
    async def test_concurrent_callers_non_blocking_refresh_once(self, store, token_key):
        """Test non-blocking losers get CredentialNotAvailableError."""
        coordinators = [make_coordinator(store) for _ in range(5)]
        refresh = CountingRefresh("TOK123", delay=0.05)

        results = await asyncio.gather(
            *(c.get_or_refresh(token_key, refresh) for c in coordinators),
            return_exceptions=True
        )

        assert refresh.calls == 1
        assert results.count("TOK123") == 1
        unavailable = [r for r in results if isinstance(r, CredentialNotAvailableError)]
        assert len(unavailable) == 4

    @pytest.mark.asyncio
    async def test_double_check_sees_winner_value(self, coordinator, cache, token_key, recording_observer):
        """Test the second read under the lock sees another holder's value."""
        coordinator.notifier.subscribe(recording_observer)
        original_acquire = coordinator.lock.acquire

        async def winner_writes_first(*args, **kwargs):
            # Another process refreshed between our miss and our acquire.
            await cache.write(token_key, "FROM_B")
            return await original_acquire(*args, **kwargs)

        coordinator.lock.acquire = winner_writes_first
        refresh = CountingRefresh()

        assert await coordinator.get_or_refresh(token_key, refresh) == "FROM_B"
        assert refresh.calls == 0
        assert recording_observer.events == []
        assert await cache.store.get(token_key.lock_key) is None

    @pytest.mark.asyncio
    async def test_contended_serves_stale_value(self, coordinator, cache, lock, clock, token_key):
        """Test contended callers get the last known value."""
        await cache.write(token_key, "OLD")
        clock.advance(7150)
        holder = await lock.acquire(token_key.lock_key)
        refresh = CountingRefresh()

        assert await coordinator.get_or_refresh(token_key, refresh) == "OLD"
        assert refresh.calls == 0
        assert await lock.release(holder) is True

    @pytest.mark.asyncio
    async def test_contended_without_value_is_not_available(self, coordinator, lock, token_key):
        """Test contended callers without a cached value get CredentialNotAvailableError."""
        await lock.acquire(token_key.lock_key)

        with pytest.raises(CredentialNotAvailableError) as exc_info:
            await coordinator.get_or_refresh(token_key, CountingRefresh())

        assert exc_info.value.code == "CREDENTIAL_NOT_AVAILABLE"
        assert isinstance(exc_info.value.__cause__, LockContendedError)
        assert exc_info.value.__cause__.code == "LOCK_CONTENDED"

    @pytest.mark.asyncio
    async def test_crashed_holder_recovered_after_lease(self, coordinator, lock, clock, token_key):
        """Test a crashed holder's lock is recovered after the lease."""
        await lock.acquire(token_key.lock_key)
        refresh = CountingRefresh("TOK123")

        clock.advance(9)
        with pytest.raises(CredentialNotAvailableError):
            await coordinator.get_or_refresh(token_key, refresh)

        clock.advance(1)
        assert await coordinator.get_or_refresh(token_key, refresh) == "TOK123"
        assert refresh.calls == 1

    @pytest.mark.asyncio
    async def test_refresh_error_does_not_pollute(self, coordinator, store, token_key, recording_observer):
        """Test a failed refresh stores nothing and publishes nothing."""
        coordinator.notifier.subscribe(recording_observer)
        refresh = CountingRefresh(error=RuntimeError("issuer down"))

        with pytest.raises(RefreshFailedError) as exc_info:
            await coordinator.get_or_refresh(token_key, refresh)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert await store.get("cred:app1:token") is None
        assert await store.get("cred:app1:sync") is None
        assert recording_observer.events == []

    @pytest.mark.asyncio
    async def test_refresh_failed_error_propagates_unchanged(self, coordinator, token_key):
        """Test RefreshFailedError from refresh is raised unchanged."""
        error = RefreshFailedError("errcode 40013", details={"errcode": 40013})

        with pytest.raises(RefreshFailedError) as exc_info:
            await coordinator.get_or_refresh(token_key, CountingRefresh(error=error))

        assert exc_info.value is error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_value", ["", "   ", None])
    async def test_empty_refresh_result_is_failure(self, coordinator, store, token_key, recording_observer, bad_value):
        """Test empty or non-string refresh results are failures."""
        coordinator.notifier.subscribe(recording_observer)

        with pytest.raises(RefreshFailedError):
            await coordinator.get_or_refresh(token_key, CountingRefresh(bad_value))

        assert await store.get("cred:app1:token") is None
        assert recording_observer.events == []

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_prior_value(self, coordinator, cache, store, clock, token_key):
        """Test a failed refresh keeps the previous stale value."""
        await cache.write(token_key, "OLD")
        clock.advance(7150)

        with pytest.raises(RefreshFailedError):
            await coordinator.get_or_refresh(token_key, CountingRefresh(error=RuntimeError("boom")))

        assert await store.get("cred:app1:token:stale") == "OLD"

    @pytest.mark.asyncio
    async def test_failed_refresh_releases_lock_for_retry(self, coordinator, token_key):
        """Test the lock is released after a failed refresh."""
        with pytest.raises(RefreshFailedError):
            await coordinator.get_or_refresh(token_key, CountingRefresh(error=RuntimeError("boom")))

        assert await coordinator.get_or_refresh(token_key, CountingRefresh("TOK2")) == "TOK2"

    @pytest.mark.asyncio
    async def test_observer_failure_does_not_affect_result(self, coordinator, token_key, recording_observer):
        """Test an observer failure does not change the returned value."""
        class Exploding:
            def on_change(self, event):
                raise RuntimeError("boom")

        coordinator.notifier.subscribe(Exploding())
        coordinator.notifier.subscribe(recording_observer)

        assert await coordinator.get_or_refresh(token_key, CountingRefresh("TOK123")) == "TOK123"
        assert len(recording_observer.events) == 1

    @pytest.mark.asyncio
    async def test_read_failure_propagates(self, coordinator, store, token_key):
        """Test store read errors propagate."""
        store.get = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            await coordinator.get_or_refresh(token_key, CountingRefresh())

    @pytest.mark.asyncio
    async def test_release_failure_does_not_mask_result(self, coordinator, store, token_key):
        """Test a release failure does not mask the refreshed value."""
        store.release_if_matches = AsyncMock(side_effect=StoreUnavailableError("down"))

        assert await coordinator.get_or_refresh(token_key, CountingRefresh("TOK123")) == "TOK123"

    @pytest.mark.asyncio
    async def test_write_failure_propagates_without_event(self, coordinator, store, token_key, recording_observer):
        """Test a write failure propagates and publishes nothing."""
        coordinator.notifier.subscribe(recording_observer)
        store.set_with_expiry = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            await coordinator.get_or_refresh(token_key, CountingRefresh("TOK123"))

        assert recording_observer.events == []
        assert await store.get("cred:app1:sync") is None

    @pytest.mark.parametrize("failing_suffix", [":stale", ":token"])
    @pytest.mark.asyncio
    async def test_partial_write_failure_leaves_nothing_live(
        self, coordinator, store, token_key, recording_observer, failing_suffix
    ):
        """Test a failure of either cache write publishes nothing and leaves no live value."""
        coordinator.notifier.subscribe(recording_observer)
        real_set = store.set_with_expiry

        async def flaky_set(key, value, ttl_seconds):
            if key.endswith(failing_suffix):
                raise StoreUnavailableError("down", details={"key": key})
            await real_set(key, value, ttl_seconds)

        store.set_with_expiry = flaky_set

        with pytest.raises(StoreUnavailableError):
            await coordinator.get_or_refresh(token_key, CountingRefresh("TOK123"))

        assert await store.get("cred:app1:token") is None
        assert recording_observer.events == []
        assert await store.get("cred:app1:sync") is None

    @pytest.mark.asyncio
    async def test_cancelled_refresh_releases_lock(self, coordinator, store, token_key):
        """Test cancelling a refresh releases the lock."""
        task = asyncio.create_task(coordinator.get_or_refresh(token_key, CountingRefresh(delay=5)))
        await asyncio.sleep(0.02)
        assert await store.get("cred:app1:sync") is not None

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await store.get("cred:app1:sync") is None
        assert await store.get("cred:app1:token") is None

    @pytest.mark.asyncio
    async def test_lease_renewed_during_slow_refresh(self, store, token_key):
        """Test the lease is renewed while a slow refresh runs."""
        coordinator = RefreshCoordinator(
            CredentialCache(store),
            DistributedLock(store, lease_ms=30, poll_interval=0.005),
        )
        extend_calls = []
        original_extend = coordinator.lock.extend

        async def tracking_extend(handle, lease_ms=None):
            extend_calls.append(handle.key)
            return await original_extend(handle, lease_ms)

        coordinator.lock.extend = tracking_extend

        assert await coordinator.get_or_refresh(token_key, CountingRefresh(delay=0.05)) == "TOK123"
        assert extend_calls
        assert set(extend_calls) == {"cred:app1:sync"}

    @pytest.mark.asyncio
    async def test_force_refresh_replaces_rejected_value(self, coordinator, cache, token_key, recording_observer):
        """Test forced refresh replaces the rejected value and notifies."""
        await cache.write(token_key, "REJECTED")
        coordinator.notifier.subscribe(recording_observer)
        refresh = CountingRefresh("FRESH")

        assert await coordinator.force_refresh(token_key, refresh, current="REJECTED") == "FRESH"
        assert refresh.calls == 1
        assert await cache.read(token_key) == "FRESH"
        assert len(recording_observer.events) == 1

    @pytest.mark.asyncio
    async def test_force_refresh_skips_when_already_replaced(self, coordinator, cache, token_key):
        """Test forced refresh returns a value another process already replaced."""
        await cache.write(token_key, "ALREADY_NEW")
        refresh = CountingRefresh("FRESH")

        assert await coordinator.force_refresh(token_key, refresh, current="REJECTED") == "ALREADY_NEW"
        assert refresh.calls == 0

    @pytest.mark.asyncio
    async def test_force_refresh_contended(self, coordinator, lock, token_key):
        """Test forced refresh fails fast when the lock is held."""
        await lock.acquire(token_key.lock_key)

        with pytest.raises(CredentialNotAvailableError) as exc_info:
            await coordinator.force_refresh(token_key, CountingRefresh())

        assert exc_info.value.details == {"reason": "LOCK_CONTENDED"}

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, store, token_key):
        """Test lookup, refresh and lock metrics are recorded."""
        metrics = MetricsCollector("credentials", registry=CollectorRegistry())
        coordinator = make_coordinator(store, metrics=metrics)

        await coordinator.get_or_refresh(token_key, CountingRefresh("TOK123"))
        await coordinator.get_or_refresh(token_key, CountingRefresh("TOK123"))

        registry = metrics.registry
        assert registry.get_sample_value("credential_lookups_total", {"result": "miss"}) == 1.0
        assert registry.get_sample_value("credential_lookups_total", {"result": "hit"}) == 1.0
        assert registry.get_sample_value("credential_refresh_total", {"status": "success"}) == 1.0
        assert registry.get_sample_value("credential_lock_acquire_total", {"outcome": "acquired"}) == 1.0
