"""
Tests for ResourceSync: the cache-or-fetch state machine, refresh, fallback,
unmount behaviour and auto-refresh.
"""
import asyncio
import threading

import pytest

from app.cache import ResourceSync


class CountingFetcher:
    """Async fetcher that records calls and can fail or block on demand."""

    def __init__(self, result=None, error=None, gate=None):
        self.result = result
        self.error = error
        self.gate = gate
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.result


async def wait_until(condition):
    """Yield to the loop until ``condition()`` holds."""
    while not condition():
        await asyncio.sleep(0.001)


# =============================================================================
# Cache check and fetch
# =============================================================================

def test_first_mount_fetches_second_mount_hits_cache(manager):
    fetcher = CountingFetcher(result=42)

    async def scenario():
        first = ResourceSync("x", fetcher, ttl=1000, manager=manager)
        await first.start()
        second = ResourceSync("x", fetcher, ttl=1000, manager=manager)
        await second.start()
        await first.close()
        await second.close()
        return first.state, second.state

    first, second = asyncio.run(scenario())

    assert first.data == 42
    assert first.is_from_cache is False
    assert first.last_updated is not None
    assert second.data == 42
    assert second.is_from_cache is True
    assert fetcher.calls == 1


def test_fetch_after_ttl_expiry(manager, clock):
    fetcher = CountingFetcher(result=[1])

    async def scenario():
        async with ResourceSync("x", fetcher, ttl=10, manager=manager):
            pass
        clock.advance(10)
        async with ResourceSync("x", fetcher, ttl=10, manager=manager) as sync:
            return sync.state

    state = asyncio.run(scenario())
    assert state.is_from_cache is False
    assert fetcher.calls == 2


def test_success_writes_through_and_calls_on_success(manager):
    seen = []

    async def scenario():
        async with ResourceSync(
            "branches", CountingFetcher(result=["Central"]), ttl=60,
            manager=manager, on_success=seen.append,
        ) as sync:
            return sync.state

    state = asyncio.run(scenario())
    assert state.loading is False
    assert state.error is None
    assert manager.get("branches") == ["Central"]
    assert seen == [["Central"]]


def test_disabled_sync_stays_idle(manager):
    manager.set("x", "cached")
    fetcher = CountingFetcher(result=1)

    async def scenario():
        async with ResourceSync("x", fetcher, enabled=False, manager=manager) as sync:
            await sync.refresh()
            return sync.state

    state = asyncio.run(scenario())
    assert state.data is None
    assert state.loading is False
    assert state.error is None
    assert fetcher.calls == 0


def test_enabling_later_loads(manager):
    fetcher = CountingFetcher(result="fresh")

    async def scenario():
        async with ResourceSync("x", fetcher, enabled=False, manager=manager) as sync:
            await sync.update(enabled=True)
            return sync.state

    state = asyncio.run(scenario())
    assert state.data == "fresh"
    assert fetcher.calls == 1


# =============================================================================
# Failures
# =============================================================================

def test_fallback_substitution(manager):
    errors = []

    async def scenario():
        async with ResourceSync(
            "x", CountingFetcher(error=ConnectionError("backend down")),
            fallback_data={"items": []}, on_error=errors.append, manager=manager,
        ) as sync:
            return sync.state

    state = asyncio.run(scenario())
    assert state.data == {"items": []}
    assert state.error == "backend down"
    assert state.loading is False
    assert len(errors) == 1
    assert manager.get("x") is None


def test_failed_refresh_keeps_previous_data(manager):
    fetcher = CountingFetcher(result="v1")

    async def scenario():
        async with ResourceSync("x", fetcher, manager=manager) as sync:
            fetcher.error = RuntimeError()
            await sync.refresh()
            return sync.state

    state = asyncio.run(scenario())
    assert state.data == "v1"
    assert state.error == "RuntimeError"


def test_callback_errors_do_not_break_state(manager):
    def explode(_):
        raise ValueError("callback bug")

    async def scenario():
        async with ResourceSync(
            "x", CountingFetcher(result=7), on_success=explode, manager=manager,
        ) as sync:
            return sync.state

    state = asyncio.run(scenario())
    assert state.data == 7
    assert state.loading is False
    assert manager.get("x") == 7


def test_async_callbacks_are_awaited(manager):
    seen = []

    async def on_success(value):
        await asyncio.sleep(0)
        seen.append(value)

    async def scenario():
        async with ResourceSync("x", CountingFetcher(result=3), on_success=on_success, manager=manager):
            pass

    asyncio.run(scenario())
    assert seen == [3]


# =============================================================================
# Refresh and cache control
# =============================================================================

def test_refresh_bypasses_fresh_cache(manager):
    manager.set("x", "cached", ttl=1000)
    fetcher = CountingFetcher(result="fresh")

    async def scenario():
        async with ResourceSync("x", fetcher, ttl=1000, manager=manager) as sync:
            assert sync.state.is_from_cache is True
            assert fetcher.calls == 0
            await sync.refresh()
            return sync.state

    state = asyncio.run(scenario())
    assert fetcher.calls == 1
    assert state.data == "fresh"
    assert state.is_from_cache is False
    assert manager.get("x") == "fresh"


def test_clear_cache_keeps_data(manager):
    async def scenario():
        async with ResourceSync("x", CountingFetcher(result=5), manager=manager) as sync:
            sync.clear_cache()
            return sync.state

    state = asyncio.run(scenario())
    assert state.data == 5
    assert state.is_from_cache is False
    assert state.last_updated is None
    assert manager.get("x") is None


# =============================================================================
# Unmount and stale responses
# =============================================================================

def test_no_update_after_close(manager):
    seen = []

    async def scenario():
        gate = asyncio.Event()
        fetcher = CountingFetcher(result="late", gate=gate)
        sync = ResourceSync("x", fetcher, on_success=seen.append, manager=manager)
        task = asyncio.create_task(sync.start())
        await wait_until(lambda: fetcher.calls == 1)
        assert sync.state.loading is True
        await sync.close()
        gate.set()
        await task
        return sync.state

    state = asyncio.run(scenario())
    assert seen == []
    assert state.data is None
    # Shared cache still receives the result
    assert manager.get("x") == "late"


def test_stale_response_after_key_change_is_ignored(manager):
    async def scenario():
        slow_gate = asyncio.Event()
        slow = CountingFetcher(result="old-branch", gate=slow_gate)
        fast = CountingFetcher(result="new-branch")

        sync = ResourceSync("products_b1", slow, manager=manager)
        task = asyncio.create_task(sync.start())
        await wait_until(lambda: slow.calls == 1)
        await sync.update(key="products_b2", fetcher=fast)
        slow_gate.set()
        await task
        await sync.close()
        return sync.state

    state = asyncio.run(scenario())
    assert state.data == "new-branch"
    assert manager.get("products_b1") == "old-branch"
    assert manager.get("products_b2") == "new-branch"


# =============================================================================
# Shared fetches
# =============================================================================

def test_concurrent_mounts_share_fetch(manager):
    async def scenario():
        gate = asyncio.Event()
        fetcher = CountingFetcher(result=[1, 2], gate=gate)
        syncs = [ResourceSync("x", fetcher, manager=manager) for _ in range(3)]
        tasks = [asyncio.create_task(s.start()) for s in syncs]
        await wait_until(lambda: all(s.state.loading for s in syncs))
        gate.set()
        await asyncio.gather(*tasks)
        for s in syncs:
            await s.close()
        return fetcher.calls, [s.state.data for s in syncs]

    calls, data = asyncio.run(scenario())
    assert calls == 1
    assert data == [[1, 2]] * 3


def test_dedupe_can_be_disabled(manager):
    async def scenario():
        gate = asyncio.Event()
        fetcher = CountingFetcher(result=1, gate=gate)
        syncs = [ResourceSync("x", fetcher, manager=manager, dedupe=False) for _ in range(2)]
        tasks = [asyncio.create_task(s.start()) for s in syncs]
        await wait_until(lambda: fetcher.calls == 2)
        gate.set()
        await asyncio.gather(*tasks)
        for s in syncs:
            await s.close()
        return fetcher.calls

    assert asyncio.run(scenario()) == 2


def test_shared_fetch_gives_each_instance_its_own_data(manager):
    async def scenario():
        gate = asyncio.Event()
        fetcher = CountingFetcher(result=[1, 2], gate=gate)
        first = ResourceSync("x", fetcher, manager=manager)
        second = ResourceSync("x", fetcher, manager=manager)
        tasks = [asyncio.create_task(s.start()) for s in (first, second)]
        await wait_until(lambda: first.state.loading and second.state.loading)
        gate.set()
        await asyncio.gather(*tasks)
        await first.close()
        await second.close()
        return fetcher.calls, first.state, second.state

    calls, first, second = asyncio.run(scenario())
    assert calls == 1

    first.data.append(99)
    assert second.data == [1, 2]
    assert manager.get("x") == [1, 2]


def test_cancelled_caller_leaves_shared_fetch_running(manager):
    async def scenario():
        gate = asyncio.Event()
        fetcher = CountingFetcher(result=[1, 2], gate=gate)
        first = ResourceSync("x", fetcher, manager=manager)
        second = ResourceSync("x", fetcher, manager=manager)

        first_task = asyncio.create_task(first.start())
        await wait_until(lambda: fetcher.calls == 1)
        second_task = asyncio.create_task(second.start())
        await wait_until(lambda: second.state.loading)

        first_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first_task
        gate.set()
        await second_task
        await second.close()
        return fetcher.calls, second.state

    calls, state = asyncio.run(scenario())
    assert calls == 1
    assert state.data == [1, 2]
    assert state.loading is False
    assert state.error is None
    assert manager.get("x") == [1, 2]


# =============================================================================
# Auto-refresh
# =============================================================================

def test_auto_refresh_refetches_when_due(manager, clock):
    fetcher = CountingFetcher(result="v")

    async def scenario():
        async with ResourceSync("x", fetcher, refresh_interval=0.01, manager=manager):
            # Not due yet: store clock has not moved
            await asyncio.sleep(0.05)
            calls_before = fetcher.calls
            clock.advance(1)
            await asyncio.sleep(0.05)
            return calls_before

    calls_before = asyncio.run(scenario())
    assert calls_before == 1
    assert fetcher.calls >= 2


def test_timer_stops_on_close(manager, clock):
    fetcher = CountingFetcher(result="v")

    async def scenario():
        sync = ResourceSync("x", fetcher, refresh_interval=0.01, manager=manager)
        await sync.start()
        await sync.close()
        clock.advance(1)
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert fetcher.calls == 1


def test_start_without_cache_read(manager):
    manager.set("x", "cached")
    fetcher = CountingFetcher(result="fresh")

    async def scenario():
        sync = ResourceSync("x", fetcher, manager=manager)
        await sync.start(use_cache=False)
        await sync.close()
        return sync.state

    state = asyncio.run(scenario())
    assert state.data == "fresh"
    assert fetcher.calls == 1


def test_store_access_runs_off_the_event_loop(manager, monkeypatch):
    store_threads = []

    def recording(method):
        def wrapper(*args, **kwargs):
            store_threads.append(threading.get_ident())
            return method(*args, **kwargs)
        return wrapper

    monkeypatch.setattr(manager, "get", recording(manager.get))
    monkeypatch.setattr(manager, "set", recording(manager.set))

    async def scenario():
        async with ResourceSync("x", CountingFetcher(result=1), manager=manager):
            pass

    asyncio.run(scenario())
    assert len(store_threads) == 2
    assert threading.get_ident() not in store_threads
