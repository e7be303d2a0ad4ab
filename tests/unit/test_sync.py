"""Unit tests for kubemirror.sync (StopSignal, SyncController, wait_for_cache_sync)."""

from __future__ import annotations

import asyncio

from kubemirror.cache.delta_queue import DeltaQueue
from kubemirror.cache.store import CacheStore
from kubemirror.sync import StopSignal, SyncController, wait_for_cache_sync
from tests.fakes import make_obj


def _controller() -> tuple[SyncController, DeltaQueue]:
    queue = DeltaQueue(CacheStore(kind="Pod"), kind="Pod")
    return SyncController(queue, kind="Pod"), queue


class TestStopSignal:
    def test_first_set_wins(self) -> None:
        stop = StopSignal()
        assert stop.set("signal") is True
        assert stop.set("other") is False
        assert stop.is_set()
        assert stop.reason == "signal"

    async def test_sleep_elapses_when_not_stopped(self) -> None:
        assert await StopSignal().sleep(0.01) is False

    async def test_sleep_wakes_early_on_stop(self) -> None:
        stop = StopSignal()
        asyncio.get_running_loop().call_later(0.01, stop.set)
        assert await asyncio.wait_for(stop.sleep(60), timeout=1.0) is True

    async def test_sleep_after_stop_returns_immediately(self) -> None:
        stop = StopSignal()
        stop.set()
        assert await stop.sleep(60) is True


class TestSyncController:
    def test_not_synced_before_initial_list(self) -> None:
        sync, _ = _controller()
        assert sync.has_synced() is False

    async def test_flag_flips_after_initial_entries_are_done(self) -> None:
        sync, queue = _controller()
        queue.replace([make_obj("pod-a", "1")])
        assert sync.check() is False

        await queue.pop()
        queue.task_done()
        assert sync.check() is True

    async def test_flag_never_reverts(self) -> None:
        sync, queue = _controller()
        queue.replace([])
        assert sync.has_synced() is True

        queue.replace([make_obj("pod-a", "2")])
        assert len(queue) == 1
        assert sync.has_synced() is True

    async def test_wait_for_sync_returns_true_once_synced(self) -> None:
        sync, queue = _controller()
        stop = StopSignal()
        waiter = asyncio.create_task(sync.wait_for_sync(stop))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        queue.replace([])
        sync.check()
        assert await asyncio.wait_for(waiter, timeout=1.0) is True

    async def test_wait_for_sync_returns_false_on_stop(self) -> None:
        sync, _ = _controller()
        stop = StopSignal()
        waiter = asyncio.create_task(sync.wait_for_sync(stop))
        await asyncio.sleep(0.01)
        stop.set()
        assert await asyncio.wait_for(waiter, timeout=1.0) is False

    async def test_wait_for_sync_with_stop_already_set(self) -> None:
        sync, _ = _controller()
        stop = StopSignal()
        stop.set()
        assert await sync.wait_for_sync(stop) is False

    async def test_stop_does_not_flip_an_unchecked_flag(self) -> None:
        sync, queue = _controller()
        queue.replace([])
        stop = StopSignal()
        stop.set()
        assert await sync.wait_for_sync(stop) is False

    async def test_synced_before_stop_stays_true(self) -> None:
        sync, queue = _controller()
        queue.replace([])
        assert sync.check() is True
        stop = StopSignal()
        stop.set()
        assert await sync.wait_for_sync(stop) is True


class TestWaitForCacheSync:
    async def test_true_when_every_controller_synced(self) -> None:
        first, q1 = _controller()
        second, q2 = _controller()
        q1.replace([])
        q2.replace([])
        assert await wait_for_cache_sync(StopSignal(), first, second) is True

    async def test_false_when_stopped_before_all_synced(self) -> None:
        first, q1 = _controller()
        second, _ = _controller()
        q1.replace([])
        stop = StopSignal()
        stop.set()
        assert await wait_for_cache_sync(stop, first, second) is False
