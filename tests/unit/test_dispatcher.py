"""Unit tests for kubemirror.dispatch.EventDispatcher.

Covers store application rules, observer ordering, observer failure
isolation, async observer timeouts and EventHandlerFuncs routing.
"""

from __future__ import annotations

import asyncio

import pytest

from kubemirror.cache.delta_queue import DeltaEntry, DeltaQueue
from kubemirror.cache.store import CacheStore
from kubemirror.dispatch import EventDispatcher, EventHandlerFuncs
from kubemirror.models.objects import Added, Deleted, EventKind, ObjectKey, Updated, WatchEvent
from kubemirror.sync import StopSignal, SyncController
from tests.fakes import Recorder, eventually, make_obj

KEY_A = ObjectKey("default", "pod-a")


def _dispatcher(observer_timeout: float = 1.0) -> tuple[EventDispatcher, DeltaQueue, CacheStore, SyncController]:
    store = CacheStore(kind="Pod")
    queue = DeltaQueue(store, kind="Pod")
    sync = SyncController(queue, kind="Pod")
    dispatcher = EventDispatcher(queue, store, sync, kind="Pod", observer_timeout=observer_timeout)
    return dispatcher, queue, store, sync


# ---------------------------------------------------------------------------
# apply()
# ---------------------------------------------------------------------------


class TestApply:
    def test_added_inserts_and_emits_added(self) -> None:
        dispatcher, _, store, _ = _dispatcher()
        v1 = make_obj("pod-a", "1")
        events = dispatcher.apply(DeltaEntry(KEY_A, (Added(v1),)))
        assert [e.kind for e in events] == [EventKind.ADDED]
        assert store.get(KEY_A) is v1

    def test_updated_emits_old_from_store(self) -> None:
        dispatcher, _, store, _ = _dispatcher()
        v1, v2 = make_obj("pod-a", "1"), make_obj("pod-a", "2")
        store.update(v1)
        events = dispatcher.apply(DeltaEntry(KEY_A, (Updated(None, v2),)))
        assert events == [WatchEvent(kind=EventKind.UPDATED, key=KEY_A, obj=v2, old_obj=v1)]
        assert store.get(KEY_A) is v2

    def test_updated_for_unknown_key_is_applied_as_added(self) -> None:
        dispatcher, _, store, _ = _dispatcher()
        v2 = make_obj("pod-a", "2")
        events = dispatcher.apply(DeltaEntry(KEY_A, (Updated(make_obj("pod-a", "1"), v2),)))
        assert [e.kind for e in events] == [EventKind.ADDED]
        assert store.get(KEY_A) is v2

    def test_added_for_known_key_is_applied_as_updated(self) -> None:
        dispatcher, _, store, _ = _dispatcher()
        v1, v2 = make_obj("pod-a", "1"), make_obj("pod-a", "2")
        store.update(v1)
        events = dispatcher.apply(DeltaEntry(KEY_A, (Added(v2),)))
        assert [e.kind for e in events] == [EventKind.UPDATED]
        assert events[0].old_obj is v1

    def test_same_version_is_a_noop(self) -> None:
        dispatcher, _, store, _ = _dispatcher()
        v1 = make_obj("pod-a", "1")
        store.update(v1)
        assert dispatcher.apply(DeltaEntry(KEY_A, (Added(make_obj("pod-a", "1")),))) == []

    def test_deleted_removes_and_carries_flag(self) -> None:
        dispatcher, _, store, _ = _dispatcher()
        v1 = make_obj("pod-a", "1")
        store.update(v1)
        events = dispatcher.apply(DeltaEntry(KEY_A, (Deleted(v1, observed_directly=False),)))
        assert events == [WatchEvent(kind=EventKind.DELETED, key=KEY_A, obj=v1, observed_directly=False)]
        assert KEY_A not in store

    def test_deleted_for_unknown_key_emits_nothing(self) -> None:
        dispatcher, _, _, _ = _dispatcher()
        assert dispatcher.apply(DeltaEntry(KEY_A, (Deleted(make_obj("pod-a", "1")),))) == []

    def test_delete_then_recreate_emits_both_in_order(self) -> None:
        dispatcher, _, store, _ = _dispatcher()
        old, new = make_obj("pod-a", "1"), make_obj("pod-a", "9")
        store.update(old)
        events = dispatcher.apply(DeltaEntry(KEY_A, (Deleted(old), Added(new))))
        assert [e.kind for e in events] == [EventKind.DELETED, EventKind.ADDED]
        assert store.get(KEY_A) is new


# ---------------------------------------------------------------------------
# run() -- observers
# ---------------------------------------------------------------------------


class TestObservers:
    async def test_observers_called_in_registration_order(self) -> None:
        dispatcher, queue, _, _ = _dispatcher()
        calls: list[str] = []
        dispatcher.add_observer(lambda e: calls.append("first"))
        dispatcher.add_observer(lambda e: calls.append("second"))
        stop = StopSignal()
        task = asyncio.create_task(dispatcher.run(stop))

        queue.push(Added(make_obj("pod-a", "1")))
        await eventually(lambda: len(calls) == 2)
        assert calls == ["first", "second"]

        stop.set()
        queue.close()
        await task

    async def test_failing_observer_does_not_block_the_next_one(self) -> None:
        dispatcher, queue, store, _ = _dispatcher()

        def explode(event: WatchEvent) -> None:
            raise RuntimeError("observer bug")

        recorder = Recorder()
        dispatcher.add_observer(explode)
        dispatcher.add_observer(recorder)
        stop = StopSignal()
        task = asyncio.create_task(dispatcher.run(stop))

        queue.push(Added(make_obj("pod-a", "1")))
        await eventually(lambda: len(recorder.events) == 1)
        assert store.get(KEY_A) is not None

        stop.set()
        queue.close()
        await task

    async def test_async_observers_are_awaited(self) -> None:
        dispatcher, queue, _, _ = _dispatcher()
        seen: list[EventKind] = []

        async def observer(event: WatchEvent) -> None:
            await asyncio.sleep(0)
            seen.append(event.kind)

        dispatcher.add_observer(observer)
        stop = StopSignal()
        task = asyncio.create_task(dispatcher.run(stop))
        queue.push(Added(make_obj("pod-a", "1")))
        await eventually(lambda: seen == [EventKind.ADDED])

        stop.set()
        queue.close()
        await task

    async def test_slow_async_observer_times_out_and_delivery_continues(self) -> None:
        dispatcher, queue, _, _ = _dispatcher(observer_timeout=0.05)

        async def hang(event: WatchEvent) -> None:
            await asyncio.sleep(3600)

        recorder = Recorder()
        dispatcher.add_observer(hang)
        dispatcher.add_observer(recorder)
        stop = StopSignal()
        task = asyncio.create_task(dispatcher.run(stop))

        queue.push(Added(make_obj("pod-a", "1")))
        await eventually(lambda: len(recorder.events) == 1)

        stop.set()
        queue.close()
        await task

    async def test_no_observer_calls_after_stop(self) -> None:
        dispatcher, queue, store, _ = _dispatcher()
        recorder = Recorder()
        dispatcher.add_observer(recorder)
        stop = StopSignal()
        stop.set()
        queue.push(Added(make_obj("pod-a", "1")))

        await dispatcher.run(stop)
        assert recorder.events == []
        assert len(store) == 0

    async def test_run_marks_entries_done_for_readiness(self) -> None:
        dispatcher, queue, _, sync = _dispatcher()
        queue.replace([make_obj("pod-a", "1")])
        assert sync.has_synced() is False

        stop = StopSignal()
        task = asyncio.create_task(dispatcher.run(stop))
        await eventually(sync.has_synced)

        stop.set()
        queue.close()
        await task

    async def test_entry_interrupted_by_stop_does_not_count_toward_readiness(self) -> None:
        dispatcher, queue, _, sync = _dispatcher()
        entered, release = asyncio.Event(), asyncio.Event()

        async def blocking(event: WatchEvent) -> None:
            entered.set()
            await release.wait()

        dispatcher.add_observer(blocking)
        queue.replace([make_obj("pod-a", "1")])
        stop = StopSignal()
        task = asyncio.create_task(dispatcher.run(stop))
        await asyncio.wait_for(entered.wait(), timeout=1.0)

        stop.set()
        release.set()
        await task
        assert sync.has_synced() is False


# ---------------------------------------------------------------------------
# EventHandlerFuncs
# ---------------------------------------------------------------------------


class TestEventHandlerFuncs:
    @pytest.mark.parametrize("kind", list(EventKind))
    def test_routes_by_event_kind(self, kind: EventKind) -> None:
        calls: list[str] = []
        handler = EventHandlerFuncs(
            on_added=lambda e: calls.append("added"),
            on_updated=lambda e: calls.append("updated"),
            on_deleted=lambda e: calls.append("deleted"),
        )
        handler(WatchEvent(kind=kind, key=KEY_A, obj=make_obj("pod-a", "1")))
        assert calls == [kind.value]

    def test_missing_callback_ignores_event(self) -> None:
        handler = EventHandlerFuncs()
        assert handler(WatchEvent(kind=EventKind.ADDED, key=KEY_A, obj=make_obj("pod-a", "1"))) is None
