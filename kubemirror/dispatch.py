"""Event Dispatcher: replays Delta Queue entries into the Cache Store.

For every popped entry the dispatcher first applies all of the entry's
records to the store, then calls each registered observer, in
registration order, once per resulting event.

Observers run sequentially.  A slow observer delays delivery to every
observer behind it; coroutine observers are bounded by
``observer_timeout`` but a blocking plain function is not.  An observer
that raises is logged and skipped; the store was already updated, so its
failure cannot leave the store inconsistent.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from kubemirror.cache.delta_queue import DeltaEntry, DeltaQueue, QueueClosedError
from kubemirror.cache.store import CacheStore
from kubemirror.models.objects import Deleted, EventKind, WatchEvent
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import dispatched_events_total, observer_errors_total
from kubemirror.sync import StopSignal, SyncController

Observer = Callable[[WatchEvent], Awaitable[None] | None]

_DEFAULT_OBSERVER_TIMEOUT = 30.0


@dataclass
class EventHandlerFuncs:
    """Route events to one callback per event kind.

    Any callback may be omitted; events of that kind are then ignored.

    Example::

        dispatcher.add_observer(EventHandlerFuncs(on_added=print_added))
    """

    on_added: Observer | None = None
    on_updated: Observer | None = None
    on_deleted: Observer | None = None

    def __call__(self, event: WatchEvent) -> Awaitable[None] | None:
        if event.kind is EventKind.ADDED and self.on_added is not None:
            return self.on_added(event)
        if event.kind is EventKind.UPDATED and self.on_updated is not None:
            return self.on_updated(event)
        if event.kind is EventKind.DELETED and self.on_deleted is not None:
            return self.on_deleted(event)
        return None


class EventDispatcher:
    """Single consumer of the Delta Queue and sole writer of the Cache Store."""

    def __init__(
        self,
        queue: DeltaQueue,
        store: CacheStore,
        sync: SyncController,
        kind: str = "",
        observer_timeout: float = _DEFAULT_OBSERVER_TIMEOUT,
    ) -> None:
        self._queue = queue
        self._store = store
        self._sync = sync
        self._kind = kind
        self._observer_timeout = observer_timeout
        self._observers: list[Observer] = []
        self._log = get_logger("dispatch")

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    @property
    def observers(self) -> list[Observer]:
        return list(self._observers)

    async def run(self, stop: StopSignal) -> None:
        """Pop, apply and dispatch until the queue is closed or *stop* is set."""
        self._log.debug("dispatcher_started", kind=self._kind)
        while not stop.is_set():
            try:
                entry = await self._queue.pop()
            except QueueClosedError:
                break
            if stop.is_set():
                break
            for event in self.apply(entry):
                await self._notify(event, stop)
            # An entry interrupted by stop was not fully dispatched and must
            # not count toward readiness.
            if stop.is_set():
                break
            self._queue.task_done()
            self._sync.check()
        self._log.debug("dispatcher_stopped", kind=self._kind)

    def apply(self, entry: DeltaEntry) -> list[WatchEvent]:
        """Apply every record of *entry* to the store and return the events.

        A record that would not change the store produces no event: an
        Added/Updated carrying the resourceVersion already held, or a
        Deleted for a key the store never held.  An Updated for a key the
        store does not hold is applied as Added; an Added for a key it
        does hold is applied as Updated.
        """
        events: list[WatchEvent] = []
        key = entry.key
        for record in entry.records:
            current = self._store.get(key)

            if isinstance(record, Deleted):
                if current is None:
                    self._log.debug("dispatch_delete_unknown_key", kind=self._kind, key=str(key))
                    continue
                self._store.remove(key)
                events.append(
                    WatchEvent(
                        kind=EventKind.DELETED,
                        key=key,
                        obj=record.obj,
                        observed_directly=record.observed_directly,
                    )
                )
                continue

            new = record.latest
            if current is not None and current.resource_version == new.resource_version:
                continue
            self._store.update(new)
            if current is None:
                events.append(WatchEvent(kind=EventKind.ADDED, key=key, obj=new))
            else:
                events.append(WatchEvent(kind=EventKind.UPDATED, key=key, obj=new, old_obj=current))
        return events

    async def _notify(self, event: WatchEvent, stop: StopSignal) -> None:
        """Deliver *event* to every observer, isolating observer failures."""
        dispatched_events_total.labels(kind=self._kind, event=event.kind.value).inc()
        for index, observer in enumerate(list(self._observers)):
            if stop.is_set():
                return
            try:
                result = observer(event)
                if inspect.isawaitable(result):
                    await asyncio.wait_for(result, timeout=self._observer_timeout)
            except TimeoutError:
                observer_errors_total.labels(kind=self._kind).inc()
                self._log.warning(
                    "observer_timed_out",
                    kind=self._kind,
                    observer=index,
                    event=event.kind.value,
                    key=str(event.key),
                    timeout=self._observer_timeout,
                )
            except Exception as exc:
                observer_errors_total.labels(kind=self._kind).inc()
                self._log.error(
                    "observer_failed",
                    kind=self._kind,
                    observer=index,
                    event=event.kind.value,
                    key=str(event.key),
                    error=str(exc),
                    exc_info=True,
                )
