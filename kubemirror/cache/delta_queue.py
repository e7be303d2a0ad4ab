"""Ordered, de-duplicating buffer between the Reflector and the Cache Store.

The queue holds at most one entry per ObjectKey.  Keys are served in the
order they were first enqueued; a key that is already pending keeps its
place and its new change record is collapsed into the pending entry:

    Added   + Updated  -> Added (latest state)
    Updated + Updated  -> Updated (first old state, latest new state)
    any     + Deleted  -> Deleted
    Deleted + Added    -> [Deleted, Added]   (the object was re-created)
    X(v)    + Y(v)     -> X(v)               (same resourceVersion, no-op)

An entry therefore carries one record, or two when an object was deleted
and re-created while its key was pending.

``push`` and ``replace`` contain no suspension points: under the event
loop each call is atomic with respect to ``pop`` and to other producers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from kubemirror.cache.store import CacheStore
from kubemirror.models.objects import Added, ChangeRecord, Deleted, ObjectKey, TrackedObject, Updated
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import delta_queue_depth


class QueueClosedError(Exception):
    """Raised by :meth:`DeltaQueue.pop` once the queue has been closed."""


@dataclass(frozen=True)
class DeltaEntry:
    """One dequeued key with its collapsed, ordered change records."""

    key: ObjectKey
    records: tuple[ChangeRecord, ...]

    def __iter__(self) -> Iterator[object]:
        return iter((self.key, self.records))


class DeltaQueue:
    """FIFO-across-keys queue of collapsed change records.

    Args:
        known_objects: The Cache Store, read to compute the last known state
            of a key when nothing is pending for it.
        kind: Resource kind, used for logs and metrics only.
    """

    def __init__(self, known_objects: CacheStore, kind: str = "") -> None:
        self._known = known_objects
        self._kind = kind
        self._log = get_logger("cache.delta_queue")
        self._items: dict[ObjectKey, list[ChangeRecord]] = {}
        self._not_empty = asyncio.Event()
        self._closed = False

        # Readiness: keys queued by the first replace() that are not yet done
        self._populated = False
        self._initial_population_count = 0

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def push(self, record: ChangeRecord) -> bool:
        """Enqueue *record*, collapsing it into any pending entry for its key.

        Returns False when the queue is closed and the record was dropped.
        """
        if self._closed:
            self._log.debug("delta_queue_push_after_close", kind=self._kind, key=str(record.key))
            return False

        key = record.key
        pending = self._items.get(key)
        if pending is None:
            self._items[key] = [record]
            self._not_empty.set()
        else:
            self._items[key] = _collapse(pending, record)
        delta_queue_depth.labels(kind=self._kind).set(len(self._items))
        return True

    def replace(self, objects: Iterable[TrackedObject]) -> int:
        """Reconcile the queue against a full list of current objects.

        Listed objects unknown locally are enqueued as Added, those whose
        resourceVersion changed as Updated, and every locally known object
        missing from the list as a tombstone ``Deleted(observed_directly=False)``.
        Unchanged objects enqueue nothing.

        Returns the number of records pushed.
        """
        if self._closed:
            return 0

        listed: dict[ObjectKey, TrackedObject] = {}
        for obj in objects:
            listed[obj.key] = obj

        pushed = 0
        for key, obj in listed.items():
            known = self.latest(key)
            if known is None:
                pushed += self.push(Added(obj))
            elif known.resource_version != obj.resource_version:
                pushed += self.push(Updated(known, obj))

        known_keys = set(self._known.keys()) | set(self._items)
        for key in sorted(known_keys - listed.keys()):
            known = self.latest(key)
            if known is not None:
                pushed += self.push(Deleted(known, observed_directly=False))

        if not self._populated:
            self._populated = True
            self._initial_population_count = len(self._items)

        self._log.debug(
            "delta_queue_replaced",
            kind=self._kind,
            listed=len(listed),
            pushed=pushed,
            pending=len(self._items),
        )
        return pushed

    def latest(self, key: ObjectKey) -> TrackedObject | None:
        """Return the newest known state of *key*, counting pending records.

        None means the key is absent or its newest pending record is a delete.
        """
        pending = self._items.get(key)
        if pending:
            last = pending[-1]
            return None if isinstance(last, Deleted) else last.latest
        return self._known.get(key)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def pop(self) -> DeltaEntry:
        """Remove and return the oldest pending entry, waiting while empty.

        Callers must call :meth:`task_done` once the entry has been fully
        applied and dispatched.

        Raises:
            QueueClosedError: the queue was closed, before or while waiting.
        """
        while True:
            if self._closed:
                raise QueueClosedError
            if self._items:
                break
            self._not_empty.clear()
            await self._not_empty.wait()

        key = next(iter(self._items))
        records = self._items.pop(key)
        delta_queue_depth.labels(kind=self._kind).set(len(self._items))
        return DeltaEntry(key=key, records=tuple(records))

    def task_done(self) -> None:
        """Mark the most recently popped entry as fully processed."""
        if self._initial_population_count > 0:
            self._initial_population_count -= 1
            if self._initial_population_count == 0:
                self._log.info("delta_queue_initial_population_drained", kind=self._kind)

    def close(self) -> None:
        """Stop accepting records and wake every blocked :meth:`pop`."""
        self._closed = True
        self._not_empty.set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def has_synced(self) -> bool:
        """True once every entry queued by the first replace() has been processed."""
        return self._populated and self._initial_population_count == 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)


def _collapse(pending: list[ChangeRecord], record: ChangeRecord) -> list[ChangeRecord]:
    """Merge *record* into the pending records of the same key."""
    last = pending[-1]

    if isinstance(record, Deleted):
        if isinstance(last, Deleted):
            # Prefer a delete seen on the stream over a tombstone.
            if record.observed_directly and not last.observed_directly:
                return [*pending[:-1], record]
            return pending
        return [record]

    if isinstance(last, Deleted):
        return [*pending, record]

    if record.latest.resource_version == last.latest.resource_version:
        return pending

    if isinstance(last, Added):
        return [*pending[:-1], Added(record.latest)]
    return [*pending[:-1], Updated(last.old, record.latest)]
