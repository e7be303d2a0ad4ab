"""In-memory mirror of the last known good state of every tracked object.

Readers may query the store at any time from the event loop.  Only the
Event Dispatcher calls :meth:`CacheStore.update` and
:meth:`CacheStore.remove`; every other component holds read access only.
"""

from __future__ import annotations

import builtins

from kubemirror.models.objects import ObjectKey, TrackedObject
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import cache_objects


class CacheStore:
    """Mapping from ObjectKey to the latest TrackedObject.

    All methods are synchronous and contain no suspension points, so under
    a single event loop every read sees the cumulative effect of whole
    dispatched deltas, never half of one.

    Example::

        store = CacheStore(kind="Pod")
        obj = store.get(ObjectKey("default", "my-pod"))
    """

    def __init__(self, kind: str = "") -> None:
        self._kind = kind
        self._log = get_logger("cache.store")
        self._items: dict[ObjectKey, TrackedObject] = {}

    @property
    def kind(self) -> str:
        return self._kind

    # ------------------------------------------------------------------
    # Read interface
    # ------------------------------------------------------------------

    def get(self, key: ObjectKey | str) -> TrackedObject | None:
        """Return the cached object for *key*, or None if absent.

        Args:
            key: An ObjectKey or its ``"namespace/name"`` string form.
        """
        if isinstance(key, str):
            key = ObjectKey.parse(key)
        return self._items.get(key)

    def list(self, namespace: str = "") -> builtins.list[TrackedObject]:
        """Return every cached object, optionally filtered by namespace, sorted by key."""
        items = (obj for key, obj in self._items.items() if not namespace or key.namespace == namespace)
        return sorted(items, key=lambda obj: obj.key)

    def keys(self) -> builtins.list[ObjectKey]:
        return sorted(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, str):
            key = ObjectKey.parse(key)
        return key in self._items

    # ------------------------------------------------------------------
    # Write interface (Event Dispatcher only)
    # ------------------------------------------------------------------

    def update(self, obj: TrackedObject) -> TrackedObject | None:
        """Insert or replace *obj*; return the previous object, if any."""
        previous = self._items.get(obj.key)
        self._items[obj.key] = obj
        cache_objects.labels(kind=self._kind).set(len(self._items))
        return previous

    def remove(self, key: ObjectKey) -> TrackedObject | None:
        """Remove *key*; return the removed object, or None if it was absent."""
        removed = self._items.pop(key, None)
        if removed is not None:
            cache_objects.labels(kind=self._kind).set(len(self._items))
        else:
            self._log.debug("cache_remove_absent_key", kind=self._kind, key=str(key))
        return removed
