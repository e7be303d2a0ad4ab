"""Tracked objects, change records and dispatched events.

A ``TrackedObject`` is an immutable snapshot of one remote resource at one
resourceVersion.  The Reflector turns watch notifications into change
records (``Added`` / ``Updated`` / ``Deleted``), the Delta Queue collapses
them per key, and the Event Dispatcher turns them into ``WatchEvent``
instances for observers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from kubemirror.errors import MalformedNotificationError


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Stable identity of a tracked object.

    ``namespace`` is the empty string for cluster-scoped resources.
    """

    namespace: str
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @classmethod
    def parse(cls, value: str) -> ObjectKey:
        """Parse ``"namespace/name"`` or ``"name"`` into a key."""
        namespace, sep, name = value.partition("/")
        if not sep:
            return cls(namespace="", name=namespace)
        return cls(namespace=namespace, name=name)


@dataclass(frozen=True)
class TrackedObject:
    """Last known state of one resource as reported by the control plane."""

    key: ObjectKey
    resource_version: str
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def namespace(self) -> str:
        return self.key.namespace

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def labels(self) -> dict[str, str]:
        labels = self.raw.get("metadata", {}).get("labels") or {}
        return {str(k): str(v) for k, v in labels.items()} if isinstance(labels, dict) else {}

    @property
    def phase(self) -> str:
        """Return ``status.phase`` if the resource reports one, else ``""``."""
        status = self.raw.get("status")
        if not isinstance(status, dict):
            return ""
        return str(status.get("phase") or "")

    @classmethod
    def from_dict(cls, raw: Any) -> TrackedObject:
        """Build a TrackedObject from a serialized Kubernetes object.

        Raises:
            MalformedNotificationError: when the object has no usable metadata.
        """
        if not isinstance(raw, dict):
            raise MalformedNotificationError(f"object is not a mapping: {type(raw).__name__}")
        metadata = raw.get("metadata")
        if not isinstance(metadata, dict):
            raise MalformedNotificationError("object has no metadata")
        name = metadata.get("name")
        if not name:
            raise MalformedNotificationError("object metadata has no name")
        namespace = metadata.get("namespace") or ""
        rv = metadata.get("resourceVersion") or ""
        return cls(
            key=ObjectKey(namespace=str(namespace), name=str(name)),
            resource_version=str(rv),
            raw=raw,
        )


@dataclass(frozen=True)
class Added:
    """The object appeared (live watch event or first seen in a list)."""

    obj: TrackedObject

    @property
    def key(self) -> ObjectKey:
        return self.obj.key

    @property
    def latest(self) -> TrackedObject:
        return self.obj


@dataclass(frozen=True)
class Updated:
    """The object changed.  ``old`` is the last state known when enqueued."""

    old: TrackedObject | None
    new: TrackedObject

    @property
    def key(self) -> ObjectKey:
        return self.new.key

    @property
    def latest(self) -> TrackedObject:
        return self.new


@dataclass(frozen=True)
class Deleted:
    """The object is gone.

    ``observed_directly`` is False for tombstones: deletes inferred because
    the object vanished from a relist.  A tombstone carries the last cached
    copy of the object because the server can no longer supply its final
    state.
    """

    obj: TrackedObject
    observed_directly: bool = True

    @property
    def key(self) -> ObjectKey:
        return self.obj.key

    @property
    def latest(self) -> TrackedObject:
        return self.obj


ChangeRecord = Added | Updated | Deleted


class EventKind(StrEnum):
    """Kind of event delivered to observers."""

    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class WatchEvent:
    """One dispatched event, delivered once to every observer.

    ``old_obj`` is set only for UPDATED.  ``observed_directly`` is only
    meaningful for DELETED.
    """

    kind: EventKind
    key: ObjectKey
    obj: TrackedObject
    old_obj: TrackedObject | None = None
    observed_directly: bool = True
