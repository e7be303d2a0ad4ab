"""Core data structures for kubemirror."""

from kubemirror.models.config import KubeMirrorConfig
from kubemirror.models.objects import (
    Added,
    ChangeRecord,
    Deleted,
    EventKind,
    ObjectKey,
    TrackedObject,
    Updated,
    WatchEvent,
)

__all__ = [
    "Added",
    "ChangeRecord",
    "Deleted",
    "EventKind",
    "KubeMirrorConfig",
    "ObjectKey",
    "TrackedObject",
    "Updated",
    "WatchEvent",
]
