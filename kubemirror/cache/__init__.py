"""Cache layer for kubemirror.

Submodules:
    store       -- CacheStore: keyed in-memory mirror, the source of truth for reads.
    delta_queue -- DeltaQueue: ordered, per-key collapsing buffer in front of the store.
"""

from kubemirror.cache.delta_queue import DeltaQueue, QueueClosedError
from kubemirror.cache.store import CacheStore

__all__ = ["CacheStore", "DeltaQueue", "QueueClosedError"]
