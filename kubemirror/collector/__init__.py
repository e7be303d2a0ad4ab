"""Collector package for kubemirror.

Submodules
----------
source    -- RemoteSource boundary and the kubernetes-asyncio KubernetesSource.
reflector -- Reflector: list-then-watch, checkpointing, backoff, relist recovery.
"""

from kubemirror.collector.reflector import Reflector, ReflectorState
from kubemirror.collector.source import KubernetesSource, ListResult, Notification, NotificationType, RemoteSource

__all__ = [
    "KubernetesSource",
    "ListResult",
    "Notification",
    "NotificationType",
    "Reflector",
    "ReflectorState",
    "RemoteSource",
]
