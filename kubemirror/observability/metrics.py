"""Prometheus collectors for kubemirror.

All collectors are module-level singletons registered on the default
registry; every one is labelled by the watched resource ``kind``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

watch_events_total = Counter(
    "kubemirror_watch_events_total",
    "Watch notifications received, by notification type.",
    ["kind", "type"],
)

relists_total = Counter(
    "kubemirror_relists_total",
    "Full relists performed, by trigger.",
    ["kind", "reason"],
)

watch_reconnects_total = Counter(
    "kubemirror_watch_reconnects_total",
    "Watch stream reconnect attempts, by cause.",
    ["kind", "reason"],
)

delta_queue_depth = Gauge(
    "kubemirror_delta_queue_depth",
    "Number of keys pending in the delta queue.",
    ["kind"],
)

cache_objects = Gauge(
    "kubemirror_cache_objects",
    "Number of objects held in the cache store.",
    ["kind"],
)

dispatched_events_total = Counter(
    "kubemirror_dispatched_events_total",
    "Events delivered to observers, by event kind.",
    ["kind", "event"],
)

observer_errors_total = Counter(
    "kubemirror_observer_errors_total",
    "Observer callbacks that raised or timed out.",
    ["kind"],
)

synced = Gauge(
    "kubemirror_synced",
    "1 once the initial list has been fully dispatched.",
    ["kind"],
)
