"""Reflector: drives the list-then-watch protocol into the Delta Queue.

State machine
-------------
IDLE -> LISTING -> WATCHING -> (stream end / error) -> LISTING or WATCHING
Any state -> STOPPED on cancellation or on a fatal UnauthorizedError.

LISTING
    ``source.list()`` then ``queue.replace(objects)``; the returned
    resourceVersion becomes the watch checkpoint.  A failed list backs off
    and retries; it never touches the queue.

WATCHING
    Opens a watch from the checkpoint.  Every notification advances the
    checkpoint and enqueues its change record in one synchronous step.

    CheckpointExpiredError      -> relist immediately.
    MalformedNotificationError  -> relist (the checkpoint can't be trusted).
    TransientConnectionError    -> jittered exponential backoff, re-watch from
                                   the checkpoint; relist after
                                   ``max_watch_failures`` consecutive failures.
    UnauthorizedError           -> propagates; the reflector stops.
    Clean end of stream         -> re-watch from the checkpoint.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
from enum import StrEnum

from kubemirror.cache.delta_queue import DeltaQueue
from kubemirror.collector.source import Notification, NotificationType, RemoteSource
from kubemirror.errors import (
    CheckpointExpiredError,
    MalformedNotificationError,
    TransientConnectionError,
    UnauthorizedError,
)
from kubemirror.models.objects import Added, Deleted, Updated
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import relists_total, watch_events_total, watch_reconnects_total
from kubemirror.sync import StopSignal, SyncController

MAX_CONSECUTIVE_FAILURES = 3
_BACKOFF_INITIAL_S = 1.0
_BACKOFF_MAX_S = 30.0
_BACKOFF_JITTER = 0.2
_MAX_BACKOFF_EXPONENT = 30
# An empty stream shorter than this is treated as a failed connection
_MIN_HEALTHY_STREAM_S = 1.0


class ReflectorState(StrEnum):
    """Reflector lifecycle states."""

    IDLE = "idle"
    LISTING = "listing"
    WATCHING = "watching"
    STOPPED = "stopped"


class Reflector:
    """Mirror one RemoteSource into a DeltaQueue.

    Args:
        source: List/watch boundary of the watched resource class.
        queue: Destination of normalized change records.
        sync: Optional readiness gate, re-checked after every list.
        backoff_initial: First retry delay in seconds.
        backoff_max: Retry delay cap in seconds.
        max_watch_failures: Consecutive watch failures before relisting.
    """

    def __init__(
        self,
        source: RemoteSource,
        queue: DeltaQueue,
        sync: SyncController | None = None,
        *,
        backoff_initial: float = _BACKOFF_INITIAL_S,
        backoff_max: float = _BACKOFF_MAX_S,
        max_watch_failures: int = MAX_CONSECUTIVE_FAILURES,
    ) -> None:
        self._source = source
        self._queue = queue
        self._sync = sync
        self._kind = source.kind
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max
        self._max_watch_failures = max_watch_failures
        self._log = get_logger("collector.reflector")

        self._state = ReflectorState.IDLE
        self._resource_version = ""
        self._needs_relist = True
        self._consecutive_failures = 0
        self._backoff_attempt = 0
        self._relist_reason = "initial"

    @property
    def state(self) -> ReflectorState:
        return self._state

    @property
    def resource_version(self) -> str:
        """The current watch checkpoint."""
        return self._resource_version

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self, stop: StopSignal) -> None:
        """Run until *stop* is set.

        Raises:
            UnauthorizedError: the control plane rejected our credentials.
        """
        self._log.info("reflector_started", kind=self._kind)
        try:
            while not stop.is_set():
                try:
                    if self._needs_relist:
                        self._state = ReflectorState.LISTING
                        if not await self._list(stop):
                            continue
                    self._state = ReflectorState.WATCHING
                    await self._watch(stop)
                except UnauthorizedError as exc:
                    self._log.error("reflector_unauthorized", kind=self._kind, error=str(exc), status=exc.status)
                    raise
                except Exception as exc:
                    await self._handle_loop_exception(exc, stop)
        finally:
            self._state = ReflectorState.STOPPED
            self._log.info("reflector_stopped", kind=self._kind, resource_version=self._resource_version)

    async def _list(self, stop: StopSignal) -> bool:
        """Relist and reconcile.  Returns False if the list failed."""
        try:
            result = await self._source.list()
        except (TransientConnectionError, CheckpointExpiredError, MalformedNotificationError) as exc:
            self._log.warning("reflector_list_failed", kind=self._kind, error=str(exc))
            await self._backoff(stop, "list_error")
            return False

        if stop.is_set():
            return False

        pushed = self._queue.replace(result.objects)
        self._resource_version = result.resource_version
        self._needs_relist = False
        self._consecutive_failures = 0
        self._reset_backoff()
        relists_total.labels(kind=self._kind, reason=self._relist_reason).inc()
        self._log.info(
            "reflector_relist",
            kind=self._kind,
            reason=self._relist_reason,
            count=len(result.objects),
            pushed=pushed,
            resource_version=result.resource_version,
        )
        if not result.resource_version:
            self._log.warning("reflector_relist_no_rv", kind=self._kind)
        if self._sync is not None:
            self._sync.check()
        return True

    async def _watch(self, stop: StopSignal) -> None:
        """Consume one watch stream from the current checkpoint."""
        loop = asyncio.get_running_loop()
        opened_at = loop.time()
        received = 0
        self._log.debug("reflector_watch_open", kind=self._kind, resource_version=self._resource_version)
        try:
            async with contextlib.aclosing(self._source.watch(self._resource_version)) as stream:
                async for notification in stream:
                    if stop.is_set():
                        return
                    self._handle_notification(notification)
                    received += 1
                    if self._consecutive_failures or self._backoff_attempt:
                        self._consecutive_failures = 0
                        self._reset_backoff()
        except CheckpointExpiredError as exc:
            self._log.info("reflector_checkpoint_expired", kind=self._kind, error=str(exc))
            self._request_relist("expired")
            return
        except MalformedNotificationError as exc:
            self._log.warning("reflector_malformed_notification", kind=self._kind, error=str(exc))
            self._request_relist("malformed")
            return
        except TransientConnectionError as exc:
            await self._handle_watch_failure("watch_error", str(exc), stop)
            return

        if received == 0 and loop.time() - opened_at < _MIN_HEALTHY_STREAM_S:
            await self._handle_watch_failure("empty_stream", "", stop)
            return
        watch_reconnects_total.labels(kind=self._kind, reason="stream_end").inc()
        self._log.debug("reflector_watch_ended", kind=self._kind, received=received)

    def _handle_notification(self, notification: Notification) -> None:
        """Advance the checkpoint and enqueue the notification's change record."""
        watch_events_total.labels(kind=self._kind, type=notification.type.value).inc()
        self._resource_version = notification.resource_version
        obj = notification.obj
        if notification.type is NotificationType.BOOKMARK or obj is None:
            return

        if notification.type is NotificationType.DELETED:
            self._queue.push(Deleted(obj, observed_directly=True))
            return

        known = self._queue.latest(obj.key)
        if known is None:
            self._queue.push(Added(obj))
        else:
            self._queue.push(Updated(known, obj))

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _handle_watch_failure(self, reason: str, error: str, stop: StopSignal) -> None:
        """Count a failed watch; relist at the threshold, otherwise back off."""
        self._consecutive_failures += 1
        watch_reconnects_total.labels(kind=self._kind, reason=reason).inc()
        self._log.warning(
            "reflector_watch_failed",
            kind=self._kind,
            reason=reason,
            error=error,
            consecutive_failures=self._consecutive_failures,
        )
        if self._consecutive_failures >= self._max_watch_failures:
            self._request_relist("consecutive_failures")
        await self._backoff(stop, reason)

    async def _handle_loop_exception(self, exc: Exception, stop: StopSignal) -> None:
        """Unexpected error: relist after backing off, never give up."""
        self._consecutive_failures += 1
        watch_reconnects_total.labels(kind=self._kind, reason="unexpected").inc()
        self._log.error("reflector_unexpected_error", kind=self._kind, error=str(exc), exc_info=True)
        self._request_relist("unexpected")
        await self._backoff(stop, "unexpected")

    def _request_relist(self, reason: str) -> None:
        self._needs_relist = True
        self._relist_reason = reason
        self._consecutive_failures = 0

    async def _backoff(self, stop: StopSignal, reason: str) -> None:
        """Sleep for the next jittered exponential delay, waking on stop."""
        self._backoff_attempt += 1
        delay = self.next_delay(self._backoff_attempt)
        self._log.debug("reflector_backoff", kind=self._kind, reason=reason, delay=round(delay, 3))
        await stop.sleep(delay)

    def next_delay(self, attempt: int) -> float:
        """Delay before retry number *attempt* (1-based), capped and jittered."""
        exponent = min(max(attempt - 1, 0), _MAX_BACKOFF_EXPONENT)
        base = min(self._backoff_initial * (2**exponent), self._backoff_max)
        jittered = base * random.uniform(1 - _BACKOFF_JITTER, 1 + _BACKOFF_JITTER)
        return min(jittered, self._backoff_max)

    def _reset_backoff(self) -> None:
        self._backoff_attempt = 0
