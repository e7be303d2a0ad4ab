"""Readiness gate and cancellation signal.

StopSignal     -- process-wide cancellation token, settable exactly once.
SyncController -- write-once "initial list fully dispatched" flag.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from kubemirror.cache.delta_queue import DeltaQueue
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import synced

_log = get_logger("sync")


class StopSignal:
    """Broadcast cancellation token passed to every blocking call.

    The first :meth:`set` wins; later calls are no-ops.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    def set(self, reason: str = "") -> bool:
        """Trip the signal.  Returns False if it was already set."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        _log.debug("stop_signal_set", reason=reason)
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for *delay* seconds, waking early on stop.

        Returns True if the signal was set before the delay elapsed.
        """
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True


class SyncController:
    """Flips from not-synced to synced exactly once.

    The flag is set the first time the Delta Queue reports that every entry
    produced by the initial list has been popped and dispatched.  Components
    that make progress (the Reflector after a list, the Event Dispatcher
    after each entry) call :meth:`check`.
    """

    def __init__(self, queue: DeltaQueue, kind: str = "") -> None:
        self._queue = queue
        self._kind = kind
        self._synced = False
        self._event = asyncio.Event()

    def check(self) -> bool:
        """Re-evaluate readiness; returns the current flag."""
        if not self._synced and self._queue.has_synced():
            self._synced = True
            self._event.set()
            synced.labels(kind=self._kind).set(1)
            _log.info("cache_synced", kind=self._kind)
        return self._synced

    def has_synced(self) -> bool:
        return self.check()

    async def wait_for_sync(self, stop: StopSignal) -> bool:
        """Block until synced or until *stop* is set.

        Returns True if synced, False if the stop signal came first.
        """
        if stop.is_set():
            return self._synced
        if self.check():
            return True

        synced_wait = asyncio.ensure_future(self._event.wait())
        stop_wait = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({synced_wait, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (synced_wait, stop_wait):
                if not fut.done():
                    fut.cancel()
        return self._synced


class _Syncable(Protocol):
    async def wait_for_sync(self, stop: StopSignal) -> bool: ...


async def wait_for_cache_sync(stop: StopSignal, *syncables: _Syncable) -> bool:
    """Wait until every given informer (or controller) has synced.

    Returns False as soon as one of them reports the stop signal won.
    """
    for syncable in syncables:
        if not await syncable.wait_for_sync(stop):
            _log.warning("wait_for_cache_sync_aborted", reason=stop.reason)
            return False
    return True
