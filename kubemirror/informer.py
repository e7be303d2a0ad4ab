"""Informer: one watched resource class, wired end to end.

    RemoteSource -> Reflector -> DeltaQueue -> EventDispatcher -> CacheStore
                                                              \\-> observers

The Reflector and the Event Dispatcher run as two asyncio tasks that share
nothing but the Delta Queue and the Cache Store.  A single StopSignal
cancels both: the queue is closed, the Reflector task is cancelled (which
closes its watch stream) and the dispatcher returns once its in-flight
entry is done.
"""

from __future__ import annotations

import asyncio
import contextvars
from collections.abc import Coroutine
from typing import Any

from kubemirror.cache.delta_queue import DeltaQueue
from kubemirror.cache.store import CacheStore
from kubemirror.collector.reflector import Reflector, ReflectorState
from kubemirror.collector.source import RemoteSource
from kubemirror.dispatch import EventDispatcher, Observer
from kubemirror.errors import InformerStateError, UnauthorizedError
from kubemirror.models.config import DispatchConfig, ReflectorConfig
from kubemirror.observability.logging import bind_kind, get_logger
from kubemirror.sync import StopSignal, SyncController


class Informer:
    """Mirror one resource class into a CacheStore and notify observers.

    Observers must be registered before :meth:`start`.

    Example::

        informer = Informer(KubernetesSource(v1, "Pod", "default"))
        informer.add_event_handler(EventHandlerFuncs(on_added=print_added))
        await informer.start(stop)
        if await informer.wait_for_sync():
            pod = informer.store.get("default/my-pod")
    """

    def __init__(
        self,
        source: RemoteSource,
        reflector_config: ReflectorConfig | None = None,
        dispatch_config: DispatchConfig | None = None,
    ) -> None:
        reflector_config = reflector_config or ReflectorConfig()
        dispatch_config = dispatch_config or DispatchConfig()
        self._kind = source.kind
        self._log = get_logger("informer")

        self._store = CacheStore(kind=self._kind)
        self._queue = DeltaQueue(self._store, kind=self._kind)
        self._sync = SyncController(self._queue, kind=self._kind)
        self._reflector = Reflector(
            source,
            self._queue,
            self._sync,
            backoff_initial=reflector_config.backoff_initial,
            backoff_max=reflector_config.backoff_max,
            max_watch_failures=reflector_config.max_watch_failures,
        )
        self._dispatcher = EventDispatcher(
            self._queue,
            self._store,
            self._sync,
            kind=self._kind,
            observer_timeout=dispatch_config.observer_timeout,
        )

        self._stop: StopSignal | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._error: UnauthorizedError | None = None

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def reflector_state(self) -> ReflectorState:
        return self._reflector.state

    @property
    def error(self) -> UnauthorizedError | None:
        """The fatal error that stopped this informer, if any."""
        return self._error

    @property
    def started(self) -> bool:
        return bool(self._tasks)

    def has_synced(self) -> bool:
        return self._sync.has_synced()

    async def wait_for_sync(self, stop: StopSignal | None = None) -> bool:
        """Wait for the initial list to be fully dispatched.

        Returns False if *stop* (default: the signal given to :meth:`start`)
        is set first, including when the informer stops on a fatal error.
        """
        stop = stop or self._stop
        if stop is None:
            raise InformerStateError("informer has not been started")
        return await self._sync.wait_for_sync(stop)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def add_event_handler(self, observer: Observer) -> None:
        """Register *observer*; it is called once per dispatched event."""
        if self.started:
            raise InformerStateError("observers must be registered before start()")
        self._dispatcher.add_observer(observer)

    async def start(self, stop: StopSignal | None = None) -> None:
        """Launch the reflector and dispatcher tasks.

        Args:
            stop: Shared cancellation signal.  A private one is created when
                  omitted; :meth:`stop` sets whichever is in use.
        """
        if self.started:
            raise InformerStateError("informer already started")
        self._stop = stop or StopSignal()
        self._tasks = [
            self._spawn(self._run_reflector(), f"reflector-{self._kind}"),
            self._spawn(self._dispatcher.run(self._stop), f"dispatcher-{self._kind}"),
            self._spawn(self._supervise(), f"informer-supervisor-{self._kind}"),
        ]
        self._log.info("informer_started", kind=self._kind, observers=len(self._dispatcher.observers))

    async def stop(self) -> None:
        """Set the stop signal and wait for every task to finish.  Idempotent."""
        if self._stop is None:
            return
        self._stop.set("stop requested")
        await self.wait_stopped()

    async def wait_stopped(self) -> None:
        """Wait until the informer has fully stopped."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def run(self, stop: StopSignal | None = None) -> None:
        """Start, then block until stopped.

        Raises:
            UnauthorizedError: the informer stopped on a fatal auth failure.
        """
        await self.start(stop)
        await self.wait_stopped()
        if self._error is not None:
            raise self._error

    async def _run_reflector(self) -> None:
        assert self._stop is not None
        try:
            await self._reflector.run(self._stop)
        except UnauthorizedError as exc:
            self._error = exc
            self._log.error("informer_fatal_error", kind=self._kind, error=str(exc))
            self._stop.set("unauthorized")

    async def _supervise(self) -> None:
        """Propagate the stop signal to the queue and the reflector task."""
        assert self._stop is not None
        await self._stop.wait()
        self._queue.close()
        reflector_task = self._tasks[0]
        if not reflector_task.done():
            reflector_task.cancel()
        self._log.info("informer_stopped", kind=self._kind, reason=self._stop.reason)

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task[None]:
        """Run *coro* as a task whose log lines are tagged with this informer's kind."""
        context = contextvars.copy_context()
        context.run(bind_kind, self._kind)
        return asyncio.create_task(coro, name=name, context=context)
