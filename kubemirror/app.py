"""Application bootstrap for kubemirror.

Wires the components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> K8s client -> informer -> initial sync
              -> REST (optional)

Shutdown stops components in reverse startup order.  SIGINT/SIGTERM set
the single StopSignal shared by every component.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

import click

from kubemirror.errors import ConfigError
from kubemirror.informer import Informer
from kubemirror.models.config import KubeMirrorConfig
from kubemirror.observability.logging import get_logger, setup_logging
from kubemirror.printer import EventPrinter
from kubemirror.sync import StopSignal, wait_for_cache_sync

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15
# Lets the dispatcher finish printing its in-flight entry before exit
_EXIT_GRACE_SECONDS = 0.2


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeMirrorApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already
    stopped) is safe.
    """

    def __init__(self, config: KubeMirrorConfig, stop: StopSignal | None = None) -> None:
        self.config = config
        self.stop_signal = stop or StopSignal()

        self._api_client: Any = None
        self._informer: Informer | None = None
        self._rest_server: Any = None
        self._background_tasks: list[asyncio.Task[Any]] = []

        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def informer(self) -> Informer | None:
        return self._informer

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components and wait for the initial sync.

        Raises _ComponentError if a mandatory component cannot start or the
        cache cannot sync.
        """
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("kubemirror starting", version=_kubemirror_version(), kind=self.config.watch.kind)

        await self._start_k8s_client()
        await self._start_informer()
        await self._wait_for_sync()
        await self._start_rest()

        scope = self.config.watch.namespace or "all namespaces"
        click.echo(f"{self.config.watch.kind} watcher started ({scope}). Listening for events... (Ctrl+C to stop)")

    async def _start_k8s_client(self) -> None:
        """Resolve credentials and build the shared kubernetes-asyncio ApiClient."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            from kubernetes_asyncio import client as k8s_client

            from kubemirror.kube import load_kube_config

            source = await load_kube_config(self.config.watch.kubeconfig_path)
            click.echo(f"Using config from: {source}")
            self._api_client = k8s_client.ApiClient()
            self._log.info("k8s client configured", source=source)
        except ConfigError as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_informer(self) -> None:
        assert self._log is not None
        self._log.debug("starting informer")
        try:
            from kubemirror.kube import build_source

            source = build_source(
                self.config.watch.kind,
                self.config.watch.namespace,
                api_client=self._api_client,
                watch_timeout_seconds=self.config.reflector.watch_timeout_seconds,
            )
            informer = Informer(
                source,
                reflector_config=self.config.reflector,
                dispatch_config=self.config.dispatch,
            )
            informer.add_event_handler(EventPrinter())
            await informer.start(self.stop_signal)
            self._informer = informer
        except ValueError as exc:
            raise _ComponentError("informer", exc) from exc

    async def _wait_for_sync(self) -> None:
        assert self._informer is not None
        if await wait_for_cache_sync(self.stop_signal, self._informer):
            return
        cause: Exception = self._informer.error or RuntimeError("failed to wait for caches to sync")
        raise _ComponentError("informer", cause)

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server if enabled."""
        assert self._log is not None
        if not self.config.api.enabled:
            self._log.debug("rest api disabled")
            return
        try:
            import uvicorn

            from kubemirror.api import create_app

            uv_config = uvicorn.Config(
                app=create_app(self._informer),
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            # REST is optional; the watcher keeps running without it
            self._log.warning("rest api failed to start", error=str(exc))
            self._rest_server = None

    # ------------------------------------------------------------------
    # Run / shutdown
    # ------------------------------------------------------------------

    async def wait(self) -> None:
        """Block until the stop signal is set, then return."""
        await self.stop_signal.wait()

    async def stop(self) -> None:
        """Stop all components in reverse startup order."""
        if self._log is None:
            return
        log = self._log
        log.info("kubemirror shutting down", reason=self.stop_signal.reason)
        self.stop_signal.set("shutdown")

        if self._rest_server is not None:
            self._rest_server.should_exit = True
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        if self._informer is not None:
            try:
                await asyncio.wait_for(self._informer.stop(), timeout=_SHUTDOWN_GRACE_SECONDS)
            except TimeoutError:
                log.warning("informer stop timed out", timeout=_SHUTDOWN_GRACE_SECONDS)

        if self._api_client is not None:
            try:
                await self._api_client.close()
            except Exception as exc:
                log.debug("k8s client close raised (non-fatal)", error=str(exc))
            self._api_client = None

        log.info("kubemirror stopped")
        self._log = None


def _kubemirror_version() -> str:
    from kubemirror import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: KubeMirrorConfig) -> int:
    """Run the watcher until SIGINT/SIGTERM.  Returns the process exit code."""
    stop = StopSignal()
    app = KubeMirrorApp(config, stop)
    loop = asyncio.get_running_loop()

    def _request_shutdown() -> None:
        if stop.set("signal"):
            click.echo("\nReceived shutdown signal, stopping...")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    exit_code = 0
    try:
        await app.start()
        await app.wait()
        informer = app.informer
        if informer is not None and informer.error is not None:
            click.echo(f"ERROR watch failed: {informer.error}", err=True)
            exit_code = 1
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal startup error", component=exc.component, error=str(exc.cause))
        click.echo(f"ERROR {exc.component}: {exc.cause}", err=True)
        exit_code = 1
    finally:
        await app.stop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    await asyncio.sleep(_EXIT_GRACE_SECONDS)
    click.echo("Exited.")
    return exit_code
