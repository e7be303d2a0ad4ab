"""Click commands for kubemirror.

Flags override the KUBEMIRROR_* environment; anything not given on the
command line falls back to :func:`kubemirror.config.load_config`.
"""

from __future__ import annotations

import asyncio
import sys

import click

from kubemirror import __version__
from kubemirror.config import load_config
from kubemirror.kube import KIND_API_GROUPS
from kubemirror.models.config import KubeMirrorConfig


@click.group()
@click.version_option(__version__, prog_name="kubemirror")
def cli() -> None:
    """Mirror a Kubernetes resource class and print its lifecycle events."""


@cli.command()
@click.option("--kubeconfig", default=None, help="Path to kubeconfig (optional; empty uses in-cluster config).")
@click.option("--namespace", "-n", default=None, help="Namespace to watch (empty means all namespaces).")
@click.option("--all-namespaces", "-A", is_flag=True, default=False, help="Watch every namespace.")
@click.option(
    "--kind",
    "-k",
    default=None,
    type=click.Choice(sorted(KIND_API_GROUPS)),
    help="Resource kind to watch (default: Pod).",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Log level for the JSON logs on stderr.",
)
@click.option("--api/--no-api", "api_enabled", default=None, help="Serve the read-only HTTP API.")
@click.option("--api-port", default=None, type=click.IntRange(1024, 65535), help="Port for the HTTP API.")
def watch(
    kubeconfig: str | None,
    namespace: str | None,
    all_namespaces: bool,
    kind: str | None,
    log_level: str | None,
    api_enabled: bool | None,
    api_port: int | None,
) -> None:
    """Watch resources and print [ADDED] / [UPDATED] / [DELETED] lines."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    apply_overrides(
        config,
        kubeconfig=kubeconfig,
        namespace="" if all_namespaces else namespace,
        kind=kind,
        log_level=log_level,
        api_enabled=api_enabled,
        api_port=api_port,
    )

    from kubemirror.app import main

    sys.exit(asyncio.run(main(config)))


def apply_overrides(
    config: KubeMirrorConfig,
    *,
    kubeconfig: str | None = None,
    namespace: str | None = None,
    kind: str | None = None,
    log_level: str | None = None,
    api_enabled: bool | None = None,
    api_port: int | None = None,
) -> KubeMirrorConfig:
    """Overlay command-line values onto *config*; None means "not given"."""
    if kubeconfig is not None:
        config.watch.kubeconfig_path = kubeconfig
    if namespace is not None:
        config.watch.namespace = namespace
    if kind is not None:
        config.watch.kind = kind
    if log_level is not None:
        config.log.level = log_level
    if api_enabled is not None:
        config.api.enabled = api_enabled
    if api_port is not None:
        config.api.port = api_port
    return config
