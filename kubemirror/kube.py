"""Cluster credentials and API clients.

Credential resolution order (first match wins):

1. ``KUBECONFIG`` environment variable -- the file must exist.
2. An explicit kubeconfig path (``--kubeconfig``) -- the file must exist.
3. In-cluster service account (when running as a Pod).
4. ``$HOME/.kube/config``.

The core never resolves credentials itself: it receives a ready
``KubernetesSource`` built here, or fails before starting.
"""

from __future__ import annotations

import os
from typing import Any

from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio import config as k8s_config

from kubemirror.collector.source import KubernetesSource
from kubemirror.errors import ConfigError
from kubemirror.observability.logging import get_logger

_log = get_logger("kube")

KIND_API_GROUPS: dict[str, str] = {
    "Pod": "CoreV1Api",
    "Node": "CoreV1Api",
    "Namespace": "CoreV1Api",
    "Service": "CoreV1Api",
    "Endpoints": "CoreV1Api",
    "ConfigMap": "CoreV1Api",
    "Secret": "CoreV1Api",
    "ServiceAccount": "CoreV1Api",
    "PersistentVolumeClaim": "CoreV1Api",
    "PersistentVolume": "CoreV1Api",
    "ResourceQuota": "CoreV1Api",
    "LimitRange": "CoreV1Api",
    "ReplicationController": "CoreV1Api",
    "Event": "CoreV1Api",
    "Deployment": "AppsV1Api",
    "StatefulSet": "AppsV1Api",
    "DaemonSet": "AppsV1Api",
    "ReplicaSet": "AppsV1Api",
    "ControllerRevision": "AppsV1Api",
    "Job": "BatchV1Api",
    "CronJob": "BatchV1Api",
}


async def load_kube_config(kubeconfig_path: str = "") -> str:
    """Configure kubernetes-asyncio's default client configuration.

    Returns:
        A label for where the configuration came from (a file path or
        ``"in-cluster"``).

    Raises:
        ConfigError: no usable configuration was found.
    """
    env = os.environ.get("KUBECONFIG", "")
    if env:
        if not os.path.exists(env):
            raise ConfigError(f"KUBECONFIG is set but file not found: {env}")
        await _load_file(env, f"failed to build config from KUBECONFIG={env}")
        return env

    if kubeconfig_path:
        if not os.path.exists(kubeconfig_path):
            raise ConfigError(f"kubeconfig provided but not found: {kubeconfig_path}")
        await _load_file(kubeconfig_path, f"failed to build config from provided kubeconfig {kubeconfig_path}")
        return kubeconfig_path

    try:
        k8s_config.load_incluster_config()
        return "in-cluster"
    except k8s_config.ConfigException:
        _log.debug("kube_not_in_cluster")

    home = os.environ.get("HOME", "")
    if not home:
        raise ConfigError("HOME not set; cannot find default kubeconfig; set KUBECONFIG or use --kubeconfig")
    default_path = os.path.join(home, ".kube", "config")
    if os.path.exists(default_path):
        await _load_file(default_path, f"failed to build config from {default_path}")
        return default_path

    raise ConfigError(f"no kubeconfig found (KUBECONFIG, --kubeconfig, in-cluster, or {default_path})")


async def _load_file(path: str, error_prefix: str) -> None:
    try:
        await k8s_config.load_kube_config(config_file=os.path.normpath(path))
    except Exception as exc:
        raise ConfigError(f"{error_prefix}: {exc}") from exc


def api_for_kind(kind: str, api_client: Any = None) -> Any:
    """Return the kubernetes-asyncio API group instance that lists *kind*.

    Raises:
        ValueError: *kind* is not a supported resource class.
    """
    group = KIND_API_GROUPS.get(kind)
    if group is None:
        supported = ", ".join(sorted(KIND_API_GROUPS))
        raise ValueError(f"Unsupported kind {kind!r}. Supported kinds: {supported}")
    api_cls = getattr(k8s_client, group)
    return api_cls(api_client)


def build_source(
    kind: str,
    namespace: str,
    api_client: Any = None,
    watch_timeout_seconds: int = 300,
) -> KubernetesSource:
    """Build a KubernetesSource for *kind* in *namespace* ("" = all namespaces)."""
    return KubernetesSource(
        api_for_kind(kind, api_client),
        kind=kind,
        namespace=namespace,
        watch_timeout_seconds=watch_timeout_seconds,
    )
