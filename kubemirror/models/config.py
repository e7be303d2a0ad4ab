"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class WatchConfig:
    """Resource selection for a single informer."""

    kind: str = "Pod"
    namespace: str = "default"
    kubeconfig_path: str = ""


@dataclass
class ReflectorConfig:
    """List/watch retry behaviour."""

    watch_timeout_seconds: int = 300
    backoff_initial: float = 1.0
    backoff_max: float = 30.0
    max_watch_failures: int = 3


@dataclass
class DispatchConfig:
    """Observer dispatch configuration."""

    observer_timeout: float = 30.0


@dataclass
class APIConfig:
    """Read-only HTTP API configuration."""

    enabled: bool = False
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeMirrorConfig:
    """Top-level kubemirror configuration."""

    watch: WatchConfig = field(default_factory=WatchConfig)
    reflector: ReflectorConfig = field(default_factory=ReflectorConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
