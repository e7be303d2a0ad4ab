"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubemirror.models.config import (
    APIConfig,
    DispatchConfig,
    KubeMirrorConfig,
    LogConfig,
    ReflectorConfig,
    WatchConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEMIRROR_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_kind(value: str) -> str:
    if not value or not value.isalnum() or not value[0].isalpha():
        raise ValueError(f"Invalid resource kind: {value!r}")
    return value


def load_config() -> KubeMirrorConfig:
    """Load configuration from KUBEMIRROR_* environment variables."""
    backoff_initial = _env_float("BACKOFF_INITIAL", 1.0, min_val=0.01)
    return KubeMirrorConfig(
        watch=WatchConfig(
            kind=_validate_kind(_env("KIND", "Pod")),
            namespace=_env("NAMESPACE", "default"),
            kubeconfig_path=_env("KUBECONFIG_PATH", ""),
        ),
        reflector=ReflectorConfig(
            watch_timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=60, max_val=3600),
            backoff_initial=backoff_initial,
            backoff_max=_env_float("BACKOFF_MAX", 30.0, min_val=backoff_initial),
            max_watch_failures=_env_int("MAX_WATCH_FAILURES", 3, min_val=1, max_val=20),
        ),
        dispatch=DispatchConfig(
            observer_timeout=_env_float("OBSERVER_TIMEOUT", 30.0, min_val=0.1),
        ),
        api=APIConfig(
            enabled=_env_bool("API_ENABLED", False),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
