"""Exception taxonomy for kubemirror.

TransientConnectionError   -- retryable; the Reflector backs off and reconnects.
CheckpointExpiredError     -- the watch checkpoint is too old; a relist is required.
UnauthorizedError          -- fatal; retrying cannot succeed without remediation.
MalformedNotificationError -- a notification could not be decoded; forces a relist.
"""

from __future__ import annotations


class KubeMirrorError(Exception):
    """Base class for all kubemirror errors."""


class TransientConnectionError(KubeMirrorError):
    """Network-level or server-side failure that may succeed on retry."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class CheckpointExpiredError(KubeMirrorError):
    """The resourceVersion a watch was opened from is no longer available."""

    def __init__(self, resource_version: str, message: str = "") -> None:
        super().__init__(message or f"resource version {resource_version!r} expired")
        self.resource_version = resource_version


class UnauthorizedError(KubeMirrorError):
    """The control plane rejected our credentials (401) or permissions (403)."""

    def __init__(self, message: str, status: int = 401) -> None:
        super().__init__(message)
        self.status = status


class MalformedNotificationError(KubeMirrorError):
    """A watch notification or listed item could not be decoded."""


class InformerStateError(KubeMirrorError):
    """An informer operation was called in the wrong lifecycle state."""


class ConfigError(KubeMirrorError):
    """Cluster credentials could not be resolved."""
