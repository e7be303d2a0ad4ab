"""Remote Source Adapter: the list and watch primitives of the control plane.

``RemoteSource`` is the boundary the Reflector programs against:

    list()          -> ListResult(objects, resource_version)
    watch(version)  -> async iterator of Notification

No retries happen here.  Failures are translated into the kubemirror error
taxonomy so the Reflector can tell an expired checkpoint (relist) from a
broken connection (back off and reconnect) from bad credentials (give up).

``KubernetesSource`` implements the boundary on top of kubernetes-asyncio.
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import aiohttp
from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from kubemirror.errors import (
    CheckpointExpiredError,
    MalformedNotificationError,
    TransientConnectionError,
    UnauthorizedError,
)
from kubemirror.models.objects import TrackedObject
from kubemirror.observability.logging import get_logger

_LIST_PAGE_SIZE = 500
_HTTP_GONE = 410
_HTTP_UNAUTHORIZED = 401
_HTTP_FORBIDDEN = 403


class NotificationType(StrEnum):
    """Raw watch notification types."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"


@dataclass(frozen=True)
class Notification:
    """One decoded watch notification.

    ``obj`` is None for BOOKMARK notifications, which only move the
    checkpoint forward.
    """

    type: NotificationType
    resource_version: str
    obj: TrackedObject | None = None


@dataclass(frozen=True)
class ListResult:
    """A consistent snapshot of every object plus the version it was taken at."""

    objects: list[TrackedObject] = field(default_factory=list)
    resource_version: str = ""


class RemoteSource(ABC):
    """List/watch boundary of one resource class in one scope."""

    @property
    @abstractmethod
    def kind(self) -> str:
        """Resource kind served by this source (e.g. ``"Pod"``)."""

    @abstractmethod
    async def list(self) -> ListResult:
        """Return every current object and the collection resourceVersion.

        Raises:
            TransientConnectionError, UnauthorizedError, CheckpointExpiredError
        """

    @abstractmethod
    def watch(self, resource_version: str) -> AsyncIterator[Notification]:
        """Stream notifications that happened after *resource_version*.

        The iterator ends when the server closes the stream.

        Raises (while iterating):
            CheckpointExpiredError: *resource_version* is too old.
            TransientConnectionError: the connection failed.
            UnauthorizedError: credentials or RBAC rejected the request.
            MalformedNotificationError: a notification could not be decoded.
        """


class KubernetesSource(RemoteSource):
    """RemoteSource backed by a kubernetes-asyncio API group client.

    Args:
        api: An API instance such as ``CoreV1Api`` or ``AppsV1Api`` owning
             the ``list_*`` functions of *kind*.
        kind: Resource kind, e.g. ``"Pod"`` or ``"Deployment"``.
        namespace: Namespace to watch; empty string watches all namespaces.
                   Ignored for cluster-scoped kinds.
        watch_timeout_seconds: Server-side timeout of one watch request.
    """

    def __init__(
        self,
        api: Any,
        kind: str,
        namespace: str = "",
        watch_timeout_seconds: int = 300,
    ) -> None:
        self._api = api
        self._kind = kind
        self._watch_timeout = watch_timeout_seconds
        self._log = get_logger("collector.source")
        self._list_func, self._list_args = _resolve_list_func(api, kind, namespace)
        self._namespace = namespace if self._list_args else ""

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def namespace(self) -> str:
        return self._namespace

    async def list(self) -> ListResult:
        objects: list[TrackedObject] = []
        rv = ""
        continue_token: str | None = None
        try:
            while True:
                kwargs: dict[str, Any] = {"limit": _LIST_PAGE_SIZE}
                if continue_token:
                    kwargs["_continue"] = continue_token
                result = await self._list_func(*self._list_args, **kwargs)
                for item in getattr(result, "items", None) or []:
                    objects.append(TrackedObject.from_dict(self._serialize(item)))
                metadata = getattr(result, "metadata", None)
                rv = getattr(metadata, "resource_version", None) or ""
                continue_token = getattr(metadata, "_continue", None)
                if not continue_token:
                    break
        except ApiException as exc:
            raise _translate_api_exception(exc, rv) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise TransientConnectionError(f"list {self._kind} failed: {exc}") from exc

        self._log.debug("source_listed", kind=self._kind, count=len(objects), resource_version=rv)
        return ListResult(objects=objects, resource_version=rv)

    async def watch(self, resource_version: str) -> AsyncIterator[Notification]:
        w = watch.Watch()
        kwargs: dict[str, Any] = {
            "timeout_seconds": self._watch_timeout,
            "allow_watch_bookmarks": True,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version
        try:
            async for event in w.stream(self._list_func, *self._list_args, **kwargs):
                yield _decode_event(event)
        except ApiException as exc:
            raise _translate_api_exception(exc, resource_version) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise TransientConnectionError(f"watch {self._kind} failed: {exc}") from exc
        finally:
            await w.close()

    def _serialize(self, item: Any) -> Any:
        """Turn a deserialized model back into its camelCase wire form."""
        if isinstance(item, dict):
            return item
        return self._api.api_client.sanitize_for_serialization(item)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _snake_case(kind: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", kind).lower()


def _resolve_list_func(api: Any, kind: str, namespace: str) -> tuple[Callable[..., Any], tuple[str, ...]]:
    """Find the list function for *kind* and the positional args it needs.

    Namespaced kinds watched in one namespace use ``list_namespaced_<kind>``;
    across all namespaces they use ``list_<kind>_for_all_namespaces``.
    Cluster-scoped kinds use ``list_<kind>`` and take no namespace.
    """
    snake = _snake_case(kind)
    namespaced = getattr(api, f"list_namespaced_{snake}", None)
    all_namespaces = getattr(api, f"list_{snake}_for_all_namespaces", None)
    cluster = getattr(api, f"list_{snake}", None)

    if namespaced is not None and namespace:
        return namespaced, (namespace,)
    if all_namespaces is not None:
        return all_namespaces, ()
    if cluster is not None:
        return cluster, ()
    raise ValueError(f"{type(api).__name__} has no list function for kind {kind!r}")


def _translate_api_exception(exc: ApiException, resource_version: str) -> Exception:
    status = getattr(exc, "status", None)
    reason = getattr(exc, "reason", "") or ""
    if status == _HTTP_GONE:
        return CheckpointExpiredError(resource_version, f"resource version {resource_version!r} expired: {reason}")
    if status in (_HTTP_UNAUTHORIZED, _HTTP_FORBIDDEN):
        return UnauthorizedError(f"{status} {reason}", status=status)
    return TransientConnectionError(f"api error {status}: {reason}", status=status)


def _decode_event(event: Any) -> Notification:
    """Decode one kubernetes-asyncio watch event dict."""
    if not isinstance(event, dict):
        raise MalformedNotificationError(f"watch event is not a mapping: {type(event).__name__}")

    event_type = event.get("type")
    raw = event.get("raw_object")

    if event_type == "ERROR":
        status = raw.get("code") if isinstance(raw, dict) else None
        message = raw.get("message", "") if isinstance(raw, dict) else ""
        if status == _HTTP_GONE:
            raise CheckpointExpiredError("", f"watch error: {message}")
        if status in (_HTTP_UNAUTHORIZED, _HTTP_FORBIDDEN):
            raise UnauthorizedError(f"watch error {status}: {message}", status=status)
        raise TransientConnectionError(f"watch error {status}: {message}", status=status)

    try:
        notification_type = NotificationType(event_type)
    except ValueError as exc:
        raise MalformedNotificationError(f"unknown watch event type {event_type!r}") from exc

    if notification_type is NotificationType.BOOKMARK:
        metadata = raw.get("metadata") if isinstance(raw, dict) else None
        rv = metadata.get("resourceVersion", "") if isinstance(metadata, dict) else ""
        if not rv:
            raise MalformedNotificationError("bookmark without resourceVersion")
        return Notification(type=notification_type, resource_version=str(rv))

    obj = TrackedObject.from_dict(raw)
    if not obj.resource_version:
        raise MalformedNotificationError(f"{event_type} for {obj.key} has no resourceVersion")
    return Notification(type=notification_type, resource_version=obj.resource_version, obj=obj)
