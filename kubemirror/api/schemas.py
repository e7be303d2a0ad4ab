"""Pydantic response models for the read-only API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from kubemirror.models.objects import TrackedObject


class ErrorResponse(BaseModel):
    """Error envelope returned by every non-2xx response."""

    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    kind: str
    synced: bool
    reflector_state: str
    objects: int
    error: str | None = None


class ObjectResponse(BaseModel):
    namespace: str
    name: str
    resource_version: str
    object: dict[str, Any]

    @classmethod
    def from_tracked(cls, obj: TrackedObject) -> ObjectResponse:
        return cls(
            namespace=obj.namespace,
            name=obj.name,
            resource_version=obj.resource_version,
            object=obj.raw,
        )


class ObjectListResponse(BaseModel):
    kind: str
    synced: bool
    items: list[ObjectResponse]
