"""Route handlers for the read-only API.

All handlers read the Informer stored on ``app.state.informer``; none of
them mutate anything.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from kubemirror.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ObjectListResponse,
    ObjectResponse,
    ReadinessResponse,
)
from kubemirror.models.objects import ObjectKey

probes = APIRouter()
router = APIRouter()


@probes.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    return HealthResponse(status="ok")


@probes.get("/readyz", response_model=ReadinessResponse, responses={503: {"model": ReadinessResponse}})
async def readyz(request: Request) -> JSONResponse:
    """200 once the initial list has been fully dispatched, 503 before."""
    informer = request.app.state.informer
    synced = informer.has_synced()
    body = ReadinessResponse(
        kind=informer.kind,
        synced=synced,
        reflector_state=informer.reflector_state.value,
        objects=len(informer.store),
        error=str(informer.error) if informer.error is not None else None,
    )
    return JSONResponse(status_code=200 if synced else 503, content=body.model_dump())


@router.get("/objects", response_model=ObjectListResponse)
async def list_objects(request: Request, namespace: str = "") -> ObjectListResponse:
    informer = request.app.state.informer
    return ObjectListResponse(
        kind=informer.kind,
        synced=informer.has_synced(),
        items=[ObjectResponse.from_tracked(obj) for obj in informer.store.list(namespace)],
    )


@router.get("/objects/{namespace}/{name}", response_model=ObjectResponse, responses={404: {"model": ErrorResponse}})
async def get_namespaced_object(request: Request, namespace: str, name: str) -> ObjectResponse | JSONResponse:
    return _lookup(request, ObjectKey(namespace=namespace, name=name))


@router.get("/objects/{name}", response_model=ObjectResponse, responses={404: {"model": ErrorResponse}})
async def get_cluster_object(request: Request, name: str) -> ObjectResponse | JSONResponse:
    return _lookup(request, ObjectKey(namespace="", name=name))


def _lookup(request: Request, key: ObjectKey) -> ObjectResponse | JSONResponse:
    obj = request.app.state.informer.store.get(key)
    if obj is None:
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(error="NOT_FOUND", detail=f"{key} is not in the cache").model_dump(),
        )
    return ObjectResponse.from_tracked(obj)
