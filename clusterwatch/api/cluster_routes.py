"""API routes for cluster status + reconciliation.

Endpoints:
  GET  /api/status                     — service status (clusters, notifications)
  GET  /api/clusters                   — all clusters with their stored status
  GET  /api/clusters/{id}              — cluster definition, status, recent events
  POST /api/clusters/{id}/reconcile    — run a reconciliation pass now
  GET  /api/clusters/{id}/events       — status-change events
  GET  /api/health/stream              — SSE stream of reconcile results
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from clusterwatch.clusters.registry import ConfigurationError, cluster_to_dict
from clusterwatch.health.reconciler import ReconcileResult
from clusterwatch.health.store import PersistenceError

logger = logging.getLogger(__name__)

cluster_router = APIRouter()

# ── SSE subscriber list (in-memory) ──────────────────────────────────────────

_sse_queues: list[asyncio.Queue[dict[str, Any]]] = []


def _result_to_dict(result: ReconcileResult) -> dict[str, Any]:
    return {
        "cluster_id": result.cluster_id,
        "changed": result.changed,
        "status": result.status.to_dict(),
        "event": result.event.to_dict() if result.event else None,
    }


def broadcast_result(result: ReconcileResult) -> None:
    """Push a reconcile result to all SSE subscribers."""
    data = _result_to_dict(result)
    for q in _sse_queues:
        try:
            q.put_nowait(data)
        except asyncio.QueueFull:
            pass  # slow consumer — drop


# ── Cluster endpoints ────────────────────────────────────────────────────────


@cluster_router.get("/status")
def service_status(request: Request) -> dict[str, Any]:
    registry = request.app.state.registry
    notifier = getattr(request.app.state, "notifier", None)
    return {
        "clusters": len(registry.clusters),
        "notifications": notifier.status() if notifier else {"enabled": False},
    }


@cluster_router.get("/clusters")
def list_clusters(request: Request) -> dict[str, Any]:
    """List all clusters with their last persisted status."""
    registry = request.app.state.registry
    store = request.app.state.status_store

    statuses = store.get_all_statuses()
    clusters = registry.to_dict()
    for c in clusters:
        c["status"] = statuses.get(c["id"])
    return {"clusters": clusters}


@cluster_router.get("/clusters/{cluster_id}")
def get_cluster(cluster_id: str, request: Request) -> dict[str, Any]:
    registry = request.app.state.registry
    store = request.app.state.status_store

    cluster = registry.get(cluster_id)
    if not cluster:
        raise HTTPException(status_code=404, detail=f"Cluster not found: {cluster_id}")

    data = cluster_to_dict(cluster)
    status = store.read_status(cluster_id)
    data["status"] = status.to_dict() if status else None
    data["events"] = store.get_events(cluster_id, limit=10)
    return data


@cluster_router.post("/clusters/{cluster_id}/reconcile")
async def trigger_reconcile(cluster_id: str, request: Request) -> dict[str, Any]:
    """Run a reconciliation pass for a cluster immediately."""
    registry = request.app.state.registry
    scheduler = request.app.state.scheduler

    if not registry.get(cluster_id):
        raise HTTPException(status_code=404, detail=f"Cluster not found: {cluster_id}")

    try:
        result = await scheduler.run_cluster(cluster_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PersistenceError as e:
        logger.error("Reconcile of %s failed: %s", cluster_id, e)
        raise HTTPException(status_code=503, detail=str(e))
    return _result_to_dict(result)


@cluster_router.get("/clusters/{cluster_id}/events")
def list_events(cluster_id: str, limit: int = 50, request: Request = None) -> dict[str, Any]:
    store = request.app.state.status_store
    return {"cluster_id": cluster_id, "events": store.get_events(cluster_id, limit)}


# ── SSE stream ───────────────────────────────────────────────────────────────


@cluster_router.get("/health/stream")
async def health_stream(request: Request) -> StreamingResponse:
    """Server-Sent Events stream of reconcile results."""
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=50)
    _sse_queues.append(queue)

    async def event_generator():
        try:
            store = request.app.state.status_store
            yield f"event: init\ndata: {json.dumps(store.get_all_statuses())}\n\n"

            while True:
                if await request.is_disconnected():
                    break
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=30)
                    yield f"event: reconcile\ndata: {json.dumps(data)}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            _sse_queues.remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
