"""FastAPI server for the cluster health service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clusterwatch.api.cluster_routes import broadcast_result, cluster_router
from clusterwatch.clusters.registry import ClusterRegistry
from clusterwatch.config import settings
from clusterwatch.health.reconciler import ClusterReconciler
from clusterwatch.health.scheduler import ReconcileScheduler
from clusterwatch.health.store import StatusStore
from clusterwatch.notifications import get_notifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup."""
    registry = ClusterRegistry(Path(settings.clusters_file))
    registry.load()
    app.state.registry = registry

    store = StatusStore(Path(settings.db_path))
    app.state.status_store = store

    notifier = get_notifier()
    app.state.notifier = notifier

    reconciler = ClusterReconciler(registry, store, notifier=notifier)
    app.state.reconciler = reconciler

    scheduler = ReconcileScheduler(registry, reconciler, on_result=broadcast_result)
    app.state.scheduler = scheduler

    try:
        await scheduler.start()
    except Exception:
        logger.exception("Reconcile scheduler failed to start")

    yield

    # Shutdown
    await scheduler.stop()
    store.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="clusterwatch - Storage Cluster Health",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(cluster_router, prefix="/api")
    return app


app = create_app()
