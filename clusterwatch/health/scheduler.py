"""Reconciliation scheduler — runs a pass per cluster at its configured interval.

Passes for the same cluster never overlap: the interval loop and manual
triggers share one lock per cluster. A failed pass is logged and simply
retried on the next tick.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from clusterwatch.clusters.registry import ClusterRegistry
from clusterwatch.health.reconciler import ClusterReconciler, ReconcileResult

logger = logging.getLogger(__name__)


class ReconcileScheduler:
    """Schedules reconciliation passes for all registered clusters."""

    def __init__(
        self,
        registry: ClusterRegistry,
        reconciler: ClusterReconciler,
        on_result: Callable[[ReconcileResult], Any] | None = None,
    ) -> None:
        self.registry = registry
        self.reconciler = reconciler
        self.on_result = on_result  # SSE broadcast callback
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    def _lock(self, cluster_id: str) -> asyncio.Lock:
        return self._locks.setdefault(cluster_id, asyncio.Lock())

    async def start(self) -> None:
        """Start one reconcile loop per cluster."""
        if self._running:
            return
        self._running = True

        clusters = self.registry.clusters
        if not clusters:
            logger.info("No clusters configured — scheduler idle")
            return

        for cluster in clusters:
            task = asyncio.create_task(
                self._reconcile_loop(cluster.id, cluster.interval_seconds),
                name=f"reconcile-{cluster.id}",
            )
            self._tasks.append(task)

        logger.info("Reconcile scheduler started: %d clusters", len(clusters))

    async def stop(self) -> None:
        """Stop all reconcile loops."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Reconcile scheduler stopped")

    async def run_cluster(self, cluster_id: str) -> ReconcileResult:
        """Run one pass for a cluster now, waiting for any pass in flight.

        Errors propagate to the caller.
        """
        async with self._lock(cluster_id):
            result = await self.reconciler.reconcile(cluster_id)
        if self.on_result:
            try:
                self.on_result(result)
            except Exception:
                logger.exception("SSE callback error")
        return result

    async def run_all_now(self) -> list[ReconcileResult]:
        """Reconcile every cluster immediately (for manual trigger / startup)."""
        results = []
        for cluster in self.registry.clusters:
            try:
                results.append(await self.run_cluster(cluster.id))
            except Exception:
                logger.exception("Reconcile failed: %s", cluster.id)
        return results

    async def _reconcile_loop(self, cluster_id: str, interval: int) -> None:
        """Persistent loop that reconciles a single cluster at its interval."""
        while self._running:
            try:
                result = await self.run_cluster(cluster_id)
                logger.debug(
                    "Reconciled %s: phase=%s ready=%s changed=%s",
                    cluster_id, result.status.phase.value, result.status.ready, result.changed,
                )
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Reconcile error: %s", cluster_id)

            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
