"""Status reconciler — diff aggregated health against the stored status.

Unchanged status is a no-op. A changed status is persisted whole; a change of
the ready-node count additionally records an event and sends a notification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from clusterwatch.clusters.registry import ClusterRegistry, ConfigurationError
from clusterwatch.config import settings
from clusterwatch.health.aggregator import ProbeFn, aggregate_cluster_status, make_probe
from clusterwatch.health.models import ClusterStatus
from clusterwatch.health.store import ClusterEvent, EventSeverity, StatusStore
from clusterwatch.notifications import NotificationManager

logger = logging.getLogger(__name__)

# Ready count assumed for a cluster that has never been written.
_BASELINE_READY = "0/0"


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    cluster_id: str
    status: ClusterStatus
    changed: bool
    event: ClusterEvent | None = None


def _all_ready(status: ClusterStatus) -> bool:
    # Unlike the Running phase, an empty cluster counts as fully ready here.
    return status.ready_count == status.total_count


def classify_transition(
    previous: ClusterStatus | None, current: ClusterStatus,
) -> tuple[EventSeverity, str] | None:
    """Return the event to emit for this status change, if any."""
    prev_ready = previous.ready if previous is not None else _BASELINE_READY
    if prev_ready == current.ready:
        return None
    if _all_ready(current):
        return EventSeverity.NORMAL, f"{current.ready} nodes are functional. Cluster healthy"
    return EventSeverity.WARNING, f"{current.ready} nodes are functional"


class ClusterReconciler:
    """Runs reconciliation passes: probe → aggregate → diff → persist/notify."""

    def __init__(
        self,
        registry: ClusterRegistry,
        store: StatusStore,
        notifier: NotificationManager | None = None,
        probe: ProbeFn | None = None,
        deadline: float | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.notifier = notifier
        self.probe = probe or make_probe(settings.health_port, settings.health_path)
        self.deadline = deadline if deadline is not None else settings.reconcile_deadline_seconds

    async def reconcile(self, cluster_id: str) -> ReconcileResult:
        """Run one full pass for a cluster.

        Raises ConfigurationError for an unknown cluster or a malformed member
        list, PersistenceError when the new status cannot be stored.
        """
        cluster = self.registry.get(cluster_id)
        if cluster is None:
            raise ConfigurationError(f"Unknown cluster: {cluster_id}")
        nodes = cluster.members()

        status = await aggregate_cluster_status(
            nodes,
            cluster.probe_timeout_seconds,
            probe=self.probe,
            deadline=self.deadline,
        )
        previous = self.store.read_status(cluster_id)
        return await self.apply_status(cluster_id, status, previous)

    async def apply_status(
        self,
        cluster_id: str,
        status: ClusterStatus,
        previous: ClusterStatus | None,
    ) -> ReconcileResult:
        """Persist ``status`` if it differs from ``previous``; notify on ready-count change."""
        if previous is not None and status == previous:
            return ReconcileResult(cluster_id=cluster_id, status=status, changed=False)

        event = None
        transition = classify_transition(previous, status)
        if transition is not None:
            severity, message = transition
            event = self.store.emit_event(cluster_id, severity, message)
            log = logger.info if severity is EventSeverity.NORMAL else logger.warning
            log("Cluster %s: %s", cluster_id, message)
            if self.notifier is not None:
                await self.notifier.notify_cluster_health(cluster_id, _all_ready(status), status.ready)

        self.store.write_status(cluster_id, status)
        logger.info(
            "Cluster %s status updated: phase=%s ready=%s",
            cluster_id, status.phase.value, status.ready,
        )
        return ReconcileResult(cluster_id=cluster_id, status=status, changed=True, event=event)
