"""Health subsystem — node probe, cluster aggregator, status reconciler, scheduler."""

from .aggregator import aggregate_cluster_status, summarize
from .models import ClusterStatus, MembersStatus, NodeHealth, Phase
from .probe import ProbeError, probe_node
from .reconciler import ClusterReconciler, ReconcileResult
from .scheduler import ReconcileScheduler
from .store import ClusterEvent, EventSeverity, PersistenceError, StatusStore
