"""Tests for the status reconciler and the reconcile entry point."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from clusterwatch.clusters.registry import ClusterRegistry, ConfigurationError
from clusterwatch.health.aggregator import summarize
from clusterwatch.health.models import NodeHealth, Phase
from clusterwatch.health.reconciler import ClusterReconciler, classify_transition
from clusterwatch.health.store import EventSeverity, PersistenceError, StatusStore
from tests.conftest import ALL_ALIVE, FakeProbe

NODES = ("10.0.0.1", "10.0.0.2")
DEGRADED = NodeHealth(**{**ALL_ALIVE.to_dict(), "kv": "dead"})

HEALTHY = summarize(NODES, {"10.0.0.1": ALL_ALIVE, "10.0.0.2": ALL_ALIVE})
HALF = summarize(NODES, {"10.0.0.1": ALL_ALIVE})
HALF_DEGRADED = summarize(NODES, {"10.0.0.1": ALL_ALIVE, "10.0.0.2": DEGRADED})
EMPTY = summarize((), {})


@pytest.fixture
def notifier() -> MagicMock:
    n = MagicMock()
    n.notify_cluster_health = AsyncMock()
    return n


@pytest.fixture
def reconciler(registry: ClusterRegistry, store: StatusStore, notifier: MagicMock) -> ClusterReconciler:
    return ClusterReconciler(registry, store, notifier=notifier, probe=FakeProbe())


def _apply(reconciler: ClusterReconciler, status, cluster_id: str = "primary"):
    previous = reconciler.store.read_status(cluster_id)
    return asyncio.run(reconciler.apply_status(cluster_id, status, previous))


class TestClassifyTransition:
    def test_unchanged_ready(self) -> None:
        assert classify_transition(HALF, HALF_DEGRADED) is None

    def test_to_full_health(self) -> None:
        severity, message = classify_transition(HALF, HEALTHY)
        assert severity == EventSeverity.NORMAL
        assert message == "2/2 nodes are functional. Cluster healthy"

    def test_regression(self) -> None:
        severity, message = classify_transition(HEALTHY, HALF)
        assert severity == EventSeverity.WARNING
        assert message == "1/2 nodes are functional"

    def test_first_pass_compares_against_zero(self) -> None:
        assert classify_transition(None, HEALTHY)[0] == EventSeverity.NORMAL
        assert classify_transition(None, HALF)[0] == EventSeverity.WARNING
        assert classify_transition(None, EMPTY) is None

    def test_zero_members_counts_as_full_health(self) -> None:
        severity, message = classify_transition(HEALTHY, EMPTY)
        assert severity == EventSeverity.NORMAL
        assert message == "0/0 nodes are functional. Cluster healthy"


class TestApplyStatus:
    def test_first_pass_writes(self, reconciler: ClusterReconciler, store: StatusStore) -> None:
        result = _apply(reconciler, HEALTHY)
        assert result.changed
        assert store.read_status("primary") == HEALTHY

    def test_idempotent(self, reconciler: ClusterReconciler, store: StatusStore, notifier: MagicMock) -> None:
        store.write_status = MagicMock(wraps=store.write_status)
        first = _apply(reconciler, HEALTHY)
        second = _apply(reconciler, HEALTHY)
        assert first.changed and not second.changed
        assert second.event is None
        assert store.write_status.call_count == 1
        assert notifier.notify_cluster_health.await_count == 1

    def test_regression_emits_one_warning(self, reconciler: ClusterReconciler, store: StatusStore, notifier: MagicMock) -> None:
        _apply(reconciler, HEALTHY)
        notifier.notify_cluster_health.reset_mock()

        result = _apply(reconciler, HALF)
        assert result.event is not None
        assert result.event.severity == EventSeverity.WARNING
        assert result.event.message == "1/2 nodes are functional"
        notifier.notify_cluster_health.assert_awaited_once_with("primary", False, "1/2")

        events = store.get_events("primary")
        assert [e["severity"] for e in events] == ["Warning", "Normal"]

    def test_recovery_emits_one_normal(self, reconciler: ClusterReconciler, notifier: MagicMock) -> None:
        _apply(reconciler, HALF)
        notifier.notify_cluster_health.reset_mock()

        result = _apply(reconciler, HEALTHY)
        assert result.event.severity == EventSeverity.NORMAL
        assert result.status.phase == Phase.RUNNING
        notifier.notify_cluster_health.assert_awaited_once_with("primary", True, "2/2")

    def test_detail_change_persists_silently(self, reconciler: ClusterReconciler, store: StatusStore, notifier: MagicMock) -> None:
        _apply(reconciler, HALF)
        notifier.notify_cluster_health.reset_mock()

        result = _apply(reconciler, HALF_DEGRADED)
        assert result.changed
        assert result.event is None
        notifier.notify_cluster_health.assert_not_awaited()
        assert store.read_status("primary") == HALF_DEGRADED
        assert len(store.get_events("primary")) == 1

    def test_empty_cluster_first_pass(self, reconciler: ClusterReconciler, store: StatusStore, notifier: MagicMock) -> None:
        first = _apply(reconciler, EMPTY, "empty")
        second = _apply(reconciler, EMPTY, "empty")
        assert first.changed and first.event is None
        assert not second.changed
        assert store.read_status("empty") == EMPTY
        notifier.notify_cluster_health.assert_not_awaited()

    def test_shrink_to_zero_members_notifies_healthy(self, reconciler: ClusterReconciler, notifier: MagicMock) -> None:
        _apply(reconciler, HEALTHY)
        notifier.notify_cluster_health.reset_mock()

        result = _apply(reconciler, EMPTY)
        assert result.event.severity == EventSeverity.NORMAL
        assert result.status.phase == Phase.INITIAL
        notifier.notify_cluster_health.assert_awaited_once_with("primary", True, "0/0")

    def test_stale_version_rewritten(self, reconciler: ClusterReconciler, store: StatusStore) -> None:
        from dataclasses import replace

        store.write_status("primary", replace(HEALTHY, version=0))
        result = _apply(reconciler, HEALTHY)
        assert result.changed
        assert result.event is None
        assert store.read_status("primary").version == HEALTHY.version

    def test_write_failure_propagates(self, reconciler: ClusterReconciler, store: StatusStore) -> None:
        store.write_status = MagicMock(side_effect=PersistenceError("disk full"))
        with pytest.raises(PersistenceError):
            _apply(reconciler, HEALTHY)
        assert store.read_status("primary") is None

    def test_without_notifier(self, registry: ClusterRegistry, store: StatusStore) -> None:
        rec = ClusterReconciler(registry, store, probe=FakeProbe())
        result = _apply(rec, HEALTHY)
        assert result.event.severity == EventSeverity.NORMAL


class TestReconcile:
    def test_full_pass(self, registry: ClusterRegistry, store: StatusStore, notifier: MagicMock) -> None:
        probe = FakeProbe({"10.0.0.1": ALL_ALIVE, "10.0.0.2": ALL_ALIVE})
        rec = ClusterReconciler(registry, store, notifier=notifier, probe=probe)

        result = asyncio.run(rec.reconcile("primary"))
        assert result.status.ready == "2/2"
        assert result.status.phase == Phase.RUNNING
        assert result.event.severity == EventSeverity.NORMAL
        assert sorted(probe.calls) == [("10.0.0.1", 0.5), ("10.0.0.2", 0.5)]

    def test_node_drops_out(self, registry: ClusterRegistry, store: StatusStore, notifier: MagicMock) -> None:
        probe = FakeProbe({"10.0.0.1": ALL_ALIVE, "10.0.0.2": ALL_ALIVE})
        rec = ClusterReconciler(registry, store, notifier=notifier, probe=probe)
        asyncio.run(rec.reconcile("primary"))

        del probe.outcomes["10.0.0.2"]
        result = asyncio.run(rec.reconcile("primary"))
        assert result.status.ready == "1/2"
        assert result.event.severity == EventSeverity.WARNING
        assert "10.0.0.2" not in store.read_status("primary").node_health

    def test_repeat_pass_is_noop(self, registry: ClusterRegistry, store: StatusStore) -> None:
        probe = FakeProbe({"10.0.0.1": ALL_ALIVE})
        rec = ClusterReconciler(registry, store, probe=probe)
        asyncio.run(rec.reconcile("primary"))
        result = asyncio.run(rec.reconcile("primary"))
        assert not result.changed
        assert len(store.get_events("primary")) == 1

    def test_unknown_cluster(self, reconciler: ClusterReconciler) -> None:
        with pytest.raises(ConfigurationError, match="Unknown cluster"):
            asyncio.run(reconciler.reconcile("nope"))

    def test_malformed_members_writes_nothing(self, reconciler: ClusterReconciler, store: StatusStore) -> None:
        with pytest.raises(ConfigurationError):
            asyncio.run(reconciler.reconcile("broken"))
        assert store.read_status("broken") is None
        assert reconciler.probe.calls == []
