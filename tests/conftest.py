"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from clusterwatch.clusters.registry import ClusterRegistry
from clusterwatch.health.models import SUBMODULES, NodeHealth
from clusterwatch.health.probe import ProbeError
from clusterwatch.health.store import StatusStore

ALL_ALIVE = NodeHealth(**{name: "alive" for name in SUBMODULES})


def health_body(**overrides: str) -> dict[str, Any]:
    """A /v1/health response body with every submodule alive unless overridden."""
    statuses = {name: "alive" for name in SUBMODULES}
    statuses.update(overrides)
    return {"submodules": {name: {"status": s} for name, s in statuses.items()}}


class FakeProbe:
    """Stand-in for probe_node.

    ``outcomes`` maps address → NodeHealth to return, an exception to raise,
    or a float number of seconds to hang before returning ALL_ALIVE.
    Unlisted addresses fail with ProbeError.
    """

    def __init__(self, outcomes: dict[str, Any] | None = None) -> None:
        self.outcomes = outcomes or {}
        self.calls: list[tuple[str, float]] = []

    async def __call__(self, address: str, timeout: float) -> NodeHealth:
        self.calls.append((address, timeout))
        outcome = self.outcomes.get(address, ProbeError(address, "connection refused"))
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, (int, float)):
            await asyncio.sleep(outcome)
            return ALL_ALIVE
        return outcome


@pytest.fixture
def store(tmp_path: Path) -> StatusStore:
    s = StatusStore(db_path=tmp_path / "test_status.db")
    yield s
    s.close()


@pytest.fixture
def clusters_file(tmp_path: Path) -> Path:
    path = tmp_path / "clusters.yaml"
    path.write_text(
        """
clusters:
  - id: primary
    name: Primary storage
    join: "10.0.0.1,10.0.0.2"
    interval_seconds: 5
    probe_timeout_seconds: 0.5
  - id: empty
    join: ""
  - id: broken
    join: "10.0.0.1,,10.0.0.3"
""",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def registry(clusters_file: Path) -> ClusterRegistry:
    return ClusterRegistry(clusters_file)
