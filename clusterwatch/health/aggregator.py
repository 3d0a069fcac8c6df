"""Cluster aggregator — probes every member concurrently and builds a ClusterStatus.

One task per node, joined at a single barrier. Results are keyed by address
and read back in member-list order, so the output never depends on which
probe finished first.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence

from clusterwatch.health.models import ClusterStatus, MembersStatus, NodeHealth, Phase
from clusterwatch.health.probe import DEFAULT_TIMEOUT, ProbeError, probe_node

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str, float], Awaitable[NodeHealth]]


async def collect_node_health(
    nodes: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    *,
    probe: ProbeFn | None = None,
    deadline: float | None = None,
) -> dict[str, NodeHealth]:
    """Probe all nodes at once; return health for the ones that answered.

    Nodes whose probe fails, or is still running when ``deadline`` expires,
    are left out of the result.
    """
    probe = probe or probe_node
    tasks = {
        addr: asyncio.create_task(probe(addr, timeout), name=f"probe-{addr}")
        for addr in nodes
    }
    if not tasks:
        return {}

    try:
        _, pending = await asyncio.wait(tasks.values(), timeout=deadline)
    finally:
        # Also reached when the pass itself is cancelled mid-wait.
        pending = {t for t in tasks.values() if not t.done()}
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    results: dict[str, NodeHealth] = {}
    for addr, task in tasks.items():
        if task.cancelled():
            logger.warning("Health probe for %s abandoned: pass deadline of %ss exceeded", addr, deadline)
            continue
        exc = task.exception()
        if exc is None:
            results[addr] = task.result()
        elif isinstance(exc, ProbeError):
            logger.warning("Failed to get health of node %s: %s", addr, exc.cause)
        else:
            logger.error(
                "Unexpected error probing node %s", addr,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
    return results


def summarize(nodes: Sequence[str], health: Mapping[str, NodeHealth]) -> ClusterStatus:
    """Classify members and compute ready count + phase from probe results."""
    ready: list[str] = []
    unready: list[str] = []
    for addr in nodes:
        node = health.get(addr)
        if node is not None and node.is_ready():
            ready.append(addr)
        else:
            unready.append(addr)

    total = len(nodes)
    phase = Phase.RUNNING if total > 0 and len(ready) == total else Phase.INITIAL

    return ClusterStatus(
        phase=phase,
        nodes=tuple(nodes),
        node_health_status=tuple((addr, health[addr]) for addr in nodes if addr in health),
        ready=f"{len(ready)}/{total}",
        members=MembersStatus(ready=tuple(ready), unready=tuple(unready)),
    )


async def aggregate_cluster_status(
    nodes: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    *,
    probe: ProbeFn | None = None,
    deadline: float | None = None,
) -> ClusterStatus:
    """Probe the whole member list and return exactly one ClusterStatus."""
    nodes = tuple(nodes)
    health = await collect_node_health(nodes, timeout, probe=probe, deadline=deadline)
    status = summarize(nodes, health)
    logger.debug("Aggregated %d nodes: %s ready, phase=%s", len(nodes), status.ready, status.phase.value)
    return status


def make_probe(port: int | None = None, path: str | None = None, **kwargs) -> ProbeFn:
    """Bind endpoint settings (and optionally a shared client) into a ProbeFn."""
    return functools.partial(probe_node, port=port, path=path, **kwargs)
