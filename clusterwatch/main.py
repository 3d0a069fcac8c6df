"""Entry point for the clusterwatch health service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clusterwatch.clusters.registry import ClusterRegistry, ConfigurationError
from clusterwatch.config import settings
from clusterwatch.health.models import SUBMODULES, ClusterStatus
from clusterwatch.health.probe import ProbeError, probe_node
from clusterwatch.health.reconciler import ClusterReconciler
from clusterwatch.health.store import PersistenceError, StatusStore
from clusterwatch.notifications import get_notifier

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting clusterwatch API Server", style="bold green"))
    uvicorn.run(
        "clusterwatch.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def _status_table(status: ClusterStatus) -> Table:
    table = Table(title=f"{status.phase.value} — {status.ready} ready")
    table.add_column("Node")
    table.add_column("Ready")
    table.add_column("Unhealthy submodules")
    health = status.node_health
    for addr in status.nodes:
        node = health.get(addr)
        if node is None:
            table.add_row(addr, "[red]no[/red]", "[dim]unreachable[/dim]")
        elif node.is_ready():
            table.add_row(addr, "[green]yes[/green]", "")
        else:
            table.add_row(addr, "[red]no[/red]", ", ".join(node.unhealthy_submodules()))
    return table


def run_reconcile(cluster_id: str) -> int:
    """Run one reconciliation pass for a cluster and print the result."""
    registry = ClusterRegistry(Path(settings.clusters_file))
    store = StatusStore(Path(settings.db_path))
    reconciler = ClusterReconciler(registry, store, notifier=get_notifier())
    try:
        result = asyncio.run(reconciler.reconcile(cluster_id))
    except (ConfigurationError, PersistenceError) as e:
        console.print(f"[bold red]Reconcile failed:[/bold red] {e}")
        return 1
    finally:
        store.close()

    console.print(_status_table(result.status))
    if result.event:
        console.print(f"[bold]{result.event.severity.value}:[/bold] {result.event.message}")
    console.print(f"[dim]Status {'updated' if result.changed else 'unchanged'}[/dim]")
    return 0


def run_probe(address: str, timeout: float) -> int:
    """Probe a single node and print its submodule health."""
    try:
        health = asyncio.run(probe_node(address, timeout))
    except (ProbeError, ValueError) as e:
        console.print(f"[bold red]{e}[/bold red]")
        return 1

    table = Table(title=f"{address} — {'ready' if health.is_ready() else 'unready'}")
    table.add_column("Submodule")
    table.add_column("Status")
    for name in SUBMODULES:
        value = getattr(health, name)
        style = "green" if value == "alive" else "red"
        table.add_row(name, f"[{style}]{value or '-'}[/{style}]")
    console.print(table)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="clusterwatch storage cluster health")
    sub = parser.add_subparsers(dest="command")

    # Server mode
    sub.add_parser("serve", help="Start the API server and reconcile scheduler")

    # One-shot reconcile
    rec_parser = sub.add_parser("reconcile", help="Run one reconciliation pass")
    rec_parser.add_argument("cluster_id", help="Cluster id from the clusters file")

    # Single-node probe
    probe_parser = sub.add_parser("probe", help="Probe one node's health endpoint")
    probe_parser.add_argument("address", help="Node address")
    probe_parser.add_argument(
        "--timeout", type=float, default=settings.probe_timeout_seconds, help="Timeout in seconds",
    )

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "reconcile":
        sys.exit(run_reconcile(args.cluster_id))
    elif args.command == "probe":
        sys.exit(run_probe(args.address, args.timeout))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
