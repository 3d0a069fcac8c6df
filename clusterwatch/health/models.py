"""Cluster health models — node submodule health, cluster status, wire schema.

``ClusterStatus`` is an immutable value type: two statuses are equal exactly
when every field (including nested node health) is equal, which is what the
reconciler relies on to skip redundant writes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, Field

# Bump when the persisted status layout changes; stored records with an older
# version compare unequal and get rewritten on the next pass.
STATUS_VERSION = 1

LIVE = "alive"

SUBMODULES = (
    "directfs_initiator",
    "director",
    "kv",
    "kv_write",
    "nats",
    "presentation",
    "rdb",
)


class Phase(str, Enum):
    INITIAL = "Initial"
    RUNNING = "Running"


# ── Node health ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class NodeHealth:
    """Status string reported by each submodule of one node."""

    directfs_initiator: str = ""
    director: str = ""
    kv: str = ""
    kv_write: str = ""
    nats: str = ""
    presentation: str = ""
    rdb: str = ""

    def is_ready(self) -> bool:
        """A node is ready only when every submodule reports exactly ``alive``."""
        return all(getattr(self, name) == LIVE for name in SUBMODULES)

    def unhealthy_submodules(self) -> list[str]:
        return [name for name in SUBMODULES if getattr(self, name) != LIVE]

    def to_dict(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NodeHealth":
        return cls(**{name: str(data.get(name, "")) for name in SUBMODULES})


# ── Cluster status ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MembersStatus:
    """Partition of the member list into ready and unready addresses."""

    ready: tuple[str, ...] = ()
    unready: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClusterStatus:
    """Externally visible status record for one cluster."""

    phase: Phase = Phase.INITIAL
    nodes: tuple[str, ...] = ()
    node_health_status: tuple[tuple[str, NodeHealth], ...] = ()
    ready: str = "0/0"
    members: MembersStatus = field(default_factory=MembersStatus)
    version: int = STATUS_VERSION

    @property
    def node_health(self) -> dict[str, NodeHealth]:
        return dict(self.node_health_status)

    @property
    def ready_count(self) -> int:
        return len(self.members.ready)

    @property
    def total_count(self) -> int:
        return len(self.nodes)

    @property
    def is_healthy(self) -> bool:
        return self.total_count > 0 and self.ready_count == self.total_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "phase": self.phase.value,
            "nodes": list(self.nodes),
            "nodeHealthStatus": {
                addr: health.to_dict() for addr, health in self.node_health_status
            },
            "ready": self.ready,
            "members": {
                "ready": list(self.members.ready),
                "unready": list(self.members.unready),
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClusterStatus":
        members = data.get("members") or {}
        health = data.get("nodeHealthStatus") or {}
        return cls(
            phase=Phase(data.get("phase", Phase.INITIAL.value)),
            nodes=tuple(data.get("nodes") or ()),
            node_health_status=tuple(
                (addr, NodeHealth.from_dict(h)) for addr, h in health.items()
            ),
            ready=data.get("ready", "0/0"),
            members=MembersStatus(
                ready=tuple(members.get("ready") or ()),
                unready=tuple(members.get("unready") or ()),
            ),
            version=int(data.get("version", 0)),
        )


# ── Health endpoint wire schema ──────────────────────────────────────────────


class SubmoduleReport(BaseModel):
    status: str = ""


class Submodules(BaseModel):
    directfs_initiator: SubmoduleReport = Field(default_factory=SubmoduleReport)
    director: SubmoduleReport = Field(default_factory=SubmoduleReport)
    kv: SubmoduleReport = Field(default_factory=SubmoduleReport)
    kv_write: SubmoduleReport = Field(default_factory=SubmoduleReport)
    nats: SubmoduleReport = Field(default_factory=SubmoduleReport)
    presentation: SubmoduleReport = Field(default_factory=SubmoduleReport)
    rdb: SubmoduleReport = Field(default_factory=SubmoduleReport)


class HealthDocument(BaseModel):
    """Body of GET /v1/health on a storage node."""

    submodules: Submodules

    def to_node_health(self) -> NodeHealth:
        return NodeHealth(
            **{name: getattr(self.submodules, name).status for name in SUBMODULES}
        )
