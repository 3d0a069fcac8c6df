"""Cluster registry — loads clusters.yaml and provides typed, default-filled models.

Each cluster lists its members as one comma-separated ``join`` string. The
string is kept as written and parsed per reconciliation pass, so a malformed
list fails that pass instead of dropping the cluster from the registry.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from clusterwatch.config import settings

logger = logging.getLogger(__name__)

REGISTRY_PATH = Path(settings.clusters_file)

DEFAULT_IMAGE_REPOSITORY = "ecs/ecs"
DEFAULT_IMAGE_TAG = "latest"
DEFAULT_IMAGE_PULL_POLICY = "Always"

_ADDRESS_RE = re.compile(r"^[A-Za-z0-9._\-:\[\]]+$")


class ConfigurationError(Exception):
    """Raised when a cluster definition cannot be turned into a member list."""


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass
class ImageSpec:
    """Container image the cluster's nodes run."""

    repository: str = DEFAULT_IMAGE_REPOSITORY
    tag: str = DEFAULT_IMAGE_TAG
    pull_policy: str = DEFAULT_IMAGE_PULL_POLICY

    @property
    def reference(self) -> str:
        return f"{self.repository}:{self.tag}"


@dataclass
class ClusterDef:
    """A monitored storage cluster."""

    id: str
    name: str = ""
    join: str = ""
    interval_seconds: int = field(default_factory=lambda: settings.reconcile_interval_seconds)
    probe_timeout_seconds: float = field(default_factory=lambda: settings.probe_timeout_seconds)
    image: ImageSpec = field(default_factory=ImageSpec)

    def members(self) -> tuple[str, ...]:
        """Parse ``join`` into the ordered member address list."""
        return parse_members(self.join)


def parse_members(join: str) -> tuple[str, ...]:
    """Split a comma-separated member list into addresses.

    A blank string means no members. Empty segments, illegal characters and
    duplicate addresses raise ConfigurationError.
    """
    if not join or not join.strip():
        return ()

    members: list[str] = []
    for i, raw in enumerate(join.split(",")):
        addr = raw.strip()
        if not addr:
            raise ConfigurationError(f"Empty member address at position {i} in {join!r}")
        if not _ADDRESS_RE.match(addr):
            raise ConfigurationError(f"Unparsable member address {addr!r}")
        if addr in members:
            raise ConfigurationError(f"Duplicate member address {addr!r}")
        members.append(addr)
    return tuple(members)


# ── Registry ─────────────────────────────────────────────────────────────────


class ClusterRegistry:
    """Loads and caches cluster definitions from clusters.yaml."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or REGISTRY_PATH
        self._clusters: list[ClusterDef] = []
        self._loaded = False

    def load(self, force: bool = False) -> list[ClusterDef]:
        """Parse clusters.yaml and return the ClusterDef list."""
        if self._loaded and not force:
            return self._clusters

        self._clusters = []
        if not self._path.exists():
            logger.warning("Cluster file not found: %s", self._path)
            self._loaded = True
            return self._clusters

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            logger.error("Failed to parse %s: %s", self._path, e)
            self._loaded = True
            return self._clusters

        if not isinstance(raw, dict):
            logger.error("Expected a mapping at the top of %s, got %s", self._path, type(raw).__name__)
            raw = {}

        for entry in raw.get("clusters", []) or []:
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed cluster entry: %r", entry)
                continue
            try:
                self._clusters.append(_parse_cluster(entry))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed cluster entry: %s", e)

        self._loaded = True
        logger.info("Loaded %d clusters from registry", len(self._clusters))
        return self._clusters

    @property
    def clusters(self) -> list[ClusterDef]:
        return self.load()

    def get(self, cluster_id: str) -> ClusterDef | None:
        return next((c for c in self.clusters if c.id == cluster_id), None)

    def to_dict(self) -> list[dict[str, Any]]:
        """Serialize all clusters for the API."""
        return [cluster_to_dict(c) for c in self.clusters]

    def reload(self) -> list[ClusterDef]:
        """Force reload from disk."""
        return self.load(force=True)


# ── Parsers ──────────────────────────────────────────────────────────────────


def _parse_cluster(raw: dict[str, Any]) -> ClusterDef:
    raw_image = raw.get("image") or {}
    image = ImageSpec(
        repository=raw_image.get("repository") or DEFAULT_IMAGE_REPOSITORY,
        tag=str(raw_image.get("tag") or DEFAULT_IMAGE_TAG),
        pull_policy=raw_image.get("pull_policy") or DEFAULT_IMAGE_PULL_POLICY,
    )

    join = raw.get("join") or ""
    if isinstance(join, list):
        # List format: join: [10.0.0.1, 10.0.0.2]
        join = ",".join(str(j) for j in join)

    return ClusterDef(
        id=raw["id"],
        name=raw.get("name", raw["id"]),
        join=str(join),
        interval_seconds=int(raw.get("interval_seconds", settings.reconcile_interval_seconds)),
        probe_timeout_seconds=float(raw.get("probe_timeout_seconds", settings.probe_timeout_seconds)),
        image=image,
    )


def cluster_to_dict(c: ClusterDef) -> dict[str, Any]:
    try:
        members: list[str] | None = list(c.members())
        error = None
    except ConfigurationError as e:
        members, error = None, str(e)
    return {
        "id": c.id,
        "name": c.name,
        "join": c.join,
        "members": members,
        "config_error": error,
        "interval_seconds": c.interval_seconds,
        "probe_timeout_seconds": c.probe_timeout_seconds,
        "image": {
            "repository": c.image.repository,
            "tag": c.image.tag,
            "pull_policy": c.image.pull_policy,
        },
    }
