from clusterwatch.clusters.registry import (
    ClusterDef,
    ClusterRegistry,
    ConfigurationError,
    ImageSpec,
    parse_members,
)

__all__ = [
    "ClusterDef",
    "ClusterRegistry",
    "ConfigurationError",
    "ImageSpec",
    "parse_members",
]
