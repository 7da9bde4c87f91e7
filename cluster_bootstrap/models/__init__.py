"""Data models for bootstrap configuration and observed cluster state."""

from cluster_bootstrap.models.cluster import DeploymentStatus, ExecResult, ServiceInfo
from cluster_bootstrap.models.config import BootstrapConfig
from cluster_bootstrap.models.node import (
    NOT_READY_TAINT,
    REMEDIABLE_EFFECTS,
    REMEDIABLE_TAINT_KEYS,
    UNREACHABLE_TAINT,
    Node,
    NodeTaint,
)

__all__ = [
    "BootstrapConfig",
    "DeploymentStatus",
    "ExecResult",
    "Node",
    "NodeTaint",
    "NOT_READY_TAINT",
    "REMEDIABLE_EFFECTS",
    "REMEDIABLE_TAINT_KEYS",
    "ServiceInfo",
    "UNREACHABLE_TAINT",
]
