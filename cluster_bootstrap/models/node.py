"""Data models for observed cluster nodes and their taints."""

import re

from pydantic import BaseModel, Field, field_validator

NOT_READY_TAINT = "node.kubernetes.io/not-ready"
UNREACHABLE_TAINT = "node.kubernetes.io/unreachable"

# The only taints remediation is ever allowed to remove
REMEDIABLE_TAINT_KEYS = (NOT_READY_TAINT, UNREACHABLE_TAINT)
REMEDIABLE_EFFECTS = ("NoSchedule", "NoExecute")


class NodeTaint(BaseModel):
    """Kubernetes node taint."""

    key: str
    value: str | None = None
    effect: str  # NoSchedule, PreferNoSchedule, NoExecute

    @field_validator("effect")
    @classmethod
    def validate_effect(cls, v: str) -> str:
        """Validate taint effect is one of the allowed values."""
        allowed = ["NoSchedule", "PreferNoSchedule", "NoExecute"]
        if v not in allowed:
            raise ValueError(f"effect must be one of {allowed}, got {v}")
        return v

    @property
    def remediable(self) -> bool:
        """Whether this taint is a stale readiness marker."""
        return self.key in REMEDIABLE_TAINT_KEYS

    def __str__(self) -> str:
        if self.value:
            return f"{self.key}={self.value}:{self.effect}"
        return f"{self.key}:{self.effect}"


class Node(BaseModel):
    """A node as observed in a single poll cycle."""

    name: str
    ready: bool = False
    taints: list[NodeTaint] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate node name follows DNS naming conventions."""
        if not v:
            raise ValueError("name cannot be empty")
        if len(v) > 253:
            raise ValueError("name cannot exceed 253 characters")
        name_pattern = re.compile(
            r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$", re.IGNORECASE
        )
        if not name_pattern.fullmatch(v):
            raise ValueError(
                f"name '{v}' must contain only alphanumeric characters, "
                "hyphens, and dots, and cannot start or end with a hyphen"
            )
        return v

    @property
    def taint_keys(self) -> set[str]:
        """Set of taint keys currently applied, independent of effect."""
        return {t.key for t in self.taints}

    def needs_remediation(self) -> bool:
        """Whether the node carries a not-ready or unreachable taint."""
        return any(t.remediable for t in self.taints)

    @classmethod
    def from_kubernetes_api(cls, node) -> "Node":
        """Build from a kubernetes V1Node object."""
        ready = False
        for condition in (node.status.conditions if node.status else None) or []:
            if condition.type == "Ready":
                ready = condition.status == "True"

        taints = []
        for taint in (node.spec.taints if node.spec else None) or []:
            taints.append(NodeTaint(key=taint.key, value=taint.value, effect=taint.effect))

        return cls(name=node.metadata.name, ready=ready, taints=taints)
