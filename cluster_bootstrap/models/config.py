"""Bootstrap configuration model."""

import re
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from cluster_bootstrap.exceptions import ConfigurationError

CALICO_MANIFEST_URL = (
    "https://raw.githubusercontent.com/projectcalico/calico/{version}/manifests/calico.yaml"
)


class BootstrapConfig(BaseModel):
    """Cluster bootstrap configuration.

    All durations are in seconds.
    """

    cluster_name: str = "tce-multi"
    control_plane_nodes: int = Field(default=1, ge=1)
    worker_nodes: int = Field(default=2, ge=0)
    tce_version: str = "v0.12.1"
    cni_version: str = "v3.26.1"

    readiness_timeout: float = Field(default=600, gt=0)
    poll_interval: float = Field(default=15, gt=0)
    remediation_interval: float = Field(default=30, gt=0)
    settle_delay: float = Field(default=20, ge=0)
    no_nodes_delay: float = Field(default=10, gt=0)

    cni_creation_timeout: float = Field(default=120, gt=0)
    cni_poll_interval: float = Field(default=5, gt=0)
    cni_ready_timeout: float = Field(default=300, gt=0)

    network_pod_timeout: float = Field(default=120, gt=0)
    workload_timeout: float = Field(default=120, gt=0)

    sample_workload: bool = True
    skip_prerequisites: bool = False

    @field_validator("cluster_name")
    @classmethod
    def validate_cluster_name(cls, v: str) -> str:
        """Validate cluster name is a DNS label."""
        if not v:
            raise ValueError("cluster_name cannot be empty")
        if not re.fullmatch(r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$", v):
            raise ValueError(
                f"cluster_name '{v}' must be lowercase alphanumeric with inner hyphens "
                "(max 63 characters)"
            )
        return v

    @field_validator("cni_version", "tce_version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate versions follow the vX.Y.Z release tag format."""
        if not re.fullmatch(r"^v\d+\.\d+\.\d+$", v):
            raise ValueError(f"version '{v}' must follow the release tag format (e.g., v3.26.1)")
        return v

    @property
    def total_nodes(self) -> int:
        return self.control_plane_nodes + self.worker_nodes

    @property
    def cni_manifest_url(self) -> str:
        return CALICO_MANIFEST_URL.format(version=self.cni_version)

    def save(self, path: str | Path) -> None:
        """Save configuration to YAML file."""
        import yaml

        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load(cls, path: str | Path, **overrides) -> "BootstrapConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to the YAML configuration file
            **overrides: Values that take precedence over the file (None values are ignored)

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        import yaml

        path = Path(path)
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                "Create one with: cluster-bootstrap init-config",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse configuration file: {path}", str(e))

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping: {path}",
                f"Got {type(data).__name__} instead",
            )

        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.build(**data)

    @classmethod
    def build(cls, **values) -> "BootstrapConfig":
        """Construct a configuration, converting validation errors to ConfigurationError."""
        try:
            return cls(**{k: v for k, v in values.items() if v is not None})
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(x) for x in error['loc'])}: {error['msg']}" for error in e.errors()
            ]
            raise ConfigurationError("Invalid bootstrap configuration", "\n".join(problems))
