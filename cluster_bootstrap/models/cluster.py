"""Data models for cluster workload state returned by the cluster client."""

from pydantic import BaseModel


class DeploymentStatus(BaseModel):
    """Replica counts of a Kubernetes deployment."""

    name: str
    namespace: str = "default"
    available_replicas: int = 0
    desired_replicas: int = 0

    @property
    def available(self) -> bool:
        """True when every desired replica is available."""
        return self.available_replicas >= self.desired_replicas


class ServiceInfo(BaseModel):
    """Kubernetes service exposure details."""

    name: str
    namespace: str = "default"
    port: int
    service_type: str = "NodePort"
    node_port: int | None = None


class ExecResult(BaseModel):
    """Result of running a command inside a pod."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0
