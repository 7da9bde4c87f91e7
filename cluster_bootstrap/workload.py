"""Sample workload deployment used as the final smoke test."""

from cluster_bootstrap.client import ClusterClient
from cluster_bootstrap.exceptions import WorkloadError
from cluster_bootstrap.logging_config import get_logger
from cluster_bootstrap.models.cluster import ServiceInfo

logger = get_logger(__name__)


class SampleWorkload:
    """Deploys an nginx deployment and exposes it as a NodePort service."""

    def __init__(
        self,
        client: ClusterClient,
        name: str = "nginx",
        image: str = "nginx:latest",
        replicas: int = 3,
        port: int = 80,
        timeout: float = 120,
    ):
        self.client = client
        self.name = name
        self.image = image
        self.replicas = replicas
        self.port = port
        self.timeout = timeout

    def deploy(self) -> ServiceInfo:
        """Create, expose and wait for the workload.

        Returns:
            ServiceInfo including the allocated node port

        Raises:
            WorkloadError: If the deployment does not become available in time
            DependencyFault: If the deployment or service cannot be created
        """
        logger.info(f"Deploying {self.name} ({self.image}) with {self.replicas} replicas")
        self.client.create_deployment(self.name, self.image, self.replicas)
        service = self.client.expose_service(self.name, self.port, "NodePort")

        if not self.client.wait_for_condition("deployment", self.name, "available", self.timeout):
            status = self.client.get_deployment_status(self.name)
            raise WorkloadError(
                f"Deployment {self.name} not available within {self.timeout:.0f} seconds",
                f"{status.available_replicas}/{status.desired_replicas} replicas available",
            )

        logger.info(f"{self.name} is available on NodePort {service.node_port}")
        return service
