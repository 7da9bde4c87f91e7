"""Calico CNI installation and readiness wait."""

from cluster_bootstrap.client import ClusterClient
from cluster_bootstrap.clock import Clock, Deadline, SystemClock
from cluster_bootstrap.exceptions import DependencyFault
from cluster_bootstrap.logging_config import get_logger

logger = get_logger(__name__)

CNI_NAMESPACE = "kube-system"
CNI_DAEMON_SELECTOR = "k8s-app=calico-node"
CNI_CONTROLLER_DEPLOYMENT = "calico-kube-controllers"


class CniInstaller:
    """Applies the CNI manifest and waits for its pods.

    The wait has two phases with independent timeouts: first the daemon pods
    must exist, then the controller deployment must be available and every
    daemon pod ready.
    """

    def __init__(
        self,
        client: ClusterClient,
        clock: Clock | None = None,
        creation_timeout: float = 120,
        poll_interval: float = 5,
        ready_timeout: float = 300,
    ):
        self.client = client
        self.clock = clock or SystemClock()
        self.creation_timeout = creation_timeout
        self.poll_interval = poll_interval
        self.ready_timeout = ready_timeout

    def install(self, manifest: str) -> None:
        """Apply the manifest and block until the CNI is ready.

        Args:
            manifest: Manifest URL or path

        Raises:
            DependencyFault: If applying fails or either wait phase times out
        """
        logger.info(f"Applying CNI manifest {manifest}")
        self.client.apply_manifest(manifest)
        self.wait_for_pods_created()
        self.wait_for_ready()

    def wait_for_pods_created(self) -> int:
        """Poll until at least one CNI daemon pod exists.

        Returns:
            Number of daemon pods found

        Raises:
            DependencyFault: If no pods appear within the creation timeout
        """
        deadline = Deadline.start(self.creation_timeout, self.clock)

        while True:
            count = self.client.count_pods(CNI_NAMESPACE, CNI_DAEMON_SELECTOR)
            if count > 0:
                logger.info(f"Found {count} CNI daemon pods ({deadline.elapsed():.0f}s)")
                return count

            if deadline.expired():
                logger.error(f"CNI pods not created within {self.creation_timeout:.0f} seconds")
                raise DependencyFault(
                    f"Calico pods not created within {self.creation_timeout:.0f} seconds",
                    "The manifest was applied but no calico-node pods appeared. "
                    f"Check: kubectl get pods -n {CNI_NAMESPACE}",
                )

            logger.info(f"Waiting for CNI pods to be created... ({deadline.elapsed():.0f}s)")
            self.clock.sleep(self.poll_interval)

    def wait_for_ready(self) -> None:
        """Wait for the controller deployment and every daemon pod.

        Raises:
            DependencyFault: If either condition is not met within the ready timeout
        """
        if not self.client.wait_for_condition(
            "deployment",
            CNI_CONTROLLER_DEPLOYMENT,
            "available",
            self.ready_timeout,
            namespace=CNI_NAMESPACE,
        ):
            raise DependencyFault(
                f"{CNI_CONTROLLER_DEPLOYMENT} did not become available "
                f"within {self.ready_timeout:.0f} seconds",
                f"Check: kubectl describe deployment {CNI_CONTROLLER_DEPLOYMENT} "
                f"-n {CNI_NAMESPACE}",
            )

        if not self.client.wait_for_condition(
            "pod", CNI_DAEMON_SELECTOR, "ready", self.ready_timeout, namespace=CNI_NAMESPACE
        ):
            raise DependencyFault(
                f"Calico node pods did not become ready within {self.ready_timeout:.0f} seconds",
                f"Check: kubectl get pods -n {CNI_NAMESPACE} -l {CNI_DAEMON_SELECTOR}",
            )

        logger.info("CNI is ready")
