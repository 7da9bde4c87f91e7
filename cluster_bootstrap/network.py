"""Network validation with a disposable diagnostic pod."""

from contextlib import contextmanager
from dataclasses import dataclass

from cluster_bootstrap.client import ClusterClient
from cluster_bootstrap.exceptions import DependencyFault, ValidationFault
from cluster_bootstrap.logging_config import get_logger

logger = get_logger(__name__)

DIAGNOSTIC_POD = "network-test"
DIAGNOSTIC_IMAGE = "busybox:1.36"
CLUSTER_DNS_NAME = "kubernetes.default.svc.cluster.local"
HTTP_CHECK_URL = "http://example.com"
HTTP_CHECK_MARKER = "Example Domain"
PING_TARGET = "8.8.8.8"


@dataclass
class NetworkReport:
    """Outcome of the network checks.

    ``http_ok`` is informational only; environments without internet egress
    still pass validation.
    """

    dns_ok: bool = False
    http_ok: bool = False
    ping_ok: bool = False


class NetworkValidator:
    """Checks DNS, internet egress and ICMP reachability from inside the cluster."""

    def __init__(
        self,
        client: ClusterClient,
        pod_timeout: float = 120,
        pod_name: str = DIAGNOSTIC_POD,
        image: str = DIAGNOSTIC_IMAGE,
    ):
        self.client = client
        self.pod_timeout = pod_timeout
        self.pod_name = pod_name
        self.image = image

    @contextmanager
    def diagnostic_pod(self):
        """Run the diagnostic pod and delete it on every exit path."""
        logger.info(f"Creating network test pod {self.pod_name}")
        self.client.run_pod(self.pod_name, self.image, ["sleep", "3600"])
        try:
            yield self.pod_name
        finally:
            try:
                self.client.delete_pod(self.pod_name)
                logger.info(f"Deleted network test pod {self.pod_name}")
            except DependencyFault as e:
                logger.warning(
                    f"Continuing despite failure to delete pod {self.pod_name}: {e.message}"
                )

    def validate(self) -> NetworkReport:
        """Run all network checks.

        Returns:
            NetworkReport with the result of each check

        Raises:
            ValidationFault: If the pod never becomes ready, DNS fails or ping fails
        """
        report = NetworkReport()

        with self.diagnostic_pod() as pod:
            if not self.client.wait_for_condition("pod", pod, "Ready", self.pod_timeout):
                raise ValidationFault(
                    f"Network test pod did not become ready within {self.pod_timeout:.0f} seconds",
                    f"Check: kubectl describe pod {pod}",
                )

            logger.info("Testing DNS resolution")
            result = self.client.exec_in_pod(pod, ["nslookup", CLUSTER_DNS_NAME])
            if not result.ok:
                logger.error(f"DNS resolution failed: {result.stderr or result.stdout}")
                raise ValidationFault(
                    f"DNS resolution of {CLUSTER_DNS_NAME} failed",
                    "Cluster DNS is broken. "
                    "Check: kubectl get pods -n kube-system -l k8s-app=kube-dns",
                )
            report.dns_ok = True

            logger.info("Testing internet connectivity")
            try:
                result = self.client.exec_in_pod(
                    pod, ["wget", "-qO-", "--timeout=5", HTTP_CHECK_URL]
                )
                report.http_ok = result.ok and HTTP_CHECK_MARKER in result.stdout
            except DependencyFault as e:
                logger.warning(f"Internet connectivity test could not run: {e.message}")
                report.http_ok = False
            if not report.http_ok:
                logger.warning("Continuing despite failed internet connectivity test")

            logger.info("Testing pod network reachability")
            result = self.client.exec_in_pod(pod, ["ping", "-c", "3", PING_TARGET])
            if not result.ok:
                logger.error(f"Ping to {PING_TARGET} failed: {result.stderr or result.stdout}")
                raise ValidationFault(
                    f"Ping to {PING_TARGET} failed",
                    "Pods cannot reach external addresses. Check the CNI and node routing",
                )
            report.ping_ok = True

        return report
