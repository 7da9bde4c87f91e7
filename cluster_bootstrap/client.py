"""Cluster client interface and its Kubernetes implementation.

The bootstrap core only talks to the cluster through ``ClusterClient`` so that
polling and remediation logic can run against an in-memory cluster in tests.
"""

import subprocess
from abc import ABC, abstractmethod
from contextlib import contextmanager

from cluster_bootstrap.exceptions import DependencyFault
from cluster_bootstrap.logging_config import get_logger
from cluster_bootstrap.models.cluster import DeploymentStatus, ExecResult, ServiceInfo
from cluster_bootstrap.models.node import Node

logger = get_logger(__name__)


def _api_details(e) -> str:
    return f"API returned {e.status}: {e.reason}"


@contextmanager
def _api_call(action: str):
    """Map API errors and connection failures inside the block to DependencyFault."""
    from kubernetes.client.rest import ApiException
    from urllib3.exceptions import HTTPError

    try:
        yield
    except ApiException as e:
        logger.error(f"{action}: {e.status} {e.reason}")
        raise DependencyFault(action, _api_details(e))
    except HTTPError as e:
        logger.error(f"{action}: {e}")
        raise DependencyFault(action, f"Could not reach the API server: {e}")


def _taint_body(taint) -> dict:
    """Serialize a V1Taint for a node patch, keeping value and timeAdded when set."""
    body = {"key": taint.key, "effect": taint.effect}
    if taint.value is not None:
        body["value"] = taint.value
    if taint.time_added is not None:
        body["timeAdded"] = taint.time_added
    return body


class ClusterClient(ABC):
    """Read and mutate operations the bootstrap needs from a cluster."""

    @abstractmethod
    def list_nodes(self) -> list[Node]:
        """List all nodes with readiness and taints."""

    @abstractmethod
    def remove_taint(self, node: str, key: str, effect: str) -> bool:
        """Remove a taint from a node.

        Returns:
            True if the taint was present and removed, False if it was already absent
        """

    @abstractmethod
    def apply_manifest(self, source: str) -> None:
        """Apply a manifest from a URL or local path."""

    @abstractmethod
    def wait_for_condition(
        self, kind: str, selector: str, condition: str, timeout: float, namespace: str = "default"
    ) -> bool:
        """Block until resources reach a condition.

        ``selector`` is a label selector when it contains ``=``, otherwise a resource name.

        Returns:
            True if the condition was met before the timeout
        """

    @abstractmethod
    def count_pods(self, namespace: str, selector: str) -> int:
        """Count pods matching a label selector."""

    @abstractmethod
    def get_deployment_status(self, name: str, namespace: str = "default") -> DeploymentStatus:
        """Read available and desired replicas of a deployment."""

    @abstractmethod
    def run_pod(self, name: str, image: str, command: list[str]) -> None:
        """Start a single pod that is never restarted."""

    @abstractmethod
    def delete_pod(self, name: str) -> bool:
        """Delete a pod immediately. Returns False if it did not exist."""

    @abstractmethod
    def exec_in_pod(self, name: str, command: list[str]) -> ExecResult:
        """Run a command inside a pod."""

    @abstractmethod
    def create_deployment(self, name: str, image: str, replicas: int) -> None:
        """Create a deployment labelled ``app=<name>``."""

    @abstractmethod
    def expose_service(self, name: str, port: int, service_type: str = "NodePort") -> ServiceInfo:
        """Expose a deployment through a service selecting ``app=<name>``."""


class KubernetesClusterClient(ClusterClient):
    """Cluster client backed by the kubernetes API and the kubectl binary.

    Structured reads and writes use the API; manifest application, condition
    waits and pod exec go through kubectl, which already implements them.
    """

    def __init__(
        self,
        core_api=None,
        apps_api=None,
        context: str | None = None,
        namespace: str = "default",
        kubectl: str = "kubectl",
    ):
        """Initialize the client.

        Args:
            core_api: CoreV1Api instance; loaded from kubeconfig when omitted
            apps_api: AppsV1Api instance; loaded from kubeconfig when omitted
            context: Kubeconfig context to use
            namespace: Namespace for pods, deployments and services
            kubectl: kubectl executable
        """
        self.context = context
        self.namespace = namespace
        self.kubectl = kubectl
        self._core_api = core_api
        self._apps_api = apps_api

    def _load_config(self) -> None:
        from kubernetes import config
        from kubernetes.config.config_exception import ConfigException

        try:
            config.load_kube_config(context=self.context)
        except (ConfigException, OSError) as e:
            logger.error(f"Failed to load kubeconfig: {e}")
            raise DependencyFault(
                "Failed to load kubeconfig",
                f"{e}\n\nMake sure the cluster has been created and "
                "~/.kube/config (or $KUBECONFIG) points at it",
            )

    @property
    def core_api(self):
        if self._core_api is None:
            from kubernetes import client

            self._load_config()
            self._core_api = client.CoreV1Api()
        return self._core_api

    @property
    def apps_api(self):
        if self._apps_api is None:
            from kubernetes import client

            self._load_config()
            self._apps_api = client.AppsV1Api()
        return self._apps_api

    def _run_kubectl(self, args: list[str], timeout: float = 60) -> subprocess.CompletedProcess:
        cmd = [self.kubectl]
        if self.context:
            cmd += ["--context", self.context]
        cmd += args
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"kubectl {args[0]} timed out after {timeout:.0f} seconds")
            raise DependencyFault(
                f"kubectl {args[0]} timed out",
                f"Command did not finish within {timeout:.0f} seconds: {' '.join(cmd)}",
            )
        except FileNotFoundError:
            logger.error("kubectl binary not found in PATH")
            raise DependencyFault(
                "kubectl is not installed or not in PATH",
                "Install kubectl from https://kubernetes.io/docs/tasks/tools/",
            )

    def list_nodes(self) -> list[Node]:
        with _api_call("Failed to list nodes"):
            response = self.core_api.list_node()

        return [Node.from_kubernetes_api(n) for n in response.items]

    def remove_taint(self, node: str, key: str, effect: str) -> bool:
        with _api_call(f"Failed to read node {node}"):
            current = self.core_api.read_node(node)

        taints = (current.spec.taints if current.spec else None) or []
        remaining = [t for t in taints if not (t.key == key and t.effect == effect)]
        if len(remaining) == len(taints):
            logger.debug(f"Taint {key}:{effect} already absent on {node}")
            return False

        body = {"spec": {"taints": [_taint_body(t) for t in remaining]}}
        # A concurrent taint change makes the patch fail with 409 instead of being overwritten
        resource_version = current.metadata.resource_version if current.metadata else None
        if resource_version:
            body["metadata"] = {"resourceVersion": resource_version}

        with _api_call(f"Failed to remove taint {key}:{effect} from {node}"):
            self.core_api.patch_node(node, body)

        logger.info(f"Removed taint {key}:{effect} from {node}")
        return True

    def apply_manifest(self, source: str) -> None:
        result = self._run_kubectl(["apply", "-f", source], timeout=300)
        if result.returncode != 0:
            logger.error(f"kubectl apply failed: {result.stderr}")
            raise DependencyFault(f"Failed to apply manifest {source}", result.stderr.strip())
        logger.debug(result.stdout)

    def wait_for_condition(
        self, kind: str, selector: str, condition: str, timeout: float, namespace: str = "default"
    ) -> bool:
        args = ["wait", f"--namespace={namespace}", f"--for=condition={condition}"]
        if "=" in selector:
            args += [kind, "-l", selector]
        else:
            args.append(f"{kind}/{selector}")
        args.append(f"--timeout={int(timeout)}s")

        # Leave kubectl room to report its own timeout before ours fires
        result = self._run_kubectl(args, timeout=timeout + 30)
        if result.returncode != 0:
            logger.warning(f"Condition {condition} not met for {kind} {selector}: {result.stderr}")
            return False
        return True

    def count_pods(self, namespace: str, selector: str) -> int:
        with _api_call(f"Failed to list pods matching {selector}"):
            pods = self.core_api.list_namespaced_pod(namespace, label_selector=selector)
        return len(pods.items)

    def get_deployment_status(self, name: str, namespace: str = "default") -> DeploymentStatus:
        with _api_call(f"Failed to read deployment {namespace}/{name}"):
            deployment = self.apps_api.read_namespaced_deployment_status(name, namespace)

        return DeploymentStatus(
            name=name,
            namespace=namespace,
            available_replicas=deployment.status.available_replicas or 0,
            desired_replicas=deployment.spec.replicas or 0,
        )

    def run_pod(self, name: str, image: str, command: list[str]) -> None:
        body = {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {"name": name, "labels": {"run": name}},
            "spec": {
                "restartPolicy": "Never",
                "containers": [{"name": name, "image": image, "command": command}],
            },
        }
        with _api_call(f"Failed to create pod {name}"):
            self.core_api.create_namespaced_pod(self.namespace, body)

    def delete_pod(self, name: str) -> bool:
        from kubernetes.client.rest import ApiException

        with _api_call(f"Failed to delete pod {name}"):
            try:
                self.core_api.delete_namespaced_pod(name, self.namespace, grace_period_seconds=0)
            except ApiException as e:
                if e.status == 404:
                    return False
                raise
        return True

    def exec_in_pod(self, name: str, command: list[str]) -> ExecResult:
        result = self._run_kubectl(
            ["exec", f"--namespace={self.namespace}", name, "--", *command], timeout=60
        )
        return ExecResult(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)

    def create_deployment(self, name: str, image: str, replicas: int) -> None:
        labels = {"app": name}
        body = {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": name, "labels": labels},
            "spec": {
                "replicas": replicas,
                "selector": {"matchLabels": labels},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {"containers": [{"name": name, "image": image}]},
                },
            },
        }
        with _api_call(f"Failed to create deployment {name}"):
            self.apps_api.create_namespaced_deployment(self.namespace, body)

    def expose_service(self, name: str, port: int, service_type: str = "NodePort") -> ServiceInfo:
        body = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": name, "labels": {"app": name}},
            "spec": {
                "type": service_type,
                "selector": {"app": name},
                "ports": [{"port": port, "targetPort": port, "protocol": "TCP"}],
            },
        }
        with _api_call(f"Failed to expose {name}"):
            service = self.core_api.create_namespaced_service(self.namespace, body)

        ports = service.spec.ports or []
        return ServiceInfo(
            name=name,
            namespace=self.namespace,
            port=port,
            service_type=service_type,
            node_port=ports[0].node_port if ports else None,
        )
