"""In-memory cluster and clock used by the test suite."""

from cluster_bootstrap.client import ClusterClient
from cluster_bootstrap.exceptions import DependencyFault
from cluster_bootstrap.models.cluster import DeploymentStatus, ExecResult, ServiceInfo
from cluster_bootstrap.models.node import Node, NodeTaint


class FakeClock:
    """Clock whose sleep advances time instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeCluster(ClusterClient):
    """Cluster client that keeps all state in memory.

    Nodes listed in ``recover_on_untaint`` become ready once their last
    not-ready/unreachable taint is removed. Nodes in ``ready_at`` become ready
    when the clock reaches the given time.
    """

    def __init__(self, nodes: list[Node] | None = None, clock: FakeClock | None = None):
        self.clock = clock or FakeClock()
        self.nodes: dict[str, Node] = {n.name: n.model_copy(deep=True) for n in nodes or []}
        self.recover_on_untaint: set[str] = set()
        self.ready_at: dict[str, float] = {}
        self.failing_nodes: set[str] = set()
        self.list_error: DependencyFault | None = None

        self.list_calls = 0
        self.remove_calls: list[tuple[str, str, str]] = []
        self.applied: list[str] = []
        self.wait_calls: list[tuple[str, str, str, float]] = []
        self.conditions: dict[tuple[str, str, str], bool] = {}
        self.daemon_pods = 3
        self.pods_appear_at: float | None = 0.0

        self.pods: set[str] = set()
        self.created_pods: list[str] = []
        self.deleted_pods: list[str] = []
        self.exec_calls: list[tuple[str, list[str]]] = []
        self.exec_results: dict[str, ExecResult | DependencyFault] = {}

        self.deployments: dict[str, tuple[str, int]] = {}
        self.services: dict[str, ServiceInfo] = {}
        self.available_replicas: dict[str, int] = {}

    # nodes

    def list_nodes(self) -> list[Node]:
        self.list_calls += 1
        if self.list_error:
            raise self.list_error
        for name, at in self.ready_at.items():
            if name in self.nodes and self.clock.now >= at:
                self.nodes[name].ready = True
        return [n.model_copy(deep=True) for n in self.nodes.values()]

    def remove_taint(self, node: str, key: str, effect: str) -> bool:
        self.remove_calls.append((node, key, effect))
        if node in self.failing_nodes:
            raise DependencyFault(f"Failed to remove taint {key}:{effect} from {node}")

        current = self.nodes[node]
        before = len(current.taints)
        current.taints = [t for t in current.taints if not (t.key == key and t.effect == effect)]
        if node in self.recover_on_untaint and not current.needs_remediation():
            current.ready = True
        return len(current.taints) != before

    # manifests and waits

    def apply_manifest(self, source: str) -> None:
        self.applied.append(source)

    def wait_for_condition(
        self, kind: str, selector: str, condition: str, timeout: float, namespace: str = "default"
    ) -> bool:
        self.wait_calls.append((kind, selector, condition, timeout))
        return self.conditions.get((kind, selector, condition), True)

    def count_pods(self, namespace: str, selector: str) -> int:
        if self.pods_appear_at is None or self.clock.now < self.pods_appear_at:
            return 0
        return self.daemon_pods

    # workloads

    def get_deployment_status(self, name: str, namespace: str = "default") -> DeploymentStatus:
        _, replicas = self.deployments[name]
        return DeploymentStatus(
            name=name,
            namespace=namespace,
            available_replicas=self.available_replicas.get(name, replicas),
            desired_replicas=replicas,
        )

    def run_pod(self, name: str, image: str, command: list[str]) -> None:
        self.pods.add(name)
        self.created_pods.append(name)

    def delete_pod(self, name: str) -> bool:
        self.deleted_pods.append(name)
        if name not in self.pods:
            return False
        self.pods.discard(name)
        return True

    def exec_in_pod(self, name: str, command: list[str]) -> ExecResult:
        self.exec_calls.append((name, command))
        default = ExecResult(returncode=0, stdout="<title>Example Domain</title>")
        result = self.exec_results.get(command[0], default)
        if isinstance(result, DependencyFault):
            raise result
        return result

    def create_deployment(self, name: str, image: str, replicas: int) -> None:
        self.deployments[name] = (image, replicas)

    def expose_service(self, name: str, port: int, service_type: str = "NodePort") -> ServiceInfo:
        service = ServiceInfo(name=name, port=port, service_type=service_type, node_port=30080)
        self.services[name] = service
        return service


def make_node(name: str, ready: bool = True, taints: list[tuple[str, str]] | None = None) -> Node:
    """Build a node from (key, effect) taint pairs."""
    return Node(
        name=name,
        ready=ready,
        taints=[NodeTaint(key=key, effect=effect) for key, effect in taints or []],
    )
