"""Tests for the kubernetes-backed cluster client."""

import subprocess
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
from kubernetes.client import (
    V1Node,
    V1NodeCondition,
    V1NodeSpec,
    V1NodeStatus,
    V1ObjectMeta,
    V1Taint,
)
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from cluster_bootstrap.client import KubernetesClusterClient
from cluster_bootstrap.exceptions import DependencyFault
from cluster_bootstrap.models.node import NOT_READY_TAINT


def v1_node(name, ready="True", taints=None):
    return V1Node(
        metadata=V1ObjectMeta(name=name),
        spec=V1NodeSpec(taints=[V1Taint(key=k, effect=e) for k, e in taints or []] or None),
        status=V1NodeStatus(conditions=[V1NodeCondition(type="Ready", status=ready)]),
    )


@pytest.fixture
def core_api():
    return Mock()


@pytest.fixture
def apps_api():
    return Mock()


@pytest.fixture
def client(core_api, apps_api):
    return KubernetesClusterClient(core_api=core_api, apps_api=apps_api, context="tce-multi")


def test_list_nodes_parses_readiness_and_taints(client, core_api):
    core_api.list_node.return_value = Mock(
        items=[
            v1_node("cp-0"),
            v1_node("worker-0", ready="False", taints=[(NOT_READY_TAINT, "NoSchedule")]),
            v1_node("worker-1", ready="Unknown"),
        ]
    )

    nodes = client.list_nodes()

    assert [(n.name, n.ready) for n in nodes] == [
        ("cp-0", True),
        ("worker-0", False),
        ("worker-1", False),
    ]
    assert nodes[1].taint_keys == {NOT_READY_TAINT}
    assert nodes[1].needs_remediation()


def test_list_nodes_api_error_is_dependency_fault(client, core_api):
    core_api.list_node.side_effect = ApiException(status=503, reason="Service Unavailable")

    with pytest.raises(DependencyFault) as exc_info:
        client.list_nodes()

    assert "503" in exc_info.value.details


def test_list_nodes_unreachable_api_is_dependency_fault(client, core_api):
    core_api.list_node.side_effect = MaxRetryError(
        None, "/api/v1/nodes", reason=ConnectionRefusedError("Connection refused")
    )

    with pytest.raises(DependencyFault) as exc_info:
        client.list_nodes()

    assert exc_info.value.message == "Failed to list nodes"
    assert "Could not reach the API server" in exc_info.value.details


def test_remove_taint_patches_remaining_taints(client, core_api):
    core_api.read_node.return_value = v1_node(
        "worker-0", taints=[(NOT_READY_TAINT, "NoSchedule"), ("dedicated", "NoSchedule")]
    )

    assert client.remove_taint("worker-0", NOT_READY_TAINT, "NoSchedule") is True

    core_api.patch_node.assert_called_once_with(
        "worker-0",
        {"spec": {"taints": [{"key": "dedicated", "effect": "NoSchedule"}]}},
    )


def test_remove_taint_keeps_time_added_and_resource_version(client, core_api):
    added = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    core_api.read_node.return_value = V1Node(
        metadata=V1ObjectMeta(name="worker-0", resource_version="4711"),
        spec=V1NodeSpec(
            taints=[
                V1Taint(key=NOT_READY_TAINT, effect="NoExecute", time_added=added),
                V1Taint(key="gpu", value="a100", effect="NoSchedule", time_added=added),
            ]
        ),
    )

    client.remove_taint("worker-0", NOT_READY_TAINT, "NoExecute")

    core_api.patch_node.assert_called_once_with(
        "worker-0",
        {
            "metadata": {"resourceVersion": "4711"},
            "spec": {
                "taints": [
                    {"key": "gpu", "effect": "NoSchedule", "value": "a100", "timeAdded": added}
                ]
            },
        },
    )


def test_remove_absent_taint_is_noop(client, core_api):
    core_api.read_node.return_value = v1_node("worker-0", taints=[(NOT_READY_TAINT, "NoSchedule")])

    assert client.remove_taint("worker-0", NOT_READY_TAINT, "NoExecute") is False
    core_api.patch_node.assert_not_called()


def test_remove_taint_patch_failure(client, core_api):
    core_api.read_node.return_value = v1_node("worker-0", taints=[(NOT_READY_TAINT, "NoSchedule")])
    core_api.patch_node.side_effect = ApiException(status=409, reason="Conflict")

    with pytest.raises(DependencyFault):
        client.remove_taint("worker-0", NOT_READY_TAINT, "NoSchedule")


def test_remove_taint_unreachable_api(client, core_api):
    core_api.read_node.side_effect = MaxRetryError(None, "/api/v1/nodes/worker-0")

    with pytest.raises(DependencyFault) as exc_info:
        client.remove_taint("worker-0", NOT_READY_TAINT, "NoSchedule")

    assert exc_info.value.message == "Failed to read node worker-0"
    core_api.patch_node.assert_not_called()


@patch("cluster_bootstrap.client.subprocess.run")
def test_wait_for_condition_with_label_selector(mock_run, client):
    mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

    assert client.wait_for_condition(
        "pod", "k8s-app=calico-node", "ready", 300, namespace="kube-system"
    )

    cmd = mock_run.call_args[0][0]
    assert cmd == [
        "kubectl",
        "--context",
        "tce-multi",
        "wait",
        "--namespace=kube-system",
        "--for=condition=ready",
        "pod",
        "-l",
        "k8s-app=calico-node",
        "--timeout=300s",
    ]


@patch("cluster_bootstrap.client.subprocess.run")
def test_wait_for_condition_with_name(mock_run, client):
    mock_run.return_value = Mock(returncode=1, stdout="", stderr="timed out")

    assert not client.wait_for_condition("deployment", "nginx", "available", 120)

    cmd = mock_run.call_args[0][0]
    assert "deployment/nginx" in cmd
    assert "--timeout=120s" in cmd


@patch("cluster_bootstrap.client.subprocess.run")
def test_apply_manifest_failure(mock_run, client):
    mock_run.return_value = Mock(returncode=1, stdout="", stderr="error: unable to read URL")

    with pytest.raises(DependencyFault) as exc_info:
        client.apply_manifest("https://example.invalid/calico.yaml")

    assert "unable to read URL" in exc_info.value.details


@patch("cluster_bootstrap.client.subprocess.run", side_effect=FileNotFoundError)
def test_missing_kubectl(mock_run, client):
    with pytest.raises(DependencyFault) as exc_info:
        client.apply_manifest("calico.yaml")

    assert "kubectl is not installed" in exc_info.value.message


@patch(
    "cluster_bootstrap.client.subprocess.run",
    side_effect=subprocess.TimeoutExpired(cmd="kubectl", timeout=60),
)
def test_kubectl_timeout(mock_run, client):
    with pytest.raises(DependencyFault) as exc_info:
        client.exec_in_pod("network-test", ["nslookup", "kubernetes"])

    assert "timed out" in exc_info.value.message


@patch("cluster_bootstrap.client.subprocess.run")
def test_exec_in_pod_returns_result(mock_run, client):
    mock_run.return_value = Mock(returncode=0, stdout="Address: 10.96.0.1", stderr="")

    result = client.exec_in_pod("network-test", ["nslookup", "kubernetes"])

    assert result.ok
    assert "10.96.0.1" in result.stdout
    assert mock_run.call_args[0][0][-3:] == ["--", "nslookup", "kubernetes"]


def test_count_pods(client, core_api):
    core_api.list_namespaced_pod.return_value = Mock(items=[Mock(), Mock()])

    assert client.count_pods("kube-system", "k8s-app=calico-node") == 2
    core_api.list_namespaced_pod.assert_called_once_with(
        "kube-system", label_selector="k8s-app=calico-node"
    )


def test_deployment_status(client, apps_api):
    apps_api.read_namespaced_deployment_status.return_value = SimpleNamespace(
        spec=SimpleNamespace(replicas=3), status=SimpleNamespace(available_replicas=None)
    )

    status = client.get_deployment_status("nginx")

    assert status.available_replicas == 0
    assert status.desired_replicas == 3
    assert not status.available


def test_run_and_delete_pod(client, core_api):
    client.run_pod("network-test", "busybox:1.36", ["sleep", "3600"])

    namespace, body = core_api.create_namespaced_pod.call_args[0]
    assert namespace == "default"
    assert body["spec"]["restartPolicy"] == "Never"
    assert body["spec"]["containers"][0]["command"] == ["sleep", "3600"]

    assert client.delete_pod("network-test") is True
    core_api.delete_namespaced_pod.assert_called_once_with(
        "network-test", "default", grace_period_seconds=0
    )


def test_delete_missing_pod(client, core_api):
    core_api.delete_namespaced_pod.side_effect = ApiException(status=404, reason="Not Found")

    assert client.delete_pod("network-test") is False


def test_create_deployment_and_expose(client, core_api, apps_api):
    port = Mock(node_port=31234)
    core_api.create_namespaced_service.return_value = SimpleNamespace(
        spec=SimpleNamespace(ports=[port])
    )

    client.create_deployment("nginx", "nginx:latest", 3)
    service = client.expose_service("nginx", 80)

    _, deployment = apps_api.create_namespaced_deployment.call_args[0]
    assert deployment["spec"]["replicas"] == 3
    assert deployment["spec"]["selector"]["matchLabels"] == {"app": "nginx"}
    _, body = core_api.create_namespaced_service.call_args[0]
    assert body["spec"]["type"] == "NodePort"
    assert service.node_port == 31234


def test_kubeconfig_load_failure():
    from kubernetes.config.config_exception import ConfigException

    client = KubernetesClusterClient()
    with patch("kubernetes.config.load_kube_config", side_effect=ConfigException("no config")):
        with pytest.raises(DependencyFault) as exc_info:
            client.list_nodes()

    assert "kubeconfig" in exc_info.value.message
