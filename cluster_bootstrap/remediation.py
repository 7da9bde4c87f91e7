"""Removal of stale not-ready and unreachable taints.

Freshly created nodes sometimes keep the control-plane assigned
``node.kubernetes.io/not-ready`` and ``node.kubernetes.io/unreachable`` taints
after the kubelet has recovered, which keeps them from ever being scheduled.
The remediator clears exactly those taints and nothing else.
"""

from dataclasses import dataclass, field

from cluster_bootstrap.client import ClusterClient
from cluster_bootstrap.exceptions import DependencyFault
from cluster_bootstrap.logging_config import get_logger
from cluster_bootstrap.models.node import REMEDIABLE_EFFECTS, REMEDIABLE_TAINT_KEYS, Node

logger = get_logger(__name__)


@dataclass
class RemediationOutcome:
    """Result of a single remediation pass.

    Attributes:
        any_changed: True if at least one node had taints removed
        nodes_touched: Names of nodes whose taints were removed
        failures: Node name to error message for nodes where removal failed
    """

    any_changed: bool = False
    nodes_touched: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


class TaintRemediator:
    """Clears stale readiness taints from cluster nodes."""

    def __init__(self, client: ClusterClient):
        self.client = client

    def remediate(self, nodes: list[Node]) -> RemediationOutcome:
        """Remove not-ready and unreachable taints from the given nodes.

        Every node carrying either key (with any effect) gets removal calls for
        both keys and both effects. Absent taints count as success. A failure on
        one node is logged and the remaining nodes are still processed.

        Args:
            nodes: Nodes from the most recent sample

        Returns:
            RemediationOutcome describing which nodes were changed
        """
        outcome = RemediationOutcome()

        for node in nodes:
            if not node.needs_remediation():
                continue

            logger.info(f"Removing readiness taints from {node.name}")
            succeeded = 0
            for key in REMEDIABLE_TAINT_KEYS:
                for effect in REMEDIABLE_EFFECTS:
                    try:
                        self.client.remove_taint(node.name, key, effect)
                        succeeded += 1
                    except DependencyFault as e:
                        logger.warning(
                            f"Continuing despite failure to remove {key}:{effect} "
                            f"from {node.name}: {e.message}"
                        )
                        outcome.failures[node.name] = e.message

            if succeeded:
                outcome.nodes_touched.append(node.name)

        outcome.any_changed = bool(outcome.nodes_touched)
        return outcome
