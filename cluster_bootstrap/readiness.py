"""Node readiness convergence with interleaved taint remediation.

The poller samples the node list on a fixed interval until every node reports
Ready or the overall deadline passes. Stale readiness taints are cleared on a
slower, independent cadence so that remediation never runs on every sample.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from cluster_bootstrap.client import ClusterClient
from cluster_bootstrap.clock import Clock, Deadline, SystemClock
from cluster_bootstrap.logging_config import get_logger
from cluster_bootstrap.remediation import TaintRemediator

logger = get_logger(__name__)


class PollPhase(str, Enum):
    """States of the readiness poller."""

    POLLING = "polling"
    STALLED_NO_NODES = "stalled-no-nodes"
    CONVERGED = "converged"
    TIMED_OUT = "timed-out"


@dataclass
class PollState:
    """Mutable state carried through the poll loop.

    Attributes:
        phase: Current poller state
        elapsed: Seconds since the wait started, as of the latest sample
        ready_count: Ready nodes in the latest sample
        total_count: Nodes in the latest sample
        last_remediation: Elapsed time of the last remediation attempt
        remediations: Number of remediation attempts so far
    """

    phase: PollPhase = PollPhase.POLLING
    elapsed: float = 0.0
    ready_count: int = 0
    total_count: int = 0
    last_remediation: float = 0.0
    remediations: int = 0


@dataclass(frozen=True)
class Converged:
    """All known nodes reported Ready."""

    ready_count: int
    total_count: int
    elapsed: float
    remediations: int = 0


@dataclass(frozen=True)
class TimedOut:
    """The deadline passed before all nodes reported Ready."""

    ready_count: int
    total_count: int
    elapsed_limit: float
    remediations: int = 0


ConvergenceResult = Converged | TimedOut


class ReadinessPoller:
    """Waits for every cluster node to become Ready."""

    def __init__(
        self,
        client: ClusterClient,
        remediator: TaintRemediator | None = None,
        clock: Clock | None = None,
        timeout: float = 600,
        poll_interval: float = 15,
        remediation_interval: float = 30,
        settle_delay: float = 20,
        no_nodes_delay: float = 10,
        on_sample: Callable[[PollState], None] | None = None,
    ):
        """Initialize the poller.

        Args:
            client: Cluster client used to list nodes
            remediator: Taint remediator; built from the client when omitted
            clock: Clock for deadlines and sleeps
            timeout: Overall wait budget in seconds
            poll_interval: Seconds between samples
            remediation_interval: Minimum seconds between remediation attempts
            settle_delay: Pause after a remediation that changed something
            no_nodes_delay: Pause when the node list is empty
            on_sample: Optional callback invoked with the state after each non-terminal sample
        """
        self.client = client
        self.remediator = remediator or TaintRemediator(client)
        self.clock = clock or SystemClock()
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.remediation_interval = remediation_interval
        self.settle_delay = settle_delay
        self.no_nodes_delay = no_nodes_delay
        self.on_sample = on_sample

    def wait(self) -> ConvergenceResult:
        """Poll until convergence or timeout.

        Returns:
            Converged or TimedOut

        Raises:
            DependencyFault: If the node list cannot be read
        """
        deadline = Deadline.start(self.timeout, self.clock)
        state = PollState()
        logger.info(f"Waiting up to {self.timeout:.0f}s for all nodes to become ready")

        while True:
            nodes = self.client.list_nodes()
            state.elapsed = deadline.elapsed()

            if not nodes:
                state.phase = PollPhase.STALLED_NO_NODES
                state.ready_count = state.total_count = 0
                if deadline.expired():
                    logger.error(f"No nodes found after {self.timeout:.0f} seconds")
                    return self._timed_out(state)
                logger.info("No nodes found. Waiting...")
                self._notify(state)
                self.clock.sleep(self.no_nodes_delay)
                continue

            state.phase = PollPhase.POLLING
            state.total_count = len(nodes)
            state.ready_count = sum(1 for n in nodes if n.ready)

            if state.ready_count == state.total_count:
                state.phase = PollPhase.CONVERGED
                logger.info(f"All {state.total_count} nodes are ready ({state.elapsed:.0f}s)")
                return Converged(
                    ready_count=state.ready_count,
                    total_count=state.total_count,
                    elapsed=state.elapsed,
                    remediations=state.remediations,
                )

            if deadline.expired():
                logger.error(
                    f"Only {state.ready_count}/{state.total_count} nodes ready "
                    f"after {self.timeout:.0f} seconds"
                )
                return self._timed_out(state)

            if state.elapsed - state.last_remediation >= self.remediation_interval:
                state.last_remediation = state.elapsed
                state.remediations += 1
                outcome = self.remediator.remediate(nodes)
                if outcome.any_changed:
                    logger.info(
                        f"Taints removed from {', '.join(outcome.nodes_touched)}. "
                        f"Waiting {self.settle_delay:.0f}s for changes to propagate"
                    )
                    self.clock.sleep(self.settle_delay)

            logger.info(
                f"Node readiness: {state.ready_count}/{state.total_count} "
                f"({state.elapsed:.0f}s elapsed)"
            )
            self._notify(state)
            self.clock.sleep(self.poll_interval)

    def _timed_out(self, state: PollState) -> TimedOut:
        state.phase = PollPhase.TIMED_OUT
        return TimedOut(
            ready_count=state.ready_count,
            total_count=state.total_count,
            elapsed_limit=self.timeout,
            remediations=state.remediations,
        )

    def _notify(self, state: PollState) -> None:
        if self.on_sample:
            self.on_sample(state)
