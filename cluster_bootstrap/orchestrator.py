"""End-to-end cluster bootstrap sequence."""

from dataclasses import dataclass, field
from typing import Callable

from cluster_bootstrap.client import ClusterClient, KubernetesClusterClient
from cluster_bootstrap.clock import Clock, SystemClock
from cluster_bootstrap.cni import CniInstaller
from cluster_bootstrap.exceptions import BootstrapError, BootstrapPhase, TimeoutExceeded
from cluster_bootstrap.logging_config import get_logger, set_phase
from cluster_bootstrap.models.cluster import ServiceInfo
from cluster_bootstrap.models.config import BootstrapConfig
from cluster_bootstrap.network import NetworkReport, NetworkValidator
from cluster_bootstrap.provision import PrerequisiteChecker, TanzuProvisioner
from cluster_bootstrap.readiness import ConvergenceResult, PollState, ReadinessPoller, TimedOut
from cluster_bootstrap.workload import SampleWorkload

logger = get_logger(__name__)


@dataclass
class BootstrapResult:
    """Outcome of a bootstrap run.

    On failure ``failed_phase`` and ``error`` are set and the remaining fields
    hold whatever had been observed up to that point.
    """

    failed_phase: BootstrapPhase | None = None
    error: BootstrapError | None = None
    completed_phases: list[BootstrapPhase] = field(default_factory=list)
    installed_tools: list[str] = field(default_factory=list)
    convergence: ConvergenceResult | None = None
    last_sample: PollState | None = None
    network: NetworkReport | None = None
    service: ServiceInfo | None = None
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed_phase is None

    @property
    def exit_code(self) -> int:
        return 0 if self.failed_phase is None else self.failed_phase.exit_code


class BootstrapOrchestrator:
    """Runs prerequisites, cluster creation, CNI, readiness, validation and workload in order.

    The first fatal error stops the sequence. Nothing already created is rolled back.
    """

    def __init__(
        self,
        config: BootstrapConfig,
        client: ClusterClient | None = None,
        prerequisites: PrerequisiteChecker | None = None,
        provisioner: TanzuProvisioner | None = None,
        clock: Clock | None = None,
        on_phase: Callable[[BootstrapPhase], None] | None = None,
        on_sample: Callable[[PollState], None] | None = None,
    ):
        self.config = config
        self.client = client or KubernetesClusterClient()
        self.prerequisites = prerequisites or PrerequisiteChecker(tce_version=config.tce_version)
        self.provisioner = provisioner or TanzuProvisioner()
        self.clock = clock or SystemClock()
        self.on_phase = on_phase
        self.on_sample = on_sample

    def run(self) -> BootstrapResult:
        """Execute the bootstrap sequence.

        Returns:
            BootstrapResult; check ``success`` and ``exit_code``
        """
        result = BootstrapResult()
        started_at = self.clock.monotonic()
        phase = BootstrapPhase.PREREQUISITES

        def record_sample(state: PollState) -> None:
            result.last_sample = state
            if self.on_sample:
                self.on_sample(state)

        try:
            if not self.config.skip_prerequisites:
                self._enter(phase)
                result.installed_tools = self.prerequisites.ensure()
                result.completed_phases.append(phase)

            phase = BootstrapPhase.CLUSTER_CREATE
            self._enter(phase)
            self.provisioner.create_cluster(self.config.cluster_name, self.config.total_nodes)
            self.provisioner.use_context(self.config.cluster_name)
            result.completed_phases.append(phase)

            phase = BootstrapPhase.CNI
            self._enter(phase)
            CniInstaller(
                self.client,
                clock=self.clock,
                creation_timeout=self.config.cni_creation_timeout,
                poll_interval=self.config.cni_poll_interval,
                ready_timeout=self.config.cni_ready_timeout,
            ).install(self.config.cni_manifest_url)
            result.completed_phases.append(phase)

            phase = BootstrapPhase.READINESS
            self._enter(phase)
            result.convergence = self._poller(record_sample).wait()
            if isinstance(result.convergence, TimedOut):
                raise TimeoutExceeded(
                    result.convergence.ready_count,
                    result.convergence.total_count,
                    result.convergence.elapsed_limit,
                )
            result.completed_phases.append(phase)

            phase = BootstrapPhase.NETWORK
            self._enter(phase)
            result.network = NetworkValidator(
                self.client, pod_timeout=self.config.network_pod_timeout
            ).validate()
            result.completed_phases.append(phase)

            if self.config.sample_workload:
                phase = BootstrapPhase.WORKLOAD
                self._enter(phase)
                result.service = SampleWorkload(
                    self.client, timeout=self.config.workload_timeout
                ).deploy()
                result.completed_phases.append(phase)

        except BootstrapError as e:
            result.failed_phase = phase
            result.error = e
            metrics = ""
            if result.last_sample is not None:
                metrics = (
                    f" (last sample: {result.last_sample.ready_count}/"
                    f"{result.last_sample.total_count} nodes ready at "
                    f"{result.last_sample.elapsed:.0f}s)"
                )
            logger.error(f"Bootstrap failed during {phase.value}: {e.message}{metrics}")
        finally:
            result.elapsed = self.clock.monotonic() - started_at
            set_phase(None)

        if result.success:
            logger.info(
                f"Bootstrap of {self.config.cluster_name} completed in {result.elapsed:.0f}s"
            )
        return result

    def _poller(self, on_sample: Callable[[PollState], None]) -> ReadinessPoller:
        return ReadinessPoller(
            self.client,
            clock=self.clock,
            timeout=self.config.readiness_timeout,
            poll_interval=self.config.poll_interval,
            remediation_interval=self.config.remediation_interval,
            settle_delay=self.config.settle_delay,
            no_nodes_delay=self.config.no_nodes_delay,
            on_sample=on_sample,
        )

    def _enter(self, phase: BootstrapPhase) -> None:
        set_phase(phase.value)
        logger.info(f"Entering phase: {phase.value}")
        if self.on_phase:
            self.on_phase(phase)
