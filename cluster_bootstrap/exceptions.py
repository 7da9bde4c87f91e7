"""Custom exceptions for cluster bootstrap."""

from enum import Enum


class BootstrapPhase(str, Enum):
    """Bootstrap phases and the exit status reported when they fail."""

    CONFIGURATION = "configuration"
    PREREQUISITES = "prerequisites"
    CLUSTER_CREATE = "cluster-create"
    CNI = "cni"
    READINESS = "readiness"
    NETWORK = "network-validation"
    WORKLOAD = "sample-workload"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    BootstrapPhase.CONFIGURATION: 1,
    BootstrapPhase.PREREQUISITES: 10,
    BootstrapPhase.CLUSTER_CREATE: 11,
    BootstrapPhase.CNI: 12,
    BootstrapPhase.READINESS: 13,
    BootstrapPhase.NETWORK: 14,
    BootstrapPhase.WORKLOAD: 15,
}


class BootstrapError(Exception):
    """Base exception for all cluster bootstrap errors."""

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ConfigurationError(BootstrapError):
    """Exception raised for configuration errors."""

    pass


class PrerequisiteError(BootstrapError):
    """Exception raised when a required tool is missing or cannot be installed."""

    pass


class ClusterCreationError(BootstrapError):
    """Exception raised when the cluster cannot be created or selected."""

    pass


class DependencyFault(BootstrapError):
    """Exception raised when a cluster API or cluster CLI call fails."""

    pass


class ValidationFault(BootstrapError):
    """Exception raised when a hard network validation check fails."""

    pass


class WorkloadError(BootstrapError):
    """Exception raised when the sample workload cannot be deployed."""

    pass


class TimeoutExceeded(BootstrapError):
    """Exception raised when the cluster does not converge within its deadline."""

    def __init__(self, ready_count: int, total_count: int, elapsed: float):
        self.ready_count = ready_count
        self.total_count = total_count
        self.elapsed = elapsed
        super().__init__(
            f"Only {ready_count}/{total_count} nodes ready after {elapsed:.0f} seconds",
            "Inspect the unready nodes with: kubectl describe nodes",
        )
