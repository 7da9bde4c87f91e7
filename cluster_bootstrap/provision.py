"""Prerequisite installation and cluster provisioning through external CLIs."""

import getpass
import os
import platform
import shutil
import subprocess
from pathlib import Path

from cluster_bootstrap.exceptions import BootstrapError, ClusterCreationError, PrerequisiteError
from cluster_bootstrap.logging_config import get_logger

logger = get_logger(__name__)

# Install order matters: later installers download with curl
REQUIRED_TOOLS = ("curl", "docker", "kubectl", "tanzu")

SUPPORTED_LINUX = ("ubuntu", "debian")

KUBECTL_LINUX_INSTALL = (
    'curl -LO "https://dl.k8s.io/release/$(curl -L -s https://dl.k8s.io/release/stable.txt)'
    '/bin/linux/amd64/kubectl" '
    "&& sudo install -o root -g root -m 0755 kubectl /usr/local/bin/kubectl "
    "&& rm -f kubectl"
)

TCE_RELEASE_URL = "https://github.com/vmware-tanzu/community-edition/releases/tag/{version}"


def _run(
    cmd: list[str], timeout: float, error_cls: type[BootstrapError], action: str
) -> subprocess.CompletedProcess:
    """Run a command, mapping subprocess failures to a bootstrap error."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        return subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.error(f"{action} timed out after {timeout:.0f} seconds")
        raise error_cls(
            f"{action} timed out",
            f"Command did not finish within {timeout:.0f} seconds: {' '.join(cmd)}",
        )
    except subprocess.CalledProcessError as e:
        output = (e.stderr or e.stdout or "").strip()
        logger.error(f"{action} failed with return code {e.returncode}: {output}")
        raise error_cls(f"{action} failed", f"Command output: {output}")
    except FileNotFoundError:
        logger.error(f"{cmd[0]} binary not found in PATH")
        raise error_cls(f"{cmd[0]} is not installed or not in PATH", f"Required for: {action}")


class PrerequisiteChecker:
    """Detects the host OS and installs missing command line tools."""

    def __init__(self, tce_version: str = "v0.12.1", os_release: Path = Path("/etc/os-release")):
        self.tce_version = tce_version
        self.os_release = os_release

    def ensure_not_root(self) -> None:
        """Refuse to run as root; installers call sudo themselves.

        Raises:
            PrerequisiteError: If the effective user is root
        """
        if hasattr(os, "geteuid") and os.geteuid() == 0:
            raise PrerequisiteError(
                "Do not run cluster bootstrap as root",
                "Run as a regular user with sudo privileges. sudo is requested when needed.",
            )

    def detect_os(self) -> str:
        """Detect the host operating system.

        Returns:
            "macos" or the os-release ID of a supported Linux distribution

        Raises:
            PrerequisiteError: If the OS is not supported
        """
        if platform.system() == "Darwin":
            return "macos"

        if self.os_release.exists():
            fields = {}
            for line in self.os_release.read_text().splitlines():
                if "=" in line:
                    key, value = line.split("=", 1)
                    fields[key.strip()] = value.strip().strip('"')
            os_id = fields.get("ID", "")
            like = fields.get("ID_LIKE", "").split()
            if os_id in SUPPORTED_LINUX or any(d in SUPPORTED_LINUX for d in like):
                return os_id

        raise PrerequisiteError(
            "Unsupported OS",
            "Only Ubuntu/Debian or macOS are supported (Windows requires WSL2)",
        )

    def missing_tools(self) -> list[str]:
        return [tool for tool in REQUIRED_TOOLS if shutil.which(tool) is None]

    def install_commands(self, tool: str, os_id: str) -> list[list[str]] | None:
        """Commands that install a tool, or None if it must be installed manually."""
        macos = os_id == "macos"
        if tool == "curl":
            if macos:
                return [["brew", "install", tool]]
            return [["sudo", "apt-get", "install", "-y", tool]]
        if tool == "kubectl":
            if macos:
                return [["brew", "install", "kubectl"]]
            return [["sh", "-c", KUBECTL_LINUX_INSTALL]]
        if tool == "docker" and not macos:
            return [
                ["sh", "-c", "curl -fsSL https://get.docker.com | sudo sh"],
                ["sudo", "systemctl", "enable", "--now", "docker"],
                ["sudo", "usermod", "-aG", "docker", getpass.getuser()],
            ]
        return None

    def manual_install_hint(self, tool: str) -> str:
        if tool == "docker":
            return (
                "Install Docker Desktop for macOS: "
                "https://docs.docker.com/desktop/install/mac-install/"
            )
        if tool == "tanzu":
            return (
                f"Download Tanzu Community Edition {self.tce_version} from "
                f"{TCE_RELEASE_URL.format(version=self.tce_version)}, run its install.sh, "
                "then: tanzu init"
            )
        return f"Install {tool} and make sure it is in your PATH"

    def ensure(self) -> list[str]:
        """Install every missing prerequisite.

        Returns:
            Tools that were installed

        Raises:
            PrerequisiteError: If a tool cannot be installed
        """
        self.ensure_not_root()
        os_id = self.detect_os()
        logger.info(f"Detected OS: {os_id}")

        installed = []
        for tool in self.missing_tools():
            commands = self.install_commands(tool, os_id)
            if commands is None:
                raise PrerequisiteError(f"{tool} not found", self.manual_install_hint(tool))

            logger.info(f"{tool} not found. Installing...")
            for cmd in commands:
                _run(cmd, timeout=600, error_cls=PrerequisiteError, action=f"Installing {tool}")
            installed.append(tool)

        return installed


class TanzuProvisioner:
    """Creates and selects an unmanaged Tanzu cluster."""

    def __init__(
        self, tanzu: str = "tanzu", kubectl: str = "kubectl", create_timeout: float = 1800
    ):
        self.tanzu = tanzu
        self.kubectl = kubectl
        self.create_timeout = create_timeout

    def create_cluster(self, name: str, node_count: int) -> None:
        """Create the cluster with the given number of nodes.

        Raises:
            ClusterCreationError: If the tanzu CLI fails
        """
        logger.info(f"Creating {node_count}-node cluster {name}")
        _run(
            [
                self.tanzu,
                "unmanaged-cluster",
                "create",
                name,
                "--worker-node-count",
                str(node_count),
                "--cni",
                "calico",
            ],
            timeout=self.create_timeout,
            error_cls=ClusterCreationError,
            action=f"Creating cluster {name}",
        )

    def use_context(self, name: str) -> None:
        """Switch the kubeconfig context to the cluster.

        Raises:
            ClusterCreationError: If the context does not exist
        """
        _run(
            [self.kubectl, "config", "use-context", name],
            timeout=30,
            error_cls=ClusterCreationError,
            action=f"Switching kubeconfig context to {name}",
        )

    def delete_cluster(self, name: str) -> None:
        """Delete the cluster.

        Raises:
            ClusterCreationError: If the tanzu CLI fails
        """
        _run(
            [self.tanzu, "unmanaged-cluster", "delete", name],
            timeout=self.create_timeout,
            error_cls=ClusterCreationError,
            action=f"Deleting cluster {name}",
        )
