"""Multi-node cluster bootstrap with readiness convergence and taint remediation."""

__version__ = "0.1.0"
