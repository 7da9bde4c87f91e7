"""Pytest configuration and shared fixtures."""

import pytest
from hypothesis import Verbosity, settings

from cluster_bootstrap.models.node import NOT_READY_TAINT
from tests.fakes import FakeClock, FakeCluster, make_node

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


@pytest.fixture
def clock():
    """Fake clock starting at zero."""
    return FakeClock()


@pytest.fixture
def ready_cluster(clock):
    """Three ready nodes without taints."""
    return FakeCluster(
        [make_node("cp-0"), make_node("worker-0"), make_node("worker-1")], clock=clock
    )


@pytest.fixture
def stale_taint_cluster(clock):
    """Three nodes where cp-0 is stuck behind a stale not-ready taint."""
    cluster = FakeCluster(
        [
            make_node("cp-0", ready=False, taints=[(NOT_READY_TAINT, "NoSchedule")]),
            make_node("worker-0"),
            make_node("worker-1"),
        ],
        clock=clock,
    )
    cluster.recover_on_untaint.add("cp-0")
    return cluster
