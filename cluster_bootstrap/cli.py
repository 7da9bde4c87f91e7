"""Main CLI entry point for cluster bootstrap."""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from cluster_bootstrap.exceptions import BootstrapError, BootstrapPhase
from cluster_bootstrap.logging_config import get_logger, setup_logging

app = typer.Typer(
    name="cluster-bootstrap",
    help="Bootstrap a multi-node Tanzu cluster and wait for it to converge",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")


def _load_config(config_path: str | None, **overrides):
    from cluster_bootstrap.models.config import BootstrapConfig

    if config_path:
        return BootstrapConfig.load(config_path, **overrides)
    return BootstrapConfig.build(**overrides)


def _make_client(context: str | None = None):
    from cluster_bootstrap.client import KubernetesClusterClient

    return KubernetesClusterClient(context=context)


def _print_error(e: BootstrapError, phase: BootstrapPhase | None = None) -> None:
    label = f"{phase.value} failed" if phase else "Error"
    console.print(f"[red]{label}:[/red] {e.message}")
    if e.details:
        console.print(f"\n{e.details}")


def _print_sample(state) -> None:
    if state.total_count == 0:
        console.print(f"  No nodes found yet ({state.elapsed:.0f}s elapsed)")
    else:
        console.print(
            f"  Node readiness: {state.ready_count}/{state.total_count} "
            f"({state.elapsed:.0f}s elapsed)"
        )


def _nodes_table(nodes, title: str = "Cluster Nodes") -> Table:
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Taints", style="yellow")

    for node in sorted(nodes, key=lambda n: n.name):
        status = "[green]✓ Ready[/green]" if node.ready else "[red]✗ NotReady[/red]"
        taints = ", ".join(str(t) for t in node.taints) or "-"
        table.add_row(node.name, status, taints)

    return table


@app.command()
def version() -> None:
    """Show version information."""
    from cluster_bootstrap import __version__

    typer.echo(f"cluster-bootstrap version {__version__}")


@app.command()
def bootstrap(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Path to a YAML bootstrap configuration file"
    ),
    cluster_name: str | None = typer.Option(None, "--name", "-n", help="Cluster name"),
    control_plane_nodes: int | None = typer.Option(
        None, "--control-plane-nodes", help="Number of control-plane nodes (>= 1)"
    ),
    worker_nodes: int | None = typer.Option(
        None, "--worker-nodes", "-w", help="Number of worker nodes (>= 0)"
    ),
    cni_version: str | None = typer.Option(
        None, "--cni-version", help="Calico version to install (e.g., v3.26.1)"
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for all nodes to become ready"
    ),
    poll_interval: float | None = typer.Option(
        None, "--poll-interval", help="Seconds between node readiness samples"
    ),
    remediation_interval: float | None = typer.Option(
        None, "--remediation-interval", help="Minimum seconds between taint remediation passes"
    ),
    settle_delay: float | None = typer.Option(
        None, "--settle-delay", help="Seconds to wait after removing taints"
    ),
    skip_prerequisites: bool | None = typer.Option(
        None, "--skip-prerequisites", help="Do not check or install prerequisite tools"
    ),
    sample_workload: bool | None = typer.Option(
        None,
        "--sample-workload/--no-sample-workload",
        help="Deploy an nginx sample workload after validation",
    ),
) -> None:
    """
    Create a cluster and wait until it is fully healthy.

    Installs missing prerequisites, creates the cluster, installs Calico,
    waits for every node to become ready (removing stale not-ready and
    unreachable taints along the way), validates pod networking and deploys
    a sample workload.

    Examples:
        # Bootstrap with defaults (1 control plane, 2 workers)
        cluster-bootstrap bootstrap

        # Bigger cluster with a longer readiness budget
        cluster-bootstrap bootstrap --name dev --worker-nodes 4 --timeout 900

        # Use a configuration file
        cluster-bootstrap bootstrap --config bootstrap.yml
    """
    from cluster_bootstrap.orchestrator import BootstrapOrchestrator

    try:
        config = _load_config(
            config_path,
            cluster_name=cluster_name,
            control_plane_nodes=control_plane_nodes,
            worker_nodes=worker_nodes,
            cni_version=cni_version,
            readiness_timeout=timeout,
            poll_interval=poll_interval,
            remediation_interval=remediation_interval,
            settle_delay=settle_delay,
            skip_prerequisites=skip_prerequisites,
            sample_workload=sample_workload,
        )
    except BootstrapError as e:
        _print_error(e, BootstrapPhase.CONFIGURATION)
        raise typer.Exit(code=BootstrapPhase.CONFIGURATION.exit_code)

    console.print("\n[bold cyan]Cluster Bootstrap[/bold cyan]")
    console.print(f"Cluster: {config.cluster_name}")
    console.print(
        f"Nodes: {config.total_nodes} ({config.control_plane_nodes} control plane, "
        f"{config.worker_nodes} workers)"
    )
    console.print(f"CNI: Calico {config.cni_version}")
    console.print()

    def on_phase(phase: BootstrapPhase) -> None:
        console.print(f"[bold]==> {phase.value}[/bold]")

    client = _make_client()
    orchestrator = BootstrapOrchestrator(
        config, client=client, on_phase=on_phase, on_sample=_print_sample
    )

    try:
        result = orchestrator.run()
    except KeyboardInterrupt:
        console.print("\n[yellow]Bootstrap interrupted by user[/yellow]")
        raise typer.Exit(code=130)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(code=1)

    if not result.success:
        _print_error(result.error, result.failed_phase)
        if result.last_sample is not None:
            console.print(
                f"\nLast observed: {result.last_sample.ready_count}/"
                f"{result.last_sample.total_count} nodes ready, "
                f"{result.last_sample.elapsed:.0f}s elapsed"
            )
        completed = ", ".join(p.value for p in result.completed_phases) or "none"
        console.print(f"Completed phases: {completed}")
        console.print("\nRun with --verbose --log-file debug.log for more details")
        raise typer.Exit(code=result.exit_code)

    console.print(
        f"\n[green]✓ Cluster {config.cluster_name} is ready[/green] ({result.elapsed:.0f}s)"
    )
    if result.network and not result.network.http_ok:
        console.print("[yellow]Warning:[/yellow] Internet connectivity test failed")

    try:
        console.print(_nodes_table(client.list_nodes()))
    except BootstrapError as e:
        logger.warning(f"Continuing despite failure to list nodes for summary: {e.message}")

    if result.service:
        console.print("\n[bold]Sample application:[/bold]")
        console.print(f"  Deployment: {result.service.name}")
        console.print(f"  Service: NodePort on port {result.service.node_port}")
        console.print(f"  Access at: http://<ANY_NODE_IP>:{result.service.node_port}")

    console.print("\nCluster management commands:")
    console.print("  - View all resources: kubectl get all -A")
    console.print(f"  - Delete cluster: cluster-bootstrap teardown {config.cluster_name}")

    if "docker" in result.installed_tools:
        console.print(
            "\n[yellow]Note:[/yellow] Log out and back in (or run 'newgrp docker') "
            "for Docker group permissions to take effect."
        )


@app.command()
def wait_ready(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Path to a YAML bootstrap configuration file"
    ),
    context: str | None = typer.Option(None, "--context", help="Kubeconfig context to use"),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for all nodes to become ready"
    ),
    poll_interval: float | None = typer.Option(
        None, "--poll-interval", help="Seconds between node readiness samples"
    ),
    remediation_interval: float | None = typer.Option(
        None, "--remediation-interval", help="Minimum seconds between taint remediation passes"
    ),
    settle_delay: float | None = typer.Option(
        None, "--settle-delay", help="Seconds to wait after removing taints"
    ),
) -> None:
    """
    Wait for every node of an existing cluster to become ready.

    Stale not-ready and unreachable taints are removed periodically while waiting.
    """
    from cluster_bootstrap.readiness import ReadinessPoller, TimedOut

    try:
        config = _load_config(
            config_path,
            readiness_timeout=timeout,
            poll_interval=poll_interval,
            remediation_interval=remediation_interval,
            settle_delay=settle_delay,
        )
    except BootstrapError as e:
        _print_error(e, BootstrapPhase.CONFIGURATION)
        raise typer.Exit(code=BootstrapPhase.CONFIGURATION.exit_code)

    poller = ReadinessPoller(
        _make_client(context),
        timeout=config.readiness_timeout,
        poll_interval=config.poll_interval,
        remediation_interval=config.remediation_interval,
        settle_delay=config.settle_delay,
        no_nodes_delay=config.no_nodes_delay,
        on_sample=_print_sample,
    )

    try:
        result = poller.wait()
    except BootstrapError as e:
        _print_error(e, BootstrapPhase.READINESS)
        raise typer.Exit(code=BootstrapPhase.READINESS.exit_code)
    except KeyboardInterrupt:
        console.print("\n[yellow]Wait interrupted by user[/yellow]")
        raise typer.Exit(code=130)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(code=1)

    if isinstance(result, TimedOut):
        console.print(
            f"[red]✗ Only {result.ready_count}/{result.total_count} nodes ready "
            f"after {result.elapsed_limit:.0f} seconds[/red]"
        )
        raise typer.Exit(code=BootstrapPhase.READINESS.exit_code)

    console.print(
        f"[green]✓ All {result.total_count} nodes are ready[/green] ({result.elapsed:.0f}s, "
        f"{result.remediations} remediation passes)"
    )


@app.command()
def remediate_taints(
    context: str | None = typer.Option(None, "--context", help="Kubeconfig context to use"),
) -> None:
    """
    Remove stale not-ready and unreachable taints from all nodes once.

    Only the node.kubernetes.io/not-ready and node.kubernetes.io/unreachable
    taints are removed; any other taint is left untouched.
    """
    from cluster_bootstrap.remediation import TaintRemediator

    client = _make_client(context)
    try:
        nodes = client.list_nodes()
        if not nodes:
            console.print("[yellow]No nodes found. Skipping taint check.[/yellow]")
            return

        outcome = TaintRemediator(client).remediate(nodes)
    except BootstrapError as e:
        _print_error(e)
        raise typer.Exit(code=1)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(code=1)

    if outcome.any_changed:
        console.print(f"[green]✓[/green] Removed taints from: {', '.join(outcome.nodes_touched)}")
    else:
        console.print("No readiness taints found")

    for node, message in outcome.failures.items():
        console.print(f"[yellow]Warning:[/yellow] {node}: {message}")


@app.command()
def validate_network(
    context: str | None = typer.Option(None, "--context", help="Kubeconfig context to use"),
    pod_timeout: float = typer.Option(
        120, "--pod-timeout", help="Seconds to wait for the test pod to become ready"
    ),
) -> None:
    """
    Validate DNS, internet access and pod networking with a temporary pod.
    """
    from cluster_bootstrap.network import NetworkValidator

    try:
        report = NetworkValidator(_make_client(context), pod_timeout=pod_timeout).validate()
    except BootstrapError as e:
        _print_error(e, BootstrapPhase.NETWORK)
        raise typer.Exit(code=BootstrapPhase.NETWORK.exit_code)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] DNS resolution")
    if report.http_ok:
        console.print("[green]✓[/green] Internet connectivity")
    else:
        console.print("[yellow]⚠[/yellow] Internet connectivity (failed, continuing)")
    console.print("[green]✓[/green] Pod network reachability")


@app.command()
def status(
    context: str | None = typer.Option(None, "--context", help="Kubeconfig context to use"),
) -> None:
    """
    Show node readiness and taints.
    """
    try:
        nodes = _make_client(context).list_nodes()
    except BootstrapError as e:
        _print_error(e)
        raise typer.Exit(code=1)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(code=1)

    if not nodes:
        console.print("[yellow]No nodes found in the cluster[/yellow]")
        raise typer.Exit(code=0)

    console.print(_nodes_table(nodes, title=f"Cluster Nodes ({len(nodes)})"))

    ready_nodes = sum(1 for n in nodes if n.ready)
    console.print("\n[bold]Summary:[/bold]")
    console.print(f"  Total Nodes: {len(nodes)}")
    console.print(f"  Ready Nodes: {ready_nodes}")
    console.print(f"  Not Ready: {len(nodes) - ready_nodes}")

    if ready_nodes == len(nodes):
        console.print("\n[green]✓ All nodes are ready[/green]")
    else:
        console.print("\n[yellow]⚠ Some nodes are not ready[/yellow]")

    stale = [n.name for n in nodes if n.needs_remediation()]
    if stale:
        console.print(
            f"[yellow]Readiness taints present on:[/yellow] {', '.join(stale)}\n"
            "Run: cluster-bootstrap remediate-taints"
        )


@app.command()
def teardown(
    cluster_name: str = typer.Argument(..., help="Name of the cluster to delete"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
) -> None:
    """
    Delete a cluster created by bootstrap.
    """
    from cluster_bootstrap.provision import TanzuProvisioner

    if not force:
        console.print(f"[yellow]Warning:[/yellow] About to delete cluster '{cluster_name}'")
        if not typer.confirm("Are you sure you want to continue?"):
            console.print("Operation cancelled")
            raise typer.Exit(code=0)

    try:
        TanzuProvisioner().delete_cluster(cluster_name)
    except BootstrapError as e:
        _print_error(e)
        raise typer.Exit(code=1)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Deleted cluster '{cluster_name}'")


@app.command()
def init_config(
    path: str = typer.Argument("bootstrap.yml", help="Where to write the configuration file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """
    Write a configuration file with the default settings.
    """
    from cluster_bootstrap.models.config import BootstrapConfig

    target = Path(path)
    if target.exists() and not force:
        console.print(f"[red]Error:[/red] {target} already exists (use --force to overwrite)")
        raise typer.Exit(code=1)

    BootstrapConfig().save(target)
    console.print(f"[green]✓[/green] Wrote default configuration to {target}")


if __name__ == "__main__":
    app()
