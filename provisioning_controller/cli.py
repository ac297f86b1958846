"""Main CLI entry point for the provisioning controller."""

import signal
import threading
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from provisioning_controller.exceptions import ConfigurationError, ProvisioningControllerError
from provisioning_controller.logging_config import get_logger, setup_logging

app = typer.Typer(
    name="provisioning-controller",
    help="Reconciliation controller for bare-metal provisioning",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

_options = {"verbose": False, "log_file": None}


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    _options["verbose"] = verbose
    _options["log_file"] = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=_options["log_file"])
    logger.debug("Logging initialized")


def load_settings(config_path: str | None):
    """Load settings and reapply the configured log level."""
    from provisioning_controller.config import ControllerSettings

    settings = ControllerSettings.load(config_path)
    setup_logging(
        level=settings.log_level, log_file=_options["log_file"], verbose=_options["verbose"]
    )
    return settings


def build_context(settings, in_cluster: bool, kubeconfig: str | None, addresses: list[str]):
    """Build a controller context talking to the cluster."""
    from kubernetes import client, config

    from provisioning_controller.addresses import DnsAddressSource, StaticAddressSource
    from provisioning_controller.reconciler import ControllerContext
    from provisioning_controller.sink import ConfigMapSink
    from provisioning_controller.store import KubernetesStore

    if in_cluster:
        config.load_incluster_config()
        logger.info("Using in-cluster config")
    else:
        config.load_kube_config(config_file=kubeconfig)
        logger.info("Using kubeconfig")

    return ControllerContext(
        store=KubernetesStore(watch_timeout_seconds=settings.watch_timeout_seconds),
        sink=ConfigMapSink(client.CoreV1Api(), settings.namespace, settings.outcome_config_map),
        address_source=StaticAddressSource(addresses) if addresses else DnsAddressSource(),
        settings=settings,
    )


def _connect(
    config_path: str | None, in_cluster: bool, kubeconfig: str | None, addresses: list[str]
):
    try:
        settings = load_settings(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)

    try:
        return build_context(settings, in_cluster, kubeconfig, addresses)
    except Exception as e:
        console.print(f"[red]Error:[/red] Failed to load Kubernetes configuration: {e}")
        console.print("\nMake sure:")
        console.print("  1. A kubeconfig is available (or pass --in-cluster inside a pod)")
        console.print("  2. You have access to the cluster")
        raise typer.Exit(code=1)


CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to controller settings YAML")
IN_CLUSTER_OPTION = typer.Option(
    False, "--in-cluster", help="Use the service account of the pod the controller runs in"
)
KUBECONFIG_OPTION = typer.Option(None, "--kubeconfig", help="Path to kubeconfig file")
ADDRESS_OPTION = typer.Option(
    None,
    "--address",
    "-a",
    help="Use these addresses instead of resolving the internal API host (repeatable)",
)


@app.command()
def version() -> None:
    """Show version information."""
    from provisioning_controller import __version__

    typer.echo(f"provisioning-controller version {__version__}")


@app.command()
def run(
    config_path: str | None = CONFIG_OPTION,
    in_cluster: bool = IN_CLUSTER_OPTION,
    kubeconfig: str | None = KUBECONFIG_OPTION,
    addresses: list[str] | None = ADDRESS_OPTION,
) -> None:
    """
    Run the controller until interrupted.

    Watches the Provisioning singleton and the cluster Infrastructure and
    reconciles on every change and on each resync period.
    """
    from provisioning_controller.controller import Controller
    from provisioning_controller.reconciler import ProvisioningReconciler

    context = _connect(config_path, in_cluster, kubeconfig, addresses or [])
    controller = Controller(ProvisioningReconciler(context))

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())

    try:
        controller.run(stop_event)
    except KeyboardInterrupt:
        stop_event.set()
        console.print("\n[yellow]Controller interrupted by user[/yellow]")
        raise typer.Exit(code=130)


@app.command("reconcile-once")
def reconcile_once(
    config_path: str | None = CONFIG_OPTION,
    in_cluster: bool = IN_CLUSTER_OPTION,
    kubeconfig: str | None = KUBECONFIG_OPTION,
    addresses: list[str] | None = ADDRESS_OPTION,
) -> None:
    """
    Run a single reconcile pass and show its outcome.

    Exits with code 1 when the pass reports an error.
    """
    from provisioning_controller.reconciler import ProvisioningReconciler, ReconcileContext

    context = _connect(config_path, in_cluster, kubeconfig, addresses or [])
    reconciler = ProvisioningReconciler(context)

    try:
        outcome = reconciler.reconcile(
            ReconcileContext.with_timeout(context.settings.reconcile_timeout_seconds)
        )
    except ProvisioningControllerError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(code=1)

    table = Table(title="Reconcile Outcome")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Enabled", "yes" if outcome.enabled else "no")
    table.add_row("Configured", "yes" if outcome.config else "no")
    table.add_row(
        "Network stack", outcome.network_stack.value if outcome.network_stack else "N/A"
    )
    table.add_row("Internal API host", outcome.internal_host or "N/A")
    if outcome.config:
        table.add_row("Provisioning network", outcome.config.provisioning_network.value)
    console.print(table)

    if outcome.error:
        console.print(f"\n[red]{outcome.error.value}:[/red] {outcome.message}")
        console.print(f"Would retry in {outcome.requeue_after:g}s")
        raise typer.Exit(code=1)

    if outcome.converged:
        console.print("\n[green]✓ Provisioning configuration converged[/green]")
    elif not outcome.enabled:
        console.print("\n[yellow]Provisioning does not apply to this platform[/yellow]")
    else:
        console.print("\n[yellow]Provisioning is not configured[/yellow]")


@app.command("network-stack")
def network_stack_command(
    addresses: list[str] = typer.Argument(..., help="Addresses to classify"),
) -> None:
    """Classify addresses as an IPv4, IPv6 or dual network stack."""
    from provisioning_controller.network import network_stack

    try:
        mode = network_stack(addresses)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    typer.echo(mode.value)


if __name__ == "__main__":
    app()
