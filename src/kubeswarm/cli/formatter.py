# src/kubeswarm/cli/formatter.py
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kubeswarm.core.models import OperationResult, SyncReport
from kubeswarm.identity.keys import IdentityMaterial
from kubeswarm.rules.sizing import ResourceProfile

# Initialize the Rich console for high-quality terminal output
console = Console()

RESULT_STYLES = {
    OperationResult.CREATED: "green",
    OperationResult.UPDATED: "cyan",
    OperationResult.UNCHANGED: "dim",
    OperationResult.NONE: "red",
}


class SwarmFormatter:
    """
    Renders provisioning results: resource profiles, identities and the
    per-object report of an apply run.
    """

    def __init__(self, out: Console = None):
        self.console = out or console

    def show_profile(self, storage_bytes: int, profile: ResourceProfile):
        table = Table(title=f"IPFS container resources for {storage_bytes} bytes",
                      show_header=True, header_style="bold magenta")
        table.add_column("Resource")
        table.add_column("Request", justify="right")
        table.add_column("Limit", justify="right")

        requests, limits = profile.requests(), profile.limits()
        for name in ("cpu", "memory"):
            table.add_row(name, requests[name], limits[name])
        self.console.print(table)

    def show_identity(self, identity: IdentityMaterial):
        # The private key goes to stdout only; it is never logged.
        self.console.print(Panel(
            f"[bold]Peer ID:[/bold]     {identity.peer_id}\n"
            f"[bold]Private key:[/bold] {identity.private_key_string}",
            title="Node Identity",
            border_style="cyan",
        ))

    def show_sync_report(self, report: SyncReport):
        """
        Builds the summary table shown at the end of an apply run.
        """
        table = Table(title="KubeSwarm Apply Report", show_lines=True, header_style="bold magenta")
        table.add_column("Object", style="cyan")
        table.add_column("Kind")
        table.add_column("Result", style="bold")
        table.add_column("Error")

        for outcome in report.outcomes:
            style = RESULT_STYLES[outcome.result] if not outcome.failed else "red"
            label = "failed" if outcome.failed else outcome.result.value
            table.add_row(
                outcome.ref.name,
                outcome.ref.kind,
                f"[{style}]{label}[/{style}]",
                str(outcome.error) if outcome.failed else "",
            )

        self.console.print(table)
        self.console.print(Panel(
            f"Created:   [green]{report.count(OperationResult.CREATED)}[/green]\n"
            f"Updated:   [cyan]{report.count(OperationResult.UPDATED)}[/cyan]\n"
            f"Unchanged: {report.count(OperationResult.UNCHANGED)}\n"
            f"Failed:    [red]{len(report.failures)}[/red]\n"
            f"Requeue:   {'[bold red]yes[/bold red]' if report.requeue else 'no'}",
            title="Summary",
            border_style="dim",
        ))
