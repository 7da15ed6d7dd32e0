"""Console reporter with rich formatting."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from apiprobe.core.models import Severity
from apiprobe.core.session import ScanSession, SessionStatus
from apiprobe.risk import RiskSummary


class ConsoleReporter:
    """Narrative report: summary, findings, recommendations, inconclusive runs."""

    SEVERITY_COLORS = {
        Severity.CRITICAL: "red bold",
        Severity.HIGH: "red",
        Severity.MEDIUM: "yellow",
        Severity.LOW: "blue",
        Severity.INFO: "dim",
    }

    SEVERITY_ICONS = {
        Severity.CRITICAL: "[!]",
        Severity.HIGH: "[!]",
        Severity.MEDIUM: "[*]",
        Severity.LOW: "[-]",
        Severity.INFO: "[i]",
    }

    RISK_COLORS = {
        "CRITICAL": "red bold",
        "HIGH": "red",
        "MEDIUM": "yellow",
        "LOW": "blue",
        "SECURE": "green",
    }

    def __init__(self, console: Optional[Console] = None, record: bool = False):
        self.console = console or Console(record=record)

    def report(self, session: ScanSession, summary: Optional[RiskSummary]) -> None:
        """Print the narrative report."""
        risk = session.overall_risk or "UNKNOWN"
        self.console.print()
        self.console.print(Panel(
            f"[bold]API Security Assessment[/bold]\n[dim]{session.target}[/dim]\n"
            f"Status: {session.status.value}   Duration: {session.duration:.1f}s   "
            f"Overall risk: [{self.RISK_COLORS.get(risk, 'white')}]{risk}[/]",
            style="blue",
        ))

        if session.status == SessionStatus.TRUNCATED:
            self.console.print("[yellow]Scan truncated at the session deadline; results are partial.[/yellow]")

        self._print_summary(session, summary)

        if session.findings:
            self._print_findings(session)
        else:
            self.console.print("\n[green]No vulnerabilities found![/green]\n")

        if summary and summary.recommendations:
            self._print_recommendations(summary)
        if session.inconclusive:
            self._print_inconclusive(session)
        if session.notes:
            self._print_notes(session.notes)

    def export_text(self) -> str:
        """Plain text of everything printed so far (requires record=True)."""
        return self.console.export_text()

    def _print_summary(self, session: ScanSession, summary: Optional[RiskSummary]):
        table = Table(title="Summary", show_header=False, box=None)
        table.add_column("Item", style="bold")
        table.add_column("Value", justify="right")

        table.add_row("Endpoints", str(len(session.endpoints)))
        if summary:
            table.add_row("Vulnerable endpoints", str(summary.vulnerable_endpoints))
            table.add_row("Mean endpoint score", f"{summary.mean_score:.1f}")

        counts = {s: 0 for s in Severity}
        for finding in session.findings:
            counts[finding.severity] += 1
        for severity in [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW, Severity.INFO]:
            if counts[severity] > 0:
                color = self.SEVERITY_COLORS[severity]
                table.add_row(Text(severity.value.upper(), style=color), Text(str(counts[severity]), style=color))
        table.add_row("Inconclusive", str(len(session.inconclusive)))

        self.console.print()
        self.console.print(table)
        self.console.print()

    def _print_findings(self, session: ScanSession):
        findings = sorted(session.findings, key=lambda f: -f.severity.rank)

        table = Table(title="Findings", show_lines=True)
        table.add_column("Severity", width=10)
        table.add_column("CVSS", width=5, justify="right")
        table.add_column("Type", width=32)
        table.add_column("Endpoint", width=40)
        for finding in findings:
            color = self.SEVERITY_COLORS[finding.severity]
            table.add_row(
                Text(finding.severity.value.upper(), style=color),
                f"{finding.cvss_score:.1f}",
                finding.title,
                finding.endpoint_ref,
            )
        self.console.print(table)

        self.console.print("\n[bold]Details:[/bold]\n")
        for finding in findings:
            color = self.SEVERITY_COLORS[finding.severity]
            icon = self.SEVERITY_ICONS[finding.severity]
            self.console.print(Text(f"{icon} {finding.title} ({finding.weakness_id})", style=color))
            self.console.print(f"    Endpoint: {finding.endpoint_ref}", markup=False)
            if finding.description:
                self.console.print(f"    {finding.description}", markup=False)
            if finding.evidence:
                evidence = finding.evidence if len(finding.evidence) <= 200 else finding.evidence[:200] + "..."
                self.console.print(Text(f"    Evidence: {evidence}", style="dim"))
            self.console.print()

    def _print_recommendations(self, summary: RiskSummary):
        self.console.print("[bold]Recommendations:[/bold]\n")
        for item in summary.recommendations:
            color = self.SEVERITY_COLORS[item.severity]
            self.console.print(
                f"[{color}]{item.type}[/{color}] ({item.weakness_id}, {item.count} finding(s) "
                f"on {len(item.endpoints)} endpoint(s))"
            )
            self.console.print(f"    {item.recommendation}", markup=False)
        self.console.print()

    def _print_inconclusive(self, session: ScanSession):
        self.console.print("[yellow]Inconclusive probe runs:[/yellow]")
        for entry in session.inconclusive:
            self.console.print(Text(f"  - {entry.probe} on {entry.endpoint_ref}: {entry.reason}", style="dim"))
        self.console.print()

    def _print_notes(self, notes: list[str]):
        self.console.print("[yellow]Notes:[/yellow]")
        for note in notes:
            self.console.print(Text(f"  - {note}", style="dim"))
