"""CLI interface for apiprobe."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from apiprobe.core import ConfigError, ScanContext, setup_logging
from apiprobe.core.payloads import PayloadManager
from apiprobe.credentials import LoginCredentialProvider
from apiprobe.orchestrator import ScanOrchestrator, ScanOutcome
from apiprobe.probes import PROBE_CLASSES, ProbeScope, default_probes
from apiprobe.reporters import ConsoleReporter, JSONReporter, SARIFReporter
from apiprobe.transport import TransportClient

app = typer.Typer(
    name="apiprobe",
    help="apiprobe - Automated security assessment of REST, GraphQL and SOAP APIs",
    add_completion=False,
)
console = Console()

EXIT_FAIL_RISKS = {"CRITICAL", "HIGH"}
EXIT_CONFIG_ERROR = 3


def exit_code(outcome: ScanOutcome) -> int:
    """2 for CRITICAL/HIGH overall risk, 1 for any other risk, 0 when secure."""
    risk = outcome.session.overall_risk
    if risk in EXIT_FAIL_RISKS:
        return 2
    if risk == "SECURE":
        return 0
    return 1 if outcome.session.findings else 0


def build_context(url: str, config: Optional[Path], overrides: dict) -> ScanContext:
    """Merge the YAML config file (if any), the target URL and CLI overrides."""
    data: dict = {}
    if config:
        try:
            data = yaml.safe_load(config.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config {config}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {config} must contain a mapping")
    data.pop("target", None)
    data["target_base_url"] = url

    credentials = dict(data.get("credentials") or {})
    for tier in ("normal", "elevated"):
        token = overrides.pop(f"{tier}_token", None)
        if token:
            credentials[tier] = token
    if credentials:
        data["credentials"] = credentials

    data.update({k: v for k, v in overrides.items() if v not in (None, [], ())})
    return ScanContext.from_dict(data)


async def run_scan(
    context: ScanContext,
    probe_names: list[str],
    login: Optional[dict],
    show_progress: bool,
) -> ScanOutcome:
    payloads = PayloadManager(context.payload_file, overrides=context.payload_lists)
    probes = default_probes(payloads=payloads, only=probe_names or None)

    async with TransportClient(
        cancel_token=context.cancel_token,
        timeout=context.request_timeout,
        verify=context.verify_ssl,
    ) as transport:
        provider = LoginCredentialProvider(transport, **login) if login else None

        if not show_progress:
            return await ScanOrchestrator(context, transport=transport, probes=probes,
                                          credential_provider=provider).run()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("[dim]{task.completed}/{task.total}[/dim]"),
            console=console,
            transient=True,
        ) as progress:
            task_id = progress.add_task("Discovering endpoints...", total=None)

            def on_progress(done: int, total: int, description: str) -> None:
                progress.update(task_id, completed=done, total=total, description=description[:60])

            orchestrator = ScanOrchestrator(context, transport=transport, probes=probes,
                                            credential_provider=provider, on_progress=on_progress)
            return await orchestrator.run()


@app.command()
def scan(
    url: str = typer.Argument(..., help="Target base URL (e.g., http://localhost:8000)"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Scan config YAML file"),
    protocols: Optional[list[str]] = typer.Option(None, "--protocol", help="Protocol to scan: rest, graphql, soap (repeatable)"),
    normal_token: Optional[str] = typer.Option(None, "--token", help="Bearer token of a normal user"),
    elevated_token: Optional[str] = typer.Option(None, "--elevated-token", help="Bearer token of an administrator"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Normal user to log in as"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Password of the normal user"),
    admin_username: Optional[str] = typer.Option(None, "--admin-username", help="Administrator to log in as"),
    admin_password: Optional[str] = typer.Option(None, "--admin-password", help="Password of the administrator"),
    login_path: str = typer.Option("/api/login", "--login-path", help="Login endpoint for --username"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-P", help="Concurrent probe workers", min=1, max=32),
    session_timeout: Optional[float] = typer.Option(None, "--session-timeout", help="Scan deadline in seconds"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Request timeout in seconds"),
    burst: Optional[int] = typer.Option(None, "--burst", help="Requests in the rate-limit burst"),
    timing_threshold: Optional[float] = typer.Option(None, "--timing-threshold", help="Timing detection threshold (ms)"),
    graphql_path: Optional[str] = typer.Option(None, "--graphql-path", help="GraphQL endpoint path"),
    openapi: Optional[Path] = typer.Option(None, "--openapi", help="Local OpenAPI/Swagger document"),
    payload_file: Optional[Path] = typer.Option(None, "--payloads", help="Payload YAML file"),
    public_paths: Optional[list[str]] = typer.Option(None, "--public", help="Path pattern that needs no authentication (repeatable)"),
    probe_names: Optional[list[str]] = typer.Option(None, "--probe", help="Only run this probe (repeatable)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="JSON output file"),
    sarif_output: Optional[Path] = typer.Option(None, "--sarif", help="SARIF output file (for CI/CD integration)"),
    report_output: Optional[Path] = typer.Option(None, "--report", help="Narrative text report file"),
    insecure: bool = typer.Option(False, "--insecure", "-k", help="Disable SSL certificate verification (use with caution)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write logs to file"),
    no_progress: bool = typer.Option(False, "--no-progress", help="Disable the progress bar"),
):
    """
    Discover and assess an API for security vulnerabilities.

    Exit code is 2 when the overall risk is CRITICAL or HIGH, 1 when other
    findings exist, 0 when the target is SECURE.

    Examples:

        apiprobe scan http://localhost:8000

        apiprobe scan http://localhost:8000 -u john -p password123

        apiprobe scan http://localhost:8000 --protocol graphql -o report.json
    """
    logger = setup_logging(verbose=verbose, log_file=str(log_file) if log_file else None)

    known = {cls.name for cls in PROBE_CLASSES}
    unknown = [p for p in probe_names or [] if p not in known]
    if unknown:
        console.print(f"[red]Unknown probe(s): {', '.join(unknown)}[/red]")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    try:
        context = build_context(url, config, {
            "protocols": protocols,
            "normal_token": normal_token,
            "elevated_token": elevated_token,
            "concurrency": concurrency,
            "session_timeout": session_timeout,
            "request_timeout": timeout,
            "rate_limit_burst_size": burst,
            "timing_threshold_ms": timing_threshold,
            "graphql_path": graphql_path,
            "openapi_document": str(openapi) if openapi else None,
            "payload_file": str(payload_file) if payload_file else None,
            "public_paths": public_paths,
            "verify_ssl": False if insecure else None,
        })
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    login = None
    if username and password:
        login = {"login_path": login_path, "normal": (username, password)}
        if admin_username and admin_password:
            login["elevated"] = (admin_username, admin_password)

    console.print("\n[bold blue]apiprobe[/bold blue]")
    console.print(f"Target: {context.target_base_url}")
    console.print(f"Protocols: {', '.join(sorted(p.value for p in context.protocols))}")
    if insecure:
        console.print("[yellow]Warning: SSL certificate verification is disabled[/yellow]")
        logger.warning("SSL certificate verification disabled - vulnerable to MITM attacks")
    console.print()

    try:
        outcome = asyncio.run(run_scan(context, probe_names or [], login, show_progress=not no_progress))
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    reporter = ConsoleReporter(console=Console(record=True)) if report_output else ConsoleReporter(console=console)
    reporter.report(outcome.session, outcome.summary)

    if report_output:
        report_output.write_text(reporter.export_text(), encoding="utf-8")
        console.print(f"[green]Narrative report saved to {report_output}[/green]")

    if output:
        JSONReporter().report(outcome.session, outcome.summary, str(output))
        console.print(f"\n[green]JSON report saved to {output}[/green]")

    if sarif_output:
        SARIFReporter().report(outcome.session, str(sarif_output))
        console.print(f"[green]SARIF report saved to {sarif_output}[/green]")

    raise typer.Exit(exit_code(outcome))


@app.command()
def list_probes():
    """List all available probes."""
    console.print("\n[bold]Available Probes:[/bold]\n")
    for scope, heading in ((ProbeScope.ENDPOINT, "Per endpoint"), (ProbeScope.SERVICE, "Per protocol surface")):
        console.print(f"[bold cyan]{heading}:[/bold cyan]")
        for cls in PROBE_CLASSES:
            if cls.scope != scope:
                continue
            protocols = ", ".join(sorted(p.value for p in cls.protocols))
            console.print(f"  [cyan]{cls.name}[/cyan] ({protocols})")
            console.print(f"    {cls.description}\n")


if __name__ == "__main__":
    app()
