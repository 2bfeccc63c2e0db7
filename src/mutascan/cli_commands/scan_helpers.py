"""Helpers for the scan command."""

import logging
import os

from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from mutascan.modules.events import SCAN_COMPLETE, SCAN_FINDING, SCAN_LOG, ScanEvent
from mutascan.modules.models import Finding

from .shared import LEVEL_STYLES, console

SEVERITY_STYLES = {"critical": "bold red", "medium": "yellow"}


def normalize_verbose(verbose: bool) -> bool:
    """Resolve effective verbose flag from CLI arg and env var."""
    effective = verbose if isinstance(verbose, bool) else False
    if effective:
        return True
    env_verbose = os.environ.get("MUTASCAN_VERBOSE", "").lower()
    return env_verbose in {"1", "true", "yes", "on"}


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG with -v, WARNING otherwise."""
    level = logging.DEBUG if verbose else logging.WARNING
    root = logging.getLogger("mutascan")
    root.setLevel(level)
    if not any(isinstance(handler, RichHandler) for handler in root.handlers):
        root.addHandler(RichHandler(console=console, show_path=False, markup=False))


def render_event(event: ScanEvent) -> str | None:
    """Console line for one bus event."""
    data = event.data
    if event.kind == SCAN_LOG:
        style = LEVEL_STYLES.get(data.get("level", "info"), "white")
        return f"[{style}]{escape(str(data.get('message', '')))}[/{style}]"
    if event.kind == SCAN_FINDING:
        line = (
            f"[bold red][VULN][/bold red] {escape(str(data['vuln_type']))} "
            f"[dim]{escape(str(data['url']))}[/dim] "
            f"(status {data['status_code']}, {data['timing_ms']} ms)"
        )
        return f"{line}\n  [dim]{escape(str(data['curl_cmd']))}[/dim]"
    if event.kind == SCAN_COMPLETE:
        return (
            f"[bold]Scan {data.get('state', 'finished')}[/bold]: "
            f"{data['targets']} target(s), {data['urls']} URL(s), "
            f"[{SEVERITY_STYLES['critical']}]{data['critical']} critical[/], "
            f"[{SEVERITY_STYLES['medium']}]{data['medium']} medium[/], "
            f"{data['safe']} safe in {data['elapsed']:.1f}s"
        )
    return None


def findings_table(findings: list[Finding]) -> Table:
    """Numbered end-of-scan listing, critical findings first."""
    table = Table(box=None, padding=(0, 1), collapse_padding=True)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Severity")
    table.add_column("Type", style="bold white")
    table.add_column("URL", overflow="fold")
    table.add_column("Payload", style="cyan", overflow="fold")
    ordered = sorted(findings, key=lambda finding: finding.severity != "critical")
    for number, finding in enumerate(ordered, start=1):
        style = SEVERITY_STYLES.get(finding.severity, "white")
        table.add_row(
            str(number),
            f"[{style}]{finding.severity}[/{style}]",
            escape(finding.vuln_type),
            escape(finding.url),
            escape(finding.payload),
        )
    return table


def print_summary(findings: list[Finding]) -> None:
    if not findings:
        console.print("[green][+] No vulnerabilities found.[/green]")
        return
    console.print(f"[bold green][+] {len(findings)} finding(s) discovered:[/bold green]")
    console.print(findings_table(findings))
