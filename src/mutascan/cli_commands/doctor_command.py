"""``mutascan doctor``: pre-flight health check command."""

import sys
from collections import Counter
from dataclasses import dataclass

import typer

from mutascan.modules.webscan import resolve_binary

from .shared import app, console

STATUS_ICONS = {
    "pass": "[green]✓[/green]",
    "fail": "[red]✗[/red]",
    "warn": "[yellow]![/yellow]",
}

TOOL_INSTALL_HINTS = {
    "katana": "go install github.com/projectdiscovery/katana/cmd/katana@latest",
    "nuclei": "go install -v github.com/projectdiscovery/nuclei/v3/cmd/nuclei@latest",
}


@dataclass
class CheckResult:
    name: str
    status: str  # "pass", "fail", "warn"
    message: str
    fix: str = ""


def check_python_version() -> CheckResult:
    running = ".".join(str(part) for part in sys.version_info[:3])
    if sys.version_info >= (3, 12):
        return CheckResult("python", "pass", f"Python {running}")
    return CheckResult(
        "python", "fail", f"Python {running} is too old (3.12+ required)", fix="Upgrade Python"
    )


def check_tool(name: str) -> CheckResult:
    """A missing scanner binary only disables its stage, so it is a warning."""
    path = resolve_binary(name)
    if path:
        return CheckResult(name, "pass", f"{name}: {path}")
    return CheckResult(
        name,
        "warn",
        f"{name} not found in ./tools or PATH; that stage will be skipped",
        fix=TOOL_INSTALL_HINTS[name],
    )


def run_checks() -> list[CheckResult]:
    return [check_python_version(), *(check_tool(name) for name in TOOL_INSTALL_HINTS)]


@app.command()
def doctor() -> None:
    """Check that Python and the external scanners are usable."""
    results = run_checks()

    console.print("\n[bold]mutascan doctor[/bold]\n")
    for result in results:
        console.print(f"  {STATUS_ICONS.get(result.status, '?')} {result.message}")
        if result.fix and result.status != "pass":
            console.print(f"    [dim]{result.fix}[/dim]")

    counts = Counter(result.status for result in results)
    console.print(
        f"\n  Summary: {counts['pass']} passed, {counts['warn']} warnings, "
        f"{counts['fail']} failed\n"
    )
    if counts["fail"]:
        raise typer.Exit(1)
