"""Scan CLI command."""

import asyncio
from pathlib import Path

import typer

from mutascan.config import resolve_scan_config
from mutascan.errors import ConfigError
from mutascan.modules.coordinator import ScanState
from mutascan.modules.events import Subscription

from .deps import cli_module
from .scan_helpers import configure_logging, normalize_verbose, print_summary, render_event
from .shared import app, console

EXIT_CODES = {ScanState.FINISHED: 0, ScanState.ERROR: 1, ScanState.CANCELLED: 130}


async def _print_events(subscription: Subscription) -> None:
    async for event in subscription:
        line = render_event(event)
        if line:
            console.print(line, highlight=False)


@app.command()
def scan(
    target: str | None = typer.Argument(None, help="Target URL (e.g. https://example.com)"),
    list_file: Path | None = typer.Option(
        None, "--list", "-l", help="File with one target URL per line"
    ),
    output: str | None = typer.Option(
        None, "--output", "-o", help="JSON results path [default: scan_results.json]"
    ),
    threads: int | None = typer.Option(
        None, "--threads", "-t", help="Concurrent request workers [default: 50]"
    ),
    rate_limit: int | None = typer.Option(
        None, "--rate-limit", help="Maximum requests per second [default: 100]"
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Per-request timeout in seconds [default: 5]"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose scan output"),
    update: bool = typer.Option(False, "--update", help="Update mutascan and exit"),
    mode: str | None = typer.Option(None, "--mode", "-m", help="Scan mode: simple, advanced"),
    payloads: Path | None = typer.Option(
        None, "--payloads", "-p", help="Custom payload file, one payload per line"
    ),
    replace_payloads: bool = typer.Option(
        False, "--replace-payloads", help="Use only the custom payloads"
    ),
    proxy: str | None = typer.Option(None, "--proxy", help="HTTP proxy for every request"),
    header: list[str] | None = typer.Option(
        None, "--header", "-H", help="Extra header 'Name: value' (repeatable)"
    ),
    tags: str | None = typer.Option(None, "--tags", help="Nuclei template tags"),
    scope: bool = typer.Option(False, "--scope", help="Only crawl the target's own host"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Plan and log injection attempts without sending them"
    ),
    no_crawler: bool = typer.Option(False, "--no-crawler", help="Skip katana crawling"),
    no_nuclei: bool = typer.Option(False, "--no-nuclei", help="Skip nuclei templates"),
    crawler_depth: int | None = typer.Option(None, "--crawler-depth", help="Crawl depth"),
    crawler_max_urls: int | None = typer.Option(
        None, "--crawler-max-urls", help="URL cap per target, seed included"
    ),
    crawler_timeout: float | None = typer.Option(
        None, "--crawler-timeout", help="Crawl stage timeout in seconds"
    ),
    noise_threshold: int | None = typer.Option(
        None, "--noise-threshold", help="Unrelated payloads sharing a response before suppression"
    ),
    config_file: Path | None = typer.Option(None, "--config", help="YAML config file"),
    resume: bool = typer.Option(
        False, "--resume", help="Continue the interrupted scan saved in the state file"
    ),
    state_file: str | None = typer.Option(
        None, "--state-file", help="Progress file [default: .mutascan-state.json]"
    ),
) -> None:
    """Scan one target or a list of targets."""
    if update:
        console.print(
            "[yellow]Self-update is handled by the installer. "
            "Reinstall mutascan (e.g. 'pip install -U mutascan') to update.[/yellow]"
        )
        return

    cli = cli_module()
    effective_verbose = normalize_verbose(verbose)
    configure_logging(effective_verbose)

    # Unset booleans fall through to env/YAML instead of overriding them with False.
    overrides = {
        "target": target,
        "list_file": str(list_file) if list_file else None,
        "output": output,
        "threads": threads,
        "rate_limit": rate_limit,
        "timeout": timeout,
        "verbose": True if effective_verbose else None,
        "mode": mode.strip().lower() if mode else None,
        "payloads": str(payloads) if payloads else None,
        "replace_payloads": True if replace_payloads else None,
        "proxy": proxy,
        "headers": tuple(header) if header else None,
        "tags": tags,
        "scope": True if scope else None,
        "dry_run": True if dry_run else None,
        "enable_crawler": False if no_crawler else None,
        "enable_nuclei": False if no_nuclei else None,
        "crawler_depth": crawler_depth,
        "crawler_max_urls": crawler_max_urls,
        "crawler_timeout": crawler_timeout,
        "noise_threshold": noise_threshold,
        "resume": True if resume else None,
        "state_file": state_file,
    }
    try:
        config = resolve_scan_config(overrides, config_file)
    except ConfigError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1) from exc

    coordinator = cli.ScanCoordinator()

    async def run_scan():
        subscription = coordinator.bus.subscribe()
        consumer = asyncio.create_task(_print_events(subscription))
        try:
            return await coordinator.run(config)
        finally:
            coordinator.bus.close()
            await consumer

    try:
        report = cli.safe_async_run(run_scan(), on_interrupt=coordinator.stop)
    except ConfigError as exc:
        raise typer.Exit(1) from exc
    except KeyboardInterrupt as exc:
        console.print("[yellow]Scan interrupted.[/yellow]")
        raise typer.Exit(130) from exc

    if report.state != ScanState.ERROR and not config.dry_run:
        print_summary(report.findings)
    if report.output_path is not None:
        console.print(f"[dim]Results written to {report.output_path}[/dim]")
    exit_code = EXIT_CODES.get(report.state, 1)
    if exit_code:
        raise typer.Exit(exit_code)
