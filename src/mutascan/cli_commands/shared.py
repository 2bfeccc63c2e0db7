"""Shared CLI app objects."""

import typer
from rich.console import Console

app = typer.Typer(
    name="mutascan",
    help="Crawl, template-scan and mutation-fuzz web targets you are authorized to test",
    no_args_is_help=True,
)
console = Console()

# scan-log level -> rich style
LEVEL_STYLES = {
    "info": "white",
    "success": "green",
    "error": "red",
    "warn": "yellow",
    "phase": "bold blue",
}
