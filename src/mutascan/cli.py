"""mutascan CLI facade.

Command modules look symbols up here at call time (see
``cli_commands.deps``), so tests monkeypatch this module.
"""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

from mutascan.cli_commands import doctor_command, scan_command  # noqa: F401  (registers commands)
from mutascan.cli_commands.shared import app, console
from mutascan.modules.coordinator import ScanCoordinator
from mutascan.utils.async_utils import safe_async_run

__all__ = ["ScanCoordinator", "app", "console", "main", "safe_async_run"]


@app.command()
def version() -> None:
    """Show the installed mutascan version."""
    try:
        current_version = pkg_version("mutascan")
    except PackageNotFoundError:
        current_version = "0.0.0+unknown"

    console.print(f"mutascan {current_version}")


def main():
    """Entry point for the CLI."""
    app()
