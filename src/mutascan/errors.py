"""Error taxonomy for scan setup, external processes and HTTP requests."""

from typing import Any


class MutascanError(Exception):
    """Base class for every error raised by mutascan."""


class ConfigError(MutascanError):
    """Invalid or missing scan input. The scan never starts."""


class ScanInProgressError(MutascanError):
    """A scan was started while another one is still running."""

    def __init__(self, message: str = "a scan is already running"):
        super().__init__(message)


class NetworkError(MutascanError):
    """A request failed at the transport level (refused, reset, timed out)."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")


class ProcessError(MutascanError):
    """An external tool could not be run to completion."""

    def __init__(self, command: list[str], message: str):
        self.command = list(command)
        super().__init__(message)


class ProcessNotFoundError(ProcessError):
    """The executable does not exist on this host."""

    def __init__(self, name: str):
        self.name = name
        super().__init__([name], f"{name} binary not found in ./tools, current directory or PATH")


class ProcessTimeoutError(ProcessError):
    """The process exceeded its wall-clock budget and was killed.

    ``records`` holds every record parsed before the deadline.
    """

    def __init__(self, command: list[str], timeout: float, records: list[dict[str, Any]]):
        self.timeout = timeout
        self.records = records
        super().__init__(
            command, f"{command[0]} timed out after {timeout:g}s ({len(records)} records kept)"
        )


class ProcessExitError(ProcessError):
    """The process exited with a status outside the allowed set."""

    def __init__(self, command: list[str], returncode: int, stderr: str):
        self.returncode = returncode
        self.stderr = stderr
        lines = stderr.strip().splitlines()
        detail = lines[0] if lines else "no stderr output"
        super().__init__(command, f"{command[0]} exited with code {returncode}: {detail}")


class MalformedOutputError(ProcessError):
    """A line of tool output was not a JSON object.

    Never raised out of the adapter; it is logged and the line is skipped.
    """

    def __init__(self, command: list[str], line: str):
        self.line = line
        super().__init__(command, f"unparseable output from {command[0]}: {line[:120]!r}")
