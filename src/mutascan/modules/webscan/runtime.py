"""Runtime helpers for invoking external scanning tools.

Tools are expected to print one JSON object per line on stdout. Each child
runs in its own process group so the whole tree can be killed on timeout,
cancellation or early exit of the consumer.
"""

import asyncio
import contextlib
import json
import logging
import os
import shlex
import shutil
import signal
import sys
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mutascan.errors import (
    MalformedOutputError,
    ProcessExitError,
    ProcessNotFoundError,
    ProcessTimeoutError,
)
from mutascan.modules.workers import CancelToken

logger = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 3.0
# katana and nuclei can print whole responses on one line.
LINE_LIMIT_BYTES = 16 * 1024 * 1024


@dataclass
class JsonlResult:
    """Records collected from one finished tool run."""

    command: list[str]
    records: list[dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False


def resolve_binary(name: str) -> str | None:
    """Return an executable path for ``name``.

    Looks in ``./tools``, then the working directory, then ``PATH``.
    """
    exe = f"{name}.exe" if sys.platform == "win32" else name
    for candidate in (Path.cwd() / "tools" / exe, Path.cwd() / exe):
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
    return shutil.which(name)


def format_command(command: list[str]) -> str:
    return " ".join(shlex.quote(part) for part in command)


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    if process.returncode is not None:
        return
    try:
        if sys.platform == "win32":
            if sig == signal.SIGTERM:
                process.terminate()
            else:
                process.kill()
        else:
            # start_new_session makes the child a group leader, pgid == pid.
            os.killpg(process.pid, sig)
    except ProcessLookupError:
        pass


async def terminate_process_group(
    process: asyncio.subprocess.Process,
    grace: float = TERMINATE_GRACE_SECONDS,
) -> None:
    """SIGTERM the child's process group, SIGKILL it after ``grace`` seconds."""
    if process.returncode is not None:
        return
    _signal_group(process, signal.SIGTERM)
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
    except TimeoutError:
        _signal_group(process, signal.SIGKILL if sys.platform != "win32" else signal.SIGTERM)
        await process.wait()


async def _next_line(
    stream: asyncio.StreamReader,
    remaining: float | None,
    cancel: CancelToken | None,
) -> bytes | None:
    """Read one line; ``None`` means the deadline passed or ``cancel`` fired."""
    if cancel is None:
        try:
            return await asyncio.wait_for(stream.readline(), timeout=remaining)
        except TimeoutError:
            return None

    read_task = asyncio.ensure_future(stream.readline())
    cancel_task = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {read_task, cancel_task},
            timeout=remaining,
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        cancel_task.cancel()
    if read_task in done:
        return read_task.result()
    read_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await read_task
    return None


async def _drain(stream: asyncio.StreamReader, sink: list[bytes]) -> None:
    while chunk := await stream.read(65536):
        sink.append(chunk)


async def stream_jsonl(
    command: list[str],
    timeout: float | None = None,
    cancel: CancelToken | None = None,
    allowed_exit_codes: Iterable[int] = (0,),
    verbose: bool = False,
) -> AsyncIterator[dict[str, Any]]:
    """Run ``command`` and yield each JSON object it prints.

    Raises ProcessNotFoundError, ProcessTimeoutError (with the records read
    so far) and ProcessExitError. Non-JSON and overlong lines are logged and skipped.
    Stops quietly when ``cancel`` fires. The process group is always gone
    when the generator finishes, including on ``aclose()``.
    """
    loop = asyncio.get_running_loop()
    if verbose:
        logger.info("running: %s", format_command(command))
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=LINE_LIMIT_BYTES,
            start_new_session=sys.platform != "win32",
        )
    except FileNotFoundError:
        raise ProcessNotFoundError(command[0]) from None

    assert process.stdout is not None and process.stderr is not None
    stderr_chunks: list[bytes] = []
    stderr_task = asyncio.create_task(_drain(process.stderr, stderr_chunks))
    deadline = loop.time() + timeout if timeout is not None else None
    records: list[dict[str, Any]] = []
    malformed = 0
    interrupted = False

    try:
        while True:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                raise ProcessTimeoutError(command, timeout or 0.0, records)
            try:
                line = await _next_line(process.stdout, remaining, cancel)
            except ValueError:
                # readline() has already discarded the overlong line.
                malformed += 1
                logger.debug("%s: skipped a line over %d bytes", command[0], LINE_LIMIT_BYTES)
                continue
            if line is None:
                if cancel is not None and cancel.cancelled:
                    interrupted = True
                    logger.debug("cancelled: %s", format_command(command))
                    return
                raise ProcessTimeoutError(command, timeout or 0.0, records)
            if not line:
                break
            text = line.decode(errors="replace").strip()
            if not text:
                continue
            try:
                record = json.loads(text)
            except json.JSONDecodeError:
                record = None
            if not isinstance(record, dict):
                malformed += 1
                logger.debug("%s", MalformedOutputError(command, text))
                continue
            records.append(record)
            yield record

        await process.wait()
        await stderr_task
        if process.returncode not in set(allowed_exit_codes):
            stderr = b"".join(stderr_chunks).decode(errors="replace")
            raise ProcessExitError(command, process.returncode, stderr)
    finally:
        if process.returncode is None:
            await terminate_process_group(process)
        if not stderr_task.done():
            stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stderr_task
        if malformed:
            logger.info("%s: skipped %d malformed output lines", command[0], malformed)
        if verbose and not interrupted:
            logger.info("done: %s (%d records)", command[0], len(records))


async def collect_jsonl(
    command: list[str],
    timeout: float | None = None,
    cancel: CancelToken | None = None,
    allowed_exit_codes: Iterable[int] = (0,),
    verbose: bool = False,
) -> JsonlResult:
    """Run ``command`` to completion and return every parsed record."""
    result = JsonlResult(command=list(command))
    async with contextlib.aclosing(
        stream_jsonl(command, timeout, cancel, allowed_exit_codes, verbose)
    ) as records:
        async for record in records:
            result.records.append(record)
    result.cancelled = cancel is not None and cancel.cancelled
    return result
