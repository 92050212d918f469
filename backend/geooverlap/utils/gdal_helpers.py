"""Safe execution wrapper for GDAL/OGR command-line utilities.

This module runs GDAL and OGR command-line tools (ogr2ogr in practice) as
asyncio subprocesses, so a long import never blocks the event loop serving
other requests. Every run is bounded by a timeout, and the child is killed
when the timeout expires or the awaiting task is cancelled.

Non-zero exit codes, launch failures and timeouts all surface as
``CommandError`` carrying the command's diagnostic output.

Example:
    Execute ogr2ogr command:
        >>> from geooverlap.utils.gdal_helpers import run_command, CommandError

        >>> try:
        ...     await run_command(
        ...         ["ogr2ogr", "-f", "PostgreSQL", "PG:dbname=gis", "a.shp"],
        ...         timeout=120,
        ...     )
        ... except CommandError as e:
        ...     print(f"Command failed: {e}")
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """Exception raised when a GDAL/OGR subprocess command fails.

    Contains the error message from the failed command's stderr output, or a
    description of why the command could not run to completion.

    Attributes:
        returncode: Exit status of the process, None if it never finished.
    """

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()


async def run_command(
    command: Iterable[str | pathlib.Path],
    workdir: pathlib.Path | None = None,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Execute a command and raise on non-zero exit.

    Args:
        command: Iterable arguments to execute (e.g., ["ogr2ogr", "-f", ...]).
        workdir: Optional working directory for the command execution.
        timeout: Seconds to wait before killing the process; None waits
            indefinitely.
        env: Full environment for the child process; None inherits ours.

    Returns:
        The command's stdout.

    Raises:
        CommandError: if the command cannot be started, exits with a non-zero
            status code or exceeds ``timeout``. The message holds stderr for
            failed runs.
    """
    args = [str(part) for part in command]
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=workdir,
            env=dict(env) if env is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise CommandError(f"Could not start {args[0]}: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout,
        )
    except TimeoutError as exc:
        await _terminate(process)
        raise CommandError(f"{args[0]} timed out after {timeout:g}s") from exc
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    out = stdout.decode(errors="replace")
    err = stderr.decode(errors="replace").strip()
    if err:
        logger.debug("[%s] %s", args[0], err)
    if process.returncode != 0:
        raise CommandError(
            err or f"{args[0]} exited with code {process.returncode}",
            returncode=process.returncode,
        )
    return out
