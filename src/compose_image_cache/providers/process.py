"""
Async subprocess helper shared by the docker and skopeo adapters.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..errors import CommandError, CommandTimeout

__all__ = ["CommandResult", "run_command"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished subprocess."""
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


async def run_command(
    args: Sequence[str],
    *,
    timeout: Optional[float] = None,
    check: bool = True,
) -> CommandResult:
    """
    Run a command and capture its output.

    Args:
        args: Executable and arguments (no shell)
        timeout: Seconds before the process is killed
        check: Raise CommandError on a non-zero exit status

    Returns:
        CommandResult with decoded stdout/stderr

    Raises:
        CommandError: Non-zero exit with check=True, or executable not found
        CommandTimeout: The process did not finish in time
    """
    logger.debug(f"Running: {' '.join(args)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CommandError(args, 127, f"executable not found: {e.filename or args[0]}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise CommandTimeout(args) from None

    result = CommandResult(
        args=tuple(args),
        returncode=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace").strip(),
    )
    if check and result.returncode != 0:
        raise CommandError(args, result.returncode, result.stderr)
    return result
