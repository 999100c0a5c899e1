"""Invocation of the hdhomerun_config control utility.

The utility is always spawned with an explicit argument vector (never via a
shell), so device ids and channel strings cannot inject extra arguments.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
from collections.abc import Sequence

from .base import FailureKind, ProcessFailure

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "hdhomerun_config"


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


async def _kill(proc: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


async def run_process(argv: Sequence[str], timeout_s: float) -> str:
    """Run argv and return its stdout.

    Raises:
        ProcessFailure: on timeout (process is killed), non-zero exit, or
            when the executable cannot be started.
    """
    argv = [str(a) for a in argv]
    logger.debug("exec %s (timeout=%.1fs)", argv, timeout_s)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning("Failed to start %s: %s", argv[0], e)
        raise ProcessFailure(FailureKind.SPAWN_ERROR, argv, message=str(e)) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except asyncio.TimeoutError:
        await _kill(proc)
        logger.warning("Command timed out after %.1fs: %s", timeout_s, argv)
        raise ProcessFailure(
            FailureKind.TIMEOUT,
            argv,
            message=f"command timed out after {timeout_s:g}s",
            returncode=proc.returncode,
        ) from None
    except asyncio.CancelledError:
        # Caller went away; don't leave the child running
        await _kill(proc)
        raise

    out = _decode(stdout)
    err = _decode(stderr)
    if proc.returncode != 0:
        logger.debug("Command %s exited %s: %s", argv, proc.returncode, err.strip() or out.strip())
        raise ProcessFailure(
            FailureKind.NON_ZERO_EXIT,
            argv,
            stdout=out,
            stderr=err,
            returncode=proc.returncode,
        )
    return out


class ToolRunner:
    """Runs the real control utility."""

    name = "hdhomerun"

    def __init__(self, executable: str = DEFAULT_EXECUTABLE, timeout_s: float = 8.0) -> None:
        self.executable = executable
        self.timeout_s = timeout_s

    def is_available(self) -> bool:
        return shutil.which(self.executable) is not None

    async def run(self, args: Sequence[str], timeout_s: float | None = None) -> str:
        return await run_process(
            [self.executable, *args],
            self.timeout_s if timeout_s is None else timeout_s,
        )
