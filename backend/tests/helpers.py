"""Test doubles shared across the suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

from hdhrsignal.devices.base import FailureKind, ProcessFailure


def make_failure(
    args: Sequence[str],
    kind: FailureKind = FailureKind.NON_ZERO_EXIT,
    stderr: str = "ERROR: unable to connect to device\n",
    stdout: str = "",
) -> ProcessFailure:
    return ProcessFailure(
        kind,
        ["hdhomerun_config", *args],
        stdout=stdout,
        stderr=stderr,
        returncode=None if kind is FailureKind.TIMEOUT else 1,
    )


class ScriptedRunner:
    """CommandRunner double that answers from a script and records calls.

    The handler receives the argument tuple and returns stdout text or raises.
    Without a handler every call succeeds with empty output.
    """

    name = "scripted"

    def __init__(self, handler: Callable[[tuple[str, ...]], str] | None = None) -> None:
        self.handler = handler
        self.calls: list[tuple[str, ...]] = []
        self.timeouts: list[float | None] = []
        self.delay_s = 0.0

    async def run(self, args: Sequence[str], timeout_s: float | None = None) -> str:
        argv = tuple(args)
        self.calls.append(argv)
        self.timeouts.append(timeout_s)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.handler is None:
            return ""
        return self.handler(argv)

    def set_calls(self) -> list[tuple[str, ...]]:
        return [c for c in self.calls if len(c) > 1 and c[1] == "set"]
