from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Protocol


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    SPAWN_ERROR = "spawn_error"


class HDHRSignalError(Exception):
    """Base class for errors raised by the device gateway."""


class InvalidArgument(HDHRSignalError, ValueError):
    """Caller-supplied data failed a precondition (empty channel, bad tuner...)."""


class ProcessFailure(HDHRSignalError):
    """The control utility could not be run, timed out, or exited non-zero.

    stdout/stderr are kept on the exception for non-zero exits. A process
    killed on timeout reports no output, only the message.
    """

    def __init__(
        self,
        kind: FailureKind,
        argv: Sequence[str],
        message: str = "",
        stdout: str = "",
        stderr: str = "",
        returncode: int | None = None,
    ) -> None:
        self.kind = kind
        self.argv = tuple(argv)
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.message = message or _default_message(kind, returncode)
        super().__init__(self.message)

    @property
    def detail(self) -> str:
        """Best human-readable explanation: stderr, then stdout, then message."""
        return self.stderr.strip() or self.stdout.strip() or self.message

    def __repr__(self) -> str:
        return (
            f"ProcessFailure(kind={self.kind.value!r}, argv={list(self.argv)!r}, "
            f"returncode={self.returncode!r})"
        )


def _default_message(kind: FailureKind, returncode: int | None) -> str:
    if kind is FailureKind.TIMEOUT:
        return "command timed out"
    if kind is FailureKind.SPAWN_ERROR:
        return "command could not be started"
    return f"command exited with status {returncode}"


class CommandRunner(Protocol):
    """Anything that can run the control utility with an argument list."""

    name: str

    async def run(self, args: Sequence[str], timeout_s: float | None = None) -> str: ...
