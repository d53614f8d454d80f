"""Exceptions raised by shell sessions."""

from __future__ import annotations


class ShellError(Exception):
    """Base exception for shell session errors."""


class ShellStopped(ShellError):
    """Raised when a session is used after ``stop()`` (or after a kill)."""

    def __init__(self, message: str = "shell process already stopped") -> None:
        super().__init__(message)


class TransportError(ShellError):
    """Raised when the FIFO directory, a FIFO, or the shell process fails."""


class ProtocolError(ShellError):
    """Raised when the exit code channel carries something other than an int."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"invalid exit code from shell: {raw!r}")
        self.raw = raw


class AbnormalExit(ShellError):
    """Raised by ``stop()`` when the shell exits with a non-zero status."""

    def __init__(self, returncode: int) -> None:
        super().__init__(f"shell process exited with status {returncode}")
        self.returncode = returncode


class CommandTimeout(ShellError):
    """Raised when a command does not finish within its timeout.

    The session is killed before this is raised and cannot be reused.
    """

    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(f"command timed out after {timeout}s: {command}")
        self.command = command
        self.timeout = timeout
