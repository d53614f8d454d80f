"""Shell sessions: persistent shell processes with per-command capture."""

from fifoshell.session.aio import AsyncShell
from fifoshell.session.shell import Shell

__all__ = [
    "AsyncShell",
    "Shell",
]
