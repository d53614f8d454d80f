"""fifoshell: run commands one at a time in a persistent shell.

Each command's stdout, stderr and exit status are carried back through
named pipes, while the shell's state persists between commands.
"""

from fifoshell.config import ShellConfig
from fifoshell.errors import (
    AbnormalExit,
    CommandTimeout,
    ProtocolError,
    ShellError,
    ShellStopped,
    TransportError,
)
from fifoshell.session import AsyncShell, Shell
from fifoshell.transport import Channel, OutputBuffer

__version__ = "0.1.0"

__all__ = [
    "AbnormalExit",
    "AsyncShell",
    "Channel",
    "CommandTimeout",
    "OutputBuffer",
    "ProtocolError",
    "Shell",
    "ShellConfig",
    "ShellError",
    "ShellStopped",
    "TransportError",
]
