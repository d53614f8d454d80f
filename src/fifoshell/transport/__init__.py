"""Transport: FIFOs that carry stdout, stderr and exit codes out of a shell.

Each session owns a private directory with one named pipe per active
channel.  For every command, one drain thread per channel copies its FIFO
into a sink, and a DrainGroup tells the session when all of them are done.
"""

from fifoshell.transport.buffer import OutputBuffer
from fifoshell.transport.conduit import Channel, ConduitSet
from fifoshell.transport.drain import BinarySink, DrainGroup, drain_fifo, start_drain, unblock

__all__ = [
    "BinarySink",
    "Channel",
    "ConduitSet",
    "DrainGroup",
    "OutputBuffer",
    "drain_fifo",
    "start_drain",
    "unblock",
]
