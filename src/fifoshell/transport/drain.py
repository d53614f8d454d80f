"""Drains: copy a FIFO into a sink on a dedicated thread.

Opening a FIFO for reading blocks until the shell opens the write end, and
reading returns EOF only once the shell has closed it again.  That blocking
open is the synchronization between the shell and the session: a drain
cannot finish before the shell has written everything for the command.
Never replace it with a non-blocking open.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import threading
from typing import Protocol

from fifoshell.transport.conduit import Channel

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class BinarySink(Protocol):
    """Anything that accepts bytes like a binary file opened for writing."""

    def write(self, data: bytes, /) -> object: ...

    def flush(self) -> None: ...


class DrainGroup:
    """Completion barrier for the drains of one command.

    ``add(n)`` arms the barrier, each drain calls ``done()`` exactly once and
    ``wait()`` blocks until the count is back to zero.  Failures reported
    through ``done(error)`` are kept until ``pop_errors()``.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending = 0
        self._errors: list[tuple[Channel, BaseException]] = []

    def add(self, n: int) -> None:
        if n < 0:
            raise ValueError("cannot add a negative number of drains")
        with self._cond:
            self._pending += n

    def done(self, channel: Channel, error: BaseException | None = None) -> None:
        with self._cond:
            if self._pending <= 0:
                raise ValueError("done() called more times than add()")
            self._pending -= 1
            if error is not None:
                self._errors.append((channel, error))
            if self._pending == 0:
                self._cond.notify_all()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every armed drain is done.

        Returns False if ``timeout`` elapsed first.
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout)

    @property
    def pending(self) -> int:
        with self._cond:
            return self._pending

    def pop_errors(self) -> list[tuple[Channel, BaseException]]:
        with self._cond:
            errors, self._errors = self._errors, []
        return errors


def drain_fifo(channel: Channel, path: str, sink: BinarySink, group: DrainGroup) -> None:
    """Copy everything written to the FIFO at ``path`` into ``sink``."""
    error: BaseException | None = None
    try:
        with open(path, "rb", buffering=0) as pipe:
            shutil.copyfileobj(pipe, sink, CHUNK_SIZE)
        sink.flush()
    except Exception as e:
        logger.error("Drain of %s failed: %s", channel.value, e)
        error = e
    finally:
        group.done(channel, error)
    logger.debug("Drained %s", channel.value)


def start_drain(
    channel: Channel, path: str, sink: BinarySink, group: DrainGroup
) -> threading.Thread:
    """Start ``drain_fifo`` on a new daemon thread and return the thread."""
    thread = threading.Thread(
        target=drain_fifo,
        args=(channel, path, sink, group),
        name=f"fifoshell-drain-{channel.value}",
        daemon=True,
    )
    thread.start()
    return thread


def unblock(path: str) -> bool:
    """Release a reader blocked opening the FIFO at ``path``.

    Opens the write end without blocking and closes it straight away, which
    lets a pending reader's open return and read EOF.  Returns False when no
    reader was waiting.
    """
    try:
        fd = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
    except OSError as e:
        if e.errno in (errno.ENXIO, errno.ENOENT):
            return False
        raise
    os.close(fd)
    return True
