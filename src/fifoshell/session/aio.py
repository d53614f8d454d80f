"""Asyncio facade over Shell."""

from __future__ import annotations

import asyncio
import functools
import logging

from fifoshell.errors import ShellError
from fifoshell.session.shell import Shell

logger = logging.getLogger(__name__)


class AsyncShell:
    """Run a Shell from coroutines without blocking the event loop.

    Every call is handed to the default executor.  Calls are serialized with
    an asyncio.Lock, so two coroutines sharing one AsyncShell never have
    commands in flight at the same time.  A cancelled ``exec`` keeps the
    lock until its command has finished in the executor thread.
    """

    def __init__(self, shell: Shell) -> None:
        self.shell = shell
        self._lock = asyncio.Lock()

    async def exec(self, command: str, timeout: float | None = None) -> int:
        """Run ``command`` and return its exit status."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            fut = loop.run_in_executor(
                None, functools.partial(self.shell.exec, command, timeout)
            )
            try:
                return await asyncio.shield(fut)
            except asyncio.CancelledError:
                logger.debug("exec cancelled, waiting for command to finish: %s", command)
                await asyncio.wait({fut})
                raise

    async def stop(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.shell.stop)

    @property
    def alive(self) -> bool:
        return self.shell.alive

    async def __aenter__(self) -> AsyncShell:
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, *exc_info: object) -> None:
        if self.shell.stopped:
            return
        if exc_type is None:
            await self.stop()
            return
        try:
            await self.stop()
        except ShellError as e:
            logger.warning("Error stopping shell after failure: %s", e)
