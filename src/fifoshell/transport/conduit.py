"""Conduits: named pipes that carry command output out of the shell."""

from __future__ import annotations

import enum
import logging
import os
import shutil
import tempfile

from fifoshell.errors import TransportError

logger = logging.getLogger(__name__)


class Channel(enum.StrEnum):
    """Output channels of an executed command.

    The value doubles as the FIFO file name inside the conduit directory.
    """

    STDOUT = "stdout"
    STDERR = "stderr"
    EXIT_CODE = "exit_code"

    @classmethod
    def for_sinks(cls, has_stdout: bool, has_stderr: bool) -> tuple[Channel, ...]:
        """Active channels for a session. EXIT_CODE is always present."""
        channels: list[Channel] = []
        if has_stdout:
            channels.append(cls.STDOUT)
        if has_stderr:
            channels.append(cls.STDERR)
        channels.append(cls.EXIT_CODE)
        return tuple(channels)


class ConduitSet:
    """A private temp directory holding one FIFO per active channel.

    The directory is created with mode 0700 and each FIFO with 0600.
    Its existence is what marks the owning session as alive.
    """

    FIFO_MODE = 0o600

    def __init__(self, channels: tuple[Channel, ...], prefix: str = "fifoshell-") -> None:
        if Channel.EXIT_CODE not in channels:
            raise ValueError("exit_code channel is mandatory")
        self.channels = channels

        try:
            self.directory = tempfile.mkdtemp(prefix=prefix)
        except OSError as e:
            raise TransportError(f"cannot create conduit directory: {e}") from e

        self._paths: dict[Channel, str] = {}
        try:
            for channel in channels:
                path = os.path.join(self.directory, channel.value)
                os.mkfifo(path, self.FIFO_MODE)
                self._paths[channel] = path
        except OSError as e:
            shutil.rmtree(self.directory, ignore_errors=True)
            raise TransportError(f"cannot create fifo in {self.directory}: {e}") from e

        logger.debug(
            "Conduits created in %s: %s",
            self.directory,
            ", ".join(c.value for c in channels),
        )

    def path(self, channel: Channel) -> str:
        """FIFO path for an active channel."""
        try:
            return self._paths[channel]
        except KeyError:
            raise KeyError(f"channel {channel.value} is not active") from None

    def __contains__(self, channel: object) -> bool:
        return channel in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    @property
    def exists(self) -> bool:
        return os.path.isdir(self.directory)

    def remove(self) -> None:
        """Delete the directory and every FIFO in it."""
        try:
            shutil.rmtree(self.directory)
        except OSError as e:
            raise TransportError(f"cannot remove {self.directory}: {e}") from e
        logger.debug("Conduits removed: %s", self.directory)
