"""In-memory output sink for drained command output."""

from __future__ import annotations

import threading


class OutputBuffer:
    """Thread-safe binary sink.

    Behaves like a write-only binary file (``write`` / ``flush``) so it can
    be handed to a shell as a stdout or stderr sink, and offers text and
    line views over everything written so far.  Drain threads write into it
    while the caller may be reading from another thread, hence the lock.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._chunks = bytearray()
        self._lock = threading.Lock()
        self.encoding = encoding

    def write(self, data: bytes) -> int:
        with self._lock:
            self._chunks.extend(data)
        return len(data)

    def flush(self) -> None:
        pass

    def getvalue(self) -> bytes:
        """Return every byte written so far."""
        with self._lock:
            return bytes(self._chunks)

    def text(self) -> str:
        """Return the content decoded, with undecodable bytes replaced."""
        return self.getvalue().decode(self.encoding, errors="replace")

    def lines(self) -> list[str]:
        """Return the decoded content split into lines (no line endings)."""
        return self.text().splitlines()
