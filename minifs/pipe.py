"""A bounded in-memory pipe with blocking reads and writes."""

from __future__ import annotations

import threading

PIPESIZE = 512


class PipeError(Exception):
    """Raised when writing to a pipe whose read end is closed."""


class Pipe:
    """A pipe holding at most PIPESIZE bytes between its two ends."""

    def __init__(self) -> None:
        self._buf = bytearray()
        self._cond = threading.Condition()
        self.readopen = True
        self.writeopen = True

    def write(self, data: bytes | bytearray) -> int:
        """Write all of ``data``, waiting while the pipe is full."""
        view = memoryview(bytes(data))
        with self._cond:
            pos = 0
            while pos < len(view):
                while len(self._buf) >= PIPESIZE:
                    if not self.readopen:
                        raise PipeError("read end of pipe is closed")
                    self._cond.notify_all()
                    self._cond.wait()
                room = PIPESIZE - len(self._buf)
                self._buf += view[pos : pos + room]
                pos += room
            self._cond.notify_all()
        return len(view)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, waiting while empty and the write end is open."""
        if n < 0:
            raise ValueError("cannot read a negative number of bytes")
        with self._cond:
            while not self._buf and self.writeopen:
                self._cond.wait()
            out = bytes(self._buf[:n])
            del self._buf[:n]
            self._cond.notify_all()
        return out

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, else the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()