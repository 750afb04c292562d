"""Write-ahead redo log that groups file system operations into transactions."""

from __future__ import annotations

import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from minifs.bcache import Buffer, BufferCache
from minifs.layout import BSIZE

LOGSIZE = 30
MAXOPBLOCKS = 10

_INT = struct.Struct("<i")


class LogError(Exception):
    """Raised when the log is misused or overflows."""


class Log:
    """A log stored in ``size`` blocks starting at block ``start``.

    The first block is the header: a count followed by the home block
    numbers of the logged blocks, whose copies follow the header.
    """

    def __init__(
        self,
        cache: BufferCache,
        start: int,
        size: int,
        *,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ) -> None:
        if _INT.size * (logsize + 1) >= BSIZE:
            raise LogError("log header too big")
        self.cache = cache
        self.start = start
        self.size = size
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self._blocks: list[int] = []
        self._outstanding = 0
        self._committing = False
        self._cond = threading.Condition()
        self.recover()

    @property
    def pending(self) -> tuple[int, ...]:
        """Home block numbers logged in the current transaction."""
        return tuple(self._blocks)

    @property
    def outstanding(self) -> int:
        """Number of operations currently inside a transaction."""
        return self._outstanding

    def _read_head(self) -> None:
        with self.cache.block(self.start) as buf:
            (n,) = _INT.unpack_from(buf.data, 0)
            if not 0 <= n <= self.logsize:
                raise LogError(f"corrupt log header: {n} blocks")
            self._blocks = list(struct.unpack_from(f"<{n}i", buf.data, _INT.size))

    def _write_head(self) -> None:
        # Writing the header is the point at which a transaction commits.
        with self.cache.block(self.start) as buf:
            n = len(self._blocks)
            _INT.pack_into(buf.data, 0, n)
            struct.pack_into(f"<{n}i", buf.data, _INT.size, *self._blocks)
            self.cache.write(buf)

    def _copy_blocks(self, to_log: bool) -> None:
        for tail, home in enumerate(self._blocks):
            logged = self.cache.read(self.start + tail + 1)
            cached = self.cache.read(home)
            src, dst = (cached, logged) if to_log else (logged, cached)
            dst.data[:] = src.data
            self.cache.write(dst)
            self.cache.release(logged)
            self.cache.release(cached)

    def _install(self) -> None:
        self._copy_blocks(to_log=False)

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install()
        self._blocks = []
        self._write_head()

    def _commit(self) -> None:
        if self._blocks:
            self._copy_blocks(to_log=True)
            self._write_head()
            self._install()
            self._blocks = []
            self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while (
                self._committing
                or len(self._blocks) + (self._outstanding + 1) * self.maxopblocks
                > self.logsize
            ):
                self._cond.wait()
            self._outstanding += 1

    def end_op(self) -> None:
        """End an operation; the last one to end commits the transaction."""
        with self._cond:
            if self._outstanding < 1:
                raise LogError("end_op outside of transaction")
            self._outstanding -= 1
            if self._committing:
                raise LogError("log is committing")
            do_commit = self._outstanding == 0
            if do_commit:
                self._committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self._committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buffer) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        if len(self._blocks) >= self.logsize or len(self._blocks) >= self.size - 1:
            raise LogError("too big a transaction")
        if self._outstanding < 1:
            raise LogError("log_write outside of transaction")
        with self._cond:
            if buf.blockno not in self._blocks:
                self._blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run a with-block as one operation of the current transaction."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()