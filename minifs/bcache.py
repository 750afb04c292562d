"""Buffer cache of disk blocks with most-recently-used ordering."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from minifs.disk import MemDisk
from minifs.layout import BSIZE

NBUF = 30


class CacheError(Exception):
    """Raised when the buffer cache is misused or exhausted."""


@dataclass(eq=False)
class Buffer:
    """A cached copy of one disk block."""

    blockno: int = -1
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: int | None = field(default=None, init=False, repr=False)

    @property
    def held(self) -> bool:
        """Whether the calling thread holds this buffer."""
        return self._owner == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()


class BufferCache:
    """A fixed set of buffers over one disk; one holder per buffer at a time."""

    def __init__(self, disk: MemDisk, nbuf: int = NBUF) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        # Index 0 is the most recently used buffer.
        self._mru = [Buffer() for _ in range(nbuf)]

    def _get(self, blockno: int) -> Buffer:
        with self._lock:
            found = next((b for b in self._mru if b.blockno == blockno), None)
            if found is not None:
                if found.held:
                    raise CacheError(f"block {blockno} is already held by this thread")
                found.refcnt += 1
            else:
                # Dirty buffers are pinned by the log until it commits them.
                found = next(
                    (b for b in reversed(self._mru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if found is None:
                    raise CacheError("no buffers")
                found.blockno = blockno
                found.valid = False
                found.dirty = False
                found.refcnt = 1
        found._acquire()
        return found

    def read(self, blockno: int) -> Buffer:
        """Return a held buffer with the contents of the block."""
        buf = self._get(blockno)
        if not buf.valid:
            try:
                buf.data[:] = self.disk.read_block(blockno)
            except Exception:
                self.release(buf)
                raise
            buf.valid = True
        return buf

    def write(self, buf: Buffer) -> None:
        """Write the buffer's contents to disk; the buffer must be held."""
        if not buf.held:
            raise CacheError("write: buffer not held")
        buf.dirty = True
        self.disk.write_block(buf.blockno, bytes(buf.data))
        buf.dirty = False
        buf.valid = True

    def release(self, buf: Buffer) -> None:
        """Give up a held buffer and mark it most recently used."""
        if not buf.held:
            raise CacheError("release: buffer not held")
        buf._release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)

    @contextmanager
    def block(self, blockno: int) -> Iterator[Buffer]:
        """Hold the buffer of a block for the length of a with-block."""
        buf = self.read(blockno)
        try:
            yield buf
        finally:
            self.release(buf)