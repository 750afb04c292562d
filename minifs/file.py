"""Open files: a table of reference-counted handles on inodes and pipes."""

from __future__ import annotations

import errno
import threading
from dataclasses import dataclass
from enum import Enum

from minifs.fs import FileSystem, FileSystemError, Inode, Stat
from minifs.layout import BSIZE
from minifs.log import MAXOPBLOCKS
from minifs.pipe import Pipe

NFILE = 100

# Write a few blocks per transaction so that one write never exceeds the
# log: the inode, an indirect block, allocation blocks and two blocks of
# slop for unaligned writes.
_MAX_WRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FileKind(Enum):
    """What an open file refers to."""

    NONE = "none"
    PIPE = "pipe"
    INODE = "inode"


@dataclass(eq=False)
class OpenFile:
    """One slot of the file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """A fixed number of open-file slots shared by everyone."""

    def __init__(self, fs: FileSystem | None = None, nfile: int = NFILE) -> None:
        if nfile < 1:
            raise ValueError("the file table needs at least one slot")
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [OpenFile() for _ in range(nfile)]

    def _require_fs(self) -> FileSystem:
        if self.fs is None:
            raise FileSystemError("no file system attached to the file table")
        return self.fs

    def alloc(self) -> OpenFile:
        """Claim a free slot with one reference; raise OSError if none is left."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.kind = FileKind.NONE
                    f.readable = False
                    f.writable = False
                    f.pipe = None
                    f.ip = None
                    f.off = 0
                    f.ref = 1
                    return f
        raise OSError(errno.ENFILE, "file table overflow")

    def dup(self, f: OpenFile) -> OpenFile:
        """Add a reference to an open file and return it."""
        with self._lock:
            if f.ref < 1:
                raise FileSystemError("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; release the underlying pipe or inode on the last one."""
        with self._lock:
            if f.ref < 1:
                raise FileSystemError("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = None
            f.ip = None
        if kind is FileKind.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileKind.INODE and ip is not None:
            fs = self._require_fs()
            with fs.log.transaction():
                fs.iput(ip)

    def stat(self, f: OpenFile) -> Stat:
        """Metadata of the inode behind an open file."""
        if f.kind is not FileKind.INODE or f.ip is None:
            raise FileSystemError("stat of a file that is not an inode")
        fs = self._require_fs()
        fs.ilock(f.ip)
        try:
            return fs.stati(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: OpenFile, n: int) -> bytes:
        """Read up to ``n`` bytes from the file's current offset."""
        if not f.readable:
            raise OSError(errno.EBADF, "file not open for reading")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._require_fs()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise FileSystemError("fileread")

    def write(self, f: OpenFile, data: bytes | bytearray) -> int:
        """Write all of ``data`` at the file's current offset; return its length."""
        if not f.writable:
            raise OSError(errno.EBADF, "file not open for writing")
        if f.kind is FileKind.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE and f.ip is not None:
            fs = self._require_fs()
            payload = bytes(data)
            done = 0
            while done < len(payload):
                chunk = payload[done : done + _MAX_WRITE]
                with fs.log.transaction():
                    fs.ilock(f.ip)
                    try:
                        written = fs.writei(f.ip, chunk, f.off)
                        f.off += written
                    finally:
                        fs.iunlock(f.ip)
                if written != len(chunk):
                    raise FileSystemError("short filewrite")
                done += written
            return len(payload)
        raise FileSystemError("filewrite")