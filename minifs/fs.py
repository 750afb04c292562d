"""Inodes, directories and path names on top of the buffer cache and log."""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass, field
from typing import Any

from minifs.bcache import Buffer, BufferCache
from minifs.disk import MemDisk
from minifs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    Superblock,
    bitmap_block,
    inode_block,
)
from minifs.log import Log

ROOTDEV = 1
NINODE = 50
NDEV = 10

_UINT = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class FileSystemError(Exception):
    """Raised when the file system is misused, corrupt or out of resources."""


@dataclass(frozen=True)
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _owner: int | None = field(default=None, init=False, repr=False)

    @property
    def held(self) -> bool:
        """Whether the calling thread holds this inode's lock."""
        return self._owner == threading.get_ident()

    def _acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def _release(self) -> None:
        self._owner = None
        self._lock.release()


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first path element; return (name, rest) or None if none is left.

    The rest has no leading slashes; names are cut to DIRSIZ characters.
    """
    stripped = path.lstrip("/")
    if not stripped:
        return None
    name, _, rest = stripped.partition("/")
    return name[:DIRSIZ], rest.lstrip("/")


def namecmp(s: str, t: str) -> int:
    """Compare two names on their first DIRSIZ bytes: negative, zero or positive."""

    def key(name: str) -> bytes:
        raw = name.encode("utf-8", "surrogateescape")[:DIRSIZ]
        return raw.split(b"\0", 1)[0]

    a, b = key(s), key(t)
    return (a > b) - (a < b)


class FileSystem:
    """A file system on one disk, with an inode cache and a device table.

    Operations that modify the disk must run inside ``self.log.transaction()``.
    ``devsw`` maps a major device number to an object with optional
    ``read(ip, n) -> bytes`` and ``write(ip, data) -> int`` methods.
    """

    def __init__(
        self,
        disk: MemDisk,
        *,
        dev: int = ROOTDEV,
        ninode: int = NINODE,
        cache: BufferCache | None = None,
    ) -> None:
        if ninode < 1:
            raise ValueError("the inode cache needs at least one slot")
        self.dev = dev
        self.cache = cache if cache is not None else BufferCache(disk)
        with self.cache.block(1) as buf:
            self.sb = Superblock.unpack(buf.data)
        self.log = Log(self.cache, self.sb.logstart, self.sb.nlog)
        self.devsw: dict[int, Any] = {}
        self._icache_lock = threading.Lock()
        self._inodes = [Inode() for _ in range(ninode)]

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self.cache.block(blockno) as buf:
            buf.data[:] = bytes(BSIZE)
            self.log.log_write(buf)

    def _claim_bit(self, buf: Buffer, count: int) -> int | None:
        for bi in range(count):
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                buf.data[bi // 8] |= mask
                self.log.log_write(buf)
                return bi
        return None

    def _balloc(self) -> int:
        for base in range(0, self.sb.size, BPB):
            with self.cache.block(bitmap_block(base, self.sb)) as buf:
                bi = self._claim_bit(buf, min(BPB, self.sb.size - base))
            if bi is not None:
                self._bzero(base + bi)
                return base + bi
        raise FileSystemError("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        with self.cache.block(bitmap_block(b, self.sb)) as buf:
            bi = b % BPB
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                raise FileSystemError("freeing free block")
            buf.data[bi // 8] &= ~mask & 0xFF
            self.log.log_write(buf)

    # Inodes.

    def _dinode_offset(self, inum: int) -> int:
        return (inum % IPB) * DINODE_SIZE

    def _iget(self, inum: int) -> Inode:
        with self._icache_lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FileSystemError("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def ialloc(self, type: int) -> Inode:
        """Allocate an inode of the given type; return it unlocked and referenced."""
        for inum in range(1, self.sb.ninodes):
            with self.cache.block(inode_block(inum, self.sb)) as buf:
                off = self._dinode_offset(inum)
                dip = DiskInode.unpack(buf.data[off : off + DINODE_SIZE])
                if dip.type != 0:
                    continue
                buf.data[off : off + DINODE_SIZE] = DiskInode(type=int(type)).pack()
                self.log.log_write(buf)
            return self._iget(inum)
        raise FileSystemError("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        with self.cache.block(inode_block(ip.inum, self.sb)) as buf:
            off = self._dinode_offset(ip.inum)
            dip = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
            buf.data[off : off + DINODE_SIZE] = dip.pack()
            self.log.log_write(buf)

    def idup(self, ip: Inode) -> Inode:
        """Add a reference to an inode and return it."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode | None) -> None:
        """Lock an inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise FileSystemError("ilock")
        ip._acquire()
        if not ip.valid:
            with self.cache.block(inode_block(ip.inum, self.sb)) as buf:
                off = self._dinode_offset(ip.inum)
                dip = DiskInode.unpack(buf.data[off : off + DINODE_SIZE])
            ip.type = dip.type
            ip.major = dip.major
            ip.minor = dip.minor
            ip.nlink = dip.nlink
            ip.size = dip.size
            ip.addrs = list(dip.addrs)
            ip.valid = True
            if ip.type == 0:
                ip._release()
                raise FileSystemError("ilock: no type")

    def iunlock(self, ip: Inode | None) -> None:
        """Unlock an inode held by the caller."""
        if ip is None or not ip.held or ip.ref < 1:
            raise FileSystemError("iunlock")
        ip._release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        if ip.held:
            raise FileSystemError("iput: inode is locked by the caller")
        ip._acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    r = ip.ref
                if r == 1:
                    self._itrunc(ip)
                    ip.type = 0
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip._release()
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock an inode, then drop a reference to it."""
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            addr = ip.addrs[bn]
            if addr == 0:
                addr = ip.addrs[bn] = self._balloc()
            return addr
        bn -= NDIRECT
        if bn < NINDIRECT:
            indirect = ip.addrs[NDIRECT]
            if indirect == 0:
                indirect = ip.addrs[NDIRECT] = self._balloc()
            with self.cache.block(indirect) as buf:
                (addr,) = _UINT.unpack_from(buf.data, bn * _UINT.size)
                if addr == 0:
                    addr = self._balloc()
                    _UINT.pack_into(buf.data, bn * _UINT.size, addr)
                    self.log.log_write(buf)
            return addr
        raise FileSystemError("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.addrs[NDIRECT]) as buf:
                entries = _INDIRECT.unpack_from(buf.data, 0)
            for addr in entries:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of an inode; the caller holds its lock."""
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def _device(self, ip: Inode, op: str) -> Any:
        dev = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        fn = getattr(dev, op, None)
        if fn is None:
            raise FileSystemError(f"no {op} handler for device {ip.major}")
        return fn

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off``; the caller holds the inode's lock."""
        if ip.type == FileType.DEV:
            return self._device(ip, "read")(ip, n)
        if off < 0 or n < 0 or off > ip.size:
            raise FileSystemError(f"read of {n} bytes at {off} out of range")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            pos = off + len(out)
            with self.cache.block(self._bmap(ip, pos // BSIZE)) as buf:
                start = pos % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += buf.data[start : start + m]
        return bytes(out)

    def writei(self, ip: Inode, data: bytes | bytearray, off: int) -> int:
        """Write ``data`` at ``off``; the caller holds the inode's lock."""
        if ip.type == FileType.DEV:
            return self._device(ip, "write")(ip, bytes(data))
        n = len(data)
        if off < 0 or off > ip.size:
            raise FileSystemError(f"write at {off} out of range")
        if off + n > MAXFILE * BSIZE:
            raise FileSystemError("write past the largest file size")
        done = 0
        while done < n:
            pos = off + done
            with self.cache.block(self._bmap(ip, pos // BSIZE)) as buf:
                start = pos % BSIZE
                m = min(n - done, BSIZE - start)
                buf.data[start : start + m] = data[done : done + m]
                self.log.log_write(buf)
            done += m
        end = off + n
        if n > 0 and end > ip.size:
            ip.size = end
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in a directory; return its inode and entry offset, or None."""
        if dp.type != FileType.DIR:
            raise FileSystemError("dirlookup not DIR")
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FileSystemError("dirlookup read")
            de = DirEntry.unpack(raw)
            if de.inum == 0:
                continue
            if namecmp(name, de.name) == 0:
                return self._iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to a directory; the name must be new."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(name)
        off = 0
        while off < dp.size:
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FileSystemError("dirlink read")
            if DirEntry.unpack(raw).inum == 0:
                break
            off += DIRENT_SIZE
        if self.writei(dp, DirEntry(inum, name).pack(), off) != DIRENT_SIZE:
            raise FileSystemError("dirlink")

    # Paths.

    def _namex(
        self, path: str, parent: bool, cwd: Inode | None
    ) -> tuple[Inode, str] | Inode | None:
        if path.startswith("/") or cwd is None:
            ip = self._iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        rest = path
        while (step := skipelem(rest)) is not None:
            name, rest = step
            self.ilock(ip)
            if ip.type != FileType.DIR:
                self.iunlockput(ip)
                return None
            if parent and rest == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            self.iunlockput(ip)
            if found is None:
                return None
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Inode for a path, or None; relative paths start at ``cwd`` (root if None)."""
        result = self._namex(path, False, cwd)
        assert result is None or isinstance(result, Inode)
        return result

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str] | None:
        """Inode of a path's parent directory and the final element, or None."""
        result = self._namex(path, True, cwd)
        assert result is None or isinstance(result, tuple)
        return result