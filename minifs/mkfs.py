"""Build a file system image holding a root directory and a set of files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Iterable, Mapping
from pathlib import Path

from minifs.disk import MemDisk
from minifs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    SUPERBLOCK_SIZE,
    DirEntry,
    DiskInode,
    FileType,
    Superblock,
    inode_block,
)
from minifs.log import LOGSIZE

NINODES = 200
FSSIZE = 1000

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image: boot block, superblock, log, inodes, bitmap, data."""

    def __init__(
        self, size: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE
    ) -> None:
        self.nbitmap = size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = nlog
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        if self.nmeta >= size:
            raise ValueError(f"an image of {size} blocks has no room for data")
        self.nblocks = size - self.nmeta
        self.sb = Superblock(
            size=size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.disk = MemDisk(nblocks=size)
        self.freeblock = self.nmeta
        self._freeinode = 1
        self._finished = False

        block = bytearray(BSIZE)
        block[:SUPERBLOCK_SIZE] = self.sb.pack()
        self.disk.write_block(1, block)

        self.rootino = self.ialloc(FileType.DIR)
        if self.rootino != ROOTINO:
            raise RuntimeError("root inode was not the first one allocated")
        self.iappend(self.rootino, DirEntry(self.rootino, ".").pack())
        self.iappend(self.rootino, DirEntry(self.rootino, "..").pack())

    def _rinode(self, inum: int) -> DiskInode:
        block = self.disk.read_block(inode_block(inum, self.sb))
        off = (inum % IPB) * DINODE_SIZE
        return DiskInode.unpack(block[off : off + DINODE_SIZE])

    def _winode(self, inum: int, din: DiskInode) -> None:
        bn = inode_block(inum, self.sb)
        block = bytearray(self.disk.read_block(bn))
        off = (inum % IPB) * DINODE_SIZE
        block[off : off + DINODE_SIZE] = din.pack()
        self.disk.write_block(bn, block)

    def _take_block(self) -> int:
        if self.freeblock >= self.sb.size:
            raise ValueError("image is out of data blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def _check_open(self) -> None:
        if self._finished:
            raise ValueError("image is already finished")

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with one link; return its number."""
        self._check_open()
        if self._freeinode >= self.sb.ninodes:
            raise ValueError("image is out of inodes")
        inum = self._freeinode
        self._freeinode += 1
        self._winode(inum, DiskInode(type=int(type), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes | bytearray) -> None:
        """Append ``data`` to the contents of inode ``inum``."""
        self._check_open()
        din = self._rinode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError(f"inode {inum} would exceed the largest file size")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._take_block()
                blockno = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._take_block()
                indirect_bn = din.addrs[NDIRECT]
                indirect = list(_INDIRECT.unpack(self.disk.read_block(indirect_bn)))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._take_block()
                    self.disk.write_block(indirect_bn, _INDIRECT.pack(*indirect))
                blockno = indirect[fbn - NDIRECT]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self.disk.read_block(blockno))
            start = off - fbn * BSIZE
            block[start : start + n1] = data[pos : pos + n1]
            self.disk.write_block(blockno, block)
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes | bytearray) -> int:
        """Add a regular file to the root directory; return its inode number."""
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name!r}")
        inum = self.ialloc(FileType.FILE)
        self.iappend(self.rootino, DirEntry(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round the root directory up to whole blocks, write the bitmap, return the image."""
        self._check_open()
        din = self._rinode(self.rootino)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.rootino, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self.disk.write_block(self.sb.bmapstart, bitmap)
        self._finished = True
        return self.disk.to_bytes()


def build_image(
    files: Mapping[str, bytes] | Iterable[tuple[str, bytes]] = (),
) -> bytes:
    """Build an image holding the given (name, contents) files in its root."""
    builder = ImageBuilder()
    items = files.items() if isinstance(files, Mapping) else files
    for name, data in items:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    """Write an image file holding the named files; names lose a leading '_'."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, *names = args

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.sb.size}"
    )

    for name in names:
        if "/" in name:
            print(f"mkfs: file name may not contain '/': {name}", file=sys.stderr)
            return 1
        try:
            data = Path(name).read_bytes()
        except OSError as exc:
            print(f"{name}: {exc.strerror}", file=sys.stderr)
            return 1
        # Binaries carry a leading '_' so the build host never runs them.
        fsname = name[1:] if name.startswith("_") else name
        try:
            builder.add_file(fsname, data)
        except ValueError as exc:
            print(f"mkfs: {exc}", file=sys.stderr)
            return 1

    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        image = builder.finish()
    except ValueError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    try:
        Path(image_path).write_bytes(image)
    except OSError as exc:
        print(f"{image_path}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())