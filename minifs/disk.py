"""A disk that keeps its blocks in memory."""

from __future__ import annotations

from minifs.layout import BSIZE


class DiskError(Exception):
    """Raised for requests the disk cannot serve."""


class MemDisk:
    """Block device backed by a byte array of whole BSIZE blocks."""

    def __init__(
        self,
        image: bytes | bytearray | None = None,
        nblocks: int | None = None,
    ) -> None:
        if image is None:
            if nblocks is None:
                raise ValueError("give either an image or a block count")
            if nblocks < 0:
                raise ValueError("block count must not be negative")
            image = bytes(nblocks * BSIZE)
        elif nblocks is not None:
            raise ValueError("give either an image or a block count, not both")
        self._data = bytearray(image)
        self.nblocks = len(self._data) // BSIZE
        self.reads = 0
        self.writes = 0

    def _check(self, blockno: int) -> int:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"block out of range: {blockno}")
        return blockno * BSIZE

    def read_block(self, blockno: int) -> bytes:
        """Return the contents of one block."""
        start = self._check(blockno)
        self.reads += 1
        return bytes(self._data[start : start + BSIZE])

    def write_block(self, blockno: int, data: bytes | bytearray) -> None:
        """Replace the contents of one block."""
        start = self._check(blockno)
        if len(data) != BSIZE:
            raise ValueError(f"a block is {BSIZE} bytes, got {len(data)}")
        self._data[start : start + BSIZE] = data
        self.writes += 1

    def to_bytes(self) -> bytes:
        """The whole disk image."""
        return bytes(self._data)