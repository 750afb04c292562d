"""List files and directories of a file system image."""

from __future__ import annotations

import sys
from pathlib import Path

from minifs.disk import MemDisk
from minifs.fs import FileSystem, Inode
from minifs.layout import DIRENT_SIZE, DIRSIZ, DirEntry, FileType

_PATHBUF = 512


def fmtname(path: str) -> str:
    """The last element of ``path``, padded with blanks to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(path: str, st_type: int, ino: int, size: int) -> str:
    return f"{fmtname(path)} {int(st_type)} {ino} {size}"


def _entries(fs: FileSystem, dp: Inode) -> list[str]:
    names = []
    off = 0
    while off < dp.size:
        raw = fs.readi(dp, off, DIRENT_SIZE)
        if len(raw) != DIRENT_SIZE:
            break
        off += DIRENT_SIZE
        de = DirEntry.unpack(raw)
        if de.inum != 0:
            names.append(de.name)
    return names


def _stat_path(fs: FileSystem, path: str):
    ip = fs.namei(path)
    if ip is None:
        return None
    try:
        fs.ilock(ip)
        try:
            return fs.stati(ip)
        finally:
            fs.iunlock(ip)
    finally:
        fs.iput(ip)


def ls(fs: FileSystem, path: str) -> list[str]:
    """Listing lines for ``path``: name, type, inode number and size.

    Raises FileNotFoundError if the path does not exist and ValueError if a
    directory's path is too long to extend with entry names.
    """
    with fs.log.transaction():
        ip = fs.namei(path)
        if ip is None:
            raise FileNotFoundError(f"cannot open {path}")
        try:
            fs.ilock(ip)
            try:
                st = fs.stati(ip)
                names = _entries(fs, ip) if st.type == FileType.DIR else []
            finally:
                fs.iunlock(ip)
        finally:
            fs.iput(ip)

        if st.type == FileType.FILE:
            return [_line(path, st.type, st.ino, st.size)]
        if st.type != FileType.DIR:
            return []
        if len(path) + 1 + DIRSIZ + 1 > _PATHBUF:
            raise ValueError("path too long")

        lines = []
        for name in names:
            full = f"{path}/{name}"
            sub = _stat_path(fs, full)
            if sub is None:
                lines.append(f"ls: cannot stat {full}")
                continue
            lines.append(_line(full, sub.type, sub.ino, sub.size))
        return lines


def main(argv: list[str] | None = None) -> int:
    """List paths inside an image file; with no paths, list the root."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: ls image [path ...]", file=sys.stderr)
        return 1
    image_path, *paths = args
    try:
        image = Path(image_path).read_bytes()
    except OSError as exc:
        print(f"ls: {image_path}: {exc.strerror}", file=sys.stderr)
        return 1
    fs = FileSystem(MemDisk(image))
    for path in paths or ["."]:
        try:
            lines = ls(fs, path)
        except FileNotFoundError:
            print(f"ls: cannot open {path}", file=sys.stderr)
            continue
        except ValueError:
            print("ls: path too long")
            continue
        for line in lines:
            print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())