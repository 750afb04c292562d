# minifs

A compact Unix-style file system stored in a disk image of 512-byte blocks,
with the layout

```
[ boot block | super block | log | inode blocks | free bit map | data blocks ]
```

Everything runs in memory: an image is a `bytes` object, read and modified
through a chain of layers, and written back to a host file only by the
command-line tools.

## Modules

- `minifs.layout`: the on-disk format. `Superblock`, `DiskInode` and
  `DirEntry` with `pack()` / `unpack()`, the `FileType` enum (`DIR`, `FILE`,
  `DEV`), and `inode_block(inum, sb)` / `bitmap_block(b, sb)`.
- `minifs.disk`: `MemDisk`, a block device over a byte array
  (`read_block`, `write_block`, `to_bytes`). Out-of-range blocks raise
  `DiskError`.
- `minifs.bcache`: `BufferCache`, a fixed set of `Buffer` objects over one
  disk, recycling the least recently used clean buffer (`read`, `write`,
  `release`, and the `block(blockno)` context manager). Misuse or exhaustion
  raises `CacheError`.
- `minifs.log`: `Log`, a redo log grouping block updates into transactions
  (`begin_op`, `end_op`, `log_write`, the `transaction()` context manager,
  and `recover()`, which installs a committed transaction found on disk).
  Errors raise `LogError`.
- `minifs.fs`: `FileSystem`, with an inode cache, block allocation, file
  content and directories (`ialloc`, `iupdate`, `idup`, `ilock`, `iunlock`,
  `iput`, `iunlockput`, `stati`, `readi`, `writei`, `dirlookup`, `dirlink`,
  `namei`, `nameiparent`), the `Inode` and `Stat` types, and the helpers
  `skipelem` and `namecmp`. Device inodes are served by objects placed in
  `FileSystem.devsw`. Errors raise `FileSystemError`; `dirlink` raises
  `FileExistsError` for a name that is already present.
- `minifs.file`: `FileTable` of reference-counted `OpenFile` slots
  (`alloc`, `dup`, `close`, `stat`, `read`, `write`), each of kind
  `FileKind.INODE` or `FileKind.PIPE`. Large writes are split into several
  log transactions.
- `minifs.pipe`: `Pipe`, a bounded (512-byte) blocking pipe; writing with the
  read end closed raises `PipeError`.
- `minifs.mkfs`: `ImageBuilder` (`ialloc`, `iappend`, `add_file`, `finish`)
  and `build_image(files)`, which create a fresh image whose root directory
  holds the given files.
- `minifs.kbd`: `Keyboard`, turning PC scan codes into character codes while
  tracking Shift, Ctrl, Caps Lock and E0 escapes (`feed`, `decode`).
- `minifs.console`: `ConsoleInput`, a line-editing input buffer (backspace,
  Control-U, Control-D as end of file, Control-P calling a `procdump`
  callback) with `interrupt` and `read`, and `format_kernel`, a formatter
  for `%d %x %p %s %%`.
- `minifs.printf`: `format_user`, a formatter for `%d %x %p %s %c %%`
  (hexadecimal in upper case).
- `minifs.grep`: `match`, `matchhere`, `matchstar` for patterns using
  `^ . * $`, and `grep(pattern, stream)`, yielding matching lines.
- `minifs.ls`: `fmtname` and `ls(fs, path)`, returning listing lines.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Command-line tools

Build an image from host files. A leading `_` is dropped from each name
stored in the image; names must not contain `/`:

```
minifs-mkfs fs.img README _cat _ls
```

Print the lines matching a pattern (`^`, `.`, `*`, `$`), reading standard
input when no file is given:

```
minifs-grep 'fo*' notes.txt
```

List paths inside an image, one line per entry as
`name type inode-number size`; with no path the root is listed:

```
minifs-ls fs.img /
```

## Library use

```python
from minifs.disk import MemDisk
from minifs.fs import FileSystem
from minifs.grep import match
from minifs.mkfs import build_image
from minifs.printf import format_user

image = build_image({"hello.txt": b"hello, world\n"})

fs = FileSystem(MemDisk(image))
with fs.log.transaction():
    ip = fs.namei("/hello.txt")
    fs.ilock(ip)
    data = fs.readi(ip, 0, 100)      # b"hello, world\n"
    fs.iunlockput(ip)

match("^hel*o", "hello")             # True
format_user("%d items in %s\n", 3, "root")
```

## What it does not do

- There are no processes, system calls or shell: the layers are called
  directly from Python.
- `FileSystem` has no ready-made operations to create, rename or delete
  files or directories; callers compose them from `ialloc`, `dirlink`,
  `writei` and `iput`. `minifs-mkfs` only places files in the root directory.
- There is no disk driver and no screen: images live in memory, the
  keyboard decoder takes scan codes from the caller, and console echo is
  collected in `ConsoleInput.output`.