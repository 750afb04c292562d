import pytest

from minifs.disk import MemDisk
from minifs.fs import (
    FileSystem,
    FileSystemError,
    Stat,
    namecmp,
    skipelem,
)
from minifs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    FileType,
    Superblock,
    inode_block,
)

FSSIZE = 1000
NLOG = 30
NINODES = 200


def make_disk():
    ninodeblocks = NINODES // IPB + 1
    nbitmap = FSSIZE // BPB + 1
    nmeta = 2 + NLOG + ninodeblocks + nbitmap
    sb = Superblock(
        size=FSSIZE,
        nblocks=FSSIZE - nmeta,
        ninodes=NINODES,
        nlog=NLOG,
        logstart=2,
        inodestart=2 + NLOG,
        bmapstart=2 + NLOG + ninodeblocks,
    )
    disk = MemDisk(nblocks=FSSIZE)
    disk.write_block(1, sb.pack().ljust(BSIZE, b"\0"))

    rootblock = nmeta
    root = DiskInode(type=FileType.DIR, nlink=1, size=BSIZE)
    root.addrs[0] = rootblock
    iblock = bytearray(disk.read_block(inode_block(ROOTINO, sb)))
    off = (ROOTINO % IPB) * DINODE_SIZE
    iblock[off : off + DINODE_SIZE] = root.pack()
    disk.write_block(inode_block(ROOTINO, sb), bytes(iblock))

    entries = DirEntry(ROOTINO, ".").pack() + DirEntry(ROOTINO, "..").pack()
    disk.write_block(rootblock, entries.ljust(BSIZE, b"\0"))

    bitmap = bytearray(BSIZE)
    for b in range(nmeta + 1):
        bitmap[b // 8] |= 1 << (b % 8)
    disk.write_block(sb.bmapstart, bytes(bitmap))
    return disk


def used_blocks(fs):
    with fs.cache.block(fs.sb.bmapstart) as buf:
        return sum(bin(byte).count("1") for byte in buf.data)


def create(fs, name, type=FileType.FILE, major=0):
    root = fs.namei("/")
    with fs.log.transaction():
        ip = fs.ialloc(type)
        fs.ilock(ip)
        ip.nlink = 1
        ip.major = major
        fs.iupdate(ip)
        fs.iunlock(ip)
        fs.ilock(root)
        fs.dirlink(root, name, ip.inum)
        fs.iunlockput(root)
    return ip


@pytest.fixture
def disk():
    return make_disk()


@pytest.fixture
def fs(disk):
    return FileSystem(disk)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("a/bb/c", ("a", "bb/c")),
        ("///a//bb", ("a", "bb")),
        ("a", ("a", "")),
        ("", None),
        ("////", None),
    ],
)
def test_skipelem_examples(path, expected):
    assert skipelem(path) == expected


def test_skipelem_truncates_long_names():
    name, rest = skipelem("/" + "x" * 20 + "/y")
    assert name == "x" * DIRSIZ
    assert rest == "y"


def test_namecmp():
    assert namecmp("abc", "abc") == 0
    assert namecmp("a" * DIRSIZ + "zz", "a" * DIRSIZ + "qq") == 0
    assert namecmp("abc", "abd") < 0
    assert namecmp("abd", "abc") > 0


def test_root_lookup(fs):
    root = fs.namei("/")
    assert root.inum == ROOTINO
    assert fs.namei("/..").inum == ROOTINO
    assert fs.namei("/./.").inum == ROOTINO


def test_stati_root(fs):
    root = fs.namei("/")
    fs.ilock(root)
    st = fs.stati(root)
    fs.iunlock(root)
    assert st == Stat(dev=fs.dev, ino=ROOTINO, type=FileType.DIR, nlink=1, size=BSIZE)


def test_create_write_read(fs):
    ip = create(fs, "hello")
    found = fs.namei("/hello")
    assert found is ip
    with fs.log.transaction():
        fs.ilock(ip)
        assert fs.writei(ip, b"hello world", 0) == len(b"hello world")
        fs.iunlock(ip)
    fs.ilock(ip)
    assert fs.readi(ip, 0, 100) == b"hello world"
    assert fs.readi(ip, 6, 100) == b"world"
    assert fs.stati(ip).size == len(b"hello world")
    fs.iunlock(ip)


def test_data_survives_remount(disk, fs):
    ip = create(fs, "keep")
    with fs.log.transaction():
        fs.ilock(ip)
        fs.writei(ip, b"persistent", 0)
        fs.iunlock(ip)
    again = FileSystem(disk)
    ip2 = again.namei("/keep")
    again.ilock(ip2)
    assert again.readi(ip2, 0, 64) == b"persistent"
    again.iunlock(ip2)


def test_large_file_uses_indirect_block(fs):
    ip = create(fs, "big")
    data = bytes(range(256)) * ((NDIRECT + 2) * BSIZE // 256)
    split = NDIRECT * BSIZE
    for off in (0, split):
        with fs.log.transaction():
            fs.ilock(ip)
            chunk = data[off : off + split]
            assert fs.writei(ip, chunk, off) == len(chunk)
            fs.iunlock(ip)
    fs.ilock(ip)
    assert ip.addrs[NDIRECT] != 0
    assert fs.readi(ip, 0, len(data)) == data
    fs.iunlock(ip)


def test_write_past_max_file_fails(fs):
    ip = create(fs, "huge")
    with fs.log.transaction():
        fs.ilock(ip)
        with pytest.raises(FileSystemError):
            fs.writei(ip, bytes(MAXFILE * BSIZE + 1), 0)
        fs.iunlock(ip)


def test_read_and_write_beyond_size_fail(fs):
    ip = create(fs, "small")
    fs.ilock(ip)
    with pytest.raises(FileSystemError):
        fs.readi(ip, 1, 1)
    fs.iunlock(ip)
    with fs.log.transaction():
        fs.ilock(ip)
        with pytest.raises(FileSystemError):
            fs.writei(ip, b"x", 5)
        fs.iunlock(ip)


def test_dirlink_duplicate(fs):
    ip = create(fs, "dup")
    root = fs.namei("/")
    with fs.log.transaction():
        fs.ilock(root)
        with pytest.raises(FileExistsError):
            fs.dirlink(root, "dup", ip.inum)
        fs.iunlock(root)


def test_dirlookup_reports_offset(fs):
    create(fs, "first")
    root = fs.namei("/")
    fs.ilock(root)
    found = fs.dirlookup(root, "first")
    missing = fs.dirlookup(root, "nothere")
    fs.iunlock(root)
    assert found[1] == 2 * len(DirEntry().pack())
    assert missing is None


def test_dirlookup_on_file_raises(fs):
    ip = create(fs, "plain")
    fs.ilock(ip)
    with pytest.raises(FileSystemError):
        fs.dirlookup(ip, "x")
    fs.iunlock(ip)


def test_namei_missing_and_through_file(fs):
    create(fs, "afile")
    assert fs.namei("/missing") is None
    assert fs.namei("/afile/inside") is None


def test_nameiparent(fs):
    parent, name = fs.nameiparent("/newname")
    assert parent.inum == ROOTINO
    assert name == "newname"
    assert fs.nameiparent("/") is None


def test_relative_lookup_uses_cwd(fs):
    sub = create(fs, "sub", type=FileType.DIR)
    with fs.log.transaction():
        fs.ilock(sub)
        fs.dirlink(sub, "self", sub.inum)
        fs.iunlock(sub)
    assert fs.namei("self", sub) is sub


def test_freeing_inode_returns_blocks(fs):
    before = used_blocks(fs)
    ip = create(fs, "temp")
    with fs.log.transaction():
        fs.ilock(ip)
        fs.writei(ip, bytes(3 * BSIZE), 0)
        fs.iunlock(ip)
    assert used_blocks(fs) == before + 3
    inum = ip.inum
    with fs.log.transaction():
        fs.ilock(ip)
        ip.nlink = 0
        fs.iupdate(ip)
        fs.iunlock(ip)
        fs.iput(ip)
    assert used_blocks(fs) == before
    with fs.log.transaction():
        again = fs.ialloc(FileType.FILE)
    assert again.inum == inum


def test_idup_adds_reference(fs):
    root = fs.namei("/")
    before = root.ref
    assert fs.idup(root) is root
    assert root.ref == before + 1


def test_lock_errors(fs):
    root = fs.namei("/")
    with pytest.raises(FileSystemError):
        fs.iunlock(root)
    with pytest.raises(FileSystemError):
        fs.ilock(None)
    fs.ilock(root)
    with pytest.raises(FileSystemError):
        fs.iput(root)
    fs.iunlock(root)


def test_inode_cache_exhausted(disk):
    small = FileSystem(disk, ninode=1)
    small.namei("/")
    with small.log.transaction():
        with pytest.raises(FileSystemError):
            small.ialloc(FileType.FILE)


class EchoDevice:
    def __init__(self):
        self.written = b""

    def read(self, ip, n):
        return b"z" * n

    def write(self, ip, data):
        self.written += data
        return len(data)


def test_device_dispatch(fs):
    device = EchoDevice()
    fs.devsw[1] = device
    ip = create(fs, "console", type=FileType.DEV, major=1)
    fs.ilock(ip)
    assert fs.readi(ip, 0, 4) == b"zzzz"
    assert fs.writei(ip, b"abc", 0) == 3
    fs.iunlock(ip)
    assert device.written == b"abc"


def test_device_without_handler(fs):
    ip = create(fs, "nodev", type=FileType.DEV, major=2)
    fs.ilock(ip)
    with pytest.raises(FileSystemError):
        fs.readi(ip, 0, 1)
    fs.iunlock(ip)