import pytest

from minifs.disk import MemDisk
from minifs.fs import FileSystem
from minifs.layout import (
    BSIZE,
    DIRSIZ,
    MAXFILE,
    NDIRECT,
    ROOTINO,
    SUPERBLOCK_SIZE,
    FileType,
    Superblock,
)
from minifs.log import LOGSIZE
from minifs.mkfs import FSSIZE, NINODES, ImageBuilder, build_image, main


def mount(image):
    return FileSystem(MemDisk(image))


def read_file(fs, path):
    ip = fs.namei(path)
    assert ip is not None
    fs.ilock(ip)
    try:
        return fs.readi(ip, 0, ip.size)
    finally:
        fs.iunlock(ip)
        fs.iput(ip)


def test_superblock_layout():
    image = build_image()
    sb = Superblock.unpack(image[BSIZE : BSIZE + SUPERBLOCK_SIZE])
    builder = ImageBuilder()
    assert sb.size == FSSIZE
    assert sb.ninodes == NINODES
    assert sb.nlog == LOGSIZE
    assert sb.logstart == 2
    assert sb.inodestart == sb.logstart + sb.nlog
    assert sb.bmapstart == sb.inodestart + builder.ninodeblocks
    assert sb.bmapstart + builder.nbitmap == builder.nmeta
    assert sb.nblocks + builder.nmeta == sb.size
    assert len(image) == FSSIZE * BSIZE


def test_files_round_trip():
    files = {"README": b"hello\n", "empty": b"", "data": bytes(range(256)) * 3}
    fs = mount(build_image(files))
    for name, data in files.items():
        assert read_file(fs, "/" + name) == data


def test_large_file_uses_indirect_block():
    data = bytes(i % 253 for i in range((NDIRECT + 3) * BSIZE + 7))
    fs = mount(build_image({"big": data}))
    assert read_file(fs, "/big") == data


def test_files_have_one_link():
    fs = mount(build_image({"a": b"abc"}))
    ip = fs.namei("/a")
    fs.ilock(ip)
    st = fs.stati(ip)
    fs.iunlock(ip)
    assert st.nlink == 1
    assert st.type == FileType.FILE
    assert st.size == 3


def test_long_names_are_cut():
    long_name = "averyveryverylongname"
    fs = mount(build_image({long_name: b"x"}))
    assert read_file(fs, "/" + long_name[:DIRSIZ]) == b"x"


def test_bitmap_marks_used_blocks():
    builder = ImageBuilder()
    builder.add_file("f", bytes(BSIZE * 2))
    image = builder.finish()
    start = builder.sb.bmapstart * BSIZE
    bitmap = int.from_bytes(image[start : start + BSIZE], "little")
    assert bitmap == (1 << builder.freeblock) - 1
    assert builder.freeblock > builder.nmeta


def test_inode_numbers_are_sequential():
    builder = ImageBuilder()
    first = builder.add_file("a", b"")
    second = builder.add_file("b", b"")
    assert first == ROOTINO + 1
    assert second == first + 1


def test_slash_in_name_rejected():
    with pytest.raises(ValueError):
        ImageBuilder().add_file("a/b", b"")


def test_file_too_large():
    with pytest.raises(ValueError):
        ImageBuilder().add_file("big", bytes(MAXFILE * BSIZE + 1))


def test_out_of_blocks():
    builder = ImageBuilder(size=100)
    with pytest.raises(ValueError):
        builder.add_file("big", bytes(builder.nblocks * BSIZE + BSIZE))


def test_finish_only_once():
    builder = ImageBuilder()
    builder.finish()
    with pytest.raises(ValueError):
        builder.finish()
    with pytest.raises(ValueError):
        builder.add_file("late", b"")


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage" in capsys.readouterr().err


def test_main_writes_image(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "_cat").write_bytes(b"meow")
    (tmp_path / "notes").write_bytes(b"text")
    assert main(["fs.img", "_cat", "notes"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("nmeta ")
    fs = mount((tmp_path / "fs.img").read_bytes())
    assert read_file(fs, "/cat") == b"meow"
    assert read_file(fs, "/notes") == b"text"
    assert fs.namei("/_cat") is None


def test_main_missing_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "absent"]) == 1
    assert not (tmp_path / "fs.img").exists()