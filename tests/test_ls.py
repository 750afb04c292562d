import pytest

from minifs.disk import MemDisk
from minifs.fs import FileSystem
from minifs.layout import BSIZE, DIRSIZ, FileType
from minifs.ls import fmtname, ls, main
from minifs.mkfs import build_image

README = b"hello"


@pytest.fixture
def image():
    return build_image({"README": README, "notes": b"n" * 700})


@pytest.fixture
def fs(image):
    return FileSystem(MemDisk(image))


def test_fmtname_pads_short_name():
    name = fmtname("a/b/c")
    assert len(name) == DIRSIZ
    assert name.rstrip() == "c"


def test_fmtname_without_slash():
    assert fmtname("file").rstrip() == "file"


def test_fmtname_long_name_unchanged():
    long = "x" * (DIRSIZ + 3)
    assert fmtname("dir/" + long) == long


def test_ls_root_lists_entries(fs):
    lines = ls(fs, "/")
    assert [line.split()[0] for line in lines] == [".", "..", "README", "notes"]


def test_ls_root_dir_entries_are_directories(fs):
    lines = ls(fs, "/")
    dot = lines[0].split()
    assert int(dot[1]) == FileType.DIR
    assert int(dot[3]) == BSIZE


def test_ls_file(fs):
    lines = ls(fs, "/README")
    assert len(lines) == 1
    name, type_, _ino, size = lines[0].split()
    assert name == "README"
    assert int(type_) == FileType.FILE
    assert int(size) == len(README)


def test_ls_file_line_matches_directory_line(fs):
    in_dir = [line for line in ls(fs, "/") if line.startswith("notes")]
    assert in_dir == ls(fs, "/notes")


def test_ls_dot_same_as_root(fs):
    assert ls(fs, ".") == ls(fs, "/")


def test_ls_missing(fs):
    with pytest.raises(FileNotFoundError):
        ls(fs, "/missing")


def test_ls_path_too_long(fs):
    with pytest.raises(ValueError):
        ls(fs, "/" * 600)


def test_ls_leaves_no_transaction_open(fs):
    ls(fs, "/")
    assert fs.log.outstanding == 0


def test_main_lists_root(tmp_path, capsys, image):
    path = tmp_path / "fs.img"
    path.write_bytes(image)
    assert main([str(path)]) == 0
    out = capsys.readouterr().out.splitlines()
    assert [line.split()[0] for line in out] == [".", "..", "README", "notes"]


def test_main_missing_path(tmp_path, capsys, image):
    path = tmp_path / "fs.img"
    path.write_bytes(image)
    assert main([str(path), "/nothing"]) == 0
    assert "ls: cannot open /nothing" in capsys.readouterr().err


def test_main_usage(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().err