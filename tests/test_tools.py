import pytest

from tinyfs.disk import MemoryDisk
from tinyfs.fs import FileSystem, FsError
from tinyfs.layout import DIRSIZ, ROOTINO, FileType
from tinyfs.mkfs import ImageBuilder
from tinyfs.tools import cat, echo, fmtname, ls, main

README = b"hello world\n"
BIG = bytes(range(256)) * 5


def _image():
    builder = ImageBuilder()
    inums = {
        "README": builder.add_file("README", README),
        "big": builder.add_file("_big", BIG),
    }
    return builder.finish(), inums


@pytest.fixture
def fs_inums():
    image, inums = _image()
    return FileSystem(MemoryDisk(image)), inums


def test_echo():
    assert echo(["a", "b"]) == "a b\n"
    assert echo([]) == ""


def test_fmtname_pads():
    name = fmtname("a/b/c")
    assert len(name) == DIRSIZ
    assert name.rstrip() == "c"


def test_fmtname_long_name_unchanged():
    long = "x" * (DIRSIZ + 2)
    assert fmtname("/dir/" + long) == long


def test_cat_concatenates(fs_inums):
    fs, _ = fs_inums
    assert cat(fs, ["README", "/big"]) == README + BIG
    assert cat(fs, []) == b""


def test_cat_missing(fs_inums):
    fs, _ = fs_inums
    with pytest.raises(FsError):
        cat(fs, ["missing"])


def test_ls_file(fs_inums):
    fs, inums = fs_inums
    expected = f"{fmtname('/README')} {int(FileType.FILE)} {inums['README']} {len(README)}"
    assert ls(fs, "/README") == [expected]


def test_ls_directory(fs_inums):
    fs, inums = fs_inums
    lines = ls(fs, "/")
    names = {line.split()[0] for line in lines}
    assert names == {".", "..", "README", "big"}
    for line in lines:
        name, type_, ino, size = line.split()
        if name == "big":
            assert (int(type_), int(ino), int(size)) == (int(FileType.FILE), inums["big"], len(BIG))
        if name == ".":
            assert int(type_) == int(FileType.DIR)
            assert int(ino) == ROOTINO


def test_ls_dot_same_as_root(fs_inums):
    fs, _ = fs_inums
    assert sorted(line.split()[0] for line in ls(fs, ".")) == sorted(
        line.split()[0] for line in ls(fs, "/")
    )


def test_ls_path_too_long(fs_inums):
    fs, _ = fs_inums
    assert ls(fs, "/" * 500) == ["ls: path too long"]


def test_ls_missing(fs_inums):
    fs, _ = fs_inums
    with pytest.raises(FsError):
        ls(fs, "/nothing")


@pytest.fixture
def image_path(tmp_path):
    image, _ = _image()
    path = tmp_path / "fs.img"
    path.write_bytes(image)
    return str(path)


def test_main_echo(capsys):
    assert main(["echo", "x", "y"]) == 0
    assert capsys.readouterr().out == "x y\n"


def test_main_ls(image_path, capsys):
    assert main(["ls", image_path]) == 0
    out = capsys.readouterr().out
    assert "README" in out
    assert "big" in out


def test_main_cat(image_path, capsysbinary):
    assert main(["cat", image_path, "README"]) == 0
    assert capsysbinary.readouterr().out == README


def test_main_cat_missing(image_path, capsys):
    assert main(["cat", image_path, "missing"]) == 1
    assert "cat: cannot open missing" in capsys.readouterr().out


def test_main_usage():
    assert main([]) == 1
    assert main(["frob", "x"]) == 1