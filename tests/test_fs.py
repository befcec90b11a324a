import pytest

from tinyfs.bio import Panic
from tinyfs.disk import MemoryDisk
from tinyfs.fs import FileSystem, FsError, namecmp, skipelem
from tinyfs.layout import (
    BPB,
    BSIZE,
    DIRENT_SIZE,
    DIRSIZ,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    ROOTINO,
    FileType,
    Superblock,
)

NINODES = 200


def _format() -> MemoryDisk:
    disk = MemoryDisk()
    ninodeblocks = NINODES // IPB + 1
    nbitmap = FSSIZE // BPB + 1
    nmeta = 2 + LOGSIZE + ninodeblocks + nbitmap
    sb = Superblock(
        size=FSSIZE,
        nblocks=FSSIZE - nmeta,
        ninodes=NINODES,
        nlog=LOGSIZE,
        logstart=2,
        inodestart=2 + LOGSIZE,
        bmapstart=2 + LOGSIZE + ninodeblocks,
    )
    disk.write_block(1, sb.pack().ljust(BSIZE, b"\0"))
    bitmap = bytearray(BSIZE)
    for i in range(nmeta):
        bitmap[i // 8] |= 1 << (i % 8)
    disk.write_block(sb.bmapstart, bytes(bitmap))
    fs = FileSystem(disk)
    with fs.transaction():
        root = fs.ialloc(FileType.DIR)
        fs.ilock(root)
        root.nlink = 1
        fs.iupdate(root)
        fs.dirlink(root, ".", root.inum)
        fs.dirlink(root, "..", root.inum)
        fs.iunlockput(root)
    return disk


@pytest.fixture
def disk():
    return _format()


@pytest.fixture
def fs(disk):
    return FileSystem(disk)


def _create(fs, parent, name, type_=FileType.FILE):
    with fs.transaction():
        ip = fs.ialloc(type_)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        fs.ilock(parent)
        fs.dirlink(parent, name, ip.inum)
        fs.iunlock(parent)
        fs.iunlock(ip)
    return ip


def _write(fs, ip, data, chunk=3 * BSIZE):
    for start in range(0, len(data), chunk):
        with fs.transaction():
            fs.ilock(ip)
            fs.writei(ip, data[start : start + chunk], start)
            fs.iunlock(ip)


def _read(fs, ip, off, n):
    with fs.transaction():
        fs.ilock(ip)
        try:
            return fs.readi(ip, off, n)
        finally:
            fs.iunlock(ip)


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
    long = "x" * (DIRSIZ + 5)
    assert skipelem(long + "/y") == ("x" * DIRSIZ, "y")


def test_namecmp_ignores_beyond_dirsiz():
    base = "n" * DIRSIZ
    assert namecmp(base + "a", base + "b") == 0
    assert namecmp("abc", "abd") < 0
    assert namecmp("abd", "abc") > 0


def test_root_lookup(fs):
    with fs.transaction():
        root = fs.namei("/")
        assert root.inum == ROOTINO
        fs.ilock(root)
        st = fs.stati(root)
        fs.iunlockput(root)
    assert st.type == FileType.DIR
    assert st.size == 2 * DIRENT_SIZE


def test_dot_entries_offsets(fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
        fs.ilock(root)
        dot, off_dot = fs.dirlookup(root, ".")
        dotdot, off_dotdot = fs.dirlookup(root, "..")
        missing = fs.dirlookup(root, "nope")
        fs.iunlock(root)
        fs.iput(dot)
        fs.iput(dotdot)
        fs.iput(root)
    assert (off_dot, off_dotdot) == (0, DIRENT_SIZE)
    assert dot is root and dotdot is root
    assert missing is None


def test_write_read_round_trip_and_persistence(disk, fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
    ip = _create(fs, root, "hello")
    _write(fs, ip, b"hello world")
    assert _read(fs, ip, 0, 100) == b"hello world"
    assert _read(fs, ip, 6, 5) == b"world"

    again = FileSystem(disk)
    with again.transaction():
        found = again.namei("/hello")
        again.ilock(found)
        data = again.readi(found, 0, 100)
        st = again.stati(found)
        again.iunlockput(found)
    assert data == b"hello world"
    assert st.size == len(b"hello world")
    assert st.ino == ip.inum


def test_large_file_uses_indirect_blocks(fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
    ip = _create(fs, root, "big")
    data = bytes(i % 251 for i in range((NDIRECT + 3) * BSIZE))
    _write(fs, ip, data)
    assert _read(fs, ip, 0, len(data)) == data
    assert ip.addrs[NDIRECT] != 0
    assert len(set(ip.addrs)) == NDIRECT + 1


def test_read_past_size_raises(fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
    ip = _create(fs, root, "f")
    _write(fs, ip, b"abc")
    with pytest.raises(FsError):
        _read(fs, ip, 4, 1)
    assert _read(fs, ip, 3, 10) == b""


def test_write_limits(fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
    ip = _create(fs, root, "f")
    with fs.transaction():
        fs.ilock(ip)
        with pytest.raises(FsError):
            fs.writei(ip, b"x", 1)
        with pytest.raises(FsError):
            fs.writei(ip, bytes(MAXFILE * BSIZE + 1), 0)
        fs.iunlock(ip)
    assert ip.size == 0


def test_dirlink_duplicate_raises(fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
    _create(fs, root, "dup")
    with fs.transaction():
        fs.ilock(root)
        with pytest.raises(FsError):
            fs.dirlink(root, "dup", 5)
        fs.iunlock(root)
        assert root.size == 3 * DIRENT_SIZE


def test_namei_errors(fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
    _create(fs, root, "file")
    with fs.transaction():
        with pytest.raises(FsError):
            fs.namei("/missing")
        with pytest.raises(FsError):
            fs.namei("/file/inner")
        with pytest.raises(FsError):
            fs.nameiparent("/")
    assert root.ref >= 1


def test_nameiparent_and_relative_paths(fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
    sub = _create(fs, root, "sub", FileType.DIR)
    inner = _create(fs, sub, "inner")
    with fs.transaction():
        parent, name = fs.nameiparent("/sub//inner")
        found = fs.namei("inner", cwd=sub)
        assert parent is sub
        assert name == "inner"
        assert found is inner
        fs.iput(parent)
        fs.iput(found)


def test_iget_shares_and_counts_refs(fs):
    with fs.transaction():
        a = fs.iget(ROOTINO)
        before = a.ref
        b = fs.iget(ROOTINO)
        assert a is b
        assert b.ref == before + 1
        fs.idup(a)
        assert a.ref == before + 2
        fs.iput(a)
        fs.iput(a)
        fs.iput(a)


def test_iput_frees_unlinked_inode(fs):
    with fs.transaction():
        ip = fs.ialloc(FileType.FILE)
        inum = ip.inum
        fs.ilock(ip)
        fs.writei(ip, b"temporary", 0)
        first_block = ip.addrs[0]
        fs.iunlockput(ip)
    assert ip.type == 0
    assert ip.addrs[0] == 0
    with fs.transaction():
        again = fs.ialloc(FileType.FILE)
        fs.ilock(again)
        fs.writei(again, b"x", 0)
        reused = again.addrs[0]
        again.nlink = 1
        fs.iupdate(again)
        fs.iunlockput(again)
    assert again.inum == inum
    assert reused == first_block


def test_ilock_free_inode_panics(fs):
    with fs.transaction():
        ip = fs.iget(NINODES - 1)
        with pytest.raises(Panic):
            fs.ilock(ip)
        fs.iput(ip)
    assert ip.ref == 0


def test_iunlock_without_lock_panics(fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
        with pytest.raises(Panic):
            fs.iunlock(root)
        fs.iput(root)


def test_dirlookup_on_file_panics(fs):
    with fs.transaction():
        root = fs.iget(ROOTINO)
    ip = _create(fs, root, "plain")
    with fs.transaction():
        fs.ilock(ip)
        with pytest.raises(Panic):
            fs.dirlookup(ip, "x")
        fs.iunlock(ip)


class _FakeDevice:
    def __init__(self):
        self.written = b""

    def read(self, n):
        return b"k" * n

    def write(self, data):
        self.written += data
        return len(data)


def test_device_inode_dispatches_to_devsw(disk):
    device = _FakeDevice()
    fs = FileSystem(disk, devsw={1: device})
    with fs.transaction():
        ip = fs.ialloc(FileType.DEV)
        fs.ilock(ip)
        ip.major = 1
        ip.nlink = 1
        fs.iupdate(ip)
        assert fs.writei(ip, b"abc", 0) == 3
        assert fs.readi(ip, 0, 4) == b"kkkk"
        ip.major = 2
        with pytest.raises(FsError):
            fs.readi(ip, 0, 1)
        fs.iunlockput(ip)
    assert device.written == b"abc"