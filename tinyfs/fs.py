"""Inodes, directories and path names on top of the buffer cache and the log.

Inodes live in a small in-memory table that also serves as the point of
synchronisation for concurrent users. A typical sequence is::

    ip = fs.iget(inum)
    fs.ilock(ip)
    ... examine and modify ip ...
    fs.iunlock(ip)
    fs.iput(ip)

Any call that may modify the disk, including iput, must run inside
``fs.transaction()``.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Mapping

from .bio import BufferCache, Panic, _SleepLock
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTDEV,
    ROOTINO,
    DInode,
    Dirent,
    FileType,
    Stat,
    Superblock,
    bitmap_block,
    inode_block,
)
from .log import Log

CONSOLE = 1

_ADDR = struct.Struct("<I")


class FsError(Exception):
    """A file-system request that cannot be carried out."""


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode plus the bookkeeping that is not on disk."""

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
    _lock: _SleepLock = field(default_factory=_SleepLock, repr=False)

    @property
    def locked(self) -> bool:
        """True if the calling thread holds this inode's lock."""
        return self._lock.holding()


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first element of a path.

    Returns the element (cut to DIRSIZ characters) and the rest of the path
    without leading slashes, or None if the path holds no element.
    """
    path = path.lstrip("/")
    if not path:
        return None
    name, sep, rest = path.partition("/")
    return name[:DIRSIZ], rest.lstrip("/")


def namecmp(s: str, t: str) -> int:
    """Compare two directory entry names over their first DIRSIZ characters."""
    a, b = s[:DIRSIZ], t[:DIRSIZ]
    return (a > b) - (a < b)


class FileSystem:
    """A file system on one device, reached through a buffer cache."""

    def __init__(
        self,
        storage,
        dev: int = ROOTDEV,
        devsw: Mapping[int, object] | None = None,
    ) -> None:
        if hasattr(storage, "read_block"):
            storage = BufferCache({dev: storage})
        self.cache: BufferCache = storage
        self.dev = dev
        self.devsw: dict[int, object] = dict(devsw or {})
        with self.cache.block(dev, 1) as b:
            self.sb = Superblock.unpack(b.data)
        self.log = Log(self.cache, dev, self.sb)
        self._icache_lock = threading.Lock()
        self._icache = [Inode() for _ in range(NINODE)]

    @contextmanager
    def transaction(self) -> Iterator[FileSystem]:
        """Run a with-block as one file-system operation of the log."""
        with self.log.transaction():
            yield self

    # Blocks.

    def _bzero(self, bno: int) -> None:
        with self.cache.block(self.dev, bno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.log_write(bp)

    def _balloc(self) -> int:
        for base in range(0, self.sb.size, BPB):
            found = None
            with self.cache.block(self.dev, bitmap_block(base, self.sb)) as bp:
                for bi in range(min(BPB, self.sb.size - base)):
                    m = 1 << (bi % 8)
                    if bp.data[bi // 8] & m == 0:
                        bp.data[bi // 8] |= m
                        self.log.log_write(bp)
                        found = base + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        raise Panic("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        with self.cache.block(self.dev, bitmap_block(b, self.sb)) as bp:
            bi = b % BPB
            m = 1 << (bi % 8)
            if bp.data[bi // 8] & m == 0:
                raise Panic("freeing free block")
            bp.data[bi // 8] &= ~m & 0xFF
            self.log.log_write(bp)

    # Inodes.

    def _inode_offset(self, inum: int) -> int:
        return (inum % IPB) * DINODE_SIZE

    def ialloc(self, type: int) -> Inode:
        """Allocate a free inode of the given type; returned unlocked and referenced."""
        for inum in range(1, self.sb.ninodes):
            with self.cache.block(self.dev, inode_block(inum, self.sb)) as bp:
                off = self._inode_offset(inum)
                dip = DInode.unpack(bytes(bp.data[off : off + DINODE_SIZE]))
                if dip.type != 0:
                    continue
                bp.data[off : off + DINODE_SIZE] = DInode(type=int(type)).pack()
                self.log.log_write(bp)
            return self.iget(inum)
        raise Panic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        with self.cache.block(ip.dev, inode_block(ip.inum, self.sb)) as bp:
            off = self._inode_offset(ip.inum)
            dip = DInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
            bp.data[off : off + DINODE_SIZE] = dip.pack()
            self.log.log_write(bp)

    def iget(self, inum: int) -> Inode:
        """Return the in-memory inode for inum, neither locked nor read from disk."""
        with self._icache_lock:
            empty = None
            for ip in self._icache:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise Panic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Take another reference to ip."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock ip, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise Panic("ilock")
        ip._lock.acquire()
        if not ip.valid:
            with self.cache.block(ip.dev, inode_block(ip.inum, self.sb)) as bp:
                off = self._inode_offset(ip.inum)
                dip = DInode.unpack(bytes(bp.data[off : off + DINODE_SIZE]))
            ip.type = dip.type
            ip.major = dip.major
            ip.minor = dip.minor
            ip.nlink = dip.nlink
            ip.size = dip.size
            ip.addrs = list(dip.addrs)
            ip.valid = True
            if ip.type == 0:
                ip._lock.release()
                raise Panic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        """Unlock ip."""
        if ip is None or not ip._lock.holding() or ip.ref < 1:
            raise Panic("iunlock")
        ip._lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        ip._lock.acquire()
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
            ip._lock.release()
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock ip, then drop the reference."""
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self._balloc()
                    _ADDR.pack_into(bp.data, bn * _ADDR.size, addr)
                    self.log.log_write(bp)
            return addr
        raise Panic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i, addr in enumerate(ip.addrs[:NDIRECT]):
            if addr:
                self._bfree(addr)
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                indirect = struct.unpack_from(f"<{NINDIRECT}I", bp.data)
            for addr in indirect:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(type=ip.type, dev=ip.dev, ino=ip.inum, nlink=ip.nlink, size=ip.size)

    def _device(self, ip: Inode, op: str):
        dev = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        if dev is None or not hasattr(dev, op):
            raise FsError(f"no {op} for device {ip.major}")
        return getattr(dev, op)

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to n bytes at off from a locked inode."""
        if ip.type == FileType.DEV:
            return self._device(ip, "read")(n)
        if off < 0 or n < 0 or off > ip.size:
            raise FsError(f"read at offset {off} beyond size {ip.size}")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            with self.cache.block(ip.dev, self._bmap(ip, off // BSIZE)) as bp:
                start = off % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += bp.data[start : start + m]
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write data at off into a locked inode; return the number of bytes written."""
        if ip.type == FileType.DEV:
            return self._device(ip, "write")(data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise FsError(f"write at offset {off} beyond size {ip.size}")
        if off + n > MAXFILE * BSIZE:
            raise FsError("write past the largest file size")
        tot = 0
        while tot < n:
            with self.cache.block(ip.dev, self._bmap(ip, off // BSIZE)) as bp:
                start = off % BSIZE
                m = min(n - tot, BSIZE - start)
                bp.data[start : start + m] = data[tot : tot + m]
                self.log.log_write(bp)
            tot += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find name in locked directory dp; return its inode and entry offset."""
        if dp.type != FileType.DIR:
            raise Panic("dirlookup not DIR")
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise Panic("dirlookup read")
            de = Dirent.unpack(raw)
            if de.inum == 0:
                continue
            if namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add an entry (name, inum) to locked directory dp."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FsError(f"{name!r} already exists")
        off = -(-dp.size // DIRENT_SIZE) * DIRENT_SIZE
        for candidate in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, candidate, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise Panic("dirlink read")
            if Dirent.unpack(raw).inum == 0:
                off = candidate
                break
        entry = Dirent(inum, name[:DIRSIZ]).pack()
        try:
            written = self.writei(dp, entry, off)
        except FsError as exc:
            raise Panic("dirlink") from exc
        if written != DIRENT_SIZE:
            raise Panic("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None) -> tuple[Inode, str]:
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (elem := skipelem(path)) is not None:
            name, path = elem
            self.ilock(ip)
            if ip.type != FileType.DIR:
                self.iunlockput(ip)
                raise FsError(f"{name!r} lies under a non-directory")
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                raise FsError(f"{name!r} not found")
            self.iunlockput(ip)
            ip = found[0]
        if parent:
            self.iput(ip)
            raise FsError("path has no final element")
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode:
        """Return the referenced, unlocked inode that path names."""
        return self._namex(path, False, cwd)[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str]:
        """Return the parent directory of path's final element and that element."""
        return self._namex(path, True, cwd)