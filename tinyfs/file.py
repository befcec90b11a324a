"""Open files: a table of reference-counted handles on inodes and pipes."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass

from .bio import Panic
from .fs import FileSystem, FsError, Inode
from .layout import BSIZE, MAXOPBLOCKS, NFILE, Stat
from .pipe import Pipe

# Write a few blocks per transaction so as not to exceed the log: room for
# the inode, an indirect block, allocation blocks and two blocks of slop.
_MAXWRITE = ((MAXOPBLOCKS - 1 - 1 - 2) // 2) * BSIZE


class FileKind(enum.Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class File:
    """An open file."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """The system-wide table of open files."""

    def __init__(self, fs: FileSystem | None = None, nfile: int = NFILE) -> None:
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [File() for _ in range(nfile)]

    def _require_fs(self) -> FileSystem:
        if self.fs is None:
            raise FsError("no file system attached")
        return self.fs

    def alloc(self) -> File:
        """Take a free entry from the table."""
        with self._lock:
            for f in self._files:
                if f.ref == 0:
                    f.ref = 1
                    return f
        raise FsError("file table full")

    def dup(self, f: File) -> File:
        """Take another reference to f."""
        with self._lock:
            if f.ref < 1:
                raise Panic("filedup")
            f.ref += 1
        return f

    def close(self, f: File) -> None:
        """Drop a reference to f, releasing what it holds on the last one."""
        with self._lock:
            if f.ref < 1:
                raise Panic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = None
            f.ip = None
            f.readable = f.writable = False
            f.off = 0
        if kind is FileKind.PIPE:
            pipe.close(writable)
        elif kind is FileKind.INODE:
            fs = self._require_fs()
            with fs.transaction():
                fs.iput(ip)

    def stat(self, f: File) -> Stat:
        """Metadata of the inode behind f."""
        if f.kind is not FileKind.INODE:
            raise FsError("not an inode")
        fs = self._require_fs()
        fs.ilock(f.ip)
        try:
            return fs.stati(f.ip)
        finally:
            fs.iunlock(f.ip)

    def read(self, f: File, n: int) -> bytes:
        """Read up to n bytes from f."""
        if not f.readable:
            raise FsError("file not open for reading")
        if f.kind is FileKind.PIPE:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE:
            fs = self._require_fs()
            fs.ilock(f.ip)
            try:
                data = fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                fs.iunlock(f.ip)
            return data
        raise Panic("fileread")

    def write(self, f: File, data: bytes) -> int:
        """Write all of data to f."""
        if not f.writable:
            raise FsError("file not open for writing")
        data = bytes(data)
        if f.kind is FileKind.PIPE:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE:
            fs = self._require_fs()
            i = 0
            while i < len(data):
                chunk = data[i : i + _MAXWRITE]
                with fs.transaction():
                    fs.ilock(f.ip)
                    try:
                        r = fs.writei(f.ip, chunk, f.off)
                        if r > 0:
                            f.off += r
                    finally:
                        fs.iunlock(f.ip)
                if r != len(chunk):
                    raise Panic("short filewrite")
                i += r
            return len(data)
        raise Panic("filewrite")

    def open_inode(self, ip: Inode, readable: bool, writable: bool) -> File:
        """Open a referenced inode; the file takes over that reference."""
        f = self.alloc()
        f.kind = FileKind.INODE
        f.ip = ip
        f.off = 0
        f.readable = bool(readable)
        f.writable = bool(writable)
        return f

    def pipe(self) -> tuple[File, File]:
        """Create a pipe; return its read end and its write end."""
        f0 = self.alloc()
        try:
            f1 = self.alloc()
        except FsError:
            self.close(f0)
            raise
        p = Pipe()
        f0.kind = FileKind.PIPE
        f0.readable, f0.writable = True, False
        f0.pipe = p
        f1.kind = FileKind.PIPE
        f1.readable, f1.writable = False, True
        f1.pipe = p
        return f0, f1