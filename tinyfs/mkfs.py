"""Build a fresh file system image holding a root directory and some files."""

from __future__ import annotations

import struct
import sys
from pathlib import Path
from typing import Iterable, Mapping

from .disk import MemoryDisk
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRSIZ,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DInode,
    Dirent,
    FileType,
    Superblock,
    inode_block,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a file system image in memory and fills it with files.

    Disk layout:
    [ boot block | sb block | log | inode blocks | free bit map | data blocks ]
    """

    def __init__(self) -> None:
        self.nbitmap = FSSIZE // BPB + 1
        self.ninodeblocks = NINODES // IPB + 1
        self.nlog = LOGSIZE
        self.nmeta = 2 + self.nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = FSSIZE - self.nmeta
        self.sb = Superblock(
            size=FSSIZE,
            nblocks=self.nblocks,
            ninodes=NINODES,
            nlog=self.nlog,
            logstart=2,
            inodestart=2 + self.nlog,
            bmapstart=2 + self.nlog + self.ninodeblocks,
        )
        self._disk = MemoryDisk(nblocks=FSSIZE)
        self._freeinode = 1
        self.freeblock = self.nmeta
        self._image: bytes | None = None

        self._disk.write_block(1, self.sb.pack().ljust(BSIZE, b"\0"))

        self.rootino = self.ialloc(FileType.DIR)
        if self.rootino != ROOTINO:
            raise RuntimeError("root directory did not get the root inode number")
        self.iappend(self.rootino, Dirent(self.rootino, ".").pack())
        self.iappend(self.rootino, Dirent(self.rootino, "..").pack())

    @property
    def summary(self) -> str:
        """One line describing the layout of the image."""
        return (
            f"nmeta {self.nmeta} (boot, super, log blocks {self.nlog} "
            f"inode blocks {self.ninodeblocks}, bitmap blocks {self.nbitmap}) "
            f"blocks {self.nblocks} total {FSSIZE}"
        )

    def _rinode(self, inum: int) -> DInode:
        block = self._disk.read_block(inode_block(inum, self.sb))
        off = (inum % IPB) * DINODE_SIZE
        return DInode.unpack(block[off : off + DINODE_SIZE])

    def _winode(self, inum: int, din: DInode) -> None:
        bn = inode_block(inum, self.sb)
        block = bytearray(self._disk.read_block(bn))
        off = (inum % IPB) * DINODE_SIZE
        block[off : off + DINODE_SIZE] = din.pack()
        self._disk.write_block(bn, bytes(block))

    def _alloc_block(self) -> int:
        if self.freeblock >= FSSIZE:
            raise ValueError("image is out of data blocks")
        b = self.freeblock
        self.freeblock += 1
        return b

    def _check_open(self) -> None:
        if self._image is not None:
            raise ValueError("image already finished")

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with the given type; return its number."""
        self._check_open()
        inum = self._freeinode
        if inum >= NINODES:
            raise ValueError("image is out of inodes")
        self._freeinode += 1
        self._winode(inum, DInode(type=int(type), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append data to the end of inode inum."""
        self._check_open()
        data = bytes(data)
        din = self._rinode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError(f"inode {inum} would exceed the largest file size")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._alloc_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._alloc_block()
                indirect = list(_INDIRECT.unpack(self._disk.read_block(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._alloc_block()
                    self._disk.write_block(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                x = indirect[fbn - NDIRECT]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            block = bytearray(self._disk.read_block(x))
            start = off - fbn * BSIZE
            block[start : start + n1] = data[pos : pos + n1]
            self._disk.write_block(x, bytes(block))
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a file to the root directory; a leading underscore is dropped."""
        self._check_open()
        if "/" in name:
            raise ValueError(f"file name {name!r} must not contain '/'")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(FileType.FILE)
        self.iappend(self.rootino, Dirent(inum, name[:DIRSIZ]).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round up the root directory size, write the free map, return the image."""
        if self._image is not None:
            return self._image
        din = self._rinode(self.rootino)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.rootino, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self._disk.write_block(self.sb.bmapstart, bytes(bitmap))
        self._image = self._disk.to_bytes()
        return self._image


def build_image(files: Mapping[str, bytes] | Iterable[tuple[str, bytes]]) -> bytes:
    """Build an image holding the given (name, contents) files."""
    items = files.items() if isinstance(files, Mapping) else files
    builder = ImageBuilder()
    for name, data in items:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    builder = ImageBuilder()
    print(builder.summary)
    for path in args[1:]:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            print(f"{path}: {exc.strerror}", file=sys.stderr)
            return 1
        try:
            builder.add_file(path, data)
        except ValueError as exc:
            print(f"mkfs: {exc}", file=sys.stderr)
            return 1
    image = builder.finish()
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        Path(args[0]).write_bytes(image)
    except OSError as exc:
        print(f"{args[0]}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0