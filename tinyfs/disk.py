"""Block devices: a disk held in memory and a disk backed by an image file."""

from __future__ import annotations

from .layout import BSIZE, FSSIZE


class DiskError(Exception):
    """A request the disk cannot serve."""


def _check_data(data: bytes) -> None:
    if len(data) != BSIZE:
        raise DiskError(f"block data must be {BSIZE} bytes, got {len(data)}")


class MemoryDisk:
    """A disk whose blocks live in memory."""

    def __init__(self, image: bytes | None = None, nblocks: int = FSSIZE) -> None:
        if image is None:
            self._data = bytearray(nblocks * BSIZE)
        else:
            self._data = bytearray(image)
        self.nblocks = len(self._data) // BSIZE

    def _check(self, blockno: int) -> None:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"block {blockno} out of range")

    def read_block(self, blockno: int) -> bytes:
        self._check(blockno)
        start = blockno * BSIZE
        return bytes(self._data[start : start + BSIZE])

    def write_block(self, blockno: int, data: bytes) -> None:
        self._check(blockno)
        _check_data(data)
        start = blockno * BSIZE
        self._data[start : start + BSIZE] = data

    def to_bytes(self) -> bytes:
        return bytes(self._data)


class FileDisk:
    """A disk backed by an existing image file."""

    def __init__(self, path, nblocks: int = FSSIZE) -> None:
        self.nblocks = nblocks
        self._file = open(path, "r+b")

    def _check(self, blockno: int) -> None:
        if not 0 <= blockno < self.nblocks:
            raise DiskError(f"incorrect blockno {blockno}")

    def read_block(self, blockno: int) -> bytes:
        self._check(blockno)
        self._file.seek(blockno * BSIZE)
        return self._file.read(BSIZE).ljust(BSIZE, b"\0")

    def write_block(self, blockno: int, data: bytes) -> None:
        self._check(blockno)
        _check_data(data)
        self._file.seek(blockno * BSIZE)
        self._file.write(data)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> FileDisk:
        return self

    def __exit__(self, *exc) -> None:
        self.close()