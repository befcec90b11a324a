"""Buffer cache: cached, locked copies of disk blocks in most-recently-used order."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from .layout import BSIZE, NBUF, ROOTDEV


class Panic(RuntimeError):
    """An unrecoverable inconsistency in kernel state."""


class _SleepLock:
    """A lock held by one thread at a time; re-acquiring by its holder panics."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._owner: int | None = None

    def acquire(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._owner == me:
                raise Panic("acquiresleep: lock already held")
            while self._owner is not None:
                self._cond.wait()
            self._owner = me

    def release(self) -> None:
        with self._cond:
            self._owner = None
            self._cond.notify_all()

    def holding(self) -> bool:
        return self._owner == threading.get_ident()


@dataclass(eq=False)
class Buf:
    """One cached disk block."""

    dev: int = -1
    blockno: int = -1
    refcnt: int = 0
    valid: bool = False
    dirty: bool = False
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE), repr=False)
    _lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


class BufferCache:
    """A fixed pool of buffers over one or more block devices."""

    def __init__(self, devices, nbuf: int = NBUF) -> None:
        if hasattr(devices, "read_block"):
            devices = {ROOTDEV: devices}
        self._devices = dict(devices)
        self._lock = threading.Lock()
        # Index 0 is the most recently used buffer.
        self._bufs = [Buf() for _ in range(nbuf)]

    def _bget(self, dev: int, blockno: int) -> Buf:
        with self._lock:
            for b in self._bufs:
                if b.dev == dev and b.blockno == blockno:
                    b.refcnt += 1
                    break
            else:
                # Even with refcnt 0, a dirty buffer is pinned by the log.
                for b in reversed(self._bufs):
                    if b.refcnt == 0 and not b.dirty:
                        b.dev = dev
                        b.blockno = blockno
                        b.valid = False
                        b.dirty = False
                        b.refcnt = 1
                        break
                else:
                    raise Panic("bget: no buffers")
        try:
            b._lock.acquire()
        except Panic:
            with self._lock:
                b.refcnt -= 1
            raise
        return b

    def _iderw(self, b: Buf) -> None:
        if not b._lock.holding():
            raise Panic("iderw: buf not locked")
        if b.valid and not b.dirty:
            raise Panic("iderw: nothing to do")
        disk = self._devices.get(b.dev)
        if disk is None:
            raise Panic(f"iderw: no disk for device {b.dev}")
        if b.dirty:
            disk.write_block(b.blockno, bytes(b.data))
            b.dirty = False
        else:
            b.data[:] = disk.read_block(b.blockno)
        b.valid = True

    def bread(self, dev: int, blockno: int) -> Buf:
        """Return a locked buffer holding the contents of the block."""
        b = self._bget(dev, blockno)
        if not b.valid:
            try:
                self._iderw(b)
            except BaseException:
                self.brelse(b)
                raise
        return b

    def bwrite(self, buf: Buf) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf._lock.holding():
            raise Panic("bwrite")
        buf.dirty = True
        self._iderw(buf)

    def brelse(self, buf: Buf) -> None:
        """Release a locked buffer, making it most recently used if unreferenced."""
        if not buf._lock.holding():
            raise Panic("brelse")
        buf._lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._bufs.remove(buf)
                self._bufs.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buf]:
        """Read a block for the duration of a with-block, releasing it after."""
        buf = self.bread(dev, blockno)
        try:
            yield buf
        finally:
            self.brelse(buf)