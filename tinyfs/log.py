"""Write-ahead redo log grouping file-system updates into atomic transactions.

On disk the log is a header block listing home block numbers, followed by
copies of those blocks. A transaction commits when the header is written.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from .bio import Buf, BufferCache, Panic
from .layout import BSIZE, LOGSIZE, MAXOPBLOCKS, ROOTDEV, Superblock

_HEADER = struct.Struct(f"<i{LOGSIZE}i")
_COUNT = struct.Struct("<i")


class Log:
    """The transaction log of one device."""

    def __init__(
        self,
        cache: BufferCache,
        dev: int = ROOTDEV,
        superblock: Superblock | None = None,
    ) -> None:
        if _HEADER.size >= BSIZE:
            raise Panic("initlog: too big logheader")
        if superblock is None:
            with cache.block(dev, 1) as b:
                superblock = Superblock.unpack(b.data)
        self._cache = cache
        self.dev = dev
        self.start = superblock.logstart
        self.size = superblock.nlog
        self._cond = threading.Condition()
        self._outstanding = 0
        self._committing = False
        self._blocks: list[int] = []
        self.recover()

    @property
    def pending(self) -> tuple[int, ...]:
        """Home block numbers logged in the current transaction."""
        return tuple(self._blocks)

    @property
    def outstanding(self) -> int:
        """Number of operations currently inside the transaction."""
        return self._outstanding

    def _read_head(self) -> None:
        with self._cache.block(self.dev, self.start) as buf:
            (n,) = _COUNT.unpack_from(buf.data)
            if not 0 <= n <= LOGSIZE:
                raise Panic("log: corrupt header")
            self._blocks = list(struct.unpack_from(f"<{n}i", buf.data, _COUNT.size))

    def _write_head(self) -> None:
        with self._cache.block(self.dev, self.start) as buf:
            n = len(self._blocks)
            _COUNT.pack_into(buf.data, 0, n)
            struct.pack_into(f"<{n}i", buf.data, _COUNT.size, *self._blocks)
            self._cache.bwrite(buf)

    def _install_trans(self) -> None:
        for tail, blockno in enumerate(self._blocks):
            with self._cache.block(self.dev, self.start + tail + 1) as lbuf, \
                    self._cache.block(self.dev, blockno) as dbuf:
                dbuf.data[:] = lbuf.data
                self._cache.bwrite(dbuf)

    def _write_log(self) -> None:
        for tail, blockno in enumerate(self._blocks):
            with self._cache.block(self.dev, self.start + tail + 1) as to, \
                    self._cache.block(self.dev, blockno) as src:
                to.data[:] = src.data
                self._cache.bwrite(to)

    def _commit(self) -> None:
        if self._blocks:
            self._write_log()
            self._write_head()
            self._install_trans()
            self._blocks.clear()
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction found in the log, then clear it."""
        self._read_head()
        self._install_trans()
        self._blocks.clear()
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while self._committing or (
                len(self._blocks) + (self._outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self._outstanding += 1

    def end_op(self) -> None:
        """End an operation; the last one out commits the transaction."""
        do_commit = False
        with self._cond:
            if self._outstanding < 1:
                raise Panic("end_op outside of trans")
            self._outstanding -= 1
            if self._committing:
                raise Panic("log.committing")
            if self._outstanding == 0:
                do_commit = True
                self._committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self._committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buf) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        n = len(self._blocks)
        if n >= LOGSIZE or n >= self.size - 1:
            raise Panic("too big a transaction")
        if self._outstanding < 1:
            raise Panic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self._blocks:
                self._blocks.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run a with-block as one operation of the current transaction."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()