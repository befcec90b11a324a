"""An in-kernel pipe: a bounded byte buffer between a writer and a reader."""

from __future__ import annotations

import threading
from typing import Callable

PIPESIZE = 512

_POLL = 0.05


class PipeError(Exception):
    """A pipe operation that cannot complete."""


class Pipe:
    """A pipe with one read end and one write end."""

    def __init__(self, killed: Callable[[], bool] | None = None) -> None:
        self._cond = threading.Condition()
        self._buf = bytearray()
        self._killed = killed or (lambda: False)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True

    @property
    def released(self) -> bool:
        """True once both ends are closed."""
        return not self.readopen and not self.writeopen

    def write(self, data: bytes) -> int:
        """Write all of data, waiting while the buffer is full."""
        data = bytes(data)
        pos = 0
        with self._cond:
            while pos < len(data):
                while len(self._buf) == PIPESIZE:
                    if not self.readopen or self._killed():
                        raise PipeError("pipe has no reader")
                    self._cond.notify_all()
                    self._cond.wait(_POLL)
                chunk = data[pos : pos + PIPESIZE - len(self._buf)]
                self._buf += chunk
                self.nwrite += len(chunk)
                pos += len(chunk)
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to n bytes, waiting for data while the write end is open."""
        with self._cond:
            while not self._buf and self.writeopen:
                if self._killed():
                    raise PipeError("reader was killed")
                self._cond.wait(_POLL)
            n = max(n, 0)
            out = bytes(self._buf[:n])
            del self._buf[:n]
            self.nread += len(out)
            self._cond.notify_all()
            return out

    def close(self, writable: bool) -> None:
        """Close the write end if writable, else the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()