"""Console: kernel-style formatted output, a CGA text screen and line-edited input."""

from __future__ import annotations

import threading
from typing import Callable, Iterable

from .bio import Panic

BACKSPACE = 0x100
INPUT_BUF = 128
COLS = 80
ROWS = 25

_DIGITS = "0123456789abcdef"
_POLL = 0.05


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


def _printint(value: int, base: int, signed: bool) -> str:
    x = value & 0xFFFFFFFF
    neg = signed and x >= 1 << 31
    if neg:
        x = (1 << 32) - x
    out = []
    while True:
        out.append(_DIGITS[x % base])
        x //= base
        if x == 0:
            break
    if neg:
        out.append("-")
    return "".join(reversed(out))


def format_kernel(fmt: str, *args) -> str:
    """Format like the kernel's printer: only %d, %x, %p, %s and %%."""
    if fmt is None:
        raise Panic("null fmt")
    pending = iter(args)

    def next_arg():
        try:
            return next(pending)
        except StopIteration:
            raise TypeError(f"not enough arguments for format {fmt!r}") from None

    out: list[str] = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        c = next(chars, None)
        if c is None:
            break
        if c == "d":
            out.append(_printint(next_arg(), 10, True))
        elif c in "xp":
            out.append(_printint(next_arg(), 16, False))
        elif c == "s":
            s = next_arg()
            out.append("(null)" if s is None else str(s))
        elif c == "%":
            out.append("%")
        else:
            # Unknown sequence, printed to draw attention.
            out.append("%" + c)
    return "".join(out)


def _code(c) -> int:
    return ord(c) if isinstance(c, str) else int(c)


class CgaScreen:
    """An 80x25 colour text screen; each cell holds a character and attribute."""

    def __init__(self) -> None:
        self.cells = [0] * (COLS * ROWS)
        self.pos = 0

    def putc(self, c) -> None:
        """Put one character at the cursor, scrolling when the screen fills."""
        c = _code(c)
        pos = self.pos
        if c == ord("\n"):
            pos += COLS - pos % COLS
        elif c == BACKSPACE:
            if pos > 0:
                pos -= 1
        else:
            self.cells[pos] = (c & 0xFF) | 0x0700
            pos += 1

        if pos < 0 or pos > ROWS * COLS:
            raise Panic("pos under/overflow")

        if pos // COLS >= 24:
            self.cells[0 : 23 * COLS] = self.cells[COLS : 24 * COLS]
            pos -= COLS
            self.cells[pos : 24 * COLS] = [0] * (24 * COLS - pos)

        self.pos = pos
        self.cells[pos] = ord(" ") | 0x0700


class Console:
    """Keyboard input with line editing, echoed to a serial log and the screen."""

    def __init__(
        self,
        procdump: Callable[[], None] | None = None,
        killed: Callable[[], bool] | None = None,
    ) -> None:
        self.screen = CgaScreen()
        self.output = bytearray()
        self._procdump = procdump
        self._killed = killed or (lambda: False)
        self._cond = threading.Condition()
        self._buf = [0] * INPUT_BUF
        self._r = 0
        self._w = 0
        self._e = 0

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self.output += b"\b \b"
        else:
            self.output.append(c & 0xFF)
        self.screen.putc(c)

    def interrupt(self, chars: Iterable) -> None:
        """Handle characters arriving from the keyboard or serial port."""
        if isinstance(chars, str):
            chars = [ord(ch) for ch in chars]
        doprocdump = False
        with self._cond:
            for c in chars:
                c = _code(c)
                if c < 0:
                    break
                if c == _ctrl("P"):
                    doprocdump = True
                elif c == _ctrl("U"):
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n"):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (_ctrl("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c & 0xFF
                    self._e += 1
                    self._putc(c)
                    if c in (ord("\n"), _ctrl("D")) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if doprocdump and self._procdump is not None:
            self._procdump()

    def read(self, n: int) -> bytes:
        """Read up to n bytes of input, at most one line; an empty result means end of file."""
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                while self._r == self._w:
                    if self._killed():
                        raise InterruptedError("reader was killed")
                    self._cond.wait(_POLL)
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _ctrl("D"):
                    if n < target:
                        # Keep ^D so that the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c)
                n -= 1
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data) -> int:
        """Write data to the console; return the number of bytes written."""
        if isinstance(data, str):
            data = data.encode("latin-1")
        with self._cond:
            for b in data:
                self._putc(b & 0xFF)
        return len(data)