"""A small grep supporting the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import BinaryIO, Iterator

_BUFSIZE = 1024


def match(re: str, text: str) -> bool:
    """True if re matches somewhere in text."""
    if re.startswith("^"):
        return _matchhere(re, 1, text, 0)
    return any(_matchhere(re, 0, text, i) for i in range(len(text) + 1))


def _matchhere(re: str, ri: int, text: str, ti: int) -> bool:
    if ri == len(re):
        return True
    if ri + 1 < len(re) and re[ri + 1] == "*":
        return _matchstar(re[ri], re, ri + 2, text, ti)
    if re[ri] == "$" and ri + 1 == len(re):
        return ti == len(text)
    if ti < len(text) and (re[ri] == "." or re[ri] == text[ti]):
        return _matchhere(re, ri + 1, text, ti + 1)
    return False


def _matchstar(c: str, re: str, ri: int, text: str, ti: int) -> bool:
    while True:
        if _matchhere(re, ri, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
        else:
            return False


def grep(pattern: str, stream: BinaryIO) -> Iterator[bytes]:
    """Yield each newline-terminated line of stream that matches pattern.

    A read that holds no newline at all is dropped, as is a final
    line without a newline.
    """
    pending = b""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(pending))
        if not chunk:
            break
        pending += chunk
        lines = pending.split(b"\n")
        rest = lines.pop()
        for line in lines:
            if match(pattern, line.decode("latin-1")):
                yield line + b"\n"
        pending = rest if lines else b""


def _write(data: bytes) -> None:
    out = getattr(sys.stdout, "buffer", None)
    if out is None:
        sys.stdout.write(data.decode("latin-1"))
    else:
        sys.stdout.flush()
        out.write(data)
        out.flush()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern = args[0]
    if len(args) == 1:
        for line in grep(pattern, sys.stdin.buffer):
            _write(line)
        return 0
    for path in args[1:]:
        try:
            stream = open(path, "rb")
        except OSError:
            print(f"grep: cannot open {path}")
            return 1
        with stream:
            for line in grep(pattern, stream):
                _write(line)
    return 0