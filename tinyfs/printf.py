"""User-level formatted output: %d, %x, %p, %s, %c and %%."""

from __future__ import annotations

_DIGITS = "0123456789ABCDEF"


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


def format_user(fmt: str, *args) -> str:
    """Format like the user library's printf."""
    pending = iter(args)

    def next_arg():
        try:
            return next(pending)
        except StopIteration:
            raise TypeError(f"not enough arguments for format {fmt!r}") from None

    out: list[str] = []
    in_format = False
    for c in fmt:
        if not in_format:
            if c == "%":
                in_format = True
            else:
                out.append(c)
            continue
        if c == "d":
            out.append(_printint(next_arg(), 10, True))
        elif c in "xp":
            out.append(_printint(next_arg(), 16, False))
        elif c == "s":
            s = next_arg()
            out.append("(null)" if s is None else str(s))
        elif c == "c":
            ch = next_arg()
            out.append(ch[:1] if isinstance(ch, str) else chr(ch & 0xFF))
        elif c == "%":
            out.append("%")
        else:
            # Unknown sequence, printed to draw attention.
            out.append("%" + c)
        in_format = False
    return "".join(out)