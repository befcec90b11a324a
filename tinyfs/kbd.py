"""PC keyboard scan-code decoding."""

from __future__ import annotations

from typing import Iterable

NO = 0

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2
CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5
E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


_SHIFTCODE = {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT}
_TOGGLECODE = {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK}

_SPECIALS = {
    0xC8: KEY_UP,
    0xD0: KEY_DN,
    0xC9: KEY_PGUP,
    0xD1: KEY_PGDN,
    0xCB: KEY_LF,
    0xCD: KEY_RT,
    0x97: KEY_HOME,
    0xCF: KEY_END,
    0xD2: KEY_INS,
    0xD3: KEY_DEL,
}

_KEYPAD = (
    "\x00 \x00\x00\x00\x00\x00\x00"
    "\x00\x00\x00\x00\x00\x00\x00" "7"
    "89-456+1"
    "230.\x00\x00\x00\x00"
)


def _table(prefix: list[int], enter: int, div: int) -> list[int]:
    table = [NO] * 256
    table[: len(prefix)] = prefix
    table[0x9C] = enter
    table[0xB5] = div
    for code, key in _SPECIALS.items():
        table[code] = key
    return table


NORMALMAP = _table(
    [
        ord(c)
        for c in (
            "\x00\x1b123456"
            "7890-=\b\t"
            "qwertyui"
            "op[]\n\x00as"
            "dfghjkl;"
            "'`\x00\\zxcv"
            "bnm,./\x00*" + _KEYPAD
        )
    ],
    ord("\n"),
    ord("/"),
)

SHIFTMAP = _table(
    [
        ord(c)
        for c in (
            "\x00\x1b!@#$%^"
            "&*()_+\b\t"
            "QWERTYUI"
            "OP{}\n\x00AS"
            "DFGHJKL:"
            '"~\x00|ZXCV'
            "BNM<>?\x00*" + _KEYPAD
        )
    ],
    ord("\n"),
    ord("/"),
)

CTLMAP = _table(
    [NO] * 16
    + [_ctl(c) for c in "QWERTYUI"]
    + [_ctl("O"), _ctl("P"), NO, NO, ord("\r"), NO, _ctl("A"), _ctl("S")]
    + [_ctl(c) for c in "DFGHJKL"]
    + [NO]
    + [NO, NO, NO, _ctl("\\")]
    + [_ctl(c) for c in "ZXCV"]
    + [_ctl("B"), _ctl("N"), _ctl("M"), NO, NO, _ctl("/"), NO, NO],
    ord("\r"),
    _ctl("/"),
)

_CHARCODE = (NORMALMAP, SHIFTMAP, CTLMAP, CTLMAP)


class KeyboardDecoder:
    """Turns scan codes into characters, tracking shift and lock state."""

    def __init__(self) -> None:
        self.shift = 0

    def feed(self, scancode: int) -> int:
        """Decode one scan code; 0 means it produced no character."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scan code {scancode} out of range")
        data = scancode
        if data == 0xE0:
            self.shift |= E0ESC
            return 0
        if data & 0x80:
            # Key released.
            if not self.shift & E0ESC:
                data &= 0x7F
            self.shift &= ~(_SHIFTCODE.get(data, 0) | E0ESC)
            return 0
        if self.shift & E0ESC:
            # Last code was an E0 escape.
            data |= 0x80
            self.shift &= ~E0ESC

        self.shift |= _SHIFTCODE.get(data, 0)
        self.shift ^= _TOGGLECODE.get(data, 0)
        c = _CHARCODE[self.shift & (CTL | SHIFT)][data]
        if self.shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c += ord("A") - ord("a")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c


def decode(scancodes: Iterable[int]) -> bytes:
    """Decode a sequence of scan codes into the characters they type."""
    decoder = KeyboardDecoder()
    return bytes(c for c in map(decoder.feed, scancodes) if c)