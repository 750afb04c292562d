"""PC keyboard scan code decoding."""

from __future__ import annotations

from collections.abc import Iterable

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
    """Code of Control-``ch``."""
    return (ord(ch) - ord("@")) & 0xFF


_SHIFTCODE = {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT}
_TOGGLECODE = {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK}

_KEYPAD = (
    "\x00 \x00\x00\x00\x00\x00\x00"
    "\x00\x00\x00\x00\x00\x00\x007"
    "89-456+1"
    "230.\x00\x00\x00\x00"
)

_NORMAL = (
    "\x00\x1b123456"
    "7890-=\b\t"
    "qwertyui"
    "op[]\n\x00as"
    "dfghjkl;"
    "'`\x00\\zxcv"
    "bnm,./\x00*"
) + _KEYPAD

_SHIFTED = (
    "\x00\x1b!@#$%^"
    "&*()_+\b\t"
    "QWERTYUI"
    "OP{}\n\x00AS"
    "DFGHJKL:"
    '"~\x00|ZXCV'
    "BNM<>?\x00*"
) + _KEYPAD

_CONTROL = (
    [NO] * 16
    + [_ctl(ch) for ch in "QWERTYUI"]
    + [_ctl("O"), _ctl("P"), NO, NO, ord("\r"), NO, _ctl("A"), _ctl("S")]
    + [_ctl(ch) for ch in "DFGHJKL"]
    + [NO]
    + [NO, NO, NO, _ctl("\\"), _ctl("Z"), _ctl("X"), _ctl("C"), _ctl("V")]
    + [_ctl("B"), _ctl("N"), _ctl("M"), NO, NO, _ctl("/"), NO, NO]
)

_EXTENDED = {
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


def _table(base: Iterable[int], extra: dict[int, int]) -> tuple[int, ...]:
    codes = list(base)
    codes.extend([NO] * (256 - len(codes)))
    for scancode, code in {**_EXTENDED, **extra}.items():
        codes[scancode] = code
    return tuple(codes)


_NORMALMAP = _table(map(ord, _NORMAL), {0x9C: ord("\n"), 0xB5: ord("/")})
_SHIFTMAP = _table(map(ord, _SHIFTED), {0x9C: ord("\n"), 0xB5: ord("/")})
_CTLMAP = _table(_CONTROL, {0x9C: ord("\r"), 0xB5: _ctl("/")})

_CHARCODE = (_NORMALMAP, _SHIFTMAP, _CTLMAP, _CTLMAP)


class Keyboard:
    """Turns scan codes into character codes, tracking modifier state."""

    def __init__(self) -> None:
        self.shift = 0

    def feed(self, scancode: int) -> int:
        """Process one scan code; return its character code, or 0 for none."""
        if not 0 <= scancode <= 0xFF:
            raise ValueError(f"scan code out of range: {scancode}")
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
            # The previous code was an E0 escape.
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

    def decode(self, scancodes: Iterable[int]) -> list[int]:
        """Process a sequence of scan codes; return the characters they produce."""
        return [c for c in map(self.feed, scancodes) if c]