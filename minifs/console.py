"""Console line discipline and kernel-style message formatting."""

from __future__ import annotations

import operator
import threading
from collections.abc import Callable, Iterable, Iterator

INPUT_BUF = 128
_POLL_INTERVAL = 0.05


def _ctl(ch: str) -> int:
    """Code of Control-``ch``."""
    return ord(ch) - ord("@")


_CTRL_D = _ctl("D")
_CTRL_H = _ctl("H")
_CTRL_P = _ctl("P")
_CTRL_U = _ctl("U")
_DEL = 0x7F
_NL = ord("\n")
_CR = ord("\r")
_ERASE = b"\b \b"


class ConsoleInput:
    """Line-edited console input: characters arrive by interrupt, readers get lines.

    Echoed characters collect in ``output``. ``procdump`` is called after an
    interrupt that contained Control-P. Setting ``killed`` makes a reader
    waiting on empty input give up with InterruptedError.
    """

    def __init__(self, procdump: Callable[[], None] | None = None) -> None:
        self.procdump = procdump
        self.output = bytearray()
        self.killed = False
        self._buf = bytearray(INPUT_BUF)
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index
        self._cond = threading.Condition()

    def _echo_erase(self) -> None:
        self.output += _ERASE

    def interrupt(self, chars: str | bytes | Iterable[int]) -> None:
        """Feed characters typed at the keyboard or received on the serial line."""
        codes: Iterator[int] = iter(map(ord, chars) if isinstance(chars, str) else chars)
        dump = False
        with self._cond:
            for c in codes:
                if c == _CTRL_P:
                    # The process listing runs after the console is free again.
                    dump = True
                elif c == _CTRL_U:
                    while (
                        self._e != self._w
                        and self._buf[(self._e - 1) % INPUT_BUF] != _NL
                    ):
                        self._e -= 1
                        self._echo_erase()
                elif c in (_CTRL_H, _DEL):
                    if self._e != self._w:
                        self._e -= 1
                        self._echo_erase()
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    c = _NL if c == _CR else c & 0xFF
                    self._buf[self._e % INPUT_BUF] = c
                    self._e += 1
                    self.output.append(c)
                    if (
                        c in (_NL, _CTRL_D)
                        or self._e == self._r + INPUT_BUF
                    ):
                        self._w = self._e
                        self._cond.notify_all()
        if dump and self.procdump is not None:
            self.procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline; b"" means end of file."""
        if n < 0:
            raise ValueError("cannot read a negative number of bytes")
        out = bytearray()
        with self._cond:
            while len(out) < n:
                while self._r == self._w:
                    if self.killed:
                        raise InterruptedError("console read interrupted")
                    self._cond.wait(_POLL_INTERVAL)
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _CTRL_D:
                    if out:
                        # Keep the end-of-file for the next read, which returns b"".
                        self._r -= 1
                    break
                out.append(c)
                if c == _NL:
                    break
        return bytes(out)


def _int32(value: object) -> int:
    v = operator.index(value) & 0xFFFFFFFF  # type: ignore[arg-type]
    return v - (1 << 32) if v & 0x80000000 else v


def _next_arg(args: Iterator[object]) -> object:
    try:
        return next(args)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def format_kernel(fmt: str | None, *args: object) -> str:
    """Format like the kernel's console printer: only %d, %x, %p, %s and %%."""
    if fmt is None:
        raise ValueError("null fmt")
    it = iter(args)
    out: list[str] = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        c = next(chars, "")
        if not c:
            break
        if c == "d":
            out.append(str(_int32(_next_arg(it))))
        elif c in "xp":
            out.append(format(_int32(_next_arg(it)) & 0xFFFFFFFF, "x"))
        elif c == "s":
            s = _next_arg(it)
            out.append("(null)" if s is None else str(s))
        elif c == "%":
            out.append("%")
        else:
            # Unknown sequences are printed to draw attention.
            out.append("%" + c)
    return "".join(out)