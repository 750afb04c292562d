"""User-level formatted printing."""

from __future__ import annotations

import operator
from collections.abc import Iterator


def _int32(value: object) -> int:
    v = operator.index(value) & 0xFFFFFFFF  # type: ignore[arg-type]
    return v - (1 << 32) if v & 0x80000000 else v


def _next_arg(args: Iterator[object]) -> object:
    try:
        return next(args)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def _char(value: object) -> str:
    if isinstance(value, str):
        if len(value) != 1:
            raise TypeError("%c needs a single character")
        return value
    return chr(operator.index(value) & 0xFF)  # type: ignore[arg-type]


def format_user(fmt: str, *args: object) -> str:
    """Format like the user library's printf: %d, %x, %p, %s, %c and %%."""
    it = iter(args)
    out: list[str] = []
    pending = False
    for c in fmt:
        if not pending:
            if c == "%":
                pending = True
            else:
                out.append(c)
            continue
        pending = False
        if c == "d":
            out.append(str(_int32(_next_arg(it))))
        elif c in "xp":
            out.append(format(_int32(_next_arg(it)) & 0xFFFFFFFF, "X"))
        elif c == "s":
            s = _next_arg(it)
            out.append("(null)" if s is None else str(s))
        elif c == "c":
            out.append(_char(_next_arg(it)))
        elif c == "%":
            out.append("%")
        else:
            # Unknown sequences are printed to draw attention.
            out.append("%" + c)
    return "".join(out)