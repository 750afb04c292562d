"""A small grep supporting only the ^ . * $ operators."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

_BUFSIZE = 1024


def match(re: str, text: str) -> bool:
    """Whether ``re`` matches anywhere in ``text``."""
    if re.startswith("^"):
        return matchhere(re[1:], text)
    # The empty string at the end must be tried too.
    return any(matchhere(re, text[i:]) for i in range(len(text) + 1))


def matchhere(re: str, text: str) -> bool:
    """Whether ``re`` matches at the beginning of ``text``."""
    if not re:
        return True
    if len(re) >= 2 and re[1] == "*":
        return matchstar(re[0], re[2:], text)
    if re == "$":
        return text == ""
    if text and (re[0] == "." or re[0] == text[0]):
        return matchhere(re[1:], text[1:])
    return False


def matchstar(c: str, re: str, text: str) -> bool:
    """Whether ``c*`` followed by ``re`` matches at the beginning of ``text``."""
    i = 0
    while True:
        if matchhere(re, text[i:]):
            return True
        if i < len(text) and (text[i] == c or c == "."):
            i += 1
        else:
            return False


def grep(pattern: str, stream: BinaryIO) -> Iterator[bytes]:
    """Yield the newline-terminated lines of a binary stream that match ``pattern``.

    A final line without a newline is never reported, and a line that does
    not fit in the line buffer is discarded.
    """
    buf = b""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(buf))
        if not chunk:
            return
        buf += chunk
        *lines, rest = buf.split(b"\n")
        for line in lines:
            if match(pattern, line.decode("latin-1")):
                yield line + b"\n"
        buf = rest if lines else b""


def main(argv: list[str] | None = None) -> int:
    """Print matching lines of the named files, or of standard input."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, *names = args
    out = sys.stdout.buffer
    if not names:
        out.writelines(grep(pattern, sys.stdin.buffer))
        out.flush()
        return 0
    for name in names:
        try:
            stream = Path(name).open("rb")
        except OSError:
            out.write(f"grep: cannot open {name}\n".encode())
            out.flush()
            return 1
        with stream:
            out.writelines(grep(pattern, stream))
    out.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())