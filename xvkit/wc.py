"""Count lines, words and characters."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

_WHITESPACE = frozenset(b" \r\t\n\v")
_CHUNK = 512


@dataclass(frozen=True)
class WordCount:
    """Line, word and character totals."""

    lines: int = 0
    words: int = 0
    chars: int = 0

    def format(self, name: str) -> str:
        return f"{self.lines} {self.words} {self.chars} {name}"


def count(stream: BinaryIO) -> WordCount:
    """Count the lines, words and bytes read from a binary stream."""
    lines = words = chars = 0
    inword = False
    while chunk := stream.read(_CHUNK):
        chars += len(chunk)
        lines += chunk.count(b"\n")
        for byte in chunk:
            if byte in _WHITESPACE:
                inword = False
            elif not inword:
                words += 1
                inword = True
    return WordCount(lines, words, chars)


def _report(stream: BinaryIO, name: str) -> bool:
    try:
        result = count(stream)
    except OSError:
        print("wc: read error")
        return False
    print(result.format(name))
    return True


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Print counts for each named file, or for standard input if none."""
    names = list(sys.argv[1:] if argv is None else argv)
    if not names:
        return 0 if _report(sys.stdin.buffer, "") else 1
    for name in names:
        try:
            handle = open(name, "rb")
        except OSError:
            print(f"wc: cannot open {name}")
            return 1
        with handle:
            if not _report(handle, name):
                return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())