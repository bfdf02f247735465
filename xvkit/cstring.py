"""NUL-terminated byte-string helpers, open flags and file status records."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from itertools import islice, zip_longest
from typing import BinaryIO, Optional, Union

BytesLike = Union[bytes, bytearray, memoryview, str]


class OpenFlag(enum.IntFlag):
    """Flags accepted by open()."""

    RDONLY = 0x000
    WRONLY = 0x001
    RDWR = 0x002
    CREATE = 0x200


O_RDONLY = OpenFlag.RDONLY
O_WRONLY = OpenFlag.WRONLY
O_RDWR = OpenFlag.RDWR
O_CREATE = OpenFlag.CREATE


class FileType(enum.IntEnum):
    """Kinds of file-system objects."""

    DIR = 1
    FILE = 2
    DEV = 3


T_DIR = FileType.DIR
T_FILE = FileType.FILE
T_DEV = FileType.DEV


@dataclass(frozen=True)
class Stat:
    """File status as reported by fstat."""

    type: FileType
    dev: int
    ino: int
    nlink: int
    size: int


def _as_bytes(s: BytesLike) -> bytes:
    if isinstance(s, str):
        return s.encode("latin-1")
    return bytes(s)


def _cstr(s: BytesLike) -> bytes:
    """The bytes of s up to, not including, the first NUL."""
    data = _as_bytes(s)
    end = data.find(0)
    return data if end < 0 else data[:end]


def _char(c: Union[int, str, bytes]) -> int:
    if isinstance(c, int):
        return c & 0xFF
    data = _as_bytes(c)
    if len(data) != 1:
        raise ValueError("expected a single character")
    return data[0]


def memcmp(a: BytesLike, b: BytesLike, n: int) -> int:
    """Compare the first n bytes; return the difference of the first mismatch."""
    left, right = _as_bytes(a), _as_bytes(b)
    if n > len(left) or n > len(right):
        raise ValueError("memcmp length exceeds buffer")
    for x, y in zip(left[:n], right[:n]):
        if x != y:
            return x - y
    return 0


def memmove(buf: bytearray, dst: int, src: int, n: int) -> bytearray:
    """Copy n bytes inside buf from src to dst; overlapping regions are safe."""
    if n < 0 or dst < 0 or src < 0 or src + n > len(buf) or dst + n > len(buf):
        raise IndexError("memmove range outside buffer")
    buf[dst:dst + n] = buf[src:src + n]
    return buf


def _compare(p: bytes, q: bytes, limit: Optional[int]) -> int:
    pairs = zip_longest(p, q, fillvalue=0)
    if limit is not None:
        pairs = islice(pairs, max(limit, 0))
    for x, y in pairs:
        if x != y or x == 0:
            return x - y
    return 0


def strncmp(p: BytesLike, q: BytesLike, n: int) -> int:
    """Compare at most n characters of two NUL-terminated strings."""
    return _compare(_as_bytes(p), _as_bytes(q), n)


def strcmp(p: BytesLike, q: BytesLike) -> int:
    """Compare two NUL-terminated strings."""
    return _compare(_as_bytes(p), _as_bytes(q), None)


def strncpy(src: BytesLike, n: int) -> bytes:
    """The n bytes strncpy leaves in its destination: src, then NUL padding."""
    if n <= 0:
        return b""
    return (_cstr(src) + b"\0" * n)[:n]


def safestrcpy(src: BytesLike, n: int) -> bytes:
    """Copy at most n-1 characters of src and always NUL-terminate."""
    if n <= 0:
        return b""
    return _cstr(src)[:n - 1] + b"\0"


def strlen(s: BytesLike) -> int:
    """Length of the string up to the first NUL."""
    return len(_cstr(s))


def strchr(s: BytesLike, c: Union[int, str, bytes]) -> Optional[int]:
    """Index of the first c before the terminating NUL, or None."""
    target = _char(c)
    if target == 0:
        return None
    index = _cstr(s).find(target)
    return None if index < 0 else index


def atoi(s: BytesLike) -> int:
    """Value of the leading decimal digits, with 32-bit signed wraparound."""
    n = 0
    for ch in _as_bytes(s):
        if not 0x30 <= ch <= 0x39:
            break
        n = (n * 10 + ch - 0x30) & 0xFFFFFFFF
    return n - 0x100000000 if n & 0x80000000 else n


def gets(stream: BinaryIO, limit: int) -> bytes:
    """Read one line of at most limit-1 bytes, keeping the newline or carriage return."""
    line = bytearray()
    while len(line) + 1 < limit:
        c = stream.read(1)
        if not c:
            break
        line += c
        if c in (b"\n", b"\r"):
            break
    return bytes(line)