import io

import pytest

from xvkit.cstring import (
    FileType,
    OpenFlag,
    atoi,
    gets,
    memcmp,
    memmove,
    safestrcpy,
    strchr,
    strcmp,
    strlen,
    strncmp,
    strncpy,
)


def test_memcmp_equal_and_sign():
    assert memcmp(b"abc", b"abc", 3) == 0
    assert memcmp(b"abc", b"abd", 3) < 0
    assert memcmp(b"abd", b"abc", 3) > 0
    assert memcmp(b"abc", b"abd", 2) == 0


def test_memcmp_returns_byte_difference():
    assert memcmp(b"\x05", b"\x02", 1) == 5 - 2


def test_memcmp_length_too_long():
    with pytest.raises(ValueError):
        memcmp(b"ab", b"abc", 3)


def test_memmove_overlapping_forward():
    buf = bytearray(b"abcdef")
    memmove(buf, 2, 0, 4)
    assert buf == bytearray(b"ababcd")


def test_memmove_overlapping_backward():
    buf = bytearray(b"abcdef")
    memmove(buf, 0, 2, 4)
    assert buf[:4] == bytearray(b"cdef")
    assert buf[4:] == bytearray(b"ef")


def test_memmove_out_of_range():
    with pytest.raises(IndexError):
        memmove(bytearray(4), 2, 0, 4)


def test_strncmp():
    assert strncmp(b"abc", b"abd", 2) == 0
    assert strncmp(b"abc", b"abd", 3) < 0
    assert strncmp(b"abc", b"abc", 10) == 0
    assert strncmp(b"ab", b"abc", 3) < 0
    assert strncmp(b"x", b"y", 0) == 0


def test_strcmp_stops_at_nul():
    assert strcmp(b"abc", b"abc\0xyz") == 0
    assert strcmp(b"abc", b"ab") > 0
    assert strcmp("abc", b"abc") == 0


def test_strncpy_pads_with_nul():
    out = strncpy(b"hi", 5)
    assert len(out) == 5
    assert out.startswith(b"hi")
    assert set(out[2:]) == {0}


def test_strncpy_truncates_without_nul():
    assert strncpy(b"hello", 3) == b"hel"


def test_safestrcpy_always_terminates():
    assert safestrcpy(b"hello", 3) == b"he\0"
    assert safestrcpy(b"hi", 10) == b"hi\0"
    assert safestrcpy(b"hi", 0) == b""


def test_strlen():
    assert strlen(b"ab\0cd") == 2
    assert strlen(b"") == 0
    assert strlen(b"hello") == len(b"hello")


def test_strchr():
    assert strchr(b"abc", "c") == 2
    assert strchr(b"abc", ord("a")) == 0
    assert strchr(b"abc", "z") is None
    assert strchr(b"ab\0c", "c") is None
    assert strchr(b" \t", 0) is None


def test_atoi():
    assert atoi(b"123abc") == 123
    assert atoi(b"-5") == 0
    assert atoi(b"") == 0
    assert atoi("42") == 42


def test_gets_stops_after_newline():
    stream = io.BytesIO(b"line1\nline2")
    assert gets(stream, 100) == b"line1\n"
    assert gets(stream, 100) == b"line2"
    assert gets(stream, 100) == b""


def test_gets_respects_limit():
    assert gets(io.BytesIO(b"abcdef"), 4) == b"abc"


def test_gets_stops_after_carriage_return():
    assert gets(io.BytesIO(b"ab\rcd"), 100) == b"ab\r"


def test_open_flags_and_types():
    assert OpenFlag.WRONLY | OpenFlag.CREATE == 0x201
    assert FileType(1) is FileType.DIR
    assert int(FileType.DEV) == 3