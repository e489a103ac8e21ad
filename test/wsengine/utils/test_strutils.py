import pytest

from wsengine.utils import strutils


def test_always_bytes():
    assert strutils.always_bytes(b"\x00\xff") == b"\x00\xff"
    assert strutils.always_bytes("Upgrade") == b"Upgrade"
    assert strutils.always_bytes("b\udcfcrs", "utf-8", "surrogateescape") == b"b\xfcrs"
    with pytest.raises(UnicodeEncodeError):
        strutils.always_bytes("✓", "ascii")
    with pytest.raises(TypeError, match="got int"):
        strutils.always_bytes(13)


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"hello", "hello"),
        (b"\x00\x08", r"\x00\x08"),
        (b"\r\n\t", r"\r\n\t"),
        (b"back\\slash", r"back\\slash"),
        ("✓".encode(), r"\xe2\x9c\x93"),
        (b"'", "'"),
        (b'"', '"'),
    ],
)
def test_bytes_to_escaped_str(data, expected):
    assert strutils.bytes_to_escaped_str(data) == expected


def test_bytes_to_escaped_str_requires_bytes():
    with pytest.raises(TypeError):
        strutils.bytes_to_escaped_str("text")


def test_shorten():
    assert strutils.shorten(b"") == ""
    assert strutils.shorten(b"ping\x00") == r"ping\x00"
    assert strutils.shorten(b"x" * 40) == "x" * 40
    assert strutils.shorten(b"x" * 41) == "x" * 40 + "... (41 bytes)"
    assert strutils.shorten(b"abcdef", limit=3) == "abc... (6 bytes)"
