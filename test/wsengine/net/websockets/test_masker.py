import codecs

import pytest
from hypothesis import given
from hypothesis import strategies as st

from wsengine.net.websockets import masker


@pytest.mark.parametrize(
    "input,expected",
    [
        ([b"a"], "00"),
        ([b"four"], "070d1616"),
        ([b"fourf"], "070d161607"),
        ([b"fourfive"], "070d1616070b1501"),
        ([b"a", b"aasdfasdfa", b"asdf"], "000302170504021705040205120605"),
        (
            [b"a" * 50, b"aasdfasdfa", b"asdf"],
            "00030205000302050003020500030205000302050003020500030205000302050003020500030205000302050003020500030205120605051206050500110702",  # noqa
        ),
    ],
)
def test_masker(input, expected):
    m = masker.Masker(b"abcd")
    data = b"".join([m(t) for t in input])
    assert data == codecs.decode(expected, "hex")

    data = masker.Masker(b"abcd")(data)
    assert data == b"".join(input)


def test_empty():
    m = masker.Masker(b"abcd")
    assert m(b"") == b""
    assert m.offset == 0


def test_invalid_key():
    with pytest.raises(ValueError):
        masker.Masker(b"abc")


def test_random():
    m = masker.Masker.random()
    assert len(m.key) == 4
    assert m.offset == 0


@given(st.binary(), st.binary(min_size=4, max_size=4))
def test_involution(data, key):
    assert masker.Masker(key)(masker.Masker(key)(data)) == data
