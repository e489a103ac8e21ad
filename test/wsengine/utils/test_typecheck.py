import typing
from collections.abc import Sequence

import pytest

from wsengine.utils import typecheck


@pytest.mark.parametrize(
    "value, spec",
    [
        (8765, int),
        ("127.0.0.1", str),
        (False, bool),
        (None, typing.Optional[str]),
        ("1m", typing.Optional[str]),
        (None, int | None),
        (3, typing.Union[int, str]),
        ([], Sequence[str]),
        (("chat", "superchat"), Sequence[str]),
        (object(), typing.Any),
    ],
)
def test_accepted(value, spec):
    typecheck.check_option_type("opt", value, spec)


@pytest.mark.parametrize(
    "value, spec",
    [
        ("8765", int),
        (True, int),
        (None, str),
        (1, bool),
        ("x", int | None),
        ([], typing.Union[int, str]),
        ("chat", Sequence[str]),
        (["chat", 1], Sequence[str]),
    ],
)
def test_rejected(value, spec):
    with pytest.raises(TypeError):
        typecheck.check_option_type("opt", value, spec)


def test_error_message():
    with pytest.raises(TypeError, match="Expected int for listen_port, but got bool."):
        typecheck.check_option_type("listen_port", True, int)
    with pytest.raises(TypeError, match="Expected sequence of str for protocols, but got str."):
        typecheck.check_option_type("protocols", "chat", Sequence[str])


def test_typespec_to_str():
    assert typecheck.typespec_to_str(str) == "str"
    assert typecheck.typespec_to_str(bool) == "bool"
    assert typecheck.typespec_to_str(typing.Optional[str]) == "optional str"
    assert typecheck.typespec_to_str(typing.Optional[int]) == "optional int"
    assert typecheck.typespec_to_str(Sequence[str]) == "sequence of str"
    with pytest.raises(NotImplementedError):
        typecheck.typespec_to_str(dict)
    with pytest.raises(NotImplementedError):
        typecheck.typespec_to_str([int])
