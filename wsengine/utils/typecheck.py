import typing
from collections import abc
from types import UnionType


def _matches(value: typing.Any, spec: typing.Any) -> bool:
    if spec is typing.Any:
        return True
    origin = typing.get_origin(spec)
    if origin in (typing.Union, UnionType):
        return any(_matches(value, s) for s in typing.get_args(spec))
    if origin is abc.Sequence:
        (item,) = typing.get_args(spec)
        return isinstance(value, (list, tuple)) and all(_matches(v, item) for v in value)
    if spec is int and isinstance(value, bool):
        return False
    return isinstance(value, spec)


def check_option_type(name: str, value: typing.Any, typeinfo: typing.Any) -> None:
    """
    Raise a TypeError unless value fits typeinfo. Understands the types
    options are declared with: plain classes, unions, Optional, Sequence and Any.
    """
    if not _matches(value, typeinfo):
        raise TypeError(
            f"Expected {typespec_description(typeinfo)} for {name}, "
            f"but got {type(value).__name__}."
        )


_names = {
    str: "str",
    int: "int",
    bool: "bool",
    typing.Optional[str]: "optional str",
    typing.Optional[int]: "optional int",
    abc.Sequence[str]: "sequence of str",
}


def typespec_to_str(typespec: typing.Any) -> str:
    try:
        return _names[typespec]
    except (KeyError, TypeError):
        raise NotImplementedError(typespec)


def typespec_description(typespec: typing.Any) -> str:
    try:
        return typespec_to_str(typespec)
    except NotImplementedError:
        return str(typespec)
