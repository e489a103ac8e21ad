"""
Typed, declarative options.

Options are declared once with `add_option` and afterwards read and written as
plain attributes. Every assignment is type checked; `update` applies several
values at once and leaves everything untouched if one of them is rejected.
Options can be populated from `--set name=value` strings, from argparse
results and from YAML config files.
"""
from __future__ import annotations

import copy
import textwrap
from collections.abc import Callable
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from typing import Optional
from typing import TextIO

import ruamel.yaml

from wsengine import exceptions
from wsengine.utils import typecheck

_unset = object()


class _Option:
    __slots__ = ("name", "typespec", "_default", "value", "help")

    def __init__(self, name: str, typespec: Any, default: Any, help: str) -> None:
        typecheck.check_option_type(name, default, typespec)
        self.name = name
        self.typespec = typespec
        self._default = default
        self.value = _unset
        self.help = " ".join(textwrap.dedent(help).split())

    def __repr__(self):
        return f"{self.current()!r} [{typecheck.typespec_to_str(self.typespec)}]"

    def __eq__(self, other) -> bool:
        if not isinstance(other, _Option):
            return False
        return all(getattr(self, a) == getattr(other, a) for a in self.__slots__)

    @property
    def default(self) -> Any:
        return copy.deepcopy(self._default)

    def current(self) -> Any:
        # never hand out our own (possibly mutable) value
        if self.value is _unset:
            return self.default
        return copy.deepcopy(self.value)

    def set(self, value: Any) -> None:
        typecheck.check_option_type(self.name, value, self.typespec)
        self.value = value

    def has_changed(self) -> bool:
        return self.current() != self._default


class OptManager:
    """
    Base class for option collections. Subclasses declare their options in
    `__init__` with `add_option`.
    """

    _options: dict[str, _Option]

    def __init__(self) -> None:
        # attribute assignment is routed to update() once _options exists
        self.__dict__["_options"] = {}

    def add_option(self, name: str, typespec: Any, default: Any, help: str) -> None:
        if name in self._options:
            raise ValueError(f"Option {name} is already defined.")
        self._options[name] = _Option(name, typespec, default, help)

    def __getattr__(self, attr: str) -> Any:
        options = self.__dict__.get("_options", {})
        if attr not in options:
            raise AttributeError(f"No such option: {attr}")
        return options[attr].current()

    def __setattr__(self, attr: str, value: Any) -> None:
        self.update(**{attr: value})

    def __contains__(self, name: str) -> bool:
        return name in self._options

    def __eq__(self, other):
        if not isinstance(other, OptManager):
            return False
        return self._options == other._options

    def __deepcopy__(self, memodict=None):
        o = type(self).__new__(type(self))
        o.__dict__["_options"] = {
            name: copy.copy(opt) for name, opt in self._options.items()
        }
        for opt in o._options.values():
            if opt.value is not _unset:
                opt.value = copy.deepcopy(opt.value, memodict)
        return o

    __copy__ = __deepcopy__

    def __repr__(self):
        values = ", ".join(f"{k}={v.current()!r}" for k, v in sorted(self._options.items()))
        return f"{type(self).__name__}({values})"

    def keys(self) -> set[str]:
        return set(self._options)

    def items(self):
        return self._options.items()

    def default(self, name: str) -> Any:
        return self._options[name].default

    def has_changed(self, name: str) -> bool:
        return self._options[name].has_changed()

    def reset(self) -> None:
        for opt in self._options.values():
            opt.value = _unset

    def update(self, **kwargs: Any) -> None:
        """
        Set several options at once.

        Raises:
            KeyError, if an option does not exist.
            TypeError, if a value does not match the option's type.
        """
        unknown = sorted(set(kwargs) - set(self._options))
        if unknown:
            raise KeyError(f"Unknown options: {', '.join(unknown)}")
        previous = {name: self._options[name].value for name in kwargs}
        try:
            for name, value in kwargs.items():
                self._options[name].set(value)
        except TypeError:
            for name, value in previous.items():
                self._options[name].value = value
            raise

    def set(self, *specs: str) -> None:
        """
        Apply `name=value` specs as given with `--set` on the command line.
        Repeating a spec appends to sequence options. A bare `name` sets
        booleans to true and clears optional and sequence options.

        Raises:
            OptionsError, if an option is unknown or a value cannot be converted.
        """
        collected: dict[str, list[str]] = {}
        for spec in specs:
            name, sep, value = spec.partition("=")
            values = collected.setdefault(name, [])
            if sep:
                values.append(value)

        unknown = [name for name in collected if name not in self._options]
        if unknown:
            raise exceptions.OptionsError(f"Unknown option(s): {', '.join(unknown)}")

        converted = {
            name: _convert(self._options[name], values)
            for name, values in collected.items()
        }
        try:
            self.update(**converted)
        except TypeError as e:
            raise exceptions.OptionsError(str(e)) from e

    def make_parser(self, parser, name: str, metavar=None, short=None) -> None:
        """
        Add a command line flag for an option to an argparse parser or group.
        Unparsed flags leave the option alone: their value is None.
        """
        opt = self._options[name]
        flag = "--" + name.replace("_", "-")
        flags = [flag, f"-{short}"] if short else [flag]

        if opt.typespec is bool:
            negated = ["--no-" + name.replace("_", "-")]
            if short and opt.default:
                # the short flag always flips the default
                flags, negated = [flag], negated + [f"-{short}"]
            group = parser.add_mutually_exclusive_group()
            group.add_argument(*negated, action="store_false", dest=name)
            group.add_argument(*flags, action="store_true", dest=name, help=opt.help)
            parser.set_defaults(**{name: None})
            return

        kwargs: dict[str, Any] = dict(dest=name, metavar=metavar, help=opt.help)
        if opt.typespec in (int, Optional[int]):
            kwargs.update(type=int)
        elif opt.typespec in (str, Optional[str]):
            kwargs.update(type=str)
        elif opt.typespec == Sequence[str]:
            kwargs.update(
                type=str, action="append", help=f"{opt.help} May be passed multiple times."
            )
        else:
            raise ValueError(f"Unsupported option type: {opt.typespec}")
        parser.add_argument(*flags, **kwargs)


def _convert_bool(opt: _Option, value: str | None) -> bool:
    if value in (None, "true"):
        return True
    if value == "false":
        return False
    if value == "toggle":
        return not opt.current()
    raise exceptions.OptionsError(
        f'Invalid value for {opt.name}: {value!r}. Use "true", "false" or "toggle".'
    )


def _convert_int(opt: _Option, value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise exceptions.OptionsError(f"Not an integer: {value}")


def _convert_str(opt: _Option, value: str | None) -> str | None:
    return value


_converters: dict[Any, Callable[[_Option, str | None], Any]] = {
    bool: _convert_bool,
    int: _convert_int,
    Optional[int]: _convert_int,
    str: _convert_str,
    Optional[str]: _convert_str,
}


def _convert(opt: _Option, values: list[str]) -> Any:
    if opt.typespec == Sequence[str]:
        return values
    if len(values) > 1:
        raise exceptions.OptionsError(f"Received multiple values for {opt.name}: {values}")
    value = values[0] if values else None
    try:
        converter = _converters[opt.typespec]
    except KeyError:
        raise NotImplementedError(f"Unsupported option type: {opt.typespec}")
    ret = converter(opt, value)
    if ret is None and opt.typespec in (int, str):
        raise exceptions.OptionsError(f"Option is required: {opt.name}")
    return ret


def dump_defaults(opts: OptManager, out: TextIO) -> None:
    """
    Write all options with their default values as a commented YAML document,
    suitable as a starting point for a config file.
    """
    doc = ruamel.yaml.comments.CommentedMap()
    for name in sorted(opts.keys()):
        opt = opts._options[name]
        doc[name] = opt.default
        comment = f"{opt.help} Type {typecheck.typespec_to_str(opt.typespec)}."
        doc.yaml_set_comment_before_after_key(
            name, before="\n" + "\n".join(textwrap.wrap(comment))
        )
    ruamel.yaml.YAML().dump(doc, out)


def parse(text: str) -> dict:
    """
    Parse a YAML config document into a dict of option values.
    """
    yaml = ruamel.yaml.YAML(typ="safe", pure=True)
    try:
        data = yaml.load(text)
    except ruamel.yaml.error.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is None:
            raise exceptions.OptionsError("Could not parse options.")
        raise exceptions.OptionsError(
            f"Config error at line {mark.line + 1}:\n"
            f"{mark.get_snippet()}\n{getattr(e, 'problem', '')}"
        )
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise exceptions.OptionsError("Config error - no keys found.")
    return data


def load(opts: OptManager, text: str) -> None:
    """
    Apply a YAML config document on top of the current option values.

    Raises:
        OptionsError, if the document is malformed or names unknown options.
    """
    data = parse(text)
    try:
        opts.update(**data)
    except (KeyError, TypeError) as e:
        raise exceptions.OptionsError(str(e)) from e


def load_paths(opts: OptManager, *paths: Path | str) -> None:
    """
    Load config files in order, later files taking precedence.
    Missing files are skipped.
    """
    for p in paths:
        path = Path(p).expanduser()
        if not path.is_file():
            continue
        try:
            load(opts, path.read_text(encoding="utf8"))
        except (exceptions.OptionsError, UnicodeDecodeError) as e:
            raise exceptions.OptionsError(f"Error reading {path}: {e}") from e
