"""
The HTTP messages exchanged during the opening handshake.

Only the parts of HTTP/1.1 needed to upgrade a byte stream are modelled here:
a request line or status line plus headers, and (for rejections) a short body.
"""
from collections.abc import Iterable
from collections.abc import Iterator
from dataclasses import dataclass
from dataclasses import field

from wsengine.types import multidict
from wsengine.utils import strutils


def _decode(raw: bytes) -> str:
    # non-ASCII header values are kept intact, e.g. utf-8 encoded file names
    return raw.decode("utf-8", "surrogateescape")


def _encode(text: str | bytes) -> bytes:
    return strutils.always_bytes(text, "utf-8", "surrogateescape")


class Headers(multidict.MultiDict):
    """
    The header block of a handshake message.

    Fields are stored as raw bytes in wire order, while lookups take str or
    bytes names and ignore case. A header that occurs more than once reads as
    the comma-joined list of its values:

    >>> h = Headers([(b"Connection", b"keep-alive"), (b"connection", b"Upgrade")])
    >>> h["CONNECTION"]
    'keep-alive, Upgrade'

    Keyword arguments are a shorthand for header names with dashes:

    >>> Headers(sec_websocket_version="13").fields
    ((b'sec-websocket-version', b'13'),)
    """

    fields: tuple[tuple[bytes, bytes], ...]

    def __init__(self, fields: Iterable[tuple[bytes, bytes]] = (), **headers: str | bytes):
        super().__init__(fields)
        if not all(isinstance(x, bytes) for f in self.fields for x in f):
            raise TypeError("Header fields must be bytes.")
        for name, value in headers.items():
            self[name.replace("_", "-")] = value

    @staticmethod
    def _kconv(key: str | bytes) -> bytes:
        return _encode(key).lower()

    @staticmethod
    def _reduce_values(values: list[str]) -> str:
        return ", ".join(values)

    def __bytes__(self) -> bytes:
        return b"".join(name + b": " + value + b"\r\n" for name, value in self.fields)

    def __iter__(self) -> Iterator[str]:
        return map(_decode, super().__iter__())

    def get_all(self, name: str | bytes) -> list[str]:
        """
        The values of a header without folding them into one string.
        """
        return [_decode(v) for v in super().get_all(name)]

    def set_all(self, name: str | bytes, values: Iterable[str | bytes]) -> None:
        super().set_all(_encode(name), [_encode(v) for v in values])

    def add(self, key: str | bytes, value: str | bytes) -> None:
        super().add(_encode(key), _encode(value))

    def get_tokens(self, name: str) -> list[str]:
        """
        The comma-separated tokens of a list-valued header such as
        `Connection: keep-alive, Upgrade`, across all of its occurrences.
        """
        tokens = (t.strip() for v in self.get_all(name) for t in v.split(","))
        return [t for t in tokens if t]


@dataclass
class HandshakeRequest:
    """
    The client's HTTP Upgrade request.
    """

    path: str
    headers: Headers = field(default_factory=Headers)
    method: str = "GET"
    http_version: str = "HTTP/1.1"

    @property
    def host(self) -> str | None:
        return self.headers.get("host")

    def __repr__(self):
        return f"HandshakeRequest({self.method} {self.path})"


@dataclass
class HandshakeResponse:
    """
    The server's answer to a HandshakeRequest: `101 Switching Protocols`
    on success, a 4xx response otherwise.
    """

    status_code: int
    reason: str
    headers: Headers = field(default_factory=Headers)
    content: bytes = b""
    http_version: str = "HTTP/1.1"

    @property
    def is_upgrade(self) -> bool:
        return self.status_code == 101

    def __repr__(self):
        return f"HandshakeResponse({self.status_code} {self.reason})"
