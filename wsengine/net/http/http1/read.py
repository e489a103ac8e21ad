"""
Parsers for the HTTP/1 message heads exchanged in the opening handshake.

The input is a list of lines with their terminators already removed,
as produced by the stream buffer. All functions raise ValueError on
malformed input.
"""
import re

from wsengine.http import HandshakeRequest
from wsengine.http import HandshakeResponse
from wsengine.http import Headers

_http_version = rb"HTTP/\d\.\d"
# Upgrade requests are always sent in origin-form.
_request_line = re.compile(rb"(\S+) (/\S*) (" + _http_version + rb")")
_status_line = re.compile(rb"(" + _http_version + rb") (\d{3})(?: (.*))?")
_header_name = re.compile(rb"[^\s:]+")


def parse_request_line(line: bytes) -> tuple[bytes, bytes, bytes]:
    m = _request_line.fullmatch(line)
    if not m:
        raise ValueError(f"Bad HTTP request line: {line!r}")
    method, target, http_version = m.groups()
    return method, target, http_version


def parse_status_line(line: bytes) -> tuple[bytes, int, bytes]:
    m = _status_line.fullmatch(line)
    if not m:
        raise ValueError(f"Bad HTTP response line: {line!r}")
    http_version, status_code, reason = m.groups()
    return http_version, int(status_code), reason or b""


def parse_headers(lines: list[bytes]) -> Headers:
    """
    Parse header lines. Obsolete line folding (a line starting with
    whitespace) is joined onto the previous header's value.
    """
    fields: list[tuple[bytes, bytes]] = []
    for line in lines:
        if line[:1] in (b" ", b"\t"):
            if not fields:
                raise ValueError(f"Invalid header line: {line!r}")
            name, value = fields.pop()
            fields.append((name, value + b" " + line.strip()))
            continue
        name, sep, value = line.partition(b":")
        if not sep or not _header_name.fullmatch(name):
            raise ValueError(f"Invalid header line: {line!r}")
        fields.append((name, value.strip()))
    return Headers(fields)


def read_request_head(lines: list[bytes]) -> HandshakeRequest:
    """
    Parse a request line and the headers following it.
    """
    if not lines:
        raise ValueError("Empty HTTP request head")
    method, target, http_version = parse_request_line(lines[0])
    return HandshakeRequest(
        path=target.decode("ascii", "replace"),
        headers=parse_headers(lines[1:]),
        method=method.decode("ascii", "replace"),
        http_version=http_version.decode("ascii"),
    )


def read_response_head(lines: list[bytes]) -> HandshakeResponse:
    """
    Parse a status line and the headers following it.
    A missing reason phrase is accepted.
    """
    if not lines:
        raise ValueError("Empty HTTP response head")
    http_version, status_code, reason = parse_status_line(lines[0])
    return HandshakeResponse(
        status_code=status_code,
        reason=reason.decode("utf-8", "replace"),
        headers=parse_headers(lines[1:]),
        http_version=http_version.decode("ascii"),
    )
