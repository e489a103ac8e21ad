"""
The opening handshake (RFC 6455, Section 4).

Spec: https://tools.ietf.org/html/rfc6455#section-4
"""
import base64
import hashlib
import os
import urllib.parse
from collections.abc import Sequence
from http import HTTPStatus

from wsengine import version
from wsengine.exceptions import HandshakeError
from wsengine.http import HandshakeRequest
from wsengine.http import HandshakeResponse
from wsengine.http import Headers

MAGIC = b"258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

DEFAULT_PORTS = {"ws": 80, "wss": 443}


def compute_accept_key(key: str | bytes) -> str:
    """
    Sec-WebSocket-Accept = base64(SHA1(Sec-WebSocket-Key + MAGIC))
    """
    if isinstance(key, str):
        key = key.encode("ascii")
    return base64.b64encode(hashlib.sha1(key + MAGIC).digest()).decode("ascii")


def generate_key() -> str:
    return base64.b64encode(os.urandom(16)).decode("ascii")


def check_upgrade_headers(headers: Headers) -> str | None:
    """
    Check the Upgrade and Connection headers shared by request and response.
    Returns a reason for failure, or None if both confirm the upgrade.
    """
    if headers.get("upgrade", "").strip().lower() != "websocket":
        return f"Missing or invalid Upgrade header: {headers.get('upgrade')!r}"
    if "upgrade" not in (t.lower() for t in headers.get_tokens("connection")):
        return f"Missing or invalid Connection header: {headers.get('connection')!r}"
    return None


def build_request(
    uri: str,
    subprotocols: Sequence[str] = (),
    origin: str | None = None,
    key: str | None = None,
) -> HandshakeRequest:
    """
    Create the client's upgrade request for a ws:// or wss:// URI.
    If key is not specified, a fresh random one is generated.
    """
    parts = urllib.parse.urlsplit(uri)
    if parts.scheme not in DEFAULT_PORTS:
        raise ValueError(f"Not a WebSocket URI: {uri!r}")
    if not parts.hostname:
        raise ValueError(f"WebSocket URI without host: {uri!r}")

    try:
        host = parts.hostname.encode("ascii").decode()
    except UnicodeEncodeError:
        host = parts.hostname.encode("idna").decode()
    if ":" in host:
        host = f"[{host}]"
    if parts.port is not None and parts.port != DEFAULT_PORTS[parts.scheme]:
        host = f"{host}:{parts.port}"

    path = urllib.parse.quote(parts.path or "/", safe="/%:@!$&'()*+,;=~")
    if parts.query:
        path += "?" + parts.query

    headers = Headers(
        [
            (b"Host", host.encode("ascii")),
            (b"Upgrade", b"websocket"),
            (b"Connection", b"Upgrade"),
            (b"Sec-WebSocket-Key", (key or generate_key()).encode("ascii")),
            (b"Sec-WebSocket-Version", version.WEBSOCKET_VERSION.encode("ascii")),
        ]
    )
    if origin is not None:
        headers["Origin"] = origin
    if subprotocols:
        headers["Sec-WebSocket-Protocol"] = ", ".join(subprotocols)
    return HandshakeRequest(path=path, headers=headers)


def accept(
    request: HandshakeRequest, subprotocols: Sequence[str] = ()
) -> HandshakeResponse:
    """
    Validate a client's upgrade request and build the 101 response.

    Args:
        subprotocols: The subprotocols we support, in order of preference.

    Raises:
        HandshakeError, if the request is not a valid WebSocket upgrade.
    """
    if request.method != "GET":
        raise HandshakeError(f"Invalid request method: {request.method}")
    if request.http_version != "HTTP/1.1":
        raise HandshakeError(f"Invalid HTTP version: {request.http_version}")
    if reason := check_upgrade_headers(request.headers):
        raise HandshakeError(reason)

    key = request.headers.get("sec-websocket-key", "").strip()
    if not key:
        raise HandshakeError("Missing Sec-WebSocket-Key header")
    client_version = request.headers.get("sec-websocket-version", "").strip()
    if client_version != version.WEBSOCKET_VERSION:
        raise HandshakeError(f"Unsupported Sec-WebSocket-Version: {client_version!r}")

    headers = Headers(
        [
            (b"Upgrade", b"websocket"),
            (b"Connection", b"Upgrade"),
            (b"Sec-WebSocket-Accept", compute_accept_key(key).encode("ascii")),
        ]
    )
    offered = request.headers.get_tokens("sec-websocket-protocol")
    for proto in subprotocols:
        if proto in offered:
            headers["Sec-WebSocket-Protocol"] = proto
            break
    return HandshakeResponse(
        status_code=101, reason="Switching Protocols", headers=headers
    )


def reject(error: HandshakeError, status_code: int = 400) -> HandshakeResponse:
    """
    The response sent in place of a 101 when the upgrade request is refused.
    """
    content = error.reason.encode("utf-8", "replace") + b"\n"
    headers = Headers(
        [
            (b"Content-Type", b"text/plain; charset=utf-8"),
            (b"Content-Length", b"%d" % len(content)),
            (b"Connection", b"close"),
            (b"Sec-WebSocket-Version", version.WEBSOCKET_VERSION.encode("ascii")),
        ]
    )
    return HandshakeResponse(
        status_code=status_code,
        reason=HTTPStatus(status_code).phrase,
        headers=headers,
        content=content,
    )


def validate_response(
    response: HandshakeResponse, sent_key: str, subprotocols: Sequence[str] = ()
) -> str | None:
    """
    Check the server's answer to our upgrade request.

    Returns:
        The subprotocol selected by the server, if any.

    Raises:
        HandshakeError, if the server did not accept the upgrade.
    """
    if not response.is_upgrade:
        raise HandshakeError(
            f"Server rejected WebSocket upgrade: {response.status_code} {response.reason}"
        )
    if reason := check_upgrade_headers(response.headers):
        raise HandshakeError(reason)

    accept_key = response.headers.get("sec-websocket-accept", "").strip()
    if accept_key != compute_accept_key(sent_key):
        raise HandshakeError(f"Invalid Sec-WebSocket-Accept header: {accept_key!r}")

    selected = response.headers.get("sec-websocket-protocol")
    if selected is not None:
        selected = selected.strip()
        if selected not in subprotocols:
            raise HandshakeError(f"Server selected unsupported subprotocol: {selected!r}")
    if "sec-websocket-extensions" in response.headers:
        raise HandshakeError("Server negotiated an extension, but none were offered.")
    return selected
