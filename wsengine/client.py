import asyncio
import logging
import urllib.parse

from wsengine.connection import Side
from wsengine.connection_handler import WebSocketConnection
from wsengine.net.websockets.handshake import DEFAULT_PORTS
from wsengine.options import Options
from wsengine.protocol import Protocol


async def connect(
    uri: str,
    options: Options | None = None,
    origin: str | None = None,
) -> WebSocketConnection:
    """
    Open a WebSocket connection to a ws:// or wss:// URI and run the opening handshake.

    Raises:
        ValueError, if the URI is not a WebSocket URI.
        OSError, if the TCP (or TLS) connection cannot be established.
        HandshakeError, if the server did not accept the upgrade.
    """
    protocol = Protocol(Side.INITIATOR, uri, options=options, origin=origin)
    parts = urllib.parse.urlsplit(uri)
    port = parts.port or DEFAULT_PORTS[parts.scheme]
    reader, writer = await asyncio.open_connection(
        parts.hostname, port, ssl=True if parts.scheme == "wss" else None
    )
    conn = WebSocketConnection(protocol, reader, writer)
    conn.log(f"connecting to {uri}", logging.DEBUG)
    await conn.start()
    return conn
