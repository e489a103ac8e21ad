"""
WebSocket server implementation using asyncio.

One task is spawned per accepted client. It runs the opening handshake and
then hands the connection to the user-supplied handler coroutine. Once the
handler returns, the closing handshake is performed.
"""
import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable

from wsengine import exceptions
from wsengine.connection import Side
from wsengine.connection_handler import WebSocketConnection
from wsengine.net.websockets.frame import CloseCode
from wsengine.options import Options
from wsengine.protocol import Protocol
from wsengine.utils import human

logger = logging.getLogger(__name__)

Handler = Callable[[WebSocketConnection], Awaitable[None]]


async def echo(conn: WebSocketConnection) -> None:
    """
    Send every message back to where it came from.
    """
    async for message in conn:
        if message.is_text:
            await conn.send(message.text)
        else:
            await conn.send(message.content)


class WebSocketServer:
    handler: Handler
    options: Options
    connections: set[WebSocketConnection]

    def __init__(self, handler: Handler = echo, options: Options | None = None) -> None:
        self.handler = handler
        self.options = options or Options()
        self.connections = set()
        self._server: asyncio.Server | None = None

    def __repr__(self):
        return f"WebSocketServer({self.handler.__name__}, {self.listen_addrs})"

    @property
    def listen_addrs(self) -> list[tuple]:
        if self._server is None:
            return []
        return [s.getsockname() for s in self._server.sockets]

    async def start(self) -> None:
        if self._server is not None:
            raise RuntimeError("Server is already running.")
        self._server = await asyncio.start_server(
            self.handle_client,
            self.options.listen_host or None,
            self.options.listen_port,
        )
        addrs = " and ".join({human.format_address(a) for a in self.listen_addrs})
        logger.info(f"WebSocket server listening at {addrs}.")

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for conn in list(self.connections):
            await conn.close(CloseCode.GOING_AWAY)
        await self._server.wait_closed()
        self._server = None
        logger.info("WebSocket server stopped.")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server
        await self._server.serve_forever()

    async def __aenter__(self) -> "WebSocketServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        conn = WebSocketConnection(
            Protocol(Side.RESPONDER, options=self.options), reader, writer
        )
        conn.log("client connect")
        try:
            await conn.start()
        except exceptions.HandshakeError as e:
            conn.log(f"websocket handshake failed: {e}")
            await conn.wait_closed()
            conn.log("client disconnect")
            return

        self.connections.add(conn)
        try:
            await self.handler(conn)
        except exceptions.ConnectionClosed:
            pass
        except Exception as e:
            conn.log(
                f"connection handler has crashed: {e}",
                logging.ERROR,
                exc_info=(type(e), e, e.__traceback__),
            )
            await conn.close(CloseCode.INTERNAL_ERROR)
        finally:
            await conn.close()
            self.connections.discard(conn)
            conn.log("client disconnect")
