"""
Drive a Protocol over an asyncio stream pair.

A WebSocketConnection owns one Protocol and spawns one task that reads from the
transport until EOF, feeds everything into the protocol and dispatches the
resulting events. Sending happens directly from the calling task. Since the
Protocol itself never awaits anything, calls into it can never interleave.
"""
import asyncio
import logging
from types import TracebackType
from typing import Literal

from wsengine import events
from wsengine import exceptions
from wsengine.connection import ConnectionState
from wsengine.net.websockets.frame import CloseCode
from wsengine.protocol import Protocol

logger = logging.getLogger(__name__)

READ_SIZE = 65535
CLOSE_TIMEOUT = 10


class WebSocketConnection:
    protocol: Protocol
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    peername: tuple | None
    close_code: int | None
    """The status code of the peer's CLOSE frame, once it has been received."""
    close_reason: str

    def __init__(
        self,
        protocol: Protocol,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        self.protocol = protocol
        self.reader = reader
        self.writer = writer
        self.peername = writer.get_extra_info("peername")
        self.close_code = None
        self.close_reason = ""

        self._messages: asyncio.Queue[events.Message | None] = asyncio.Queue()
        self._handshake_done: asyncio.Future[None] = (
            asyncio.get_running_loop().create_future()
        )
        self._closed = asyncio.Event()
        self._reader_task: asyncio.Task | None = None
        # workaround for https://bugs.python.org/issue29930
        self._drain_lock = asyncio.Lock()

    def __repr__(self):
        return f"WebSocketConnection({self.protocol!r}, {self.peername})"

    @property
    def state(self) -> ConnectionState:
        return self.protocol.state

    @property
    def subprotocol(self) -> str | None:
        return self.protocol.subprotocol

    def log(
        self,
        message: str,
        level: int = logging.INFO,
        exc_info: Literal[True]
        | tuple[type[BaseException], BaseException, TracebackType | None]
        | None = None,
    ) -> None:
        logger.log(level, message, extra={"client": self.peername}, exc_info=exc_info)

    async def start(self) -> None:
        """
        Run the opening handshake.

        Raises:
            HandshakeError, if the handshake failed. The transport is closed in that case.
        """
        self._reader_task = asyncio.create_task(self._read_loop())
        self._reader_task.set_name(f"websocket reader {self.peername}")
        await self._flush()
        await self._handshake_done

    async def _read_loop(self) -> None:
        try:
            while self.protocol.state is not ConnectionState.CLOSED:
                try:
                    data = await self.reader.read(READ_SIZE)
                except OSError as e:
                    self.log(f"error reading from peer: {e}", logging.DEBUG)
                    data = b""
                try:
                    if data:
                        self.protocol.receive_data(data)
                    else:
                        self.protocol.receive_eof()
                except exceptions.WsEngineException as e:
                    self.log(f"connection failed: {e}")
                    break
                finally:
                    self._process_events()
                    await self._flush()
                if not data:
                    break
        finally:
            self._connection_lost()

    def _process_events(self) -> None:
        for event in self.protocol.events_received():
            if isinstance(event, events.Message):
                self._messages.put_nowait(event)
            elif isinstance(event, events.HandshakeRequestReceived):
                self.log(
                    f"websocket connection established: {event.request.host}{event.request.path}",
                    logging.DEBUG,
                )
                if not self._handshake_done.done():
                    self._handshake_done.set_result(None)
            elif isinstance(event, events.HandshakeResponseReceived):
                self.log("websocket connection established", logging.DEBUG)
                if not self._handshake_done.done():
                    self._handshake_done.set_result(None)
            elif isinstance(event, events.HandshakeRejected):
                self.log(f"rejected websocket upgrade: {event.error}")
                if not self._handshake_done.done():
                    self._handshake_done.set_exception(event.error)
            elif isinstance(event, events.CloseReceived):
                self.close_code = event.code
                self.close_reason = event.reason
                self.log(f"peer closed connection: {event.code} {event.reason}", logging.DEBUG)
            elif isinstance(event, events.ProtocolFailed):
                self.log(f"protocol error: {event.error}", logging.WARNING)
            elif isinstance(event, events.PingReceived):
                self.log(f"ping {event.payload!r}", logging.DEBUG)
            elif isinstance(event, events.PongReceived):
                self.log(f"pong {event.payload!r}", logging.DEBUG)

    def _connection_lost(self) -> None:
        if not self._handshake_done.done():
            error = self.protocol.error
            if not isinstance(error, exceptions.HandshakeError):
                error = exceptions.HandshakeError(
                    f"Connection closed before the handshake completed: {error}"
                    if error
                    else "Connection closed before the handshake completed."
                )
            self._handshake_done.set_exception(error)
        self._messages.put_nowait(None)
        self.writer.close()
        self._closed.set()

    async def _flush(self) -> None:
        data = self.protocol.data_to_send()
        if not data or self.writer.is_closing():
            return
        self.writer.write(data)
        async with self._drain_lock:
            try:
                await self.writer.drain()
            except OSError as e:
                self.log(f"error sending data: {e}", logging.DEBUG)

    def _check_open(self) -> None:
        if self.protocol.state is not ConnectionState.OPEN:
            raise exceptions.ConnectionClosed(self.close_code, self.close_reason)

    async def recv(self) -> events.Message | None:
        """
        Wait for the next message. Returns None once the connection is closed.
        """
        message = await self._messages.get()
        if message is None:
            # keep returning None for subsequent calls
            self._messages.put_nowait(None)
        return message

    def __aiter__(self):
        return self

    async def __anext__(self) -> events.Message:
        message = await self.recv()
        if message is None:
            raise StopAsyncIteration
        return message

    async def send(self, data: str | bytes) -> None:
        """
        Send a TEXT message for str, a BINARY message for bytes.

        Raises:
            ConnectionClosed, if the connection is not open.
        """
        self._check_open()
        if isinstance(data, str):
            self.protocol.send_text(data)
        else:
            self.protocol.send_binary(data)
        await self._flush()

    async def ping(self, payload: bytes = b"") -> None:
        self._check_open()
        self.protocol.send_ping(payload)
        await self._flush()

    async def close(
        self,
        code: int = CloseCode.NORMAL_CLOSURE,
        reason: str = "",
        timeout: float = CLOSE_TIMEOUT,
    ) -> None:
        """
        Run the closing handshake and wait for the transport to be closed.
        If the peer does not answer within `timeout` seconds, the transport
        is closed anyway.
        """
        self.protocol.close(code, reason)
        await self._flush()
        try:
            await asyncio.wait_for(self._closed.wait(), timeout)
        except asyncio.TimeoutError:
            self.log("peer did not complete the closing handshake", logging.DEBUG)
            await self.abort()

    async def abort(self) -> None:
        """
        Close the transport without a closing handshake.
        """
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
        elif not self._closed.is_set():
            self._connection_lost()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def __aenter__(self) -> "WebSocketConnection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
