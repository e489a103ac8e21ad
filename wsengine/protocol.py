"""
The WebSocket connection state machine.

A Protocol does no I/O. Its owner feeds it whatever bytes the transport
delivered with `receive_data`, then drains `events_received()` and hands
`data_to_send()` to the transport. None of these calls ever block.

    proto = Protocol(Side.RESPONDER)
    proto.receive_data(sock.recv(4096))
    for event in proto.events_received():
        if isinstance(event, events.Message):
            proto.send_text(event.text)
    sock.sendall(proto.data_to_send())

A Protocol instance must only ever be driven by the task owning its connection.
"""
import logging

from wsengine import events
from wsengine import exceptions
from wsengine.connection import ConnectionState
from wsengine.connection import Side
from wsengine.http import HandshakeRequest
from wsengine.http import HandshakeResponse
from wsengine.net.http import http1
from wsengine.net.streambuffer import ByteStreamBuffer
from wsengine.net.websockets import frame
from wsengine.net.websockets import handshake
from wsengine.net.websockets.frame import CloseCode
from wsengine.net.websockets.frame import Frame
from wsengine.net.websockets.frame import Opcode
from wsengine.options import Options
from wsengine.utils import human

logger = logging.getLogger(__name__)


class Protocol:
    """
    One end of a WebSocket connection.

    The initiator queues its upgrade request as soon as it is created,
    the responder waits for one to arrive.
    """

    side: Side
    options: Options
    error: exceptions.WsEngineException | None
    """The fatal error that ended this connection, if any."""
    request: HandshakeRequest | None
    response: HandshakeResponse | None
    subprotocol: str | None
    """The subprotocol agreed on during the handshake, if any."""

    def __init__(
        self,
        side: Side,
        uri: str | None = None,
        options: Options | None = None,
        origin: str | None = None,
    ) -> None:
        self.side = side
        self.options = options or Options()
        self.error = None
        self.request = None
        self.response = None
        self.subprotocol = None

        self._state = ConnectionState.CONNECTING
        self._buf = ByteStreamBuffer()
        self._events: list[events.Event] = []
        self._outgoing = bytearray()
        self._head_lines: list[bytes] = []

        self._max_message_size = human.parse_size(self.options.max_message_size)
        self._max_line_length = self.options.max_line_length
        self._max_header_count = self.options.max_header_count
        self._subprotocols = self.options.websocket_subprotocols
        self._validate_utf8 = self.options.validate_utf8

        # incoming fragmented message
        self._message_opcode: Opcode | None = None
        self._message_parts: list[bytes] = []
        self._message_size = 0
        # outgoing fragmented message
        self._send_opcode: Opcode | None = None

        self._close_sent = False
        self._inbound_closed = False
        self._outbound_closed = False

        if side is Side.INITIATOR:
            if uri is None:
                raise ValueError("The initiating side needs a URI to connect to.")
            self.request = handshake.build_request(uri, self._subprotocols, origin)
            self._key = self.request.headers["sec-websocket-key"]
            self._send(http1.assemble_request_head(self.request))
        elif uri is not None or origin is not None:
            raise ValueError("Only the initiating side takes a URI and origin.")

    def __repr__(self):
        return f"Protocol({self.side.value}, {self._state.name})"

    @property
    def state(self) -> ConnectionState:
        return self._state

    def get_state(self) -> ConnectionState:
        return self._state

    def _set_state(self, state: ConnectionState) -> None:
        # transitions never go back
        if state <= self._state:
            return
        logger.debug(f"{self!r} -> {state.name}")
        self._state = state

    # Receiving

    def receive_data(self, data: bytes) -> None:
        """
        Process bytes received from the peer.

        Raises:
            ProtocolError, if the peer violated the protocol. The connection must be torn down.
            HandshakeError, if we are the initiator and the server did not accept our upgrade.
        """
        if self.error is not None:
            raise exceptions.ProtocolError(
                f"Connection has already failed: {self.error}"
            ) from self.error
        if self._state is ConnectionState.CLOSED:
            logger.debug(f"Discarding {len(data)} bytes received on closed connection.")
            return
        # feeding after EOF still raises in the buffer
        if self._inbound_closed and not self._buf.eof:
            logger.debug(f"Discarding {len(data)} bytes received after CLOSE.")
            return

        self._buf.feed(data)
        try:
            if self._state is ConnectionState.CONNECTING:
                self._receive_handshake()
            if self._state in (ConnectionState.OPEN, ConnectionState.CLOSING):
                self._receive_frames()
        except exceptions.ProtocolError as e:
            self._fail(e)
            raise
        except exceptions.HandshakeError as e:
            logger.debug(f"WebSocket handshake failed: {e}")
            self.error = e
            self._set_state(ConnectionState.CLOSED)
            raise
        finally:
            self._buf.compact()

    def receive_eof(self) -> None:
        """
        Signal that the peer will not send any more data.

        Raises:
            HandshakeError, if we are the initiator and the handshake has not completed.
            UnexpectedEofError, if the stream ended in the middle of a frame.
        """
        if self._buf.eof:
            return
        self._buf.feed_eof()

        if self._state is ConnectionState.CONNECTING:
            self._set_state(ConnectionState.CLOSED)
            if self.side is Side.INITIATOR:
                self.error = exceptions.HandshakeError(
                    "Connection closed before the handshake completed."
                )
                raise self.error
            logger.debug("Connection closed before the handshake completed.")
            return

        if self._state is ConnectionState.CLOSED or self._inbound_closed:
            return

        if not self._buf.at_eof():
            try:
                # receive_data has consumed every complete frame, so this raises.
                frame.parse(self._buf, self.side.expects_masked)
            except exceptions.StreamError as e:
                self.error = e
                self._set_state(ConnectionState.CLOSED)
                raise

        self._inbound_closed = True
        self._events.append(events.CloseReceived(CloseCode.ABNORMAL_CLOSURE))
        self._set_state(ConnectionState.CLOSING)
        self._maybe_closed()

    def _receive_head(self) -> list[bytes] | None:
        """
        Collect the lines of an HTTP head up to the blank line terminating it.
        Returns None if the head is not complete yet.
        """
        while True:
            try:
                line = self._buf.read_line(self._max_line_length)
            except exceptions.LineTooLongError as e:
                raise exceptions.ProtocolError(f"Handshake line too long: {e}") from e
            if line is None:
                return None
            line = line.rstrip(b"\r\n")
            if not line:
                # tolerate empty lines preceding the start line
                if not self._head_lines:
                    continue
                lines, self._head_lines = self._head_lines, []
                return lines
            self._head_lines.append(line)
            if len(self._head_lines) > self._max_header_count + 1:
                raise exceptions.ProtocolError(
                    f"Too many handshake headers (max {self._max_header_count})."
                )

    def _receive_handshake(self) -> None:
        lines = self._receive_head()
        if lines is None:
            return
        if self.side is Side.RESPONDER:
            self._accept(lines)
        else:
            self._check_response(lines)

    def _accept(self, lines: list[bytes]) -> None:
        try:
            try:
                request = http1.read_request_head(lines)
            except ValueError as e:
                raise exceptions.HandshakeError(str(e)) from e
            response = handshake.accept(request, self._subprotocols)
        except exceptions.HandshakeError as e:
            logger.debug(f"Rejecting WebSocket upgrade: {e.reason}")
            rejection = handshake.reject(e)
            self._send(http1.assemble_response(rejection))
            self._events.append(events.HandshakeRejected(e, rejection))
            self._set_state(ConnectionState.CLOSED)
            return

        self.request = request
        self.response = response
        self.subprotocol = response.headers.get("sec-websocket-protocol")
        self._events.append(events.HandshakeRequestReceived(request))
        self._send(http1.assemble_response_head(response))
        self._set_state(ConnectionState.OPEN)

    def _check_response(self, lines: list[bytes]) -> None:
        try:
            response = http1.read_response_head(lines)
        except ValueError as e:
            raise exceptions.HandshakeError(str(e)) from e
        self.subprotocol = handshake.validate_response(
            response, self._key, self._subprotocols
        )
        self.response = response
        self._events.append(events.HandshakeResponseReceived(response))
        self._set_state(ConnectionState.OPEN)

    def _receive_frames(self) -> None:
        while not self._inbound_closed:
            f = frame.parse(
                self._buf, self.side.expects_masked, self._max_message_size
            )
            if f is None:
                return
            logger.debug(f"<< {f!r}")
            if f.opcode is Opcode.PING:
                self._events.append(events.PingReceived(f.payload))
                if not self._close_sent:
                    self._send_frame(Frame(Opcode.PONG, f.payload))
            elif f.opcode is Opcode.PONG:
                self._events.append(events.PongReceived(f.payload))
            elif f.opcode is Opcode.CLOSE:
                self._receive_close(f)
            else:
                self._receive_message_frame(f)

    def _receive_close(self, f: Frame) -> None:
        code, reason = frame.parse_close_payload(f.payload, self._validate_utf8)
        self._events.append(events.CloseReceived(code, reason))
        self._inbound_closed = True
        if not self._close_sent:
            # echo the status code, a lone byte is not a valid one
            self._send_close(f.payload[:2] if len(f.payload) >= 2 else b"")
        self._set_state(ConnectionState.CLOSING)
        self._maybe_closed()

    def _receive_message_frame(self, f: Frame) -> None:
        if f.opcode is Opcode.CONTINUATION:
            if self._message_opcode is None:
                raise exceptions.ProtocolError(
                    "Received CONTINUATION frame without a fragmented message in progress."
                )
        else:
            if self._message_opcode is not None:
                raise exceptions.ProtocolError(
                    f"Received {f.opcode.name} frame while a fragmented message is in progress."
                )
            self._message_opcode = f.opcode

        self._message_parts.append(f.payload)
        self._message_size += len(f.payload)
        if (
            self._max_message_size is not None
            and self._message_size > self._max_message_size
        ):
            raise exceptions.MessageTooBig(
                f"Message exceeds limit of {human.pretty_size(self._max_message_size)}."
            )
        if not f.fin:
            return

        opcode = self._message_opcode
        content = b"".join(self._message_parts)
        self._message_opcode = None
        self._message_parts = []
        self._message_size = 0

        if opcode is Opcode.TEXT and self._validate_utf8:
            try:
                content.decode("utf-8")
            except UnicodeDecodeError as e:
                raise exceptions.InvalidPayloadData(
                    f"Text message is not valid UTF-8: {e}"
                ) from e
        self._events.append(events.Message(opcode, content))

    def _fail(self, error: exceptions.ProtocolError) -> None:
        logger.warning(f"WebSocket protocol error: {error}")
        if (
            self._state in (ConnectionState.OPEN, ConnectionState.CLOSING)
            and not self._close_sent
        ):
            self._send_close(frame.build_close_payload(error.close_code))
        self.error = error
        self._events.append(events.ProtocolFailed(error))
        self._set_state(ConnectionState.CLOSED)

    def _maybe_closed(self) -> None:
        if self._inbound_closed and self._outbound_closed:
            self._set_state(ConnectionState.CLOSED)

    # Sending

    def _send(self, data: bytes) -> None:
        self._outgoing += data

    def _send_frame(self, f: Frame) -> None:
        logger.debug(f">> {f!r}")
        self._send(frame.serialize(f, self.side.masks_outgoing))

    def _send_close(self, payload: bytes) -> None:
        self._send_frame(Frame(Opcode.CLOSE, payload))
        self._close_sent = True

    def _check_open(self) -> None:
        if self._state is not ConnectionState.OPEN:
            raise ValueError(f"Cannot send data in state {self._state.name}.")

    def send_frame(self, f: Frame) -> None:
        """
        Send a single frame. This allows sending fragmented messages, which
        must not be interleaved with other TEXT or BINARY frames.

        Raises:
            ValueError, if the frame is invalid, out of order, or the connection is not open.
        """
        self._check_open()
        opcode = Opcode(f.opcode)
        if opcode is Opcode.CLOSE:
            raise ValueError("Use close() to send a CLOSE frame.")
        data = frame.serialize(f, self.side.masks_outgoing)
        if not opcode.is_control:
            if opcode is Opcode.CONTINUATION:
                if self._send_opcode is None:
                    raise ValueError(
                        "Cannot send CONTINUATION frame without a fragmented message in progress."
                    )
            elif self._send_opcode is not None:
                raise ValueError(
                    "Cannot start a new message while a fragmented message is in progress."
                )
            else:
                self._send_opcode = opcode
            if f.fin:
                self._send_opcode = None
        logger.debug(f">> {f!r}")
        self._send(data)

    def send_text(self, data: str) -> None:
        self.send_frame(Frame(Opcode.TEXT, data.encode("utf-8")))

    def send_binary(self, data: bytes) -> None:
        self.send_frame(Frame(Opcode.BINARY, bytes(data)))

    def send_ping(self, payload: bytes = b"") -> None:
        self.send_frame(Frame(Opcode.PING, payload))

    def send_pong(self, payload: bytes = b"") -> None:
        self.send_frame(Frame(Opcode.PONG, payload))

    def close(self, code: int | None = CloseCode.NORMAL_CLOSURE, reason: str = "") -> None:
        """
        Start the closing handshake. Does nothing unless the connection is open.

        Raises:
            ValueError, if `code` must not be sent on the wire or `reason` is too long.
        """
        payload = frame.build_close_payload(code, reason)
        if self._state is not ConnectionState.OPEN:
            return
        self._send_close(payload)
        self._set_state(ConnectionState.CLOSING)

    # Draining

    def events_received(self) -> list[events.Event]:
        """
        Return and forget all events collected since the last call.
        """
        ret, self._events = self._events, []
        return ret

    def data_to_send(self) -> bytes:
        """
        Return and forget all bytes queued for the peer since the last call.
        The caller must write them to the transport.
        """
        data = bytes(self._outgoing)
        self._outgoing.clear()
        if self._close_sent or self._buf.eof:
            self._outbound_closed = True
            self._maybe_closed()
        return data
