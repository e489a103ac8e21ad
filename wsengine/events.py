"""
Everything a Protocol has to tell its owner is expressed as an event.
Events are collected while data is received and drained with
`Protocol.events_received()`.
"""
from dataclasses import dataclass

from wsengine import exceptions
from wsengine.http import HandshakeRequest
from wsengine.http import HandshakeResponse
from wsengine.net.websockets.frame import Opcode


class Event:
    """
    Base class for all events.
    """


@dataclass
class HandshakeRequestReceived(Event):
    """
    A client's upgrade request has been received and accepted.
    """

    request: HandshakeRequest


@dataclass
class HandshakeResponseReceived(Event):
    """
    The server has accepted our upgrade request.
    """

    response: HandshakeResponse


@dataclass
class HandshakeRejected(Event):
    """
    A client's upgrade request was invalid, `response` has been queued for sending.
    """

    error: exceptions.HandshakeError
    response: HandshakeResponse


@dataclass
class Message(Event):
    """
    A complete TEXT or BINARY message, reassembled from all of its fragments.

    Contents are always kept as bytes, use `.text` for text messages.
    """

    opcode: Opcode
    content: bytes

    @property
    def is_text(self) -> bool:
        return self.opcode == Opcode.TEXT

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", "replace")

    def __repr__(self):
        if self.is_text:
            return f"Message({self.text!r})"
        return f"Message({self.content!r})"


@dataclass
class PingReceived(Event):
    """
    The peer has sent a PING. The matching PONG is queued automatically.
    """

    payload: bytes


@dataclass
class PongReceived(Event):
    payload: bytes


@dataclass
class CloseReceived(Event):
    """
    The peer has started or completed the closing handshake.
    `code` is 1005 if the peer did not send a status code,
    1006 if the stream ended without a CLOSE frame.
    """

    code: int
    reason: str = ""


@dataclass
class ProtocolFailed(Event):
    """
    The peer violated the protocol. The connection must be torn down.
    """

    error: exceptions.ProtocolError
