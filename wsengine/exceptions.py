"""
All exceptions raised by wsengine derive from WsEngineException.

Codec-level errors carry enough context for the caller to decide what to put on
the wire before tearing the connection down: a ProtocolError knows the RFC 6455
close code that describes it, a HandshakeError carries a human-readable reason
that ends up in the body of a 400 response.

Programmer errors (e.g. trying to serialize a 200 byte PING frame) are reported
with builtin exceptions, mostly ValueError.
"""


class WsEngineException(Exception):
    """
    Base class for all exceptions thrown by wsengine.
    """

    def __init__(self, message=None):
        super().__init__(message)


class HandshakeError(WsEngineException):
    """
    The opening handshake was malformed or rejected.

    Recoverable on the responder side (a 400 response can still be sent),
    fatal on the initiator side.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ProtocolError(WsEngineException):
    """
    The peer violated the wire format or the connection state machine.
    Always fatal to the connection.
    """

    close_code: int = 1002

    def __init__(self, message=None, close_code: int | None = None):
        super().__init__(message)
        if close_code is not None:
            self.close_code = close_code


class InvalidPayloadData(ProtocolError):
    """A TEXT message or close reason was not valid UTF-8."""

    close_code = 1007


class MessageTooBig(ProtocolError):
    """A reassembled message exceeded the configured size limit."""

    close_code = 1009


class StreamError(WsEngineException):
    pass


class StreamClosedError(StreamError):
    """Data was fed into a stream after its end was signalled."""


class UnexpectedEofError(StreamError):
    """
    More data was required than the stream will ever provide.
    """

    def __init__(self, available: int, expected: int):
        super().__init__(
            f"Stream ended after {available} bytes, expected {expected}."
        )
        self.available = available
        self.expected = expected


class LineTooLongError(StreamError):
    def __init__(self, max: int):
        super().__init__(f"Line exceeds {max} bytes.")
        self.max = max


class OptionsError(WsEngineException):
    pass


class ConnectionClosed(WsEngineException):
    """
    Raised by the asyncio drivers when sending on a connection that is no longer open.
    """

    def __init__(self, code: int | None = None, reason: str = ""):
        message = "Connection is closed."
        if code is not None:
            message = f"Connection is closed: {code} {reason}".rstrip()
        super().__init__(message)
        self.code = code
        self.reason = reason
