import enum


class ConnectionState(enum.IntEnum):
    """
    The state of a WebSocket connection. Transitions only ever move forward:

        CONNECTING -> OPEN -> CLOSING -> CLOSED

    A failed handshake or a protocol violation skips straight to CLOSED.
    """

    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


class Side(enum.Enum):
    """
    Which end of the connection a Protocol speaks for.
    Fixed for the lifetime of the connection.
    """

    INITIATOR = "initiator"
    RESPONDER = "responder"

    @property
    def masks_outgoing(self) -> bool:
        """Clients mask everything they send, servers never do."""
        return self is Side.INITIATOR

    @property
    def expects_masked(self) -> bool:
        return self is Side.RESPONDER
