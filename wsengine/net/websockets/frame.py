"""
RFC 6455 frame codec.

Parsing works on a ByteStreamBuffer and is idempotent: if a frame is not
complete yet, `parse` rewinds the buffer to where it started and returns None.
Calling it again once more data has been fed re-parses the frame from scratch.
"""
import enum
import struct
from dataclasses import dataclass

from wsengine import exceptions
from wsengine.net.streambuffer import ByteStreamBuffer
from wsengine.utils import human
from wsengine.utils import strutils
from .masker import Masker

MAX_16_BIT_INT = 1 << 16
MAX_64_BIT_INT = 1 << 63
MAX_CONTROL_PAYLOAD = 125

# first byte
FIN = 0x80
RSV1 = 0x40
RSV2 = 0x20
RSV3 = 0x10
OPCODE_MASK = 0x0F
# second byte
MASK = 0x80
LENGTH_MASK = 0x7F


class Opcode(enum.IntEnum):
    """RFC 6455, Section 5.2 - Base Framing Protocol"""

    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA

    @property
    def is_control(self) -> bool:
        return self >= 0x8


class CloseCode(enum.IntEnum):
    """RFC 6455, Section 7.4.1 - Defined Status Codes"""

    NORMAL_CLOSURE = 1000
    GOING_AWAY = 1001
    PROTOCOL_ERROR = 1002
    UNSUPPORTED_DATA = 1003
    NO_STATUS_RCVD = 1005
    ABNORMAL_CLOSURE = 1006
    INVALID_PAYLOAD_DATA = 1007
    POLICY_VIOLATION = 1008
    MESSAGE_TOO_BIG = 1009
    MANDATORY_EXTENSION = 1010
    INTERNAL_ERROR = 1011
    SERVICE_RESTART = 1012
    TRY_AGAIN_LATER = 1013
    BAD_GATEWAY = 1014
    TLS_HANDSHAKE_FAILED = 1015


# These may appear in APIs but must never be put on the wire.
LOCAL_ONLY_CLOSE_CODES = frozenset(
    {
        CloseCode.NO_STATUS_RCVD,
        CloseCode.ABNORMAL_CLOSURE,
        CloseCode.TLS_HANDSHAKE_FAILED,
    }
)


def is_valid_close_code(code: int) -> bool:
    """
    Can `code` legitimately appear in a CLOSE frame?
    """
    if 3000 <= code <= 4999:
        return True
    return 1000 <= code <= 1014 and code not in LOCAL_ONLY_CLOSE_CODES and code != 1004


@dataclass
class FrameHeader:
    """
    The 2-14 byte header preceding each payload.
    """

    opcode: int
    payload_length: int
    fin: bool = True
    rsv1: bool = False
    rsv2: bool = False
    rsv3: bool = False
    masking_key: bytes | None = None

    @property
    def mask(self) -> bool:
        return self.masking_key is not None

    @property
    def length_code(self) -> int:
        """
        The 7 bit length field: the length itself for small payloads,
        126 or 127 if a 16 or 64 bit extended length follows.
        """
        if self.payload_length <= 125:
            return self.payload_length
        elif self.payload_length < MAX_16_BIT_INT:
            return 126
        else:
            return 127

    def __bytes__(self) -> bytes:
        first_byte = self.opcode
        if self.fin:
            first_byte |= FIN
        if self.rsv1:
            first_byte |= RSV1
        if self.rsv2:
            first_byte |= RSV2
        if self.rsv3:
            first_byte |= RSV3

        second_byte = self.length_code
        if self.mask:
            second_byte |= MASK

        b = bytes([first_byte, second_byte])

        if self.payload_length < 126:
            pass
        elif self.payload_length < MAX_16_BIT_INT:
            # '!H' pack as 16 bit unsigned short
            b += struct.pack("!H", self.payload_length)
        elif self.payload_length < MAX_64_BIT_INT:
            # '!Q' = pack as 64 bit unsigned long long
            b += struct.pack("!Q", self.payload_length)
        else:
            raise ValueError("Payload length exceeds 63 bit integer")

        if self.masking_key:
            b += self.masking_key
        return b

    @classmethod
    def read(cls, buf: ByteStreamBuffer) -> "FrameHeader | None":
        """
        Read a frame header. Returns None if the header is incomplete, leaving
        the cursor of `buf` where it was.
        """
        start = buf.offset
        header = cls._read(buf)
        if header is None:
            buf.rewind(start)
        return header

    @classmethod
    def _read(cls, buf: ByteStreamBuffer) -> "FrameHeader | None":
        head = buf.read_exact(2)
        if head is None:
            return None
        first_byte, second_byte = head

        length_code = second_byte & LENGTH_MASK
        # payload_length > 125 indicates you need to read more bytes
        # to get the actual payload length
        if length_code <= 125:
            payload_length = length_code
        elif length_code == 126:
            ext = buf.read_exact(2)
            if ext is None:
                return None
            (payload_length,) = struct.unpack("!H", ext)
        else:
            ext = buf.read_exact(8)
            if ext is None:
                return None
            (payload_length,) = struct.unpack("!Q", ext)
            if payload_length >= MAX_64_BIT_INT:
                raise exceptions.ProtocolError(
                    "Most significant bit of 64 bit payload length must be 0."
                )

        # masking key only present if mask bit set
        if second_byte & MASK:
            masking_key = buf.read_exact(4)
            if masking_key is None:
                return None
        else:
            masking_key = None

        return cls(
            opcode=first_byte & OPCODE_MASK,
            payload_length=payload_length,
            fin=bool(first_byte & FIN),
            rsv1=bool(first_byte & RSV1),
            rsv2=bool(first_byte & RSV2),
            rsv3=bool(first_byte & RSV3),
            masking_key=masking_key,
        )


@dataclass
class Frame:
    """
    A single WebSocket frame with an unmasked payload.

    WebSocket frame as defined in RFC6455

       0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
      +-+-+-+-+-------+-+-------------+-------------------------------+
      |F|R|R|R| opcode|M| Payload len |    Extended payload length    |
      |I|S|S|S|  (4)  |A|     (7)     |             (16/64)           |
      |N|V|V|V|       |S|             |   (if payload len==126/127)   |
      | |1|2|3|       |K|             |                               |
      +-+-+-+-+-------+-+-------------+ - - - - - - - - - - - - - - - +
      |     Extended payload length continued, if payload len == 127  |
      + - - - - - - - - - - - - - - - +-------------------------------+
      |                               |Masking-key, if MASK set to 1  |
      +-------------------------------+-------------------------------+
      | Masking-key (continued)       |          Payload Data         |
      +-------------------------------- - - - - - - - - - - - - - - - +
      :                     Payload Data continued ...                :
      + - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - +
      |                     Payload Data continued ...                |
      +---------------------------------------------------------------+
    """

    opcode: Opcode
    payload: bytes = b""
    fin: bool = True
    rsv1: bool = False
    rsv2: bool = False
    rsv3: bool = False

    @property
    def is_control(self) -> bool:
        return Opcode(self.opcode).is_control

    def __repr__(self):
        vals = ["ws frame:", Opcode(self.opcode).name.lower()]
        flags = [i for i in ("fin", "rsv1", "rsv2", "rsv3") if getattr(self, i)]
        if flags:
            vals.extend([":", "|".join(flags)])
        if self.payload:
            vals.append(f" {human.pretty_size(len(self.payload))}")
            vals.append(f" {strutils.shorten(self.payload)}")
        return "".join(vals)


def _check_control_frame(opcode: int, fin: bool, length: int, exc_type) -> None:
    if opcode >= 0x8:
        if not fin:
            raise exc_type(f"Fragmented control frame ({Opcode(opcode).name}).")
        if length > MAX_CONTROL_PAYLOAD:
            raise exc_type(
                f"Control frame payload too large ({Opcode(opcode).name}, {length} bytes)."
            )


def parse(
    buf: ByteStreamBuffer, expect_masked: bool, max_size: int | None = None
) -> Frame | None:
    """
    Parse the next frame from `buf`.

    Args:
        expect_masked: True when reading frames sent by a client.
        max_size: Refuse frames with a larger payload before buffering it.

    Returns:
        The frame, or None if `buf` does not contain a complete frame yet.
        In the latter case the cursor of `buf` is left where it was.

    Raises:
        ProtocolError, if the frame violates RFC 6455.
        UnexpectedEofError, if the stream ends in the middle of the frame.
    """
    start = buf.offset
    header = FrameHeader.read(buf)
    if header is None:
        return None

    if header.rsv1 or header.rsv2 or header.rsv3:
        raise exceptions.ProtocolError("Reserved bits set, but no extension negotiated.")
    try:
        opcode = Opcode(header.opcode)
    except ValueError:
        raise exceptions.ProtocolError(f"Reserved opcode: {header.opcode:#x}")
    if header.mask != expect_masked:
        if expect_masked:
            raise exceptions.ProtocolError("Received unmasked frame from client.")
        else:
            raise exceptions.ProtocolError("Received masked frame from server.")
    _check_control_frame(opcode, header.fin, header.payload_length, exceptions.ProtocolError)
    if max_size is not None and header.payload_length > max_size:
        raise exceptions.MessageTooBig(
            f"Frame payload of {header.payload_length} bytes exceeds limit of {max_size} bytes."
        )

    payload = buf.read_exact(header.payload_length)
    if payload is None:
        buf.rewind(start)
        return None

    if header.masking_key:
        payload = Masker(header.masking_key)(payload)

    return Frame(opcode=opcode, payload=payload, fin=header.fin)


def serialize(
    frame: Frame, apply_mask: bool, masking_key: bytes | None = None
) -> bytes:
    """
    Serialize a frame to wire format.

    Args:
        apply_mask: True when writing frames as a client.
        masking_key: The key to use if `apply_mask` is set, random if not given.
    """
    _check_control_frame(frame.opcode, frame.fin, len(frame.payload), ValueError)
    if frame.rsv1 or frame.rsv2 or frame.rsv3:
        raise ValueError("Cannot set reserved bits, no extension negotiated.")

    if apply_mask:
        masker = Masker.random() if masking_key is None else Masker(masking_key)
        masking_key = masker.key
    else:
        masking_key = None

    header = FrameHeader(
        opcode=frame.opcode,
        payload_length=len(frame.payload),
        fin=frame.fin,
        masking_key=masking_key,
    )
    if apply_mask:
        return bytes(header) + masker(frame.payload)
    else:
        return bytes(header) + frame.payload


def build_close_payload(code: int | None = None, reason: str = "") -> bytes:
    """
    The payload of a CLOSE frame: an optional 2 byte status code followed by an
    optional UTF-8 encoded reason.
    """
    if code is None:
        if reason:
            raise ValueError("Cannot send a close reason without a close code.")
        return b""
    if not is_valid_close_code(code):
        raise ValueError(f"Invalid close code: {code}")
    data = struct.pack("!H", code) + reason.encode("utf-8")
    if len(data) > MAX_CONTROL_PAYLOAD:
        raise ValueError("Close reason must not exceed 123 bytes.")
    return data


def parse_close_payload(payload: bytes, validate_utf8: bool = True) -> tuple[int, str]:
    """
    Split a received CLOSE payload into (code, reason).

    A payload shorter than two bytes carries no status code and is reported
    as NO_STATUS_RCVD.

    Raises:
        ProtocolError, if the close code is not allowed on the wire.
        InvalidPayloadData, if the reason is not valid UTF-8.
    """
    if len(payload) < 2:
        return CloseCode.NO_STATUS_RCVD, ""
    (code,) = struct.unpack("!H", payload[:2])
    if not is_valid_close_code(code):
        raise exceptions.ProtocolError(f"Invalid close code: {code}")
    try:
        reason = payload[2:].decode("utf-8")
    except UnicodeDecodeError as e:
        if validate_utf8:
            raise exceptions.InvalidPayloadData(f"Invalid UTF-8 in close reason: {e}")
        reason = payload[2:].decode("utf-8", "replace")
    return code, reason
