import codecs
import struct

import pytest
from hypothesis import given
from hypothesis import strategies as st

from wsengine import exceptions
from wsengine.net.streambuffer import ByteStreamBuffer
from wsengine.net.websockets import frame
from wsengine.net.websockets.frame import Frame
from wsengine.net.websockets.frame import FrameHeader
from wsengine.net.websockets.frame import Opcode


def _buf(data: bytes, eof: bool = False) -> ByteStreamBuffer:
    buf = ByteStreamBuffer()
    buf.feed(data)
    if eof:
        buf.feed_eof()
    return buf


class TestFrameHeader:
    @pytest.mark.parametrize(
        "input,expected",
        [
            (0, "0100"),
            (125, "017D"),
            (126, "017E007E"),
            (127, "017E007F"),
            (142, "017E008E"),
            (65534, "017EFFFE"),
            (65535, "017EFFFF"),
            (65536, "017F0000000000010000"),
            (8589934591, "017F00000001FFFFFFFF"),
            (2**63 - 1, "017F7FFFFFFFFFFFFFFF"),
        ],
    )
    def test_serialization_length(self, input, expected):
        h = FrameHeader(opcode=Opcode.TEXT, payload_length=input, fin=False)
        assert bytes(h) == codecs.decode(expected, "hex")

    def test_serialization_too_large(self):
        h = FrameHeader(opcode=Opcode.TEXT, payload_length=2**63)
        with pytest.raises(ValueError):
            bytes(h)

    @pytest.mark.parametrize(
        "input,expected",
        [
            ("0100", 0),
            ("017D", 125),
            ("017E007E", 126),
            ("017E008E", 142),
            ("017EFFFF", 65535),
            ("017F0000000000010000", 65536),
            ("017F00000001FFFFFFFF", 8589934591),
        ],
    )
    def test_deserialization_length(self, input, expected):
        h = FrameHeader.read(_buf(codecs.decode(input, "hex")))
        assert h.payload_length == expected
        assert h.opcode == Opcode.TEXT
        assert not h.fin

    def test_deserialization_high_bit(self):
        with pytest.raises(exceptions.ProtocolError, match="Most significant bit"):
            FrameHeader.read(_buf(codecs.decode("017F8000000000000000", "hex")))

    @pytest.mark.parametrize(
        "input,expected",
        [
            ("0100", None),
            ("018000000000", "00000000"),
            ("018012345678", "12345678"),
        ],
    )
    def test_deserialization_masking(self, input, expected):
        h = FrameHeader.read(_buf(codecs.decode(input, "hex")))
        if expected is None:
            assert not h.mask
        else:
            assert h.mask
            assert h.masking_key == codecs.decode(expected, "hex")

    def test_flags(self):
        h = FrameHeader(opcode=Opcode.PING, payload_length=0, rsv1=True, rsv3=True)
        assert bytes(h) == b"\xd9\x00"
        h2 = FrameHeader.read(_buf(bytes(h)))
        assert h2 == h

    @pytest.mark.parametrize("data", [b"\x81", b"\x81\x7e\x00", b"\x81\x85\x37\xfa"])
    def test_incomplete(self, data):
        buf = _buf(data)
        assert FrameHeader.read(buf) is None
        assert buf.offset == 0
        assert len(buf) == len(data)


class TestParse:
    # RFC 6455, Section 5.7
    @pytest.mark.parametrize(
        "raw,masked,expected",
        [
            ("810548656c6c6f", False, Frame(Opcode.TEXT, b"Hello")),
            ("818537fa213d7f9f4d5158", True, Frame(Opcode.TEXT, b"Hello")),
            ("010348656c", False, Frame(Opcode.TEXT, b"Hel", fin=False)),
            ("80026c6f", False, Frame(Opcode.CONTINUATION, b"lo")),
            ("890548656c6c6f", False, Frame(Opcode.PING, b"Hello")),
            ("8a8537fa213d7f9f4d5158", True, Frame(Opcode.PONG, b"Hello")),
        ],
    )
    def test_rfc_examples(self, raw, masked, expected):
        buf = _buf(bytes.fromhex(raw))
        f = frame.parse(buf, expect_masked=masked)
        assert f == expected
        assert len(buf) == 0
        assert frame.parse(buf, expect_masked=masked) is None

    def test_large(self):
        payload = b"x" * 70000
        raw = frame.serialize(Frame(Opcode.BINARY, payload), apply_mask=False)
        assert raw[:10] == b"\x82\x7f" + struct.pack("!Q", 70000)
        assert frame.parse(_buf(raw), expect_masked=False).payload == payload

    def test_incomplete_rewinds(self):
        raw = bytes.fromhex("818537fa213d7f9f4d5158")
        buf = _buf(raw[:8])
        assert frame.parse(buf, expect_masked=True) is None
        assert buf.offset == 0
        buf.feed(raw[8:])
        assert frame.parse(buf, expect_masked=True) == Frame(Opcode.TEXT, b"Hello")

    def test_every_split_point(self):
        raw = frame.serialize(
            Frame(Opcode.BINARY, bytes(range(200))), apply_mask=True
        )
        for i in range(len(raw)):
            buf = _buf(raw[:i])
            assert frame.parse(buf, expect_masked=True) is None
            buf.feed(raw[i:])
            f = frame.parse(buf, expect_masked=True)
            assert f == Frame(Opcode.BINARY, bytes(range(200)))

    def test_eof(self):
        raw = bytes.fromhex("810548656c6c6f")
        with pytest.raises(exceptions.UnexpectedEofError):
            frame.parse(_buf(raw[:4], eof=True), expect_masked=False)
        with pytest.raises(exceptions.UnexpectedEofError):
            frame.parse(_buf(raw[:1], eof=True), expect_masked=False)
        assert frame.parse(_buf(raw, eof=True), expect_masked=False)

    def test_rsv_bits(self):
        for bit in (frame.RSV1, frame.RSV2, frame.RSV3):
            with pytest.raises(exceptions.ProtocolError, match="Reserved bits"):
                frame.parse(_buf(bytes([0x81 | bit, 0x00])), expect_masked=False)

    @pytest.mark.parametrize("opcode", [0x3, 0x7, 0xB, 0xF])
    def test_reserved_opcode(self, opcode):
        with pytest.raises(exceptions.ProtocolError, match="Reserved opcode"):
            frame.parse(_buf(bytes([0x80 | opcode, 0x00])), expect_masked=False)

    def test_masking_direction(self):
        masked = bytes.fromhex("818537fa213d7f9f4d5158")
        unmasked = bytes.fromhex("810548656c6c6f")
        with pytest.raises(exceptions.ProtocolError, match="masked frame from server"):
            frame.parse(_buf(masked), expect_masked=False)
        with pytest.raises(exceptions.ProtocolError, match="unmasked frame from client"):
            frame.parse(_buf(unmasked), expect_masked=True)

    @pytest.mark.parametrize("opcode", [Opcode.CLOSE, Opcode.PING, Opcode.PONG])
    def test_control_frame_too_large(self, opcode):
        raw = bytes([0x80 | opcode, 126]) + struct.pack("!H", 126) + b"x" * 126
        with pytest.raises(exceptions.ProtocolError, match="too large"):
            frame.parse(_buf(raw), expect_masked=False)

    def test_control_frame_fragmented(self):
        with pytest.raises(exceptions.ProtocolError, match="Fragmented"):
            frame.parse(_buf(b"\x09\x00"), expect_masked=False)

    def test_max_size(self):
        raw = frame.serialize(Frame(Opcode.TEXT, b"x" * 10), apply_mask=False)
        assert frame.parse(_buf(raw), expect_masked=False, max_size=10)
        with pytest.raises(exceptions.MessageTooBig) as e:
            frame.parse(_buf(raw), expect_masked=False, max_size=9)
        assert e.value.close_code == 1009
        # refused as soon as the header is known
        with pytest.raises(exceptions.MessageTooBig):
            frame.parse(_buf(raw[:2]), expect_masked=False, max_size=9)


class TestSerialize:
    def test_unmasked(self):
        assert frame.serialize(Frame(Opcode.TEXT, b"Hello"), apply_mask=False) == (
            bytes.fromhex("810548656c6c6f")
        )

    def test_masked(self):
        raw = frame.serialize(
            Frame(Opcode.TEXT, b"Hello"),
            apply_mask=True,
            masking_key=bytes.fromhex("37fa213d"),
        )
        assert raw == bytes.fromhex("818537fa213d7f9f4d5158")

    def test_random_key(self):
        raw = frame.serialize(Frame(Opcode.BINARY, b"foo"), apply_mask=True)
        assert len(raw) == 2 + 4 + 3
        assert raw[1] & frame.MASK
        assert frame.parse(_buf(raw), expect_masked=True).payload == b"foo"

    def test_fragment(self):
        raw = frame.serialize(Frame(Opcode.TEXT, b"Hel", fin=False), apply_mask=False)
        assert raw == bytes.fromhex("010348656c")

    @pytest.mark.parametrize("opcode", [Opcode.CLOSE, Opcode.PING, Opcode.PONG])
    def test_control_frame_violations(self, opcode):
        with pytest.raises(ValueError):
            frame.serialize(Frame(opcode, b"x" * 126), apply_mask=False)
        with pytest.raises(ValueError):
            frame.serialize(Frame(opcode, b"", fin=False), apply_mask=False)
        assert frame.serialize(Frame(opcode, b"x" * 125), apply_mask=False)

    def test_rsv(self):
        with pytest.raises(ValueError):
            frame.serialize(Frame(Opcode.TEXT, b"", rsv1=True), apply_mask=False)


data_frames = st.builds(
    Frame,
    opcode=st.sampled_from([Opcode.CONTINUATION, Opcode.TEXT, Opcode.BINARY]),
    payload=st.binary(max_size=1000),
    fin=st.booleans(),
)
control_frames = st.builds(
    Frame,
    opcode=st.sampled_from([Opcode.CLOSE, Opcode.PING, Opcode.PONG]),
    payload=st.binary(max_size=125),
)


@given(data_frames | control_frames, st.booleans())
def test_roundtrip(f, masked):
    buf = _buf(frame.serialize(f, apply_mask=masked))
    assert frame.parse(buf, expect_masked=masked) == f
    assert len(buf) == 0


def test_frame_repr():
    assert repr(Frame(Opcode.TEXT, b"foo")) == "ws frame:text:fin 3b foo"
    assert repr(Frame(Opcode.CONTINUATION, fin=False)) == "ws frame:continuation"
    assert Frame(Opcode.PING).is_control
    assert not Frame(Opcode.BINARY).is_control


@pytest.mark.parametrize(
    "code,valid",
    [
        (999, False),
        (1000, True),
        (1003, True),
        (1004, False),
        (1005, False),
        (1006, False),
        (1007, True),
        (1014, True),
        (1015, False),
        (1016, False),
        (2999, False),
        (3000, True),
        (4999, True),
        (5000, False),
    ],
)
def test_is_valid_close_code(code, valid):
    assert frame.is_valid_close_code(code) is valid


class TestClosePayload:
    def test_build(self):
        assert frame.build_close_payload() == b""
        assert frame.build_close_payload(1000) == b"\x03\xe8"
        assert frame.build_close_payload(1001, "bye") == b"\x03\xe9bye"
        assert len(frame.build_close_payload(1000, "x" * 123)) == 125

    def test_build_invalid(self):
        with pytest.raises(ValueError):
            frame.build_close_payload(None, "reason")
        with pytest.raises(ValueError):
            frame.build_close_payload(1006)
        with pytest.raises(ValueError):
            frame.build_close_payload(1000, "x" * 124)

    def test_parse(self):
        assert frame.parse_close_payload(b"") == (1005, "")
        assert frame.parse_close_payload(b"\x03") == (1005, "")
        assert frame.parse_close_payload(b"\x03\xe8") == (1000, "")
        assert frame.parse_close_payload(b"\x0f\xa0bye \xe2\x9c\x93") == (4000, "bye ✓")

    def test_parse_invalid_code(self):
        with pytest.raises(exceptions.ProtocolError, match="Invalid close code"):
            frame.parse_close_payload(b"\x03\xed")

    def test_parse_invalid_utf8(self):
        with pytest.raises(exceptions.InvalidPayloadData) as e:
            frame.parse_close_payload(b"\x03\xe8\xff")
        assert e.value.close_code == 1007
        code, reason = frame.parse_close_payload(b"\x03\xe8\xff", validate_utf8=False)
        assert code == 1000
        assert reason == "�"
