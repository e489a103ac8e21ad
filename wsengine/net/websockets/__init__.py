from .frame import CloseCode
from .frame import Frame
from .frame import FrameHeader
from .frame import Opcode
from .frame import parse
from .frame import serialize
from .handshake import MAGIC
from .handshake import accept
from .handshake import build_request
from .handshake import compute_accept_key
from .handshake import reject
from .handshake import validate_response
from .masker import Masker

__all__ = [
    "CloseCode",
    "Frame",
    "FrameHeader",
    "Opcode",
    "parse",
    "serialize",
    "MAGIC",
    "accept",
    "build_request",
    "compute_accept_key",
    "reject",
    "validate_response",
    "Masker",
]
