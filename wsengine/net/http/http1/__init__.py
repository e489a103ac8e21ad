from .assemble import assemble_request_head
from .assemble import assemble_response
from .assemble import assemble_response_head
from .read import read_request_head
from .read import read_response_head

__all__ = [
    "assemble_request_head",
    "assemble_response",
    "assemble_response_head",
    "read_request_head",
    "read_response_head",
]
