def always_bytes(value: str | bytes, *encode_args) -> bytes:
    """
    Encode str with the given codec arguments and pass bytes through unchanged.
    """
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode(*encode_args)
    raise TypeError(f"Expected str or bytes, but got {type(value).__name__}.")


def bytes_to_escaped_str(data: bytes) -> str:
    """
    Printable form of arbitrary bytes, using Python's escape sequences
    for everything outside printable ASCII.
    """
    if not isinstance(data, bytes):
        raise TypeError(f"Expected bytes, but got {type(data).__name__}.")
    return repr(data)[2:-1]


def shorten(data: bytes, limit: int = 40) -> str:
    """
    Escaped representation of a payload for debug logs, cut after `limit` bytes.
    """
    if len(data) <= limit:
        return bytes_to_escaped_str(data)
    return bytes_to_escaped_str(data[:limit]) + f"... ({len(data)} bytes)"
