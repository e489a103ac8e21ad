from wsengine import exceptions


class ByteStreamBuffer:
    """
    An append-only byte buffer with a read cursor.

    Reads never block: if not enough data has been fed yet, they return None
    and leave the cursor untouched, so that a parser can simply be re-run
    from the same position once more data arrives.

    >>> buf = ByteStreamBuffer()
    >>> buf.feed(b"GET / HT")
    >>> buf.read_line(1024) is None
    True
    >>> buf.feed(b"TP/1.1\\r\\n")
    >>> buf.read_line(1024)
    b'GET / HTTP/1.1\\r\\n'
    """

    _buf: bytearray
    offset: int
    eof: bool

    def __init__(self) -> None:
        self._buf = bytearray()
        self.offset = 0
        self.eof = False

    def __len__(self) -> int:
        """Number of unread bytes."""
        return len(self._buf) - self.offset

    def __repr__(self):
        return f"ByteStreamBuffer(unread={len(self)}, eof={self.eof})"

    def feed(self, data: bytes) -> None:
        if self.eof:
            raise exceptions.StreamClosedError("Cannot feed data after end of stream.")
        self._buf += data

    def feed_eof(self) -> None:
        self.eof = True

    def at_eof(self) -> bool:
        """True if the end of stream was signalled and everything has been read."""
        return self.eof and not len(self)

    def read_exact(self, n: int) -> bytes | None:
        if n < 0:
            raise ValueError(f"Cannot read a negative number of bytes: {n}")
        available = len(self)
        if available < n:
            if self.eof:
                raise exceptions.UnexpectedEofError(available, n)
            return None
        data = bytes(self._buf[self.offset : self.offset + n])
        self.offset += n
        return data

    def read_line(self, max: int) -> bytes | None:
        """
        Read up to and including the next b"\\n".

        Raises:
            LineTooLongError, if no line terminator is found within `max` bytes.
            UnexpectedEofError, if the stream ends before the line does.
        """
        end = self._buf.find(b"\n", self.offset, self.offset + max)
        if end == -1:
            available = len(self)
            if available >= max:
                raise exceptions.LineTooLongError(max)
            if self.eof:
                raise exceptions.UnexpectedEofError(available, available + 1)
            return None
        return self.read_exact(end + 1 - self.offset)

    def rewind(self, offset: int) -> None:
        """
        Move the cursor back to a position previously obtained from `.offset`.
        """
        if not 0 <= offset <= self.offset:
            raise ValueError(f"Cannot rewind to {offset}, cursor is at {self.offset}.")
        self.offset = offset

    def compact(self) -> None:
        """
        Reclaim the memory used by bytes that have already been read.
        Offsets obtained before compaction become invalid.
        """
        if self.offset:
            del self._buf[: self.offset]
            self.offset = 0
