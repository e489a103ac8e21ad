import os
import sys


class Masker:
    """
    Data sent from the client must be masked to prevent malicious clients
    from sending data over the wire in predictable patterns.

    Servers must not mask data they send to the client.
    https://tools.ietf.org/html/rfc6455#section-5.3

    Masking is an involution: applying the same key twice yields the original data.
    A Masker keeps track of its position in the key, so a payload can be
    processed in several chunks.
    """

    def __init__(self, key: bytes):
        if len(key) != 4:
            raise ValueError("Masking key must be 4 bytes.")
        self.key = key
        self.offset = 0

    @classmethod
    def random(cls) -> "Masker":
        return cls(os.urandom(4))

    def mask(self, offset: int, data: bytes) -> bytes:
        datalen = len(data)
        offset_mod = offset % 4
        data_int = int.from_bytes(data, sys.byteorder)
        num_keys = (datalen + offset_mod + 3) // 4
        mask = int.from_bytes(
            (self.key * num_keys)[offset_mod : datalen + offset_mod], sys.byteorder
        )
        return (data_int ^ mask).to_bytes(datalen, sys.byteorder)

    def __call__(self, data: bytes) -> bytes:
        ret = self.mask(self.offset, data)
        self.offset += len(ret)
        return ret
