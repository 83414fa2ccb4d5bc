"""
Variable length encoding of unsigned 32 bits integers.

Each byte holds 7 bits of the value, least significant group first. The high bit
of a byte is set when more bytes follow. Only the minimal encoding of a value is
accepted.
"""

from typing import Tuple

from .errors import MalformedVarint, TruncatedVarint, VarintOverflow

MAX_VARINT = 2**32 - 1
# A 32 bits value never needs more than 5 groups of 7 bits.
MAX_VARINT_LEN = 5


def encode_varint(n: int) -> bytes:
    """Get the minimal encoding of {n}."""
    if not isinstance(n, int) or n < 0 or n > MAX_VARINT:
        raise VarintOverflow(f"Value out of the varint range: '{n}'")

    res = bytearray()
    while n >= 0x80:
        res.append((n & 0x7F) | 0x80)
        n >>= 7
    res.append(n)
    return bytes(res)


def decode_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Read a varint from {data} at {offset}.

    Returns a tuple (value, consumed) where consumed is the number of bytes read.
    """
    value = 0
    for i in range(MAX_VARINT_LEN):
        if offset + i >= len(data):
            raise TruncatedVarint(f"Varint truncated after {i} byte(s)")
        byte = data[offset + i]

        if i == MAX_VARINT_LEN - 1 and byte > 0x0F:
            raise VarintOverflow("Varint does not fit in 32 bits")
        value |= (byte & 0x7F) << (7 * i)

        if byte & 0x80 == 0:
            # A zero group at the end could have been omitted.
            if i > 0 and byte == 0:
                raise MalformedVarint("Non-minimal varint encoding")
            return value, i + 1

    # Unreachable, the last group can't have its continuation bit set.
    raise VarintOverflow("Varint does not fit in 32 bits")
