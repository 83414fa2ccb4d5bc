"""
Deterministic placeholder keys.

A secret key without a public counterpart is replaced by the dummy key of its
index among the secret keys of the descriptor. Both the encoder and the decoder
derive it from the index alone, it is never written on the wire.
"""

from bip32.utils import coincurve

from .key import DescriptorKey

# The scalar of the dummy key at index i is DUMMY_SCALAR_BASE + i. It is never zero
# and never reaches the curve order.
DUMMY_SCALAR_BASE = 2**32


def dummy_secret_key(index: int) -> bytes:
    """The 32 bytes private key of the dummy key at {index}."""
    assert isinstance(index, int) and 0 <= index < 2**32
    return (DUMMY_SCALAR_BASE + index).to_bytes(32, "big")


def dummy_public_key(index: int) -> DescriptorKey:
    """The compressed public key of the dummy key at {index}."""
    pubkey = coincurve.PrivateKey(dummy_secret_key(index)).public_key
    return DescriptorKey(pubkey.format())
