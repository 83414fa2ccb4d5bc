"""
Compact binary encoding of Bitcoin Output Script Descriptors.

A descriptor is encoded as a template (the tags and small integers describing its
structure) followed by a payload (its keys, chain codes and hashes).
"""

from . import decoder, descriptors, encoder, errors, key, miniscript, tag, varint
from .decoder import MAX_RECURSION_DEPTH, decode_template, decode_with_payload
from .descriptors import Descriptor

__version__ = "0.1.0"

__all__ = [
    "decode",
    "decode_template",
    "decode_with_payload",
    "Descriptor",
    "encode",
    "errors",
]


def encode(descriptor):
    """Encode a descriptor, which may contain secret keys.

    :param descriptor: a Descriptor or its string representation.
    :returns: the template followed by the payload, as bytes.
    """
    if isinstance(descriptor, str):
        descriptor = Descriptor.from_str(descriptor)
    public_desc, key_map = descriptor.to_public()
    template, payload = encoder.encode(public_desc, key_map)
    return template + payload


def decode(data, max_depth=MAX_RECURSION_DEPTH):
    """Decode a descriptor from the concatenation of its template and payload.

    Secret keys are restored in place of the public keys standing for them.
    """
    descriptor, key_map = decoder.decode(data, max_depth)
    return descriptor.with_secret_keys(key_map)
