"""
Decoding of an encoded descriptor, in two passes.

The first pass reads the template only. It determines the shape of the descriptor,
where the template ends and how many payload bytes each node will need. The second
pass walks this shape again, filling the payload fields in order.
"""

import logging

from collections import namedtuple
from contextlib import contextmanager

from bip32 import BIP32, HARDENED_INDEX
from bip32.utils import coincurve

from .descriptors import (
    BareDescriptor,
    PkhDescriptor,
    WpkhDescriptor,
    ShDescriptor,
    WshDescriptor,
    TrDescriptor,
    TreeNode,
)
from .dummy import dummy_public_key
from .encoder import FRAGMENT_TAGS, WILDCARDS
from .errors import (
    InvalidKeyMaterial,
    MalformedTemplate,
    RecursionLimitExceeded,
    TrailingPayload,
    TrailingTemplate,
    TruncatedPayload,
    TruncatedTemplate,
    UnexpectedTag,
)
from .key import (
    NETWORKS,
    DescriptorKey,
    DescriptorKeyError,
    DescriptorKeyOrigin,
    DescriptorKeyPath,
    KeyPathKind,
    WifKey,
)
from .miniscript import fragments
from .tag import Tag, kind_of
from .varint import decode_varint

log = logging.getLogger(__name__)

# Low enough for a decoded descriptor to be rendered and parsed back without
# hitting the interpreter recursion limit.
MAX_RECURSION_DEPTH = 128
# BIP32 serializes the depth of an extended key in a single byte.
MAX_XKEY_DEPTH = 255

TAG_FRAGMENTS = {tag: frag for frag, tag in FRAGMENT_TAGS.items()}
TAG_WILDCARDS = {value: kind for kind, value in WILDCARDS.items()}

HASH_SIZES = {
    Tag.SHA256: 32,
    Tag.HASH256: 32,
    Tag.RIPEMD160: 20,
    Tag.HASH160: 20,
}
RAW_KEY_SIZES = {
    Tag.COMPRESSED_KEY: 33,
    Tag.UNCOMPRESSED_KEY: 65,
    Tag.XONLY_KEY: 32,
}
MULTI_TAGS = (Tag.MULTI, Tag.SORTED_MULTI, Tag.MULTI_A, Tag.SORTED_MULTI_A)
TERNARY_TAGS = (Tag.AND_OR,)
BINARY_TAGS = (
    Tag.AND_V,
    Tag.AND_B,
    Tag.AND_N,
    Tag.OR_B,
    Tag.OR_C,
    Tag.OR_D,
    Tag.OR_I,
)

# Result of the first pass.
Template = namedtuple("Template", ["shape", "secret_count", "length", "payload_length"])


class Placeholder:
    """A field of the payload, of a known size."""

    def __init__(self, size):
        self.size = size

    def __repr__(self):
        return f"Placeholder({self.size})"


class Shape:
    """A descriptor, taproot tree or Miniscript node whose payload fields were not
    read yet.

    :param args: the integers read from the template (threshold, timelock, ..).
    :param subs: the children, as Shape or KeyShape.
    :param fields: the payload fields of this node, in order.
    """

    def __init__(self, tag, args=None, subs=None, fields=None):
        self.tag = tag
        self.args = args or []
        self.subs = subs or []
        self.fields = fields or []

    def __repr__(self):
        return f"Shape({self.tag.name}, {self.args}, {self.subs}, {self.fields})"


class KeyShape:
    """A key expression whose payload fields were not read yet."""

    def __init__(self, tag):
        self.tag = tag
        # The index of this key among the secret keys, if it is one.
        self.secret_index = None
        self.origin_path = None
        self.fingerprint = None
        self.network = None
        # Extended keys only.
        self.depth = 0
        self.child_number = 0
        self.parent_fingerprint = None
        self.chaincode = None
        self.paths = None
        self.wildcard = None
        # The raw public or private key.
        self.key_data = None

    def __repr__(self):
        return f"KeyShape({self.tag.name}, secret_index={self.secret_index})"


class TemplateDecoder:
    """First pass: read the structure of the descriptor from the template."""

    def __init__(self, data, max_depth):
        self.data = data
        self.offset = 0
        self.max_depth = max_depth
        self.depth = 0
        self.secret_count = 0
        self.payload_length = 0

    @contextmanager
    def nested(self):
        self.depth += 1
        if self.depth > self.max_depth:
            raise RecursionLimitExceeded(
                f"Descriptor nested deeper than {self.max_depth} levels"
            )
        try:
            yield
        finally:
            self.depth -= 1

    def varint(self):
        if self.offset >= len(self.data):
            raise TruncatedTemplate(f"Template ends at offset {self.offset}")
        value, consumed = decode_varint(self.data, self.offset)
        self.offset += consumed
        return value

    def tag(self):
        return kind_of(self.varint())

    def field(self, size):
        self.payload_length += size
        return Placeholder(size)

    def descriptor(self):
        tag = self.tag()

        if tag in (Tag.BARE, Tag.WSH):
            return Shape(tag, subs=[self.miniscript()])

        if tag in (Tag.PKH, Tag.WPKH):
            return Shape(tag, subs=[self.key()])

        if tag == Tag.SH:
            inner_tag = self.tag()
            if inner_tag == Tag.WSH:
                inner = Shape(inner_tag, subs=[self.miniscript()])
            elif inner_tag == Tag.WPKH:
                inner = Shape(inner_tag, subs=[self.key()])
            else:
                inner = self.miniscript(inner_tag)
            return Shape(tag, subs=[inner])

        if tag == Tag.TR:
            subs = [self.key()]
            has_tree = self.varint()
            if has_tree > 1:
                raise MalformedTemplate(f"Invalid taproot tree presence: '{has_tree}'")
            if has_tree == 1:
                subs.append(self.tap_tree())
            return Shape(tag, subs=subs)

        raise UnexpectedTag(f"Expected a descriptor, got '{tag.name}'")

    def tap_tree(self):
        with self.nested():
            tag = self.tag()
            if tag != Tag.TAP_BRANCH:
                return self.miniscript(tag)
            left_child = self.tap_tree()
            right_child = self.tap_tree()
            return Shape(tag, subs=[left_child, right_child])

    def miniscript(self, tag=None):
        with self.nested():
            if tag is None:
                tag = self.tag()
            if not tag.is_script():
                raise UnexpectedTag(f"Expected a Miniscript fragment, got '{tag.name}'")

            if tag.is_wrapper() or tag in BINARY_TAGS or tag in TERNARY_TAGS:
                n_subs = 1 if tag.is_wrapper() else 2 if tag in BINARY_TAGS else 3
                subs = []
                for _ in range(n_subs):
                    subs.append(self.miniscript())
                return Shape(tag, subs=subs)

            if tag in (Tag.PK_K, Tag.PK_H):
                return Shape(tag, subs=[self.key()])

            if tag in (Tag.OLDER, Tag.AFTER):
                return Shape(tag, args=[self.varint()])

            if tag in HASH_SIZES:
                return Shape(tag, fields=[self.field(HASH_SIZES[tag])])

            if tag in MULTI_TAGS or tag == Tag.THRESH:
                k, n = self.varint(), self.varint()
                if k == 0 or k > n:
                    raise MalformedTemplate(f"Invalid threshold: '{k}' of '{n}'")
                subs = []
                for _ in range(n):
                    subs.append(self.key() if tag in MULTI_TAGS else self.miniscript())
                return Shape(tag, args=[k], subs=subs)

            assert tag in (Tag.FALSE, Tag.TRUE)
            return Shape(tag)

    def step(self):
        value = self.varint()
        index = value >> 1
        if value & 1:
            index += HARDENED_INDEX
        return index

    def path(self):
        length = self.varint()
        path = []
        for _ in range(length):
            path.append(self.step())
        return path

    def network(self):
        value = self.varint()
        if value >= len(NETWORKS):
            raise MalformedTemplate(f"Unknown network: '{value}'")
        return NETWORKS[value]

    def multipath(self):
        n_paths, length, position = self.varint(), self.varint(), self.varint()
        if n_paths < 2:
            raise MalformedTemplate(f"Invalid number of multipath paths: '{n_paths}'")
        if position >= length:
            raise MalformedTemplate(f"Invalid multipath step position: '{position}'")
        shared = []
        for _ in range(length - 1):
            shared.append(self.step())
        paths = []
        for _ in range(n_paths):
            paths.append(shared[:position] + [self.step()] + shared[position:])
        return paths

    def key(self):
        tag = self.tag()
        origin_path, fingerprint = None, None
        if tag == Tag.ORIGIN:
            origin_path = self.path()
            fingerprint = self.field(4)
            tag = self.tag()
        if not tag.is_key() or tag == Tag.ORIGIN:
            raise UnexpectedTag(f"Expected a key, got '{tag.name}'")

        shape = KeyShape(tag)
        shape.origin_path, shape.fingerprint = origin_path, fingerprint
        if tag.is_secret():
            shape.secret_index = self.secret_count
            self.secret_count += 1

        if tag in RAW_KEY_SIZES:
            shape.key_data = self.field(RAW_KEY_SIZES[tag])

        elif tag in (Tag.WIF_COMPRESSED, Tag.WIF_UNCOMPRESSED):
            shape.network = self.network()
            shape.key_data = self.field(32)

        else:
            shape.network = self.network()
            shape.depth = self.varint()
            if shape.depth > MAX_XKEY_DEPTH:
                raise MalformedTemplate(f"Invalid extended key depth: '{shape.depth}'")
            if shape.depth > 0:
                shape.child_number = self.varint()
                shape.parent_fingerprint = self.field(4)
            shape.chaincode = self.field(32)
            shape.key_data = self.field(32 if tag.is_secret() else 33)

            if tag.is_multipath():
                shape.paths = self.multipath()
            else:
                shape.paths = [self.path()]
            wildcard = self.varint()
            if wildcard not in TAG_WILDCARDS:
                raise MalformedTemplate(f"Invalid wildcard: '{wildcard}'")
            shape.wildcard = TAG_WILDCARDS[wildcard]

        return shape


class PayloadDecoder:
    """Second pass: build the descriptor from its shape, reading the payload."""

    def __init__(self, payload):
        self.payload = payload
        self.offset = 0
        self.key_map = {}

    def read(self, field):
        if self.offset + field.size > len(self.payload):
            raise TruncatedPayload(f"Payload ends at offset {len(self.payload)}")
        data = self.payload[self.offset : self.offset + field.size]
        self.offset += field.size
        return bytes(data)

    def descriptor(self, shape):
        tag, subs = shape.tag, shape.subs

        if tag == Tag.BARE:
            return BareDescriptor(self.miniscript(subs[0]))
        if tag == Tag.PKH:
            return PkhDescriptor(self.key(subs[0]))
        if tag == Tag.WPKH:
            return WpkhDescriptor(self.key(subs[0]))
        if tag == Tag.WSH:
            return WshDescriptor(self.miniscript(subs[0]))
        if tag == Tag.SH:
            if subs[0].tag in (Tag.WSH, Tag.WPKH):
                return ShDescriptor(self.descriptor(subs[0]))
            return ShDescriptor(self.miniscript(subs[0]))

        assert tag == Tag.TR
        internal_key = self.key(subs[0])
        tree = None
        if len(subs) > 1:
            tree = self.tap_tree(subs[1])
        return TrDescriptor(internal_key, tree)

    def tap_tree(self, shape):
        if shape.tag != Tag.TAP_BRANCH:
            return self.miniscript(shape)
        left_child = self.tap_tree(shape.subs[0])
        right_child = self.tap_tree(shape.subs[1])
        return TreeNode(left_child, right_child)

    def miniscript(self, shape):
        tag = shape.tag

        if tag.is_wrapper():
            return fragments.Wrapped(tag.wrapper_char, self.miniscript(shape.subs[0]))

        node_class = TAG_FRAGMENTS[tag]
        if tag in (Tag.PK_K, Tag.PK_H):
            return node_class(self.key(shape.subs[0]))
        if tag in (Tag.OLDER, Tag.AFTER):
            return node_class(shape.args[0])
        if tag in HASH_SIZES:
            return node_class(self.read(shape.fields[0]))
        if tag in MULTI_TAGS:
            keys = []
            for sub in shape.subs:
                keys.append(self.key(sub))
            return node_class(shape.args[0], keys)

        subs = []
        for sub in shape.subs:
            subs.append(self.miniscript(sub))
        if tag == Tag.THRESH:
            return node_class(shape.args[0], subs)
        return node_class(*subs)

    def key(self, shape):
        origin = None
        if shape.fingerprint is not None:
            origin = DescriptorKeyOrigin(self.read(shape.fingerprint), shape.origin_path)

        try:
            if shape.tag in RAW_KEY_SIZES:
                key = DescriptorKey(self.read(shape.key_data), origin=origin)
            elif shape.tag in (Tag.WIF_COMPRESSED, Tag.WIF_UNCOMPRESSED):
                wif = WifKey(
                    self.read(shape.key_data),
                    compressed=shape.tag == Tag.WIF_COMPRESSED,
                    network=shape.network,
                )
                key = DescriptorKey(wif, origin=origin)
            else:
                key = self.extended_key(shape, origin)
        except DescriptorKeyError as e:
            raise InvalidKeyMaterial(e.message)

        if shape.secret_index is None:
            return key

        # Secret keys go to the key map, the descriptor gets their public
        # counterpart or the dummy key of their index.
        pubkey = key.to_public()
        if pubkey is None:
            pubkey = dummy_public_key(shape.secret_index)
        self.key_map[pubkey] = key
        return pubkey

    def extended_key(self, shape, origin):
        parent_fingerprint = bytes(4)
        if shape.parent_fingerprint is not None:
            parent_fingerprint = self.read(shape.parent_fingerprint)
        chaincode = self.read(shape.chaincode)
        key_data = self.read(shape.key_data)

        privkey, pubkey = None, None
        try:
            if shape.tag.is_secret():
                coincurve.PrivateKey(key_data)
                privkey = key_data
            else:
                coincurve.PublicKey(key_data)
                pubkey = key_data
        except ValueError as e:
            raise InvalidKeyMaterial(f"Invalid extended key: '{str(e)}'")
        xkey = BIP32(
            chaincode,
            privkey=privkey,
            pubkey=pubkey,
            fingerprint=parent_fingerprint,
            depth=shape.depth,
            index=shape.child_number,
            network=shape.network,
        )

        path = None
        if shape.paths != [[]] or shape.wildcard != KeyPathKind.FINAL:
            path = DescriptorKeyPath(shape.paths, shape.wildcard)
        return DescriptorKey(xkey, origin=origin, path=path)


def decode_template(data, max_depth=MAX_RECURSION_DEPTH):
    """Read the template at the start of {data}.

    :param max_depth: the maximum nesting of Miniscript fragments and taproot tree
                      branches.
    :returns: a Template with the shape of the descriptor, its number of secret
              keys, the length of the template and the expected payload length.
    """
    decoder = TemplateDecoder(data, max_depth)
    shape = decoder.descriptor()
    return Template(shape, decoder.secret_count, decoder.offset, decoder.payload_length)


def decode_with_payload(template, payload, max_depth=MAX_RECURSION_DEPTH):
    """Decode a descriptor from its template and its payload.

    :returns: a tuple (descriptor, key_map) where key_map maps the public keys of
              the descriptor standing for a secret key to this secret key.
    """
    tmpl = decode_template(template, max_depth)
    if tmpl.length != len(template):
        raise TrailingTemplate(
            f"Template has {len(template) - tmpl.length} byte(s) past its end"
        )
    if len(payload) < tmpl.payload_length:
        raise TruncatedPayload(
            f"Payload is {len(payload)} bytes, expected {tmpl.payload_length}"
        )
    if len(payload) > tmpl.payload_length:
        raise TrailingPayload(
            f"Payload is {len(payload)} bytes, expected {tmpl.payload_length}"
        )

    decoder = PayloadDecoder(payload)
    descriptor = decoder.descriptor(tmpl.shape)
    log.debug(
        "Decoded descriptor from %d template and %d payload bytes (%d secret keys)",
        len(template),
        len(payload),
        tmpl.secret_count,
    )
    return descriptor, decoder.key_map


def decode(data, max_depth=MAX_RECURSION_DEPTH):
    """Decode a descriptor encoded as the concatenation of its template and payload.

    :returns: a tuple (descriptor, key_map), see decode_with_payload().
    """
    tmpl = decode_template(data, max_depth)
    return decode_with_payload(data[: tmpl.length], data[tmpl.length :], max_depth)
