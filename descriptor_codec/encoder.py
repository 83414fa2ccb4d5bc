"""
Encoding of a descriptor into a template and a payload.

The template holds the structure of the descriptor: a tag for each node and the
small integers (thresholds, timelocks, derivation steps, ...). The payload holds the
fixed-size high-entropy data (keys, chain codes, hashes, fingerprints), in the order
they appear in the descriptor.
"""

import logging

from bip32 import BIP32, HARDENED_INDEX

from .descriptors import (
    BareDescriptor,
    PkhDescriptor,
    WpkhDescriptor,
    ShDescriptor,
    WshDescriptor,
    TrDescriptor,
    TreeNode,
)
from .key import NETWORKS, DescriptorKeyPath, KeyPathKind, WifKey
from .miniscript import fragments
from .tag import Tag, tag_of, wrapper_tag
from .varint import encode_varint

log = logging.getLogger(__name__)

FRAGMENT_TAGS = {
    fragments.Just0: Tag.FALSE,
    fragments.Just1: Tag.TRUE,
    fragments.Pk: Tag.PK_K,
    fragments.Pkh: Tag.PK_H,
    fragments.Older: Tag.OLDER,
    fragments.After: Tag.AFTER,
    fragments.Sha256: Tag.SHA256,
    fragments.Hash256: Tag.HASH256,
    fragments.Ripemd160: Tag.RIPEMD160,
    fragments.Hash160: Tag.HASH160,
    fragments.Multi: Tag.MULTI,
    fragments.SortedMulti: Tag.SORTED_MULTI,
    fragments.MultiA: Tag.MULTI_A,
    fragments.SortedMultiA: Tag.SORTED_MULTI_A,
    fragments.AndV: Tag.AND_V,
    fragments.AndB: Tag.AND_B,
    fragments.AndN: Tag.AND_N,
    fragments.AndOr: Tag.AND_OR,
    fragments.OrB: Tag.OR_B,
    fragments.OrC: Tag.OR_C,
    fragments.OrD: Tag.OR_D,
    fragments.OrI: Tag.OR_I,
    fragments.Thresh: Tag.THRESH,
}

WILDCARDS = {
    KeyPathKind.FINAL: 0,
    KeyPathKind.WILDCARD_UNHARDENED: 1,
    KeyPathKind.WILDCARD_HARDENED: 2,
}


class Encoder:
    """Walks a descriptor depth-first, writing to the template and the payload."""

    def __init__(self, key_map):
        self.template = bytearray()
        self.payload = bytearray()
        self.key_map = key_map
        # Number of secret keys written so far.
        self.secret_count = 0

    def tag(self, tag):
        self.template += encode_varint(tag_of(tag))

    def varint(self, n):
        self.template += encode_varint(n)

    def descriptor(self, desc):
        if isinstance(desc, BareDescriptor):
            self.tag(Tag.BARE)
            self.miniscript(desc.script)
        elif isinstance(desc, PkhDescriptor):
            self.tag(Tag.PKH)
            self.key(desc.pubkey)
        elif isinstance(desc, WpkhDescriptor):
            self.tag(Tag.WPKH)
            self.key(desc.pubkey)
        elif isinstance(desc, ShDescriptor):
            self.tag(Tag.SH)
            if isinstance(desc.inner, fragments.Node):
                self.miniscript(desc.inner)
            else:
                self.descriptor(desc.inner)
        elif isinstance(desc, WshDescriptor):
            self.tag(Tag.WSH)
            self.miniscript(desc.witness_script)
        elif isinstance(desc, TrDescriptor):
            self.tag(Tag.TR)
            self.key(desc.internal_key)
            self.varint(int(desc.tree is not None))
            if desc.tree is not None:
                self.tap_tree(desc.tree)
        else:
            raise TypeError(f"Not a descriptor: '{desc}'")

    def tap_tree(self, tree):
        if isinstance(tree, TreeNode):
            self.tag(Tag.TAP_BRANCH)
            self.tap_tree(tree.left_child)
            self.tap_tree(tree.right_child)
        else:
            self.miniscript(tree)

    def miniscript(self, node):
        # One tag per wrapper, outermost first.
        if isinstance(node, fragments.Wrapped):
            for char in node.modifiers:
                self.tag(wrapper_tag(char))
            self.miniscript(node.subs[0])
            return

        self.tag(FRAGMENT_TAGS[type(node)])
        if isinstance(node, fragments.Pk):
            self.key(node.pubkey)
        elif isinstance(node, (fragments.Older, fragments.After)):
            self.varint(node.value)
        elif isinstance(node, fragments.HashNode):
            self.payload += node.digest
        elif isinstance(node, fragments.MultiNode):
            self.varint(node.k)
            self.varint(len(node.pubkeys))
            for key in node.pubkeys:
                self.key(key)
        elif isinstance(node, fragments.Thresh):
            self.varint(node.k)
            self.varint(len(node.subs))
            for sub in node.subs:
                self.miniscript(sub)
        else:
            for sub in node.subs:
                self.miniscript(sub)

    def step(self, index):
        hardened = index >= HARDENED_INDEX
        self.varint(((index & (HARDENED_INDEX - 1)) << 1) | hardened)

    def path(self, path):
        self.varint(len(path))
        for index in path:
            self.step(index)

    def key(self, key):
        # A public key standing for a secret key is written as the secret key.
        secret = self.key_map.get(key)
        if secret is not None:
            key = secret
        if key.is_private():
            self.secret_count += 1

        if key.origin is not None:
            self.tag(Tag.ORIGIN)
            self.path(key.origin.path)
            self.payload += key.origin.fingerprint

        if isinstance(key.key, BIP32):
            self.extended_key(key)
        elif isinstance(key.key, WifKey):
            wif = key.key
            self.tag(Tag.WIF_COMPRESSED if wif.compressed else Tag.WIF_UNCOMPRESSED)
            self.varint(NETWORKS.index(wif.network))
            self.payload += wif.secret
        else:
            if key.x_only:
                self.tag(Tag.XONLY_KEY)
            elif key.compressed:
                self.tag(Tag.COMPRESSED_KEY)
            else:
                self.tag(Tag.UNCOMPRESSED_KEY)
            self.payload += key.bytes()

    def extended_key(self, key):
        xkey = key.key
        private = xkey.privkey is not None
        path = key.path or DescriptorKeyPath([[]], KeyPathKind.FINAL)

        if path.is_multipath():
            self.tag(Tag.MULTI_XPRV if private else Tag.MULTI_XPUB)
        else:
            self.tag(Tag.XPRV if private else Tag.XPUB)

        # Depth, child number and parent fingerprint are only needed for non-master
        # keys.
        self.varint(NETWORKS.index(xkey.network))
        self.varint(xkey.depth)
        if xkey.depth > 0:
            self.varint(xkey.index)
            self.payload += xkey.parent_fingerprint
        self.payload += xkey.chaincode
        self.payload += xkey.privkey if private else xkey.pubkey

        if path.is_multipath():
            # The steps shared by all paths, then the diverging one of each path.
            i = path.multipath_index()
            self.varint(len(path.paths))
            self.varint(len(path.paths[0]))
            self.varint(i)
            for j, index in enumerate(path.paths[0]):
                if j != i:
                    self.step(index)
            for p in path.paths:
                self.step(p[i])
        else:
            self.path(path.paths[0])
        self.varint(WILDCARDS[path.kind])


def encode(descriptor, key_map=None):
    """Encode a descriptor into a template and a payload.

    :param descriptor: the descriptor to encode, usually as returned by
                       Descriptor.to_public().
    :param key_map: a mapping from the public keys of the descriptor to the secret
                    keys to be encoded in their place.
    :returns: a tuple (template, payload) of bytes.
    """
    encoder = Encoder(key_map or {})
    encoder.descriptor(descriptor)
    log.debug(
        "Encoded descriptor into %d template and %d payload bytes (%d secret keys)",
        len(encoder.template),
        len(encoder.payload),
        encoder.secret_count,
    )
    return bytes(encoder.template), bytes(encoder.payload)
