from ..dummy import dummy_public_key
from ..key import DescriptorKey
from ..miniscript import Node

from .checksum import descsum_create
from .errors import DescriptorParsingError
from .parsing import descriptor_from_str
from .utils import TreeNode


class Descriptor:
    """A Bitcoin Output Script Descriptor."""

    def from_str(desc_str, strict=False):
        """Parse a Bitcoin Output Script Descriptor from its string representation.

        :param strict: whether to require the presence of a checksum.
        """
        desc = descriptor_from_str(desc_str, strict)

        # BIP389 prescribes that no two multipath key expressions in a single descriptor
        # have different length.
        multipath_len = None
        for key in desc.keys:
            if key.is_multipath():
                m_len = len(key.path.paths)
                if multipath_len is None:
                    multipath_len = m_len
                elif multipath_len != m_len:
                    raise DescriptorParsingError(
                        f"Descriptor contains multipath key expressions with varying length: '{desc_str}'."
                    )

        return desc

    def __repr__(self):
        return descsum_create(self.body())

    def __eq__(self, other):
        return isinstance(other, Descriptor) and str(self) == str(other)

    def __hash__(self):
        return hash(str(self))

    def body(self):
        """The string representation of this descriptor, without checksum."""
        # To be implemented by derived classes
        raise NotImplementedError

    @property
    def keys(self):
        """Get the list of all keys from this descriptor, in order of apparition."""
        # To be implemented by derived classes
        raise NotImplementedError

    def translate_keys(self, func):
        """Get a copy of this descriptor with each key replaced by func(key).

        Keys are visited in order of apparition.
        """
        # To be implemented by derived classes
        raise NotImplementedError

    def is_multipath(self):
        """Whether this descriptor contains multipath key expression(s)."""
        return any(k.is_multipath() for k in self.keys)

    def is_private(self):
        """Whether this descriptor contains secret key(s)."""
        return any(k.is_private() for k in self.keys)

    def to_public(self):
        """Get a copy of this descriptor containing only public keys, along with a
        mapping from each of these public keys to the secret key it replaces.

        A secret key without a single public counterpart (a multipath xprv) is
        replaced by the dummy key at its index among the secret keys.
        """
        key_map = {}
        secret_index = 0

        def public_key(key):
            nonlocal secret_index
            if not key.is_private():
                return key
            pubkey = key.to_public()
            if pubkey is None:
                pubkey = dummy_public_key(secret_index)
            secret_index += 1
            key_map[pubkey] = key
            return pubkey

        return self.translate_keys(public_key), key_map

    def with_secret_keys(self, key_map):
        """Get a copy of this descriptor with the public keys found in {key_map}
        replaced by their secret key.
        """
        return self.translate_keys(lambda key: key_map.get(key, key))

    def to_string(self, key_map=None):
        """Get the string representation of this descriptor, disclosing the secret
        keys from {key_map}.
        """
        if not key_map:
            return str(self)
        return str(self.with_secret_keys(key_map))


class BareDescriptor(Descriptor):
    """A bare Script Output Script Descriptor."""

    def __init__(self, script):
        assert isinstance(script, Node)
        self.script = script

    def body(self):
        return str(self.script)

    @property
    def keys(self):
        return self.script.keys

    def translate_keys(self, func):
        return BareDescriptor(self.script.translate_keys(func))


class PkhDescriptor(Descriptor):
    """A P2PKH Output Script Descriptor."""

    def __init__(self, pubkey):
        assert isinstance(pubkey, DescriptorKey)
        self.pubkey = pubkey

    def body(self):
        return f"pkh({self.pubkey})"

    @property
    def keys(self):
        return [self.pubkey]

    def translate_keys(self, func):
        return PkhDescriptor(func(self.pubkey))


class WpkhDescriptor(Descriptor):
    """A Segwit v0 P2WPKH Output Script Descriptor."""

    def __init__(self, pubkey):
        assert isinstance(pubkey, DescriptorKey)
        self.pubkey = pubkey

    def body(self):
        return f"wpkh({self.pubkey})"

    @property
    def keys(self):
        return [self.pubkey]

    def translate_keys(self, func):
        return WpkhDescriptor(func(self.pubkey))


class WshDescriptor(Descriptor):
    """A Segwit v0 P2WSH Output Script Descriptor."""

    def __init__(self, witness_script):
        assert isinstance(witness_script, Node)
        self.witness_script = witness_script

    def body(self):
        return f"wsh({self.witness_script})"

    @property
    def keys(self):
        return self.witness_script.keys

    def translate_keys(self, func):
        return WshDescriptor(self.witness_script.translate_keys(func))


class ShDescriptor(Descriptor):
    """A P2SH Output Script Descriptor.

    Wraps either a Segwit v0 descriptor (P2SH-P2WSH, P2SH-P2WPKH) or a Script.
    """

    def __init__(self, inner):
        assert isinstance(inner, (WshDescriptor, WpkhDescriptor, Node))
        self.inner = inner

    def body(self):
        if isinstance(self.inner, Node):
            return f"sh({self.inner})"
        return f"sh({self.inner.body()})"

    @property
    def keys(self):
        return self.inner.keys

    def translate_keys(self, func):
        return ShDescriptor(self.inner.translate_keys(func))


class TrDescriptor(Descriptor):
    """A Pay-to-Taproot Output Script Descriptor."""

    def __init__(self, internal_key, tree=None):
        assert isinstance(internal_key, DescriptorKey)
        assert tree is None or isinstance(tree, (TreeNode, Node))
        self.internal_key = internal_key
        self.tree = tree

    def body(self):
        if self.tree is not None:
            return f"tr({self.internal_key},{self.tree})"
        return f"tr({self.internal_key})"

    @property
    def keys(self):
        if self.tree is None:
            return [self.internal_key]
        return [self.internal_key] + self.tree.keys

    def translate_keys(self, func):
        internal_key = func(self.internal_key)
        tree = None
        if self.tree is not None:
            tree = self.tree.translate_keys(func)
        return TrDescriptor(internal_key, tree)
