"""
Miniscript AST elements.

Each element corresponds to a Miniscript fragment. See the Miniscript website for the
specification: https://bitcoin.sipa.be/miniscript/. No type checking is performed,
nodes only carry what is needed to reproduce the expression.
"""

from ..key import DescriptorKey
from .errors import MiniscriptNodeCreationError


WRAPPERS = "asctdvjnlu"


def to_key(key):
    if isinstance(key, (bytes, str)):
        return DescriptorKey(key)
    if isinstance(key, DescriptorKey):
        return key
    raise MiniscriptNodeCreationError(f"Invalid key: '{key}'")


class Node:
    """A Miniscript fragment."""

    def __init__(self):
        # List of all sub fragments
        self.subs = []

    def from_str(ms_str):
        """Parse a Miniscript fragment from its string representation."""
        from .parsing import miniscript_from_str

        assert isinstance(ms_str, str)
        return miniscript_from_str(ms_str)

    def __eq__(self, other):
        return type(self) is type(other) and str(self) == str(other)

    def __hash__(self):
        return hash(str(self))

    @property
    def keys(self):
        """Get the list of all keys from this Miniscript, in order of apparition."""
        return [key for sub in self.subs for key in sub.keys]

    def translate_keys(self, func):
        """Get a copy of this fragment with each key replaced by func(key).

        Keys are visited in order of apparition.
        """
        return type(self)(*[sub.translate_keys(func) for sub in self.subs])


class Terminal(Node):
    """A fragment without key nor sub."""

    def translate_keys(self, func):
        return self


class Just0(Terminal):
    def __repr__(self):
        return "0"


class Just1(Terminal):
    def __repr__(self):
        return "1"


class Pk(Node):
    def __init__(self, pubkey):
        Node.__init__(self)
        self.pubkey = to_key(pubkey)

    def __repr__(self):
        return f"pk_k({self.pubkey})"

    @property
    def keys(self):
        return [self.pubkey]

    def translate_keys(self, func):
        return type(self)(func(self.pubkey))


class Pkh(Pk):
    def __repr__(self):
        return f"pk_h({self.pubkey})"


class Older(Terminal):
    def __init__(self, value):
        if not isinstance(value, int) or not 0 <= value < 2**32:
            raise MiniscriptNodeCreationError(f"Invalid relative timelock: '{value}'")
        Node.__init__(self)
        self.value = value

    def __repr__(self):
        return f"older({self.value})"


class After(Terminal):
    def __init__(self, value):
        if not isinstance(value, int) or not 0 <= value < 2**32:
            raise MiniscriptNodeCreationError(f"Invalid absolute timelock: '{value}'")
        Node.__init__(self)
        self.value = value

    def __repr__(self):
        return f"after({self.value})"


class HashNode(Terminal):
    """A hash challenge, satisfied with a preimage of the given digest."""

    name = None
    digest_len = None

    def __init__(self, digest):
        if isinstance(digest, str):
            try:
                digest = bytes.fromhex(digest)
            except ValueError:
                raise MiniscriptNodeCreationError(f"Invalid {self.name} digest: '{digest}'")
        if not isinstance(digest, bytes) or len(digest) != self.digest_len:
            raise MiniscriptNodeCreationError(f"Invalid {self.name} digest: '{digest}'")
        Node.__init__(self)
        self.digest = digest

    def __repr__(self):
        return f"{self.name}({self.digest.hex()})"


class Sha256(HashNode):
    name = "sha256"
    digest_len = 32


class Hash256(HashNode):
    name = "hash256"
    digest_len = 32


class Ripemd160(HashNode):
    name = "ripemd160"
    digest_len = 20


class Hash160(HashNode):
    name = "hash160"
    digest_len = 20


class MultiNode(Node):
    """A k-of-n multisig, keys are kept in the order they were given."""

    name = None

    def __init__(self, k, keys):
        keys = list(keys)
        if not isinstance(k, int) or not 1 <= k <= len(keys):
            raise MiniscriptNodeCreationError(f"Invalid {self.name} threshold: '{k}'")
        Node.__init__(self)
        self.k = k
        self.pubkeys = [to_key(key) for key in keys]

    def __repr__(self):
        return f"{self.name}({','.join([str(self.k)] + [str(k) for k in self.pubkeys])})"

    @property
    def keys(self):
        return list(self.pubkeys)

    def translate_keys(self, func):
        return type(self)(self.k, [func(key) for key in self.pubkeys])


class Multi(MultiNode):
    name = "multi"


class SortedMulti(MultiNode):
    name = "sortedmulti"


class MultiA(MultiNode):
    name = "multi_a"


class SortedMultiA(MultiNode):
    name = "sortedmulti_a"


class AndV(Node):
    def __init__(self, sub_x, sub_y):
        Node.__init__(self)
        self.subs = [sub_x, sub_y]

    def __repr__(self):
        return f"and_v({','.join(map(str, self.subs))})"


class AndB(Node):
    def __init__(self, sub_x, sub_y):
        Node.__init__(self)
        self.subs = [sub_x, sub_y]

    def __repr__(self):
        return f"and_b({','.join(map(str, self.subs))})"


class AndN(Node):
    def __init__(self, sub_x, sub_y):
        Node.__init__(self)
        self.subs = [sub_x, sub_y]

    def __repr__(self):
        return f"and_n({','.join(map(str, self.subs))})"


class AndOr(Node):
    def __init__(self, sub_x, sub_y, sub_z):
        Node.__init__(self)
        self.subs = [sub_x, sub_y, sub_z]

    def __repr__(self):
        return f"andor({','.join(map(str, self.subs))})"


class OrB(Node):
    def __init__(self, sub_x, sub_z):
        Node.__init__(self)
        self.subs = [sub_x, sub_z]

    def __repr__(self):
        return f"or_b({','.join(map(str, self.subs))})"


class OrC(Node):
    def __init__(self, sub_x, sub_z):
        Node.__init__(self)
        self.subs = [sub_x, sub_z]

    def __repr__(self):
        return f"or_c({','.join(map(str, self.subs))})"


class OrD(Node):
    def __init__(self, sub_x, sub_z):
        Node.__init__(self)
        self.subs = [sub_x, sub_z]

    def __repr__(self):
        return f"or_d({','.join(map(str, self.subs))})"


class OrI(Node):
    def __init__(self, sub_x, sub_z):
        Node.__init__(self)
        self.subs = [sub_x, sub_z]

    def __repr__(self):
        return f"or_i({','.join(map(str, self.subs))})"


class Thresh(Node):
    def __init__(self, k, subs):
        subs = list(subs)
        if not isinstance(k, int) or not 1 <= k <= len(subs):
            raise MiniscriptNodeCreationError(f"Invalid thresh threshold: '{k}'")
        Node.__init__(self)
        self.k = k
        self.subs = subs

    def __repr__(self):
        return f"thresh({self.k},{','.join(map(str, self.subs))})"

    def translate_keys(self, func):
        return Thresh(self.k, [sub.translate_keys(func) for sub in self.subs])


class Wrapped(Node):
    """One or more wrappers applied to a fragment, such as the 'sln' in 'sln:after(1)'.

    Wrapping a Wrapped fragment merges the modifiers, so the inner fragment is never
    itself a Wrapped.
    """

    def __init__(self, modifiers, sub):
        if len(modifiers) == 0 or any(c not in WRAPPERS for c in modifiers):
            raise MiniscriptNodeCreationError(f"Invalid wrappers: '{modifiers}'")
        Node.__init__(self)
        if isinstance(sub, Wrapped):
            modifiers += sub.modifiers
            sub = sub.subs[0]
        self.modifiers = modifiers
        self.subs = [sub]

    def __repr__(self):
        sub = self.subs[0]
        # c:pk_k(K) and c:pk_h(K) are written pk(K) and pkh(K).
        if self.modifiers[-1] == "c" and type(sub) in (Pk, Pkh):
            alias = f"pk({sub.pubkey})" if type(sub) is Pk else f"pkh({sub.pubkey})"
            if len(self.modifiers) == 1:
                return alias
            return f"{self.modifiers[:-1]}:{alias}"
        return f"{self.modifiers}:{sub}"

    def translate_keys(self, func):
        return Wrapped(self.modifiers, self.subs[0].translate_keys(func))
