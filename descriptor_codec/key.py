from __future__ import annotations

from enum import Enum, auto
from typing import List, Optional, Union

import base58
from bip32 import BIP32, HARDENED_INDEX
from bip32.utils import coincurve, _deriv_path_str_to_list


NETWORKS = ["main", "test"]
WIF_PREFIXES = {"main": 0x80, "test": 0xEF}


class DescriptorKeyError(Exception):
    def __init__(self, message: str):
        self.message: str = message


def parse_path(path_str: str) -> List[int]:
    """Parse a derivation path such as "10h/11/12'/13", without the leading "m/"."""
    for step in path_str.split("/"):
        index = step[:-1] if step[-1:] in ("'", "h", "H") else step
        if not (index.isascii() and index.isdigit()) or int(index) >= HARDENED_INDEX:
            raise DescriptorKeyError(f"Invalid derivation index: '{step}'")
    # We use an internal helper from python-bip32, which operates on "m/10h/11".
    try:
        return _deriv_path_str_to_list("m/" + path_str)
    except ValueError:
        raise DescriptorKeyError(f"Insane path: '{path_str}'")


def ser_path(path: List[int]) -> str:
    """Serialize a derivation path as a sequence of '/'-prefixed steps."""
    res = ""
    for i in path:
        if i < HARDENED_INDEX:
            res += f"/{i}"
        else:
            res += f"/{i - HARDENED_INDEX}'"
    return res


class DescriptorKeyOrigin:
    """The origin of a key in a descriptor.

    See https://github.com/bitcoin/bips/blob/master/bip-0380.mediawiki#key-expressions.
    """

    def __init__(self, fingerprint: bytes, path: List[int]):
        assert isinstance(fingerprint, bytes) and isinstance(path, list)
        assert len(fingerprint) == 4

        self.fingerprint: bytes = fingerprint
        self.path: List[int] = path

    def from_str(origin_str: str) -> DescriptorKeyOrigin:
        # Origing starts and ends with brackets
        if not origin_str.startswith("[") or not origin_str.endswith("]"):
            raise DescriptorKeyError(f"Insane origin: '{origin_str}'")
        # At least 8 hex characters + brackets
        if len(origin_str) < 10:
            raise DescriptorKeyError(f"Insane origin: '{origin_str}'")

        # For the fingerprint, just read the 4 bytes.
        try:
            fingerprint = bytes.fromhex(origin_str[1:9])
        except ValueError:
            raise DescriptorKeyError(f"Insane fingerprint in origin: '{origin_str}'")
        path = []
        if len(origin_str) > 10:
            if origin_str[9] != "/":
                raise DescriptorKeyError(f"Insane path in origin: '{origin_str}'")
            path = parse_path(origin_str[10:-1])

        return DescriptorKeyOrigin(fingerprint, path)

    def __repr__(self) -> str:
        return f"[{self.fingerprint.hex()}{ser_path(self.path)}]"


class KeyPathKind(Enum):
    FINAL = auto()
    WILDCARD_UNHARDENED = auto()
    WILDCARD_HARDENED = auto()

    def is_wildcard(self) -> bool:
        return self in [KeyPathKind.WILDCARD_HARDENED, KeyPathKind.WILDCARD_UNHARDENED]


class DescriptorKeyPath:
    """The derivation path(s) of a key in a descriptor.

    A multipath key expression (BIP389) has more than one path. All of them have the
    same length and only differ at a single step.
    See https://github.com/bitcoin/bips/blob/master/bip-0380.mediawiki#key-expressions.
    """

    def __init__(self, paths: List[List[int]], kind: KeyPathKind):
        assert isinstance(paths, list) and len(paths) > 0
        assert all(isinstance(p, list) for p in paths)
        assert isinstance(kind, KeyPathKind)

        if len(paths) > 1:
            if any(len(p) != len(paths[0]) for p in paths):
                raise DescriptorKeyError("Multipath derivation paths of varying length")
            diverging = [
                i for i in range(len(paths[0])) if len(set(p[i] for p in paths)) > 1
            ]
            if len(diverging) > 1:
                raise DescriptorKeyError("Multipath derivation paths diverge twice")

        self.paths: List[List[int]] = paths
        self.kind: KeyPathKind = kind

    def from_str(path_str: str) -> DescriptorKeyPath:
        if len(path_str) < 1:
            raise DescriptorKeyError(f"Insane key path: '{path_str}'")
        if path_str[0] == "/":
            raise DescriptorKeyError(f"Insane key path: '{path_str}'")

        # Determine whether this key may be derived.
        kind = KeyPathKind.FINAL
        if path_str[-2:] in ["*'", "*h", "*H"]:
            kind = KeyPathKind.WILDCARD_HARDENED
            path_str = path_str[:-2]
        elif path_str[-1] == "*":
            kind = KeyPathKind.WILDCARD_UNHARDENED
            path_str = path_str[:-1]
        # If we just trimmed the wildcard part, trim the trailing '/' too.
        if kind.is_wildcard() and len(path_str) > 0:
            if path_str[-1] != "/":
                raise DescriptorKeyError(f"Insane wildcard in key path: '{path_str}'")
            path_str = path_str[:-1]

        if len(path_str) == 0:
            return DescriptorKeyPath([[]], kind)

        # Expand the (single) multipath step, if any, into as many path strings.
        steps = path_str.split("/")
        if any(len(s) == 0 for s in steps):
            raise DescriptorKeyError(f"Empty step in key path: '{path_str}'")
        multi_steps = [i for i, s in enumerate(steps) if s.startswith("<")]
        if len(multi_steps) > 1:
            raise DescriptorKeyError(f"More than one multipath step: '{path_str}'")
        path_strs = [path_str]
        if len(multi_steps) == 1:
            i = multi_steps[0]
            if not steps[i].endswith(">"):
                raise DescriptorKeyError(f"Insane multipath step: '{steps[i]}'")
            alternatives = steps[i][1:-1].split(";")
            if len(alternatives) < 2 or any(len(a) == 0 for a in alternatives):
                raise DescriptorKeyError(f"Insane multipath step: '{steps[i]}'")
            path_strs = [
                "/".join(steps[:i] + [alt] + steps[i + 1 :]) for alt in alternatives
            ]

        paths = [parse_path(s) for s in path_strs]
        if len(set(tuple(p) for p in paths)) != len(paths):
            raise DescriptorKeyError(f"Duplicate multipath derivation: '{path_str}'")

        return DescriptorKeyPath(paths, kind)

    def is_multipath(self) -> bool:
        return len(self.paths) > 1

    def multipath_index(self) -> int:
        """The position of the step at which the paths diverge."""
        assert self.is_multipath()
        for i in range(len(self.paths[0])):
            if len(set(p[i] for p in self.paths)) > 1:
                return i
        # Identical paths, pick the last step.
        return len(self.paths[0]) - 1

    def __repr__(self) -> str:
        if not self.is_multipath():
            res = ser_path(self.paths[0])
        else:
            i = self.multipath_index()
            prefix = ser_path(self.paths[0][:i])
            alternatives = ";".join(ser_path([p[i]])[1:] for p in self.paths)
            suffix = ser_path(self.paths[0][i + 1 :])
            res = f"{prefix}/<{alternatives}>{suffix}"

        if self.kind == KeyPathKind.WILDCARD_UNHARDENED:
            res += "/*"
        elif self.kind == KeyPathKind.WILDCARD_HARDENED:
            res += "/*'"
        return res


class WifKey:
    """A raw private key, as serialized in the Wallet Import Format."""

    def __init__(self, secret: bytes, compressed: bool = True, network: str = "main"):
        assert isinstance(secret, bytes) and network in NETWORKS
        try:
            self.key = coincurve.PrivateKey(secret)
        except ValueError as e:
            raise DescriptorKeyError(f"Private key parsing error: '{str(e)}'")
        self.compressed: bool = compressed
        self.network: str = network

    def from_str(wif: str) -> WifKey:
        try:
            data = base58.b58decode_check(wif)
        except ValueError as e:
            raise DescriptorKeyError(f"WIF parsing error: '{str(e)}'")

        networks = [n for n, prefix in WIF_PREFIXES.items() if data[:1] == bytes([prefix])]
        if len(networks) != 1:
            raise DescriptorKeyError(f"Unknown WIF prefix: '{wif}'")
        if len(data) == 34 and data[-1] == 0x01:
            return WifKey(data[1:33], compressed=True, network=networks[0])
        if len(data) == 33:
            return WifKey(data[1:], compressed=False, network=networks[0])
        raise DescriptorKeyError(f"Invalid WIF length: '{wif}'")

    @property
    def secret(self) -> bytes:
        return self.key.secret

    def pubkey(self) -> bytes:
        return self.key.public_key.format(compressed=self.compressed)

    def __repr__(self) -> str:
        data = bytes([WIF_PREFIXES[self.network]]) + self.secret
        if self.compressed:
            data += b"\x01"
        return base58.b58encode_check(data).decode()


class DescriptorKey:
    """A Bitcoin key to be used in Output Script Descriptors.

    May be a raw or extended key, public or private.
    """

    origin: Optional[DescriptorKeyOrigin]
    path: Optional[DescriptorKeyPath]
    key: Union[coincurve.PublicKey, coincurve.PublicKeyXOnly, BIP32, WifKey]

    def __init__(
        self,
        key: Union[bytes, BIP32, WifKey, str],
        origin: Optional[DescriptorKeyOrigin] = None,
        path: Optional[DescriptorKeyPath] = None,
    ):
        # Information about the origin of this key.
        self.origin = origin
        # If it is an extended key, a path toward a child key of that xpub.
        self.path = path
        # Only meaningful for raw public keys.
        self.compressed = True

        if isinstance(key, bytes):
            self._set_raw_pubkey(key)

        elif isinstance(key, (BIP32, WifKey)):
            self.key = key

        elif isinstance(key, str):
            # Try parsing an optional origin prepended to the key
            splitted_key = key.split("]", maxsplit=1)
            if len(splitted_key) == 2:
                origin, key = splitted_key
                self.origin = DescriptorKeyOrigin.from_str(origin + "]")

            # Is it a raw key?
            if "/" not in key and len(key) in (64, 66, 130):
                try:
                    raw_key = bytes.fromhex(key)
                except ValueError:
                    raise DescriptorKeyError(f"Insane raw public key: '{key}'")
                self._set_raw_pubkey(raw_key)
            # If not it must be an extended key or a WIF.
            else:
                # There may be an optional path appended to the extended key.
                splitted_key = key.split("/", maxsplit=1)
                if len(splitted_key) == 2:
                    key, path = splitted_key
                    self.path = DescriptorKeyPath.from_str(path)

                if key[1:4] == "pub":
                    try:
                        self.key = BIP32.from_xpub(key)
                    except ValueError as e:
                        raise DescriptorKeyError(f"Xpub parsing error: '{str(e)}'")
                elif key[1:4] == "prv":
                    try:
                        self.key = BIP32.from_xpriv(key)
                    except ValueError as e:
                        raise DescriptorKeyError(f"Xpriv parsing error: '{str(e)}'")
                else:
                    if self.path is not None:
                        raise DescriptorKeyError("A derivation path needs an extended key")
                    self.key = WifKey.from_str(key)

        else:
            raise DescriptorKeyError(
                "Invalid parameter type: expecting bytes, str, WifKey or BIP32 instance."
            )

        if self.path is not None and not isinstance(self.key, BIP32):
            raise DescriptorKeyError("A derivation path needs an extended key")

    def _set_raw_pubkey(self, key: bytes):
        try:
            if len(key) == 32:
                self.key = coincurve.PublicKeyXOnly(key)
            elif len(key) in (33, 65):
                self.key = coincurve.PublicKey(key)
                self.compressed = len(key) == 33
            else:
                raise DescriptorKeyError(f"Invalid public key length: {len(key)}")
        except ValueError as e:
            raise DescriptorKeyError(f"Public key parsing error: '{str(e)}'")

    def __repr__(self) -> str:
        key = ""

        if self.origin is not None:
            key += str(self.origin)

        if isinstance(self.key, BIP32):
            if self.key.privkey is not None:
                key += self.key.get_xpriv()
            else:
                key += self.key.get_xpub()
        elif isinstance(self.key, WifKey):
            key += str(self.key)
        else:
            key += self.bytes().hex()

        if self.path is not None:
            key += str(self.path)

        return key

    def __eq__(self, other) -> bool:
        return isinstance(other, DescriptorKey) and str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))

    def bytes(self) -> bytes:
        """The public key, not derived along the key's path."""
        if isinstance(self.key, coincurve.PublicKey):
            return self.key.format(compressed=self.compressed)
        if isinstance(self.key, coincurve.PublicKeyXOnly):
            return self.key.format()
        if isinstance(self.key, WifKey):
            return self.key.pubkey()
        assert isinstance(self.key, BIP32)
        return self.key.pubkey

    @property
    def x_only(self) -> bool:
        return isinstance(self.key, coincurve.PublicKeyXOnly)

    def is_extended(self) -> bool:
        return isinstance(self.key, BIP32)

    def is_private(self) -> bool:
        if isinstance(self.key, WifKey):
            return True
        return isinstance(self.key, BIP32) and self.key.privkey is not None

    def is_multipath(self) -> bool:
        """Whether this key contains more than one derivation path."""
        return self.path is not None and self.path.is_multipath()

    def to_public(self) -> Optional[DescriptorKey]:
        """Get the public counterpart of this key.

        None for a multipath extended private key, which can't be represented as a
        single public key.
        """
        if isinstance(self.key, WifKey):
            return DescriptorKey(self.key.pubkey(), origin=self.origin)

        if isinstance(self.key, BIP32) and self.key.privkey is not None:
            if self.is_multipath():
                return None
            xpub = BIP32(
                self.key.chaincode,
                pubkey=self.key.pubkey,
                fingerprint=self.key.parent_fingerprint,
                depth=self.key.depth,
                index=self.key.index,
                network=self.key.network,
            )
            return DescriptorKey(xpub, origin=self.origin, path=self.path)

        return self
