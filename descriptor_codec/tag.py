"""
The registry of tags identifying each kind of node in an encoded descriptor.

Values are assigned once and never reused: new kinds may only be appended.
"""

from enum import IntEnum

from .errors import UnknownTag


class Tag(IntEnum):
    # Descriptors
    BARE = 0x00
    PKH = 0x01
    WPKH = 0x02
    SH = 0x03
    WSH = 0x04
    TR = 0x05
    TAP_BRANCH = 0x06

    # Miniscript terminals
    FALSE = 0x07
    TRUE = 0x08
    PK_K = 0x09
    PK_H = 0x0A
    OLDER = 0x0B
    AFTER = 0x0C
    SHA256 = 0x0D
    HASH256 = 0x0E
    RIPEMD160 = 0x0F
    HASH160 = 0x10
    MULTI = 0x11
    SORTED_MULTI = 0x12
    MULTI_A = 0x13
    SORTED_MULTI_A = 0x14

    # Miniscript connectives
    AND_V = 0x15
    AND_B = 0x16
    AND_N = 0x17
    AND_OR = 0x18
    OR_B = 0x19
    OR_C = 0x1A
    OR_D = 0x1B
    OR_I = 0x1C
    THRESH = 0x1D

    # Miniscript wrappers
    ALT = 0x1E
    SWAP = 0x1F
    CHECK = 0x20
    DUP_IF = 0x21
    VERIFY = 0x22
    NON_ZERO = 0x23
    ZERO_NOT_EQUAL = 0x24
    WRAP_T = 0x25
    WRAP_L = 0x26
    WRAP_U = 0x27

    # Key expressions
    ORIGIN = 0x28
    COMPRESSED_KEY = 0x29
    UNCOMPRESSED_KEY = 0x2A
    XONLY_KEY = 0x2B
    XPUB = 0x2C
    MULTI_XPUB = 0x2D
    WIF_COMPRESSED = 0x2E
    WIF_UNCOMPRESSED = 0x2F
    XPRV = 0x30
    MULTI_XPRV = 0x31

    def is_descriptor(self) -> bool:
        return self in DESCRIPTOR_TAGS

    def is_script(self) -> bool:
        """Whether this tag may start a Miniscript expression."""
        return Tag.FALSE <= self <= Tag.WRAP_U

    def is_wrapper(self) -> bool:
        return self in WRAPPER_CHARS

    def is_key(self) -> bool:
        """Whether this tag may start a key expression."""
        return Tag.ORIGIN <= self <= Tag.MULTI_XPRV

    def is_secret(self) -> bool:
        return self in SECRET_KEY_TAGS

    def is_multipath(self) -> bool:
        return self in (Tag.MULTI_XPUB, Tag.MULTI_XPRV)

    @property
    def wrapper_char(self) -> str:
        """The character of a wrapper tag, as written in a Miniscript expression."""
        return WRAPPER_CHARS[self]


DESCRIPTOR_TAGS = (Tag.BARE, Tag.PKH, Tag.WPKH, Tag.SH, Tag.WSH, Tag.TR)

WRAPPER_CHARS = {
    Tag.ALT: "a",
    Tag.SWAP: "s",
    Tag.CHECK: "c",
    Tag.DUP_IF: "d",
    Tag.VERIFY: "v",
    Tag.NON_ZERO: "j",
    Tag.ZERO_NOT_EQUAL: "n",
    Tag.WRAP_T: "t",
    Tag.WRAP_L: "l",
    Tag.WRAP_U: "u",
}
WRAPPER_TAGS = {char: tag for tag, char in WRAPPER_CHARS.items()}

SECRET_KEY_TAGS = (
    Tag.WIF_COMPRESSED,
    Tag.WIF_UNCOMPRESSED,
    Tag.XPRV,
    Tag.MULTI_XPRV,
)


def tag_of(kind: Tag) -> int:
    """Get the integer written on the wire for this kind."""
    assert isinstance(kind, Tag)
    return int(kind)


def kind_of(value: int) -> Tag:
    """Get the kind registered for this integer."""
    try:
        return Tag(value)
    except ValueError:
        raise UnknownTag(f"Unknown tag: '{value:#x}'")


def wrapper_tag(char: str) -> Tag:
    """Get the tag of the Miniscript wrapper written as {char}."""
    try:
        return WRAPPER_TAGS[char]
    except KeyError:
        raise UnknownTag(f"Unknown wrapper: '{char}'")
