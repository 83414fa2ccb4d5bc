import descriptor_codec.descriptors as descriptors

from descriptor_codec.descriptors.checksum import descsum_check
from descriptor_codec.key import DescriptorKey, DescriptorKeyError
from descriptor_codec.miniscript import Node
from descriptor_codec.miniscript.errors import MiniscriptMalformed
from descriptor_codec.miniscript.parsing import parse_one

from .errors import DescriptorParsingError
from .utils import TreeNode


def split_checksum(desc_str, strict=False):
    """Removes and check the provided checksum.
    If not told otherwise, this won't fail on a missing checksum.

    :param strict: whether to require the presence of the checksum.
    """
    desc_split = desc_str.split("#")
    if len(desc_split) != 2:
        if strict:
            raise DescriptorParsingError("Missing checksum")
        return desc_split[0]

    descriptor, checksum = desc_split
    if not descsum_check(desc_str):
        raise DescriptorParsingError(
            f"Checksum '{checksum}' is invalid for '{descriptor}'"
        )

    return descriptor


def parse_key(key_str):
    try:
        return DescriptorKey(key_str)
    except DescriptorKeyError as e:
        raise DescriptorParsingError(e.message)


def parse_miniscript(ms_str):
    try:
        return Node.from_str(ms_str)
    except MiniscriptMalformed as e:
        raise DescriptorParsingError(e.message)


def parse_tree_inner(tree_str):
    """Recursively called function to parse a tree exp. Returns a tuple (res, remaining) where
    res is the expression that was parsed (may be a Taproot tree node or a Miniscript) and remaining
    what's left to parse as a string.
    """
    if len(tree_str) == 0:
        raise DescriptorParsingError("Invalid Taproot tree expression")
    # (From BIP386)
    # A Tree Expression is:
    # - Any Script Expression that is allowed at the level this Tree Expression is in.
    # - A pair of Tree Expressions consisting of:
    #   - An open brace {
    #   - A Tree Expression
    #   - A comma ,
    #   - A Tree Expression
    #   - A closing brace }
    if tree_str[0] != "{":
        try:
            return parse_one(tree_str)
        except MiniscriptMalformed as e:
            raise DescriptorParsingError(e.message)
    left_child, remaining = parse_tree_inner(tree_str[1:])
    if len(remaining) == 0 or remaining[0] != ",":
        raise DescriptorParsingError("Invalid Taproot tree expression")
    right_child, remaining = parse_tree_inner(remaining[1:])
    if len(remaining) == 0 or remaining[0] != "}":
        raise DescriptorParsingError("Invalid Taproot tree expression")
    return TreeNode(left_child, right_child), remaining[1:]


def parse_tree_exp(tree_str):
    """Parse a tree expression as defined in BIP386."""
    tree, remaining = parse_tree_inner(tree_str)
    if len(remaining) != 0:
        raise DescriptorParsingError(f"Trailing characters in tree: '{remaining}'")
    return tree


def parse_sh_inner(inner_str):
    """Parse what's inside a sh(): a P2WSH or P2WPKH descriptor, or a Miniscript."""
    if inner_str.startswith("wsh(") and inner_str.endswith(")"):
        return descriptors.WshDescriptor(parse_miniscript(inner_str[4:-1]))

    if inner_str.startswith("wpkh(") and inner_str.endswith(")"):
        return descriptors.WpkhDescriptor(parse_key(inner_str[5:-1]))

    return parse_miniscript(inner_str)


def descriptor_from_str(desc_str, strict=False):
    """Parse a Bitcoin Output Script Descriptor from its string representation.

    :param strict: whether to require the presence of a checksum.
    """
    desc_str = split_checksum(desc_str, strict=strict)

    if desc_str.startswith("wsh(") and desc_str.endswith(")"):
        ms = parse_miniscript(desc_str[4:-1])
        return descriptors.WshDescriptor(ms)

    if desc_str.startswith("wpkh(") and desc_str.endswith(")"):
        pubkey = parse_key(desc_str[5:-1])
        return descriptors.WpkhDescriptor(pubkey)

    if desc_str.startswith("pkh(") and desc_str.endswith(")"):
        pubkey = parse_key(desc_str[4:-1])
        return descriptors.PkhDescriptor(pubkey)

    if desc_str.startswith("sh(") and desc_str.endswith(")"):
        return descriptors.ShDescriptor(parse_sh_inner(desc_str[3:-1]))

    if desc_str.startswith("tr(") and desc_str.endswith(")"):
        # First parse the key expression
        comma_index = desc_str.find(",")
        if comma_index == -1:
            pubkey = parse_key(desc_str[3:-1])
        else:
            pubkey = parse_key(desc_str[3:comma_index])

        # Then the tree expression if it exists.
        tree = None
        if comma_index != -1:
            tree = parse_tree_exp(desc_str[comma_index + 1 : -1])

        return descriptors.TrDescriptor(pubkey, tree)

    # Anything else must be a bare Script.
    try:
        ms = Node.from_str(desc_str)
    except MiniscriptMalformed:
        raise DescriptorParsingError(f"Unknown descriptor fragment: {desc_str}")
    return descriptors.BareDescriptor(ms)
