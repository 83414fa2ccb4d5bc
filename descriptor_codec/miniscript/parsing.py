"""
Utilities to parse Miniscript from its string representation.
"""

from ..key import DescriptorKeyError
from .errors import MiniscriptMalformed, MiniscriptNodeCreationError
from .fragments import (
    Just0,
    Just1,
    Pk,
    Pkh,
    Older,
    After,
    Sha256,
    Hash256,
    Ripemd160,
    Hash160,
    Multi,
    SortedMulti,
    MultiA,
    SortedMultiA,
    AndV,
    AndB,
    AndN,
    AndOr,
    OrB,
    OrC,
    OrD,
    OrI,
    Thresh,
    Wrapped,
    WRAPPERS,
)

HASHES = {
    "sha256": Sha256,
    "hash256": Hash256,
    "ripemd160": Ripemd160,
    "hash160": Hash160,
}

MULTIS = {
    "multi": Multi,
    "sortedmulti": SortedMulti,
    "multi_a": MultiA,
    "sortedmulti_a": SortedMultiA,
}

CONNECTIVES = {
    "and_v": (AndV, 2),
    "and_b": (AndB, 2),
    "and_n": (AndN, 2),
    "andor": (AndOr, 3),
    "or_b": (OrB, 2),
    "or_c": (OrC, 2),
    "or_d": (OrD, 2),
    "or_i": (OrI, 2),
}


def parse_int(string):
    if not string.isdigit():
        raise MiniscriptMalformed(f"Invalid integer: '{string}'")
    return int(string)


def split_params(string):
    """Read a list of values before the next ')'. Split the result by comma."""
    i = string.find(")")
    if i < 0:
        raise MiniscriptMalformed(f"Missing closing parenthesis: '{string}'")

    return string[:i].split(","), string[i + 1 :]


def parse_many(string):
    """Read a list of nodes before the next ')'."""
    subs = []
    remaining = string
    while True:
        sub, remaining = parse_one(remaining)
        subs.append(sub)
        if len(remaining) == 0:
            raise MiniscriptMalformed("Missing closing parenthesis")
        if remaining[0] == ")":
            return subs, remaining[1:]
        if remaining[0] != ",":
            raise MiniscriptMalformed(f"Unexpected character: '{remaining[0]}'")
        remaining = remaining[1:]


def parse_one_num(string):
    """Read an integer before the next comma."""
    i = string.find(",")
    if i < 0:
        raise MiniscriptMalformed(f"Missing separator after integer: '{string}'")

    return parse_int(string[:i]), string[i + 1 :]


def parse_terminal(tag, params):
    if tag not in MULTIS and len(params) != 1:
        raise MiniscriptMalformed(f"{tag}() takes 1 argument, got {len(params)}")

    if tag == "pk":
        return Wrapped("c", Pk(params[0]))

    if tag == "pk_k":
        return Pk(params[0])

    if tag == "pkh":
        return Wrapped("c", Pkh(params[0]))

    if tag == "pk_h":
        return Pkh(params[0])

    if tag == "older":
        return Older(parse_int(params[0]))

    if tag == "after":
        return After(parse_int(params[0]))

    if tag in HASHES:
        return HASHES[tag](params[0])

    assert tag in MULTIS
    if len(params) < 2:
        raise MiniscriptMalformed(f"Missing keys in {tag}()")
    return MULTIS[tag](parse_int(params[0]), params[1:])


def parse_one(string):
    """Read a node and its subs recursively from a string.
    Returns the node and the part of the string not consumed.
    """
    if len(string) == 0:
        raise MiniscriptMalformed("Empty Miniscript expression")

    # We special case Just1 and Just0 since they are the only one which don't
    # have a function syntax.
    if string[0] == "0":
        return Just0(), string[1:]
    if string[0] == "1":
        return Just1(), string[1:]

    # Now, find the separator for all functions.
    for i, char in enumerate(string):
        if char in ["(", ":"]:
            break
    else:
        raise MiniscriptMalformed(f"Unknown Miniscript fragment: '{string}'")
    tag, remaining = string[:i], string[i + 1 :]

    # Wrappers, we may have many of them.
    if char == ":":
        if len(tag) == 0 or any(c not in WRAPPERS for c in tag):
            raise MiniscriptMalformed(f"Unknown wrapper(s): '{tag}'")
        sub, remaining = parse_one(remaining)
        return Wrapped(tag, sub), remaining

    try:
        # Terminal elements other than 0 and 1
        if tag in ["pk", "pkh", "pk_k", "pk_h", "older", "after", *HASHES, *MULTIS]:
            params, remaining = split_params(remaining)
            return parse_terminal(tag, params), remaining

        # Non-terminal elements (connectives)
        # We special case Thresh, as its first sub is an integer.
        if tag == "thresh":
            k, remaining = parse_one_num(remaining)
            subs, remaining = parse_many(remaining)
            return Thresh(k, subs), remaining

        if tag in CONNECTIVES:
            node_class, n_subs = CONNECTIVES[tag]
            subs, remaining = parse_many(remaining)
            if len(subs) != n_subs:
                raise MiniscriptMalformed(f"{tag}() takes {n_subs} subs, got {len(subs)}")
            return node_class(*subs), remaining
    except (DescriptorKeyError, MiniscriptNodeCreationError) as e:
        raise MiniscriptMalformed(f"Error parsing {tag}(): {e.message}")

    raise MiniscriptMalformed(f"Unknown Miniscript fragment: '{tag}'")


def miniscript_from_str(ms_str):
    """Construct miniscript node from string representation"""
    node, remaining = parse_one(ms_str)
    if remaining != "":
        raise MiniscriptMalformed(f"Trailing characters: '{remaining}'")
    return node
