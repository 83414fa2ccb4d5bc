"""
Command line tool to encode and decode Bitcoin descriptors.
"""

import argparse
import logging
import sys

from . import decode, encode
from .decoder import MAX_RECURSION_DEPTH
from .descriptors import DescriptorParsingError
from .errors import CodecError

log = logging.getLogger(__name__)


def handle_encode(args):
    try:
        data = encode(args.descriptor)
    except (DescriptorParsingError, CodecError) as e:
        raise SystemExit(f"Failed to parse descriptor string: {e.message}")
    log.debug("Encoded descriptor into %d bytes", len(data))
    print(data.hex())


def handle_decode(args):
    try:
        data = bytes.fromhex(args.data)
    except ValueError:
        raise SystemExit("Failed to decode hex data")
    try:
        desc = decode(data, max_depth=args.max_depth)
    except CodecError as e:
        raise SystemExit(f"Unable to decode: {e.message}")
    print(desc)


def main(argv=None):
    ap = argparse.ArgumentParser(
        prog="descriptor-codec",
        description="Encode and decode Bitcoin descriptors.",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="log debug information")
    subparsers = ap.add_subparsers(dest="command", required=True)

    encode_ap = subparsers.add_parser("encode", help="encode a descriptor, output hex")
    encode_ap.add_argument("descriptor", help="the descriptor string to encode")
    encode_ap.set_defaults(func=handle_encode)

    decode_ap = subparsers.add_parser("decode", help="decode a hex-encoded descriptor")
    decode_ap.add_argument("data", help="hex-encoded descriptor data")
    decode_ap.add_argument(
        "--max-depth",
        type=int,
        default=MAX_RECURSION_DEPTH,
        help="maximum nesting of the decoded descriptor",
    )
    decode_ap.set_defaults(func=handle_decode)

    args = ap.parse_args(argv)
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
