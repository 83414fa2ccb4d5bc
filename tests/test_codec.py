import coincurve
import pytest

from bip32 import BIP32
from descriptor_codec import (
    decode,
    decode_template,
    decode_with_payload,
    decoder,
    encode,
    encoder,
)
from descriptor_codec.descriptors import Descriptor
from descriptor_codec.dummy import dummy_public_key, dummy_secret_key
from descriptor_codec.errors import (
    CodecError,
    InvalidKeyMaterial,
    MalformedTemplate,
    MalformedVarint,
    RecursionLimitExceeded,
    TrailingPayload,
    TrailingTemplate,
    TruncatedPayload,
    TruncatedTemplate,
    TruncatedVarint,
    UnexpectedTag,
    UnknownTag,
    VarintOverflow,
)
from descriptor_codec.key import DescriptorKey, WifKey
from descriptor_codec.tag import Tag
from descriptor_codec.varint import encode_varint

WIF_ONE = "KwDiBf89QgGbjEhKnhXJuH7LrciVrZi3qYjgd9M7rFU73sVHnoWn"
XPUB = "xpub661MyMwAqRbcGC7awXn2f36qPMLE2x42cQM5qHrSRg3Q8X7qbDEG1aKS4XAA1PcWTZn7c4Y2WJKCvcivjpZBXTo8fpCRrxtmNKW4H1rpACa"
TPUB = "tpubDBrgjcxBxnXyL575sHdkpKohWu5qHKoQ7TJXKNrYznh5fVEGBv89hA8ENW7A8MFVpFUSvgLqc4Nj1WZcpePX6rrxviVtPowvMuGF5rdT2Vi"
XPRV_MASTER = BIP32.from_seed(bytes(32)).get_xpriv()
XPRV_CHILD = BIP32.from_seed(bytes(32)).get_xpriv_from_path("m/48'/0'/0'/2'")
TPRV_MASTER = BIP32.from_seed(bytes(32), network="test").get_xpriv()
TPUB_MASTER = BIP32.from_seed(bytes(32), network="test").get_xpub()


def dummy_pk(index):
    return dummy_public_key(index).bytes().hex()


def dummy_uncompressed_pk(index):
    privkey = coincurve.PrivateKey(dummy_secret_key(index))
    return privkey.public_key.format(compressed=False).hex()


def dummy_xonly_pk(index):
    return dummy_pk(index)[2:]


def split(desc_str):
    """Get the template and the payload of a descriptor."""
    public, key_map = Descriptor.from_str(desc_str).to_public()
    return encoder.encode(public, key_map)


def roundtrip(desc_str):
    """Encode and decode a descriptor, checking the result is the same descriptor."""
    data = encode(desc_str)
    assert str(decode(data)) == str(Descriptor.from_str(desc_str))
    return data


def tags(*kinds):
    return bytes(int(kind) for kind in kinds)


K1, K2, K3, K4 = dummy_pk(1), dummy_pk(2), dummy_pk(3), dummy_pk(4)
X1, X2, X3 = dummy_xonly_pk(5), dummy_xonly_pk(6), dummy_xonly_pk(7)
H32 = "ab" * 32
H20 = "cd" * 20

PUBLIC_DESCRIPTORS = [
    # Single keys, all script types.
    f"pk({K1})",
    f"pkh({K1})",
    f"pkh({dummy_uncompressed_pk(1)})",
    f"wpkh({K1})",
    f"sh(wpkh({K1}))",
    f"sh(pk({dummy_uncompressed_pk(2)}))",
    f"tr({X1})",
    f"tr({K1})",
    # Multisigs.
    f"multi(1,{K1},{K2})",
    f"sh(multi(2,{K1},{K2},{K3}))",
    f"sh(wsh(sortedmulti(2,{K3},{K1},{K2})))",
    f"wsh(multi(3,{K1},{K2},{K3}))",
    f"tr({X1},multi_a(1,{X2},{X3}))",
    f"tr({X1},sortedmulti_a(2,{X3},{X2}))",
    # Every Miniscript fragment.
    "wsh(0)",
    "wsh(1)",
    f"wsh(pk_k({K1}))",
    f"wsh(pk_h({K1}))",
    "wsh(older(1))",
    "wsh(older(4294967295))",
    "wsh(after(0))",
    f"wsh(sha256({H32}))",
    f"wsh(hash256({H32}))",
    f"wsh(ripemd160({H20}))",
    f"wsh(hash160({H20}))",
    f"wsh(and_v(v:pk({K1}),older(144)))",
    f"wsh(and_b(pk({K1}),s:pk({K2})))",
    f"wsh(and_n(pk({K1}),older(1)))",
    f"wsh(andor(pk({K1}),older(2),pk({K2})))",
    f"wsh(or_b(pk({K1}),a:pk({K2})))",
    f"wsh(or_c(pk({K1}),v:older(3)))",
    f"wsh(or_d(pk({K1}),and_v(v:pkh({K2}),older(144))))",
    f"wsh(or_i(pk({K1}),pk({K2})))",
    f"wsh(thresh(2,pk({K1}),s:pk({K2}),sdv:older(12960)))",
    f"wsh(t:or_c(pk({K1}),v:pk({K2})))",
    f"wsh(or_i(l:pk({K1}),u:pk({K2})))",
    f"wsh(andor(j:pk({K1}),n:pk({K2}),c:pk_k({K3})))",
    f"sh(and_v(v:pk({K1}),sha256({H32})))",
    # Taproot trees, the order of the leaves is preserved.
    f"tr({X1},pk({X2}))",
    f"tr({X1},{{pk({X2}),pk({X3})}})",
    f"tr({X1},{{pk({X3}),pk({X2})}})",
    f"tr({X1},{{{{pk({X2}),and_v(v:pk({X3}),after(10))}},multi_a(1,{X2},{X3})}})",
    # Origins and extended keys.
    f"wpkh([deadbeef]{K1})",
    f"wpkh([deadbeef/84'/0'/0']{K1})",
    f"wpkh({XPUB})",
    f"wpkh({XPUB}/0/*)",
    f"wpkh({XPUB}/*')",
    f"wpkh({XPUB}/1'/2)",
    f"pkh([aabbccdd/44'/1'/0']{TPUB}/1/*)",
    f"tr({TPUB}/0/*,pk({TPUB}/1/*))",
    f"wsh(multi(1,{XPUB}/<0;1>/*,{TPUB}/2/<0;1>/*))",
    f"wsh(pk([abcdef00/0'/1']{TPUB}/9478'/<0';1';420>/8'/*'))",
    f"wsh(pk({TPUB}/2/<0;1;9854>/3456/9876))",
]


def test_vectors():
    """Byte-exact encodings."""
    assert encode(f"wpkh({K1})") == tags(Tag.WPKH, Tag.COMPRESSED_KEY) + bytes.fromhex(K1)
    assert encode("wsh(older(144))") == bytes.fromhex("040b9001")
    assert encode("sh(0)") == tags(Tag.SH, Tag.FALSE)

    template, payload = split(f"wpkh([deadbeef/84'/0'/0']{K1})")
    assert template == bytes.fromhex("0228" "03" "a901" "01" "01" "29")
    assert payload == bytes.fromhex("deadbeef") + bytes.fromhex(K1)

    template, payload = split(f"tr({X1},{{pk({X2}),older(1)}})")
    assert template == tags(
        Tag.TR,
        Tag.XONLY_KEY,
        1,
        Tag.TAP_BRANCH,
        Tag.CHECK,
        Tag.PK_K,
        Tag.XONLY_KEY,
        Tag.OLDER,
        1,
    )
    assert payload == bytes.fromhex(X1 + X2)
    assert split(f"tr({X1})")[0] == tags(Tag.TR, Tag.XONLY_KEY, 0)

    xpub = BIP32.from_xpub(XPUB)
    template, payload = split(f"wpkh({XPUB}/0/*)")
    # Network, depth, path length, path, wildcard.
    assert template == tags(Tag.WPKH, Tag.XPUB) + bytes([0, 0, 1, 0, 1])
    assert payload == xpub.chaincode + xpub.pubkey
    assert split(f"wpkh({XPUB})")[0] == tags(Tag.WPKH, Tag.XPUB) + bytes([0, 0, 0, 0])

    # Number of paths, their length, the position of the diverging step, the
    # shared steps, then the diverging step of each path.
    tpub = BIP32.from_xpub(TPUB_MASTER)
    template, payload = split(f"wsh(pk({TPUB_MASTER}/2/<0;1;42>/*))")
    assert template == tags(Tag.WSH, Tag.CHECK, Tag.PK_K, Tag.MULTI_XPUB) + bytes(
        [1, 0, 3, 2, 1, 4, 0, 2, 84, 1]
    )
    assert payload == tpub.chaincode + tpub.pubkey


def test_public_roundtrip():
    for desc_str in PUBLIC_DESCRIPTORS:
        roundtrip(desc_str)
        # A Descriptor may be passed as well as its string.
        assert encode(Descriptor.from_str(desc_str)) == encode(desc_str)
        # A trailing checksum does not change the encoding.
        desc = Descriptor.from_str(desc_str)
        assert encode(str(desc)) == encode(desc_str)


def test_non_master_xpubs():
    master = BIP32.from_seed(bytes(32))
    for path in ["m/0", "m/84'/0'/0'", "m/48'/1'/0'/2'/7"]:
        xpub = master.get_xpub_from_path(path)
        template, payload = split(f"wpkh({xpub}/0/*)")
        xkey = BIP32.from_xpub(xpub)
        # The depth and child number are in the template, the parent fingerprint
        # in the payload.
        assert template[2:4] == bytes([0, xkey.depth])
        assert payload == xkey.parent_fingerprint + xkey.chaincode + xkey.pubkey
        roundtrip(f"wpkh({xpub}/0/*)")
        roundtrip(f"wsh(multi(1,{xpub}/<0;1>/*,{K1}))")

    # Extended keys with a path as long as a hex-encoded uncompressed key.
    roundtrip(f"wpkh({XPUB}/10/1/2/3/4/5/6/7/*)")
    roundtrip(f"wsh(multi(1,{TPUB}/2/4/<0;1>/96/123/*))")


def test_hardened_notation():
    """Both hardened notations are accepted, only one is restored."""
    data = roundtrip(f"wpkh([aabbccdd/84h/0h/0H]{XPUB}/1h/*h)")
    assert str(decode(data)) == str(
        Descriptor.from_str(f"wpkh([aabbccdd/84'/0'/0']{XPUB}/1'/*')")
    )


def test_corpus_wpkh():
    desc_str = "wpkh(02f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9)"
    data = roundtrip(desc_str)
    assert data == bytes.fromhex(
        "0229" "02f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9"
    )


def test_corpus_sortedmulti():
    keys = [
        "03a0434d9e47f3c86235477c7b1ae6ae5d3442d49b1943c2b752a68e2a47e247c7",
        "036d2b085e9e382ed10b69fc311a03f8641ccfff21574de0927513a49d9a688a00",
        "02e8445082a72f29b75ca48748a914df60622a609cacfce8ed0e35804560741d29",
    ]
    desc_str = f"wsh(sortedmulti(2,{','.join(keys)}))"
    data = roundtrip(desc_str)

    template, payload = split(desc_str)
    assert template == tags(
        Tag.WSH, Tag.SORTED_MULTI, 2, 3, *[Tag.COMPRESSED_KEY] * 3
    )
    # The keys are not sorted, they are kept in order.
    assert payload == bytes.fromhex("".join(keys))
    assert data == template + payload
    assert len(data) < len(desc_str) / 2


def test_corpus_thresh():
    desc_str = (
        f"wsh(thresh(4,pk({K1}),s:pk({K2}),s:pk({K3}),s:pk({K4}),"
        "sln:after(840000),sln:after(1050000),sln:after(1260000)))"
    )
    roundtrip(desc_str)

    template, payload = split(desc_str)
    assert template.startswith(
        tags(Tag.WSH, Tag.THRESH, 4, 7, Tag.CHECK, Tag.PK_K, Tag.COMPRESSED_KEY)
    )
    assert tags(Tag.SWAP, Tag.CHECK, Tag.PK_K, Tag.COMPRESSED_KEY) in template
    for timelock in [840000, 1050000, 1260000]:
        wrapped_after = tags(Tag.SWAP, Tag.WRAP_L, Tag.ZERO_NOT_EQUAL, Tag.AFTER)
        assert wrapped_after + encode_varint(timelock) in template
    assert payload == bytes.fromhex(K1 + K2 + K3 + K4)


def test_corpus_master_xprv():
    desc_str = f"wpkh({XPRV_MASTER}/0/*)"
    data = roundtrip(desc_str)
    assert str(decode(data)) == str(Descriptor.from_str(desc_str))

    xprv = BIP32.from_xpriv(XPRV_MASTER)
    template, payload = split(desc_str)
    assert template == tags(Tag.WPKH, Tag.XPRV) + bytes([0, 0, 1, 0, 1])
    # The secret goes to the payload, never to the template.
    assert payload == xprv.chaincode + xprv.privkey
    assert xprv.privkey not in template
    assert decode_template(data).secret_count == 1


def test_secret_roundtrip():
    uncompressed_wif = WifKey((1).to_bytes(32, "big"), compressed=False)
    secret_descs = [
        f"wpkh({WIF_ONE})",
        f"pkh({uncompressed_wif})",
        f"tr({WIF_ONE})",
        f"wpkh([deadbeef/84'/0'/0']{XPRV_CHILD}/0/*)",
        f"wpkh({XPRV_MASTER})",
        f"sh(wsh(multi(1,{TPRV_MASTER}/0/*,{TPUB}/0/*)))",
        f"wsh(multi(1,{WIF_ONE},{WIF_ONE}))",
        f"wsh(thresh(1,pk({XPRV_CHILD}/<0;1>/*),s:pk({XPUB}/<2;3>/*)))",
        f"tr({XPRV_MASTER}/<0;1>/*,{{pk({TPRV_MASTER}/<7;8>/*'),pk({WIF_ONE})}})",
    ]
    for desc_str in secret_descs:
        desc = Descriptor.from_str(desc_str)
        assert desc.is_private()
        roundtrip(desc_str)

        # Decoding yields the same public descriptor and key map as the encoder had.
        public, key_map = desc.to_public()
        template, payload = encoder.encode(public, key_map)
        decoded, decoded_key_map = decode_with_payload(template, payload)
        assert decoded == public
        assert decoded_key_map == key_map
        assert not decoded.is_private()
        assert decode_template(template).secret_count == len(
            [k for k in desc.keys if k.is_private()]
        )


def test_multipath_xprv_dummy():
    desc_str = f"wsh(multi(1,{WIF_ONE},{XPRV_CHILD}/<0;1>/*,{XPRV_MASTER}/<0;1>/*))"
    template, payload = split(desc_str)
    assert template.count(int(Tag.MULTI_XPRV)) >= 2
    assert int(Tag.WIF_COMPRESSED) in template

    public, key_map = decoder.decode(template + payload)
    # Multipath xprvs are replaced by the dummy key of their secret key index.
    assert public.keys[1] == dummy_public_key(1)
    assert public.keys[2] == dummy_public_key(2)
    assert key_map[dummy_public_key(1)] == DescriptorKey(f"{XPRV_CHILD}/<0;1>/*")
    assert key_map[dummy_public_key(2)] == DescriptorKey(f"{XPRV_MASTER}/<0;1>/*")
    assert public.to_string(key_map) == str(Descriptor.from_str(desc_str))


def test_caller_key_map():
    """A public key mapped to a secret key is encoded as the secret key."""
    public = Descriptor.from_str(f"wsh(multi(1,{DescriptorKey(WIF_ONE).bytes().hex()},{K1}))")
    key_map = {public.keys[0]: DescriptorKey(WIF_ONE)}
    template, payload = encoder.encode(public, key_map)
    assert tags(Tag.WIF_COMPRESSED) in template
    assert encoder.encode(public)[0] != template

    decoded, decoded_key_map = decode_with_payload(template, payload)
    assert decoded == public and decoded_key_map == key_map


def test_split_determinism():
    for desc_str in PUBLIC_DESCRIPTORS + [f"wpkh({XPRV_CHILD}/0/*)"]:
        template, payload = split(desc_str)
        assert split(desc_str) == (template, payload)

        tmpl = decode_template(template + payload)
        assert tmpl.length == len(template)
        assert tmpl.payload_length == len(payload)
        assert encode(desc_str) == template + payload


def test_truncation():
    desc_strs = [
        f"wpkh({K1})",
        "wsh(older(144))",
        f"wsh(thresh(2,pk({K1}),s:pk({K2}),sln:after(840000)))",
        f"wsh(multi(1,[aabbccdd/48'/0']{XPUB}/<0;1>/*,{TPUB}/2/<0;1>/*))",
        f"tr({X1},{{pk({X2}),{{pk({X3}),sha256({H32})}}}})",
        f"wpkh({XPRV_CHILD}/0/*)",
    ]
    for desc_str in desc_strs:
        data = encode(desc_str)
        for i in range(len(data)):
            with pytest.raises((TruncatedTemplate, TruncatedVarint, TruncatedPayload)):
                decode(data[:i])

        template, payload = split(desc_str)
        if len(payload) > 0:
            with pytest.raises(TruncatedPayload):
                decode_with_payload(template, payload[:-1])


def test_trailing_data():
    template, payload = split(f"wpkh({K1})")
    with pytest.raises(TrailingPayload):
        decode(template + payload + b"\x00")
    with pytest.raises(TrailingPayload):
        decode_with_payload(template, payload + b"\x00")
    with pytest.raises(TrailingTemplate):
        decode_with_payload(template + tags(Tag.FALSE), payload)
    with pytest.raises(TrailingPayload):
        decode(encode("wsh(1)") + b"\x01")


def test_template_errors():
    # Unregistered tags.
    for data in [b"\x7f", b"\x32", tags(Tag.WSH) + b"\xff\x01"]:
        with pytest.raises(UnknownTag):
            decode(data)

    # Registered tags in the wrong place.
    for data in [
        tags(Tag.PK_K),
        tags(Tag.TAP_BRANCH),
        tags(Tag.WSH, Tag.WPKH),
        tags(Tag.WSH, Tag.COMPRESSED_KEY),
        tags(Tag.SH, Tag.TR),
        tags(Tag.SH, Tag.SH),
        tags(Tag.WPKH, Tag.FALSE),
        tags(Tag.WPKH, Tag.ORIGIN) + b"\x00" + tags(Tag.ORIGIN),
        tags(Tag.WSH, Tag.AND_V, Tag.TRUE, Tag.TAP_BRANCH),
    ]:
        with pytest.raises(UnexpectedTag):
            decode(data)

    # Out of range structural values.
    for data in [
        tags(Tag.TR, Tag.XONLY_KEY, 2),
        tags(Tag.WPKH, Tag.WIF_COMPRESSED, 2),
        tags(Tag.WPKH, Tag.XPUB, 0) + encode_varint(256),
        tags(Tag.WPKH, Tag.XPUB) + bytes([0, 0, 0, 3]),
        tags(Tag.WPKH, Tag.MULTI_XPUB) + bytes([0, 0, 1, 1, 0]),
        tags(Tag.WPKH, Tag.MULTI_XPUB) + bytes([0, 0, 2, 1, 1]),
        tags(Tag.WPKH, Tag.MULTI_XPUB) + bytes([0, 0, 2, 0, 0]),
        tags(Tag.WSH, Tag.THRESH, 0, 0),
        tags(Tag.WSH, Tag.THRESH, 0, 1, Tag.TRUE),
        tags(Tag.WSH, Tag.THRESH, 2, 1, Tag.TRUE),
        tags(Tag.WSH, Tag.MULTI, 2, 1, Tag.COMPRESSED_KEY),
        tags(Tag.WSH, Tag.MULTI_A, 1, 0),
        tags(Tag.TR, Tag.XONLY_KEY, 0, 1, Tag.SORTED_MULTI_A, 0, 0),
    ]:
        with pytest.raises(MalformedTemplate):
            decode(data)

    with pytest.raises(MalformedVarint):
        decode(tags(Tag.WSH, Tag.OLDER) + b"\x80\x00")
    with pytest.raises(VarintOverflow):
        decode(tags(Tag.WSH, Tag.OLDER) + b"\xff\xff\xff\xff\x10")

    # Every error is a CodecError, and a ValueError.
    with pytest.raises(CodecError):
        decode(b"")
    with pytest.raises(ValueError, match="Unknown tag"):
        decode(b"\x7f")


def test_invalid_key_material():
    not_on_curve = b"\x02" + b"\xff" * 32
    chaincode = bytes(32)
    for data in [
        tags(Tag.WPKH, Tag.COMPRESSED_KEY) + not_on_curve,
        tags(Tag.PKH, Tag.UNCOMPRESSED_KEY) + b"\x04" + b"\xff" * 64,
        tags(Tag.TR, Tag.XONLY_KEY, 0) + b"\xff" * 32,
        tags(Tag.WPKH, Tag.WIF_COMPRESSED, 0) + bytes(32),
        tags(Tag.WPKH, Tag.WIF_UNCOMPRESSED, 1) + b"\xff" * 32,
        tags(Tag.WPKH, Tag.XPUB) + bytes([0, 0, 0, 0]) + chaincode + not_on_curve,
        tags(Tag.WPKH, Tag.XPRV) + bytes([0, 0, 0, 0]) + chaincode + bytes(32),
    ]:
        with pytest.raises(InvalidKeyMaterial):
            decode(data)


def test_recursion_limit():
    # A chain of 'v' wrappers around a '1'.
    def nested(n_wrappers):
        return tags(Tag.WSH) + tags(Tag.VERIFY) * n_wrappers + tags(Tag.TRUE)

    desc = decode(nested(decoder.MAX_RECURSION_DEPTH - 1))
    assert str(desc).startswith("wsh(" + "v" * (decoder.MAX_RECURSION_DEPTH - 1) + ":1)")
    with pytest.raises(RecursionLimitExceeded):
        decode(nested(decoder.MAX_RECURSION_DEPTH))
    with pytest.raises(RecursionLimitExceeded):
        decode_template(nested(10_000))

    # The limit is configurable, and applies to taproot trees too.
    data = encode(f"wsh(and_v(v:pk({K1}),older(1)))")
    decode(data, max_depth=4)
    with pytest.raises(RecursionLimitExceeded):
        decode(data, max_depth=3)

    data = encode(f"tr({X1},{{pk({X2}),{{pk({X3}),older(1)}}}})")
    decode(data, max_depth=5)
    with pytest.raises(RecursionLimitExceeded):
        decode(data, max_depth=4)


def test_deepest_descriptor_renders():
    # A chain of and_v(1,and_v(1,...)) as deep as the decoder accepts.
    def chain(n_and_v):
        return tags(Tag.WSH) + tags(Tag.AND_V, Tag.TRUE) * n_and_v + tags(Tag.TRUE)

    max_chain = decoder.MAX_RECURSION_DEPTH - 1
    data = chain(max_chain)
    desc_str = str(decode(data))
    assert desc_str.startswith("wsh(" + "and_v(1," * max_chain + "1" + ")" * max_chain + ")#")
    # The rendered descriptor parses back to the same encoding.
    assert encode(desc_str) == data
    assert str(Descriptor.from_str(desc_str)) == desc_str
    with pytest.raises(RecursionLimitExceeded):
        decode(chain(max_chain + 1))
