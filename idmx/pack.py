"""The module provides functions to pack and unpack proofs, issuance
messages and verifiable encryptions, together with the Bn values they carry.

Example:
    >>> proof = Proof(Bn(7), {"passport:vHat": Bn(-12)})
    >>> assert decode(encode([proof, Bn(5)])) == [proof, Bn(5)]

"""

import msgpack

from petlib.bn import Bn

from .issuance import Message
from .showproof import Proof
from .ve import VerifiableEncryption
from .utils import IdmxError, bn_abs

import pytest

__all__ = ["encode", "decode", "register_coders"]

_pack_reg = {}
_unpack_reg = {}


def register_coders(cls, num, enc_func, dec_func):
    """ Register a new type for encoding and decoding.
    Take a class type, a number, an encoding and a decoding function."""

    if num in _unpack_reg or cls in _pack_reg:
        raise IdmxError("Class or number already in use.")

    coders = (cls, num, enc_func, dec_func)
    _pack_reg[cls] = coders
    _unpack_reg[num] = coders


def bn_enc(obj):
    """Sign byte followed by the big-endian magnitude."""
    return (b"-" if obj < 0 else b"+") + bn_abs(obj).binary()


def bn_dec(data):
    num = Bn.from_binary(data[1:])
    return -num if data[:1] == b"-" else num


def ve_enc(obj):
    return encode(obj.as_list())


def ve_dec(data):
    return VerifiableEncryption(*decode(data))


def proof_enc(obj):
    return encode([obj.challenge, obj.s_values, obj.common, obj.ver_encs])


def proof_dec(data):
    return Proof(*decode(data))


def message_enc(obj):
    return encode([obj.elements, obj.proof])


def message_dec(data):
    elements, proof = decode(data)
    return Message(elements, proof)


def _init_coders():
    global _pack_reg, _unpack_reg
    _pack_reg, _unpack_reg = {}, {}
    register_coders(Bn, 0, bn_enc, bn_dec)
    register_coders(VerifiableEncryption, 1, ve_enc, ve_dec)
    register_coders(Proof, 2, proof_enc, proof_dec)
    register_coders(Message, 3, message_enc, message_dec)


# Register default coders
_init_coders()


def default(obj):
    for T, (_, num, enc, _) in _pack_reg.items():
        if isinstance(obj, T):
            return msgpack.ExtType(num, enc(obj))
    raise TypeError("Unknown type: %r" % (type(obj),))


def ext_hook(code, data):
    if code in _unpack_reg:
        return _unpack_reg[code][3](data)
    return msgpack.ExtType(code, data)


def encode(structure, custom_encoder=None):
    """Packs a structure holding idmx objects. custom_encoder is tried for
    types without a registered coder."""

    def encoder(obj):
        try:
            return default(obj)
        except TypeError:
            if custom_encoder is None:
                raise
            return custom_encoder(obj)

    return msgpack.packb(structure, default=encoder, use_bin_type=True)


def decode(packed_data, custom_decoder=None):
    """Unpacks bytes produced by encode. custom_decoder receives extension
    types without a registered coder."""

    def decoder(code, data):
        out = ext_hook(code, data)
        if custom_decoder is not None and isinstance(out, msgpack.ExtType):
            return custom_decoder(code, data)
        return out

    return msgpack.unpackb(packed_data, ext_hook=decoder, raw=False,
                           strict_map_key=False)


# --- TESTS ---


def test_bn():
    test_data = [Bn(1), Bn(2), -Bn(1), -Bn(2), Bn(0)]
    packed = msgpack.packb(test_data, default=default, use_bin_type=True)
    x = msgpack.unpackb(packed, ext_hook=ext_hook, raw=False)
    assert x == test_data


def test_proof():
    proof = Proof(Bn(12345), {"passport:vHat": -Bn(99), "age": Bn(3)},
                  {"passport": Bn(17)})
    x = decode(encode([proof, u"spam"]))
    assert x == [proof, u"spam"]


def test_message():
    proof = Proof(Bn(5), {"s_e": Bn(8)})
    msg = Message({Message.CAPA: Bn(2), Message.E: Bn(3),
                   Message.DOMAIN: u"example.org"}, proof)
    assert decode(encode(msg)) == msg
    assert decode(encode(Message({Message.NONCE: Bn(1)}))) == \
        Message({Message.NONCE: Bn(1)})


def test_verifiable_encryption():
    ve = VerifiableEncryption(Bn(10), Bn(11), Bn(12), Bn(13), Bn(14))
    x = decode(encode(ve))
    assert x.as_list() == ve.as_list()


def test_enc_dec_custom():

    class CustomClass:
        def __eq__(self, other):
            return isinstance(other, CustomClass)

    def enc_CustomClass(obj):
        if isinstance(obj, CustomClass):
            return msgpack.ExtType(11, b'')
        raise TypeError("Unknown type: %r" % (obj,))

    def dec_CustomClass(code, data):
        if code == 11:
            return CustomClass()

        return msgpack.ExtType(code, data)

    test_data = [Bn(3), Proof(Bn(1), {}), CustomClass()]
    packed = encode(test_data, enc_CustomClass)
    x = decode(packed, dec_CustomClass)
    assert x == test_data


def test_register_twice():
    with pytest.raises(IdmxError) as excinfo:
        register_coders(Bn, 20, bn_enc, bn_dec)
    assert 'already in use' in str(excinfo.value)


def test_unknown_ext_type():
    packed = msgpack.packb([msgpack.ExtType(42, b"x"), Bn(1)], default=default,
                           use_bin_type=True)
    assert decode(packed) == [msgpack.ExtType(42, b"x"), Bn(1)]

    with pytest.raises(TypeError) as excinfo:
        encode([object()])
    assert 'Unknown type' in str(excinfo.value)
