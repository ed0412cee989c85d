"""Camenisch-Shoup verifiable encryption.

A ciphertext (u, e, v) under a label L encrypts m as

    u = g^r, e = y1^r h^m, v = abs((y2 y3^H(u, e, L))^r)   (mod n^2)

where abs() folds a value into [0, n^2 / 2]. Decryption checks v before
recovering m, and returns None for any ciphertext that fails a check.

Example:
    >>> kp = generate_ve_keypair(SystemParameters.testing())
    >>> c = encrypt(kp.public_key, Bn(42), kp.public_key.random(), "label")
    >>> decrypt(kp.private_key, c)
    42
"""

import logging

from petlib.bn import Bn

from .keys import generate_ve_keypair
from .params import SystemParameters
from .utils import ParameterError, expo, multi_exp, hash_of, hash_string, \
    to_bn, TWO, ONE

import pytest

log = logging.getLogger(__name__)


def label_value(sp, label):
    """Labels are strings (hashed) or integers."""
    if label is None:
        return Bn(0)
    if isinstance(label, str):
        return hash_string(sp.l_H, label)
    return to_bn(label)


def abs_n2(a, n2):
    """Canonical representative of +-a in [0, n^2 / 2]."""
    a = a % n2
    if a > n2 // TWO:
        return n2 - a
    return a


class VerifiableEncryption(object):
    """Ciphertext (u, e, v) with its label value L and the hash H(u, e, L)."""

    def __init__(self, u, e, v, label, hash_value):
        self.u = u
        self.e = e
        self.v = v
        self.label = label
        self.hash = hash_value

    def as_list(self):
        return [self.u, self.e, self.v, self.label, self.hash]

    def __eq__(self, other):
        return isinstance(other, VerifiableEncryption) and \
            self.as_list() == other.as_list()

    def __ne__(self, other):
        return not self.__eq__(other)


def ciphertext_hash(sp, u, e, label):
    return hash_of(sp.l_H, [u, e, label])


def encrypt(pk, m, r, label=None):
    """Encrypts 0 < m < n with randomness r in [0, n/4)."""
    sp = pk.sp
    m = to_bn(m)
    r = to_bn(r)
    if not (0 < m < pk.n):
        raise ParameterError("Message must lie in (0, n).")
    if not (0 <= r < pk.n // Bn(4)):
        raise ParameterError("Randomness must lie in [0, n/4).")

    L = label_value(sp, label)
    n2 = pk.n2
    u = pk.g.mod_pow(r, n2)
    e = multi_exp([(pk.y1, r), (pk.h, m)], n2)
    h = ciphertext_hash(sp, u, e, L)
    v = abs_n2(pk.y2.mod_mul(pk.y3.mod_pow(h, n2), n2).mod_pow(r, n2), n2)
    return VerifiableEncryption(u, e, v, L, h)


def decrypt(sk, ve):
    """Returns the plaintext, or None if the ciphertext is not valid."""
    sp = sk.sp
    n = sk.n
    n2 = sk.n2

    if ve.v != abs_n2(ve.v, n2):
        log.warning("Ciphertext v is not in canonical form.")
        return None

    h = ciphertext_hash(sp, ve.u, ve.e, ve.label)
    lhs = expo(ve.u, TWO * (sk.x2 + h * sk.x3), n2)
    if lhs != ve.v.mod_mul(ve.v, n2):
        log.warning("Ciphertext fails the validity check.")
        return None

    t = TWO * TWO.mod_inverse(n)
    m_hat = ve.e.mod_mul(expo(ve.u, sk.x1, n2).mod_inverse(n2), n2)
    m_hat = m_hat.mod_pow(t, n2)
    if m_hat % n != ONE:
        log.warning("Ciphertext does not decrypt to a valid message.")
        return None
    return ((m_hat - 1) // n) % n


class VerifiableEncryptionOpening(object):
    """Prover-side secrets of a verifiable encryption: the message, the
    randomness and the label, with the ciphertext they produce."""

    def __init__(self, pk, m, label=None, r=None):
        self.pk = pk
        self.m = to_bn(m)
        self.r = r if r is not None else pk.random()
        self.label = label
        self.encryption = encrypt(pk, self.m, self.r, label)


# --- TESTS ---


@pytest.fixture(scope="module")
def ve_keys():
    return generate_ve_keypair(SystemParameters.testing())


def test_round_trip(ve_keys):
    pk, sk = ve_keys.public_key, ve_keys.private_key
    for m in [Bn(1), Bn(42), pk.n - 1]:
        c = encrypt(pk, m, pk.random(), "escrow")
        assert decrypt(sk, c) == m
    c = encrypt(pk, Bn(7), pk.random(), Bn(99))
    assert decrypt(sk, c) == 7
    assert decrypt(sk, encrypt(pk, Bn(9), Bn(0))) == 9


def test_bad_inputs(ve_keys):
    pk = ve_keys.public_key
    with pytest.raises(Exception) as excinfo:
        encrypt(pk, pk.n, pk.random())
    assert 'Message' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        encrypt(pk, Bn(0), pk.random())
    assert 'Message' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        encrypt(pk, Bn(5), pk.n)
    assert 'Randomness' in str(excinfo.value)


def test_tampering(ve_keys):
    pk, sk = ve_keys.public_key, ve_keys.private_key
    c = encrypt(pk, Bn(1234), pk.random(), "escrow")

    bad = VerifiableEncryption(c.u, c.e.mod_mul(pk.h, pk.n2), c.v, c.label,
                               c.hash)
    assert decrypt(sk, bad) is None

    bad = VerifiableEncryption(c.u.mod_mul(pk.g, pk.n2), c.e, c.v, c.label,
                               c.hash)
    assert decrypt(sk, bad) is None

    bad = VerifiableEncryption(c.u, c.e, pk.n2 - c.v, c.label, c.hash)
    assert decrypt(sk, bad) is None

    bad = VerifiableEncryption(c.u, c.e, c.v, c.label + 1, c.hash)
    assert decrypt(sk, bad) is None


def test_opening(ve_keys):
    pk, sk = ve_keys.public_key, ve_keys.private_key
    opening = VerifiableEncryptionOpening(pk, 77, "label")
    assert decrypt(sk, opening.encryption) == 77
    assert opening.encryption == encrypt(pk, Bn(77), opening.r, "label")
