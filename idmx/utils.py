"""Number-theoretic helpers shared by the credential engine.

All protocol values are petlib ``Bn`` big numbers. The helpers here cover
signed modular exponentiation, interval checks, sampling of the various
random values used in the proofs, and the Fiat-Shamir hash.

Example:
    >>> n = Bn(23)
    >>> expo(Bn(5), Bn(-1), n) == Bn(5).mod_inverse(n)
    True
"""

import logging
from hashlib import sha256
from math import gcd as _int_gcd

from petlib.bn import Bn

import pytest

log = logging.getLogger(__name__)

DELIMITER = ":"

ZERO = Bn(0)
ONE = Bn(1)
TWO = Bn(2)


class IdmxError(Exception):
    """Base class of all errors raised by the engine."""


class ParameterError(IdmxError):
    """Bad system parameters, key sizes or encryption inputs."""


class SchemaError(IdmxError):
    """Values or predicates that do not fit the declared structure."""


class ProtocolError(IdmxError):
    """Issuance ran out of order or a counterpart's proof failed."""


class VerificationError(IdmxError):
    """A predicate of a show proof failed an equation or a bound check."""


def to_bn(x):
    """Coerce a Python integer (of any size) or a Bn into a Bn."""
    if isinstance(x, Bn):
        return x
    return Bn.from_decimal(str(x))


def pow2(bits):
    """Returns 2^bits as a Bn."""
    return TWO ** bits


def log_bn(x):
    """Short form of a big number for the debug log."""
    if x is None:
        return "None"
    s = repr(x)
    if len(s) > 20:
        return "%s...%s (%d bits)" % (s[:8], s[-8:], x.num_bits())
    return s


def bn_abs(x):
    return -x if x < 0 else x


def expo(base, exponent, modulus):
    """Computes base^exponent mod modulus, inverting for negative exponents."""
    base = base % modulus
    if exponent < 0:
        return base.mod_inverse(modulus).mod_pow(-exponent, modulus)
    return base.mod_pow(exponent, modulus)


def multi_exp(pairs, modulus, start=None):
    """Returns start * prod(base^exp) mod modulus for (base, exp) in pairs."""
    acc = ONE if start is None else start % modulus
    for base, exponent in pairs:
        acc = acc.mod_mul(expo(base, exponent, modulus), modulus)
    return acc


def product(values):
    acc = ONE
    for v in values:
        acc = acc * v
    return acc


def gcd(a, b):
    return to_bn(_int_gcd(int(a), int(b)))


def in_interval(x, bits):
    """True iff -(2^bits - 1) <= x <= 2^bits - 1."""
    bound = pow2(bits) - 1
    return -bound <= x <= bound


def is_unit(x, modulus):
    """True iff x is a Bn in [1, modulus) with an inverse mod modulus."""
    if not isinstance(x, Bn) or not ONE <= x < modulus:
        return False
    return gcd(x, modulus) == ONE


def extended_euclid(a, b):
    """Bezout coefficients: returns (x, y) with a*x + b*y = gcd(a, b).

    Both inputs must be positive."""
    assert a > 0 and b > 0
    old_r, r = a, b
    old_x, x = ONE, ZERO
    old_y, y = ZERO, ONE
    while r != 0:
        q, rem = divmod(old_r, r)
        old_r, r = r, rem
        old_x, x = x, old_x - q * x
        old_y, y = y, old_y - q * y
    return old_x, old_y


# -- Randomness

def random_bits(bits):
    """Uniform value in [0, 2^bits)."""
    return pow2(bits).random()


def random_symmetric(bits):
    """Uniform magnitude in [0, 2^bits) with a random sign."""
    r = random_bits(bits)
    if TWO.random() == 1:
        return -r
    return r


def random_below(upper, l_phi=0):
    """Value in [0, upper), statistically close to uniform.

    Extra l_phi bits are drawn and reduced, as required where upper is
    secret and its bit pattern must not leak through rejection sampling."""
    if l_phi == 0:
        return upper.random()
    return random_bits(upper.num_bits() + l_phi) % upper


def random_in_range(lower, upper):
    """Uniform value in [lower, upper]."""
    assert lower <= upper
    return lower + (upper - lower + 1).random()


# -- Hashing

def hash_encode(elements):
    """Packages a list of numbers and strings in a bijective way."""
    elem = [len(elements)] + list(elements)
    elem_str = [e if isinstance(e, str) else repr(e) for e in elem]
    elem_len = ["%s||%s" % (len(x), x) for x in elem_str]
    return "|".join(elem_len).encode("utf8")


def hash_of(l_h, elements):
    """Hashes a list of numbers into a positive Bn of at most l_h bits."""
    assert l_h <= 256
    digest = sha256(hash_encode(elements)).digest()
    h = Bn.from_binary(digest)
    if l_h < 256:
        h = h % pow2(l_h)
    return h


def hash_string(l_h, text):
    """Encodes a string as an integer attribute value."""
    assert l_h <= 256
    digest = sha256(text.encode("utf8")).digest()
    h = Bn.from_binary(digest)
    if l_h < 256:
        h = h % pow2(l_h)
    return h


def compute_challenge(sp, context, values, nonce, messages=None):
    """Fiat-Shamir challenge over the context, the ordered list of common
    values and t-values, the verifier's nonce and any signed messages."""
    elements = [context] + list(values) + [nonce]
    if messages:
        for name in sorted(messages):
            elements.append(messages[name].hash(sp.l_H))
    return hash_of(sp.l_H, elements)


def compute_response(tilde, challenge, secret):
    """s-value of a Schnorr-type response: tilde + c * secret."""
    return tilde + challenge * secret


# -- CL signature helpers

def choose_e(sp):
    """Picks a prime e in [2^(l_e - 1), 2^(l_e - 1) + 2^(l'_e - 1)]."""
    base = pow2(sp.l_e - 1)
    while True:
        e = base + random_bits(sp.l_prime_e - 1)
        if e.is_prime():
            return e


def is_valid_e(sp, e):
    lower = pow2(sp.l_e - 1)
    upper = lower + pow2(sp.l_prime_e - 1)
    return lower <= e <= upper and e.is_prime()


def qr_generator(n):
    """A random quadratic residue mod n that generates QR_n."""
    while True:
        r = n.random()
        qr = r.mod_mul(r, n)
        if qr == 1 or qr == 0:
            continue
        if gcd(n, qr - 1) == 1:
            return qr


# --- TESTS ---


def test_expo_negative():
    n = Bn(1019)
    x = Bn(17)
    assert expo(x, Bn(-3), n).mod_mul(expo(x, Bn(3), n), n) == 1
    assert expo(x, Bn(0), n) == 1
    assert expo(Bn(-2), Bn(3), n) == Bn(1011)


def test_multi_exp():
    n = Bn(1019)
    v = multi_exp([(Bn(2), Bn(10)), (Bn(3), Bn(-1))], n)
    assert v == Bn(1024).mod_mul(Bn(3).mod_inverse(n), n)
    assert multi_exp([], n, Bn(5)) == 5


def test_interval():
    assert in_interval(Bn(255), 8)
    assert in_interval(Bn(-255), 8)
    assert not in_interval(Bn(256), 8)
    assert not in_interval(Bn(-256), 8)


def test_is_unit():
    n = Bn(35)
    assert is_unit(Bn(2), n)
    assert not is_unit(Bn(0), n)
    assert not is_unit(Bn(7), n)
    assert not is_unit(Bn(35), n)
    assert not is_unit(-Bn(2), n)
    assert not is_unit(2, n)


def test_euclid():
    for a, b in [(6, 35), (240, 46), (1, 7)]:
        x, y = extended_euclid(Bn(a), Bn(b))
        assert Bn(a) * x + Bn(b) * y == gcd(Bn(a), Bn(b))


def test_random():
    for _ in range(20):
        r = random_symmetric(16)
        assert in_interval(r, 16)
        assert Bn(0) <= random_below(Bn(1000), 80) < Bn(1000)
        assert Bn(5) <= random_in_range(Bn(5), Bn(8)) <= Bn(8)


def test_hash():
    a = hash_of(256, [Bn(1), Bn(2)])
    assert a == hash_of(256, [Bn(1), Bn(2)])
    assert a != hash_of(256, [Bn(12)])
    assert hash_of(80, [a]).num_bits() <= 80
    assert hash_string(256, "admin") != hash_string(256, "user")

    with pytest.raises(AssertionError):
        hash_of(512, [a])


def test_to_bn():
    big = 2 ** 300 + 7
    assert int(to_bn(big)) == big
    assert to_bn(-5) == Bn(-5)
    x = Bn(9)
    assert to_bn(x) is x
