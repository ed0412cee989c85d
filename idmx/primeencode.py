"""Proofs over prime-encoded attributes.

An ENUM attribute holding a set of values is the product m of their primes.
With m_r the product of the asserted primes:

    AND   m_r divides m
    NOT   no asserted prime divides m
    OR    at least one asserted prime divides m

All three work on commitments Z^x S^r under the issuer key of the
credential the attribute comes from, and link m to the credential through
the identifier's shared randomness.
"""

import logging

from petlib.bn import Bn

from .params import SystemParameters
from .predicates import PrimeEncodePredicate, Identifier
from .structure import AttributeStructure, IssuanceMode, DataType
from .utils import SchemaError, DELIMITER, expo, multi_exp, random_below, \
    random_symmetric, compute_response, extended_euclid, gcd, ONE

import pytest

log = logging.getLogger(__name__)


def check_primes(sp, pred, att):
    """Asserted primes must belong to the attribute's table and fit in l_t
    bits. Returns l_t."""
    l_t = att.l_t(sp)
    table = set(att.prime_factors.values())
    for prime in pred.constants:
        if prime not in table:
            raise SchemaError("Prime %s is not part of the encoding of %s."
                              % (prime, att.name))
        if prime.num_bits() > l_t:
            raise SchemaError("Prime %s exceeds %d bits." % (prime, l_t))
    return l_t


def find_divisor(m, constants):
    """First asserted prime that divides m, or None."""
    for prime in constants:
        if m % prime == 0:
            return prime
    return None


def _sname(pred, label):
    return pred.name + DELIMITER + label


def _bits(sp):
    """Tilde lengths shared by the three operators."""
    return dict(
        m=sp.l_m + sp.l_Phi + sp.l_H,
        r=sp.l_n + 2 * sp.l_Phi + sp.l_H,
        r_long=sp.l_n + sp.l_m + 2 * sp.l_Phi + sp.l_H)


class AndState(object):
    __slots__ = ("commons", "tvalues", "pred", "m_h", "m_h_tilde", "r",
                 "r_tilde")

    def __init__(self, pred, C, tvalues, m_h, m_h_tilde, r, r_tilde):
        self.pred = pred
        self.commons = [(pred.name, C)]
        self.tvalues = tvalues
        self.m_h = m_h
        self.m_h_tilde = m_h_tilde
        self.r = r
        self.r_tilde = r_tilde

    def respond(self, c):
        return {
            _sname(self.pred, "mHat_h"): compute_response(self.m_h_tilde, c,
                                                          self.m_h),
            _sname(self.pred, "rHat"): compute_response(self.r_tilde, c,
                                                        self.r),
        }


class NotState(object):
    __slots__ = ("commons", "tvalues", "pred", "a", "a_tilde", "b", "b_tilde",
                 "r", "r_tilde", "r_prime", "r_prime_tilde")

    def __init__(self, pred, C, tvalues, a, a_tilde, b, b_tilde, r, r_tilde,
                 r_prime, r_prime_tilde):
        self.pred = pred
        self.commons = [(pred.name, C)]
        self.tvalues = tvalues
        self.a = a
        self.a_tilde = a_tilde
        self.b = b
        self.b_tilde = b_tilde
        self.r = r
        self.r_tilde = r_tilde
        self.r_prime = r_prime
        self.r_prime_tilde = r_prime_tilde

    def respond(self, c):
        return {
            _sname(self.pred, "aHat"): compute_response(self.a_tilde, c,
                                                        self.a),
            _sname(self.pred, "bHat"): compute_response(self.b_tilde, c,
                                                        self.b),
            _sname(self.pred, "rHat"): compute_response(self.r_tilde, c,
                                                        self.r),
            _sname(self.pred, "rHatPrime"): compute_response(
                self.r_prime_tilde, c, self.r_prime),
        }


class OrState(object):
    __slots__ = ("commons", "tvalues", "pred", "secrets", "tildes")

    LABELS = ("mHat_i", "alphaHat", "betaHat", "rHat0", "rHat1", "rHat2")

    def __init__(self, pred, D, tvalues, secrets, tildes):
        self.pred = pred
        self.commons = [(pred.name, D)]
        self.tvalues = tvalues
        self.secrets = secrets
        self.tildes = tildes

    def respond(self, c):
        return dict((_sname(self.pred, label),
                     compute_response(self.tildes[i], c, self.secrets[i]))
                    for i, label in enumerate(OrState.LABELS))


def commit(prover, pred):
    """First move of a prime encoding proof."""
    sp = prover.sp
    cl_pred, att = prover.spec.enum_attribute(pred.identifier)
    pk = prover.store.get(cl_pred.issuer_pk_id)
    l_t = check_primes(sp, pred, att)
    n_i = len(pred.constants)
    n, Z, S = pk.n, pk.Z, pk.S
    bits = _bits(sp)

    m = prover.value(pred.identifier)
    m_tilde = prover.tilde(pred.identifier)
    m_r = pred.m_r

    if pred.operator == PrimeEncodePredicate.AND:
        if m % m_r != 0:
            raise SchemaError("Predicate does not hold: %s is not divisible "
                              "by %s." % (pred.identifier.name, m_r))
        m_h = m // m_r
        r = random_below(n // Bn(4))
        C = multi_exp([(Z, m), (S, r)], n)
        m_h_tilde = random_symmetric(sp.l_m - n_i * l_t + sp.l_Phi + sp.l_H)
        r_tilde = random_symmetric(bits["r"])
        C_tilde = multi_exp([(expo(Z, m_r, n), m_h_tilde), (S, r_tilde)], n)
        C0_tilde = multi_exp([(Z, m_tilde), (S, r_tilde)], n)
        return AndState(pred, C, [C_tilde, C0_tilde], m_h, m_h_tilde, r,
                        r_tilde)

    if pred.operator == PrimeEncodePredicate.NOT:
        if gcd(m, m_r) != ONE:
            raise SchemaError("Predicate does not hold: %s shares a factor "
                              "with %s." % (pred.identifier.name, m_r))
        a, b = extended_euclid(m, m_r)
        r = random_below(n // Bn(4))
        C = multi_exp([(Z, m), (S, r)], n)
        r_prime = -(r * a)
        a_tilde = random_symmetric(n_i * l_t + sp.l_Phi + sp.l_H)
        b_tilde = random_symmetric(bits["m"])
        r_tilde = random_symmetric(bits["r"])
        r_prime_tilde = random_symmetric(bits["r"] + n_i * l_t)
        C_tilde = multi_exp([(C, a_tilde), (expo(Z, m_r, n), b_tilde),
                             (S, r_prime_tilde)], n)
        Cc_tilde = multi_exp([(Z, m_tilde), (S, r_tilde)], n)
        return NotState(pred, C, [C_tilde, Cc_tilde], a, a_tilde, b, b_tilde,
                        r, r_tilde, r_prime, r_prime_tilde)

    m_i = find_divisor(m, pred.constants)
    if m_i is None:
        raise SchemaError("Predicate does not hold: none of %s divides %s."
                          % (pred.constants, pred.identifier.name))
    alpha = m_r // m_i
    beta = -(m // m_i)
    r_0 = random_below(n // Bn(4))
    r_1 = -(r_0 * alpha)
    r_2 = -(r_0 * beta)
    D = multi_exp([(Z, m_i), (S, r_0)], n)

    tildes = [random_symmetric(bits["m"]) for _ in range(3)] + \
        [random_symmetric(bits["r"]),
         random_symmetric(bits["r_long"]),
         random_symmetric(bits["r_long"])]
    m_i_t, alpha_t, beta_t, r_0_t, r_1_t, r_2_t = tildes
    T1 = multi_exp([(Z, m_i_t), (S, r_0_t)], n)
    T2 = multi_exp([(D, alpha_t), (S, r_1_t)], n)
    T3 = multi_exp([(D, beta_t), (Z, m_tilde), (S, r_2_t)], n)
    return OrState(pred, D, [T1, T2, T3],
                   [m_i, alpha, beta, r_0, r_1, r_2], tildes)


def verify(verifier, pred):
    """Recomputes the t-values of a prime encoding proof. Returns the common
    values and the t-hat values."""
    sp = verifier.sp
    cl_pred, att = verifier.spec.enum_attribute(pred.identifier)
    pk = verifier.store.get(cl_pred.issuer_pk_id)
    l_t = check_primes(sp, pred, att)
    n_i = len(pred.constants)
    n, Z, S = pk.n, pk.Z, pk.S
    bits = _bits(sp)
    neg_c = -verifier.challenge

    C = verifier.common(pred.name, n)
    m_hat = verifier.ident_hat(pred.identifier)
    Z_mr = expo(Z, pred.m_r, n)

    if pred.operator == PrimeEncodePredicate.AND:
        m_h_hat = verifier.s_value(_sname(pred, "mHat_h"),
                                   sp.l_m - n_i * l_t + sp.l_Phi + sp.l_H + 1)
        r_hat = verifier.s_value(_sname(pred, "rHat"), bits["r"] + 1)
        C_inv_c = expo(C, neg_c, n)
        C_hat = multi_exp([(Z_mr, m_h_hat), (S, r_hat)], n, C_inv_c)
        C0_hat = multi_exp([(Z, m_hat), (S, r_hat)], n, C_inv_c)
        return [C], [C_hat, C0_hat]

    if pred.operator == PrimeEncodePredicate.NOT:
        a_hat = verifier.s_value(_sname(pred, "aHat"),
                                 n_i * l_t + sp.l_Phi + sp.l_H + 1)
        b_hat = verifier.s_value(_sname(pred, "bHat"), bits["m"] + 1)
        r_hat = verifier.s_value(_sname(pred, "rHat"), bits["r"] + 1)
        r_prime_hat = verifier.s_value(_sname(pred, "rHatPrime"))
        C_hat = multi_exp([(C, a_hat), (Z_mr, b_hat), (S, r_prime_hat)], n,
                          expo(Z, neg_c, n))
        Cc_hat = multi_exp([(Z, m_hat), (S, r_hat)], n, expo(C, neg_c, n))
        return [C], [C_hat, Cc_hat]

    D = C
    m_i_hat, alpha_hat, beta_hat = [
        verifier.s_value(_sname(pred, label), bits["m"] + 1)
        for label in OrState.LABELS[:3]]
    r_0_hat, r_1_hat, r_2_hat = [verifier.s_value(_sname(pred, label))
                                 for label in OrState.LABELS[3:]]
    T1_hat = multi_exp([(Z, m_i_hat), (S, r_0_hat)], n, expo(D, neg_c, n))
    T2_hat = multi_exp([(D, alpha_hat), (S, r_1_hat)], n,
                       expo(Z_mr, neg_c, n))
    T3_hat = multi_exp([(D, beta_hat), (Z, m_hat), (S, r_2_hat)], n)
    return [D], [T1_hat, T2_hat, T3_hat]


# --- TESTS ---


def test_find_divisor():
    primes = [Bn(2), Bn(3), Bn(5)]
    assert find_divisor(Bn(6), primes) == 2
    assert find_divisor(Bn(35), primes) == 5
    assert find_divisor(Bn(7), primes) is None


def test_not_coefficients():
    m, m_r = Bn(3 * 7), Bn(2 * 5)
    a, b = extended_euclid(m, m_r)
    assert a * m + b * m_r == 1
    assert abs(int(a)) <= int(m_r) and abs(int(b)) <= int(m)


def test_check_primes():
    sp = SystemParameters.testing()
    role = AttributeStructure("role", 1, IssuanceMode.KNOWN, DataType.ENUM)
    role.set_prime_factors({"admin": 2, "user": 3, "guest": 5})
    ident = Identifier("role", DataType.ENUM)

    pred = PrimeEncodePredicate("pe", ident, [2, 3], PrimeEncodePredicate.AND)
    assert check_primes(sp, pred, role) == sp.l_m // 3

    pred = PrimeEncodePredicate("pe", ident, [7], PrimeEncodePredicate.OR)
    with pytest.raises(Exception) as excinfo:
        check_primes(sp, pred, role)
    assert 'not part of the encoding' in str(excinfo.value)
