"""Range proofs: first {<, <=, >, >=} second.

The gap between the two arguments is a non-negative integer Delta, written
as a sum of four squares u_1^2 + ... + u_4^2 (Lagrange). The prover commits
to each u_i and to Delta under the issuer key, and shows that the
commitment to Delta is the product of the commitments to u_i raised to u_i.
"""

import logging
from math import isqrt

from petlib.bn import Bn

from .predicates import InequalityPredicate
from .utils import SchemaError, DELIMITER, to_bn, expo, multi_exp, \
    random_bits, random_symmetric, compute_response, ONE

import pytest

log = logging.getLogger(__name__)

BRUTE_FORCE_LIMIT = 4096


def _random_below(k):
    return int(to_bn(k).random())


def _two_squares_of_prime(p):
    """Writes a prime p = 1 mod 4 as a sum of two squares."""
    c = 2
    while pow(c, (p - 1) // 2, p) != p - 1:
        c += 1
    t = pow(c, (p - 1) // 4, p)
    a, b = p, t
    limit = isqrt(p)
    while b > limit:
        a, b = b, a % b
    x = b
    y = isqrt(p - x * x)
    if x * x + y * y == p:
        return x, y
    return None


def _brute_force(n):
    for a in range(isqrt(n) + 1):
        ra = n - a * a
        for b in range(a, isqrt(ra) + 1):
            rb = ra - b * b
            for c in range(b, isqrt(rb) + 1):
                rc = rb - c * c
                d = isqrt(rc)
                if d * d == rc:
                    return [a, b, c, d]
    raise SchemaError("No four squares found for %d." % n)


def four_squares(delta):
    """Returns four Bn whose squares sum to delta >= 0."""
    target = int(delta)
    if target < 0:
        raise SchemaError("Negative values are not sums of squares.")
    if target == 0:
        return [to_bn(0)] * 4

    n, k = target, 0
    while n % 4 == 0:
        n //= 4
        k += 1

    if n < BRUTE_FORCE_LIMIT:
        squares = _brute_force(n)
    else:
        # x^2 + y^2 = n - 1 mod 4 so that the remainder p = 1 mod 4
        parity = {0: (0, 0), 1: (1, 0), 2: (1, 1)}[(n - 1) % 4]
        while True:
            x = _random_below(isqrt(n) + 1)
            y = _random_below(isqrt(n - x * x) + 1)
            if (x % 2, y % 2) != parity:
                continue
            p = n - x * x - y * y
            if p in (0, 1, 2):
                squares = [x, y, int(p > 0), int(p == 2)]
                break
            if p % 4 != 1 or not to_bn(p).is_prime():
                continue
            ab = _two_squares_of_prime(p)
            if ab is not None:
                squares = [x, y, ab[0], ab[1]]
                break

    squares = [s * 2 ** k for s in squares]
    assert sum(s * s for s in squares) == target
    return [to_bn(s) for s in squares]


def offsets(operator, bound):
    """Returns (a, Delta') such that m = a * Delta + Delta' for the gap
    Delta >= 0 that holds iff the relation holds."""
    if operator == InequalityPredicate.GEQ:
        return ONE, bound
    if operator == InequalityPredicate.GT:
        return ONE, bound + 1
    if operator == InequalityPredicate.LEQ:
        return -ONE, bound
    if operator == InequalityPredicate.LT:
        return -ONE, bound - 1
    raise SchemaError("Inequality operator not implemented: %s" % operator)


def gap(operator, m, bound):
    a, delta_prime = offsets(operator, bound)
    return a, (m - delta_prime) * a, delta_prime


def _sname(pred, label):
    return pred.name + DELIMITER + label


class InequalityState(object):
    __slots__ = ("commons", "tvalues", "pred", "secrets", "tildes")

    def __init__(self, pred, commons, tvalues, secrets, tildes):
        self.pred = pred
        self.commons = commons
        self.tvalues = tvalues
        self.secrets = secrets
        self.tildes = tildes

    def respond(self, c):
        return dict((_sname(self.pred, label),
                     compute_response(self.tildes[label], c,
                                      self.secrets[label]))
                    for label in self.secrets)


def _bound(party, pred):
    if pred.second_id is None:
        return pred.second
    return party.value(pred.second_id)


def commit(prover, pred):
    """First move of a range proof."""
    sp = prover.sp
    pk = prover.store.get(pred.issuer_pk_id)
    n, Z, S = pk.n, pk.Z, pk.S

    m = prover.value(pred.first)
    a, delta, _ = gap(pred.operator, m, _bound(prover, pred))
    if delta < 0:
        raise SchemaError("Predicate does not hold: %s %s %s is false."
                          % (pred.first.name, pred.operator,
                             _bound(prover, pred)))
    u = four_squares(delta)
    log.debug("Inequality %s: gap of %d bits.", pred.name, delta.num_bits())

    r = [random_bits(sp.l_n + sp.l_Phi) for _ in range(4)]
    r_delta = random_bits(sp.l_n + sp.l_Phi)
    T = [multi_exp([(Z, u[i]), (S, r[i])], n) for i in range(4)]
    T_delta = multi_exp([(Z, delta), (S, r_delta)], n)
    alpha = r_delta - sum((u[i] * r[i] for i in range(4)), to_bn(0))

    secrets, tildes = {}, {}
    for i in range(4):
        secrets["uHat%d" % i] = u[i]
        tildes["uHat%d" % i] = random_symmetric(sp.l_m + sp.l_Phi + sp.l_H)
        secrets["rHat%d" % i] = r[i]
        tildes["rHat%d" % i] = random_symmetric(sp.l_n + 2 * sp.l_Phi + sp.l_H)
    secrets["rHatDelta"] = r_delta
    tildes["rHatDelta"] = random_symmetric(sp.l_n + 2 * sp.l_Phi + sp.l_H)
    secrets["alphaHat"] = alpha
    tildes["alphaHat"] = random_symmetric(sp.l_n + sp.l_m + 2 * sp.l_Phi +
                                          sp.l_H + 3)

    t = [multi_exp([(Z, tildes["uHat%d" % i]), (S, tildes["rHat%d" % i])], n)
         for i in range(4)]
    t_delta = multi_exp([(Z, prover.tilde(pred.first)),
                         (expo(S, a, n), tildes["rHatDelta"])], n)
    Q = multi_exp([(T[i], tildes["uHat%d" % i]) for i in range(4)] +
                  [(S, tildes["alphaHat"])], n)

    commons = [(_sname(pred, str(i)), T[i]) for i in range(4)]
    commons.append((_sname(pred, "4"), T_delta))
    return InequalityState(pred, commons, t + [t_delta, Q], secrets, tildes)


def verify(verifier, pred):
    """Recomputes the t-values of a range proof. Returns the common values
    and the t-hat values."""
    sp = verifier.sp
    pk = verifier.store.get(pred.issuer_pk_id)
    n, Z, S = pk.n, pk.Z, pk.S
    neg_c = -verifier.challenge

    T = [verifier.common(_sname(pred, str(i)), n) for i in range(4)]
    T_delta = verifier.common(_sname(pred, "4"), n)
    a, delta_prime = offsets(pred.operator, _bound(verifier, pred))

    u_hat = [verifier.s_value(_sname(pred, "uHat%d" % i),
                              sp.l_m + sp.l_Phi + sp.l_H + 1)
             for i in range(4)]
    r_hat = [verifier.s_value(_sname(pred, "rHat%d" % i)) for i in range(4)]
    r_delta_hat = verifier.s_value(_sname(pred, "rHatDelta"))
    alpha_hat = verifier.s_value(_sname(pred, "alphaHat"))
    m_hat = verifier.ident_hat(pred.first)

    t_hat = [multi_exp([(Z, u_hat[i]), (S, r_hat[i])], n,
                       expo(T[i], neg_c, n)) for i in range(4)]
    base = expo(T_delta, a, n).mod_mul(expo(Z, delta_prime, n), n)
    t_delta_hat = multi_exp([(Z, m_hat), (expo(S, a, n), r_delta_hat)], n,
                            expo(base, neg_c, n))
    Q_hat = multi_exp([(T[i], u_hat[i]) for i in range(4)] +
                      [(S, alpha_hat)], n, expo(T_delta, neg_c, n))
    return T + [T_delta], t_hat + [t_delta_hat, Q_hat]


# --- TESTS ---


def test_four_squares_small():
    for delta in [0, 1, 2, 3, 7, 15, 16, 64, 96, 4095, 12345]:
        u = four_squares(Bn(delta))
        assert sum(int(x) ** 2 for x in u) == delta


def test_four_squares_large():
    for _ in range(5):
        delta = to_bn(2 ** 200).random() + to_bn(2 ** 12)
        u = four_squares(delta)
        assert sum((x * x for x in u), Bn(0)) == delta

    with pytest.raises(Exception) as excinfo:
        four_squares(Bn(-1))
    assert 'Negative' in str(excinfo.value)


def test_gap():
    m = Bn(30)
    for op, bound, holds in [(">=", 30, True), (">", 30, False),
                             ("<=", 30, True), ("<", 30, False),
                             (">=", 18, True), ("<", 18, False),
                             ("<", 31, True), (">", 29, True)]:
        a, delta, delta_prime = gap(op, m, Bn(bound))
        assert (delta >= 0) == holds
        assert a * delta + delta_prime == m
