"""System parameters (bit lengths) and the commitment group Gamma.

Example:
    >>> sp = SystemParameters.testing()
    >>> gp = GroupParameters.generate(sp)
    >>> gp.g.mod_pow(gp.rho, gp.Gamma) == 1
    True
"""

import logging

from petlib.bn import Bn

from .utils import ParameterError, pow2, random_bits, random_below, log_bn, \
    hash_of, multi_exp, ONE

import pytest

log = logging.getLogger(__name__)


class SystemParameters(object):
    """Immutable bundle of the bit lengths every bound check depends on.

    Names follow the Idemix conventions: l_n modulus size, l_m attribute
    size, l_e and l_prime_e the CL exponent sizes, l_v the signature
    randomness, l_Phi statistical zero-knowledge, l_H hash output, l_k
    security parameter, l_r reduction loss, l_Gamma and l_rho the
    commitment group, l_res reserved attribute slots, l_pt primality
    certainty and l_enc the verifiable encryption security parameter."""

    FIELDS = ["l_n", "l_Gamma", "l_rho", "l_m", "l_res", "l_e", "l_prime_e",
              "l_v", "l_Phi", "l_k", "l_H", "l_r", "l_pt", "l_enc"]

    def __init__(self, l_n=2048, l_Gamma=1632, l_rho=256, l_m=256, l_res=1,
                 l_e=597, l_prime_e=120, l_v=2724, l_Phi=80, l_k=160,
                 l_H=256, l_r=80, l_pt=80, l_enc=160):
        self.l_n = l_n
        self.l_Gamma = l_Gamma
        self.l_rho = l_rho
        self.l_m = l_m
        self.l_res = l_res
        self.l_e = l_e
        self.l_prime_e = l_prime_e
        self.l_v = l_v
        self.l_Phi = l_Phi
        self.l_k = l_k
        self.l_H = l_H
        self.l_r = l_r
        self.l_pt = l_pt
        self.l_enc = l_enc
        self.check()

    @staticmethod
    def default():
        """The standard Idemix sizes with a 2048 bit modulus."""
        return SystemParameters()

    @staticmethod
    def testing():
        """Reduced moduli that keep every constraint but make key
        generation fast enough for unit tests."""
        return SystemParameters(l_n=512, l_Gamma=512, l_rho=160, l_v=1200)

    def check(self):
        """Raises a ParameterError if the lengths violate a constraint."""
        if not self.l_e > self.l_Phi + self.l_H + max(self.l_m + 4,
                                                      self.l_prime_e + 2):
            raise ParameterError("Constraint on l_e violated.")
        if not self.l_v > self.l_n + self.l_Phi + self.l_H + max(
                self.l_m + self.l_r + 3, self.l_Phi + 2):
            raise ParameterError("Constraint on l_v violated.")
        if not self.l_H >= self.l_k:
            raise ParameterError("Constraint on l_H violated (l_H < l_k).")
        if not self.l_H < self.l_e:
            raise ParameterError("Constraint on l_H violated (l_H >= l_e).")
        if not self.l_prime_e < self.l_e - self.l_Phi - self.l_H - 3:
            raise ParameterError("Constraint on l_prime_e violated.")
        if not self.l_rho <= self.l_m:
            raise ParameterError("Constraint on l_rho violated.")
        if self.l_H > 256:
            raise ParameterError("Hash length is limited to 256 bits.")
        if self.l_rho >= self.l_Gamma:
            raise ParameterError("Constraint on l_Gamma violated.")

    def as_list(self):
        return [getattr(self, f) for f in self.FIELDS]

    def __eq__(self, other):
        return isinstance(other, SystemParameters) and \
            self.as_list() == other.as_list()

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(tuple(self.as_list()))

    def __repr__(self):
        return "SystemParameters(%s)" % ", ".join(
            "%s=%d" % (f, getattr(self, f)) for f in self.FIELDS)


class GroupParameters(object):
    """Prime-order subgroup of Z*_Gamma used for pseudonyms: Gamma = rho * b + 1,
    with generators g and h of order rho."""

    def __init__(self, sp, Gamma, rho, g, h):
        self.sp = sp
        self.Gamma = Gamma
        self.rho = rho
        self.g = g
        self.h = h

    @staticmethod
    def generate(sp):
        rho = Bn.get_prime(sp.l_rho, safe=0)
        b_bits = sp.l_Gamma - sp.l_rho
        top = pow2(b_bits - 1)
        while True:
            b = top + random_bits(b_bits - 1)
            if b.is_odd():
                b = b + 1
            if (b % rho) == 0:
                continue
            Gamma = rho * b + 1
            if Gamma.num_bits() == sp.l_Gamma and Gamma.is_prime():
                break

        while True:
            g = random_below(Gamma).mod_pow(b, Gamma)
            if g != ONE and g != 0:
                break

        while True:
            h = g.mod_pow(random_below(rho), Gamma)
            if h != ONE:
                break

        log.debug("Gamma: %s, rho: %s", log_bn(Gamma), log_bn(rho))
        return GroupParameters(sp, Gamma, rho, g, h)

    def context_list(self):
        return [self.g, self.h, self.rho, self.Gamma]

    def commitment(self, m, r):
        """Pedersen commitment g^m h^r mod Gamma."""
        return multi_exp([(self.g, m), (self.h, r)], self.Gamma)

    def context(self):
        return hash_of(self.sp.l_H, self.context_list())

    def __eq__(self, other):
        return isinstance(other, GroupParameters) and \
            self.sp == other.sp and \
            self.context_list() == other.context_list()

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(tuple(self.context_list()))


# --- TESTS ---


def test_default_params():
    sp = SystemParameters.default()
    assert sp.l_n == 2048
    assert SystemParameters.testing().l_n == 512
    assert sp == SystemParameters()
    assert sp != SystemParameters.testing()


def test_bad_params():
    with pytest.raises(Exception) as excinfo:
        SystemParameters(l_e=400)
    assert 'l_e' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        SystemParameters(l_v=1000)
    assert 'l_v' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        SystemParameters(l_rho=300)
    assert 'l_rho' in str(excinfo.value)


def test_group_params():
    sp = SystemParameters.testing()
    gp = GroupParameters.generate(sp)
    assert gp.Gamma.num_bits() == sp.l_Gamma
    assert gp.rho.num_bits() == sp.l_rho
    assert gp.Gamma.is_prime() and gp.rho.is_prime()
    assert (gp.Gamma - 1) % gp.rho == 0
    assert gp.g.mod_pow(gp.rho, gp.Gamma) == 1
    assert gp.h.mod_pow(gp.rho, gp.Gamma) == 1
    assert gp == gp
    assert gp.context() == gp.context()
