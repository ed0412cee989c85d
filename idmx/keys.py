"""Issuer key pairs for CL signatures and key pairs for verifiable encryption.

Both are built over RSA moduli n = p * q with safe primes p = 2p' + 1 and
q = 2q' + 1. Safe-prime search dominates the cost of key generation.

Example:
    >>> sp = SystemParameters.testing()
    >>> gp = GroupParameters.generate(sp)
    >>> kp = generate_issuer_keypair(gp, 4)
    >>> kp.public_key.n.num_bits() == sp.l_n
    True
"""

import logging
import time

from petlib.bn import Bn

from .params import SystemParameters, GroupParameters
from .utils import ParameterError, random_in_range, random_below, expo, \
    qr_generator, gcd, hash_of, log_bn, pow2, ONE, TWO

import pytest

log = logging.getLogger(__name__)


def get_npq(bits):
    """Returns (n, p, q) for two distinct safe primes such that n has
    exactly the requested number of bits."""
    while True:
        p = Bn.get_prime(bits // 2, safe=1)
        q = Bn.get_prime(bits - bits // 2, safe=1)
        if p == q:
            continue
        n = p * q
        if n.num_bits() == bits:
            return n, p, q
        log.debug("Modulus of %d bits rejected, retrying.", n.num_bits())


class IssuerPrivateKey(object):
    """The factorisation of the issuer modulus."""

    def __init__(self, n, p, q):
        self.n = n
        self.p = p
        self.q = q
        self.p_prime = (p - 1) // TWO
        self.q_prime = (q - 1) // TWO

    def order(self):
        """p'q', the order of the group of quadratic residues mod n."""
        return self.p_prime * self.q_prime

    @staticmethod
    def generate(sp):
        n, p, q = get_npq(sp.l_n)
        return IssuerPrivateKey(n, p, q)


class IssuerPublicKey(object):
    """Public bases S, Z and R_0 ... R_{k-1} of a CL signature key.

    R_0 is reserved for the master secret."""

    def __init__(self, gp, n, S, Z, R, epoch_length=0):
        self.gp = gp
        self.n = n
        self.S = S
        self.Z = Z
        self.R = list(R)
        self.epoch_length = epoch_length if epoch_length >= 1 else 0

    @staticmethod
    def generate(gp, private_key, num_attributes, epoch_length=0):
        sp = gp.sp
        if num_attributes < sp.l_res:
            raise ParameterError("Number of attributes must be at least %d "
                                 "(reserved attributes)." % sp.l_res)
        n = private_key.n
        upper = private_key.order() - 1
        S = qr_generator(n)
        Z = S.mod_pow(random_in_range(TWO, upper), n)
        R = [S.mod_pow(random_in_range(TWO, upper), n)
             for _ in range(num_attributes)]
        return IssuerPublicKey(gp, n, S, Z, R, epoch_length)

    @property
    def max_attributes(self):
        return len(self.R)

    def has_epoch(self):
        return self.epoch_length > 0

    def current_epoch(self, now=None):
        """The current epoch: floor(now / epoch_length)."""
        if not self.has_epoch():
            raise ParameterError("Key does not define an epoch length.")
        if now is None:
            now = time.time()
        return Bn(int(now) // self.epoch_length)

    def context_list(self):
        return [self.S, self.Z] + self.R + [self.n]

    def context(self):
        """Hash of the key and its group parameters, used as the issuance
        context."""
        return hash_of(self.gp.sp.l_H,
                       self.context_list() + self.gp.context_list())

    def verify_signature(self, A, e, v, exponents):
        """Checks Z == A^e * S^v * prod(R_i^m_i) mod n, for exponents given
        as a dict of key index to value."""
        n = self.n
        acc = expo(A, e, n).mod_mul(expo(self.S, v, n), n)
        for index, m in exponents.items():
            acc = acc.mod_mul(expo(self.R[index], m, n), n)
        return acc == self.Z


class IssuerKeyPair(object):

    def __init__(self, private_key, public_key):
        self.private_key = private_key
        self.public_key = public_key


def generate_issuer_keypair(gp, max_attributes, epoch_length=0):
    """Generates an issuer key pair with room for max_attributes attributes
    on top of the reserved ones."""
    sp = gp.sp
    if max_attributes < sp.l_res:
        raise ParameterError("Number of attributes must be at least %d "
                             "(reserved attributes)." % sp.l_res)
    log.info("Generating issuer key (%d bits, %d attributes)",
             sp.l_n, max_attributes)
    private_key = IssuerPrivateKey.generate(sp)
    public_key = IssuerPublicKey.generate(gp, private_key,
                                          max_attributes + sp.l_res,
                                          epoch_length)
    return IssuerKeyPair(private_key, public_key)


class VEPrivateKey(object):
    """Camenisch-Shoup decryption key: the modulus factors and x1, x2, x3."""

    def __init__(self, sp, n, p, q, x1, x2, x3, public_key):
        self.sp = sp
        self.n = n
        self.p = p
        self.q = q
        self.x1 = x1
        self.x2 = x2
        self.x3 = x3
        self.order_n = (p - 1) * (q - 1)
        self.public_key = public_key

    @property
    def n2(self):
        return self.n * self.n


class VEPublicKey(object):
    """Camenisch-Shoup encryption key over Z*_{n^2}."""

    def __init__(self, sp, n, g, y1, y2, y3):
        self.sp = sp
        self.n = n
        self.n2 = n * n
        self.g = g
        self.h = (n + 1) % self.n2
        self.y1 = y1
        self.y2 = y2
        self.y3 = y3

    def random(self):
        """Encryption randomness in [0, n/4)."""
        return random_below(self.n // Bn(4))

    def context_list(self):
        return [self.n, self.g, self.y1, self.y2, self.y3]


class VEKeyPair(object):

    def __init__(self, private_key, public_key):
        self.private_key = private_key
        self.public_key = public_key


def check_security_parameter(sp, p, q):
    """Aborts unless 2^l_enc < min(p, q, p'q')."""
    bound = pow2(sp.l_enc)
    order = ((p - 1) // TWO) * ((q - 1) // TWO)
    if not (bound < p and bound < q and bound < order):
        raise ParameterError("Security parameter k too large for the "
                             "verifiable encryption modulus.")


def generate_ve_keypair(sp, bits=None):
    """Generates a verifiable encryption key pair with a modulus of
    ``bits`` bits (l_n by default)."""
    if bits is None:
        bits = sp.l_n
    n, p, q = get_npq(bits)
    check_security_parameter(sp, p, q)

    n2 = n * n
    n2_4 = n2 // Bn(4)
    x1 = random_below(n2_4)
    x2 = random_below(n2_4)
    x3 = random_below(n2_4)

    while True:
        g_prime = random_below(n2)
        if g_prime > 1 and gcd(g_prime, n2) == 1:
            break
    g = g_prime.mod_pow(TWO * n, n2)

    y1 = g.mod_pow(x1, n2)
    y2 = g.mod_pow(x2, n2)
    y3 = g.mod_pow(x3, n2)
    log.debug("VE key: n=%s g=%s", log_bn(n), log_bn(g))

    pk = VEPublicKey(sp, n, g, y1, y2, y3)
    sk = VEPrivateKey(sp, n, p, q, x1, x2, x3, pk)
    return VEKeyPair(sk, pk)


# --- TESTS ---


@pytest.fixture(scope="module")
def gp():
    return GroupParameters.generate(SystemParameters.testing())


def test_npq():
    n, p, q = get_npq(256)
    assert n.num_bits() == 256
    assert p != q
    assert ((p - 1) // TWO).is_prime()
    assert ((q - 1) // TWO).is_prime()


def test_issuer_keys(gp):
    kp = generate_issuer_keypair(gp, 3, epoch_length=60)
    pk, sk = kp.public_key, kp.private_key
    assert pk.n == sk.n
    assert pk.n.num_bits() == gp.sp.l_n
    assert pk.max_attributes == 3 + gp.sp.l_res
    order = sk.order()
    # Every base lives in QR_n, hence has order dividing p'q'
    for base in [pk.S, pk.Z] + pk.R:
        assert base.mod_pow(order, pk.n) == ONE
    assert pk.current_epoch(now=600) == 10
    assert pk.context() == pk.context()


def test_no_epoch(gp):
    sk = IssuerPrivateKey.generate(gp.sp)
    pk = IssuerPublicKey.generate(gp, sk, 2, epoch_length=-5)
    assert pk.epoch_length == 0
    with pytest.raises(Exception) as excinfo:
        pk.current_epoch()
    assert 'epoch' in str(excinfo.value)


def test_too_few_attributes(gp):
    sp = SystemParameters(l_n=512, l_Gamma=512, l_rho=160, l_v=1200, l_res=2)
    with pytest.raises(Exception) as excinfo:
        generate_issuer_keypair(GroupParameters(sp, gp.Gamma, gp.rho, gp.g, gp.h), 1)
    assert 'reserved' in str(excinfo.value)


def test_ve_keys():
    sp = SystemParameters.testing()
    kp = generate_ve_keypair(sp)
    pk, sk = kp.public_key, kp.private_key
    assert pk.n.num_bits() == sp.l_n
    assert pk.y1 == pk.g.mod_pow(sk.x1, pk.n2)
    assert pk.h == pk.n + 1
    assert Bn(0) <= pk.random() < pk.n // Bn(4)


def test_ve_security_parameter():
    sp = SystemParameters.testing()
    with pytest.raises(Exception) as excinfo:
        generate_ve_keypair(sp, bits=256)
    assert 'too large' in str(excinfo.value)
