"""Data model: attribute values, credentials, commitments, pseudonyms,
representations and messages.

Example:
    >>> sp = SystemParameters.testing()
    >>> values = Values(sp)
    >>> values.add("age", 42)
    >>> int(values.value("age"))
    42
"""

import logging

from petlib.bn import Bn

from .params import SystemParameters, GroupParameters
from .structure import AttributeStructure, IssuanceMode, DataType
from .utils import SchemaError, ParameterError, to_bn, hash_string, \
    multi_exp, expo, random_bits, random_below, random_in_range, ONE

import pytest

log = logging.getLogger(__name__)


class Values(object):
    """Attribute name to value mapping used for issuance.

    Strings are hashed into integers, integers are kept as Bn, and
    commitments or commitment openings are kept as they are."""

    def __init__(self, sp):
        self.sp = sp
        self._content = {}
        self.prime_encoded = {}

    def add(self, name, value):
        if name in self._content:
            raise SchemaError("Value %s added twice." % name)
        if isinstance(value, str):
            value = hash_string(self.sp.l_H, value)
        elif isinstance(value, int):
            value = to_bn(value)
        self._content[name] = value

    def add_enum(self, att_struct, value_names):
        """Adds the prime encoding of the given value names."""
        value_names = sorted(value_names)
        self.add(att_struct.name, att_struct.encode_enum(value_names))
        self.prime_encoded[att_struct.name] = value_names

    def get(self, name):
        try:
            return self._content[name]
        except KeyError:
            raise SchemaError("No value for %s." % name)

    def value(self, name):
        """The integer value of an attribute, opening commitments."""
        content = self.get(name)
        if isinstance(content, CommitmentOpening):
            return content.m
        if isinstance(content, Commitment):
            raise SchemaError("Value of %s is only known as a commitment."
                              % name)
        return content

    def names(self):
        return list(self._content)

    def __contains__(self, name):
        return name in self._content


class Attribute(object):
    """An attribute structure paired with its integer value."""

    def __init__(self, structure, value, prime_encoded=None):
        self.structure = structure
        self.value = to_bn(value)
        self.prime_encoded = prime_encoded

        if structure.data_type == DataType.ENUM:
            if prime_encoded is not None and \
                    structure.encode_enum(prime_encoded) != self.value:
                raise SchemaError("Value of %s does not match its prime "
                                  "encoding." % structure.name)
        if structure.data_type == DataType.EPOCH and \
                structure.issuance_mode != IssuanceMode.KNOWN:
            raise SchemaError("Epoch attribute %s must be known."
                              % structure.name)

    @property
    def name(self):
        return self.structure.name

    @property
    def key_index(self):
        return self.structure.key_index

    def decoded(self):
        """Human readable content, when the data type allows it."""
        if self.structure.data_type == DataType.ENUM:
            return self.structure.decode_enum(self.value)
        return self.value


def create_attributes(cred_struct, values):
    """Builds Attribute objects for a credential from issuance values."""
    attributes = []
    for att in cred_struct.attribute_structures:
        attributes.append(Attribute(att, values.value(att.name),
                                    values.prime_encoded.get(att.name)))
    return attributes


class Credential(object):
    """A CL signature (A, e, v) on a list of attributes.

    Credentials are not modified after issuance; an update produces a new
    credential."""

    def __init__(self, issuer_pk_id, cred_struct_id, A, e, v, attributes,
                 update_info=None):
        self.issuer_pk_id = issuer_pk_id
        self.cred_struct_id = cred_struct_id
        self.A = A
        self.e = e
        self.v = v
        self.attributes = list(attributes)
        self.update_info = update_info

    def attribute(self, name):
        for att in self.attributes:
            if att.name == name:
                return att
        raise SchemaError("Credential has no attribute %s." % name)

    def exponents(self, master_secret):
        exps = {0: master_secret.value}
        for att in self.attributes:
            exps[att.key_index] = att.value
        return exps

    def verify_signature(self, public_key, master_secret):
        return public_key.verify_signature(self.A, self.e, self.v,
                                           self.exponents(master_secret))

    def decoded_values(self):
        """Copy of the attribute values for display."""
        return dict((att.name, att.decoded()) for att in self.attributes)


class Commitment(object):
    """Public part of a commitment C = prod(base_i^m_i) * S^r mod n."""

    def __init__(self, value, bases, S, n):
        self.value = value
        self.bases = list(bases)
        self.S = S
        self.n = n

    def msg_base(self, i):
        return self.bases[i]


class CommitmentOpening(object):
    """A commitment together with its messages and randomness."""

    def __init__(self, bases, messages, S, n, r=None):
        assert len(bases) == len(messages)
        self.bases = list(bases)
        self.messages = [to_bn(m) for m in messages]
        self.S = S
        self.n = n
        self.r = r if r is not None else CommitmentOpening.gen_random(n)
        self.value = multi_exp(list(zip(self.bases, self.messages)) +
                               [(S, self.r)], n)

    @staticmethod
    def gen_random(n):
        """Commitment randomness in [0, n/4)."""
        return random_below(n // Bn(4))

    @staticmethod
    def create(public_key, m, r=None):
        """Commitment Z^m S^r under an issuer key."""
        return CommitmentOpening([public_key.Z], [m], public_key.S,
                                 public_key.n, r)

    @property
    def m(self):
        assert len(self.messages) == 1
        return self.messages[0]

    def commitment(self):
        return Commitment(self.value, self.bases, self.S, self.n)

    def verify(self):
        return self.value == multi_exp(list(zip(self.bases, self.messages)) +
                                       [(self.S, self.r)], self.n)


class MasterSecret(object):
    """The holder's secret key, exponent of R_0 in every credential and the
    secret behind pseudonyms."""

    def __init__(self, gp, value=None):
        self.gp = gp
        self.value = value if value is not None else random_bits(gp.sp.l_m)
        self.nyms = {}
        self.dom_nyms = {}

    def cap_u(self, prod, R0, n):
        """prod * R_0^ms mod n."""
        return prod.mod_mul(expo(R0, self.value, n), n)

    def make_nym(self, name):
        nym = Nym(self.gp, self.value, name)
        self.nyms[name] = nym
        return nym

    def get_nym(self, name):
        if name not in self.nyms:
            return self.make_nym(name)
        return self.nyms[name]

    def get_dom_nym(self, domain):
        if domain not in self.dom_nyms:
            self.dom_nyms[domain] = DomNym.create(self.gp, self.value, domain)
        return self.dom_nyms[domain]


class Nym(object):
    """Pseudonym g^ms h^r mod Gamma, unlinkable across names."""

    def __init__(self, gp, m, name, r=None):
        self.gp = gp
        self.name = name
        self.r = r if r is not None else random_in_range(ONE, gp.rho)
        self.value = gp.commitment(m, self.r)


class DomNym(object):
    """Domain pseudonym g_dom^ms mod Gamma, where g_dom is derived from the
    domain name. The same master secret gives the same value per domain."""

    def __init__(self, gp, value, domain):
        self.gp = gp
        self.value = value
        self.domain = domain
        self.g_dom = DomNym.domain_base(gp, domain)

    @staticmethod
    def domain_base(gp, domain):
        exponent = (gp.Gamma - 1) // gp.rho
        g_dom = hash_string(gp.sp.l_H, domain).mod_pow(exponent, gp.Gamma)
        if g_dom == ONE:
            raise ParameterError("Domain %s maps to the identity." % domain)
        return g_dom

    @staticmethod
    def create(gp, m, domain):
        g_dom = DomNym.domain_base(gp, domain)
        return DomNym(gp, expo(g_dom, m, gp.Gamma), domain)


class Representation(object):
    """Public value with known bases, prod(base_i^x_i) mod modulus."""

    def __init__(self, value, bases, modulus, name):
        self.value = value
        self.bases = list(bases)
        self.modulus = modulus
        self.name = name

    def base(self, i):
        return self.bases[i]


class RepresentationOpening(object):
    """The exponents behind a Representation."""

    def __init__(self, bases, exponents, modulus, name):
        assert len(bases) == len(exponents)
        self.bases = list(bases)
        self.exponents = [to_bn(x) for x in exponents]
        self.modulus = modulus
        self.name = name
        self.value = multi_exp(zip(self.bases, self.exponents), modulus)

    def representation(self):
        return Representation(self.value, self.bases, self.modulus, self.name)


class MessageToSign(object):
    """Message text bound into a proof's challenge."""

    def __init__(self, message):
        self.message = message

    def hash(self, l_h):
        return hash_string(l_h, self.message)


# --- TESTS ---


@pytest.fixture(scope="module")
def gp():
    return GroupParameters.generate(SystemParameters.testing())


def test_values():
    sp = SystemParameters.testing()
    role = AttributeStructure("role", 1, IssuanceMode.KNOWN, DataType.ENUM)
    role.set_prime_factors({"admin": 2, "user": 3, "guest": 5})

    values = Values(sp)
    values.add("name", "Alice")
    values.add_enum(role, ["user", "admin"])
    assert values.value("role") == 6
    assert values.prime_encoded["role"] == ["admin", "user"]
    assert values.value("name") == hash_string(sp.l_H, "Alice")
    assert set(values.names()) == {"name", "role"}

    with pytest.raises(Exception) as excinfo:
        values.add("name", "Bob")
    assert 'twice' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        values.get("age")
    assert 'No value' in str(excinfo.value)


def test_attribute_enum():
    role = AttributeStructure("role", 1, IssuanceMode.KNOWN, DataType.ENUM)
    role.set_prime_factors({"admin": 2, "user": 3, "guest": 5})
    att = Attribute(role, 6, ["admin", "user"])
    assert att.decoded() == ["admin", "user"]

    with pytest.raises(Exception) as excinfo:
        Attribute(role, 10, ["admin", "user"])
    assert 'prime encoding' in str(excinfo.value)


def test_commitment_opening():
    n = Bn(1019) * Bn(1187)
    opening = CommitmentOpening([Bn(4)], [7], Bn(9), n)
    assert opening.verify()
    comm = opening.commitment()
    assert comm.value == opening.value
    assert comm.msg_base(0) == 4
    assert Bn(0) <= opening.r < n // Bn(4)


def test_pseudonyms(gp):
    ms = MasterSecret(gp)
    assert ms.value.num_bits() <= gp.sp.l_m
    nym = ms.make_nym("shop")
    assert nym.value == gp.commitment(ms.value, nym.r)
    assert ms.get_nym("shop") is nym
    assert ms.make_nym("shop").value != nym.value

    d1 = ms.get_dom_nym("example.org")
    d2 = DomNym.create(gp, ms.value, "example.org")
    assert d1.value == d2.value
    assert d1.g_dom.mod_pow(gp.rho, gp.Gamma) == 1
    assert DomNym.create(gp, ms.value, "other.org").value != d1.value


def test_representation():
    opening = RepresentationOpening([Bn(2), Bn(3)], [5, 7], Bn(1019), "rep")
    rep = opening.representation()
    assert rep.value == Bn(32 * 2187).mod(Bn(1019))
    assert rep.base(1) == 3


def test_message():
    m = MessageToSign("I agree")
    assert m.hash(256) == hash_string(256, "I agree")
