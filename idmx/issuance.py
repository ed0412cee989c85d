"""Issuance of CL signatures over known, committed and hidden attributes.

    Issuer                                   Recipient
    round0: n1, H(known)        ---->
                                <----        round1: U, nym, domNym, proof
    round2: check proof,
            A, e, v'', proof    ---->
                                             round3: check proof, Credential

The recipient blinds everything the issuer must not learn into
U = S^v' R_0^ms prod(R_i^m_i). The issuer completes the signature with its
own randomness v'' and proves that A was computed with its private key.
Structures with an update specification leave the issuer an update record
from which attributes such as the epoch can later be refreshed.

Example:
    >>> issuer = Issuer(key_pair, spec, issuer_values)
    >>> recipient = Recipient(spec, master_secret, recipient_values)
    >>> msg = recipient.round1(issuer.round0())
    >>> credential = recipient.round3(issuer.round2(msg))
"""

import logging

from petlib.bn import Bn

from .dm import MasterSecret, Values, Credential, Attribute, DomNym, \
    CommitmentOpening, create_attributes
from .keys import generate_issuer_keypair
from .params import SystemParameters, GroupParameters
from .predicates import Identifier, CLPredicate, PrimeEncodePredicate, \
    InequalityPredicate, PseudonymPredicate, ProofSpec, MASTER_SECRET_NAME
from .showproof import Proof, Prover, Verifier
from .structure import Store, AttributeStructure, CredentialStructure, \
    UpdateSpecification, IssuanceMode, DataType
from .utils import ProtocolError, SchemaError, DELIMITER, expo, multi_exp, \
    pow2, hash_of, random_bits, random_symmetric, random_in_range, \
    compute_response, in_interval, is_unit, choose_e, is_valid_e, log_bn, ONE

import pytest

log = logging.getLogger(__name__)


class IssuanceSpec(object):
    """The issuer key and credential structure an issuance runs over."""

    def __init__(self, issuer_pk_id, cred_struct_id, store):
        self.issuer_pk_id = issuer_pk_id
        self.cred_struct_id = cred_struct_id
        self.store = store
        self.public_key = store.get(issuer_pk_id)
        self.cred_struct = store.get(cred_struct_id)
        self.cred_struct.check_key(self.public_key)

    @property
    def sp(self):
        return self.public_key.gp.sp

    @property
    def context(self):
        return self.public_key.context()

    def update_specification(self):
        return self.cred_struct.update_specification(self.store)


class Message(object):
    """An issuance message: named elements and an optional proof."""

    NONCE = "nonce"
    CAPU = "capU"
    NYM = "nym"
    DOM_NYM = "domNym"
    DOMAIN = "domain"
    CAPA = "capA"
    E = "e"
    V_PRIME_PRIME = "vPrimePrime"
    KNOWN = "knownValues"

    def __init__(self, elements, proof=None):
        self.elements = dict(elements)
        self.proof = proof

    def get(self, name):
        try:
            return self.elements[name]
        except KeyError:
            raise ProtocolError("Message element %s missing." % name)

    def __eq__(self, other):
        return isinstance(other, Message) and \
            self.elements == other.elements and self.proof == other.proof

    def __ne__(self, other):
        return not self.__eq__(other)


class IssuerUpdateInformation(object):
    """What the issuer keeps to refresh a credential without a new
    issuance. Owned by one issuance; update() replaces its state."""

    def __init__(self, issuer_pk_id, cred_struct_id, Q, v_prime_prime,
                 values, nonce, context):
        self.issuer_pk_id = issuer_pk_id
        self.cred_struct_id = cred_struct_id
        self.Q = Q
        self.v_prime_prime = v_prime_prime
        self.values = dict(values)
        self.nonce = nonce
        self.context = context

    def update(self, Q, v_prime_prime, values):
        self.Q = Q
        self.v_prime_prime = v_prime_prime
        self.values.update(values)


class UpdateInformation(object):
    """The recipient's side of an updatable credential."""

    def __init__(self, v_prime, nonce, context):
        self.v_prime = v_prime
        self.nonce = nonce
        self.context = context


def _name(att, label):
    return att.name + DELIMITER + label


def known_values_hash(spec, values):
    """Hash of the known attribute values in structure order, under the
    issuance context."""
    known = [values.value(att.name) for att in
             spec.cred_struct.attribute_structs(IssuanceMode.KNOWN)]
    return hash_of(spec.sp.l_H, [spec.context] + known)


def _issuer_proof(sk, Q, A, e, nonce, context, l_h):
    """Proof that A = Q^(1/e) was computed with the factorisation."""
    order = sk.order()
    e_inv = e.mod_inverse(order)
    r = random_in_range(ONE, order - 1)
    A_tilde = Q.mod_pow(r, sk.n)
    c_prime = hash_of(l_h, [context, Q, A, nonce, A_tilde])
    s_e = (r - c_prime * e_inv) % order
    return Proof(c_prime, {"s_e": s_e})


def _check_issuer_proof(pk, Q, A, e, nonce, context, proof):
    sp = pk.gp.sp
    c_prime = proof.challenge
    s_e = proof.s_values.get("s_e")
    if not isinstance(c_prime, Bn) or not isinstance(s_e, Bn):
        raise ProtocolError("Issuer proof is incomplete.")
    A_hat = expo(A, c_prime + s_e * e, pk.n)
    if c_prime != hash_of(sp.l_H, [context, Q, A, nonce, A_hat]):
        raise ProtocolError("Issuer proof of the signature fails.")


def _complete_signature(kp, Q, l_h, nonce, context):
    """Returns (A, e, proof) for A = Q^(1/e) with a fresh prime e."""
    sk = kp.private_key
    sp = kp.public_key.gp.sp
    e = choose_e(sp)
    A = Q.mod_pow(e.mod_inverse(sk.order()), sk.n)
    proof = _issuer_proof(sk, Q, A, e, nonce, context, l_h)
    return A, e, proof


class Issuer(object):
    """The issuer's side of one issuance.

    values hold the known attributes as integers and the committed ones as
    Commitment objects. nym and dom_nym, when given, are the Nym and DomNym
    the recipient is expected to bind to the credential."""

    def __init__(self, key_pair, spec, values, nym=None, dom_nym=None):
        self.key_pair = key_pair
        self.spec = spec
        self.values = values
        self.nym = nym
        self.dom_nym = dom_nym
        self.nonce1 = None
        self.update_information = None
        self.signed = False
        spec.cred_struct.verify_issuer_values(values)

    def round0(self):
        """Returns the issuer's nonce and its commitment to the known
        attribute values."""
        if self.nonce1 is not None:
            raise ProtocolError("Round 0 was already run.")
        self.nonce1 = random_bits(self.spec.sp.l_Phi)
        log.info("Issuance started (structure %s).", self.spec.cred_struct_id)
        return Message({Message.NONCE: self.nonce1,
                        Message.KNOWN: known_values_hash(self.spec,
                                                         self.values)})

    def _verify_recipient(self, msg):
        spec = self.spec
        sp = spec.sp
        pk = spec.public_key
        gp = pk.gp
        n = pk.n
        proof = msg.proof
        if proof is None:
            raise ProtocolError("Recipient proof missing.")
        c = proof.challenge
        if not isinstance(c, Bn):
            raise ProtocolError("Recipient challenge is not an integer.")
        neg_c = -c

        def element(name, modulus):
            value = msg.get(name)
            if not is_unit(value, modulus):
                raise ProtocolError("Message element %s is not a unit." % name)
            return value

        def s_value(name, bits=None):
            try:
                value = proof.s_values[name]
            except KeyError:
                raise ProtocolError("Response %s missing." % name)
            if not isinstance(value, Bn):
                raise ProtocolError("Response %s is not an integer." % name)
            if bits is not None and not in_interval(value, bits):
                raise ProtocolError("Response %s is out of range." % name)
            return value

        m_bits = sp.l_m + sp.l_Phi + sp.l_H + 1
        r_bits = sp.l_n + 2 * sp.l_Phi + sp.l_H + 1
        ms_hat = s_value(MASTER_SECRET_NAME, m_bits)
        U = element(Message.CAPU, n)
        pairs = [(pk.S, s_value("vHatPrime", r_bits)), (pk.R[0], ms_hat)]
        commons, hats = [U], []
        comm_hats = []
        for att in spec.cred_struct.attribute_structs():
            if att.issuance_mode == IssuanceMode.KNOWN:
                continue
            m_hat = s_value(att.name, m_bits)
            pairs.append((pk.R[att.key_index], m_hat))
            if att.issuance_mode == IssuanceMode.COMMITTED:
                C = self.values.get(att.name).value
                r_hat = s_value(_name(att, "rHat"), r_bits)
                commons.append(C)
                comm_hats.append(multi_exp([(pk.Z, m_hat), (pk.S, r_hat)], n,
                                           expo(C, neg_c, n)))
        hats.append(multi_exp(pairs, n, expo(U, neg_c, n)))
        hats.extend(comm_hats)

        if Message.NYM in msg.elements:
            nym = element(Message.NYM, gp.Gamma)
            if self.nym is not None and self.nym.value != nym:
                raise ProtocolError("Unexpected pseudonym.")
            commons.append(nym)
            hats.append(multi_exp([(gp.g, ms_hat),
                                   (gp.h, s_value("nym:rHat"))],
                                  gp.Gamma, expo(nym, neg_c, gp.Gamma)))
        if Message.DOM_NYM in msg.elements:
            dom_nym = element(Message.DOM_NYM, gp.Gamma)
            domain = msg.get(Message.DOMAIN)
            if self.dom_nym is not None and (self.dom_nym.value != dom_nym or
                                             self.dom_nym.domain != domain):
                raise ProtocolError("Unexpected domain pseudonym.")
            g_dom = DomNym.domain_base(gp, domain)
            commons.append(dom_nym)
            hats.append(multi_exp([(g_dom, ms_hat)], gp.Gamma,
                                  expo(dom_nym, neg_c, gp.Gamma)))
        elif self.dom_nym is not None:
            raise ProtocolError("Domain pseudonym missing.")
        if self.nym is not None and Message.NYM not in msg.elements:
            raise ProtocolError("Pseudonym missing.")

        c_hat = hash_of(sp.l_H, [spec.context] + commons + hats +
                        [self.nonce1])
        if c_hat != c:
            raise ProtocolError("Recipient proof of U fails.")
        return U

    def round2(self, msg):
        """Checks the recipient's proof and returns the signature with a
        proof of its correctness."""
        if self.nonce1 is None:
            raise ProtocolError("Round 2 called before round 0.")
        if self.signed:
            raise ProtocolError("Round 2 was already run.")
        spec = self.spec
        sp = spec.sp
        pk = spec.public_key
        n = pk.n

        U = self._verify_recipient(msg)
        nonce2 = msg.get(Message.NONCE)

        v_prime_prime = pow2(sp.l_v - 1) + random_bits(sp.l_v - 1)
        known = dict((att.name, self.values.get(att.name))
                     for att in spec.cred_struct.attribute_structs(
                         IssuanceMode.KNOWN))
        pairs = [(pk.S, v_prime_prime)]
        pairs += [(pk.R[spec.cred_struct.attribute_structure(name).key_index],
                   value) for name, value in known.items()]
        denom = multi_exp(pairs, n, U)
        Q = pk.Z.mod_mul(denom.mod_inverse(n), n)

        A, e, proof = _complete_signature(self.key_pair, Q, sp.l_H, nonce2,
                                          spec.context)
        log.debug("Signature: A=%s e=%s", log_bn(A), log_bn(e))

        update_spec = spec.update_specification()
        if update_spec is not None:
            updatable = dict((name, value) for name, value in known.items()
                             if name in update_spec.attribute_names)
            self.update_information = IssuerUpdateInformation(
                spec.issuer_pk_id, spec.cred_struct_id, Q, v_prime_prime,
                updatable, nonce2, spec.context)
        self.signed = True
        log.info("Signature issued (structure %s).", spec.cred_struct_id)

        return Message({Message.CAPA: A, Message.E: e,
                        Message.V_PRIME_PRIME: v_prime_prime}, proof)


def update_credential(key_pair, values, record, store):
    """Re-signs a credential with new values for its updatable attributes.

    Returns the message for Recipient.update_credential and replaces the
    state of record."""
    pk = key_pair.public_key
    sp = pk.gp.sp
    n = pk.n
    cred_struct = store.get(record.cred_struct_id)
    update_spec = cred_struct.update_specification(store)
    if update_spec is None:
        raise SchemaError("Credential structure %s is not updatable."
                          % record.cred_struct_id)
    update_spec.verify_values(values)

    new_values = dict((name, values.value(name)) for name in values.names())
    v_bar = pow2(sp.l_v - 1) + random_bits(sp.l_v - 1)
    pairs = [(pk.S, v_bar - record.v_prime_prime)]
    for name, value in new_values.items():
        index = cred_struct.attribute_structure(name).key_index
        pairs.append((pk.R[index], value - record.values[name]))
    Q_bar = record.Q.mod_mul(multi_exp(pairs, n).mod_inverse(n), n)

    A, e, proof = _complete_signature(key_pair, Q_bar, sp.l_H, record.nonce,
                                      record.context)
    record.update(Q_bar, v_bar, new_values)
    log.info("Credential of structure %s updated.", record.cred_struct_id)
    return Message({Message.CAPA: A, Message.E: e,
                    Message.V_PRIME_PRIME: v_bar}, proof)


class Recipient(object):
    """The recipient's side of one issuance.

    values hold every attribute: integers for known and hidden attributes,
    CommitmentOpening objects for committed ones."""

    def __init__(self, spec, master_secret, values, nym_name=None,
                 domain=None):
        self.spec = spec
        self.master_secret = master_secret
        self.values = values
        self.nym_name = nym_name
        self.domain = domain
        self.v_prime = None
        self.nonce2 = None
        spec.cred_struct.verify_recipient_values(values)
        for att in spec.cred_struct.attribute_structs(IssuanceMode.COMMITTED):
            opening = values.get(att.name)
            if opening.bases != [spec.public_key.Z] or \
                    opening.S != spec.public_key.S:
                raise SchemaError("Commitment to %s is not under the issuer "
                                  "key." % att.name)

    def round1(self, msg):
        """Returns U and the proof that it is well formed."""
        if self.v_prime is not None:
            raise ProtocolError("Round 1 was already run.")
        spec = self.spec
        sp = spec.sp
        pk = spec.public_key
        gp = pk.gp
        n = pk.n
        nonce1 = msg.get(Message.NONCE)
        ms = self.master_secret
        if msg.get(Message.KNOWN) != known_values_hash(spec, self.values):
            raise ProtocolError("Known attribute values differ from the "
                                "issuer's.")

        m_bits = sp.l_m + sp.l_Phi + sp.l_H
        r_bits = sp.l_n + 2 * sp.l_Phi + sp.l_H
        v_prime = random_symmetric(sp.l_n + sp.l_Phi)
        v_tilde = random_symmetric(r_bits)
        ms_tilde = random_symmetric(m_bits)

        pairs = [(pk.S, v_prime), (pk.R[0], ms.value)]
        tilde_pairs = [(pk.S, v_tilde), (pk.R[0], ms_tilde)]
        secrets = {"vHatPrime": (v_tilde, v_prime),
                   MASTER_SECRET_NAME: (ms_tilde, ms.value)}
        commons, comm_tildes = [], []
        for att in spec.cred_struct.attribute_structs():
            if att.issuance_mode == IssuanceMode.KNOWN:
                continue
            m = self.values.value(att.name)
            m_tilde = random_symmetric(m_bits)
            pairs.append((pk.R[att.key_index], m))
            tilde_pairs.append((pk.R[att.key_index], m_tilde))
            secrets[att.name] = (m_tilde, m)
            if att.issuance_mode == IssuanceMode.COMMITTED:
                opening = self.values.get(att.name)
                r_tilde = random_symmetric(r_bits)
                secrets[_name(att, "rHat")] = (r_tilde, opening.r)
                commons.append(opening.value)
                comm_tildes.append(multi_exp([(pk.Z, m_tilde),
                                              (pk.S, r_tilde)], n))
        U = multi_exp(pairs, n)
        tvalues = [multi_exp(tilde_pairs, n)] + comm_tildes

        elements = {Message.CAPU: U}
        if self.nym_name is not None:
            nym = ms.get_nym(self.nym_name)
            r_tilde = random_symmetric(sp.l_rho + sp.l_Phi + sp.l_H)
            secrets["nym:rHat"] = (r_tilde, nym.r)
            commons.append(nym.value)
            tvalues.append(gp.commitment(ms_tilde, r_tilde))
            elements[Message.NYM] = nym.value
        if self.domain is not None:
            dom_nym = ms.get_dom_nym(self.domain)
            commons.append(dom_nym.value)
            tvalues.append(expo(dom_nym.g_dom, ms_tilde, gp.Gamma))
            elements[Message.DOM_NYM] = dom_nym.value
            elements[Message.DOMAIN] = self.domain

        c = hash_of(sp.l_H, [spec.context, U] + commons + tvalues + [nonce1])
        s_values = dict((name, compute_response(tilde, c, secret))
                        for name, (tilde, secret) in secrets.items())

        self.v_prime = v_prime
        self.nonce2 = random_bits(sp.l_Phi)
        elements[Message.NONCE] = self.nonce2
        return Message(elements, Proof(c, s_values))

    def _attributes(self):
        return create_attributes(self.spec.cred_struct, self.values)

    def _finish(self, msg, v_prime, nonce, context, attributes):
        spec = self.spec
        sp = spec.sp
        pk = spec.public_key
        n = pk.n
        A = msg.get(Message.CAPA)
        e = msg.get(Message.E)
        v_prime_prime = msg.get(Message.V_PRIME_PRIME)
        if msg.proof is None:
            raise ProtocolError("Issuer proof missing.")
        if not is_unit(A, n) or not isinstance(e, Bn) or \
                not isinstance(v_prime_prime, Bn):
            raise ProtocolError("Signature elements are malformed.")
        if not is_valid_e(sp, e):
            raise ProtocolError("Exponent e is not a prime of the right "
                                "size.")

        v = v_prime_prime + v_prime
        pairs = [(pk.S, v), (pk.R[0], self.master_secret.value)]
        pairs += [(pk.R[att.key_index], att.value) for att in attributes]
        Q = pk.Z.mod_mul(multi_exp(pairs, n).mod_inverse(n), n)
        _check_issuer_proof(pk, Q, A, e, nonce, context, msg.proof)

        update_info = None
        if spec.cred_struct.update_spec_location is not None:
            update_info = UpdateInformation(v_prime, nonce, context)
        cred = Credential(spec.issuer_pk_id, spec.cred_struct_id, A, e, v,
                          attributes, update_info)
        if not cred.verify_signature(pk, self.master_secret):
            raise ProtocolError("Signature on the credential does not "
                                "verify.")
        return cred

    def round3(self, msg):
        """Checks the issuer's proof and returns the credential."""
        if self.v_prime is None:
            raise ProtocolError("Round 3 called before round 1.")
        cred = self._finish(msg, self.v_prime, self.nonce2,
                            self.spec.context, self._attributes())
        log.info("Credential received (structure %s).",
                 self.spec.cred_struct_id)
        return cred

    def update_credential(self, credential, msg, new_values):
        """Returns the credential re-signed with the new values of its
        updatable attributes."""
        info = credential.update_info
        if info is None:
            raise SchemaError("Credential is not updatable.")
        update_spec = self.spec.update_specification()
        update_spec.verify_values(new_values)
        attributes = []
        for att in credential.attributes:
            if att.name in new_values:
                att = Attribute(att.structure, new_values.value(att.name),
                                new_values.prime_encoded.get(att.name))
            attributes.append(att)
        return self._finish(msg, info.v_prime, info.nonce, info.context,
                            attributes)


# --- TESTS ---


class Setup(object):
    pass


@pytest.fixture(scope="module")
def setup():
    s = Setup()
    s.sp = SystemParameters.testing()
    s.gp = GroupParameters.generate(s.sp)
    s.kp = generate_issuer_keypair(s.gp, 5, epoch_length=3600)
    s.store = Store()
    s.store.add("issuer", s.kp.public_key)

    name = AttributeStructure("name", 1, IssuanceMode.KNOWN, DataType.STRING)
    role = AttributeStructure("role", 2, IssuanceMode.KNOWN, DataType.ENUM)
    role.set_prime_factors({"admin": 2, "user": 3, "guest": 5})
    age = AttributeStructure("age", 3, IssuanceMode.COMMITTED, DataType.INT)
    secret = AttributeStructure("secret", 4, IssuanceMode.HIDDEN,
                                DataType.INT)
    epoch = AttributeStructure("epoch", 5, IssuanceMode.KNOWN, DataType.EPOCH)
    s.role = role
    s.store.add("person", CredentialStructure([name, role, age, secret]))
    s.store.add("upd", UpdateSpecification("upd", ["epoch"]))
    s.store.add("member", CredentialStructure([name, epoch],
                                              update_spec_location="upd"))
    s.ms = MasterSecret(s.gp)
    return s


def person_values(s):
    pk = s.kp.public_key
    opening = CommitmentOpening.create(pk, 30)
    issuer_values = Values(s.sp)
    issuer_values.add("name", "Alice")
    issuer_values.add_enum(s.role, ["admin", "user"])
    issuer_values.add("age", opening.commitment())
    recipient_values = Values(s.sp)
    recipient_values.add("name", "Alice")
    recipient_values.add_enum(s.role, ["admin", "user"])
    recipient_values.add("age", opening)
    recipient_values.add("secret", 1234567)
    return issuer_values, recipient_values


def test_issuance(setup):
    spec = IssuanceSpec("issuer", "person", setup.store)
    issuer_values, recipient_values = person_values(setup)
    issuer = Issuer(setup.kp, spec, issuer_values,
                    nym=setup.ms.get_nym("shop"),
                    dom_nym=setup.ms.get_dom_nym("example.org"))
    recipient = Recipient(spec, setup.ms, recipient_values, nym_name="shop",
                          domain="example.org")
    cred = recipient.round3(issuer.round2(recipient.round1(issuer.round0())))
    assert cred.verify_signature(setup.kp.public_key, setup.ms)
    assert cred.attribute("age").value == 30
    assert cred.decoded_values()["role"] == ["admin", "user"]
    assert cred.update_info is None
    assert issuer.update_information is None


def test_issuance_order(setup):
    spec = IssuanceSpec("issuer", "person", setup.store)
    issuer_values, recipient_values = person_values(setup)
    issuer = Issuer(setup.kp, spec, issuer_values)
    recipient = Recipient(spec, setup.ms, recipient_values)
    with pytest.raises(ProtocolError) as excinfo:
        issuer.round2(Message({}))
    assert 'before round 0' in str(excinfo.value)
    with pytest.raises(ProtocolError) as excinfo:
        recipient.round3(Message({}))
    assert 'before round 1' in str(excinfo.value)


def test_issuance_bad_proof(setup):
    spec = IssuanceSpec("issuer", "person", setup.store)
    issuer_values, recipient_values = person_values(setup)
    issuer = Issuer(setup.kp, spec, issuer_values)
    recipient = Recipient(spec, setup.ms, recipient_values)
    msg = recipient.round1(issuer.round0())
    msg.elements[Message.CAPU] = msg.elements[Message.CAPU] + 1
    with pytest.raises(ProtocolError) as excinfo:
        issuer.round2(msg)
    assert 'proof of U' in str(excinfo.value)


def test_issuance_wrong_nym(setup):
    spec = IssuanceSpec("issuer", "person", setup.store)
    issuer_values, recipient_values = person_values(setup)
    issuer = Issuer(setup.kp, spec, issuer_values,
                    nym=setup.ms.get_nym("bank"))
    recipient = Recipient(spec, setup.ms, recipient_values, nym_name="shop")
    with pytest.raises(ProtocolError) as excinfo:
        issuer.round2(recipient.round1(issuer.round0()))
    assert 'Unexpected pseudonym' in str(excinfo.value)


def test_issuance_known_values(setup):
    spec = IssuanceSpec("issuer", "person", setup.store)
    issuer_values, _ = person_values(setup)
    _, recipient_values = person_values(setup)
    assert known_values_hash(spec, issuer_values) == \
        known_values_hash(spec, recipient_values)

    issuer = Issuer(setup.kp, spec, issuer_values)
    values = Values(setup.sp)
    values.add("name", "Mallory")
    values.add_enum(setup.role, ["admin", "user"])
    values.add("age", CommitmentOpening.create(setup.kp.public_key, 30))
    values.add("secret", 1)
    recipient = Recipient(spec, setup.ms, values)
    with pytest.raises(ProtocolError) as excinfo:
        recipient.round1(issuer.round0())
    assert 'Known attribute values differ' in str(excinfo.value)


def test_issuance_malformed_elements(setup):
    spec = IssuanceSpec("issuer", "person", setup.store)
    n = setup.kp.public_key.n
    for name, bad in [(Message.CAPU, Bn(0)), (Message.CAPU, n),
                      (Message.CAPU, "spam"), (Message.NYM, Bn(0))]:
        issuer_values, recipient_values = person_values(setup)
        issuer = Issuer(setup.kp, spec, issuer_values)
        recipient = Recipient(spec, setup.ms, recipient_values,
                              nym_name="shop")
        msg = recipient.round1(issuer.round0())
        msg.elements[name] = bad
        with pytest.raises(ProtocolError) as excinfo:
            issuer.round2(msg)
        assert 'not a unit' in str(excinfo.value)

    issuer_values, recipient_values = person_values(setup)
    issuer = Issuer(setup.kp, spec, issuer_values)
    recipient = Recipient(spec, setup.ms, recipient_values)
    msg = issuer.round2(recipient.round1(issuer.round0()))
    msg.elements[Message.CAPA] = Bn(0)
    with pytest.raises(ProtocolError) as excinfo:
        recipient.round3(msg)
    assert 'malformed' in str(excinfo.value)


def test_issuance_bad_signature(setup):
    spec = IssuanceSpec("issuer", "person", setup.store)
    issuer_values, recipient_values = person_values(setup)
    issuer = Issuer(setup.kp, spec, issuer_values)
    recipient = Recipient(spec, setup.ms, recipient_values)
    msg = issuer.round2(recipient.round1(issuer.round0()))
    msg.elements[Message.V_PRIME_PRIME] = \
        msg.elements[Message.V_PRIME_PRIME] + 1
    with pytest.raises(ProtocolError) as excinfo:
        recipient.round3(msg)
    assert 'Issuer proof' in str(excinfo.value)


def test_missing_values(setup):
    spec = IssuanceSpec("issuer", "person", setup.store)
    issuer_values, recipient_values = person_values(setup)
    values = Values(setup.sp)
    values.add("name", "Alice")
    with pytest.raises(SchemaError) as excinfo:
        Issuer(setup.kp, spec, values)
    assert 'missing' in str(excinfo.value)

    values = Values(setup.sp)
    values.add("name", "Alice")
    values.add_enum(setup.role, ["guest"])
    values.add("age", 30)
    values.add("secret", 1)
    with pytest.raises(SchemaError) as excinfo:
        Recipient(spec, setup.ms, values)
    assert 'commitment opening' in str(excinfo.value)


def test_epoch_update(setup):
    spec = IssuanceSpec("issuer", "member", setup.store)
    pk = setup.kp.public_key
    epoch = pk.current_epoch(now=36000)
    values = Values(setup.sp)
    values.add("name", "Bob")
    values.add("epoch", epoch)

    issuer = Issuer(setup.kp, spec, values)
    recipient = Recipient(spec, setup.ms, values)
    cred = recipient.round3(issuer.round2(recipient.round1(issuer.round0())))
    record = issuer.update_information
    assert record.values == {"epoch": epoch}
    assert cred.update_info is not None

    new_values = Values(setup.sp)
    new_values.add("epoch", epoch + 1)
    msg = update_credential(setup.kp, new_values, record, setup.store)
    assert record.values["epoch"] == epoch + 1
    updated = recipient.update_credential(cred, msg, new_values)
    assert updated.attribute("epoch").value == epoch + 1
    assert updated.attribute("name").value == cred.attribute("name").value
    assert updated.verify_signature(pk, setup.ms)

    bad = Values(setup.sp)
    bad.add("name", "Eve")
    with pytest.raises(SchemaError) as excinfo:
        update_credential(setup.kp, bad, record, setup.store)
    assert 'do not match' in str(excinfo.value)


def role_scenario(sp, max_attributes):
    """Issue a credential with role admin and user, then show it together
    with AND predicates over the role."""
    gp = GroupParameters.generate(sp)
    kp = generate_issuer_keypair(gp, max_attributes)
    store = Store()
    store.add("issuer", kp.public_key)
    name = AttributeStructure("name", 1, IssuanceMode.KNOWN, DataType.STRING)
    role = AttributeStructure("role", 2, IssuanceMode.KNOWN, DataType.ENUM)
    role.set_prime_factors({"admin": 2, "user": 3, "guest": 5})
    store.add("employee", CredentialStructure([name, role]))

    values = Values(sp)
    values.add("name", "Alice")
    values.add_enum(role, ["admin", "user"])
    assert values.value("role") == 6

    ms = MasterSecret(gp)
    spec = IssuanceSpec("issuer", "employee", store)
    issuer = Issuer(kp, spec, values)
    recipient = Recipient(spec, ms, values)
    cred = recipient.round3(issuer.round2(recipient.round1(issuer.round0())))

    ids = {"name": Identifier("name", DataType.STRING),
           "role": Identifier("role", DataType.ENUM)}

    def show(constants):
        proof_spec = ProofSpec([
            CLPredicate("issuer", "employee", "badge", ids),
            PrimeEncodePredicate("roles", ids["role"], constants,
                                 PrimeEncodePredicate.AND)], store)
        nonce = Verifier.get_nonce(sp)
        proof = Prover(ms, {"badge": cred}, store).build_proof(proof_spec,
                                                               nonce)
        return Verifier(proof_spec, proof, nonce, store).verify()

    assert show([2, 3])
    with pytest.raises(SchemaError) as excinfo:
        show([2, 5])
    assert 'does not hold' in str(excinfo.value)


def test_role_scenario():
    role_scenario(SystemParameters.testing(), 4)


@pytest.mark.slow
def test_role_scenario_2048():
    role_scenario(SystemParameters.default(), 5)


def test_issue_and_show(setup):
    """A credential from a full issuance supports the full predicate set."""
    spec = IssuanceSpec("issuer", "person", setup.store)
    issuer_values, recipient_values = person_values(setup)
    issuer = Issuer(setup.kp, spec, issuer_values)
    recipient = Recipient(spec, setup.ms, recipient_values, nym_name="shop")
    cred = recipient.round3(issuer.round2(recipient.round1(issuer.round0())))

    ids = {"name": Identifier("name", DataType.STRING, Identifier.REVEALED),
           "role": Identifier("role", DataType.ENUM),
           "age": Identifier("age", DataType.INT),
           "secret": Identifier("secret", DataType.INT)}
    proof_spec = ProofSpec([
        CLPredicate("issuer", "person", "passport", ids),
        PrimeEncodePredicate("not_guest", ids["role"], [5],
                             PrimeEncodePredicate.NOT),
        InequalityPredicate("adult", "issuer", ids["age"], ">=", 18),
        PseudonymPredicate("shop")], setup.store)
    nonce = Verifier.get_nonce(setup.sp)
    proof = Prover(setup.ms, {"passport": cred}, setup.store).build_proof(
        proof_spec, nonce)
    verifier = Verifier(proof_spec, proof, nonce, setup.store)
    assert verifier.verify()
    assert verifier.revealed_values["passport:name"] == \
        cred.attribute("name").value
    assert verifier.revealed_values["Pseudonym:shop"] == \
        setup.ms.get_nym("shop").value
