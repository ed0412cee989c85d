"""Show proofs: a compiler from proof specifications to non-interactive
Sigma protocols.

The prover walks the predicates of a ProofSpec in order. Each predicate
contributes common values (commitments sent along with the proof) and
t-values. The challenge is the hash of the context, all common values, all
t-values, the verifier's nonce and any bound messages. Every identifier gets
one random tilde, shared by all predicates that name it, so that a single
response proves the same secret is used throughout.

The verifier replays the predicates in the same order, recomputes the
t-values from the responses and the negated challenge, and accepts iff the
challenge matches and every response passes its length check.

Example:
    >>> prover = Prover(master_secret, {"id": credential}, store)
    >>> proof = prover.build_proof(spec, nonce)
    >>> Verifier(spec, proof, nonce, store).verify()
    True
"""

import logging

from petlib.bn import Bn

from . import primeencode, inequality
from .dm import MasterSecret, DomNym, MessageToSign, Values, \
    CommitmentOpening, RepresentationOpening, Credential, create_attributes
from .keys import generate_issuer_keypair, generate_ve_keypair
from .params import SystemParameters, GroupParameters
from .predicates import Identifier, CLPredicate, CommitmentPredicate, \
    RepresentationPredicate, PseudonymPredicate, DomainNymPredicate, \
    InequalityPredicate, PrimeEncodePredicate, VerEncPredicate, \
    MessagePredicate, ProofSpec, MASTER_SECRET_NAME
from .structure import Store, AttributeStructure, CredentialStructure, \
    IssuanceMode, DataType
from .ve import VerifiableEncryption, VerifiableEncryptionOpening, \
    ciphertext_hash, label_value, abs_n2, decrypt
from .utils import SchemaError, VerificationError, DELIMITER, TWO, expo, \
    multi_exp, pow2, random_bits, random_symmetric, compute_challenge, \
    compute_response, in_interval, is_unit, choose_e, log_bn

import pytest

log = logging.getLogger(__name__)


class Proof(object):
    """The challenge, the s-values and common values keyed by name, and the
    verifiable encryptions that travel with the proof."""

    def __init__(self, challenge, s_values, common=None, ver_encs=None):
        self.challenge = challenge
        self.s_values = dict(s_values)
        self.common = dict(common or {})
        self.ver_encs = dict(ver_encs or {})

    def __eq__(self, other):
        return isinstance(other, Proof) and \
            self.challenge == other.challenge and \
            self.s_values == other.s_values and \
            self.common == other.common and \
            self.ver_encs == other.ver_encs

    def __ne__(self, other):
        return not self.__eq__(other)


def _sname(name, label):
    return name + DELIMITER + label


# -- Per predicate state between commitment and response


class CLState(object):
    __slots__ = ("commons", "tvalues", "name", "e_prime", "e_tilde",
                 "v_prime", "v_tilde")

    def __init__(self, name, A_prime, t, e_prime, e_tilde, v_prime, v_tilde):
        self.name = name
        self.commons = [(name, A_prime)]
        self.tvalues = [t]
        self.e_prime = e_prime
        self.e_tilde = e_tilde
        self.v_prime = v_prime
        self.v_tilde = v_tilde

    def respond(self, c):
        return {
            _sname(self.name, "eHat"): compute_response(self.e_tilde, c,
                                                        self.e_prime),
            _sname(self.name, "vHat"): compute_response(self.v_tilde, c,
                                                        self.v_prime),
        }


class RandomnessState(object):
    """State of predicates whose only private extra is one randomness r."""
    __slots__ = ("commons", "tvalues", "name", "r", "r_tilde")

    def __init__(self, name, commons, tvalues, r=None, r_tilde=None):
        self.name = name
        self.commons = commons
        self.tvalues = tvalues
        self.r = r
        self.r_tilde = r_tilde

    def respond(self, c):
        if self.r is None:
            return {}
        return {_sname(self.name, "rHat"):
                compute_response(self.r_tilde, c, self.r)}


# -- Prover side


def commit_cl(prover, pred):
    sp = prover.sp
    pk = prover.store.get(pred.issuer_pk_id)
    cred = prover.credential(pred)
    n = pk.n

    r_A = random_bits(sp.l_n + sp.l_Phi)
    A_prime = cred.A.mod_mul(expo(pk.S, r_A, n), n)
    v_prime = cred.v - cred.e * r_A
    e_prime = cred.e - pow2(sp.l_e - 1)

    e_tilde = random_symmetric(sp.l_prime_e + sp.l_Phi + sp.l_H)
    v_tilde = random_symmetric(sp.l_v + sp.l_Phi + sp.l_H)
    pairs = [(A_prime, e_tilde), (pk.R[0], prover.master_tilde()),
             (pk.S, v_tilde)]
    for att in cred.attributes:
        ident = pred.identifier(att.name)
        if not ident.is_revealed():
            pairs.append((pk.R[att.key_index], prover.tilde(ident)))
    t = multi_exp(pairs, n)
    return CLState(pred.temp_name, A_prime, t, e_prime, e_tilde, v_prime,
                   v_tilde)


def commit_commitment(prover, pred):
    sp = prover.sp
    opening = prover.opening(prover.commitment_openings, pred.name)
    if len(opening.bases) != len(pred.ids):
        raise SchemaError("Commitment %s has %d messages, predicate names %d."
                          % (pred.name, len(opening.bases), len(pred.ids)))
    r_tilde = random_symmetric(sp.l_n + 2 * sp.l_Phi + sp.l_H)
    pairs = [(base, prover.tilde(ident))
             for base, ident in zip(opening.bases, pred.ids)
             if not ident.is_revealed()]
    t = multi_exp(pairs + [(opening.S, r_tilde)], opening.n)
    return RandomnessState(pred.name, [(pred.name, opening.value)], [t],
                           opening.r, r_tilde)


def commit_representation(prover, pred):
    opening = prover.opening(prover.representation_openings, pred.name)
    if opening.bases != pred.bases:
        raise SchemaError("Bases of representation %s do not match the "
                          "predicate." % pred.name)
    pairs = [(base, prover.tilde(ident))
             for base, ident in zip(pred.bases, pred.ids)
             if not ident.is_revealed()]
    t = multi_exp(pairs, opening.modulus)
    return RandomnessState(pred.name, [(pred.name, opening.value)], [t])


def commit_pseudonym(prover, pred):
    sp = prover.sp
    gp = prover.spec.gp
    nym = prover.master_secret.get_nym(pred.name)
    r_tilde = random_symmetric(sp.l_rho + sp.l_Phi + sp.l_H)
    t = gp.commitment(prover.master_tilde(), r_tilde)
    return RandomnessState(pred.name, [(pred.name, nym.value)], [t],
                           nym.r, r_tilde)


def commit_domain_nym(prover, pred):
    gp = prover.spec.gp
    dom_nym = prover.master_secret.get_dom_nym(pred.domain)
    t = expo(dom_nym.g_dom, prover.master_tilde(), gp.Gamma)
    return RandomnessState(pred.domain, [(pred.domain, dom_nym.value)], [t])


def commit_verenc(prover, pred):
    sp = prover.sp
    pk = prover.store.get(pred.ve_pk_id)
    opening = prover.ve_openings.get(pred.name)
    if opening is None:
        opening = VerifiableEncryptionOpening(
            pk, prover.value(pred.identifier), pred.label)
    elif label_value(sp, opening.label) != label_value(sp, pred.label):
        raise SchemaError("Label of encryption %s does not match the "
                          "predicate." % pred.name)
    ve = opening.encryption
    prover.ver_encs[pred.name] = ve

    n2 = pk.n2
    r_tilde = random_symmetric(pk.n.num_bits() + sp.l_Phi + sp.l_H)
    two_r = TWO * r_tilde
    u_tilde = expo(pk.g, two_r, n2)
    e_tilde = multi_exp([(pk.y1, two_r),
                         (pk.h, TWO * prover.tilde(pred.identifier))], n2)
    v_tilde = expo(pk.y2.mod_mul(expo(pk.y3, ve.hash, n2), n2), two_r, n2)
    # The ciphertext travels in Proof.ver_encs, not as named common values
    commons = [(None, ve.u), (None, ve.e), (None, ve.v)]
    return RandomnessState(pred.name, commons, [u_tilde, e_tilde, v_tilde],
                           opening.r, r_tilde)


def commit_message(prover, pred):
    return RandomnessState(pred.name, [], [])


PROVER_STEPS = {
    CLPredicate: commit_cl,
    CommitmentPredicate: commit_commitment,
    RepresentationPredicate: commit_representation,
    PseudonymPredicate: commit_pseudonym,
    DomainNymPredicate: commit_domain_nym,
    InequalityPredicate: inequality.commit,
    PrimeEncodePredicate: primeencode.commit,
    VerEncPredicate: commit_verenc,
    MessagePredicate: commit_message,
}


def bound_messages(spec, messages, error):
    """Messages of the message predicates, keyed by predicate name. Texts
    supplied by the caller must match the predicate up to case."""
    messages = messages or {}
    bound = {}
    for pred in spec.predicates:
        if not isinstance(pred, MessagePredicate):
            continue
        msg = messages.get(pred.name)
        if msg is not None and msg.message.lower() != pred.message.lower():
            raise error("Message %s does not match the predicate." % pred.name)
        bound[pred.name] = MessageToSign(pred.message)
    return bound


class Prover(object):
    """Builds proofs from the holder's master secret, credentials and the
    openings of any external commitments, representations and encryptions.

    A prover accumulates state during build_proof and must not be shared by
    proofs built concurrently."""

    def __init__(self, master_secret, credentials, store,
                 commitment_openings=None, representation_openings=None,
                 ve_openings=None):
        self.master_secret = master_secret
        self.credentials = dict(credentials)
        self.store = store
        self.commitment_openings = dict(commitment_openings or {})
        self.representation_openings = dict(representation_openings or {})
        self.ve_openings = dict(ve_openings or {})

    def credential(self, pred):
        try:
            cred = self.credentials[pred.cred_name]
        except KeyError:
            raise SchemaError("No credential named %s." % pred.cred_name)
        if cred.cred_struct_id != pred.cred_struct_id:
            raise SchemaError("Credential %s does not have structure %s."
                              % (pred.cred_name, pred.cred_struct_id))
        return cred

    @staticmethod
    def opening(openings, name):
        try:
            return openings[name]
        except KeyError:
            raise SchemaError("No opening for %s." % name)

    def _bind(self, ident, value):
        current = self.values.setdefault(ident.name, value)
        if current != value:
            log.warning("Identifier %s is bound to two different values.",
                        ident.name)

    def _bind_identifiers(self):
        for pred in self.spec.predicates:
            if isinstance(pred, CLPredicate):
                cred = self.credential(pred)
                for att in cred.attributes:
                    self._bind(pred.identifier(att.name), att.value)
            elif isinstance(pred, CommitmentPredicate):
                opening = self.opening(self.commitment_openings, pred.name)
                for ident, m in zip(pred.ids, opening.messages):
                    self._bind(ident, m)
            elif isinstance(pred, RepresentationPredicate):
                opening = self.opening(self.representation_openings,
                                       pred.name)
                for ident, x in zip(pred.ids, opening.exponents):
                    self._bind(ident, x)
            elif isinstance(pred, VerEncPredicate) and \
                    pred.name in self.ve_openings:
                self._bind(pred.identifier, self.ve_openings[pred.name].m)

    def value(self, ident):
        try:
            return self.values[ident.name]
        except KeyError:
            raise SchemaError("No value for identifier %s." % ident.name)

    def tilde(self, ident):
        """The identifier's randomness, drawn once per proof."""
        if ident.name not in self.tildes:
            sp = self.sp
            self.tildes[ident.name] = random_symmetric(sp.l_m + sp.l_Phi +
                                                       sp.l_H)
        return self.tildes[ident.name]

    def master_tilde(self):
        return self.tilde(Identifier(MASTER_SECRET_NAME))

    def build_proof(self, spec, nonce, messages=None):
        """Returns a Proof of every predicate of spec under the nonce."""
        self.spec = spec
        self.sp = spec.system_parameters()
        self.values = {}
        self.tildes = {}
        self.ver_encs = {}
        self._bind_identifiers()
        self.values[MASTER_SECRET_NAME] = self.master_secret.value
        for ident in spec.identifiers():
            self.value(ident)
        msgs = bound_messages(spec, messages, SchemaError)

        states = [PROVER_STEPS[type(pred)](self, pred)
                  for pred in spec.predicates]

        common, commons, tvalues = {}, [], []
        for state in states:
            for name, value in state.commons:
                if name is not None:
                    common[name] = value
                commons.append(value)
            tvalues.extend(state.tvalues)
        c = compute_challenge(self.sp, spec.context(), commons + tvalues,
                              nonce, msgs)
        log.debug("Challenge: %s", log_bn(c))

        s_values = {}
        for state in states:
            s_values.update(state.respond(c))
        for name, tilde in self.tildes.items():
            s_values[name] = compute_response(tilde, c, self.values[name])
        for ident in spec.identifiers():
            if ident.is_revealed():
                s_values[ident.name] = self.values[ident.name]

        return Proof(c, s_values, common, self.ver_encs)


# -- Verifier side


def verify_cl(verifier, pred):
    sp = verifier.sp
    pk = verifier.store.get(pred.issuer_pk_id)
    cred_struct = verifier.store.get(pred.cred_struct_id)
    n = pk.n
    name = pred.temp_name

    A_prime = verifier.common(name, n)
    e_hat = verifier.s_value(_sname(name, "eHat"),
                             sp.l_prime_e + sp.l_Phi + sp.l_H + 1)
    v_hat = verifier.s_value(_sname(name, "vHat"))

    denom = expo(A_prime, pow2(sp.l_e - 1), n)
    pairs = [(A_prime, e_hat), (pk.R[0], verifier.master_hat()),
             (pk.S, v_hat)]
    for att in cred_struct.attribute_structures:
        ident = pred.identifier(att.name)
        if ident.is_revealed():
            m = verifier.ident_hat(ident)
            denom = denom.mod_mul(expo(pk.R[att.key_index], m, n), n)
            verifier.reveal(_sname(pred.cred_name, att.name), m)
        else:
            pairs.append((pk.R[att.key_index], verifier.ident_hat(ident)))
    Z_prime = pk.Z.mod_mul(denom.mod_inverse(n), n)
    t_hat = multi_exp(pairs, n, expo(Z_prime, -verifier.challenge, n))
    return [A_prime], [t_hat]


def verify_commitment(verifier, pred):
    sp = verifier.sp
    comm = verifier.lookup(verifier.commitments, pred.name, "commitment")
    C = verifier.common(pred.name, comm.n)
    if C != comm.value:
        raise VerificationError("Commitment %s does not match." % pred.name)
    if len(comm.bases) != len(pred.ids):
        raise VerificationError("Commitment %s has the wrong number of "
                                "bases." % pred.name)
    n = comm.n

    r_hat = verifier.s_value(_sname(pred.name, "rHat"),
                             sp.l_n + 2 * sp.l_Phi + sp.l_H + 1)
    denom = Bn(1)
    pairs = [(comm.S, r_hat)]
    for base, ident in zip(comm.bases, pred.ids):
        if ident.is_revealed():
            denom = denom.mod_mul(expo(base, verifier.ident_hat(ident), n), n)
        else:
            pairs.append((base, verifier.ident_hat(ident)))
    C_prime = C.mod_mul(denom.mod_inverse(n), n)
    t_hat = multi_exp(pairs, n, expo(C_prime, -verifier.challenge, n))
    return [C], [t_hat]


def verify_representation(verifier, pred):
    rep = verifier.lookup(verifier.representations, pred.name,
                          "representation")
    if rep.bases != pred.bases:
        raise VerificationError("Bases of representation %s do not match."
                                % pred.name)
    R = verifier.common(pred.name, rep.modulus)
    if R != rep.value:
        raise VerificationError("Representation %s does not match."
                                % pred.name)
    mod = rep.modulus

    denom = Bn(1)
    pairs = []
    for base, ident in zip(pred.bases, pred.ids):
        if ident.is_revealed():
            denom = denom.mod_mul(expo(base, verifier.ident_hat(ident), mod),
                                  mod)
        else:
            pairs.append((base, verifier.ident_hat(ident)))
    R_prime = R.mod_mul(denom.mod_inverse(mod), mod)
    t_hat = multi_exp(pairs, mod, expo(R_prime, -verifier.challenge, mod))
    return [R], [t_hat]


def verify_pseudonym(verifier, pred):
    gp = verifier.spec.gp
    nym = verifier.common(pred.name, gp.Gamma)
    r_hat = verifier.s_value(_sname(pred.name, "rHat"))
    t_hat = multi_exp([(gp.g, verifier.master_hat()), (gp.h, r_hat)],
                      gp.Gamma, expo(nym, -verifier.challenge, gp.Gamma))
    verifier.reveal(_sname("Pseudonym", pred.name), nym)
    return [nym], [t_hat]


def verify_domain_nym(verifier, pred):
    gp = verifier.spec.gp
    dom_nym = verifier.common(pred.domain, gp.Gamma)
    g_dom = DomNym.domain_base(gp, pred.domain)
    t_hat = multi_exp([(g_dom, verifier.master_hat())], gp.Gamma,
                      expo(dom_nym, -verifier.challenge, gp.Gamma))
    verifier.reveal(_sname("DomainPseudonym", pred.domain), dom_nym)
    return [dom_nym], [t_hat]


def verify_verenc(verifier, pred):
    sp = verifier.sp
    pk = verifier.store.get(pred.ve_pk_id)
    ve = verifier.ver_enc(pred.name)
    n2 = pk.n2
    for value in (ve.u, ve.e, ve.v):
        if not is_unit(value, n2):
            raise VerificationError("Encryption %s is not in the group."
                                    % pred.name)

    if ve.label != label_value(sp, pred.label):
        raise VerificationError("Label of encryption %s does not match."
                                % pred.name)
    if ve.hash != ciphertext_hash(sp, ve.u, ve.e, ve.label):
        raise VerificationError("Hash of encryption %s is wrong." % pred.name)
    if ve.v != abs_n2(ve.v, n2):
        raise VerificationError("Encryption %s is not canonical." % pred.name)

    two_r_hat = TWO * verifier.s_value(_sname(pred.name, "rHat"))
    m_hat = verifier.ident_hat(pred.identifier)
    neg_2c = -TWO * verifier.challenge
    u_hat = multi_exp([(pk.g, two_r_hat)], n2, expo(ve.u, neg_2c, n2))
    e_hat = multi_exp([(pk.y1, two_r_hat), (pk.h, TWO * m_hat)], n2,
                      expo(ve.e, neg_2c, n2))
    v_hat = multi_exp([(pk.y2.mod_mul(expo(pk.y3, ve.hash, n2), n2),
                        two_r_hat)], n2, expo(ve.v, neg_2c, n2))
    return [ve.u, ve.e, ve.v], [u_hat, e_hat, v_hat]


def verify_message(verifier, pred):
    return [], []


VERIFIER_STEPS = {
    CLPredicate: verify_cl,
    CommitmentPredicate: verify_commitment,
    RepresentationPredicate: verify_representation,
    PseudonymPredicate: verify_pseudonym,
    DomainNymPredicate: verify_domain_nym,
    InequalityPredicate: inequality.verify,
    PrimeEncodePredicate: primeencode.verify,
    VerEncPredicate: verify_verenc,
    MessagePredicate: verify_message,
}


class Verifier(object):
    """Checks a proof against a proof specification and a nonce.

    Commitments, representations and encryptions referenced by predicates
    are supplied by the caller; encryptions default to those carried by the
    proof."""

    def __init__(self, proof_spec, proof, nonce, store, messages=None,
                 commitments=None, representations=None, ver_encs=None):
        self.spec = proof_spec
        self.proof = proof
        self.nonce = nonce
        self.store = store
        self.messages = messages
        self.commitments = dict(commitments or {})
        self.representations = dict(representations or {})
        self.ver_encs = ver_encs
        self.sp = proof_spec.system_parameters()
        self._revealed = {}

    @staticmethod
    def get_nonce(sp):
        """A fresh nonce for the prover."""
        return random_symmetric(sp.l_m)

    @property
    def challenge(self):
        return self.proof.challenge

    @property
    def revealed_values(self):
        return dict(self._revealed)

    def reveal(self, name, value):
        self._revealed[name] = value

    @staticmethod
    def lookup(items, name, kind):
        try:
            return items[name]
        except KeyError:
            raise VerificationError("No %s named %s supplied." % (kind, name))

    def common(self, name, modulus):
        """The common value for name, which must be a unit mod modulus."""
        try:
            value = self.proof.common[name]
        except KeyError:
            raise VerificationError("Common value %s missing." % name)
        if not is_unit(value, modulus):
            raise VerificationError("Common value %s is not a unit." % name)
        return value

    def s_value(self, name, bits=None):
        """The response for name, checked against 2^bits when bits is
        given."""
        try:
            value = self.proof.s_values[name]
        except KeyError:
            raise VerificationError("Response %s missing." % name)
        if not isinstance(value, Bn):
            raise VerificationError("Response %s is not an integer." % name)
        if bits is not None and not in_interval(value, bits):
            raise VerificationError("Response %s is out of range." % name)
        return value

    def ident_hat(self, ident):
        """The response of an identifier, or its value if revealed."""
        if ident.is_revealed():
            return self.s_value(ident.name)
        sp = self.sp
        return self.s_value(ident.name, sp.l_m + sp.l_Phi + sp.l_H + 1)

    def value(self, ident):
        return self.ident_hat(ident)

    def master_hat(self):
        return self.ident_hat(Identifier(MASTER_SECRET_NAME))

    def ver_enc(self, name):
        if self.ver_encs is not None:
            ve = self.lookup(self.ver_encs, name, "encryption")
            if self.proof.ver_encs.get(name, ve) != ve:
                raise VerificationError("Encryption %s differs from the one "
                                        "in the proof." % name)
            return ve
        return self.lookup(self.proof.ver_encs, name, "encryption")

    def _verify(self):
        msgs = bound_messages(self.spec, self.messages, VerificationError)
        if not isinstance(self.challenge, Bn):
            raise VerificationError("Challenge is not an integer.")
        commons, hats = [], []
        for pred in self.spec.predicates:
            c_values, t_hats = VERIFIER_STEPS[type(pred)](self, pred)
            commons.extend(c_values)
            hats.extend(t_hats)
        c = compute_challenge(self.sp, self.spec.context(), commons + hats,
                              self.nonce, msgs)
        if c != self.challenge:
            raise VerificationError("Challenge does not match.")

    def verify(self):
        """True iff every predicate of the proof holds."""
        self._revealed = {}
        try:
            self._verify()
        except VerificationError as ex:
            log.warning("Proof rejected: %s", ex)
            self._revealed = {}
            return False
        log.info("Proof accepted (%d predicates).", len(self.spec.predicates))
        return True


# --- TESTS ---


def sign_credential(kp, master_secret, cred_struct_id, cred_struct, values):
    """CL signature computed directly with the issuer's private key."""
    pk, sk = kp.public_key, kp.private_key
    sp = pk.gp.sp
    e = choose_e(sp)
    v = pow2(sp.l_v - 1) + random_bits(sp.l_v - 1)
    attributes = create_attributes(cred_struct, values)
    pairs = [(pk.S, v), (pk.R[0], master_secret.value)]
    pairs += [(pk.R[att.key_index], att.value) for att in attributes]
    Q = pk.Z.mod_mul(multi_exp(pairs, pk.n).mod_inverse(pk.n), pk.n)
    A = Q.mod_pow(e.mod_inverse(sk.order()), pk.n)
    return Credential("issuer", cred_struct_id, A, e, v, attributes)


class Setup(object):
    pass


@pytest.fixture(scope="module")
def setup():
    s = Setup()
    s.sp = SystemParameters.testing()
    s.gp = GroupParameters.generate(s.sp)
    s.kp = generate_issuer_keypair(s.gp, 4)
    s.store = Store()
    s.store.add("issuer", s.kp.public_key)

    name = AttributeStructure("name", 1, IssuanceMode.KNOWN, DataType.STRING)
    role = AttributeStructure("role", 2, IssuanceMode.KNOWN, DataType.ENUM)
    role.set_prime_factors({"admin": 2, "user": 3, "guest": 5})
    age = AttributeStructure("age", 3, IssuanceMode.HIDDEN, DataType.INT)
    s.role = role
    s.cred_struct = CredentialStructure([name, role, age])
    s.store.add("person", s.cred_struct)

    s.ms = MasterSecret(s.gp)
    values = Values(s.sp)
    values.add("name", "Alice")
    values.add_enum(role, ["admin", "user"])
    values.add("age", 30)
    s.cred = sign_credential(s.kp, s.ms, "person", s.cred_struct, values)

    s.ve_kp = generate_ve_keypair(s.sp)
    s.store.add("trustee", s.ve_kp.public_key)
    return s


def ids(reveal_name=False):
    mode = Identifier.REVEALED if reveal_name else Identifier.UNREVEALED
    return {"name": Identifier("id_name", DataType.STRING, mode),
            "role": Identifier("id_role", DataType.ENUM),
            "age": Identifier("id_age", DataType.INT)}


def cl(att_ids, cred_name="id"):
    return CLPredicate("issuer", "person", cred_name, att_ids)


def prove_and_verify(setup, preds, prover_kw=None, verifier_kw=None):
    spec = ProofSpec(preds, setup.store)
    nonce = Verifier.get_nonce(setup.sp)
    prover = Prover(setup.ms, {"id": setup.cred}, setup.store,
                    **(prover_kw or {}))
    proof = prover.build_proof(spec, nonce)
    verifier = Verifier(spec, proof, nonce, setup.store, **(verifier_kw or {}))
    return verifier.verify(), proof, verifier


def test_signature(setup):
    assert setup.cred.verify_signature(setup.kp.public_key, setup.ms)


def test_cl_proof(setup):
    ok, proof, verifier = prove_and_verify(setup, [cl(ids())])
    assert ok
    assert verifier.revealed_values == {}


def test_cl_reveal(setup):
    ok, proof, verifier = prove_and_verify(setup, [cl(ids(True))])
    assert ok
    assert verifier.revealed_values["id:name"] == \
        setup.cred.attribute("name").value


def test_wrong_nonce(setup):
    spec = ProofSpec([cl(ids())], setup.store)
    proof = Prover(setup.ms, {"id": setup.cred}, setup.store).build_proof(
        spec, Bn(1))
    assert not Verifier(spec, proof, Bn(2), setup.store).verify()


def test_bit_flips(setup):
    att_ids = ids()
    preds = [cl(att_ids),
             PrimeEncodePredicate("roles", att_ids["role"], [2, 3],
                                  PrimeEncodePredicate.AND)]
    ok, proof, _ = prove_and_verify(setup, preds)
    assert ok
    spec = ProofSpec(preds, setup.store)
    nonce = Bn(42)
    proof = Prover(setup.ms, {"id": setup.cred}, setup.store).build_proof(
        spec, nonce)

    for name in proof.s_values:
        flipped = Proof(proof.challenge, proof.s_values, proof.common)
        flipped.s_values[name] = proof.s_values[name] + 1
        assert not Verifier(spec, flipped, nonce, setup.store).verify()

    for name in proof.common:
        flipped = Proof(proof.challenge, proof.s_values, proof.common)
        flipped.common[name] = proof.common[name] + 1
        assert not Verifier(spec, flipped, nonce, setup.store).verify()

    flipped = Proof(proof.challenge + 1, proof.s_values, proof.common)
    assert not Verifier(spec, flipped, nonce, setup.store).verify()


def test_length_check(setup):
    """A response outside its interval is rejected before any equation."""
    att_ids = ids()
    spec = ProofSpec([cl(att_ids)], setup.store)
    proof = Prover(setup.ms, {"id": setup.cred}, setup.store).build_proof(
        spec, Bn(7))
    sp = setup.sp
    verifier = Verifier(spec, proof, Bn(7), setup.store)
    proof.s_values["id_age"] = pow2(sp.l_m + sp.l_Phi + sp.l_H + 1)
    with pytest.raises(VerificationError) as excinfo:
        verifier._verify()
    assert 'out of range' in str(excinfo.value)
    assert not verifier.verify()


def test_malformed_values(setup):
    """Values outside the group are rejected, never raised."""
    att_ids = ids()
    preds = [cl(att_ids),
             PrimeEncodePredicate("roles", att_ids["role"], [2],
                                  PrimeEncodePredicate.AND),
             InequalityPredicate("adult", "issuer", att_ids["age"], ">=", 18),
             PseudonymPredicate("shop"),
             VerEncPredicate("escrow", att_ids["age"], "trustee")]
    spec = ProofSpec(preds, setup.store)
    proof = Prover(setup.ms, {"id": setup.cred}, setup.store).build_proof(
        spec, Bn(9))
    assert Verifier(spec, proof, Bn(9), setup.store).verify()
    n = setup.kp.public_key.n

    for name in ["person:id", "roles", "adult:0", "adult:4", "shop"]:
        for bad in [Bn(0), -Bn(1), n * 2, "spam"]:
            broken = Proof(proof.challenge, proof.s_values, proof.common,
                           proof.ver_encs)
            broken.common[name] = bad
            verifier = Verifier(spec, broken, Bn(9), setup.store)
            with pytest.raises(VerificationError) as excinfo:
                verifier._verify()
            assert 'Common value %s' % name in str(excinfo.value)
            assert not verifier.verify()

    ve = proof.ver_encs["escrow"]
    broken = Proof(proof.challenge, proof.s_values, proof.common,
                   {"escrow": VerifiableEncryption(Bn(0), ve.e, ve.v,
                                                   ve.label, ve.hash)})
    assert not Verifier(spec, broken, Bn(9), setup.store).verify()

    broken = Proof(proof.challenge, proof.s_values, proof.common,
                   proof.ver_encs)
    broken.s_values["id_age"] = "spam"
    assert not Verifier(spec, broken, Bn(9), setup.store).verify()
    broken = Proof("spam", proof.s_values, proof.common, proof.ver_encs)
    assert not Verifier(spec, broken, Bn(9), setup.store).verify()


def test_prime_encoding(setup):
    att_ids = ids()
    role = att_ids["role"]
    for constants, op in [([2, 3], PrimeEncodePredicate.AND),
                          ([2], PrimeEncodePredicate.AND),
                          ([5], PrimeEncodePredicate.NOT),
                          ([5, 3], PrimeEncodePredicate.OR),
                          ([5, 2], PrimeEncodePredicate.OR)]:
        pred = PrimeEncodePredicate("pe", role, constants, op)
        ok, _, _ = prove_and_verify(setup, [cl(att_ids), pred])
        assert ok


def test_prime_encoding_does_not_hold(setup):
    att_ids = ids()
    role = att_ids["role"]
    for constants, op in [([2, 5], PrimeEncodePredicate.AND),
                          ([2], PrimeEncodePredicate.NOT),
                          ([5], PrimeEncodePredicate.OR)]:
        pred = PrimeEncodePredicate("pe", role, constants, op)
        with pytest.raises(SchemaError) as excinfo:
            prove_and_verify(setup, [cl(att_ids), pred])
        assert 'does not hold' in str(excinfo.value)


def test_duplicate_predicate_names(setup):
    att_ids = ids()
    role = att_ids["role"]
    for preds in [[cl(att_ids),
                   PrimeEncodePredicate("pe", role, [2],
                                        PrimeEncodePredicate.AND),
                   PrimeEncodePredicate("pe", role, [3],
                                        PrimeEncodePredicate.AND)],
                  [cl(att_ids), cl(att_ids)]]:
        with pytest.raises(SchemaError) as excinfo:
            prove_and_verify(setup, preds)
        assert 'Duplicate predicate name' in str(excinfo.value)

    preds = [cl(att_ids),
             PrimeEncodePredicate("pe2", role, [2], PrimeEncodePredicate.AND),
             PrimeEncodePredicate("pe3", role, [3], PrimeEncodePredicate.AND)]
    ok, _, _ = prove_and_verify(setup, preds)
    assert ok


def test_inequality(setup):
    att_ids = ids()
    age = att_ids["age"]
    for op, bound in [(">=", 18), (">", 29), ("<", 65), ("<=", 30),
                      (">=", 30)]:
        pred = InequalityPredicate("ineq", "issuer", age, op, bound)
        ok, _, _ = prove_and_verify(setup, [cl(att_ids), pred])
        assert ok

    pred = InequalityPredicate("ineq", "issuer", age, "<", 30)
    with pytest.raises(SchemaError) as excinfo:
        prove_and_verify(setup, [cl(att_ids), pred])
    assert 'does not hold' in str(excinfo.value)


def test_equality_linking(setup):
    """Two credentials linked through one identifier verify only when they
    carry the same value."""
    att_ids = ids()
    values = Values(setup.sp)
    values.add("name", "Alice")
    values.add_enum(setup.role, ["guest"])
    values.add("age", 30)
    same = sign_credential(setup.kp, setup.ms, "person", setup.cred_struct,
                           values)
    values = Values(setup.sp)
    values.add("name", "Alice")
    values.add_enum(setup.role, ["guest"])
    values.add("age", 31)
    other = sign_credential(setup.kp, setup.ms, "person", setup.cred_struct,
                            values)

    second_ids = {"name": Identifier("id2_name", DataType.STRING),
                  "role": Identifier("id2_role", DataType.ENUM),
                  "age": att_ids["age"]}
    spec = ProofSpec([cl(att_ids), cl(second_ids, "second")], setup.store)
    for cred, expected in [(same, True), (other, False)]:
        prover = Prover(setup.ms, {"id": setup.cred, "second": cred},
                        setup.store)
        proof = prover.build_proof(spec, Bn(3))
        assert Verifier(spec, proof, Bn(3), setup.store).verify() == expected


def test_commitment_and_representation(setup):
    att_ids = ids()
    pk = setup.kp.public_key
    opening = CommitmentOpening.create(pk, setup.cred.attribute("age").value)
    rep = RepresentationOpening([pk.Z, pk.S], [30, 12345], pk.n, "rep")
    preds = [cl(att_ids),
             CommitmentPredicate("comm", [att_ids["age"]]),
             RepresentationPredicate("rep", [att_ids["age"],
                                             Identifier("x")],
                                     [pk.Z, pk.S])]
    ok, _, _ = prove_and_verify(
        setup, preds,
        dict(commitment_openings={"comm": opening},
             representation_openings={"rep": rep}),
        dict(commitments={"comm": opening.commitment()},
             representations={"rep": rep.representation()}))
    assert ok

    ok, _, _ = prove_and_verify(
        setup, preds,
        dict(commitment_openings={"comm": opening},
             representation_openings={"rep": rep}),
        dict(representations={"rep": rep.representation()}))
    assert not ok


def test_pseudonyms(setup):
    preds = [cl(ids()), PseudonymPredicate("shop"),
             DomainNymPredicate("example.org")]
    ok, proof, verifier = prove_and_verify(setup, preds)
    assert ok
    revealed = verifier.revealed_values
    assert revealed["Pseudonym:shop"] == setup.ms.get_nym("shop").value
    assert revealed["DomainPseudonym:example.org"] == \
        setup.ms.get_dom_nym("example.org").value


def test_verifiable_encryption(setup):
    att_ids = ids()
    preds = [cl(att_ids),
             VerEncPredicate("escrow", att_ids["age"], "trustee", "audit")]
    ok, proof, _ = prove_and_verify(setup, preds)
    assert ok
    assert decrypt(setup.ve_kp.private_key, proof.ver_encs["escrow"]) == 30

    pk = setup.ve_kp.public_key
    wrong = VerifiableEncryptionOpening(pk, 31, "audit")
    ok, _, _ = prove_and_verify(setup, preds,
                                dict(ve_openings={"escrow": wrong}))
    assert not ok


def test_message(setup):
    spec = ProofSpec([cl(ids()), MessagePredicate("terms", "I agree")],
                     setup.store)
    proof = Prover(setup.ms, {"id": setup.cred}, setup.store).build_proof(
        spec, Bn(5))
    assert Verifier(spec, proof, Bn(5), setup.store).verify()
    assert Verifier(spec, proof, Bn(5), setup.store,
                    messages={"terms": MessageToSign("I AGREE")}).verify()
    assert not Verifier(spec, proof, Bn(5), setup.store,
                        messages={"terms": MessageToSign("I refuse")}).verify()
