"""Proof specifications: identifiers and the predicates a proof is built from.

Predicates form a closed set of variants. Each carries a ``kind`` tag and
only the data its proof needs; the prover and verifier dispatch on the
variant class.

Example:
    >>> ident = Identifier("role", DataType.ENUM)
    >>> pred = PrimeEncodePredicate("roles", ident, [2, 3], PrimeEncodePredicate.AND)
    >>> pred.kind
    'enumeration'
"""

import logging

from .structure import DataType, Store
from .utils import SchemaError, DELIMITER, hash_of, to_bn, product

import pytest

log = logging.getLogger(__name__)

MASTER_SECRET_NAME = "master_secret"


class Identifier(object):
    """Named logical value. Every predicate that names the same identifier
    proves a statement about the same secret."""

    UNREVEALED = "unrevealed"
    REVEALED = "revealed"

    def __init__(self, name, data_type=DataType.INT, proof_mode=UNREVEALED):
        if proof_mode not in (Identifier.UNREVEALED, Identifier.REVEALED):
            raise SchemaError("Unknown proof mode: %s" % proof_mode)
        self.name = name
        self.data_type = data_type
        self.proof_mode = proof_mode

    def is_revealed(self):
        return self.proof_mode == Identifier.REVEALED

    def __eq__(self, other):
        return isinstance(other, Identifier) and \
            (self.name, self.data_type, self.proof_mode) == \
            (other.name, other.data_type, other.proof_mode)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash((self.name, self.data_type, self.proof_mode))

    def __repr__(self):
        return "(%s : %s : %s)" % (self.name, self.data_type, self.proof_mode)


class Predicate(object):
    kind = None

    def identifiers(self):
        return []


class CLPredicate(Predicate):
    """Knowledge of a CL signature on a credential, with each attribute
    bound to an identifier."""
    kind = "cl"

    def __init__(self, issuer_pk_id, cred_struct_id, cred_name, att_to_ids):
        self.issuer_pk_id = issuer_pk_id
        self.cred_struct_id = cred_struct_id
        self.cred_name = cred_name
        self.att_to_ids = dict(att_to_ids)

    def identifier(self, att_name):
        return self.att_to_ids.get(att_name)

    @property
    def temp_name(self):
        return self.cred_struct_id + DELIMITER + self.cred_name

    def identifiers(self):
        return list(self.att_to_ids.values())


class CommitmentPredicate(Predicate):
    """Knowledge of the opening of an external commitment, whose messages
    are the given identifiers."""
    kind = "commitment"

    def __init__(self, name, identifiers):
        self.name = name
        self.ids = list(identifiers)

    def identifiers(self):
        return list(self.ids)


class RepresentationPredicate(Predicate):
    """Knowledge of exponents of a public value w.r.t. the given bases."""
    kind = "representation"

    def __init__(self, name, identifiers, bases):
        if len(identifiers) != len(bases):
            raise SchemaError("Representation %s needs one base per "
                              "identifier." % name)
        self.name = name
        self.ids = list(identifiers)
        self.bases = list(bases)

    def identifiers(self):
        return list(self.ids)


class PseudonymPredicate(Predicate):
    """Knowledge of the master secret behind a pseudonym."""
    kind = "pseudonym"

    def __init__(self, name):
        self.name = name


class DomainNymPredicate(Predicate):
    """Knowledge of the master secret behind a domain pseudonym."""
    kind = "domainnym"

    def __init__(self, domain):
        self.domain = domain

    @property
    def name(self):
        return self.domain


class InequalityPredicate(Predicate):
    """first {<, <=, >, >=} second, where second is a constant or a revealed
    identifier."""
    kind = "inequality"

    LT = "<"
    LEQ = "<="
    GT = ">"
    GEQ = ">="
    OPERATORS = (LT, LEQ, GT, GEQ)

    def __init__(self, name, issuer_pk_id, first, operator, second):
        if operator not in InequalityPredicate.OPERATORS:
            raise SchemaError("Inequality operator not implemented: %s"
                              % operator)
        if first.is_revealed():
            raise SchemaError("First argument of %s must not be revealed."
                              % name)
        self.name = name
        self.issuer_pk_id = issuer_pk_id
        self.first = first
        self.operator = operator
        if isinstance(second, Identifier):
            if not second.is_revealed():
                raise SchemaError("Second argument of %s must be a constant "
                                  "or a revealed identifier." % name)
            self.second_id = second
            self.second = None
        else:
            self.second_id = None
            self.second = to_bn(second)

    def identifiers(self):
        ids = [self.first]
        if self.second_id is not None:
            ids.append(self.second_id)
        return ids


class PrimeEncodePredicate(Predicate):
    """Set relation between a prime-encoded attribute and constant primes."""
    kind = "enumeration"

    AND = "and"
    OR = "or"
    NOT = "not"
    OPERATORS = (AND, OR, NOT)

    def __init__(self, name, identifier, constants, operator):
        if operator not in PrimeEncodePredicate.OPERATORS:
            raise SchemaError("Prime encoding operator not implemented: %s"
                              % operator)
        if identifier.is_revealed():
            raise SchemaError("Identifier of %s must not be revealed." % name)
        if not constants:
            raise SchemaError("Prime encoding predicate %s without primes."
                              % name)
        self.name = name
        self.identifier = identifier
        self.constants = [to_bn(c) for c in constants]
        self.operator = operator

    @property
    def m_r(self):
        return product(self.constants)

    def identifiers(self):
        return [self.identifier]


class VerEncPredicate(Predicate):
    """A verifiable encryption of the identifier's value under a trusted
    party's key."""
    kind = "verenc"

    def __init__(self, name, identifier, ve_pk_id, label=None):
        if identifier.is_revealed():
            raise SchemaError("Identifier of %s must not be revealed." % name)
        self.name = name
        self.identifier = identifier
        self.ve_pk_id = ve_pk_id
        self.label = label

    def identifiers(self):
        return [self.identifier]


class MessagePredicate(Predicate):
    """Binds a message into the proof, turning it into a signature."""
    kind = "message"

    def __init__(self, name, message):
        self.name = name
        self.message = message


PREDICATE_KINDS = (CLPredicate, CommitmentPredicate, RepresentationPredicate,
                   PseudonymPredicate, DomainNymPredicate, InequalityPredicate,
                   PrimeEncodePredicate, VerEncPredicate, MessagePredicate)


class ProofSpec(object):
    """Ordered list of predicates over a set of identifiers.

    The order of the predicates fixes the order of the values hashed into
    the challenge. Keys and structures are resolved through the store."""

    def __init__(self, predicates, store, gp=None):
        self.predicates = list(predicates)
        self.store = store
        self.gp = gp
        self.identifier_map = {}
        self.validate()

    def validate(self):
        names = set()
        for pred in self.predicates:
            if not isinstance(pred, PREDICATE_KINDS):
                raise SchemaError("Wrong predicate type: %r" % (pred,))
            name = pred.temp_name if isinstance(pred, CLPredicate) \
                else pred.name
            if name in names:
                raise SchemaError("Duplicate predicate name %s." % name)
            names.add(name)
            for ident in pred.identifiers():
                if ident.name == MASTER_SECRET_NAME:
                    raise SchemaError("Identifier name %s is reserved."
                                      % ident.name)
                other = self.identifier_map.setdefault(ident.name, ident)
                if other != ident:
                    raise SchemaError("Identifier %s declared inconsistently."
                                      % ident.name)

            if isinstance(pred, CLPredicate):
                cred_struct = self.store.get(pred.cred_struct_id)
                for att in cred_struct.attribute_structures:
                    ident = pred.identifier(att.name)
                    if ident is None:
                        raise SchemaError("No identifier for attribute %s "
                                          "declared." % att.name)
                    if ident.data_type != att.data_type:
                        raise SchemaError("Wrong data type: %s <> %s"
                                          % (att.name, ident.name))
                pk = self.store.get(pred.issuer_pk_id)
                cred_struct.check_key(pk)
                if self.gp is None:
                    self.gp = pk.gp
                elif self.gp != pk.gp:
                    raise SchemaError("Inconsistent group parameters.")

        for pred in self.predicates:
            if isinstance(pred, PrimeEncodePredicate):
                self.enum_attribute(pred.identifier)
            if isinstance(pred, (PseudonymPredicate, DomainNymPredicate)) \
                    and self.gp is None:
                raise SchemaError("Pseudonyms need group parameters.")

    def identifiers(self):
        return list(self.identifier_map.values())

    def enum_attribute(self, identifier):
        """The CL predicate and attribute structure an ENUM identifier is
        bound to."""
        if identifier.data_type != DataType.ENUM:
            raise SchemaError("Identifier %s is not prime encoded."
                              % identifier.name)
        for pred in self.predicates:
            if not isinstance(pred, CLPredicate):
                continue
            cred_struct = self.store.get(pred.cred_struct_id)
            for att in cred_struct.attribute_structures:
                if pred.identifier(att.name) == identifier:
                    return pred, att
        raise SchemaError("Identifier %s is not bound to a credential."
                          % identifier.name)

    def system_parameters(self):
        if self.gp is not None:
            return self.gp.sp
        for pred in self.predicates:
            if isinstance(pred, VerEncPredicate):
                return self.store.get(pred.ve_pk_id).sp
            if isinstance(pred, InequalityPredicate):
                return self.store.get(pred.issuer_pk_id).gp.sp
        raise SchemaError("Proof specification does not reference any key.")

    def context(self):
        """Hash of the group parameters and every issuer key in use."""
        values = []
        if self.gp is not None:
            values.extend(self.gp.context_list())
        for pred in self.predicates:
            if isinstance(pred, CLPredicate):
                values.extend(self.store.get(pred.issuer_pk_id).context_list())
        return hash_of(self.system_parameters().l_H, values)

    def __repr__(self):
        lines = ["Proof Specification:", "Identifiers"]
        lines.extend(repr(i) for i in self.identifiers())
        lines.append("Predicates (%d):" % len(self.predicates))
        lines.extend("%s %s" % (p.kind, getattr(p, "name", p.kind))
                     for p in self.predicates)
        return "\n".join(lines)


# --- TESTS ---


def test_identifier():
    a = Identifier("a", DataType.INT)
    b = Identifier("a", DataType.INT, Identifier.REVEALED)
    assert a != b
    assert not a.is_revealed() and b.is_revealed()
    assert a == Identifier("a")

    with pytest.raises(Exception) as excinfo:
        Identifier("x", DataType.INT, "sideways")
    assert 'proof mode' in str(excinfo.value)


def test_predicate_construction():
    ident = Identifier("role", DataType.ENUM)
    pred = PrimeEncodePredicate("pe", ident, [2, 3], PrimeEncodePredicate.AND)
    assert pred.m_r == 6
    assert pred.kind == "enumeration"

    with pytest.raises(Exception) as excinfo:
        PrimeEncodePredicate("pe", ident, [2], "xor")
    assert 'not implemented' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        InequalityPredicate("ip", "pk", Identifier("age"), "!=", 18)
    assert 'not implemented' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        InequalityPredicate("ip", "pk", Identifier("age"), ">=",
                            Identifier("limit"))
    assert 'revealed' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        RepresentationPredicate("rep", [Identifier("x")], [])
    assert 'one base' in str(excinfo.value)


def test_inconsistent_identifiers():
    store = Store()
    a = Identifier("x", DataType.INT)
    b = Identifier("x", DataType.INT, Identifier.REVEALED)
    with pytest.raises(Exception) as excinfo:
        ProofSpec([CommitmentPredicate("c1", [a]),
                   CommitmentPredicate("c2", [b])], store)
    assert 'inconsistently' in str(excinfo.value)


def test_duplicate_names():
    store = Store()
    x = Identifier("x", DataType.INT)
    for preds in [[CommitmentPredicate("c", [x]), CommitmentPredicate("c", [x])],
                  [CommitmentPredicate("c", [x]), MessagePredicate("c", "hi")],
                  [DomainNymPredicate("example.org"),
                   DomainNymPredicate("example.org")]]:
        with pytest.raises(SchemaError) as excinfo:
            ProofSpec(preds, store)
        assert 'Duplicate predicate name' in str(excinfo.value)


def test_reserved_identifier():
    with pytest.raises(SchemaError) as excinfo:
        ProofSpec([CommitmentPredicate("c", [Identifier(MASTER_SECRET_NAME)])],
                  Store())
    assert 'reserved' in str(excinfo.value)
