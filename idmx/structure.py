"""Credential schemas: attribute structures, credential structures, update
specifications, and the lookup store that resolves them by location.

Example:
    >>> role = AttributeStructure("role", 2, IssuanceMode.KNOWN, DataType.ENUM)
    >>> role.set_prime_factors({"admin": 2, "user": 3, "guest": 5})
    >>> int(role.encode_enum(["admin", "user"]))
    6
"""

import logging

from petlib.bn import Bn

from .utils import SchemaError, ProtocolError, product, to_bn

import pytest

log = logging.getLogger(__name__)


class IssuanceMode(object):
    """Who knows an attribute value at issuance time."""
    KNOWN = "known"
    COMMITTED = "committed"
    HIDDEN = "hidden"

    ALL = (KNOWN, COMMITTED, HIDDEN)


class DataType(object):
    INT = "int"
    STRING = "string"
    EPOCH = "epoch"
    ENUM = "enum"

    ALL = (INT, STRING, EPOCH, ENUM)


class Store(object):
    """Explicit lookup of keys, credential structures and update
    specifications by location. Passed by reference to every operation that
    needs to resolve a location."""

    def __init__(self):
        self._items = {}

    def add(self, location, obj):
        if location in self._items and self._items[location] is not obj:
            raise ProtocolError("Location %s already in use." % location)
        self._items[location] = obj
        return location

    def get(self, location):
        try:
            return self._items[location]
        except KeyError:
            raise ProtocolError("Nothing stored at location %s." % location)

    def __contains__(self, location):
        return location in self._items


class AttributeStructure(object):
    """Name, key index, issuance mode and data type of one attribute.

    ENUM attributes carry a write-once table mapping value names to primes;
    a held subset is encoded as the product of its primes."""

    def __init__(self, name, key_index, issuance_mode, data_type):
        if issuance_mode not in IssuanceMode.ALL:
            raise SchemaError("Unknown issuance mode: %s" % issuance_mode)
        if data_type not in DataType.ALL:
            raise SchemaError("Unknown data type: %s" % data_type)
        if key_index < 1:
            raise SchemaError("Key index 0 is reserved for the master secret.")
        self.name = name
        self.key_index = key_index
        self.issuance_mode = issuance_mode
        self.data_type = data_type
        self.prime_factors = None

    def set_prime_factors(self, factors):
        if self.prime_factors is not None:
            raise SchemaError("Prime encoding is already instantiated for %s."
                              % self.name)
        if self.data_type != DataType.ENUM:
            raise SchemaError("Only enum attributes have prime factors.")
        table = {}
        for value_name, prime in factors.items():
            prime = to_bn(prime)
            if not prime.is_prime():
                raise SchemaError("Factor of %s is not prime: %s"
                                  % (value_name, prime))
            table[value_name] = prime
        if len(set(table.values())) != len(table):
            raise SchemaError("Prime factors of %s are not distinct."
                              % self.name)
        self.prime_factors = table

    def prime(self, value_name):
        if self.prime_factors is None:
            raise SchemaError("No prime encoding for %s." % self.name)
        try:
            return self.prime_factors[value_name]
        except KeyError:
            raise SchemaError("Unknown value %s of %s." % (value_name,
                                                           self.name))

    def encode_enum(self, value_names):
        """Product of the primes of the given value names."""
        return product(self.prime(v) for v in value_names)

    def decode_enum(self, value):
        """Names of the values whose primes divide the encoded value."""
        value = to_bn(value)
        return sorted(name for name, prime in self.prime_factors.items()
                      if value % prime == 0)

    @property
    def t(self):
        """Number of values of the prime encoding."""
        return len(self.prime_factors) if self.prime_factors else 0

    def l_t(self, sp):
        """Maximal bit length of each prime: floor(l_m / t)."""
        if self.t == 0:
            raise SchemaError("No prime encoding for %s." % self.name)
        return sp.l_m // self.t

    def __repr__(self):
        return "AttributeStructure(%s, %d, %s, %s)" % (
            self.name, self.key_index, self.issuance_mode, self.data_type)


class UpdateSpecification(object):
    """Names the attributes the issuer may refresh after issuance."""

    def __init__(self, base_location, attribute_names):
        self.base_location = base_location
        self.attribute_names = list(attribute_names)

    def verify_values(self, values):
        """Update values must cover exactly the updatable attributes."""
        names = set(values.names())
        if names != set(self.attribute_names):
            raise SchemaError("Update values %s do not match updatable "
                              "attributes %s." % (sorted(names),
                                                  sorted(self.attribute_names)))
        return True

    def compliant(self, attribute_structures):
        """Restricts attribute structures to the updatable ones."""
        return [a for a in attribute_structures
                if a.name in self.attribute_names]


class CredentialStructure(object):
    """Ordered attribute structures of a credential plus its domain and the
    location of its update specification."""

    def __init__(self, attribute_structures, domain=None,
                 update_spec_location=None):
        self.attribute_structures = list(attribute_structures)
        self.domain = domain
        self.update_spec_location = update_spec_location

        names = [a.name for a in self.attribute_structures]
        if len(set(names)) != len(names):
            raise SchemaError("Duplicate attribute names.")
        indices = [a.key_index for a in self.attribute_structures]
        if len(set(indices)) != len(indices):
            raise SchemaError("Duplicate key indices.")

        self.has_epoch = False
        for att in self.attribute_structures:
            if att.data_type == DataType.EPOCH:
                if update_spec_location is None:
                    raise SchemaError("Attribute %s of type epoch requires an "
                                      "update specification." % att.name)
                if att.issuance_mode != IssuanceMode.KNOWN:
                    raise SchemaError("Epoch attribute %s must be known to "
                                      "the issuer." % att.name)
                self.has_epoch = True

    def attribute_structure(self, name):
        for att in self.attribute_structures:
            if att.name == name:
                return att
        raise SchemaError("No attribute %s in credential structure." % name)

    def attribute_structs(self, mode=None):
        if mode is None:
            return list(self.attribute_structures)
        return [a for a in self.attribute_structures
                if a.issuance_mode == mode]

    def check_key(self, public_key):
        for att in self.attribute_structures:
            if att.key_index >= public_key.max_attributes:
                raise SchemaError("Key has no base for attribute %s (index %d)."
                                  % (att.name, att.key_index))

    def update_specification(self, store):
        if self.update_spec_location is None:
            return None
        return store.get(self.update_spec_location)

    def verify_issuer_values(self, values):
        """The issuer must know every attribute that is not hidden, and
        committed attributes must come as a commitment."""
        from .dm import Commitment
        for att in self.attribute_structures:
            if att.issuance_mode == IssuanceMode.HIDDEN:
                continue
            if att.name not in values:
                raise SchemaError("Issuer value for %s missing." % att.name)
            content = values.get(att.name)
            if att.issuance_mode == IssuanceMode.COMMITTED:
                if not isinstance(content, Commitment):
                    raise SchemaError("Issuer value for %s must be a "
                                      "commitment." % att.name)
            elif not isinstance(content, Bn):
                raise SchemaError("Issuer value for %s must be an integer."
                                  % att.name)
        return True

    def verify_recipient_values(self, values):
        """The recipient supplies every attribute: integers for known and
        hidden attributes, openings for committed ones."""
        from .dm import CommitmentOpening
        for att in self.attribute_structures:
            if att.name not in values:
                raise SchemaError("Recipient value for %s missing." % att.name)
            content = values.get(att.name)
            if att.issuance_mode == IssuanceMode.COMMITTED:
                if not isinstance(content, CommitmentOpening):
                    raise SchemaError("Recipient value for %s must be a "
                                      "commitment opening." % att.name)
            elif not isinstance(content, Bn):
                raise SchemaError("Recipient value for %s must be an integer."
                                  % att.name)
        return True


# --- TESTS ---


def make_role():
    role = AttributeStructure("role", 2, IssuanceMode.KNOWN, DataType.ENUM)
    role.set_prime_factors({"admin": 2, "user": 3, "guest": 5})
    return role


def test_prime_factors():
    role = make_role()
    assert role.encode_enum(["admin", "user"]) == 6
    assert role.decode_enum(Bn(6)) == ["admin", "user"]
    assert role.t == 3

    with pytest.raises(Exception) as excinfo:
        role.set_prime_factors({"admin": 2})
    assert 'already instantiated' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        role.prime("root")
    assert 'Unknown value' in str(excinfo.value)


def test_bad_prime_factors():
    att = AttributeStructure("a", 1, IssuanceMode.KNOWN, DataType.ENUM)
    with pytest.raises(Exception) as excinfo:
        att.set_prime_factors({"x": 4})
    assert 'not prime' in str(excinfo.value)

    att = AttributeStructure("b", 1, IssuanceMode.KNOWN, DataType.INT)
    with pytest.raises(Exception) as excinfo:
        att.set_prime_factors({"x": 3})
    assert 'enum' in str(excinfo.value)


def test_epoch_requires_update_spec():
    epoch = AttributeStructure("epoch", 1, IssuanceMode.KNOWN, DataType.EPOCH)
    with pytest.raises(Exception) as excinfo:
        CredentialStructure([epoch])
    assert 'update specification' in str(excinfo.value)

    cs = CredentialStructure([epoch], update_spec_location="upd")
    assert cs.has_epoch

    hidden = AttributeStructure("epoch", 1, IssuanceMode.HIDDEN, DataType.EPOCH)
    with pytest.raises(Exception) as excinfo:
        CredentialStructure([hidden], update_spec_location="upd")
    assert 'known' in str(excinfo.value)


def test_structure_lookup():
    name = AttributeStructure("name", 1, IssuanceMode.KNOWN, DataType.STRING)
    cs = CredentialStructure([name, make_role()], domain="example.org")
    assert cs.attribute_structure("role").key_index == 2
    assert len(cs.attribute_structs(IssuanceMode.KNOWN)) == 2
    assert cs.attribute_structs(IssuanceMode.HIDDEN) == []
    assert not cs.has_epoch

    with pytest.raises(Exception) as excinfo:
        CredentialStructure([name, name])
    assert 'Duplicate' in str(excinfo.value)

    with pytest.raises(Exception) as excinfo:
        AttributeStructure("ms", 0, IssuanceMode.HIDDEN, DataType.INT)
    assert 'reserved' in str(excinfo.value)


def test_store():
    store = Store()
    obj = object()
    store.add("a", obj)
    assert store.get("a") is obj
    assert "a" in store
    with pytest.raises(Exception) as excinfo:
        store.get("b")
    assert 'Nothing stored' in str(excinfo.value)
    with pytest.raises(Exception) as excinfo:
        store.add("a", object())
    assert 'already in use' in str(excinfo.value)
