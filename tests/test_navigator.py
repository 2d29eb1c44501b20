"""
Tests for property path navigation.

Tests cover:
- Reads and writes through nested and indexed paths
- Tuples, sets and mappings
- Pseudo-properties on mappings and sequences
- Auto-growing of intermediates, lists and tuples, and its limit
- Error reporting for unknown, unreadable, unwritable and None segments
- Declared and property types, readability and writability
- Child navigator reuse and invalidation
- Old-value extraction for converters
"""

from types import SimpleNamespace
from typing import List

import pytest

from propbind.config import AccessorConfig
from propbind.converters import StatefulConverter
from propbind.errors import (
    IndexOutOfRange,
    InvalidPropertyKind,
    InvocationFailure,
    NotReadable,
    NotWritable,
    NullIntermediate,
    TypeConversionFailure,
    UnknownProperty,
)
from propbind.navigator import PropertyNavigator
from propbind.registry import ConverterRegistry

from conftest import Account, Address, Color, Coordinates, Inventory, Item, Person


class WriteOnly:
    def __init__(self):
        self.seen = None

    def _set_secret(self, value: str) -> None:
        self.seen = value

    secret = property(None, _set_secret)


class Appender(StatefulConverter):
    def accept_text(self, text):
        self._value = f"{self._value or ''}{text}"


class TestReads:
    """Test resolving paths."""

    def test_simple(self, person):
        assert PropertyNavigator(person).resolve("name") == "Alice"

    def test_nested_indexed(self, person):
        assert PropertyNavigator(person).resolve("addresses[0].city") == "X"

    def test_casing_fallback(self, person):
        assert PropertyNavigator(person).resolve("Name") == "Alice"

    def test_property_getter(self):
        assert PropertyNavigator(Account(5)).resolve("balance") == 5

    def test_list_of_lists(self, inventory):
        assert PropertyNavigator(inventory).resolve("grid[1][0]") == 3

    def test_tuple_element(self, inventory):
        assert PropertyNavigator(inventory).resolve("point[1]") == 2

    def test_set_element(self, inventory):
        """Sets are indexed by iteration position."""
        assert PropertyNavigator(inventory).resolve("tags[0]") == "fresh"

    def test_set_index_out_of_range(self, inventory):
        with pytest.raises(IndexOutOfRange):
            PropertyNavigator(inventory).resolve("tags[3]")

    def test_mapping_entry(self, inventory):
        nav = PropertyNavigator(inventory)
        assert nav.resolve("counts[apples]") == 3
        assert nav.resolve("counts['apples']") == 3
        assert nav.resolve("counts[pears]") is None

    def test_converted_mapping_key(self, inventory):
        """Map keys are converted to the declared key type."""
        assert PropertyNavigator(inventory).resolve("by_id[1].name") == "one"

    def test_unconvertible_mapping_key(self, inventory):
        with pytest.raises(InvalidPropertyKind):
            PropertyNavigator(inventory).resolve("by_id[x]")

    def test_dotted_mapping_key(self):
        inventory = Inventory(lookup={"a.b": Address(city="Q")})
        assert PropertyNavigator(inventory).resolve("lookup['a.b'].city") == "Q"

    def test_read_grows_terminal_index(self, person, growing_config):
        """A keyed terminal read grows the list like an intermediate one."""
        value = PropertyNavigator(person, config=growing_config).resolve("items[5]")
        assert len(person.items) == 6
        assert value is person.items[5]
        assert isinstance(value, Item)

    def test_read_grows_none_container(self, growing_config):
        person = Person(nicknames=None)
        assert PropertyNavigator(person, config=growing_config).resolve("nicknames[1]") == ""
        assert person.nicknames == ["", ""]

    def test_read_at_limit_raises(self, person, growing_config):
        with pytest.raises(IndexOutOfRange):
            PropertyNavigator(person, config=growing_config).resolve("items[10]")
        assert len(person.items) == 1

    def test_read_without_growth(self, person):
        with pytest.raises(IndexOutOfRange):
            PropertyNavigator(person).resolve("items[5]")
        assert len(person.items) == 1

    def test_readability_check_does_not_grow(self, person, growing_config):
        assert not PropertyNavigator(person, config=growing_config).is_readable("items[5]")
        assert len(person.items) == 1

    def test_index_on_scalar(self, person):
        with pytest.raises(InvalidPropertyKind):
            PropertyNavigator(person).resolve("name[0]")

    def test_non_integer_index(self, person):
        with pytest.raises(InvalidPropertyKind):
            PropertyNavigator(person).resolve("items[first]")

    def test_negative_index(self, person):
        with pytest.raises(IndexOutOfRange):
            PropertyNavigator(person).resolve("items[-1]")

    def test_dynamic_attribute(self):
        obj = SimpleNamespace(inner=SimpleNamespace(value=4))
        assert PropertyNavigator(obj).resolve("inner.value") == 4


class TestPseudoProperties:
    """Test mappings and sequences as navigation roots."""

    def test_mapping_root_by_name(self):
        assert PropertyNavigator({"a": {"b": 1}}).resolve("a.b") == 1

    def test_list_root_by_key(self):
        assert PropertyNavigator(["x", "y"]).resolve("[1]") == "y"

    def test_write_into_list_root(self):
        root = ["x", "y"]
        PropertyNavigator(root).assign("[0]", "z")
        assert root == ["z", "y"]

    def test_write_into_mapping_root(self):
        root = {}
        PropertyNavigator(root).assign("mode", "fast")
        assert root == {"mode": "fast"}

    def test_tuple_root_not_writable(self):
        """A rebuilt root tuple has nowhere to go."""
        with pytest.raises(NotWritable):
            PropertyNavigator((1, 2)).assign("[0]", 5)


class TestWrites:
    """Test assigning paths."""

    def test_converts_to_declared_type(self, person):
        PropertyNavigator(person).assign("age", "42")
        assert person.age == 42

    def test_nested_write(self, person):
        PropertyNavigator(person).assign("addresses[0].city", "Oslo")
        assert person.addresses[0].city == "Oslo"

    def test_enum_write(self, person):
        PropertyNavigator(person).assign("favorite", "BLUE")
        assert person.favorite is Color.BLUE

    def test_property_setter(self):
        account = Account()
        PropertyNavigator(account).assign("balance", "10")
        assert account.balance == 10

    def test_tuple_rebuilt_and_written_back(self, inventory):
        """Tuple elements are replaced by writing a new tuple."""
        PropertyNavigator(inventory).assign("point[0]", "5")
        assert inventory.point == (5, 2)

    def test_nested_list_write(self, inventory):
        grid_row = inventory.grid[1]
        PropertyNavigator(inventory).assign("grid[1][0]", "9")
        assert inventory.grid == [[1, 2], [9, 4]]
        assert inventory.grid[1] is grid_row

    def test_set_element_not_writable(self, inventory):
        with pytest.raises(InvalidPropertyKind):
            PropertyNavigator(inventory).assign("tags[0]", "stale")

    def test_mapping_write_converts_key_and_value(self, inventory):
        nav = PropertyNavigator(inventory)
        nav.assign("counts[pears]", "5")
        nav.assign("by_id[2]", Item(name="two"))
        assert inventory.counts == {"apples": 3, "pears": 5}
        assert inventory.by_id[2].name == "two"

    def test_whole_collection_converted(self, inventory):
        PropertyNavigator(inventory).assign("colors", ["RED", "green"])
        assert inventory.colors == [Color.RED, Color.GREEN]

    def test_index_beyond_list(self, person):
        with pytest.raises(IndexOutOfRange):
            PropertyNavigator(person).assign("items[3]", Item())

    def test_conversion_failure_has_full_path(self, person):
        with pytest.raises(TypeConversionFailure) as exc_info:
            PropertyNavigator(person).assign("items[0].quantity", "many")
        assert exc_info.value.property_path == "items[0].quantity"
        assert exc_info.value.root_type is Person

    def test_path_converter_below_nested_segment(self, person):
        """Path converters registered on the root reach nested navigators."""
        registry = ConverterRegistry()
        registry.register_converter(None, str.upper, path="addresses[0].city")
        PropertyNavigator(person, registry=registry).assign("addresses[0].city", "oslo")
        assert person.addresses[0].city == "OSLO"


class TestErrors:
    """Test error reporting."""

    def test_unknown_property(self, person):
        with pytest.raises(UnknownProperty) as exc_info:
            PropertyNavigator(person).resolve("nam")
        assert "name" in exc_info.value.possible_matches
        assert exc_info.value.property_path == "nam"

    def test_unknown_nested_property_path(self, person):
        with pytest.raises(UnknownProperty) as exc_info:
            PropertyNavigator(person).resolve("addresses[0].town")
        assert exc_info.value.property_path == "addresses[0].town"

    def test_null_intermediate(self, person):
        with pytest.raises(NullIntermediate) as exc_info:
            PropertyNavigator(person).resolve("address.city")
        assert exc_info.value.property_path == "address"

    def test_null_indexed(self, person):
        with pytest.raises(NullIntermediate):
            PropertyNavigator(person).resolve("nicknames[0]")

    def test_not_readable(self):
        with pytest.raises(NotReadable):
            PropertyNavigator(WriteOnly()).resolve("secret")

    def test_not_writable(self):
        with pytest.raises(NotWritable):
            PropertyNavigator(Account()).assign("summary", "x")

    def test_frozen_field(self):
        with pytest.raises(NotWritable):
            PropertyNavigator(Coordinates()).assign("lat", 1.0)

    def test_getter_failure(self):
        with pytest.raises(InvocationFailure) as exc_info:
            PropertyNavigator(Account()).resolve("broken")
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_setter_failure(self):
        """Setter errors are wrapped with the value that was rejected."""
        with pytest.raises(InvocationFailure) as exc_info:
            PropertyNavigator(Account(3)).assign("balance", -5)
        error = exc_info.value
        assert isinstance(error.__cause__, ValueError)
        assert error.new_value == -5

    def test_none_root(self):
        with pytest.raises(ValueError):
            PropertyNavigator(None)


class TestAutoGrow:
    """Test creation of missing values."""

    def test_intermediate_created(self, person, growing_config):
        PropertyNavigator(person, config=growing_config).assign("address.city", "Oslo")
        assert person.address == Address(city="Oslo")

    def test_list_grown_with_defaults(self, growing_config):
        person = Person()
        PropertyNavigator(person, config=growing_config).assign("items[2].name", "c")
        assert [i.name for i in person.items] == ["", "", "c"]

    def test_growth_limit(self, growing_config):
        person = Person()
        nav = PropertyNavigator(person, config=growing_config)
        nav.assign("items[9].name", "last")
        with pytest.raises(IndexOutOfRange):
            nav.assign("items[10].name", "over")
        assert len(person.items) == 10

    def test_terminal_list_write_grows(self, growing_config):
        """A None list is created and padded with element defaults."""
        person = Person()
        PropertyNavigator(person, config=growing_config).assign("nicknames[2]", "c")
        assert person.nicknames == ["", "", "c"]

    def test_tuple_grows(self, inventory, growing_config):
        PropertyNavigator(inventory, config=growing_config).assign("sizes[3]", "5")
        assert inventory.sizes == (10, 20, 0, 5)

    def test_mapping_value_created(self, growing_config):
        inventory = Inventory()
        PropertyNavigator(inventory, config=growing_config).assign("lookup[home].city", "Oslo")
        assert inventory.lookup == {"home": Address(city="Oslo")}

    def test_unknown_type_cannot_grow(self, growing_config):
        obj = SimpleNamespace(inner=None)
        with pytest.raises(TypeConversionFailure):
            PropertyNavigator(obj, config=growing_config).assign("inner.value", 1)

    def test_disabled_by_default(self):
        with pytest.raises(IndexOutOfRange):
            PropertyNavigator(Person()).assign("items[0].name", "x")


class TestTypeQueries:
    """Test declared types, property types and access checks."""

    def test_declared_type(self, person):
        nav = PropertyNavigator(person)
        assert nav.get_declared_type("addresses").raw_type is list
        assert nav.get_declared_type("addresses[0]").raw_type is Address
        assert nav.get_declared_type("items[0].quantity").raw_type is int

    def test_declared_type_unresolvable(self, person):
        nav = PropertyNavigator(person)
        assert nav.get_declared_type("missing") is None
        assert nav.get_declared_type("address.city") is None

    def test_property_type_declared(self, person):
        assert PropertyNavigator(person).property_type("nicknames") is list

    def test_property_type_from_value(self):
        obj = SimpleNamespace(extra=3.5)
        assert PropertyNavigator(obj).property_type("extra") is float

    def test_property_type_from_registry(self):
        registry = ConverterRegistry()
        registry.register_converter(int, int, path="extra")
        obj = SimpleNamespace(extra=None)
        assert PropertyNavigator(obj, registry=registry).property_type("extra") is int

    def test_is_readable(self, person):
        nav = PropertyNavigator(person)
        assert nav.is_readable("addresses[0].city")
        assert not nav.is_readable("addresses[4]")
        assert not nav.is_readable("missing")
        assert not PropertyNavigator(WriteOnly()).is_readable("secret")

    def test_is_writable(self, person, inventory):
        assert PropertyNavigator(person).is_writable("items[0]")
        assert not PropertyNavigator(Account()).is_writable("summary")
        assert PropertyNavigator(inventory).is_writable("point[0]")
        assert not PropertyNavigator(inventory).is_writable("tags[0]")
        assert not PropertyNavigator(person).is_writable("address.city")


class TestChildNavigators:
    """Test reuse of nested navigators."""

    def test_replaced_value_is_seen(self, person):
        person.address = Address(city="A")
        nav = PropertyNavigator(person)
        assert nav.resolve("address.city") == "A"
        person.address = Address(city="B")
        assert nav.resolve("address.city") == "B"

    def test_child_reused(self, person):
        person.address = Address(city="A")
        nav = PropertyNavigator(person)
        nav.resolve("address.city")
        child = nav._children["address"]
        nav.assign("address.zip_code", "0150")
        assert nav._children["address"] is child
        assert child.nested_path == "address."


class TestOldValues:
    """Test passing the current value to converters."""

    def test_old_value_extracted(self, person):
        registry = ConverterRegistry()
        registry.register_converter(str, Appender(), path="name")
        config = AccessorConfig(extract_old_value_for_converter=True)
        PropertyNavigator(person, registry=registry, config=config).assign("name", "!")
        assert person.name == "Alice!"

    def test_old_value_not_extracted_by_default(self, person):
        registry = ConverterRegistry()
        registry.register_converter(str, Appender(), path="name")
        PropertyNavigator(person, registry=registry).assign("name", "!")
        assert person.name == "!"

    def test_old_value_of_element(self, person):
        registry = ConverterRegistry()
        registry.register_converter(None, Appender(), path="nicknames")
        person.nicknames = ["al"]
        config = AccessorConfig(extract_old_value_for_converter=True)
        PropertyNavigator(person, registry=registry, config=config).assign("nicknames[0]", "ice")
        assert person.nicknames == ["alice"]


class TestStandaloneConversion:
    """Test the navigator's conversion entry point."""

    def test_convert_if_necessary(self, person):
        nav = PropertyNavigator(person)
        assert nav.convert_if_necessary("3", List[int]) == [3]
