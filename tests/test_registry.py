"""
Tests for the converter registry.

Tests cover:
- Path, stripped-path and type lookup order
- Applicability of typed path registrations
- Supertype lookup and its invalidation on new registrations
- Nested registries re-rooting path converters
- Defaults, overridden defaults and shared converter locks
"""

import numbers

import pytest

from propbind.registry import ConverterRegistry, PathConverterEntry
from propbind.revision_cache import CacheKey, RevisionCache

from conftest import Item


class Base:
    pass


class Mid(Base):
    pass


class Leaf(Mid):
    pass


def to_upper(value):
    return value.upper()


def to_lower(value):
    return value.lower()


def unwrap(converter):
    return getattr(converter, 'func', converter)


class TestLookupOrder:
    """Test which custom converter wins."""

    def setup_method(self):
        self.registry = ConverterRegistry()

    def test_exact_path(self):
        self.registry.register_converter(None, to_upper, path="items[0].name")
        found = self.registry.find_custom_converter(str, "items[0].name")
        assert unwrap(found) is to_upper

    def test_path_canonicalized_on_registration(self):
        """Quoted keys in the registered path match their canonical form."""
        self.registry.register_converter(None, to_upper, path="lookup['a'].city")
        assert unwrap(self.registry.find_custom_converter(str, "lookup[a].city")) is to_upper

    def test_stripped_path(self):
        """A converter for a collection governs its elements."""
        self.registry.register_converter(None, to_upper, path="items")
        assert unwrap(self.registry.find_custom_converter(str, "items[3]")) is to_upper

    def test_path_beats_type(self):
        self.registry.register_converter(str, to_lower)
        self.registry.register_converter(str, to_upper, path="name")
        assert unwrap(self.registry.find_custom_converter(str, "name")) is to_upper
        assert unwrap(self.registry.find_custom_converter(str, "other")) is to_lower

    def test_typed_path_requires_related_type(self):
        """A typed path registration is skipped for unrelated targets."""
        self.registry.register_converter(int, to_upper, path="age")
        assert self.registry.find_custom_converter(str, "age") is None
        assert self.registry.find_custom_converter(int, "age") is not None
        assert self.registry.find_custom_converter(bool, "age") is not None

    def test_supertype_registration(self):
        self.registry.register_converter(Base, to_upper)
        assert unwrap(self.registry.find_custom_converter(Leaf)) is to_upper

    def test_abstract_base_registration(self):
        """Registrations for ABCs apply to virtual subclasses."""
        self.registry.register_converter(numbers.Number, to_upper)
        assert unwrap(self.registry.find_custom_converter(int)) is to_upper

    def test_new_registration_invalidates_supertype_cache(self):
        """A nearer supertype registered later takes over."""
        self.registry.register_converter(Base, to_upper)
        assert unwrap(self.registry.find_custom_converter(Leaf)) is to_upper
        self.registry.register_converter(Mid, to_lower)
        assert unwrap(self.registry.find_custom_converter(Leaf)) is to_lower

    def test_neither_type_nor_path(self):
        with pytest.raises(ValueError):
            self.registry.register_converter(None, to_upper)


class TestPathEntry:
    """Test path registration applicability."""

    def test_untyped_always_applies(self):
        assert PathConverterEntry(to_upper, None).converter_for(int) is to_upper

    def test_unknown_required_type(self):
        """With no required type, container registrations do not apply."""
        assert PathConverterEntry(to_upper, str).converter_for(None) is to_upper
        assert PathConverterEntry(to_upper, list).converter_for(None) is None

    def test_related_either_direction(self):
        assert PathConverterEntry(to_upper, Mid).converter_for(Leaf) is to_upper
        assert PathConverterEntry(to_upper, Mid).converter_for(Base) is to_upper
        assert PathConverterEntry(to_upper, Mid).converter_for(str) is None


class TestElementQueries:
    """Test element converter detection and type guessing."""

    def setup_method(self):
        self.registry = ConverterRegistry()

    def test_element_path_registration(self):
        """A converter for one element counts for the collection."""
        self.registry.register_converter(None, to_upper, path="items[0]")
        assert self.registry.has_custom_converter_for_element(None, "items")
        assert not self.registry.has_custom_converter_for_element(None, "other")

    def test_element_type_registration(self):
        self.registry.register_converter(Item, to_upper)
        assert self.registry.has_custom_converter_for_element(Item, "items")

    def test_guess_property_type(self):
        self.registry.register_converter(Item, to_upper, path="items")
        assert self.registry.guess_property_type("items[2]") is Item
        assert self.registry.guess_property_type("others") is None


class TestNestedRegistry:
    """Test registries handed to child navigators."""

    def setup_method(self):
        self.registry = ConverterRegistry()

    def test_reroots_paths(self):
        """address.city on the parent becomes city on the child."""
        self.registry.register_converter(None, to_upper, path="address.city")
        child = self.registry.nested_registry("address")
        assert child.custom_paths() == ["city"]
        assert unwrap(child.find_custom_converter(str, "city")) is to_upper

    def test_keyed_parent(self):
        """Paths under a keyed or bare collection name both carry over."""
        self.registry.register_converter(None, to_upper, path="addresses[0].city")
        self.registry.register_converter(None, to_lower, path="addresses.zip_code")
        child = self.registry.nested_registry("addresses[0]")
        assert sorted(child.custom_paths()) == ["city", "zip_code"]

    def test_unrelated_paths_dropped(self):
        self.registry.register_converter(None, to_upper, path="name")
        self.registry.register_converter(None, to_upper, path="other.city")
        assert self.registry.nested_registry("address").custom_paths() == []

    def test_type_customs_and_service_carry_over(self):
        sentinel = object()
        self.registry.register_converter(Base, to_upper)
        self.registry.conversion_service = sentinel
        child = self.registry.nested_registry("address")
        assert unwrap(child.find_custom_converter(Leaf)) is to_upper
        assert child.conversion_service is sentinel

    def test_shared_locks_carry_over(self):
        self.registry.register_converter(str, to_upper, shared=True)
        converter = self.registry.find_custom_converter(str)
        child = self.registry.nested_registry("address")
        assert child.shared_lock(converter) is self.registry.shared_lock(converter)


class TestDefaults:
    """Test default and overridden default converters."""

    def test_lazy_defaults(self):
        registry = ConverterRegistry()
        assert registry.get_default_converter(int)("7") == 7
        assert registry.get_default_converter(Item) is None

    def test_inactive_defaults(self):
        registry = ConverterRegistry(defaults_active=False)
        assert registry.get_default_converter(int) is None
        assert registry.nested_registry("address").get_default_converter(int) is None

    def test_override(self):
        registry = ConverterRegistry()
        registry.override_default_converter(int, lambda v: 99)
        assert registry.get_default_converter(int)("7") == 99
        assert registry.find_custom_converter(int) is None

    def test_config_value_converters(self):
        registry = ConverterRegistry()
        assert registry.get_default_converter(list)("a,b") == ["a,b"]
        registry.use_config_value_converters()
        assert registry.get_default_converter(list)("a,b") == ["a", "b"]


class TestSharedConverters:
    """Test shared converter bookkeeping."""

    def test_only_shared_get_locks(self):
        registry = ConverterRegistry()
        registry.register_converter(str, to_upper, shared=True)
        registry.register_converter(int, to_lower)
        assert registry.shared_lock(registry.find_custom_converter(str)) is not None
        assert registry.shared_lock(registry.find_custom_converter(int)) is None


class TestRevisionCache:
    """Test revision-keyed invalidation."""

    def test_caches_until_revision_changes(self):
        state = {"revision": 0}
        calls = []
        cache = RevisionCache(lambda: state["revision"])

        def compute():
            calls.append(1)
            return None

        key = CacheKey.from_args(int)
        assert cache.get_or_compute(key, compute) is None
        assert cache.get_or_compute(key, compute) is None
        assert len(calls) == 1

        state["revision"] += 1
        cache.get_or_compute(key, compute)
        assert len(calls) == 2

    def test_invalidate(self):
        cache = RevisionCache(lambda: 0)
        key = CacheKey.from_args("k")
        cache.get_or_compute(key, lambda: 1)
        assert key in cache
        cache.invalidate()
        assert len(cache) == 0
