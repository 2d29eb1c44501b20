"""Pytest configuration and shared fixtures."""
import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import pytest

import propbind.accessors as accessors_module
import propbind.config as config_module
from propbind.config import AccessorConfig
from propbind.introspection import IntrospectionCache


class Color(enum.Enum):
    """Sample enum with string values."""
    RED = "red"
    GREEN = "green"
    BLUE = "blue"


@dataclass
class Address:
    """Leaf object reached through nested paths."""
    city: str = ""
    zip_code: Optional[str] = None


@dataclass
class Item:
    """Default-constructible list element."""
    name: str = ""
    quantity: int = 0


@dataclass
class Person:
    """Root object for most navigation tests."""
    name: str = ""
    age: int = 0
    favorite: Optional[Color] = None
    address: Optional[Address] = None
    addresses: List[Address] = field(default_factory=list)
    items: List[Item] = field(default_factory=list)
    nicknames: Optional[List[str]] = None


@dataclass
class Inventory:
    """Container-heavy object: tuples, sets, mappings."""
    counts: Dict[str, int] = field(default_factory=dict)
    by_id: Dict[int, Item] = field(default_factory=dict)
    tags: Set[str] = field(default_factory=set)
    point: Tuple[int, int] = (0, 0)
    sizes: Tuple[int, ...] = ()
    grid: List[List[int]] = field(default_factory=list)
    colors: List[Color] = field(default_factory=list)
    lookup: Optional[Dict[str, Address]] = None


@dataclass
class Palette:
    """String-typed property used for converter precedence checks."""
    color: str = ""
    label: str = ""


@dataclass(frozen=True)
class Coordinates:
    """Frozen dataclass: fields readable but not writable."""
    lat: float = 0.0
    lon: float = 0.0


class Account:
    """Plain class exposing properties with custom getters and setters."""

    owner: str

    def __init__(self, balance: int = 0):
        self._balance = balance
        self.owner = ""

    @property
    def balance(self) -> int:
        return self._balance

    @balance.setter
    def balance(self, value: int) -> None:
        if value < 0:
            raise ValueError("balance cannot be negative")
        self._balance = value

    @property
    def summary(self) -> str:
        return f"{self.owner}: {self._balance}"

    @property
    def broken(self) -> int:
        raise RuntimeError("getter exploded")


@pytest.fixture(autouse=True)
def reset_propbind_state():
    """Isolate introspection cache, default registry and default config per test."""
    original_config = config_module._default_config
    original_registry = accessors_module._default_registry

    IntrospectionCache.clear()
    accessors_module.reset_default_registry()

    yield

    config_module._default_config = original_config
    accessors_module._default_registry = original_registry
    IntrospectionCache.clear()


@pytest.fixture
def person():
    """Person with one address and one item."""
    return Person(
        name="Alice",
        age=30,
        addresses=[Address(city="X")],
        items=[Item(name="pen", quantity=2)],
    )


@pytest.fixture
def inventory():
    """Inventory with a few entries in each container."""
    return Inventory(
        counts={"apples": 3},
        by_id={1: Item(name="one")},
        tags={"fresh"},
        point=(1, 2),
        sizes=(10, 20),
        grid=[[1, 2], [3, 4]],
    )


@pytest.fixture
def growing_config():
    """Config with auto-grow enabled up to index 10."""
    return AccessorConfig(auto_grow_nested_paths=True, auto_grow_collection_limit=10)
