"""
Name/value pairs for batch assignment.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class PropertyValue:
    """
    A property path and the value to assign to it.

    Attributes:
        name: Property path
        value: Value to assign, converted on assignment
        optional: Skip silently when the property does not exist
    """
    name: str
    value: Any
    optional: bool = False


PropertyValuesLike = Union['PropertyValues', Mapping[str, Any], Iterable[Any]]


class PropertyValues:
    """
    Ordered collection of :class:`PropertyValue`, unique by name.

    Adding a value for a name already present replaces it in place.
    """

    def __init__(self, values: Optional[PropertyValuesLike] = None):
        self._values: Dict[str, PropertyValue] = {}
        if values is not None:
            self.add_all(values)

    @classmethod
    def coerce(cls, values: PropertyValuesLike) -> 'PropertyValues':
        if isinstance(values, PropertyValues):
            return values
        return cls(values)

    def add(self, name_or_value: Union[str, PropertyValue], value: Any = None,
            optional: bool = False) -> 'PropertyValues':
        if isinstance(name_or_value, PropertyValue):
            pv = name_or_value
        else:
            pv = PropertyValue(name_or_value, value, optional)
        self._values[pv.name] = pv
        return self

    def add_all(self, values: PropertyValuesLike) -> 'PropertyValues':
        if isinstance(values, PropertyValues):
            for pv in values:
                self.add(pv)
        elif isinstance(values, Mapping):
            for name, value in values.items():
                self.add(name, value)
        else:
            for item in values:
                if isinstance(item, PropertyValue):
                    self.add(item)
                else:
                    name, value = item
                    self.add(name, value)
        return self

    def get(self, name: str) -> Optional[PropertyValue]:
        return self._values.get(name)

    def remove(self, name: str) -> None:
        self._values.pop(name, None)

    def changes_since(self, old: 'PropertyValues') -> 'PropertyValues':
        """Values that are new or differ from those in ``old``."""
        changes = PropertyValues()
        for pv in self:
            previous = old.get(pv.name)
            if previous is None or previous.value != pv.value:
                changes.add(pv)
        return changes

    def names(self) -> List[str]:
        return list(self._values)

    def items(self) -> List[Tuple[str, Any]]:
        return [(pv.name, pv.value) for pv in self]

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[PropertyValue]:
        return iter(list(self._values.values()))

    def __len__(self) -> int:
        return len(self._values)

    def __bool__(self) -> bool:
        return bool(self._values)

    def __repr__(self) -> str:
        return f"PropertyValues({[pv.name for pv in self]})"
