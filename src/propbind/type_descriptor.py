"""
Declared-type descriptors.

A TypeDescriptor normalizes a typing annotation (``int``, ``List[Item]``,
``Optional[Dict[str, int]]``, ``tuple[int, ...]``) into the pieces property
navigation and conversion need: the raw runtime class, the container kind and
the element/key/value types one level down.

Descriptors are cached per annotation so that repeated lookups for the same
declared type return the same object.
"""

import collections.abc
import enum
import types
import typing
from typing import Any, Dict, Optional, Tuple, Union, get_args, get_origin

_UNION_TYPES: Tuple[Any, ...] = tuple(
    u for u in (Union, getattr(types, 'UnionType', None)) if u is not None
)

# Container kinds
ARRAY = 'array'
SEQUENCE = 'sequence'
SET = 'set'
MAPPING = 'mapping'

_descriptor_cache: Dict[Any, 'TypeDescriptor'] = {}

# Declared types that never hold None unless Optional
_NON_NULLABLE = (bool, int, float, complex)


def _container_kind(raw: Optional[type]) -> Optional[str]:
    if raw is None or not isinstance(raw, type):
        return None
    if issubclass(raw, (str, bytes, bytearray)):
        return None
    if issubclass(raw, tuple):
        return ARRAY
    if issubclass(raw, collections.abc.Mapping):
        return MAPPING
    if issubclass(raw, collections.abc.Set):
        return SET
    if issubclass(raw, collections.abc.MutableSequence):
        return SEQUENCE
    if issubclass(raw, collections.abc.Sequence):
        # Read-only sequences other than tuple are still indexable
        return SEQUENCE
    return None


class TypeDescriptor:
    """
    Normalized view of a declared type.

    Attributes:
        annotation: The annotation this descriptor was built from
        raw_type: Runtime class (``None`` when unconstrained, e.g. ``Any``)
        args: Generic arguments of the annotation
        nullable: Whether ``None`` was an explicit member of a Union; a
            non-nullable number or bool target rejects ``None``
        members: Union member descriptors when the annotation is a
            non-Optional Union, else empty
    """

    __slots__ = ('annotation', 'raw_type', 'args', 'nullable', 'members', 'kind')

    def __init__(self, annotation: Any):
        self.annotation = annotation
        self.nullable = False
        self.members: Tuple['TypeDescriptor', ...] = ()

        origin = get_origin(annotation)
        args = get_args(annotation)

        if origin in _UNION_TYPES:
            non_none = tuple(a for a in args if a is not type(None))
            self.nullable = len(non_none) != len(args)
            if len(non_none) == 1:
                inner = TypeDescriptor.of(non_none[0])
                origin, args = inner.raw_type, inner.args
            else:
                self.members = tuple(TypeDescriptor.of(a) for a in non_none)
                origin, args = None, ()
                annotation = None

        if origin is None and annotation is not None and not self.members:
            origin = annotation

        if origin is Any or origin is None or isinstance(origin, typing.TypeVar):
            raw = None
        elif isinstance(origin, type):
            raw = origin
        else:
            # typing special forms we do not model (Literal, Callable, ...)
            raw = None
            args = ()

        self.raw_type: Optional[type] = raw
        self.args: Tuple[Any, ...] = tuple(args)
        self.kind: Optional[str] = _container_kind(raw)

    @classmethod
    def of(cls, annotation: Any) -> 'TypeDescriptor':
        """Get the (cached) descriptor for an annotation."""
        if isinstance(annotation, TypeDescriptor):
            return annotation
        # Union equality ignores member order, the arguments keep it
        key = (annotation, get_args(annotation))
        try:
            cached = _descriptor_cache.get(key)
        except TypeError:
            # Unhashable annotations are rare; build without caching
            return cls(annotation)
        if cached is None:
            cached = _descriptor_cache.setdefault(key, cls(annotation))
        return cached

    @classmethod
    def for_object(cls, value: Any) -> 'TypeDescriptor':
        """Descriptor for the runtime type of a value (unconstrained for None)."""
        return cls.of(Any if value is None else type(value))

    # ------------------------------------------------------------------
    # Kind checks
    # ------------------------------------------------------------------

    @property
    def is_unconstrained(self) -> bool:
        return self.raw_type is None and not self.members

    @property
    def is_container(self) -> bool:
        return self.kind is not None

    @property
    def is_array(self) -> bool:
        return self.kind == ARRAY

    @property
    def is_mapping(self) -> bool:
        return self.kind == MAPPING

    @property
    def is_collection(self) -> bool:
        """Sequence or set, the kinds converted element by element into a copy."""
        return self.kind in (SEQUENCE, SET)

    @property
    def is_enum(self) -> bool:
        return self.raw_type is not None and issubclass(self.raw_type, enum.Enum)

    @property
    def is_variadic_tuple(self) -> bool:
        return self.is_array and len(self.args) == 2 and self.args[1] is Ellipsis

    # ------------------------------------------------------------------
    # Nested types
    # ------------------------------------------------------------------

    def element_type(self, position: Optional[int] = None) -> 'TypeDescriptor':
        """
        Element type of an array, sequence or set.

        Args:
            position: Index being accessed; only meaningful for fixed-size
                tuple annotations such as ``Tuple[int, str]``

        Returns:
            Descriptor of the element type, unconstrained when unknown
        """
        if not self.args or self.is_mapping:
            return _ANY
        if self.is_array and not self.is_variadic_tuple:
            if position is None or not (0 <= position < len(self.args)):
                # Heterogeneous tuple without a position, fall back to the
                # first member when all members agree
                if position is None and len(set(self.args)) == 1:
                    return TypeDescriptor.of(self.args[0])
                return _ANY
            return TypeDescriptor.of(self.args[position])
        return TypeDescriptor.of(self.args[0])

    def key_type(self) -> 'TypeDescriptor':
        if self.is_mapping and len(self.args) == 2:
            return TypeDescriptor.of(self.args[0])
        return _ANY

    def value_type(self) -> 'TypeDescriptor':
        if self.is_mapping and len(self.args) == 2:
            return TypeDescriptor.of(self.args[1])
        return _ANY

    def nested_for_keys(self, keys) -> 'TypeDescriptor':
        """Walk one element or value type per bracketed key, honouring tuple positions."""
        current = self
        for key in keys:
            if current.is_mapping:
                current = current.value_type()
            elif current.is_array:
                try:
                    current = current.element_type(int(key))
                except (TypeError, ValueError):
                    current = current.element_type()
            elif current.is_container:
                current = current.element_type()
            else:
                return _ANY
        return current

    # ------------------------------------------------------------------
    # Assignability
    # ------------------------------------------------------------------

    def is_assignable_value(self, value: Any) -> bool:
        """Whether ``value`` can be stored under this declared type as is."""
        if self.is_unconstrained:
            return True
        if value is None:
            if self.nullable:
                return True
            if self.members:
                return any(m.is_assignable_value(None) for m in self.members)
            return self.raw_type not in _NON_NULLABLE
        if self.kind is not None and isinstance(value, (str, bytes, bytearray)):
            # Text is a scalar for container targets
            return False
        if self.members:
            return any(m.is_assignable_value(value) for m in self.members)
        if self.raw_type is float and isinstance(value, int) and not isinstance(value, bool):
            # int is accepted where float is declared
            return True
        return isinstance(value, self.raw_type)

    def is_assignable_from(self, other: Optional[type]) -> bool:
        if self.is_unconstrained:
            return True
        if other is None:
            return False
        if self.members:
            return any(m.is_assignable_from(other) for m in self.members)
        try:
            return issubclass(other, self.raw_type)
        except TypeError:
            return False

    @property
    def name(self) -> str:
        if self.members:
            return ' | '.join(m.name for m in self.members)
        if self.raw_type is None:
            return 'Any'
        if self.args:
            return repr(self.annotation).replace('typing.', '')
        return self.raw_type.__name__

    def __eq__(self, other):
        if not isinstance(other, TypeDescriptor):
            return NotImplemented
        return (self.raw_type, self.args, self.members) == (other.raw_type, other.args, other.members)

    def __hash__(self):
        return hash((self.raw_type, self.args, self.members))

    def __repr__(self) -> str:
        return f"TypeDescriptor({self.name})"


_ANY = TypeDescriptor(Any)
