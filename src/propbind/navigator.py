"""
Property path navigation over arbitrary object graphs.

A :class:`PropertyNavigator` wraps one object. Nested paths are resolved by
splitting at the first un-bracketed dot, reading the head segment and
recursing into a child navigator that wraps the head's value. Child
navigators are cached per canonical segment name and rebuilt when the value
at that segment is replaced.

A segment is a name followed by keys. The name selects a *slot* on the
wrapped object:

- an accessor discovered by introspection (field, property, attribute)
- a mapping entry, when the wrapped object is a mapping and has no accessor
  of that name
- the wrapped object itself, when the name is empty (``[0]``, ``['k']``)

Keys then descend into tuples, lists, sets and mappings. Tuples are
immutable, so writing into one rebuilds it and writes the new tuple back into
whatever holds it.

A navigator is not thread-safe; build one per bind operation.
"""

import collections.abc
import logging
from typing import Any, Dict, List, Optional, Tuple

from propbind.config import AccessorConfig, get_accessor_config
from propbind.conversion import ConversionRequest, TypeConverter, approximate_factory, build_copy
from propbind.errors import (
    AggregatedError,
    IndexOutOfRange,
    InvalidProperty,
    InvalidPropertyKind,
    InvocationFailure,
    NotReadable,
    NotWritable,
    NullIntermediate,
    PropertyAccessError,
    TypeConversionFailure,
    UnknownProperty,
)
from propbind.introspection import AccessorDescriptor, IntrospectionCache, dynamic_descriptor
from propbind.path_tokens import (
    NESTED_SEPARATOR,
    PathSegment,
    canonical_name,
    first_nested_separator_index,
    parse_segment,
)
from propbind.property_values import PropertyValues, PropertyValuesLike
from propbind.registry import ConverterRegistry
from propbind.type_descriptor import TypeDescriptor

logger = logging.getLogger(__name__)

_TEXT_TYPES = (str, bytes, bytearray)

# Errors a failed read of a previous value is reported with
_OLD_VALUE_ERRORS = (AttributeError, LookupError, TypeError, ValueError, PropertyAccessError)


class _Slot:
    """Location of a segment's base value."""

    readable = True
    writable = True

    def __init__(self, declared: TypeDescriptor):
        self.declared = declared

    def read(self) -> Any:
        raise NotImplementedError

    def write(self, value: Any) -> None:
        raise NotImplementedError


class _AccessorSlot(_Slot):

    def __init__(self, obj: Any, descriptor: AccessorDescriptor):
        super().__init__(descriptor.type_descriptor)
        self.obj = obj
        self.descriptor = descriptor
        self.readable = descriptor.readable
        self.writable = descriptor.writable

    def read(self) -> Any:
        return self.descriptor.read(self.obj)

    def write(self, value: Any) -> None:
        self.descriptor.write(self.obj, value)


class _EntrySlot(_Slot):
    """An entry of a wrapped mapping addressed by a plain name."""

    def __init__(self, mapping: Any, key: Any, declared: TypeDescriptor):
        super().__init__(declared)
        self.mapping = mapping
        self.key = key
        self.writable = isinstance(mapping, collections.abc.MutableMapping)

    def read(self) -> Any:
        return self.mapping.get(self.key)

    def write(self, value: Any) -> None:
        self.mapping[self.key] = value


class _SelfSlot(_Slot):
    """The wrapped object, addressed by an empty segment name."""

    writable = False

    def __init__(self, obj: Any, declared: TypeDescriptor):
        super().__init__(declared)
        self.obj = obj

    def read(self) -> Any:
        return self.obj


class PropertyNavigator:
    """
    Reads and writes property paths on a wrapped object.

    Args:
        obj: Object to navigate
        nested_path: Path prefix (ending in ``.``) of ``obj`` below the root
        root: Root object of the navigation, ``obj`` itself when omitted
        registry: Converters to use; a fresh registry when omitted
        config: Navigation settings; the active config when omitted
        declared_type: Declared type of ``obj``; its runtime type when omitted
    """

    def __init__(self, obj: Any, nested_path: str = '', root: Any = None, *,
                 registry: Optional[ConverterRegistry] = None,
                 config: Optional[AccessorConfig] = None,
                 declared_type: Any = None):
        if obj is None:
            raise ValueError("Cannot navigate a None object")
        self.wrapped = obj
        self.nested_path = nested_path
        self.root = obj if root is None else root
        self.registry = registry if registry is not None else ConverterRegistry()
        self.config = config if config is not None else get_accessor_config()
        declared = TypeDescriptor.of(declared_type) if declared_type is not None else None
        if declared is None or declared.is_unconstrained:
            declared = TypeDescriptor.for_object(obj)
        self.declared_type = declared
        self._converter = TypeConverter(self.registry)
        self._children: Dict[str, 'PropertyNavigator'] = {}

    @property
    def root_type(self) -> type:
        return type(self.root)

    def __repr__(self) -> str:
        return f"PropertyNavigator({type(self.wrapped).__name__}, nested_path={self.nested_path!r})"

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Any:
        """
        Read the value at ``path``.

        Raises:
            UnknownProperty: A segment names no property
            NotReadable: A segment cannot be read
            NullIntermediate: An intermediate value is None and auto-grow
                is disabled
            IndexOutOfRange: An index is beyond its container and cannot
                be grown to
            InvalidPropertyKind: A key was applied to a non-container
            InvocationFailure: A getter raised
        """
        navigator, final = self._navigator_for_path(path, grow=True)
        return navigator._read_segment(parse_segment(final), grow=True)

    get_value = resolve

    def assign(self, path: str, value: Any) -> None:
        """
        Convert ``value`` to the declared type at ``path`` and write it.

        Raises:
            TypeConversionFailure: The value cannot be converted
            NotWritable: The final segment cannot be written
            InvocationFailure: A getter or setter raised
            (and every error :meth:`resolve` raises for intermediate segments)
        """
        navigator, final = self._navigator_for_path(path, grow=True)
        navigator._write_segment(parse_segment(final), value)

    set_value = assign

    def assign_all(self, values: PropertyValuesLike, ignore_unknown: bool = False,
                   ignore_invalid: bool = False) -> None:
        """
        Assign several paths in order, isolating per-property failures.

        Args:
            values: PropertyValues, a mapping or an iterable of pairs
            ignore_unknown: Skip paths naming unknown properties instead of
                aborting the batch
            ignore_invalid: Skip structurally invalid paths (not writable,
                None intermediate, bad index) instead of collecting them

        Raises:
            UnknownProperty: An unknown property was met and not ignored; the
                pairs before it stay applied
            AggregatedError: One or more pairs failed; every other pair is
                applied
        """
        errors: List[PropertyAccessError] = []
        for pv in PropertyValues.coerce(values):
            try:
                self.assign(pv.name, pv.value)
            except UnknownProperty as exc:
                if not (ignore_unknown or pv.optional):
                    raise
                logger.debug(f"Ignoring unknown property '{pv.name}': {exc}")
            except InvalidProperty as exc:
                if pv.optional and isinstance(exc, NotWritable):
                    logger.debug(f"Ignoring optional value for non-writable property '{pv.name}'")
                elif ignore_invalid:
                    logger.debug(f"Ignoring invalid property '{pv.name}': {exc}")
                else:
                    errors.append(exc)
            except (TypeConversionFailure, InvocationFailure) as exc:
                errors.append(exc)
        if errors:
            raise AggregatedError(errors, self.root_type)

    set_values = assign_all

    def get_declared_type(self, path: str) -> Optional[TypeDescriptor]:
        """Declared type at ``path``, None when the path cannot be evaluated."""
        try:
            navigator, final = self._navigator_for_path(path, grow=False)
            segment = parse_segment(final)
            slot = navigator._slot_for(segment)
        except (InvalidProperty, InvocationFailure):
            return None
        if not (slot.readable or slot.writable):
            return None
        return slot.declared.nested_for_keys(segment.keys)

    def property_type(self, path: str) -> Optional[type]:
        """
        Best known class of the value at ``path``.

        The declared type when there is one, else the class of the current
        value, else the type a path converter was registered with.
        """
        try:
            navigator, final = self._navigator_for_path(path, grow=False)
            segment = parse_segment(final)
            slot = navigator._slot_for(segment)
            declared = slot.declared.nested_for_keys(segment.keys)
            if declared.raw_type is not None:
                return declared.raw_type
            value = navigator._read_segment(segment)
        except (InvalidProperty, InvocationFailure):
            return None
        if value is not None:
            return type(value)
        return self.registry.guess_property_type(canonical_name(path))

    def is_readable(self, path: str) -> bool:
        try:
            navigator, final = self._navigator_for_path(path, grow=False)
            segment = parse_segment(final)
            slot = navigator._slot_for(segment)
            if not segment.keys:
                return slot.readable
            navigator._read_segment(segment)
            return True
        except (InvalidProperty, InvocationFailure):
            return False

    def is_writable(self, path: str) -> bool:
        try:
            navigator, final = self._navigator_for_path(path, grow=False)
            segment = parse_segment(final)
            slot = navigator._slot_for(segment)
            if not segment.keys:
                return slot.writable
            holder = navigator._read_segment(PathSegment(segment.name, segment.keys[:-1]))
        except (InvalidProperty, InvocationFailure):
            return False
        if isinstance(holder, tuple):
            return slot.writable
        if isinstance(holder, collections.abc.Set):
            return False
        return isinstance(holder, (collections.abc.MutableSequence, collections.abc.MutableMapping))

    def convert_if_necessary(self, value: Any, required_type: Any = Any,
                             property_name: Optional[str] = None) -> Any:
        """Convert a standalone value with this navigator's converters."""
        return self._converter.convert_if_necessary(value, required_type, property_name)

    # ------------------------------------------------------------------
    # Nested navigation
    # ------------------------------------------------------------------

    def _full(self, canonical: str) -> str:
        return self.nested_path + canonical

    def _navigator_for_path(self, path: str, grow: bool) -> Tuple['PropertyNavigator', str]:
        navigator = self
        remainder = path
        pos = first_nested_separator_index(remainder)
        while pos >= 0:
            navigator = navigator._child_navigator(remainder[:pos], grow)
            remainder = remainder[pos + 1:]
            pos = first_nested_separator_index(remainder)
        return navigator, remainder

    def _child_navigator(self, head: str, grow: bool) -> 'PropertyNavigator':
        segment = parse_segment(head)
        canonical = segment.canonical_name
        slot = self._slot_for(segment)
        value = self._read_from_slot(slot, segment, grow)
        if value is None:
            if grow and self.config.auto_grow_nested_paths:
                value = self._set_default_value(segment)
            else:
                raise NullIntermediate(self.root_type, self._full(canonical))

        child = self._children.get(canonical)
        if child is None or child.wrapped is not value:
            child = PropertyNavigator(
                value,
                self._full(canonical) + NESTED_SEPARATOR,
                self.root,
                registry=self.registry.nested_registry(canonical),
                config=self.config,
                declared_type=slot.declared.nested_for_keys(segment.keys),
            )
            self._children[canonical] = child
            logger.debug(f"Created nested navigator for '{child.nested_path}'")
        return child

    def _set_default_value(self, segment: PathSegment) -> Any:
        slot = self._slot_for(segment)
        declared = slot.declared.nested_for_keys(segment.keys)
        default = self._new_value(declared, segment.canonical_name)
        self._write_segment(segment, default, raw=True)
        logger.debug(f"Auto-grew '{self._full(segment.canonical_name)}' with {type(default).__name__}")
        return self._read_segment(segment)

    def _new_value(self, declared: TypeDescriptor, canonical: str) -> Any:
        raw = declared.raw_type
        if raw is None:
            raise TypeConversionFailure(
                None, declared.annotation, property_path=self._full(canonical), root_type=self.root_type,
                detail="cannot determine the type to auto-grow the nested path with",
            )
        try:
            if raw is tuple:
                inner = declared.element_type()
                return (self._new_value(inner, canonical),) if inner.is_array else ()
            if declared.is_container:
                factory = approximate_factory(raw)
                if factory is None:
                    raise TypeError(f"no concrete type for {raw.__name__}")
                return factory()
            return raw()
        except (TypeError, ValueError) as exc:
            raise TypeConversionFailure(
                None, declared.annotation, property_path=self._full(canonical), root_type=self.root_type,
                detail=f"could not instantiate {raw.__name__} to auto-grow the nested path: {exc}",
            ) from exc

    def _new_element(self, container_type: TypeDescriptor, index: int, canonical: str) -> Any:
        element_type = (container_type.element_type(index) if container_type.is_array
                        else container_type.element_type())
        if element_type.is_unconstrained:
            return None
        return self._new_value(element_type, canonical)

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def _slot_for(self, segment: PathSegment) -> _Slot:
        name = segment.name
        if not name:
            return _SelfSlot(self.wrapped, self.declared_type)
        record = IntrospectionCache.for_type(type(self.wrapped))
        descriptor = record.get(name) or dynamic_descriptor(self.wrapped, name)
        if descriptor is not None:
            return _AccessorSlot(self.wrapped, descriptor)
        if isinstance(self.wrapped, collections.abc.Mapping):
            key = self._convert_key(name, self.declared_type.key_type(), segment)
            return _EntrySlot(self.wrapped, key, self.declared_type.value_type())
        raise UnknownProperty(self.root_type, self._full(segment.canonical_name),
                              possible_matches=record.close_matches(name))

    def _invoke_read(self, slot: _Slot, canonical: str) -> Any:
        try:
            return slot.read()
        except PropertyAccessError:
            raise
        except Exception as exc:
            raise InvocationFailure(self.root_type, self._full(canonical), exc) from exc

    def _invoke_write(self, slot: _Slot, old_value: Any, new_value: Any, canonical: str) -> None:
        try:
            slot.write(new_value)
        except PropertyAccessError:
            raise
        except Exception as exc:
            raise InvocationFailure(self.root_type, self._full(canonical), exc,
                                    old_value, new_value, writing=True) from exc

    def _store_into_slot(self, slot: _Slot, old_value: Any, new_value: Any, canonical: str) -> None:
        if not slot.writable:
            raise NotWritable(self.root_type, self._full(canonical),
                              f"cannot write back rebuilt {type(new_value).__name__} for '{canonical}'")
        self._invoke_write(slot, old_value, new_value, canonical)

    # ------------------------------------------------------------------
    # Terminal reads
    # ------------------------------------------------------------------

    def _read_segment(self, segment: PathSegment, grow: bool = False) -> Any:
        return self._read_from_slot(self._slot_for(segment), segment, grow)

    def _read_from_slot(self, slot: _Slot, segment: PathSegment, grow: bool) -> Any:
        canonical = segment.canonical_name
        if not slot.readable:
            raise NotReadable(self.root_type, self._full(canonical))
        value = self._invoke_read(slot, canonical)
        if not segment.keys:
            return value
        if value is None:
            if grow and self.config.auto_grow_nested_paths:
                value = self._set_default_value(PathSegment(segment.name))
            else:
                raise NullIntermediate(
                    self.root_type, self._full(canonical),
                    f"cannot access indexed value of '{canonical}': '{segment.name}' is None",
                )
        element, container = self._get_keyed(value, slot.declared, segment, 0, grow)
        if container is not value:
            self._store_into_slot(slot, value, container, canonical)
        return element

    def _get_keyed(self, container: Any, declared: TypeDescriptor, segment: PathSegment,
                   level: int, grow: bool) -> Tuple[Any, Any]:
        """Value under ``segment.keys[level:]`` and the (possibly rebuilt) container."""
        key = segment.keys[level]
        element, container = self._get_key(container, declared, key, segment, grow)
        if level == len(segment.keys) - 1:
            return element, container
        if element is None:
            raise NullIntermediate(
                self.root_type, self._full(segment.canonical_name),
                f"cannot access indexed value of '{segment.canonical_name}': element [{key}] is None",
            )
        element_type = declared.nested_for_keys((key,))
        value, updated = self._get_keyed(element, element_type, segment, level + 1, grow)
        if updated is not element:
            container = self._put_key(container, declared, key, updated, segment)
        return value, container

    def _get_key(self, container: Any, declared: TypeDescriptor, key: str,
                 segment: PathSegment, grow: bool) -> Tuple[Any, Any]:
        canonical = segment.canonical_name
        if isinstance(container, tuple):
            index = self._parse_index(key, segment)
            if grow and index >= len(container) and self.config.allows_growth_to(index):
                fill = [self._new_element(declared, i, canonical) for i in range(len(container), index + 1)]
                container = build_copy(type(container), list(container) + fill)
            return self._element_at(container, index, segment), container

        if isinstance(container, collections.abc.MutableSequence):
            index = self._parse_index(key, segment)
            if grow and index >= len(container) and self.config.allows_growth_to(index):
                for i in range(len(container), index + 1):
                    container.append(self._new_element(declared, i, canonical))
                logger.debug(f"Auto-grew '{self._full(canonical)}' to {len(container)} elements")
            return self._element_at(container, index, segment), container

        if isinstance(container, collections.abc.Set):
            index = self._parse_index(key, segment)
            if index >= len(container):
                raise IndexOutOfRange(
                    self.root_type, self._full(canonical),
                    f"cannot get element with index {index} from set of size {len(container)}",
                )
            for position, element in enumerate(container):
                if position == index:
                    return element, container

        if isinstance(container, collections.abc.Mapping):
            map_key = self._convert_key(key, declared.key_type(), segment)
            return container.get(map_key), container

        if isinstance(container, collections.abc.Sequence) and not isinstance(container, _TEXT_TYPES):
            index = self._parse_index(key, segment)
            return self._element_at(container, index, segment), container

        raise InvalidPropertyKind(
            self.root_type, self._full(canonical),
            f"'{canonical}' is neither a sequence, a set nor a mapping; value was {type(container).__name__}",
        )

    def _element_at(self, container: Any, index: int, segment: PathSegment) -> Any:
        try:
            return container[index]
        except IndexError:
            raise IndexOutOfRange(
                self.root_type, self._full(segment.canonical_name),
                f"index {index} out of range for {type(container).__name__} of size {len(container)}",
            ) from None

    def _parse_index(self, key: str, segment: PathSegment) -> int:
        try:
            index = int(key)
        except ValueError:
            raise InvalidPropertyKind(
                self.root_type, self._full(segment.canonical_name), f"invalid index '{key}'",
            ) from None
        if index < 0:
            raise IndexOutOfRange(
                self.root_type, self._full(segment.canonical_name), f"negative index {index}",
            )
        return index

    def _convert_key(self, key: str, key_type: TypeDescriptor, segment: PathSegment) -> Any:
        # No property name: path converters are meant for values, not keys
        try:
            return self._converter.convert(ConversionRequest(key, key_type, None))
        except TypeConversionFailure as exc:
            raise InvalidPropertyKind(
                self.root_type, self._full(segment.canonical_name), f"invalid key '{key}': {exc}",
            ) from exc

    # ------------------------------------------------------------------
    # Terminal writes
    # ------------------------------------------------------------------

    def _write_segment(self, segment: PathSegment, value: Any, raw: bool = False) -> None:
        slot = self._slot_for(segment)
        canonical = segment.canonical_name

        if not segment.keys:
            if not slot.writable:
                raise NotWritable(self.root_type, self._full(canonical))
            old_value = self._extract_old_value(slot)
            converted = value if raw else self._convert_for(value, slot.declared, canonical, old_value)
            self._invoke_write(slot, old_value, converted, canonical)
            return

        if not slot.readable:
            raise NotWritable(self.root_type, self._full(canonical),
                              f"cannot access indexed value in property referenced in '{canonical}'")
        container = self._invoke_read(slot, canonical)
        if container is None:
            if self.config.auto_grow_nested_paths:
                container = self._set_default_value(PathSegment(segment.name))
            else:
                raise NullIntermediate(
                    self.root_type, self._full(canonical),
                    f"cannot access indexed value in '{canonical}': '{segment.name}' is None",
                )
        updated = self._set_keyed(container, slot.declared, segment, 0, value, raw)
        if updated is not container:
            self._store_into_slot(slot, container, updated, canonical)

    def _set_keyed(self, container: Any, declared: TypeDescriptor, segment: PathSegment,
                   level: int, value: Any, raw: bool) -> Any:
        """Store ``value`` under ``segment.keys[level:]``; returns the (possibly rebuilt) container."""
        key = segment.keys[level]
        element_type = declared.nested_for_keys((key,))

        if level == len(segment.keys) - 1:
            if raw:
                converted = value
            else:
                old_value = self._extract_old_element(container, declared, key, segment)
                converted = self._convert_for(value, element_type, segment.canonical_name, old_value)
            return self._put_key(container, declared, key, converted, segment)

        element, container = self._get_key(container, declared, key, segment, grow=True)
        if element is None:
            if not self.config.auto_grow_nested_paths:
                raise NullIntermediate(
                    self.root_type, self._full(segment.canonical_name),
                    f"cannot access indexed value of '{segment.canonical_name}': element [{key}] is None",
                )
            element = self._new_value(element_type, segment.canonical_name)
            container = self._put_key(container, declared, key, element, segment)
        updated = self._set_keyed(element, element_type, segment, level + 1, value, raw)
        if updated is not element:
            container = self._put_key(container, declared, key, updated, segment)
        return container

    def _put_key(self, container: Any, declared: TypeDescriptor, key: str, value: Any,
                 segment: PathSegment) -> Any:
        canonical = segment.canonical_name
        if isinstance(container, tuple):
            index = self._parse_index(key, segment)
            items = list(container)
            self._place(items, declared, index, value, segment)
            return build_copy(type(container), items)

        if isinstance(container, collections.abc.MutableSequence):
            index = self._parse_index(key, segment)
            self._place(container, declared, index, value, segment)
            return container

        if isinstance(container, collections.abc.Set):
            raise InvalidPropertyKind(
                self.root_type, self._full(canonical),
                f"cannot assign element [{key}] of a set; sets are not positionally writable",
            )

        if isinstance(container, collections.abc.MutableMapping):
            container[self._convert_key(key, declared.key_type(), segment)] = value
            return container

        raise InvalidPropertyKind(
            self.root_type, self._full(canonical),
            f"cannot assign [{key}] into {type(container).__name__}",
        )

    def _place(self, items: Any, declared: TypeDescriptor, index: int, value: Any,
               segment: PathSegment) -> None:
        """Set ``items[index]``, growing a too-short sequence when auto-grow allows."""
        size = len(items)
        if index < size:
            items[index] = value
            return
        if not self.config.allows_growth_to(index):
            raise IndexOutOfRange(
                self.root_type, self._full(segment.canonical_name),
                f"cannot set element with index {index} in {type(items).__name__} of size {size}",
            )
        for i in range(size, index):
            items.append(self._new_element(declared, i, segment.canonical_name))
        items.append(value)

    def _extract_old_value(self, slot: _Slot) -> Any:
        if not (self.config.extract_old_value_for_converter and slot.readable):
            return None
        try:
            return slot.read()
        except _OLD_VALUE_ERRORS as exc:
            logger.debug(f"Could not read previous value: {exc}")
            return None

    def _extract_old_element(self, container: Any, declared: TypeDescriptor, key: str,
                             segment: PathSegment) -> Any:
        if not self.config.extract_old_value_for_converter:
            return None
        try:
            return self._get_key(container, declared, key, segment, grow=False)[0]
        except _OLD_VALUE_ERRORS as exc:
            logger.debug(f"Could not read previous value of '{self._full(segment.canonical_name)}': {exc}")
            return None

    def _convert_for(self, value: Any, required: TypeDescriptor, canonical: str, old_value: Any) -> Any:
        try:
            return self._converter.convert(ConversionRequest(value, required, canonical, old_value))
        except TypeConversionFailure as exc:
            raise exc.with_path(self.root_type, self._full(exc.property_path or canonical)) from exc
