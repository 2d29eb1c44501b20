"""
Per-type accessor discovery with a process-wide cache.

For each class the set of named properties it exposes is discovered once and
recorded as an immutable :class:`IntrospectionRecord`. Sources, in order of
increasing precedence:

- ``__slots__`` entries
- annotated ``__init__`` parameters (classes that are not dataclasses)
- class-level annotations across the MRO
- dataclass fields
- ``property`` objects

Private names (leading underscore) and ``ClassVar`` annotations are skipped.

Records are pure functions of the type, so two threads racing to build the
same record is harmless; the first one stored wins.
"""

import dataclasses
import difflib
import inspect
import logging
import typing
from dataclasses import dataclass
from functools import cached_property
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from propbind.errors import IntrospectionFailure
from propbind.type_descriptor import TypeDescriptor

logger = logging.getLogger(__name__)

# Accessor kinds
FIELD = 'field'
PROPERTY = 'property'
ATTRIBUTE = 'attribute'
SLOT = 'slot'
DYNAMIC = 'dynamic'


@dataclass(frozen=True)
class AccessorDescriptor:
    """
    How one named property of a type can be read and written.

    Attributes:
        name: Property name as exposed on the type
        owner: Class the property was discovered on
        kind: Where the accessor came from (field, property, attribute, slot)
        readable: Whether a value can be read
        writable: Whether a value can be assigned
        declared_type: Annotation of the property, ``Any`` when absent
    """
    name: str
    owner: type
    kind: str
    readable: bool = True
    writable: bool = True
    declared_type: Any = Any

    @cached_property
    def type_descriptor(self) -> TypeDescriptor:
        return TypeDescriptor.of(self.declared_type)

    def read(self, obj: Any) -> Any:
        if self.kind == PROPERTY:
            return getattr(obj, self.name)
        # Annotated attributes that were never assigned read as None
        return getattr(obj, self.name, None)

    def write(self, obj: Any, value: Any) -> None:
        setattr(obj, self.name, value)


class IntrospectionRecord:
    """Immutable ``name -> AccessorDescriptor`` mapping for one class."""

    __slots__ = ('target_type', '_descriptors')

    def __init__(self, target_type: type, descriptors: Dict[str, AccessorDescriptor]):
        self.target_type = target_type
        self._descriptors: Mapping[str, AccessorDescriptor] = MappingProxyType(dict(descriptors))

    @property
    def descriptors(self) -> Mapping[str, AccessorDescriptor]:
        return self._descriptors

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._descriptors)

    def get(self, name: str) -> Optional[AccessorDescriptor]:
        """
        Look up a descriptor by name.

        Falls back to the name with its first character's case flipped, so
        ``City`` finds ``city`` and ``uRL`` finds ``URL``.
        """
        descriptor = self._descriptors.get(name)
        if descriptor is None and name:
            first = name[0]
            flipped = (first.lower() if first.isupper() else first.upper()) + name[1:]
            if flipped != name:
                descriptor = self._descriptors.get(flipped)
        return descriptor

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __iter__(self) -> Iterator[AccessorDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    def close_matches(self, name: str) -> List[str]:
        return difflib.get_close_matches(name, list(self._descriptors), n=3, cutoff=0.75)

    def __repr__(self) -> str:
        return f"IntrospectionRecord({self.target_type.__qualname__}, {list(self._descriptors)})"

    @classmethod
    def build(cls, target_type: type) -> 'IntrospectionRecord':
        """
        Discover the accessors of ``target_type``.

        Raises:
            IntrospectionFailure: Annotations could not be resolved
        """
        hints = _resolve_hints(target_type, target_type)
        found: Dict[str, AccessorDescriptor] = {}

        for name in _slot_names(target_type):
            found[name] = AccessorDescriptor(name, target_type, SLOT,
                                             declared_type=hints.get(name, Any))

        if not dataclasses.is_dataclass(target_type):
            for name, annotation in _init_parameters(target_type):
                found.setdefault(name, AccessorDescriptor(name, target_type, ATTRIBUTE,
                                                          declared_type=annotation))

        for name, annotation in hints.items():
            if name.startswith('_') or _is_classvar(annotation):
                continue
            found[name] = AccessorDescriptor(name, target_type, ATTRIBUTE, declared_type=annotation)

        if dataclasses.is_dataclass(target_type):
            frozen = target_type.__dataclass_params__.frozen
            for f in dataclasses.fields(target_type):
                if f.name.startswith('_'):
                    continue
                found[f.name] = AccessorDescriptor(
                    f.name, target_type, FIELD, writable=not frozen,
                    declared_type=hints.get(f.name, Any),
                )

        for name, prop in _properties(target_type):
            found[name] = AccessorDescriptor(
                name, target_type, PROPERTY,
                readable=prop.fget is not None,
                writable=prop.fset is not None,
                declared_type=_property_type(target_type, prop),
            )

        logger.debug(f"Introspected {target_type.__qualname__}: {sorted(found)}")
        return cls(target_type, found)


def _resolve_hints(owner: type, obj: Any) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(obj)
    except (NameError, TypeError) as exc:
        raise IntrospectionFailure(owner, exc) from exc


def _is_classvar(annotation: Any) -> bool:
    return annotation is typing.ClassVar or typing.get_origin(annotation) is typing.ClassVar


def _slot_names(target_type: type) -> List[str]:
    names = []
    for klass in reversed(target_type.__mro__):
        slots = klass.__dict__.get('__slots__', ())
        if isinstance(slots, str):
            slots = (slots,)
        names.extend(s for s in slots if not s.startswith('_'))
    return names


def _init_parameters(target_type: type) -> List[Tuple[str, Any]]:
    init = target_type.__dict__.get('__init__')
    if init is None or not inspect.isfunction(init):
        return []
    hints = _resolve_hints(target_type, init)
    params = []
    for param in inspect.signature(init).parameters.values():
        if param.name == 'self' or param.name.startswith('_'):
            continue
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if param.name in hints:
            params.append((param.name, hints[param.name]))
    return params


def _properties(target_type: type) -> List[Tuple[str, property]]:
    props: Dict[str, property] = {}
    for klass in reversed(target_type.__mro__):
        for name, value in vars(klass).items():
            if isinstance(value, property) and not name.startswith('_'):
                props[name] = value
    return list(props.items())


def _property_type(owner: type, prop: property) -> Any:
    if prop.fget is not None:
        returned = _resolve_hints(owner, prop.fget).get('return')
        if returned is not None:
            return returned
    if prop.fset is not None:
        hints = _resolve_hints(owner, prop.fset)
        params = [p for p in inspect.signature(prop.fset).parameters if p != 'self']
        if params and params[0] in hints:
            return hints[params[0]]
    return Any


def dynamic_descriptor(obj: Any, name: str) -> Optional[AccessorDescriptor]:
    """
    Descriptor for a public instance attribute not declared on the class.

    Covers plain objects such as ``SimpleNamespace`` whose attributes only
    exist per instance.
    """
    if name.startswith('_'):
        return None
    instance_dict = getattr(obj, '__dict__', None)
    if not isinstance(instance_dict, dict) or name not in instance_dict:
        return None
    return AccessorDescriptor(name, type(obj), DYNAMIC)


class IntrospectionCache:
    """Process-wide ``type -> IntrospectionRecord`` cache."""

    _records: Dict[type, IntrospectionRecord] = {}

    @classmethod
    def for_type(cls, target_type: type) -> IntrospectionRecord:
        """
        Record for ``target_type``, building it on first request.

        A failed build propagates and leaves nothing cached, so the next
        request tries again.
        """
        record = cls._records.get(target_type)
        if record is not None:
            return record
        record = IntrospectionRecord.build(target_type)
        return cls._records.setdefault(target_type, record)

    @classmethod
    def is_cached(cls, target_type: type) -> bool:
        return target_type in cls._records

    @classmethod
    def evict_scope(cls, module_prefix: str) -> int:
        """
        Drop records of types defined in ``module_prefix`` or its submodules.

        Returns:
            Number of evicted records
        """
        doomed = [
            t for t in list(cls._records)
            if t.__module__ == module_prefix or t.__module__.startswith(module_prefix + '.')
        ]
        for t in doomed:
            cls._records.pop(t, None)
        if doomed:
            logger.debug(f"Evicted {len(doomed)} introspection records for scope '{module_prefix}'")
        return len(doomed)

    @classmethod
    def clear(cls) -> None:
        cls._records.clear()

    @classmethod
    def size(cls) -> int:
        return len(cls._records)
