"""
Type conversion pipeline.

Converts a supplied value to a declared type, in order of precedence:

1. a custom converter registered for the property path
2. a custom converter registered for the target type
3. the injected conversion service, when no custom applies and it claims the
   source/target pair (a failure is remembered, not raised)
4. the default converter for the target type, then structural coercion:
   element-wise conversion of tuples, sequences, sets and mappings (a scalar
   becomes a one-element collection), single string constructors, enum
   member lookup

A value that still does not fit the target type raises
:class:`~propbind.errors.TypeConversionFailure`, or the remembered
conversion service failure when there is one.
"""

import collections.abc
import dataclasses
import enum
import inspect
import logging
import numbers
from dataclasses import dataclass
from typing import Any, List, Optional

from propbind.converters import FunctionConverter, StatefulConverter, resolve_dotted_name
from propbind.errors import ConversionFailed, TypeConversionFailure
from propbind.registry import ConverterRegistry
from propbind.type_descriptor import TypeDescriptor

logger = logging.getLogger(__name__)

# Exceptions a converter raises to signal a value it cannot convert
CONVERTER_ERRORS = (ValueError, TypeError, ArithmeticError, LookupError, AttributeError)

_PRIMITIVES = (bool, numbers.Number)

_NOT_CONSTRUCTED = object()

_ABSTRACT_FALLBACKS = (
    (collections.abc.MutableSequence, list),
    (collections.abc.Sequence, list),
    (collections.abc.MutableSet, set),
    (collections.abc.Set, frozenset),
    (collections.abc.MutableMapping, dict),
    (collections.abc.Mapping, dict),
)


@dataclass(frozen=True)
class ConversionRequest:
    """
    One value to convert.

    Attributes:
        value: Value as supplied by the caller
        required_type: Declared target type
        property_name: Property path relative to the navigator, used for
            path-specific converter lookup; None disables it
        old_value: Current value of the property, when extracted
    """
    value: Any
    required_type: TypeDescriptor
    property_name: Optional[str] = None
    old_value: Any = None

    @property
    def target_element_type(self) -> Optional[TypeDescriptor]:
        td = self.required_type
        if td.is_mapping:
            return td.value_type()
        if td.is_container:
            return td.element_type()
        return None

    def replace(self, **changes) -> 'ConversionRequest':
        return dataclasses.replace(self, **changes)


def indexed_name(property_name: Optional[str], index: Any) -> Optional[str]:
    if property_name is None:
        return None
    return f"{property_name}[{index}]"


def approximate_factory(raw: type) -> Optional[type]:
    """Concrete class to build a copy of ``raw``, None if unknown."""
    if not inspect.isabstract(raw) and raw.__module__ not in ('collections.abc', 'typing'):
        return raw
    for abstract, concrete in _ABSTRACT_FALLBACKS:
        if issubclass(raw, abstract) or raw is abstract:
            return concrete
    return None


def build_copy(factory: type, items: List[Any]) -> Any:
    if issubclass(factory, tuple) and hasattr(factory, '_fields'):
        return factory(*items)
    return factory(items)


class TypeConverter:
    """
    Converts values for one registry.

    Args:
        registry: Source of custom converters, defaults, shared-converter
            locks and the conversion service
    """

    def __init__(self, registry: ConverterRegistry):
        self.registry = registry

    def convert_if_necessary(self, value: Any, required_type: Any = Any,
                             property_name: Optional[str] = None, old_value: Any = None) -> Any:
        """Convert ``value`` to ``required_type`` (an annotation or descriptor)."""
        request = ConversionRequest(value, TypeDescriptor.of(required_type), property_name, old_value)
        return self.convert(request)

    def convert(self, request: ConversionRequest) -> Any:
        """
        Run the pipeline for one request.

        Raises:
            TypeConversionFailure: The value cannot be made to fit
            ConversionFailed: The conversion service failed and nothing else
                produced a fitting value
        """
        value = request.value
        required = request.required_type
        name = request.property_name
        registry = self.registry

        converter = registry.find_custom_converter(required.raw_type, name)

        if converter is None and required.members and not required.is_assignable_value(value):
            return self._convert_to_union_member(request)

        service_failure: Optional[ConversionFailed] = None
        service = registry.conversion_service
        if converter is None and service is not None and value is not None and not required.is_unconstrained:
            source_type = type(value)
            if service.can_convert(source_type, required):
                try:
                    return service.convert(value, source_type, required)
                except ConversionFailed as exc:
                    service_failure = exc

        converted = value
        if converter is not None or not required.is_assignable_value(converted):
            if isinstance(converted, str) and required.is_container and not required.is_mapping:
                if required.element_type().is_enum:
                    converted = [part.strip() for part in converted.split(',')]
            if converter is None:
                converter = registry.get_default_converter(required.raw_type)
            converted = self._apply_converter(converter, converted, request)

        standard = False
        if converted is not None and not required.is_unconstrained:
            if required.is_array:
                converted = self._convert_to_array(converted, name, required)
            elif required.is_collection and _is_collection_value(converted):
                converted = self._convert_to_collection(converted, name, required)
                standard = True
            elif required.is_collection and not isinstance(converted, collections.abc.Mapping):
                # A scalar becomes the single element
                items = list(converted) if _is_iterable_value(converted) else [converted]
                converted = self._convert_to_collection(items, name, required)
                standard = True
            elif required.is_mapping and isinstance(converted, collections.abc.Mapping):
                converted = self._convert_to_mapping(converted, name, required)
                standard = True

            if (isinstance(converted, tuple) and len(converted) == 1
                    and not required.is_assignable_value(converted)):
                converted = converted[0]
                standard = True

            if required.raw_type is str and isinstance(converted, _PRIMITIVES):
                return str(converted)
            if isinstance(converted, str) and not required.is_assignable_value(converted):
                if service_failure is None:
                    constructed = self._construct_from_string(required.raw_type, converted)
                    if constructed is not _NOT_CONSTRUCTED:
                        return constructed
                trimmed = converted.strip()
                if required.is_enum and not trimmed:
                    return None
                converted = self._convert_to_enum(required, trimmed, converted)
                standard = True

        if not required.is_assignable_value(converted):
            if service_failure is not None:
                raise service_failure
            raise TypeConversionFailure(value, required.annotation, converter=converter, property_path=name)

        if service_failure is not None:
            if converter is None and not standard and not required.is_unconstrained:
                raise service_failure
            logger.debug(f"Conversion service failed for '{name}' but fallback conversion succeeded: {service_failure}")
        return converted

    # ------------------------------------------------------------------
    # Converter invocation
    # ------------------------------------------------------------------

    def _apply_converter(self, converter: Any, value: Any, request: ConversionRequest) -> Any:
        required = request.required_type
        if converter is None:
            if required.raw_type is str and _is_text_sequence(value):
                return ','.join(value)
            return value

        lock = self.registry.shared_lock(converter)
        try:
            if lock is not None:
                with lock:
                    return self._drive(converter, value, request)
            return self._drive(converter, value, request)
        except CONVERTER_ERRORS as exc:
            raise TypeConversionFailure(
                request.value, required.annotation, property_path=request.property_name,
                detail=f"{type(exc).__name__}: {exc}",
            ) from exc

    def _drive(self, converter: Any, value: Any, request: ConversionRequest) -> Any:
        if isinstance(converter, StatefulConverter):
            return self._drive_stateful(converter, value, request)
        if value is None:
            return None
        if isinstance(converter, FunctionConverter):
            return converter(value, request)
        return converter(value)

    def _drive_stateful(self, converter: StatefulConverter, value: Any, request: ConversionRequest) -> Any:
        converted = value
        if not isinstance(converted, str):
            try:
                converter.accept(converted)
                produced = converter.read()
            except (ValueError, TypeError) as exc:
                logger.debug(f"{converter!r} does not accept {type(converted).__name__}: {exc}")
            else:
                if produced is not converted:
                    return produced

        original = converted
        required = request.required_type
        if not required.is_container and _is_text_sequence(converted):
            converted = ','.join(converted)

        if isinstance(converted, str):
            if request.old_value is not None:
                try:
                    converter.accept(request.old_value)
                except (ValueError, TypeError) as exc:
                    logger.debug(f"{converter!r} does not accept old value: {exc}")
            converter.accept_text(converted)
            return converter.read()
        return original

    # ------------------------------------------------------------------
    # Structural conversion
    # ------------------------------------------------------------------

    def _convert_element(self, item: Any, element_type: TypeDescriptor, name: Optional[str]) -> Any:
        return self.convert(ConversionRequest(item, element_type, name))

    def _convert_to_array(self, value: Any, name: Optional[str], required: TypeDescriptor) -> Any:
        raw = required.raw_type
        if isinstance(value, str) or not _is_collection_value(value):
            element = self._convert_element(value, required.element_type(0), indexed_name(name, 0))
            return build_copy(raw, [element])

        items = list(value)
        original_allowed = isinstance(value, raw)
        if (original_allowed and required.element_type().is_unconstrained and not required.args
                and not self.registry.has_custom_converter_for_element(None, name)):
            return value

        converted = []
        for i, item in enumerate(items):
            element = self._convert_element(item, required.element_type(i), indexed_name(name, i))
            original_allowed = original_allowed and element is item
            converted.append(element)
        if original_allowed:
            return value
        return build_copy(raw, converted)

    def _convert_to_collection(self, original: Any, name: Optional[str], required: TypeDescriptor) -> Any:
        raw = required.raw_type
        original_allowed = isinstance(original, raw)
        element_type = required.element_type()
        if (element_type.is_unconstrained and original_allowed
                and not self.registry.has_custom_converter_for_element(None, name)):
            return original

        factory = type(original) if original_allowed else approximate_factory(raw)
        if factory is None:
            logger.debug(f"Cannot create copy of {raw.__name__}; leaving value as is")
            return original

        converted = []
        for i, item in enumerate(original):
            element = self._convert_element(item, element_type, indexed_name(name, i))
            original_allowed = original_allowed and element is item
            converted.append(element)
        if original_allowed:
            return original
        try:
            return build_copy(factory, converted)
        except (TypeError, ValueError) as exc:
            logger.debug(f"Cannot create copy of {factory.__name__}: {exc}; leaving value as is")
            return original

    def _convert_to_mapping(self, original: Any, name: Optional[str], required: TypeDescriptor) -> Any:
        raw = required.raw_type
        original_allowed = isinstance(original, raw)
        key_type = required.key_type()
        value_type = required.value_type()
        if (key_type.is_unconstrained and value_type.is_unconstrained and original_allowed
                and not self.registry.has_custom_converter_for_element(None, name)):
            return original

        factory = type(original) if original_allowed else approximate_factory(raw)
        if factory is None:
            logger.debug(f"Cannot create copy of {raw.__name__}; leaving value as is")
            return original

        converted = []
        for key, item in original.items():
            keyed = indexed_name(name, key)
            new_key = self._convert_element(key, key_type, keyed)
            new_item = self._convert_element(item, value_type, keyed)
            original_allowed = original_allowed and new_key is key and new_item is item
            converted.append((new_key, new_item))
        if original_allowed:
            return original
        try:
            return factory(converted)
        except (TypeError, ValueError) as exc:
            logger.debug(f"Cannot create copy of {factory.__name__}: {exc}; leaving value as is")
            return original

    def _convert_to_union_member(self, request: ConversionRequest) -> Any:
        failure: Optional[TypeConversionFailure] = None
        for member in request.required_type.members:
            try:
                return self.convert(request.replace(required_type=member))
            except TypeConversionFailure as exc:
                failure = exc
        raise TypeConversionFailure(
            request.value, request.required_type.annotation, property_path=request.property_name,
            detail="no union member accepts the value",
        ) from failure

    # ------------------------------------------------------------------
    # Text to object
    # ------------------------------------------------------------------

    def _construct_from_string(self, raw: Optional[type], text: str) -> Any:
        if raw is None or inspect.isabstract(raw) or issubclass(raw, enum.Enum):
            return _NOT_CONSTRUCTED
        if raw.__module__ in ('collections.abc', 'typing', 'builtins'):
            return _NOT_CONSTRUCTED
        try:
            signature = inspect.signature(raw)
            signature.bind(text)
        except (TypeError, ValueError):
            return _NOT_CONSTRUCTED
        try:
            return raw(text)
        except CONVERTER_ERRORS as exc:
            logger.debug(f"String constructor of {raw.__name__} rejected {text!r}: {exc}")
            return _NOT_CONSTRUCTED

    def _convert_to_enum(self, required: TypeDescriptor, trimmed: str, original: Any) -> Any:
        enum_type = required.raw_type
        if enum_type is None or not issubclass(enum_type, enum.Enum):
            return original

        if not enum_type.__members__ and '.' in trimmed:
            # Generic Enum target: "package.module.EnumClass.MEMBER"
            type_name, _, member_name = trimmed.rpartition('.')
            try:
                owner = resolve_dotted_name(type_name)
                return getattr(owner, member_name)
            except (LookupError, AttributeError) as exc:
                logger.debug(f"Dotted enum lookup of {trimmed!r} failed: {exc}")

        member = enum_type.__members__.get(trimmed)
        if member is not None:
            return member
        try:
            return enum_type(trimmed)
        except ValueError:
            return original


def _is_collection_value(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray, collections.abc.Mapping)):
        return False
    return isinstance(value, collections.abc.Collection)


def _is_iterable_value(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray)):
        return False
    return isinstance(value, collections.abc.Iterable)


def _is_text_sequence(value: Any) -> bool:
    return (isinstance(value, (list, tuple)) and bool(value)
            and all(isinstance(item, str) for item in value))
