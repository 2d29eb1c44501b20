"""
Value converters.

Two converter shapes are supported:

Function converters
    Any callable ``f(value)`` or ``f(value, request)``. Whether the
    :class:`~propbind.conversion.ConversionRequest` is passed is decided once
    from the callable's signature. This is the preferred shape: a pure
    transformation with no state between calls.

Stateful converters
    Subclasses of :class:`StatefulConverter` driven through
    ``accept(value)`` / ``accept_text(text)`` followed by ``read()``. The
    instance holds the value between those calls, so an instance registered
    as *shared* is driven under a lock by the conversion pipeline.

The default converter set for common target types is built by
:func:`create_default_converters`.
"""

import codecs
import importlib
import inspect
import logging
import re
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from fractions import Fraction
from pathlib import Path, PurePath
from typing import Any, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

TRUE_TEXTS = frozenset({'true', 'on', 'yes', '1'})
FALSE_TEXTS = frozenset({'false', 'off', 'no', '0'})

_RADIX_PREFIXES = ('0x', '0o', '0b')


class StatefulConverter(ABC):
    """
    Converter that is handed a value, then asked for its converted form.

    Subclasses implement :meth:`accept_text`; the default :meth:`accept`
    stores non-text values as they are.
    """

    def __init__(self):
        self._value: Any = None

    def accept(self, value: Any) -> None:
        self._value = value

    @abstractmethod
    def accept_text(self, text: str) -> None:
        """Parse ``text`` and hold the result for :meth:`read`."""

    def read(self) -> Any:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class FunctionConverter:
    """
    Adapter giving every plain callable the ``(value, request)`` call shape.

    The first positional parameter receives the value. A second required
    positional parameter, or one named ``request``, receives the request.
    """

    def __init__(self, func: Callable[..., Any]):
        if isinstance(func, FunctionConverter):
            func = func.func
        self.func = func
        self.takes_request = _accepts_request(func)

    def __call__(self, value: Any, request: Any = None) -> Any:
        if self.takes_request:
            return self.func(value, request)
        return self.func(value)

    def __repr__(self) -> str:
        name = getattr(self.func, '__qualname__', None) or repr(self.func)
        return f"FunctionConverter({name})"


def _accepts_request(func: Callable[..., Any]) -> bool:
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    positional = [p for p in sig.parameters.values()
                  if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
    if len(positional) < 2:
        return False
    # A defaulted second parameter is the request only when named so
    second = positional[1]
    return second.default is second.empty or second.name == 'request'


def as_converter(converter: Any) -> Any:
    """Normalize a registered converter: stateful ones stay, callables are wrapped."""
    if isinstance(converter, (StatefulConverter, FunctionConverter)):
        return converter
    if callable(converter):
        return FunctionConverter(converter)
    raise TypeError(f"Converter must be callable or a StatefulConverter, got {converter!r}")


# ----------------------------------------------------------------------
# Scalar converters
# ----------------------------------------------------------------------

class NumberConverter:
    """
    Converts numbers and numeric text to ``number_type``.

    Integer text may carry a ``0x``/``0o``/``0b`` radix prefix. Lossy
    float-to-int conversion is rejected.
    """

    def __init__(self, number_type: type, allow_empty: bool = True):
        self.number_type = number_type
        self.allow_empty = allow_empty

    def __call__(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            return self._parse(value.strip())
        if isinstance(value, bool):
            value = int(value)
        if self.number_type is int:
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"Cannot convert {value!r} to int without losing precision")
            if isinstance(value, (Decimal, Fraction)) and value != int(value):
                raise ValueError(f"Cannot convert {value!r} to int without losing precision")
            return int(value)
        if self.number_type is Decimal and isinstance(value, float):
            return Decimal(str(value))
        return self.number_type(value)

    def _parse(self, text: str) -> Any:
        if not text:
            if self.allow_empty:
                return None
            raise ValueError("Empty text is not a number")
        if self.number_type is int:
            unsigned = text.lstrip('+-').lower()
            if unsigned.startswith(_RADIX_PREFIXES):
                return int(text, 0)
            return int(text.replace('_', ''))
        return self.number_type(text)

    def __repr__(self) -> str:
        return f"NumberConverter({self.number_type.__name__})"


class BooleanConverter:
    """Converts ``true/on/yes/1`` and ``false/off/no/0`` text (any case) to bool."""

    def __init__(self, allow_empty: bool = True, true_text: Optional[str] = None,
                 false_text: Optional[str] = None):
        self.allow_empty = allow_empty
        self.true_text = true_text
        self.false_text = false_text

    def __call__(self, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip()
            if not text and self.allow_empty:
                return None
            if self.true_text is not None and text.lower() == self.true_text.lower():
                return True
            if self.false_text is not None and text.lower() == self.false_text.lower():
                return False
            lowered = text.lower()
            if self.true_text is None and lowered in TRUE_TEXTS:
                return True
            if self.false_text is None and lowered in FALSE_TEXTS:
                return False
            raise ValueError(f"Invalid boolean value [{value}]")
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise TypeError(f"Cannot convert {type(value).__name__} to bool")

    def __repr__(self) -> str:
        return "BooleanConverter()"


class StringTrimmer:
    """
    Trims text, optionally deleting characters and mapping empty text to None.

    Non-text values are returned unchanged.
    """

    def __init__(self, chars_to_delete: Optional[str] = None, empty_as_none: bool = False):
        self.chars_to_delete = chars_to_delete
        self.empty_as_none = empty_as_none

    def __call__(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        text = value.strip()
        if self.chars_to_delete:
            text = text.translate({ord(c): None for c in self.chars_to_delete})
        if self.empty_as_none and not text:
            return None
        return text

    def __repr__(self) -> str:
        return f"StringTrimmer(chars_to_delete={self.chars_to_delete!r}, empty_as_none={self.empty_as_none})"


def resolve_dotted_name(name: str) -> Any:
    """
    Import ``package.module.Attr.Nested`` and return the named object.

    Names without a dot are looked up in :mod:`builtins`.

    Raises:
        LookupError: No module/attribute combination resolves the name
    """
    parts = name.strip().split('.')
    if len(parts) == 1:
        parts = ['builtins'] + parts
    for split in range(len(parts) - 1, 0, -1):
        module_name = '.'.join(parts[:split])
        try:
            target = importlib.import_module(module_name)
        except ImportError:
            continue
        try:
            for attr in parts[split:]:
                target = getattr(target, attr)
        except AttributeError:
            continue
        return target
    raise LookupError(f"Cannot resolve dotted name '{name}'")


def _to_type(value: Any) -> Any:
    if isinstance(value, type) or value is None:
        return value
    if isinstance(value, str):
        resolved = resolve_dotted_name(value)
        if not isinstance(resolved, type):
            raise TypeError(f"'{value}' does not name a class")
        return resolved
    raise TypeError(f"Cannot convert {type(value).__name__} to a class")


def _to_path(value: Any) -> Any:
    if isinstance(value, str):
        return Path(value.strip())
    return Path(value)


def _to_pure_path(value: Any) -> Any:
    if isinstance(value, str):
        return PurePath(value.strip())
    return PurePath(value)


def _to_uuid(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        return uuid.UUID(text) if text else None
    if isinstance(value, bytes):
        return uuid.UUID(bytes=value)
    if isinstance(value, int):
        return uuid.UUID(int=value)
    raise TypeError(f"Cannot convert {type(value).__name__} to UUID")


def _to_pattern(value: Any) -> Any:
    if not isinstance(value, str):
        raise TypeError(f"Cannot compile {type(value).__name__} as a pattern")
    try:
        return re.compile(value)
    except re.error as exc:
        raise ValueError(f"Invalid pattern {value!r}: {exc}") from exc


def _to_bytes(value: Any) -> Any:
    if isinstance(value, str):
        return value.encode('utf-8')
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, (list, tuple)) and all(isinstance(b, int) for b in value):
        return bytes(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


def _to_codec(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        return codecs.lookup(text) if text else None
    raise TypeError(f"Cannot convert {type(value).__name__} to a codec")


# ----------------------------------------------------------------------
# Container converters
# ----------------------------------------------------------------------

def _is_iterable_source(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray)):
        return False
    if isinstance(value, dict):
        return False
    return isinstance(value, Iterable)


class CollectionConverter:
    """
    Converts sequences and scalars to ``collection_type``.

    A value already of that type is returned unchanged. Any other iterable is
    copied; a scalar becomes a single element. With a ``delimiter`` set, text
    is split into stripped elements instead of being wrapped whole.
    """

    def __init__(self, collection_type: type, delimiter: Optional[str] = None,
                 none_as_empty: bool = False):
        self.collection_type = collection_type
        self.delimiter = delimiter
        self.none_as_empty = none_as_empty

    def __call__(self, value: Any) -> Any:
        if value is None:
            return self.collection_type() if self.none_as_empty else None
        if isinstance(value, self.collection_type):
            return value
        if isinstance(value, str) and self.delimiter is not None:
            if not value.strip():
                return self.collection_type()
            return self._build([part.strip() for part in value.split(self.delimiter)])
        if _is_iterable_source(value):
            return self._build(list(value))
        return self._build([value])

    def _build(self, items):
        if hasattr(self.collection_type, '_fields'):
            # NamedTuple subclasses take their members positionally
            return self.collection_type(*items)
        return self.collection_type(items)

    def __repr__(self) -> str:
        return f"CollectionConverter({self.collection_type.__name__})"


class MappingConverter:
    """Converts mappings and sequences of key/value pairs to ``mapping_type``."""

    def __init__(self, mapping_type: type = dict):
        self.mapping_type = mapping_type

    def __call__(self, value: Any) -> Any:
        if value is None or isinstance(value, self.mapping_type):
            return value
        if hasattr(value, 'keys') or _is_iterable_source(value):
            return self.mapping_type(value)
        raise TypeError(f"Cannot convert {type(value).__name__} to {self.mapping_type.__name__}")

    def __repr__(self) -> str:
        return f"MappingConverter({self.mapping_type.__name__})"


def create_default_converters(config_value_converters: bool = False) -> Dict[type, Any]:
    """
    Build the default ``type -> converter`` table.

    Args:
        config_value_converters: Split comma-delimited text for list, tuple
            and set targets instead of wrapping it as a single element

    Returns:
        Fresh dict of converters keyed by exact target type
    """
    delimiter = ',' if config_value_converters else None
    defaults: Dict[type, Any] = {
        int: NumberConverter(int),
        float: NumberConverter(float),
        complex: NumberConverter(complex),
        Decimal: NumberConverter(Decimal),
        Fraction: NumberConverter(Fraction),
        bool: BooleanConverter(),
        bytes: _to_bytes,
        Path: _to_path,
        PurePath: _to_pure_path,
        uuid.UUID: _to_uuid,
        re.Pattern: _to_pattern,
        type: _to_type,
        codecs.CodecInfo: _to_codec,
        list: CollectionConverter(list, delimiter),
        tuple: CollectionConverter(tuple, delimiter),
        set: CollectionConverter(set, delimiter),
        frozenset: CollectionConverter(frozenset),
        dict: MappingConverter(dict),
    }
    return {target: as_converter(conv) for target, conv in defaults.items()}
