"""
Pluggable generic conversion service.

A conversion service is consulted by the conversion pipeline before default
converters, but only when no custom converter applies to the property.
"""

import enum
import logging
import numbers
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from propbind.errors import ConversionFailed
from propbind.type_descriptor import TypeDescriptor

logger = logging.getLogger(__name__)


class ConversionService(ABC):
    """Source-type to target-type conversion strategy."""

    @abstractmethod
    def can_convert(self, source_type: Optional[type], target: TypeDescriptor) -> bool:
        ...

    @abstractmethod
    def convert(self, value: Any, source_type: Optional[type], target: TypeDescriptor) -> Any:
        """
        Convert ``value`` to the target type.

        Raises:
            ConversionFailed: The registered conversion raised
        """


class GenericConversionService(ConversionService):
    """
    Conversion functions registered per ``(source_type, target_type)`` pair.

    Source types are matched along the value's MRO, nearest first, so a
    function registered for ``object`` acts as a catch-all. Target types must
    match the required raw type exactly.
    """

    def __init__(self):
        self._converters: Dict[Tuple[type, type], Callable[[Any], Any]] = {}

    def add_converter(self, source_type: type, target_type: type, func: Callable[[Any], Any]) -> None:
        self._converters[(source_type, target_type)] = func
        logger.debug(f"Registered conversion {source_type.__name__} -> {target_type.__name__}")

    def _find(self, source_type: Optional[type], target: TypeDescriptor) -> Optional[Callable[[Any], Any]]:
        target_type = target.raw_type
        if source_type is None or target_type is None:
            return None
        for klass in source_type.__mro__:
            func = self._converters.get((klass, target_type))
            if func is not None:
                return func
        # Abstract base classes (numbers.Number, ...) are not on the MRO
        for (source, target_candidate), func in self._converters.items():
            if target_candidate is target_type and issubclass(source_type, source):
                return func
        return None

    def can_convert(self, source_type: Optional[type], target: TypeDescriptor) -> bool:
        return self._find(source_type, target) is not None

    def convert(self, value: Any, source_type: Optional[type], target: TypeDescriptor) -> Any:
        func = self._find(source_type, target)
        if func is None:
            raise ConversionFailed(value, target.annotation,
                                   detail=f"no conversion from {getattr(source_type, '__name__', source_type)}")
        try:
            return func(value)
        except Exception as exc:
            raise ConversionFailed(value, target.annotation, detail=f"{type(exc).__name__}: {exc}") from exc


def default_conversion_service() -> GenericConversionService:
    """Service preloaded with enum-to-name and number-to-text conversions."""
    service = GenericConversionService()
    service.add_converter(enum.Enum, str, lambda member: member.name)
    service.add_converter(numbers.Number, str, str)
    return service
