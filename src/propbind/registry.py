"""
Converter registry.

Holds three layers of converters:

- defaults: built-in converters keyed by exact target type, created lazily
- overridden defaults: replacements for built-in converters that keep
  default provenance (a generic conversion service still gets its turn)
- customs: converters registered by target type and/or property path

Custom lookup for a property path tries the exact path, then the path with
bracketed keys stripped, then the target type and its supertypes.

Converters registered as *shared* get a lock owned by the registry; the
conversion pipeline holds it while driving the converter.
"""

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from propbind.conversion_service import ConversionService
from propbind.converters import as_converter, create_default_converters
from propbind.path_tokens import (
    canonical_name,
    first_nested_separator_index,
    matches_property,
    property_name,
    stripped_paths,
)
from propbind.revision_cache import CacheKey, RevisionCache
from propbind.type_descriptor import TypeDescriptor

logger = logging.getLogger(__name__)


class PathConverterEntry:
    """A converter registered for a property path, with its optional target type."""

    __slots__ = ('converter', 'registered_type')

    def __init__(self, converter: Any, registered_type: Optional[type]):
        self.converter = converter
        self.registered_type = registered_type

    def converter_for(self, required_type: Optional[type]) -> Optional[Any]:
        """
        The converter if it applies to ``required_type``.

        An entry without a registered type always applies. Otherwise the two
        types must be related in either direction; with no required type the
        entry applies unless it was registered for a container type.
        """
        registered = self.registered_type
        if registered is None:
            return self.converter
        if required_type is not None:
            if _is_subclass(registered, required_type) or _is_subclass(required_type, registered):
                return self.converter
            return None
        if not TypeDescriptor.of(registered).is_container:
            return self.converter
        return None

    def __repr__(self) -> str:
        return f"PathConverterEntry({self.converter!r}, {self.registered_type!r})"


def _is_subclass(left: Any, right: Any) -> bool:
    try:
        return issubclass(left, right)
    except TypeError:
        return False


class _SharedConverters:
    """Locks for shared converters, keyed by converter identity."""

    def __init__(self):
        self._entries: Dict[int, Any] = {}
        self._guard = threading.Lock()

    def add(self, converter: Any) -> None:
        with self._guard:
            if id(converter) not in self._entries:
                # Keep the converter alive so its id stays unique
                self._entries[id(converter)] = (converter, threading.Lock())

    def lock_for(self, converter: Any) -> Optional[threading.Lock]:
        entry = self._entries.get(id(converter))
        if entry is None or entry[0] is not converter:
            return None
        return entry[1]


class ConverterRegistry:
    """
    Default, overridden and custom converters for one navigation tree.

    Child navigators receive a :meth:`nested_registry` view so that path
    converters registered as ``address.city`` on the root apply as ``city``
    below ``address``.
    """

    def __init__(self, defaults_active: bool = True):
        self._defaults_active = defaults_active
        self._config_value_converters = False
        self._defaults: Optional[Dict[type, Any]] = None
        self._overridden_defaults: Dict[type, Any] = {}
        self._customs: 'OrderedDict[type, Any]' = OrderedDict()
        self._customs_for_path: 'OrderedDict[str, PathConverterEntry]' = OrderedDict()
        self._shared = _SharedConverters()
        self._conversion_service: Optional[ConversionService] = None
        self._revision = 0
        self._assignable_cache: RevisionCache[Any] = RevisionCache(lambda: self._revision)

    # ------------------------------------------------------------------
    # Conversion service
    # ------------------------------------------------------------------

    @property
    def conversion_service(self) -> Optional[ConversionService]:
        return self._conversion_service

    @conversion_service.setter
    def conversion_service(self, service: Optional[ConversionService]) -> None:
        self._conversion_service = service

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    def use_config_value_converters(self) -> None:
        """Make list, tuple and set defaults split comma-delimited text."""
        self._config_value_converters = True
        self._defaults = None

    def override_default_converter(self, target_type: type, converter: Any) -> None:
        """Replace the default converter for ``target_type`` without making it a custom."""
        self._overridden_defaults[target_type] = as_converter(converter)

    def get_default_converter(self, target_type: Optional[type]) -> Optional[Any]:
        """Default converter for the exact ``target_type``, or None."""
        if not self._defaults_active or target_type is None:
            return None
        overridden = self._overridden_defaults.get(target_type)
        if overridden is not None:
            return overridden
        if self._defaults is None:
            self._defaults = create_default_converters(self._config_value_converters)
            logger.debug(f"Created {len(self._defaults)} default converters")
        return self._defaults.get(target_type)

    # ------------------------------------------------------------------
    # Customs
    # ------------------------------------------------------------------

    def register_converter(self, target_type: Optional[type], converter: Any,
                           path: Optional[str] = None, shared: bool = False) -> None:
        """
        Register a custom converter.

        Args:
            target_type: Type the converter produces; may be None only with
                a path
            converter: Callable or StatefulConverter
            path: Property path the converter is restricted to; keys stripped
                paths also match (``items`` governs ``items[0]``)
            shared: Whether the instance may be driven by concurrent callers
                and therefore needs serialized access

        Raises:
            ValueError: Neither a target type nor a path is given
        """
        if target_type is None and path is None:
            raise ValueError("Either target_type or path must be given")
        converter = as_converter(converter)
        if path is not None:
            self._customs_for_path[canonical_name(path)] = PathConverterEntry(converter, target_type)
        else:
            self._customs[target_type] = converter
            self._revision += 1
        if shared:
            self._shared.add(converter)
        logger.debug(f"Registered converter {converter!r} for type={getattr(target_type, '__name__', target_type)} "
                     f"path={path!r} shared={shared}")

    def shared_lock(self, converter: Any) -> Optional[threading.Lock]:
        return self._shared.lock_for(converter)

    def find_custom_converter(self, required_type: Optional[type],
                              property_path: Optional[str] = None) -> Optional[Any]:
        """
        Custom converter for a property path and/or target type.

        Args:
            required_type: Raw target type, or None when unknown
            property_path: Canonical property path relative to the navigator

        Returns:
            The converter, or None when no custom applies
        """
        if property_path is not None and self._customs_for_path:
            converter = self._path_converter(property_path, required_type)
            if converter is None:
                for stripped in stripped_paths(property_path):
                    converter = self._path_converter(stripped, required_type)
                    if converter is not None:
                        break
            if converter is not None:
                return converter
        return self._type_converter(required_type)

    def _path_converter(self, path: str, required_type: Optional[type]) -> Optional[Any]:
        entry = self._customs_for_path.get(path)
        return entry.converter_for(required_type) if entry is not None else None

    def _type_converter(self, required_type: Optional[type]) -> Optional[Any]:
        if required_type is None or not self._customs:
            return None
        converter = self._customs.get(required_type)
        if converter is not None:
            return converter
        return self._assignable_cache.get_or_compute(
            CacheKey.from_args(required_type),
            lambda: self._scan_supertypes(required_type),
        )

    def _scan_supertypes(self, required_type: type) -> Optional[Any]:
        for klass in getattr(required_type, '__mro__', ())[1:]:
            converter = self._customs.get(klass)
            if converter is not None:
                return converter
        # Virtual bases (ABC registrations) are not on the MRO
        for registered, converter in self._customs.items():
            if _is_subclass(required_type, registered):
                return converter
        return None

    def has_custom_converter_for_element(self, element_type: Optional[type],
                                         property_path: Optional[str]) -> bool:
        """Whether elements under ``property_path`` have a custom converter."""
        if property_path is not None:
            for registered_path, entry in self._customs_for_path.items():
                if matches_property(registered_path, property_path) and entry.converter_for(element_type) is not None:
                    return True
        return element_type is not None and element_type in self._customs

    def guess_property_type(self, property_path: str) -> Optional[type]:
        """Type a path converter was registered with, exact or key-stripped path."""
        entry = self._customs_for_path.get(property_path)
        if entry is None:
            for stripped in stripped_paths(property_path):
                entry = self._customs_for_path.get(stripped)
                if entry is not None:
                    break
        return entry.registered_type if entry is not None else None

    # ------------------------------------------------------------------
    # Nesting
    # ------------------------------------------------------------------

    def nested_registry(self, nested_property: str) -> 'ConverterRegistry':
        """
        Registry for the navigator wrapping the value of ``nested_property``.

        Defaults, overrides, type customs, shared locks and the conversion
        service carry over. Path customs below ``nested_property`` are
        re-rooted; other path customs are dropped.
        """
        child = ConverterRegistry(self._defaults_active)
        child._config_value_converters = self._config_value_converters
        child._defaults = self._defaults
        child._overridden_defaults = self._overridden_defaults
        child._customs = OrderedDict(self._customs)
        child._shared = self._shared
        child._conversion_service = self._conversion_service

        actual_name = property_name(nested_property)
        for path, entry in self._customs_for_path.items():
            pos = first_nested_separator_index(path)
            if pos < 0:
                continue
            head, rest = path[:pos], path[pos + 1:]
            if head == nested_property or head == actual_name:
                child._customs_for_path[rest] = entry
        return child

    def custom_paths(self) -> List[str]:
        return list(self._customs_for_path)
