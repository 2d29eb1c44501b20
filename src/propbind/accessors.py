"""
Module-level entry points for collaborators.

Each call builds a fresh :class:`~propbind.navigator.PropertyNavigator` over
the given root, using the process-wide default registry (or the ``registry``
passed in) and the active accessor configuration (or the ``config`` passed
in).

Example:
    register_converter(str, str.upper, path="name")
    set_value(person, "name", "bob")
    get_value(person, "addresses[0].city")
"""

import logging
from typing import Any, Optional

from propbind.config import AccessorConfig, get_accessor_config
from propbind.conversion_service import ConversionService
from propbind.introspection import IntrospectionCache
from propbind.navigator import PropertyNavigator
from propbind.property_values import PropertyValuesLike
from propbind.registry import ConverterRegistry
from propbind.type_descriptor import TypeDescriptor

logger = logging.getLogger(__name__)

_default_registry = ConverterRegistry()


def get_default_registry() -> ConverterRegistry:
    return _default_registry


def reset_default_registry() -> ConverterRegistry:
    """Replace the default registry with a fresh one and return it."""
    global _default_registry
    _default_registry = ConverterRegistry()
    return _default_registry


def navigator_for(root: Any, registry: Optional[ConverterRegistry] = None,
                  config: Optional[AccessorConfig] = None) -> PropertyNavigator:
    return PropertyNavigator(
        root,
        registry=registry if registry is not None else _default_registry,
        config=config if config is not None else get_accessor_config(),
    )


def get_value(root: Any, path: str, *, registry: Optional[ConverterRegistry] = None,
              config: Optional[AccessorConfig] = None) -> Any:
    """Read the value at ``path`` below ``root``."""
    return navigator_for(root, registry, config).resolve(path)


def set_value(root: Any, path: str, value: Any, *, registry: Optional[ConverterRegistry] = None,
              config: Optional[AccessorConfig] = None) -> None:
    """Convert ``value`` to the declared type at ``path`` and assign it."""
    navigator_for(root, registry, config).assign(path, value)


def set_values(root: Any, values: PropertyValuesLike, ignore_unknown: bool = False,
               ignore_invalid: bool = False, *, registry: Optional[ConverterRegistry] = None,
               config: Optional[AccessorConfig] = None) -> None:
    """
    Assign several paths, collecting per-property failures.

    Args:
        root: Object to populate
        values: PropertyValues, a mapping of path to value, or pairs
        ignore_unknown: Skip unknown properties instead of aborting
        ignore_invalid: Skip structurally invalid paths instead of
            reporting them

    Raises:
        UnknownProperty: Unknown property met while not ignoring unknowns
        AggregatedError: One error per failed pair; the rest are applied
    """
    navigator_for(root, registry, config).assign_all(values, ignore_unknown, ignore_invalid)


def get_declared_type(root: Any, path: str, *,
                      registry: Optional[ConverterRegistry] = None) -> Optional[TypeDescriptor]:
    return navigator_for(root, registry).get_declared_type(path)


def get_property_type(root: Any, path: str, *, registry: Optional[ConverterRegistry] = None) -> Optional[type]:
    return navigator_for(root, registry).property_type(path)


def is_readable(root: Any, path: str, *, registry: Optional[ConverterRegistry] = None,
                config: Optional[AccessorConfig] = None) -> bool:
    return navigator_for(root, registry, config).is_readable(path)


def is_writable(root: Any, path: str, *, registry: Optional[ConverterRegistry] = None,
                config: Optional[AccessorConfig] = None) -> bool:
    return navigator_for(root, registry, config).is_writable(path)


def register_converter(target_type: Optional[type], converter: Any, path: Optional[str] = None,
                       shared: bool = False) -> None:
    """Register a custom converter on the default registry."""
    _default_registry.register_converter(target_type, converter, path=path, shared=shared)


def override_default_converter(target_type: type, converter: Any) -> None:
    _default_registry.override_default_converter(target_type, converter)


def set_conversion_service(service: Optional[ConversionService]) -> None:
    _default_registry.conversion_service = service


def evict_scope(module_prefix: str) -> int:
    """Drop cached introspection for types defined under ``module_prefix``."""
    return IntrospectionCache.evict_scope(module_prefix)
