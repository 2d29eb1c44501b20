"""
Property-path resolution and type conversion for Python object graphs.

Reads and writes values addressed by string paths such as
``addresses[0].city`` or ``settings['mode']``, converting supplied values to
the declared type of the target. Intended for layers that populate objects
they know nothing about at import time: data binders, configuration loaders,
dependency-injection containers.

Key Features:
- Path tokenizer with bracketed keys and canonical names
- Per-type accessor introspection (dataclasses, properties, annotations,
  slots), cached process-wide
- Layered conversion: path converters, type converters, a pluggable
  conversion service, default converters, structural coercion
- Optional auto-growing of intermediate values and lists
- Batch assignment that isolates per-property failures

Quick Start:
    >>> from dataclasses import dataclass, field
    >>> from typing import List
    >>> from propbind import get_value, set_value, set_values
    >>>
    >>> @dataclass
    ... class Address:
    ...     city: str = ""
    >>>
    >>> @dataclass
    ... class Person:
    ...     name: str = ""
    ...     age: int = 0
    ...     addresses: List[Address] = field(default_factory=list)
    >>>
    >>> person = Person(addresses=[Address("Oslo")])
    >>> get_value(person, "addresses[0].city")
    'Oslo'
    >>> set_value(person, "age", "42")
    >>> person.age
    42

Modules:
    - path_tokens: Path parsing and canonical names
    - type_descriptor: Normalized view of typing annotations
    - introspection: Accessor discovery and the introspection cache
    - converters: Built-in converters and converter adapters
    - registry: Default, overridden and custom converters
    - conversion_service: Pluggable generic conversion service
    - conversion: The type conversion pipeline
    - navigator: Path navigation, reads, writes and batch assignment
    - accessors: Module-level entry points over a default registry
    - config: Navigation settings and context scoping
"""

# Path tokens
from propbind.path_tokens import (
    PathSegment,
    PropertyPath,
    tokenize,
    canonical_name,
)

# Types and introspection
from propbind.type_descriptor import TypeDescriptor
from propbind.introspection import (
    AccessorDescriptor,
    IntrospectionRecord,
    IntrospectionCache,
)

# Converters
from propbind.converters import (
    StatefulConverter,
    FunctionConverter,
    NumberConverter,
    BooleanConverter,
    StringTrimmer,
    CollectionConverter,
    MappingConverter,
)
from propbind.registry import ConverterRegistry
from propbind.conversion_service import (
    ConversionService,
    GenericConversionService,
    default_conversion_service,
)
from propbind.conversion import ConversionRequest, TypeConverter

# Navigation
from propbind.navigator import PropertyNavigator
from propbind.property_values import PropertyValue, PropertyValues

# Configuration
from propbind.config import (
    AccessorConfig,
    accessor_config_context,
    get_accessor_config,
    set_default_accessor_config,
)

# Errors
from propbind.errors import (
    PropertyAccessError,
    InvalidProperty,
    UnknownProperty,
    NotReadable,
    NotWritable,
    NullIntermediate,
    IndexOutOfRange,
    InvalidPropertyKind,
    InvocationFailure,
    TypeConversionFailure,
    ConversionFailed,
    AggregatedError,
    IntrospectionFailure,
)

# Entry points
from propbind.accessors import (
    get_value,
    set_value,
    set_values,
    get_declared_type,
    get_property_type,
    is_readable,
    is_writable,
    register_converter,
    override_default_converter,
    set_conversion_service,
    get_default_registry,
    reset_default_registry,
    evict_scope,
)

__all__ = [
    # Path tokens
    'PathSegment',
    'PropertyPath',
    'tokenize',
    'canonical_name',

    # Types and introspection
    'TypeDescriptor',
    'AccessorDescriptor',
    'IntrospectionRecord',
    'IntrospectionCache',

    # Converters
    'StatefulConverter',
    'FunctionConverter',
    'NumberConverter',
    'BooleanConverter',
    'StringTrimmer',
    'CollectionConverter',
    'MappingConverter',
    'ConverterRegistry',
    'ConversionService',
    'GenericConversionService',
    'default_conversion_service',
    'ConversionRequest',
    'TypeConverter',

    # Navigation
    'PropertyNavigator',
    'PropertyValue',
    'PropertyValues',

    # Configuration
    'AccessorConfig',
    'accessor_config_context',
    'get_accessor_config',
    'set_default_accessor_config',

    # Errors
    'PropertyAccessError',
    'InvalidProperty',
    'UnknownProperty',
    'NotReadable',
    'NotWritable',
    'NullIntermediate',
    'IndexOutOfRange',
    'InvalidPropertyKind',
    'InvocationFailure',
    'TypeConversionFailure',
    'ConversionFailed',
    'AggregatedError',
    'IntrospectionFailure',

    # Entry points
    'get_value',
    'set_value',
    'set_values',
    'get_declared_type',
    'get_property_type',
    'is_readable',
    'is_writable',
    'register_converter',
    'override_default_converter',
    'set_conversion_service',
    'get_default_registry',
    'reset_default_registry',
    'evict_scope',
]

__version__ = "0.1.0"
