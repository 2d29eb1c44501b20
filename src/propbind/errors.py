"""
Error taxonomy for property access and value conversion.

Every error raised while resolving or assigning a path derives from
:class:`PropertyAccessError` and records the root type and the full property
path it concerns. Structural problems with a path (unknown name, wrong
container kind, missing intermediate) share the :class:`InvalidProperty`
base so batch assignment can treat them as one family.
"""

from typing import Any, Iterable, List, Optional, Type


def _type_label(tp: Any) -> str:
    if tp is None:
        return 'None'
    return getattr(tp, '__qualname__', None) or getattr(tp, 'name', None) or repr(tp)


class PropertyAccessError(Exception):
    """Base for errors raised while reading or writing a property path."""

    def __init__(self, message: str, root_type: Optional[type] = None,
                 property_path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.root_type = root_type
        self.property_path = property_path

    def __str__(self) -> str:
        return self.message


class InvalidProperty(PropertyAccessError):
    """A path is structurally invalid for the object graph it is applied to."""

    def __init__(self, root_type: Optional[type], property_path: str, detail: str):
        message = f"Invalid property '{property_path}' of {_type_label(root_type)}: {detail}"
        super().__init__(message, root_type, property_path)
        self.detail = detail


class UnknownProperty(InvalidProperty):
    """No accessor exists for the named property."""

    def __init__(self, root_type: Optional[type], property_path: str,
                 detail: Optional[str] = None, possible_matches: Iterable[str] = ()):
        self.possible_matches = tuple(possible_matches)
        if detail is None:
            detail = "no such property"
            if self.possible_matches:
                detail += f"; did you mean {', '.join(repr(m) for m in self.possible_matches)}?"
        super().__init__(root_type, property_path, detail)


class NotReadable(InvalidProperty):
    """The property exists but exposes no getter."""

    def __init__(self, root_type: Optional[type], property_path: str,
                 detail: str = "property is not readable"):
        super().__init__(root_type, property_path, detail)


class NotWritable(InvalidProperty):
    """The property exists but exposes no setter."""

    def __init__(self, root_type: Optional[type], property_path: str,
                 detail: str = "property is not writable"):
        super().__init__(root_type, property_path, detail)


class NullIntermediate(InvalidProperty):
    """An intermediate segment of a nested path evaluated to None."""

    def __init__(self, root_type: Optional[type], property_path: str,
                 detail: str = "value of nested property is None"):
        super().__init__(root_type, property_path, detail)


class IndexOutOfRange(InvalidProperty):
    """An index key addresses a position beyond the container's size."""

    def __init__(self, root_type: Optional[type], property_path: str, detail: str):
        super().__init__(root_type, property_path, detail)


class InvalidPropertyKind(InvalidProperty):
    """A key was applied to a value that cannot be accessed that way."""

    def __init__(self, root_type: Optional[type], property_path: str, detail: str):
        super().__init__(root_type, property_path, detail)


class InvocationFailure(PropertyAccessError):
    """The underlying getter or setter raised."""

    def __init__(self, root_type: Optional[type], property_path: str, cause: BaseException,
                 old_value: Any = None, new_value: Any = None, writing: bool = False):
        action = "setting" if writing else "accessing"
        message = (f"Error {action} property '{property_path}' of "
                   f"{_type_label(root_type)}: {type(cause).__name__}: {cause}")
        super().__init__(message, root_type, property_path)
        self.cause = cause
        self.old_value = old_value
        self.new_value = new_value


class TypeConversionFailure(PropertyAccessError):
    """A value could not be converted to the required type."""

    def __init__(self, value: Any, required_type: Any, converter: Any = None,
                 property_path: Optional[str] = None, root_type: Optional[type] = None,
                 detail: Optional[str] = None):
        source = _type_label(type(value)) if value is not None else 'None'
        message = f"Cannot convert value of type '{source}' to required type '{_type_label(required_type)}'"
        if property_path:
            message += f" for property '{property_path}'"
        if converter is not None:
            message += f": converter {converter!r} returned inappropriate value"
        elif detail:
            message += f": {detail}"
        super().__init__(message, root_type, property_path)
        self.value = value
        self.required_type = required_type
        self.converter = converter
        self.detail = detail

    def with_path(self, root_type: Optional[type], property_path: str) -> 'TypeConversionFailure':
        """Copy of this failure attributed to a full property path."""
        relocated = type(self).__new__(type(self))
        TypeConversionFailure.__init__(
            relocated, self.value, self.required_type, self.converter,
            property_path, root_type, self.detail,
        )
        return relocated


class ConversionFailed(TypeConversionFailure):
    """A generic conversion service attempted the conversion and failed."""


class AggregatedError(PropertyAccessError):
    """
    Errors collected from a batch assignment, one per failed property.

    The pairs that did not fail are left applied.
    """

    def __init__(self, errors: List[PropertyAccessError], root_type: Optional[type] = None):
        self.errors = list(errors)
        details = '; '.join(f"{e.property_path}: {e}" for e in self.errors)
        message = f"Failed properties: {details}"
        super().__init__(message, root_type, None)

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self):
        return iter(self.errors)

    def get(self, property_path: str) -> Optional[PropertyAccessError]:
        """First collected error for the given path, if any."""
        for error in self.errors:
            if error.property_path == property_path:
                return error
        return None

    def contains(self, error_type: Type[BaseException]) -> bool:
        """Whether any collected error is, or was caused by, an ``error_type``."""
        for error in self.errors:
            cause: Optional[BaseException] = error
            while cause is not None:
                if isinstance(cause, error_type):
                    return True
                cause = cause.__cause__
        return False

    @property
    def failed_paths(self) -> List[str]:
        return [e.property_path for e in self.errors]


class IntrospectionFailure(Exception):
    """Accessors of a type could not be discovered."""

    def __init__(self, target_type: type, cause: Optional[BaseException] = None):
        message = f"Failed to introspect {_type_label(target_type)}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.target_type = target_type
        self.cause = cause
