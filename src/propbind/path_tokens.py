"""
Property path tokenization.

A property path addresses a location in an object graph:

    addresses[0].city
    settings['mode']
    matrix[1][2]
    lookup["a.b"].value

Segments are separated by ``.`` outside of ``[...]`` spans. Each segment is a
bare name followed by zero or more bracketed keys. Key text loses one layer of
matching ``'`` or ``"`` quoting, so ``map['x']`` and ``map[x]`` share the same
canonical name.

Tokenizing never fails. A segment whose brackets do not close (``a[b``) or that
carries trailing text after its keys is kept whole as a literal name.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

NESTED_SEPARATOR = '.'
KEY_PREFIX = '['
KEY_SUFFIX = ']'

_QUOTES = ("'", '"')


@dataclass(frozen=True)
class PathSegment:
    """One dotted component of a property path: a name plus bracketed keys."""
    name: str
    keys: Tuple[str, ...] = ()

    @property
    def canonical_name(self) -> str:
        return self.name + ''.join(f'{KEY_PREFIX}{_quote_key(key)}{KEY_SUFFIX}' for key in self.keys)

    def __str__(self) -> str:
        return self.canonical_name


@dataclass(frozen=True)
class PropertyPath:
    """Immutable parsed form of a property path string."""
    segments: Tuple[PathSegment, ...]

    @property
    def canonical_name(self) -> str:
        return NESTED_SEPARATOR.join(seg.canonical_name for seg in self.segments)

    @property
    def is_nested(self) -> bool:
        return len(self.segments) > 1

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self):
        return iter(self.segments)

    def __str__(self) -> str:
        return self.canonical_name


def _quote_key(key: str) -> str:
    # A key that still reads as quoted is wrapped in the other quote character
    if strip_quotes(key) != key:
        other = '"' if key[0] == "'" else "'"
        return f'{other}{key}{other}'
    return key


def strip_quotes(key: str) -> str:
    """Remove a single layer of matching quotes around key text."""
    if len(key) >= 2 and key[0] in _QUOTES and key[-1] == key[0]:
        return key[1:-1]
    return key


def first_nested_separator_index(path: str) -> int:
    """Index of the first ``.`` not inside a ``[...]`` span, or -1."""
    in_key = False
    for i, ch in enumerate(path):
        if ch == KEY_PREFIX:
            in_key = True
        elif ch == KEY_SUFFIX:
            in_key = False
        elif ch == NESTED_SEPARATOR and not in_key:
            return i
    return -1


def split_path(path: str) -> List[str]:
    """Split a path into raw segment strings at un-bracketed dots."""
    parts = []
    remainder = path
    while True:
        idx = first_nested_separator_index(remainder)
        if idx < 0:
            parts.append(remainder)
            return parts
        parts.append(remainder[:idx])
        remainder = remainder[idx + 1:]


def parse_segment(text: str) -> PathSegment:
    """
    Parse one segment string into a name and its keys.

    Malformed bracket structure (unterminated key or trailing text after the
    last key) yields a segment whose name is the literal text with no keys.
    """
    start = text.find(KEY_PREFIX)
    if start < 0:
        return PathSegment(text)

    name = text[:start]
    keys = []
    pos = start
    while pos < len(text):
        if text[pos] != KEY_PREFIX:
            return PathSegment(text)
        end = text.find(KEY_SUFFIX, pos + 1)
        if end < 0:
            return PathSegment(text)
        keys.append(strip_quotes(text[pos + 1:end]))
        pos = end + 1
    return PathSegment(name, tuple(keys))


def tokenize(path: str) -> PropertyPath:
    """Parse a property path string into a :class:`PropertyPath`."""
    return PropertyPath(tuple(parse_segment(part) for part in split_path(path)))


def canonical_name(path: Optional[str]) -> str:
    """Canonical form of a path: keys with one layer of quoting removed."""
    if not path:
        return ''
    return tokenize(path).canonical_name


def property_name(path: str) -> str:
    """Bare name of a single segment, i.e. the text before its first key."""
    idx = path.find(KEY_PREFIX) if path.endswith(KEY_SUFFIX) else -1
    return path[:idx] if idx >= 0 else path


def matches_property(registered_path: str, property_path: str) -> bool:
    """
    Whether ``registered_path`` names ``property_path`` or one of its keys.

    ``items`` and ``items[0]`` match the property ``items``; ``itemsX`` and
    ``items[0].name`` do not.
    """
    if not registered_path.startswith(property_path):
        return False
    if len(registered_path) == len(property_path):
        return True
    if registered_path[len(property_path)] != KEY_PREFIX:
        return False
    return registered_path.find(KEY_SUFFIX, len(property_path) + 1) == len(registered_path) - 1


def stripped_paths(path: str, nested_path: str = '') -> List[str]:
    """
    Every variant of ``path`` with one or more bracketed keys removed.

    For ``a[1].b[2]`` this yields ``a.b[2]``, ``a.b``, ``a[1].b``. Converters
    registered against a container property are found through these when a
    lookup comes in for one of its elements.
    """
    result: List[str] = []
    _add_stripped(result, nested_path, path)
    return result


def _add_stripped(result: List[str], prefix_path: str, path: str) -> None:
    start = path.find(KEY_PREFIX)
    if start < 0:
        return
    end = path.find(KEY_SUFFIX, start)
    if end < 0:
        return
    prefix = path[:start]
    key = path[start:end + 1]
    suffix = path[end + 1:]
    result.append(prefix_path + prefix + suffix)
    _add_stripped(result, prefix_path + prefix, suffix)
    _add_stripped(result, prefix_path + prefix + key, suffix)
