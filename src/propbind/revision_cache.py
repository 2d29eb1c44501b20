"""
Revision-keyed cache invalidation.

Caches values derived from mutable registration state. The owner bumps a
revision counter whenever that state changes; the cache drops its contents the
next time it observes a different revision.

Example:
    cache = RevisionCache(lambda: registry._revision)
    converter = cache.get_or_compute(
        key=CacheKey.from_args(SomeType),
        compute_fn=lambda: registry._scan_supertypes(SomeType),
    )
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar('T')

_MISSING = object()


@dataclass(frozen=True)
class CacheKey:
    """Immutable cache key made of several components."""
    components: Tuple[Any, ...]

    @classmethod
    def from_args(cls, *args) -> 'CacheKey':
        return cls(components=args)


class RevisionCache(Generic[T]):
    """
    Mapping cache invalidated wholesale when the revision changes.

    ``None`` is a legitimate cached value (a negative lookup result), so
    presence is tracked separately from the stored value.
    """

    def __init__(self, revision_provider: Callable[[], int]):
        """
        Initialize revision cache.

        Args:
            revision_provider: Function returning the owner's current revision
        """
        self._revision_provider = revision_provider
        self._cache: Dict[CacheKey, T] = {}
        self._last_revision: int = -1

    def _sync(self) -> None:
        current = self._revision_provider()
        if current != self._last_revision:
            self._cache.clear()
            self._last_revision = current

    def get_or_compute(self, key: CacheKey, compute_fn: Callable[[], T]) -> T:
        """
        Get cached value or compute and cache it.

        Args:
            key: Cache key
            compute_fn: Function to compute value on a miss

        Returns:
            Cached or computed value
        """
        self._sync()
        value = self._cache.get(key, _MISSING)
        if value is _MISSING:
            value = compute_fn()
            self._cache[key] = value
        return value

    def get(self, key: CacheKey) -> Optional[T]:
        self._sync()
        return self._cache.get(key)

    def __contains__(self, key: CacheKey) -> bool:
        self._sync()
        return key in self._cache

    def invalidate(self) -> None:
        """Drop every cached value."""
        self._cache.clear()
        self._last_revision = -1

    def __len__(self) -> int:
        return len(self._cache)
