"""
Accessor configuration.

Navigation behaviour that a collaborator (a data binder, a container) may
tune is gathered in :class:`AccessorConfig`. A process-wide default is kept at
module level; :func:`accessor_config_context` scopes an override to the
current context using contextvars, so nested scopes stack and async tasks or
threads do not see each other's overrides.

Example:
    with accessor_config_context(auto_grow_nested_paths=True,
                                 auto_grow_collection_limit=10):
        set_value(root, "items[3].name", "a")
"""

import contextvars
import dataclasses
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessorConfig:
    """
    Knobs consumed by property navigation.

    Attributes:
        auto_grow_nested_paths: Create missing intermediate values (and grow
            lists) instead of raising NullIntermediate / IndexOutOfRange
        auto_grow_collection_limit: Highest index (exclusive) a list may be
            grown to; None means unbounded
        extract_old_value_for_converter: Read the current value of a property
            before converting a new one and pass it along to the converter
    """
    auto_grow_nested_paths: bool = False
    auto_grow_collection_limit: Optional[int] = None
    extract_old_value_for_converter: bool = False

    def __post_init__(self):
        limit = self.auto_grow_collection_limit
        if limit is not None and limit < 0:
            raise ValueError(f"auto_grow_collection_limit must be >= 0, got {limit}")

    def with_changes(self, **changes) -> 'AccessorConfig':
        return dataclasses.replace(self, **changes)

    def allows_growth_to(self, index: int) -> bool:
        """Whether a list may be grown so that ``index`` becomes valid."""
        if not self.auto_grow_nested_paths:
            return False
        limit = self.auto_grow_collection_limit
        return limit is None or index < limit


_default_config = AccessorConfig()

# Innermost override installed by accessor_config_context(), if any
current_accessor_config: contextvars.ContextVar[Optional[AccessorConfig]] = contextvars.ContextVar(
    'current_accessor_config', default=None
)


def set_default_accessor_config(config: AccessorConfig) -> None:
    """Replace the process-wide default configuration."""
    global _default_config
    _default_config = config
    logger.debug(f"Default accessor config set to {config}")


def get_default_accessor_config() -> AccessorConfig:
    return _default_config


def get_accessor_config() -> AccessorConfig:
    """Active configuration: the innermost context override, else the default."""
    scoped = current_accessor_config.get()
    return scoped if scoped is not None else _default_config


@contextmanager
def accessor_config_context(config: Optional[AccessorConfig] = None, **overrides):
    """
    Scope a configuration override to the enclosed block.

    Args:
        config: Complete configuration to activate; defaults to the currently
            active one
        **overrides: Individual fields to change on top of ``config``

    Yields:
        The configuration active inside the block
    """
    base = config if config is not None else get_accessor_config()
    scoped = base.with_changes(**overrides) if overrides else base
    token = current_accessor_config.set(scoped)
    try:
        yield scoped
    finally:
        current_accessor_config.reset(token)
