"""Metadata cache.

Memoises parse results per statement and parameter fingerprint. The cache is
unbounded and has no TTL; entries live until :meth:`MetadataCache.clear`.
It is opt-in (see ``MapperConfig.metadata_cache_enabled``) because building
the key costs about as much as parsing a short statement.
"""

import threading
from collections.abc import Hashable, Mapping
from typing import TYPE_CHECKING, Any, Optional

from mypy_extensions import mypyc_attr

from sqlmapper.utils.logging import get_logger
from sqlmapper.utils.type_guards import is_simple_value

if TYPE_CHECKING:
    from sqlmapper.core.metadata import Metadata

__all__ = (
    "MetadataCache",
    "MetadataCacheKey",
    "cache_metadata",
    "calc_key",
    "exact_key",
    "find_metadata",
    "get_default_metadata_cache",
)

logger = get_logger("cache")

MetadataCacheKey = Hashable


def calc_key(sql: str, params: "Mapping[str, Any]") -> str:
    """Build the cache key for a statement and its flattened parameters.

    The key is the SQL text followed by every parameter key, sorted in
    descending order, each immediately followed by ``str(value)``. Two inputs
    share a key whenever these concatenations are equal.

    Args:
        sql: Statement text.
        params: Flattened parameter dictionary.

    Returns:
        Cache key.
    """
    parts = [sql]
    for key in sorted(params, reverse=True):
        parts.append(key)
        parts.append(str(params[key]))
    return "".join(parts)


def exact_key(driver_name: str, sql: str, params: "Mapping[str, Any]") -> "Optional[tuple[Any, ...]]":
    """Build a cache key that only matches identical parameters.

    Unlike :func:`calc_key`, keys and values stay separate tuple items and
    values are compared by type and ``repr``, so ``1`` and ``"1"`` get
    different keys and no two parameter sets share one.

    Returns:
        The key, or None when a value is not a simple scalar (its ``repr``
        may not identify it) and the call must not be cached.
    """
    items = []
    for key in sorted(params):
        value = params[key]
        if not is_simple_value(value):
            return None
        value_type = type(value)
        items.append((key, value_type.__module__, value_type.__qualname__, repr(value)))
    return (driver_name, sql, tuple(items))


@mypyc_attr(allow_interpreted_subclasses=False)
class MetadataCache:
    """Thread-safe, unbounded ``key -> Metadata`` store."""

    __slots__ = ("_cache", "_lock")

    def __init__(self) -> None:
        self._cache: dict[MetadataCacheKey, Metadata] = {}
        self._lock = threading.Lock()

    calc_key = staticmethod(calc_key)

    def find(self, key: MetadataCacheKey) -> "Optional[Metadata]":
        with self._lock:
            return self._cache.get(key)

    def put(self, key: MetadataCacheKey, metadata: "Metadata") -> None:
        with self._lock:
            self._cache[key] = metadata

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.debug("Metadata cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __repr__(self) -> str:
        return f"MetadataCache(size={len(self)})"


_default_cache: "Optional[MetadataCache]" = None
_cache_lock = threading.Lock()


def get_default_metadata_cache() -> MetadataCache:
    """Get the process-wide metadata cache.

    Returns:
        Singleton cache instance
    """
    global _default_cache
    if _default_cache is None:
        with _cache_lock:
            if _default_cache is None:
                _default_cache = MetadataCache()
    return _default_cache


def find_metadata(key: MetadataCacheKey) -> "Optional[Metadata]":
    return get_default_metadata_cache().find(key)


def cache_metadata(key: MetadataCacheKey, metadata: "Metadata") -> None:
    get_default_metadata_cache().put(key, metadata)
