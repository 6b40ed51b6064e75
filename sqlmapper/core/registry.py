"""Parser registries.

A registry maps SQL ids to compiled parsers. :class:`SimpleParserRegistry`
holds the mapping; :class:`ParserRegistry` guards one with a lock and is the
type to share between threads.
"""

import threading
from typing import Callable, Optional, TypeVar

from mypy_extensions import mypyc_attr

from sqlmapper.exceptions import DuplicateSqlIdError, NilParserError
from sqlmapper.protocols import ParserProtocol
from sqlmapper.utils.logging import get_logger

__all__ = ("ParserRegistry", "SimpleParserRegistry", "get_default_parser_registry")

logger = get_logger("registry")

T = TypeVar("T")


@mypyc_attr(allow_interpreted_subclasses=True)
class SimpleParserRegistry:
    """Unsynchronised ``sql_id -> parser`` mapping."""

    __slots__ = ("_parsers",)

    def __init__(self) -> None:
        self._parsers: dict[str, ParserProtocol] = {}

    def add(self, sql_id: str, parser: ParserProtocol) -> None:
        """Register ``parser`` under ``sql_id``.

        Raises:
            NilParserError: If ``parser`` is None.
            DuplicateSqlIdError: If ``sql_id`` is taken. The existing entry is kept.
        """
        if parser is None:
            msg = f"Cannot register a nil parser for SQL id {sql_id!r}"
            raise NilParserError(msg)
        existing = self._parsers.get(sql_id)
        if existing is not None:
            raise DuplicateSqlIdError(sql_id, existing)
        self._parsers[sql_id] = parser
        logger.debug("Registered parser for SQL id %r", sql_id, extra={"sql_id": sql_id})

    def remove(self, sql_id: str) -> bool:
        """Unregister ``sql_id``; return whether it was registered."""
        return self._parsers.pop(sql_id, None) is not None

    def find(self, sql_id: str) -> "Optional[ParserProtocol]":
        return self._parsers.get(sql_id)

    def load_or_create(
        self, sql_id: str, source: str, compile_fn: "Callable[[str], ParserProtocol]"
    ) -> ParserProtocol:
        """Return a new parser for ``sql_id``, compiling ``source`` with ``compile_fn``.

        Args:
            sql_id: SQL id to register.
            source: Statement or template text.
            compile_fn: Builds a parser from ``source``.

        Returns:
            The newly registered parser.

        Raises:
            DuplicateSqlIdError: If ``sql_id`` is already registered. The
                existing parser is attached as ``error.parser``.
            NilParserError: If ``compile_fn`` returns None.
        """
        existing = self._parsers.get(sql_id)
        if existing is not None:
            raise DuplicateSqlIdError(sql_id, existing)
        parser = compile_fn(source)
        self.add(sql_id, parser)
        return parser

    def ids(self) -> "list[str]":
        return sorted(self._parsers)

    def __len__(self) -> int:
        return len(self._parsers)

    def __contains__(self, sql_id: object) -> bool:
        return sql_id in self._parsers


@mypyc_attr(allow_interpreted_subclasses=True)
class ParserRegistry:
    """Thread-safe parser registry.

    Every operation runs under one lock. :meth:`with_lock` hands the
    unsynchronised registry to a callback so that a batch of registrations
    runs in one exclusive section. The callback must use the registry it is
    given; calling back into this object from inside it deadlocks.
    """

    __slots__ = ("_inner", "_lock")

    def __init__(self) -> None:
        self._inner = SimpleParserRegistry()
        self._lock = threading.Lock()

    def add(self, sql_id: str, parser: ParserProtocol) -> None:
        with self._lock:
            self._inner.add(sql_id, parser)

    def remove(self, sql_id: str) -> bool:
        with self._lock:
            return self._inner.remove(sql_id)

    def find(self, sql_id: str) -> "Optional[ParserProtocol]":
        with self._lock:
            return self._inner.find(sql_id)

    def load_or_create(
        self, sql_id: str, source: str, compile_fn: "Callable[[str], ParserProtocol]"
    ) -> ParserProtocol:
        with self._lock:
            return self._inner.load_or_create(sql_id, source, compile_fn)

    def with_lock(self, fn: "Callable[[SimpleParserRegistry], T]") -> T:
        """Run ``fn`` with exclusive access to the underlying registry.

        This is mutual exclusion only: if ``fn`` raises half way, the
        registrations it already made stay in place.
        """
        with self._lock:
            return fn(self._inner)

    def ids(self) -> "list[str]":
        with self._lock:
            return self._inner.ids()

    def __len__(self) -> int:
        with self._lock:
            return len(self._inner)

    def __contains__(self, sql_id: object) -> bool:
        with self._lock:
            return sql_id in self._inner


_default_registry: "Optional[ParserRegistry]" = None
_registry_lock = threading.Lock()


def get_default_parser_registry() -> ParserRegistry:
    """Get the process-wide parser registry.

    Returns:
        Singleton registry instance
    """
    global _default_registry
    if _default_registry is None:
        with _registry_lock:
            if _default_registry is None:
                _default_registry = ParserRegistry()
    return _default_registry
