"""Format managers and the SQL manager facade.

A format manager compiles one kind of mapper source into parsers and
registers them in a :class:`~sqlmapper.core.registry.ParserRegistry`:

- :class:`StatementManager` (format ``sql``): raw statements with ``#{..}``
  and ``${..}`` placeholders. Documents are split on ``-- name: <id>``
  comment lines.
- :class:`TemplateManager` (format ``tpl``): Jinja2 templates. In a
  document, every top-level ``{% block %}`` is one statement, and a block
  named ``namespace`` prefixes the ids.

:class:`SQLManager` ties a parser registry, the format managers and the
configuration together.
"""

import logging
import re
import threading
from typing import Any, Final, Optional

from jinja2 import Environment, TemplateError
from mypy_extensions import mypyc_attr

from sqlmapper.config import MapperConfig, get_config
from sqlmapper.core.metadata import Metadata
from sqlmapper.core.placeholders import PlaceholderRegistry
from sqlmapper.core.registry import ParserRegistry, SimpleParserRegistry, get_default_parser_registry
from sqlmapper.core.statement import StatementParser
from sqlmapper.core.template import NAMESPACE_BLOCK, TemplateParser, compile_template, get_template_env
from sqlmapper.exceptions import (
    DuplicateManagerFormatError,
    ImproperConfigurationError,
    SQLMapperError,
    SQLTemplateError,
)
from sqlmapper.protocols import FormatManagerProtocol, ParserProtocol
from sqlmapper.utils.logging import get_logger, log_with_context, sql_context

__all__ = (
    "SQL_FORMAT",
    "TEMPLATE_FORMAT",
    "FormatRegistry",
    "SQLManager",
    "StatementManager",
    "TemplateManager",
    "find_parser",
    "get_default_manager",
    "parse_metadata",
    "register_document",
    "register_sql",
    "split_named_statements",
    "unregister_sql",
)

logger = get_logger("manager")

SQL_FORMAT: Final = "sql"
TEMPLATE_FORMAT: Final = "tpl"

# Matches: -- name: statement_id
QUERY_NAME_PATTERN: Final = re.compile(r"^\s*--\s*name\s*:\s*([\w.-]+)\s*$", re.MULTILINE | re.IGNORECASE)


def _qualify(namespace: "Optional[str]", name: str) -> str:
    namespace = (namespace or "").strip()
    return f"{namespace}.{name}" if namespace else name


def _strip_leading_comments(sql_text: str) -> str:
    """Remove leading comment lines from a SQL string."""
    lines = sql_text.strip().split("\n")
    for i, line in enumerate(lines):
        if line.strip() and not line.strip().startswith("--"):
            return "\n".join(lines[i:]).strip()
    return ""


def split_named_statements(text: str) -> "dict[str, str]":
    """Split a ``-- name:`` document into ``name -> statement``.

    Sections with no SQL after their comments are skipped. A repeated name
    keeps the last section and logs a warning.
    """
    statements: dict[str, str] = {}
    matches = list(QUERY_NAME_PATTERN.finditer(text))
    for i, match in enumerate(matches):
        name = match.group(1)
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        sql = _strip_leading_comments(text[match.end() : end])
        if not sql:
            continue
        if name in statements:
            logger.warning("Statement name %r is duplicated in document, keeping the last one", name)
        statements[name] = sql
    return statements


def _register_all(registry: ParserRegistry, parsers: "dict[str, ParserProtocol]", fmt: str) -> "list[str]":
    """Add ``parsers`` to ``registry`` in one locked batch.

    Not all-or-nothing: on a duplicate, the parsers added before it stay registered.
    """

    def register(inner: SimpleParserRegistry) -> "list[str]":
        for sql_id, parser in parsers.items():
            inner.add(sql_id, parser)
        return list(parsers)

    try:
        sql_ids = registry.with_lock(register)
    except SQLMapperError as e:
        logger.warning("Register %s document failed: %s", fmt, e)
        raise
    log_with_context(logger, logging.DEBUG, "Registered document", format=fmt, sql_ids=sql_ids)
    return sql_ids


@mypyc_attr(allow_interpreted_subclasses=True)
class StatementManager:
    """Manager for raw ``#{..}``/``${..}`` statements."""

    formats: "tuple[str, ...]" = (SQL_FORMAT,)

    def __init__(
        self,
        registry: "Optional[ParserRegistry]" = None,
        *,
        styles: "Optional[PlaceholderRegistry]" = None,
        config: "Optional[MapperConfig]" = None,
    ) -> None:
        self.registry = registry if registry is not None else ParserRegistry()
        self.styles = styles
        self.config = config

    def create_parser(self, source: str) -> StatementParser:
        return StatementParser(source, styles=self.styles, config=self.config)

    def register_sql(self, sql_id: str, source: str) -> ParserProtocol:
        """Compile and register one statement.

        Raises:
            DuplicateSqlIdError: If ``sql_id`` is already registered.
        """
        return self.registry.load_or_create(sql_id, source, self.create_parser)

    def unregister_sql(self, sql_id: str) -> bool:
        return self.registry.remove(sql_id)

    def find_parser(self, sql_id: str) -> "Optional[ParserProtocol]":
        return self.registry.find(sql_id)

    def register_document(self, text: str, namespace: "Optional[str]" = None) -> "list[str]":
        """Register every ``-- name:`` statement of ``text`` in one locked batch.

        Returns:
            The registered SQL ids, in document order.

        Raises:
            DuplicateSqlIdError: If an id is already registered. Statements
                registered before it stay registered.
        """
        statements = split_named_statements(text)
        if not statements:
            logger.warning("No named statements found in document (-- name: statement_id)")
            return []

        parsers = {_qualify(namespace, name): self.create_parser(sql) for name, sql in statements.items()}
        return _register_all(self.registry, parsers, SQL_FORMAT)


@mypyc_attr(allow_interpreted_subclasses=True)
class TemplateManager:
    """Manager for Jinja2 dynamic templates."""

    formats: "tuple[str, ...]" = (TEMPLATE_FORMAT,)

    def __init__(
        self,
        registry: "Optional[ParserRegistry]" = None,
        *,
        styles: "Optional[PlaceholderRegistry]" = None,
        config: "Optional[MapperConfig]" = None,
    ) -> None:
        self.registry = registry if registry is not None else ParserRegistry()
        self.styles = styles
        self.config = config

    def create_parser(self, source: str) -> TemplateParser:
        """Compile ``source``.

        Raises:
            TemplateCompileError: If the template does not compile.
        """
        return TemplateParser.from_source(source, styles=self.styles, config=self.config)

    def register_sql(self, sql_id: str, source: str) -> ParserProtocol:
        return self.registry.load_or_create(sql_id, source, self.create_parser)

    def unregister_sql(self, sql_id: str) -> bool:
        return self.registry.remove(sql_id)

    def find_parser(self, sql_id: str) -> "Optional[ParserProtocol]":
        return self.registry.find(sql_id)

    def _env(self) -> "Optional[Environment]":
        return None if self.config is None else get_template_env(self.config.strict_undefined)

    def register_document(self, text: str, namespace: "Optional[str]" = None) -> "list[str]":
        """Register every top-level block of a template document.

        The document is compiled once; each block becomes a parser sharing
        that compiled template. ``namespace`` overrides the ``namespace`` block.

        Returns:
            The registered SQL ids.

        Raises:
            TemplateCompileError: If the document does not compile.
            DuplicateSqlIdError: If an id is already registered.
        """
        try:
            template = compile_template(text, env=self._env())
        except SQLTemplateError as e:
            logger.warning("Register template document failed: %s", e)
            raise

        if namespace is None:
            namespace = ""
            if NAMESPACE_BLOCK in template.blocks:
                try:
                    namespace = "".join(template.blocks[NAMESPACE_BLOCK](template.new_context())).strip()
                except (TemplateError, TypeError, ValueError) as e:
                    logger.debug("Namespace block failed to render, registering without namespace: %s", e)
                    namespace = ""

        names = [name for name in template.blocks if name != NAMESPACE_BLOCK]
        if not names:
            logger.warning("No blocks found in template document")
            return []

        parsers = {_qualify(namespace, name): TemplateParser(template, name, styles=self.styles) for name in names}
        return _register_all(self.registry, parsers, TEMPLATE_FORMAT)


@mypyc_attr(allow_interpreted_subclasses=True)
class FormatRegistry:
    """Format tag to manager mapping."""

    __slots__ = ("_lock", "_managers")

    def __init__(self) -> None:
        self._managers: dict[str, FormatManagerProtocol] = {}
        self._lock = threading.Lock()

    def register_manager(self, manager: FormatManagerProtocol) -> None:
        """Register ``manager`` for each of its formats.

        Raises:
            DuplicateManagerFormatError: If any format already has a manager.
                Nothing is registered in that case.
        """
        with self._lock:
            for fmt in manager.formats:
                if fmt in self._managers:
                    raise DuplicateManagerFormatError(fmt)
            for fmt in manager.formats:
                self._managers[fmt] = manager
        logger.debug("Registered manager %s for formats %s", type(manager).__name__, manager.formats)

    def find_manager(self, fmt: str) -> "Optional[FormatManagerProtocol]":
        with self._lock:
            return self._managers.get(fmt)

    def formats(self) -> "list[str]":
        with self._lock:
            return sorted(self._managers)


@mypyc_attr(allow_interpreted_subclasses=True)
class SQLManager:
    """Registers statements and parses them by id.

    Example:
        ```python
        manager = SQLManager()
        manager.register_sql("user.get", "SELECT * FROM users WHERE id = #{0}")
        metadata = manager.parse_metadata("user.get", 100, driver="postgres")
        # metadata.prepared_sql == "SELECT * FROM users WHERE id = $1"
        ```
    """

    __slots__ = ("_config", "formats", "registry", "styles")

    def __init__(
        self,
        registry: "Optional[ParserRegistry]" = None,
        *,
        styles: "Optional[PlaceholderRegistry]" = None,
        config: "Optional[MapperConfig]" = None,
    ) -> None:
        """Initialize the manager.

        Args:
            registry: Parser registry; a new private one when omitted.
            styles: Placeholder registry; the default one when omitted.
            config: Configuration; the global one when omitted.
        """
        self.registry = registry if registry is not None else ParserRegistry()
        self.styles = styles
        self._config = config
        self.formats = FormatRegistry()
        self.formats.register_manager(StatementManager(self.registry, styles=styles, config=config))
        self.formats.register_manager(TemplateManager(self.registry, styles=styles, config=config))

    @property
    def config(self) -> MapperConfig:
        return self._config if self._config is not None else get_config()

    def manager(self, fmt: str = SQL_FORMAT) -> FormatManagerProtocol:
        """Return the manager for ``fmt``.

        Raises:
            ImproperConfigurationError: If no manager handles ``fmt``.
        """
        manager = self.formats.find_manager(fmt)
        if manager is None:
            msg = f"No manager registered for format {fmt!r}. Known formats: {', '.join(self.formats.formats())}"
            raise ImproperConfigurationError(msg)
        return manager

    def register_sql(self, sql_id: str, source: str, fmt: str = SQL_FORMAT) -> ParserProtocol:
        return self.manager(fmt).register_sql(sql_id, source)

    def unregister_sql(self, sql_id: str) -> bool:
        return self.registry.remove(sql_id)

    def register_document(self, text: str, fmt: str = SQL_FORMAT, namespace: "Optional[str]" = None) -> "list[str]":
        return self.manager(fmt).register_document(text, namespace)

    def find_parser(self, sql_id: str) -> "Optional[ParserProtocol]":
        return self.registry.find(sql_id)

    def get_parser(self, sql_or_id: str, fmt: str = SQL_FORMAT) -> ParserProtocol:
        """Return the parser registered as ``sql_or_id``, or compile it as source text."""
        parser = self.registry.find(sql_or_id)
        if parser is None:
            parser = self.manager(fmt).create_parser(sql_or_id)
        return parser

    def parse_metadata(
        self, sql_or_id: str, *params: Any, driver: "Optional[str]" = None, fmt: str = SQL_FORMAT
    ) -> Metadata:
        """Parse a registered statement (or statement text) with ``params``.

        Args:
            sql_or_id: Registered SQL id or statement text.
            *params: Statement parameters.
            driver: Driver name; the configured default when omitted.
            fmt: Format used to compile ``sql_or_id`` when it is not registered.
        """
        driver_name = driver or self.config.default_driver
        parser = self.registry.find(sql_or_id)
        if parser is None:
            return self.manager(fmt).create_parser(sql_or_id).parse_metadata(driver_name, *params)
        with sql_context(sql_or_id):
            logger.debug("Parsing statement", extra={"driver": driver_name})
            return parser.parse_metadata(driver_name, *params)


_default_manager: "Optional[SQLManager]" = None
_manager_lock = threading.Lock()


def get_default_manager() -> SQLManager:
    """Get the process-wide SQL manager, backed by the default parser registry.

    Returns:
        Singleton manager instance
    """
    global _default_manager
    if _default_manager is None:
        with _manager_lock:
            if _default_manager is None:
                _default_manager = SQLManager(get_default_parser_registry())
    return _default_manager


def register_sql(sql_id: str, source: str, fmt: str = SQL_FORMAT) -> ParserProtocol:
    return get_default_manager().register_sql(sql_id, source, fmt)


def unregister_sql(sql_id: str) -> bool:
    return get_default_manager().unregister_sql(sql_id)


def register_document(text: str, fmt: str = SQL_FORMAT, namespace: "Optional[str]" = None) -> "list[str]":
    return get_default_manager().register_document(text, fmt, namespace)


def find_parser(sql_id: str) -> "Optional[ParserProtocol]":
    return get_default_manager().find_parser(sql_id)


def parse_metadata(
    sql_or_id: str, *params: Any, driver: "Optional[str]" = None, fmt: str = SQL_FORMAT
) -> Metadata:
    return get_default_manager().parse_metadata(sql_or_id, *params, driver=driver, fmt=fmt)
