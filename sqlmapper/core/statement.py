"""Raw statement parsing.

Statements use two placeholder forms:

- ``#{name}`` is a bound parameter. It is replaced by the driver's next
  positional token and its value is appended to the parameter list.
- ``${name}`` is a raw substitution. The value's ``str()`` is spliced into
  the SQL text as-is. Nothing is escaped, so only use it for trusted
  identifiers such as table or column names.

Names end at the first ``}``. Whitespace or a comma before the closing brace,
or no closing brace at all, is a malformed placeholder. ``#{}`` and ``${}``
are left in the text untouched.
"""

from collections.abc import Iterator, Mapping, Sequence
from typing import Any, Callable, Final, Optional

from mypy_extensions import mypyc_attr

from sqlmapper.config import MapperConfig, get_config
from sqlmapper.core.cache import exact_key, get_default_metadata_cache
from sqlmapper.core.flatten import flatten_parameters
from sqlmapper.core.metadata import Metadata, detect_action
from sqlmapper.core.placeholders import PlaceholderRegistry, get_default_placeholder_registry
from sqlmapper.exceptions import MalformedPlaceholderError, ParamIndexOutOfRangeError, ParamKeyNotFoundError

__all__ = (
    "BOUND_MARKER",
    "RAW_MARKER",
    "PlaceholderToken",
    "StatementParser",
    "iter_placeholders",
    "parse_simple",
    "parse_with_param_map",
    "parse_with_params",
)

BOUND_MARKER: Final = "#"
RAW_MARKER: Final = "$"
_TERMINATORS: Final = frozenset(",")


class PlaceholderToken:
    """One ``#{..}`` or ``${..}`` occurrence in a statement."""

    __slots__ = ("end", "marker", "name", "start")

    def __init__(self, marker: str, name: str, start: int, end: int) -> None:
        self.marker = marker
        self.name = name
        self.start = start
        self.end = end

    @property
    def is_bound(self) -> bool:
        return self.marker == BOUND_MARKER

    def __repr__(self) -> str:
        return f"PlaceholderToken(marker={self.marker!r}, name={self.name!r}, start={self.start}, end={self.end})"


def _scan_name(sql: str, start: int) -> int:
    """Return the index of the ``}`` closing the name that begins at ``start``."""
    for i in range(start, len(sql)):
        ch = sql[i]
        if ch == "}":
            return i
        if ch.isspace() or ch in _TERMINATORS:
            break
    msg = f"Unterminated placeholder at position {start - 2}"
    raise MalformedPlaceholderError(msg, sql)


def iter_placeholders(sql: str) -> "Iterator[PlaceholderToken]":
    """Yield the non-empty placeholders of ``sql`` from left to right.

    Raises:
        MalformedPlaceholderError: If a placeholder is not properly closed.
    """
    pos = 0
    length = len(sql)
    while pos < length - 1:
        i = sql.find("{", pos + 1)
        if i == -1:
            return
        marker = sql[i - 1]
        if marker not in {BOUND_MARKER, RAW_MARKER}:
            pos = i
            continue
        close = _scan_name(sql, i + 1)
        name = sql[i + 1 : close]
        if name:
            yield PlaceholderToken(marker, name, i - 1, close + 1)
        pos = close


def _render(
    sql: str,
    driver_name: str,
    resolve: "Callable[[str], Any]",
    styles: "Optional[PlaceholderRegistry]",
) -> Metadata:
    style = (styles or get_default_placeholder_registry()).select(driver_name)
    parts: list[str] = []
    names: list[str] = []
    params: list[Any] = []
    last = 0
    for token in iter_placeholders(sql):
        names.append(token.name)
        value = resolve(token.name)
        parts.append(sql[last : token.start])
        if token.is_bound:
            params.append(value)
            parts.append(style(len(params)))
        else:
            parts.append(str(value))
        last = token.end
    parts.append(sql[last:])
    return Metadata(
        action=detect_action(sql), prepared_sql="".join(parts), vars=tuple(names), params=tuple(params)
    )


def parse_simple(sql: str, driver_name: str = "mysql", *, styles: "Optional[PlaceholderRegistry]" = None) -> Metadata:
    """Collect placeholder names and replace bound placeholders by driver tokens.

    No values are resolved: ``params`` stays empty and raw ``${..}``
    placeholders are kept in the text.
    """
    sql = sql.strip()
    style = (styles or get_default_placeholder_registry()).select(driver_name)
    parts: list[str] = []
    names: list[str] = []
    last = 0
    count = 0
    for token in iter_placeholders(sql):
        names.append(token.name)
        if token.is_bound:
            count += 1
            parts.extend((sql[last : token.start], style(count)))
            last = token.end
    parts.append(sql[last:])
    return Metadata(action=detect_action(sql), prepared_sql="".join(parts), vars=tuple(names))


def parse_with_params(
    driver_name: str, sql: str, *params: Any, styles: "Optional[PlaceholderRegistry]" = None
) -> Metadata:
    """Parse a statement whose placeholders are integer positions into ``params``.

    Args:
        driver_name: Driver selecting the placeholder style.
        sql: Statement text, e.g. ``SELECT * FROM t WHERE id = #{0}``.
        *params: Positional values.
        styles: Placeholder registry; the default one when omitted.

    Raises:
        MalformedPlaceholderError: A placeholder name is not an integer.
        ParamIndexOutOfRangeError: A placeholder index is outside ``params``.
    """
    sql = sql.strip()

    def resolve(name: str) -> Any:
        try:
            index = int(name)
        except ValueError:
            msg = f"Positional placeholder {name!r} is not an integer index"
            raise MalformedPlaceholderError(msg, sql) from None
        if not 0 <= index < len(params):
            raise ParamIndexOutOfRangeError(index, len(params), sql)
        return params[index]

    return _render(sql, driver_name, resolve, styles)


def parse_with_param_map(
    driver_name: str, sql: str, params: "Mapping[str, Any]", *, styles: "Optional[PlaceholderRegistry]" = None
) -> Metadata:
    """Parse a statement whose placeholders are keys of ``params``.

    Args:
        driver_name: Driver selecting the placeholder style.
        sql: Statement text, e.g. ``SELECT * FROM t WHERE id = #{User.Id}``.
        params: Flattened parameter dictionary.
        styles: Placeholder registry; the default one when omitted.

    Raises:
        ParamKeyNotFoundError: A placeholder name is missing from ``params``.
    """
    sql = sql.strip()

    def resolve(name: str) -> Any:
        try:
            return params[name]
        except KeyError:
            raise ParamKeyNotFoundError(name, sql) from None

    return _render(sql, driver_name, resolve, styles)


@mypyc_attr(allow_interpreted_subclasses=True)
class StatementParser:
    """Compiled raw statement.

    ``parse_metadata`` flattens its arguments and resolves placeholders by
    name. A call with plain scalars therefore also works with positional
    names: ``#{0}`` resolves to the first scalar.
    """

    __slots__ = ("_config", "_styles", "sql")

    def __init__(
        self,
        sql: str,
        *,
        styles: "Optional[PlaceholderRegistry]" = None,
        config: "Optional[MapperConfig]" = None,
    ) -> None:
        self.sql = sql
        self._styles = styles
        self._config = config

    @property
    def config(self) -> MapperConfig:
        return self._config if self._config is not None else get_config()

    def placeholders(self) -> "Sequence[PlaceholderToken]":
        return list(iter_placeholders(self.sql))

    def parse_metadata(self, driver_name: str, *params: Any) -> Metadata:
        """Resolve the statement against ``params`` for ``driver_name``.

        When the metadata cache is enabled in the configuration, results are
        memoised per statement, driver and flattened parameters. Calls whose
        parameters are not all scalars are never cached.
        """
        param_map = flatten_parameters(*params)
        key = exact_key(driver_name, self.sql, param_map) if self.config.metadata_cache_enabled else None
        if key is None:
            return parse_with_param_map(driver_name, self.sql, param_map, styles=self._styles)

        cache = get_default_metadata_cache()
        metadata = cache.find(key)
        if metadata is None:
            metadata = parse_with_param_map(driver_name, self.sql, param_map, styles=self._styles)
            cache.put(key, metadata)
        return metadata

    def __repr__(self) -> str:
        return f"StatementParser(sql={self.sql!r})"
