"""Driver placeholder styles.

Each database driver writes positional parameters differently: MySQL and
SQL Server use ``?``, PostgreSQL uses ``$1, $2, ...`` and Oracle (oci8) uses
``:1, :2, ...``. A placeholder style is a callable taking the 1-based
parameter position and returning the token to put into the prepared SQL.
"""

import threading
from enum import Enum
from typing import Callable, Final, Optional

from mypy_extensions import mypyc_attr

from sqlmapper.utils.logging import get_logger

__all__ = (
    "BUILTIN_STYLES",
    "ParameterStyle",
    "PlaceholderRegistry",
    "PlaceholderStyle",
    "get_default_placeholder_registry",
    "lookup_placeholder_style",
    "numeric_placeholder",
    "positional_colon_placeholder",
    "qmark_placeholder",
    "register_placeholder_style",
    "select_placeholder_style",
)

logger = get_logger("placeholders")

PlaceholderStyle = Callable[[int], str]


def qmark_placeholder(index: int) -> str:  # noqa: ARG001
    return "?"


def numeric_placeholder(index: int) -> str:
    return f"${index}"


def positional_colon_placeholder(index: int) -> str:
    return f":{index}"


class ParameterStyle(str, Enum):
    """Built-in placeholder styles."""

    QMARK = "qmark"
    NUMERIC = "numeric"
    POSITIONAL_COLON = "positional_colon"

    def __str__(self) -> str:
        return self.value

    @property
    def formatter(self) -> PlaceholderStyle:
        """Token generator for this style."""
        return _STYLE_FORMATTERS[self]

    def token(self, index: int) -> str:
        """Render the token for the ``index``-th (1-based) parameter."""
        return _STYLE_FORMATTERS[self](index)


_STYLE_FORMATTERS: Final[dict[ParameterStyle, PlaceholderStyle]] = {
    ParameterStyle.QMARK: qmark_placeholder,
    ParameterStyle.NUMERIC: numeric_placeholder,
    ParameterStyle.POSITIONAL_COLON: positional_colon_placeholder,
}

BUILTIN_STYLES: Final[dict[str, ParameterStyle]] = {
    "mysql": ParameterStyle.QMARK,
    "postgres": ParameterStyle.NUMERIC,
    "oci8": ParameterStyle.POSITIONAL_COLON,
    "adodb": ParameterStyle.QMARK,
}

DEFAULT_STYLE: Final[PlaceholderStyle] = qmark_placeholder


@mypyc_attr(allow_interpreted_subclasses=True)
class PlaceholderRegistry:
    """Driver name to placeholder style mapping.

    Entries are never removed. Registering an existing name replaces its
    style; concurrent registrations of the same name have no ordering
    guarantee.
    """

    __slots__ = ("_lock", "_styles")

    def __init__(self, styles: "Optional[dict[str, PlaceholderStyle]]" = None, *, builtins: bool = True) -> None:
        """Initialize the registry.

        Args:
            styles: Extra driver styles to register.
            builtins: Register the ``mysql``, ``postgres``, ``oci8`` and ``adodb`` styles.
        """
        self._lock = threading.Lock()
        self._styles: dict[str, PlaceholderStyle] = {}
        if builtins:
            self._styles.update({name: style.formatter for name, style in BUILTIN_STYLES.items()})
        if styles:
            self._styles.update(styles)

    def register(self, driver_name: str, style: PlaceholderStyle) -> bool:
        """Register a placeholder style for a driver.

        Args:
            driver_name: Driver name as passed to ``parse_metadata``.
            style: Token generator.

        Returns:
            True if a style was already registered under that name.
        """
        with self._lock:
            existed = driver_name in self._styles
            self._styles[driver_name] = style
        logger.debug("Registered placeholder style for driver %r (replaced=%s)", driver_name, existed)
        return existed

    def lookup(self, driver_name: str) -> "Optional[PlaceholderStyle]":
        """Return the style registered for ``driver_name`` or None."""
        with self._lock:
            return self._styles.get(driver_name)

    def select(self, driver_name: str) -> PlaceholderStyle:
        """Return the style for ``driver_name``, falling back to ``?``."""
        style = self.lookup(driver_name)
        return DEFAULT_STYLE if style is None else style

    def names(self) -> "list[str]":
        with self._lock:
            return sorted(self._styles)

    def __contains__(self, driver_name: object) -> bool:
        with self._lock:
            return driver_name in self._styles


_default_registry: "Optional[PlaceholderRegistry]" = None
_registry_lock = threading.Lock()


def get_default_placeholder_registry() -> PlaceholderRegistry:
    """Get the process-wide placeholder registry.

    Returns:
        Singleton registry instance
    """
    global _default_registry
    if _default_registry is None:
        with _registry_lock:
            if _default_registry is None:
                _default_registry = PlaceholderRegistry()
    return _default_registry


def register_placeholder_style(driver_name: str, style: PlaceholderStyle) -> bool:
    return get_default_placeholder_registry().register(driver_name, style)


def lookup_placeholder_style(driver_name: str) -> "Optional[PlaceholderStyle]":
    return get_default_placeholder_registry().lookup(driver_name)


def select_placeholder_style(driver_name: str) -> PlaceholderStyle:
    return get_default_placeholder_registry().select(driver_name)
