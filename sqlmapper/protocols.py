"""Runtime-checkable protocols for parsers and format managers."""

from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sqlmapper.core.metadata import Metadata

__all__ = ("FormatManagerProtocol", "ParserProtocol")


@runtime_checkable
class ParserProtocol(Protocol):
    """Anything that turns call parameters into :class:`Metadata`."""

    def parse_metadata(self, driver_name: str, *params: Any) -> "Metadata":
        """Parse for ``driver_name`` with the given parameters."""
        ...


@runtime_checkable
class FormatManagerProtocol(Protocol):
    """Compile and register statements of one mapper format."""

    formats: "tuple[str, ...]"

    def create_parser(self, source: str) -> ParserProtocol:
        """Compile ``source`` into a parser without registering it."""
        ...

    def register_sql(self, sql_id: str, source: str) -> ParserProtocol: ...

    def unregister_sql(self, sql_id: str) -> bool: ...

    def register_document(self, text: str, namespace: "Optional[str]" = None) -> "list[str]": ...

    def find_parser(self, sql_id: str) -> "Optional[ParserProtocol]": ...
