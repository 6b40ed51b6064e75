from typing import Any, Optional

__all__ = (
    "DuplicateManagerFormatError",
    "DuplicateSqlIdError",
    "ImproperConfigurationError",
    "MalformedPlaceholderError",
    "NilParserError",
    "ParamIndexOutOfRangeError",
    "ParamKeyNotFoundError",
    "ParameterError",
    "SQLMapperError",
    "SQLTemplateError",
    "TemplateCompileError",
    "TemplateExecutionError",
)


class SQLMapperError(Exception):
    """Base exception class from which all sqlmapper exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``SQLMapperError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class ImproperConfigurationError(SQLMapperError):
    """Raised when a configuration value cannot be used."""


# -- SQL Parameter Errors --
class ParameterError(SQLMapperError):
    """Base class for placeholder and parameter resolution errors."""

    sql: Optional[str]

    def __init__(self, message: str, sql: Optional[str] = None) -> None:
        """Initialize with optional SQL context."""
        detail_message = message
        if sql:
            detail_message = f"{message}\nSQL: {sql}"
        super().__init__(detail=detail_message)
        self.sql = sql


class MalformedPlaceholderError(ParameterError):
    """Raised when a ``#{..}`` or ``${..}`` placeholder cannot be scanned."""


class ParamIndexOutOfRangeError(ParameterError):
    """Raised when a positional placeholder points past the supplied parameters."""

    index: int

    def __init__(self, index: int, count: int, sql: Optional[str] = None) -> None:
        super().__init__(f"Parameter index {index} out of range for {count} parameter(s)", sql)
        self.index = index


class ParamKeyNotFoundError(ParameterError):
    """Raised when a named placeholder has no entry in the parameter dictionary."""

    key: str

    def __init__(self, key: str, sql: Optional[str] = None) -> None:
        super().__init__(f"Parameter {key!r} not found", sql)
        self.key = key


# -- Registry Errors --
class DuplicateSqlIdError(SQLMapperError):
    """Raised when a SQL id is already registered.

    The parser that already owns the id is available as ``parser`` so that
    callers racing on ``load_or_create`` can tell a lost race from a real
    duplicate.
    """

    sql_id: str
    parser: Any

    def __init__(self, sql_id: str, parser: Any = None) -> None:
        super().__init__(f"SQL id {sql_id!r} is already registered")
        self.sql_id = sql_id
        self.parser = parser


class DuplicateManagerFormatError(SQLMapperError):
    """Raised when a format tag already has a manager."""

    format_name: str

    def __init__(self, format_name: str) -> None:
        super().__init__(f"A manager for format {format_name!r} is already registered")
        self.format_name = format_name


class NilParserError(SQLMapperError):
    """Raised when a parser is missing or has nothing to parse."""

    def __init__(self, message: Optional[str] = None) -> None:
        if message is None:
            message = "Parser is nil."
        super().__init__(message)


# -- Template Errors --
class SQLTemplateError(SQLMapperError):
    """Base class for dynamic template errors."""


class TemplateCompileError(SQLTemplateError):
    """Raised when a template fails to compile."""

    def __init__(self, message: Optional[str] = None) -> None:
        if message is None:
            message = "Issues compiling SQL template."
        super().__init__(message)


class TemplateExecutionError(SQLTemplateError):
    """Raised when rendering a compiled template fails."""

    def __init__(self, message: Optional[str] = None) -> None:
        if message is None:
            message = "Issues rendering SQL template."
        super().__init__(message)
