"""sqlmapper: dynamic SQL templating and parameter binding for Python."""

from sqlmapper import config, core, exceptions, manager, utils
from sqlmapper.__metadata__ import __version__
from sqlmapper.config import MapperConfig, get_config, update_config
from sqlmapper.core.metadata import Metadata, SQLAction
from sqlmapper.core.placeholders import ParameterStyle, PlaceholderRegistry, register_placeholder_style
from sqlmapper.core.registry import ParserRegistry
from sqlmapper.core.statement import StatementParser, parse_simple, parse_with_param_map, parse_with_params
from sqlmapper.core.template import TemplateParser
from sqlmapper.exceptions import (
    DuplicateManagerFormatError,
    DuplicateSqlIdError,
    MalformedPlaceholderError,
    NilParserError,
    ParamIndexOutOfRangeError,
    ParamKeyNotFoundError,
    ParameterError,
    SQLMapperError,
    TemplateCompileError,
    TemplateExecutionError,
)
from sqlmapper.manager import (
    SQL_FORMAT,
    TEMPLATE_FORMAT,
    SQLManager,
    find_parser,
    get_default_manager,
    parse_metadata,
    register_document,
    register_sql,
    unregister_sql,
)

__all__ = (
    "SQL_FORMAT",
    "TEMPLATE_FORMAT",
    "DuplicateManagerFormatError",
    "DuplicateSqlIdError",
    "MalformedPlaceholderError",
    "MapperConfig",
    "Metadata",
    "NilParserError",
    "ParamIndexOutOfRangeError",
    "ParamKeyNotFoundError",
    "ParameterError",
    "ParameterStyle",
    "ParserRegistry",
    "PlaceholderRegistry",
    "SQLAction",
    "SQLManager",
    "SQLMapperError",
    "StatementParser",
    "TemplateCompileError",
    "TemplateExecutionError",
    "TemplateParser",
    "__version__",
    "config",
    "core",
    "exceptions",
    "find_parser",
    "get_config",
    "get_default_manager",
    "manager",
    "parse_metadata",
    "parse_simple",
    "parse_with_param_map",
    "parse_with_params",
    "register_document",
    "register_placeholder_style",
    "register_sql",
    "unregister_sql",
    "update_config",
    "utils",
)
