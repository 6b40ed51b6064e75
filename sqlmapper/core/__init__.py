"""Core parsing: placeholders, parameter flattening, statements, templates, registries."""

from sqlmapper.core import cache, flatten, metadata, placeholders, registry, statement, template
from sqlmapper.core.cache import MetadataCache, calc_key, exact_key, get_default_metadata_cache
from sqlmapper.core.flatten import ParamFlattener, flatten_parameters
from sqlmapper.core.metadata import Metadata, SQLAction, detect_action
from sqlmapper.core.placeholders import (
    ParameterStyle,
    PlaceholderRegistry,
    PlaceholderStyle,
    get_default_placeholder_registry,
    lookup_placeholder_style,
    register_placeholder_style,
    select_placeholder_style,
)
from sqlmapper.core.registry import ParserRegistry, SimpleParserRegistry, get_default_parser_registry
from sqlmapper.core.statement import (
    PlaceholderToken,
    StatementParser,
    iter_placeholders,
    parse_simple,
    parse_with_param_map,
    parse_with_params,
)
from sqlmapper.core.template import RenderState, TemplateParser, compile_template, get_template_env

__all__ = (
    "Metadata",
    "MetadataCache",
    "ParamFlattener",
    "ParameterStyle",
    "ParserRegistry",
    "PlaceholderRegistry",
    "PlaceholderStyle",
    "PlaceholderToken",
    "RenderState",
    "SQLAction",
    "SimpleParserRegistry",
    "StatementParser",
    "TemplateParser",
    "cache",
    "calc_key",
    "compile_template",
    "detect_action",
    "exact_key",
    "flatten",
    "flatten_parameters",
    "get_default_metadata_cache",
    "get_default_parser_registry",
    "get_default_placeholder_registry",
    "get_template_env",
    "iter_placeholders",
    "lookup_placeholder_style",
    "metadata",
    "parse_simple",
    "parse_with_param_map",
    "parse_with_params",
    "placeholders",
    "register_placeholder_style",
    "registry",
    "select_placeholder_style",
    "statement",
    "template",
)
