"""Dynamic SQL templates rendered with Jinja2.

Templates are plain Jinja2 with four builtins for building SQL:

``arg(value)``
    Binds ``value`` as the next statement parameter and returns an opaque
    marker. Markers are replaced by driver placeholders once rendering is
    done, in the order they appear in the output.

``set(cond, column, value, accumulated="")``
    Appends ``column`` and ``value`` to an ``UPDATE ... SET`` list when
    ``cond`` is truthy. The first entry starts with ``SET``; later ones are
    comma separated.

``where(cond, connector, column, value, accumulated="")``
    Appends a condition when ``cond`` is truthy. The first one starts with
    ``WHERE`` and ignores ``connector``; later ones are joined with it.

``add(a, b)``
    Integer addition.

Example::

    UPDATE users
    {%- set s = set(name, "name = ", arg(name)) %}
    {%- set s = set(age, "age = ", arg(age), s) %}
    {{ s }} WHERE id = {{ arg(id) }}

``{{ expr }}`` output is not escaped; bind user values through ``arg``.

The builtins are bound to a :class:`RenderState` created for every render,
so one compiled template can be rendered from many threads at once.
"""

import re
import threading
from collections.abc import Mapping
from typing import Any, Callable, Final, Optional

from jinja2 import (
    Environment,
    StrictUndefined,
    Template,
    TemplateError,
    TemplateSyntaxError,
    Undefined,
)
from mypy_extensions import mypyc_attr

from sqlmapper.config import MapperConfig, get_config
from sqlmapper.core.flatten import struct_fields
from sqlmapper.core.metadata import Metadata, detect_action
from sqlmapper.core.placeholders import PlaceholderRegistry, PlaceholderStyle, get_default_placeholder_registry
from sqlmapper.exceptions import NilParserError, TemplateCompileError, TemplateExecutionError
from sqlmapper.utils.type_guards import is_struct, is_zero_time

__all__ = (
    "ARG_PLACEHOLDER_PREFIX",
    "FUNC_NAME_ADD",
    "FUNC_NAME_ARG",
    "FUNC_NAME_SET",
    "FUNC_NAME_WHERE",
    "NAMESPACE_BLOCK",
    "RenderState",
    "TemplateParser",
    "add",
    "build_context",
    "compile_template",
    "get_template_env",
    "is_true",
)

ARG_PLACEHOLDER_PREFIX: Final = "__sqlmapper_arg_"
ARG_PLACEHOLDER_FORMAT: Final = ARG_PLACEHOLDER_PREFIX + "%08d__"
_ARG_PLACEHOLDER_RE: Final = re.compile(re.escape(ARG_PLACEHOLDER_PREFIX) + r"\d{8}__")

FUNC_NAME_SET: Final = "set"
FUNC_NAME_WHERE: Final = "where"
FUNC_NAME_ARG: Final = "arg"
FUNC_NAME_ADD: Final = "add"

NAMESPACE_BLOCK: Final = "namespace"

_SNIPPET_LENGTH: Final = 500
_OPERATOR_SUFFIXES: Final = ("=", "<", ">")
_BARE_COLUMN_RE: Final = re.compile(r"[\w.]+")


def is_true(value: Any) -> bool:
    """Template truthiness.

    Usual Python truthiness (``None``, zero, empty strings and containers,
    undefined variables are false), except that the zero timestamp
    (``datetime.min``) is also false.
    """
    if not value:
        return False
    return not is_zero_time(value)


def add(a: Any, b: Any) -> int:
    return int(a) + int(b)


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _column_prefix(column: str) -> str:
    """Join ``column`` to its value.

    A bare column name (``status``, ``u.status``) gets ``=``; a trailing
    operator keyword (``name LIKE``, ``id IN``) gets a space. Columns ending
    in whitespace or a comparison operator are used as given.
    """
    if not column or column[-1].isspace() or column.endswith(_OPERATOR_SUFFIXES):
        return column
    if _BARE_COLUMN_RE.fullmatch(column):
        return column + "="
    return column + " "


# Compile-time stand-ins, also used when a template is rendered without a RenderState.
def _noop_set(cond: Any, column: str, value: Any, accumulated: str = "") -> str:  # noqa: ARG001
    return accumulated


def _noop_where(cond: Any, connector: str, column: str, value: Any, accumulated: str = "") -> str:  # noqa: ARG001
    return accumulated


def _noop_arg(value: Any) -> str:  # noqa: ARG001
    return ""


class RenderState:
    """Bound parameters collected while rendering one template.

    A state belongs to exactly one render call and must not be shared.
    """

    __slots__ = ("_counter", "_keys", "_values")

    def __init__(self) -> None:
        self._counter = 0
        self._keys: list[str] = []
        self._values: dict[str, Any] = {}

    def arg(self, value: Any) -> str:
        """Register ``value`` as a bound parameter and return its marker."""
        self._counter += 1
        key = ARG_PLACEHOLDER_FORMAT % self._counter
        self._values[key] = value
        self._keys.append(key)
        return key

    def is_marker(self, value: Any) -> bool:
        return isinstance(value, str) and value in self._values

    def render_value(self, value: Any) -> str:
        if isinstance(value, str):
            return value if self.is_marker(value) else _quote(value)
        if value is None:
            return "NULL"
        return str(value)

    def set(self, cond: Any, column: str, value: Any, accumulated: str = "") -> str:
        """Append ``column`` + ``value`` to a SET clause when ``cond`` is truthy."""
        if not is_true(cond):
            return accumulated
        if accumulated:
            head = accumulated.strip()
            if not head.endswith(","):
                head += ","
        else:
            head = " SET "
        return head + _column_prefix(column) + self.render_value(value)

    def where(self, cond: Any, connector: str, column: str, value: Any, accumulated: str = "") -> str:
        """Append ``column`` + ``value`` to a WHERE clause when ``cond`` is truthy."""
        if not is_true(cond):
            return accumulated
        if accumulated:
            head = f"{accumulated.strip()} {connector} "
        else:
            head = " WHERE "
        return head + _column_prefix(column) + self.render_value(value)

    def functions(self) -> "dict[str, Callable[..., Any]]":
        return {
            FUNC_NAME_SET: self.set,
            FUNC_NAME_WHERE: self.where,
            FUNC_NAME_ARG: self.arg,
            FUNC_NAME_ADD: add,
        }

    def format(self, sql: str, style: PlaceholderStyle) -> "tuple[str, list[Any]]":
        """Replace markers by driver placeholders.

        Markers are numbered in the order they appear in ``sql``; a marker
        used twice binds its value twice.

        Returns:
            The prepared SQL and the bound values in placeholder order.
        """
        params: list[Any] = []

        def replace(match: "re.Match[str]") -> str:
            key = match.group(0)
            if key not in self._values:
                return key
            params.append(self._values[key])
            return style(len(params))

        if not self._keys:
            return sql, params
        return _ARG_PLACEHOLDER_RE.sub(replace, sql), params

    def __len__(self) -> int:
        return len(self._keys)


def build_context(params: "tuple[Any, ...]") -> "dict[str, Any]":
    """Build the render variables for a template call.

    ``params`` is the single argument, or the tuple of arguments when there
    are none or several. A single mapping or struct argument also exposes its
    string keys or fields as top-level variables.
    """
    param: Any = params[0] if len(params) == 1 else params
    context: dict[str, Any] = {}
    if isinstance(param, Mapping):
        context.update({k: v for k, v in param.items() if isinstance(k, str)})
    elif is_struct(param):
        context.update(struct_fields(param))
    context["params"] = param
    return context


_envs: "dict[bool, Environment]" = {}
_env_lock = threading.Lock()


def get_template_env(strict: "Optional[bool]" = None) -> Environment:
    """Return the shared Jinja2 environment.

    Args:
        strict: Use ``StrictUndefined``. Defaults to the global configuration.
    """
    if strict is None:
        strict = get_config().strict_undefined
    env = _envs.get(strict)
    if env is None:
        with _env_lock:
            env = _envs.get(strict)
            if env is None:
                env = Environment(
                    autoescape=False,
                    undefined=StrictUndefined if strict else Undefined,
                )
                env.globals.update(
                    {
                        FUNC_NAME_SET: _noop_set,
                        FUNC_NAME_WHERE: _noop_where,
                        FUNC_NAME_ARG: _noop_arg,
                        FUNC_NAME_ADD: add,
                        "is_true": is_true,
                    }
                )
                env.tests["truthy"] = is_true
                _envs[strict] = env
    return env


def _preview(source: str) -> str:
    return source[:_SNIPPET_LENGTH] + "..." if len(source) > _SNIPPET_LENGTH else source


def compile_template(source: str, *, env: "Optional[Environment]" = None) -> Template:
    """Compile template source.

    Raises:
        TemplateCompileError: If the source is not valid Jinja2.
    """
    env = env or get_template_env()
    try:
        return env.from_string(source)
    except TemplateSyntaxError as e:
        msg = f"SQL template syntax error at line {e.lineno}: {e.message}. Template preview:\n{_preview(source)}"
        raise TemplateCompileError(msg) from e


@mypyc_attr(allow_interpreted_subclasses=True)
class TemplateParser:
    """Compiled dynamic template, optionally limited to one named block.

    Instances hold no per-call state and may be shared between threads.
    """

    __slots__ = ("_styles", "block", "template")

    def __init__(
        self,
        template: "Optional[Template]",
        block: "Optional[str]" = None,
        *,
        styles: "Optional[PlaceholderRegistry]" = None,
    ) -> None:
        self.template = template
        self.block = block
        self._styles = styles

    @classmethod
    def from_source(
        cls,
        source: str,
        *,
        styles: "Optional[PlaceholderRegistry]" = None,
        env: "Optional[Environment]" = None,
        config: "Optional[MapperConfig]" = None,
    ) -> "TemplateParser":
        """Compile ``source``.

        Args:
            source: Template text.
            styles: Placeholder registry; the default one when omitted.
            env: Jinja2 environment. Defaults to the shared environment for
                ``config.strict_undefined`` (global configuration when
                ``config`` is omitted).
            config: Configuration the template is compiled under.
        """
        if env is None and config is not None:
            env = get_template_env(config.strict_undefined)
        return cls(compile_template(source, env=env), styles=styles)

    def render(self, state: RenderState, *params: Any) -> str:
        """Render the template text, recording ``arg`` calls in ``state``.

        Raises:
            NilParserError: If the parser has no template.
            TemplateExecutionError: If rendering fails.
        """
        if self.template is None:
            raise NilParserError("Template parser has no template.")
        context = build_context(params)
        context.update(state.functions())
        try:
            if self.block is None:
                return self.template.render(context)
            block_render = self.template.blocks[self.block]
            return "".join(block_render(self.template.new_context(context)))
        except TemplateError as e:
            msg = f"SQL template render error: {e}. Params: {sorted(context)}."
            raise TemplateExecutionError(msg) from e
        except Exception as e:
            msg = f"SQL template render error: {type(e).__name__}: {e}."
            raise TemplateExecutionError(msg) from e

    def parse_metadata(self, driver_name: str, *params: Any) -> Metadata:
        """Render the template for ``driver_name`` and bind its ``arg`` values.

        Raises:
            NilParserError: If the parser has no template.
            TemplateExecutionError: If rendering fails.
        """
        state = RenderState()
        sql = self.render(state, *params).strip()
        style = (self._styles or get_default_placeholder_registry()).select(driver_name)
        prepared_sql, bound = state.format(sql, style)
        return Metadata(action=detect_action(sql), prepared_sql=prepared_sql, params=tuple(bound))

    def __repr__(self) -> str:
        name = self.template.name if self.template is not None else None
        return f"TemplateParser(template={name!r}, block={self.block!r})"
