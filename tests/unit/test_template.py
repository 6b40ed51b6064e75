"""Unit tests for Jinja2 dynamic templates."""

import datetime
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import pytest

from sqlmapper.config import MapperConfig, update_config
from sqlmapper.core.metadata import SQLAction
from sqlmapper.core.placeholders import numeric_placeholder, qmark_placeholder
from sqlmapper.core.template import (
    ARG_PLACEHOLDER_PREFIX,
    RenderState,
    TemplateParser,
    add,
    build_context,
    compile_template,
    is_true,
)
from sqlmapper.exceptions import NilParserError, TemplateCompileError, TemplateExecutionError

UPDATE_USER = (
    "UPDATE users\n"
    '{%- set s = set(name, "name = ", arg(name)) %}\n'
    '{%- set s = set(age, "age = ", arg(age), s) %}\n'
    "{{ s }} WHERE id = {{ arg(id) }}"
)

SEARCH_USERS = (
    "SELECT * FROM users\n"
    '{%- set w = where(status, "AND", "status", arg(status)) %}\n'
    '{%- set w = where(role, "AND", "role", arg(role), w) %}\n'
    '{%- set w = where(since, "AND", "created_at >= ", arg(since), w) %}\n'
    "{{ w }}"
)


@dataclass
class Filter:
    status: str
    role: str
    since: datetime.datetime


def normalize(sql: str) -> str:
    return " ".join(sql.split())


def test_where_first_use_discards_connector():
    state = RenderState()
    result = state.where(True, "", "status", "active", "")
    assert result == " WHERE status='active'"
    assert state.where(False, "AND", "role", "admin", result) == result


def test_where_joins_with_connector():
    state = RenderState()
    result = state.where(True, "", "status", "active")
    result = state.where(True, "OR", "role", "admin", result)
    assert result == "WHERE status='active' OR role='admin'"


def test_where_operator_keyword_gets_space():
    state = RenderState()
    marker = state.arg("bob%")
    assert state.where(True, "", "name LIKE", marker, "") == " WHERE name LIKE " + marker
    ids = state.arg([1, 2])
    assert state.where(True, "", "id IN", ids, "") == " WHERE id IN " + ids


def test_where_qualified_column_gets_equals():
    state = RenderState()
    assert state.where(True, "", "u.status", "active", "") == " WHERE u.status='active'"
    assert state.where(True, "", "age >", 30, "") == " WHERE age >30"


def test_set_clause():
    state = RenderState()
    result = state.set(True, "name", "bob")
    result = state.set(False, "nick", "bobby", result)
    result = state.set(True, "age = ", 30, result)
    assert result == "SET name='bob',age = 30"


def test_value_rendering():
    state = RenderState()
    marker = state.arg("x")
    assert state.render_value(marker) == marker
    assert state.render_value("O'Brien") == "'O''Brien'"
    assert state.render_value(None) == "NULL"
    assert state.render_value(2.5) == "2.5"


def test_arg_markers_are_unique():
    state = RenderState()
    first, second = state.arg(1), state.arg(1)
    assert first != second
    assert first.startswith(ARG_PLACEHOLDER_PREFIX)
    assert len(state) == 2


def test_format_uses_textual_order():
    state = RenderState()
    first = state.arg("a")
    second = state.arg("b")
    unused = state.arg("c")
    sql, params = state.format(f"SELECT {second}, {first}", numeric_placeholder)
    assert sql == "SELECT $1, $2"
    assert params == ["b", "a"]
    assert unused not in sql


def test_format_without_markers():
    assert RenderState().format("SELECT 1", qmark_placeholder) == ("SELECT 1", [])


def test_update_template_postgres():
    parser = TemplateParser.from_source(UPDATE_USER)
    metadata = parser.parse_metadata("postgres", {"name": "bob", "age": 30, "id": 7})

    assert normalize(metadata.prepared_sql) == "UPDATE users SET name = $1,age = $2 WHERE id = $3"
    assert metadata.params == ("bob", 30, 7)
    assert metadata.action is SQLAction.UPDATE


def test_update_template_skips_falsy_values():
    parser = TemplateParser.from_source(UPDATE_USER)
    metadata = parser.parse_metadata("mysql", {"name": "bob", "age": 0, "id": 7})

    assert normalize(metadata.prepared_sql) == "UPDATE users SET name = ? WHERE id = ?"
    assert metadata.params == ("bob", 7)


def test_where_template_with_struct_and_zero_time():
    parser = TemplateParser.from_source(SEARCH_USERS)
    metadata = parser.parse_metadata("mysql", Filter(status="active", role="", since=datetime.datetime.min))

    assert normalize(metadata.prepared_sql) == "SELECT * FROM users WHERE status=?"
    assert metadata.params == ("active",)
    assert metadata.action is SQLAction.SELECT


def test_where_template_all_conditions():
    since = datetime.datetime(2024, 1, 1)
    parser = TemplateParser.from_source(SEARCH_USERS)
    metadata = parser.parse_metadata("postgres", {"status": "active", "role": "admin", "since": since})

    assert normalize(metadata.prepared_sql) == (
        "SELECT * FROM users WHERE status=$1 AND role=$2 AND created_at >= $3"
    )
    assert metadata.params == ("active", "admin", since)


def test_undefined_variables_are_falsy():
    parser = TemplateParser.from_source(SEARCH_USERS)
    metadata = parser.parse_metadata("mysql", {})

    assert normalize(metadata.prepared_sql) == "SELECT * FROM users"
    assert metadata.params == ()


def test_strict_undefined_raises_execution_error():
    update_config(MapperConfig(strict_undefined=True))
    parser = TemplateParser.from_source("SELECT * FROM t WHERE id = {{ id }}")

    with pytest.raises(TemplateExecutionError):
        parser.parse_metadata("mysql", {})


def test_positional_params_variable():
    parser = TemplateParser.from_source("SELECT * FROM t WHERE a = {{ arg(params[0]) }} AND b = {{ arg(params[1]) }}")
    metadata = parser.parse_metadata("oci8", 1, 2)

    assert metadata.prepared_sql == "SELECT * FROM t WHERE a = :1 AND b = :2"
    assert metadata.params == (1, 2)


def test_add_helper_in_loop():
    source = (
        "SELECT * FROM t WHERE id IN ("
        "{%- for id in ids %}{{ arg(id) }}{% if add(loop.index0, 1) < ids|length %}, {% endif %}{% endfor -%}"
        ")"
    )
    metadata = TemplateParser.from_source(source).parse_metadata("postgres", {"ids": [4, 5, 6]})

    assert metadata.prepared_sql == "SELECT * FROM t WHERE id IN ($1, $2, $3)"
    assert metadata.params == (4, 5, 6)


def test_truthy_test_and_is_true_global():
    source = "SELECT 1{% if flag is truthy %} FROM a{% endif %}{% if is_true(other) %} FROM b{% endif %}"
    parser = TemplateParser.from_source(source)

    assert parser.parse_metadata("mysql", {"flag": 1, "other": datetime.date.min}).prepared_sql == "SELECT 1 FROM a"


def test_compile_error():
    with pytest.raises(TemplateCompileError) as exc_info:
        TemplateParser.from_source("SELECT * FROM t {% if %}")

    assert exc_info.value.__cause__ is not None


def test_execution_error():
    parser = TemplateParser.from_source("SELECT {{ add(value, 1) }}")

    with pytest.raises(TemplateExecutionError) as exc_info:
        parser.parse_metadata("mysql", {"value": "not a number"})

    assert isinstance(exc_info.value.__cause__, ValueError)


def test_execution_error_wraps_any_exception():
    parser = TemplateParser.from_source("SELECT {{ items.pop() }}")

    with pytest.raises(TemplateExecutionError) as exc_info:
        parser.parse_metadata("mysql", {"items": []})

    assert isinstance(exc_info.value.__cause__, IndexError)


def test_from_source_with_strict_config():
    parser = TemplateParser.from_source("SELECT {{ id }}", config=MapperConfig(strict_undefined=True))

    with pytest.raises(TemplateExecutionError):
        parser.parse_metadata("mysql", {})


def test_nil_parser():
    with pytest.raises(NilParserError):
        TemplateParser(None).parse_metadata("mysql")


def test_block_rendering():
    template = compile_template(
        "{% block one %}SELECT {{ arg(a) }}{% endblock %}"
        "{% block two %}DELETE FROM t WHERE id = {{ arg(b) }}{% endblock %}"
    )
    metadata = TemplateParser(template, "two").parse_metadata("postgres", {"a": 1, "b": 2})

    assert metadata.prepared_sql == "DELETE FROM t WHERE id = $1"
    assert metadata.params == (2,)
    assert metadata.action is SQLAction.DELETE


def test_concurrent_renders_do_not_share_state():
    parser = TemplateParser.from_source(UPDATE_USER)

    def render(i: int):
        return parser.parse_metadata("postgres", {"name": f"user{i}", "age": i + 1, "id": i})

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(render, range(200)))

    for i, metadata in enumerate(results):
        assert metadata.params == (f"user{i}", i + 1, i)
        assert normalize(metadata.prepared_sql) == "UPDATE users SET name = $1,age = $2 WHERE id = $3"


def test_build_context():
    assert build_context(({"a": 1, 2: "x"},)) == {"a": 1, "params": {"a": 1, 2: "x"}}
    assert build_context((1, 2)) == {"params": (1, 2)}
    assert build_context(()) == {"params": ()}
    assert build_context((5,)) == {"params": 5}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, False),
        (0, False),
        ("", False),
        ([], False),
        (datetime.datetime.min, False),
        (datetime.datetime.min.replace(tzinfo=datetime.timezone.utc), False),
        (datetime.date.min, False),
        (datetime.datetime(2024, 1, 1), True),
        ("x", True),
        (1, True),
    ],
)
def test_is_true(value, expected):
    assert is_true(value) is expected


def test_add():
    assert add(2, 3) == 5
    assert add("2", 3) == 5
