"""Unit tests for format managers and the SQL manager."""

import pytest

from sqlmapper.config import MapperConfig, update_config
from sqlmapper.core.cache import get_default_metadata_cache
from sqlmapper.core.metadata import SQLAction
from sqlmapper.core.statement import StatementParser
from sqlmapper.core.template import TemplateParser
from sqlmapper.exceptions import (
    DuplicateManagerFormatError,
    DuplicateSqlIdError,
    ImproperConfigurationError,
    TemplateCompileError,
    TemplateExecutionError,
)
from sqlmapper.manager import (
    SQL_FORMAT,
    TEMPLATE_FORMAT,
    FormatRegistry,
    SQLManager,
    StatementManager,
    TemplateManager,
    get_default_manager,
    split_named_statements,
)
from sqlmapper.protocols import FormatManagerProtocol

USER_STATEMENTS = """
-- name: get_user
-- Fetch one user by primary key
SELECT * FROM users WHERE id = #{0}

-- name: list_users
SELECT * FROM users ORDER BY ${column}

-- name: empty_section
-- nothing below
"""

USER_TEMPLATES = """
{% block namespace %}user{% endblock %}
{% block get %}SELECT * FROM users WHERE id = {{ arg(id) }}{% endblock %}
{% block update %}
UPDATE users
{%- set s = set(name, "name = ", arg(name)) %}
{{ s }} WHERE id = {{ arg(id) }}
{% endblock %}
"""


class XmlManager:
    formats = ("xml", SQL_FORMAT)

    def create_parser(self, source):
        return StatementParser(source)

    def register_sql(self, sql_id, source):
        raise NotImplementedError

    def unregister_sql(self, sql_id):
        return False

    def register_document(self, text, namespace=None):
        return []

    def find_parser(self, sql_id):
        return None


def test_managers_satisfy_protocol():
    assert isinstance(StatementManager(), FormatManagerProtocol)
    assert isinstance(TemplateManager(), FormatManagerProtocol)


def test_format_registry_rejects_duplicates():
    registry = FormatRegistry()
    registry.register_manager(StatementManager())

    with pytest.raises(DuplicateManagerFormatError) as exc_info:
        registry.register_manager(XmlManager())

    assert exc_info.value.format_name == SQL_FORMAT
    assert registry.find_manager("xml") is None
    assert registry.formats() == [SQL_FORMAT]


def test_sql_manager_formats(sql_manager):
    assert sql_manager.formats.formats() == [SQL_FORMAT, TEMPLATE_FORMAT]
    assert isinstance(sql_manager.manager(SQL_FORMAT), StatementManager)
    assert isinstance(sql_manager.manager(TEMPLATE_FORMAT), TemplateManager)


def test_unknown_format(sql_manager):
    with pytest.raises(ImproperConfigurationError, match="xml"):
        sql_manager.register_sql("q", "SELECT 1", fmt="xml")


def test_register_and_parse_by_id(sql_manager):
    parser = sql_manager.register_sql("user.get", "SELECT * FROM users WHERE id = #{0}")
    assert sql_manager.find_parser("user.get") is parser

    metadata = sql_manager.parse_metadata("user.get", 100, driver="postgres")
    assert metadata.prepared_sql == "SELECT * FROM users WHERE id = $1"
    assert metadata.params == (100,)


def test_duplicate_register_keeps_existing(sql_manager):
    first = sql_manager.register_sql("q", "SELECT 1")

    with pytest.raises(DuplicateSqlIdError) as exc_info:
        sql_manager.register_sql("q", "SELECT 2")

    assert exc_info.value.parser is first
    assert sql_manager.find_parser("q") is first


def test_unregister(sql_manager):
    sql_manager.register_sql("q", "SELECT 1")

    assert sql_manager.unregister_sql("q") is True
    assert sql_manager.unregister_sql("q") is False
    assert sql_manager.find_parser("q") is None


def test_get_parser_falls_back_to_source_text(sql_manager):
    parser = sql_manager.get_parser("SELECT * FROM t WHERE id = #{0}")
    assert isinstance(parser, StatementParser)
    assert sql_manager.find_parser("SELECT * FROM t WHERE id = #{0}") is None

    metadata = sql_manager.parse_metadata("SELECT * FROM t WHERE id = #{0}", 1)
    assert metadata.prepared_sql == "SELECT * FROM t WHERE id = ?"


def test_parse_template_text(sql_manager):
    metadata = sql_manager.parse_metadata(
        "SELECT * FROM t WHERE id = {{ arg(id) }}", {"id": 3}, driver="postgres", fmt=TEMPLATE_FORMAT
    )
    assert metadata.prepared_sql == "SELECT * FROM t WHERE id = $1"
    assert metadata.params == (3,)


def test_default_driver_from_config(sql_manager):
    update_config(MapperConfig(default_driver="oci8"))

    metadata = sql_manager.parse_metadata("SELECT * FROM t WHERE id = #{0}", 1)
    assert metadata.prepared_sql == "SELECT * FROM t WHERE id = :1"


def test_explicit_config_overrides_global(parser_registry):
    manager = SQLManager(parser_registry, config=MapperConfig(default_driver="postgres"))

    assert manager.config.default_driver == "postgres"
    assert manager.parse_metadata("SELECT #{0}", 1).prepared_sql == "SELECT $1"


def test_explicit_config_strict_undefined(parser_registry):
    manager = SQLManager(parser_registry, config=MapperConfig(strict_undefined=True))
    manager.register_sql("q", "SELECT * FROM t WHERE id = {{ id }}", fmt=TEMPLATE_FORMAT)

    with pytest.raises(TemplateExecutionError):
        manager.parse_metadata("q", {})


def test_explicit_config_strict_undefined_for_documents(parser_registry):
    manager = SQLManager(parser_registry, config=MapperConfig(strict_undefined=True))
    manager.register_document("{% block get %}SELECT {{ id }}{% endblock %}", fmt=TEMPLATE_FORMAT, namespace="t")

    with pytest.raises(TemplateExecutionError):
        manager.parse_metadata("t.get", {})


def test_explicit_config_enables_metadata_cache(parser_registry):
    manager = SQLManager(parser_registry, config=MapperConfig(metadata_cache_enabled=True))
    manager.register_sql("q", "SELECT * FROM t WHERE id = #{0}")

    first = manager.parse_metadata("q", 1)
    assert manager.parse_metadata("q", 1) is first
    assert len(get_default_metadata_cache()) == 1


def test_template_compile_error_at_registration(sql_manager):
    with pytest.raises(TemplateCompileError):
        sql_manager.register_sql("bad", "SELECT {% if %}", fmt=TEMPLATE_FORMAT)
    assert sql_manager.find_parser("bad") is None


def test_split_named_statements():
    statements = split_named_statements(USER_STATEMENTS)

    assert statements == {
        "get_user": "SELECT * FROM users WHERE id = #{0}",
        "list_users": "SELECT * FROM users ORDER BY ${column}",
    }


def test_register_statement_document(sql_manager):
    sql_ids = sql_manager.register_document(USER_STATEMENTS, namespace="users")

    assert sql_ids == ["users.get_user", "users.list_users"]
    metadata = sql_manager.parse_metadata("users.list_users", {"column": "name"})
    assert metadata.prepared_sql == "SELECT * FROM users ORDER BY name"
    assert metadata.params == ()


def test_register_statement_document_without_names(sql_manager):
    assert sql_manager.register_document("SELECT 1") == []


def test_statement_document_partial_registration(sql_manager):
    """Ids registered before a duplicate stay registered."""
    sql_manager.register_sql("list_users", "SELECT 1")

    with pytest.raises(DuplicateSqlIdError):
        sql_manager.register_document(USER_STATEMENTS)

    assert sql_manager.find_parser("get_user") is not None


def test_register_template_document(sql_manager):
    sql_ids = sql_manager.register_document(USER_TEMPLATES, fmt=TEMPLATE_FORMAT)

    assert sorted(sql_ids) == ["user.get", "user.update"]
    assert isinstance(sql_manager.find_parser("user.get"), TemplateParser)

    metadata = sql_manager.parse_metadata("user.update", {"name": "bob", "id": 1}, driver="postgres")
    assert " ".join(metadata.prepared_sql.split()) == "UPDATE users SET name = $1 WHERE id = $2"
    assert metadata.params == ("bob", 1)
    assert metadata.action is SQLAction.UPDATE


def test_template_document_namespace_override(sql_manager):
    sql_ids = sql_manager.register_document(USER_TEMPLATES, fmt=TEMPLATE_FORMAT, namespace="accounts")
    assert sorted(sql_ids) == ["accounts.get", "accounts.update"]


def test_template_document_without_namespace_block(sql_manager):
    sql_ids = sql_manager.register_document("{% block ping %}SELECT 1{% endblock %}", fmt=TEMPLATE_FORMAT)

    assert sql_ids == ["ping"]
    assert sql_manager.parse_metadata("ping").prepared_sql == "SELECT 1"


def test_template_document_compile_error(sql_manager):
    with pytest.raises(TemplateCompileError):
        sql_manager.register_document("{% block a %}SELECT 1", fmt=TEMPLATE_FORMAT)
    assert len(sql_manager.registry) == 0


def test_default_manager():
    manager = get_default_manager()

    assert manager is get_default_manager()
    assert manager.registry is not None
