import pytest

from sqlmapper.core.placeholders import PlaceholderRegistry
from sqlmapper.core.registry import ParserRegistry
from sqlmapper.manager import SQLManager


@pytest.fixture
def placeholder_registry() -> PlaceholderRegistry:
    """Isolated placeholder registry with the built-in styles."""
    return PlaceholderRegistry()


@pytest.fixture
def parser_registry() -> ParserRegistry:
    return ParserRegistry()


@pytest.fixture
def sql_manager(parser_registry: ParserRegistry, placeholder_registry: PlaceholderRegistry) -> SQLManager:
    """SQL manager with private registries."""
    return SQLManager(parser_registry, styles=placeholder_registry)
