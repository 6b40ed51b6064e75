from collections.abc import Generator

import pytest

from sqlmapper.config import MapperConfig, update_config
from sqlmapper.core.cache import get_default_metadata_cache


@pytest.fixture(autouse=True)
def reset_global_config() -> Generator[None, None, None]:
    """Run every test against the default configuration and an empty metadata cache."""
    update_config(MapperConfig())
    yield
    update_config(MapperConfig())
    get_default_metadata_cache().clear()
