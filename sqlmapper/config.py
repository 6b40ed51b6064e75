"""Global configuration for sqlmapper."""

from typing import Optional

from mypy_extensions import mypyc_attr

from sqlmapper.exceptions import ImproperConfigurationError
from sqlmapper.utils.logging import get_logger

__all__ = ("DEFAULT_DRIVER", "MapperConfig", "get_config", "update_config")

DEFAULT_DRIVER = "mysql"

_global_config: "Optional[MapperConfig]" = None


@mypyc_attr(allow_interpreted_subclasses=False)
class MapperConfig:
    """Runtime options shared by parsers and managers."""

    __slots__ = ("default_driver", "metadata_cache_enabled", "strict_undefined")

    def __init__(
        self,
        *,
        default_driver: str = DEFAULT_DRIVER,
        metadata_cache_enabled: bool = False,
        strict_undefined: bool = False,
    ) -> None:
        """Initialize configuration.

        Args:
            default_driver: Driver used when a caller does not name one.
            metadata_cache_enabled: Memoise raw statement parse results.
            strict_undefined: Make templates raise on undefined variables
                instead of rendering them as empty and falsy.
        """
        self.default_driver = default_driver
        self.metadata_cache_enabled = metadata_cache_enabled
        self.strict_undefined = strict_undefined

    def validate(self) -> None:
        """Check the configuration values.

        Raises:
            ImproperConfigurationError: If ``default_driver`` is empty.
        """
        if not self.default_driver or not self.default_driver.strip():
            msg = "default_driver must be a non-empty driver name"
            raise ImproperConfigurationError(msg)

    def __repr__(self) -> str:
        return (
            f"MapperConfig(default_driver={self.default_driver!r}, "
            f"metadata_cache_enabled={self.metadata_cache_enabled!r}, "
            f"strict_undefined={self.strict_undefined!r})"
        )


def get_config() -> MapperConfig:
    """Get the global configuration.

    Returns:
        Current global configuration instance
    """
    global _global_config
    if _global_config is None:
        _global_config = MapperConfig()
    return _global_config


def update_config(config: MapperConfig) -> None:
    """Replace the global configuration.

    Clears the default metadata cache, since cached entries may have been
    produced under the previous settings.

    Args:
        config: New configuration to apply globally

    Raises:
        ImproperConfigurationError: If the configuration is invalid.
    """
    from sqlmapper.core.cache import get_default_metadata_cache

    config.validate()
    logger = get_logger("config")
    logger.info("Configuration updated: %s", config)

    global _global_config
    _global_config = config
    get_default_metadata_cache().clear()
