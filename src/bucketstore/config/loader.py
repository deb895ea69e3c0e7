"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (BUCKETSTORE__SECTION__KEY)
3. Local config (<root>/.bucketstore/config.yaml)
4. Global config (~/.config/bucketstore/config.yaml)
5. Built-in defaults (lowest priority)
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from bucketstore.config.models import (
    BucketStoreConfig,
    DatabaseConfig,
    DebugConfig,
    LimitsConfig,
    LoggingConfig,
)
from bucketstore.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/bucketstore/config.yaml").expanduser()
STATE_DIR_NAME = ".bucketstore"
DEFAULT_DB_NAME = "buckets.db"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class BucketStoreSettings(BaseSettings):
        """Root config. Env vars: BUCKETSTORE__LOGGING__LEVEL, BUCKETSTORE__DATABASE__PATH, etc."""

        model_config = SettingsConfigDict(
            env_prefix="BUCKETSTORE__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        database: DatabaseConfig = DatabaseConfig()
        limits: LimitsConfig = LimitsConfig()
        debug: DebugConfig = DebugConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return BucketStoreSettings


def load_config(root: Path | None = None, **kwargs: Any) -> BucketStoreConfig:
    """Load config: defaults < global yaml < local yaml < env vars < kwargs.

    Args:
        root: Directory holding .bucketstore/. Defaults to the current directory.
        **kwargs: Override values (highest precedence).

    Returns:
        Fully resolved configuration object. ``database.path`` is always set.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    root = root or Path.cwd()
    state_dir = root / STATE_DIR_NAME

    yaml_config = _deep_merge(_load_yaml(GLOBAL_CONFIG_PATH), _load_yaml(state_dir / "config.yaml"))

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e

    config = BucketStoreConfig.model_validate(settings.model_dump())
    if config.database.path is None:
        config.database.path = str(state_dir / DEFAULT_DB_NAME)
    return config
