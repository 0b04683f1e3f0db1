"""Runtime settings for the header app.

Values come from the environment (prefix ``HEADERAPP_``) through
pydantic-settings. ``get_settings()`` caches a single instance per process;
tests call ``reset_settings()`` after monkeypatching the environment.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.base import PydanticBaseSettingsSource
from pydantic_settings.sources.providers.env import EnvSettingsSource

APP_KEY = "headerapp"
APP_PROP_NAME = "name"
SYSTEM_USER = "system"

_DEFAULT_EXCLUDE_PATHS = ("/metrics",)


def _csv_to_list(value: str) -> List[str]:
    items = [part.strip() for part in value.split(",")]
    return [item for item in items if item]


def _json_or_csv_to_list(value: str) -> List[str]:
    text = value.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except (json.JSONDecodeError, TypeError, ValueError):
            return _csv_to_list(text)
        if isinstance(decoded, (list, tuple)):
            return [str(item).strip() for item in decoded if str(item).strip()]
        return []
    return _csv_to_list(text)


class _CsvFriendlyEnvSettingsSource(EnvSettingsSource):
    def decode_complex_value(self, field_name: str, field: Any, value: Any) -> Any:
        try:
            return super().decode_complex_value(field_name, field, value)
        except ValueError:
            return value


class HeaderAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HEADERAPP_", extra="ignore")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        if isinstance(env_settings, EnvSettingsSource):
            env_settings = _CsvFriendlyEnvSettingsSource(
                settings_cls,
                case_sensitive=env_settings.case_sensitive,
                env_prefix=env_settings.env_prefix,
                env_nested_delimiter=env_settings.env_nested_delimiter,
                env_ignore_empty=env_settings.env_ignore_empty,
                env_parse_none_str=env_settings.env_parse_none_str,
                env_parse_enums=env_settings.env_parse_enums,
            )
        return init_settings, env_settings, dotenv_settings, file_secret_settings

    # --- Identity ---
    app_key: str = Field(default=APP_KEY, description="App key the secrets are stored under")
    metadata_key: str = Field(
        default=APP_PROP_NAME, description="Descriptive field skipped by the rule parser"
    )
    acting_user: str = Field(default=SYSTEM_USER)

    # --- Secret store ---
    secrets_backend: Literal["memory", "yaml"] = Field(default="memory")
    secrets_path: str = Field(default="config/headerapp_secrets.yaml")

    # --- Request pipeline ---
    site_header: str = Field(default="X-Site-ID")
    exclude_paths: List[str] = Field(default_factory=lambda: list(_DEFAULT_EXCLUDE_PATHS))

    # --- Admin / ops ---
    admin_api_key: Optional[str] = None
    log_level: str = Field(default="INFO")
    metrics_enabled: bool = Field(default=True)

    @field_validator("exclude_paths", mode="before")
    @classmethod
    def _parse_exclude_paths(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _json_or_csv_to_list(value)
        return value

    @field_validator("admin_api_key", mode="before")
    @classmethod
    def _blank_key_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> HeaderAppSettings:
    return HeaderAppSettings()


def reset_settings() -> None:
    """Drop the cached settings (primarily for tests)."""
    get_settings.cache_clear()
