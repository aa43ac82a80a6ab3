"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (POLYDICT__LOGGING__LEVEL=DEBUG)
  2. polydict.yaml          (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional. Every field has a default, and the library section
(folders, web engines, AI prompts, LLM providers) starts out empty.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from polydict.models.dictionary import AIPrompt, LLMProvider, WebSearchEngine

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("polydict")
_DB_FILE_NAME = "fingerprints.db"
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / _DB_FILE_NAME)
_DEFAULT_GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta"


def _find_config_file() -> str | None:
    """Return the path of the first polydict.yaml found, or None."""
    candidates = [
        Path("polydict.yaml"),
        Path(platformdirs.user_config_dir("polydict")) / "polydict.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: str = _DEFAULT_DB_PATH


class LoaderSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_concurrent_bundles: int = Field(default=8, ge=1)
    sample_window_bytes: int = Field(default=4096, ge=1)
    redirect_depth_limit: int = Field(default=5, ge=0)


class CompletionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: str = _DEFAULT_GEMINI_URL
    timeout_seconds: float = Field(default=30.0, gt=0.0)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class LibrarySettings(BaseModel):
    """Dictionary sources. Folders are storage locators; the rest are inline records."""

    model_config = ConfigDict(extra="forbid")

    folders: list[str] = []
    web_engines: list[WebSearchEngine] = []
    ai_prompts: list[AIPrompt] = []
    llm_providers: list[LLMProvider] = []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: POLYDICT__CACHE__DB_PATH=/tmp/fp.db
        env_prefix="POLYDICT__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    data_dir: str = _DEFAULT_DATA_DIR
    cache: CacheSettings = CacheSettings()
    loader: LoaderSettings = LoaderSettings()
    completion: CompletionSettings = CompletionSettings()
    logging: LoggingSettings = LoggingSettings()
    library: LibrarySettings = LibrarySettings()

    @model_validator(mode="after")
    def place_db_in_data_dir(self) -> Settings:
        """Without an explicit ``cache.db_path``, keep the database inside ``data_dir``."""
        if "db_path" not in self.cache.model_fields_set:
            self.cache = CacheSettings(db_path=str(Path(self.data_dir) / _DB_FILE_NAME))
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
