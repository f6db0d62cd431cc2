"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (IPDOCS__STORE__API_URL=http://ipfs:5001/api/v0)
  2. ipdocs.yaml            (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("ipdocs")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")
_DEFAULT_CRATES_DIR = str(Path(_DEFAULT_DATA_DIR) / "crates")
_DEFAULT_POINTER_PATH = str(Path(_DEFAULT_DATA_DIR) / "index-root")

DEFAULT_PLACEHOLDER = "__IPDOCS_DEPS__"


def _find_config_file() -> str | None:
    """Return the path of the first ipdocs.yaml found, or None."""
    candidates = [
        Path("ipdocs.yaml"),
        Path(platformdirs.user_config_dir("ipdocs")) / "ipdocs.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class StoreSettings(BaseModel):
    api_url: str = "http://127.0.0.1:5001/api/v0"
    timeout_seconds: float | None = None  # None: wait for the daemon indefinitely


class FetcherSettings(BaseModel):
    download_url: str = "https://static.crates.io/crates/{name}/{name}-{version}.crate"
    crates_dir: str = _DEFAULT_CRATES_DIR
    timeout_seconds: float | None = None


class CacheSettings(BaseModel):
    db_path: str = _DEFAULT_DB_PATH


class IndexSettings(BaseModel):
    pointer_path: str = _DEFAULT_POINTER_PATH


class GeneratorSettings(BaseModel):
    cargo: str = "cargo"
    toolchain: str | None = "nightly"  # --extern-html-root-url needs -Z unstable-options
    placeholder: str = DEFAULT_PLACEHOLDER


class WorkspaceSettings(BaseModel):
    root: str | None = None  # None: system temp dir
    keep: bool = False


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: IPDOCS__CACHE__DB_PATH=/tmp/cache.db
        env_prefix="IPDOCS__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    store: StoreSettings = StoreSettings()
    fetcher: FetcherSettings = FetcherSettings()
    cache: CacheSettings = CacheSettings()
    index: IndexSettings = IndexSettings()
    generator: GeneratorSettings = GeneratorSettings()
    workspace: WorkspaceSettings = WorkspaceSettings()
    logging: LoggingSettings = LoggingSettings()

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
