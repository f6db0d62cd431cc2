"""Unit tests for configuration defaults and overrides."""

from __future__ import annotations

import platformdirs

from ipdocs.config import (
    _DEFAULT_CRATES_DIR,
    _DEFAULT_DATA_DIR,
    _DEFAULT_DB_PATH,
    _DEFAULT_POINTER_PATH,
    CacheSettings,
    Settings,
)


class TestPlatformDefaults:
    """Verify config defaults use platformdirs instead of hardcoded Unix paths."""

    def test_default_data_dir_matches_platformdirs(self) -> None:
        expected = platformdirs.user_data_dir("ipdocs")
        assert expected == _DEFAULT_DATA_DIR

    def test_default_paths_under_data_dir(self) -> None:
        assert _DEFAULT_DB_PATH.startswith(_DEFAULT_DATA_DIR)
        assert _DEFAULT_DB_PATH.endswith("cache.db")
        assert _DEFAULT_CRATES_DIR.startswith(_DEFAULT_DATA_DIR)
        assert _DEFAULT_POINTER_PATH.endswith("index-root")

    def test_cache_settings_uses_platform_default(self) -> None:
        assert CacheSettings().db_path == _DEFAULT_DB_PATH


class TestOverrides:
    def test_env_var_overrides_nested_field(self, monkeypatch) -> None:
        monkeypatch.setenv("IPDOCS__STORE__API_URL", "http://ipfs.internal:5001/api/v0")
        monkeypatch.setenv("IPDOCS__GENERATOR__TOOLCHAIN", "nightly-2024-06-01")
        settings = Settings()
        assert settings.store.api_url == "http://ipfs.internal:5001/api/v0"
        assert settings.generator.toolchain == "nightly-2024-06-01"

    def test_constructor_args_take_priority(self, monkeypatch) -> None:
        monkeypatch.setenv("IPDOCS__LOGGING__LEVEL", "ERROR")
        settings = Settings(logging={"level": "DEBUG"})
        assert settings.logging.level == "DEBUG"

    def test_store_has_no_timeout_by_default(self) -> None:
        assert Settings().store.timeout_seconds is None
