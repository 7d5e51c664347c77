"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from listsync.config import SyncConfig, load_config
from listsync.errors import ConfigInvalid
from listsync.sync.models import CatalogType, SyncDirection

ENV_VARS = [
    "ANILIST_TOKEN",
    "MAL_CLIENT_ID",
    "MAL_TOKEN",
    "MAL_USERNAME",
    "SYNC_DIRECTION",
    "FORCE_SYNC",
    "DRY_RUN",
    "VERBOSE",
    "CATALOG_TYPES",
    "STRUCTURAL_FALLBACK",
    "LOOKUP_MISSING_IDS",
    "SYNC_FAVORITES",
    "MAX_WORKERS",
    "FAVORITES_INTERVAL_SECONDS",
    "CACHE_DIR",
    "CACHE_MAX_AGE_HOURS",
    "DATABASE_URL",
    "LOG_LEVEL",
    "ERROR_SUMMARY_LIMIT",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadConfig:
    def test_defaults(self, clean_env) -> None:
        config = load_config()

        assert config.direction is SyncDirection.FORWARD
        assert config.catalog_types == (CatalogType.ANIME, CatalogType.MANGA)
        assert not config.dry_run
        assert config.max_workers == 1
        assert config.structural_fallback

    def test_reads_environment(self, clean_env) -> None:
        clean_env.setenv("SYNC_DIRECTION", "Reverse")
        clean_env.setenv("DRY_RUN", "true")
        clean_env.setenv("CATALOG_TYPES", "manga")
        clean_env.setenv("MAX_WORKERS", "4")
        clean_env.setenv("LOG_LEVEL", "debug")

        config = load_config()

        assert config.direction is SyncDirection.REVERSE
        assert config.dry_run
        assert config.catalog_types == (CatalogType.MANGA,)
        assert config.max_workers == 4
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("SYNC_DIRECTION", "sideways"),
            ("MAX_WORKERS", "0"),
            ("MAX_WORKERS", "many"),
            ("CATALOG_TYPES", "novels"),
            ("CATALOG_TYPES", " , "),
        ],
    )
    def test_invalid_values_raise_config_invalid(self, clean_env, name: str, value: str) -> None:
        clean_env.setenv(name, value)

        with pytest.raises(ConfigInvalid):
            load_config()


class TestRequireCredentials:
    def test_missing_tokens_are_named(self) -> None:
        config = SyncConfig(mal_client_id="c")

        with pytest.raises(ConfigInvalid) as exc_info:
            config.require_credentials()

        assert "ANILIST_TOKEN" in str(exc_info.value)
        assert "MAL_TOKEN" in str(exc_info.value)
        assert "MAL_CLIENT_ID" not in str(exc_info.value)

    def test_favorites_need_mal_username(self) -> None:
        config = SyncConfig(anilist_token="a", mal_client_id="c", mal_token="m", sync_favorites=True)

        with pytest.raises(ConfigInvalid, match="MAL_USERNAME"):
            config.require_credentials()

    def test_complete_credentials(self, config) -> None:
        config.require_credentials()

    def test_config_is_frozen(self, config) -> None:
        with pytest.raises(Exception):
            config.dry_run = True
