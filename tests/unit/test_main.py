"""Tests for the run-once entry point."""

from __future__ import annotations

import pytest

from listsync import main as entry_point
from listsync.errors import ConfigInvalid


@pytest.fixture
def logging_levels(monkeypatch):
    """Record the levels setup_logging is called with."""
    levels = []
    monkeypatch.setattr(entry_point, "setup_logging", lambda level=None: levels.append(level))
    monkeypatch.setattr(entry_point.signal, "signal", lambda *args: None)
    for name in ("ANILIST_TOKEN", "MAL_CLIENT_ID", "MAL_TOKEN", "SYNC_FAVORITES", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return levels


class TestMain:
    def test_logging_uses_configured_level(self, monkeypatch, logging_levels) -> None:
        monkeypatch.setenv("ANILIST_TOKEN", "a")
        monkeypatch.setenv("MAL_CLIENT_ID", "c")
        monkeypatch.setenv("MAL_TOKEN", "m")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("DATABASE_URL", "sqlite://")

        def invalid_mappings(config, cancel_event):
            raise ConfigInvalid("Manual mapping #0 needs positive anilist_id and mal_id")

        monkeypatch.setattr(entry_point, "build_engine", invalid_mappings)

        assert entry_point.main() == 2
        assert logging_levels == ["DEBUG"]

    def test_missing_credentials_exit_before_any_work(self, monkeypatch, logging_levels) -> None:
        def unexpected_init(*args, **kwargs):
            raise AssertionError("database must not be opened")

        monkeypatch.setattr(entry_point, "init_db", unexpected_init)

        assert entry_point.main() == 2
        assert logging_levels == [None]
