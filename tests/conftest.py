"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

import pytest

from listsync.config import SyncConfig
from listsync.db import database
from listsync.sync.models import (
    CatalogEntry,
    CatalogType,
    Status,
    TitleSet,
    UpdateRecord,
)
from listsync.sync.scores import ScoreFormat


def make_entry(
    title: str = "",
    catalog_type: CatalogType = CatalogType.ANIME,
    anilist_id: Optional[int] = None,
    mal_id: Optional[int] = None,
    native: str = "",
    romanized: str = "",
    status: Status = Status.IN_PROGRESS,
    progress: int = 0,
    score: float = 0,
    score_format: Optional[ScoreFormat] = ScoreFormat.POINT_10,
    total_units: Optional[int] = None,
    **kwargs,
) -> CatalogEntry:
    """Build a catalog entry with sensible defaults."""
    return CatalogEntry(
        catalog_type=catalog_type,
        anilist_id=anilist_id,
        mal_id=mal_id,
        titles=TitleSet(primary=title, native=native, romanized=romanized),
        status=status,
        progress=progress,
        score=score,
        score_format=score_format,
        total_units=total_units,
        **kwargs,
    )


class FakeProvider:
    """In-memory catalog provider recording every write."""

    def __init__(
        self,
        entries: Optional[Dict[CatalogType, List[CatalogEntry]]] = None,
        fail_fetch: Optional[set] = None,
        fail_update: Optional[set] = None,
    ):
        self.entries = entries or {}
        self.fail_fetch = fail_fetch or set()
        self.fail_update = fail_update or set()
        self.updates: List[tuple] = []
        self._lock = threading.Lock()

    def fetch_entries(self, catalog_type: CatalogType) -> List[CatalogEntry]:
        if catalog_type in self.fail_fetch:
            raise ConnectionError("service unavailable")
        return list(self.entries.get(catalog_type, []))

    def apply_update(self, catalog_type: CatalogType, target_id: int, record: UpdateRecord) -> None:
        if target_id in self.fail_update:
            raise ConnectionError(f"cannot update {target_id}")
        with self._lock:
            self.updates.append((catalog_type, target_id, record))


class FakeToggler:
    """Records favourite toggles."""

    def __init__(self, fail_ids: Optional[set] = None):
        self.calls: List[tuple] = []
        self.fail_ids = fail_ids or set()

    def toggle_favourite(self, catalog_type: CatalogType, anilist_id: int) -> None:
        if anilist_id in self.fail_ids:
            raise ConnectionError("toggle failed")
        self.calls.append((catalog_type, anilist_id))


class FakeLookup:
    def __init__(self, ids: Dict[int, int]):
        self.ids = ids
        self.calls: List[int] = []

    def lookup_anilist_id(self, catalog_type: CatalogType, mal_id: int) -> Optional[int]:
        self.calls.append(mal_id)
        return self.ids.get(mal_id)


@pytest.fixture
def config() -> SyncConfig:
    """Forward, single-worker configuration."""
    return SyncConfig(anilist_token="a", mal_client_id="c", mal_token="m")


@pytest.fixture
def db():
    """In-memory database for the persistence layer."""
    database.init_db("sqlite://")
    yield database
    database.close_db()
