"""Tests for correspondence resolution."""

from __future__ import annotations

import pytest

from listsync.errors import CorrespondenceNotFound, EntryExcluded
from listsync.sync.mappings import IgnoreRegistry, MappingStore
from listsync.sync.matcher import (
    REASON_AMBIGUOUS,
    REASON_NO_MATCH,
    CorrespondenceResolver,
    ResolutionKind,
    resolve_correspondence,
)
from listsync.sync.models import CatalogType, Service, SyncDirection
from tests.conftest import make_entry


@pytest.fixture
def mal_list():
    return [
        make_entry("Cowboy Bebop", mal_id=1),
        make_entry("Attack on Titan", mal_id=16498),
        make_entry("Attack on Titan", mal_id=99999),
    ]


class TestResolutionOrder:
    def test_manual_mapping_bypasses_titles(self) -> None:
        source = make_entry("Completely Different", anilist_id=100)
        candidates = [make_entry("Something Else", mal_id=200)]
        mappings = MappingStore()
        mappings.add_or_update(100, 200, "sequel split")

        resolution = resolve_correspondence(source, candidates, SyncDirection.FORWARD, mappings=mappings)

        assert resolution.outcome is ResolutionKind.RESOLVED
        assert resolution.target_id == 200
        assert resolution.target is candidates[0]
        assert resolution.method == "manual"

    def test_manual_mapping_reverse_direction(self) -> None:
        source = make_entry("Whatever", mal_id=200)
        mappings = MappingStore()
        mappings.add_or_update(100, 200)

        resolution = resolve_correspondence(source, [], SyncDirection.REVERSE, mappings=mappings)

        assert resolution.target_id == 100
        assert resolution.target is None

    def test_manual_mapping_beats_carried_id(self, mal_list) -> None:
        source = make_entry("Cowboy Bebop", anilist_id=1, mal_id=1)
        mappings = MappingStore()
        mappings.add_or_update(1, 16498)

        resolution = resolve_correspondence(source, mal_list, SyncDirection.FORWARD, mappings=mappings)

        assert resolution.target_id == 16498

    def test_direct_id_reuse(self, mal_list) -> None:
        source = make_entry("No Title Match At All", anilist_id=5, mal_id=1)

        resolution = resolve_correspondence(source, mal_list, SyncDirection.FORWARD)

        assert resolution.target_id == 1
        assert resolution.method == "id"

    def test_title_cascade_takes_first_candidate(self, mal_list) -> None:
        source = make_entry("attack on titan", anilist_id=5)

        resolution = resolve_correspondence(source, mal_list, SyncDirection.FORWARD)

        assert resolution.target_id == 16498
        assert resolution.method == "title:exact:primary"

    def test_title_cascade_skips_other_catalog_type(self) -> None:
        source = make_entry("Berserk", anilist_id=5)
        candidates = [
            make_entry("Berserk", catalog_type=CatalogType.MANGA, mal_id=2),
            make_entry("Berserk", mal_id=33),
        ]

        resolution = resolve_correspondence(source, candidates, SyncDirection.FORWARD)

        assert resolution.target_id == 33

    def test_no_match_is_unmapped(self, mal_list) -> None:
        source = make_entry("Obscure Show", anilist_id=5)

        resolution = resolve_correspondence(source, mal_list, SyncDirection.FORWARD)

        assert resolution.outcome is ResolutionKind.UNMAPPED
        assert resolution.reason == REASON_NO_MATCH
        assert resolution.target_id is None


class TestIgnoreRules:
    def test_ignored_by_source_id_is_excluded(self, mal_list) -> None:
        source = make_entry("Cowboy Bebop", anilist_id=1)
        ignore = IgnoreRegistry()
        ignore.add_ignore(Service.ANILIST, 1, title="Cowboy Bebop", reason="rewatch only")

        resolution = resolve_correspondence(source, mal_list, SyncDirection.FORWARD, ignore_rules=ignore)

        assert resolution.outcome is ResolutionKind.EXCLUDED

    def test_ignored_by_title(self, mal_list) -> None:
        source = make_entry("Cowboy Bebop!", anilist_id=1)
        ignore = IgnoreRegistry(titles=["cowboy bebop"])

        resolver = CorrespondenceResolver(SyncDirection.FORWARD, ignore_rules=ignore)
        with pytest.raises(EntryExcluded):
            resolver.find_target(source, mal_list)

    def test_ignore_beats_manual_mapping(self) -> None:
        source = make_entry("X", anilist_id=1)
        mappings = MappingStore()
        mappings.add_or_update(1, 2)
        ignore = IgnoreRegistry(anilist_ids=[1])

        resolution = resolve_correspondence(
            source, [], SyncDirection.FORWARD, mappings=mappings, ignore_rules=ignore
        )

        assert resolution.outcome is ResolutionKind.EXCLUDED


class TestStructuralFallback:
    def test_matches_title_less_entries_on_totals(self) -> None:
        source = make_entry(catalog_type=CatalogType.MANGA, anilist_id=1, total_units=120, total_volumes=12)
        candidates = [
            make_entry(catalog_type=CatalogType.MANGA, mal_id=7, total_units=100, total_volumes=10),
            make_entry(catalog_type=CatalogType.MANGA, mal_id=8, total_units=120, total_volumes=12),
        ]

        resolution = resolve_correspondence(source, candidates, SyncDirection.FORWARD)

        assert resolution.target_id == 8
        assert resolution.method == "structural"

    def test_can_be_disabled(self) -> None:
        source = make_entry(catalog_type=CatalogType.MANGA, anilist_id=1, total_units=120)
        candidates = [make_entry(catalog_type=CatalogType.MANGA, mal_id=8, total_units=120)]

        resolution = resolve_correspondence(
            source, candidates, SyncDirection.FORWARD, structural_fallback=False
        )

        assert resolution.outcome is ResolutionKind.UNMAPPED

    def test_ignores_candidates_with_title_signal(self) -> None:
        source = make_entry("Title A", catalog_type=CatalogType.MANGA, anilist_id=1, total_units=12)
        candidates = [make_entry("Title B", catalog_type=CatalogType.MANGA, mal_id=8, total_units=12)]

        resolution = resolve_correspondence(source, candidates, SyncDirection.FORWARD)

        assert resolution.outcome is ResolutionKind.UNMAPPED

    def test_unknown_totals_never_match(self) -> None:
        source = make_entry(catalog_type=CatalogType.MANGA, anilist_id=1)
        candidates = [make_entry(catalog_type=CatalogType.MANGA, mal_id=8)]

        resolution = resolve_correspondence(source, candidates, SyncDirection.FORWARD)

        assert resolution.reason == REASON_NO_MATCH

    def test_several_matches_are_ambiguous(self) -> None:
        source = make_entry(catalog_type=CatalogType.MANGA, anilist_id=1, total_units=12)
        candidates = [
            make_entry(catalog_type=CatalogType.MANGA, mal_id=8, total_units=12),
            make_entry(catalog_type=CatalogType.MANGA, mal_id=9, total_units=12),
        ]

        resolver = CorrespondenceResolver(SyncDirection.FORWARD)
        with pytest.raises(CorrespondenceNotFound) as exc_info:
            resolver.find_target(source, candidates)

        assert exc_info.value.reason == REASON_AMBIGUOUS

    def test_titles_in_different_fields_block_the_fallback(self) -> None:
        source = make_entry("Naruto", catalog_type=CatalogType.MANGA, anilist_id=1, total_units=12)
        candidates = [make_entry(romanized="Bleach", catalog_type=CatalogType.MANGA, mal_id=8, total_units=12)]

        resolution = resolve_correspondence(source, candidates, SyncDirection.FORWARD)

        assert resolution.outcome is ResolutionKind.UNMAPPED
        assert resolution.reason == REASON_NO_MATCH

    def test_titled_source_never_falls_back(self) -> None:
        source = make_entry("Naruto", catalog_type=CatalogType.MANGA, anilist_id=1, total_units=12)
        candidates = [make_entry(catalog_type=CatalogType.MANGA, mal_id=8, total_units=12)]

        resolution = resolve_correspondence(source, candidates, SyncDirection.FORWARD)

        assert resolution.outcome is ResolutionKind.UNMAPPED

    def test_anime_never_matches_on_episode_count(self) -> None:
        source = make_entry(anilist_id=1, total_units=12)
        candidates = [make_entry(mal_id=8, total_units=12)]

        resolution = resolve_correspondence(source, candidates, SyncDirection.FORWARD)

        assert resolution.outcome is ResolutionKind.UNMAPPED
        assert resolution.reason == REASON_NO_MATCH
