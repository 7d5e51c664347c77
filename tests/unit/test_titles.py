"""Tests for title normalization and matching tiers."""

from __future__ import annotations

import pytest

from listsync.sync.models import TitleSet
from listsync.sync.titles import (
    exact_match,
    levenshtein_similarity,
    match_tier,
    normalize,
    normalized_match,
    title_matching_levels,
    word_similarity,
)

SAMPLE_TITLES = [
    "Attack on Titan",
    "Re:Zero - Starting Life in Another World",
    "Steins;Gate (TV)",
    "  K-On!!  ",
    "Kaguya-sama: Love is War?",
    "JoJo's Bizarre Adventure, Part 1",
    "hello_world.exe",
    "",
]


class TestNormalize:
    def test_lowercases_and_strips_punctuation(self) -> None:
        assert normalize("Kaguya-sama: Love is War?") == "kaguya sama love is war"

    def test_removes_parenthesized_text(self) -> None:
        assert normalize("Steins;Gate (TV)") == "steins;gate"

    def test_replaces_separators_with_spaces(self) -> None:
        assert normalize("hello_world.exe") == "hello world exe"
        assert normalize("JoJo's Bizarre Adventure, Part 1") == "jojos bizarre adventure part 1"

    def test_collapses_whitespace(self) -> None:
        assert normalize("  K-On!!  ") == "k on"
        assert normalize("a   b\t\tc") == "a b c"

    @pytest.mark.parametrize("title", SAMPLE_TITLES)
    def test_idempotent(self, title: str) -> None:
        once = normalize(title)
        assert normalize(once) == once

    @pytest.mark.parametrize("title", SAMPLE_TITLES)
    def test_case_stable(self, title: str) -> None:
        assert normalize(title.upper()) == normalize(title.lower()) == normalize(title)


class TestTiers:
    def test_exact_is_case_insensitive(self) -> None:
        assert exact_match("Attack on Titan", "ATTACK ON TITAN")
        assert not exact_match("Attack on Titan", "Attack on Titan:")

    def test_exact_ignores_empty(self) -> None:
        assert not exact_match("", "")

    def test_normalized_match(self) -> None:
        assert normalized_match("Kaguya-sama: Love is War?", "kaguya sama love is war")
        assert not normalized_match("Re:Zero", "Re Zero 2")

    def test_normalized_match_needs_remaining_text(self) -> None:
        assert not normalized_match("(TV)", "(Movie)")
        assert not title_matching_levels(TitleSet(primary="(TV)"), TitleSet(primary="(Movie)"))

    def test_word_similarity_zero_for_empty(self) -> None:
        assert word_similarity("", "something") == 0.0
        assert word_similarity("(only brackets)", "something") == 0.0

    def test_word_similarity_partial(self) -> None:
        # 2 shared words out of 3 + 3
        assert word_similarity("one two three", "one two four") == pytest.approx(200 / 3)

    def test_word_similarity_is_symmetric(self) -> None:
        a, b = "the the cat", "the cat cat"
        assert word_similarity(a, b) == word_similarity(b, a)

    def test_levenshtein_equal_normalized_is_100(self) -> None:
        assert levenshtein_similarity("K-On!", "k on") == 100.0

    def test_levenshtein_small_edit_on_long_title(self) -> None:
        base = "a" * 60
        assert levenshtein_similarity(base, base + "b") >= 98.0
        assert levenshtein_similarity("abcd", "abce") < 98.0

    def test_levenshtein_clamped_at_zero(self) -> None:
        assert levenshtein_similarity("a", "zzzz") >= 0.0


class TestTitleMatchingLevels:
    def test_exact_match_always_matches(self) -> None:
        a = TitleSet(primary="Some Very Different Title")
        b = TitleSet(primary="SOME VERY DIFFERENT TITLE")
        assert title_matching_levels(a, b)
        assert match_tier(a, b) == "exact:primary"

    def test_never_compares_across_fields(self) -> None:
        a = TitleSet(primary="Shingeki no Kyojin")
        b = TitleSet(romanized="Shingeki no Kyojin")
        assert not title_matching_levels(a, b)

    def test_empty_fields_carry_no_signal(self) -> None:
        assert not title_matching_levels(TitleSet(), TitleSet())
        assert not title_matching_levels(TitleSet(primary="X"), TitleSet(native="X"))

    def test_matches_on_any_field(self) -> None:
        a = TitleSet(primary="Attack on Titan", native="進撃の巨人", romanized="Shingeki no Kyojin")
        b = TitleSet(primary="AoT", native="進撃の巨人")
        assert match_tier(a, b) == "exact:native"

    def test_earlier_tier_wins_across_fields(self) -> None:
        a = TitleSet(primary="Steins;Gate (TV)", romanized="Kaguya-sama")
        b = TitleSet(primary="steins;gate", romanized="KAGUYA-SAMA")
        # Exact on romanized is found before normalized on primary
        assert match_tier(a, b) == "exact:romanized"

    def test_normalized_tier(self) -> None:
        a = TitleSet(primary="Steins;Gate (2011)")
        b = TitleSet(primary="steins;gate")
        assert match_tier(a, b) == "normalized:primary"

    @pytest.mark.parametrize(
        ("first", "second"),
        [
            (TitleSet(primary="Attack on Titan"), TitleSet(primary="attack on titan")),
            (TitleSet(primary="One Piece"), TitleSet(primary="One Punch Man")),
            (TitleSet(native="鬼滅の刃"), TitleSet(primary="Demon Slayer", native="鬼滅の刃")),
            (TitleSet(romanized="Re:Zero"), TitleSet(romanized="Re Zero")),
            (TitleSet(), TitleSet(primary="Anything")),
        ],
    )
    def test_symmetric(self, first: TitleSet, second: TitleSet) -> None:
        assert title_matching_levels(first, second) == title_matching_levels(second, first)
