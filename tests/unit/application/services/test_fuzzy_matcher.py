"""Tests for the fuzzy matcher."""

import pytest

from tunesync.application.services.fuzzy_matcher import (
    album_after_dash,
    album_without_brackets,
    normalize_album_variants,
    similarity,
)

SAMPLES = [
    "",
    "a",
    "Muse",
    "muse",
    "Origin of Symmetry",
    "Origin Of Symmetry (Deluxe)",
    "Sigur Rós",
    "AC/DC",
    "The Beatles - Abbey Road",
]


class TestSimilarity:
    """Test normalized Levenshtein similarity."""

    @pytest.mark.parametrize("value", SAMPLES)
    def test_identity(self, value: str) -> None:
        assert similarity(value, value) == 1.0

    @pytest.mark.parametrize("a", SAMPLES)
    @pytest.mark.parametrize("b", SAMPLES)
    def test_symmetric(self, a: str, b: str) -> None:
        assert similarity(a, b) == similarity(b, a)

    @pytest.mark.parametrize("a", SAMPLES)
    @pytest.mark.parametrize("b", SAMPLES)
    def test_bounded(self, a: str, b: str) -> None:
        assert 0.0 <= similarity(a, b) <= 1.0

    def test_case_insensitive(self) -> None:
        assert similarity("RADIOHEAD", "radiohead") == 1.0

    def test_normalized_by_longer_string(self) -> None:
        # One substitution over five characters
        assert similarity("hello", "hallo") == pytest.approx(0.8)
        # Four insertions over eight characters
        assert similarity("abcd", "abcdefgh") == pytest.approx(0.5)

    def test_none_is_empty(self) -> None:
        assert similarity(None, "") == 1.0
        assert similarity(None, "abc") == 0.0


class TestAlbumVariants:
    """Test album name normalization."""

    def test_after_dash(self) -> None:
        assert album_after_dash("Muse - Origin of Symmetry") == "Origin of Symmetry"
        assert album_after_dash("Origin") == "Origin"

    def test_after_dash_splits_on_first_dash_only(self) -> None:
        assert album_after_dash("A - B - C") == "B - C"

    def test_without_brackets(self) -> None:
        assert album_without_brackets("Album (Deluxe Edition) [2011 Remaster]") == "Album"
        assert album_without_brackets("Live {Disc 1}  at  Wembley") == "Live at Wembley"

    def test_variants_are_cumulative(self) -> None:
        assert normalize_album_variants("Muse - Origin [Deluxe]") == [
            "Origin [Deluxe]",
            "Origin",
        ]

    def test_plain_album_has_no_variants(self) -> None:
        assert normalize_album_variants("Origin") == []

    def test_duplicate_variant_dropped(self) -> None:
        # No dash: the first variant equals the original and is skipped
        assert normalize_album_variants("Origin (Deluxe)") == ["Origin"]

    def test_empty_variant_dropped(self) -> None:
        assert normalize_album_variants("Artist - (Bonus)") == ["(Bonus)"]
