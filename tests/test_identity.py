"""
test_identity.py — Unit tests for plate canonicalisation and variants.

Run with:
    python3 -m pytest tests/test_identity.py -v

These are pure functions: no database, no network.
"""

import pytest

from plate_registry.identity import (
    canonicalize,
    format_with_separator,
    is_plausible_plate,
    same_identity,
    search_variants,
)

SAMPLES = ["ab-12 cd", "ABC-123", "abc 123", " 1234abc ", "Ñ-12", "a.b!1@2", "", "---"]


# ── Canonicalisation ─────────────────────────────────────────────────── #

class TestCanonicalize:

    def test_spaces_and_hyphens(self):
        assert canonicalize("ab-12 cd") == "AB12CD"

    def test_junk(self):
        # Every non-alphanumeric character is stripped
        assert canonicalize("A.B!1@2#C$D%E") == "AB12CDE"

    def test_non_ascii_letters_dropped(self):
        assert canonicalize("Ñ-12") == "12"

    @pytest.mark.parametrize("value", ["", None, 123, ["AB12"]])
    def test_malformed_input_is_empty(self, value):
        assert canonicalize(value) == ""

    @pytest.mark.parametrize("value", SAMPLES)
    def test_idempotent(self, value):
        once = canonicalize(value)
        assert canonicalize(once) == once


# ── Separator formatting ─────────────────────────────────────────────── #

class TestFormatWithSeparator:

    @pytest.mark.parametrize("plate,expected", [
        ("1234ABC", "1234-ABC"),
        ("1234 abc", "1234-ABC"),
        ("12-34AB", "1234-AB"),   # existing separators are not kept
        ("AB", "AB"),             # too short
        ("12A", "12A"),           # still too short
        ("AB12CD", "AB12CD"),     # starts with a letter
        ("123456", "123456"),     # digits only: nothing after the run
    ])
    def test_format(self, plate, expected):
        assert format_with_separator(plate) == expected

    def test_custom_separator(self):
        assert format_with_separator("99XYZ", separator=" ") == "99 XYZ"


# ── Search variants ──────────────────────────────────────────────────── #

class TestSearchVariants:

    def test_empty(self):
        assert search_variants("") == []
        assert search_variants("   ") == []
        assert search_variants(None) == []

    def test_canonical_member(self):
        variants = search_variants("ab-12")
        assert "AB12" in variants
        assert "AB-12" in variants

    def test_digit_led_plate_gets_separator_form(self):
        assert search_variants("1234abc") == ["1234ABC", "1234-ABC"]

    def test_no_duplicates(self):
        variants = search_variants("ABC123")
        assert variants == ["ABC123"]

    @pytest.mark.parametrize("value", SAMPLES[:6])
    def test_bounded_and_same_identity(self, value):
        variants = search_variants(value)
        assert 1 <= len(variants) <= 4
        assert len(set(variants)) == len(variants)
        for v in variants:
            assert same_identity(v, value)

    def test_deterministic(self):
        assert search_variants("12-ab cd") == search_variants("12-ab cd")


# ── Plausibility ─────────────────────────────────────────────────────── #

class TestPlausibility:

    @pytest.mark.parametrize("plate", ["AB12CD", "A1", "ABC-123", "1234 ABC", "ABCDEFGHIJ"])
    def test_valid(self, plate):
        assert is_plausible_plate(plate) is True

    @pytest.mark.parametrize("plate", [
        "",             # empty
        "   ",          # whitespace
        "A",            # one character
        " A ",          # one character once trimmed
        "--",           # nothing left after canonicalising
        "A-",           # canonical length 1
        "ABCDEFGHIJK",  # 11 characters
        None,
    ])
    def test_invalid(self, plate):
        assert is_plausible_plate(plate) is False


# ── Identity comparison ──────────────────────────────────────────────── #

class TestSameIdentity:

    @pytest.mark.parametrize("a,b", [
        ("ABC-123", "abc 123"),
        ("ABC123", "a.b.c-1 2 3"),
        ("1234-ABC", "1234abc"),
    ])
    def test_equal(self, a, b):
        assert same_identity(a, b)

    def test_different(self):
        assert not same_identity("ABC123", "ABC124")

    @pytest.mark.parametrize("a", SAMPLES)
    @pytest.mark.parametrize("b", SAMPLES)
    def test_symmetric(self, a, b):
        assert same_identity(a, b) == same_identity(b, a)

    @pytest.mark.parametrize("a", SAMPLES[:6])
    def test_reflexive(self, a):
        assert same_identity(a, a)
