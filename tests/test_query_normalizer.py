"""
Tests for query_normalizer.py.

Covers:
  - tokenisation: lower-casing, punctuation splitting, short tokens, stop-words
  - maxPrice: default sentinel, non-positive, numeric strings, invalid input
  - minRating: range checks, zero means "any"
  - goldOnly: booleans and string forms
  - FilterInput.from_mapping(): camel-case and snake_case keys
"""
from __future__ import annotations

import pytest

from query_normalizer import (
    MAX_PRICE_SENTINEL,
    STOP_WORDS,
    FilterInput,
    InvalidFilter,
    SearchQuery,
    normalize,
    normalize_tokens,
)


# ── Tokens ────────────────────────────────────────────────────────────────────

class TestTokens:
    def test_basic_query(self):
        q = normalize("Wireless Earbuds Bluetooth", {})
        assert q.tokens == {"wireless", "earbuds", "bluetooth"}
        assert q.max_price == MAX_PRICE_SENTINEL
        assert q.verified_only is False
        assert q.min_rating is None

    def test_punctuation_splits_tokens(self):
        assert normalize_tokens("usb-c, fast/charger!") == {"usb", "fast", "charger"}

    def test_single_character_tokens_dropped(self):
        assert normalize_tokens("a b c phone x") == {"phone"}

    def test_stop_words_removed(self):
        tokens = normalize_tokens("Buy the best wholesale earbuds from a supplier")
        assert tokens == {"earbuds"}

    def test_duplicates_collapse(self):
        assert normalize_tokens("Earbuds earbuds EARBUDS") == {"earbuds"}

    def test_all_tokens_lower_case_and_clean(self):
        tokens = normalize_tokens("TWS Earbuds 5.3 ANC — Bluetooth, Hi-Fi! The Best")
        assert tokens
        for tok in tokens:
            assert tok == tok.lower()
            assert len(tok) >= 2
            assert tok not in STOP_WORDS

    def test_empty_and_noise_only_text(self):
        assert normalize_tokens("") == frozenset()
        assert normalize("buy wholesale cheap").tokens == frozenset()

    def test_phrase_is_sorted(self):
        q = normalize("wireless earbuds")
        assert q.phrase == "earbuds wireless"


# ── maxPrice ──────────────────────────────────────────────────────────────────

class TestMaxPrice:
    def test_numeric_string(self):
        assert normalize("earbuds", {"maxPrice": "10"}).max_price == 10.0

    def test_number(self):
        assert normalize("earbuds", {"maxPrice": 6.5}).max_price == 6.5

    @pytest.mark.parametrize("value", [None, "", "   ", 0, "0", -5, "-1"])
    def test_absent_or_non_positive_is_unbounded(self, value):
        q = normalize("earbuds", {"maxPrice": value})
        assert q.max_price == MAX_PRICE_SENTINEL
        assert not q.has_price_ceiling

    @pytest.mark.parametrize("value", ["abc", "10$", "nan", "inf", True, [5]])
    def test_invalid_raises(self, value):
        with pytest.raises(InvalidFilter, match="maxPrice"):
            normalize("earbuds", {"maxPrice": value})


# ── minRating ─────────────────────────────────────────────────────────────────

class TestMinRating:
    def test_in_range(self):
        assert normalize("earbuds", {"minRating": "4.5"}).min_rating == 4.5

    def test_zero_means_any(self):
        assert normalize("earbuds", {"minRating": 0}).min_rating is None

    @pytest.mark.parametrize("value", [-0.1, 5.1, "6"])
    def test_out_of_range_raises(self, value):
        with pytest.raises(InvalidFilter, match="minRating"):
            normalize("earbuds", {"minRating": value})

    def test_non_numeric_raises(self):
        with pytest.raises(InvalidFilter):
            normalize("earbuds", {"minRating": "great"})


# ── goldOnly ──────────────────────────────────────────────────────────────────

class TestGoldOnly:
    @pytest.mark.parametrize("value,expected", [
        (True, True), (False, False), ("true", True), ("false", False),
        ("1", True), ("0", False), ("YES", True), (None, False),
    ])
    def test_values(self, value, expected):
        assert normalize("earbuds", {"goldOnly": value}).verified_only is expected

    def test_garbage_raises(self):
        with pytest.raises(InvalidFilter, match="goldOnly"):
            normalize("earbuds", {"goldOnly": "maybe"})


# ── FilterInput ───────────────────────────────────────────────────────────────

class TestFilterInput:
    def test_from_mapping_camel_case(self):
        f = FilterInput.from_mapping({"goldOnly": True, "maxPrice": 10, "minRating": 4})
        assert f == FilterInput(gold_only=True, max_price=10, min_rating=4)

    def test_from_mapping_snake_case(self):
        f = FilterInput.from_mapping({"gold_only": "true", "max_price": "3"})
        assert f.gold_only == "true"
        assert f.max_price == "3"

    def test_filter_input_instance_accepted(self):
        q = normalize("earbuds", FilterInput(gold_only=True, max_price=10))
        assert q == SearchQuery(frozenset({"earbuds"}), 10.0, True, None)

    def test_invalid_filter_is_value_error(self):
        assert issubclass(InvalidFilter, ValueError)
