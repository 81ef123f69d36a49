"""
query_normalizer.py — turns raw buyer input into a canonical SearchQuery.

Free text (or the label text produced by image_query.py) is lower-cased,
split on anything that isn't a letter or digit, and stripped of one-letter
tokens and stop-words. The buyer's filter form (goldOnly / maxPrice /
minRating) is validated into typed fields.

Pure functions only — no I/O, no logging of user input.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

# Effectively "no price ceiling"
MAX_PRICE_SENTINEL: float = 1e9

MIN_TOKEN_LENGTH = 2

# Articles, prepositions and marketplace noise that would otherwise match
# almost every listing title and dilute the overlap score.
STOP_WORDS: frozenset[str] = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in", "is",
    "it", "of", "on", "or", "the", "to", "with", "without", "my", "me", "i",
    "want", "need", "looking", "find", "get",
    "buy", "wholesale", "bulk", "cheap", "best", "new", "hot", "sale", "price",
    "prices", "supplier", "suppliers", "factory", "manufacturer", "product",
    "products", "quality", "lot", "lots", "pcs", "piece", "pieces",
})

_SPLIT_RE = re.compile(r"[^a-z0-9]+")

_TRUE_STRINGS  = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


class InvalidFilter(ValueError):
    """The buyer's filter input can't be interpreted. User-correctable."""


@dataclass(frozen=True)
class SearchQuery:
    tokens: frozenset[str]
    max_price: float = MAX_PRICE_SENTINEL
    verified_only: bool = False
    min_rating: Optional[float] = None

    @property
    def phrase(self) -> str:
        """Tokens joined as a search phrase (sorted, so repeat calls agree)."""
        return " ".join(sorted(self.tokens))

    @property
    def has_price_ceiling(self) -> bool:
        return self.max_price < MAX_PRICE_SENTINEL


@dataclass(frozen=True)
class FilterInput:
    """Raw filter values as they arrive from the search form / query string."""
    gold_only: Any = False
    max_price: Any = None
    min_rating: Any = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "FilterInput":
        """Accept both the camel-case form keys and snake_case."""
        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return None

        return cls(
            gold_only=pick("goldOnly", "gold_only", "gold", "verifiedOnly"),
            max_price=pick("maxPrice", "max_price"),
            min_rating=pick("minRating", "min_rating"),
        )


def normalize_tokens(text: str) -> frozenset[str]:
    """Lower-case, split on whitespace/punctuation, drop short tokens and stop-words."""
    if not text:
        return frozenset()
    return frozenset(
        tok for tok in _SPLIT_RE.split(text.lower())
        if len(tok) >= MIN_TOKEN_LENGTH and tok not in STOP_WORDS
    )


def normalize(
    raw_text: str,
    filter_input: Union[FilterInput, Mapping[str, Any], None] = None,
) -> SearchQuery:
    """
    Build a SearchQuery from raw text plus the buyer's filter input.

    Raises:
        InvalidFilter: maxPrice / minRating isn't a number, minRating is
                       outside [0, 5], or goldOnly isn't a boolean.
    """
    if filter_input is None:
        filters = FilterInput()
    elif isinstance(filter_input, FilterInput):
        filters = filter_input
    else:
        filters = FilterInput.from_mapping(filter_input)

    return SearchQuery(
        tokens=normalize_tokens(raw_text),
        max_price=_parse_max_price(filters.max_price),
        verified_only=_parse_bool(filters.gold_only, "goldOnly"),
        min_rating=_parse_min_rating(filters.min_rating),
    )


# ── Field parsers ─────────────────────────────────────────────────────────────

def _parse_number(value: Any, field: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidFilter(f"{field} must be a number, got {value!r}")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidFilter(f"{field} must be a number, got {value!r}") from None
    if math.isnan(number) or math.isinf(number):
        raise InvalidFilter(f"{field} must be a finite number, got {value!r}")
    return number


def _parse_max_price(value: Any) -> float:
    number = _parse_number(value, "maxPrice")
    if number is None or number <= 0:
        return MAX_PRICE_SENTINEL
    return min(number, MAX_PRICE_SENTINEL)


def _parse_min_rating(value: Any) -> Optional[float]:
    number = _parse_number(value, "minRating")
    if number is None:
        return None
    if not 0 <= number <= 5:
        raise InvalidFilter(f"minRating must be between 0 and 5, got {number:g}")
    # 0 stars means "any rating"
    return number or None


def _parse_bool(value: Any, field: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise InvalidFilter(f"{field} must be true or false, got {value!r}")
