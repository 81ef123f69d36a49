"""
Scoring engine — deterministic 0–100 match score per candidate listing.

Components (weights sum to 100):
  token overlap  0–60   share of query tokens found in the listing title
  price fit      0–20   full marks at or under the buyer's ceiling, linear decay
                        to zero at 1.5× the ceiling
  trust          0–20   12 for a verified supplier + up to 8 from the rating

A listing that shares no token with the query is not relevant and is dropped.
A listing priced over budget is kept (ranked low), so a slightly-off price
never hides an otherwise perfect match.

Results are totally ordered: score, then rating, then review count (all
descending), then id — the same input always produces the same output.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable

from catalog_sources.base import UNKNOWN, CandidateListing
from query_normalizer import SearchQuery

logger = logging.getLogger(__name__)

OVERLAP_WEIGHT    = 60.0
PRICE_FIT_WEIGHT  = 20.0
VERIFIED_POINTS   = 12.0
RATING_POINTS     = 8.0
PRICE_DECAY_RATIO = 0.5     # price fit reaches 0 at max_price × (1 + ratio)


@dataclass(frozen=True)
class ScoredListing:
    listing: CandidateListing
    match_score: int        # 0–100

    def to_dict(self) -> dict[str, Any]:
        data = self.listing.to_dict()
        data["matchScore"] = self.match_score
        return data


# ── Components ────────────────────────────────────────────────────────────────

def token_overlap(query: SearchQuery, listing: CandidateListing) -> float:
    """Fraction (0–1) of query tokens that appear as substrings of the title."""
    if not query.tokens or listing.title == UNKNOWN:
        return 0.0
    title = listing.title.lower()
    matched = sum(1 for token in query.tokens if token in title)
    return matched / len(query.tokens)


def price_fit(query: SearchQuery, listing: CandidateListing) -> float:
    if not listing.has_price:
        return 0.0
    if listing.price_low <= query.max_price:
        return PRICE_FIT_WEIGHT
    limit = query.max_price * (1 + PRICE_DECAY_RATIO)
    if listing.price_low >= limit:
        return 0.0
    over = (listing.price_low - query.max_price) / (limit - query.max_price)
    return PRICE_FIT_WEIGHT * (1 - over)


def trust_signal(listing: CandidateListing) -> float:
    verified = VERIFIED_POINTS if listing.verified else 0.0
    return verified + RATING_POINTS * (listing.rating / 5)


def match_score(query: SearchQuery, listing: CandidateListing, overlap: float) -> int:
    total = overlap * OVERLAP_WEIGHT + price_fit(query, listing) + trust_signal(listing)
    # round half up, so 89.5 → 90 regardless of float banker's rounding
    return min(max(int(math.floor(total + 0.5)), 0), 100)


# ── Ranking ───────────────────────────────────────────────────────────────────

def _passes_buyer_filters(query: SearchQuery, listing: CandidateListing) -> bool:
    if query.verified_only and not listing.verified:
        return False
    if query.min_rating is not None and listing.rating < query.min_rating:
        return False
    return True


def _sort_key(scored: ScoredListing) -> tuple:
    l = scored.listing
    return (-scored.match_score, -l.rating, -l.review_count, l.id)


def score(query: SearchQuery, candidates: Iterable[CandidateListing]) -> list[ScoredListing]:
    """Score, filter and rank candidates. Never raises; empty in → empty out."""
    scored: list[ScoredListing] = []
    dropped_irrelevant = 0
    for listing in candidates:
        if not _passes_buyer_filters(query, listing):
            continue
        overlap = token_overlap(query, listing)
        if overlap == 0:
            dropped_irrelevant += 1
            continue
        scored.append(ScoredListing(listing, match_score(query, listing, overlap)))

    scored.sort(key=_sort_key)
    if dropped_irrelevant:
        logger.debug("Dropped %d candidates with no token overlap", dropped_irrelevant)
    return scored


def rank_browse(query: SearchQuery, candidates: Iterable[CandidateListing]) -> list[ScoredListing]:
    """
    Rank listings for a browse with no search terms (e.g. a photo with no labels).
    Overlap contributes nothing and nothing is dropped for lack of overlap.
    """
    scored = [
        ScoredListing(listing, match_score(query, listing, 0.0))
        for listing in candidates
        if _passes_buyer_filters(query, listing)
    ]
    scored.sort(key=_sort_key)
    return scored
