"""
image_query.py — maps image classification labels to search terms.

The classifier (providers/) returns ranked text labels like
"Electronics", "Headphones", "Audio equipment". We keep the top few, turn them
into tokens, and look them up in a small category table. A category match
adds a handful of expansion keywords to the search — a stand-in for "similar
products in this category", since there is no visual-similarity index.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from providers.base import ImageLabel
from query_normalizer import normalize_tokens

DEFAULT_TOP_K = 3

# label (lower-case) → category hint
CATEGORY_MAP: dict[str, str] = {
    "electronics": "electronics",
    "gadget":      "electronics",
    "device":      "electronics",
    "phone":       "electronics",
    "headphones":  "electronics",
    "clothing":    "apparel",
    "apparel":     "apparel",
    "shirt":       "apparel",
    "footwear":    "apparel",
    "bag":         "bags",
    "handbag":     "bags",
    "backpack":    "bags",
    "kitchenware": "kitchen",
    "tableware":   "kitchen",
    "cookware":    "kitchen",
    "toy":         "toys",
    "plush":       "toys",
}

# category hint → extra keywords searched alongside the labels
CATEGORY_EXPANSIONS: dict[str, tuple[str, ...]] = {
    "electronics": ("earbuds", "charger"),
    "apparel":     ("shirt", "hoodie"),
    "bags":        ("backpack", "tote"),
    "kitchen":     ("cookware", "utensils"),
    "toys":        ("toy", "plush"),
}


class NoLabelsDetected(Exception):
    """The classification service found nothing in the image."""


@dataclass(frozen=True)
class ImageQuery:
    tokens: frozenset[str]
    category_hint: Optional[str] = None
    expansion_terms: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()       # top-K label descriptions, shown to the buyer

    @property
    def text(self) -> str:
        """Token set rendered as query text for the normalizer."""
        return " ".join(sorted(self.tokens))


def top_labels(labels: Sequence[ImageLabel], k: int = DEFAULT_TOP_K) -> list[ImageLabel]:
    """Highest-confidence labels first; ties keep the classifier's order."""
    ranked = sorted(labels, key=lambda l: l.confidence, reverse=True)
    return ranked[:max(k, 0)]


def translate(labels: Sequence[ImageLabel], k: int = DEFAULT_TOP_K) -> ImageQuery:
    """
    Turn classifier labels into an ImageQuery.

    Raises:
        NoLabelsDetected: labels is empty.
    """
    if not labels:
        raise NoLabelsDetected("classification service returned no labels")

    chosen = top_labels(labels, k)
    tokens: set[str] = set()
    category_hint: Optional[str] = None

    for label in chosen:
        description = label.description.strip().lower()
        if not description:
            continue
        tokens.add(description)
        tokens.update(normalize_tokens(description))
        if category_hint is None:
            category_hint = CATEGORY_MAP.get(description)

    expansion = CATEGORY_EXPANSIONS.get(category_hint, ()) if category_hint else ()
    tokens.update(expansion)

    return ImageQuery(
        tokens=frozenset(tokens),
        category_hint=category_hint,
        expansion_terms=expansion,
        labels=tuple(l.description for l in chosen),
    )
