"""
Abstract base for all catalog sources.
Every source returns the same CandidateListing list — the pipeline doesn't
care whether the listings came from the local catalog or a live scrape.
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from query_normalizer import SearchQuery

# Placeholder for a text field the source couldn't provide
UNKNOWN = "unknown"


@dataclass(frozen=True)
class CandidateListing:
    id: str                         # opaque, stable per source
    title: str
    supplier_name: str
    price_low: Optional[float]      # None when the price couldn't be read
    price_high: Optional[float]
    minimum_order_quantity: int = 1
    rating: float = 0.0             # 0–5
    review_count: int = 0
    verified: bool = False          # "Gold" / verified supplier badge
    region: str = UNKNOWN
    response_time_hint: str = UNKNOWN
    image_url: str = UNKNOWN
    source_url: str = UNKNOWN
    supplier_id: str = UNKNOWN

    def __post_init__(self) -> None:
        for attr in ("price_low", "price_high"):
            value = getattr(self, attr)
            # frozen → go through object.__setattr__
            if value is not None and not math.isfinite(value):
                object.__setattr__(self, attr, None)
        if (
            self.price_low is not None
            and self.price_high is not None
            and self.price_low > self.price_high
        ):
            low, high = self.price_high, self.price_low
            object.__setattr__(self, "price_low", low)
            object.__setattr__(self, "price_high", high)
        if self.price_high is None and self.price_low is not None:
            object.__setattr__(self, "price_high", self.price_low)
        object.__setattr__(self, "minimum_order_quantity", max(int(self.minimum_order_quantity), 1))
        object.__setattr__(self, "rating", min(max(float(self.rating), 0.0), 5.0))
        object.__setattr__(self, "review_count", max(int(self.review_count), 0))

    @property
    def has_price(self) -> bool:
        return self.price_low is not None

    def to_dict(self) -> dict[str, Any]:
        """JSON shape consumed by the web front-end (camel-case keys)."""
        return {
            "id":           self.id,
            "name":         self.title,
            "supplierName": self.supplier_name,
            "price":        self.price_low,
            "maxPrice":     self.price_high,
            "moq":          self.minimum_order_quantity,
            "rating":       self.rating,
            "reviews":      self.review_count,
            "isGold":       self.verified,
            "location":     self.region,
            "responseTime": self.response_time_hint,
            "image":        self.image_url,
            "supplierId":   self.supplier_id,
            "alibabaUrl":   self.source_url,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CandidateListing":
        """Inverse of to_dict(). Missing optional fields get their defaults."""
        price = raw.get("price")
        max_price = raw.get("maxPrice", price)
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("name") or raw.get("title") or UNKNOWN),
            supplier_name=str(raw.get("supplierName") or UNKNOWN),
            price_low=float(price) if price is not None else None,
            price_high=float(max_price) if max_price is not None else None,
            minimum_order_quantity=int(raw.get("moq") or 1),
            rating=float(raw.get("rating") or 0.0),
            review_count=int(raw.get("reviews") or 0),
            verified=_parse_flag(raw.get("isGold", False)),
            region=str(raw.get("location") or UNKNOWN),
            response_time_hint=str(raw.get("responseTime") or UNKNOWN),
            image_url=str(raw.get("image") or UNKNOWN),
            source_url=str(raw.get("alibabaUrl") or raw.get("url") or UNKNOWN),
            supplier_id=str(raw.get("supplierId") or UNKNOWN),
        )


def _parse_flag(value: Any) -> bool:
    """JSON boolean, or the strings "true"/"false" (also 1/0, yes/no)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no", ""):
        return False
    raise ValueError(f"isGold must be true or false, got {value!r}")


# ── Live-fetch failures ───────────────────────────────────────────────────────

class ScrapeError(Exception):
    """Base for live marketplace fetch failures. Never fatal to a search."""

    kind = "scrape_error"

    def __init__(self, message: str, query: str = "", elapsed_s: float = 0.0) -> None:
        super().__init__(message)
        self.query = query
        self.elapsed_s = elapsed_s


class ScrapeTimeout(ScrapeError):
    """The result container never appeared within the fetch budget."""
    kind = "timeout"


class ScrapeParseError(ScrapeError):
    """The page didn't have the expected structure (marketplace layout changed)."""
    kind = "parse_error"


class ScrapeTransportError(ScrapeError):
    """Network, navigation or browser failure."""
    kind = "transport_error"


class CatalogSource(ABC):
    """All catalog sources must implement this interface."""

    @abstractmethod
    async def fetch(
        self,
        query: SearchQuery,
        category_hint: Optional[str] = None,
    ) -> list[CandidateListing]:
        """
        Return candidate listings for `query`.
        The local source never raises; the live source raises ScrapeError subclasses.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Short source name reported to the front-end: "local" or "live"."""
        ...
