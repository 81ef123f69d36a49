"""
Local catalog source — an in-memory snapshot of supplier listings.

Used directly when the live scrape is disabled, and as the fallback whenever
the live scrape fails. It never raises: no match is an empty list.

The snapshot is either the built-in SAMPLE_CATALOG below or a JSON file
(LOCAL_CATALOG_PATH) holding a list of listings in the front-end's camel-case
shape, e.g.

  [{"id": 1, "name": "TWS Wireless Earbuds", "supplierName": "...",
    "price": 4.2, "maxPrice": 6.5, "moq": 100, "rating": 4.9, "reviews": 127,
    "isGold": true, "location": "Guangdong, China", ...}]
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from catalog_sources.base import UNKNOWN, CandidateListing, CatalogSource
from query_normalizer import SearchQuery

logger = logging.getLogger(__name__)


SAMPLE_CATALOG: tuple[CandidateListing, ...] = (
    CandidateListing(
        id="1",
        title="TWS Wireless Earbuds Bluetooth 5.3 ANC",
        supplier_name="Shenzhen TechMaster Electronics Co., Ltd.",
        price_low=4.20,
        price_high=6.50,
        minimum_order_quantity=100,
        rating=4.9,
        review_count=127,
        verified=True,
        region="Guangdong, China",
        response_time_hint="< 2h",
        image_url="https://images.unsplash.com/photo-1590658268037-6bf12165a8df?w=400",
        source_url="https://www.alibaba.com/product-detail/earbuds",
        supplier_id="SUP001",
    ),
    CandidateListing(
        id="2",
        title="20W USB-C PD Fast Charger Wall Adapter",
        supplier_name="Dongguan PowerLink Technology Co., Ltd.",
        price_low=1.85,
        price_high=2.60,
        minimum_order_quantity=500,
        rating=4.7,
        review_count=342,
        verified=True,
        region="Guangdong, China",
        response_time_hint="< 4h",
        image_url="https://images.unsplash.com/photo-1583863788434-e58a36330cf0?w=400",
        source_url="https://www.alibaba.com/product-detail/usb-c-charger",
        supplier_id="SUP002",
    ),
    CandidateListing(
        id="3",
        title="Over-Ear Wireless Headphones Foldable Bluetooth",
        supplier_name="Ningbo SoundWave Audio Co., Ltd.",
        price_low=7.90,
        price_high=11.40,
        minimum_order_quantity=50,
        rating=4.5,
        review_count=88,
        verified=False,
        region="Zhejiang, China",
        response_time_hint="< 12h",
        image_url="https://images.unsplash.com/photo-1505740420928-5e560c06d30e?w=400",
        source_url="https://www.alibaba.com/product-detail/headphones",
        supplier_id="SUP003",
    ),
    CandidateListing(
        id="4",
        title="Sports Earbuds Wired In-Ear With Mic",
        supplier_name="Yiwu Bright Trading Co., Ltd.",
        price_low=0.65,
        price_high=0.95,
        minimum_order_quantity=1000,
        rating=4.2,
        review_count=56,
        verified=False,
        region="Zhejiang, China",
        response_time_hint="< 24h",
        image_url="https://images.unsplash.com/photo-1484704849700-f032a568e944?w=400",
        source_url="https://www.alibaba.com/product-detail/wired-earbuds",
        supplier_id="SUP004",
    ),
    CandidateListing(
        id="5",
        title="Magnetic Wireless Charger Pad 15W",
        supplier_name="Shenzhen TechMaster Electronics Co., Ltd.",
        price_low=3.10,
        price_high=4.80,
        minimum_order_quantity=200,
        rating=4.8,
        review_count=204,
        verified=True,
        region="Guangdong, China",
        response_time_hint="< 2h",
        image_url="https://images.unsplash.com/photo-1591290619762-d71b5b5a3b43?w=400",
        source_url="https://www.alibaba.com/product-detail/wireless-charger",
        supplier_id="SUP001",
    ),
    CandidateListing(
        id="6",
        title="Heavyweight Cotton Hoodie Custom Logo Unisex",
        supplier_name="Guangzhou Urban Apparel Co., Ltd.",
        price_low=8.50,
        price_high=12.00,
        minimum_order_quantity=50,
        rating=4.6,
        review_count=73,
        verified=True,
        region="Guangdong, China",
        response_time_hint="< 6h",
        image_url="https://images.unsplash.com/photo-1556821840-3a63f95609a7?w=400",
        source_url="https://www.alibaba.com/product-detail/hoodie",
        supplier_id="SUP005",
    ),
    CandidateListing(
        id="7",
        title="Waterproof Laptop Backpack USB Charging Port",
        supplier_name="Quanzhou Trek Bags Co., Ltd.",
        price_low=6.20,
        price_high=9.80,
        minimum_order_quantity=100,
        rating=4.4,
        review_count=119,
        verified=False,
        region="Fujian, China",
        response_time_hint="< 8h",
        image_url="https://images.unsplash.com/photo-1553062407-98eeb64c6a62?w=400",
        source_url="https://www.alibaba.com/product-detail/backpack",
        supplier_id="SUP006",
    ),
)


class LocalCatalogSource(CatalogSource):

    def __init__(self, listings: Optional[Iterable[CandidateListing]] = None) -> None:
        self._listings: tuple[CandidateListing, ...] = (
            tuple(listings) if listings is not None else SAMPLE_CATALOG
        )

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "LocalCatalogSource":
        """
        Load a catalog snapshot from a JSON list.
        Entries that fail to parse are skipped with a warning.
        """
        with open(path, encoding="utf-8") as fh:
            raw_entries = json.load(fh)
        if not isinstance(raw_entries, list):
            raise ValueError(f"{path}: expected a JSON list of listings")

        listings: list[CandidateListing] = []
        for raw in raw_entries:
            try:
                listings.append(CandidateListing.from_dict(raw))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping bad catalog entry %r: %s", raw, exc)
        logger.info("Loaded %d listings from %s", len(listings), path)
        return cls(listings)

    @property
    def name(self) -> str:
        return "local"

    def __len__(self) -> int:
        return len(self._listings)

    async def fetch(
        self,
        query: SearchQuery,
        category_hint: Optional[str] = None,
    ) -> list[CandidateListing]:
        """Listings whose title contains any query token and that pass the buyer's constraints."""
        if not query.tokens:
            return []
        matches = [
            listing for listing in self._listings
            if _title_matches(listing, query) and _passes_constraints(listing, query)
        ]
        logger.info("[local] '%s' → %d listings", query.phrase, len(matches))
        return matches

    async def browse(self, query: SearchQuery) -> list[CandidateListing]:
        """Every listing passing the price / verified constraints, ignoring tokens."""
        return [l for l in self._listings if _passes_constraints(l, query)]


def _title_matches(listing: CandidateListing, query: SearchQuery) -> bool:
    if listing.title == UNKNOWN:
        return False
    title = listing.title.lower()
    return any(token in title for token in query.tokens)


def _passes_constraints(listing: CandidateListing, query: SearchQuery) -> bool:
    if query.verified_only and not listing.verified:
        return False
    if not listing.has_price:
        return not query.has_price_ceiling
    return listing.price_low <= query.max_price
