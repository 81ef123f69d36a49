"""
Live marketplace source — scrapes the marketplace's public search results page.

Flow for one fetch:
  1. Borrow a page from the BrowserPool (may queue when the pool is busy).
  2. Navigate to the search URL for the query phrase.
  3. Wait for the result container (.offer-item) to appear.
  4. Pull up to N entries out of the DOM with a fixed field → selector map.

All of it runs inside a single timeout budget (5s by default). Failures are
reported as ScrapeTimeout / ScrapeParseError / ScrapeTransportError; the
pipeline catches them and falls back to the local catalog.

Extraction is per-field tolerant: a selector that misses on one entry turns
that field into UNKNOWN (or None / 0 for numbers) instead of dropping the
entry. Only a page where *no* entry has a title is treated as a layout change.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import re
import time
from typing import Any, Optional
from urllib.parse import quote_plus

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from catalog_sources.base import (
    UNKNOWN,
    CandidateListing,
    CatalogSource,
    ScrapeError,
    ScrapeParseError,
    ScrapeTimeout,
    ScrapeTransportError,
)
from catalog_sources.browser_pool import BrowserPool
from query_normalizer import SearchQuery

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_URL = "https://www.alibaba.com/trade/search?SearchText={query}"

RESULT_CONTAINER_SELECTOR = ".offer-item"

# field → CSS selector inside one .offer-item
FIELD_SELECTORS: dict[str, str] = {
    "title":         ".title",
    "price":         ".price",
    "supplier":      ".company",
    "moq":           ".min-order",
    "rating":        ".rating",
    "reviews":       ".review-count",
    "region":        ".location",
    "response_time": ".response-time",
    "verified":      ".gold-supplier, .verified-supplier",
    "image":         "img",
    "link":          "a[href]",
}

# Runs in the page. Every field is either a trimmed string or null.
_EXTRACT_JS = """
(items, [selectors, limit]) => items.slice(0, limit).map(item => {
    const out = {};
    for (const [field, selector] of Object.entries(selectors)) {
        const el = item.querySelector(selector);
        if (!el) { out[field] = null; continue; }
        if (field === 'image') {
            out[field] = el.getAttribute('src') || el.getAttribute('data-src') || null;
        } else if (field === 'link') {
            out[field] = el.href || el.getAttribute('href') || null;
        } else if (field === 'verified') {
            out[field] = 'true';
        } else {
            const text = (el.textContent || '').trim();
            out[field] = text || null;
        }
    }
    return out;
})
"""

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_INT_RE = re.compile(r"\d+")
_MAX_COUNT_DIGITS = 9


class MarketplaceScraperSource(CatalogSource):

    def __init__(
        self,
        pool: BrowserPool,
        search_url: str = DEFAULT_SEARCH_URL,
        timeout_s: float = 5.0,
        max_entries: int = 5,
    ) -> None:
        self._pool = pool
        self._search_url = search_url
        self._timeout_s = timeout_s
        self._max_entries = max_entries

    @property
    def name(self) -> str:
        return "live"

    def search_url_for(self, phrase: str) -> str:
        return self._search_url.format(query=quote_plus(phrase))

    async def fetch(
        self,
        query: SearchQuery,
        category_hint: Optional[str] = None,
    ) -> list[CandidateListing]:
        """
        Scrape the first results page for the query phrase.

        Raises:
            ScrapeTimeout, ScrapeParseError, ScrapeTransportError
        """
        phrase = query.phrase
        t0 = time.monotonic()
        try:
            raw_entries = await asyncio.wait_for(self._scrape(phrase), timeout=self._timeout_s)
            listings = _parse_entries(raw_entries, phrase)
        except asyncio.TimeoutError:
            raise ScrapeTimeout(
                f"no results within {self._timeout_s:g}s",
                query=phrase,
                elapsed_s=time.monotonic() - t0,
            ) from None
        except ScrapeError as exc:
            exc.query = phrase
            exc.elapsed_s = time.monotonic() - t0
            raise

        logger.info(
            "[live] '%s' → %d listings in %.2fs", phrase, len(listings), time.monotonic() - t0,
        )
        return listings

    async def _scrape(self, phrase: str) -> Any:
        """Borrow a page, load the results and return the raw extracted records."""
        url = self.search_url_for(phrase)
        timeout_ms = self._timeout_s * 1000
        try:
            async with self._pool.page() as page:
                try:
                    await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                except PlaywrightTimeoutError as exc:
                    raise ScrapeTimeout(f"navigation timed out: {exc}") from exc
                except PlaywrightError as exc:
                    raise ScrapeTransportError(f"navigation failed: {exc}") from exc

                try:
                    await page.wait_for_selector(RESULT_CONTAINER_SELECTOR, timeout=timeout_ms)
                except PlaywrightTimeoutError as exc:
                    raise ScrapeTimeout(
                        f"result container {RESULT_CONTAINER_SELECTOR} never appeared"
                    ) from exc
                except PlaywrightError as exc:
                    raise ScrapeTransportError(f"page failed while waiting: {exc}") from exc

                try:
                    return await page.eval_on_selector_all(
                        RESULT_CONTAINER_SELECTOR,
                        _EXTRACT_JS,
                        [FIELD_SELECTORS, self._max_entries],
                    )
                except PlaywrightError as exc:
                    raise ScrapeTransportError(f"extraction failed: {exc}") from exc
        except PlaywrightError as exc:
            # browser launch / context creation / context close
            raise ScrapeTransportError(f"browser error: {exc}") from exc


# ── Parsing ───────────────────────────────────────────────────────────────────

def _parse_entries(raw_entries: Any, phrase: str) -> list[CandidateListing]:
    """
    Turn the raw records into CandidateListings.

    Raises ScrapeParseError when the payload isn't a list of records or when
    none of the records has a title — both mean the page layout changed.
    """
    if not isinstance(raw_entries, list):
        raise ScrapeParseError(
            f"expected a list of result records, got {type(raw_entries).__name__}"
        )

    records = [r for r in raw_entries if isinstance(r, dict)]
    if raw_entries and not records:
        raise ScrapeParseError("result records have an unexpected shape")
    if records and not any(_text(r.get("title")) for r in records):
        raise ScrapeParseError(
            f"none of {len(records)} result entries had a title (selector {FIELD_SELECTORS['title']})"
        )

    listings: list[CandidateListing] = []
    for index, record in enumerate(records):
        listings.append(_parse_entry(record, index, phrase))
    return listings


def _parse_entry(raw: dict, index: int, phrase: str) -> CandidateListing:
    title    = _text(raw.get("title")) or UNKNOWN
    supplier = _text(raw.get("supplier")) or UNKNOWN
    link     = _text(raw.get("link")) or UNKNOWN
    price_low, price_high = _parse_price_range(raw.get("price"))

    missing = [f for f in ("title", "price", "supplier") if not _text(raw.get(f))]
    if missing:
        logger.debug("[live] entry %d for '%s' missing %s", index, phrase, ", ".join(missing))

    return CandidateListing(
        id=_listing_id(link, title, supplier, index),
        title=title,
        supplier_name=supplier,
        price_low=price_low,
        price_high=price_high,
        minimum_order_quantity=_parse_int(raw.get("moq")) or 1,
        rating=_parse_rating(raw.get("rating")),
        review_count=_parse_int(raw.get("reviews")) or 0,
        verified=bool(_text(raw.get("verified"))),
        region=_text(raw.get("region")) or UNKNOWN,
        response_time_hint=_text(raw.get("response_time")) or UNKNOWN,
        image_url=_text(raw.get("image")) or UNKNOWN,
        source_url=link,
        supplier_id=UNKNOWN,
    )


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _listing_id(link: str, title: str, supplier: str, index: int) -> str:
    """Stable id: hash of the product URL, or of title + supplier when there's no URL."""
    basis = link if link != UNKNOWN else f"{title}|{supplier}|{index}"
    return "live-" + hashlib.sha1(basis.encode("utf-8")).hexdigest()[:12]


def _parse_price_range(price_str: Any) -> tuple[Optional[float], Optional[float]]:
    """'US$4.20 - 6.50' → (4.2, 6.5); '$3' → (3.0, 3.0); unparseable → (None, None)."""
    text = _text(price_str).replace(",", "")
    numbers = [float(n) for n in _NUMBER_RE.findall(text)]
    if not numbers or not all(math.isfinite(n) for n in numbers):
        return None, None
    low, high = numbers[0], numbers[1] if len(numbers) > 1 else numbers[0]
    return min(low, high), max(low, high)


def _parse_int(value: Any) -> Optional[int]:
    """First integer in strings like 'Min. order: 1,000 pieces' or '(127)'."""
    text = _text(value).replace(",", "")
    match = _INT_RE.search(text)
    if not match:
        return None
    digits = match.group()
    # a digit run this long is page noise, not a count
    if len(digits) > _MAX_COUNT_DIGITS:
        return None
    return int(digits)


def _parse_rating(value: Any) -> float:
    match = _NUMBER_RE.search(_text(value))
    if not match:
        return 0.0
    rating = float(match.group())
    return rating if 0 <= rating <= 5 else 0.0
