"""
Tests for pipeline.py — the SourcingPipeline orchestrator.

Live sources are replaced by small fakes; the local catalog is the real
LocalCatalogSource.

Covers:
  - text search end-to-end over the local catalog (filters, scores, stages)
  - live source success → source="live", no fallback
  - live failures (timeout / parse / transport / hang) → local catalog, fallback_used
  - use_live_scrape=False skips the live source entirely
  - InvalidFilter propagates, everything else degrades
  - image search: labels → tokens, no labels → catalog browse, classifier errors
  - concurrent runs don't share state
  - scraped pages with junk fields or untitled entries still rank cleanly
  - cancelling a run releases the borrowed browser page
"""
from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from catalog_sources.base import (
    CandidateListing,
    CatalogSource,
    ScrapeParseError,
    ScrapeTimeout,
    ScrapeTransportError,
)
from catalog_sources.local_catalog import SAMPLE_CATALOG, LocalCatalogSource
from catalog_sources.marketplace_scraper import MarketplaceScraperSource
from config import PipelineConfig
from conftest import FakePage, FakePool, make_listing
from pipeline import ImageInput, PipelineStage, SourcingPipeline, TextInput
from providers.base import ImageLabel, LabelClassifier, StaticLabelClassifier
from query_normalizer import InvalidFilter, SearchQuery, normalize
from scoring import score


class FakeLiveSource(CatalogSource):
    def __init__(self, listings=None, exc: Optional[Exception] = None, delay: float = 0.0):
        self._listings = list(listings or [])
        self._exc = exc
        self._delay = delay
        self.calls: list[SearchQuery] = []

    @property
    def name(self) -> str:
        return "live"

    async def fetch(self, query, category_hint=None) -> list[CandidateListing]:
        self.calls.append(query)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._exc:
            raise self._exc
        return list(self._listings)


class ExplodingClassifier(LabelClassifier):
    name = "broken"
    model_id = "v0"

    async def _classify(self, image_bytes):
        raise RuntimeError("vision API 503")


def sample_only() -> LocalCatalogSource:
    return LocalCatalogSource([SAMPLE_CATALOG[0]])


def pipeline(local=None, live=None, classifier=None, **config) -> SourcingPipeline:
    cfg = PipelineConfig(**{"use_live_scrape": live is not None, **config})
    return SourcingPipeline(cfg, local or LocalCatalogSource(), live, classifier)


# ── Text search ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestTextSearch:
    async def test_sample_listing_found_with_filters(self):
        p = pipeline(local=sample_only())

        result = await p.run(TextInput("wireless earbuds", {"goldOnly": True, "maxPrice": 10}))

        assert len(result.listings) == 1
        top = result.listings[0]
        assert top.listing.supplier_name == "Shenzhen TechMaster Electronics Co., Ltd."
        assert top.match_score >= 90
        assert result.fallback_used is False
        assert result.source == "local"
        assert result.tokens_used == ("earbuds", "wireless")
        assert result.stages == [
            PipelineStage.START,
            PipelineStage.NORMALIZING,
            PipelineStage.FETCHING,
            PipelineStage.SCORING,
            PipelineStage.DONE,
        ]

    async def test_results_ranked_descending(self):
        result = await pipeline().run(TextInput("wireless earbuds charger"))
        scores = [s.match_score for s in result.listings]
        assert scores == sorted(scores, reverse=True)
        assert len(result.listings) >= 3

    async def test_no_usable_terms_is_empty(self):
        result = await pipeline().run(TextInput("buy the best wholesale"))
        assert result.listings == []
        assert result.tokens_used == ()
        assert result.fallback_used is False
        assert PipelineStage.FETCHING not in result.stages

    async def test_nothing_matches_is_empty_not_error(self):
        result = await pipeline().run(TextInput("submarine"))
        assert result.listings == []
        assert result.stages[-1] == PipelineStage.DONE

    async def test_invalid_filter_propagates(self):
        with pytest.raises(InvalidFilter):
            await pipeline().run(TextInput("earbuds", {"maxPrice": "lots"}))

    async def test_to_dict(self):
        result = await pipeline(local=sample_only()).run(TextInput("earbuds"))
        body = result.to_dict()
        assert body["success"] is True
        assert body["products"][0]["matchScore"] == result.listings[0].match_score
        assert body["tokensUsed"] == ["earbuds"]
        assert body["fallbackUsed"] is False
        assert body["source"] == "local"


# ── Live source and fallback ──────────────────────────────────────────────────

@pytest.mark.asyncio
class TestLiveFallback:
    async def test_live_success(self):
        live_listing = make_listing(id="live-1", title="Wireless Earbuds Pro")
        live = FakeLiveSource([live_listing])

        result = await pipeline(live=live).run(TextInput("wireless earbuds"))

        assert result.source == "live"
        assert result.fallback_used is False
        assert [s.listing.id for s in result.listings] == ["live-1"]
        assert live.calls[0].tokens == {"wireless", "earbuds"}

    @pytest.mark.parametrize("exc", [
        ScrapeTimeout("no results within 5s"),
        ScrapeParseError("none of 5 result entries had a title"),
        ScrapeTransportError("net::ERR_CONNECTION_RESET"),
    ])
    async def test_scrape_failure_falls_back_to_local(self, exc):
        live = FakeLiveSource(exc=exc)

        result = await pipeline(local=sample_only(), live=live).run(TextInput("wireless earbuds"))

        assert result.fallback_used is True
        assert result.source == "local"
        assert [s.listing.id for s in result.listings] == ["1"]

    async def test_hanging_live_source_times_out(self):
        live = FakeLiveSource([make_listing()], delay=5.0)
        p = pipeline(local=sample_only(), live=live, fetch_timeout_s=0.05)

        result = await asyncio.wait_for(p.run(TextInput("earbuds")), timeout=2)

        assert result.fallback_used is True
        assert result.source == "local"

    async def test_live_disabled_by_config(self):
        live = FakeLiveSource([make_listing(id="live-1")])
        p = pipeline(local=sample_only(), live=live, use_live_scrape=False)

        result = await p.run(TextInput("earbuds"))

        assert live.calls == []
        assert result.source == "local"
        assert result.fallback_used is False
        assert not p.live_enabled

    async def test_unexpected_error_is_not_swallowed(self):
        live = FakeLiveSource(exc=KeyError("bug"))
        with pytest.raises(KeyError):
            await pipeline(live=live).run(TextInput("earbuds"))

    async def test_fallback_logged(self, caplog):
        live = FakeLiveSource(exc=ScrapeTimeout("slow", query="earbuds", elapsed_s=5.0))
        with caplog.at_level("WARNING", logger="pipeline"):
            await pipeline(live=live).run(TextInput("earbuds"))
        assert any("timeout" in r.getMessage() and "earbuds" in r.getMessage() for r in caplog.records)


# ── Image search ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestImageSearch:
    async def test_labels_expand_to_category_terms(self):
        classifier = StaticLabelClassifier([ImageLabel("Electronics", 0.97)])

        result = await pipeline(classifier=classifier).run(ImageInput(b"\xff\xd8jpeg"))

        ids = {s.listing.id for s in result.listings}
        assert ids == {"1", "2", "4", "5"}
        assert result.category_hint == "electronics"
        assert result.detected_labels == ("Electronics",)
        assert {"earbuds", "charger"} <= set(result.tokens_used)

    async def test_precomputed_labels_skip_classifier(self):
        request = ImageInput(labels=(ImageLabel("Hoodie", 0.9),))
        result = await pipeline(classifier=ExplodingClassifier()).run(request)
        assert [s.listing.id for s in result.listings] == ["6"]

    async def test_no_labels_browses_catalog(self):
        result = await pipeline(classifier=StaticLabelClassifier([])).run(ImageInput(b"img"))
        assert len(result.listings) == len(SAMPLE_CATALOG)
        assert result.fallback_used is False
        assert result.tokens_used == ()

    async def test_browse_respects_filters(self):
        request = ImageInput(b"img", {"goldOnly": True})
        result = await pipeline(classifier=StaticLabelClassifier([])).run(request)
        assert result.listings
        assert all(s.listing.verified for s in result.listings)

    async def test_classifier_error_degrades_to_browse(self):
        result = await pipeline(classifier=ExplodingClassifier()).run(ImageInput(b"img"))
        assert len(result.listings) == len(SAMPLE_CATALOG)
        assert result.stages[-1] == PipelineStage.DONE

    async def test_no_classifier_configured(self):
        result = await pipeline().run(ImageInput(b"img"))
        assert result.detected_labels == ()
        assert len(result.listings) == len(SAMPLE_CATALOG)

    async def test_image_search_uses_live_source(self):
        live = FakeLiveSource([make_listing(id="live-7", title="Wireless Charger Stand")])
        classifier = StaticLabelClassifier([ImageLabel("Phone", 0.8)])

        result = await pipeline(live=live, classifier=classifier).run(ImageInput(b"img"))

        assert result.source == "live"
        assert [s.listing.id for s in result.listings] == ["live-7"]


# ── Concurrency ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestConcurrentRuns:
    async def test_parallel_runs_are_independent(self):
        p = pipeline()
        earbuds, hoodie = await asyncio.gather(
            p.run(TextInput("earbuds")),
            p.run(TextInput("hoodie")),
        )
        assert all("earbuds" in s.listing.title.lower() for s in earbuds.listings)
        assert [s.listing.id for s in hoodie.listings] == ["6"]


# ── Scraped data through the whole pipeline ───────────────────────────────────

def scraped_pipeline(records, fetch_timeout_s: float = 5.0):
    pool = FakePool(FakePage(records=records))
    live = MarketplaceScraperSource(pool, timeout_s=fetch_timeout_s)
    return pipeline(local=sample_only(), live=live, fetch_timeout_s=fetch_timeout_s), pool


@pytest.mark.asyncio
class TestScrapedData:
    async def test_oversized_moq_does_not_break_search(self):
        p, _ = scraped_pipeline([
            {"title": "TWS Earbuds", "price": "$4", "supplier": "X", "moq": "9" * 400},
        ])

        result = await p.run(TextInput("earbuds"))

        assert result.source == "live"
        [scored] = result.listings
        assert scored.listing.minimum_order_quantity == 1
        assert scored.to_dict()["moq"] == 1

    async def test_untitled_entry_gets_no_overlap_credit(self):
        # "no" is a substring of the placeholder title "unknown"
        p, _ = scraped_pipeline([{"title": "Kettle Steel"}, {"title": None}])

        result = await p.run(TextInput("no frills kettle"))

        assert [s.listing.title for s in result.listings] == ["Kettle Steel"]

    async def test_untitled_listing_never_scored(self):
        untitled = make_listing(id="u", title="unknown")
        assert score(normalize("know your own kettle"), [untitled]) == []


# ── Cancellation ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestCancellation:
    async def test_cancelled_run_releases_browser_page(self):
        pool = FakePool(FakePage(records=[], wait_delay=30.0))
        live = MarketplaceScraperSource(pool, timeout_s=30.0)
        p = pipeline(local=sample_only(), live=live, fetch_timeout_s=30.0)

        task = asyncio.create_task(p.run(TextInput("earbuds")))
        for _ in range(100):
            if pool.acquired:
                break
            await asyncio.sleep(0.01)
        assert pool.acquired == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert pool.released == 1
