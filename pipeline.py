"""
Pipeline orchestrator — one search request in, one ranked result out.

  START → NORMALIZING → FETCHING → SCORING → DONE
                ↓
             FAILED   (InvalidFilter only — the buyer fixes the filter and retries)

Everything else degrades instead of failing:
  • photo with no labels / classifier error → empty token hint → catalog browse
  • live scrape timeout / parse error / transport error → local catalog,
    result tagged fallback_used=True
  • scoring is total, so an empty candidate list is just an empty result

Each run is independent: no state is shared between concurrent runs apart
from the sources passed in at construction (the browser pool guards itself).
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from catalog_sources.base import CandidateListing, CatalogSource, ScrapeError, ScrapeTimeout
from catalog_sources.local_catalog import LocalCatalogSource
from config import PipelineConfig
from image_query import ImageQuery, NoLabelsDetected, translate
from providers.base import ImageLabel, LabelClassifier
from query_normalizer import FilterInput, InvalidFilter, SearchQuery, normalize
from scoring import ScoredListing, rank_browse, score

logger = logging.getLogger(__name__)

Filters = Union[FilterInput, Mapping[str, Any], None]


class PipelineStage(str, Enum):
    START       = "start"
    NORMALIZING = "normalizing"
    FETCHING    = "fetching"
    SCORING     = "scoring"
    DONE        = "done"
    FAILED      = "failed"


@dataclass(frozen=True)
class TextInput:
    text: str
    filters: Filters = None


@dataclass(frozen=True)
class ImageInput:
    image_bytes: bytes = b""
    filters: Filters = None
    # Pre-computed labels skip the classifier (replays, tests)
    labels: Optional[tuple[ImageLabel, ...]] = None


SearchInput = Union[TextInput, ImageInput]


@dataclass
class SearchResult:
    listings: list[ScoredListing]
    tokens_used: tuple[str, ...]
    fallback_used: bool
    source: str                                 # "local" | "live"
    query_text: str = ""
    detected_labels: tuple[str, ...] = ()
    category_hint: Optional[str] = None
    stages: list[PipelineStage] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Response body for the web front-end."""
        return {
            "success":       True,
            "products":      [s.to_dict() for s in self.listings],
            "query":         self.query_text,
            "tokensUsed":    list(self.tokens_used),
            "fallbackUsed":  self.fallback_used,
            "source":        self.source,
            "detectedLabels": list(self.detected_labels),
            "categoryHint":  self.category_hint,
        }


class SourcingPipeline:

    def __init__(
        self,
        config: PipelineConfig,
        local_source: LocalCatalogSource,
        live_source: Optional[CatalogSource] = None,
        classifier: Optional[LabelClassifier] = None,
    ) -> None:
        self._config = config
        self._local = local_source
        self._live = live_source
        self._classifier = classifier

    @property
    def live_enabled(self) -> bool:
        return self._live is not None and self._config.use_live_scrape

    async def run(self, request: SearchInput) -> SearchResult:
        """
        Run one search.

        Raises:
            InvalidFilter: the buyer's filter input is malformed. Nothing else
                           escapes; external failures degrade.
        """
        run_id = uuid.uuid4().hex[:8]
        stages = [PipelineStage.START]
        started = time.monotonic()

        image_query: Optional[ImageQuery] = None
        if isinstance(request, ImageInput):
            image_query = await self._translate_image(request, run_id)
            text = image_query.text if image_query else ""
        else:
            text = request.text or ""

        stages.append(PipelineStage.NORMALIZING)
        try:
            query = normalize(text, request.filters)
        except InvalidFilter as exc:
            stages.append(PipelineStage.FAILED)
            logger.info("[%s] Rejected filter input: %s", run_id, exc)
            raise

        detected = image_query.labels if image_query else ()
        hint = image_query.category_hint if image_query else None

        if not query.tokens:
            if isinstance(request, ImageInput):
                # Nothing recognisable in the photo: show the catalog instead of an error
                stages.extend([PipelineStage.FETCHING, PipelineStage.SCORING])
                browse = rank_browse(query, await self._local.browse(query))
                stages.append(PipelineStage.DONE)
                logger.info("[%s] Image gave no search terms — browsing %d local listings", run_id, len(browse))
                return SearchResult(browse, (), False, self._local.name, text, detected, hint, stages)
            stages.append(PipelineStage.DONE)
            logger.info("[%s] Query %r has no usable terms — empty result", run_id, text)
            return SearchResult([], (), False, self._local.name, text, detected, hint, stages)

        stages.append(PipelineStage.FETCHING)
        candidates, source, fallback_used = await self._fetch(query, hint, run_id)

        stages.append(PipelineStage.SCORING)
        ranked = score(query, candidates)

        stages.append(PipelineStage.DONE)
        logger.info(
            "[%s] '%s' → %d ranked from %d candidates (source=%s, fallback=%s) in %.2fs",
            run_id, query.phrase, len(ranked), len(candidates), source, fallback_used,
            time.monotonic() - started,
        )
        return SearchResult(
            listings=ranked,
            tokens_used=tuple(sorted(query.tokens)),
            fallback_used=fallback_used,
            source=source,
            query_text=text,
            detected_labels=detected,
            category_hint=hint,
            stages=stages,
        )

    # ── Stages ────────────────────────────────────────────────────────────────

    async def _translate_image(self, request: ImageInput, run_id: str) -> Optional[ImageQuery]:
        labels: list[ImageLabel]
        if request.labels is not None:
            labels = list(request.labels)
        elif self._classifier is None:
            logger.info("[%s] No label classifier configured", run_id)
            labels = []
        else:
            try:
                labels = await self._classifier.classify(request.image_bytes)
            except Exception as exc:
                logger.error("[%s] [%s] Classification failed: %s", run_id, self._classifier.full_name, exc)
                labels = []

        try:
            return translate(labels, k=self._config.label_top_k)
        except NoLabelsDetected:
            logger.info("[%s] No labels detected in image", run_id)
            return None

    async def _fetch(
        self,
        query: SearchQuery,
        category_hint: Optional[str],
        run_id: str,
    ) -> tuple[list[CandidateListing], str, bool]:
        """Live source first when enabled; local catalog on any scrape failure."""
        fallback_used = False
        if self.live_enabled:
            t0 = time.monotonic()
            try:
                listings = await asyncio.wait_for(
                    self._live.fetch(query, category_hint),
                    timeout=self._config.fetch_timeout_s,
                )
                return listings, self._live.name, False
            except asyncio.TimeoutError:
                exc = ScrapeTimeout(
                    f"live fetch exceeded {self._config.fetch_timeout_s:g}s",
                    query=query.phrase,
                    elapsed_s=time.monotonic() - t0,
                )
                self._log_scrape_failure(exc, query, run_id)
            except ScrapeError as exc:
                self._log_scrape_failure(exc, query, run_id)
            fallback_used = True

        listings = await self._local.fetch(query, category_hint)
        return listings, self._local.name, fallback_used

    @staticmethod
    def _log_scrape_failure(exc: ScrapeError, query: SearchQuery, run_id: str) -> None:
        logger.warning(
            "[%s] Live fetch failed (%s) for '%s' after %.2fs: %s — using local catalog",
            run_id, exc.kind, exc.query or query.phrase, exc.elapsed_s, exc,
        )
