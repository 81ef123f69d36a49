"""
Shared pytest fixtures.

Every test gets a clean temporary DATA_DIR via the `tmp_data_dir` fixture so
tests are fully isolated from each other and from the real sourcing.db.
Sources, classifiers and browser pages are faked — no test touches the network.
"""
from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from catalog_sources.base import CandidateListing  # noqa: E402
from catalog_sources.marketplace_scraper import RESULT_CONTAINER_SELECTOR  # noqa: E402


@pytest.fixture(autouse=True)
def tmp_data_dir(tmp_path, monkeypatch):
    """
    Redirect DATA_DIR to a fresh tmp directory for every test.
    This gives each test a clean SQLite file and prevents cross-test pollution.
    """
    data = tmp_path / "data"
    data.mkdir()
    monkeypatch.setenv("DATA_DIR", str(data))

    # Patch the module-level DB_PATH that was already computed at import time
    import database
    monkeypatch.setattr(database, "DB_PATH", str(data / "sourcing.db"))
    monkeypatch.setattr(database, "_DATA_DIR", data)

    # Also reset the internal lock so tests don't share state
    import asyncio
    monkeypatch.setattr(database, "_lock", asyncio.Lock())

    yield data


def make_listing(**kwargs) -> CandidateListing:
    """A verified earbuds listing; override any field."""
    defaults = dict(
        id="L1",
        title="TWS Wireless Earbuds",
        supplier_name="Shenzhen TechMaster Electronics Co., Ltd.",
        price_low=4.20,
        price_high=6.50,
        minimum_order_quantity=100,
        rating=4.9,
        review_count=127,
        verified=True,
        region="Guangdong, China",
        response_time_hint="< 2h",
        image_url="https://img.example/earbuds.jpg",
        source_url="https://www.alibaba.com/product-detail/earbuds",
        supplier_id="SUP001",
    )
    defaults.update(kwargs)
    return CandidateListing(**defaults)


@pytest.fixture
def listing_factory():
    return make_listing


# ── Browser fakes ─────────────────────────────────────────────────────────────

class FakePage:
    def __init__(
        self,
        records: Any = None,
        goto_exc: Optional[Exception] = None,
        wait_exc: Optional[Exception] = None,
        eval_exc: Optional[Exception] = None,
        wait_delay: float = 0.0,
    ) -> None:
        self.records = records if records is not None else []
        self.goto_exc = goto_exc
        self.wait_exc = wait_exc
        self.eval_exc = eval_exc
        self.wait_delay = wait_delay
        self.visited: list[str] = []
        self.eval_args: Any = None

    async def goto(self, url, **kwargs):
        self.visited.append(url)
        if self.goto_exc:
            raise self.goto_exc

    async def wait_for_selector(self, selector, timeout=None):
        assert selector == RESULT_CONTAINER_SELECTOR
        if self.wait_delay:
            await asyncio.sleep(self.wait_delay)
        if self.wait_exc:
            raise self.wait_exc

    async def eval_on_selector_all(self, selector, expression, arg=None):
        self.eval_args = arg
        if self.eval_exc:
            raise self.eval_exc
        return self.records


class FakePool:
    def __init__(self, page: FakePage) -> None:
        self._page = page
        self.acquired = 0
        self.released = 0

    @asynccontextmanager
    async def page(self):
        self.acquired += 1
        try:
            yield self._page
        finally:
            self.released += 1
