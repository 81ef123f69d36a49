"""
Central configuration — reads from .env file.

Every setting is a typed module-level constant with an environment default.
The search pipeline itself never reads this module: main.py / api_server.py
build a PipelineConfig from it and hand that to SourcingPipeline, so tests can
construct the pipeline with any values they like.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


# ── HTTP API ──────────────────────────────────────────────────────────────────
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "3001"))

# Database and log file live here (mount ./data:/app/data in Docker)
DATA_DIR: str = os.getenv("DATA_DIR", "data")

# ── Live marketplace scrape ───────────────────────────────────────────────────
# When false, every search goes straight to the local catalog.
USE_LIVE_SCRAPE: bool = _env_bool("USE_LIVE_SCRAPE", "true")

# {query} is replaced with the URL-encoded search phrase
MARKETPLACE_SEARCH_URL: str = os.getenv(
    "MARKETPLACE_SEARCH_URL",
    "https://www.alibaba.com/trade/search?SearchText={query}",
)

# Hard budget for one live fetch, including the wait for a free browser slot
FETCH_TIMEOUT_SECONDS: float = float(os.getenv("FETCH_TIMEOUT_SECONDS", "5"))
SCRAPE_MAX_ENTRIES: int = int(os.getenv("SCRAPE_MAX_ENTRIES", "5"))
BROWSER_POOL_SIZE: int = int(os.getenv("BROWSER_POOL_SIZE", "2"))
BROWSER_HEADLESS: bool = _env_bool("BROWSER_HEADLESS", "true")

# ── Local catalog ─────────────────────────────────────────────────────────────
# JSON file with a list of listings. Leave blank to use the built-in sample catalog.
LOCAL_CATALOG_PATH: str | None = os.getenv("LOCAL_CATALOG_PATH", "").strip() or None

# ── Image label classification ────────────────────────────────────────────────
#   auto      → first provider whose API key is present (openai, then anthropic)
#   openai    → OpenAI vision model
#   anthropic → Anthropic vision model
#   none      → image search disabled (every photo degrades to a catalog browse)
LABEL_PROVIDER: str = os.getenv("LABEL_PROVIDER", "auto")
OPENAI_API_KEY: str | None    = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
OPENAI_LABEL_MODEL: str    = os.getenv("OPENAI_LABEL_MODEL", "gpt-4o-mini")
ANTHROPIC_LABEL_MODEL: str = os.getenv("ANTHROPIC_LABEL_MODEL", "claude-3-haiku-20240307")

# How many of the classifier's labels feed the search
LABEL_TOP_K: int = int(os.getenv("LABEL_TOP_K", "3"))

# Largest accepted upload for /api/search/image
MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))


@dataclass(frozen=True)
class PipelineConfig:
    """Settings the search pipeline needs, passed in explicitly at construction."""
    fetch_timeout_s: float = 5.0
    use_live_scrape: bool = True
    label_top_k: int = 3

    @classmethod
    def from_module(cls) -> "PipelineConfig":
        return cls(
            fetch_timeout_s=FETCH_TIMEOUT_SECONDS,
            use_live_scrape=USE_LIVE_SCRAPE,
            label_top_k=LABEL_TOP_K,
        )
