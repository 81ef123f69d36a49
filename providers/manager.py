"""
Provider Manager — picks the label classifier to use for image searches.

Modes (LABEL_PROVIDER):
  auto       — first provider whose API key is set: openai, then anthropic
  openai     — OpenAI only (key required)
  anthropic  — Anthropic only (key required)
  none       — no classifier; image searches degrade to a catalog browse
"""
from __future__ import annotations

import logging
from typing import Optional

import config
from providers.base import LabelClassifier

logger = logging.getLogger(__name__)


def build_classifier(
    mode: str,
    openai_key: Optional[str] = None,
    anthropic_key: Optional[str] = None,
    openai_model: str = "gpt-4o-mini",
    anthropic_model: str = "claude-3-haiku-20240307",
) -> Optional[LabelClassifier]:
    """
    Instantiate the classifier for `mode`.
    Returns None for mode=none, or for auto mode when no key is present.
    """
    mode = (mode or "auto").strip().lower()

    if mode == "none":
        logger.info("Label classification disabled (LABEL_PROVIDER=none)")
        return None

    if mode == "openai":
        if not openai_key:
            raise RuntimeError("LABEL_PROVIDER=openai but OPENAI_API_KEY is not set.")
        return _make_openai(openai_key, openai_model)

    if mode == "anthropic":
        if not anthropic_key:
            raise RuntimeError("LABEL_PROVIDER=anthropic but ANTHROPIC_API_KEY is not set.")
        return _make_anthropic(anthropic_key, anthropic_model)

    if mode != "auto":
        raise ValueError(f"Unknown LABEL_PROVIDER '{mode}'. Use auto, openai, anthropic or none.")

    if openai_key:
        logger.info("Auto-selected OpenAI label provider")
        return _make_openai(openai_key, openai_model)
    if anthropic_key:
        logger.info("Auto-selected Anthropic label provider")
        return _make_anthropic(anthropic_key, anthropic_model)

    logger.warning("No label provider key set — image search will browse the local catalog")
    return None


def classifier_from_config() -> Optional[LabelClassifier]:
    """build_classifier() with values from config.py / .env."""
    return build_classifier(
        config.LABEL_PROVIDER,
        openai_key=config.OPENAI_API_KEY,
        anthropic_key=config.ANTHROPIC_API_KEY,
        openai_model=config.OPENAI_LABEL_MODEL,
        anthropic_model=config.ANTHROPIC_LABEL_MODEL,
    )


def _make_openai(api_key: str, model: str) -> LabelClassifier:
    from providers.openai_provider import OpenAIProvider
    provider = OpenAIProvider(api_key, model)
    logger.info("Loaded label provider: %s", provider.full_name)
    return provider


def _make_anthropic(api_key: str, model: str) -> LabelClassifier:
    from providers.anthropic_provider import AnthropicProvider
    provider = AnthropicProvider(api_key, model)
    logger.info("Loaded label provider: %s", provider.full_name)
    return provider
