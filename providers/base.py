"""
Shared types and base class for all label-classification providers.

A provider looks at a product photo and returns ranked text labels with
confidences — the same contract as a cloud "label detection" API. The search
pipeline treats it as a black box: it may return zero labels, and any
exception it raises is absorbed by the pipeline.
"""
from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# ── Prompt (shared across all providers) ──────────────────────────────────────

SYSTEM_PROMPT = """You are a product photo labelling service for a wholesale sourcing site.
Look at the photo and return ONLY a valid JSON object — no markdown, no prose.

JSON schema:
{
  "labels": [
    {"description": "short generic label, e.g. Electronics or Earbuds", "confidence": 0.0-1.0}
  ]
}

Rules:
- Up to 10 labels, most confident first
- Prefer generic product and category nouns a supplier would put in a listing title
- No brand names, no colours on their own, no sentences
- Return {"labels": []} if the photo shows no recognisable product
"""

USER_PROMPT = "Label the product in this photo and return the JSON."

MAX_LABELS = 10


@dataclass(frozen=True)
class ImageLabel:
    """One label from the classifier. Consumed once by image_query.translate."""
    description: str
    confidence: float       # 0–1


def parse_json_response(raw: str, provider_name: str) -> dict:
    """
    Parse JSON from a model response, handling markdown fences gracefully.
    Raises ValueError on parse failure.
    """
    text = raw.strip()
    # Strip ```json ... ``` or ``` ... ``` fences if present
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("[%s] Non-JSON response: %s", provider_name, raw[:300])
        raise ValueError(f"[{provider_name}] JSON parse error: {exc}") from exc


def labels_from_payload(data: dict) -> list[ImageLabel]:
    """
    Convert the parsed {"labels": [...]} payload to ImageLabel objects.
    Entries without a description are skipped; confidences are clamped to [0, 1].
    """
    raw_labels = data.get("labels") if isinstance(data, dict) else None
    if not isinstance(raw_labels, list):
        return []

    labels: list[ImageLabel] = []
    for entry in raw_labels[:MAX_LABELS]:
        if isinstance(entry, str):
            description, confidence = entry, 0.5
        elif isinstance(entry, dict):
            description = entry.get("description") or ""
            try:
                confidence = float(entry.get("confidence", 0.5))
            except (TypeError, ValueError):
                confidence = 0.5
        else:
            continue
        description = str(description).strip()
        if not description:
            continue
        labels.append(ImageLabel(description, min(max(confidence, 0.0), 1.0)))
    return labels


def detect_media_type(image_bytes: bytes) -> str:
    """Sniff the image format from magic bytes (default jpeg)."""
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image_bytes[:4] == b"GIF8":
        return "image/gif"
    if image_bytes[:4] == b"RIFF":
        return "image/webp"
    return "image/jpeg"


# ── Abstract base ──────────────────────────────────────────────────────────────

class LabelClassifier(ABC):
    """Base class all label providers must implement."""

    name: str           # e.g. "openai"
    model_id: str       # e.g. "gpt-4o-mini"

    async def classify(self, image_bytes: bytes) -> list[ImageLabel]:
        """Return ranked labels for the image (possibly empty)."""
        t0 = time.monotonic()
        labels = await self._classify(image_bytes)
        logger.info(
            "[%s] %d labels in %dms: %s",
            self.full_name,
            len(labels),
            int((time.monotonic() - t0) * 1000),
            ", ".join(l.description for l in labels[:5]),
        )
        return labels

    @abstractmethod
    async def _classify(self, image_bytes: bytes) -> list[ImageLabel]:
        ...

    @property
    def full_name(self) -> str:
        return f"{self.name}/{self.model_id}"


class StaticLabelClassifier(LabelClassifier):
    """Returns a fixed label list. Used when replaying a known classification."""

    def __init__(self, labels: Optional[list[ImageLabel]] = None) -> None:
        self.name = "static"
        self.model_id = "fixed"
        self._labels = list(labels or [])

    async def _classify(self, image_bytes: bytes) -> list[ImageLabel]:
        return list(self._labels)
