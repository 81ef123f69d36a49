"""
Anthropic label provider — claude-3-haiku by default (cheap and fast enough
for short label lists).
"""
from __future__ import annotations

import base64
import logging

import anthropic

from providers.base import (
    SYSTEM_PROMPT, USER_PROMPT,
    ImageLabel, LabelClassifier, detect_media_type, labels_from_payload, parse_json_response,
)

logger = logging.getLogger(__name__)


class AnthropicProvider(LabelClassifier):

    def __init__(self, api_key: str, model: str = "claude-3-haiku-20240307"):
        self.name = "anthropic"
        self.model_id = model
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def _classify(self, image_bytes: bytes) -> list[ImageLabel]:
        b64 = base64.b64encode(image_bytes).decode()

        message = await self._client.messages.create(
            model=self.model_id,
            max_tokens=300,
            system=SYSTEM_PROMPT,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": detect_media_type(image_bytes),
                                "data": b64,
                            },
                        },
                        {"type": "text", "text": USER_PROMPT},
                    ],
                }
            ],
        )

        raw = message.content[0].text if message.content else "{}"
        data = parse_json_response(raw, self.full_name)
        return labels_from_payload(data)
