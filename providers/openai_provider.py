"""
OpenAI label provider — gpt-4o-mini by default, any vision-capable chat model works.
"""
from __future__ import annotations

import base64
import logging

from openai import AsyncOpenAI

from providers.base import (
    SYSTEM_PROMPT, USER_PROMPT,
    ImageLabel, LabelClassifier, detect_media_type, labels_from_payload, parse_json_response,
)

logger = logging.getLogger(__name__)


class OpenAIProvider(LabelClassifier):

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        self.name = "openai"
        self.model_id = model
        self._client = AsyncOpenAI(api_key=api_key)

    async def _classify(self, image_bytes: bytes) -> list[ImageLabel]:
        b64 = base64.b64encode(image_bytes).decode()
        media_type = detect_media_type(image_bytes)

        response = await self._client.chat.completions.create(
            model=self.model_id,
            max_tokens=300,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{media_type};base64,{b64}",
                                "detail": "low",
                            },
                        },
                        {"type": "text", "text": USER_PROMPT},
                    ],
                },
            ],
        )

        raw = response.choices[0].message.content or "{}"
        data = parse_json_response(raw, self.full_name)
        return labels_from_payload(data)
