"""
Inference service client.

Thin wrapper around the Anthropic async SDK that sends a system + user prompt
(optionally with images) and returns the reply parsed as a JSON object.
"""

import asyncio
import json
import logging
import time
from typing import Optional

import anthropic

from flatlist.core.config import settings
from flatlist.core.exceptions import ConfigurationError, InferenceError, MalformedResponseError
from flatlist.services.images import ImagePayload

logger = logging.getLogger(__name__)


def parse_json_reply(content: str) -> dict:
    """Strip Markdown code fences and parse a JSON object reply."""
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0].strip()
    elif "```" in content:
        content = content.split("```")[1].split("```")[0].strip()

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Inference reply is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class InferenceClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        text_model: Optional[str] = None,
        vision_model: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
    ):
        api_key = api_key or settings.ANTHROPIC_API_KEY
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not configured")

        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.text_model = text_model or settings.INFERENCE_TEXT_MODEL
        self.vision_model = vision_model or settings.INFERENCE_VISION_MODEL
        self.timeout = timeout if timeout is not None else settings.INFERENCE_TIMEOUT_SECONDS
        self.temperature = temperature if temperature is not None else settings.INFERENCE_TEMPERATURE

    async def complete_json(
        self,
        system: str,
        prompt: str,
        images: Optional[list[ImagePayload]] = None,
        max_tokens: int = 2048,
    ) -> dict:
        """
        Run one completion and return the reply as a JSON object.

        Raises:
            InferenceError: on timeout, connection failure or API error.
            MalformedResponseError: if the reply is not a JSON object.
        """
        model = self.vision_model if images else self.text_model

        content: list[dict] = [
            {
                "type": "image",
                "source": {"type": "base64", "media_type": image.media_type, "data": image.data},
            }
            for image in images or []
        ]
        content.append({"type": "text", "text": prompt})

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=model,
                    max_tokens=max_tokens,
                    temperature=self.temperature,
                    system=system,
                    messages=[{"role": "user", "content": content}],
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise InferenceError(f"Inference call timed out after {self.timeout}s") from e
        except anthropic.APIStatusError as e:
            raise InferenceError(f"Inference service returned {e.status_code}: {e.message}") from e
        except anthropic.APIError as e:
            raise InferenceError(f"Inference service error: {e}") from e

        logger.info(
            f"Inference call on {model} with {len(images or [])} image(s) "
            f"took {time.monotonic() - started:.2f}s"
        )

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        if not text.strip():
            raise MalformedResponseError("Inference reply was empty")
        return parse_json_reply(text)
