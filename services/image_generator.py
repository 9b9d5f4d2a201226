"""Text-to-image generation through the OpenAI images API."""

import base64
import logging
from typing import Optional

from openai import APIError, AsyncOpenAI, RateLimitError

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = "gpt-image-1"


class ImageGenerationError(RuntimeError):
    """Raised when the upstream service could not produce an image."""


class ImageRateLimitError(ImageGenerationError):
    """Raised when the upstream service rejected the request with HTTP 429."""


class ImageGenerator:
    """Turn a prompt into PNG bytes."""

    def __init__(self, client: Optional[AsyncOpenAI], *, model: str = DEFAULT_MODEL, size: str = "1024x1024") -> None:
        """Initialize the generator with a shared OpenAI client.

        Raises:
            ValueError: If no client is provided.
        """
        if client is None:
            raise ValueError("OpenAI client is required for image generation.")
        self.client = client
        self.model = model
        self.size = size

    async def generate(self, prompt: str) -> bytes:
        """Generate one image for `prompt` and return its decoded bytes.

        Raises:
            ValueError: If the prompt is blank.
            ImageRateLimitError: If the upstream service is rate limiting.
            ImageGenerationError: For any other upstream failure or an empty result.
        """
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValueError("Prompt is required")

        try:
            response = await self.client.images.generate(model=self.model, prompt=prompt, size=self.size, n=1)
        except RateLimitError as exc:
            LOGGER.warning("Image generation rate limited: %s", exc)
            raise ImageRateLimitError("Rate limit exceeded") from exc
        except APIError as exc:
            LOGGER.error("OpenAI image request failed: %s", exc)
            raise ImageGenerationError("Image generation failed") from exc

        data = getattr(response, "data", None) or []
        b64 = getattr(data[0], "b64_json", None) if data else None
        if not b64:
            raise ImageGenerationError("Image response did not include image data.")
        try:
            return base64.b64decode(b64)
        except ValueError as exc:
            raise ImageGenerationError("Image response carried invalid base64 data.") from exc
