"""Relay handlers forwarding chat and image requests to OpenAI."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from models.session_models import Message, new_id
from services.gateway.base import (
    CONNECTION_WARNING,
    RELAY_HISTORY_WINDOW,
    CancellationToken,
    ModelGateway,
    WarningFragment,
)
from services.gateway.openai_gateway import OpenAIGateway
from services.gateway.relay_gateway import DONE_SENTINEL, format_event
from services.image_generator import ImageGenerationError, ImageGenerator, ImageRateLimitError

LOGGER = logging.getLogger(__name__)

MISSING_API_KEY_ERROR = "API Key missing in environment variables"
IMAGE_RATE_LIMIT_MESSAGE = "Rate limit exceeded. Try again in 60s."
IMAGE_FAILURE_MESSAGE = "Image generation failed"

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


async def relay_events(
    gateway: ModelGateway,
    messages: List[Message],
    system_instruction: str,
    cancel: CancellationToken,
) -> AsyncIterator[str]:
    """Yield SSE frames for one completion, always ending with `[DONE]`."""
    try:
        async for fragment in gateway.stream(messages, system_instruction, cancel):
            key = "error" if isinstance(fragment, WarningFragment) else "text"
            yield format_event({key: str(fragment)})
    except Exception:  # pylint: disable=broad-exception-caught
        LOGGER.exception("Relay stream failed")
        yield format_event({"error": CONNECTION_WARNING})
    yield format_event(DONE_SENTINEL)


async def stream_chat(request: Request, messages: List[Dict[str, Any]], system_instruction: Optional[str]) -> Response:
    """Open an SSE response streaming the reply to the newest message.

    Args:
        request: FastAPI Request (used to access the shared OpenAI client and settings).
        messages: Conversation as `{role, content}` dicts, newest last.
        system_instruction: Instruction forwarded as the system message.

    Returns:
        A `StreamingResponse` of `text/event-stream`, or a JSON error response
        when the credential is missing or no message was sent.
    """
    client = getattr(request.app.state, "openai_client", None)
    if client is None:
        LOGGER.error("Chat relay called without OPENAI_API_KEY")
        return JSONResponse(status_code=500, content={"error": MISSING_API_KEY_ERROR})
    if not messages:
        return JSONResponse(status_code=400, content={"error": "Messages are required"})

    settings = request.app.state.settings
    gateway = OpenAIGateway(
        client,
        model=settings.chat_model,
        complex_model=settings.complex_model,
        history_window=RELAY_HISTORY_WINDOW,
    )
    conversation = [
        Message.from_dict({"id": new_id(), "role": item.get("role"), "content": item.get("content")})
        for item in messages
    ]
    return StreamingResponse(
        relay_events(gateway, conversation, system_instruction or "", CancellationToken()),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def relay_image(request: Request, prompt: Optional[str]) -> Response:
    """Generate an image and return the raw PNG bytes."""
    if not (prompt or "").strip():
        return JSONResponse(status_code=400, content={"error": "Prompt is required"})

    client = getattr(request.app.state, "openai_client", None)
    if client is None:
        LOGGER.error("Image relay called without OPENAI_API_KEY")
        return JSONResponse(status_code=500, content={"error": MISSING_API_KEY_ERROR})

    generator = ImageGenerator(client, model=request.app.state.settings.image_model)
    try:
        image_bytes = await generator.generate(prompt or "")
    except ImageRateLimitError:
        return JSONResponse(status_code=429, content={"error": IMAGE_RATE_LIMIT_MESSAGE})
    except ImageGenerationError as exc:
        LOGGER.error("Image relay failed: %s", exc)
        return JSONResponse(status_code=500, content={"error": IMAGE_FAILURE_MESSAGE})

    return Response(content=image_bytes, media_type="image/png")
