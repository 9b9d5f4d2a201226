"""Model gateway that consumes the relay's Server-Sent Events stream."""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional, Sequence

import httpx

from models.session_models import Message
from services.gateway.base import (
    CONNECTION_WARNING,
    HISTORY_WINDOW,
    RATE_LIMIT_WARNING,
    CancellationToken,
    ModelGateway,
    WarningFragment,
)

LOGGER = logging.getLogger(__name__)
STREAM_PATH = "/api/chat/stream"
DONE_SENTINEL = "[DONE]"


def format_event(payload: dict | str) -> str:
    """Frame one Server-Sent Event; strings are sent verbatim (used for `[DONE]`)."""
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n"


def parse_event(line: str) -> Optional[dict]:
    """Decode one `data:` line; returns None for blank lines, comments and `[DONE]`.

    Raises:
        ValueError: If the payload is not a JSON object.
    """
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == DONE_SENTINEL:
        return None
    payload = json.loads(data)
    if not isinstance(payload, dict):
        raise ValueError(f"Unexpected event payload: {data!r}")
    return payload


class RelayGateway(ModelGateway):
    """POST the conversation to the relay and yield its `text` events."""

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        history_window: int = HISTORY_WINDOW,
        timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.history_window = history_window
        self.timeout = timeout

    def _payload(self, messages: Sequence[Message], system_instruction: str) -> dict:
        # The relay windows again on its side; trimming here bounds the upload.
        bounded = list(messages)[-(self.history_window + 1):]
        return {
            "messages": [{"role": msg.role, "content": msg.content} for msg in bounded],
            "systemInstruction": system_instruction,
        }

    async def stream(
        self,
        messages: Sequence[Message],
        system_instruction: str,
        cancel: CancellationToken,
    ) -> AsyncIterator[str]:
        if not messages:
            raise ValueError("At least one message is required to request a completion.")
        if cancel.cancelled:
            return

        owns_client = self.client is None
        client = self.client or httpx.AsyncClient(timeout=self.timeout)
        warning: Optional[str] = None
        try:
            async with client.stream(
                "POST", f"{self.base_url}{STREAM_PATH}", json=self._payload(messages, system_instruction)
            ) as response:
                if response.status_code == 429:
                    LOGGER.warning("Relay reported a rate limit")
                    warning = RATE_LIMIT_WARNING
                elif response.status_code >= 400:
                    body = await response.aread()
                    LOGGER.error("Relay stream failed with %s: %s", response.status_code, body[:200])
                    warning = CONNECTION_WARNING
                else:
                    async for line in response.aiter_lines():
                        if cancel.cancelled:
                            LOGGER.info("Relay stream cancelled by caller")
                            break
                        if line.strip() == f"data: {DONE_SENTINEL}":
                            break
                        event = parse_event(line)
                        if event is None:
                            continue
                        if event.get("error"):
                            warning = str(event["error"])
                            break
                        text = event.get("text")
                        if text:
                            yield text
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.error("Relay stream request failed: %s", exc)
            warning = CONNECTION_WARNING
        finally:
            if owns_client:
                await client.aclose()

        if warning is not None and not cancel.cancelled:
            yield WarningFragment(warning)
