"""Model gateway calling OpenAI chat completions directly."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from openai import APIError, AsyncOpenAI, RateLimitError

from models.session_models import USER_ROLE, Message
from services.gateway.base import (
    CONNECTION_WARNING,
    HISTORY_WINDOW,
    RATE_LIMIT_WARNING,
    CancellationToken,
    ConfigurationError,
    ModelGateway,
    WarningFragment,
    window_messages,
)
from services.prompts import is_complex_instruction

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = "gpt-4o-mini"


def build_chat_input(history: Sequence[Message], prompt: Message, system_instruction: str) -> List[Dict[str, str]]:
    """Build the chat completions `messages` payload."""
    payload = [{"role": "system", "content": system_instruction}]
    payload.extend(
        {"role": "user" if msg.role == USER_ROLE else "assistant", "content": msg.content} for msg in history
    )
    payload.append({"role": "user", "content": prompt.content})
    return payload


def _delta_text(chunk: Any) -> str:
    choices = getattr(chunk, "choices", None)
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    return getattr(delta, "content", None) or ""


class OpenAIGateway(ModelGateway):
    """Stream completions from `AsyncOpenAI.chat.completions`."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI],
        *,
        model: str = DEFAULT_MODEL,
        complex_model: Optional[str] = None,
        temperature: float = 0.7,
        history_window: int = HISTORY_WINDOW,
    ) -> None:
        self.client = client
        self.model = model
        self.complex_model = complex_model
        self.temperature = temperature
        self.history_window = history_window

    def _resolve_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise ConfigurationError("OpenAI client is not configured; set OPENAI_API_KEY.")
        return self.client

    def model_for(self, system_instruction: str) -> str:
        """Return the complex model for code/architecture instructions when one is configured."""
        if self.complex_model and is_complex_instruction(system_instruction):
            return self.complex_model
        return self.model

    async def stream(
        self,
        messages: Sequence[Message],
        system_instruction: str,
        cancel: CancellationToken,
    ) -> AsyncIterator[str]:
        client = self._resolve_client()
        history, prompt = window_messages(messages, self.history_window)
        if cancel.cancelled:
            return

        stream = None
        warning: Optional[str] = None
        try:
            stream = await client.chat.completions.create(
                model=self.model_for(system_instruction),
                messages=build_chat_input(history, prompt, system_instruction),
                temperature=self.temperature,
                stream=True,
            )
            async for chunk in stream:
                if cancel.cancelled:
                    LOGGER.info("Completion stream cancelled by caller")
                    break
                text = _delta_text(chunk)
                if text:
                    yield text
        except RateLimitError as exc:
            LOGGER.warning("OpenAI rate limit reached: %s", exc)
            warning = RATE_LIMIT_WARNING
        except APIError as exc:
            LOGGER.error("OpenAI streaming request failed: %s", exc)
            warning = CONNECTION_WARNING
        finally:
            if stream is not None:
                await stream.close()

        if warning is not None and not cancel.cancelled:
            yield WarningFragment(warning)
