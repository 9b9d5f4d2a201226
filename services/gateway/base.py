"""Model gateway contract shared by the direct and relay implementations."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, List, Sequence, Tuple

from models.session_models import Message

# Prior turns forwarded with each request; the newest user message is sent on its own.
HISTORY_WINDOW = 9
RELAY_HISTORY_WINDOW = 10

RATE_LIMIT_WARNING = "⚠️ Rate limit reached. Please wait 60 seconds."
CONNECTION_WARNING = "⚠️ Connection error."
MISSING_KEY_WARNING = "⚠️ Missing OPENAI_API_KEY. Configure the API key and restart."


class ConfigurationError(RuntimeError):
    """Raised when a required credential or setting is missing."""


class WarningFragment(str):
    """A synthetic fragment carrying a user-facing failure message."""


class CancellationToken:
    """Cooperative cancellation flag checked between fragments."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


def window_messages(messages: Sequence[Message], window: int) -> Tuple[List[Message], Message]:
    """Split `messages` into the bounded prior history and the prompt message.

    Raises:
        ValueError: If `messages` is empty.
    """
    if not messages:
        raise ValueError("At least one message is required to request a completion.")
    prompt = messages[-1]
    history = list(messages[:-1])
    return (history[-window:] if window else []), prompt


class ModelGateway(ABC):
    """Stream text fragments for a conversation from a remote model."""

    @abstractmethod
    def stream(
        self,
        messages: Sequence[Message],
        system_instruction: str,
        cancel: CancellationToken,
    ) -> AsyncIterator[str]:
        """Yield non-empty fragments in arrival order.

        Implementations stop yielding once `cancel` is set (checked between
        fragments) and translate network or quota errors into a single
        `WarningFragment` instead of raising. A missing credential raises
        `ConfigurationError`.
        """

    async def stream_completion(
        self,
        history: Sequence[Message],
        system_instruction: str,
        on_fragment: Callable[[str], None],
        cancel: CancellationToken,
    ) -> None:
        """Callback form of `stream`; returns once the stream ends or is cancelled."""
        async for fragment in self.stream(history, system_instruction, cancel):
            on_fragment(fragment)
