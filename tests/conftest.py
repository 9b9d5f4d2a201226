"""
Shared fakes and helpers for the NovaAI workspace test suite.

Nothing here talks to the network: the OpenAI client is replaced with
`MagicMock`/`AsyncMock` objects shaped like the SDK responses, and the model
gateway is replaced by scripted or hand-driven fakes.
"""

import asyncio
import base64
import io
from types import SimpleNamespace
from typing import List, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from PIL import Image

from models.session_models import Message
from services.gateway.base import CancellationToken, ModelGateway
from services.session_store import SessionStore
from utils.settings import Settings


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class MemoryStorage:
    """In-memory stand-in for `LocalStorageDAL`."""

    def __init__(self) -> None:
        self.items = {}
        self.writes = 0
        self.fail_writes = False

    async def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.items[key] = value
        self.writes += 1


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return SessionStore(storage)


# ---------------------------------------------------------------------------
# Gateways
# ---------------------------------------------------------------------------


class ScriptedGateway(ModelGateway):
    """Yield a fixed list of fragments, honouring cancellation between them."""

    def __init__(self, fragments: Sequence[str] = ()) -> None:
        self.fragments = list(fragments)
        self.calls: List[dict] = []

    async def stream(self, messages, system_instruction, cancel):
        self.calls.append({"messages": list(messages), "system_instruction": system_instruction, "cancel": cancel})
        for fragment in self.fragments:
            if cancel.cancelled:
                return
            yield fragment
            await asyncio.sleep(0)


class ManualGateway(ModelGateway):
    """Fragments are pushed by the test; `finish()` ends the stream."""

    def __init__(self) -> None:
        self.calls: List[dict] = []
        self._queue: Optional[asyncio.Queue] = None
        self.started: Optional[asyncio.Event] = None

    def _ensure(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self.started = asyncio.Event()

    def push(self, fragment: str) -> None:
        self._ensure()
        self._queue.put_nowait(fragment)

    def finish(self) -> None:
        self._ensure()
        self._queue.put_nowait(None)

    async def wait_started(self, count: int = 1) -> None:
        await wait_for(lambda: len(self.calls) >= count)

    async def stream(self, messages, system_instruction, cancel: CancellationToken):
        self._ensure()
        self.calls.append({"messages": list(messages), "system_instruction": system_instruction, "cancel": cancel})
        self.started.set()
        while not cancel.cancelled:
            getter = asyncio.ensure_future(self._queue.get())
            waiter = asyncio.ensure_future(cancel.wait())
            done, pending = await asyncio.wait({getter, waiter}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            if getter not in done or cancel.cancelled:
                return
            item = getter.result()
            if item is None:
                return
            yield item


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Poll `predicate` on the running loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


# ---------------------------------------------------------------------------
# OpenAI SDK shaped fakes
# ---------------------------------------------------------------------------


def chunk(text: Optional[str]):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeStream:
    """Async-iterable stand-in for `openai.AsyncStream`."""

    def __init__(self, texts: Sequence[Optional[str]], error: Optional[Exception] = None) -> None:
        self.texts = list(texts)
        self.error = error
        self.close = AsyncMock()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for text in self.texts:
            yield chunk(text)
        if self.error is not None:
            raise self.error


def openai_request(path: str = "/v1/chat/completions") -> httpx.Request:
    return httpx.Request("POST", f"https://api.openai.com{path}")


def rate_limit_error():
    from openai import RateLimitError

    response = httpx.Response(429, request=openai_request())
    return RateLimitError("Rate limit reached", response=response, body=None)


def connection_error():
    from openai import APIConnectionError

    return APIConnectionError(request=openai_request())


def png_bytes(size=(320, 200), color=(12, 160, 200)) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", size, color).save(out, format="PNG")
    return out.getvalue()


def make_openai_client(
    stream: Optional[FakeStream] = None,
    image: Optional[bytes] = None,
    transcript: str = "hello from voice",
):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=stream or FakeStream(["Hi", " there"]))
    image_data = base64.b64encode(image or png_bytes()).decode("ascii")
    client.images.generate = AsyncMock(return_value=SimpleNamespace(data=[SimpleNamespace(b64_json=image_data)]))
    client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(text=transcript))
    client.close = AsyncMock()
    return client


def message(role: str, content: str) -> Message:
    return Message.create(role, content)


@pytest.fixture
def settings(tmp_path):
    return Settings(openai_api_key=None, database_dir=str(tmp_path / "db"))
