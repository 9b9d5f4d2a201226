"""Environment-driven configuration for the relay and the workspace."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

GATEWAY_DIRECT = "direct"
GATEWAY_RELAY = "relay"


@dataclass(frozen=True)
class Settings:
    """Resolved configuration values.

    Attributes:
        openai_api_key: Upstream credential; None means requests fail with a visible message.
        database_dir: Directory holding `app.db` and the generated images.
        chat_model: Model used for ordinary chat turns.
        complex_model: Model used for code-mode and architecture prompts.
        image_model: Model used by the image relay and the gallery.
        transcribe_model: Model used to transcribe voice input.
        gateway: `direct` calls OpenAI from the workspace, `relay` goes through `/api/chat/stream`.
        relay_url: Base URL of the relay when `gateway` is `relay`.
        port: Port the process listens on.
        log_level: Root logging level name.
    """

    openai_api_key: Optional[str]
    database_dir: Optional[str]
    chat_model: str = "gpt-4o-mini"
    complex_model: str = "gpt-4o"
    image_model: str = "gpt-image-1"
    transcribe_model: str = "whisper-1"
    gateway: str = GATEWAY_DIRECT
    relay_url: str = "http://localhost:3001"
    port: int = 3001
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Load `.env` if present and read the process environment."""
        load_dotenv()
        gateway = (os.getenv("NOVA_GATEWAY") or GATEWAY_DIRECT).strip().lower()
        if gateway not in (GATEWAY_DIRECT, GATEWAY_RELAY):
            raise RuntimeError(f"NOVA_GATEWAY must be '{GATEWAY_DIRECT}' or '{GATEWAY_RELAY}', got {gateway!r}")
        try:
            port = int(os.getenv("PORT") or 3001)
        except ValueError as exc:
            raise RuntimeError(f"PORT must be an integer, got {os.getenv('PORT')!r}") from exc
        return cls(
            openai_api_key=(os.getenv("OPENAI_API_KEY") or "").strip() or None,
            database_dir=os.getenv("DATABASE_DIR"),
            chat_model=os.getenv("CHAT_MODEL", cls.chat_model),
            complex_model=os.getenv("COMPLEX_MODEL", cls.complex_model),
            image_model=os.getenv("IMAGE_MODEL", cls.image_model),
            transcribe_model=os.getenv("TRANSCRIBE_MODEL", cls.transcribe_model),
            gateway=gateway,
            relay_url=os.getenv("RELAY_URL", cls.relay_url).rstrip("/"),
            port=port,
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )
