"""Speech-to-text for voice sessions.

Voice mode records a clip in the browser, uploads it, and the transcript is
sent through the normal chat path as a message of type ``voice``.
"""

import io
import logging
from pathlib import PurePath
from typing import Optional

from openai import APIError, AsyncOpenAI

LOGGER = logging.getLogger(__name__)
TRANSCRIBE_MODEL = "whisper-1"
DEFAULT_CLIP_NAME = "voice-clip.webm"


class TranscriptionError(RuntimeError):
    """Raised when a clip produced no usable transcript."""


def clip_name(filename: Optional[str]) -> str:
    """Return a bare file name with an extension; the API infers the codec from it."""
    name = PurePath(filename or "").name
    if not PurePath(name).suffix:
        return DEFAULT_CLIP_NAME
    return name


class DictationService:
    """Transcribe uploaded voice clips with the OpenAI audio API."""

    def __init__(self, client: Optional[AsyncOpenAI], *, model: str = TRANSCRIBE_MODEL) -> None:
        if client is None:
            raise ValueError("OpenAI client is required for dictation.")
        self.client = client
        self.model = model

    async def transcribe(self, audio_bytes: bytes, *, filename: Optional[str] = None) -> str:
        """Return the whitespace-trimmed transcript of `audio_bytes`.

        Raises:
            ValueError: If the clip is empty.
            TranscriptionError: If the upstream call fails or hears nothing.
        """
        if not audio_bytes:
            raise ValueError("Voice clip is empty.")

        clip = io.BytesIO(audio_bytes)
        clip.name = clip_name(filename)
        try:
            response = await self.client.audio.transcriptions.create(model=self.model, file=clip)
        except APIError as exc:
            LOGGER.error("Transcription of %s failed: %s", clip.name, exc)
            raise TranscriptionError("Voice transcription failed.") from exc

        transcript = (getattr(response, "text", None) or "").strip()
        if not transcript:
            raise TranscriptionError("No speech was recognised in the clip.")
        LOGGER.debug("Transcribed %d bytes into %d characters", len(audio_bytes), len(transcript))
        return transcript
