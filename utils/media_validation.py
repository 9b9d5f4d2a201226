"""Validation helpers for voice clips uploaded to voice sessions."""

from fastapi import HTTPException, UploadFile

MAX_AUDIO_BYTES = 25 * 1024 * 1024

AUDIO_EXTENSIONS = {
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/webm": ".webm",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".mp4",
    "audio/aac": ".m4a",
    "audio/ogg": ".ogg",
    "audio/opus": ".ogg",
    "audio/flac": ".flac",
}


def _base_content_type(content_type: str | None) -> str:
    # Browsers send parameters such as 'audio/webm;codecs=opus'.
    return (content_type or "").lower().split(";", 1)[0].strip()


def validate_audio_file(audio_file: UploadFile) -> None:
    """Reject clips whose content type or file extension the transcriber cannot read."""
    if not audio_file.filename:
        raise HTTPException(status_code=400, detail="Audio file must have a filename.")
    content_type = _base_content_type(audio_file.content_type)
    if content_type:
        if content_type not in AUDIO_EXTENSIONS:
            raise HTTPException(status_code=415, detail=f"Unsupported audio content type: {audio_file.content_type}")
        return
    if not audio_file.filename.lower().endswith(tuple(set(AUDIO_EXTENSIONS.values()))):
        raise HTTPException(status_code=415, detail="Unsupported or missing audio content type.")


async def read_audio_bytes(audio_file: UploadFile) -> bytes:
    """Read a validated clip, ensuring it is neither empty nor oversized."""
    validate_audio_file(audio_file)
    audio_bytes = await audio_file.read()
    if not audio_bytes:
        raise HTTPException(status_code=400, detail="Uploaded audio file is empty.")
    if len(audio_bytes) > MAX_AUDIO_BYTES:
        raise HTTPException(status_code=413, detail="Uploaded audio file is too large.")
    return audio_bytes
