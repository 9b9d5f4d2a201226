from typing import Any, Dict, List

from fastapi import HTTPException, Request
from fastapi.responses import Response

from dal.image_file_dal import ImageFileDAL
from models.image_record import ImageRecord
from services.image_generator import ImageGenerationError, ImageGenerator, ImageRateLimitError
from services.image_store import read_image, read_thumbnail, save_generated_image
from services.session_store import SessionStore

GALLERY_RATE_LIMIT_MESSAGE = "Rate limit exceeded. Try again in 60s."
GALLERY_FAILURE_MESSAGE = "Failed to generate image. Please check connectivity."


def _record_payload(record: ImageRecord) -> Dict[str, Any]:
    return {
        **record.to_dict(),
        "image_url": f"/api/gallery/{record.id}/image",
        "thumbnail_url": f"/api/gallery/{record.id}/thumbnail",
    }


async def _get_record(store: SessionStore, image_id: str) -> ImageRecord:
    record = await store.get_image(image_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return record


async def list_gallery(request: Request) -> Dict[str, List[Dict[str, Any]]]:
    """Return every generated image record, newest first."""
    store: SessionStore = request.app.state.session_store
    return {"images": [_record_payload(record) for record in await store.get_images()]}


async def create_gallery_image(request: Request, prompt: str) -> Dict[str, Any]:
    """Generate an image for `prompt`, store it, and return the new record.

    Args:
        request: FastAPI Request (used to access app.state for shared clients).
        prompt: Text prompt describing the image.

    Returns:
        The stored record plus URLs for the image and its thumbnail.

    Raises:
        HTTPException: 400 for a blank prompt, 429 when rate limited, 502 for
            other upstream failures, 500 when the OpenAI client is missing.
    """
    if not prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")

    openai_client = request.app.state.openai_client
    if openai_client is None:
        raise HTTPException(status_code=500, detail="OpenAI client not initialized.")

    generator = ImageGenerator(openai_client, model=request.app.state.settings.image_model)
    try:
        image_bytes = await generator.generate(prompt)
    except ImageRateLimitError as exc:
        raise HTTPException(status_code=429, detail=GALLERY_RATE_LIMIT_MESSAGE) from exc
    except ImageGenerationError as exc:
        raise HTTPException(status_code=502, detail=GALLERY_FAILURE_MESSAGE) from exc

    record = await save_generated_image(
        request.app.state.session_store,
        request.app.state.image_files,
        prompt.strip(),
        image_bytes,
    )
    return _record_payload(record)


async def get_gallery_image(request: Request, image_id: str) -> Response:
    """Controller to fetch the stored PNG bytes for an image record.

    Raises:
        HTTPException(404) if the record or its file is not found.
    """
    files: ImageFileDAL = request.app.state.image_files
    record = await _get_record(request.app.state.session_store, image_id)
    data = await read_image(files, record)
    if data is None:
        raise HTTPException(status_code=404, detail="Image file not available")
    return Response(content=data, media_type="image/png")


async def get_gallery_thumbnail(request: Request, image_id: str) -> Response:
    files: ImageFileDAL = request.app.state.image_files
    record = await _get_record(request.app.state.session_store, image_id)
    data = await read_thumbnail(files, record)
    if data is None:
        raise HTTPException(status_code=404, detail="Thumbnail not available for this image")
    return Response(content=data, media_type="image/png")
