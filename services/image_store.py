"""Helpers for saving generated images, their thumbnails, and gallery records.

This service coordinates writing the PNG to the images directory,
generating a thumbnail with `services.thumbnail_generator.ThumbnailGenerator`
and recording the image in the session store's image collection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from dal.image_file_dal import ImageFileDAL
from models.image_record import ImageRecord
from models.session_models import new_id
from services.session_store import SessionStore
from services.thumbnail_generator import ThumbnailGenerator

LOGGER = logging.getLogger(__name__)


def image_filename(image_id: str) -> str:
    return f"nova-ai-{image_id}.png"


def thumbnail_filename(image_id: str) -> str:
    return f"nova-ai-{image_id}_thumb.png"


async def save_generated_image(
    store: SessionStore,
    files: ImageFileDAL,
    prompt: str,
    image_bytes: bytes,
    thumbnails: Optional[ThumbnailGenerator] = None,
) -> ImageRecord:
    """Save the image and its thumbnail, then record it in the gallery.

    Args:
        store: Session store owning the image collection.
        files: File access rooted at the images directory.
        prompt: Prompt the image was generated from.
        image_bytes: PNG bytes returned by the generator.
        thumbnails: Optional thumbnail generator; a default one is used when omitted.

    Returns:
        The stored `ImageRecord`; its `url` is the image file name.

    Raises:
        ValueError: If image bytes are missing.
    """
    if not image_bytes:
        raise ValueError("Image bytes are required for saving.")
    image_id = new_id()
    filename = await files.save(image_filename(image_id), image_bytes)

    # thumbnail generation is blocking -> run in thread
    generator = thumbnails or ThumbnailGenerator()
    try:
        thumb_bytes = await asyncio.to_thread(generator.create_thumbnail, image_bytes)
    except ValueError as exc:
        LOGGER.warning("Could not build a thumbnail for image %s: %s", image_id, exc)
    else:
        await files.save(thumbnail_filename(image_id), thumb_bytes)

    return await store.save_image(prompt, filename, record_id=image_id)


async def read_image(files: ImageFileDAL, record: ImageRecord) -> Optional[bytes]:
    """Resolve a record's handle to its bytes."""
    return await files.read(record.url)


async def read_thumbnail(files: ImageFileDAL, record: ImageRecord) -> Optional[bytes]:
    return await files.read(thumbnail_filename(record.id))
