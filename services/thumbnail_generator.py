"""Square gallery tiles built with Pillow.

The gallery grid shows every generated image in a fixed square cell, so the
tile is the image scaled to fit and centred on a solid canvas.
"""
from __future__ import annotations

import io
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

TILE_SIZE = 160
TILE_BACKGROUND = (17, 24, 39)


class ThumbnailGenerator:
    """Turn encoded image bytes into a PNG gallery tile.

    Args:
        tile_size: Edge length of the square tile in pixels.
        background: RGB fill for the letterbox bars and for transparent pixels.
    """

    def __init__(self, tile_size: int = TILE_SIZE, background: Tuple[int, int, int] = TILE_BACKGROUND):
        if tile_size <= 0:
            raise ValueError("tile_size must be positive")
        self.tile_size = tile_size
        self.background = background

    def create_thumbnail(self, data: bytes) -> bytes:
        """Return the tile as PNG bytes.

        Raises:
            ValueError: If the bytes cannot be decoded as an image.
        """
        try:
            with Image.open(io.BytesIO(data)) as source:
                image = ImageOps.exif_transpose(source).convert("RGBA")
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("Image bytes are not a supported image format") from exc

        edge = self.tile_size
        fitted = ImageOps.contain(image, (edge, edge), Image.Resampling.LANCZOS)
        tile = Image.new("RGB", (edge, edge), self.background)
        offset = ((edge - fitted.width) // 2, (edge - fitted.height) // 2)
        tile.paste(fitted, offset, mask=fitted.getchannel("A"))

        out = io.BytesIO()
        tile.save(out, format="PNG", optimize=True)
        return out.getvalue()
