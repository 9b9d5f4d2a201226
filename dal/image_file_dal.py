"""Async file access for generated image bytes.

Images are stored flat under the images directory managed by
`utils.database_init.AsyncDatabaseInitializer`; an `ImageRecord.url`
is the file name inside that directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import aiofiles


class ImageFileDAL:
	"""Read and write image files below a single base directory.

	Usage:
		files = ImageFileDAL(db_initializer.images_dir)
		name = await files.save("abc.png", png_bytes)
		data = await files.read(name)
	"""

	def __init__(self, base_dir: Path | str):
		self.base_dir = Path(base_dir)

	def resolve(self, filename: str) -> Path:
		"""Return the absolute path for `filename`, rejecting path traversal."""
		if not filename or Path(filename).name != filename:
			raise ValueError(f"Invalid image file name: {filename!r}")
		return self.base_dir / filename

	async def save(self, filename: str, data: bytes) -> str:
		"""Write `data` under `filename` and return the file name."""
		if not data:
			raise ValueError("Image bytes are required for saving.")
		path = self.resolve(filename)
		path.parent.mkdir(parents=True, exist_ok=True)
		async with aiofiles.open(path, "wb") as f:
			await f.write(data)
		return filename

	async def read(self, filename: str) -> Optional[bytes]:
		"""Return the stored bytes, or None when the file is missing."""
		path = self.resolve(filename)
		if not path.is_file():
			return None
		async with aiofiles.open(path, "rb") as f:
			return await f.read()
