"""Persisted collections of chat sessions and generated images."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional, Protocol

from models.image_record import ImageRecord
from models.session_models import AppMode, ChatSession, now_ms

LOGGER = logging.getLogger(__name__)

SESSIONS_KEY = "nova_ai_sessions"
IMAGES_KEY = "nova_ai_images"


class KeyValueStorage(Protocol):
	"""String key/value capability, e.g. `dal.local_storage_dal.LocalStorageDAL`."""

	async def get_item(self, key: str) -> Optional[str]: ...

	async def set_item(self, key: str, value: str) -> None: ...


class SessionStore:
	"""Read and write the two storage blobs. No business logic lives here.

	Sessions are kept newest first, as are images. Every read returns fresh
	values decoded from storage, so callers never share structure with it.
	Writes that read a blob, change it and write it back hold one lock, so
	concurrent requests cannot drop each other's changes.
	"""

	def __init__(self, storage: KeyValueStorage) -> None:
		self._storage = storage
		self._write_lock = asyncio.Lock()

	async def _load(self, key: str) -> list:
		raw = await self._storage.get_item(key)
		if not raw:
			return []
		try:
			data = json.loads(raw)
		except json.JSONDecodeError:
			LOGGER.error("Stored value under %s is not valid JSON; treating it as empty", key)
			return []
		if not isinstance(data, list):
			LOGGER.error("Stored value under %s is not a list; treating it as empty", key)
			return []
		return data

	async def get_sessions(self) -> List[ChatSession]:
		"""Return every stored session, newest first."""
		return [ChatSession.from_dict(item) for item in await self._load(SESSIONS_KEY)]

	async def get_session(self, session_id: str) -> Optional[ChatSession]:
		for session in await self.get_sessions():
			if session.id == session_id:
				return session
		return None

	async def _write_sessions(self, sessions: List[ChatSession]) -> None:
		"""Overwrite the sessions blob; callers hold the write lock."""
		payload = json.dumps([session.to_dict() for session in sessions], ensure_ascii=False)
		await self._storage.set_item(SESSIONS_KEY, payload)

	async def create_session(self, mode: AppMode, title: str = "New Chat") -> ChatSession:
		"""Create an empty session and store it in front of the others."""
		session = ChatSession.create(mode, title)
		async with self._write_lock:
			await self._write_sessions([session, *await self.get_sessions()])
		return session

	async def delete_session(self, session_id: str) -> None:
		async with self._write_lock:
			sessions = await self.get_sessions()
			await self._write_sessions([session for session in sessions if session.id != session_id])

	async def update_session(self, session: ChatSession) -> Optional[ChatSession]:
		"""Replace a stored session, stamping `updated_at`.

		Returns the stored value, or None when the session no longer exists.
		"""
		async with self._write_lock:
			sessions = await self.get_sessions()
			for index, existing in enumerate(sessions):
				if existing.id == session.id:
					stored = session.with_messages(session.messages, updated_at=now_ms())
					sessions[index] = stored
					await self._write_sessions(sessions)
					return stored
		LOGGER.debug("Session %s is not stored; update skipped", session.id)
		return None

	async def get_images(self) -> List[ImageRecord]:
		"""Return every generated image record, newest first."""
		return [ImageRecord.from_dict(item) for item in await self._load(IMAGES_KEY)]

	async def get_image(self, image_id: str) -> Optional[ImageRecord]:
		for record in await self.get_images():
			if record.id == image_id:
				return record
		return None

	async def save_image(self, prompt: str, url: str, record_id: Optional[str] = None) -> ImageRecord:
		"""Record a successfully generated image in front of the others."""
		record = ImageRecord.create(prompt, url, record_id=record_id)
		async with self._write_lock:
			images = [record, *await self.get_images()]
			await self._storage.set_item(IMAGES_KEY, json.dumps([item.to_dict() for item in images], ensure_ascii=False))
		return record
