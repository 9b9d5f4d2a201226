"""Drive streamed assistant replies into the active session.

The reconciler owns the in-memory working copy of the sessions: a tuple of
immutable `ChatSession` snapshots that is replaced wholesale on every change
and handed to subscribers. Readers holding an older tuple never observe a
half-applied update.

One generation runs at a time. `send()` and `start()` bind the target session
and take the in-flight guard before yielding to the loop. The user turn and an
empty assistant placeholder are appended and persisted, then fragments from
the model gateway are written into the placeholder, located by id in the
newest snapshot. `stop()` cancels cooperatively and frees the guard at once;
the partial reply stays visible and is persisted as-is.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set, Tuple

from models.session_models import (
	ASSISTANT_ROLE,
	USER_ROLE,
	AppMode,
	ChatSession,
	GenerationState,
	Message,
	now_ms,
)
from services.gateway.base import (
	MISSING_KEY_WARNING,
	CancellationToken,
	ConfigurationError,
	ModelGateway,
	WarningFragment,
)
from services.prompts import NOVA_SYSTEM_INSTRUCTIONS, build_system_instruction
from services.session_store import SessionStore

LOGGER = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 30
TITLE_ELLIPSIS = "..."
WARNING_SEPARATOR = "\n\n"

SessionsListener = Callable[[Tuple[ChatSession, ...]], None]


def derive_title(text: str, max_length: int = TITLE_MAX_LENGTH) -> str:
	"""Return a session title from the first user message."""
	if len(text) > max_length:
		return text[:max_length] + TITLE_ELLIPSIS
	return text


@dataclass
class Generation:
	"""Bookkeeping for one in-flight reply.

	`position` caches where the placeholder sits in its session so each
	fragment avoids a scan; it is verified by id before use.
	"""

	session_id: str
	message_id: str
	token: CancellationToken = field(default_factory=CancellationToken)
	state: GenerationState = GenerationState.SENDING
	content: str = ""
	fragments: int = 0
	position: Optional[int] = None


class StreamReconciler:
	"""Merge model fragments into session state and hand it to the store."""

	def __init__(
		self,
		store: SessionStore,
		gateway: ModelGateway,
		*,
		system_instruction: str = NOVA_SYSTEM_INSTRUCTIONS,
	) -> None:
		self._store = store
		self._gateway = gateway
		self._system_instruction = system_instruction
		self._sessions: Tuple[ChatSession, ...] = ()
		self._active_id: Optional[str] = None
		self._generation: Optional[Generation] = None
		self._listeners: List[SessionsListener] = []
		self._store_lock = asyncio.Lock()
		self._tasks: Set[asyncio.Task] = set()

	@property
	def sessions(self) -> Tuple[ChatSession, ...]:
		return self._sessions

	@property
	def active_id(self) -> Optional[str]:
		return self._active_id

	@property
	def active_session(self) -> Optional[ChatSession]:
		if self._active_id is None:
			return None
		index = self._session_index(self._active_id)
		return self._sessions[index] if index is not None else None

	@property
	def generation(self) -> Optional[Generation]:
		return self._generation

	@property
	def is_loading(self) -> bool:
		return self._generation is not None

	@property
	def state(self) -> GenerationState:
		return self._generation.state if self._generation else GenerationState.IDLE

	def subscribe(self, listener: SessionsListener) -> Callable[[], None]:
		"""Register `listener` for every published snapshot; returns an unsubscribe callable."""
		self._listeners.append(listener)

		def unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return unsubscribe

	async def load(self) -> Tuple[ChatSession, ...]:
		"""Read the stored sessions and activate the most recent one."""
		sessions = await self._store.get_sessions()
		if self._active_id is None or all(s.id != self._active_id for s in sessions):
			self._active_id = sessions[0].id if sessions else None
		self._publish(sessions)
		return self._sessions

	async def new_session(self, mode: AppMode) -> ChatSession:
		"""Create, persist and activate an empty session."""
		async with self._store_lock:
			session = await self._store.create_session(AppMode(mode))
		self._active_id = session.id
		self._publish((session, *self._sessions))
		return session

	def select_session(self, session_id: str) -> ChatSession:
		"""Make `session_id` the active session.

		Raises:
			KeyError: If the session is unknown.
		"""
		index = self._session_index(session_id)
		if index is None:
			raise KeyError(f"Session {session_id} not found")
		self._active_id = session_id
		self._notify()
		return self._sessions[index]

	async def delete_session(self, session_id: str) -> None:
		"""Remove a session, stopping its reply first if one is streaming."""
		if self._generation is not None and self._generation.session_id == session_id:
			self.stop()
		async with self._store_lock:
			await self._store.delete_session(session_id)
		remaining = tuple(s for s in self._sessions if s.id != session_id)
		if self._active_id == session_id:
			self._active_id = remaining[0].id if remaining else None
		self._publish(remaining)

	async def send(
		self,
		text: str,
		kind: Optional[str] = None,
		session_id: Optional[str] = None,
	) -> Optional[Generation]:
		"""Stream an assistant reply to `text` into `session_id`, or the active session.

		Returns the finished generation, or None when the call was rejected
		because there is no such session, the text is blank, or another
		reply is still in flight.
		"""
		claimed = self._claim(text, kind, session_id)
		if claimed is None:
			return None
		return await self._run(*claimed)

	def start(
		self,
		text: str,
		kind: Optional[str] = None,
		session_id: Optional[str] = None,
	) -> Optional[asyncio.Task]:
		"""Claim the in-flight slot now and stream the reply in a background task.

		Returns None when `send()` would have rejected the call.
		"""
		claimed = self._claim(text, kind, session_id)
		if claimed is None:
			return None
		task = asyncio.create_task(self._run(*claimed))
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)
		return task

	def _claim(
		self,
		text: str,
		kind: Optional[str],
		session_id: Optional[str],
	) -> Optional[Tuple[Generation, Tuple[Message, ...], AppMode]]:
		"""Bind the target session and take the guard without yielding to the loop."""
		text = (text or "").strip()
		target_id = session_id or self._active_id
		index = self._session_index(target_id) if target_id else None
		if index is None or not text:
			LOGGER.debug("Send ignored: unknown session or empty text")
			return None
		if self._generation is not None:
			LOGGER.info("Send ignored: a reply is already streaming for session %s", self._generation.session_id)
			return None

		session = self._sessions[index]
		user_message = Message.create(USER_ROLE, text, kind=kind)
		placeholder = Message.create(ASSISTANT_ROLE, "")
		messages = (*session.messages, user_message, placeholder)
		changes = {"updated_at": now_ms()}
		if not session.messages:
			changes["title"] = derive_title(text)
		updated = session.with_messages(messages, **changes)

		generation = Generation(session_id=session.id, message_id=placeholder.id, position=len(messages) - 1)
		self._generation = generation
		self._active_id = session.id
		self._replace_session(updated)
		return generation, messages, session.mode

	async def _run(self, generation: Generation, messages: Tuple[Message, ...], mode: AppMode) -> Generation:
		try:
			await self._persist_reply(generation)
			await self._stream(generation, messages[:-1], mode)
			if generation.state is GenerationState.CANCELLED:
				await self._persist_aborted(generation)
			else:
				await self._finalize(generation)
		except asyncio.CancelledError:
			generation.token.cancel()
			generation.state = GenerationState.CANCELLED
			await self._persist_aborted(generation)
			raise
		finally:
			if self._generation is generation:
				self._generation = None
			self._notify()
		return generation

	def stop(self) -> bool:
		"""Cancel the in-flight reply. Returns False when nothing was streaming."""
		generation = self._generation
		if generation is None:
			return False
		generation.token.cancel()
		self._generation = None
		LOGGER.info("Reply %s stopped by user", generation.message_id)
		self._notify()
		return True

	async def shutdown(self) -> None:
		"""Stop any streaming reply and wait for background sends to settle."""
		self.stop()
		if self._tasks:
			await asyncio.gather(*self._tasks, return_exceptions=True)

	async def _stream(self, generation: Generation, history: Sequence[Message], mode: AppMode) -> None:
		instruction = build_system_instruction(mode, self._system_instruction)
		generation.state = GenerationState.STREAMING
		self._notify()
		try:
			async for fragment in self._gateway.stream(history, instruction, generation.token):
				self._append(generation, fragment)
		except ConfigurationError as exc:
			LOGGER.error("Cannot request a completion: %s", exc)
			self._append(generation, WarningFragment(MISSING_KEY_WARNING))

		if generation.state is GenerationState.FAILED:
			return
		if generation.token.cancelled:
			generation.state = GenerationState.CANCELLED
		else:
			generation.state = GenerationState.COMPLETED

	def _append(self, generation: Generation, fragment: str) -> None:
		if isinstance(fragment, WarningFragment):
			generation.state = GenerationState.FAILED
			if generation.content:
				fragment = WARNING_SEPARATOR + fragment
		generation.content += fragment
		generation.fragments += 1
		self._apply(generation)

	def _apply(self, generation: Generation) -> None:
		"""Write the accumulated text into the placeholder of the newest snapshot."""
		index = self._session_index(generation.session_id)
		if index is None:
			LOGGER.debug("Session %s is gone; fragment dropped", generation.session_id)
			return
		session = self._sessions[index]
		position = self._locate(session, generation)
		if position is None:
			LOGGER.debug("Placeholder %s is gone; fragment dropped", generation.message_id)
			return
		messages = list(session.messages)
		messages[position] = messages[position].with_content(generation.content)
		sessions = list(self._sessions)
		sessions[index] = session.with_messages(tuple(messages))
		self._publish(sessions)

	@staticmethod
	def _locate(session: ChatSession, generation: Generation) -> Optional[int]:
		position = generation.position
		if position is not None and position < len(session.messages):
			if session.messages[position].id == generation.message_id:
				return position
		for position, message in enumerate(session.messages):
			if message.id == generation.message_id:
				generation.position = position
				return position
		return None

	async def _finalize(self, generation: Generation) -> None:
		LOGGER.info(
			"Reply %s finished as %s after %d fragments",
			generation.message_id,
			generation.state.value,
			generation.fragments,
		)
		await self._persist_reply(generation)

	async def _persist_aborted(self, generation: Generation) -> None:
		LOGGER.info("Reply %s cancelled; keeping %d characters", generation.message_id, len(generation.content))
		await self._persist_reply(generation)

	async def _persist_reply(self, generation: Generation) -> None:
		index = self._session_index(generation.session_id)
		if index is None:
			LOGGER.info("Session %s was deleted before its reply was saved", generation.session_id)
			return
		await self._persist(self._sessions[index])

	async def _persist(self, session: ChatSession) -> None:
		async with self._store_lock:
			try:
				await self._store.update_session(session)
			except Exception:  # pylint: disable=broad-exception-caught
				LOGGER.exception("Failed to persist session %s; continuing with in-memory state", session.id)

	def _session_index(self, session_id: str) -> Optional[int]:
		for index, session in enumerate(self._sessions):
			if session.id == session_id:
				return index
		return None

	def _replace_session(self, session: ChatSession) -> None:
		index = self._session_index(session.id)
		sessions = list(self._sessions)
		if index is None:
			sessions.insert(0, session)
		else:
			sessions[index] = session
		self._publish(sessions)

	def _notify(self) -> None:
		self._publish(self._sessions)

	def _publish(self, sessions: Sequence[ChatSession]) -> None:
		self._sessions = tuple(sessions)
		for listener in list(self._listeners):
			try:
				listener(self._sessions)
			except Exception:  # pylint: disable=broad-exception-caught
				LOGGER.exception("Session listener failed")
