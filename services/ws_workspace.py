"""Bridge a workspace websocket to the reconciler and the typewriter renderer."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from models.session_models import ASSISTANT_ROLE, ChatSession
from services.reconciler import StreamReconciler
from services.renderer import ProgressiveRenderer

LOGGER = logging.getLogger(__name__)


class WorkspaceSocketHandler:
	"""Serve one browser tab: inbound chat commands, outbound snapshots and reveal frames."""

	def __init__(self, workspace: StreamReconciler, websocket: WebSocket, **renderer_options: Any) -> None:
		self.workspace = workspace
		self.websocket = websocket
		self.renderer = ProgressiveRenderer(
			on_reveal=self._on_reveal,
			on_animation_state_change=self._on_animation_state_change,
			**renderer_options,
		)
		self._outbox: asyncio.Queue = asyncio.Queue()
		self._message_id: Optional[str] = None
		self._busy = False

	@property
	def busy(self) -> bool:
		"""True until the reply is both fully received and fully revealed."""
		return self.workspace.is_loading or self.renderer.is_animating

	async def serve(self) -> None:
		"""Pump frames until the client disconnects."""
		unsubscribe = self.workspace.subscribe(self._on_sessions)
		sender = asyncio.create_task(self._drain())
		ticker = asyncio.create_task(self.renderer.run())
		self._on_sessions(self.workspace.sessions)
		try:
			while True:
				try:
					raw = await self.websocket.receive_text()
				except WebSocketDisconnect:
					break
				try:
					payload = json.loads(raw)
				except json.JSONDecodeError:
					self._queue({"type": "error", "detail": "Payload must be JSON"})
					continue
				await self.handle(payload)
		finally:
			unsubscribe()
			self.renderer.close()
			ticker.cancel()
			sender.cancel()
			await asyncio.gather(ticker, sender, return_exceptions=True)

	async def handle(self, payload: Dict[str, Any]) -> None:
		"""Process a single inbound websocket payload."""
		request_id = payload.get("request_id")
		message_type = payload.get("type")
		try:
			if message_type == "chat.send":
				result = self._send_or_stop(payload)
			elif message_type == "chat.stop":
				result = {"type": "chat.stopped", "stopped": self._stop()}
			elif message_type == "session.select":
				session = self.workspace.select_session(str(payload.get("session_id") or ""))
				result = {"type": "session.selected", "session_id": session.id}
			else:
				raise ValueError("Unsupported message type.")
			result["request_id"] = request_id
			self._queue(result)
		except KeyError as exc:
			self._queue({"type": "error", "request_id": request_id, "detail": str(exc.args[0] if exc.args else exc)})
		except Exception as exc:  # pylint: disable=broad-exception-caught
			self._queue({"type": "error", "request_id": request_id, "detail": str(exc)})

	def _send_or_stop(self, payload: Dict[str, Any]) -> Dict[str, Any]:
		# One control: it stops while a reply is still arriving or still being typed out.
		if self.busy:
			return {"type": "chat.stopped", "stopped": self._stop()}
		text = (payload.get("text") or "").strip()
		if not text:
			raise ValueError("Message text is required.")
		if self.workspace.active_session is None:
			raise RuntimeError("No active session; create one first.")
		if self.workspace.start(text) is None:
			raise RuntimeError("A reply is already streaming.")
		return {"type": "chat.accepted"}

	def _stop(self) -> bool:
		stopped = self.workspace.stop()
		self._report_busy()
		return stopped

	def _on_sessions(self, sessions: Tuple[ChatSession, ...]) -> None:
		active = self.workspace.active_session
		if active is None:
			self._message_id = None
			self.renderer.reset()
			self._queue({"type": "session", "session": None, "loading": False})
			return

		last = active.messages[-1] if active.messages else None
		if last is not None and last.role == ASSISTANT_ROLE:
			generation = self.workspace.generation
			streaming = generation is not None and generation.message_id == last.id
			if last.id != self._message_id:
				self._message_id = last.id
				self.renderer.reset(last.content, streaming)
			else:
				self.renderer.update(last.content, streaming)
		else:
			self._message_id = None
			self.renderer.reset()

		self._queue({"type": "session", "session": active.to_dict(), "loading": self.workspace.is_loading})
		self._report_busy()

	def _on_reveal(self, visible_text: str) -> None:
		self._queue({"type": "reveal", "message_id": self._message_id, "text": visible_text, "scroll": True})

	def _on_animation_state_change(self, animating: bool) -> None:
		self._report_busy()

	def _report_busy(self) -> None:
		busy = self.busy
		if busy != self._busy:
			self._busy = busy
			self._queue({"type": "busy", "value": busy})

	def _queue(self, payload: Dict[str, Any]) -> None:
		self._outbox.put_nowait(payload)

	async def _drain(self) -> None:
		while True:
			payload = await self._outbox.get()
			try:
				await self.websocket.send_text(json.dumps(payload, ensure_ascii=False))
			except (WebSocketDisconnect, RuntimeError):
				LOGGER.debug("Workspace socket closed while sending %s", payload.get("type"))
				return
