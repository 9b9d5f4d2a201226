"""Session lifecycle helpers for the workspace routes."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, UploadFile

from models.session_models import AppMode, ChatSession
from services.dictation_service import DictationService
from services.reconciler import StreamReconciler
from utils.media_validation import read_audio_bytes


def _workspace(request: Request) -> StreamReconciler:
	workspace = getattr(request.app.state, "workspace", None)
	if workspace is None:
		raise HTTPException(status_code=500, detail="Workspace not initialized.")
	return workspace


def _session_payload(workspace: StreamReconciler, session: ChatSession) -> Dict[str, Any]:
	generation = workspace.generation
	return {
		**session.to_dict(),
		"active": session.id == workspace.active_id,
		"streaming_message_id": generation.message_id if generation and generation.session_id == session.id else None,
	}


def _require_session(workspace: StreamReconciler, session_id: str) -> None:
	if all(session.id != session_id for session in workspace.sessions):
		raise HTTPException(status_code=404, detail=f"Session {session_id} not found")


def _start_or_conflict(workspace: StreamReconciler, session_id: str, text: str, kind: Optional[str] = None) -> None:
	"""Claim the in-flight slot for `session_id` or answer 409."""
	if workspace.start(text, kind=kind, session_id=session_id) is None:
		_require_session(workspace, session_id)
		raise HTTPException(status_code=409, detail="A reply is already streaming; stop it first.")


async def list_sessions(request: Request) -> Dict[str, Any]:
	"""Return every session, newest first, with the workspace status."""
	workspace = _workspace(request)
	return {
		"sessions": [_session_payload(workspace, session) for session in workspace.sessions],
		"active_id": workspace.active_id,
		"state": workspace.state.value,
	}


async def create_session(request: Request, mode: str) -> Dict[str, Any]:
	"""Create and activate a new session of the given mode."""
	workspace = _workspace(request)
	try:
		app_mode = AppMode(mode.upper())
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=f"Unknown mode: {mode}") from exc
	session = await workspace.new_session(app_mode)
	return _session_payload(workspace, session)


async def get_session(request: Request, session_id: str) -> Dict[str, Any]:
	workspace = _workspace(request)
	for session in workspace.sessions:
		if session.id == session_id:
			return _session_payload(workspace, session)
	raise HTTPException(status_code=404, detail=f"Session {session_id} not found")


async def select_session(request: Request, session_id: str) -> Dict[str, Any]:
	workspace = _workspace(request)
	try:
		session = workspace.select_session(session_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail=f"Session {session_id} not found") from exc
	return _session_payload(workspace, session)


async def delete_session(request: Request, session_id: str) -> Dict[str, Any]:
	workspace = _workspace(request)
	_require_session(workspace, session_id)
	await workspace.delete_session(session_id)
	return {"session_id": session_id, "deleted": True, "active_id": workspace.active_id}


async def send_message(request: Request, session_id: str, text: str) -> Dict[str, Any]:
	"""Start streaming a reply to `text` in the background."""
	workspace = _workspace(request)
	if not text.strip():
		raise HTTPException(status_code=400, detail="Message text is required.")
	_start_or_conflict(workspace, session_id, text)
	return {"session_id": session_id, "accepted": True}


async def stop_generation(request: Request) -> Dict[str, Any]:
	workspace = _workspace(request)
	return {"stopped": workspace.stop(), "state": workspace.state.value}


async def send_voice(request: Request, session_id: str, audio: UploadFile) -> Dict[str, Any]:
	"""Transcribe an audio clip and send the transcript as a voice message."""
	workspace = _workspace(request)
	audio_bytes = await read_audio_bytes(audio)
	_require_session(workspace, session_id)

	client = getattr(request.app.state, "openai_client", None)
	if client is None:
		raise HTTPException(status_code=500, detail="OpenAI client not initialized.")
	dictation = DictationService(client, model=request.app.state.settings.transcribe_model)
	transcript = await dictation.transcribe(audio_bytes, filename=audio.filename)

	# The guard is only claimed once the transcript exists; a reply may have started meanwhile.
	_start_or_conflict(workspace, session_id, transcript, kind="voice")
	return {"session_id": session_id, "transcript": transcript, "accepted": True}
