"""FastAPI routes for workspace sessions and streamed replies."""

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.session_controller import (
	create_session,
	delete_session,
	get_session,
	list_sessions,
	select_session,
	send_message,
	send_voice,
	stop_generation,
)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


class CreatePayload(BaseModel):
	mode: str = "CHAT"


class MessagePayload(BaseModel):
	text: str


@router.get("")
async def list_sessions_route(request: Request):
	return await list_sessions(request)


@router.post("")
async def create_session_route(request: Request, payload: CreatePayload):
	try:
		return await create_session(request, payload.mode)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/stop")
async def stop_route(request: Request):
	return await stop_generation(request)


@router.get("/{session_id}")
async def get_session_route(request: Request, session_id: str):
	return await get_session(request, session_id)


@router.delete("/{session_id}")
async def delete_session_route(request: Request, session_id: str):
	try:
		return await delete_session(request, session_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/select")
async def select_session_route(request: Request, session_id: str):
	return await select_session(request, session_id)


@router.post("/{session_id}/messages", status_code=202)
async def post_message_route(request: Request, session_id: str, payload: MessagePayload):
	try:
		return await send_message(request, session_id, payload.text)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{session_id}/voice", status_code=202)
async def post_voice_route(request: Request, session_id: str, audio: UploadFile = File(...)):
	try:
		return await send_voice(request, session_id, audio)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc
	except Exception as exc:
		raise HTTPException(status_code=502, detail=f"Voice transcription failed: {exc}") from exc
