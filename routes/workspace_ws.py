"""WebSocket endpoint streaming workspace snapshots and typewriter frames."""

from __future__ import annotations

import json

from fastapi import APIRouter, WebSocket

from services.ws_workspace import WorkspaceSocketHandler

router = APIRouter()


@router.websocket("/ws/workspace")
async def workspace_socket(websocket: WebSocket):
	"""Drive the active session's chat over one websocket."""
	await websocket.accept()
	workspace = getattr(websocket.app.state, "workspace", None)
	if workspace is None:
		await websocket.send_text(json.dumps({"type": "error", "detail": "Workspace unavailable"}))
		await websocket.close()
		return

	options = getattr(websocket.app.state, "renderer_options", None) or {}
	handler = WorkspaceSocketHandler(workspace, websocket, **options)
	await handler.serve()
	try:
		await websocket.close()
	except RuntimeError:
		pass
