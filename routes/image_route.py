from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.image_controller import (
	create_gallery_image,
	get_gallery_image,
	get_gallery_thumbnail,
	list_gallery,
)

router = APIRouter(prefix="/api/gallery", tags=["gallery"])


class GeneratePayload(BaseModel):
	prompt: str = ""


@router.get("")
async def list_gallery_route(request: Request):
	"""Return the generated images, newest first."""
	return await list_gallery(request)


@router.post("", status_code=201)
async def create_gallery_route(request: Request, payload: GeneratePayload):
	"""Generate, store and record an image for the prompt."""
	try:
		return await create_gallery_image(request, payload.prompt)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{image_id}/image")
async def get_gallery_image_route(request: Request, image_id: str):
	"""Return the PNG bytes for the specified image id."""
	return await get_gallery_image(request, image_id)


@router.get("/{image_id}/thumbnail")
async def get_gallery_thumbnail_route(request: Request, image_id: str):
	"""Return the PNG thumbnail bytes for the specified image id."""
	try:
		return await get_gallery_thumbnail(request, image_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
