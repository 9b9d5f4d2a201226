"""FastAPI relay routes forwarding chat and image requests upstream."""

from typing import List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from controllers.relay_controller import relay_image, stream_chat

router = APIRouter(prefix="/api", tags=["relay"])


class ChatTurn(BaseModel):
    role: str = "user"
    content: str = ""


class ChatStreamRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatTurn] = []
    system_instruction: Optional[str] = Field(default=None, alias="systemInstruction")


class ImageRequest(BaseModel):
    prompt: Optional[str] = None


@router.post("/chat/stream", summary="Stream a chat completion as Server-Sent Events")
async def chat_stream(request: Request, payload: ChatStreamRequest):
    """Relay the conversation upstream and stream `{text}` / `{error}` events ending with `[DONE]`."""
    messages = [turn.model_dump() for turn in payload.messages]
    return await stream_chat(request, messages, payload.system_instruction)


@router.post("/image", summary="Generate an image from a prompt")
async def image(request: Request, payload: ImageRequest):
    """Return the generated PNG bytes, or a JSON error body with a non-2xx status."""
    return await relay_image(request, payload.prompt)
