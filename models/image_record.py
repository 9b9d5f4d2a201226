from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from models.session_models import new_id, now_ms


@dataclass(frozen=True)
class ImageRecord:
    """Generated image entry of the gallery.

    Attributes:
        id: Unique identifier (uuid hex).
        prompt: Prompt text the image was generated from.
        url: File name of the stored PNG inside the images directory.
        created_at: Epoch milliseconds when the image was stored.
    """

    id: str
    prompt: str
    url: str
    created_at: int = field(default_factory=now_ms)

    @classmethod
    def create(cls, prompt: str, url: str, record_id: str | None = None) -> "ImageRecord":
        return cls(id=record_id or new_id(), prompt=prompt, url=url)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "prompt": self.prompt, "url": self.url, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageRecord":
        return cls(
            id=str(data["id"]),
            prompt=data.get("prompt") or "",
            url=data.get("url") or "",
            created_at=int(data.get("createdAt") or 0),
        )
