"""Session domain models for the assistant workspace."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
_LEGACY_ROLES = {"model": ASSISTANT_ROLE}


def now_ms() -> int:
	"""Return the current wall clock time in epoch milliseconds."""
	return int(time.time() * 1000)


def new_id() -> str:
	return uuid4().hex


class AppMode(str, Enum):
	"""Workspace kinds; each selects a view and a system instruction variant."""

	CHAT = "CHAT"
	IMAGE = "IMAGE"
	CODE = "CODE"
	VOICE = "VOICE"


class GenerationState(str, Enum):
	"""Lifecycle of one streamed assistant reply."""

	IDLE = "IDLE"
	SENDING = "SENDING"
	STREAMING = "STREAMING"
	COMPLETED = "COMPLETED"
	CANCELLED = "CANCELLED"
	FAILED = "FAILED"


@dataclass(frozen=True)
class Message:
	"""One chat turn. Streaming replaces the value, it never edits it."""

	id: str
	role: str
	content: str
	timestamp: int = field(default_factory=now_ms)
	type: Optional[str] = None

	@classmethod
	def create(cls, role: str, content: str = "", kind: Optional[str] = None) -> "Message":
		if role not in (USER_ROLE, ASSISTANT_ROLE):
			raise ValueError(f"Unsupported message role: {role!r}")
		return cls(id=new_id(), role=role, content=content, type=kind)

	def with_content(self, content: str) -> "Message":
		return replace(self, content=content)

	def to_dict(self) -> Dict[str, Any]:
		data: Dict[str, Any] = {
			"id": self.id,
			"role": self.role,
			"content": self.content,
			"timestamp": self.timestamp,
		}
		if self.type is not None:
			data["type"] = self.type
		return data

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "Message":
		role = data.get("role") or USER_ROLE
		return cls(
			id=str(data["id"]),
			role=_LEGACY_ROLES.get(role, role),
			content=data.get("content") or "",
			timestamp=int(data.get("timestamp") or 0),
			type=data.get("type"),
		)


@dataclass(frozen=True)
class ChatSession:
	"""Immutable snapshot of one conversation thread."""

	id: str
	title: str
	mode: AppMode
	messages: Tuple[Message, ...] = ()
	created_at: int = field(default_factory=now_ms)
	updated_at: int = field(default_factory=now_ms)

	@classmethod
	def create(cls, mode: AppMode, title: str = "New Chat") -> "ChatSession":
		stamp = now_ms()
		return cls(id=new_id(), title=title, mode=AppMode(mode), created_at=stamp, updated_at=stamp)

	def with_messages(self, messages: Tuple[Message, ...], **changes: Any) -> "ChatSession":
		return replace(self, messages=tuple(messages), **changes)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"title": self.title,
			"mode": self.mode.value,
			"messages": [message.to_dict() for message in self.messages],
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "ChatSession":
		return cls(
			id=str(data["id"]),
			title=data.get("title") or "New Chat",
			mode=AppMode(data.get("mode") or AppMode.CHAT.value),
			messages=tuple(Message.from_dict(item) for item in data.get("messages") or []),
			created_at=int(data.get("createdAt") or 0),
			updated_at=int(data.get("updatedAt") or 0),
		)
