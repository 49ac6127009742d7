"""Conversation, message and stream models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Message role types."""

    USER = "user"
    ASSISTANT = "assistant"


class GroundingSource(BaseModel):
    """A web source the assistant cited."""

    uri: str
    title: str | None = None


class StreamChunk(BaseModel):
    """One piece of a streamed assistant reply."""

    text: str = ""
    grounding_metadata: dict[str, Any] | None = None

    def sources(self) -> list[GroundingSource]:
        """Extract cited web sources from the grounding metadata."""
        if not self.grounding_metadata:
            return []
        found = []
        for chunk in self.grounding_metadata.get("grounding_chunks", []):
            web = chunk.get("web") if isinstance(chunk, dict) else None
            if web and web.get("uri"):
                found.append(GroundingSource(uri=web["uri"], title=web.get("title")))
        return found


class Message(BaseModel):
    """Individual message in a conversation.

    Assistant messages keep the raw text so their action blocks can be
    re-extracted later for manual execution.
    """

    id: UUID = Field(default_factory=uuid4)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    sources: list[GroundingSource] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConversationState(BaseModel):
    """Complete state of a chat conversation."""

    conversation_id: UUID = Field(default_factory=uuid4)
    title: str = "New Chat"
    started_at: datetime = Field(default_factory=_utcnow)
    last_activity: datetime = Field(default_factory=_utcnow)
    messages: list[Message] = Field(default_factory=list)
    is_active: bool = True

    def add_message(
        self,
        role: MessageRole,
        content: str,
        sources: list[GroundingSource] | None = None,
        max_length: int | None = None,
    ) -> Message:
        """Add a message to the conversation."""
        message = Message(role=role, content=content, sources=sources or [])
        self.messages.append(message)
        if max_length is not None and len(self.messages) > max_length:
            self.messages = self.messages[-max_length:]
        self.last_activity = _utcnow()
        return message

    def get_recent_messages(self, limit: int = 10) -> list[Message]:
        """Get the most recent messages."""
        return self.messages[-limit:] if self.messages else []
