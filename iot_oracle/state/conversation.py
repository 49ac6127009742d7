"""Conversation state tracking and management."""

from uuid import UUID

from iot_oracle.config import get_settings
from iot_oracle.models.conversation import (
    ConversationState,
    GroundingSource,
    Message,
    MessageRole,
)
from iot_oracle.state.manager import StateManager
from iot_oracle.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationManager:
    """Manages conversation state persistence."""

    def __init__(self, state_manager: StateManager):
        self.state = state_manager
        self.settings = get_settings()

    def _conversation_key(self, conversation_id: UUID) -> str:
        """Generate Redis key for a conversation."""
        return f"conversation:{conversation_id}"

    async def create_conversation(self, title: str | None = None) -> ConversationState:
        """Create a new conversation."""
        conversation = ConversationState(title=title or "New Chat")

        await self.save_conversation(conversation)

        logger.info(
            "conversation_created",
            conversation_id=str(conversation.conversation_id),
        )

        return conversation

    async def get_conversation(self, conversation_id: UUID) -> ConversationState | None:
        """Retrieve a conversation by ID."""
        key = self._conversation_key(conversation_id)
        data = await self.state.get(key)

        if not data:
            return None

        return ConversationState(**data)

    async def save_conversation(self, conversation: ConversationState) -> None:
        """Save conversation state to Redis."""
        key = self._conversation_key(conversation.conversation_id)

        data = conversation.model_dump(mode="json")

        await self.state.set(
            key,
            data,
            ttl=self.settings.conversation_ttl,
        )

    async def add_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
        sources: list[GroundingSource] | None = None,
    ) -> Message:
        """Add a message to the conversation."""
        conversation = await self.get_conversation(conversation_id)

        if not conversation:
            raise ValueError(f"Conversation {conversation_id} not found")

        # The first user message names the chat.
        if role == MessageRole.USER and not conversation.messages:
            conversation.title = content[:30] + ("..." if len(content) > 30 else "")

        message = conversation.add_message(
            role,
            content,
            sources=sources,
            max_length=self.settings.max_conversation_length,
        )
        await self.save_conversation(conversation)

        logger.debug(
            "message_added",
            conversation_id=str(conversation_id),
            role=role,
        )
        return message

    async def end_conversation(self, conversation_id: UUID) -> None:
        """Mark a conversation as ended."""
        conversation = await self.get_conversation(conversation_id)

        if not conversation:
            return

        conversation.is_active = False
        await self.save_conversation(conversation)

        logger.info("conversation_ended", conversation_id=str(conversation_id))

    async def get_recent_messages(
        self,
        conversation_id: UUID,
        limit: int = 10,
    ) -> list[Message]:
        """Get recent messages from a conversation."""
        conversation = await self.get_conversation(conversation_id)

        if not conversation:
            return []

        return conversation.get_recent_messages(limit)
