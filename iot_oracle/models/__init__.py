"""Data models for the IoT Oracle service."""

from iot_oracle.models.actions import (
    ActionKind,
    ActionOutcome,
    Notification,
    NotificationLevel,
)
from iot_oracle.models.conversation import (
    ConversationState,
    Message,
    MessageRole,
    StreamChunk,
)
from iot_oracle.models.inventory import InventoryItem, ItemStatus, ProjectAllocation
from iot_oracle.models.project import (
    ComponentSource,
    Project,
    ProjectComponent,
    ProjectStatus,
)

__all__ = [
    # Actions
    "ActionKind",
    "ActionOutcome",
    "Notification",
    "NotificationLevel",
    # Conversation
    "ConversationState",
    "Message",
    "MessageRole",
    "StreamChunk",
    # Inventory
    "InventoryItem",
    "ItemStatus",
    "ProjectAllocation",
    # Project
    "ComponentSource",
    "Project",
    "ProjectComponent",
    "ProjectStatus",
]
