"""State management modules."""

from iot_oracle.state.conversation import ConversationManager
from iot_oracle.state.manager import StateManager
from iot_oracle.state.repository import LedgerRepository

__all__ = ["StateManager", "ConversationManager", "LedgerRepository"]
