"""WebSocket transport for streamed assistant replies.

Client frames are JSON objects with a ``type`` of ``message`` or ``ping``.
Server frames are the assistant's ``chunk`` and ``complete`` events plus
``connected``, ``pong`` and ``error``.
"""

import json
from typing import Any
from uuid import UUID

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError

from iot_oracle.agents.assistant import AssistantAgent
from iot_oracle.state.conversation import ConversationManager
from iot_oracle.state.manager import get_state_manager
from iot_oracle.state.workspace import get_workspace
from iot_oracle.utils.logging import get_logger

logger = get_logger(__name__)


class ClientFrame(BaseModel):
    """A frame sent by the client."""

    type: str
    content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConnectionManager:
    """Tracks the open socket of each conversation."""

    def __init__(self) -> None:
        self.active_connections: dict[str, WebSocket] = {}

    async def connect(self, conversation_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections[conversation_id] = websocket
        logger.info("websocket_connected", conversation_id=conversation_id)

    def disconnect(self, conversation_id: str) -> None:
        if self.active_connections.pop(conversation_id, None) is not None:
            logger.info("websocket_disconnected", conversation_id=conversation_id)


manager = ConnectionManager()


async def handle_websocket_conversation(websocket: WebSocket, conversation_id: UUID) -> None:
    """
    Serve one client for the lifetime of its socket.

    An unknown conversation id starts a fresh conversation; the id actually
    used is announced in the ``connected`` frame.
    """
    conversation_manager = ConversationManager(await get_state_manager())
    conversation = await conversation_manager.get_conversation(conversation_id)
    if conversation is None:
        conversation = await conversation_manager.create_conversation()
    conversation_id = conversation.conversation_id
    key = str(conversation_id)

    assistant = AssistantAgent(conversation_manager, await get_workspace())

    await manager.connect(key, websocket)
    await websocket.send_json(
        {"type": "connected", "conversation_id": key, "title": conversation.title}
    )

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = ClientFrame.model_validate(json.loads(raw))
            except (ValidationError, json.JSONDecodeError) as e:
                await websocket.send_json(
                    {"type": "error", "message": "Invalid message format", "details": str(e)}
                )
                continue

            if frame.type == "ping":
                await websocket.send_json({"type": "pong"})
            elif frame.type == "message" and frame.content:
                await stream_reply(websocket, assistant, conversation_id, frame.content)

    except WebSocketDisconnect:
        logger.info("websocket_client_disconnected", conversation_id=key)
    except Exception as e:
        logger.error("websocket_error", conversation_id=key, error=str(e))
    finally:
        manager.disconnect(key)


async def stream_reply(
    websocket: WebSocket,
    assistant: AssistantAgent,
    conversation_id: UUID,
    message: str,
) -> None:
    """
    Relay one streamed reply to the client.

    If the client goes away mid-stream the reply generator is closed before
    it completes, so none of the reply's actions are applied.
    """
    events = assistant.respond(conversation_id, message)
    try:
        async for event in events:
            await websocket.send_json(event)
    except WebSocketDisconnect:
        raise
    except Exception as e:
        logger.error("websocket_reply_failed", conversation_id=str(conversation_id), error=str(e))
        await websocket.send_json({"type": "error", "message": "Failed to process message"})
    finally:
        await events.aclose()
