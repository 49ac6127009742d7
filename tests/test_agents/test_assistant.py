"""Tests for the streaming assistant and the project analyst."""

from types import SimpleNamespace
from typing import Any

import pytest

from iot_oracle.agents.analyst import ProjectAnalystAgent
from iot_oracle.agents.assistant import AssistantAgent
from iot_oracle.models.conversation import MessageRole
from iot_oracle.state.conversation import ConversationManager
from iot_oracle.state.workspace import Workspace

FENCE = "`" * 3

PROJECT_REPLY = [
    "Here is a plan for a weather station.\n",
    f"{FENCE}json\n/// PROJECT_JSON_START ///\n",
    '{"projectName": "Weather Station", "components": ',
    '[{"name": "ESP32", "quantity": 2}, {"name": "BME280", "quantity": 1}]}\n',
    f"/// PROJECT_JSON_END ///\n{FENCE}\n",
    "Enjoy!",
]


class FakeStream:
    def __init__(self, pieces: list[str]):
        self.pieces = pieces

    async def __aenter__(self) -> "FakeStream":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    @property
    async def text_stream(self):
        for piece in self.pieces:
            yield piece


class FakeMessages:
    def __init__(self, pieces: list[str] | None = None, reply: str = ""):
        self.pieces = pieces or []
        self.reply = reply
        self.stream_calls: list[dict[str, Any]] = []

    def stream(self, **kwargs: Any) -> FakeStream:
        self.stream_calls.append(kwargs)
        return FakeStream(self.pieces)

    async def create(self, **kwargs: Any) -> Any:
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


def fake_client(pieces: list[str] | None = None, reply: str = "") -> Any:
    return SimpleNamespace(messages=FakeMessages(pieces, reply))


@pytest.mark.asyncio
async def test_reply_is_streamed_then_dispatched(
    conversation_manager: ConversationManager, workspace: Workspace
) -> None:
    client = fake_client(PROJECT_REPLY)
    assistant = AssistantAgent(conversation_manager, workspace, client=client)
    conversation = await conversation_manager.create_conversation()

    events = [
        event
        async for event in assistant.respond(conversation.conversation_id, "Plan a weather station")
    ]

    chunks = [e for e in events if e["type"] == "chunk"]
    complete = events[-1]
    assert len(chunks) == len(PROJECT_REPLY)
    assert "PROJECT_JSON_START" not in complete["display_text"]
    assert complete["auto_applied"] is True
    assert complete["outcomes"][0]["success"] is True
    assert len(complete["notifications"]) == 1
    assert workspace.ledger.get_item("esp32").allocated_quantity == 2

    stored = await conversation_manager.get_conversation(conversation.conversation_id)
    assert [m.role for m in stored.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert "PROJECT_JSON_START" in stored.messages[1].content

    system = client.messages.stream_calls[0]["system"]
    assert "ESP32" in system


@pytest.mark.asyncio
async def test_abandoned_stream_applies_nothing(
    conversation_manager: ConversationManager, workspace: Workspace
) -> None:
    assistant = AssistantAgent(conversation_manager, workspace, client=fake_client(PROJECT_REPLY))
    conversation = await conversation_manager.create_conversation()

    events = assistant.respond(conversation.conversation_id, "Plan a weather station")
    first = await events.__anext__()
    await events.aclose()

    assert first["type"] == "chunk"
    assert workspace.ledger.get_item("esp32").allocated_quantity == 0
    stored = await conversation_manager.get_conversation(conversation.conversation_id)
    assert [m.role for m in stored.messages] == [MessageRole.USER]


@pytest.mark.asyncio
async def test_manual_mode_returns_pending_actions(
    conversation_manager: ConversationManager, workspace: Workspace
) -> None:
    await workspace.set_auto_populate(False)
    assistant = AssistantAgent(conversation_manager, workspace, client=fake_client(PROJECT_REPLY))
    conversation = await conversation_manager.create_conversation()

    events = [e async for e in assistant.respond(conversation.conversation_id, "Plan it")]

    complete = events[-1]
    assert complete["auto_applied"] is False
    assert complete["outcomes"] == []
    assert complete["pending"]["PROJECT"]["projectName"] == "Weather Station"
    assert workspace.ledger.get_item("esp32").allocated_quantity == 0


@pytest.mark.asyncio
async def test_broken_block_is_reported(
    conversation_manager: ConversationManager, workspace: Workspace
) -> None:
    pieces = ["Try this: /// MOVE_JSON_START ///{not json}/// MOVE_JSON_END ///"]
    assistant = AssistantAgent(conversation_manager, workspace, client=fake_client(pieces))
    conversation = await conversation_manager.create_conversation()

    events = [e async for e in assistant.respond(conversation.conversation_id, "Move it")]

    assert events[-1]["failed_blocks"] == ["MOVE"]
    assert events[-1]["outcomes"] == []


@pytest.mark.asyncio
async def test_unknown_conversation_is_rejected(
    conversation_manager: ConversationManager, workspace: Workspace
) -> None:
    from uuid import uuid4

    assistant = AssistantAgent(conversation_manager, workspace, client=fake_client([]))

    with pytest.raises(ValueError):
        async for _ in assistant.respond(uuid4(), "hello"):
            pass


@pytest.mark.asyncio
async def test_analyst_parses_fenced_complexity_reply() -> None:
    reply = (
        f"{FENCE}json\n"
        '{"isComplex": true, "suggestedSubProjects": '
        '[{"name": "Power", "phase": 1, "components": ["LiPo"]}], "reasoning": "Big"}\n'
        f"{FENCE}"
    )
    analyst = ProjectAnalystAgent(client=fake_client(reply=reply))

    analysis = await analyst.analyze_complexity("Rover", "A small rover", ["LiPo"])

    assert analysis.is_complex is True
    assert analysis.suggested_sub_projects[0].name == "Power"


@pytest.mark.asyncio
async def test_analyst_parses_market_quotes() -> None:
    reply = '[{"supplier": "Adafruit", "price": "$14.95", "link": "https://a"}]'
    analyst = ProjectAnalystAgent(client=fake_client(reply=reply))

    quotes = await analyst.lookup_market_data("BME280")

    assert [q.supplier for q in quotes] == ["Adafruit"]
