"""Conversational assistant that streams replies and applies their action blocks."""

import time
from typing import Any, AsyncIterator
from uuid import UUID

from anthropic import AsyncAnthropic

from iot_oracle.agents.base import BaseAgent
from iot_oracle.models.conversation import MessageRole
from iot_oracle.protocol.aggregator import StreamAggregator
from iot_oracle.state.conversation import ConversationManager
from iot_oracle.state.workspace import Workspace
from iot_oracle.utils.prompts import PromptTemplates, format_workspace_context
from iot_oracle.utils.tracing import ResponseTracer


class AssistantAgent(BaseAgent):
    """Streams a reply for each user message, then dispatches its actions."""

    def __init__(
        self,
        conversation_manager: ConversationManager,
        workspace: Workspace,
        client: AsyncAnthropic | None = None,
    ):
        super().__init__("assistant", client=client)
        self.conversation_manager = conversation_manager
        self.workspace = workspace

    @property
    def system_prompt(self) -> str:
        return PromptTemplates.ASSISTANT_SYSTEM

    def _system_with_context(self) -> str:
        context = format_workspace_context(
            self.workspace.ledger.list_items(),
            self.workspace.ledger.list_projects(),
        )
        return f"{self.system_prompt}\n\n{context}"

    async def respond(
        self,
        conversation_id: UUID,
        message: str,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Stream the assistant's reply to a user message.

        Yields a ``chunk`` event per streamed piece carrying the clean display
        text so far, then one ``complete`` event. Actions are dispatched only
        after the stream finishes normally; if the consumer stops iterating
        early nothing is saved or applied.

        Args:
            conversation_id: Conversation the message belongs to
            message: The user's message

        Yields:
            Event dictionaries ready to be sent as JSON
        """
        conversation = await self.conversation_manager.get_conversation(conversation_id)
        if not conversation:
            raise ValueError(f"Conversation {conversation_id} not found")

        start_time = time.time()
        history = conversation.get_recent_messages(self.settings.history_messages)
        messages = self._build_message_history(history, message)
        await self.conversation_manager.add_message(conversation_id, MessageRole.USER, message)

        aggregator = StreamAggregator()
        tracer = ResponseTracer(conversation_id)

        try:
            async for chunk in self._stream_llm(messages, system=self._system_with_context()):
                snapshot = aggregator.ingest(chunk)
                tracer.record_chunk(len(chunk.text), [kind.value for kind in snapshot.kinds])
                yield {
                    "type": "chunk",
                    "text": chunk.text,
                    "display_text": snapshot.display_text,
                }
        except Exception as e:
            self.logger.log_error(error=str(e), conversation_id=str(conversation_id))
            raise

        snapshot = aggregator.complete()
        reply = await self.conversation_manager.add_message(
            conversation_id,
            MessageRole.ASSISTANT,
            snapshot.full_text,
            sources=list(snapshot.sources),
        )

        with tracer.trace_operation("dispatch", kinds=[kind.value for kind in snapshot.kinds]):
            report = await self.workspace.dispatch(snapshot, tracer=tracer)

        self.logger.log_interaction(
            action="respond",
            conversation_id=str(conversation_id),
            duration_ms=(time.time() - start_time) * 1000,
            pending=len(report.pending),
            **tracer.get_trace_summary(),
        )

        yield {
            "type": "complete",
            "message_id": str(reply.id),
            "display_text": snapshot.display_text,
            "sources": [source.model_dump() for source in snapshot.sources],
            "auto_applied": report.auto_applied,
            "notifications": [n.model_dump(mode="json") for n in report.notifications],
            "outcomes": [o.model_dump(mode="json") for o in report.outcomes],
            "pending": {kind.value: payload for kind, payload in report.pending.items()},
            "failed_blocks": [kind.value for kind in snapshot.failures],
        }
