"""Base agent class with common LLM access for the assistant and analyst."""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from anthropic import AsyncAnthropic

from iot_oracle.config import get_settings
from iot_oracle.models.conversation import Message, MessageRole, StreamChunk
from iot_oracle.utils.logging import AgentLogger

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class BaseAgent(ABC):
    """Base class for Claude-backed agents."""

    def __init__(self, agent_id: str, client: AsyncAnthropic | None = None):
        self.agent_id = agent_id
        self.settings = get_settings()
        self.logger = AgentLogger(agent_id)

        # Initialize Anthropic client
        self.client = client or AsyncAnthropic(api_key=self.settings.anthropic_api_key)

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """Return the system prompt for this agent."""
        pass

    async def _call_llm_with_retry(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        max_tokens: int | None = None,
    ) -> Any:
        """Call the LLM with exponential backoff retry logic."""
        max_retries = self.settings.max_retries
        retry_delay = self.settings.retry_delay

        for attempt in range(max_retries):
            try:
                response = await self.client.messages.create(
                    model=self.settings.anthropic_model,
                    max_tokens=max_tokens or self.settings.max_tokens,
                    system=system or self.system_prompt,
                    messages=messages,
                )
                return response

            except Exception as e:
                if attempt == max_retries - 1:
                    raise

                # Exponential backoff
                wait_time = retry_delay * (2**attempt)
                self.logger.logger.warning(
                    "llm_call_retry",
                    wait_seconds=wait_time,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    error=str(e),
                )
                await asyncio.sleep(wait_time)

        raise RuntimeError("Max retries exceeded")

    async def _stream_llm(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a reply as text chunks.

        Connection failures before the first chunk are retried with backoff;
        once text has been yielded a failure propagates to the consumer.
        """
        max_retries = self.settings.max_retries
        retry_delay = self.settings.retry_delay

        for attempt in range(max_retries):
            started = False
            try:
                async with self.client.messages.stream(
                    model=self.settings.anthropic_model,
                    max_tokens=self.settings.max_tokens,
                    system=system or self.system_prompt,
                    messages=messages,
                ) as stream:
                    async for text in stream.text_stream:
                        started = True
                        yield StreamChunk(text=text)
                return

            except Exception as e:
                if started or attempt == max_retries - 1:
                    raise

                wait_time = retry_delay * (2**attempt)
                self.logger.logger.warning(
                    "llm_stream_retry",
                    wait_seconds=wait_time,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    error=str(e),
                )
                await asyncio.sleep(wait_time)

    def _build_message_history(
        self,
        recent_messages: list[Message],
        current_message: str,
    ) -> list[dict[str, str]]:
        """Build message history for Claude API."""
        messages = []

        for msg in recent_messages[-self.settings.history_messages :]:
            if msg.role in [MessageRole.USER, MessageRole.ASSISTANT]:
                messages.append(
                    {
                        "role": msg.role.value,
                        "content": msg.content,
                    }
                )

        messages.append(
            {
                "role": "user",
                "content": current_message,
            }
        )

        return messages

    @staticmethod
    def _response_text(response: Any) -> str:
        """Concatenate the text blocks of a non-streamed response."""
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )

    @staticmethod
    def _parse_json(text: str) -> Any:
        """Decode a JSON-only reply, tolerating a surrounding code fence."""
        text = text.strip()
        match = _FENCE.match(text)
        if match:
            text = match.group(1)
        return json.loads(text)
