"""Per-response tracing of stream ingestion and action dispatch."""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generator
from uuid import UUID

from iot_oracle.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TraceEvent:
    """Individual trace event within one assistant response."""

    timestamp: datetime
    event_type: str
    duration_ms: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class ResponseTracer:
    """Traces one assistant response from first chunk to dispatch."""

    def __init__(self, conversation_id: UUID):
        self.conversation_id = conversation_id
        self.events: list[TraceEvent] = []
        self.start_time = time.time()
        self.chunks = 0

    def add_event(
        self,
        event_type: str,
        duration_ms: float | None = None,
        **metadata: Any,
    ) -> None:
        """Add a trace event."""
        event = TraceEvent(
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            duration_ms=duration_ms,
            metadata=metadata,
        )
        self.events.append(event)

        logger.debug(
            "trace_event",
            conversation_id=str(self.conversation_id),
            event_type=event_type,
            duration_ms=duration_ms,
            **metadata,
        )

    def record_chunk(self, size: int, decoded_kinds: list[str]) -> None:
        """Count an ingested chunk; only chunks that changed the decoded set become events."""
        self.chunks += 1
        known = {
            kind
            for event in self.events
            if event.event_type == "blocks_decoded"
            for kind in event.metadata.get("kinds", [])
        }
        new_kinds = [kind for kind in decoded_kinds if kind not in known]
        if new_kinds:
            self.add_event("blocks_decoded", chunk=self.chunks, size=size, kinds=new_kinds)

    @contextmanager
    def trace_operation(self, operation: str, **metadata: Any) -> Generator[None, None, None]:
        """Context manager to trace an operation with timing."""
        start = time.time()
        try:
            yield
        finally:
            duration_ms = (time.time() - start) * 1000
            self.add_event(operation, duration_ms=duration_ms, **metadata)

    def get_trace_summary(self) -> dict[str, Any]:
        """Counts for the response log line."""
        dispatched = [e for e in self.events if e.event_type == "action_dispatched"]
        decoded = [
            kind
            for event in self.events
            if event.event_type == "blocks_decoded"
            for kind in event.metadata.get("kinds", [])
        ]
        return {
            "elapsed_ms": (time.time() - self.start_time) * 1000,
            "chunks": self.chunks,
            "decoded_kinds": decoded,
            "actions_dispatched": len(dispatched),
            "actions_failed": sum(1 for e in dispatched if not e.metadata.get("success")),
        }
