"""Accumulates a streamed assistant reply and tracks its action blocks."""

from dataclasses import dataclass, field
from typing import Any

from iot_oracle.exceptions import DecodeError
from iot_oracle.models.actions import ActionKind
from iot_oracle.models.conversation import GroundingSource, StreamChunk
from iot_oracle.protocol.extractor import action_logger, extract_all


@dataclass(frozen=True)
class AggregatorSnapshot:
    """Point-in-time view of a reply: clean prose plus decoded payloads."""

    full_text: str
    display_text: str
    payloads: dict[ActionKind, Any]
    failures: dict[ActionKind, DecodeError] = field(default_factory=dict)
    sources: tuple[GroundingSource, ...] = ()
    completed: bool = False

    @property
    def kinds(self) -> list[ActionKind]:
        """Decoded kinds in dispatch order."""
        return [kind for kind in ActionKind if kind in self.payloads]


class StreamAggregator:
    """
    Feeds a growing reply buffer through the block extractor.

    Every chunk re-scans the whole buffer; responses are bounded to tens of
    kilobytes so nine regex passes per chunk are cheap. Payloads are sticky:
    once a kind decodes it keeps its latest good value even if a later scan
    fails to re-match it.
    """

    def __init__(self) -> None:
        self.full_text = ""
        self.display_text = ""
        self.chunk_count = 0
        self.completed = False
        self._payloads: dict[ActionKind, Any] = {}
        self._failures: dict[ActionKind, DecodeError] = {}
        self._sources: list[GroundingSource] = []

    @classmethod
    def from_text(cls, text: str) -> AggregatorSnapshot:
        """Completed snapshot of an already finished reply."""
        aggregator = cls()
        aggregator.ingest(text)
        return aggregator.complete()

    def ingest(self, chunk: StreamChunk | str) -> AggregatorSnapshot:
        """
        Append a chunk and re-extract every block kind.

        Args:
            chunk: Next piece of the stream (plain text or a StreamChunk)

        Returns:
            Snapshot with the current clean display text and all payloads so far
        """
        if self.completed:
            raise RuntimeError("Cannot ingest into a completed stream")

        if isinstance(chunk, str):
            chunk = StreamChunk(text=chunk)

        self.full_text += chunk.text
        self.chunk_count += 1

        sources = chunk.sources()
        if sources:
            self._sources = sources

        result = extract_all(self.full_text, log_failures=False)
        self.display_text = result.display_text

        for kind, payload in result.payloads.items():
            self._payloads[kind] = payload
            self._failures.pop(kind, None)

        for kind, error in result.failures.items():
            if kind not in self._failures and kind not in self._payloads:
                action_logger.log_decode_failure(kind.value, error.reason, error.raw.strip())
            if kind not in self._payloads:
                self._failures[kind] = error

        return self.snapshot()

    def complete(self) -> AggregatorSnapshot:
        """Mark end-of-stream; the returned snapshot is authoritative for dispatch."""
        self.completed = True
        return self.snapshot()

    def snapshot(self) -> AggregatorSnapshot:
        """Current view without ingesting anything."""
        return AggregatorSnapshot(
            full_text=self.full_text,
            display_text=self.display_text,
            payloads=dict(self._payloads),
            failures=dict(self._failures),
            sources=tuple(self._sources),
            completed=self.completed,
        )

    def payload(self, kind: ActionKind) -> Any:
        """Latest decoded payload for a kind, or None."""
        return self._payloads.get(kind)
