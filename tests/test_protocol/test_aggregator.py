"""Tests for the streaming aggregator."""

import pytest

from iot_oracle.models.actions import ActionKind
from iot_oracle.models.conversation import StreamChunk
from iot_oracle.protocol.aggregator import StreamAggregator

FENCE = "`" * 3


def chunks_of(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


def test_payload_appears_once_block_is_complete() -> None:
    reply = (
        "Building a night light.\n"
        f"{FENCE}json\n/// PROJECT_JSON_START ///\n"
        '{"projectName": "Night Light", "components": [{"name": "LED", "quantity": 3}]}\n'
        f"/// PROJECT_JSON_END ///\n{FENCE}\nHave fun!"
    )
    aggregator = StreamAggregator()

    seen_at = None
    for index, chunk in enumerate(chunks_of(reply, 7)):
        snapshot = aggregator.ingest(chunk)
        if seen_at is None and ActionKind.PROJECT in snapshot.payloads:
            seen_at = index

    final = aggregator.complete()

    assert seen_at is not None
    assert final.completed is True
    assert final.full_text == reply
    assert final.payloads[ActionKind.PROJECT]["projectName"] == "Night Light"
    assert final.display_text == "Building a night light.\n\nHave fun!"
    assert aggregator.chunk_count == len(chunks_of(reply, 7))


def test_partial_block_is_not_decoded_and_stays_visible() -> None:
    aggregator = StreamAggregator()

    snapshot = aggregator.ingest('Sure. /// MOVE_JSON_START ///\n{"sourceProjectId": "p1"')

    assert snapshot.payloads == {}
    assert "MOVE_JSON_START" in snapshot.display_text
    assert snapshot.completed is False


def test_payloads_are_sticky() -> None:
    aggregator = StreamAggregator()
    aggregator.ingest('/// PRICE_CHECK_JSON_START ///{"itemId": "a"}/// PRICE_CHECK_JSON_END ///')
    # A later fenced block of the same kind takes priority and fails to decode.
    snapshot = aggregator.ingest(
        f"\n{FENCE}json\n/// PRICE_CHECK_JSON_START ///\n{{broken\n/// PRICE_CHECK_JSON_END ///\n{FENCE}"
    )

    assert snapshot.payloads[ActionKind.PRICE_CHECK] == {"itemId": "a"}
    assert ActionKind.PRICE_CHECK not in snapshot.failures


def test_decode_failure_is_reported_for_completed_stream() -> None:
    snapshot = StreamAggregator.from_text(
        "/// SUGGESTIONS_JSON_START ///[{'name': 'bad quotes'}]/// SUGGESTIONS_JSON_END ///"
    )

    assert snapshot.completed is True
    assert snapshot.payloads == {}
    assert ActionKind.SUGGESTIONS in snapshot.failures
    assert "SUGGESTIONS_JSON_START" in snapshot.display_text


def test_kinds_follow_dispatch_order() -> None:
    text = (
        '/// COMPONENT_BUNDLE_JSON_START ///{"bundleName": "Kit", "components": []}'
        "/// COMPONENT_BUNDLE_JSON_END ///\n"
        '/// PROJECT_JSON_START ///{"projectName": "X", "components": []}/// PROJECT_JSON_END ///'
    )

    snapshot = StreamAggregator.from_text(text)

    assert snapshot.kinds == [ActionKind.PROJECT, ActionKind.COMPONENT_BUNDLE]


def test_grounding_sources_are_kept() -> None:
    aggregator = StreamAggregator()
    aggregator.ingest(
        StreamChunk(
            text="Prices vary. ",
            grounding_metadata={
                "grounding_chunks": [{"web": {"uri": "https://example.com/esp32", "title": "ESP32"}}]
            },
        )
    )
    snapshot = aggregator.ingest(StreamChunk(text="Check a few shops."))

    assert [source.uri for source in snapshot.sources] == ["https://example.com/esp32"]


def test_ingest_after_complete_is_rejected() -> None:
    aggregator = StreamAggregator()
    aggregator.ingest("done")
    aggregator.complete()

    with pytest.raises(RuntimeError):
        aggregator.ingest("more")
