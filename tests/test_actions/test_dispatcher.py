"""Tests for the action registry and dispatcher."""

from typing import Any

import pytest

from iot_oracle.actions.dispatcher import ActionDispatcher
from iot_oracle.actions.registry import ACTION_REGISTRY, validate
from iot_oracle.exceptions import ActionValidationError, QuantityViolationError
from iot_oracle.models.actions import (
    ActionKind,
    ActionOutcome,
    InventoryAddition,
    InventoryUpdate,
    NotificationLevel,
)
from iot_oracle.protocol.aggregator import AggregatorSnapshot


class RecordingHandlers:
    """Handler double recording call order; kinds in ``failing`` raise."""

    def __init__(self, failing: dict[ActionKind, Exception] | None = None):
        self.calls: list[ActionKind] = []
        self.failing = failing or {}
        for spec in ACTION_REGISTRY.values():
            setattr(self, spec.handler_name, self._make(spec.kind))

    def _make(self, kind: ActionKind):
        async def handler(payload: Any) -> ActionOutcome:
            self.calls.append(kind)
            if kind in self.failing:
                raise self.failing[kind]
            return ActionOutcome(kind=kind, success=True, message=f"{kind.value} done")

        return handler


PAYLOADS = {
    ActionKind.PROJECT: {"projectName": "X", "components": []},
    ActionKind.SUGGESTIONS: [{"name": "BME280", "status": "I Need"}],
    ActionKind.MOVE: {
        "sourceProjectId": "p1",
        "targetProjectId": "p2",
        "componentName": "LED",
        "quantity": 1,
    },
    ActionKind.TRANSFER: {"inventoryItemId": "led", "targetProjectId": "p1", "quantity": 1},
    ActionKind.PROJECT_UPDATE: {"projectId": "p1", "updates": {"progress": 50}},
    ActionKind.INVENTORY_UPDATE: {"itemId": "led", "updates": {"quantity": 60}},
    ActionKind.PRICE_CHECK: {"itemId": "led", "searchQuery": "LED price"},
    ActionKind.COMPONENT_RELATIONSHIP: {
        "primaryComponent": {"name": "Raspberry Pi 4"},
        "relatedComponent": {"name": "USB-C PSU"},
        "relationshipType": "requires",
    },
    ActionKind.COMPONENT_BUNDLE: {"bundleName": "Kit", "components": [{"name": "Breadboard"}]},
}


def completed(payloads: dict[ActionKind, Any]) -> AggregatorSnapshot:
    return AggregatorSnapshot(full_text="", display_text="", payloads=payloads, completed=True)


def test_registry_covers_every_kind_in_order() -> None:
    assert list(ACTION_REGISTRY) == list(ActionKind)


def test_every_sample_payload_validates() -> None:
    for kind, payload in PAYLOADS.items():
        validate(kind, payload)


def test_inventory_update_accepts_add_and_update_forms() -> None:
    single = validate(ActionKind.INVENTORY_UPDATE, PAYLOADS[ActionKind.INVENTORY_UPDATE])
    batch = validate(
        ActionKind.INVENTORY_UPDATE,
        [
            {"action": "add_inventory", "itemName": "DDR4 RAM", "quantity": 3},
            {"itemId": "led", "updates": {"notes": "restocked"}},
        ],
    )

    assert isinstance(single, InventoryUpdate)
    assert isinstance(batch[0], InventoryAddition)
    assert isinstance(batch[1], InventoryUpdate)


def test_invalid_payload_names_the_bad_field() -> None:
    with pytest.raises(ActionValidationError) as exc_info:
        validate(ActionKind.MOVE, {"sourceProjectId": "p1", "quantity": 0})

    message = str(exc_info.value)
    assert "targetProjectId" in message or "target_project_id" in message


def test_missing_handler_fails_at_construction() -> None:
    handlers = RecordingHandlers()
    delattr(handlers, "check_price")

    with pytest.raises(ValueError, match="check_price"):
        ActionDispatcher(handlers)


@pytest.mark.asyncio
async def test_dispatch_runs_kinds_in_table_order() -> None:
    handlers = RecordingHandlers()
    dispatcher = ActionDispatcher(handlers)
    shuffled = dict(reversed(list(PAYLOADS.items())))

    report = await dispatcher.dispatch(completed(shuffled))

    assert handlers.calls == list(ActionKind)
    assert len(report.outcomes) == 9
    assert len(report.notifications) == 9


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_rest() -> None:
    handlers = RecordingHandlers(
        failing={
            ActionKind.MOVE: QuantityViolationError("Not enough quantity available (has 1, requested 3)"),
            ActionKind.PRICE_CHECK: RuntimeError("boom"),
        }
    )
    dispatcher = ActionDispatcher(handlers)

    report = await dispatcher.dispatch(completed(PAYLOADS))

    assert handlers.calls == list(ActionKind)
    assert [o.kind for o in report.failed] == [ActionKind.MOVE, ActionKind.PRICE_CHECK]
    assert len(report.succeeded) == 7
    move = report.failed[0]
    assert "has 1, requested 3" in move.message
    assert move.to_notification().level == NotificationLevel.ERROR


@pytest.mark.asyncio
async def test_invalid_payload_becomes_failed_outcome() -> None:
    handlers = RecordingHandlers()
    dispatcher = ActionDispatcher(handlers)

    report = await dispatcher.dispatch(
        completed({ActionKind.TRANSFER: {"quantity": "lots"}, ActionKind.PRICE_CHECK: {"itemId": "a"}})
    )

    assert handlers.calls == [ActionKind.PRICE_CHECK]
    assert report.outcomes[0].kind == ActionKind.TRANSFER
    assert report.outcomes[0].success is False
    assert report.outcomes[1].success is True


@pytest.mark.asyncio
async def test_empty_payloads_are_skipped() -> None:
    handlers = RecordingHandlers()
    dispatcher = ActionDispatcher(handlers)

    report = await dispatcher.dispatch(
        completed({ActionKind.SUGGESTIONS: [], ActionKind.PROJECT: None})
    )

    assert handlers.calls == []
    assert report.outcomes == []


@pytest.mark.asyncio
async def test_incomplete_snapshot_is_never_dispatched() -> None:
    handlers = RecordingHandlers()
    dispatcher = ActionDispatcher(handlers)
    snapshot = AggregatorSnapshot(
        full_text="", display_text="", payloads=dict(PAYLOADS), completed=False
    )

    report = await dispatcher.dispatch(snapshot)

    assert handlers.calls == []
    assert report.outcomes == []


@pytest.mark.asyncio
async def test_auto_apply_off_leaves_actions_pending() -> None:
    handlers = RecordingHandlers()
    dispatcher = ActionDispatcher(handlers)

    report = await dispatcher.dispatch(completed(PAYLOADS), auto_apply=False)

    assert handlers.calls == []
    assert list(report.pending) == list(ActionKind)
    assert report.notifications == []

    outcome = await dispatcher.execute("MOVE", report.pending[ActionKind.MOVE])
    assert outcome.success is True
    assert handlers.calls == [ActionKind.MOVE]
