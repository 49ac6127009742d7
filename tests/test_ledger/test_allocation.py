"""Tests for the allocation ledger."""

import pytest

from iot_oracle.exceptions import (
    InvariantViolationError,
    ItemInUseError,
    LedgerError,
    QuantityViolationError,
    ReferenceNotFoundError,
)
from iot_oracle.ledger.allocation import AllocationLedger, AllocationRequest
from iot_oracle.models.inventory import InventoryItem, ProjectAllocation
from iot_oracle.models.project import ComponentSource, Project, ProjectComponent


def test_allocate_reserves_stock_and_adds_component(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    entry = ledger.allocate(esp32.id, "p1", "Night Light", 4)

    assert entry.quantity == 4
    assert esp32.allocated_quantity == 4
    assert esp32.available_quantity == 6
    component = ledger.get_project("p1").components[0]
    assert component.source == ComponentSource.INVENTORY
    assert component.inventory_item_id == esp32.id
    assert component.quantity == 4
    ledger.verify()


def test_allocate_merges_repeated_allocations(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 2)
    ledger.allocate(esp32.id, "p1", "Night Light", 3)

    assert len(esp32.used_in_projects) == 1
    assert esp32.used_in_projects[0].quantity == 5
    assert esp32.allocated_quantity == 5
    assert len(ledger.get_project("p1").components) == 1
    ledger.verify()


def test_allocate_more_than_available_changes_nothing(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 8)

    with pytest.raises(QuantityViolationError):
        ledger.allocate(esp32.id, "p2", "Door Sensor", 3)

    assert esp32.allocated_quantity == 8
    assert ledger.get_project("p2").components == []


def test_allocate_unknown_item(ledger: AllocationLedger) -> None:
    with pytest.raises(ReferenceNotFoundError) as exc_info:
        ledger.allocate("missing", "p1", "Night Light", 1)

    assert "missing" in str(exc_info.value)


def test_allocate_batch_is_all_or_nothing(
    ledger: AllocationLedger, esp32: InventoryItem, led: InventoryItem
) -> None:
    with pytest.raises(QuantityViolationError):
        ledger.allocate_batch(
            [
                AllocationRequest(item_id=led.id, project_id="p1", quantity=5),
                AllocationRequest(item_id=esp32.id, project_id="p1", quantity=6),
                AllocationRequest(item_id=esp32.id, project_id="p2", quantity=6),
            ]
        )

    assert led.allocated_quantity == 0
    assert esp32.allocated_quantity == 0
    assert ledger.get_project("p1").components == []


def test_allocate_batch_applies_all(
    ledger: AllocationLedger, esp32: InventoryItem, led: InventoryItem
) -> None:
    touched = ledger.allocate_batch(
        [
            AllocationRequest(item_id=led.id, project_id="p1", quantity=5),
            AllocationRequest(item_id=esp32.id, project_id="p2", quantity=2),
        ]
    )

    assert set(touched) == {led.id, esp32.id}
    assert led.allocated_quantity == 5
    assert esp32.allocated_quantity == 2
    ledger.verify()


def test_deallocate_releases_and_is_idempotent(
    ledger: AllocationLedger, esp32: InventoryItem, led: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 3)
    ledger.allocate(led.id, "p1", "Night Light", 10)
    ledger.allocate(esp32.id, "p2", "Door Sensor", 2)

    touched = ledger.deallocate("p1")
    after_first = (esp32.allocated_quantity, led.allocated_quantity)
    touched_again = ledger.deallocate("p1")

    assert set(touched) == {esp32.id, led.id}
    assert touched_again == []
    assert after_first == (2, 0)
    assert (esp32.allocated_quantity, led.allocated_quantity) == (2, 0)
    assert [entry.project_id for entry in esp32.used_in_projects] == ["p2"]
    # The released lines are still needed, just no longer covered by stock.
    assert all(
        c.source == ComponentSource.AI_SUGGESTED and c.inventory_item_id is None
        for c in ledger.get_project("p1").components
    )
    ledger.verify()


def test_deallocate_floors_at_zero() -> None:
    item = InventoryItem(id="x", name="Relay", quantity=5)
    item.allocated_quantity = 1
    item.used_in_projects = [ProjectAllocation(project_id="gone", project_name="Gone", quantity=3)]
    ledger = AllocationLedger(items=[item])

    ledger.deallocate("gone")

    assert item.allocated_quantity == 0
    assert item.used_in_projects == []


def test_delete_project_cascades_deallocation(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 4)

    project, touched = ledger.delete_project("p1")

    assert project.id == "p1"
    assert touched == [esp32.id]
    assert "p1" not in ledger.projects
    assert esp32.allocated_quantity == 0
    assert esp32.available_quantity == 10
    ledger.verify()


def test_move_exact_quantity_removes_source_line(ledger: AllocationLedger) -> None:
    ledger.add_component("p1", "LED", 3)
    ledger.add_component("p2", "led", 2)

    source, target = ledger.move("p1", "p2", "LED", 3)

    assert source.find_component("LED") is None
    assert len(target.components) == 1
    assert target.components[0].quantity == 5


def test_move_partial_quantity_creates_target_line(ledger: AllocationLedger) -> None:
    ledger.add_component("p1", "Buzzer", 4)

    source, target = ledger.move("p1", "p2", "buzzer", 1)

    assert source.components[0].quantity == 3
    assert target.components[0].name == "Buzzer"
    assert target.components[0].quantity == 1
    assert target.components[0].source == ComponentSource.MANUAL


def test_move_inventory_component_carries_allocation(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 4)

    ledger.move("p1", "p2", "ESP32", 1)

    assert esp32.allocation_for("p1").quantity == 3
    assert esp32.allocation_for("p2").quantity == 1
    assert esp32.allocated_quantity == 4
    target_line = ledger.get_project("p2").components[0]
    assert target_line.is_allocated
    assert target_line.inventory_item_id == esp32.id
    ledger.verify()


def test_move_too_many_changes_nothing(ledger: AllocationLedger) -> None:
    ledger.add_component("p1", "LED", 3)

    with pytest.raises(QuantityViolationError) as exc_info:
        ledger.move("p1", "p2", "LED", 5)

    assert "has 3, requested 5" in str(exc_info.value)
    assert ledger.get_project("p1").components[0].quantity == 3
    assert ledger.get_project("p2").components == []


def test_move_missing_component_or_project(ledger: AllocationLedger) -> None:
    with pytest.raises(ReferenceNotFoundError):
        ledger.move("p1", "p2", "Servo", 1)
    with pytest.raises(ReferenceNotFoundError):
        ledger.move("p1", "nope", "Servo", 1)


def test_transfer_takes_stock_into_project(
    ledger: AllocationLedger, led: InventoryItem
) -> None:
    item, target = ledger.transfer(led.id, "p2", 5)

    assert item.quantity == 45
    assert item.allocated_quantity == 0
    line = target.components[0]
    assert line.name == "LED"
    assert line.quantity == 5
    assert line.source == ComponentSource.MANUAL
    assert line.inventory_item_id is None


def test_transfer_merges_with_untracked_line(
    ledger: AllocationLedger, led: InventoryItem
) -> None:
    ledger.transfer(led.id, "p2", 5)
    ledger.transfer(led.id, "p2", 2)

    assert len(ledger.get_project("p2").components) == 1
    assert ledger.get_project("p2").components[0].quantity == 7
    assert led.quantity == 43


def test_transfer_cannot_take_reserved_stock(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 8)

    with pytest.raises(QuantityViolationError):
        ledger.transfer(esp32.id, "p2", 3)

    assert esp32.quantity == 10
    assert ledger.get_project("p2").components == []


def test_transfer_more_than_held(ledger: AllocationLedger, esp32: InventoryItem) -> None:
    with pytest.raises(QuantityViolationError) as exc_info:
        ledger.transfer(esp32.id, "p2", 11)

    assert "has 10, requested 11" in str(exc_info.value)


def test_update_item_rejects_quantity_below_allocation(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 6)

    with pytest.raises(QuantityViolationError):
        ledger.update_item(esp32.id, {"quantity": 5})

    updated = ledger.update_item(esp32.id, {"quantity": 6, "location": "Shelf"})
    assert updated.available_quantity == 0
    assert updated.location == "Shelf"
    assert updated.allocated_quantity == 6


def test_update_item_rejects_bookkeeping_fields(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    with pytest.raises(LedgerError):
        ledger.update_item(esp32.id, {"allocated_quantity": 3})


def test_update_items_is_all_or_nothing(
    ledger: AllocationLedger, esp32: InventoryItem, led: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 5)

    with pytest.raises(QuantityViolationError):
        ledger.update_items([(led.id, {"quantity": 7}), (esp32.id, {"quantity": 2})])

    assert ledger.get_item(led.id).quantity == 50
    assert ledger.get_item(esp32.id).quantity == 10

    updated = ledger.update_items([(led.id, {"quantity": 7}), (led.id, {"location": "Bin 4"})])
    assert updated[-1].quantity == 7
    assert ledger.get_item(led.id).location == "Bin 4"


def test_update_with_invalid_value_is_a_ledger_error(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    with pytest.raises(LedgerError, match="name"):
        ledger.update_item(esp32.id, {"name": None})

    with pytest.raises(LedgerError, match="name"):
        ledger.update_project("p1", {"name": None})

    assert ledger.get_item(esp32.id).name == "ESP32"
    assert ledger.get_project("p1").name == "Night Light"


def test_delete_item_in_use_requires_force(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 2)

    with pytest.raises(ItemInUseError):
        ledger.delete_item(esp32.id)

    ledger.delete_item(esp32.id, force=True)

    assert esp32.id not in ledger.items
    line = ledger.get_project("p1").components[0]
    assert line.source == ComponentSource.AI_SUGGESTED
    assert line.inventory_item_id is None
    ledger.verify()


def test_add_project_reserves_inventory_components(
    ledger: AllocationLedger, led: InventoryItem
) -> None:
    project = Project(
        name="Sign",
        components=[
            ProjectComponent(
                name="LED", quantity=20, source=ComponentSource.INVENTORY, inventory_item_id=led.id
            ),
            ProjectComponent(name="Acrylic", quantity=1),
        ],
    )

    ledger.add_project(project)

    assert led.allocation_for(project.id).quantity == 20
    ledger.verify()


def test_add_project_rejects_insufficient_stock(
    ledger: AllocationLedger, led: InventoryItem
) -> None:
    project = Project(
        name="Wall",
        components=[
            ProjectComponent(
                name="LED", quantity=60, source=ComponentSource.INVENTORY, inventory_item_id=led.id
            )
        ],
    )

    with pytest.raises(QuantityViolationError):
        ledger.add_project(project)

    assert project.id not in ledger.projects
    assert led.allocated_quantity == 0


def test_sub_project_is_linked_to_parent(ledger: AllocationLedger) -> None:
    child = ledger.add_project(Project(name="Phase 1", parent_project_id="p1", is_sub_project=True))

    assert ledger.get_project("p1").sub_projects == [child.id]

    ledger.delete_project("p1")
    assert child.parent_project_id is None
    assert child.is_sub_project is False


def test_rename_project_updates_allocation_labels(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 1)

    ledger.update_project("p1", {"name": "Moon Lamp"})

    assert esp32.allocation_for("p1").project_name == "Moon Lamp"


def test_checkout_consumes_unallocated_stock(
    ledger: AllocationLedger, esp32: InventoryItem, led: InventoryItem
) -> None:
    ledger.allocate(esp32.id, "p1", "Night Light", 7)

    with pytest.raises(QuantityViolationError):
        ledger.checkout([(esp32.id, 2), (esp32.id, 2), (led.id, 1)])
    assert led.quantity == 50

    ledger.checkout([(esp32.id, 3), (led.id, 10)])
    assert esp32.quantity == 7
    assert esp32.available_quantity == 0
    assert led.quantity == 40


def test_verify_reports_broken_bookkeeping(
    ledger: AllocationLedger, esp32: InventoryItem
) -> None:
    esp32.allocated_quantity = 3

    with pytest.raises(InvariantViolationError) as exc_info:
        ledger.verify()

    assert "ESP32" in str(exc_info.value)
