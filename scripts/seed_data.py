"""Seed a starter inventory and a sample project."""

import asyncio
from decimal import Decimal

from iot_oracle.ledger.allocation import AllocationLedger
from iot_oracle.models.inventory import InventoryItem, ItemCondition, ItemStatus
from iot_oracle.models.project import ComponentSource, Project, ProjectComponent, ProjectStatus
from iot_oracle.state.manager import StateManager
from iot_oracle.state.repository import LedgerRepository


def starter_inventory() -> list[InventoryItem]:
    """A maker's bench of common parts."""
    return [
        InventoryItem(
            name="ESP32 DevKit",
            quantity=10,
            category="Microcontroller",
            location="Drawer A1",
            manufacturer="Espressif",
            purchase_price=Decimal("6.50"),
            currency="USD",
            condition=ItemCondition.NEW,
        ),
        InventoryItem(
            name="Arduino Uno",
            quantity=3,
            category="Microcontroller",
            location="Drawer A1",
            manufacturer="Arduino",
            purchase_price=Decimal("23.00"),
            currency="USD",
        ),
        InventoryItem(
            name="BME280",
            quantity=4,
            category="Sensor",
            location="Drawer B2",
            purchase_price=Decimal("9.95"),
            currency="USD",
        ),
        InventoryItem(
            name="LED",
            quantity=100,
            category="Passive",
            location="Parts bin 3",
        ),
        InventoryItem(
            name="220 Ohm Resistor",
            quantity=200,
            category="Passive",
            location="Parts bin 4",
        ),
        InventoryItem(
            name="Raspberry Pi 4",
            quantity=1,
            status=ItemStatus.WANT,
            category="SBC",
            location="To be purchased",
        ),
    ]


async def seed_inventory_and_projects() -> None:
    """Seed inventory items and one project that reserves some of them."""
    print("Seeding inventory and projects...")

    state_manager = StateManager()
    await state_manager.connect()
    repository = LedgerRepository(state_manager)
    ledger = AllocationLedger()

    for item in starter_inventory():
        ledger.add_item(item)
        print(f"  ✓ Added {item.name} (qty: {item.quantity}, {item.status.value})")

    esp32 = ledger.find_item_by_name("ESP32 DevKit")
    bme280 = ledger.find_item_by_name("BME280")
    project = Project(
        name="Weather Station",
        description="Logs temperature, humidity and pressure to the cloud",
        status=ProjectStatus.IN_PROGRESS,
        progress=20,
        tags=["sensors", "wifi"],
        components=[
            ProjectComponent(
                name=esp32.name,
                quantity=1,
                source=ComponentSource.INVENTORY,
                inventory_item_id=esp32.id,
            ),
            ProjectComponent(
                name=bme280.name,
                quantity=1,
                source=ComponentSource.INVENTORY,
                inventory_item_id=bme280.id,
            ),
            ProjectComponent(name="Solar Panel 5V", quantity=1, source=ComponentSource.AI_SUGGESTED),
        ],
    )
    ledger.add_project(project)
    ledger.verify()
    print(f"  ✓ Added project {project.name} ({len(project.components)} components)")

    await repository.save_items(ledger.list_items())
    await repository.save_projects(ledger.list_projects())
    await state_manager.disconnect()

    if repository.pending:
        print(f"✗ {len(repository.pending)} writes failed, see logs\n")
    else:
        print("✓ Inventory and projects seeded successfully\n")


async def main() -> None:
    """Seed all data."""
    print("\n" + "=" * 50)
    print("  Seeding IoT Oracle Data")
    print("=" * 50 + "\n")

    await seed_inventory_and_projects()


if __name__ == "__main__":
    asyncio.run(main())
