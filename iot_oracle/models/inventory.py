"""Inventory management models."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate an opaque entity identifier."""
    return uuid4().hex


class ItemStatus(str, Enum):
    """Ownership status of an inventory item."""

    HAVE = "I Have"
    WANT = "I Want"
    NEED = "I Need"
    SALVAGED = "I Salvaged"
    RETURNED = "I Returned"
    DISCARDED = "Discarded"
    GIVEN_AWAY = "Given Away"

    @classmethod
    def from_suggestion(cls, value: str | None) -> "ItemStatus":
        """Map an assistant-suggested status onto Need/Have, defaulting to Want."""
        if value == cls.NEED.value:
            return cls.NEED
        if value == cls.HAVE.value:
            return cls.HAVE
        return cls.WANT


class ItemCondition(str, Enum):
    """Physical condition of an item."""

    NEW = "New"
    USED = "Used"
    REFURBISHED = "Refurbished"
    DAMAGED = "Damaged"
    UNKNOWN = "Unknown"


class ProjectAllocation(BaseModel):
    """Quantity of an item reserved by one project."""

    project_id: str
    project_name: str
    quantity: int = Field(ge=1)


class MarketDataItem(BaseModel):
    """A single supplier quote for an item."""

    supplier: str
    price: str
    link: str = ""
    original_price: str | None = None
    currency: str | None = None


class ComponentLink(BaseModel):
    """A works-with relationship from one item to another."""

    component_id: str
    relationship_type: str = "works-with"
    description: str | None = None
    is_required: bool = False


class InventoryItem(BaseModel):
    """Inventory item with allocation bookkeeping.

    ``allocated_quantity`` and ``used_in_projects`` are owned by the
    allocation ledger; everything else may be edited directly.
    """

    id: str = Field(default_factory=new_id)
    name: str
    quantity: int = Field(default=1, ge=0)
    status: ItemStatus = ItemStatus.HAVE
    category: str | None = None
    location: str = ""
    description: str | None = None
    notes: str | None = None
    source: str | None = None

    # Allocation bookkeeping
    allocated_quantity: int = Field(default=0, ge=0)
    used_in_projects: list[ProjectAllocation] = Field(default_factory=list)

    # Purchase tracking
    manufacturer: str | None = None
    model_number: str | None = None
    serial_number: str | None = None
    supplier: str | None = None
    purchase_price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None
    purchase_date: str | None = None
    warranty_expiry: str | None = None
    condition: ItemCondition | None = None

    # Market intelligence
    market_data: list[MarketDataItem] = Field(default_factory=list)
    last_refreshed: datetime | None = None

    # Relationships
    related_components: list[ComponentLink] = Field(default_factory=list)
    parent_component_id: str | None = None

    created_at: datetime = Field(default_factory=_utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def available_quantity(self) -> int:
        """Quantity not reserved by any project."""
        return self.quantity - self.allocated_quantity

    def allocation_for(self, project_id: str) -> ProjectAllocation | None:
        """Return this item's allocation entry for a project, if any."""
        for entry in self.used_in_projects:
            if entry.project_id == project_id:
                return entry
        return None

    def allocation_problems(self) -> list[str]:
        """Describe every way the allocation bookkeeping fails to add up."""
        problems = []
        total = sum(entry.quantity for entry in self.used_in_projects)
        if total != self.allocated_quantity:
            problems.append(
                f"allocated {self.allocated_quantity} but projects hold {total}"
            )
        if self.allocated_quantity > self.quantity:
            problems.append(
                f"allocated {self.allocated_quantity} exceeds quantity {self.quantity}"
            )
        project_ids = [entry.project_id for entry in self.used_in_projects]
        if len(project_ids) != len(set(project_ids)):
            problems.append("duplicate project entries")
        return problems

    def is_price_stale(self, max_age_hours: int, now: datetime | None = None) -> bool:
        """Check whether market data is missing or older than the given age."""
        if self.last_refreshed is None:
            return True
        refreshed = self.last_refreshed
        if refreshed.tzinfo is None:
            refreshed = refreshed.replace(tzinfo=timezone.utc)
        now = now or _utcnow()
        return (now - refreshed).total_seconds() > max_age_hours * 3600
