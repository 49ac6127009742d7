"""Action block kinds, payload schemas and dispatch outcomes.

Payloads arrive as camelCase JSON written by the assistant; every schema
accepts either the camelCase alias or the snake_case field name and ignores
keys it does not know about.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag
from pydantic.alias_generators import to_camel

from iot_oracle.models.inventory import ItemCondition, ItemStatus
from iot_oracle.models.project import ProjectStatus


class ActionKind(str, Enum):
    """The nine recognized action block kinds, in dispatch order."""

    PROJECT = "PROJECT"
    SUGGESTIONS = "SUGGESTIONS"
    MOVE = "MOVE"
    TRANSFER = "TRANSFER"
    PROJECT_UPDATE = "PROJECT_UPDATE"
    INVENTORY_UPDATE = "INVENTORY_UPDATE"
    PRICE_CHECK = "PRICE_CHECK"
    COMPONENT_RELATIONSHIP = "COMPONENT_RELATIONSHIP"
    COMPONENT_BUNDLE = "COMPONENT_BUNDLE"

    @property
    def start_marker(self) -> str:
        return f"/// {self.value}_JSON_START ///"

    @property
    def end_marker(self) -> str:
        return f"/// {self.value}_JSON_END ///"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").lower()


class ActionPayload(BaseModel):
    """Base for assistant-authored payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# Project suggestion


class RequestedComponent(ActionPayload):
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)


class ProjectSuggestion(ActionPayload):
    project_name: str = Field(min_length=1)
    project_description: str | None = None
    components: list[RequestedComponent] = Field(default_factory=list)


# Part suggestions


class PartSuggestion(ActionPayload):
    name: str = Field(min_length=1)
    supplier: str = ""
    price: str = ""
    link: str = ""
    status: str | None = None
    category: str | None = None
    manufacturer: str | None = None
    model_number: str | None = None
    condition: str | None = None
    purchase_price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None


PartSuggestions = list[PartSuggestion]


# Moves and transfers


class MoveComponent(ActionPayload):
    action: str = "move_component"
    source_project_id: str
    target_project_id: str
    component_name: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    reason: str | None = None


class TransferToProject(ActionPayload):
    action: str = "transfer_to_project"
    inventory_item_id: str
    target_project_id: str
    quantity: int = Field(ge=1)
    reason: str | None = None


# Updates


class ProjectUpdateFields(ActionPayload):
    status: ProjectStatus | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    description: str | None = None
    notes: str | None = None


class ProjectUpdate(ActionPayload):
    action: str = "update_project"
    project_id: str
    project_name: str | None = None
    updates: ProjectUpdateFields
    reason: str | None = None


class InventoryUpdateFields(ActionPayload):
    name: str | None = None
    quantity: int | None = Field(default=None, ge=0)
    location: str | None = None
    status: ItemStatus | None = None
    category: str | None = None
    description: str | None = None
    notes: str | None = None
    condition: ItemCondition | None = None
    manufacturer: str | None = None
    model_number: str | None = None
    serial_number: str | None = None
    supplier: str | None = None
    purchase_price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None
    purchase_date: str | None = None
    warranty_expiry: str | None = None


class InventoryUpdate(ActionPayload):
    action: Literal["update_inventory"] = "update_inventory"
    item_id: str
    item_name: str | None = None
    updates: InventoryUpdateFields
    reason: str | None = None


class InventoryAddition(ActionPayload):
    action: Literal["add_inventory"] = "add_inventory"
    item_name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=0)
    location: str | None = None
    status: str | None = None
    category: str | None = None
    condition: ItemCondition | None = None
    notes: str | None = None
    reason: str | None = None


def _inventory_action_tag(value: Any) -> str:
    if isinstance(value, dict):
        return "update" if ("itemId" in value or "item_id" in value) else "add"
    return "update" if isinstance(value, InventoryUpdate) else "add"


InventoryAction = Annotated[
    Union[
        Annotated[InventoryUpdate, Tag("update")],
        Annotated[InventoryAddition, Tag("add")],
    ],
    Discriminator(_inventory_action_tag),
]

InventoryUpdatePayload = Union[list[InventoryAction], InventoryAction]


# Price checks, relationships, bundles


class PriceCheck(ActionPayload):
    action: str = "price_check"
    item_id: str
    item_name: str | None = None
    search_query: str | None = None
    reason: str | None = None


class ComponentDescriptor(ActionPayload):
    name: str = Field(min_length=1)
    category: str | None = None
    status: str | None = None
    description: str | None = None


class ComponentRelationship(ActionPayload):
    action: str = "create_component_relationship"
    primary_component: ComponentDescriptor
    related_component: ComponentDescriptor
    relationship_type: str = "works-with"
    description: str | None = None
    is_required: bool = False
    create_separate_entries: bool = True
    reason: str | None = None


class BundleMember(ActionPayload):
    name: str = Field(min_length=1)
    category: str | None = None
    quantity: int = Field(default=1, ge=1)


class ComponentBundle(ActionPayload):
    action: str = "create_component_bundle"
    bundle_name: str = Field(min_length=1)
    bundle_description: str | None = None
    bundle_type: str | None = None
    components: list[BundleMember] = Field(min_length=1)
    reason: str | None = None


# Outcomes


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Notification(BaseModel):
    """A transient, user-facing message."""

    message: str
    level: NotificationLevel = NotificationLevel.INFO
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ActionOutcome(BaseModel):
    """Result of running one action handler."""

    kind: ActionKind
    success: bool
    message: str
    error: str | None = None
    affected_item_ids: list[str] = Field(default_factory=list)
    affected_project_ids: list[str] = Field(default_factory=list)
    execution_time_ms: float = 0.0

    def to_notification(self) -> Notification:
        return Notification(
            message=self.message,
            level=NotificationLevel.SUCCESS if self.success else NotificationLevel.ERROR,
        )
