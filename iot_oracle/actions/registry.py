"""Binds every action kind to its payload schema and handler."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter, ValidationError

from iot_oracle.exceptions import ActionValidationError
from iot_oracle.models.actions import (
    ActionKind,
    ComponentBundle,
    ComponentRelationship,
    InventoryUpdatePayload,
    MoveComponent,
    PartSuggestions,
    PriceCheck,
    ProjectSuggestion,
    ProjectUpdate,
    TransferToProject,
)


@dataclass(frozen=True)
class ActionSpec:
    """Schema and handler method name for one action kind."""

    kind: ActionKind
    payload_type: Any
    handler_name: str
    description: str
    adapter: TypeAdapter = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "adapter", TypeAdapter(self.payload_type))

    def validate(self, payload: Any) -> Any:
        """Coerce a decoded JSON payload into its typed form."""
        try:
            return self.adapter.validate_python(payload)
        except ValidationError as e:
            raise ActionValidationError(self.kind.value, e.errors()) from e


ACTION_REGISTRY: dict[ActionKind, ActionSpec] = {
    spec.kind: spec
    for spec in (
        ActionSpec(
            ActionKind.PROJECT,
            ProjectSuggestion,
            "create_project",
            "Create a project, reserving owned parts",
        ),
        ActionSpec(
            ActionKind.SUGGESTIONS,
            PartSuggestions,
            "add_part_suggestions",
            "Add suggested parts to inventory",
        ),
        ActionSpec(
            ActionKind.MOVE,
            MoveComponent,
            "move_component",
            "Move a component between projects",
        ),
        ActionSpec(
            ActionKind.TRANSFER,
            TransferToProject,
            "transfer_to_project",
            "Take stock out of inventory into a project",
        ),
        ActionSpec(
            ActionKind.PROJECT_UPDATE,
            ProjectUpdate,
            "update_project",
            "Update project status, progress or notes",
        ),
        ActionSpec(
            ActionKind.INVENTORY_UPDATE,
            InventoryUpdatePayload,
            "update_inventory",
            "Update or add inventory records",
        ),
        ActionSpec(
            ActionKind.PRICE_CHECK,
            PriceCheck,
            "check_price",
            "Refresh market prices for an item",
        ),
        ActionSpec(
            ActionKind.COMPONENT_RELATIONSHIP,
            ComponentRelationship,
            "create_component_relationship",
            "Record two components that work together",
        ),
        ActionSpec(
            ActionKind.COMPONENT_BUNDLE,
            ComponentBundle,
            "create_component_bundle",
            "Add every member of a kit as owned inventory",
        ),
    )
}


def get_spec(kind: ActionKind | str) -> ActionSpec:
    """Look up the registry entry for a kind (enum or its string value)."""
    return ACTION_REGISTRY[ActionKind(kind)]


def validate(kind: ActionKind | str, payload: Any) -> Any:
    """Validate a decoded payload against its kind's schema."""
    return get_spec(kind).validate(payload)
