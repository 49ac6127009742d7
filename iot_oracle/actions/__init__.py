"""Action registry, handlers and dispatcher."""

from iot_oracle.actions.dispatcher import ActionDispatcher, DispatchReport
from iot_oracle.actions.handlers import ActionHandlers
from iot_oracle.actions.registry import ACTION_REGISTRY, ActionSpec, get_spec, validate

__all__ = [
    "ACTION_REGISTRY",
    "ActionDispatcher",
    "ActionHandlers",
    "ActionSpec",
    "DispatchReport",
    "get_spec",
    "validate",
]
