"""Runs decoded action blocks against their handlers."""

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from iot_oracle.actions.registry import ACTION_REGISTRY, ActionSpec
from iot_oracle.exceptions import ActionValidationError, LedgerError
from iot_oracle.models.actions import ActionKind, ActionOutcome, Notification
from iot_oracle.protocol.aggregator import AggregatorSnapshot
from iot_oracle.utils.logging import ActionLogger
from iot_oracle.utils.tracing import ResponseTracer

Handler = Callable[[Any], Awaitable[ActionOutcome]]


@dataclass
class DispatchReport:
    """What one dispatch pass did, or left pending when auto-apply is off."""

    outcomes: list[ActionOutcome] = field(default_factory=list)
    pending: dict[ActionKind, Any] = field(default_factory=dict)
    auto_applied: bool = True

    @property
    def notifications(self) -> list[Notification]:
        return [outcome.to_notification() for outcome in self.outcomes]

    @property
    def succeeded(self) -> list[ActionOutcome]:
        return [outcome for outcome in self.outcomes if outcome.success]

    @property
    def failed(self) -> list[ActionOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]


def _is_empty(payload: Any) -> bool:
    return payload is None or (isinstance(payload, list) and not payload)


class ActionDispatcher:
    """
    Executes every payload of a completed reply, in registry order.

    ``handlers`` is any object exposing one coroutine method per registry
    entry, named by ``ActionSpec.handler_name``. A missing handler is a
    construction-time error so no kind can silently go unhandled.
    """

    def __init__(self, handlers: Any, registry: dict[ActionKind, ActionSpec] | None = None):
        self.registry = registry or ACTION_REGISTRY
        self.action_logger = ActionLogger("action_dispatcher")

        missing = [kind for kind in ActionKind if kind not in self.registry]
        if missing:
            raise ValueError(f"No registry entry for {[kind.value for kind in missing]}")

        self._handlers: dict[ActionKind, Handler] = {}
        for kind, spec in self.registry.items():
            handler = getattr(handlers, spec.handler_name, None)
            if handler is None or not callable(handler):
                raise ValueError(
                    f"{type(handlers).__name__} has no handler '{spec.handler_name}' "
                    f"for {kind.value}"
                )
            self._handlers[kind] = handler

    async def dispatch(
        self,
        snapshot: AggregatorSnapshot,
        auto_apply: bool = True,
        tracer: ResponseTracer | None = None,
    ) -> DispatchReport:
        """
        Run the payloads of a completed snapshot.

        Args:
            snapshot: Aggregator snapshot; incomplete snapshots are ignored
            auto_apply: When False nothing runs and payloads are returned as pending
            tracer: Optional tracer for the response

        Returns:
            DispatchReport with one outcome per executed kind
        """
        report = DispatchReport(auto_applied=auto_apply)
        if not snapshot.completed:
            self.action_logger.logger.warning(
                "dispatch_skipped_incomplete", kinds=[k.value for k in snapshot.kinds]
            )
            return report

        for kind in self.registry:
            payload = snapshot.payloads.get(kind)
            if _is_empty(payload):
                continue
            if not auto_apply:
                report.pending[kind] = payload
                continue
            outcome = await self.execute(kind, payload)
            report.outcomes.append(outcome)
            if tracer:
                tracer.add_event(
                    "action_dispatched",
                    duration_ms=outcome.execution_time_ms,
                    kind=kind.value,
                    success=outcome.success,
                )

        return report

    async def execute(self, kind: ActionKind | str, payload: Any) -> ActionOutcome:
        """
        Validate and run a single payload; never raises for handler failures.

        Also the entry point for one-click manual execution of a pending action.
        """
        kind = ActionKind(kind)
        spec = self.registry[kind]
        start_time = time.time()

        try:
            typed = spec.validate(payload)
            outcome = await self._handlers[kind](typed)
        except ActionValidationError as e:
            outcome = self._failure(kind, f"Could not apply {kind.label}: invalid data", e)
        except LedgerError as e:
            outcome = self._failure(kind, f"Could not apply {kind.label}: {e}", e)
        except Exception as e:
            outcome = self._failure(kind, f"Could not apply {kind.label}", e)

        outcome.execution_time_ms = (time.time() - start_time) * 1000
        self.action_logger.log_dispatch(
            kind=kind.value,
            success=outcome.success,
            duration_ms=outcome.execution_time_ms,
            message=outcome.message,
            error=outcome.error,
        )
        return outcome

    @staticmethod
    def _failure(kind: ActionKind, message: str, error: Exception) -> ActionOutcome:
        return ActionOutcome(kind=kind, success=False, message=message, error=str(error))
