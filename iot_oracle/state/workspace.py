"""The running application's ledger, persistence and action machinery."""

from typing import Any

from iot_oracle.actions.dispatcher import ActionDispatcher, DispatchReport
from iot_oracle.actions.handlers import ActionHandlers, ProjectAnalyst
from iot_oracle.agents.analyst import ProjectAnalystAgent
from iot_oracle.config import Settings, get_settings
from iot_oracle.exceptions import InvariantViolationError
from iot_oracle.ledger.allocation import AllocationLedger
from iot_oracle.ledger.composer import ProjectComposer
from iot_oracle.models.actions import ActionKind, ActionOutcome
from iot_oracle.protocol.aggregator import AggregatorSnapshot
from iot_oracle.state.manager import StateManager, get_state_manager
from iot_oracle.state.repository import LedgerRepository
from iot_oracle.utils.logging import get_logger
from iot_oracle.utils.tracing import ResponseTracer

logger = get_logger(__name__)


class Workspace:
    """Owns the single AllocationLedger and everything that mutates it."""

    def __init__(
        self,
        state_manager: StateManager,
        analyst: ProjectAnalyst | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.state = state_manager
        self.repository = LedgerRepository(state_manager, self.settings)
        self.ledger = AllocationLedger()
        self.composer = ProjectComposer(self.ledger)
        self.handlers = ActionHandlers(
            self.ledger,
            self.composer,
            self.repository,
            analyst=analyst,
            settings=self.settings,
        )
        self.dispatcher = ActionDispatcher(self.handlers)

    async def load(self) -> None:
        """Replace the ledger's contents with what is stored."""
        items, projects = await self.repository.load()
        self.ledger.items = {item.id: item for item in items}
        self.ledger.projects = {project.id: project for project in projects}

        try:
            self.ledger.verify()
        except InvariantViolationError as e:
            logger.error("stored_ledger_inconsistent", error=str(e))

    async def get_auto_populate(self) -> bool:
        return await self.repository.get_auto_populate()

    async def set_auto_populate(self, enabled: bool) -> bool:
        await self.repository.set_auto_populate(enabled)
        return enabled

    async def dispatch(
        self,
        snapshot: AggregatorSnapshot,
        tracer: ResponseTracer | None = None,
    ) -> DispatchReport:
        """
        Apply a completed reply's actions under the current auto-apply preference.

        Queued persistence retries are flushed first so remote state catches up
        before new writes are issued.
        """
        if self.repository.pending:
            await self.repository.retry_pending()

        auto_apply = await self.get_auto_populate()
        return await self.dispatcher.dispatch(snapshot, auto_apply=auto_apply, tracer=tracer)

    async def execute(self, kind: ActionKind | str, payload: Any) -> ActionOutcome:
        """One-click execution of a single pending action."""
        return await self.dispatcher.execute(kind, payload)

    async def sync(self) -> dict[str, int]:
        """Retry failed remote writes."""
        flushed = await self.repository.retry_pending()
        return {"flushed": flushed, "pending": len(self.repository.pending)}


# Global workspace instance
_workspace: Workspace | None = None


async def get_workspace() -> Workspace:
    """Get the global workspace, loading it from Redis on first use."""
    global _workspace
    if _workspace is None:
        workspace = Workspace(await get_state_manager(), analyst=ProjectAnalystAgent())
        await workspace.load()
        _workspace = workspace
    return _workspace
