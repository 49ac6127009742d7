"""Turns a requested bill of materials into a project plus planned allocations."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from iot_oracle.ledger.allocation import AllocationLedger, AllocationRequest
from iot_oracle.models.actions import RequestedComponent
from iot_oracle.models.inventory import InventoryItem, ItemStatus
from iot_oracle.models.project import ComponentSource, Project, ProjectComponent, ProjectStatus
from iot_oracle.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CompositionResult:
    """A new, not yet inserted project and the stock it should reserve."""

    project: Project
    allocations: list[AllocationRequest] = field(default_factory=list)

    @property
    def from_inventory(self) -> int:
        return sum(allocation.quantity for allocation in self.allocations)

    @property
    def to_acquire(self) -> int:
        return sum(
            component.quantity
            for component in self.project.components
            if component.source == ComponentSource.AI_SUGGESTED
        )


class ProjectComposer:
    """
    Matches requested components against owned inventory.

    Each request is satisfied from the first ``I Have`` item with the same
    name (case-insensitive) as far as its unallocated stock allows, counting
    what earlier requests in the same composition already planned to take.
    Whatever cannot be covered becomes an ai-suggested line.
    """

    def __init__(self, ledger: AllocationLedger):
        self.ledger = ledger

    def compose(
        self,
        project_name: str,
        components: Iterable[RequestedComponent],
        description: str | None = None,
    ) -> CompositionResult:
        """
        Build a project from requested components.

        Args:
            project_name: Name for the new project
            components: Requested components and quantities
            description: Optional project description

        Returns:
            CompositionResult with the project and allocations keyed to its id
        """
        components = list(components)
        project = Project(
            name=project_name,
            description=description
            or f"AI-suggested project created on {datetime.now(timezone.utc):%Y-%m-%d}",
            status=ProjectStatus.IN_PROGRESS,
            notes=self._notes(components),
        )

        planned: dict[str, int] = defaultdict(int)
        allocations: list[AllocationRequest] = []

        for requested in components:
            item = self.ledger.find_item_by_name(requested.name, status=ItemStatus.HAVE)
            available = 0
            if item is not None:
                available = max(0, item.available_quantity - planned[item.id])

            use = min(requested.quantity, available)
            if use > 0:
                planned[item.id] += use
                self._add_line(project, item.name, use, ComponentSource.INVENTORY, item)
                allocations.append(
                    AllocationRequest(item_id=item.id, project_id=project.id, quantity=use)
                )

            remainder = requested.quantity - use
            if remainder > 0:
                self._add_line(
                    project, requested.name, remainder, ComponentSource.AI_SUGGESTED, None
                )

        result = CompositionResult(project=project, allocations=allocations)
        logger.debug(
            "project_composed",
            project_name=project_name,
            requested=len(components),
            from_inventory=result.from_inventory,
            to_acquire=result.to_acquire,
        )
        return result

    @staticmethod
    def _add_line(
        project: Project,
        name: str,
        quantity: int,
        source: ComponentSource,
        item: InventoryItem | None,
    ) -> None:
        # Repeated requests for the same part collapse into one line per source.
        item_id = item.id if item is not None else None
        index = project.find_component(name, item_id, match_link=True)
        if index is not None and project.components[index].source == source:
            existing = project.components[index]
            project.components[index] = existing.model_copy(
                update={"quantity": existing.quantity + quantity}
            )
            return
        project.components.append(
            ProjectComponent(name=name, quantity=quantity, source=source, inventory_item_id=item_id)
        )

    @staticmethod
    def _notes(components: list[RequestedComponent]) -> str:
        lines = "\n".join(f"- {c.quantity} x {c.name}" for c in components)
        return (
            "Project structure generated by IoT Oracle AI. "
            f"Components identified:\n{lines}"
        )
