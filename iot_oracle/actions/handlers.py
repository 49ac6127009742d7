"""Effects of the nine assistant action kinds.

Each handler receives a validated payload, mutates the ledger through its
public operations, persists what changed and returns an ActionOutcome.
Ledger errors propagate to the dispatcher, which turns them into failed
outcomes.
"""

from datetime import datetime, timezone
from typing import Any, Protocol

from iot_oracle.config import Settings, get_settings
from iot_oracle.ledger.allocation import AllocationLedger
from iot_oracle.ledger.composer import ProjectComposer
from iot_oracle.models.actions import (
    ActionKind,
    ActionOutcome,
    ComponentBundle,
    ComponentRelationship,
    InventoryAddition,
    InventoryUpdate,
    MoveComponent,
    PartSuggestion,
    PriceCheck,
    ProjectSuggestion,
    ProjectUpdate,
    TransferToProject,
)
from iot_oracle.models.analysis import ComplexityAnalysis
from iot_oracle.models.inventory import (
    ComponentLink,
    InventoryItem,
    ItemCondition,
    ItemStatus,
    MarketDataItem,
)
from iot_oracle.models.project import ComponentSource, Project, ProjectComponent, ProjectStatus
from iot_oracle.state.repository import LedgerRepository
from iot_oracle.utils.logging import get_logger

logger = get_logger(__name__)

TO_BE_PURCHASED = "To be purchased"


class ProjectAnalyst(Protocol):
    """Market-data lookup and complexity analysis backing some handlers."""

    async def analyze_complexity(
        self, project_name: str, description: str, components: list[str]
    ) -> ComplexityAnalysis: ...

    async def lookup_market_data(
        self, item_name: str, search_query: str | None = None
    ) -> list[MarketDataItem]: ...


def _append_notes(existing: str | None, addition: str) -> str:
    return f"{existing}\n\n{addition}" if existing else addition


def _status_bucket(status: ItemStatus) -> str:
    if status == ItemStatus.NEED:
        return "Required"
    if status == ItemStatus.HAVE:
        return "Inventory"
    return "Wishlist"


class ActionHandlers:
    """Handler methods named after the action registry's handler names."""

    def __init__(
        self,
        ledger: AllocationLedger,
        composer: ProjectComposer,
        repository: LedgerRepository,
        analyst: ProjectAnalyst | None = None,
        settings: Settings | None = None,
    ):
        self.ledger = ledger
        self.composer = composer
        self.repository = repository
        self.analyst = analyst
        self.settings = settings or get_settings()

    async def create_project(self, payload: ProjectSuggestion) -> ActionOutcome:
        composition = self.composer.compose(
            payload.project_name,
            payload.components,
            payload.project_description,
        )
        project = self.ledger.add_project(composition.project, composition.allocations)

        item_ids = list(dict.fromkeys(a.item_id for a in composition.allocations))
        await self.repository.save_project(project)
        await self.repository.save_items(self.ledger.items[i] for i in item_ids)

        sub_projects = await self._create_sub_projects(project)

        message = (
            f"Created project '{project.name}': {composition.from_inventory} "
            f"from inventory, {composition.to_acquire} to acquire"
        )
        if sub_projects:
            message += f", {len(sub_projects)} sub-projects"

        return ActionOutcome(
            kind=ActionKind.PROJECT,
            success=True,
            message=message,
            affected_item_ids=item_ids,
            affected_project_ids=[project.id, *(p.id for p in sub_projects)],
        )

    async def add_part_suggestions(self, payload: list[PartSuggestion]) -> ActionOutcome:
        counts = {"Required": 0, "Wishlist": 0, "Inventory": 0}
        added = []
        for suggestion in payload:
            item = self.ledger.add_item(self._item_from_suggestion(suggestion))
            counts[_status_bucket(item.status)] += 1
            added.append(item)

        await self.repository.save_items(added)

        summary = ", ".join(f"{count} to {bucket}" for bucket, count in counts.items() if count)
        return ActionOutcome(
            kind=ActionKind.SUGGESTIONS,
            success=True,
            message=f"Auto-added {len(added)} parts: {summary}" if added else "No parts to add",
            affected_item_ids=[item.id for item in added],
        )

    async def move_component(self, payload: MoveComponent) -> ActionOutcome:
        source = self.ledger.get_project(payload.source_project_id)
        index = source.find_component(payload.component_name)
        moved = source.components[index] if index is not None else None

        source, target = self.ledger.move(
            payload.source_project_id,
            payload.target_project_id,
            payload.component_name,
            payload.quantity,
        )
        item_ids = [moved.inventory_item_id] if moved.is_allocated else []

        await self.repository.save_projects([source, target])
        await self.repository.save_items(self.ledger.items[i] for i in item_ids)

        return ActionOutcome(
            kind=ActionKind.MOVE,
            success=True,
            message=(
                f"Moved {payload.quantity} x {moved.name} "
                f"from '{source.name}' to '{target.name}'"
            ),
            affected_item_ids=item_ids,
            affected_project_ids=[source.id, target.id],
        )

    async def transfer_to_project(self, payload: TransferToProject) -> ActionOutcome:
        item, target = self.ledger.transfer(
            payload.inventory_item_id,
            payload.target_project_id,
            payload.quantity,
        )
        await self.repository.save_item(item)
        await self.repository.save_project(target)

        return ActionOutcome(
            kind=ActionKind.TRANSFER,
            success=True,
            message=f"Transferred {payload.quantity} x {item.name} to '{target.name}'",
            affected_item_ids=[item.id],
            affected_project_ids=[target.id],
        )

    async def update_project(self, payload: ProjectUpdate) -> ActionOutcome:
        project = self.ledger.get_project(payload.project_id)
        changes = payload.updates.model_dump(exclude_none=True)
        if "notes" in changes:
            changes["notes"] = _append_notes(project.notes, changes["notes"])

        updated = self.ledger.update_project(project.id, changes)
        await self.repository.save_project(updated)

        fields = ", ".join(sorted(changes)) or "nothing"
        return ActionOutcome(
            kind=ActionKind.PROJECT_UPDATE,
            success=True,
            message=f"Updated project '{updated.name}' ({fields})",
            affected_project_ids=[updated.id],
        )

    async def update_inventory(
        self,
        payload: InventoryUpdate | InventoryAddition | list[InventoryUpdate | InventoryAddition],
    ) -> ActionOutcome:
        actions = payload if isinstance(payload, list) else [payload]

        patches = []
        for action in actions:
            if isinstance(action, InventoryUpdate):
                item = self.ledger.get_item(action.item_id)
                changes = action.updates.model_dump(exclude_none=True)
                if "notes" in changes:
                    changes["notes"] = _append_notes(item.notes, changes["notes"])
                patches.append((item.id, changes))
        additions = [
            self._item_from_addition(action)
            for action in actions
            if isinstance(action, InventoryAddition)
        ]

        # Every patch is checked before any of them is applied.
        updated = self.ledger.update_items(patches)
        added = [self.ledger.add_item(item) for item in additions]

        await self.repository.save_items([*updated, *added])

        parts = []
        if updated:
            parts.append("updated " + ", ".join(item.name for item in updated))
        if added:
            parts.append("added " + ", ".join(item.name for item in added))
        message = "Inventory " + "; ".join(parts) if parts else "No inventory changes"

        return ActionOutcome(
            kind=ActionKind.INVENTORY_UPDATE,
            success=True,
            message=message,
            affected_item_ids=[item.id for item in (*updated, *added)],
        )

    async def check_price(self, payload: PriceCheck) -> ActionOutcome:
        item = self.ledger.get_item(payload.item_id)
        if not item.is_price_stale(self.settings.price_refresh_hours):
            return ActionOutcome(
                kind=ActionKind.PRICE_CHECK,
                success=True,
                message=f"Prices for {item.name} are up to date",
                affected_item_ids=[item.id],
            )
        if self.analyst is None:
            return ActionOutcome(
                kind=ActionKind.PRICE_CHECK,
                success=False,
                message=f"Could not check prices for {item.name}",
                error="No market data source configured",
                affected_item_ids=[item.id],
            )

        quotes = await self.analyst.lookup_market_data(item.name, payload.search_query)
        updated = self.ledger.update_item(
            item.id,
            {
                "market_data": [quote.model_dump() for quote in quotes],
                "last_refreshed": datetime.now(timezone.utc),
            },
        )
        await self.repository.save_item(updated)

        return ActionOutcome(
            kind=ActionKind.PRICE_CHECK,
            success=True,
            message=f"Found {len(quotes)} prices for {updated.name}",
            affected_item_ids=[updated.id],
        )

    async def create_component_relationship(
        self, payload: ComponentRelationship
    ) -> ActionOutcome:
        primary = InventoryItem(
            name=payload.primary_component.name,
            quantity=1,
            status=ItemStatus.from_suggestion(payload.primary_component.status),
            category=payload.primary_component.category,
            description=payload.primary_component.description,
            location=TO_BE_PURCHASED,
        )
        related = InventoryItem(
            name=payload.related_component.name,
            quantity=1,
            status=ItemStatus.from_suggestion(payload.related_component.status),
            category=payload.related_component.category,
            description=payload.related_component.description,
            location=TO_BE_PURCHASED,
            parent_component_id=primary.id,
        )
        primary.related_components.append(
            ComponentLink(
                component_id=related.id,
                relationship_type=payload.relationship_type,
                description=payload.description,
                is_required=payload.is_required,
            )
        )
        self.ledger.add_item(primary)
        self.ledger.add_item(related)
        await self.repository.save_items([primary, related])

        return ActionOutcome(
            kind=ActionKind.COMPONENT_RELATIONSHIP,
            success=True,
            message=(
                f"Linked {primary.name} and {related.name} "
                f"({payload.relationship_type})"
            ),
            affected_item_ids=[primary.id, related.id],
        )

    async def create_component_bundle(self, payload: ComponentBundle) -> ActionOutcome:
        created = []
        for member in payload.components:
            item = InventoryItem(
                name=member.name,
                quantity=member.quantity,
                status=ItemStatus.HAVE,
                category=member.category or payload.bundle_type,
                notes=f"Part of bundle: {payload.bundle_name}",
                description=payload.bundle_description,
            )
            created.append(self.ledger.add_item(item))

        await self.repository.save_items(created)

        return ActionOutcome(
            kind=ActionKind.COMPONENT_BUNDLE,
            success=True,
            message=f"Added bundle '{payload.bundle_name}' with {len(created)} components",
            affected_item_ids=[item.id for item in created],
        )

    async def _create_sub_projects(self, project: Project) -> list[Project]:
        """Split a new project into phases when the analyst finds it complex.

        Analysis failures are logged and never fail the parent project.
        """
        if self.analyst is None or not self.settings.analyze_project_complexity:
            return []

        try:
            analysis = await self.analyst.analyze_complexity(
                project.name,
                project.long_description or project.description,
                [component.name for component in project.components],
            )
        except Exception as e:
            logger.warning("complexity_analysis_failed", project_id=project.id, error=str(e))
            return []

        if not analysis.is_complex or not analysis.suggested_sub_projects:
            return []

        created = []
        for suggestion in analysis.suggested_sub_projects:
            child = Project(
                name=f"{project.name} - {suggestion.name}",
                description=suggestion.description,
                long_description=f'Sub-project of "{project.name}". {suggestion.description}',
                status=ProjectStatus.PLANNING,
                notes=(
                    f"Sub-project created by AI analysis. "
                    f"Phase {suggestion.phase} of main project."
                ),
                tags=["AI-Generated", "Sub-Project", f"Phase-{suggestion.phase}"],
                components=[
                    ProjectComponent(name=name, quantity=1, source=ComponentSource.AI_SUGGESTED)
                    for name in suggestion.components
                ],
                parent_project_id=project.id,
                is_sub_project=True,
                phase=suggestion.phase,
                dependencies=suggestion.dependencies,
            )
            created.append(self.ledger.add_project(child))

        phases = "\n".join(f"Phase {s.phase}: {s.name}" for s in analysis.suggested_sub_projects)
        parent = self.ledger.update_project(
            project.id,
            {
                "notes": _append_notes(
                    project.notes,
                    f"AI-generated sub-projects:\n{phases}\n\nReasoning: {analysis.reasoning}",
                )
            },
        )
        await self.repository.save_projects([parent, *created])

        logger.info("sub_projects_created", project_id=project.id, count=len(created))
        return created

    @staticmethod
    def _item_from_suggestion(suggestion: PartSuggestion) -> InventoryItem:
        fields: dict[str, Any] = {
            "name": suggestion.name,
            "quantity": 1,
            "status": ItemStatus.from_suggestion(suggestion.status),
            "category": suggestion.category,
            "location": TO_BE_PURCHASED,
            "description": (
                f"Suggested by AI. Supplier: {suggestion.supplier}, "
                f"Price: {suggestion.price}. Link: {suggestion.link}"
            ),
            "source": "ai-suggested",
            "supplier": suggestion.supplier or None,
            "manufacturer": suggestion.manufacturer,
            "model_number": suggestion.model_number,
            "purchase_price": suggestion.purchase_price,
            "currency": suggestion.currency,
        }
        if suggestion.condition in {c.value for c in ItemCondition}:
            fields["condition"] = ItemCondition(suggestion.condition)
        return InventoryItem(**fields)

    @staticmethod
    def _item_from_addition(addition: InventoryAddition) -> InventoryItem:
        status = ItemStatus.HAVE
        if addition.status in {s.value for s in ItemStatus}:
            status = ItemStatus(addition.status)
        elif addition.status:
            status = ItemStatus.from_suggestion(addition.status)
        return InventoryItem(
            name=addition.item_name,
            quantity=addition.quantity,
            status=status,
            location=addition.location or "",
            category=addition.category,
            condition=addition.condition,
            notes=addition.notes,
            source="ai-suggested",
        )
