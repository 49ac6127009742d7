"""Inventory allocation ledger.

The ledger owns the in-memory inventory and project collections. Every
operation validates all of its preconditions before it mutates anything, and
no operation awaits, so on a single event loop each one is atomic.

Per item the following always holds outside an operation::

    allocated_quantity == sum(entry.quantity for entry in used_in_projects)
    0 <= allocated_quantity <= quantity

and every project component sourced from inventory is backed by the item's
``used_in_projects`` entry for that project with the same total quantity.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable

from pydantic import ValidationError

from iot_oracle.exceptions import (
    InvariantViolationError,
    ItemInUseError,
    LedgerError,
    QuantityViolationError,
    ReferenceNotFoundError,
)
from iot_oracle.models.inventory import InventoryItem, ItemStatus, ProjectAllocation
from iot_oracle.models.project import ComponentSource, Project, ProjectComponent
from iot_oracle.utils.logging import get_logger

logger = get_logger(__name__)

LEDGER_OWNED_ITEM_FIELDS = frozenset(
    {"id", "allocated_quantity", "used_in_projects", "available_quantity"}
)
LEDGER_OWNED_PROJECT_FIELDS = frozenset({"id", "components", "sub_projects"})


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"])
    return f"{field}: {first['msg']}" if field else first["msg"]


@dataclass(frozen=True)
class AllocationRequest:
    """Reserve ``quantity`` of an item for a project."""

    item_id: str
    project_id: str
    quantity: int


class AllocationLedger:
    """Single owner of inventory items, projects and their allocations."""

    def __init__(
        self,
        items: Iterable[InventoryItem] = (),
        projects: Iterable[Project] = (),
    ):
        self.items: dict[str, InventoryItem] = {item.id: item for item in items}
        self.projects: dict[str, Project] = {project.id: project for project in projects}

    # Lookups

    def get_item(self, item_id: str) -> InventoryItem:
        item = self.items.get(item_id)
        if item is None:
            raise ReferenceNotFoundError("inventory item", item_id)
        return item

    def get_project(self, project_id: str) -> Project:
        project = self.projects.get(project_id)
        if project is None:
            raise ReferenceNotFoundError("project", project_id)
        return project

    def list_items(self, status: ItemStatus | None = None) -> list[InventoryItem]:
        return [item for item in self.items.values() if status is None or item.status == status]

    def list_projects(self) -> list[Project]:
        return list(self.projects.values())

    def find_item_by_name(
        self,
        name: str,
        status: ItemStatus | None = None,
    ) -> InventoryItem | None:
        """First item whose name matches case-insensitively."""
        wanted = name.lower()
        for item in self.items.values():
            if item.name.lower() == wanted and (status is None or item.status == status):
                return item
        return None

    # Inventory items

    def add_item(self, item: InventoryItem) -> InventoryItem:
        """Insert a new item; it must not carry allocations."""
        if item.id in self.items:
            raise LedgerError(f"Inventory item '{item.id}' already exists")
        if item.allocated_quantity or item.used_in_projects:
            raise LedgerError(
                f"New item '{item.name}' cannot start with project allocations"
            )
        self.items[item.id] = item
        logger.debug("item_added", item_id=item.id, name=item.name)
        return item

    def update_item(self, item_id: str, changes: dict[str, Any]) -> InventoryItem:
        """
        Patch plain fields of an item.

        Raises:
            LedgerError: if ``changes`` touches allocation bookkeeping or is invalid
            QuantityViolationError: if the new quantity is below what is allocated
        """
        return self.update_items([(item_id, changes)])[0]

    def update_items(
        self, patches: Iterable[tuple[str, dict[str, Any]]]
    ) -> list[InventoryItem]:
        """
        Patch several items; if any patch is rejected none is applied.

        Patches to the same item apply in order, each on top of the last.
        """
        staged: dict[str, InventoryItem] = {}
        results = []
        for item_id, changes in patches:
            item = staged[item_id] if item_id in staged else self.get_item(item_id)
            staged[item_id] = self._patched_item(item, changes)
            results.append(staged[item_id])

        self.items.update(staged)
        return results

    @staticmethod
    def _patched_item(item: InventoryItem, changes: dict[str, Any]) -> InventoryItem:
        owned = LEDGER_OWNED_ITEM_FIELDS.intersection(changes)
        if owned:
            raise LedgerError(
                f"Fields {sorted(owned)} of '{item.name}' are managed by allocations"
            )

        try:
            updated = InventoryItem.model_validate({**item.model_dump(), **changes})
        except ValidationError as e:
            raise LedgerError(f"Invalid changes for '{item.name}': {_first_error(e)}") from e
        if updated.quantity < item.allocated_quantity:
            raise QuantityViolationError(
                f"Cannot set '{item.name}' to {updated.quantity}: "
                f"{item.allocated_quantity} are allocated to projects"
            )
        return updated

    def delete_item(self, item_id: str, force: bool = False) -> InventoryItem:
        """
        Remove an item.

        An item with live allocations is rejected unless ``force`` is set, in
        which case its allocations are released and the project components it
        backed become ai-suggested (still needed, no longer covered by stock).
        """
        item = self.get_item(item_id)
        if item.used_in_projects and not force:
            names = ", ".join(entry.project_name for entry in item.used_in_projects)
            raise ItemInUseError(
                f"'{item.name}' is allocated to {names}; release it before deleting"
            )

        for entry in item.used_in_projects:
            project = self.projects.get(entry.project_id)
            if project is not None:
                self._unlink_components(project, item.id)

        del self.items[item_id]
        logger.info(
            "item_deleted",
            item_id=item_id,
            released_projects=[entry.project_id for entry in item.used_in_projects],
        )
        return item

    def checkout(self, lines: Iterable[tuple[str, int]]) -> list[InventoryItem]:
        """Consume unallocated stock for several items at once."""
        wanted: dict[str, int] = defaultdict(int)
        for item_id, quantity in lines:
            if quantity < 1:
                raise QuantityViolationError("Checkout quantities must be positive")
            wanted[item_id] += quantity

        for item_id, quantity in wanted.items():
            item = self.get_item(item_id)
            if quantity > item.available_quantity:
                raise QuantityViolationError(
                    f"Not enough '{item.name}' available "
                    f"(has {item.available_quantity}, requested {quantity})"
                )

        touched = []
        for item_id, quantity in wanted.items():
            item = self.items[item_id]
            item.quantity -= quantity
            touched.append(item)
        return touched

    # Projects

    def add_project(
        self,
        project: Project,
        allocations: Iterable[AllocationRequest] | None = None,
    ) -> Project:
        """
        Insert a project and reserve stock for its inventory components.

        Without ``allocations`` they are derived from the project's
        inventory-sourced components. When given, they must add up to exactly
        those components.
        """
        if project.id in self.projects:
            raise LedgerError(f"Project '{project.id}' already exists")
        if project.parent_project_id is not None:
            self.get_project(project.parent_project_id)

        required = self._component_allocations(project)
        if allocations is None:
            requested = dict(required)
        else:
            requested = defaultdict(int)
            for request in allocations:
                if request.project_id != project.id:
                    raise LedgerError(
                        f"Allocation for project '{request.project_id}' "
                        f"passed while creating '{project.name}'"
                    )
                requested[request.item_id] += request.quantity
            if dict(requested) != required:
                raise LedgerError(
                    f"Allocations for '{project.name}' do not match its inventory components"
                )

        self._check_available(requested)

        self.projects[project.id] = project
        for item_id, quantity in requested.items():
            self._book(self.items[item_id], project, quantity)
        if project.parent_project_id is not None:
            parent = self.projects[project.parent_project_id]
            if project.id not in parent.sub_projects:
                parent.sub_projects.append(project.id)

        logger.info(
            "project_added",
            project_id=project.id,
            name=project.name,
            allocated_items=len(requested),
        )
        return project

    def update_project(self, project_id: str, changes: dict[str, Any]) -> Project:
        """Patch plain fields of a project; components change through ledger operations."""
        project = self.get_project(project_id)
        owned = LEDGER_OWNED_PROJECT_FIELDS.intersection(changes)
        if owned:
            raise LedgerError(
                f"Fields {sorted(owned)} of '{project.name}' are managed by the ledger"
            )

        try:
            updated = Project.model_validate({**project.model_dump(), **changes})
        except ValidationError as e:
            raise LedgerError(f"Invalid changes for '{project.name}': {_first_error(e)}") from e
        updated.touch()
        self.projects[project_id] = updated

        if updated.name != project.name:
            for item in self.items.values():
                entry = item.allocation_for(project_id)
                if entry is not None:
                    entry.project_name = updated.name
        return updated

    def delete_project(self, project_id: str) -> tuple[Project, list[str]]:
        """
        Remove a project, releasing its allocations.

        Sub-projects are kept and detached from the deleted parent.

        Returns:
            The removed project and the ids of items whose allocations changed
        """
        project = self.get_project(project_id)
        touched = self.deallocate(project_id)

        for child_id in project.sub_projects:
            child = self.projects.get(child_id)
            if child is not None:
                child.parent_project_id = None
                child.is_sub_project = False
        if project.parent_project_id is not None:
            parent = self.projects.get(project.parent_project_id)
            if parent is not None and project_id in parent.sub_projects:
                parent.sub_projects.remove(project_id)

        del self.projects[project_id]
        logger.info("project_deleted", project_id=project_id, released_items=touched)
        return project, touched

    def add_component(
        self,
        project_id: str,
        name: str,
        quantity: int,
        source: ComponentSource = ComponentSource.MANUAL,
    ) -> Project:
        """Add or merge an untracked component by name."""
        if source == ComponentSource.INVENTORY:
            raise LedgerError("Inventory components are added through allocate")
        if quantity < 1:
            raise QuantityViolationError("Component quantity must be positive")
        project = self.get_project(project_id)
        self._merge_component(project, name, quantity, source, None)
        project.touch()
        return project

    # Allocation operations

    def allocate(
        self,
        item_id: str,
        project_id: str,
        project_name: str,
        quantity: int,
    ) -> ProjectAllocation:
        """
        Reserve stock of an item for a project.

        The item's entry for the project is merged (quantities summed) or
        appended, and the project's inventory component for the item grows to
        match.

        Raises:
            QuantityViolationError: if ``quantity`` exceeds the available stock
        """
        item = self.get_item(item_id)
        project = self.get_project(project_id)
        self._check_available({item_id: quantity})

        entry = self._book(item, project, quantity, project_name=project_name)
        self._merge_component(
            project, item.name, quantity, ComponentSource.INVENTORY, item.id
        )
        project.touch()
        return entry

    def allocate_batch(self, requests: Iterable[AllocationRequest]) -> list[str]:
        """Apply several allocations; if any fails none are applied."""
        requests = list(requests)
        per_item: dict[str, int] = defaultdict(int)
        for request in requests:
            self.get_item(request.item_id)
            self.get_project(request.project_id)
            per_item[request.item_id] += request.quantity
        self._check_available(per_item)

        for request in requests:
            project = self.projects[request.project_id]
            item = self.items[request.item_id]
            self._book(item, project, request.quantity)
            self._merge_component(
                project, item.name, request.quantity, ComponentSource.INVENTORY, item.id
            )
            project.touch()
        return list(per_item)

    def deallocate(self, project_id: str) -> list[str]:
        """
        Release every allocation held by a project.

        Safe to repeat: a second call finds nothing to release. If the project
        still exists its inventory components become ai-suggested.

        Returns:
            Ids of the items whose allocations changed
        """
        touched = []
        for item in self.items.values():
            entry = item.allocation_for(project_id)
            if entry is None:
                continue
            item.allocated_quantity = max(0, item.allocated_quantity - entry.quantity)
            item.used_in_projects = [
                other for other in item.used_in_projects if other.project_id != project_id
            ]
            touched.append(item.id)

        project = self.projects.get(project_id)
        if project is not None:
            for item_id in touched:
                self._unlink_components(project, item_id)

        if touched:
            logger.info("project_deallocated", project_id=project_id, items=touched)
        return touched

    def move(
        self,
        source_project_id: str,
        target_project_id: str,
        component_name: str,
        quantity: int,
    ) -> tuple[Project, Project]:
        """
        Move part of a component from one project to another.

        The source line shrinks (or disappears when exactly exhausted) and the
        target line with the same name grows (or is created). An inventory
        component carries its allocation with it.

        Raises:
            ReferenceNotFoundError: if a project or the component is missing
            QuantityViolationError: if the source holds less than ``quantity``
        """
        if quantity < 1:
            raise QuantityViolationError("Move quantity must be positive")
        source = self.get_project(source_project_id)
        target = self.get_project(target_project_id)
        if source.id == target.id:
            raise LedgerError(f"'{source.name}' is both source and target of the move")

        index = source.find_component(component_name)
        if index is None:
            raise ReferenceNotFoundError(
                f"component in project '{source.name}'", component_name
            )
        component = source.components[index]
        if component.quantity < quantity:
            raise QuantityViolationError(
                f"Not enough quantity available "
                f"(has {component.quantity}, requested {quantity})"
            )

        item = None
        if component.is_allocated:
            item = self.get_item(component.inventory_item_id)
            entry = item.allocation_for(source.id)
            if entry is None or entry.quantity < quantity:
                raise InvariantViolationError(
                    f"'{component.name}' in '{source.name}' is not backed by its allocation"
                )

        # Plan both sides before touching either project.
        source_components = list(source.components)
        if component.quantity == quantity:
            del source_components[index]
        else:
            source_components[index] = component.model_copy(
                update={"quantity": component.quantity - quantity}
            )

        target_components = list(target.components)
        target_index = target.find_component(
            component.name, component.inventory_item_id, match_link=True
        )
        if target_index is not None:
            existing = target_components[target_index]
            target_components[target_index] = existing.model_copy(
                update={"quantity": existing.quantity + quantity}
            )
        else:
            target_components.append(
                ProjectComponent(
                    name=component.name,
                    quantity=quantity,
                    source=component.source,
                    inventory_item_id=component.inventory_item_id,
                )
            )

        source.components = source_components
        target.components = target_components
        if item is not None:
            self._release(item, source.id, quantity)
            self._book(item, target, quantity)
        source.touch()
        target.touch()

        logger.info(
            "component_moved",
            component=component.name,
            quantity=quantity,
            source_project_id=source.id,
            target_project_id=target.id,
        )
        return source, target

    def transfer(
        self,
        inventory_item_id: str,
        target_project_id: str,
        quantity: int,
    ) -> tuple[InventoryItem, Project]:
        """
        Physically take stock out of inventory into a project.

        Unlike allocation this lowers ``quantity`` itself; the project gets an
        untracked component. Stock reserved by other projects cannot be taken.

        Raises:
            QuantityViolationError: if the item holds or has available less than ``quantity``
        """
        if quantity < 1:
            raise QuantityViolationError("Transfer quantity must be positive")
        item = self.get_item(inventory_item_id)
        target = self.get_project(target_project_id)

        if item.quantity < quantity:
            raise QuantityViolationError(
                f"Not enough quantity available (has {item.quantity}, requested {quantity})"
            )
        if item.available_quantity < quantity:
            raise QuantityViolationError(
                f"Only {item.available_quantity} of '{item.name}' are unallocated "
                f"(requested {quantity})"
            )

        item.quantity -= quantity
        self._merge_component(target, item.name, quantity, ComponentSource.MANUAL, None)
        target.touch()

        logger.info(
            "inventory_transferred",
            item_id=item.id,
            quantity=quantity,
            target_project_id=target.id,
        )
        return item, target

    # Verification

    def verify(self) -> None:
        """Re-check every invariant; raises InvariantViolationError listing each problem."""
        problems = []
        for item in self.items.values():
            problems.extend(f"{item.name}: {problem}" for problem in item.allocation_problems())

        for project in self.projects.values():
            for item_id, quantity in self._component_allocations(project).items():
                item = self.items.get(item_id)
                entry = item.allocation_for(project.id) if item else None
                held = entry.quantity if entry else 0
                if held != quantity:
                    problems.append(
                        f"{project.name}: components use {quantity} of '{item_id}' "
                        f"but {held} are allocated"
                    )
            for item in self.items.values():
                entry = item.allocation_for(project.id)
                if entry and item.id not in self._component_allocations(project):
                    problems.append(
                        f"{project.name}: allocation of '{item.name}' has no component"
                    )

        if problems:
            raise InvariantViolationError("; ".join(problems))

    # Internals

    def _component_allocations(self, project: Project) -> dict[str, int]:
        required: dict[str, int] = defaultdict(int)
        for component in project.components:
            if component.is_allocated:
                required[component.inventory_item_id] += component.quantity
        return dict(required)

    def _check_available(self, per_item: dict[str, int]) -> None:
        for item_id, quantity in per_item.items():
            item = self.get_item(item_id)
            if quantity < 1:
                raise QuantityViolationError(
                    f"Allocation of '{item.name}' must be positive"
                )
            if quantity > item.available_quantity:
                raise QuantityViolationError(
                    f"Cannot allocate {quantity} of '{item.name}': "
                    f"only {item.available_quantity} available"
                )

    def _book(
        self,
        item: InventoryItem,
        project: Project,
        quantity: int,
        project_name: str | None = None,
    ) -> ProjectAllocation:
        entry = item.allocation_for(project.id)
        if entry is not None:
            entry.quantity += quantity
        else:
            entry = ProjectAllocation(
                project_id=project.id,
                project_name=project_name or project.name,
                quantity=quantity,
            )
            item.used_in_projects.append(entry)
        item.allocated_quantity += quantity
        return entry

    def _release(self, item: InventoryItem, project_id: str, quantity: int) -> None:
        entry = item.allocation_for(project_id)
        if entry is None:
            return
        if entry.quantity <= quantity:
            item.used_in_projects = [
                other for other in item.used_in_projects if other.project_id != project_id
            ]
            released = entry.quantity
        else:
            entry.quantity -= quantity
            released = quantity
        item.allocated_quantity = max(0, item.allocated_quantity - released)

    def _merge_component(
        self,
        project: Project,
        name: str,
        quantity: int,
        source: ComponentSource,
        inventory_item_id: str | None,
    ) -> None:
        index = project.find_component(name, inventory_item_id, match_link=True)
        if index is not None:
            existing = project.components[index]
            project.components[index] = existing.model_copy(
                update={"quantity": existing.quantity + quantity}
            )
        else:
            project.components.append(
                ProjectComponent(
                    name=name,
                    quantity=quantity,
                    source=source,
                    inventory_item_id=inventory_item_id,
                )
            )

    def _unlink_components(self, project: Project, item_id: str) -> None:
        project.components = [
            component.model_copy(
                update={"source": ComponentSource.AI_SUGGESTED, "inventory_item_id": None}
            )
            if component.is_allocated and component.inventory_item_id == item_id
            else component
            for component in project.components
        ]
