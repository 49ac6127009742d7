"""API routes for inventory, projects, allocations and the assistant.

Ledger errors raised by the handlers below are translated into HTTP
responses by the exception handlers registered in ``iot_oracle.main``.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel, Field

from iot_oracle.agents.assistant import AssistantAgent
from iot_oracle.ledger.allocation import AllocationRequest
from iot_oracle.models.actions import ActionKind, ActionOutcome
from iot_oracle.models.inventory import InventoryItem, ItemCondition, ItemStatus
from iot_oracle.models.project import ComponentSource, Project, ProjectComponent, ProjectStatus
from iot_oracle.state.conversation import ConversationManager
from iot_oracle.state.manager import get_state_manager
from iot_oracle.state.workspace import Workspace, get_workspace
from iot_oracle.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


# Request/Response Models


class ItemCreateRequest(BaseModel):
    """Request to add an inventory item."""

    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=0)
    status: ItemStatus = ItemStatus.HAVE
    category: str | None = None
    location: str = ""
    description: str | None = None
    notes: str | None = None
    manufacturer: str | None = None
    model_number: str | None = None
    serial_number: str | None = None
    supplier: str | None = None
    purchase_price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None
    purchase_date: str | None = None
    warranty_expiry: str | None = None
    condition: ItemCondition | None = None


class ItemUpdateRequest(BaseModel):
    """Partial update of an inventory item; only sent fields change."""

    name: str | None = None
    quantity: int | None = Field(default=None, ge=0)
    status: ItemStatus | None = None
    category: str | None = None
    location: str | None = None
    description: str | None = None
    notes: str | None = None
    manufacturer: str | None = None
    model_number: str | None = None
    serial_number: str | None = None
    supplier: str | None = None
    purchase_price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None
    purchase_date: str | None = None
    warranty_expiry: str | None = None
    condition: ItemCondition | None = None


class CheckoutLine(BaseModel):
    item_id: str
    quantity: int = Field(ge=1)


class CheckoutRequest(BaseModel):
    """Consume stock for several items at once."""

    lines: list[CheckoutLine] = Field(min_length=1)


class TransferRequest(BaseModel):
    project_id: str
    quantity: int = Field(ge=1)


class ComponentRequest(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)
    source: ComponentSource = ComponentSource.MANUAL
    inventory_item_id: str | None = None


class ProjectCreateRequest(BaseModel):
    """Request to create a project; inventory components reserve stock."""

    name: str = Field(min_length=1)
    description: str = ""
    long_description: str | None = None
    status: ProjectStatus = ProjectStatus.PLANNING
    progress: int = Field(default=0, ge=0, le=100)
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    components: list[ComponentRequest] = Field(default_factory=list)
    parent_project_id: str | None = None
    phase: int | None = None


class ProjectUpdateRequest(BaseModel):
    """Partial update of a project; components change through allocations."""

    name: str | None = None
    description: str | None = None
    long_description: str | None = None
    status: ProjectStatus | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    notes: str | None = None
    tags: list[str] | None = None


class MoveRequest(BaseModel):
    source_project_id: str
    target_project_id: str
    component_name: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class AllocationLine(BaseModel):
    item_id: str
    project_id: str
    quantity: int = Field(ge=1)


class AllocationBatchRequest(BaseModel):
    allocations: list[AllocationLine] = Field(min_length=1)


class AllocationResponse(BaseModel):
    items: list[InventoryItem]
    projects: list[Project]


class TransferResponse(BaseModel):
    item: InventoryItem
    project: Project


class MoveResponse(BaseModel):
    source: Project
    target: Project


class AutoPopulatePreference(BaseModel):
    enabled: bool


class StartConversationRequest(BaseModel):
    title: str | None = None


class StartConversationResponse(BaseModel):
    """Response with new conversation details."""

    conversation_id: UUID
    title: str


class SendMessageRequest(BaseModel):
    """Request to send a message in a conversation."""

    message: str = Field(min_length=1)


class SendMessageResponse(BaseModel):
    """Assistant reply with the result of its actions."""

    conversation_id: UUID
    message_id: str
    display_text: str
    auto_applied: bool
    notifications: list[dict[str, Any]] = Field(default_factory=list)
    pending: dict[str, Any] = Field(default_factory=dict)
    sources: list[dict[str, Any]] = Field(default_factory=list)


# Dependencies


async def get_conversation_manager() -> ConversationManager:
    """Get conversation manager instance."""
    state_manager = await get_state_manager()
    return ConversationManager(state_manager)


async def get_assistant(
    conversation_manager: ConversationManager = Depends(get_conversation_manager),
    workspace: Workspace = Depends(get_workspace),
) -> AssistantAgent:
    """Get the assistant agent."""
    return AssistantAgent(conversation_manager, workspace)


# Inventory


@router.get("/inventory", response_model=list[InventoryItem])
async def list_inventory(
    item_status: ItemStatus | None = None,
    workspace: Workspace = Depends(get_workspace),
) -> list[InventoryItem]:
    """List inventory items, optionally filtered by status."""
    return workspace.ledger.list_items(item_status)


@router.post("/inventory", response_model=InventoryItem, status_code=status.HTTP_201_CREATED)
async def create_item(
    request: ItemCreateRequest,
    workspace: Workspace = Depends(get_workspace),
) -> InventoryItem:
    """Add an inventory item."""
    item = workspace.ledger.add_item(InventoryItem(**request.model_dump()))
    await workspace.repository.save_item(item)
    return item


@router.post("/inventory/checkout", response_model=list[InventoryItem])
async def checkout(
    request: CheckoutRequest,
    workspace: Workspace = Depends(get_workspace),
) -> list[InventoryItem]:
    """Consume unallocated stock; all lines succeed or none do."""
    items = workspace.ledger.checkout((line.item_id, line.quantity) for line in request.lines)
    await workspace.repository.save_items(items)
    logger.info("inventory_checked_out", items=[item.id for item in items])
    return items


@router.get("/inventory/{item_id}", response_model=InventoryItem)
async def get_item(item_id: str, workspace: Workspace = Depends(get_workspace)) -> InventoryItem:
    return workspace.ledger.get_item(item_id)


@router.patch("/inventory/{item_id}", response_model=InventoryItem)
async def update_item(
    item_id: str,
    request: ItemUpdateRequest,
    workspace: Workspace = Depends(get_workspace),
) -> InventoryItem:
    """Update the fields sent in the request body."""
    item = workspace.ledger.update_item(item_id, request.model_dump(exclude_unset=True))
    await workspace.repository.save_item(item)
    return item


@router.delete("/inventory/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    item_id: str,
    force: bool = False,
    workspace: Workspace = Depends(get_workspace),
) -> None:
    """
    Delete an inventory item.

    An item reserved by projects is rejected with 409 unless ``force`` is set,
    which releases the reservations first.
    """
    item = workspace.ledger.delete_item(item_id, force=force)
    await workspace.repository.delete_item(item_id)
    await workspace.repository.save_projects(
        workspace.ledger.projects[entry.project_id]
        for entry in item.used_in_projects
        if entry.project_id in workspace.ledger.projects
    )


@router.post("/inventory/{item_id}/transfer", response_model=TransferResponse)
async def transfer_item(
    item_id: str,
    request: TransferRequest,
    workspace: Workspace = Depends(get_workspace),
) -> TransferResponse:
    """Take stock out of inventory into a project."""
    item, project = workspace.ledger.transfer(item_id, request.project_id, request.quantity)
    await workspace.repository.save_item(item)
    await workspace.repository.save_project(project)
    return TransferResponse(item=item, project=project)


# Projects


@router.get("/projects", response_model=list[Project])
async def list_projects(workspace: Workspace = Depends(get_workspace)) -> list[Project]:
    return workspace.ledger.list_projects()


@router.post("/projects", response_model=Project, status_code=status.HTTP_201_CREATED)
async def create_project(
    request: ProjectCreateRequest,
    workspace: Workspace = Depends(get_workspace),
) -> Project:
    """Create a project, reserving stock for its inventory components."""
    fields = request.model_dump(exclude={"components"})
    project = Project(
        **fields,
        is_sub_project=request.parent_project_id is not None,
        components=[ProjectComponent(**c.model_dump()) for c in request.components],
    )
    project = workspace.ledger.add_project(project)

    await workspace.repository.save_project(project)
    if project.parent_project_id:
        await workspace.repository.save_project(
            workspace.ledger.get_project(project.parent_project_id)
        )
    await workspace.repository.save_items(
        workspace.ledger.items[c.inventory_item_id] for c in project.components if c.is_allocated
    )
    return project


@router.post("/projects/move", response_model=MoveResponse)
async def move_component(
    request: MoveRequest,
    workspace: Workspace = Depends(get_workspace),
) -> MoveResponse:
    """Move part of a component from one project to another."""
    source, target = workspace.ledger.move(
        request.source_project_id,
        request.target_project_id,
        request.component_name,
        request.quantity,
    )
    await workspace.repository.save_projects([source, target])
    await workspace.repository.save_items(
        item
        for item in workspace.ledger.items.values()
        if item.allocation_for(source.id) or item.allocation_for(target.id)
    )
    return MoveResponse(source=source, target=target)


@router.get("/projects/{project_id}", response_model=Project)
async def get_project(project_id: str, workspace: Workspace = Depends(get_workspace)) -> Project:
    return workspace.ledger.get_project(project_id)


@router.patch("/projects/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    request: ProjectUpdateRequest,
    workspace: Workspace = Depends(get_workspace),
) -> Project:
    project = workspace.ledger.update_project(project_id, request.model_dump(exclude_unset=True))
    await workspace.repository.save_project(project)
    touched = [
        item for item in workspace.ledger.items.values() if item.allocation_for(project_id)
    ]
    await workspace.repository.save_items(touched)
    return project


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    workspace: Workspace = Depends(get_workspace),
) -> None:
    """Delete a project after releasing everything it reserved."""
    project, touched = workspace.ledger.delete_project(project_id)
    await workspace.repository.save_items(workspace.ledger.items[i] for i in touched)
    await workspace.repository.delete_project(project_id)

    related = [*project.sub_projects]
    if project.parent_project_id:
        related.append(project.parent_project_id)
    await workspace.repository.save_projects(
        workspace.ledger.projects[i] for i in related if i in workspace.ledger.projects
    )


@router.delete("/projects/{project_id}/allocations", response_model=AllocationResponse)
async def deallocate_project(
    project_id: str,
    workspace: Workspace = Depends(get_workspace),
) -> AllocationResponse:
    """Release every reservation a project holds; repeating it is harmless."""
    touched = workspace.ledger.deallocate(project_id)
    items = [workspace.ledger.items[i] for i in touched]
    projects = [workspace.ledger.projects[project_id]] if project_id in workspace.ledger.projects else []

    await workspace.repository.save_items(items)
    await workspace.repository.save_projects(projects)
    return AllocationResponse(items=items, projects=projects)


# Allocations


@router.post("/allocations", response_model=AllocationResponse)
async def allocate(
    request: AllocationBatchRequest,
    workspace: Workspace = Depends(get_workspace),
) -> AllocationResponse:
    """Reserve stock for projects; if any line fails nothing is reserved."""
    item_ids = workspace.ledger.allocate_batch(
        AllocationRequest(item_id=a.item_id, project_id=a.project_id, quantity=a.quantity)
        for a in request.allocations
    )
    project_ids = list(dict.fromkeys(a.project_id for a in request.allocations))
    items = [workspace.ledger.items[i] for i in item_ids]
    projects = [workspace.ledger.projects[i] for i in project_ids]

    await workspace.repository.save_items(items)
    await workspace.repository.save_projects(projects)
    return AllocationResponse(items=items, projects=projects)


# Preferences


@router.get("/preferences/auto-populate", response_model=AutoPopulatePreference)
async def get_auto_populate(
    workspace: Workspace = Depends(get_workspace),
) -> AutoPopulatePreference:
    return AutoPopulatePreference(enabled=await workspace.get_auto_populate())


@router.put("/preferences/auto-populate", response_model=AutoPopulatePreference)
async def set_auto_populate(
    request: AutoPopulatePreference,
    workspace: Workspace = Depends(get_workspace),
) -> AutoPopulatePreference:
    """Turn automatic application of assistant actions on or off."""
    return AutoPopulatePreference(enabled=await workspace.set_auto_populate(request.enabled))


# Conversations


@router.post(
    "/conversations",
    response_model=StartConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_conversation(
    request: StartConversationRequest = StartConversationRequest(),
    conversation_manager: ConversationManager = Depends(get_conversation_manager),
) -> StartConversationResponse:
    """Start a new conversation."""
    conversation = await conversation_manager.create_conversation(title=request.title)
    return StartConversationResponse(
        conversation_id=conversation.conversation_id,
        title=conversation.title,
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=SendMessageResponse,
)
async def send_message(
    conversation_id: UUID,
    request: SendMessageRequest,
    conversation_manager: ConversationManager = Depends(get_conversation_manager),
    assistant: AssistantAgent = Depends(get_assistant),
) -> SendMessageResponse:
    """
    Send a message and wait for the full reply.

    Use the WebSocket endpoint to receive the reply as it streams.
    """
    conversation = await conversation_manager.get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Conversation {conversation_id} not found",
        )

    complete: dict[str, Any] = {}
    async for event in assistant.respond(conversation_id, request.message):
        if event["type"] == "complete":
            complete = event

    return SendMessageResponse(conversation_id=conversation_id, **complete)


# Actions


@router.post("/actions/{kind}", response_model=ActionOutcome)
async def execute_action(
    kind: ActionKind,
    payload: Any = Body(...),
    workspace: Workspace = Depends(get_workspace),
) -> ActionOutcome:
    """
    Execute one pending assistant action.

    Failures are reported in the outcome rather than as an HTTP error, the
    same way they are when actions run automatically.
    """
    return await workspace.execute(kind, payload)


# Admin


@router.post("/admin/sync")
async def sync(workspace: Workspace = Depends(get_workspace)) -> dict[str, int]:
    """Retry remote writes that failed earlier."""
    return await workspace.sync()
