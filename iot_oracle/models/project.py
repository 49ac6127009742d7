"""Project models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from iot_oracle.models.inventory import new_id


class ProjectStatus(str, Enum):
    """Project lifecycle states."""

    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    TESTING = "Testing"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    DROPPED = "Dropped"


class ComponentSource(str, Enum):
    """Where a project component came from."""

    MANUAL = "manual"
    AI_SUGGESTED = "ai-suggested"
    INVENTORY = "inventory"
    GITHUB = "github"


class ProjectComponent(BaseModel):
    """A line item in a project's bill of materials."""

    id: str = Field(default_factory=new_id)
    name: str
    quantity: int = Field(ge=1)
    source: ComponentSource = ComponentSource.MANUAL
    inventory_item_id: str | None = None

    @property
    def is_allocated(self) -> bool:
        """Whether this line is backed by an inventory allocation."""
        return self.source == ComponentSource.INVENTORY and self.inventory_item_id is not None

    def matches(self, name: str) -> bool:
        """Case-insensitive exact name match."""
        return self.name.lower() == name.lower()


class Project(BaseModel):
    """A project and its components."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    long_description: str | None = None
    status: ProjectStatus = ProjectStatus.PLANNING
    progress: int = Field(default=0, ge=0, le=100)
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    components: list[ProjectComponent] = Field(default_factory=list)

    # Sub-project support
    parent_project_id: str | None = None
    sub_projects: list[str] = Field(default_factory=list)
    is_sub_project: bool = False
    phase: int | None = None
    dependencies: list[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime | None = None

    def find_component(
        self,
        name: str,
        inventory_item_id: str | None = None,
        match_link: bool = False,
    ) -> int | None:
        """Index of the first component matching ``name``.

        With ``match_link`` the component must also carry the same
        ``inventory_item_id`` (None matches untracked components).
        """
        for index, component in enumerate(self.components):
            if not component.matches(name):
                continue
            if match_link and component.inventory_item_id != inventory_item_id:
                continue
            return index
        return None

    def touch(self) -> None:
        """Record a modification."""
        self.updated_at = datetime.now(timezone.utc)
