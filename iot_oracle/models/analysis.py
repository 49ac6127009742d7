"""Models returned by the project analyst."""

from pydantic import Field

from iot_oracle.models.actions import ActionPayload


class SubProjectSuggestion(ActionPayload):
    name: str = Field(min_length=1)
    description: str = ""
    phase: int = Field(default=1, ge=1)
    estimated_time: str | None = None
    components: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)


class ComplexityAnalysis(ActionPayload):
    """Whether a project should be split into sub-projects, and how."""

    is_complex: bool = False
    suggested_sub_projects: list[SubProjectSuggestion] = Field(default_factory=list)
    reasoning: str = ""
