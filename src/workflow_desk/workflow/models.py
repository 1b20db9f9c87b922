"""Workflow domain models.

A *template* is a reusable process definition: a list of steps, each with the
roles allowed to act on it and the transitions leading out of it. An
*instance* is one execution of a template: it points at a current step, carries
an arbitrary payload and accumulates an append-only transition history.

All timestamps are timezone-aware UTC and serialize as ISO-8601 strings.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def as_utc(value: datetime) -> datetime:
    """Read a naive datetime as UTC; aware values are converted to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _enum_value(value: object) -> object:
    return value.value if isinstance(value, Enum) else value


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[WorkflowStatus] = frozenset(
    {WorkflowStatus.COMPLETED, WorkflowStatus.REJECTED, WorkflowStatus.CANCELLED}
)


class TransitionAction(str, Enum):
    """Well-known transition actions. Templates may also use free-form actions."""

    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"
    CANCEL = "cancel"
    SUBMIT = "submit"
    CUSTOM = "custom"
    REVERT = "revert"


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TransitionDefinition(BaseModel):
    """An action that moves an instance out of a step.

    `target_step_id=None` is a terminal exit: the workflow ends without moving.
    """

    id: str
    action: str
    target_step_id: str | None = None
    label: str
    requires_comment: bool = False
    condition: str | None = None

    @field_validator("action", mode="before")
    @classmethod
    def _action_value(cls, value: object) -> object:
        return _enum_value(value)


class WorkflowStepDefinition(BaseModel):
    id: str
    name: str
    description: str | None = None
    allowed_roles: list[str] = Field(default_factory=list)
    transitions: list[TransitionDefinition] = Field(default_factory=list)
    order: int = 0

    estimated_duration: float | None = Field(default=None, description="SLA in hours")
    required_fields: list[str] = Field(default_factory=list)
    instructions: str | None = None
    is_terminal: bool = False

    def find_transition(self, transition_id: str) -> TransitionDefinition | None:
        for transition in self.transitions:
            if transition.id == transition_id:
                return transition
        return None


class AmountThresholds(BaseModel):
    min_amount: float | None = None
    max_amount: float | None = None


class WorkflowTemplate(BaseModel):
    id: int
    name: str
    description: str = ""

    category: str
    subcategory: str | None = None
    tags: list[str] = Field(default_factory=list)

    parent_template_id: int | None = None
    version: int = 1

    applicable_to: list[str] = Field(default_factory=lambda: ["internal", "external"])
    department_restrictions: list[str] | None = None
    amount_thresholds: AmountThresholds | None = None
    when_to_use: str = ""

    steps: list[WorkflowStepDefinition] = Field(default_factory=list)
    initial_step_id: str = ""

    is_public: bool = True
    usage_count: int = 0
    author: str | None = None

    related_templates: list[int] = Field(default_factory=list)
    supersedes: int | None = None

    created_at: datetime = Field(default_factory=utc_now)
    last_modified_at: datetime = Field(default_factory=utc_now)
    deleted: bool = False

    @field_validator("created_at", "last_modified_at")
    @classmethod
    def _utc_timestamps(cls, value: datetime) -> datetime:
        return as_utc(value)

    def find_step(self, step_id: str | None) -> WorkflowStepDefinition | None:
        if step_id is None:
            return None
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def initial_step(self) -> WorkflowStepDefinition | None:
        """The configured initial step, falling back to the first step."""

        step = self.find_step(self.initial_step_id)
        if step is not None:
            return step
        return self.steps[0] if self.steps else None


# ---------------------------------------------------------------------------
# Instances
# ---------------------------------------------------------------------------


class TransitionHistory(BaseModel):
    """Audit record of one transition (or cancel/revert) on an instance."""

    id: str
    from_step_id: str | None = None
    to_step_id: str | None = None
    action: str
    performed_by: str | None = None
    comment: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    from_step_name: str | None = None
    to_step_name: str | None = None

    @field_validator("action", mode="before")
    @classmethod
    def _action_value(cls, value: object) -> object:
        return _enum_value(value)


class WorkflowInstance(BaseModel):
    id: int
    template_id: int
    template_name: str

    current_step_id: str
    current_step_name: str
    status: WorkflowStatus = WorkflowStatus.DRAFT

    data: dict[str, Any] = Field(default_factory=dict)
    history: list[TransitionHistory] = Field(default_factory=list)

    initiated_by: str | None = None
    current_assignees: list[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    last_modified_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    deleted: bool = False

    @field_validator("created_at", "last_modified_at", "completed_at")
    @classmethod
    def _utc_timestamps(cls, value: datetime | None) -> datetime | None:
        return None if value is None else as_utc(value)

    def find_history_entry(self, history_id: str) -> tuple[int, TransitionHistory] | None:
        for index, entry in enumerate(self.history):
            if entry.id == history_id:
                return index, entry
        return None


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------


class TemplateCategory(BaseModel):
    id: str
    name: str
    description: str = ""
    icon: str | None = None
    parent_category_id: str | None = None
    order: int = 0


class TemplateTag(BaseModel):
    id: str
    name: str
    category: str | None = None
    usage_count: int = 0


# ---------------------------------------------------------------------------
# Search criteria
# ---------------------------------------------------------------------------

TemplateSortKey = Literal["name", "usage_count", "created_at", "last_modified_at"]
InstanceSortKey = Literal["created_at", "last_modified_at", "status"]
SortOrder = Literal["asc", "desc"]


class TemplateSearchCriteria(BaseModel):
    query: str | None = None
    category: str | None = None
    subcategory: str | None = None
    tags: list[str] | None = None
    applicable_to: list[str] | None = None
    min_amount: float | None = None
    max_amount: float | None = None
    department_restrictions: list[str] | None = None
    is_public: bool | None = None
    sort_by: TemplateSortKey | None = None
    sort_order: SortOrder | None = None


class InstanceSearchCriteria(BaseModel):
    status: list[WorkflowStatus] | None = None
    template_id: int | None = None
    initiated_by: str | None = None
    current_assignee: str | None = None
    category: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    sort_by: InstanceSortKey | None = None
    sort_order: SortOrder | None = None

    @field_validator("created_after", "created_before")
    @classmethod
    def _utc_bounds(cls, value: datetime | None) -> datetime | None:
        return None if value is None else as_utc(value)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class WorkflowActionRequest(BaseModel):
    instance_id: int
    transition_id: str
    performed_by: str | None = None
    comment: str | None = None
    update_data: dict[str, Any] | None = None


class WorkflowActionResult(BaseModel):
    success: bool
    instance_id: int
    new_step_id: str | None
    new_status: WorkflowStatus
    message: str | None = None
    errors: list[str] = Field(default_factory=list)


class LaunchResult(BaseModel):
    instance: WorkflowInstance | None = None
    error: str | None = None
    code: str | None = None

    @property
    def ok(self) -> bool:
        return self.instance is not None


# ---------------------------------------------------------------------------
# Template authoring
# ---------------------------------------------------------------------------


class TransitionDraft(BaseModel):
    """A transition whose target is named by step key (or existing step id).

    Drafts exist because step ids are generated on save: authors refer to the
    steps of the same request through their `key`.
    """

    action: str = TransitionAction.APPROVE.value
    target_step_key: str | None = None
    label: str
    requires_comment: bool = False
    condition: str | None = None

    @field_validator("action", mode="before")
    @classmethod
    def _action_value(cls, value: object) -> object:
        return _enum_value(value)


class StepDraft(BaseModel):
    key: str | None = None
    name: str
    description: str | None = None
    allowed_roles: list[str] = Field(default_factory=list)
    transitions: list[TransitionDraft] = Field(default_factory=list)
    estimated_duration: float | None = None
    required_fields: list[str] = Field(default_factory=list)
    instructions: str | None = None
    is_terminal: bool = False


class CreateTemplateRequest(BaseModel):
    name: str
    description: str = ""
    category: str
    subcategory: str | None = None
    tags: list[str] | None = None
    applicable_to: list[str] | None = None
    department_restrictions: list[str] | None = None
    amount_thresholds: AmountThresholds | None = None
    when_to_use: str = ""
    steps: list[StepDraft] = Field(default_factory=list)
    is_public: bool | None = None
    author: str | None = None


class CloneModifications(BaseModel):
    add_steps: list[StepDraft] = Field(default_factory=list)
    remove_step_ids: list[str] = Field(default_factory=list)
    update_steps: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Partial step definitions; each must carry the `id` of the step to update",
    )
    update_tags: list[str] | None = None
    update_category: str | None = None


class CloneTemplateRequest(BaseModel):
    source_template_id: int
    new_name: str
    new_description: str | None = None
    modifications: CloneModifications | None = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationIssue(BaseModel):
    field: str
    message: str
    code: str


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)


class TemplateResult(BaseModel):
    template: WorkflowTemplate | None = None
    validation: ValidationResult
    error: str | None = None


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class TemplateStatistics(BaseModel):
    template_id: int
    total_instances: int
    completed_instances: int
    rejected_instances: int
    active_instances: int
    average_completion_time: float | None = Field(default=None, description="Hours")


class TemplateUsage(BaseModel):
    template_id: int
    name: str
    usage_count: int


class WorkflowAnalytics(BaseModel):
    total_templates: int
    total_instances: int
    instances_by_status: dict[WorkflowStatus, int]
    top_templates: list[TemplateUsage] = Field(default_factory=list)
    category_distribution: dict[str, int] = Field(default_factory=dict)
