"""Storage keys, defaults, limits and error codes for the workflow engine."""

from __future__ import annotations

from dataclasses import dataclass

from workflow_desk.workflow.models import TemplateCategory, TransitionAction, WorkflowStatus

# ---------------------------------------------------------------------------
# Storage keys
# ---------------------------------------------------------------------------

TEMPLATES_KEY = "workflow_templates"
INSTANCES_KEY = "workflow_instances"
CATEGORIES_KEY = "workflow_categories"
TAGS_KEY = "workflow_tags"
NEXT_TEMPLATE_ID_KEY = "workflow_next_template_id"
NEXT_INSTANCE_ID_KEY = "workflow_next_instance_id"

# ---------------------------------------------------------------------------
# Taxonomy defaults
# ---------------------------------------------------------------------------

DEFAULT_CATEGORIES: tuple[TemplateCategory, ...] = (
    TemplateCategory(
        id="travel", name="Travel", description="Travel requests and approvals", icon="plane", order=1
    ),
    TemplateCategory(
        id="purchasing",
        name="Purchasing",
        description="Purchase orders and procurement",
        icon="cart",
        order=2,
    ),
    TemplateCategory(
        id="hr",
        name="Human Resources",
        description="HR processes and employee workflows",
        icon="people",
        order=3,
    ),
    TemplateCategory(
        id="finance",
        name="Finance",
        description="Financial approvals and budgeting",
        icon="card",
        order=4,
    ),
    TemplateCategory(
        id="it",
        name="IT & Technology",
        description="IT requests and system changes",
        icon="laptop",
        order=5,
    ),
    TemplateCategory(
        id="legal",
        name="Legal",
        description="Legal reviews and contract approvals",
        icon="scales",
        order=6,
    ),
    TemplateCategory(
        id="operations",
        name="Operations",
        description="Operational processes and procedures",
        icon="gear",
        order=7,
    ),
    TemplateCategory(
        id="custom", name="Custom", description="Custom workflow templates", icon="clipboard", order=99
    ),
)


class CommonTags:
    # Employee type
    INTERNAL = "internal"
    EXTERNAL = "external"
    CONTRACTOR = "contractor"
    VENDOR = "vendor"

    # Priority
    STANDARD = "standard"
    RUSH = "rush"
    URGENT = "urgent"
    LOW_PRIORITY = "low-priority"

    # Value
    LOW_VALUE = "low-value"
    HIGH_VALUE = "high-value"
    CAPITAL = "capital"

    # Risk
    LOW_RISK = "low-risk"
    HIGH_RISK = "high-risk"
    COMPLIANCE = "compliance"
    SECURITY = "security"

    # Geography
    DOMESTIC = "domestic"
    INTERNATIONAL = "international"
    REGIONAL = "regional"

    # Complexity
    SIMPLE = "simple"
    COMPLEX = "complex"
    MULTI_STEP = "multi-step"

    # Frequency
    ONE_TIME = "one-time"
    RECURRING = "recurring"
    ANNUAL = "annual"


class DefaultRoles:
    MANAGER = "manager"
    DIRECTOR = "director"
    VP = "vp"
    CEO = "ceo"
    CFO = "cfo"
    CTO = "cto"

    FINANCE = "finance"
    ACCOUNTING = "accounting"
    BUDGET_OWNER = "budget-owner"

    HR = "hr"
    RECRUITER = "recruiter"
    TALENT = "talent"

    LEGAL = "legal"
    COMPLIANCE = "compliance"
    SECURITY = "security"

    IT_ADMIN = "it-admin"
    DEVELOPER = "developer"
    DEVOPS = "devops"

    OPERATIONS = "operations"
    PROCUREMENT = "procurement"
    FACILITIES = "facilities"

    ADMIN = "admin"
    APPROVER = "approver"
    REVIEWER = "reviewer"
    SUBMITTER = "submitter"


# ---------------------------------------------------------------------------
# Defaults for new templates
# ---------------------------------------------------------------------------

DEFAULT_TEMPLATE_VERSION = 1
DEFAULT_APPLICABLE_TO: tuple[str, ...] = ("internal", "external")
DEFAULT_IS_PUBLIC = True
DEFAULT_TRANSITION_ACTION = TransitionAction.APPROVE.value

# ---------------------------------------------------------------------------
# Validation limits
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ValidationLimits:
    template_name_min: int = 3
    template_name_max: int = 100
    description_max: int = 500
    when_to_use_max: int = 300
    step_name_min: int = 2
    step_name_max: int = 50
    min_steps: int = 1
    max_steps: int = 50
    max_transitions_per_step: int = 10
    max_tags: int = 20
    max_roles_per_step: int = 10
    comment_max: int = 1000


VALIDATION_LIMITS = ValidationLimits()

# ---------------------------------------------------------------------------
# Error and warning codes
# ---------------------------------------------------------------------------


class ErrorCode:
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    TEMPLATE_INVALID = "TEMPLATE_INVALID"
    TEMPLATE_NAME_REQUIRED = "TEMPLATE_NAME_REQUIRED"
    TEMPLATE_STEPS_REQUIRED = "TEMPLATE_STEPS_REQUIRED"
    TEMPLATE_DUPLICATE_STEP_ID = "TEMPLATE_DUPLICATE_STEP_ID"
    TEMPLATE_DELETED = "TEMPLATE_DELETED"
    NOT_FOUND = "NOT_FOUND"
    UPDATE_FAILED = "UPDATE_FAILED"

    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    INSTANCE_INVALID = "INSTANCE_INVALID"
    INSTANCE_ALREADY_COMPLETED = "INSTANCE_ALREADY_COMPLETED"

    STEP_NOT_FOUND = "STEP_NOT_FOUND"
    TRANSITION_NOT_FOUND = "TRANSITION_NOT_FOUND"
    TRANSITION_UNAUTHORIZED = "TRANSITION_UNAUTHORIZED"
    TRANSITION_INVALID_STATE = "TRANSITION_INVALID_STATE"
    TRANSITION_COMMENT_REQUIRED = "TRANSITION_COMMENT_REQUIRED"

    HISTORY_ENTRY_NOT_FOUND = "HISTORY_ENTRY_NOT_FOUND"
    INVALID_REVERT_TARGET = "INVALID_REVERT_TARGET"

    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_STEP_ORDER = "INVALID_STEP_ORDER"
    INVALID_TRANSITION_TARGET = "INVALID_TRANSITION_TARGET"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"

    STORAGE_ERROR = "STORAGE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class WarningCode:
    NO_TERMINAL_STEP = "NO_TERMINAL_STEP"
    CIRCULAR_DEPENDENCY = ErrorCode.CIRCULAR_DEPENDENCY
    ROLE_VALIDATION_SKIPPED = "ROLE_VALIDATION_SKIPPED"


# ---------------------------------------------------------------------------
# Display labels
# ---------------------------------------------------------------------------

STATUS_LABELS: dict[WorkflowStatus, str] = {
    WorkflowStatus.DRAFT: "Draft",
    WorkflowStatus.IN_PROGRESS: "In Progress",
    WorkflowStatus.COMPLETED: "Completed",
    WorkflowStatus.REJECTED: "Rejected",
    WorkflowStatus.CANCELLED: "Cancelled",
}

ACTION_LABELS: dict[str, str] = {
    TransitionAction.APPROVE.value: "Approve",
    TransitionAction.REJECT.value: "Reject",
    TransitionAction.RETURN.value: "Return",
    TransitionAction.CANCEL.value: "Cancel",
    TransitionAction.SUBMIT.value: "Submit",
    TransitionAction.CUSTOM.value: "Custom",
    TransitionAction.REVERT.value: "Revert",
}
