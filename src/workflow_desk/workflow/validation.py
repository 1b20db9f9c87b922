"""Validation of templates, instances and transition requests.

Validators never raise: they return a :class:`ValidationResult` with errors
(which block the operation) and warnings (which do not).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from workflow_desk.workflow.constants import VALIDATION_LIMITS, ErrorCode, WarningCode
from workflow_desk.workflow.models import (
    TransitionDefinition,
    ValidationIssue,
    ValidationResult,
    WorkflowActionRequest,
    WorkflowInstance,
    WorkflowStatus,
    WorkflowStepDefinition,
    WorkflowTemplate,
)

_limits = VALIDATION_LIMITS


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def validate_template(template: WorkflowTemplate) -> ValidationResult:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    if _blank(template.name):
        errors.append(
            ValidationIssue(
                field="name",
                message="Template name is required",
                code=ErrorCode.TEMPLATE_NAME_REQUIRED,
            )
        )
    elif len(template.name) < _limits.template_name_min:
        errors.append(
            ValidationIssue(
                field="name",
                message=f"Template name must be at least {_limits.template_name_min} characters",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )
    elif len(template.name) > _limits.template_name_max:
        errors.append(
            ValidationIssue(
                field="name",
                message=f"Template name must not exceed {_limits.template_name_max} characters",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    if len(template.description) > _limits.description_max:
        errors.append(
            ValidationIssue(
                field="description",
                message=f"Description must not exceed {_limits.description_max} characters",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    if _blank(template.category):
        errors.append(
            ValidationIssue(
                field="category", message="Category is required", code=ErrorCode.VALIDATION_FAILED
            )
        )

    if not template.steps:
        errors.append(
            ValidationIssue(
                field="steps",
                message="At least one step is required",
                code=ErrorCode.TEMPLATE_STEPS_REQUIRED,
            )
        )
    else:
        errors.extend(_validate_steps(template))

        if not any(step.is_terminal for step in template.steps):
            warnings.append(
                ValidationIssue(
                    field="steps",
                    message="No terminal steps defined. Workflow may not be able to complete.",
                    code=WarningCode.NO_TERMINAL_STEP,
                )
            )

        cycle = detect_cycle(template.steps)
        if cycle is not None:
            warnings.append(
                ValidationIssue(
                    field="steps",
                    message=f"Circular dependency detected in workflow steps: {' -> '.join(cycle)}",
                    code=WarningCode.CIRCULAR_DEPENDENCY,
                )
            )

    if len(template.tags) > _limits.max_tags:
        errors.append(
            ValidationIssue(
                field="tags",
                message=f"Cannot exceed {_limits.max_tags} tags",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    if len(template.when_to_use) > _limits.when_to_use_max:
        errors.append(
            ValidationIssue(
                field="when_to_use",
                message=f'"When to use" must not exceed {_limits.when_to_use_max} characters',
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    thresholds = template.amount_thresholds
    if (
        thresholds is not None
        and thresholds.min_amount is not None
        and thresholds.max_amount is not None
        and thresholds.min_amount > thresholds.max_amount
    ):
        errors.append(
            ValidationIssue(
                field="amount_thresholds",
                message="Minimum amount cannot exceed maximum amount",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def _validate_steps(template: WorkflowTemplate) -> list[ValidationIssue]:
    errors: list[ValidationIssue] = []
    steps = template.steps

    if len(steps) < _limits.min_steps:
        errors.append(
            ValidationIssue(
                field="steps",
                message=f"Template must have at least {_limits.min_steps} step",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )
    if len(steps) > _limits.max_steps:
        errors.append(
            ValidationIssue(
                field="steps",
                message=f"Template cannot exceed {_limits.max_steps} steps",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    step_ids: set[str] = set()
    for index, step in enumerate(steps):
        errors.extend(_validate_step(step, index))
        if step.id in step_ids:
            errors.append(
                ValidationIssue(
                    field=f"steps[{index}].id",
                    message=f"Duplicate step ID: {step.id}",
                    code=ErrorCode.TEMPLATE_DUPLICATE_STEP_ID,
                )
            )
        step_ids.add(step.id)

    for index, step in enumerate(steps):
        for t_index, transition in enumerate(step.transitions):
            target = transition.target_step_id
            if target is not None and target not in step_ids:
                errors.append(
                    ValidationIssue(
                        field=f"steps[{index}].transitions[{t_index}].target_step_id",
                        message=f"Transition references non-existent step: {target}",
                        code=ErrorCode.INVALID_TRANSITION_TARGET,
                    )
                )

    if template.initial_step_id and template.initial_step_id not in step_ids:
        errors.append(
            ValidationIssue(
                field="initial_step_id",
                message=(
                    f"Initial step ID references non-existent step: {template.initial_step_id}"
                ),
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    return errors


def _validate_step(step: WorkflowStepDefinition, index: int) -> list[ValidationIssue]:
    errors: list[ValidationIssue] = []
    prefix = f"steps[{index}]"

    if _blank(step.id):
        errors.append(
            ValidationIssue(
                field=f"{prefix}.id", message="Step ID is required", code=ErrorCode.VALIDATION_FAILED
            )
        )

    if _blank(step.name):
        errors.append(
            ValidationIssue(
                field=f"{prefix}.name",
                message="Step name is required",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )
    elif len(step.name) < _limits.step_name_min:
        errors.append(
            ValidationIssue(
                field=f"{prefix}.name",
                message=f"Step name must be at least {_limits.step_name_min} characters",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )
    elif len(step.name) > _limits.step_name_max:
        errors.append(
            ValidationIssue(
                field=f"{prefix}.name",
                message=f"Step name must not exceed {_limits.step_name_max} characters",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    if not step.is_terminal and not step.allowed_roles:
        errors.append(
            ValidationIssue(
                field=f"{prefix}.allowed_roles",
                message="Non-terminal steps must have at least one allowed role",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )
    if len(step.allowed_roles) > _limits.max_roles_per_step:
        errors.append(
            ValidationIssue(
                field=f"{prefix}.allowed_roles",
                message=f"Step cannot exceed {_limits.max_roles_per_step} roles",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    if not step.is_terminal and not step.transitions:
        errors.append(
            ValidationIssue(
                field=f"{prefix}.transitions",
                message="Non-terminal steps must have at least one transition",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )
    if len(step.transitions) > _limits.max_transitions_per_step:
        errors.append(
            ValidationIssue(
                field=f"{prefix}.transitions",
                message=f"Step cannot exceed {_limits.max_transitions_per_step} transitions",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    for t_index, transition in enumerate(step.transitions):
        errors.extend(_validate_transition(transition, f"{prefix}.transitions[{t_index}]"))

    if step.order < 0:
        errors.append(
            ValidationIssue(
                field=f"{prefix}.order",
                message="Step order cannot be negative",
                code=ErrorCode.INVALID_STEP_ORDER,
            )
        )

    return errors


def _validate_transition(transition: TransitionDefinition, prefix: str) -> list[ValidationIssue]:
    errors: list[ValidationIssue] = []
    if _blank(transition.id):
        errors.append(
            ValidationIssue(
                field=f"{prefix}.id",
                message="Transition ID is required",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )
    if _blank(transition.action):
        errors.append(
            ValidationIssue(
                field=f"{prefix}.action",
                message="Transition action is required",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )
    if _blank(transition.label):
        errors.append(
            ValidationIssue(
                field=f"{prefix}.label",
                message="Transition label is required",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )
    return errors


def detect_cycle(steps: Sequence[WorkflowStepDefinition]) -> list[str] | None:
    """Find a cycle in the step graph.

    Returns the first cycle found as a path of step ids whose first and last
    elements are the same step, or None when the graph is acyclic. Targets that
    do not name a step (terminal exits, dangling ids) are ignored.
    """

    graph: dict[str, list[str]] = {}
    for step in steps:
        graph[step.id] = [
            t.target_step_id for t in step.transitions if t.target_step_id is not None
        ]

    done: set[str] = set()
    for root in graph:
        if root in done:
            continue

        path: list[str] = [root]
        on_path: set[str] = {root}
        pending: list[Iterator[str]] = [iter(graph[root])]

        while pending:
            neighbour = next(pending[-1], None)
            if neighbour is None:
                finished = path.pop()
                on_path.discard(finished)
                done.add(finished)
                pending.pop()
                continue
            if neighbour in on_path:
                return path[path.index(neighbour) :] + [neighbour]
            if neighbour in done or neighbour not in graph:
                continue
            path.append(neighbour)
            on_path.add(neighbour)
            pending.append(iter(graph[neighbour]))

    return None


# ---------------------------------------------------------------------------
# Instances and actions
# ---------------------------------------------------------------------------


def validate_instance(instance: WorkflowInstance | Mapping[str, Any]) -> ValidationResult:
    """Check the fields an instance cannot run without.

    Accepts raw mappings so that imported payloads can be checked before they
    are parsed into models.
    """

    raw: Mapping[str, Any] = (
        instance.model_dump() if isinstance(instance, WorkflowInstance) else instance
    )
    errors: list[ValidationIssue] = []

    if not raw.get("template_id"):
        errors.append(
            ValidationIssue(
                field="template_id",
                message="Template ID is required",
                code=ErrorCode.INSTANCE_INVALID,
            )
        )
    if not raw.get("current_step_id"):
        errors.append(
            ValidationIssue(
                field="current_step_id",
                message="Current step ID is required",
                code=ErrorCode.INSTANCE_INVALID,
            )
        )
    if not raw.get("status"):
        errors.append(
            ValidationIssue(
                field="status", message="Status is required", code=ErrorCode.INSTANCE_INVALID
            )
        )

    return ValidationResult(is_valid=not errors, errors=errors)


_CLOSED_MESSAGES: dict[WorkflowStatus, str] = {
    WorkflowStatus.COMPLETED: "Cannot perform actions on completed workflows",
    WorkflowStatus.REJECTED: "Cannot perform actions on rejected workflows",
    WorkflowStatus.CANCELLED: "Cannot perform actions on cancelled workflows",
}


def validate_action_request(
    request: WorkflowActionRequest,
    instance: WorkflowInstance | None,
    template: WorkflowTemplate,
) -> ValidationResult:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    if instance is None:
        errors.append(
            ValidationIssue(
                field="instance",
                message="Instance not found",
                code=ErrorCode.INSTANCE_NOT_FOUND,
            )
        )
        return ValidationResult(is_valid=False, errors=errors)

    closed = _CLOSED_MESSAGES.get(instance.status)
    if closed is not None:
        errors.append(
            ValidationIssue(
                field="instance.status",
                message=closed,
                code=ErrorCode.INSTANCE_ALREADY_COMPLETED,
            )
        )

    current_step = template.find_step(instance.current_step_id)
    if current_step is None:
        errors.append(
            ValidationIssue(
                field="current_step_id",
                message=f"Current step not found in template: {instance.current_step_id}",
                code=ErrorCode.STEP_NOT_FOUND,
            )
        )
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    transition = current_step.find_transition(request.transition_id)
    if transition is None:
        errors.append(
            ValidationIssue(
                field="transition_id",
                message=f"Transition not found: {request.transition_id}",
                code=ErrorCode.TRANSITION_NOT_FOUND,
            )
        )
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    if transition.requires_comment and _blank(request.comment):
        errors.append(
            ValidationIssue(
                field="comment",
                message="Comment is required for this action",
                code=ErrorCode.TRANSITION_COMMENT_REQUIRED,
            )
        )

    if request.comment and len(request.comment) > _limits.comment_max:
        errors.append(
            ValidationIssue(
                field="comment",
                message=f"Comment must not exceed {_limits.comment_max} characters",
                code=ErrorCode.VALIDATION_FAILED,
            )
        )

    # Role membership needs a user directory; the desk only records the performer.
    if request.performed_by and current_step.allowed_roles:
        warnings.append(
            ValidationIssue(
                field="performed_by",
                message="Role validation not implemented",
                code=WarningCode.ROLE_VALIDATION_SKIPPED,
            )
        )

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_template_ready(template: WorkflowTemplate) -> bool:
    return validate_template(template).is_valid and bool(template.steps)


def is_terminal_step(step: WorkflowStepDefinition) -> bool:
    return step.is_terminal or not step.transitions


def get_validation_summary(result: ValidationResult) -> str:
    if result.is_valid:
        return "Validation passed"
    return (
        f"Validation failed: {len(result.errors)} error(s), {len(result.warnings)} warning(s)"
    )
