"""The workflow engine: launches instances and moves them between steps.

Every state change goes through :meth:`EngineService.execute_transition` (or
the cancel/revert paths), which appends to the instance's history. History is
append-only; reverting records a new entry instead of removing old ones.

Failures are reported as :class:`WorkflowActionResult` objects with
`success=False` and a list of error codes; the engine only raises for storage
failures.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from workflow_desk.workflow.constants import ErrorCode
from workflow_desk.workflow.models import (
    InstanceSearchCriteria,
    LaunchResult,
    TransitionAction,
    TransitionDefinition,
    TransitionHistory,
    WorkflowActionRequest,
    WorkflowActionResult,
    WorkflowInstance,
    WorkflowStatus,
    WorkflowTemplate,
    utc_now,
)
from workflow_desk.workflow.repositories import InstanceRepository, TemplateRepository
from workflow_desk.workflow.state import InstanceState, TemplateState
from workflow_desk.workflow.validation import validate_action_request

logger = logging.getLogger(__name__)


def new_history_id() -> str:
    return f"history-{uuid.uuid4().hex}"


def _failed(
    instance_id: int,
    message: str,
    code: str,
    instance: WorkflowInstance | None = None,
) -> WorkflowActionResult:
    return WorkflowActionResult(
        success=False,
        instance_id=instance_id,
        new_step_id=instance.current_step_id if instance is not None else None,
        new_status=instance.status if instance is not None else WorkflowStatus.DRAFT,
        message=message,
        errors=[code],
    )


class EngineService:
    def __init__(
        self,
        templates: TemplateRepository,
        instances: InstanceRepository,
        *,
        instance_state: InstanceState | None = None,
        template_state: TemplateState | None = None,
    ) -> None:
        self._templates = templates
        self._instances = instances
        self._instance_state = instance_state or InstanceState(instances.get_all)
        self._template_state = template_state

    @property
    def state(self) -> InstanceState:
        return self._instance_state

    # Launch

    def launch_workflow(
        self,
        template_id: int,
        initial_data: Mapping[str, Any] | None = None,
        initiated_by: str | None = None,
    ) -> LaunchResult:
        template = self._templates.get_by_id(template_id)
        if template is None:
            return LaunchResult(error="Template not found", code=ErrorCode.TEMPLATE_NOT_FOUND)
        if template.deleted:
            return LaunchResult(
                error="Cannot launch workflow from deleted template",
                code=ErrorCode.TEMPLATE_DELETED,
            )

        initial_step = template.initial_step()
        if initial_step is None:
            return LaunchResult(
                error="Template has no steps defined", code=ErrorCode.TEMPLATE_STEPS_REQUIRED
            )

        draft = WorkflowInstance(
            id=0,
            template_id=template.id,
            template_name=template.name,
            current_step_id=initial_step.id,
            current_step_name=initial_step.name,
            status=WorkflowStatus.DRAFT,
            data=dict(initial_data or {}),
            initiated_by=initiated_by,
            current_assignees=list(initial_step.allowed_roles),
        )
        saved = self._instances.create(draft)

        self._templates.increment_usage_count(template.id)
        if self._template_state is not None:
            refreshed = self._templates.get_by_id(template.id)
            if refreshed is not None:
                self._template_state.replace(refreshed)

        self._instance_state.add(saved)
        logger.info(
            "Workflow launched",
            extra={
                "instance_id": saved.id,
                "template_id": template.id,
                "step_id": saved.current_step_id,
            },
        )
        return LaunchResult(instance=saved)

    # Transitions

    def execute_transition(self, request: WorkflowActionRequest) -> WorkflowActionResult:
        instance = self._instances.get_by_id(request.instance_id)
        if instance is None:
            return _failed(request.instance_id, "Instance not found", ErrorCode.INSTANCE_NOT_FOUND)

        template = self._templates.get_by_id(instance.template_id)
        if template is None:
            return _failed(
                request.instance_id, "Template not found", ErrorCode.TEMPLATE_NOT_FOUND, instance
            )

        validation = validate_action_request(request, instance, template)
        if not validation.is_valid:
            return WorkflowActionResult(
                success=False,
                instance_id=request.instance_id,
                new_step_id=instance.current_step_id,
                new_status=instance.status,
                message=validation.errors[0].message,
                errors=[e.code for e in validation.errors],
            )

        current_step = template.find_step(instance.current_step_id)
        transition = current_step.find_transition(request.transition_id) if current_step else None
        if current_step is None or transition is None:
            return _failed(
                request.instance_id,
                "Transition not found",
                ErrorCode.TRANSITION_NOT_FOUND,
                instance,
            )

        target_step = None
        if transition.target_step_id is not None:
            target_step = template.find_step(transition.target_step_id)
            if target_step is None:
                return _failed(
                    request.instance_id,
                    "Target step not found",
                    ErrorCode.INVALID_TRANSITION_TARGET,
                    instance,
                )

        entry = TransitionHistory(
            id=new_history_id(),
            from_step_id=current_step.id,
            to_step_id=transition.target_step_id,
            action=transition.action,
            performed_by=request.performed_by,
            comment=request.comment,
            from_step_name=current_step.name,
            to_step_name=target_step.name if target_step is not None else "Terminal",
        )

        new_status = instance.status
        if new_status == WorkflowStatus.DRAFT:
            new_status = WorkflowStatus.IN_PROGRESS
        if target_step is None or target_step.is_terminal:
            new_status = _terminal_status_for(transition.action)

        data = dict(instance.data)
        if request.update_data:
            data.update(request.update_data)

        changes: dict[str, Any] = {
            "current_step_id": target_step.id if target_step is not None else instance.current_step_id,
            "current_step_name": (
                target_step.name if target_step is not None else instance.current_step_name
            ),
            "status": new_status,
            "data": data,
            "history": [*instance.history, entry],
            "current_assignees": list(target_step.allowed_roles) if target_step is not None else [],
        }
        if new_status.is_terminal:
            changes["completed_at"] = utc_now()

        saved = self._save(instance, changes)
        logger.info(
            "Transition executed",
            extra={
                "instance_id": saved.id,
                "transition_id": transition.id,
                "action": transition.action,
                "from_step_id": current_step.id,
                "to_step_id": transition.target_step_id,
                "status": saved.status.value,
            },
        )
        return WorkflowActionResult(
            success=True,
            instance_id=saved.id,
            new_step_id=saved.current_step_id,
            new_status=saved.status,
            message=f"Transition executed successfully: {transition.label}",
        )

    def submit_workflow(
        self,
        instance_id: int,
        performed_by: str | None = None,
        comment: str | None = None,
    ) -> WorkflowActionResult:
        """Fire the current step's `submit` transition (or its first one) on a draft."""

        instance = self._instances.get_by_id(instance_id)
        if instance is None:
            return _failed(instance_id, "Instance not found", ErrorCode.INSTANCE_NOT_FOUND)

        if instance.status != WorkflowStatus.DRAFT:
            return _failed(
                instance_id,
                "Only draft workflows can be submitted",
                ErrorCode.TRANSITION_INVALID_STATE,
                instance,
            )

        template = self._templates.get_by_id(instance.template_id)
        if template is None:
            return _failed(instance_id, "Template not found", ErrorCode.TEMPLATE_NOT_FOUND, instance)

        step = template.find_step(instance.current_step_id)
        if step is None or not step.transitions:
            return _failed(
                instance_id,
                "No transitions available from current step",
                ErrorCode.TRANSITION_NOT_FOUND,
                instance,
            )

        transition = next(
            (t for t in step.transitions if t.action == TransitionAction.SUBMIT.value),
            step.transitions[0],
        )
        return self.execute_transition(
            WorkflowActionRequest(
                instance_id=instance_id,
                transition_id=transition.id,
                performed_by=performed_by,
                comment=comment,
            )
        )

    def cancel_workflow(
        self,
        instance_id: int,
        performed_by: str | None = None,
        comment: str | None = None,
    ) -> WorkflowActionResult:
        instance = self._instances.get_by_id(instance_id)
        if instance is None:
            return _failed(instance_id, "Instance not found", ErrorCode.INSTANCE_NOT_FOUND)

        if instance.status.is_terminal:
            return _failed(
                instance_id,
                "Cannot cancel completed/rejected/cancelled workflows",
                ErrorCode.INSTANCE_ALREADY_COMPLETED,
                instance,
            )

        entry = TransitionHistory(
            id=new_history_id(),
            from_step_id=instance.current_step_id,
            to_step_id=None,
            action=TransitionAction.CANCEL,
            performed_by=performed_by,
            comment=comment or "Workflow cancelled",
            from_step_name=instance.current_step_name,
            to_step_name="Cancelled",
        )
        saved = self._save(
            instance,
            {
                "status": WorkflowStatus.CANCELLED,
                "history": [*instance.history, entry],
                "current_assignees": [],
                "completed_at": utc_now(),
            },
        )
        logger.info(
            "Workflow cancelled", extra={"instance_id": saved.id, "step_id": saved.current_step_id}
        )
        return WorkflowActionResult(
            success=True,
            instance_id=saved.id,
            new_step_id=saved.current_step_id,
            new_status=WorkflowStatus.CANCELLED,
            message="Workflow cancelled successfully",
        )

    def revert_to_history(
        self,
        instance_id: int,
        history_id: str,
        performed_by: str | None = None,
        comment: str | None = None,
    ) -> WorkflowActionResult:
        """Move an instance back to the step a recorded transition started from.

        The instance is reopened: `draft` if the entry was the first transition
        ever recorded, `in_progress` otherwise. A `revert` entry is appended.
        """

        instance = self._instances.get_by_id(instance_id)
        if instance is None:
            return _failed(instance_id, "Instance not found", ErrorCode.INSTANCE_NOT_FOUND)

        found = instance.find_history_entry(history_id)
        if found is None:
            return _failed(
                instance_id,
                f"History entry not found: {history_id}",
                ErrorCode.HISTORY_ENTRY_NOT_FOUND,
                instance,
            )
        index, target_entry = found

        template = self._templates.get_by_id(instance.template_id)
        if template is None:
            return _failed(instance_id, "Template not found", ErrorCode.TEMPLATE_NOT_FOUND, instance)

        target_step = template.find_step(target_entry.from_step_id)
        if target_step is None:
            return _failed(
                instance_id,
                "History entry does not start from a step of this template",
                ErrorCode.INVALID_REVERT_TARGET,
                instance,
            )

        entry = TransitionHistory(
            id=new_history_id(),
            from_step_id=instance.current_step_id,
            to_step_id=target_step.id,
            action=TransitionAction.REVERT,
            performed_by=performed_by,
            comment=comment or f"Reverted to {target_step.name}",
            from_step_name=instance.current_step_name,
            to_step_name=target_step.name,
        )
        new_status = WorkflowStatus.DRAFT if index == 0 else WorkflowStatus.IN_PROGRESS
        saved = self._save(
            instance,
            {
                "current_step_id": target_step.id,
                "current_step_name": target_step.name,
                "status": new_status,
                "history": [*instance.history, entry],
                "current_assignees": list(target_step.allowed_roles),
                "completed_at": None,
            },
        )
        logger.info(
            "Workflow reverted",
            extra={"instance_id": saved.id, "history_id": history_id, "step_id": target_step.id},
        )
        return WorkflowActionResult(
            success=True,
            instance_id=saved.id,
            new_step_id=saved.current_step_id,
            new_status=saved.status,
            message=f"Workflow reverted to {target_step.name}",
        )

    # Instance management

    def update_workflow_data(
        self, instance_id: int, data: Mapping[str, Any]
    ) -> WorkflowActionResult:
        """Merge `data` into the instance payload without moving it."""

        instance = self._instances.get_by_id(instance_id)
        if instance is None:
            return _failed(instance_id, "Instance not found", ErrorCode.INSTANCE_NOT_FOUND)

        saved = self._save(instance, {"data": {**instance.data, **data}})
        return WorkflowActionResult(
            success=True,
            instance_id=saved.id,
            new_step_id=saved.current_step_id,
            new_status=saved.status,
            message="Workflow data updated",
        )

    def delete_instance(self, instance_id: int) -> bool:
        if not self._instances.delete(instance_id):
            return False
        self._refresh(instance_id)
        logger.info("Instance deleted", extra={"instance_id": instance_id})
        return True

    def restore_instance(self, instance_id: int) -> bool:
        if not self._instances.restore(instance_id):
            return False
        self._refresh(instance_id)
        logger.info("Instance restored", extra={"instance_id": instance_id})
        return True

    # Queries

    def get_instance(self, instance_id: int) -> WorkflowInstance | None:
        return self._instances.get_by_id(instance_id)

    def require_instance(self, instance_id: int) -> WorkflowInstance:
        return self._instances.require(instance_id)

    def search_instances(self, criteria: InstanceSearchCriteria) -> list[WorkflowInstance]:
        results = (
            self._instances.get_by_statuses(criteria.status)
            if criteria.status
            else self._instances.get_active()
        )

        if criteria.template_id is not None:
            results = [i for i in results if i.template_id == criteria.template_id]

        if criteria.initiated_by:
            results = [i for i in results if i.initiated_by == criteria.initiated_by]

        if criteria.current_assignee:
            results = [i for i in results if criteria.current_assignee in i.current_assignees]

        if criteria.created_after is not None:
            results = [i for i in results if i.created_at > criteria.created_after]
        if criteria.created_before is not None:
            results = [i for i in results if i.created_at < criteria.created_before]

        if criteria.category:
            template_ids = {t.id for t in self._templates.get_by_category(criteria.category)}
            results = [i for i in results if i.template_id in template_ids]

        if criteria.sort_by:
            results = _sort_instances(results, criteria.sort_by, criteria.sort_order or "desc")

        return results

    def get_instance_with_template(
        self, instance_id: int
    ) -> tuple[WorkflowInstance, WorkflowTemplate] | None:
        instance = self._instances.get_by_id(instance_id)
        if instance is None:
            return None
        template = self._templates.get_by_id(instance.template_id)
        if template is None:
            return None
        return instance, template

    def get_available_transitions(self, instance_id: int) -> list[TransitionDefinition]:
        """Transitions that can currently fire on the instance (none once it has ended)."""

        pair = self.get_instance_with_template(instance_id)
        if pair is None:
            return []
        instance, template = pair
        if instance.status.is_terminal:
            return []
        step = template.find_step(instance.current_step_id)
        return list(step.transitions) if step is not None else []

    # Helpers

    def _save(self, instance: WorkflowInstance, changes: Mapping[str, Any]) -> WorkflowInstance:
        saved = self._instances.save(instance.model_copy(update=dict(changes)))
        self._instance_state.replace(saved)
        return saved

    def _refresh(self, instance_id: int) -> None:
        current = self._instances.get_by_id(instance_id)
        if current is not None:
            self._instance_state.replace(current)


def _terminal_status_for(action: str) -> WorkflowStatus:
    if action == TransitionAction.REJECT.value:
        return WorkflowStatus.REJECTED
    if action == TransitionAction.CANCEL.value:
        return WorkflowStatus.CANCELLED
    return WorkflowStatus.COMPLETED


def _sort_instances(
    instances: list[WorkflowInstance], sort_by: str, sort_order: str
) -> list[WorkflowInstance]:
    keys = {
        "created_at": lambda i: i.created_at,
        "last_modified_at": lambda i: i.last_modified_at,
        "status": lambda i: i.status.value,
    }
    return sorted(instances, key=keys[sort_by], reverse=sort_order == "desc")
