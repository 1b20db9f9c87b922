"""Unit tests for usage analytics."""

from __future__ import annotations

from workflow_desk.workflow import Desk
from workflow_desk.workflow.models import (
    CreateTemplateRequest,
    WorkflowActionRequest,
    WorkflowStatus,
    WorkflowTemplate,
)


def _run_to_completion(desk: Desk, template: WorkflowTemplate) -> int:
    launched = desk.engine.launch_workflow(template.id)
    assert launched.instance is not None
    instance_id = launched.instance.id
    assert desk.engine.submit_workflow(instance_id).success
    approve_id = template.steps[1].transitions[0].id
    result = desk.engine.execute_transition(
        WorkflowActionRequest(instance_id=instance_id, transition_id=approve_id)
    )
    assert result.success
    return instance_id


def test_template_statistics(desk: Desk, approval_template: WorkflowTemplate) -> None:
    _run_to_completion(desk, approval_template)
    _run_to_completion(desk, approval_template)
    in_flight = desk.engine.launch_workflow(approval_template.id).instance
    assert in_flight is not None
    desk.engine.submit_workflow(in_flight.id)
    desk.engine.launch_workflow(approval_template.id)

    stats = desk.analytics.get_template_statistics(approval_template.id)

    assert stats.total_instances == 4
    assert stats.completed_instances == 2
    assert stats.rejected_instances == 0
    assert stats.active_instances == 1
    assert stats.average_completion_time is not None
    assert stats.average_completion_time >= 0


def test_statistics_for_unused_template(desk: Desk) -> None:
    stats = desk.analytics.get_template_statistics(404)

    assert stats.total_instances == 0
    assert stats.average_completion_time is None


def test_workflow_analytics(desk: Desk, approval_request: CreateTemplateRequest) -> None:
    desk.seeder.initialize_sample_templates()
    approval_template = desk.templates.create_template(approval_request).template
    assert approval_template is not None
    _run_to_completion(desk, approval_template)
    cancelled = desk.engine.launch_workflow(approval_template.id).instance
    assert cancelled is not None
    desk.engine.cancel_workflow(cancelled.id)

    analytics = desk.analytics.get_workflow_analytics()

    assert analytics.total_templates == 6
    assert analytics.total_instances == 2
    assert analytics.instances_by_status[WorkflowStatus.COMPLETED] == 1
    assert analytics.instances_by_status[WorkflowStatus.CANCELLED] == 1
    assert analytics.instances_by_status[WorkflowStatus.DRAFT] == 0
    assert len(analytics.top_templates) == 5
    assert analytics.top_templates[0].template_id == approval_template.id
    assert analytics.top_templates[0].usage_count == 2
    assert analytics.category_distribution["finance"] == 1
    assert analytics.category_distribution["travel"] == 2
