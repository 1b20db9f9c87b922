"""Usage statistics over templates and instances."""

from __future__ import annotations

from workflow_desk.workflow.models import (
    TemplateStatistics,
    TemplateUsage,
    WorkflowAnalytics,
    WorkflowStatus,
)
from workflow_desk.workflow.repositories import InstanceRepository, TemplateRepository

TOP_TEMPLATE_LIMIT = 5


class AnalyticsService:
    def __init__(self, templates: TemplateRepository, instances: InstanceRepository) -> None:
        self._templates = templates
        self._instances = instances

    def get_template_statistics(self, template_id: int) -> TemplateStatistics:
        counts = self._instances.get_template_statistics(template_id)
        return TemplateStatistics(
            template_id=template_id,
            total_instances=sum(counts.values()),
            completed_instances=counts[WorkflowStatus.COMPLETED],
            rejected_instances=counts[WorkflowStatus.REJECTED],
            active_instances=counts[WorkflowStatus.IN_PROGRESS],
            average_completion_time=self._instances.get_average_completion_time(template_id),
        )

    def get_workflow_analytics(self) -> WorkflowAnalytics:
        templates = self._templates.get_active()
        instances = self._instances.get_active()

        by_status = {status: 0 for status in WorkflowStatus}
        for instance in instances:
            by_status[instance.status] += 1

        distribution: dict[str, int] = {}
        for template in templates:
            distribution[template.category] = distribution.get(template.category, 0) + 1

        top = sorted(templates, key=lambda t: t.usage_count, reverse=True)[:TOP_TEMPLATE_LIMIT]
        return WorkflowAnalytics(
            total_templates=len(templates),
            total_instances=len(instances),
            instances_by_status=by_status,
            top_templates=[
                TemplateUsage(template_id=t.id, name=t.name, usage_count=t.usage_count) for t in top
            ],
            category_distribution=distribution,
        )
