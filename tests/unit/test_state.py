"""Unit tests for signals and the template/instance state mirrors."""

from __future__ import annotations

import pytest

from workflow_desk.workflow.models import WorkflowInstance, WorkflowStatus, WorkflowTemplate
from workflow_desk.workflow.state import Computed, InstanceState, Signal, TemplateState


def test_signal_notifies_until_unsubscribed() -> None:
    signal = Signal(1)
    seen: list[int] = []
    unsubscribe = signal.subscribe(seen.append)

    signal.set(2)
    signal.update(lambda v: v * 10)
    unsubscribe()
    unsubscribe()
    signal.set(3)

    assert seen == [2, 20]
    assert signal() == 3
    assert signal.version == 3


def test_readonly_view_tracks_source() -> None:
    signal = Signal("a")
    view = signal.as_readonly()

    signal.set("b")

    assert view() == "b"
    assert view.version == signal.version
    assert not hasattr(view, "set")


def test_computed_recomputes_only_when_sources_change() -> None:
    source = Signal([1, 2, 3])
    calls: list[int] = []

    def total() -> int:
        calls.append(1)
        return sum(source())

    computed = Computed(total, source)
    assert computed() == 6
    assert computed() == 6
    assert len(calls) == 1

    source.set([4])
    assert computed() == 4
    assert len(calls) == 2

    doubled = Computed(lambda: computed() * 2, computed)
    assert doubled() == 8
    source.set([5])
    assert doubled() == 10


def _template(template_id: int, **fields: object) -> WorkflowTemplate:
    return WorkflowTemplate.model_validate(
        {"id": template_id, "name": f"Template {template_id}", "category": "hr", **fields}
    )


def test_template_state_views() -> None:
    state = TemplateState(lambda: [_template(1, tags=["b", "a"]), _template(2, deleted=True)])
    state.load()

    assert state.loading() is False
    assert state.template_count() == 1
    assert [t.id for t in state.deleted_templates()] == [2]
    assert state.all_tags() == ["a", "b"]

    state.add(_template(3, category="legal", usage_count=5))
    assert state.categories() == ["hr", "legal"]
    assert [t.id for t in state.most_used_templates()][0] == 3
    assert set(state.templates_by_category()) == {"hr", "legal"}

    state.select(3)
    selected = state.selected_template()
    assert selected is not None and selected.category == "legal"

    state.replace(_template(3, category="finance"))
    selected = state.selected_template()
    assert selected is not None and selected.category == "finance"

    state.remove(3)
    assert state.selected_template() is None
    assert [t.id for t in state.search("template 1")] == [1]


def test_template_state_records_load_failure() -> None:
    def broken() -> list[WorkflowTemplate]:
        raise RuntimeError("disk on fire")

    state = TemplateState(broken)
    with pytest.raises(RuntimeError):
        state.load()

    assert state.error() == "Failed to load templates"
    assert state.loading() is False


def _instance(instance_id: int, status: WorkflowStatus) -> WorkflowInstance:
    return WorkflowInstance(
        id=instance_id,
        template_id=1,
        template_name="Onboarding",
        current_step_id="s1",
        current_step_name="Start",
        status=status,
        current_assignees=["hr"],
    )


def test_instance_state_counts() -> None:
    state = InstanceState()
    state.add(_instance(1, WorkflowStatus.DRAFT))
    state.add(_instance(2, WorkflowStatus.IN_PROGRESS))
    state.add(_instance(3, WorkflowStatus.IN_PROGRESS))

    assert state.status_counts() == {
        "draft": 1,
        "in_progress": 2,
        "completed": 0,
        "rejected": 0,
        "cancelled": 0,
        "total": 3,
    }

    state.replace(_instance(2, WorkflowStatus.COMPLETED))
    assert [i.id for i in state.completed_instances()] == [2]
    assert [i.id for i in state.in_progress_instances()] == [3]
    assert set(state.instances_by_status()) == {
        WorkflowStatus.DRAFT,
        WorkflowStatus.IN_PROGRESS,
        WorkflowStatus.COMPLETED,
    }
    assert [i.id for i in state.get_instances_assigned_to("hr")] == [1, 2, 3]
