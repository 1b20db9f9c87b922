"""Unit tests for template authoring and search."""

from __future__ import annotations

import pytest

from workflow_desk.errors import NotFoundError
from workflow_desk.workflow import Desk
from workflow_desk.workflow.constants import ErrorCode
from workflow_desk.workflow.models import (
    AmountThresholds,
    CloneModifications,
    CloneTemplateRequest,
    CreateTemplateRequest,
    StepDraft,
    TemplateSearchCriteria,
    TransitionDraft,
    WorkflowTemplate,
)


def test_create_generates_ids_and_resolves_step_keys(approval_template: WorkflowTemplate) -> None:
    submit, manager, approved, rejected = approval_template.steps

    assert approval_template.id == 1
    assert approval_template.initial_step_id == submit.id
    assert [s.order for s in approval_template.steps] == [0, 1, 2, 3]
    assert len({s.id for s in approval_template.steps}) == 4
    assert submit.id.startswith("step-") and submit.id.endswith("-0")

    assert submit.transitions[0].id == f"{submit.id}-transition-0"
    assert submit.transitions[0].target_step_id == manager.id
    assert manager.transitions[0].target_step_id == approved.id
    assert manager.transitions[1].target_step_id == rejected.id
    assert manager.transitions[1].requires_comment


def test_create_applies_defaults(approval_template: WorkflowTemplate) -> None:
    assert approval_template.version == 1
    assert approval_template.usage_count == 0
    assert approval_template.applicable_to == ["internal", "external"]
    assert approval_template.is_public is True
    assert approval_template.parent_template_id is None


def test_create_rejects_invalid_request(desk: Desk) -> None:
    result = desk.templates.create_template(
        CreateTemplateRequest(name="x", category="custom", steps=[])
    )

    assert result.template is None
    codes = {e.code for e in result.validation.errors}
    assert ErrorCode.TEMPLATE_STEPS_REQUIRED in codes
    assert desk.templates.list_templates() == []


def test_create_keeps_unknown_keys_for_validation(desk: Desk) -> None:
    result = desk.templates.create_template(
        CreateTemplateRequest(
            name="Broken Flow",
            category="custom",
            steps=[
                StepDraft(
                    name="Start",
                    allowed_roles=["submitter"],
                    transitions=[TransitionDraft(target_step_key="nowhere", label="Go")],
                )
            ],
        )
    )

    assert result.template is None
    assert ErrorCode.INVALID_TRANSITION_TARGET in {e.code for e in result.validation.errors}


def test_create_records_tags_and_mirrors_state(
    desk: Desk, approval_template: WorkflowTemplate
) -> None:
    tag = desk.taxonomy.get_tag("low-value")
    assert tag is not None and tag.usage_count == 1
    assert desk.templates.state.template_count() == 1


def test_clone_copies_and_modifies(desk: Desk, approval_template: WorkflowTemplate) -> None:
    submit, manager, approved, rejected = approval_template.steps

    result = desk.templates.clone_template(
        CloneTemplateRequest(
            source_template_id=approval_template.id,
            new_name="  Expense Approval - Rush  ",
            modifications=CloneModifications(
                update_steps=[{"id": manager.id, "name": "Lead Review"}],
                add_steps=[
                    StepDraft(
                        key="audit",
                        name="Audit",
                        allowed_roles=["finance"],
                        transitions=[
                            TransitionDraft(target_step_key=approved.id, label="Pass"),
                        ],
                    )
                ],
                update_tags=["rush"],
                update_category="hr",
            ),
        )
    )

    clone = result.template
    assert clone is not None
    assert clone.id == 2
    assert clone.name == "Expense Approval - Rush"
    assert clone.description == approval_template.description
    assert clone.parent_template_id == approval_template.id
    assert clone.version == 2
    assert clone.usage_count == 0
    assert clone.related_templates == [approval_template.id]
    assert clone.tags == ["rush"]
    assert clone.category == "hr"

    assert [s.name for s in clone.steps] == [
        "Submit Claim",
        "Lead Review",
        "Approved",
        "Rejected",
        "Audit",
    ]
    audit = clone.steps[-1]
    assert audit.order == 4
    assert audit.transitions[0].target_step_id == approved.id
    assert clone.initial_step_id == submit.id


def test_clone_step_removal_is_validated(desk: Desk, approval_template: WorkflowTemplate) -> None:
    rejected = approval_template.steps[3]

    result = desk.templates.clone_template(
        CloneTemplateRequest(
            source_template_id=approval_template.id,
            new_name="No Rejections",
            modifications=CloneModifications(remove_step_ids=[rejected.id]),
        )
    )

    assert result.template is None
    assert ErrorCode.INVALID_TRANSITION_TARGET in {e.code for e in result.validation.errors}


def test_clone_missing_source(desk: Desk) -> None:
    result = desk.templates.clone_template(
        CloneTemplateRequest(source_template_id=42, new_name="Orphan")
    )

    assert result.template is None
    assert result.error == "Source template not found"
    assert [e.code for e in result.validation.errors] == [ErrorCode.NOT_FOUND]


def test_clone_rejects_malformed_step_patch(
    desk: Desk, approval_template: WorkflowTemplate
) -> None:
    manager = approval_template.steps[1]

    result = desk.templates.clone_template(
        CloneTemplateRequest(
            source_template_id=approval_template.id,
            new_name="Expense Approval - Broken",
            modifications=CloneModifications(update_steps=[{"id": manager.id, "order": "first"}]),
        )
    )

    assert result.template is None
    (issue,) = result.validation.errors
    assert issue.code == ErrorCode.VALIDATION_FAILED
    assert issue.field == "modifications.update_steps"
    assert desk.templates.get_template(2) is None


def test_require_template_raises_for_unknown_id(
    desk: Desk, approval_template: WorkflowTemplate
) -> None:
    assert desk.templates.require_template(approval_template.id).id == approval_template.id
    with pytest.raises(NotFoundError):
        desk.templates.require_template(404)


def test_update_template(desk: Desk, approval_template: WorkflowTemplate) -> None:
    result = desk.templates.update_template(
        approval_template.id, {"description": "Claims under $500", "tags": ["rush"]}
    )

    assert result.template is not None
    assert result.template.description == "Claims under $500"
    assert result.template.created_at == approval_template.created_at
    assert desk.templates.state.get_template_by_id(approval_template.id) == result.template
    rush = desk.taxonomy.get_tag("rush")
    assert rush is not None and rush.usage_count == 1
    low_value = desk.taxonomy.get_tag("low-value")
    assert low_value is not None and low_value.usage_count == 0


def test_update_template_refuses_invalid_changes(
    desk: Desk, approval_template: WorkflowTemplate
) -> None:
    invalid = desk.templates.update_template(approval_template.id, {"name": ""})
    assert invalid.template is None
    assert ErrorCode.TEMPLATE_NAME_REQUIRED in {e.code for e in invalid.validation.errors}

    malformed = desk.templates.update_template(approval_template.id, {"steps": "nope"})
    assert malformed.template is None
    assert malformed.validation.errors[0].code == ErrorCode.VALIDATION_FAILED

    missing = desk.templates.update_template(99, {"name": "Whatever"})
    assert missing.error == "Template not found"

    stored = desk.templates.get_template(approval_template.id)
    assert stored is not None and stored.name == "Expense Approval"


def test_delete_and_restore(desk: Desk, approval_template: WorkflowTemplate) -> None:
    assert desk.templates.delete_template(approval_template.id)
    assert desk.templates.state.template_count() == 0
    assert desk.templates.search_templates(TemplateSearchCriteria()) == []

    assert desk.templates.restore_template(approval_template.id)
    assert desk.templates.state.template_count() == 1
    assert not desk.templates.restore_template(approval_template.id)


def _simple(name: str, **fields: object) -> CreateTemplateRequest:
    return CreateTemplateRequest.model_validate(
        {
            "name": name,
            "category": "purchasing",
            "steps": [
                {
                    "name": "Request",
                    "allowed_roles": ["submitter"],
                    "transitions": [{"label": "Done"}],
                }
            ],
            **fields,
        }
    )


def test_search_filters(desk: Desk) -> None:
    create = desk.templates.create_template
    small = create(_simple("Small Purchase", amount_thresholds=AmountThresholds(max_amount=1000)))
    large = create(
        _simple(
            "Large Purchase",
            amount_thresholds=AmountThresholds(min_amount=1000),
            department_restrictions=["finance"],
            is_public=False,
        )
    )
    any_amount = create(_simple("Any Purchase", category="it", tags=["hardware"]))
    assert small.template and large.template and any_amount.template

    def names(**criteria: object) -> list[str]:
        found = desk.templates.search_templates(TemplateSearchCriteria.model_validate(criteria))
        return sorted(t.name for t in found)

    assert names(min_amount=5000) == ["Any Purchase", "Large Purchase"]
    assert names(max_amount=500) == ["Any Purchase", "Small Purchase"]
    assert names(min_amount=0) == ["Any Purchase", "Large Purchase", "Small Purchase"]
    assert names(category="it") == ["Any Purchase"]
    assert names(tags=["hardware", "other"]) == ["Any Purchase"]
    assert names(query="large") == ["Large Purchase"]
    assert names(is_public=False) == ["Large Purchase"]
    assert names(department_restrictions=["legal"]) == ["Any Purchase", "Small Purchase"]
    assert names(applicable_to=["external"]) == [
        "Any Purchase",
        "Large Purchase",
        "Small Purchase",
    ]

    ordered = desk.templates.search_templates(
        TemplateSearchCriteria(sort_by="name", sort_order="desc")
    )
    assert [t.name for t in ordered] == ["Small Purchase", "Large Purchase", "Any Purchase"]


def test_recommendations_rank_by_usage(desk: Desk) -> None:
    low = desk.templates.create_template(_simple("Low Limit", amount_thresholds={"max_amount": 100}))
    popular = desk.templates.create_template(_simple("Popular Flow"))
    assert low.template and popular.template
    for _ in range(3):
        desk.engine.launch_workflow(popular.template.id)

    recommended = desk.templates.get_recommended_templates(category="purchasing")
    assert [t.name for t in recommended] == ["Popular Flow", "Low Limit"]

    pricey = desk.templates.get_recommended_templates(category="purchasing", amount=5000)
    assert [t.name for t in pricey] == ["Popular Flow"]


def test_variants_and_descendants(desk: Desk, approval_template: WorkflowTemplate) -> None:
    def clone(source_id: int, name: str) -> WorkflowTemplate:
        result = desk.templates.clone_template(
            CloneTemplateRequest(source_template_id=source_id, new_name=name)
        )
        assert result.template is not None
        return result.template

    first = clone(approval_template.id, "Variant One")
    second = clone(approval_template.id, "Variant Two")
    nested = clone(first.id, "Variant One Child")

    assert [t.id for t in desk.templates.get_template_variants(first.id)] == [second.id]
    assert desk.templates.get_template_variants(approval_template.id) == []
    assert [t.id for t in desk.templates.get_template_descendants(approval_template.id)] == [
        first.id,
        second.id,
        nested.id,
    ]
    assert nested.version == 3
