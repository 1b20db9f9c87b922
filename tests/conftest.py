"""Test configuration and fixtures."""

from pathlib import Path

import pytest

from workflow_desk.storage import MemoryStore
from workflow_desk.workflow import Desk
from workflow_desk.workflow.models import (
    CreateTemplateRequest,
    StepDraft,
    TransitionDraft,
    WorkflowTemplate,
)


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Provide a temporary state directory."""
    state_dir = tmp_path / "desk_state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def store() -> MemoryStore:
    """Provide an empty in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def desk(store: MemoryStore) -> Desk:
    """Provide a desk with every service wired over the in-memory store."""
    return Desk.open(store)


@pytest.fixture
def approval_request() -> CreateTemplateRequest:
    """A submit -> manager -> approved/rejected template request."""
    return CreateTemplateRequest(
        name="Expense Approval",
        description="Expense claims reviewed by a manager",
        category="finance",
        tags=["standard", "low-value"],
        when_to_use="Any expense claim",
        steps=[
            StepDraft(
                key="submit",
                name="Submit Claim",
                allowed_roles=["submitter"],
                transitions=[
                    TransitionDraft(action="submit", target_step_key="manager", label="Submit")
                ],
            ),
            StepDraft(
                key="manager",
                name="Manager Review",
                allowed_roles=["manager"],
                transitions=[
                    TransitionDraft(action="approve", target_step_key="approved", label="Approve"),
                    TransitionDraft(
                        action="reject",
                        target_step_key="rejected",
                        label="Reject",
                        requires_comment=True,
                    ),
                ],
            ),
            StepDraft(key="approved", name="Approved", is_terminal=True),
            StepDraft(key="rejected", name="Rejected", is_terminal=True),
        ],
    )


@pytest.fixture
def approval_template(desk: Desk, approval_request: CreateTemplateRequest) -> WorkflowTemplate:
    """The approval template, stored through the template service."""
    result = desk.templates.create_template(approval_request)
    assert result.template is not None
    return result.template
