"""Sample templates created on first use of an empty desk."""

from __future__ import annotations

import logging

from workflow_desk.workflow.constants import CommonTags, DefaultRoles
from workflow_desk.workflow.models import (
    AmountThresholds,
    CreateTemplateRequest,
    StepDraft,
    TransitionDraft,
)
from workflow_desk.workflow.repositories import TemplateRepository
from workflow_desk.workflow.templates import TemplateService

logger = logging.getLogger(__name__)


def _submit(target: str, label: str = "Submit Request") -> TransitionDraft:
    return TransitionDraft(action="submit", target_step_key=target, label=label)


def _approve(target: str, label: str = "Approve") -> TransitionDraft:
    return TransitionDraft(action="approve", target_step_key=target, label=label)


def _reject(target: str = "rejected") -> TransitionDraft:
    return TransitionDraft(
        action="reject", target_step_key=target, label="Reject", requires_comment=True
    )


def _end(key: str, name: str, description: str | None = None) -> StepDraft:
    return StepDraft(key=key, name=name, description=description, is_terminal=True)


def simple_approval() -> CreateTemplateRequest:
    return CreateTemplateRequest(
        name="Simple Approval",
        description="Basic two-step approval workflow for general requests",
        category="custom",
        tags=[CommonTags.SIMPLE, CommonTags.STANDARD],
        applicable_to=["internal", "external"],
        when_to_use="Use for simple approval processes that require manager sign-off",
        steps=[
            StepDraft(
                key="submit",
                name="Submit Request",
                description="Submit your request for approval",
                allowed_roles=[DefaultRoles.SUBMITTER],
                transitions=[_submit("manager", "Submit for Approval")],
            ),
            StepDraft(
                key="manager",
                name="Manager Approval",
                description="Manager reviews and approves/rejects request",
                allowed_roles=[DefaultRoles.MANAGER, DefaultRoles.ADMIN],
                transitions=[_approve("approved"), _reject()],
            ),
            _end("approved", "Approved", "Request has been approved"),
            _end("rejected", "Rejected", "Request has been rejected"),
        ],
        is_public=True,
    )


def purchase_order() -> CreateTemplateRequest:
    return CreateTemplateRequest(
        name="Purchase Order - Standard",
        description="Standard purchase order approval for amounts under $10,000",
        category="purchasing",
        tags=[CommonTags.STANDARD, CommonTags.LOW_VALUE],
        applicable_to=["internal"],
        amount_thresholds=AmountThresholds(min_amount=0, max_amount=10_000),
        when_to_use="Use for standard purchase orders under $10,000",
        steps=[
            StepDraft(
                key="submit",
                name="Submit Purchase Request",
                allowed_roles=[DefaultRoles.SUBMITTER],
                transitions=[_submit("manager")],
            ),
            StepDraft(
                key="manager",
                name="Manager Review",
                allowed_roles=[DefaultRoles.MANAGER],
                transitions=[_approve("finance"), _reject()],
            ),
            StepDraft(
                key="finance",
                name="Finance Approval",
                allowed_roles=[DefaultRoles.FINANCE, DefaultRoles.CFO],
                transitions=[_approve("approved"), _reject()],
            ),
            _end("approved", "Approved"),
            _end("rejected", "Rejected"),
        ],
        is_public=True,
    )


def domestic_travel() -> CreateTemplateRequest:
    return CreateTemplateRequest(
        name="Domestic Travel - Internal",
        description="Domestic travel approval for internal employees",
        category="travel",
        subcategory="domestic",
        tags=[CommonTags.INTERNAL, CommonTags.DOMESTIC, CommonTags.STANDARD],
        applicable_to=["internal"],
        when_to_use="Use for internal employee domestic travel requests",
        steps=[
            StepDraft(
                key="submit",
                name="Submit Travel Request",
                allowed_roles=[DefaultRoles.SUBMITTER],
                transitions=[_submit("manager")],
            ),
            StepDraft(
                key="manager",
                name="Manager Approval",
                allowed_roles=[DefaultRoles.MANAGER],
                transitions=[_approve("approved"), _reject()],
            ),
            _end("approved", "Approved"),
            _end("rejected", "Rejected"),
        ],
        is_public=True,
    )


def international_travel() -> CreateTemplateRequest:
    return CreateTemplateRequest(
        name="International Travel - Internal",
        description="International travel approval with compliance review",
        category="travel",
        subcategory="international",
        tags=[CommonTags.INTERNAL, CommonTags.INTERNATIONAL, CommonTags.COMPLIANCE],
        applicable_to=["internal"],
        when_to_use="Use for internal employee international travel requiring compliance checks",
        steps=[
            StepDraft(
                key="submit",
                name="Submit Travel Request",
                allowed_roles=[DefaultRoles.SUBMITTER],
                transitions=[_submit("manager")],
            ),
            StepDraft(
                key="manager",
                name="Manager Approval",
                allowed_roles=[DefaultRoles.MANAGER],
                transitions=[_approve("compliance"), _reject()],
            ),
            StepDraft(
                key="compliance",
                name="Compliance Review",
                allowed_roles=[DefaultRoles.COMPLIANCE, DefaultRoles.LEGAL],
                transitions=[_approve("finance"), _reject()],
            ),
            StepDraft(
                key="finance",
                name="Finance Approval",
                allowed_roles=[DefaultRoles.FINANCE],
                transitions=[_approve("approved"), _reject()],
            ),
            _end("approved", "Approved"),
            _end("rejected", "Rejected"),
        ],
        is_public=True,
    )


def document_review() -> CreateTemplateRequest:
    return CreateTemplateRequest(
        name="Document Review",
        description="Multi-stage document review and approval",
        category="operations",
        tags=[CommonTags.STANDARD, CommonTags.MULTI_STEP],
        applicable_to=["internal"],
        when_to_use="Use for documents requiring peer review and final approval",
        steps=[
            StepDraft(
                key="submit",
                name="Submit Document",
                allowed_roles=[DefaultRoles.SUBMITTER],
                transitions=[_submit("peer", "Submit for Review")],
            ),
            StepDraft(
                key="peer",
                name="Peer Review",
                allowed_roles=[DefaultRoles.REVIEWER],
                transitions=[
                    _approve("final"),
                    TransitionDraft(
                        action="return",
                        target_step_key="submit",
                        label="Request Changes",
                        requires_comment=True,
                    ),
                    _reject(),
                ],
            ),
            StepDraft(
                key="final",
                name="Final Approval",
                allowed_roles=[DefaultRoles.MANAGER, DefaultRoles.DIRECTOR],
                transitions=[_approve("published", "Publish"), _reject()],
            ),
            _end("published", "Published"),
            _end("rejected", "Rejected"),
        ],
        is_public=True,
    )


SAMPLE_TEMPLATES = (
    simple_approval,
    purchase_order,
    domestic_travel,
    international_travel,
    document_review,
)


class WorkflowSeeder:
    def __init__(self, service: TemplateService, repository: TemplateRepository) -> None:
        self._service = service
        self._repo = repository

    def initialize_sample_templates(self) -> int:
        """Create the sample templates if no template exists yet.

        Returns:
            The number of templates created (0 when the desk already had templates).
        """

        if self._repo.get_all():
            return 0

        logger.info("Initializing sample templates")
        created = 0
        for build in SAMPLE_TEMPLATES:
            request = build()
            result = self._service.create_template(request)
            if result.template is None:
                logger.warning(
                    "Sample template failed validation",
                    extra={
                        "template_name": request.name,
                        "errors": [e.message for e in result.validation.errors],
                    },
                )
                continue
            created += 1

        logger.info("Sample templates created", extra={"count": created})
        return created
