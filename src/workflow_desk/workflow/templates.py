"""Template authoring: create, clone, update and search workflow templates."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from workflow_desk.workflow.constants import (
    DEFAULT_APPLICABLE_TO,
    DEFAULT_IS_PUBLIC,
    DEFAULT_TEMPLATE_VERSION,
    ErrorCode,
)
from workflow_desk.workflow.models import (
    CloneTemplateRequest,
    CreateTemplateRequest,
    StepDraft,
    TemplateResult,
    TemplateSearchCriteria,
    TransitionDefinition,
    ValidationIssue,
    ValidationResult,
    WorkflowStepDefinition,
    WorkflowTemplate,
)
from workflow_desk.workflow.repositories import TaxonomyRepository, TemplateRepository
from workflow_desk.workflow.state import TemplateState
from workflow_desk.workflow.validation import validate_template

logger = logging.getLogger(__name__)

RECOMMENDATION_LIMIT = 5


def _failure(field: str, message: str, code: str) -> TemplateResult:
    return TemplateResult(
        template=None,
        validation=ValidationResult(
            is_valid=False, errors=[ValidationIssue(field=field, message=message, code=code)]
        ),
        error=message,
    )


def build_steps(
    drafts: Sequence[StepDraft],
    *,
    start_order: int = 0,
    existing_ids: Iterable[str] = (),
) -> list[WorkflowStepDefinition]:
    """Turn step drafts into step definitions with generated ids.

    Step ids are `step-<token>-<n>` where the token is shared by one batch, and
    transition ids are `<step id>-transition-<n>`. A transition's
    `target_step_key` may name the `key` of any draft in the batch or the id of
    an existing step; anything else is kept verbatim so validation can report it.
    """

    token = uuid.uuid4().hex[:8]
    ids = [f"step-{token}-{start_order + index}" for index in range(len(drafts))]

    targets: dict[str, str] = {step_id: step_id for step_id in existing_ids}
    for draft, step_id in zip(drafts, ids, strict=True):
        if draft.key:
            targets[draft.key] = step_id

    steps: list[WorkflowStepDefinition] = []
    for index, (draft, step_id) in enumerate(zip(drafts, ids, strict=True)):
        transitions = [
            TransitionDefinition(
                id=f"{step_id}-transition-{t_index}",
                action=t.action,
                target_step_id=(
                    None
                    if t.target_step_key is None
                    else targets.get(t.target_step_key, t.target_step_key)
                ),
                label=t.label,
                requires_comment=t.requires_comment,
                condition=t.condition,
            )
            for t_index, t in enumerate(draft.transitions)
        ]
        steps.append(
            WorkflowStepDefinition(
                id=step_id,
                name=draft.name,
                description=draft.description,
                allowed_roles=list(draft.allowed_roles),
                transitions=transitions,
                order=start_order + index,
                estimated_duration=draft.estimated_duration,
                required_fields=list(draft.required_fields),
                instructions=draft.instructions,
                is_terminal=draft.is_terminal,
            )
        )
    return steps


class TemplateService:
    def __init__(
        self,
        repository: TemplateRepository,
        state: TemplateState | None = None,
        taxonomy: TaxonomyRepository | None = None,
    ) -> None:
        self._repo = repository
        self._state = state or TemplateState(repository.get_all)
        self._taxonomy = taxonomy

    @property
    def state(self) -> TemplateState:
        return self._state

    # CRUD

    def create_template(self, request: CreateTemplateRequest) -> TemplateResult:
        steps = build_steps(request.steps)
        template = WorkflowTemplate(
            id=0,
            name=request.name.strip(),
            description=request.description.strip(),
            category=request.category,
            subcategory=request.subcategory,
            tags=list(request.tags or []),
            parent_template_id=None,
            version=DEFAULT_TEMPLATE_VERSION,
            applicable_to=list(request.applicable_to or DEFAULT_APPLICABLE_TO),
            department_restrictions=request.department_restrictions,
            amount_thresholds=request.amount_thresholds,
            when_to_use=request.when_to_use,
            steps=steps,
            initial_step_id=steps[0].id if steps else "",
            is_public=DEFAULT_IS_PUBLIC if request.is_public is None else request.is_public,
            author=request.author,
        )

        validation = validate_template(template)
        if not validation.is_valid:
            logger.info(
                "Template rejected by validation",
                extra={"template_name": template.name, "errors": len(validation.errors)},
            )
            return TemplateResult(template=None, validation=validation)

        saved = self._repo.create(template)
        self._state.add(saved)
        self._record_tags(saved.tags)
        logger.info("Template created", extra={"template_id": saved.id, "template_name": saved.name})
        return TemplateResult(template=saved, validation=validation)

    def clone_template(self, request: CloneTemplateRequest) -> TemplateResult:
        source = self._repo.get_by_id(request.source_template_id)
        if source is None:
            return _failure("source_template_id", "Source template not found", ErrorCode.NOT_FOUND)

        new_description = (request.new_description or "").strip()
        changes: dict[str, Any] = {
            "name": request.new_name.strip(),
            "description": new_description or source.description,
            "parent_template_id": source.id,
            "version": source.version + 1,
            "usage_count": 0,
            "related_templates": [source.id],
            "deleted": False,
        }

        mods = request.modifications
        if mods is not None:
            steps = list(source.steps)

            if mods.remove_step_ids:
                removed = set(mods.remove_step_ids)
                steps = [s for s in steps if s.id not in removed]

            if mods.update_steps:
                patches = {patch["id"]: patch for patch in mods.update_steps if "id" in patch}
                try:
                    steps = [
                        WorkflowStepDefinition.model_validate({**s.model_dump(), **patches[s.id]})
                        if s.id in patches
                        else s
                        for s in steps
                    ]
                except ValidationError as e:
                    return _failure(
                        "modifications.update_steps",
                        f"Invalid step update: {e}",
                        ErrorCode.VALIDATION_FAILED,
                    )

            if mods.add_steps:
                steps.extend(
                    build_steps(
                        mods.add_steps,
                        start_order=len(steps),
                        existing_ids=[s.id for s in steps],
                    )
                )

            changes["steps"] = steps
            if steps and source.initial_step_id not in {s.id for s in steps}:
                changes["initial_step_id"] = steps[0].id

            if mods.update_tags is not None:
                changes["tags"] = list(mods.update_tags)
            if mods.update_category:
                changes["category"] = mods.update_category

        try:
            clone = WorkflowTemplate.model_validate({**source.model_dump(), **changes})
        except ValidationError as e:
            return _failure(
                "modifications", f"Invalid template clone: {e}", ErrorCode.VALIDATION_FAILED
            )

        validation = validate_template(clone)
        if not validation.is_valid:
            return TemplateResult(template=None, validation=validation)

        saved = self._repo.create(clone)
        self._state.add(saved)
        self._record_tags(saved.tags)
        logger.info(
            "Template cloned",
            extra={"template_id": saved.id, "source_template_id": source.id},
        )
        return TemplateResult(template=saved, validation=validation)

    def update_template(self, template_id: int, updates: Mapping[str, Any]) -> TemplateResult:
        existing = self._repo.get_by_id(template_id)
        if existing is None:
            return _failure("id", "Template not found", ErrorCode.NOT_FOUND)

        try:
            candidate = WorkflowTemplate.model_validate(
                {**existing.model_dump(), **updates, "id": existing.id}
            )
        except ValidationError as e:
            return _failure("updates", f"Invalid template update: {e}", ErrorCode.VALIDATION_FAILED)

        validation = validate_template(candidate)
        if not validation.is_valid:
            return TemplateResult(template=None, validation=validation)

        saved = self._repo.update(template_id, updates)
        if saved is None:
            return _failure("id", "Failed to update template", ErrorCode.UPDATE_FAILED)

        self._state.replace(saved)
        if "tags" in updates:
            self._record_tags(saved.tags)
        logger.info("Template updated", extra={"template_id": template_id})
        return TemplateResult(template=saved, validation=validation)

    def delete_template(self, template_id: int) -> bool:
        if not self._repo.delete(template_id):
            return False
        self._refresh(template_id)
        self._record_tags([])
        logger.info("Template deleted", extra={"template_id": template_id})
        return True

    def restore_template(self, template_id: int) -> bool:
        if not self._repo.restore(template_id):
            return False
        self._refresh(template_id)
        self._record_tags([])
        logger.info("Template restored", extra={"template_id": template_id})
        return True

    def get_template(self, template_id: int) -> WorkflowTemplate | None:
        return self._repo.get_by_id(template_id)

    def require_template(self, template_id: int) -> WorkflowTemplate:
        """Like :meth:`get_template`, but raises `NotFoundError` for unknown ids."""

        return self._repo.require(template_id)

    def list_templates(self, *, include_deleted: bool = False) -> list[WorkflowTemplate]:
        return self._repo.get_all() if include_deleted else self._repo.get_active()

    # Search

    def search_templates(self, criteria: TemplateSearchCriteria) -> list[WorkflowTemplate]:
        query = (criteria.query or "").strip()
        results = self._repo.search(query) if query else self._repo.get_active()

        if criteria.category:
            results = [t for t in results if t.category == criteria.category]

        if criteria.subcategory:
            results = [t for t in results if t.subcategory == criteria.subcategory]

        if criteria.tags:
            wanted_tags = set(criteria.tags)
            results = [t for t in results if wanted_tags.intersection(t.tags)]

        if criteria.applicable_to:
            wanted_audience = set(criteria.applicable_to)
            results = [t for t in results if wanted_audience.intersection(t.applicable_to)]

        # Templates without a bound on one side accept any amount on that side.
        if criteria.min_amount is not None:
            results = [
                t
                for t in results
                if t.amount_thresholds is None
                or t.amount_thresholds.max_amount is None
                or t.amount_thresholds.max_amount >= criteria.min_amount
            ]
        if criteria.max_amount is not None:
            results = [
                t
                for t in results
                if t.amount_thresholds is None
                or t.amount_thresholds.min_amount is None
                or t.amount_thresholds.min_amount <= criteria.max_amount
            ]

        if criteria.department_restrictions:
            departments = set(criteria.department_restrictions)
            results = [
                t
                for t in results
                if not t.department_restrictions
                or departments.intersection(t.department_restrictions)
            ]

        if criteria.is_public is not None:
            results = [t for t in results if t.is_public == criteria.is_public]

        if criteria.sort_by:
            results = _sort_templates(results, criteria.sort_by, criteria.sort_order or "asc")

        return results

    def get_recommended_templates(
        self,
        *,
        category: str | None = None,
        tags: Sequence[str] | None = None,
        applicable_to: str | None = None,
        amount: float | None = None,
    ) -> list[WorkflowTemplate]:
        """Up to five matching templates, most used first."""

        criteria = TemplateSearchCriteria(
            category=category,
            tags=list(tags) if tags else None,
            applicable_to=[applicable_to] if applicable_to else None,
            min_amount=amount,
            max_amount=amount,
            sort_by="usage_count",
            sort_order="desc",
        )
        return self.search_templates(criteria)[:RECOMMENDATION_LIMIT]

    # Families

    def get_template_variants(self, template_id: int) -> list[WorkflowTemplate]:
        """Siblings: other templates cloned from the same parent."""

        template = self._repo.get_by_id(template_id)
        if template is None or template.parent_template_id is None:
            return []
        return [
            t for t in self._repo.get_by_parent(template.parent_template_id) if t.id != template_id
        ]

    def get_template_descendants(self, template_id: int) -> list[WorkflowTemplate]:
        return self._repo.get_descendants(template_id)

    def validate_template(self, template: WorkflowTemplate) -> ValidationResult:
        return validate_template(template)

    # Helpers

    def _refresh(self, template_id: int) -> None:
        current = self._repo.get_by_id(template_id)
        if current is not None:
            self._state.replace(current)

    def _record_tags(self, tags: Iterable[str]) -> None:
        if self._taxonomy is None:
            return
        for tag in tags:
            self._taxonomy.get_or_create_tag(tag)
        self._taxonomy.sync_tag_usage_counts(t.tags for t in self._repo.get_active())


def _sort_templates(
    templates: list[WorkflowTemplate], sort_by: str, sort_order: str
) -> list[WorkflowTemplate]:
    keys = {
        "name": lambda t: t.name.casefold(),
        "usage_count": lambda t: t.usage_count,
        "created_at": lambda t: t.created_at,
        "last_modified_at": lambda t: t.last_modified_at,
    }
    return sorted(templates, key=keys[sort_by], reverse=sort_order == "desc")
