"""The workflow domain.

This package provides:
- models for templates, instances and their history
- validation of templates and transition requests
- repositories over a key-value store
- services for authoring templates, running instances, taxonomy and analytics

:class:`Desk` wires all of these together over one store.
"""

from __future__ import annotations

from dataclasses import dataclass

from workflow_desk.storage import KeyValueStore
from workflow_desk.workflow.analytics import AnalyticsService
from workflow_desk.workflow.engine import EngineService
from workflow_desk.workflow.repositories import (
    InstanceRepository,
    TaxonomyRepository,
    TemplateRepository,
)
from workflow_desk.workflow.seed import WorkflowSeeder
from workflow_desk.workflow.state import InstanceState, TemplateState
from workflow_desk.workflow.taxonomy import TaxonomyService
from workflow_desk.workflow.templates import TemplateService


@dataclass
class Desk:
    store: KeyValueStore
    templates: TemplateService
    engine: EngineService
    taxonomy: TaxonomyService
    analytics: AnalyticsService
    seeder: WorkflowSeeder

    @classmethod
    def open(cls, store: KeyValueStore, *, seed: bool = False) -> Desk:
        """Build every service over `store`, optionally seeding sample templates."""

        template_repo = TemplateRepository(store)
        instance_repo = InstanceRepository(store)
        taxonomy_repo = TaxonomyRepository(store)

        template_state = TemplateState(template_repo.get_all)
        instance_state = InstanceState(instance_repo.get_all)

        templates = TemplateService(template_repo, template_state, taxonomy_repo)
        desk = cls(
            store=store,
            templates=templates,
            engine=EngineService(
                template_repo,
                instance_repo,
                instance_state=instance_state,
                template_state=template_state,
            ),
            taxonomy=TaxonomyService(taxonomy_repo, template_repo),
            analytics=AnalyticsService(template_repo, instance_repo),
            seeder=WorkflowSeeder(templates, template_repo),
        )

        if seed:
            desk.seeder.initialize_sample_templates()
        template_state.load()
        instance_state.load()
        return desk


__all__ = [
    "AnalyticsService",
    "Desk",
    "EngineService",
    "InstanceRepository",
    "TaxonomyRepository",
    "TaxonomyService",
    "TemplateRepository",
    "TemplateService",
    "WorkflowSeeder",
]
