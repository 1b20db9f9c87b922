"""Categories and tags used to organise templates."""

from __future__ import annotations

from dataclasses import dataclass

from workflow_desk.workflow.models import TemplateCategory, TemplateTag
from workflow_desk.workflow.repositories import TaxonomyRepository, TemplateRepository


@dataclass(frozen=True, slots=True)
class CategoryCount:
    category: str
    count: int


@dataclass(frozen=True, slots=True)
class TagWeight:
    tag: str
    count: int
    weight: float


class TaxonomyService:
    def __init__(self, repository: TaxonomyRepository, templates: TemplateRepository) -> None:
        self._repo = repository
        self._templates = templates

    # Categories

    def get_all_categories(self) -> list[TemplateCategory]:
        return self._repo.get_all_categories()

    def get_category(self, category_id: str) -> TemplateCategory | None:
        return self._repo.get_category_by_id(category_id)

    def get_top_level_categories(self) -> list[TemplateCategory]:
        return self._repo.get_top_level_categories()

    def get_child_categories(self, parent_id: str) -> list[TemplateCategory]:
        return self._repo.get_child_categories(parent_id)

    def save_category(self, category: TemplateCategory) -> TemplateCategory:
        return self._repo.save_category(category)

    def delete_category(self, category_id: str) -> bool:
        return self._repo.delete_category(category_id)

    def reset_categories(self) -> None:
        self._repo.reset_categories()

    # Tags

    def get_all_tags(self) -> list[TemplateTag]:
        return self._repo.get_all_tags()

    def get_tag(self, tag_id: str) -> TemplateTag | None:
        return self._repo.get_tag_by_id(tag_id)

    def get_tags_by_category(self, category: str) -> list[TemplateTag]:
        return self._repo.get_tags_by_category(category)

    def get_or_create_tag(self, name: str, category: str | None = None) -> TemplateTag:
        return self._repo.get_or_create_tag(name, category)

    def get_popular_tags(self, limit: int = 20) -> list[TemplateTag]:
        return self._repo.get_popular_tags(limit)

    def search_tags(self, query: str) -> list[TemplateTag]:
        return self._repo.search_tags(query)

    def sync_tag_usage(self) -> None:
        """Recount tag usage from the active templates."""

        self._repo.sync_tag_usage_counts(t.tags for t in self._templates.get_active())

    def cleanup_unused_tags(self) -> int:
        return self._repo.delete_unused_tags()

    # Statistics

    def get_category_statistics(self) -> list[CategoryCount]:
        """Active template counts per category, largest first."""

        counts: dict[str, int] = {}
        for template in self._templates.get_active():
            counts[template.category] = counts.get(template.category, 0) + 1
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        return [CategoryCount(category=name, count=count) for name, count in ranked]

    def get_tag_cloud(self, limit: int = 50) -> list[TagWeight]:
        """Popular tags with usage weights normalised to 0..1 against the top tag."""

        tags = self._repo.get_popular_tags(limit)
        top = max((t.usage_count for t in tags), default=1) or 1
        return [
            TagWeight(tag=t.name, count=t.usage_count, weight=t.usage_count / top) for t in tags
        ]
