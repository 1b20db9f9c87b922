"""Persistence for templates, instances and taxonomy.

Each repository keeps its whole collection as one JSON array under a storage
key. Reads go back to the store every time, so two repositories over the same
store always agree.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from workflow_desk.errors import NotFoundError
from workflow_desk.storage import KeyValueStore, load_json_list, next_id, save_json_list
from workflow_desk.workflow.constants import (
    CATEGORIES_KEY,
    DEFAULT_CATEGORIES,
    INSTANCES_KEY,
    NEXT_INSTANCE_ID_KEY,
    NEXT_TEMPLATE_ID_KEY,
    TAGS_KEY,
    TEMPLATES_KEY,
)
from workflow_desk.workflow.models import (
    TemplateCategory,
    TemplateTag,
    WorkflowInstance,
    WorkflowStatus,
    WorkflowTemplate,
    as_utc,
    utc_now,
)

logger = logging.getLogger(__name__)


def _merge(model: Any, updates: Mapping[str, Any]) -> dict[str, Any]:
    data = model.model_dump()
    data.update(updates)
    return data


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@dataclass
class TemplateRepository:
    store: KeyValueStore

    def get_all(self) -> list[WorkflowTemplate]:
        return load_json_list(self.store, TEMPLATES_KEY, WorkflowTemplate)

    def _save_all(self, templates: list[WorkflowTemplate]) -> None:
        save_json_list(self.store, TEMPLATES_KEY, templates)

    def get_by_id(self, template_id: int) -> WorkflowTemplate | None:
        for template in self.get_all():
            if template.id == template_id:
                return template
        return None

    def require(self, template_id: int) -> WorkflowTemplate:
        template = self.get_by_id(template_id)
        if template is None:
            raise NotFoundError(f"Template not found: {template_id}")
        return template

    def get_by_ids(self, ids: Iterable[int]) -> list[WorkflowTemplate]:
        wanted = set(ids)
        return [t for t in self.get_all() if t.id in wanted]

    def get_active(self) -> list[WorkflowTemplate]:
        return [t for t in self.get_all() if not t.deleted]

    def get_by_category(self, category: str) -> list[WorkflowTemplate]:
        return [t for t in self.get_active() if t.category == category]

    def get_by_tags(self, tags: Iterable[str]) -> list[WorkflowTemplate]:
        """Active templates carrying any of `tags`."""

        wanted = set(tags)
        return [t for t in self.get_active() if wanted.intersection(t.tags)]

    def search(self, query: str) -> list[WorkflowTemplate]:
        needle = query.lower()
        return [
            t
            for t in self.get_active()
            if needle in t.name.lower()
            or needle in t.description.lower()
            or needle in t.when_to_use.lower()
        ]

    def save(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Insert or replace `template` by id, refreshing its modification time."""

        saved = template.model_copy(update={"last_modified_at": utc_now()})
        templates = self.get_all()
        for idx, existing in enumerate(templates):
            if existing.id == saved.id:
                templates[idx] = saved
                break
        else:
            templates.append(saved)
        self._save_all(templates)
        return saved

    def create(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Store `template` under a freshly allocated id (its own id is ignored)."""

        floor = max((t.id for t in self.get_all()), default=0) + 1
        now = utc_now()
        new = template.model_copy(
            update={
                "id": next_id(self.store, NEXT_TEMPLATE_ID_KEY, floor=floor),
                "created_at": now,
                "last_modified_at": now,
            }
        )
        saved = self.save(new)
        logger.debug("Template created", extra={"template_id": saved.id})
        return saved

    def update(self, template_id: int, updates: Mapping[str, Any]) -> WorkflowTemplate | None:
        """Apply a partial update. `id` and `created_at` cannot change."""

        current = self.get_by_id(template_id)
        if current is None:
            return None
        data = _merge(current, updates)
        data["id"] = current.id
        data["created_at"] = current.created_at
        return self.save(WorkflowTemplate.model_validate(data))

    def delete(self, template_id: int) -> bool:
        current = self.get_by_id(template_id)
        if current is None:
            return False
        self.save(current.model_copy(update={"deleted": True}))
        return True

    def hard_delete(self, template_id: int) -> bool:
        templates = self.get_all()
        remaining = [t for t in templates if t.id != template_id]
        if len(remaining) == len(templates):
            return False
        self._save_all(remaining)
        return True

    def restore(self, template_id: int) -> bool:
        current = self.get_by_id(template_id)
        if current is None or not current.deleted:
            return False
        self.save(current.model_copy(update={"deleted": False}))
        return True

    def increment_usage_count(self, template_id: int) -> bool:
        current = self.get_by_id(template_id)
        if current is None:
            return False
        self.save(current.model_copy(update={"usage_count": current.usage_count + 1}))
        return True

    def get_most_used(self, limit: int = 10) -> list[WorkflowTemplate]:
        return sorted(self.get_active(), key=lambda t: t.usage_count, reverse=True)[:limit]

    def get_recently_created(self, limit: int = 10) -> list[WorkflowTemplate]:
        return sorted(self.get_active(), key=lambda t: t.created_at, reverse=True)[:limit]

    def get_recently_modified(self, limit: int = 10) -> list[WorkflowTemplate]:
        return sorted(self.get_active(), key=lambda t: t.last_modified_at, reverse=True)[:limit]

    def get_by_parent(self, parent_id: int) -> list[WorkflowTemplate]:
        return [t for t in self.get_active() if t.parent_template_id == parent_id]

    def get_descendants(self, template_id: int) -> list[WorkflowTemplate]:
        """All active templates cloned (directly or transitively) from `template_id`."""

        active = self.get_active()
        children: dict[int, list[WorkflowTemplate]] = {}
        for template in active:
            if template.parent_template_id is not None:
                children.setdefault(template.parent_template_id, []).append(template)

        found: list[WorkflowTemplate] = []
        seen: set[int] = {template_id}
        pending = [template_id]
        while pending:
            for child in children.get(pending.pop(0), []):
                if child.id in seen:
                    continue
                seen.add(child.id)
                found.append(child)
                pending.append(child.id)
        return found

    def get_family_tree(self, template_id: int) -> list[WorkflowTemplate]:
        """The template itself followed by its descendants."""

        template = self.get_by_id(template_id)
        if template is None:
            return []
        return [template, *self.get_descendants(template_id)]

    def clear(self) -> None:
        self.store.remove_item(TEMPLATES_KEY)
        self.store.remove_item(NEXT_TEMPLATE_ID_KEY)

    def count(self) -> int:
        return len(self.get_active())

    def exists(self, template_id: int) -> bool:
        return self.get_by_id(template_id) is not None


# ---------------------------------------------------------------------------
# Instances
# ---------------------------------------------------------------------------


@dataclass
class InstanceRepository:
    store: KeyValueStore

    def get_all(self) -> list[WorkflowInstance]:
        return load_json_list(self.store, INSTANCES_KEY, WorkflowInstance)

    def _save_all(self, instances: list[WorkflowInstance]) -> None:
        save_json_list(self.store, INSTANCES_KEY, instances)

    def get_by_id(self, instance_id: int) -> WorkflowInstance | None:
        for instance in self.get_all():
            if instance.id == instance_id:
                return instance
        return None

    def require(self, instance_id: int) -> WorkflowInstance:
        instance = self.get_by_id(instance_id)
        if instance is None:
            raise NotFoundError(f"Instance not found: {instance_id}")
        return instance

    def get_active(self) -> list[WorkflowInstance]:
        return [i for i in self.get_all() if not i.deleted]

    def get_by_template_id(self, template_id: int) -> list[WorkflowInstance]:
        return [i for i in self.get_active() if i.template_id == template_id]

    def get_by_status(self, status: WorkflowStatus) -> list[WorkflowInstance]:
        return [i for i in self.get_active() if i.status == status]

    def get_by_statuses(self, statuses: Iterable[WorkflowStatus]) -> list[WorkflowInstance]:
        wanted = set(statuses)
        return [i for i in self.get_active() if i.status in wanted]

    def get_by_initiator(self, initiated_by: str) -> list[WorkflowInstance]:
        return [i for i in self.get_active() if i.initiated_by == initiated_by]

    def get_assigned_to(self, assignee: str) -> list[WorkflowInstance]:
        return [i for i in self.get_active() if assignee in i.current_assignees]

    def get_in_progress(self) -> list[WorkflowInstance]:
        return self.get_by_status(WorkflowStatus.IN_PROGRESS)

    def get_completed(self) -> list[WorkflowInstance]:
        return self.get_by_status(WorkflowStatus.COMPLETED)

    def get_drafts(self) -> list[WorkflowInstance]:
        return self.get_by_status(WorkflowStatus.DRAFT)

    def get_rejected(self) -> list[WorkflowInstance]:
        return self.get_by_status(WorkflowStatus.REJECTED)

    def get_created_after(self, moment: datetime) -> list[WorkflowInstance]:
        """Naive `moment` values are read as UTC."""

        moment = as_utc(moment)
        return [i for i in self.get_active() if i.created_at > moment]

    def get_created_before(self, moment: datetime) -> list[WorkflowInstance]:
        moment = as_utc(moment)
        return [i for i in self.get_active() if i.created_at < moment]

    def get_modified_after(self, moment: datetime) -> list[WorkflowInstance]:
        moment = as_utc(moment)
        return [i for i in self.get_active() if i.last_modified_at > moment]

    def save(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Insert or replace `instance` by id.

        Instances saved in a terminal status without a completion time get one.
        """

        now = utc_now()
        changes: dict[str, Any] = {"last_modified_at": now}
        if instance.status.is_terminal and instance.completed_at is None:
            changes["completed_at"] = now
        saved = instance.model_copy(update=changes)

        instances = self.get_all()
        for idx, existing in enumerate(instances):
            if existing.id == saved.id:
                instances[idx] = saved
                break
        else:
            instances.append(saved)
        self._save_all(instances)
        return saved

    def create(self, instance: WorkflowInstance) -> WorkflowInstance:
        floor = max((i.id for i in self.get_all()), default=0) + 1
        now = utc_now()
        new = instance.model_copy(
            update={
                "id": next_id(self.store, NEXT_INSTANCE_ID_KEY, floor=floor),
                "created_at": now,
                "last_modified_at": now,
            }
        )
        return self.save(new)

    def update(self, instance_id: int, updates: Mapping[str, Any]) -> WorkflowInstance | None:
        current = self.get_by_id(instance_id)
        if current is None:
            return None
        data = _merge(current, updates)
        data["id"] = current.id
        data["created_at"] = current.created_at
        return self.save(WorkflowInstance.model_validate(data))

    def delete(self, instance_id: int) -> bool:
        current = self.get_by_id(instance_id)
        if current is None:
            return False
        self.save(current.model_copy(update={"deleted": True}))
        return True

    def hard_delete(self, instance_id: int) -> bool:
        instances = self.get_all()
        remaining = [i for i in instances if i.id != instance_id]
        if len(remaining) == len(instances):
            return False
        self._save_all(remaining)
        return True

    def restore(self, instance_id: int) -> bool:
        current = self.get_by_id(instance_id)
        if current is None or not current.deleted:
            return False
        self.save(current.model_copy(update={"deleted": False}))
        return True

    def get_recently_created(self, limit: int = 10) -> list[WorkflowInstance]:
        return sorted(self.get_active(), key=lambda i: i.created_at, reverse=True)[:limit]

    def get_recently_modified(self, limit: int = 10) -> list[WorkflowInstance]:
        return sorted(self.get_active(), key=lambda i: i.last_modified_at, reverse=True)[:limit]

    def clear(self) -> None:
        self.store.remove_item(INSTANCES_KEY)
        self.store.remove_item(NEXT_INSTANCE_ID_KEY)

    def count(self) -> int:
        return len(self.get_active())

    def count_by_status(self, status: WorkflowStatus) -> int:
        return len(self.get_by_status(status))

    def count_by_template(self, template_id: int) -> int:
        return len(self.get_by_template_id(template_id))

    def exists(self, instance_id: int) -> bool:
        return self.get_by_id(instance_id) is not None

    def get_template_statistics(self, template_id: int) -> dict[WorkflowStatus, int]:
        """Active instance counts per status for one template (every status present)."""

        counts = {status: 0 for status in WorkflowStatus}
        for instance in self.get_by_template_id(template_id):
            counts[instance.status] += 1
        return counts

    def get_average_completion_time(self, template_id: int) -> float | None:
        """Mean hours from creation to completion over completed instances."""

        durations = [
            (i.completed_at - i.created_at).total_seconds() / 3600
            for i in self.get_by_template_id(template_id)
            if i.status == WorkflowStatus.COMPLETED and i.completed_at is not None
        ]
        if not durations:
            return None
        return sum(durations) / len(durations)


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------

_WHITESPACE = re.compile(r"\s+")


def tag_id_for(name: str) -> str:
    return _WHITESPACE.sub("-", name.strip().lower())


@dataclass
class TaxonomyRepository:
    store: KeyValueStore

    # Categories

    def get_all_categories(self) -> list[TemplateCategory]:
        """Stored categories; the defaults are written on first read."""

        if self.store.get_item(CATEGORIES_KEY) is None:
            defaults = [c.model_copy() for c in DEFAULT_CATEGORIES]
            save_json_list(self.store, CATEGORIES_KEY, defaults)
            return defaults
        return load_json_list(self.store, CATEGORIES_KEY, TemplateCategory)

    def get_category_by_id(self, category_id: str) -> TemplateCategory | None:
        for category in self.get_all_categories():
            if category.id == category_id:
                return category
        return None

    def get_top_level_categories(self) -> list[TemplateCategory]:
        return [c for c in self.get_all_categories() if not c.parent_category_id]

    def get_child_categories(self, parent_id: str) -> list[TemplateCategory]:
        return [c for c in self.get_all_categories() if c.parent_category_id == parent_id]

    def save_category(self, category: TemplateCategory) -> TemplateCategory:
        categories = self.get_all_categories()
        for idx, existing in enumerate(categories):
            if existing.id == category.id:
                categories[idx] = category
                break
        else:
            categories.append(category)
        save_json_list(self.store, CATEGORIES_KEY, categories)
        return category

    def delete_category(self, category_id: str) -> bool:
        categories = self.get_all_categories()
        remaining = [c for c in categories if c.id != category_id]
        if len(remaining) == len(categories):
            return False
        save_json_list(self.store, CATEGORIES_KEY, remaining)
        return True

    def reset_categories(self) -> None:
        save_json_list(self.store, CATEGORIES_KEY, list(DEFAULT_CATEGORIES))

    # Tags

    def get_all_tags(self) -> list[TemplateTag]:
        return load_json_list(self.store, TAGS_KEY, TemplateTag)

    def _save_tags(self, tags: list[TemplateTag]) -> None:
        save_json_list(self.store, TAGS_KEY, tags)

    def get_tag_by_id(self, tag_id: str) -> TemplateTag | None:
        for tag in self.get_all_tags():
            if tag.id == tag_id:
                return tag
        return None

    def get_tags_by_category(self, category: str) -> list[TemplateTag]:
        return [t for t in self.get_all_tags() if t.category == category]

    def get_or_create_tag(self, name: str, category: str | None = None) -> TemplateTag:
        """Find a tag by case-insensitive name, creating it with zero usage if missing."""

        tags = self.get_all_tags()
        lowered = name.lower()
        for tag in tags:
            if tag.name.lower() == lowered:
                return tag

        tag = TemplateTag(id=tag_id_for(name), name=name, category=category, usage_count=0)
        tags.append(tag)
        self._save_tags(tags)
        return tag

    def _adjust_usage(self, name: str, delta: int) -> None:
        tags = self.get_all_tags()
        lowered = name.lower()
        for idx, tag in enumerate(tags):
            if tag.name.lower() != lowered:
                continue
            usage = tag.usage_count + delta
            if usage < 0:
                return
            tags[idx] = tag.model_copy(update={"usage_count": usage})
            self._save_tags(tags)
            return

    def increment_tag_usage(self, name: str) -> None:
        self._adjust_usage(name, 1)

    def decrement_tag_usage(self, name: str) -> None:
        self._adjust_usage(name, -1)

    def sync_tag_usage_counts(self, template_tags: Iterable[Iterable[str]]) -> None:
        """Recount every known tag from the tag lists of the given templates."""

        counts: dict[str, int] = {}
        for tags in template_tags:
            for name in tags:
                key = name.lower()
                counts[key] = counts.get(key, 0) + 1

        updated = [
            tag.model_copy(update={"usage_count": counts.get(tag.name.lower(), 0)})
            for tag in self.get_all_tags()
        ]
        self._save_tags(updated)

    def get_popular_tags(self, limit: int = 20) -> list[TemplateTag]:
        used = [t for t in self.get_all_tags() if t.usage_count > 0]
        return sorted(used, key=lambda t: t.usage_count, reverse=True)[:limit]

    def search_tags(self, query: str) -> list[TemplateTag]:
        needle = query.lower()
        return [t for t in self.get_all_tags() if needle in t.name.lower()]

    def delete_unused_tags(self) -> int:
        tags = self.get_all_tags()
        used = [t for t in tags if t.usage_count > 0]
        self._save_tags(used)
        return len(tags) - len(used)

    def clear_tags(self) -> None:
        self.store.remove_item(TAGS_KEY)
