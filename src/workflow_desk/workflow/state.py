"""In-process state mirrors for templates and instances.

A :class:`Signal` holds a value and notifies subscribers when it changes; a
:class:`Computed` derives a value from signals and recomputes it only when one
of its sources has changed since the last read.

The services write every successful change through to these mirrors, so a
front end (the CLI, or anything embedding the desk) can observe the current
collections without going back to storage.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

from workflow_desk.workflow.models import WorkflowInstance, WorkflowStatus, WorkflowTemplate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Signal(Generic[T]):
    def __init__(self, value: T) -> None:
        self._value = value
        self._version = 0
        self._subscribers: list[Callable[[T], None]] = []

    def __call__(self) -> T:
        return self._value

    def get(self) -> T:
        return self._value

    @property
    def version(self) -> int:
        return self._version

    def set(self, value: T) -> None:
        self._value = value
        self._version += 1
        for callback in list(self._subscribers):
            callback(value)

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self._value))

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register `callback` for future changes. Returns an unsubscribe function."""

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def as_readonly(self) -> ReadonlySignal[T]:
        return ReadonlySignal(self)


class ReadonlySignal(Generic[T]):
    """A view of a signal without `set`/`update`."""

    def __init__(self, source: Signal[T]) -> None:
        self._source = source

    def __call__(self) -> T:
        return self._source()

    def get(self) -> T:
        return self._source.get()

    @property
    def version(self) -> int:
        return self._source.version

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        return self._source.subscribe(callback)


class Computed(Generic[T]):
    """A cached value derived from `sources`."""

    def __init__(self, fn: Callable[[], T], *sources: Signal[Any] | Computed[Any]) -> None:
        self._fn = fn
        self._sources = sources
        self._seen: tuple[int, ...] | None = None
        self._value: T | None = None

    @property
    def version(self) -> int:
        return sum(source.version for source in self._sources)

    def _source_versions(self) -> tuple[int, ...]:
        return tuple(source.version for source in self._sources)

    def __call__(self) -> T:
        versions = self._source_versions()
        if versions != self._seen:
            self._value = self._fn()
            self._seen = versions
        return self._value  # type: ignore[return-value]

    def get(self) -> T:
        return self()


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TemplateState:
    def __init__(self, loader: Callable[[], list[WorkflowTemplate]] | None = None) -> None:
        self._loader = loader

        self._templates: Signal[list[WorkflowTemplate]] = Signal([])
        self._loading = Signal(False)
        self._error: Signal[str | None] = Signal(None)
        self._selected_id: Signal[int | None] = Signal(None)

        self.templates = self._templates.as_readonly()
        self.loading = self._loading.as_readonly()
        self.error = self._error.as_readonly()
        self.selected_id = self._selected_id.as_readonly()

        self.active_templates = Computed(
            lambda: [t for t in self._templates() if not t.deleted], self._templates
        )
        self.deleted_templates = Computed(
            lambda: [t for t in self._templates() if t.deleted], self._templates
        )
        self.selected_template = Computed(self._find_selected, self._templates, self._selected_id)
        self.template_count = Computed(lambda: len(self.active_templates()), self.active_templates)
        self.templates_by_category = Computed(self._group_by_category, self.active_templates)
        self.categories = Computed(
            lambda: sorted({t.category for t in self.active_templates()}), self.active_templates
        )
        self.all_tags = Computed(
            lambda: sorted({tag for t in self.active_templates() for tag in t.tags}),
            self.active_templates,
        )
        self.most_used_templates = Computed(
            lambda: sorted(self.active_templates(), key=lambda t: t.usage_count, reverse=True)[:10],
            self.active_templates,
        )
        self.recent_templates = Computed(
            lambda: sorted(
                self.active_templates(), key=lambda t: t.last_modified_at, reverse=True
            )[:10],
            self.active_templates,
        )

    def _find_selected(self) -> WorkflowTemplate | None:
        selected = self._selected_id()
        if selected is None:
            return None
        return self.get_template_by_id(selected)

    def _group_by_category(self) -> dict[str, list[WorkflowTemplate]]:
        grouped: dict[str, list[WorkflowTemplate]] = {}
        for template in self.active_templates():
            grouped.setdefault(template.category, []).append(template)
        return grouped

    # Actions

    def load(self) -> None:
        if self._loader is None:
            return
        self._loading.set(True)
        self._error.set(None)
        try:
            self._templates.set(list(self._loader()))
        except Exception:
            logger.exception("Failed to load templates")
            self._error.set("Failed to load templates")
            raise
        finally:
            self._loading.set(False)

    def reload(self) -> None:
        self.load()

    def add(self, template: WorkflowTemplate) -> None:
        self._templates.update(lambda items: [*items, template])

    def replace(self, template: WorkflowTemplate) -> None:
        """Swap in `template` for the entry with the same id (appending if absent)."""

        def _swap(items: list[WorkflowTemplate]) -> list[WorkflowTemplate]:
            if not any(t.id == template.id for t in items):
                return [*items, template]
            return [template if t.id == template.id else t for t in items]

        self._templates.update(_swap)

    def remove(self, template_id: int) -> None:
        self._templates.update(lambda items: [t for t in items if t.id != template_id])

    def select(self, template_id: int | None) -> None:
        self._selected_id.set(template_id)

    def clear_selection(self) -> None:
        self._selected_id.set(None)

    def set_error(self, message: str | None) -> None:
        self._error.set(message)

    def clear_error(self) -> None:
        self._error.set(None)

    # Queries

    def get_template_by_id(self, template_id: int) -> WorkflowTemplate | None:
        for template in self._templates():
            if template.id == template_id:
                return template
        return None

    def get_templates_by_category(self, category: str) -> list[WorkflowTemplate]:
        return [t for t in self.active_templates() if t.category == category]

    def get_templates_by_tag(self, tag: str) -> list[WorkflowTemplate]:
        return [t for t in self.active_templates() if tag in t.tags]

    def search(self, query: str) -> list[WorkflowTemplate]:
        needle = query.lower()
        return [
            t
            for t in self.active_templates()
            if needle in t.name.lower()
            or needle in t.description.lower()
            or needle in t.when_to_use.lower()
        ]


# ---------------------------------------------------------------------------
# Instances
# ---------------------------------------------------------------------------


def _with_status(
    source: Computed[list[WorkflowInstance]], status: WorkflowStatus
) -> Computed[list[WorkflowInstance]]:
    return Computed(lambda: [i for i in source() if i.status == status], source)


class InstanceState:
    def __init__(self, loader: Callable[[], list[WorkflowInstance]] | None = None) -> None:
        self._loader = loader

        self._instances: Signal[list[WorkflowInstance]] = Signal([])
        self._loading = Signal(False)
        self._error: Signal[str | None] = Signal(None)
        self._selected_id: Signal[int | None] = Signal(None)

        self.instances = self._instances.as_readonly()
        self.loading = self._loading.as_readonly()
        self.error = self._error.as_readonly()
        self.selected_id = self._selected_id.as_readonly()

        self.active_instances = Computed(
            lambda: [i for i in self._instances() if not i.deleted], self._instances
        )
        self.deleted_instances = Computed(
            lambda: [i for i in self._instances() if i.deleted], self._instances
        )
        self.selected_instance = Computed(self._find_selected, self._instances, self._selected_id)
        self.instance_count = Computed(lambda: len(self.active_instances()), self.active_instances)
        self.instances_by_status = Computed(self._group_by_status, self.active_instances)

        self.draft_instances = _with_status(self.active_instances, WorkflowStatus.DRAFT)
        self.in_progress_instances = _with_status(self.active_instances, WorkflowStatus.IN_PROGRESS)
        self.completed_instances = _with_status(self.active_instances, WorkflowStatus.COMPLETED)
        self.rejected_instances = _with_status(self.active_instances, WorkflowStatus.REJECTED)
        self.cancelled_instances = _with_status(self.active_instances, WorkflowStatus.CANCELLED)

        self.recent_instances = Computed(
            lambda: sorted(
                self.active_instances(), key=lambda i: i.last_modified_at, reverse=True
            )[:20],
            self.active_instances,
        )
        self.status_counts = Computed(self._count_statuses, self.active_instances)

    def _find_selected(self) -> WorkflowInstance | None:
        selected = self._selected_id()
        if selected is None:
            return None
        return self.get_instance_by_id(selected)

    def _group_by_status(self) -> dict[WorkflowStatus, list[WorkflowInstance]]:
        grouped: dict[WorkflowStatus, list[WorkflowInstance]] = {}
        for instance in self.active_instances():
            grouped.setdefault(instance.status, []).append(instance)
        return grouped

    def _count_statuses(self) -> dict[str, int]:
        active = self.active_instances()
        counts = {status.value: 0 for status in WorkflowStatus}
        for instance in active:
            counts[instance.status.value] += 1
        counts["total"] = len(active)
        return counts

    # Actions

    def load(self) -> None:
        if self._loader is None:
            return
        self._loading.set(True)
        self._error.set(None)
        try:
            self._instances.set(list(self._loader()))
        except Exception:
            logger.exception("Failed to load instances")
            self._error.set("Failed to load instances")
            raise
        finally:
            self._loading.set(False)

    def reload(self) -> None:
        self.load()

    def add(self, instance: WorkflowInstance) -> None:
        self._instances.update(lambda items: [*items, instance])

    def replace(self, instance: WorkflowInstance) -> None:
        def _swap(items: list[WorkflowInstance]) -> list[WorkflowInstance]:
            if not any(i.id == instance.id for i in items):
                return [*items, instance]
            return [instance if i.id == instance.id else i for i in items]

        self._instances.update(_swap)

    def remove(self, instance_id: int) -> None:
        self._instances.update(lambda items: [i for i in items if i.id != instance_id])

    def select(self, instance_id: int | None) -> None:
        self._selected_id.set(instance_id)

    def clear_selection(self) -> None:
        self._selected_id.set(None)

    def set_error(self, message: str | None) -> None:
        self._error.set(message)

    def clear_error(self) -> None:
        self._error.set(None)

    # Queries

    def get_instance_by_id(self, instance_id: int) -> WorkflowInstance | None:
        for instance in self._instances():
            if instance.id == instance_id:
                return instance
        return None

    def get_instances_by_template(self, template_id: int) -> list[WorkflowInstance]:
        return [i for i in self.active_instances() if i.template_id == template_id]

    def get_instances_by_statuses(
        self, statuses: Sequence[WorkflowStatus]
    ) -> list[WorkflowInstance]:
        wanted = set(statuses)
        return [i for i in self.active_instances() if i.status in wanted]

    def get_instances_by_initiator(self, initiated_by: str) -> list[WorkflowInstance]:
        return [i for i in self.active_instances() if i.initiated_by == initiated_by]

    def get_instances_assigned_to(self, assignee: str) -> list[WorkflowInstance]:
        return [i for i in self.active_instances() if assignee in i.current_assignees]
