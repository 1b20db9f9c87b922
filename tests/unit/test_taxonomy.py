"""Unit tests for the taxonomy service."""

from __future__ import annotations

import pytest

from workflow_desk.workflow import Desk
from workflow_desk.workflow.models import TemplateCategory, WorkflowTemplate
from workflow_desk.workflow.taxonomy import CategoryCount, TagWeight


def test_category_statistics_rank_largest_first(desk: Desk) -> None:
    desk.seeder.initialize_sample_templates()

    stats = desk.taxonomy.get_category_statistics()

    assert stats[0] == CategoryCount(category="travel", count=2)
    assert sum(s.count for s in stats) == 5
    assert {s.category for s in stats} == {"custom", "purchasing", "travel", "operations"}


def test_deleted_templates_leave_statistics_and_tag_counts(
    desk: Desk, approval_template: WorkflowTemplate
) -> None:
    desk.templates.delete_template(approval_template.id)

    assert desk.taxonomy.get_category_statistics() == []
    tag = desk.taxonomy.get_tag("standard")
    assert tag is not None and tag.usage_count == 0
    assert desk.taxonomy.cleanup_unused_tags() == 2
    assert desk.taxonomy.get_all_tags() == []


def test_tag_cloud_weights(desk: Desk) -> None:
    desk.seeder.initialize_sample_templates()

    cloud = desk.taxonomy.get_tag_cloud()

    assert cloud[0] == TagWeight(tag="standard", count=4, weight=1.0)
    internal = next(w for w in cloud if w.tag == "internal")
    assert internal.weight == pytest.approx(0.5)
    assert all(0 < w.weight <= 1 for w in cloud)
    assert len(desk.taxonomy.get_tag_cloud(limit=3)) == 3


def test_tag_cloud_empty(desk: Desk) -> None:
    assert desk.taxonomy.get_tag_cloud() == []


def test_sync_recounts_from_active_templates(
    desk: Desk, approval_template: WorkflowTemplate
) -> None:
    desk.taxonomy.get_or_create_tag("orphan")
    desk.taxonomy.sync_tag_usage()

    counts = {t.name: t.usage_count for t in desk.taxonomy.get_all_tags()}
    assert counts == {"standard": 1, "low-value": 1, "orphan": 0}
    assert [t.name for t in desk.taxonomy.search_tags("VALUE")] == ["low-value"]


def test_category_management(desk: Desk) -> None:
    assert desk.taxonomy.get_category("travel") is not None

    desk.taxonomy.save_category(
        TemplateCategory(id="visas", name="Visas", parent_category_id="travel", order=9)
    )
    assert [c.id for c in desk.taxonomy.get_child_categories("travel")] == ["visas"]
    assert "visas" not in {c.id for c in desk.taxonomy.get_top_level_categories()}

    assert desk.taxonomy.delete_category("visas")
    desk.taxonomy.reset_categories()
    assert len(desk.taxonomy.get_all_categories()) == 8
