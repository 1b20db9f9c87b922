"""Unit tests for the key-value stores and JSON list helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from workflow_desk.config import DeskSettings
from workflow_desk.storage import (
    JsonFileStore,
    MemoryStore,
    load_json_list,
    next_id,
    open_store,
    save_json_list,
)
from workflow_desk.workflow.models import TemplateTag


def test_memory_store_get_set_remove() -> None:
    store = MemoryStore()
    assert store.get_item("a") is None

    store.set_item("a", "1")
    store.set_item("b", "2")
    assert store.get_item("a") == "1"
    assert store.keys() == ["a", "b"]

    store.remove_item("a")
    store.remove_item("missing")
    assert store.get_item("a") is None


def test_file_store_persists_one_file_per_key(temp_state_dir: Path) -> None:
    store = JsonFileStore(temp_state_dir / "nested")
    store.set_item("workflow_tags", "[]")

    assert (temp_state_dir / "nested" / "workflow_tags.json").read_text(encoding="utf-8") == "[]"
    assert JsonFileStore(temp_state_dir / "nested").get_item("workflow_tags") == "[]"
    assert store.keys() == ["workflow_tags"]

    store.remove_item("workflow_tags")
    assert store.get_item("workflow_tags") is None


@pytest.mark.parametrize("key", ["", "../escape", "a/b", ".hidden"])
def test_file_store_rejects_path_like_keys(temp_state_dir: Path, key: str) -> None:
    with pytest.raises(ValueError):
        JsonFileStore(temp_state_dir).set_item(key, "x")


def test_load_json_list_is_forgiving() -> None:
    store = MemoryStore(
        {
            "corrupt": "{not json",
            "shape": json.dumps({"id": "x"}),
            "mixed": json.dumps(
                [
                    {"id": "ok", "name": "ok"},
                    {"id": "missing-name"},
                    "not-an-object",
                ]
            ),
        }
    )

    assert load_json_list(store, "absent", TemplateTag) == []
    assert load_json_list(store, "corrupt", TemplateTag) == []
    assert load_json_list(store, "shape", TemplateTag) == []

    tags = load_json_list(store, "mixed", TemplateTag)
    assert [t.id for t in tags] == ["ok"]


def test_save_json_list_writes_readable_json() -> None:
    store = MemoryStore()
    save_json_list(store, "tags", [TemplateTag(id="rush", name="rush", usage_count=2)])

    raw = store.get_item("tags")
    assert raw is not None and raw.endswith("\n")
    assert json.loads(raw) == [{"id": "rush", "name": "rush", "category": None, "usage_count": 2}]


def test_next_id_counts_from_one_and_respects_floor() -> None:
    store = MemoryStore()
    assert next_id(store, "counter") == 1
    assert next_id(store, "counter") == 2
    assert store.get_item("counter") == "3"

    assert next_id(store, "counter", floor=10) == 10
    assert next_id(store, "counter") == 11


def test_next_id_recovers_from_garbage_counter() -> None:
    store = MemoryStore({"counter": "abc"})
    assert next_id(store, "counter") == 1


def test_open_store_follows_settings(temp_state_dir: Path) -> None:
    file_settings = DeskSettings(
        WORKFLOW_DESK_STATE_PATH=temp_state_dir, WORKFLOW_DESK_STORAGE="file"
    )
    store = open_store(file_settings)
    assert isinstance(store, JsonFileStore)
    assert store.root == temp_state_dir

    memory_settings = DeskSettings(WORKFLOW_DESK_STORAGE="memory")
    assert isinstance(open_store(memory_settings), MemoryStore)
