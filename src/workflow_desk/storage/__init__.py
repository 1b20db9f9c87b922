"""Local key-value persistence (JSON blobs under string keys)."""

from __future__ import annotations

from workflow_desk.storage.store import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    load_json_list,
    next_id,
    open_store,
    save_json_list,
)

__all__ = [
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "load_json_list",
    "next_id",
    "open_store",
    "save_json_list",
]
