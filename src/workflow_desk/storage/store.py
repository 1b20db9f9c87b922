"""Key-value stores for desk state.

Every collection (templates, instances, categories, tags) is persisted as a
single JSON blob under a string key, and id counters are persisted as decimal
text under their own keys. This keeps the storage contract as small as a
browser's `localStorage`:

- `get_item(key)` returns the stored text or None
- `set_item(key, value)` replaces it
- `remove_item(key)` drops it

Reads are forgiving (a corrupt blob is logged and treated as empty); writes
fail loudly with :class:`~workflow_desk.errors.StorageError`.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from workflow_desk.errors import StorageError

if TYPE_CHECKING:
    from workflow_desk.config import DeskSettings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class KeyValueStore(Protocol):
    """String-keyed, string-valued persistence."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStore:
    """Dict-backed store; nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._items)


class JsonFileStore:
    """One `<key>.json` file per key under a root directory."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        if not key.strip() or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                return path.read_text(encoding="utf-8")
            except OSError as e:
                raise StorageError(f"Failed to read {path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                self._root.mkdir(parents=True, exist_ok=True)
                path.write_text(value, encoding="utf-8")
            except OSError as e:
                logger.error("Failed to write state", extra={"path": str(path), "error": str(e)})
                raise StorageError(f"Failed to write {path}: {e}") from e

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            path.unlink(missing_ok=True)

    def keys(self) -> list[str]:
        if not self._root.exists():
            return []
        return sorted(p.stem for p in self._root.glob("*.json") if p.is_file())


def load_json_list(store: KeyValueStore, key: str, model: type[ModelT]) -> list[ModelT]:
    """Load a JSON array of `model` objects stored under `key`.

    Missing, corrupt or wrongly-shaped blobs read as an empty list. Individual
    entries that fail validation are skipped.
    """

    raw_text = store.get_item(key)
    if raw_text is None or not raw_text.strip():
        return []

    try:
        raw = json.loads(raw_text)
    except json.JSONDecodeError:
        logger.warning("Stored value is not valid JSON; treating as empty", extra={"key": key})
        return []

    if not isinstance(raw, list):
        logger.warning("Stored value has unexpected shape; treating as empty", extra={"key": key})
        return []

    items: list[ModelT] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        try:
            items.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(
                "Skipping invalid stored entry",
                extra={"key": key, "index": index, "errors": e.error_count()},
            )
    return items


def save_json_list(store: KeyValueStore, key: str, items: Sequence[BaseModel]) -> None:
    payload = [m.model_dump(mode="json") for m in items]
    store.set_item(key, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def next_id(store: KeyValueStore, key: str, *, floor: int = 1) -> int:
    """Return the next id from the counter under `key` and advance it.

    `floor` guards against a lost or reset counter handing out ids that are
    already in use.
    """

    raw = store.get_item(key)
    current = 1
    if raw is not None:
        try:
            current = int(raw.strip())
        except ValueError:
            logger.warning("Id counter is not a number; resetting", extra={"key": key})
    current = max(current, floor)
    store.set_item(key, str(current + 1))
    return current


def open_store(settings: DeskSettings) -> KeyValueStore:
    """Build the key-value backend selected in settings."""

    if settings.storage_backend == "file":
        logger.debug("Using file store", extra={"path": str(settings.state_path)})
        return JsonFileStore(settings.state_path)
    if settings.storage_backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")
