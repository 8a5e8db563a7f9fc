"""Durable key-value stores for form drafts and client-side caches.

The store is a single global namespace of string keys to string values,
synchronous and fallible. Every failure surfaces as PersistenceFailure
(StorageQuotaExceeded when full); callers decide whether to log or
propagate.

Two implementations:
- MemoryKeyValueStore: in-process, optional byte capacity.
- JsonFileKeyValueStore: one JSON document on disk, rewritten on each
  mutation. Suitable for a single client process.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Protocol

from sipandai.errors import PersistenceFailure, StorageQuotaExceeded

FORM_DRAFT_PREFIX = "sipandai_form_draft_"
CACHE_PREFIX = "sipandai_cache_"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def keys(self) -> list[str]:
        ...


class MemoryKeyValueStore:
    """In-memory store. Size is measured as len(key) + len(value)."""

    def __init__(self, capacity_bytes: Optional[int] = None) -> None:
        self._data: dict[str, str] = {}
        self._capacity = capacity_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise PersistenceFailure(
                f"Values must be strings, got {type(value).__name__} for {key!r}"
            )
        if self._capacity is not None:
            current = self.size() - _entry_size(key, self._data.get(key))
            if current + _entry_size(key, value) > self._capacity:
                raise StorageQuotaExceeded(
                    f"Writing {key!r} would exceed capacity of {self._capacity} bytes"
                )
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data.keys())

    def size(self) -> int:
        return sum(_entry_size(k, v) for k, v in self._data.items())


class JsonFileKeyValueStore:
    """File-backed store.

    Usage:
        store = JsonFileKeyValueStore(Path("data/drafts.json"))
        store.set("sipandai_form_draft_leave", '{"days": 3}')
    """

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path
        self._data: dict[str, str] = {}
        if storage_path.exists():
            self._load()

    def _load(self) -> None:
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise PersistenceFailure(f"Cannot read store {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceFailure(f"Store {self._path} is not a JSON object")
        self._data = {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, sort_keys=True, ensure_ascii=False)
        except OSError as exc:
            raise PersistenceFailure(f"Cannot write store {self._path}: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise PersistenceFailure(
                f"Values must be strings, got {type(value).__name__} for {key!r}"
            )
        previous = self._data.get(key)
        self._data[key] = value
        try:
            self._save()
        except PersistenceFailure:
            # Keep memory consistent with what is on disk.
            if previous is None:
                self._data.pop(key, None)
            else:
                self._data[key] = previous
            raise

    def remove(self, key: str) -> None:
        if key not in self._data:
            return
        del self._data[key]
        self._save()

    def keys(self) -> list[str]:
        return list(self._data.keys())


# ----------------------------------------------------------------------
# Prefix helpers
# ----------------------------------------------------------------------

def keys_with_prefix(store: KeyValueStore, prefix: str) -> list[str]:
    return [k for k in store.keys() if k.startswith(prefix)]


def clear_with_prefix(store: KeyValueStore, prefix: str) -> int:
    """Remove every key with the prefix. Returns the number removed."""
    keys = keys_with_prefix(store, prefix)
    for key in keys:
        store.remove(key)
    return len(keys)


def draft_key(form_id: str, prefix: str = FORM_DRAFT_PREFIX) -> str:
    """Storage key for a form draft."""
    if not form_id.strip():
        raise ValueError("Cannot build a draft key from a blank form id")
    return f"{prefix}{form_id.strip()}"


def _entry_size(key: str, value: Optional[str]) -> int:
    if value is None:
        return 0
    return len(key) + len(value)
