# Overview: Flat-file JSON collections with per-collection locking.

"""
JSON Collection Store

Three independent record collections (users, orders, merch) are each kept as
one JSON array on disk. Every mutation is a whole-collection read, modify and
rewrite, so concurrent writers to the same collection MUST go through
transaction(), which holds that collection's lock for the full cycle.

Files are replaced atomically (temp file + os.replace), so a reader never
observes a partially written collection.

CORRUPT FILES: by default a file that does not hold a JSON array is copied
aside as "<file>.corrupt-<timestamp>" and read as an empty collection. With
STORE_STRICT_READS enabled a StoreCorruptionError is raised instead.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import shutil
import tempfile
import threading
from contextlib import contextmanager
from typing import Iterator

from .time_utils import now_utc

logger = logging.getLogger(__name__)

COLLECTION_FILES = {
    "users": "users.json",
    "orders": "orders.json",
    "merch": "merch-items.json",
}


class StoreCorruptionError(RuntimeError):
    """Raised in strict mode when a collection file cannot be parsed."""


class JsonStore:
    def __init__(self, data_dir: str | None = None, strict_reads: bool = False):
        self.data_dir = data_dir
        self.strict_reads = strict_reads
        self._locks = {name: threading.RLock() for name in COLLECTION_FILES}

    def init_app(self, app) -> None:
        self.data_dir = app.config["DATA_DIR"]
        self.strict_reads = bool(app.config.get("STORE_STRICT_READS", False))
        self._locks = {name: threading.RLock() for name in COLLECTION_FILES}
        os.makedirs(self.data_dir, exist_ok=True)
        app.extensions["json_store"] = self

    @property
    def uploads_dir(self) -> str:
        return os.path.join(self._require_dir(), "uploads")

    def _require_dir(self) -> str:
        if not self.data_dir:
            raise RuntimeError("JsonStore is not initialized (DATA_DIR missing)")
        return self.data_dir

    def path_for(self, name: str) -> str:
        if name not in COLLECTION_FILES:
            raise KeyError(f"Unknown collection: {name}")
        return os.path.join(self._require_dir(), COLLECTION_FILES[name])

    def exists(self, name: str) -> bool:
        return os.path.exists(self.path_for(name))

    def _ensure_file(self, path: str) -> None:
        if not os.path.exists(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)
            self._atomic_write(path, [])

    def _quarantine(self, path: str) -> str:
        stamp = now_utc().strftime("%Y%m%dT%H%M%S%fZ")
        target = f"{path}.corrupt-{stamp}"
        shutil.copy2(path, target)
        return target

    def _read_unlocked(self, name: str) -> list[dict]:
        path = self.path_for(name)
        self._ensure_file(path)
        with open(path, "r", encoding="utf-8") as fh:
            raw = fh.read()

        try:
            parsed = json.loads(raw) if raw.strip() else []
        except json.JSONDecodeError as exc:
            parsed = exc

        if isinstance(parsed, list):
            return [r for r in parsed if isinstance(r, dict)]

        if self.strict_reads:
            raise StoreCorruptionError(f"Collection '{name}' is not a JSON array: {path}")

        saved_as = self._quarantine(path)
        self._atomic_write(path, [])
        logger.error(
            "Collection %s is unreadable; treating as empty (copy saved to %s)",
            name,
            saved_as,
            extra={"collection": name, "quarantine_path": saved_as},
        )
        return []

    def _atomic_write(self, path: str, records: list[dict]) -> None:
        directory = os.path.dirname(path)
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(records, fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def read_collection(self, name: str) -> list[dict]:
        """Return a private copy of every record in the collection."""
        with self._locks[name]:
            return self._read_unlocked(name)

    def write_collection(self, name: str, records: list[dict]) -> None:
        """Replace the whole collection."""
        with self._locks[name]:
            self._atomic_write(self.path_for(name), copy.deepcopy(list(records)))

    @contextmanager
    def transaction(self, name: str) -> Iterator[list[dict]]:
        """
        Read-modify-write under the collection lock.

        The yielded list is written back only if the block completes without
        raising and actually changed it; validation errors inside the block
        leave the file untouched.
        """
        with self._locks[name]:
            records = self._read_unlocked(name)
            snapshot = copy.deepcopy(records)
            yield records
            if records != snapshot:
                self._atomic_write(self.path_for(name), records)

    def ensure_collections(self) -> None:
        """Create any missing collection file as an empty array."""
        for name in COLLECTION_FILES:
            with self._locks[name]:
                self._ensure_file(self.path_for(name))

    def counts(self) -> dict:
        """Record counts; a missing file counts as 0 and is NOT created."""
        result = {}
        for name in COLLECTION_FILES:
            with self._locks[name]:
                result[name] = len(self._read_unlocked(name)) if self.exists(name) else 0
        return result
