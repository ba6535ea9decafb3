# Overview: Local durable key-value persistence (one JSON document per collection).

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from ..errors import PersistenceError
from ..models import ENTITY_TYPES
from .base import PersistencePort, empty_snapshot

logger = logging.getLogger(__name__)


class LocalJsonPort(PersistencePort):
    """
    Single-actor local store.

    Each (scope, collection) pair is one JSON array on disk, named
    "<prefix>-<scope>-<collection>.json". Documents are rewritten atomically
    (temp file + os.replace) so a crash never leaves a half-written file.
    There is no change feed: subscribe() is the default no-op.
    """

    def __init__(self, directory: str | os.PathLike, *, key_prefix: str = "bizmanager"):
        self.directory = Path(directory)
        self.key_prefix = key_prefix
        self._lock = threading.Lock()

    def _path(self, scope: str, entity_type: str) -> Path:
        return self.directory / f"{self.key_prefix}-{scope}-{entity_type}.json"

    def _read(self, path: Path) -> list[dict]:
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"cannot read {path.name}: {exc}") from exc
        if not isinstance(data, list):
            raise PersistenceError(f"{path.name} does not contain a list")
        return data

    def _write(self, path: Path, rows: list[dict]) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        except OSError as exc:
            raise PersistenceError(f"cannot write {path.name}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(rows, fh, indent=2, sort_keys=True)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise PersistenceError(f"cannot write {path.name}: {exc}") from exc

    def load_all(self, scope: str) -> dict[str, list[dict]]:
        snapshot = empty_snapshot()
        with self._lock:
            for entity_type in ENTITY_TYPES:
                snapshot[entity_type] = self._read(self._path(scope, entity_type))
        logger.debug("Loaded scope %s from %s", scope, self.directory)
        return snapshot

    def upsert(self, scope: str, entity_type: str, record: dict, *, origin: str | None = None) -> None:
        path = self._path(scope, entity_type)
        with self._lock:
            rows = self._read(path)
            for index, row in enumerate(rows):
                if row.get("id") == record["id"]:
                    rows[index] = record
                    break
            else:
                rows.append(record)
            self._write(path, rows)

    def delete(self, scope: str, entity_type: str, entity_id: str, *, origin: str | None = None) -> None:
        path = self._path(scope, entity_type)
        with self._lock:
            rows = self._read(path)
            remaining = [row for row in rows if row.get("id") != entity_id]
            if len(remaining) != len(rows):
                self._write(path, remaining)
