"""Persisted record of long-running event containers, keyed by working directory.

The file is a single JSON object::

    {"/abs/path": {"container_id": "<id>", "ports": {"5000": 4444}}}

Read-modify-write cycles hold an advisory ``flock`` on a sibling ``.lock``
file. The lock only orders writers; two invocations from the same directory
can still both decide to start a container before either writes.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from omgexec.containers import short_id
from omgexec.errors import StateStoreError
from omgexec.logger import logger
from omgexec.types import ContainerRecord


def write_json_atomic(path: Path, data: Any, *, indent: int | None = None) -> None:
    """Replace *path* with *data* as JSON via a sibling ``.tmp`` file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=indent))
    tmp.replace(path)


class SubscriptionStateStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    @property
    def lock_path(self) -> Path:
        return self.path.with_suffix(self.path.suffix + ".lock")

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self.lock_path.open("a") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            logger.debug("No state file", path=str(self.path))
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise StateStoreError(f"Unreadable state file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StateStoreError(f"State file {self.path} does not hold a JSON object")
        return data

    def _load_or_empty(self) -> dict[str, Any]:
        try:
            return self._load()
        except StateStoreError as exc:
            logger.warning("Ignoring corrupt state file", path=str(self.path), err=str(exc))
            return {}

    def read(self) -> dict[str, ContainerRecord]:
        """Return every record; an absent or unparsable file reads as empty."""
        records: dict[str, ContainerRecord] = {}
        for cwd, raw in self._load_or_empty().items():
            try:
                records[cwd] = ContainerRecord.from_dict(raw)
            except (AttributeError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed state entry", cwd=cwd, err=str(exc))
        return records

    def get(self, cwd: str) -> ContainerRecord | None:
        return self.read().get(cwd)

    def write(self, cwd: str, record: ContainerRecord) -> None:
        """Set or overwrite the entry for *cwd*, keeping every other entry."""
        with self._locked():
            data = self._load_or_empty()
            data[cwd] = record.to_dict()
            write_json_atomic(self.path, data)
        logger.debug("Saved container record", cwd=cwd, container=short_id(record.container_id))

    def delete(self, cwd: str) -> None:
        with self._locked():
            data = self._load_or_empty()
            if data.pop(cwd, None) is None:
                return
            write_json_atomic(self.path, data)
        logger.debug("Removed container record", cwd=cwd)
