"""Instance persistence (~/.squadron/instances.json)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from loguru import logger

from squadron.config.files import read_json, write_json_atomic
from squadron.core.errors import StorageError
from squadron.core.instance import Instance
from squadron.paths import INSTANCES_PATH


class Storage:
    """JSON-backed instance store keyed by title."""

    def __init__(self, path: Path = INSTANCES_PATH) -> None:
        self.path = path

    def _read_records(self) -> list[dict[str, object]]:
        try:
            raw = read_json(self.path)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"failed to read {self.path}: {e}") from e
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise StorageError(f"unexpected instance data in {self.path}")
        return [item for item in raw if isinstance(item, dict)]

    def _write_records(self, records: list[dict[str, object]]) -> None:
        try:
            write_json_atomic(self.path, records)
        except OSError as e:
            raise StorageError(f"failed to write {self.path}: {e}") from e

    def load_instances(self) -> list[Instance]:
        instances: list[Instance] = []
        for record in self._read_records():
            try:
                instances.append(Instance.from_dict(record))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable instance record in {self.path}: {e}")
        logger.debug(f"Loaded {len(instances)} instances from {self.path}")
        return instances

    def save_instances(self, instances: Iterable[Instance]) -> None:
        """Replace the stored set; instances that were never started are skipped."""
        self._write_records([instance.to_dict() for instance in instances if instance.started])

    def save_instance(self, instance: Instance) -> None:
        records = [r for r in self._read_records() if r.get("title") != instance.title]
        records.append(instance.to_dict())
        self._write_records(records)

    def delete_instance(self, title: str) -> None:
        records = self._read_records()
        remaining = [r for r in records if r.get("title") != title]
        if len(remaining) == len(records):
            logger.debug(f"Instance {title!r} not in storage; nothing to delete")
            return
        self._write_records(remaining)

    def delete_all(self) -> None:
        self._write_records([])
