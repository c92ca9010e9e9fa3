from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Union
from uuid import UUID

logger = logging.getLogger(__name__)


class RecordNotFound(LookupError):
    def __init__(self, record_id: str):
        super().__init__(f"No such record: {record_id}")
        self.record_id = record_id


class PersistenceError(RuntimeError):
    pass


def _checked_id(record_id: str) -> str:
    # Ids double as file names, so only canonical UUIDs are accepted.
    try:
        return str(UUID(str(record_id)))
    except (TypeError, ValueError):
        raise RecordNotFound(str(record_id)) from None


class MemoryStore:
    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Any]] = {}

    def put(self, record_id: str, record: Mapping[str, Any]) -> None:
        self._records[_checked_id(record_id)] = copy.deepcopy(dict(record))

    def get(self, record_id: str) -> Dict[str, Any]:
        key = _checked_id(record_id)
        if key not in self._records:
            raise RecordNotFound(record_id)
        return copy.deepcopy(self._records[key])

    def __contains__(self, record_id: object) -> bool:
        try:
            return _checked_id(str(record_id)) in self._records
        except RecordNotFound:
            return False


class JsonFileStore:
    """One pretty-printed JSON file per record under ``directory``."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, record_id: str) -> Path:
        return self.directory / f"{_checked_id(record_id)}.json"

    def put(self, record_id: str, record: Mapping[str, Any]) -> None:
        path = self.path_for(record_id)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.directory), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(dict(record), handle, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Could not save record {record_id}: {exc}") from exc
        logger.info("Saved lead record %s to %s", record_id, path)

    def get(self, record_id: str) -> Dict[str, Any]:
        path = self.path_for(record_id)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise RecordNotFound(record_id) from None
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Could not read record {record_id}: {exc}") from exc

    def __contains__(self, record_id: object) -> bool:
        try:
            return self.path_for(str(record_id)).exists()
        except RecordNotFound:
            return False
