"""JsonFileStore: the snapshot as one pretty-printed JSON file.

This is the default backend: the file is a JSON object mapping change
references to change dicts, readable and editable by hand when something
goes wrong. Writes go to a temporary file in the same directory that is then
renamed over the old one, so a crash never leaves a half-written snapshot.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from presubmit_store.base import BaseStore, StoreError

logger = logging.getLogger(__name__)


class JsonFileStore(BaseStore):
    """Stores the snapshot in a single JSON file at `path`."""

    def __init__(self, path: str):
        self._path = Path(path)

    def load(self) -> dict[str, dict]:
        try:
            content = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("no snapshot at %s", self._path)
            return {}
        except OSError as e:
            raise StoreError(f"cannot read {self._path}: {e}")
        if not content.strip():
            return {}
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise StoreError(f"cannot parse {self._path}: {e}")
        if not isinstance(data, dict):
            raise StoreError(f"{self._path} does not contain a JSON object")
        return data

    def save(self, snapshot: dict[str, dict]) -> None:
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(snapshot, f, indent=2, sort_keys=True)
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreError(f"cannot write {self._path}: {e}")
