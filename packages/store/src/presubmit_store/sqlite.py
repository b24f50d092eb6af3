"""SQLiteStore: the snapshot in a local SQLite database.

Useful when several presubmit deployments share a host and want their state
in one file: each store is scoped by `namespace` (typically the Gerrit URL
plus query), so snapshots do not overwrite each other.

Schema:
  snapshot: one row per change reference, the change dict as JSON text.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from presubmit_store.base import BaseStore, StoreError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshot (
    namespace   TEXT NOT NULL,
    ref         TEXT NOT NULL,
    change_json TEXT NOT NULL,
    PRIMARY KEY (namespace, ref)
);
"""


class SQLiteStore(BaseStore):
    """Stores the snapshot in a local SQLite database file."""

    def __init__(self, db_path: str = ".presubmit.db", namespace: str = "default"):
        self._namespace = namespace
        try:
            self._conn = sqlite3.connect(db_path)
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open {db_path}: {e}")

    def load(self) -> dict[str, dict]:
        rows = self._conn.execute(
            "SELECT ref, change_json FROM snapshot WHERE namespace=? ORDER BY ref",
            (self._namespace,),
        ).fetchall()
        try:
            return {ref: json.loads(change_json) for ref, change_json in rows}
        except json.JSONDecodeError as e:
            raise StoreError(f"corrupt snapshot row: {e}")

    def save(self, snapshot: dict[str, dict]) -> None:
        # One transaction: readers never see a partially replaced snapshot.
        with self._conn:
            self._conn.execute("DELETE FROM snapshot WHERE namespace=?", (self._namespace,))
            self._conn.executemany(
                "INSERT INTO snapshot (namespace, ref, change_json) VALUES (?, ?, ?)",
                [(self._namespace, ref, json.dumps(data, sort_keys=True)) for ref, data in snapshot.items()],
            )

    def close(self) -> None:
        self._conn.close()
