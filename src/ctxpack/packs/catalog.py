"""Persistent storage for installed pack records using SQLite.

One row per installed (identity, version); the full record is kept as
JSON next to the columns the CLI lists and filters on.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from ctxpack.exceptions import StoreError
from ctxpack.packs.models import Pack
from ctxpack.packs.store import PackSnapshot


class PackCatalog:
    """Persists and loads pack store snapshots."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_tables()
        return self._conn

    def _create_tables(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS packs (
                identity TEXT NOT NULL,
                version TEXT NOT NULL,
                scope TEXT NOT NULL,             -- 'global', 'project', 'local'
                install_order INTEGER NOT NULL,
                direct INTEGER NOT NULL,
                content_digest TEXT NOT NULL,
                record TEXT NOT NULL,            -- full Pack as JSON
                PRIMARY KEY (identity, version)
            );

            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_packs_scope ON packs(scope);
        """)
        conn.commit()

    # ------------------------------------------------------------------
    # Save / Load
    # ------------------------------------------------------------------

    def save(self, snapshot: PackSnapshot) -> None:
        """Replace the stored records with `snapshot`."""
        conn = self._get_conn()
        conn.execute("DELETE FROM packs")
        for pack in snapshot:
            conn.execute(
                """INSERT INTO packs
                (identity, version, scope, install_order, direct, content_digest, record)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    pack.identity,
                    str(pack.version),
                    pack.scope.value,
                    pack.install_order,
                    int(pack.direct),
                    pack.content_digest,
                    json.dumps(pack.model_dump(mode="json")),
                ),
            )
        conn.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            ("snapshot_digest", json.dumps(snapshot.digest)),
        )
        conn.commit()

    def load(self) -> PackSnapshot | None:
        """Load the stored snapshot, or None if nothing was ever saved."""
        conn = self._get_conn()
        if self.get_metadata("snapshot_digest") is None:
            return None
        rows = conn.execute(
            "SELECT identity, version, record FROM packs ORDER BY install_order, identity"
        ).fetchall()
        packs = []
        for row in rows:
            try:
                packs.append(Pack.model_validate(json.loads(row["record"])))
            except (json.JSONDecodeError, ValidationError) as e:
                raise StoreError(
                    f"Corrupt catalog record {row['identity']}@{row['version']}: {e}"
                ) from e
        return PackSnapshot(packs)

    def list_records(self) -> list[dict]:
        """Summary rows for display, in install order."""
        conn = self._get_conn()
        rows = conn.execute(
            """SELECT identity, version, scope, install_order, direct, content_digest
               FROM packs ORDER BY install_order, identity, version"""
        ).fetchall()
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def set_metadata(self, key: str, value) -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            (key, json.dumps(value)),
        )
        conn.commit()

    def get_metadata(self, key: str):
        conn = self._get_conn()
        row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
        return json.loads(row["value"]) if row else None

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
