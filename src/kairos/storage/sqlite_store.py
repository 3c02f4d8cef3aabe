"""SQLite storage backend with WAL mode."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import aiosqlite

from kairos.errors import StorageError
from kairos.storage.base import PlannerStore, parse_ts

logger = logging.getLogger(__name__)

# Column whitelists per table for UPDATE statements
_ALLOWED_COLUMNS: dict[str, set[str]] = {
    "work_items": {
        "title",
        "type",
        "status",
        "seq",
        "planned_min",
        "logged_min",
        "min_session_min",
        "max_session_min",
        "default_session_min",
        "splittable",
        "units_kind",
        "units_total",
        "units_done",
        "due_date",
        "not_before",
        "replanned_through",
        "completed_at",
        "updated_at",
    },
}


def _validate_update_keys(table: str, updates: dict[str, Any]) -> dict[str, Any]:
    """Filter update dict to only allowed column names."""
    allowed = _ALLOWED_COLUMNS.get(table, set())
    filtered = {k: v for k, v in updates.items() if k in allowed}
    rejected = set(updates.keys()) - allowed - {"id"}
    if rejected:
        logger.warning("Rejected invalid column names for %s: %s", table, rejected)
    return filtered


class SQLiteStore(PlannerStore):
    """SQLite-based planner storage."""

    def __init__(self, db_path: Path, *, wal_mode: bool = True) -> None:
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Create database and apply schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            if self._db is None:
                self._db = await aiosqlite.connect(str(self.db_path))
                self._db.row_factory = aiosqlite.Row

            if self.wal_mode:
                await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA foreign_keys=ON")

            await self._db.executescript(_load_sql("planner.sql"))
            await self._db.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize {self.db_path}: {e}") from e
        logger.info("Initialized SQLite store at %s", self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Store not initialized. Call initialize() first.")
        return self._db

    async def _fetch_all(self, sql: str, params: Iterable[Any] = ()) -> list[dict[str, Any]]:
        try:
            cursor = await self.db.execute(sql, tuple(params))
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}") from e
        return [dict(row) for row in rows]

    async def _fetch_one(self, sql: str, params: Iterable[Any] = ()) -> dict[str, Any] | None:
        rows = await self._fetch_all(sql, params)
        return rows[0] if rows else None

    async def _write(self, sql: str, params: dict[str, Any] | tuple[Any, ...]) -> None:
        try:
            await self.db.execute(sql, params)
            await self.db.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Write failed: {e}") from e

    async def _insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        columns = ", ".join(data)
        placeholders = ", ".join(f":{c}" for c in data)
        await self._write(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", data)
        return data

    # --- Projects ---

    async def insert_project(self, project: dict[str, Any]) -> dict[str, Any]:
        return await self._insert("projects", project)

    async def get_project(self, project_id: str) -> dict[str, Any] | None:
        return await self._fetch_one("SELECT * FROM projects WHERE id = ?", (project_id,))

    async def list_projects(self, *, include_archived: bool = False) -> list[dict[str, Any]]:
        sql = "SELECT * FROM projects"
        if not include_archived:
            sql += " WHERE status != 'archived'"
        return await self._fetch_all(sql + " ORDER BY name, id")

    # --- Plan nodes ---

    async def insert_node(self, node: dict[str, Any]) -> dict[str, Any]:
        return await self._insert("plan_nodes", node)

    async def get_node(self, node_id: str) -> dict[str, Any] | None:
        return await self._fetch_one("SELECT * FROM plan_nodes WHERE id = ?", (node_id,))

    async def list_nodes_by_project(self, project_id: str) -> list[dict[str, Any]]:
        return await self._fetch_all(
            "SELECT * FROM plan_nodes WHERE project_id = ? ORDER BY seq, id", (project_id,)
        )

    # --- Work items ---

    async def insert_work_item(self, item: dict[str, Any]) -> dict[str, Any]:
        return await self._insert("work_items", item)

    async def get_work_item(self, item_id: str) -> dict[str, Any] | None:
        return await self._fetch_one("SELECT * FROM work_items WHERE id = ?", (item_id,))

    async def list_work_items_by_project(self, project_id: str) -> list[dict[str, Any]]:
        return await self._fetch_all(
            """SELECT w.* FROM work_items w
               JOIN plan_nodes n ON w.node_id = n.id
               WHERE n.project_id = ?
               ORDER BY w.seq, w.id""",
            (project_id,),
        )

    async def list_work_items_by_node(self, node_id: str) -> list[dict[str, Any]]:
        return await self._fetch_all(
            "SELECT * FROM work_items WHERE node_id = ? ORDER BY seq, id", (node_id,)
        )

    async def update_work_item(
        self, item_id: str, updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        filtered = _validate_update_keys("work_items", updates)
        if filtered:
            assignments = ", ".join(f"{k} = :{k}" for k in filtered)
            await self._write(
                f"UPDATE work_items SET {assignments} WHERE id = :id",
                {**filtered, "id": item_id},
            )
        return await self.get_work_item(item_id)

    # --- Sessions ---

    async def insert_session(self, session: dict[str, Any]) -> dict[str, Any]:
        return await self._insert("work_session_logs", session)

    async def list_sessions_by_work_item(self, work_item_id: str) -> list[dict[str, Any]]:
        rows = await self._fetch_all(
            "SELECT * FROM work_session_logs WHERE work_item_id = ?", (work_item_id,)
        )
        return sorted(rows, key=lambda s: parse_ts(s["started_at"]))

    async def list_recent_sessions(self, days: int, *, now: datetime) -> list[dict[str, Any]]:
        # Offsets in stored text make lexical comparison unsafe, so filter here.
        end = parse_ts(now)
        cutoff = end - timedelta(days=days)
        rows = await self._fetch_all("SELECT * FROM work_session_logs")
        return [r for r in rows if cutoff <= parse_ts(r["started_at"]) <= end]

    # --- Dependencies ---

    async def insert_dependency(self, dependency: dict[str, Any]) -> dict[str, Any]:
        return await self._insert("dependencies", dependency)

    async def list_dependencies_for(self, successor_ids: list[str]) -> list[dict[str, Any]]:
        if not successor_ids:
            return []
        placeholders = ", ".join("?" for _ in successor_ids)
        return await self._fetch_all(
            f"SELECT * FROM dependencies WHERE successor_id IN ({placeholders})",
            successor_ids,
        )

    # --- Profile ---

    async def get_profile(self) -> dict[str, Any] | None:
        row = await self._fetch_one("SELECT data FROM user_profile LIMIT 1")
        return json.loads(row["data"]) if row else None

    async def upsert_profile(self, profile: dict[str, Any]) -> dict[str, Any]:
        await self._write(
            "INSERT OR REPLACE INTO user_profile (id, data) VALUES (?, ?)",
            (profile.get("id", "default"), json.dumps(profile)),
        )
        return profile

    async def get_stats(self) -> dict[str, Any]:
        """Row counts per table."""
        stats: dict[str, Any] = {}
        for table in ("projects", "plan_nodes", "work_items", "work_session_logs", "dependencies"):
            row = await self._fetch_one(f"SELECT COUNT(*) AS count FROM {table}")
            stats[table] = row["count"] if row else 0
        stats["db_path"] = str(self.db_path)
        return stats


# --- Helpers ---


def _load_sql(filename: str) -> str:
    """Load SQL file from the schema package."""
    schema_dir = Path(__file__).parent.parent / "schema"
    return (schema_dir / filename).read_text()
