"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from ..errors import ConcurrencyError, WorkflowError
from ..objects import BusinessObject
from ..workflow import Workflow
from .repository import WorkflowRepository

_WORKFLOW_COLUMNS = "id, document, version"


def _timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflows using SQLite.

    Each workflow is stored as a JSON document next to the columns needed for
    scheduling. History items are additionally copied into an append-only
    table that backs the duration analytics.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                associated_object_id TEXT,
                document TEXT NOT NULL,
                auto_execution_schedule TEXT NOT NULL,
                is_completed INTEGER NOT NULL,
                version INTEGER NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS history_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_id TEXT NOT NULL,
                sequence_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                step_id TEXT NOT NULL,
                step_type TEXT NOT NULL,
                passed_by TEXT,
                entered_at TEXT NOT NULL,
                passed_at TEXT NOT NULL,
                duration_seconds REAL NOT NULL,
                trigger_kind TEXT NOT NULL,
                UNIQUE (workflow_id, sequence_id, position)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS business_objects (
                id TEXT PRIMARY KEY,
                document TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def _insert_history(self, cur: sqlite3.Cursor, workflow: Workflow) -> None:
        for sequence in workflow.iter_sequences(workflow.graph):
            for position, item in enumerate(sequence.history):
                cur.execute(
                    """
                    INSERT OR IGNORE INTO history_items (
                        workflow_id, sequence_id, position, step_id, step_type, passed_by,
                        entered_at, passed_at, duration_seconds, trigger_kind
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        workflow.id,
                        sequence.id,
                        position,
                        item.step_id,
                        item.step_type,
                        item.passed_by,
                        _timestamp(item.entered_at),
                        _timestamp(item.passed_at),
                        item.duration.total_seconds(),
                        item.trigger.value,
                    ),
                )

    def _create(self, workflow: Workflow) -> None:
        with self._conn:
            cur = self._conn.cursor()
            try:
                cur.execute(
                    """
                    INSERT INTO workflows (
                        id, title, associated_object_id, document,
                        auto_execution_schedule, is_completed, version
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        workflow.id,
                        workflow.title,
                        workflow.associated_object_id,
                        workflow.model_dump_json(),
                        _timestamp(workflow.auto_execution_schedule),
                        int(workflow.is_completed),
                        workflow.version,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise WorkflowError(f"Workflow {workflow.id} already exists.") from exc
            self._insert_history(cur, workflow)

    def _save(self, workflow: Workflow) -> None:
        expected = workflow.version
        workflow.version = expected + 1
        try:
            with self._conn:
                cur = self._conn.cursor()
                cur.execute(
                    """
                    UPDATE workflows
                    SET title = ?, associated_object_id = ?, document = ?,
                        auto_execution_schedule = ?, is_completed = ?, version = ?
                    WHERE id = ? AND version = ?
                    """,
                    (
                        workflow.title,
                        workflow.associated_object_id,
                        workflow.model_dump_json(),
                        _timestamp(workflow.auto_execution_schedule),
                        int(workflow.is_completed),
                        workflow.version,
                        workflow.id,
                        expected,
                    ),
                )
                if cur.rowcount != 1:
                    row = cur.execute(
                        "SELECT version FROM workflows WHERE id = ?", (workflow.id,)
                    ).fetchone()
                    if row is None:
                        raise WorkflowError(f"Workflow {workflow.id} does not exist.")
                    raise ConcurrencyError(
                        f"Workflow {workflow.id} was changed concurrently (version {row['version']}, expected {expected})."
                    )
                self._insert_history(cur, workflow)
        except Exception:
            workflow.version = expected
            raise

    @staticmethod
    def _to_workflow(row: sqlite3.Row) -> Workflow:
        workflow = Workflow.model_validate_json(row["document"])
        workflow.version = row["version"]
        return workflow

    # ------------------------------------------------------------------
    # Repository API
    async def create_workflow(self, workflow: Workflow) -> None:
        await asyncio.to_thread(self._create, workflow)

    async def save_workflow(self, workflow: Workflow) -> None:
        await asyncio.to_thread(self._save, workflow)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_WORKFLOW_COLUMNS} FROM workflows WHERE id = ?",
            workflow_id,
        )
        if not row:
            return None
        return self._to_workflow(row)

    async def list_workflows(self) -> list[Workflow]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_WORKFLOW_COLUMNS} FROM workflows ORDER BY rowid",
        )
        return [self._to_workflow(row) for row in rows]

    async def find_due_workflows(self, now: datetime) -> list[Workflow]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"""
            SELECT {_WORKFLOW_COLUMNS} FROM workflows
            WHERE is_completed = 0 AND auto_execution_schedule <= ?
            ORDER BY auto_execution_schedule
            """,
            _timestamp(now),
        )
        return [self._to_workflow(row) for row in rows]

    async def find_workflows_for_object(self, object_id: str) -> list[Workflow]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"""
            SELECT {_WORKFLOW_COLUMNS} FROM workflows
            WHERE is_completed = 0 AND associated_object_id = ?
            ORDER BY rowid
            """,
            object_id,
        )
        return [self._to_workflow(row) for row in rows]

    async def average_duration(self, step_type: str) -> Optional[timedelta]:
        row = await asyncio.to_thread(
            self._fetchone,
            """
            SELECT AVG(duration_seconds) AS average FROM history_items
            WHERE step_type = ? AND trigger_kind != 'undo'
            """,
            step_type,
        )
        if row is None or row["average"] is None:
            return None
        return timedelta(seconds=row["average"])

    async def save_object(self, obj: BusinessObject) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO business_objects (id, document) VALUES (?, ?)",
            obj.id,
            obj.model_dump_json(),
        )

    async def get_object(self, object_id: str) -> Optional[BusinessObject]:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT document FROM business_objects WHERE id = ?",
            object_id,
        )
        if not row:
            return None
        return BusinessObject.model_validate_json(row["document"])
