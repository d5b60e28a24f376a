"""SQLite implementation of the run repository."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from ..contracts import WorkflowRun
from .repository import RunRepository


class SQLiteRunRepository(RunRepository):
    """Persist run history using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                workflow TEXT NOT NULL,
                status TEXT,
                started_at TEXT NOT NULL,
                finished_at TEXT,
                backup_id TEXT,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_results (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                step TEXT NOT NULL,
                outcome TEXT NOT NULL,
                code INTEGER,
                detail TEXT
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Repository API
    def save_run(self, run: WorkflowRun) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO runs
                    (run_id, workflow, status, started_at, finished_at, backup_id, data)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.run_id,
                    run.workflow,
                    run.status.value if run.status else None,
                    run.started_at.isoformat(),
                    run.finished_at.isoformat() if run.finished_at else None,
                    run.backup.id if run.backup else None,
                    run.to_json(),
                ),
            )
            self._conn.execute("DELETE FROM step_results WHERE run_id = ?", (run.run_id,))
            self._conn.executemany(
                "INSERT INTO step_results (run_id, step, outcome, code, detail) VALUES (?, ?, ?, ?, ?)",
                [
                    (run.run_id, r.step, r.outcome.value, r.code, r.detail)
                    for r in run.results
                ],
            )

    def get_run(self, run_id: str) -> WorkflowRun | None:
        row = self._fetchone("SELECT data FROM runs WHERE run_id = ?", run_id)
        if not row:
            return None
        return WorkflowRun.from_json(row["data"])

    def list_runs(self) -> list[WorkflowRun]:
        rows = self._fetchall("SELECT data FROM runs ORDER BY started_at")
        return [WorkflowRun.from_json(r["data"]) for r in rows]

    def failed_steps(self, run_id: str) -> list[str]:
        rows = self._fetchall(
            "SELECT step FROM step_results WHERE run_id = ? AND outcome = 'failed' ORDER BY id",
            run_id,
        )
        return [r["step"] for r in rows]
