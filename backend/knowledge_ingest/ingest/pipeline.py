"""Ingest pipeline orchestration: load sources, persist records, log the run."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

import orjson

from knowledge_ingest.core.logging import get_logger
from knowledge_ingest.db.sqlite import SQLiteDatabase
from knowledge_ingest.knowledge.store import KnowledgeStore
from knowledge_ingest.loaders.multi import MultiLoader
from knowledge_ingest.utils.ids import new_id
from knowledge_ingest.utils.time import now_ms

logger = get_logger(__name__)

RUNS_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS ingest_runs (
      id TEXT PRIMARY KEY,
      started_at INTEGER NOT NULL,
      finished_at INTEGER,
      status TEXT NOT NULL,
      sources_json TEXT NOT NULL,
      report_json TEXT
    )
    """,
)


class IngestPipeline:
    """Coordinate the multi-source loader and the knowledge store."""

    def __init__(
        self,
        database: SQLiteDatabase,
        store: KnowledgeStore,
        loader: MultiLoader,
        timeout: float | None = None,
    ) -> None:
        self.db = database
        self.store = store
        self.loader = loader
        self.timeout = timeout
        self.db.ensure_schema(RUNS_SCHEMA)

    async def run(
        self,
        sources: Sequence[str],
        since: datetime | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        started = now_ms()
        run_id = new_id("run")
        self._record_run(run_id, started, "running", sources, None)
        try:
            result = await self.loader.load_sources(
                sources,
                since=since,
                timeout=timeout if timeout is not None else self.timeout,
                run_id=run_id,
            )
        except Exception as exc:
            logger.exception("Ingest run %s failed while loading sources: %s", run_id, exc)
            self._record_run(run_id, started, "failed", sources, {"run_id": run_id, "detail": str(exc)})
            raise
        report = result.report
        try:
            written = self.store.add_documents(result.records)
        except Exception as exc:
            logger.exception("Ingest run %s failed to persist records: %s", report.run_id, exc)
            self._record_run(report.run_id, started, "failed", sources, {**report.to_dict(), "detail": str(exc)})
            raise
        status = "completed" if not report.failed else "partial"
        payload = {**report.to_dict(), "written": written}
        self._record_run(report.run_id, started, status, sources, payload)
        return {"status": status, **payload}

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        row = self.db.execute(
            "SELECT id, started_at, finished_at, status, sources_json, report_json FROM ingest_runs WHERE id = ?",
            [run_id],
        ).fetchone()
        if row is None:
            return None
        return {
            "id": row["id"],
            "started_at": row["started_at"],
            "finished_at": row["finished_at"],
            "status": row["status"],
            "sources": orjson.loads(row["sources_json"]),
            "report": orjson.loads(row["report_json"]) if row["report_json"] else None,
        }

    def _record_run(
        self,
        run_id: str,
        started: int,
        status: str,
        sources: Sequence[str],
        report: dict[str, Any] | None,
    ) -> None:
        finished = None if status == "running" else now_ms()
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO ingest_runs (id, started_at, finished_at, status, sources_json, report_json)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  finished_at = excluded.finished_at,
                  status = excluded.status,
                  report_json = excluded.report_json
                """,
                [
                    run_id,
                    started,
                    finished,
                    status,
                    orjson.dumps(list(sources)).decode("utf-8"),
                    orjson.dumps(report).decode("utf-8") if report is not None else None,
                ],
            )


__all__ = ["IngestPipeline", "RUNS_SCHEMA"]
