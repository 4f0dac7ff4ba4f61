"""Tests for the ingest pipeline."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeGitHub
from knowledge_ingest.core.errors import StorageError
from knowledge_ingest.db.sqlite import MEMORY_PATH, SQLiteDatabase
from knowledge_ingest.ingest.pipeline import IngestPipeline
from knowledge_ingest.knowledge.embeddings import EmbeddingModel
from knowledge_ingest.knowledge.models import Document
from knowledge_ingest.knowledge.store import KnowledgeStore
from knowledge_ingest.loaders.multi import MultiLoader, MultiLoaderConfig


@pytest.fixture
def pipeline(tmp_path: Path, fake_github: FakeGitHub) -> IngestPipeline:
    db = SQLiteDatabase(MEMORY_PATH)
    store = KnowledgeStore(db, EmbeddingModel("hashed-32"))
    loader = MultiLoader(MultiLoaderConfig(sources_path=tmp_path), http_client=fake_github.client())
    yield IngestPipeline(db, store, loader)
    db.close()


@pytest.fixture
def notes(tmp_path: Path) -> str:
    (tmp_path / "one.txt").write_text("one")
    (tmp_path / "two.txt").write_text("two")
    return f"file:{tmp_path}/*.txt"


@pytest.mark.asyncio
async def test_run_persists_records_and_report(pipeline: IngestPipeline, notes: str) -> None:
    payload = await pipeline.run([notes])

    assert payload["status"] == "completed"
    assert payload["written"] == 2
    assert pipeline.store.count(Document) == 2
    run = pipeline.get_run(payload["run_id"])
    assert run["status"] == "completed"
    assert run["sources"] == [notes]
    assert run["report"]["stats"]["records"] == 2
    assert run["finished_at"] is not None


@pytest.mark.asyncio
async def test_run_is_visible_while_loading(
    pipeline: IngestPipeline, notes: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    load_sources = pipeline.loader.load_sources
    seen: list[dict] = []

    async def observed(sources, **kwargs):
        seen.append(pipeline.get_run(kwargs["run_id"]))
        return await load_sources(sources, **kwargs)

    monkeypatch.setattr(pipeline.loader, "load_sources", observed)
    payload = await pipeline.run([notes])

    assert seen[0]["status"] == "running"
    assert seen[0]["finished_at"] is None
    assert seen[0]["id"] == payload["run_id"]
    assert pipeline.get_run(payload["run_id"])["status"] == "completed"


@pytest.mark.asyncio
async def test_failed_load_is_recorded_and_raised(
    pipeline: IngestPipeline, notes: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def explode(sources, **kwargs):
        raise RuntimeError("loader crashed")

    monkeypatch.setattr(pipeline.loader, "load_sources", explode)
    with pytest.raises(RuntimeError):
        await pipeline.run([notes])

    row = pipeline.db.execute("SELECT status, finished_at, report_json FROM ingest_runs").fetchone()
    assert row["status"] == "failed"
    assert row["finished_at"] is not None
    assert "loader crashed" in row["report_json"]


@pytest.mark.asyncio
async def test_failed_source_yields_partial_run(pipeline: IngestPipeline, notes: str) -> None:
    payload = await pipeline.run([notes, "site:https://example.com/"])
    assert payload["status"] == "partial"
    assert payload["written"] == 2
    assert pipeline.get_run(payload["run_id"])["status"] == "partial"


@pytest.mark.asyncio
async def test_storage_failure_is_recorded_and_raised(
    pipeline: IngestPipeline, notes: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    def reject(documents):
        raise StorageError("disk full")

    monkeypatch.setattr(pipeline.store, "add_documents", reject)
    with pytest.raises(StorageError):
        await pipeline.run([notes])

    row = pipeline.db.execute("SELECT id, status, report_json FROM ingest_runs").fetchone()
    assert row["status"] == "failed"
    assert "disk full" in row["report_json"]


def test_unknown_run(pipeline: IngestPipeline) -> None:
    assert pipeline.get_run("run_missing") is None
