"""API integration tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from knowledge_ingest.app import app


@pytest.fixture
def docs(tmp_path: Path) -> Path:
    root = tmp_path / "docs"
    root.mkdir()
    (root / "a.md").write_text("# Alpha\n\nFirst document.")
    (root / "b.md").write_text("# Beta\n\nSecond document.")
    return root


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_ingest_list_and_forget_flow(docs: Path, client: TestClient) -> None:
    pattern = f"{docs}/*.md"
    ingest_resp = client.post("/ingest", json={"sources": [f"file:{pattern}", "bogus"]})
    assert ingest_resp.status_code == 200
    payload = ingest_resp.json()
    assert payload["status"] == "completed"
    assert payload["written"] == 2
    assert payload["stats"] == {"loaded": 1, "skipped": 1, "failed": 0, "records": 2}
    assert [s["status"] for s in payload["sources"]] == ["loaded", "skipped"]

    run_resp = client.get(f"/ingest/runs/{payload['run_id']}")
    assert run_resp.status_code == 200
    assert run_resp.json()["status"] == "completed"

    source_id = f"file:{pattern}"
    listed = client.get("/documents", params={"source_id": source_id})
    assert listed.status_code == 200
    assert [d["content"] for d in listed.json()] == ["# Alpha\n\nFirst document.", "# Beta\n\nSecond document."]

    doc_resp = client.get(f"/documents/file:{docs}/a.md")
    assert doc_resp.status_code == 200
    assert doc_resp.json()["metadata"]["source_type"] == "file"

    # re-ingesting replaces rows instead of duplicating them
    client.post("/ingest", json={"sources": [source_id]})
    assert len(client.get("/documents", params={"source_id": source_id}).json()) == 2

    deleted = client.delete(f"/sources/{source_id}")
    assert deleted.status_code == 200
    assert deleted.json() == {"status": "ok", "deleted": 2}
    assert client.get("/documents", params={"source_id": source_id}).json() == []
    assert client.delete(f"/sources/{source_id}").json()["status"] == "noop"


def test_failed_source_makes_run_partial(client: TestClient) -> None:
    resp = client.post("/ingest", json={"sources": ["site:ftp://example.com/file", "site:not-a-url"]})
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["status"] == "partial"
    assert payload["stats"]["failed"] == 2
    assert payload["written"] == 0


def test_ingest_falls_back_to_configured_sources(
    docs: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("KNI_SOURCES", f"file:{docs}/a.md")
    with TestClient(app) as client:
        resp = client.post("/ingest", json={})
    assert resp.status_code == 200
    assert resp.json()["written"] == 1


def test_ingest_without_sources_is_rejected(client: TestClient) -> None:
    assert client.post("/ingest", json={}).status_code == 400
    assert client.post("/ingest", json={"sources": ["file:x"], "timeout": 0}).status_code == 422


def test_missing_document_and_run(client: TestClient) -> None:
    assert client.get("/documents/file:nope").status_code == 404
    assert client.get("/ingest/runs/run_missing").status_code == 404


def test_metrics_endpoint(client: TestClient) -> None:
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "kni_requests_total" in resp.text
