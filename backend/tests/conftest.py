"""Test fixtures for knowledge ingest."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from knowledge_ingest.loaders.extractor import ExtractedContent  # noqa: E402

API = "https://api.github.test"


def _clear_singletons() -> None:
    from knowledge_ingest.api import dependencies as deps
    from knowledge_ingest.core.config import get_settings
    from knowledge_ingest.knowledge.embeddings import EmbeddingModel

    EmbeddingModel._instances.clear()
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._DB = None
    deps._STORE = None
    deps._EXTRACTOR = None
    deps._LOADER = None
    deps._PIPELINE = None


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("KNI_DB_PATH", str(tmp_path / "knowledge.db"))
    monkeypatch.setenv("KNI_SOURCES_PATH", str(tmp_path / ".sources"))
    for name in ("KNI_CONFIG", "KNI_SOURCES", "GITHUB_TOKEN", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    _clear_singletons()
    yield
    _clear_singletons()


class FakeExtractor:
    """Extraction capability that echoes a fixed transformation of its input."""

    def __init__(self, transform: Callable[[str], str] | None = None, error: Exception | None = None) -> None:
        self.transform = transform or (lambda text: f"main: {text}")
        self.error = error
        self.calls: list[str] = []

    async def extract(self, text: str) -> ExtractedContent:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return ExtractedContent(content=self.transform(text))


class FakeGitHub:
    """In-memory GitHub REST API served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.orgs: dict[str, list[dict[str, Any]]] = {}
        self.repos: dict[str, dict[str, Any]] = {}
        self.pulls: dict[str, list[dict[str, Any]]] = {}
        self.issues: dict[str, list[dict[str, Any]]] = {}
        self.commits: dict[str, list[dict[str, Any]]] = {}
        self.failures: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    def add_repo(self, org: str, name: str, **fields: Any) -> dict[str, Any]:
        full_name = f"{org}/{name}"
        repo = {
            "name": name,
            "full_name": full_name,
            "description": fields.pop("description", None),
            "html_url": f"https://github.com/{full_name}",
            "created_at": "2023-01-01T00:00:00Z",
            "updated_at": "2024-02-01T00:00:00Z",
            **fields,
        }
        self.orgs.setdefault(org, []).append(repo)
        self.repos[full_name] = repo
        return repo

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.failures:
            return httpx.Response(self.failures[path], json={"message": "boom"})
        parts = path.strip("/").split("/")
        if parts[0] == "orgs" and len(parts) == 3 and parts[2] == "repos":
            if parts[1] not in self.orgs:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=self.orgs[parts[1]])
        if parts[0] == "repos" and len(parts) >= 3:
            full_name = self._canonical(f"{parts[1]}/{parts[2]}")
            if len(parts) == 3:
                if full_name not in self.repos:
                    return httpx.Response(404, json={"message": "Not Found"})
                return httpx.Response(200, json=self.repos[full_name])
            kind = parts[3]
            if kind == "pulls":
                return httpx.Response(200, json=_sorted_desc(self.pulls.get(full_name, [])))
            if kind == "issues":
                return httpx.Response(200, json=_sorted_desc(self.issues.get(full_name, [])))
            if kind == "commits":
                since = request.url.params.get("since")
                commits = self.commits.get(full_name, [])
                if since:
                    commits = [c for c in commits if c["commit"]["author"]["date"] >= since]
                return httpx.Response(200, json=commits)
        return httpx.Response(404, json={"message": "Not Found"})

    def _canonical(self, full_name: str) -> str:
        # GitHub resolves owner and repo names case-insensitively.
        for known in self.repos:
            if known.lower() == full_name.lower():
                return known
        return full_name

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _sorted_desc(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(items, key=lambda item: item["updated_at"], reverse=True)


def make_pull(number: int, updated_at: str, **fields: Any) -> dict[str, Any]:
    return {
        "number": number,
        "title": fields.pop("title", f"PR {number}"),
        "user": {"login": fields.pop("login", "octocat")},
        "state": fields.pop("state", "open"),
        "html_url": f"https://github.com/acme/widget/pull/{number}",
        "created_at": fields.pop("created_at", "2023-12-01T00:00:00Z"),
        "updated_at": updated_at,
        "body": fields.pop("body", "Fixes things"),
        **fields,
    }


def make_issue(number: int, updated_at: str, **fields: Any) -> dict[str, Any]:
    issue = make_pull(number, updated_at, **fields)
    issue["html_url"] = f"https://github.com/acme/widget/issues/{number}"
    return issue


def make_commit(sha: str, date: str, message: str = "Initial commit", login: str | None = "octocat") -> dict[str, Any]:
    return {
        "sha": sha,
        "html_url": f"https://github.com/acme/widget/commit/{sha}",
        "author": {"login": login} if login else None,
        "commit": {"author": {"name": "Octo Cat", "date": date}, "message": message},
    }


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()
