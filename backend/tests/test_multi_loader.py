"""Tests for the multi-source dispatcher."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from conftest import API, FakeExtractor, FakeGitHub, make_pull
from knowledge_ingest.core.errors import FetchError, SiteLoaderError
from knowledge_ingest.loaders.extractor import ExtractedContent
from knowledge_ingest.loaders.multi import MultiLoader, MultiLoaderConfig
from knowledge_ingest.loaders.types import OutcomeStatus

SINCE = datetime(2024, 1, 1, tzinfo=timezone.utc)
PAGE = "<html><body><p>Docs home</p></body></html>"


class SlowExtractor:
    def __init__(self, delay: float) -> None:
        self.delay = delay

    async def extract(self, text: str) -> ExtractedContent:
        await asyncio.sleep(self.delay)
        return ExtractedContent(content=text)


def _loader(fake: FakeGitHub, tmp_path: Path, extractor=None, **config) -> MultiLoader:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.github.test":
            return fake.handler(request)
        return httpx.Response(200, text=PAGE)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    settings = MultiLoaderConfig(sources_path=tmp_path / ".sources", github_api_url=API, github_since=SINCE, **config)
    return MultiLoader(settings, extractor=extractor, http_client=client)


@pytest.fixture
def docs(tmp_path: Path) -> Path:
    root = tmp_path / "docs"
    root.mkdir()
    (root / "a.md").write_text("alpha")
    (root / "b.md").write_text("beta")
    return root


@pytest.mark.asyncio
async def test_malformed_sources_are_skipped(fake_github: FakeGitHub, tmp_path: Path) -> None:
    fake_github.add_repo("orgX", "tool")
    fake_github.pulls["orgX/tool"] = [make_pull(3, "2024-06-01T00:00:00Z")]
    loader = _loader(fake_github, tmp_path)

    result = await loader.load_sources(["bogus", "github:orgX", "nope:1"])

    assert [d.id for d in result] == ["github:repo:orgX/tool", "github:pr:orgX:orgX/tool/3"]
    assert [o.status for o in result.report.outcomes] == [
        OutcomeStatus.SKIPPED,
        OutcomeStatus.LOADED,
        OutcomeStatus.SKIPPED,
    ]
    assert result.report.skipped == 2
    assert result.report.loaded == 1
    assert result.report.records == 2
    assert result.report.errors == []


@pytest.mark.asyncio
async def test_failing_source_does_not_abort_the_run(fake_github: FakeGitHub, tmp_path: Path, docs: Path) -> None:
    loader = _loader(fake_github, tmp_path)

    result = await loader.load_sources(["github:missing", f"file:{docs}/*.md"])

    assert [d.content for d in result] == ["alpha", "beta"]
    failed, loaded = result.report.outcomes
    assert failed.status is OutcomeStatus.FAILED
    assert failed.source_type == "github"
    assert isinstance(failed.error, FetchError)
    assert loaded.status is OutcomeStatus.LOADED and loaded.records == 2
    assert result.report.failed == 1


@pytest.mark.asyncio
async def test_records_follow_source_order(fake_github: FakeGitHub, tmp_path: Path, docs: Path) -> None:
    loader = _loader(fake_github, tmp_path, extractor=SlowExtractor(0.05))

    result = await loader.load_sources(["site:https://docs.example.com/", f"file:{docs}/a.md"])

    assert [d.id for d in result] == ["site:https://docs.example.com/", f"file:{docs}/a.md"]
    assert result.records[0].content == "Docs home"
    assert result.records[0].source_id == "site:https://docs.example.com"


@pytest.mark.asyncio
async def test_deadline_marks_unfinished_sources(fake_github: FakeGitHub, tmp_path: Path, docs: Path) -> None:
    loader = _loader(fake_github, tmp_path, extractor=SlowExtractor(5))

    result = await loader.load_sources(["site:https://slow.example.com/", f"file:{docs}/*.md"], timeout=0.5)

    assert result.report.timed_out is True
    slow, files = result.report.outcomes
    assert slow.status is OutcomeStatus.TIMED_OUT
    assert isinstance(slow.error, TimeoutError)
    assert files.status is OutcomeStatus.LOADED
    assert [d.content for d in result] == ["alpha", "beta"]
    assert result.report.to_dict()["stats"] == {"loaded": 1, "skipped": 0, "failed": 1, "records": 2}


@pytest.mark.asyncio
async def test_site_without_extractor_fails(fake_github: FakeGitHub, tmp_path: Path) -> None:
    loader = _loader(fake_github, tmp_path)
    result = await loader.load_sources(["site:https://example.com/"])
    outcome = result.report.outcomes[0]
    assert outcome.status is OutcomeStatus.FAILED
    assert isinstance(outcome.error, SiteLoaderError)
    assert len(result) == 0


@pytest.mark.asyncio
async def test_single_repository_source(fake_github: FakeGitHub, tmp_path: Path) -> None:
    fake_github.add_repo("acme", "widget")
    loader = _loader(fake_github, tmp_path)

    result = await loader.load_sources(["github:https://github.com/acme/widget"])

    assert [d.id for d in result] == ["github:repo:acme/widget"]
    assert result.records[0].source_id == "github:acme/widget"


@pytest.mark.asyncio
async def test_since_override_is_forwarded_as_utc(fake_github: FakeGitHub, tmp_path: Path) -> None:
    fake_github.add_repo("acme", "widget")
    fake_github.pulls["acme/widget"] = [make_pull(1, "2024-03-01T00:00:00Z")]
    loader = _loader(fake_github, tmp_path)

    result = await loader.load_sources(["github:acme"], since=datetime(2024, 6, 1))

    assert [d.id for d in result] == ["github:repo:acme/widget"]
    commits = next(r for r in fake_github.requests if r.url.path.endswith("/commits"))
    assert commits.url.params["since"] == "2024-06-01T00:00:00Z"


@pytest.mark.asyncio
async def test_empty_source_list(fake_github: FakeGitHub, tmp_path: Path) -> None:
    result = await _loader(fake_github, tmp_path).load_sources([])
    assert len(result) == 0
    assert result.report.outcomes == []
    assert result.report.timed_out is False


def test_watermark_defaults_to_lookback_window() -> None:
    config = MultiLoaderConfig(github_lookback_days=7)
    expected = datetime.now(tz=timezone.utc) - timedelta(days=7)
    assert abs(config.watermark() - expected) < timedelta(seconds=5)
    assert MultiLoaderConfig(github_since=SINCE).watermark() == SINCE
