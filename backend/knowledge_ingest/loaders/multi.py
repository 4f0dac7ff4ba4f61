"""Dispatch ``type:locator`` sources to their loaders and aggregate the records."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Sequence

import httpx

from knowledge_ingest.core.config import Settings
from knowledge_ingest.core.errors import SiteLoaderError, SourceDescriptorError
from knowledge_ingest.core.logging import get_logger
from knowledge_ingest.core.metrics import LOAD_DURATION, RECORDS_LOADED, SOURCE_OUTCOMES
from knowledge_ingest.knowledge.models import Document
from knowledge_ingest.loaders.extractor import ContentExtractor
from knowledge_ingest.loaders.files import FileLoader, PdfLoader
from knowledge_ingest.loaders.github import DEFAULT_API_URL, GitHubClient
from knowledge_ingest.loaders.site import SiteLoader
from knowledge_ingest.loaders.sources import SourceDescriptor, SourceType, parse_source
from knowledge_ingest.loaders.types import LoadReport, LoadResult, OutcomeStatus, SourceOutcome
from knowledge_ingest.utils.ids import new_id
from knowledge_ingest.utils.time import as_utc, utc_now

logger = get_logger(__name__)


@dataclass(slots=True)
class MultiLoaderConfig:
    sources_path: Path = Path(".sources")
    github_token: str | None = None
    github_api_url: str = DEFAULT_API_URL
    github_since: datetime | None = None
    github_lookback_days: int = 30
    github_max_concurrency: int = 4
    http_timeout_seconds: float = 30.0
    site_cache_ttl_seconds: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MultiLoaderConfig":
        return cls(
            sources_path=settings.sources_path,
            github_token=settings.github_token,
            github_api_url=settings.github_api_url,
            github_since=settings.github_since,
            github_lookback_days=settings.github_lookback_days,
            github_max_concurrency=settings.github_max_concurrency,
            http_timeout_seconds=settings.http_timeout_seconds,
            site_cache_ttl_seconds=settings.site_cache_ttl_seconds,
        )

    def watermark(self) -> datetime:
        """Configured watermark, else the start of the lookback window."""
        if self.github_since is not None:
            return as_utc(self.github_since)
        return utc_now() - timedelta(days=self.github_lookback_days)


class MultiLoader:
    """Load an ordered list of sources into one record sequence.

    Sources are loaded concurrently but the records keep the order of the
    input list. Each source gets its own outcome in the run report: malformed
    descriptors are ``skipped``, loader errors mark only that source
    ``failed`` and sources still running at the deadline are ``timed_out``.
    """

    def __init__(
        self,
        config: MultiLoaderConfig,
        extractor: ContentExtractor | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.extractor = extractor
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=config.http_timeout_seconds,
            follow_redirects=True,
        )
        self.github = GitHubClient(
            config.github_token,
            api_url=config.github_api_url,
            max_concurrency=config.github_max_concurrency,
            client=self.http_client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "MultiLoader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def load_sources(
        self,
        sources: Sequence[str],
        since: datetime | None = None,
        timeout: float | None = None,
        run_id: str | None = None,
    ) -> LoadResult:
        since = as_utc(since) if since is not None else self.config.watermark()
        report = LoadReport(run_id=run_id or new_id("run"))
        slots: list[SourceOutcome | tuple[SourceDescriptor, asyncio.Task[list[Document]]]] = []

        for raw in sources:
            try:
                descriptor = parse_source(raw)
            except SourceDescriptorError as exc:
                logger.warning("Skipping source %r: %s", raw, exc.reason, extra={"ctx_source": raw})
                slots.append(SourceOutcome(source=raw, status=OutcomeStatus.SKIPPED, detail=exc.reason))
                continue
            task = asyncio.create_task(self._load_timed(descriptor, since), name=f"load:{raw}")
            slots.append((descriptor, task))

        tasks = [slot[1] for slot in slots if isinstance(slot, tuple)]
        pending: set[asyncio.Task[list[Document]]] = set()
        if tasks:
            try:
                _, pending = await asyncio.wait(tasks, timeout=timeout)
            except BaseException:
                for task in tasks:
                    task.cancel()
                raise
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                report.timed_out = True

        records: list[Document] = []
        for slot in slots:
            if isinstance(slot, SourceOutcome):
                outcome = slot
            else:
                descriptor, task = slot
                outcome = self._outcome(descriptor, task, task in pending, timeout)
                if outcome.status is OutcomeStatus.LOADED:
                    records.extend(task.result())
            SOURCE_OUTCOMES.labels(outcome.source_type or "unknown", outcome.status.value).inc()
            report.outcomes.append(outcome)

        logger.info(
            "Loaded %s records from %s sources (%s skipped, %s failed)",
            len(records),
            report.loaded,
            report.skipped,
            report.failed,
            extra={"ctx_run_id": report.run_id, "ctx_records": len(records)},
        )
        return LoadResult(records=records, report=report)

    # Per-source loaders -------------------------------------------------

    async def load_source(self, descriptor: SourceDescriptor, since: datetime) -> list[Document]:
        if descriptor.type is SourceType.GITHUB:
            return await self._load_github(descriptor, since)
        if descriptor.type is SourceType.SITE:
            return await self._load_site(descriptor)
        if descriptor.type is SourceType.FILE:
            return await asyncio.to_thread(FileLoader.with_glob(descriptor.locator).documents)
        if descriptor.type is SourceType.PDF:
            return await asyncio.to_thread(PdfLoader.with_glob(descriptor.locator).documents)
        raise SourceDescriptorError(descriptor.raw, f"no loader for {descriptor.type.value}")

    async def _load_github(self, descriptor: SourceDescriptor, since: datetime) -> list[Document]:
        owner, _, repo = descriptor.locator.partition("/")
        if repo:
            return await self.github.sync_repository(owner, repo, since, source_id=descriptor.source_id)
        return await self.github.sync_organization(owner, since)

    async def _load_site(self, descriptor: SourceDescriptor) -> list[Document]:
        if self.extractor is None:
            raise SiteLoaderError("No content extractor configured for site sources")
        loader = SiteLoader(
            descriptor.locator,
            self.extractor,
            sources_path=self.config.sources_path,
            client=self.http_client,
            cache_ttl_seconds=self.config.site_cache_ttl_seconds,
        )
        return [await loader.load()]

    async def _load_timed(self, descriptor: SourceDescriptor, since: datetime) -> list[Document]:
        started = time.perf_counter()
        try:
            documents = await self.load_source(descriptor, since)
        finally:
            LOAD_DURATION.labels(descriptor.type.value).observe(time.perf_counter() - started)
        RECORDS_LOADED.labels(descriptor.type.value).inc(len(documents))
        return documents

    def _outcome(
        self,
        descriptor: SourceDescriptor,
        task: asyncio.Task[list[Document]],
        timed_out: bool,
        timeout: float | None,
    ) -> SourceOutcome:
        source_type = descriptor.type.value
        if timed_out:
            error = TimeoutError(f"{descriptor.raw} did not finish within {timeout}s")
            logger.error("Source %s timed out", descriptor.raw, extra={"ctx_source": descriptor.raw})
            return SourceOutcome(
                source=descriptor.raw,
                status=OutcomeStatus.TIMED_OUT,
                source_type=source_type,
                detail=str(error),
                error=error,
            )
        error = task.exception()
        if error is not None:
            logger.error(
                "Source %s failed: %s",
                descriptor.raw,
                error,
                exc_info=error,
                extra={"ctx_source": descriptor.raw},
            )
            return SourceOutcome(
                source=descriptor.raw,
                status=OutcomeStatus.FAILED,
                source_type=source_type,
                detail=str(error),
                error=error,
            )
        return SourceOutcome(
            source=descriptor.raw,
            status=OutcomeStatus.LOADED,
            source_type=source_type,
            records=len(task.result()),
        )


__all__ = ["MultiLoader", "MultiLoaderConfig"]
