"""Incremental GitHub activity sync.

Repositories, pull requests, issues and commits are fetched from the REST API
and normalised into :class:`Document` records. Every fetch except the
repository listing is bounded by a watermark: only entities updated at or
after ``since`` are returned.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Mapping

import httpx

from knowledge_ingest.core.errors import FetchError, InvalidRepositoryName
from knowledge_ingest.core.logging import get_logger
from knowledge_ingest.knowledge.models import Document
from knowledge_ingest.utils.ids import record_id
from knowledge_ingest.utils.time import as_utc, format_timestamp, parse_timestamp

logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"
PER_PAGE = 100

Payload = dict[str, Any]


class GitHubClient:
    """Async GitHub REST client producing normalised records."""

    def __init__(
        self,
        token: str | None = None,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        max_concurrency: int = 4,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.api_url = api_url.rstrip("/")
        self.max_concurrency = max_concurrency
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "knowledge-ingest",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.headers = headers

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # Provider listings --------------------------------------------------

    async def get_repository(self, owner: str, repo: str) -> Payload:
        operation = f"fetch repository {owner}/{repo}"
        payload = await self._get_json(operation, f"/repos/{owner}/{repo}")
        if not isinstance(payload, dict):
            raise FetchError(operation, ValueError("expected a JSON object"))
        return payload

    async def list_org_repositories(self, org: str) -> list[Payload]:
        return await self._paginate(f"fetch organization repositories for {org}", f"/orgs/{org}/repos", {})

    async def list_pull_requests(self, owner: str, repo: str, since: datetime) -> list[Payload]:
        """Pull requests updated at or after ``since``, most recent first.

        The pulls endpoint has no time filter; results are sorted by update
        time and filtered here.
        """
        since = as_utc(since)
        pulls = await self._paginate(
            f"fetch pull requests for {owner}/{repo}",
            f"/repos/{owner}/{repo}/pulls",
            {"state": "all", "sort": "updated", "direction": "desc"},
            stop=lambda item: not _updated_since(item, since),
        )
        return [pr for pr in pulls if _updated_since(pr, since)]

    async def list_issues(self, owner: str, repo: str, since: datetime) -> list[Payload]:
        """Issues updated at or after ``since``; pull requests are excluded."""
        since = as_utc(since)
        issues = await self._paginate(
            f"fetch issues for {owner}/{repo}",
            f"/repos/{owner}/{repo}/issues",
            {"state": "all", "sort": "updated", "direction": "desc"},
            stop=lambda item: not _updated_since(item, since),
        )
        return [
            issue
            for issue in issues
            if _updated_since(issue, since) and "pull_request" not in issue
        ]

    async def list_commits(self, owner: str, repo: str, since: datetime) -> list[Payload]:
        return await self._paginate(
            f"fetch commits for {owner}/{repo}",
            f"/repos/{owner}/{repo}/commits",
            {"since": format_timestamp(since)},
        )

    # Sync ---------------------------------------------------------------

    async def sync_repository(
        self,
        owner: str,
        repo: str,
        since: datetime,
        source_id: str | None = None,
        repository: Payload | None = None,
    ) -> list[Document]:
        """Summary, pulls, issues, then commits for one repository.

        Record ids use the provider's canonical ``owner/repo`` spelling, so a
        locator typed in another case maps to the same ids.
        """
        since = as_utc(since)
        if repository is None:
            repository = await self.get_repository(owner, repo)
        owner, repo = split_repository_name(repository)
        source_id = source_id or f"github:{owner}/{repo}"
        documents = [repository_document(repository, source_id)]
        documents.extend(
            pull_request_document(pr, owner, repo, source_id)
            for pr in await self.list_pull_requests(owner, repo, since)
        )
        documents.extend(
            issue_document(issue, owner, repo, source_id)
            for issue in await self.list_issues(owner, repo, since)
        )
        documents.extend(
            commit_document(commit, owner, repo, source_id)
            for commit in await self.list_commits(owner, repo, since)
        )
        logger.debug("Fetched %s records for %s/%s", len(documents), owner, repo)
        return documents

    async def sync_organization(self, org: str, since: datetime) -> list[Document]:
        """Sync every repository of ``org``.

        Repositories are fetched concurrently, at most ``max_concurrency`` at a
        time, and the result keeps the organization's listing order.
        """
        since = as_utc(since)
        source_id = f"github:{org}"
        repositories = await self.list_org_repositories(org)
        targets = [(repository, *split_repository_name(repository)) for repository in repositories]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def worker(repository: Payload, owner: str, name: str) -> list[Document]:
            async with semaphore:
                return await self.sync_repository(owner, name, since, source_id, repository)

        tasks = [asyncio.create_task(worker(*target)) for target in targets]
        try:
            batches = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        documents = [document for batch in batches for document in batch]
        logger.info(
            "Synced %s records from %s repositories in %s",
            len(documents),
            len(repositories),
            org,
            extra={"ctx_source": source_id, "ctx_records": len(documents)},
        )
        return documents

    # Internal helpers ---------------------------------------------------

    async def _get(self, operation: str, url: str, params: Mapping[str, Any] | None) -> httpx.Response:
        try:
            response = await self.client.get(url, params=params, headers=self.headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FetchError(operation, exc) from exc
        return response

    async def _get_json(self, operation: str, path: str) -> Any:
        response = await self._get(operation, f"{self.api_url}{path}", None)
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(operation, exc) from exc

    async def _paginate(
        self,
        operation: str,
        path: str,
        params: Mapping[str, Any],
        stop: Callable[[Payload], bool] | None = None,
    ) -> list[Payload]:
        url: str | None = f"{self.api_url}{path}"
        query: Mapping[str, Any] | None = {**params, "per_page": PER_PAGE}
        items: list[Payload] = []
        while url:
            response = await self._get(operation, url, query)
            try:
                page = response.json()
            except ValueError as exc:
                raise FetchError(operation, exc) from exc
            if not isinstance(page, list):
                raise FetchError(operation, ValueError("expected a JSON array"))
            items.extend(page)
            if not page or (stop is not None and stop(page[-1])):
                break
            # the next link already carries the query string
            url = response.links.get("next", {}).get("url")
            query = None
        return items


# Normalisation ----------------------------------------------------------


def split_repository_name(repository: Payload) -> tuple[str, str]:
    """Return ``(owner, repo)`` from a repository payload's qualified name."""
    full_name = repository.get("full_name") or repository.get("name") or ""
    owner, sep, name = full_name.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise InvalidRepositoryName(full_name)
    return owner, name


def repository_document(repository: Payload, source_id: str) -> Document:
    full_name = repository.get("full_name") or repository.get("name") or ""
    content = "\n".join(
        [
            f"Repository: {full_name}",
            f"Description: {repository.get('description') or 'No description'}",
            f"URL: {repository.get('html_url') or ''}",
            f"Created: {repository.get('created_at') or 'unknown'}",
            f"Last Updated: {repository.get('updated_at') or 'unknown'}",
        ]
    )
    return Document(
        id=record_id("github", "repo", full_name),
        source_id=source_id,
        content=content,
        created_at=parse_timestamp(repository.get("created_at")),
        metadata=repository,
    )


def pull_request_document(pr: Payload, owner: str, repo: str, source_id: str) -> Document:
    return Document(
        id=record_id("github", "pr", owner, f"{owner}/{repo}/{pr['number']}"),
        source_id=source_id,
        content=_entity_content("Pull Request", pr),
        created_at=parse_timestamp(pr.get("created_at")),
        metadata=pr,
    )


def issue_document(issue: Payload, owner: str, repo: str, source_id: str) -> Document:
    return Document(
        id=record_id("github", "issue", owner, f"{owner}/{repo}/{issue['number']}"),
        source_id=source_id,
        content=_entity_content("Issue", issue),
        created_at=parse_timestamp(issue.get("created_at")),
        metadata=issue,
    )


def commit_document(commit: Payload, owner: str, repo: str, source_id: str) -> Document:
    git_commit = commit.get("commit") or {}
    git_author = git_commit.get("author") or {}
    user = commit.get("author") or {}
    author = f"@{user['login']}" if user.get("login") else git_author.get("name", "")
    date = git_author.get("date")
    content = "\n".join(
        [
            f"Commit: {commit['sha']}",
            f"Author: {author}",
            f"Date: {date or 'unknown'}",
            f"URL: {commit.get('html_url') or ''}",
            "",
            git_commit.get("message") or "",
        ]
    )
    return Document(
        id=record_id("github", "commit", owner, f"{owner}/{repo}/{commit['sha']}"),
        source_id=source_id,
        content=content,
        created_at=parse_timestamp(date),
        metadata=commit,
    )


def _entity_content(label: str, entity: Payload) -> str:
    user = entity.get("user") or {}
    return "\n".join(
        [
            f"{label}: #{entity['number']} - {entity.get('title') or ''}",
            f"Author: @{user.get('login', '')}",
            f"State: {entity.get('state') or 'unknown'}",
            f"URL: {entity.get('html_url') or ''}",
            f"Created: {entity.get('created_at') or 'unknown'}",
            f"Last Updated: {entity.get('updated_at') or 'unknown'}",
            "",
            entity.get("body") or "",
        ]
    )


def _updated_since(entity: Payload, since: datetime) -> bool:
    updated_at = parse_timestamp(entity.get("updated_at"))
    return updated_at is not None and updated_at >= since


__all__ = [
    "GitHubClient",
    "split_repository_name",
    "repository_document",
    "pull_request_document",
    "issue_document",
    "commit_document",
]
