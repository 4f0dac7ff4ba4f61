"""Web page loading: fetch, strip markup, then let a model keep the main content."""

from __future__ import annotations

import re
import time
from pathlib import Path
from urllib.parse import SplitResult, urlsplit

import httpx

from knowledge_ingest.core.errors import SiteLoaderError
from knowledge_ingest.core.logging import get_logger
from knowledge_ingest.knowledge.models import Document
from knowledge_ingest.loaders.extractor import ContentExtractor
from knowledge_ingest.utils.ids import record_id

logger = get_logger(__name__)

_SCRIPT_RE = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
)
_BODY_START = "<body"
_BODY_END = "</body>"


def isolate_body(html: str) -> str:
    """Return the ``<body>...</body>`` slice, or the whole document if either marker is missing."""
    lowered = html.lower()
    start = lowered.find(_BODY_START)
    if start == -1:
        return html
    end = lowered.find(_BODY_END, start)
    if end == -1:
        return html
    return html[start : end + len(_BODY_END)]


def strip_markup(html: str) -> str:
    """Mechanically reduce HTML to text."""
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    return _WHITESPACE_RE.sub(" ", text).strip()


class SiteCache:
    """On-disk artifacts for fetched pages, laid out by host and URL path.

    ``<root>/sites/<host>/<path>/index.html`` holds the stripped text sent to
    the model and ``content.txt`` the extracted content. Concurrent writers
    for the same URL are not coordinated; the last write wins.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root) / "sites"

    def site_dir(self, url: SplitResult) -> Path:
        segments = [part for part in url.path.split("/") if part not in ("", ".", "..")]
        return self.root.joinpath(url.hostname or "unknown", *segments)

    def html_path(self, url: SplitResult) -> Path:
        return self.site_dir(url) / "index.html"

    def content_path(self, url: SplitResult) -> Path:
        return self.site_dir(url) / "content.txt"

    def write(self, path: Path, text: str) -> bool:
        """Write an artifact; failures are logged and reported as ``False``."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to write site cache %s: %s", path, exc)
            return False
        return True

    def read_content(self, url: SplitResult, max_age_seconds: float) -> str | None:
        """Return cached content younger than ``max_age_seconds``, else ``None``."""
        path = self.content_path(url)
        try:
            age = time.time() - path.stat().st_mtime
            if age > max_age_seconds:
                return None
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Failed to read site cache %s: %s", path, exc)
            return None


class SiteLoader:
    """Extract the main content of a single page.

    The cached ``content.txt`` is only consulted when ``cache_ttl_seconds`` is
    set; by default every load fetches the page again.
    """

    def __init__(
        self,
        url: str,
        extractor: ContentExtractor,
        sources_path: Path = Path(".sources"),
        client: httpx.AsyncClient | None = None,
        cache_ttl_seconds: float | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.raw_url = url
        self.url = _parse_url(url)
        self.extractor = extractor
        self.cache = SiteCache(sources_path)
        self.cache_ttl_seconds = cache_ttl_seconds
        self._client = client
        self._timeout = timeout

    @property
    def source_id(self) -> str:
        return f"site:{self.url.scheme}://{self.url.netloc}"

    async def extract_content(self) -> str:
        if self.cache_ttl_seconds is not None:
            cached = self.cache.read_content(self.url, self.cache_ttl_seconds)
            if cached is not None:
                logger.info("Using cached content for %s", self.raw_url)
                return cached

        logger.debug("Fetching and extracting site content from %s", self.raw_url)
        html = await self._fetch()
        text = strip_markup(isolate_body(html))
        self.cache.write(self.cache.html_path(self.url), text)

        try:
            extracted = await self.extractor.extract(text)
        except Exception as exc:
            raise SiteLoaderError(f"Extraction failed for {self.raw_url}: {exc}") from exc

        self.cache.write(self.cache.content_path(self.url), extracted.content)
        return extracted.content

    async def load(self) -> Document:
        content = await self.extract_content()
        return Document(
            id=record_id("site", self.raw_url),
            source_id=self.source_id,
            content=content,
            metadata={"source_type": "site", "source_url": self.raw_url},
        )

    async def _fetch(self) -> str:
        try:
            if self._client is not None:
                response = await self._client.get(self.raw_url)
            else:
                async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                    response = await client.get(self.raw_url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise SiteLoaderError(f"Request error for {self.raw_url}: {exc}") from exc
        return response.text


def _parse_url(url: str) -> SplitResult:
    try:
        validated = httpx.URL(url)
        parsed = urlsplit(url)
    except (httpx.InvalidURL, ValueError) as exc:
        raise SiteLoaderError(f"URL parse error: {exc}") from exc
    if validated.scheme not in ("http", "https") or not validated.host:
        raise SiteLoaderError(f"URL parse error: {url!r} is not an absolute http(s) URL")
    return parsed


__all__ = ["SiteLoader", "SiteCache", "isolate_body", "strip_markup"]
