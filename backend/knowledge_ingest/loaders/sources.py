"""Source descriptor parsing.

A source is configured as ``"<type>:<locator>"``. Only the first colon
separates the two, so locators such as URLs keep theirs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from knowledge_ingest.core.errors import SourceDescriptorError

_GITHUB_URL_PREFIXES = ("https://github.com/", "http://github.com/", "github.com/")


class SourceType(str, Enum):
    GITHUB = "github"
    SITE = "site"
    FILE = "file"
    PDF = "pdf"


@dataclass(frozen=True, slots=True)
class SourceDescriptor:
    """A validated ``type:locator`` pair."""

    type: SourceType
    locator: str
    raw: str

    @property
    def source_id(self) -> str:
        return f"{self.type.value}:{self.locator}"

    def __str__(self) -> str:
        return self.raw


def parse_source(raw: str) -> SourceDescriptor:
    """Parse a single descriptor, raising :class:`SourceDescriptorError`."""
    kind, sep, locator = raw.partition(":")
    if not sep:
        raise SourceDescriptorError(raw, "expected '<type>:<locator>'")
    try:
        source_type = SourceType(kind.strip().lower())
    except ValueError:
        raise SourceDescriptorError(raw, f"unknown source type {kind!r}") from None
    locator = locator.strip()
    if source_type is SourceType.GITHUB:
        locator = _normalize_github_locator(locator)
    if not locator:
        raise SourceDescriptorError(raw, "empty locator")
    return SourceDescriptor(type=source_type, locator=locator, raw=raw)


def _normalize_github_locator(locator: str) -> str:
    for prefix in _GITHUB_URL_PREFIXES:
        if locator.startswith(prefix):
            locator = locator[len(prefix) :]
            break
    # owner or owner/repo; deeper paths (tree/main, pulls) are dropped
    locator = "/".join(locator.strip("/").split("/")[:2])
    if locator.endswith(".git"):
        locator = locator[: -len(".git")]
    return locator


__all__ = ["SourceType", "SourceDescriptor", "parse_source"]
