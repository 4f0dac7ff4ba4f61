"""Tests for source descriptor parsing."""

import pytest

from knowledge_ingest.core.errors import SourceDescriptorError
from knowledge_ingest.loaders.sources import SourceType, parse_source


def test_splits_on_first_colon_only() -> None:
    descriptor = parse_source("site:https://example.com:8443/docs")
    assert descriptor.type is SourceType.SITE
    assert descriptor.locator == "https://example.com:8443/docs"
    assert descriptor.source_id == "site:https://example.com:8443/docs"


@pytest.mark.parametrize(
    ("raw", "locator"),
    [
        ("github:acme", "acme"),
        ("github:acme/widget", "acme/widget"),
        ("github:https://github.com/acme/widget", "acme/widget"),
        ("github:https://github.com/acme/widget.git", "acme/widget"),
        ("github:https://github.com/acme/widget/tree/main", "acme/widget"),
    ],
)
def test_github_locators_are_normalized(raw: str, locator: str) -> None:
    assert parse_source(raw).locator == locator


def test_file_and_pdf_types() -> None:
    assert parse_source("file:docs/**/*.md").type is SourceType.FILE
    assert parse_source("pdf:papers/*.pdf").type is SourceType.PDF


@pytest.mark.parametrize("raw", ["bogus", "nope:1", "site:", "github:https://github.com/"])
def test_rejects_malformed_descriptors(raw: str) -> None:
    with pytest.raises(SourceDescriptorError):
        parse_source(raw)
