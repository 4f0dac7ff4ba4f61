"""Exception types raised by the ingestion core."""

from __future__ import annotations


class IngestError(Exception):
    """Base class for ingestion failures."""


class SourceDescriptorError(IngestError):
    """A source string is malformed or names an unknown source type."""

    def __init__(self, descriptor: str, reason: str) -> None:
        super().__init__(f"Invalid source {descriptor!r}: {reason}")
        self.descriptor = descriptor
        self.reason = reason


class FetchError(IngestError):
    """An upstream provider call failed."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"Failed to {operation}: {cause}")
        self.operation = operation
        self.cause = cause


class InvalidRepositoryName(IngestError):
    """A repository name could not be split into owner and name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Repository name {name!r} is not of the form owner/repo")
        self.name = name


class SiteLoaderError(IngestError):
    """URL, fetch or extraction failure for a single page."""


class ExtractionFailed(IngestError):
    """The language model call or its output is unusable."""


class ConversionError(IngestError):
    """A persisted value does not map to any known variant."""


class StorageError(IngestError):
    """The storage sink rejected a write or read."""


__all__ = [
    "IngestError",
    "SourceDescriptorError",
    "FetchError",
    "InvalidRepositoryName",
    "SiteLoaderError",
    "ExtractionFailed",
    "ConversionError",
    "StorageError",
]
