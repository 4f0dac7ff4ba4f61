"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from knowledge_ingest.knowledge.models import Document


class IngestRequest(BaseModel):
    sources: list[str] | None = Field(default=None, description="Sources as '<type>:<locator>'")
    since: datetime | None = Field(default=None, description="GitHub watermark override")
    timeout: float | None = Field(default=None, gt=0, description="Deadline for the whole load in seconds")


class SourceOutcomeResponse(BaseModel):
    source: str
    status: Literal["loaded", "skipped", "failed", "timed_out"]
    source_type: str | None = None
    records: int
    detail: str | None = None


class IngestResponse(BaseModel):
    run_id: str
    status: Literal["completed", "partial"]
    timed_out: bool
    written: int
    stats: dict[str, int]
    sources: list[SourceOutcomeResponse]


class DocumentResponse(BaseModel):
    id: str
    source_id: str
    content: str
    created_at: datetime | None = None
    metadata: Any | None = None

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=document.id,
            source_id=document.source_id,
            content=document.content,
            created_at=document.created_at,
            metadata=document.metadata,
        )


class DeleteResponse(BaseModel):
    status: Literal["ok", "noop"]
    deleted: int


__all__ = [
    "IngestRequest",
    "IngestResponse",
    "SourceOutcomeResponse",
    "DocumentResponse",
    "DeleteResponse",
]
