"""Run report structures for multi-source loads."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from knowledge_ingest.knowledge.models import Document


class OutcomeStatus(str, Enum):
    LOADED = "loaded"
    SKIPPED = "skipped"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(slots=True)
class SourceOutcome:
    """What happened to one configured source."""

    source: str
    status: OutcomeStatus
    source_type: str | None = None
    records: int = 0
    detail: str | None = None
    error: BaseException | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "status": self.status.value,
            "source_type": self.source_type,
            "records": self.records,
            "detail": self.detail,
        }


@dataclass(slots=True)
class LoadReport:
    """Aggregated per-source outcomes of one run."""

    run_id: str
    outcomes: list[SourceOutcome] = field(default_factory=list)
    timed_out: bool = False

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def loaded(self) -> int:
        return self._count(OutcomeStatus.LOADED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED) + self._count(OutcomeStatus.TIMED_OUT)

    @property
    def records(self) -> int:
        return sum(outcome.records for outcome in self.outcomes)

    @property
    def errors(self) -> list[BaseException]:
        return [outcome.error for outcome in self.outcomes if outcome.error is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "timed_out": self.timed_out,
            "stats": {
                "loaded": self.loaded,
                "skipped": self.skipped,
                "failed": self.failed,
                "records": self.records,
            },
            "sources": [outcome.to_dict() for outcome in self.outcomes],
        }


@dataclass(slots=True)
class LoadResult:
    """Records from every source that completed, plus the run report."""

    records: list[Document]
    report: LoadReport

    def __iter__(self) -> Iterator[Document]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


__all__ = ["OutcomeStatus", "SourceOutcome", "LoadReport", "LoadResult"]
