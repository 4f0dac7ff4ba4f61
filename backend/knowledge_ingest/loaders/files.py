"""Local file loaders for ``file:`` and ``pdf:`` glob sources."""

from __future__ import annotations

import glob
import os
from pathlib import Path
from typing import Iterator

import fitz  # PyMuPDF

from knowledge_ingest.core.logging import get_logger
from knowledge_ingest.knowledge.models import Document
from knowledge_ingest.loaders.sources import SourceType
from knowledge_ingest.utils.ids import record_id

logger = get_logger(__name__)


class BaseLoader:
    """Expand a glob and read every matching file."""

    source_type: SourceType = SourceType.FILE

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern

    @classmethod
    def with_glob(cls, pattern: str) -> "BaseLoader":
        return cls(pattern)

    def paths(self) -> list[Path]:
        expanded = os.path.expanduser(self.pattern)
        return [Path(match) for match in sorted(glob.glob(expanded, recursive=True)) if os.path.isfile(match)]

    def read(self, path: Path) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    def read_with_path(self) -> Iterator[tuple[Path, str]]:
        """Yield ``(path, content)``; unreadable files are logged and skipped."""
        for path in self.paths():
            try:
                yield path, self.read(path)
            except Exception as exc:
                logger.warning("Failed to read %s: %s", path, exc)

    def documents(self) -> list[Document]:
        kind = self.source_type.value
        return [
            Document(
                id=record_id(kind, os.fspath(path)),
                source_id=f"{kind}:{self.pattern}",
                content=content,
                metadata={"source_type": kind, "source_url": self.pattern, "path": os.fspath(path)},
            )
            for path, content in self.read_with_path()
        ]


class FileLoader(BaseLoader):
    source_type = SourceType.FILE

    def read(self, path: Path) -> str:
        return path.read_bytes().decode("utf-8", errors="ignore")


class PdfLoader(BaseLoader):
    source_type = SourceType.PDF

    def read(self, path: Path) -> str:
        with fitz.open(path) as doc:
            pages = [page.get_text("text", sort=True) for page in doc]
        return "\n\n".join(pages)


__all__ = ["BaseLoader", "FileLoader", "PdfLoader"]
