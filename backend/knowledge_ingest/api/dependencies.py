"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from knowledge_ingest.core.config import Settings, get_settings
from knowledge_ingest.db.sqlite import SQLiteDatabase
from knowledge_ingest.ingest.pipeline import IngestPipeline
from knowledge_ingest.knowledge.embeddings import EmbeddingModel
from knowledge_ingest.knowledge.store import KnowledgeStore
from knowledge_ingest.loaders.extractor import ContentExtractor, OpenAIContentExtractor
from knowledge_ingest.loaders.multi import MultiLoader, MultiLoaderConfig

_DB: SQLiteDatabase | None = None
_STORE: KnowledgeStore | None = None
_EXTRACTOR: ContentExtractor | None = None
_LOADER: MultiLoader | None = None
_PIPELINE: IngestPipeline | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        _DB = SQLiteDatabase(get_app_settings().db_path)
    return _DB


def get_embedding_model() -> EmbeddingModel:
    return EmbeddingModel.get(get_app_settings().embedding_model)


def get_store() -> KnowledgeStore:
    global _STORE
    if _STORE is None:
        _STORE = KnowledgeStore(get_database(), get_embedding_model())
    return _STORE


def get_extractor() -> ContentExtractor:
    global _EXTRACTOR
    if _EXTRACTOR is None:
        settings = get_app_settings()
        _EXTRACTOR = OpenAIContentExtractor(model=settings.llm_model, api_key=settings.openai_api_key)
    return _EXTRACTOR


def get_loader() -> MultiLoader:
    global _LOADER
    if _LOADER is None:
        _LOADER = MultiLoader(
            MultiLoaderConfig.from_settings(get_app_settings()),
            extractor=get_extractor(),
        )
    return _LOADER


def get_ingest_pipeline() -> IngestPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        _PIPELINE = IngestPipeline(
            database=get_database(),
            store=get_store(),
            loader=get_loader(),
            timeout=get_app_settings().load_timeout_seconds,
        )
    return _PIPELINE


async def shutdown() -> None:
    """Release the shared HTTP client and the database connection."""
    global _DB, _STORE, _EXTRACTOR, _LOADER, _PIPELINE
    if _LOADER is not None:
        await _LOADER.aclose()
    if _DB is not None:
        _DB.close()
    _DB = _STORE = _EXTRACTOR = _LOADER = _PIPELINE = None


__all__ = [
    "get_app_settings",
    "get_database",
    "get_embedding_model",
    "get_store",
    "get_extractor",
    "get_loader",
    "get_ingest_pipeline",
    "shutdown",
]
