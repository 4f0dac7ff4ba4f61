"""Document and administrative routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from knowledge_ingest.api.dependencies import get_store
from knowledge_ingest.core.metrics import metrics_response
from knowledge_ingest.knowledge.store import KnowledgeStore
from knowledge_ingest.models.dto import DeleteResponse, DocumentResponse

router = APIRouter()


@router.get("/documents", response_model=list[DocumentResponse], summary="List documents of one source")
async def list_documents(source_id: str, store: KnowledgeStore = Depends(get_store)) -> list[DocumentResponse]:
    return [DocumentResponse.from_document(document) for document in store.documents_for_source(source_id)]


@router.get("/documents/{document_id:path}", response_model=DocumentResponse, summary="Fetch a document")
async def get_document(document_id: str, store: KnowledgeStore = Depends(get_store)) -> DocumentResponse:
    document = store.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return DocumentResponse.from_document(document)


@router.delete("/sources/{source_id:path}", response_model=DeleteResponse, summary="Delete every document of a source")
async def delete_source(source_id: str, store: KnowledgeStore = Depends(get_store)) -> DeleteResponse:
    deleted = store.delete_source(source_id)
    return DeleteResponse(status="ok" if deleted else "noop", deleted=deleted)


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
