"""Ingest API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from knowledge_ingest.api.dependencies import get_app_settings, get_ingest_pipeline
from knowledge_ingest.core.config import Settings
from knowledge_ingest.core.errors import StorageError
from knowledge_ingest.ingest.pipeline import IngestPipeline
from knowledge_ingest.models.dto import IngestRequest, IngestResponse

router = APIRouter()


@router.post("", response_model=IngestResponse, summary="Load sources into the knowledge store")
async def trigger_ingest(
    request: IngestRequest,
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
    settings: Settings = Depends(get_app_settings),
) -> IngestResponse:
    sources = request.sources if request.sources is not None else settings.sources
    if not sources:
        raise HTTPException(status_code=400, detail="No sources given and none configured")
    try:
        payload = await pipeline.run(sources, since=request.since, timeout=request.timeout)
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return IngestResponse(
        run_id=payload["run_id"],
        status=payload["status"],
        timed_out=payload["timed_out"],
        written=payload["written"],
        stats=payload["stats"],
        sources=payload["sources"],
    )


@router.get("/runs/{run_id}", summary="Return the stored report of an ingest run")
async def get_run(run_id: str, pipeline: IngestPipeline = Depends(get_ingest_pipeline)) -> dict:
    run = pipeline.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


__all__ = ["router"]
