"""FastAPI application setup for knowledge ingest."""

from __future__ import annotations

from fastapi import FastAPI, Request

from knowledge_ingest.api import dependencies
from knowledge_ingest.api.routes_admin import router as admin_router
from knowledge_ingest.api.routes_ingest import router as ingest_router
from knowledge_ingest.core.logging import configure_logging
from knowledge_ingest.core.metrics import REQUEST_COUNT

configure_logging()

app = FastAPI(
    title="Knowledge Ingest",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(ingest_router, prefix="/ingest", tags=["ingest"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.middleware("http")
async def count_requests(request: Request, call_next):
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    REQUEST_COUNT.labels(endpoint, request.method, str(response.status_code)).inc()
    return response


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    dependencies.get_app_settings()
    dependencies.get_store()
    dependencies.get_ingest_pipeline()


@app.on_event("shutdown")
async def shutdown() -> None:
    await dependencies.shutdown()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
