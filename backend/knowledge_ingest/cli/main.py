"""CLI entrypoint for knowledge ingest."""

from __future__ import annotations

import json
import os
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote

import requests
import typer
import uvicorn

app = typer.Typer(name="kni", help="Knowledge ingest command-line interface")

DEFAULT_HOST = "http://127.0.0.1:5180"
DEFAULT_PORT = 5180


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("KNI_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    try:
        resp = requests.request(method, url, timeout=600, **kwargs)
    except requests.RequestException as exc:
        typer.echo(f"Request failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


@app.command()
def ingest(
    sources: Optional[List[str]] = typer.Argument(None, help="Sources as <type>:<locator>; defaults to the server's configured list"),
    since: Optional[datetime] = typer.Option(None, "--since", help="GitHub watermark (ISO-8601)"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Deadline for the whole load in seconds"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Load sources into the knowledge store and print the run report."""
    body: dict[str, object] = {}
    if sources:
        body["sources"] = list(sources)
    if since:
        body["since"] = since.isoformat()
    if timeout:
        body["timeout"] = timeout
    resp = _request("POST", "/ingest", host=host, json=body)
    payload = resp.json()
    typer.echo(json.dumps(payload, indent=2))
    if payload.get("status") != "completed":
        raise typer.Exit(code=2)


@app.command()
def documents(
    source_id: str = typer.Argument(..., help="Source id, e.g. github:acme"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List documents stored for a source."""
    resp = _request("GET", "/documents", host=host, params={"source_id": source_id})
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def forget(
    source_id: str = typer.Argument(..., help="Source id whose documents are deleted"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete every document of a source."""
    resp = _request("DELETE", f"/sources/{quote(source_id, safe=':/')}", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def serve(
    bind: str = typer.Option("127.0.0.1", "--bind", help="Interface to listen on"),
    port: int = typer.Option(DEFAULT_PORT, "--port", help="Port to listen on"),
) -> None:
    """Run the ingest API server."""
    uvicorn.run("knowledge_ingest.app:app", host=bind, port=port, reload=False)


if __name__ == "__main__":
    app()
