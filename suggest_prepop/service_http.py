from __future__ import annotations

import argparse
import os
from collections.abc import Iterable
from typing import Annotated

import uvicorn
from fastapi import FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .api import build_api
from .errors import InvalidInputError, StoreUnavailableError
from .models import DEFAULT_NAMESPACE, ItemOccurrence, SuggestConfig
from .storage import SortedSetStore

OccurrencesPayload = Annotated[list[ItemOccurrence], Field(min_length=1)]


class IngestRequest(BaseModel):
    """Payload for bulk ingestion of occurrence records."""

    occurrences: OccurrencesPayload


class IngestResponse(BaseModel):
    ingested: int


class AddResponse(BaseModel):
    """Cumulative popularity of the item across the targeted scopes."""

    score: int


class PruneRequest(BaseModel):
    keep: int | None = Field(default=None, ge=0)
    scopes: list[str] = Field(default_factory=list)


class RemovedResponse(BaseModel):
    removed: int


class SuggestResponse(BaseModel):
    prefix: str
    suggestions: list[str]


def create_app(
    config: SuggestConfig | None = None,
    *,
    store: SortedSetStore | None = None,
    cors_origins: Iterable[str] | None = None,
) -> FastAPI:
    """Construct a FastAPI app backed by SuggestAPI."""

    api = build_api(config, store)
    app = FastAPI(title="Prefix Popularity Suggest", version="0.1.0")
    app.state.api = api

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(InvalidInputError)
    async def invalid_input(_request: Request, exc: InvalidInputError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable(_request: Request, exc: StoreUnavailableError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": f"store unavailable: {exc}"},
        )

    @app.get("/healthz", status_code=status.HTTP_200_OK)
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/items", response_model=AddResponse)
    def add_item(payload: ItemOccurrence) -> AddResponse:
        score = app.state.api.add(payload.item, payload.count, payload.scopes)
        return AddResponse(score=score)

    @app.post("/ingest", response_model=IngestResponse, status_code=status.HTTP_202_ACCEPTED)
    def ingest(payload: IngestRequest) -> IngestResponse:
        return IngestResponse(ingested=app.state.api.ingest(payload.occurrences))

    @app.get("/suggest", response_model=SuggestResponse)
    def suggest(
        prefix: str = Query(default=""),
        count: int | None = Query(default=None, ge=0, le=10_000),
        scope: list[str] = Query(default=[]),
    ) -> SuggestResponse:
        return SuggestResponse(prefix=prefix, suggestions=app.state.api.ask(prefix, count, scope))

    @app.post("/prune", response_model=RemovedResponse)
    def prune(payload: PruneRequest) -> RemovedResponse:
        return RemovedResponse(removed=app.state.api.prune(payload.keep, payload.scopes))

    @app.delete("/items", response_model=RemovedResponse)
    def drop_prefix(
        prefix: str = Query(...),
        scope: list[str] = Query(default=[]),
    ) -> RemovedResponse:
        return RemovedResponse(removed=app.state.api.drop_prefix(prefix, scope))

    @app.get("/scopes", response_model=list[str])
    def scopes(refresh: bool = Query(default=False)) -> list[str]:
        return app.state.api.scopes(refresh=refresh)

    return app


def run(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the suggestion index HTTP service.")
    parser.add_argument("--host", default="127.0.0.1", help="Host interface to bind.")
    parser.add_argument("--port", type=int, default=8000, help="TCP port for the service.")
    parser.add_argument(
        "--redis-url",
        default=os.environ.get("SUGGEST_REDIS_URL"),
        help="Redis URL holding the index (default: $SUGGEST_REDIS_URL).",
    )
    parser.add_argument(
        "--store", type=str, default=None, help="Optional JSONL store path used without Redis."
    )
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE, help="Key namespace.")
    parser.add_argument(
        "--min-activity", type=int, default=5, help="Minimum times an item must be seen."
    )
    parser.add_argument(
        "--entries-limit", type=int, default=32768, help="Entries kept per scope by prune."
    )
    parser.add_argument(
        "--top-count", type=int, default=5, help="Default number of suggestions."
    )
    parser.add_argument(
        "--cors-origin",
        action="append",
        dest="cors_origins",
        default=None,
        help="Optional CORS origin (repeatable).",
    )
    parser.add_argument("--log-level", default="info", help="uvicorn log level.")
    args = parser.parse_args(argv)

    config = SuggestConfig(
        cache_namespace=args.namespace,
        min_activity=args.min_activity,
        entries_limit=args.entries_limit,
        top_count=args.top_count,
        redis_url=args.redis_url,
        store_path=args.store,
    )
    app = create_app(config=config, cors_origins=args.cors_origins)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
