"""Entry point for the FastAPI-powered discovery service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .query import SearchQuery, SearchQueryError
from .services.discovery import DiscoveryService
from .services.tmdb import TMDBClient

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(10.0, connect=5.0),
        )
    )
    tmdb = TMDBClient(settings, tmdb_http_client)
    fastapi_app.state.discovery_service = DiscoveryService(settings, tmdb)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie and series discovery federated over TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_discovery_service(app: FastAPI) -> DiscoveryService:
    service = getattr(app.state, "discovery_service", None)
    if not isinstance(service, DiscoveryService):
        raise RuntimeError("Discovery service not initialised")
    return service


def cache_headers(*, degraded: bool) -> dict[str, str]:
    """Long-lived caching for real results, a short window for fallbacks."""

    max_age = (
        settings.degraded_cache_seconds if degraded else settings.response_cache_seconds
    )
    return {"Cache-Control": f"public, max-age={max_age}"}


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(SearchQueryError)
    async def search_query_error(_: Request, exc: SearchQueryError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=400)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/search")
    async def search(request: Request) -> JSONResponse:
        service = get_discovery_service(fastapi_app)
        query = SearchQuery.from_request(request.query_params)
        outcome = await service.search(query)
        return JSONResponse(
            outcome.to_payload(), headers=cache_headers(degraded=outcome.degraded)
        )

    @fastapi_app.get("/genres")
    async def genres() -> JSONResponse:
        service = get_discovery_service(fastapi_app)
        catalog = await service.genres()
        return JSONResponse(
            catalog.to_payload(), headers=cache_headers(degraded=catalog.degraded)
        )


app = create_app()
