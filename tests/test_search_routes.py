from __future__ import annotations

from typing import cast

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.config import Settings, settings
from app.main import register_routes
from app.models import MovieItem, PageEnvelope
from app.query import SearchQuery
from app.services.discovery import DiscoveryService, GenreCatalog, SearchOutcome
from app.services.tmdb import TMDBClient


class DummyDiscoveryService(DiscoveryService):
    """DiscoveryService stub returning canned outcomes."""

    def __init__(self, outcome: SearchOutcome | None = None) -> None:
        # Deliberately skip super().__init__ to avoid touching external systems.
        self.outcome = outcome
        self.last_query: SearchQuery | None = None

    async def search(self, query: SearchQuery) -> SearchOutcome:  # type: ignore[override]
        self.last_query = query
        assert self.outcome is not None
        return self.outcome

    async def genres(self) -> GenreCatalog:  # type: ignore[override]
        return GenreCatalog(movie=[], tv=[], degraded=True)


def build_client(service: DiscoveryService) -> TestClient:
    app = FastAPI()
    register_routes(app)
    app.state.discovery_service = service
    return TestClient(app)


def test_search_returns_envelope_with_long_cache() -> None:
    envelope = PageEnvelope(
        page=1,
        results=[MovieItem(id=603, title="The Matrix", release_date="1999-03-30")],
        total_pages=1,
        total_results=1,
    )
    service = DummyDiscoveryService(SearchOutcome(envelope))

    with build_client(service) as client:
        response = client.get(
            "/search", params={"query": "matrix", "type": "movie", "pageSize": "42"}
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["page"] == 1
    assert payload["total_pages"] == 1
    assert payload["total_results"] == 1
    assert payload["results"][0]["media_type"] == "movie"
    assert payload["results"][0]["title"] == "The Matrix"
    assert response.headers["cache-control"] == (
        f"public, max-age={settings.response_cache_seconds}"
    )
    assert service.last_query is not None
    assert service.last_query.page_size == 42


def test_degraded_search_is_still_successful_with_short_cache() -> None:
    service = DummyDiscoveryService(SearchOutcome(PageEnvelope.empty(3), degraded=True))

    with build_client(service) as client:
        response = client.get("/search", params={"query": "matrix", "page": "3"})

    assert response.status_code == 200
    assert response.json() == {
        "page": 3,
        "results": [],
        "total_pages": 0,
        "total_results": 0,
    }
    assert response.headers["cache-control"] == (
        f"public, max-age={settings.degraded_cache_seconds}"
    )


def test_non_numeric_page_is_a_bad_request() -> None:
    service = DummyDiscoveryService()

    with build_client(service) as client:
        response = client.get("/search", params={"query": "matrix", "page": "abc"})

    assert response.status_code == 400
    assert "page" in response.json()["error"]
    assert service.last_query is None


def test_page_beyond_upstream_range_is_not_a_bad_request() -> None:
    service = DummyDiscoveryService(SearchOutcome(PageEnvelope.empty(501), degraded=True))

    with build_client(service) as client:
        response = client.get("/search", params={"query": "matrix", "page": "501"})

    assert response.status_code == 200
    assert response.json()["page"] == 501
    assert service.last_query is not None
    assert service.last_query.page == 501


def test_request_without_criteria_is_rejected() -> None:
    service = DiscoveryService(
        Settings(_env_file=None), cast(TMDBClient, object())
    )

    with build_client(service) as client:
        response = client.get("/search")

    assert response.status_code == 400
    assert response.json() == {
        "error": "Provide a query, at least one filter, or a sort order"
    }


def test_genres_endpoint_uses_short_cache_when_degraded() -> None:
    with build_client(DummyDiscoveryService()) as client:
        response = client.get("/genres")

    assert response.status_code == 200
    assert response.json() == {"movie": [], "tv": [], "all": []}
    assert response.headers["cache-control"] == (
        f"public, max-age={settings.degraded_cache_seconds}"
    )


def test_healthcheck() -> None:
    with build_client(DummyDiscoveryService()) as client:
        response = client.get("/healthz")

    assert response.json() == {"status": "ok"}
