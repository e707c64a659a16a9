"""Client for the paginated search and discover endpoints of The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import ITEM_MODELS, Genre, MediaType, PageEnvelope
from ..query import DiscoverFilters, SortKey

logger = logging.getLogger(__name__)

UpstreamMode = Literal["search", "discover"]

DISCOVER_SORT_FIELDS: dict[str, dict[SortKey, str]] = {
    "movie": {
        SortKey.POPULARITY: "popularity.desc",
        SortKey.RATING: "vote_average.desc",
        SortKey.RELEASE_DATE: "primary_release_date.desc",
    },
    "tv": {
        SortKey.POPULARITY: "popularity.desc",
        SortKey.RATING: "vote_average.desc",
        SortKey.RELEASE_DATE: "first_air_date.desc",
    },
}


class UpstreamErrorKind(str, Enum):
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    BAD_RESPONSE = "bad_response"


class UpstreamError(Exception):
    """Normalized failure of a single upstream call or of a whole join."""

    def __init__(self, kind: UpstreamErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True, slots=True)
class UpstreamPageRequest:
    """One physical page of one endpoint for one resource kind."""

    kind: MediaType
    mode: UpstreamMode
    physical_page: int = 1
    query: str | None = None
    genre_id: int | None = None
    filters: DiscoverFilters | None = None

    @property
    def endpoint(self) -> str:
        return f"/{self.mode}/{self.kind}"


class TMDBClient:
    """Client fetching single upstream pages from TMDB."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.has_tmdb_credentials:
            raise ValueError(
                "A TMDB access token or API key is required when initialising TMDBClient"
            )
        self._settings = settings
        self._client = http_client

    async def fetch(self, request: UpstreamPageRequest) -> PageEnvelope:
        """Fetch one upstream page, tagging every result with the request kind."""

        if request.mode == "search" and not request.query:
            raise ValueError("Search requests need a query")
        if request.mode == "discover" and request.kind == "person":
            raise ValueError("People cannot be discovered, only searched")

        payload = await self._get(request.endpoint, self._build_params(request))
        try:
            return self._parse_page(payload, request.kind)
        except (ValidationError, TypeError, ValueError) as exc:
            logger.warning(
                "TMDB returned an unexpected page for %s page %s: %s",
                request.endpoint,
                request.physical_page,
                exc,
            )
            raise UpstreamError(
                UpstreamErrorKind.BAD_RESPONSE, f"Malformed page from {request.endpoint}"
            ) from exc

    async def fetch_genres(self, kind: Literal["movie", "tv"]) -> list[Genre]:
        """Return the genre catalog for movies or series."""

        endpoint = f"/genre/{kind}/list"
        payload = await self._get(endpoint, {"language": self._settings.tmdb_language})
        try:
            return [Genre.model_validate(entry) for entry in payload.get("genres") or []]
        except (ValidationError, AttributeError) as exc:
            raise UpstreamError(
                UpstreamErrorKind.BAD_RESPONSE, f"Malformed genre list from {endpoint}"
            ) from exc

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.get(
                endpoint.lstrip("/"), params=self._authorise(params), headers=self._headers()
            )
        except httpx.TimeoutException as exc:
            logger.warning("TMDB request to %s timed out", endpoint)
            raise UpstreamError(UpstreamErrorKind.TIMEOUT, f"{endpoint} timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("TMDB request to %s failed: %s", endpoint, exc)
            raise UpstreamError(
                UpstreamErrorKind.UNAVAILABLE, f"{endpoint} unreachable: {exc.__class__.__name__}"
            ) from exc

        if response.status_code >= 500 or response.status_code == 429:
            logger.warning(
                "TMDB %s answered %s: %s", endpoint, response.status_code, response.text
            )
            raise UpstreamError(
                UpstreamErrorKind.UNAVAILABLE, f"{endpoint} answered {response.status_code}"
            )
        if response.status_code >= 300:
            logger.warning(
                "TMDB %s rejected the request (%s): %s",
                endpoint,
                response.status_code,
                response.text,
            )
            raise UpstreamError(
                UpstreamErrorKind.BAD_RESPONSE, f"{endpoint} answered {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON TMDB response from %s", endpoint)
            raise UpstreamError(
                UpstreamErrorKind.BAD_RESPONSE, f"{endpoint} returned non-JSON content"
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamError(
                UpstreamErrorKind.BAD_RESPONSE, f"{endpoint} returned {type(data).__name__}"
            )
        return data

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"{self._settings.app_name} (reelscout)",
        }
        if self._settings.tmdb_access_token:
            headers["Authorization"] = f"Bearer {self._settings.tmdb_access_token}"
        return headers

    def _authorise(self, params: dict[str, Any]) -> dict[str, Any]:
        if self._settings.tmdb_api_key and not self._settings.tmdb_access_token:
            return {**params, "api_key": self._settings.tmdb_api_key}
        return params

    def _build_params(self, request: UpstreamPageRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "page": request.physical_page,
            "language": self._settings.tmdb_language,
            "include_adult": "false",
        }
        if request.mode == "search":
            params["query"] = request.query
            return params

        filters = request.filters or DiscoverFilters()
        movie = request.kind == "movie"
        params["sort_by"] = DISCOVER_SORT_FIELDS[request.kind][filters.sort_by]
        if request.genre_id is not None:
            params["with_genres"] = request.genre_id
        if filters.year is not None:
            params["primary_release_year" if movie else "first_air_date_year"] = filters.year
        date_field = "primary_release_date" if movie else "first_air_date"
        if filters.year_from is not None:
            params[f"{date_field}.gte"] = f"{filters.year_from}-01-01"
        if filters.year_to is not None:
            params[f"{date_field}.lte"] = f"{filters.year_to}-12-31"
        if filters.min_rating is not None:
            params["vote_average.gte"] = filters.min_rating
        if filters.runtime_min is not None:
            params["with_runtime.gte"] = filters.runtime_min
        if filters.runtime_max is not None:
            params["with_runtime.lte"] = filters.runtime_max
        if filters.origin_country:
            params["with_origin_country"] = filters.origin_country
        if filters.watch_provider is not None:
            params["with_watch_providers"] = filters.watch_provider
            params["watch_region"] = filters.watch_region or self._settings.default_watch_region
        return params

    @staticmethod
    def _parse_page(payload: dict[str, Any], kind: MediaType) -> PageEnvelope:
        model = ITEM_MODELS[kind]
        raw_results = payload.get("results") or []
        if not isinstance(raw_results, list):
            raise TypeError("results must be a list")
        results = []
        for entry in raw_results:
            if not isinstance(entry, dict):
                raise TypeError("results entries must be objects")
            results.append(model.model_validate({**entry, "media_type": kind}))
        return PageEnvelope(
            page=int(payload.get("page") or 1),
            results=results,
            total_pages=int(payload.get("total_pages") or 0),
            total_results=int(payload.get("total_results") or 0),
        )
