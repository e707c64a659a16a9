"""Aggregates TMDB search and discover pages into caller-sized result pages."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Sequence

from ..config import Settings
from ..models import Genre, PageEnvelope, ResourceKind
from ..query import QueryMode, SearchQuery, SearchQueryError, classify, rejection_reason
from .aggregation import (
    MergeStrategy,
    count_pages,
    deduplicate,
    gather_all,
    merge,
    physical_pages,
    slice_page,
    sort_items,
    with_deadline,
)
from .tmdb import TMDBClient, UpstreamError, UpstreamPageRequest

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SearchOutcome:
    """Assembled page plus whether it is the degraded fallback."""

    envelope: PageEnvelope
    degraded: bool = False

    def to_payload(self) -> dict[str, Any]:
        return self.envelope.model_dump(mode="json")


@dataclass(slots=True)
class GenreCatalog:
    movie: list[Genre]
    tv: list[Genre]
    degraded: bool = False

    @property
    def combined(self) -> list[Genre]:
        merged: dict[int, Genre] = {}
        for genre in [*self.movie, *self.tv]:
            merged.setdefault(genre.id, genre)
        return sorted(merged.values(), key=lambda genre: genre.name.casefold())

    def to_payload(self) -> dict[str, Any]:
        return {
            "movie": [genre.model_dump() for genre in self.movie],
            "tv": [genre.model_dump() for genre in self.tv],
            "all": [genre.model_dump() for genre in self.combined],
        }


class DiscoveryService:
    """Turns one caller request into a join of upstream page fetches."""

    def __init__(self, settings: Settings, tmdb: TMDBClient):
        self._settings = settings
        self._tmdb = tmdb

    async def search(self, query: SearchQuery) -> SearchOutcome:
        """Answer a discover or search request.

        Raises ``SearchQueryError`` when the request cannot select anything.
        Upstream failures never propagate; they produce an empty page instead.
        """

        mode = classify(query)
        logger.debug("Classified %s as %s", query, mode.value)
        if mode is QueryMode.REJECT:
            raise SearchQueryError(rejection_reason(query))
        if mode is QueryMode.EMPTY:
            return SearchOutcome(PageEnvelope.empty(query.page), degraded=True)

        try:
            envelope = await with_deadline(
                self._settings.request_deadline_seconds, self._collect(query, mode)
            )
        except UpstreamError as exc:
            logger.warning(
                "Serving empty page %s for %s request: %s", query.page, mode.value, exc
            )
            return SearchOutcome(PageEnvelope.empty(query.page), degraded=True)
        return SearchOutcome(envelope)

    async def genres(self) -> GenreCatalog:
        """Return movie and series genre lists, or empty lists when TMDB fails."""

        try:
            movie, tv = await with_deadline(
                self._settings.request_deadline_seconds,
                gather_all([self._tmdb.fetch_genres("movie"), self._tmdb.fetch_genres("tv")]),
            )
        except UpstreamError as exc:
            logger.warning("Serving empty genre lists: %s", exc)
            return GenreCatalog(movie=[], tv=[], degraded=True)
        return GenreCatalog(movie=movie, tv=tv)

    async def _collect(self, query: SearchQuery, mode: QueryMode) -> PageEnvelope:
        if mode is QueryMode.FILTERED_DISCOVERY and len(query.genre_ids) > 1:
            return await self._fan_out(query)
        if mode is QueryMode.PERSON_SEARCH:
            kinds: tuple[Any, ...] = ("person",)
        else:
            kinds = query.target_kinds
        if query.page_size > self._settings.upstream_page_size:
            return await self._stitch(query, mode, kinds)
        return await self._single_pages(query, mode, kinds)

    async def _fan_out(self, query: SearchQuery) -> PageEnvelope:
        """OR several genres together by sampling page one of each."""

        requests = [
            self._request(query, QueryMode.FILTERED_DISCOVERY, kind, 1, genre_id=genre_id)
            for kind in query.target_kinds
            for genre_id in query.genre_ids
        ]
        pages = await gather_all(self._tmdb.fetch(request) for request in requests)

        combined = [item for page in pages for item in page.results]
        # Rank before dropping repeats so the best-scored copy of an item survives.
        ordered = deduplicate(sort_items(combined, query.sort_by))
        return PageEnvelope(
            page=query.page,
            results=slice_page(ordered, query.page, query.page_size),
            total_pages=count_pages(len(ordered), query.page_size),
            total_results=len(ordered),
        )

    async def _stitch(
        self, query: SearchQuery, mode: QueryMode, kinds: Sequence[Any]
    ) -> PageEnvelope:
        """Build one large logical page out of consecutive upstream pages."""

        factor = math.ceil(query.page_size / self._settings.upstream_page_size)
        numbers = physical_pages(query.page, factor)
        requests = [
            self._request(query, mode, kind, number) for kind in kinds for number in numbers
        ]
        pages = await gather_all(self._tmdb.fetch(request) for request in requests)

        per_kind: list[list[Any]] = []
        total_results = 0
        for offset in range(0, len(pages), len(numbers)):
            kind_pages = pages[offset : offset + len(numbers)]
            total_results += kind_pages[0].total_results
            per_kind.append([item for page in kind_pages for item in page.results])

        combined = per_kind[0] if per_kind else []
        for other in per_kind[1:]:
            combined = merge(combined, other, MergeStrategy.ALTERNATE)
        results = deduplicate(combined)[: query.page_size]
        return PageEnvelope(
            page=query.page,
            results=results,
            total_pages=count_pages(total_results, query.page_size),
            total_results=total_results,
        )

    async def _single_pages(
        self, query: SearchQuery, mode: QueryMode, kinds: Sequence[Any]
    ) -> PageEnvelope:
        """Map the logical page onto the same upstream page of each kind."""

        requests = [self._request(query, mode, kind, query.page) for kind in kinds]
        pages = await gather_all(self._tmdb.fetch(request) for request in requests)
        if len(pages) == 1:
            page = pages[0]
            return PageEnvelope(
                page=query.page,
                results=page.results,
                total_pages=page.total_pages,
                total_results=page.total_results,
            )

        combined: list[Any] = []
        for page in pages:
            combined = merge(combined, page.results, MergeStrategy.CONCAT)
        return PageEnvelope(
            page=query.page,
            results=deduplicate(combined),
            total_pages=max(page.total_pages for page in pages),
            total_results=sum(page.total_results for page in pages),
        )

    def _request(
        self,
        query: SearchQuery,
        mode: QueryMode,
        kind: ResourceKind | str,
        physical_page: int,
        *,
        genre_id: int | None = None,
    ) -> UpstreamPageRequest:
        if mode in (QueryMode.KEYWORD_SEARCH, QueryMode.PERSON_SEARCH):
            return UpstreamPageRequest(
                kind=kind,  # type: ignore[arg-type]
                mode="search",
                physical_page=physical_page,
                query=query.query,
            )
        if genre_id is None and query.genre_ids:
            genre_id = query.genre_ids[0]
        return UpstreamPageRequest(
            kind=kind,  # type: ignore[arg-type]
            mode="discover",
            physical_page=physical_page,
            genre_id=genre_id,
            filters=query.discover_filters(
                default_region=self._settings.default_watch_region
            ),
        )
