"""Parsing and classification of inbound discovery requests."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping, Sequence

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .models import RESOURCE_KINDS, ResourceKind

logger = logging.getLogger(__name__)

YEAR_RANGE_RE = re.compile(r"^\s*(\d{4})\s*-\s*(\d{4})\s*$")
PAGE_SIZES = (20, 42)
DEFAULT_PAGE_SIZE = 20

RequestedType = Literal["movie", "tv", "person", "all"]


class SearchQueryError(ValueError):
    """Raised when the caller's parameters cannot select any content."""


class SortKey(str, Enum):
    POPULARITY = "popularity.desc"
    RATING = "vote_average.desc"
    RELEASE_DATE = "release_date.desc"


SORT_ALIASES: dict[str, SortKey] = {
    "popularity.desc": SortKey.POPULARITY,
    "vote_average.desc": SortKey.RATING,
    "release_date.desc": SortKey.RELEASE_DATE,
    "primary_release_date.desc": SortKey.RELEASE_DATE,
    "first_air_date.desc": SortKey.RELEASE_DATE,
}


class QueryMode(str, Enum):
    REJECT = "reject"
    PERSON_SEARCH = "person_search"
    FILTERED_DISCOVERY = "filtered_discovery"
    KEYWORD_SEARCH = "keyword_search"
    EMPTY = "empty"


@dataclass(frozen=True, slots=True)
class DiscoverFilters:
    """Discovery filters forwarded to every upstream call except the genre."""

    year: int | None = None
    year_from: int | None = None
    year_to: int | None = None
    min_rating: float | None = None
    runtime_min: int | None = None
    runtime_max: int | None = None
    origin_country: str | None = None
    watch_provider: int | None = None
    watch_region: str | None = None
    sort_by: SortKey = SortKey.POPULARITY


class SearchQuery(BaseModel):
    """Normalized view of the query parameters of a discover or search call."""

    media_type: RequestedType = Field(
        default="all", validation_alias=AliasChoices("type", "mediaType")
    )
    query: str | None = Field(
        default=None, validation_alias=AliasChoices("query", "q")
    )
    page: int = Field(default=1, ge=1)
    page_size: Literal[20, 42] = Field(
        default=DEFAULT_PAGE_SIZE, validation_alias=AliasChoices("pageSize", "page_size")
    )
    genre_ids: tuple[int, ...] = Field(
        default=(), validation_alias=AliasChoices("genre", "genres", "with_genres")
    )
    year: int | None = Field(default=None, ge=1800, le=2200)
    year_from: int | None = Field(
        default=None, ge=1800, le=2200, validation_alias=AliasChoices("minYear", "yearFrom")
    )
    year_to: int | None = Field(
        default=None, ge=1800, le=2200, validation_alias=AliasChoices("maxYear", "yearTo")
    )
    min_rating: float | None = Field(
        default=None, ge=0, le=10, validation_alias=AliasChoices("minRating", "min_rating")
    )
    runtime_min: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("runtimeMin", "runtime_min")
    )
    runtime_max: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("runtimeMax", "runtime_max")
    )
    origin_country: str | None = Field(
        default=None,
        validation_alias=AliasChoices("withOriginCountry", "originCountry"),
    )
    watch_provider: int | None = Field(
        default=None, ge=1, validation_alias=AliasChoices("watchProvider", "watch_provider")
    )
    watch_region: str | None = Field(
        default=None, validation_alias=AliasChoices("watchRegion", "watch_region")
    )
    sort_by: SortKey | None = Field(
        default=None, validation_alias=AliasChoices("sortBy", "sort_by")
    )

    @classmethod
    def from_request(cls, params: Mapping[str, Any]) -> "SearchQuery":
        """Validate raw query parameters, raising ``SearchQueryError`` on bad input."""

        try:
            return cls.model_validate(dict(params))
        except ValidationError as exc:
            raise SearchQueryError(_describe_validation_error(exc)) from exc

    @model_validator(mode="before")
    @classmethod
    def _normalize_years(cls, data: object) -> object:
        """Expand ``year=YYYY-YYYY`` into bounds; a range wins over an exact year."""

        if not isinstance(data, dict):
            return data
        payload = dict(data)
        raw_year = payload.get("year")
        if isinstance(raw_year, str):
            match = YEAR_RANGE_RE.match(raw_year)
            if match is not None:
                payload["year"] = None
                if payload.get("minYear") in (None, ""):
                    payload["minYear"] = match.group(1)
                if payload.get("maxYear") in (None, ""):
                    payload["maxYear"] = match.group(2)

        has_range = any(
            payload.get(key) not in (None, "")
            for key in ("minYear", "yearFrom", "maxYear", "yearTo")
        )
        if has_range and payload.get("year") not in (None, ""):
            logger.debug("Dropping exact year %s in favour of range", payload["year"])
            payload["year"] = None
        return payload

    @field_validator("media_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: object) -> object:
        if value is None:
            return "all"
        if isinstance(value, str):
            lowered = value.strip().lower()
            if not lowered:
                return "all"
            if lowered == "series":
                return "tv"
            if lowered not in {"movie", "tv", "person", "all"}:
                raise ValueError("type must be one of movie, tv, person or all")
            return lowered
        return value

    @field_validator("query", "origin_country", "watch_region", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("origin_country", "watch_region")
    @classmethod
    def _upper_country(cls, value: str | None) -> str | None:
        return value.upper() if value else value

    @field_validator("page", mode="before")
    @classmethod
    def _parse_page(cls, value: object) -> object:
        if value is None or value == "":
            return 1
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except (TypeError, ValueError) as exc:
            raise ValueError("page must be an integer") from exc

    @field_validator("page_size", mode="before")
    @classmethod
    def _normalize_page_size(cls, value: object) -> int:
        try:
            size = int(str(value).strip())
        except (TypeError, ValueError):
            return DEFAULT_PAGE_SIZE
        return size if size in PAGE_SIZES else DEFAULT_PAGE_SIZE

    @field_validator("genre_ids", mode="before")
    @classmethod
    def _parse_genres(cls, value: object) -> object:
        if value is None or value == "":
            return ()
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Sequence):
            raw_values = [str(part).strip() for part in value]
        else:
            raise ValueError("genre must be a string or a sequence of ids")

        cleaned: list[int] = []
        for entry in raw_values:
            if not entry:
                continue
            try:
                genre_id = int(entry)
            except ValueError as exc:
                raise ValueError("genre must be a comma separated list of integers") from exc
            if genre_id not in cleaned:
                cleaned.append(genre_id)
        return tuple(cleaned)

    @field_validator(
        "year",
        "year_from",
        "year_to",
        "runtime_min",
        "runtime_max",
        "watch_provider",
        mode="before",
    )
    @classmethod
    def _parse_optional_int(cls, value: object) -> object:
        if value is None or value == "":
            return None
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except (TypeError, ValueError) as exc:
            raise ValueError("Value must be an integer") from exc

    @field_validator("min_rating", mode="before")
    @classmethod
    def _parse_optional_float(cls, value: object) -> object:
        if value is None or value == "":
            return None
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return float(str(value).strip())
        except (TypeError, ValueError) as exc:
            raise ValueError("Value must be a number") from exc

    @field_validator("sort_by", mode="before")
    @classmethod
    def _parse_sort(cls, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, SortKey):
            return value
        lowered = str(value).strip().lower()
        if not lowered:
            return None
        try:
            return SORT_ALIASES[lowered]
        except KeyError as exc:
            raise ValueError(f"Unsupported sortBy value: {value}") from exc

    @model_validator(mode="after")
    def _check_ranges(self) -> "SearchQuery":
        if self.year_from is not None and self.year_to is not None:
            if self.year_from > self.year_to:
                raise ValueError("year range start must not be after its end")
        if self.runtime_min is not None and self.runtime_max is not None:
            if self.runtime_min > self.runtime_max:
                raise ValueError("runtimeMin must not exceed runtimeMax")
        return self

    @property
    def effective_sort(self) -> SortKey:
        return self.sort_by or SortKey.POPULARITY

    @property
    def has_explicit_sort(self) -> bool:
        """Return whether the caller asked for something other than the default order."""

        return self.sort_by is not None and self.sort_by is not SortKey.POPULARITY

    @property
    def has_filters(self) -> bool:
        return any(
            value is not None
            for value in (
                self.year,
                self.year_from,
                self.year_to,
                self.min_rating,
                self.runtime_min,
                self.runtime_max,
                self.origin_country,
                self.watch_provider,
            )
        ) or bool(self.genre_ids)

    @property
    def target_kinds(self) -> tuple[ResourceKind, ...]:
        if self.media_type == "movie":
            return ("movie",)
        if self.media_type == "tv":
            return ("tv",)
        if self.media_type == "all":
            return RESOURCE_KINDS
        return ()

    def discover_filters(self, *, default_region: str = "US") -> DiscoverFilters:
        return DiscoverFilters(
            year=self.year,
            year_from=self.year_from,
            year_to=self.year_to,
            min_rating=self.min_rating,
            runtime_min=self.runtime_min,
            runtime_max=self.runtime_max,
            origin_country=self.origin_country,
            watch_provider=self.watch_provider,
            watch_region=self.watch_region or default_region,
            sort_by=self.effective_sort,
        )


def classify(query: SearchQuery) -> QueryMode:
    """Decide how a request should be answered."""

    if query.media_type == "person":
        if query.query:
            if query.has_filters:
                logger.debug("Ignoring filters for person search %r", query.query)
            return QueryMode.PERSON_SEARCH
        return QueryMode.REJECT

    if not query.query and not query.has_filters and not query.has_explicit_sort:
        return QueryMode.REJECT
    if query.has_filters:
        return QueryMode.FILTERED_DISCOVERY
    if query.query:
        return QueryMode.KEYWORD_SEARCH
    if query.has_explicit_sort:
        return QueryMode.FILTERED_DISCOVERY
    return QueryMode.EMPTY


def rejection_reason(query: SearchQuery) -> str:
    if query.media_type == "person":
        return "A query is required to search for people"
    return "Provide a query, at least one filter, or a sort order"


def _describe_validation_error(exc: ValidationError) -> str:
    messages: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "__root__")
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request parameters"
