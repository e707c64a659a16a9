"""Pydantic models describing catalog items and result pages."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

ResourceKind = Literal["movie", "tv"]
MediaType = Literal["movie", "tv", "person"]

RESOURCE_KINDS: tuple[ResourceKind, ...] = ("movie", "tv")


class MediaItem(BaseModel):
    """Fields shared by every movie and series result."""

    model_config = ConfigDict(extra="ignore")

    id: int
    poster_path: str | None = None
    backdrop_path: str | None = None
    popularity: float = 0.0
    vote_average: float = 0.0
    vote_count: int = 0
    original_language: str | None = None
    overview: str | None = None
    genre_ids: list[int] = Field(default_factory=list)

    @property
    def identity(self) -> tuple[str, int]:
        return (self.media_type, self.id)  # type: ignore[attr-defined]

    @property
    def sort_date(self) -> str:
        """Return the kind-appropriate ISO date used for release ordering."""

        return ""


class MovieItem(MediaItem):
    media_type: Literal["movie"] = "movie"
    title: str = ""
    original_title: str | None = None
    release_date: str | None = None

    @property
    def sort_date(self) -> str:
        return self.release_date or ""


class SeriesItem(MediaItem):
    media_type: Literal["tv"] = "tv"
    name: str = ""
    original_name: str | None = None
    first_air_date: str | None = None
    origin_country: list[str] = Field(default_factory=list)

    @property
    def sort_date(self) -> str:
        return self.first_air_date or ""


class PersonItem(BaseModel):
    """A person returned by the people search endpoint."""

    model_config = ConfigDict(extra="ignore")

    media_type: Literal["person"] = "person"
    id: int
    name: str = ""
    profile_path: str | None = None
    known_for_department: str | None = None
    popularity: float = 0.0
    vote_average: float = 0.0

    @property
    def identity(self) -> tuple[str, int]:
        return (self.media_type, self.id)

    @property
    def sort_date(self) -> str:
        return ""


CatalogItem = Annotated[
    Union[MovieItem, SeriesItem, PersonItem], Field(discriminator="media_type")
]

ITEM_MODELS: dict[str, type[BaseModel]] = {
    "movie": MovieItem,
    "tv": SeriesItem,
    "person": PersonItem,
}


class PageEnvelope(BaseModel):
    """A single page of results plus the totals reported for the whole set."""

    page: int = Field(ge=1)
    results: list[CatalogItem] = Field(default_factory=list)
    total_pages: int = Field(default=0, ge=0)
    total_results: int = Field(default=0, ge=0)

    @classmethod
    def empty(cls, page: int) -> "PageEnvelope":
        """Return the canonical degraded envelope for ``page``."""

        return cls(page=page, results=[], total_pages=0, total_results=0)


class Genre(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
