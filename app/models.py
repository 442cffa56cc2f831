"""Pydantic models describing catalog records and their wire shapes."""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .utils import mean_rounded, parse_release_date

SortField = Literal[
    "title", "releaseDate", "popularity", "externalVoteAverage", "createdAt"
]
SortOrder = Literal["asc", "desc"]

MIN_RATING = 1
MAX_RATING = 10


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases while accepting field names."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-compatible wire representation."""

        return self.model_dump(mode="json", by_alias=True)


def _strip_optional(value: object) -> object:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def validate_rating(value: object) -> float:
    """Return ``value`` as a rating, raising ``ValueError`` if out of range."""

    if isinstance(value, bool):
        raise ValueError("Rating must be a number")
    try:
        rating = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError("Rating must be a number") from exc
    if math.isnan(rating) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return rating


def rating_summary(ratings: Iterable["RatingEntry"]) -> tuple[float, int]:
    """Return ``(averageRating, ratingsCount)`` for a rating ledger."""

    values = [entry.rating for entry in ratings]
    return mean_rounded(values), len(values)


class RatingEntry(CamelModel):
    """A single user's rating on a movie."""

    user_id: str
    rating: float = Field(ge=MIN_RATING, le=MAX_RATING)
    created_at: datetime


class Movie(CamelModel):
    """A persisted catalog entry."""

    id: str
    external_id: int = Field(gt=0)
    title: str
    overview: str | None = None
    release_date: date | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    genres: list[str] = Field(default_factory=list)
    genre_ids: list[int] = Field(default_factory=list)
    external_vote_average: float | None = None
    external_vote_count: int | None = None
    popularity: float | None = None
    runtime: int | None = None
    budget: int | None = None
    revenue: int | None = None
    original_language: str | None = None
    ratings: list[RatingEntry] = Field(default_factory=list)
    watchlist_users: list[str] = Field(default_factory=list)
    favorite_users: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MovieView(Movie):
    """A movie enriched with fields derived from its rating ledger."""

    average_rating: float = 0
    ratings_count: int = 0

    @classmethod
    def from_movie(cls, movie: Movie) -> "MovieView":
        average, count = rating_summary(movie.ratings)
        return cls(
            **movie.model_dump(),
            average_rating=average,
            ratings_count=count,
        )


class MovieCreate(CamelModel):
    """Fields accepted when creating a movie."""

    external_id: int = Field(gt=0)
    title: str = Field(min_length=1)
    overview: str | None = None
    release_date: date | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    genres: list[str] = Field(default_factory=list)
    genre_ids: list[int] = Field(default_factory=list)
    external_vote_average: float | None = None
    external_vote_count: int | None = None
    popularity: float | None = None
    runtime: int | None = None
    budget: int | None = None
    revenue: int | None = None
    original_language: str | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("release_date", mode="before")
    @classmethod
    def _parse_release_date(cls, value: object) -> object:
        if value is None or isinstance(value, (date, datetime)):
            return value
        return parse_release_date(value)


class MovieUpdate(CamelModel):
    """Fields a generic update may change."""

    title: str | None = Field(default=None, min_length=1)
    overview: str | None = None
    genres: list[str] | None = None

    @field_validator("title", "genres", mode="before")
    @classmethod
    def _reject_null(cls, value: object) -> object:
        if value is None:
            raise ValueError("Field may be omitted but not set to null")
        return value

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    def changes(self) -> dict[str, Any]:
        """Return only the fields the caller supplied."""

        return self.model_dump(exclude_unset=True)


class MovieFilter(CamelModel):
    """Filter, sort and pagination options for catalog listings."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    search: str | None = None
    genre: str | None = None
    year: int | None = Field(default=None, ge=1, le=9999)
    sort_by: SortField = "createdAt"
    sort_order: SortOrder = "desc"

    @field_validator("search", "genre", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        return _strip_optional(value)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class MoviePage(CamelModel):
    """A page of catalog results."""

    data: list[MovieView] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20
    total_pages: int = 0
    has_next: bool = False
    has_prev: bool = False

    @classmethod
    def build(
        cls, data: list[MovieView], *, total: int, page: int, limit: int
    ) -> "MoviePage":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            data=data,
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class SyncSummary(CamelModel):
    """Outcome of a bulk import from the metadata provider."""

    imported: int = 0
    skipped: int = 0
    failed_pages: list[int] = Field(default_factory=list)


class RateRequest(CamelModel):
    user_id: str = Field(min_length=1)
    rating: float

    @field_validator("rating", mode="before")
    @classmethod
    def _check_rating(cls, value: object) -> float:
        return validate_rating(value)


class MembershipRequest(CamelModel):
    user_id: str = Field(min_length=1)


class User(CamelModel):
    """A catalog user and the movies they follow."""

    id: str
    email: str
    name: str
    watchlist: list[str] = Field(default_factory=list)
    favorites: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _validate_email(value: object) -> object:
    if not isinstance(value, str):
        return value
    value = value.strip()
    local, _, domain = value.partition("@")
    if not local or not domain or " " in value:
        raise ValueError("A valid email address is required")
    return value


class UserCreate(CamelModel):
    email: str
    name: str = Field(min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def _check_email(cls, value: object) -> object:
        return _validate_email(value)


class UserUpdate(CamelModel):
    email: str | None = None
    name: str | None = Field(default=None, min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def _check_email(cls, value: object) -> object:
        if value is None:
            return None
        return _validate_email(value)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)
