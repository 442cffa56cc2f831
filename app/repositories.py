"""Repository interface over the catalog tables.

The services treat these classes as a document store: every method opens
its own session, so independent reads may run concurrently and every write
is committed before it returns.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import MovieRecord, UserRecord
from .errors import ConflictError, NotFoundError
from .models import Movie, MovieCreate, MovieFilter, SortField, SortOrder, User, UserCreate
from .utils import escape_like

SORT_COLUMNS = {
    "title": MovieRecord.title,
    "releaseDate": MovieRecord.release_date,
    "popularity": MovieRecord.popularity,
    "externalVoteAverage": MovieRecord.external_vote_average,
    "createdAt": MovieRecord.created_at,
}

MUTABLE_MOVIE_FIELDS = ("title", "overview", "genres")


@dataclass(slots=True)
class MovieQuery:
    """Store-level selection criteria derived from a listing filter."""

    search: str | None = None
    genre: str | None = None
    released_from: date | None = None
    released_to: date | None = None

    @classmethod
    def from_filter(cls, movie_filter: MovieFilter) -> "MovieQuery":
        released_from = released_to = None
        if movie_filter.year is not None:
            released_from = date(movie_filter.year, 1, 1)
            released_to = date(movie_filter.year, 12, 31)
        return cls(
            search=movie_filter.search,
            genre=movie_filter.genre,
            released_from=released_from,
            released_to=released_to,
        )

    def clauses(self) -> list[Any]:
        """Return SQLAlchemy criteria matching this query."""

        criteria: list[Any] = []
        if self.search:
            pattern = f"%{escape_like(self.search)}%"
            criteria.append(
                or_(
                    MovieRecord.title.ilike(pattern, escape="\\"),
                    MovieRecord.overview.ilike(pattern, escape="\\"),
                )
            )
        if self.genre:
            # Genres are stored as a JSON array; match the encoded element
            # case-sensitively, which LIKE does not do on SQLite.
            encoded = json.dumps(self.genre)
            criteria.append(func.instr(cast(MovieRecord.genres, String), encoded) > 0)
        if self.released_from is not None:
            criteria.append(MovieRecord.release_date >= self.released_from)
        if self.released_to is not None:
            criteria.append(MovieRecord.release_date <= self.released_to)
        return criteria


def _record_values(record: Any) -> dict[str, Any]:
    return {column.key: getattr(record, column.key) for column in record.__table__.columns}


def _movie_from_record(record: MovieRecord) -> Movie:
    return Movie.model_validate(_record_values(record))


def _user_from_record(record: UserRecord) -> User:
    return User.model_validate(_record_values(record))


class MovieRepository:
    """Persistence operations for catalog movies."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_id(self, movie_id: str) -> Movie | None:
        async with self._session_factory() as session:
            record = await session.get(MovieRecord, movie_id)
            return _movie_from_record(record) if record is not None else None

    async def find_by_external_id(self, external_id: int) -> Movie | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MovieRecord).where(MovieRecord.external_id == external_id)
            )
            record = result.scalar_one_or_none()
            return _movie_from_record(record) if record is not None else None

    async def find(
        self,
        query: MovieQuery,
        *,
        sort_by: SortField = "createdAt",
        sort_order: SortOrder = "desc",
        skip: int = 0,
        limit: int = 20,
    ) -> list[Movie]:
        column = SORT_COLUMNS[sort_by]
        ordering = column.asc() if sort_order == "asc" else column.desc()
        statement = (
            select(MovieRecord)
            .where(*query.clauses())
            .order_by(ordering, MovieRecord.id.asc())
            .offset(skip)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [_movie_from_record(record) for record in result.scalars()]

    async def count(self, query: MovieQuery) -> int:
        statement = select(func.count()).select_from(MovieRecord).where(*query.clauses())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return int(result.scalar_one())

    async def create(self, data: MovieCreate) -> Movie:
        """Insert a new movie with an empty engagement ledger."""

        record = MovieRecord(
            **data.model_dump(),
            ratings=[],
            watchlist_users=[],
            favorite_users=[],
        )
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(
                    f"Movie with external id {data.external_id} already exists"
                ) from exc
            return _movie_from_record(record)

    async def save(self, movie: Movie) -> Movie:
        """Persist the mutable fields and engagement data of ``movie``."""

        async with self._session_factory() as session:
            record = await session.get(MovieRecord, movie.id)
            if record is None:
                raise NotFoundError("Movie", "ID", movie.id)
            for field in MUTABLE_MOVIE_FIELDS:
                setattr(record, field, getattr(movie, field))
            record.ratings = [entry.model_dump(mode="json") for entry in movie.ratings]
            record.watchlist_users = list(movie.watchlist_users)
            record.favorite_users = list(movie.favorite_users)
            await session.commit()
            return _movie_from_record(record)

    async def update_fields(self, movie_id: str, changes: dict[str, Any]) -> Movie | None:
        """Apply a partial update and return the new state, or ``None``."""

        async with self._session_factory() as session:
            record = await session.get(MovieRecord, movie_id)
            if record is None:
                return None
            for field, value in changes.items():
                if field not in MUTABLE_MOVIE_FIELDS:
                    raise ValueError(f"Field {field!r} cannot be updated")
                setattr(record, field, value)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValueError(f"Movie {movie_id} update rejected by the store") from exc
            return _movie_from_record(record)

    async def delete(self, movie_id: str) -> Movie | None:
        """Delete a movie and return its last state, or ``None``."""

        async with self._session_factory() as session:
            record = await session.get(MovieRecord, movie_id)
            if record is None:
                return None
            movie = _movie_from_record(record)
            await session.delete(record)
            await session.commit()
            return movie


class UserRepository:
    """Persistence operations for catalog users."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_all(self) -> list[User]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserRecord).order_by(UserRecord.created_at, UserRecord.id)
            )
            return [_user_from_record(record) for record in result.scalars()]

    async def find_by_id(self, user_id: str) -> User | None:
        async with self._session_factory() as session:
            record = await session.get(UserRecord, user_id)
            return _user_from_record(record) if record is not None else None

    async def find_by_email(self, email: str) -> User | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserRecord).where(UserRecord.email == email)
            )
            record = result.scalar_one_or_none()
            return _user_from_record(record) if record is not None else None

    async def create(self, data: UserCreate) -> User:
        record = UserRecord(**data.model_dump(), watchlist=[], favorites=[])
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError("User with this email already exists") from exc
            return _user_from_record(record)

    async def save(self, user: User) -> User:
        async with self._session_factory() as session:
            record = await session.get(UserRecord, user.id)
            if record is None:
                raise NotFoundError("User", "ID", user.id)
            record.email = user.email
            record.name = user.name
            record.watchlist = list(user.watchlist)
            record.favorites = list(user.favorites)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError("User with this email already exists") from exc
            return _user_from_record(record)

    async def delete(self, user_id: str) -> User | None:
        async with self._session_factory() as session:
            record = await session.get(UserRecord, user_id)
            if record is None:
                return None
            user = _user_from_record(record)
            await session.delete(record)
            await session.commit()
            return user
