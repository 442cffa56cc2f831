from __future__ import annotations

import asyncio
from datetime import date

import pytest
from sqlalchemy import create_engine, inspect

from app.database import Database
from app.errors import ConflictError
from app.models import MovieCreate, UserCreate
from app.repositories import MovieQuery, MovieRepository, UserRepository


async def _create_and_dispose(database: Database) -> None:
    await database.create_all()
    await database.dispose()


def test_create_all_builds_catalog_tables(tmp_path) -> None:
    """Schema creation should provide the movies and users tables."""

    database_path = tmp_path / "schema.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(_create_and_dispose(database))

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        tables = set(inspector.get_table_names())
        movie_columns = {column["name"] for column in inspector.get_columns("movies")}
    finally:
        inspector_engine.dispose()

    assert {"movies", "users"} <= tables
    assert {"external_id", "ratings", "watchlist_users", "favorite_users"} <= movie_columns


def test_genre_filter_matches_whole_names(database_url) -> None:
    """Genre membership must not match on substrings of other genres."""

    async def runner() -> None:
        database = Database(database_url)
        await database.create_all()
        repository = MovieRepository(database.session_factory)
        await repository.create(
            MovieCreate(external_id=1, title="Pure", genres=["Action"])
        )
        await repository.create(
            MovieCreate(external_id=2, title="Mixed", genres=["Action Comedy"])
        )
        await repository.create(
            MovieCreate(external_id=3, title="Percent", genres=["100% Drama"])
        )

        action = await repository.find(MovieQuery(genre="Action"), sort_by="title")
        assert [movie.title for movie in action] == ["Pure"]
        assert await repository.count(MovieQuery(genre="Action")) == 1
        assert await repository.count(MovieQuery(genre="100% Drama")) == 1
        assert await repository.count(MovieQuery(genre="100")) == 0
        assert await repository.count(MovieQuery(genre="action")) == 0
        assert await repository.count(MovieQuery(genre="100% drama")) == 0

        await database.dispose()

    asyncio.run(runner())


def test_year_range_is_inclusive(database_url) -> None:
    async def runner() -> None:
        database = Database(database_url)
        await database.create_all()
        repository = MovieRepository(database.session_factory)
        releases = {
            1: date(1999, 12, 31),
            2: date(2000, 1, 1),
            3: date(2000, 12, 31),
            4: date(2001, 1, 1),
            5: None,
        }
        for external_id, released in releases.items():
            await repository.create(
                MovieCreate(
                    external_id=external_id,
                    title=f"Movie {external_id}",
                    release_date=released,
                )
            )

        query = MovieQuery(released_from=date(2000, 1, 1), released_to=date(2000, 12, 31))
        found = await repository.find(query, sort_by="releaseDate", sort_order="asc")

        assert [movie.external_id for movie in found] == [2, 3]
        await database.dispose()

    asyncio.run(runner())


def test_duplicate_external_id_raises_conflict(database_url) -> None:
    async def runner() -> None:
        database = Database(database_url)
        await database.create_all()
        repository = MovieRepository(database.session_factory)
        await repository.create(MovieCreate(external_id=10, title="Original"))

        with pytest.raises(ConflictError):
            await repository.create(MovieCreate(external_id=10, title="Copy"))

        assert await repository.count(MovieQuery()) == 1
        await database.dispose()

    asyncio.run(runner())


def test_save_persists_engagement_lists(database_url) -> None:
    async def runner() -> None:
        database = Database(database_url)
        await database.create_all()
        repository = MovieRepository(database.session_factory)
        movie = await repository.create(MovieCreate(external_id=11, title="Heat"))
        assert movie.ratings == []
        assert movie.created_at is not None

        updated = movie.model_copy(
            update={"watchlist_users": ["u1"], "favorite_users": ["u2", "u3"]}
        )
        await repository.save(updated)

        reloaded = await repository.find_by_external_id(11)
        assert reloaded is not None
        assert reloaded.watchlist_users == ["u1"]
        assert reloaded.favorite_users == ["u2", "u3"]

        assert await repository.delete(movie.id) is not None
        assert await repository.find_by_id(movie.id) is None
        assert await repository.delete(movie.id) is None
        await database.dispose()

    asyncio.run(runner())


def test_user_email_is_unique(database_url) -> None:
    async def runner() -> None:
        database = Database(database_url)
        await database.create_all()
        repository = UserRepository(database.session_factory)
        await repository.create(UserCreate(email="a@example.com", name="Ann"))

        with pytest.raises(ConflictError):
            await repository.create(UserCreate(email="a@example.com", name="Other"))
        await database.dispose()

    asyncio.run(runner())


def test_sqlite_parent_directory_is_created(tmp_path) -> None:
    target = tmp_path / "data" / "nested" / "catalog.db"

    database = Database(f"sqlite+aiosqlite:///{target}")
    asyncio.run(_create_and_dispose(database))

    assert target.exists()


def test_update_fields_rejects_null_required_columns(database_url) -> None:
    async def runner() -> None:
        database = Database(database_url)
        await database.create_all()
        repository = MovieRepository(database.session_factory)
        movie = await repository.create(MovieCreate(external_id=12, title="Ronin"))

        with pytest.raises(ValueError):
            await repository.update_fields(movie.id, {"title": None})

        reloaded = await repository.find_by_id(movie.id)
        assert reloaded is not None
        assert reloaded.title == "Ronin"
        await database.dispose()

    asyncio.run(runner())
