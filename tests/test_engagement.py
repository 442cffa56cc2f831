"""Ratings and membership sets on catalog movies."""

from __future__ import annotations

import pytest

from app.cache import MemoryCacheStore, ResponseCache
from app.database import Database
from app.errors import NotFoundError
from app.models import MovieCreate, MovieFilter
from app.repositories import MovieRepository
from app.services.catalog import MovieCatalogService
from app.services.engagement import EngagementService


class SpyMovieRepository(MovieRepository):
    def __init__(self, session_factory) -> None:
        super().__init__(session_factory)
        self.saves = 0

    async def save(self, movie):
        self.saves += 1
        return await super().save(movie)


@pytest.fixture
async def engagement(anyio_backend, database_url):
    database = Database(database_url)
    await database.create_all()
    repository = SpyMovieRepository(database.session_factory)
    catalog = MovieCatalogService(repository, ResponseCache(MemoryCacheStore()))
    movie = await catalog.create_movie(
        MovieCreate(external_id=550, title="Fight Club", genres=["Drama"])
    )
    yield EngagementService(repository, catalog), catalog, repository, movie.id
    await database.dispose()


@pytest.mark.anyio("asyncio")
async def test_rating_is_one_entry_per_user(engagement) -> None:
    service, _, _, movie_id = engagement

    await service.rate(movie_id, "u1", 8)
    await service.rate(movie_id, "u2", 9)
    view = await service.rate(movie_id, "u3", 10)
    assert view.average_rating == 9.0
    assert view.ratings_count == 3

    again = await service.rate(movie_id, "u1", 8)
    assert again.ratings_count == 3

    changed = await service.rate(movie_id, "u1", 5)
    assert changed.ratings_count == 3
    assert [entry.rating for entry in changed.ratings if entry.user_id == "u1"] == [5.0]
    assert changed.average_rating == 8.0


@pytest.mark.anyio("asyncio")
async def test_rating_outside_range_is_rejected(engagement) -> None:
    service, _, repository, movie_id = engagement

    for invalid in (0, 11, "ten"):
        with pytest.raises(ValueError):
            await service.rate(movie_id, "u1", invalid)
    assert repository.saves == 0


@pytest.mark.anyio("asyncio")
async def test_repeated_add_does_not_save_twice(engagement) -> None:
    service, _, repository, movie_id = engagement

    first = await service.add_to_watchlist(movie_id, "u1")
    second = await service.add_to_watchlist(movie_id, "u1")

    assert first.watchlist_users == ["u1"]
    assert second.watchlist_users == ["u1"]
    assert repository.saves == 1


@pytest.mark.anyio("asyncio")
async def test_removing_absent_member_succeeds(engagement) -> None:
    service, _, _, movie_id = engagement
    await service.add_to_favorites(movie_id, "u1")

    view = await service.remove_from_favorites(movie_id, "someone-else")
    assert view.favorite_users == ["u1"]

    view = await service.remove_from_favorites(movie_id, "u1")
    assert view.favorite_users == []

    view = await service.remove_from_watchlist(movie_id, "u1")
    assert view.watchlist_users == []


@pytest.mark.anyio("asyncio")
async def test_reads_after_mutation_are_fresh(engagement) -> None:
    service, catalog, _, movie_id = engagement

    cached = await catalog.get_movie(movie_id)
    await catalog.get_movie_by_external_id(550)
    assert cached.watchlist_users == []

    await service.add_to_watchlist(movie_id, "u1")
    await service.rate(movie_id, "u1", 7)

    by_id = await catalog.get_movie(movie_id)
    by_external = await catalog.get_movie_by_external_id(550)
    assert by_id.watchlist_users == ["u1"]
    assert by_id.average_rating == 7.0
    assert by_external.ratings_count == 1


@pytest.mark.anyio("asyncio")
async def test_membership_changes_keep_listing_entry(engagement) -> None:
    service, catalog, _, movie_id = engagement

    await service.add_to_favorites(movie_id, "u1")
    page = await catalog.list_movies(MovieFilter(genre="Drama"))

    assert page.total == 1
    assert page.data[0].id == movie_id


@pytest.mark.anyio("asyncio")
async def test_missing_movie_raises_not_found(engagement) -> None:
    service, _, _, _ = engagement

    with pytest.raises(NotFoundError):
        await service.rate("missing", "u1", 5)
    with pytest.raises(NotFoundError):
        await service.add_to_watchlist("missing", "u1")
    with pytest.raises(NotFoundError):
        await service.remove_from_favorites("missing", "u1")


class CountingCatalog(MovieCatalogService):
    def __init__(self, repository, cache) -> None:
        super().__init__(repository, cache)
        self.movie_invalidations = 0
        self.list_invalidations = 0

    async def invalidate_movie(self, movie) -> None:
        self.movie_invalidations += 1
        await super().invalidate_movie(movie)

    async def invalidate_lists(self) -> None:
        self.list_invalidations += 1
        await super().invalidate_lists()


@pytest.fixture
async def counted(anyio_backend, database_url):
    database = Database(database_url)
    await database.create_all()
    repository = MovieRepository(database.session_factory)
    catalog = CountingCatalog(repository, ResponseCache(MemoryCacheStore()))
    movie = await catalog.create_movie(MovieCreate(external_id=603, title="The Matrix"))
    catalog.movie_invalidations = 0
    catalog.list_invalidations = 0
    yield EngagementService(repository, catalog), catalog, movie.id
    await database.dispose()


@pytest.mark.anyio("asyncio")
async def test_duplicate_add_leaves_cache_untouched(counted) -> None:
    service, catalog, movie_id = counted

    await service.add_to_favorites(movie_id, "u1")
    assert catalog.movie_invalidations == 1

    await service.add_to_favorites(movie_id, "u1")
    await service.add_to_watchlist(movie_id, "u2")
    await service.add_to_watchlist(movie_id, "u2")

    assert catalog.movie_invalidations == 2
    assert catalog.list_invalidations == 0


@pytest.mark.anyio("asyncio")
async def test_rating_refreshes_cached_listing(counted) -> None:
    service, catalog, movie_id = counted

    before = await catalog.list_movies(MovieFilter())
    assert before.data[0].average_rating == 0

    await service.rate(movie_id, "u1", 9)

    after = await catalog.list_movies(MovieFilter())
    assert after.data[0].average_rating == 9.0
    assert after.data[0].ratings_count == 1
    assert catalog.list_invalidations == 1
