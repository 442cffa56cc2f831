"""Per-user ratings, watchlist and favorites on catalog movies."""

from __future__ import annotations

from typing import Literal

from ..errors import NotFoundError
from ..models import Movie, MovieView, RatingEntry, validate_rating
from ..repositories import MovieRepository
from ..utils import utcnow
from .catalog import MovieCatalogService

MembershipField = Literal["watchlist_users", "favorite_users"]


class EngagementService:
    """Mutate a movie's rating ledger and membership sets.

    Each operation is fetch, modify, save, invalidate with no lock around
    it; concurrent writers to the same movie race and the last save wins.
    """

    def __init__(self, repository: MovieRepository, catalog: MovieCatalogService):
        self._repository = repository
        self._catalog = catalog

    async def rate(self, movie_id: str, user_id: str, rating: float) -> MovieView:
        """Record ``user_id``'s rating, replacing any earlier one."""

        value = validate_rating(rating)
        movie = await self._load(movie_id)
        now = utcnow()
        ratings = list(movie.ratings)
        for index, entry in enumerate(ratings):
            if entry.user_id == user_id:
                ratings[index] = entry.model_copy(update={"rating": value, "created_at": now})
                break
        else:
            ratings.append(RatingEntry(user_id=user_id, rating=value, created_at=now))

        saved = await self._repository.save(movie.model_copy(update={"ratings": ratings}))
        await self._catalog.invalidate_movie(saved)
        await self._catalog.invalidate_lists()
        return MovieView.from_movie(saved)

    async def add_to_watchlist(self, movie_id: str, user_id: str) -> MovieView:
        return await self._add_member(movie_id, user_id, "watchlist_users")

    async def remove_from_watchlist(self, movie_id: str, user_id: str) -> MovieView:
        return await self._remove_member(movie_id, user_id, "watchlist_users")

    async def add_to_favorites(self, movie_id: str, user_id: str) -> MovieView:
        return await self._add_member(movie_id, user_id, "favorite_users")

    async def remove_from_favorites(self, movie_id: str, user_id: str) -> MovieView:
        return await self._remove_member(movie_id, user_id, "favorite_users")

    async def _add_member(
        self, movie_id: str, user_id: str, field: MembershipField
    ) -> MovieView:
        movie = await self._load(movie_id)
        members: list[str] = getattr(movie, field)
        if user_id in members:
            return MovieView.from_movie(movie)

        saved = await self._repository.save(
            movie.model_copy(update={field: [*members, user_id]})
        )
        await self._catalog.invalidate_movie(saved)
        return MovieView.from_movie(saved)

    async def _remove_member(
        self, movie_id: str, user_id: str, field: MembershipField
    ) -> MovieView:
        movie = await self._load(movie_id)
        members = [member for member in getattr(movie, field) if member != user_id]
        saved = await self._repository.save(movie.model_copy(update={field: members}))
        await self._catalog.invalidate_movie(saved)
        return MovieView.from_movie(saved)

    async def _load(self, movie_id: str) -> Movie:
        movie = await self._repository.find_by_id(movie_id)
        if movie is None:
            raise NotFoundError("Movie", "ID", movie_id)
        return movie
