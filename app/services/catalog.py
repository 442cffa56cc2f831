"""Cache-coherent queries and structural mutations over the movie catalog."""

from __future__ import annotations

import asyncio
import logging

from ..cache import ResponseCache, external_key, list_key, movie_key
from ..errors import ConflictError, NotFoundError
from ..models import Movie, MovieCreate, MovieFilter, MoviePage, MovieUpdate, MovieView
from ..repositories import MovieQuery, MovieRepository

logger = logging.getLogger(__name__)


class MovieCatalogService:
    """Serve catalog reads through the cache and keep it coherent on writes.

    Single-movie entries are invalidated immediately on every mutation.
    Listings share one generation token, and structural mutations rotate
    it, so a listing never outlives the mutation that made it stale.
    """

    def __init__(self, repository: MovieRepository, cache: ResponseCache):
        self._repository = repository
        self._cache = cache

    @property
    def repository(self) -> MovieRepository:
        return self._repository

    async def list_movies(self, movie_filter: MovieFilter | None = None) -> MoviePage:
        """Return one page of movies matching ``movie_filter``."""

        movie_filter = movie_filter or MovieFilter()
        generation = await self._cache.list_generation()
        cache_key = list_key(movie_filter, generation) if generation else None
        if cache_key is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                return MoviePage.model_validate(cached)

        query = MovieQuery.from_filter(movie_filter)
        movies, total = await asyncio.gather(
            self._repository.find(
                query,
                sort_by=movie_filter.sort_by,
                sort_order=movie_filter.sort_order,
                skip=movie_filter.skip,
                limit=movie_filter.limit,
            ),
            self._repository.count(query),
        )
        page = MoviePage.build(
            [MovieView.from_movie(movie) for movie in movies],
            total=total,
            page=movie_filter.page,
            limit=movie_filter.limit,
        )
        if cache_key is not None:
            await self._cache.set(cache_key, page.to_payload())
        return page

    async def get_movie(self, movie_id: str) -> MovieView:
        cache_key = movie_key(movie_id)
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return MovieView.model_validate(cached)

        movie = await self._repository.find_by_id(movie_id)
        if movie is None:
            raise NotFoundError("Movie", "ID", movie_id)
        return await self._cache_view(cache_key, movie)

    async def get_movie_by_external_id(self, external_id: int) -> MovieView:
        cache_key = external_key(external_id)
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return MovieView.model_validate(cached)

        movie = await self._repository.find_by_external_id(external_id)
        if movie is None:
            raise NotFoundError("Movie", "external ID", external_id)
        return await self._cache_view(cache_key, movie)

    async def create_movie(self, data: MovieCreate) -> MovieView:
        """Create a movie, rejecting duplicate external ids."""

        if await self._repository.find_by_external_id(data.external_id) is not None:
            raise ConflictError(
                f"Movie with external id {data.external_id} already exists"
            )
        movie = await self._repository.create(data)
        await self.invalidate_lists()
        logger.info("Created movie %s (external id %s)", movie.id, movie.external_id)
        return MovieView.from_movie(movie)

    async def update_movie(self, movie_id: str, update: MovieUpdate) -> MovieView:
        movie = await self._repository.update_fields(movie_id, update.changes())
        if movie is None:
            raise NotFoundError("Movie", "ID", movie_id)
        await self.invalidate_movie(movie)
        await self.invalidate_lists()
        return MovieView.from_movie(movie)

    async def delete_movie(self, movie_id: str) -> None:
        movie = await self._repository.delete(movie_id)
        if movie is None:
            raise NotFoundError("Movie", "ID", movie_id)
        await self.invalidate_movie(movie)
        await self.invalidate_lists()
        logger.info("Deleted movie %s (external id %s)", movie.id, movie.external_id)

    async def invalidate_movie(self, movie: Movie) -> None:
        """Drop the single-movie cache entries for ``movie``."""

        await self._cache.invalidate_movie(movie.id, movie.external_id)

    async def invalidate_lists(self) -> None:
        """Drop every cached listing."""

        await self._cache.invalidate_lists()

    async def _cache_view(self, cache_key: str, movie: Movie) -> MovieView:
        view = MovieView.from_movie(movie)
        await self._cache.set(cache_key, view.to_payload())
        return view
