"""Client for The Movie Database (TMDB) metadata API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from ..config import Settings
from ..errors import UpstreamError
from ..models import MovieCreate
from ..utils import parse_release_date

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PopularPage:
    """A page of summary listings returned by TMDB."""

    items: list[dict[str, Any]] = field(default_factory=list)
    page: int = 1
    total_pages: int = 0
    total_results: int = 0


class TMDBClient:
    """Thin wrapper around the TMDB v3 HTTP API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        self._max_retries = settings.tmdb_max_retries

    async def list_popular(self, page: int = 1) -> PopularPage:
        """Return one page of currently popular movies."""

        payload = await self._get("/movie/popular", {"page": page})
        return self._parse_page(payload, page)

    async def get_details(self, external_id: int) -> dict[str, Any]:
        """Return the full detail record for a movie."""

        payload = await self._get(f"/movie/{external_id}")
        if "id" not in payload:
            raise UpstreamError(f"TMDB returned no details for movie {external_id}")
        return payload

    async def get_genres(self) -> list[dict[str, Any]]:
        payload = await self._get("/genre/movie/list")
        genres = payload.get("genres")
        if not isinstance(genres, list):
            raise UpstreamError("TMDB genre list response was malformed")
        return [genre for genre in genres if isinstance(genre, dict)]

    async def search_movies(self, query: str, page: int = 1) -> PopularPage:
        payload = await self._get("/search/movie", {"query": query, "page": page})
        return self._parse_page(payload, page)

    async def discover_by_genre(self, genre_id: int, page: int = 1) -> PopularPage:
        payload = await self._get(
            "/discover/movie", {"with_genres": genre_id, "page": page}
        )
        return self._parse_page(payload, page)

    async def _get(
        self, path: str, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        query = {**(params or {}), "api_key": self._settings.tmdb_api_key}
        attempt = 0
        while True:
            try:
                response = await self._client.get(path, params=query)
                break
            except httpx.HTTPError as exc:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = min(2 ** (attempt - 1), 5) * 0.5
                    logger.info(
                        "Transient error talking to TMDB (%s). Retrying %s in %.1fs",
                        exc.__class__.__name__,
                        path,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise UpstreamError(f"Failed to reach TMDB for {path}: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "TMDB request %s failed with %s: %s",
                path,
                response.status_code,
                response.text[:200],
            )
            raise UpstreamError(
                f"TMDB request {path} failed with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"TMDB returned invalid JSON for {path}") from exc
        if not isinstance(payload, dict):
            raise UpstreamError(f"TMDB returned an unexpected payload for {path}")
        return payload

    @staticmethod
    def _parse_page(payload: dict[str, Any], page: int) -> PopularPage:
        results = payload.get("results")
        if not isinstance(results, list):
            raise UpstreamError("TMDB listing response did not include results")
        return PopularPage(
            items=[item for item in results if isinstance(item, dict)],
            page=_coerce_int(payload.get("page")) or page,
            total_pages=_coerce_int(payload.get("total_pages")) or 0,
            total_results=_coerce_int(payload.get("total_results")) or 0,
        )


def movie_from_tmdb(details: Mapping[str, Any]) -> MovieCreate:
    """Map a TMDB detail record onto the catalog's creation shape."""

    raw_genres = details.get("genres") or []
    genres = [
        genre for genre in raw_genres if isinstance(genre, dict) and genre.get("name")
    ]
    genre_ids = details.get("genre_ids")
    if not isinstance(genre_ids, list):
        genre_ids = [genre["id"] for genre in genres if genre.get("id") is not None]

    return MovieCreate(
        external_id=int(details["id"]),
        title=str(details.get("title") or details.get("original_title") or ""),
        overview=details.get("overview") or None,
        release_date=parse_release_date(details.get("release_date")),
        poster_path=details.get("poster_path"),
        backdrop_path=details.get("backdrop_path"),
        genres=[str(genre["name"]) for genre in genres],
        genre_ids=[int(genre_id) for genre_id in genre_ids],
        external_vote_average=details.get("vote_average"),
        external_vote_count=details.get("vote_count"),
        popularity=details.get("popularity"),
        runtime=details.get("runtime"),
        budget=details.get("budget"),
        revenue=details.get("revenue"),
        original_language=details.get("original_language"),
    )


def _coerce_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
