"""Entry point for the FastAPI-powered movie catalog."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterator

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from . import __version__
from .cache import CacheConfig, MemoryCacheStore, ResponseCache
from .config import Settings, settings
from .database import Database
from .errors import NotFoundError, UpstreamError
from .models import (
    MembershipRequest,
    MovieCreate,
    MovieFilter,
    MovieUpdate,
    RateRequest,
    UserCreate,
    UserUpdate,
)
from .repositories import MovieRepository, UserRepository
from .services.catalog import MovieCatalogService
from .services.engagement import EngagementService
from .services.sync import CatalogSyncService
from .services.tmdb import TMDBClient
from .services.users import UserService

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app: FastAPI


@dataclass(slots=True)
class Services:
    """Components sharing one database, cache and TMDB connection."""

    catalog: MovieCatalogService
    engagement: EngagementService
    users: UserService
    sync: CatalogSyncService | None


@asynccontextmanager
async def open_services(app_settings: Settings) -> AsyncIterator[Services]:
    """Create the process-wide resources and tear them down on exit."""

    exit_stack = AsyncExitStack()
    database = Database.from_settings(app_settings)
    try:
        await database.create_all()
        cache_config = CacheConfig.from_settings(app_settings)
        cache = ResponseCache(
            MemoryCacheStore.from_config(cache_config),
            ttl_seconds=cache_config.ttl_seconds,
        )
        movies = MovieRepository(database.session_factory)
        catalog = MovieCatalogService(movies, cache)

        sync: CatalogSyncService | None = None
        if app_settings.tmdb_api_key:
            tmdb_http_client = await exit_stack.enter_async_context(
                httpx.AsyncClient(
                    base_url=str(app_settings.tmdb_api_url).rstrip("/"),
                    timeout=httpx.Timeout(app_settings.tmdb_timeout_seconds, connect=5.0),
                )
            )
            sync = CatalogSyncService(
                TMDBClient(app_settings, tmdb_http_client), movies, catalog
            )
        else:
            logger.warning("TMDB_API_KEY is not set; catalog sync is disabled")

        yield Services(
            catalog=catalog,
            engagement=EngagementService(movies, catalog),
            users=UserService(UserRepository(database.session_factory)),
            sync=sync,
        )
    finally:
        await exit_stack.aclose()
        await database.dispose()


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    async with open_services(settings) as services:
        fastapi_app.state.catalog_service = services.catalog
        fastapi_app.state.engagement_service = services.engagement
        fastapi_app.state.user_service = services.users
        fastapi_app.state.sync_service = services.sync
        yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie catalog synced from TMDB with ratings and watchlists",
        version=__version__,
        lifespan=lifespan,
    )
    register_routes(fastapi_app)
    return fastapi_app


def _get_state(fastapi_app: FastAPI, name: str, expected: type) -> Any:
    service = getattr(fastapi_app.state, name, None)
    if not isinstance(service, expected):
        raise RuntimeError(f"{expected.__name__} not initialised")
    return service


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Map catalog failures onto HTTP responses."""

    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UpstreamError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


def register_routes(fastapi_app: FastAPI) -> None:
    def catalog_service() -> MovieCatalogService:
        return _get_state(fastapi_app, "catalog_service", MovieCatalogService)

    def engagement_service() -> EngagementService:
        return _get_state(fastapi_app, "engagement_service", EngagementService)

    def user_service() -> UserService:
        return _get_state(fastapi_app, "user_service", UserService)

    @fastapi_app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse({"detail": jsonable_encoder(exc.errors())}, status_code=400)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/movies")
    async def list_movies(request: Request) -> JSONResponse:
        with _translate_errors():
            movie_filter = MovieFilter.model_validate(dict(request.query_params))
            page = await catalog_service().list_movies(movie_filter)
        return JSONResponse(page.to_payload())

    @fastapi_app.post("/movies", status_code=201)
    async def create_movie(request: Request) -> JSONResponse:
        payload = await _json_body(request)
        with _translate_errors():
            movie = await catalog_service().create_movie(MovieCreate.model_validate(payload))
        return JSONResponse(movie.to_payload(), status_code=201)

    @fastapi_app.post("/movies/sync")
    async def sync_movies(
        pages: int | None = Query(default=None, ge=1, le=500),
    ) -> JSONResponse:
        sync_service = getattr(fastapi_app.state, "sync_service", None)
        if not isinstance(sync_service, CatalogSyncService):
            raise HTTPException(
                status_code=503,
                detail="TMDB_API_KEY must be configured to enable catalog sync.",
            )
        with _translate_errors():
            summary = await sync_service.sync(pages or settings.sync_default_pages)
        return JSONResponse(summary.to_payload())

    @fastapi_app.get("/movies/external/{external_id}")
    async def get_movie_by_external_id(external_id: int) -> JSONResponse:
        with _translate_errors():
            movie = await catalog_service().get_movie_by_external_id(external_id)
        return JSONResponse(movie.to_payload())

    @fastapi_app.get("/movies/{movie_id}")
    async def get_movie(movie_id: str) -> JSONResponse:
        with _translate_errors():
            movie = await catalog_service().get_movie(movie_id)
        return JSONResponse(movie.to_payload())

    @fastapi_app.patch("/movies/{movie_id}")
    async def update_movie(movie_id: str, request: Request) -> JSONResponse:
        payload = await _json_body(request)
        with _translate_errors():
            movie = await catalog_service().update_movie(
                movie_id, MovieUpdate.model_validate(payload)
            )
        return JSONResponse(movie.to_payload())

    @fastapi_app.delete("/movies/{movie_id}")
    async def delete_movie(movie_id: str) -> dict[str, bool]:
        with _translate_errors():
            await catalog_service().delete_movie(movie_id)
        return {"deleted": True}

    @fastapi_app.post("/movies/{movie_id}/rate")
    async def rate_movie(movie_id: str, request: Request) -> JSONResponse:
        payload = await _json_body(request)
        with _translate_errors():
            body = RateRequest.model_validate(payload)
            movie = await engagement_service().rate(movie_id, body.user_id, body.rating)
        return JSONResponse(movie.to_payload())

    async def _membership(movie_id: str, request: Request, action: str) -> JSONResponse:
        payload = await _json_body(request)
        with _translate_errors():
            body = MembershipRequest.model_validate(payload)
            handler = getattr(engagement_service(), action)
            movie = await handler(movie_id, body.user_id)
        return JSONResponse(movie.to_payload())

    @fastapi_app.post("/movies/{movie_id}/watchlist")
    async def add_to_watchlist(movie_id: str, request: Request) -> JSONResponse:
        return await _membership(movie_id, request, "add_to_watchlist")

    @fastapi_app.delete("/movies/{movie_id}/watchlist")
    async def remove_from_watchlist(movie_id: str, request: Request) -> JSONResponse:
        return await _membership(movie_id, request, "remove_from_watchlist")

    @fastapi_app.post("/movies/{movie_id}/favorites")
    async def add_to_favorites(movie_id: str, request: Request) -> JSONResponse:
        return await _membership(movie_id, request, "add_to_favorites")

    @fastapi_app.delete("/movies/{movie_id}/favorites")
    async def remove_from_favorites(movie_id: str, request: Request) -> JSONResponse:
        return await _membership(movie_id, request, "remove_from_favorites")

    @fastapi_app.post("/users", status_code=201)
    async def create_user(request: Request) -> JSONResponse:
        payload = await _json_body(request)
        with _translate_errors():
            user = await user_service().create_user(UserCreate.model_validate(payload))
        return JSONResponse(user.to_payload(), status_code=201)

    @fastapi_app.get("/users")
    async def list_users() -> JSONResponse:
        users = await user_service().list_users()
        return JSONResponse([user.to_payload() for user in users])

    @fastapi_app.get("/users/email/{email}")
    async def get_user_by_email(email: str) -> JSONResponse:
        with _translate_errors():
            user = await user_service().get_user_by_email(email)
        return JSONResponse(user.to_payload())

    @fastapi_app.get("/users/{user_id}")
    async def get_user(user_id: str) -> JSONResponse:
        with _translate_errors():
            user = await user_service().get_user(user_id)
        return JSONResponse(user.to_payload())

    @fastapi_app.patch("/users/{user_id}")
    async def update_user(user_id: str, request: Request) -> JSONResponse:
        payload = await _json_body(request)
        with _translate_errors():
            user = await user_service().update_user(
                user_id, UserUpdate.model_validate(payload)
            )
        return JSONResponse(user.to_payload())

    @fastapi_app.delete("/users/{user_id}")
    async def delete_user(user_id: str) -> dict[str, bool]:
        with _translate_errors():
            await user_service().delete_user(user_id)
        return {"deleted": True}

    async def _user_list(user_id: str, movie_id: str, action: str) -> JSONResponse:
        with _translate_errors():
            handler = getattr(user_service(), action)
            user = await handler(user_id, movie_id)
        return JSONResponse(user.to_payload())

    @fastapi_app.post("/users/{user_id}/watchlist/{movie_id}")
    async def user_add_to_watchlist(user_id: str, movie_id: str) -> JSONResponse:
        return await _user_list(user_id, movie_id, "add_to_watchlist")

    @fastapi_app.delete("/users/{user_id}/watchlist/{movie_id}")
    async def user_remove_from_watchlist(user_id: str, movie_id: str) -> JSONResponse:
        return await _user_list(user_id, movie_id, "remove_from_watchlist")

    @fastapi_app.post("/users/{user_id}/favorites/{movie_id}")
    async def user_add_to_favorites(user_id: str, movie_id: str) -> JSONResponse:
        return await _user_list(user_id, movie_id, "add_to_favorites")

    @fastapi_app.delete("/users/{user_id}/favorites/{movie_id}")
    async def user_remove_from_favorites(user_id: str, movie_id: str) -> JSONResponse:
        return await _user_list(user_id, movie_id, "remove_from_favorites")


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
