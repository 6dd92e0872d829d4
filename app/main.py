"""Entry point for the FastAPI-powered anime catalog backend."""

from __future__ import annotations

import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from .config import settings
from .database import Database
from .errors import CatalogError, ChainExhausted, NoPlayableSource, NotFound
from .models import ResolutionResult, SearchFilters
from .services.anilibria import AniLibriaAdapter
from .services.aniliberty import AniLibertyAdapter
from .services.local_catalog import LocalCatalog
from .services.resolver import CatalogResolver

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

_STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    primary_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.primary_api_url),
            timeout=httpx.Timeout(settings.primary_timeout_seconds),
        )
    )
    legacy_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.legacy_api_url),
            timeout=httpx.Timeout(settings.legacy_timeout_seconds),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    user_agent = f"{settings.app_name} (anicatalog)"
    resolver = CatalogResolver(
        settings,
        AniLibertyAdapter(
            primary_client,
            asset_host=str(settings.primary_asset_host),
            user_agent=user_agent,
        ),
        AniLibriaAdapter(
            legacy_client,
            asset_host=str(settings.legacy_asset_host),
            user_agent=user_agent,
        ),
        LocalCatalog(database.session_factory),
    )

    app.state.resolver = resolver
    app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Anime catalog backed by the AniLiberty and AniLibria APIs",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_resolver(app: FastAPI) -> CatalogResolver:
    resolver = getattr(app.state, "resolver", None)
    if not isinstance(resolver, CatalogResolver):
        raise RuntimeError("Catalog resolver not initialised")
    return resolver


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _envelope(result: ResolutionResult[Any]) -> dict[str, Any]:
    return {
        "success": result.success,
        "source": result.source_used.value if result.source_used else None,
        "data": _dump(result.data),
    }


def _http_error(exc: CatalogError) -> HTTPException:
    if isinstance(exc, (NotFound, NoPlayableSource)):
        status_code = 404
    elif isinstance(exc, ChainExhausted):
        status_code = 502
    else:
        status_code = 500
    logger.info("Request failed with %s: %s", exc.__class__.__name__, exc)
    return HTTPException(
        status_code=status_code,
        detail={"success": False, "error": exc.user_message},
    )


def _filters_from_query(request: Request) -> SearchFilters:
    params = {
        key: value
        for key, value in request.query_params.items()
        if key in {"genre", "year", "status", "rating", "limit"} and value.strip()
    }
    try:
        return SearchFilters.model_validate(params)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400, detail=exc.errors(include_url=False, include_context=False)
        ) from exc


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/status")
    async def status() -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        sources = await resolver.check_status()
        return {
            "success": True,
            "sources": _dump(sources),
            "server": {
                "status": "running",
                "uptime": round(time.monotonic() - _STARTED_AT, 1),
            },
        }

    @fastapi_app.get("/api/home")
    async def homepage() -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        result = await resolver.resolve_homepage()
        return {
            "success": True,
            "popular": _envelope(result.popular),
            "latest": _envelope(result.latest),
        }

    @fastapi_app.get("/api/anime/popular")
    async def popular() -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        return _envelope(await resolver.resolve_slot("popular"))

    @fastapi_app.get("/api/anime/new-episodes")
    async def new_episodes() -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        return _envelope(await resolver.resolve_slot("latest"))

    async def _search_endpoint(request: Request, query: str | None) -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        filters = _filters_from_query(request)
        try:
            result = await resolver.search(query, filters)
        except CatalogError as exc:
            raise _http_error(exc) from exc
        return _envelope(result)

    @fastapi_app.get("/api/anime/search")
    async def search(request: Request, q: str | None = None) -> dict[str, Any]:
        return await _search_endpoint(request, q)

    @fastapi_app.get("/api/anime/catalog")
    async def catalog(request: Request, q: str | None = None) -> dict[str, Any]:
        return await _search_endpoint(request, q)

    @fastapi_app.get("/api/anime/genres")
    async def genres() -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        try:
            result = await resolver.resolve_genres()
        except CatalogError as exc:
            raise _http_error(exc) from exc
        return _envelope(result)

    @fastapi_app.get("/api/anime/{anime_id}")
    async def anime_details(anime_id: str) -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        try:
            result = await resolver.resolve_anime(anime_id)
        except CatalogError as exc:
            raise _http_error(exc) from exc
        return _envelope(result)

    @fastapi_app.get("/api/anime/{anime_id}/episodes/{episode_number}")
    async def anime_episode(anime_id: str, episode_number: str) -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        try:
            episode = await resolver.resolve_episode(anime_id, episode_number)
        except CatalogError as exc:
            raise _http_error(exc) from exc
        return {"success": True, "data": _dump(episode)}

    @fastapi_app.get("/api/anime/{anime_id}/episodes/{episode_number}/video")
    async def anime_video(
        anime_id: str, episode_number: str, quality: str | None = None
    ) -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        try:
            video = await resolver.resolve_episode_video(anime_id, episode_number, quality)
        except CatalogError as exc:
            raise _http_error(exc) from exc
        return {"success": True, "data": _dump(video)}

    @fastapi_app.get("/api/episode/{episode_id}")
    async def episode(episode_id: str) -> dict[str, Any]:
        resolver = get_resolver(fastapi_app)
        try:
            result = await resolver.get_episode(episode_id)
        except CatalogError as exc:
            raise _http_error(exc) from exc
        return {"success": True, "data": _dump(result)}


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
