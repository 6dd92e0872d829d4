"""Shared plumbing for the AniLiberty/AniLibria upstream adapters."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Mapping

import httpx

from ..errors import (
    MalformedPayload,
    NetworkError,
    SourceError,
    UpstreamError,
    UpstreamTimeout,
)
from ..models import CanonicalAnime, CanonicalEpisode, SearchFilters, SourceKind, SourceStatus

logger = logging.getLogger(__name__)


class UpstreamAdapter(ABC):
    """Base class for one upstream API generation.

    Every public ``fetch_*`` coroutine issues exactly one HTTP request through
    the injected client and either returns the parsed raw payload or raises a
    :class:`~app.errors.SourceError` subclass. Adapters never retry.
    """

    name = "upstream"
    kind: SourceKind
    status_path = "/"
    status_params: Mapping[str, Any] = {}

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        asset_host: str,
        user_agent: str = "AniCatalog",
    ) -> None:
        self._client = http_client
        self._asset_host = asset_host.rstrip("/")
        self._headers = {"Accept": "application/json", "User-Agent": user_agent}

    async def _get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        """Perform one GET request and return the decoded JSON body."""

        try:
            response = await self._client.get(
                path, params=dict(params or {}), headers=self._headers
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(self.name, f"timed out requesting {path}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(
                self.name, f"{exc.__class__.__name__} requesting {path}: {exc}"
            ) from exc

        if response.status_code >= 400:
            raise UpstreamError(
                self.name, response.status_code, self._error_message(response)
            )

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedPayload(self.name, f"non-JSON body from {path}") from exc

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Flatten the upstream's own error list into one readable string."""

        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, Mapping):
            errors = data.get("errors")
            messages: list[str] = []
            if isinstance(errors, Mapping):
                for value in errors.values():
                    if isinstance(value, (list, tuple)):
                        messages.extend(str(item) for item in value)
                    elif value is not None:
                        messages.append(str(value))
            elif isinstance(errors, (list, tuple)):
                messages.extend(str(item) for item in errors)
            if messages:
                return ", ".join(messages)

            error = data.get("error")
            if isinstance(error, Mapping):
                error = error.get("message") or error.get("description")
            for candidate in (data.get("message"), error):
                if candidate:
                    return str(candidate)

        return response.reason_phrase or f"HTTP {response.status_code}"

    def _list_payload(self, payload: Any, path: str, keys: tuple[str, ...] = ("data",)) -> list[Any]:
        """Unwrap a bare list or a list stored under one of ``keys``."""

        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            for key in keys:
                if isinstance(payload.get(key), list):
                    return payload[key]
        raise MalformedPayload(self.name, f"expected a list from {path}")

    def _records(self, items: Any, path: str) -> list[dict[str, Any]]:
        if not isinstance(items, list):
            raise MalformedPayload(self.name, f"expected a list of records from {path}")
        return [item for item in items if isinstance(item, dict)]

    @abstractmethod
    def _parse_collection(self, payload: Any, path: str) -> list[dict[str, Any]]:
        """Strictly unwrap a listing envelope into raw records."""

    @abstractmethod
    def _parse_entity(self, payload: Any, path: str) -> dict[str, Any] | None:
        """Strictly unwrap a single-record envelope; ``None`` means absent."""

    @abstractmethod
    def to_anime(self, raw: Any) -> CanonicalAnime | None:
        ...

    @abstractmethod
    def to_episode(self, raw: Any) -> CanonicalEpisode | None:
        ...

    @abstractmethod
    def to_episodes(self, release: Any) -> list[CanonicalEpisode]:
        ...

    @abstractmethod
    async def fetch_popular(self, count: int) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def fetch_latest(self, count: int) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def fetch_search(
        self, query: str, filters: SearchFilters, *, limit: int
    ) -> list[dict[str, Any]]:
        """Search by text; a blank ``query`` browses by ``filters`` alone."""

    @abstractmethod
    async def fetch_release(
        self, id_or_alias: str, *, include_episodes: bool = False
    ) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def fetch_release_episodes(self, id_or_alias: str) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def fetch_episode(self, episode_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def fetch_genres(self) -> list[Any]:
        ...

    async def check_status(self) -> SourceStatus:
        """Ping the upstream; failures are reported, never raised."""

        started = time.perf_counter()
        try:
            await self._get(self.status_path, self.status_params)
        except SourceError as exc:
            logger.info("Status check for %s failed: %s", self.name, exc)
            return SourceStatus(source=self.kind.value, ok=False, error=exc.detail)
        latency_ms = int((time.perf_counter() - started) * 1000)
        return SourceStatus(source=self.kind.value, ok=True, latency_ms=latency_ms)
