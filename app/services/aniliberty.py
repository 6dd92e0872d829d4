"""Adapter for the generation 2 AniLiberty API (``/api``, ``perPage`` paging)."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from ..errors import MalformedPayload
from ..models import CanonicalAnime, CanonicalEpisode, SearchFilters, SourceKind
from ..normalizers import anime_from_aniliberty, episode_from_aniliberty
from .upstream import UpstreamAdapter


class AniLibertyAdapter(UpstreamAdapter):
    """Primary upstream: AniLiberty releases, episodes and search."""

    name = "aniliberty"
    kind = SourceKind.PRIMARY_V2
    status_path = "/anime/popular"
    status_params = {"perPage": 1, "page": 1}

    def _parse_collection(self, payload: Any, path: str) -> list[dict[str, Any]]:
        # Listing endpoints answer either with a bare list or a {"data": [...]} page.
        if isinstance(payload, list):
            return self._records(payload, path)
        if isinstance(payload, dict) and "data" in payload:
            return self._records(payload["data"], path)
        raise MalformedPayload(self.name, f"unexpected collection envelope from {path}")

    def _parse_entity(self, payload: Any, path: str) -> dict[str, Any] | None:
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise MalformedPayload(self.name, f"unexpected entity envelope from {path}")
        if "id" in payload:
            return payload
        inner = payload.get("data")
        if inner is None:
            return None
        if isinstance(inner, dict):
            return inner
        raise MalformedPayload(self.name, f"unexpected entity envelope from {path}")

    def to_anime(self, raw: Any) -> CanonicalAnime | None:
        return anime_from_aniliberty(raw, self._asset_host)

    def to_episode(self, raw: Any) -> CanonicalEpisode | None:
        return episode_from_aniliberty(raw, self._asset_host)

    def to_episodes(self, release: Any) -> list[CanonicalEpisode]:
        raw_episodes = release.get("episodes") if isinstance(release, dict) else None
        if not isinstance(raw_episodes, list):
            return []
        episodes = [self.to_episode(raw) for raw in raw_episodes]
        return [episode for episode in episodes if episode is not None]

    async def fetch_popular(self, count: int) -> list[dict[str, Any]]:
        path = "/anime/popular"
        payload = await self._get(path, {"perPage": count, "page": 1})
        return self._parse_collection(payload, path)

    async def fetch_latest(self, count: int) -> list[dict[str, Any]]:
        path = "/releases"
        payload = await self._get(path, {"perPage": count, "page": 1})
        return self._parse_collection(payload, path)

    async def fetch_search(
        self, query: str, filters: SearchFilters, *, limit: int
    ) -> list[dict[str, Any]]:
        # Without text the filtered catalog listing serves the same records.
        path = "/anime/search" if query else "/anime/catalog/releases"
        params: dict[str, Any] = {"perPage": limit, "page": 1}
        if query:
            params["search"] = query
        params.update(filters.upstream_params())
        payload = await self._get(path, params)
        return self._parse_collection(payload, path)

    async def fetch_release(
        self, id_or_alias: str, *, include_episodes: bool = False
    ) -> dict[str, Any] | None:
        path = f"/anime/{quote(str(id_or_alias), safe='')}"
        params = {"include": "episodes"} if include_episodes else None
        payload = await self._get(path, params)
        return self._parse_entity(payload, path)

    async def fetch_release_episodes(self, id_or_alias: str) -> list[dict[str, Any]]:
        path = f"/anime/{quote(str(id_or_alias), safe='')}/episodes"
        payload = await self._get(path)
        return self._parse_collection(payload, path)

    async def fetch_episode(self, episode_id: str) -> dict[str, Any] | None:
        path = f"/episodes/{quote(str(episode_id), safe='')}"
        payload = await self._get(path)
        return self._parse_entity(payload, path)

    async def fetch_genres(self) -> list[Any]:
        path = "/anime/catalog/references/genres"
        payload = await self._get(path)
        return self._list_payload(payload, path)
