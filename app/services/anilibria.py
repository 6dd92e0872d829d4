"""Adapter for the generation 1 AniLibria API (``/api/v1``, ``limit`` paging)."""

from __future__ import annotations

from typing import Any

from ..errors import MalformedPayload
from ..models import CanonicalAnime, CanonicalEpisode, SearchFilters, SourceKind
from ..normalizers import anime_from_anilibria, episodes_from_anilibria, legacy_episode_id
from ..utils import compact_number
from .upstream import UpstreamAdapter

# Generation 1 only understands a subset of the filters, under its own names.
_FILTER_PARAMS = {"genre": "genres", "year": "year"}


class AniLibriaAdapter(UpstreamAdapter):
    """Legacy upstream: AniLibria titles with episodes embedded in ``player``."""

    name = "anilibria"
    kind = SourceKind.LEGACY_V1
    status_path = "/title/updates"
    status_params = {"limit": 1}

    def _parse_collection(self, payload: Any, path: str) -> list[dict[str, Any]]:
        if isinstance(payload, dict):
            for key in ("data", "list"):
                if key in payload:
                    return self._records(payload[key], path)
        raise MalformedPayload(self.name, f"unexpected collection envelope from {path}")

    def _parse_entity(self, payload: Any, path: str) -> dict[str, Any] | None:
        if not isinstance(payload, dict):
            raise MalformedPayload(self.name, f"unexpected entity envelope from {path}")
        if "data" not in payload:
            return payload if "id" in payload else None
        inner = payload["data"]
        if inner is None:
            return None
        if isinstance(inner, dict):
            return inner
        raise MalformedPayload(self.name, f"unexpected entity envelope from {path}")

    def to_anime(self, raw: Any) -> CanonicalAnime | None:
        return anime_from_anilibria(raw, self._asset_host)

    def to_episode(self, raw: Any) -> CanonicalEpisode | None:
        # Generation 1 has no standalone episode record; see fetch_episode.
        episodes = self.to_episodes(raw.get("release")) if isinstance(raw, dict) else []
        wanted = raw.get("id") if isinstance(raw, dict) else None
        for episode in episodes:
            if episode.id == wanted:
                return episode
        return None

    def to_episodes(self, release: Any) -> list[CanonicalEpisode]:
        return episodes_from_anilibria(release, self._asset_host)

    async def fetch_popular(self, count: int) -> list[dict[str, Any]]:
        path = "/title/search"
        params = {"order_by": "in_favorites", "sort_direction": 1, "limit": count}
        payload = await self._get(path, params)
        return self._parse_collection(payload, path)

    async def fetch_latest(self, count: int) -> list[dict[str, Any]]:
        path = "/title/updates"
        payload = await self._get(path, {"limit": count})
        return self._parse_collection(payload, path)

    async def fetch_search(
        self, query: str, filters: SearchFilters, *, limit: int
    ) -> list[dict[str, Any]]:
        path = "/title/search"
        params: dict[str, Any] = {"limit": limit}
        if query:
            params["search"] = query
        for key, value in filters.upstream_params().items():
            if key in _FILTER_PARAMS:
                params[_FILTER_PARAMS[key]] = value
        payload = await self._get(path, params)
        return self._parse_collection(payload, path)

    async def fetch_release(
        self, id_or_alias: str, *, include_episodes: bool = False
    ) -> dict[str, Any] | None:
        path = "/title"
        key = "id" if str(id_or_alias).isdigit() else "code"
        params: dict[str, Any] = {key: id_or_alias}
        if include_episodes:
            params["playlist_type"] = "array"
        payload = await self._get(path, params)
        return self._parse_entity(payload, path)

    async def fetch_release_episodes(self, id_or_alias: str) -> list[dict[str, Any]]:
        # Episodes only exist embedded in the title record.
        return []

    async def fetch_episode(self, episode_id: str) -> dict[str, Any] | None:
        """Look an episode up by its ``"<release>:<number>"`` identifier."""

        release_id, _, number = str(episode_id).rpartition(":")
        if not release_id or not number:
            return None
        release = await self.fetch_release(release_id, include_episodes=True)
        if release is None:
            return None
        episode_key = legacy_episode_id(str(release.get("id", release_id)), compact_number(number))
        return {"id": episode_key, "release": release}

    async def fetch_genres(self) -> list[Any]:
        path = "/genres"
        payload = await self._get(path)
        return self._list_payload(payload, path, keys=("data", "list"))
