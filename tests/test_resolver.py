"""Tests for the multi-source resolution pipeline."""

from __future__ import annotations

import asyncio
from typing import Any

import anyio
import pytest

from app.config import Settings
from app.errors import (
    ChainExhausted,
    NetworkError,
    NoPlayableSource,
    NotFound,
    SourceError,
    UpstreamError,
    UpstreamTimeout,
)
from app.models import CanonicalAnime, SearchFilters, SourceKind
from app.services.anilibria import AniLibriaAdapter
from app.services.aniliberty import AniLibertyAdapter
from app.services.resolver import GENRES_FAILED_MESSAGE, SEARCH_FAILED_MESSAGE, CatalogResolver


class ScriptedMixin:
    """Serves canned fetch results instead of talking HTTP."""

    def __init__(self, **script: Any) -> None:
        super().__init__(None, asset_host="https://assets.example")  # type: ignore[call-arg,arg-type]
        self.script = script
        self.calls: list[str] = []

    async def _play(self, operation: str) -> Any:
        self.calls.append(operation)
        value = self.script.get(operation, [])
        if isinstance(value, BaseException):
            raise value
        if callable(value):
            return await value()
        return value

    async def fetch_popular(self, count: int) -> Any:
        return await self._play("popular")

    async def fetch_latest(self, count: int) -> Any:
        return await self._play("latest")

    async def fetch_search(self, query: str, filters: SearchFilters, *, limit: int) -> Any:
        self.last_search = (query, filters, limit)
        return await self._play("search")

    async def fetch_release(self, id_or_alias: str, *, include_episodes: bool = False) -> Any:
        self.script.setdefault("release", None)
        return await self._play("release")

    async def fetch_release_episodes(self, id_or_alias: str) -> Any:
        return await self._play("release_episodes")

    async def fetch_episode(self, episode_id: str) -> Any:
        self.script.setdefault("episode", None)
        return await self._play("episode")

    async def fetch_genres(self) -> Any:
        return await self._play("genres")


class ScriptedPrimary(ScriptedMixin, AniLibertyAdapter):
    pass


class ScriptedLegacy(ScriptedMixin, AniLibriaAdapter):
    pass


class FakeLocal:
    name = "local"
    kind = SourceKind.LOCAL_CACHE

    def __init__(
        self,
        animes: list[CanonicalAnime] | None = None,
        error: SourceError | None = None,
        genres: list[str] | None = None,
    ):
        self.animes = animes or []
        self.genre_list = genres or []
        self.error = error
        self.calls: list[str] = []

    async def _answer(self, operation: str) -> list[CanonicalAnime]:
        self.calls.append(operation)
        if self.error is not None:
            raise self.error
        return list(self.animes)

    async def popular(self, count: int) -> list[CanonicalAnime]:
        return await self._answer("popular")

    async def latest(self, count: int) -> list[CanonicalAnime]:
        return await self._answer("latest")

    async def search(self, query: str, filters: SearchFilters, *, limit: int) -> list[CanonicalAnime]:
        return await self._answer("search")

    async def get(self, id_or_alias: str) -> CanonicalAnime | None:
        animes = await self._answer("get")
        return next((anime for anime in animes if anime.id == id_or_alias), None)

    async def genres(self) -> list[str]:
        self.calls.append("genres")
        if self.error is not None:
            raise self.error
        return list(self.genre_list)


class RecordingObserver:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, Any]] = []

    def attempt_failed(self, intent, source, error) -> None:
        self.events.append(("failed", intent, source))

    def attempt_empty(self, intent, source) -> None:
        self.events.append(("empty", intent, source))

    def attempt_succeeded(self, intent, source, count) -> None:
        self.events.append(("succeeded", intent, source))

    def chain_exhausted(self, intent, failures) -> None:
        self.events.append(("exhausted", intent, failures))


def build_resolver(
    primary: ScriptedPrimary | None = None,
    legacy: ScriptedLegacy | None = None,
    local: FakeLocal | None = None,
    **overrides: Any,
) -> tuple[CatalogResolver, RecordingObserver]:
    settings = Settings(_env_file=None, **overrides)
    observer = RecordingObserver()
    resolver = CatalogResolver(
        settings,
        primary or ScriptedPrimary(),
        legacy or ScriptedLegacy(),
        local,
        observer=observer,
    )
    return resolver, observer


def _anime(anime_id: str) -> CanonicalAnime:
    return CanonicalAnime(id=anime_id, title=f"Local {anime_id}")


@pytest.mark.anyio("asyncio")
async def test_homepage_falls_back_per_slot(aniliberty_release, anilibria_title) -> None:
    primary = ScriptedPrimary(popular=[], latest=[aniliberty_release(1)])
    legacy = ScriptedLegacy(popular=[anilibria_title(10), anilibria_title(11)])
    resolver, _ = build_resolver(primary, legacy)

    homepage = await resolver.resolve_homepage()

    assert homepage.popular.source_used is SourceKind.LEGACY_V1
    assert [anime.id for anime in homepage.popular.data] == ["10", "11"]
    assert homepage.latest.source_used is SourceKind.PRIMARY_V2
    assert [anime.id for anime in homepage.latest.data] == ["1"]
    assert legacy.calls == ["popular"]


@pytest.mark.anyio("asyncio")
async def test_homepage_uses_mock_data_when_everything_fails() -> None:
    primary = ScriptedPrimary(
        popular=UpstreamTimeout("aniliberty", "slow"), latest=NetworkError("aniliberty", "down")
    )
    legacy = ScriptedLegacy(
        popular=UpstreamError("anilibria", 500, "boom"), latest=UpstreamError("anilibria", 502, "bad")
    )
    resolver, observer = build_resolver(primary, legacy, FakeLocal())

    homepage = await resolver.resolve_homepage()

    for slot in (homepage.popular, homepage.latest):
        assert slot.success is True
        assert slot.source_used is SourceKind.MOCK
        assert len(slot.data) == 2
    assert ("exhausted", "homepage.popular", 3) in observer.events
    assert ("succeeded", "homepage", SourceKind.MOCK) in observer.events


@pytest.mark.anyio("asyncio")
async def test_one_failed_slot_does_not_affect_the_other(aniliberty_release) -> None:
    primary = ScriptedPrimary(
        popular=[aniliberty_release(1)], latest=NetworkError("aniliberty", "down")
    )
    legacy = ScriptedLegacy(latest=NetworkError("anilibria", "down"))
    resolver, _ = build_resolver(primary, legacy)

    homepage = await resolver.resolve_homepage()

    assert homepage.popular.success is True
    assert homepage.popular.source_used is SourceKind.PRIMARY_V2
    assert homepage.latest.success is False
    assert homepage.latest.source_used is None
    assert homepage.latest.data == []


@pytest.mark.anyio("asyncio")
async def test_homepage_slots_are_fetched_concurrently(aniliberty_release) -> None:
    latest_started = asyncio.Event()

    async def popular() -> list[dict[str, Any]]:
        await latest_started.wait()
        return [aniliberty_release(1)]

    async def latest() -> list[dict[str, Any]]:
        latest_started.set()
        return [aniliberty_release(2)]

    resolver, _ = build_resolver(ScriptedPrimary(popular=popular, latest=latest))

    with anyio.fail_after(2):
        homepage = await resolver.resolve_homepage()

    assert homepage.popular.data[0].id == "1"
    assert homepage.latest.data[0].id == "2"


@pytest.mark.anyio("asyncio")
async def test_homepage_chain_order_is_configurable(aniliberty_release, anilibria_title) -> None:
    primary = ScriptedPrimary(popular=[aniliberty_release(1)], latest=[aniliberty_release(1)])
    legacy = ScriptedLegacy(popular=[anilibria_title(2)], latest=[anilibria_title(2)])
    resolver, _ = build_resolver(primary, legacy, HOMEPAGE_CHAIN="legacy,primary")

    homepage = await resolver.resolve_homepage()

    assert homepage.popular.source_used is SourceKind.LEGACY_V1
    assert primary.calls == []


@pytest.mark.anyio("asyncio")
async def test_homepage_reaches_local_catalog() -> None:
    local = FakeLocal([_anime("cached")])
    resolver, _ = build_resolver(local=local)

    homepage = await resolver.resolve_homepage()

    assert homepage.popular.source_used is SourceKind.LOCAL_CACHE
    assert homepage.popular.data[0].id == "cached"


@pytest.mark.anyio("asyncio")
async def test_single_slot_degrades_to_mock_on_its_own() -> None:
    resolver, _ = build_resolver(
        ScriptedPrimary(latest=NetworkError("aniliberty", "down"))
    )

    result = await resolver.resolve_slot("latest")

    assert result.source_used is SourceKind.MOCK
    assert len(result.data) == 2
    with pytest.raises(ValueError):
        await resolver.resolve_slot("trending")


@pytest.mark.anyio("asyncio")
async def test_duplicate_records_are_collapsed(aniliberty_release) -> None:
    primary = ScriptedPrimary(popular=[aniliberty_release(1), aniliberty_release(1), {"name": {}}])
    resolver, _ = build_resolver(primary)

    result = await resolver.resolve_slot("popular")

    assert [anime.id for anime in result.data] == ["1"]


@pytest.mark.parametrize("query", ["", "   ", None])
@pytest.mark.anyio("asyncio")
async def test_blank_search_touches_no_source(query) -> None:
    primary, local = ScriptedPrimary(), FakeLocal()
    resolver, observer = build_resolver(primary, local=local)

    result = await resolver.search(query)

    assert result.data == []
    assert result.success is False
    assert result.source_used is None
    assert primary.calls == [] and local.calls == []
    assert observer.events == []


@pytest.mark.anyio("asyncio")
async def test_search_falls_back_to_local_catalog() -> None:
    primary = ScriptedPrimary(search=NetworkError("aniliberty", "down"))
    resolver, _ = build_resolver(primary, local=FakeLocal([_anime("naruto")]))

    result = await resolver.search("naruto")

    assert result.source_used is SourceKind.LOCAL_CACHE
    assert [anime.id for anime in result.data] == ["naruto"]


@pytest.mark.anyio("asyncio")
async def test_search_without_matches_is_a_successful_empty_answer() -> None:
    resolver, _ = build_resolver(ScriptedPrimary(search=[]), local=FakeLocal())

    result = await resolver.search("nothing-matches")

    assert result.data == []
    assert result.success is True
    assert result.source_used is SourceKind.LOCAL_CACHE


@pytest.mark.anyio("asyncio")
async def test_search_raises_when_every_source_fails() -> None:
    primary = ScriptedPrimary(search=UpstreamTimeout("aniliberty", "slow"))
    local = FakeLocal(error=SourceError("local", "database locked"))
    resolver, _ = build_resolver(primary, local=local)

    with pytest.raises(ChainExhausted) as excinfo:
        await resolver.search("naruto")

    assert excinfo.value.user_message == SEARCH_FAILED_MESSAGE
    assert len(excinfo.value.failures) == 2


@pytest.mark.anyio("asyncio")
async def test_search_is_exhausted_when_local_fails_after_empty_upstream() -> None:
    primary = ScriptedPrimary(search=[])
    local = FakeLocal(error=SourceError("local", "database locked"))
    resolver, observer = build_resolver(primary, local=local)

    with pytest.raises(ChainExhausted) as excinfo:
        await resolver.search("naruto")

    assert excinfo.value.user_message == SEARCH_FAILED_MESSAGE
    assert len(excinfo.value.failures) == 2
    assert ("failed", "search", SourceKind.LOCAL_CACHE) in observer.events


@pytest.mark.anyio("asyncio")
async def test_search_empty_upstream_without_local_catalog_is_nothing_found() -> None:
    resolver, _ = build_resolver(ScriptedPrimary(search=[]))

    result = await resolver.search("nothing-matches")

    assert result.data == []
    assert result.success is True
    assert result.source_used is SourceKind.PRIMARY_V2


@pytest.mark.anyio("asyncio")
async def test_filters_alone_browse_the_catalog(aniliberty_release) -> None:
    primary = ScriptedPrimary(search=[aniliberty_release(1), aniliberty_release(2)])
    local = FakeLocal()
    resolver, _ = build_resolver(primary, local=local)

    result = await resolver.search(None, SearchFilters(genre="Экшен"))

    assert primary.calls == ["search"]
    assert primary.last_search[0] == ""
    assert primary.last_search[1] == SearchFilters(genre="Экшен")
    assert result.source_used is SourceKind.PRIMARY_V2
    assert [anime.id for anime in result.data] == ["1", "2"]
    assert local.calls == []


@pytest.mark.anyio("asyncio")
async def test_limit_alone_is_not_a_browse_filter() -> None:
    primary, local = ScriptedPrimary(), FakeLocal()
    resolver, _ = build_resolver(primary, local=local)

    result = await resolver.search("  ", SearchFilters(limit=5))

    assert result.success is False
    assert primary.calls == [] and local.calls == []


@pytest.mark.anyio("asyncio")
async def test_genres_come_from_search_upstream_without_duplicates() -> None:
    primary = ScriptedPrimary(
        genres=[{"id": 1, "name": "Экшен"}, {"id": 2, "name": "Драма"}, {"id": 3, "name": "Экшен"}, {"id": 4}]
    )
    local = FakeLocal(genres=["Комедия"])
    resolver, _ = build_resolver(primary, local=local)

    result = await resolver.resolve_genres()

    assert result.data == ["Экшен", "Драма"]
    assert result.source_used is SourceKind.PRIMARY_V2
    assert local.calls == []


@pytest.mark.anyio("asyncio")
async def test_genres_fall_back_to_local_catalog() -> None:
    legacy = ScriptedLegacy(genres=NetworkError("anilibria", "down"))
    local = FakeLocal(genres=["Драма", "Экшен"])
    resolver, _ = build_resolver(legacy=legacy, local=local, SEARCH_SOURCE="legacy")

    result = await resolver.resolve_genres()

    assert legacy.calls == ["genres"]
    assert result.data == ["Драма", "Экшен"]
    assert result.source_used is SourceKind.LOCAL_CACHE


@pytest.mark.anyio("asyncio")
async def test_genres_raise_when_every_source_fails() -> None:
    primary = ScriptedPrimary(genres=UpstreamError("aniliberty", 500, "boom"))
    local = FakeLocal(error=SourceError("local", "database locked"))
    resolver, _ = build_resolver(primary, local=local)

    with pytest.raises(ChainExhausted) as excinfo:
        await resolver.resolve_genres()

    assert excinfo.value.user_message == GENRES_FAILED_MESSAGE


@pytest.mark.anyio("asyncio")
async def test_search_uses_configured_source_and_limit(anilibria_title) -> None:
    legacy = ScriptedLegacy(search=[anilibria_title(index) for index in range(1, 6)])
    primary = ScriptedPrimary()
    resolver, _ = build_resolver(primary, legacy, SEARCH_SOURCE="legacy")

    result = await resolver.search("  jujutsu  ", SearchFilters(limit=3))

    assert primary.calls == []
    assert legacy.last_search[0] == "jujutsu"
    assert legacy.last_search[2] == 3
    assert [anime.id for anime in result.data] == ["1", "2", "3"]


@pytest.mark.anyio("asyncio")
async def test_anime_details_fall_back_to_legacy(anilibria_title) -> None:
    primary = ScriptedPrimary(release=UpstreamError("aniliberty", 404, "Not found"))
    legacy = ScriptedLegacy(release=anilibria_title())
    resolver, _ = build_resolver(primary, legacy)

    result = await resolver.resolve_anime("title-7001")

    assert result.source_used is SourceKind.LEGACY_V1
    assert result.data.title == "Магическая битва"


@pytest.mark.anyio("asyncio")
async def test_anime_missing_everywhere_is_not_found() -> None:
    primary = ScriptedPrimary(release=UpstreamError("aniliberty", 404, "Not found"))
    legacy = ScriptedLegacy(release=None)
    resolver, _ = build_resolver(primary, legacy, local=FakeLocal())

    with pytest.raises(NotFound):
        await resolver.resolve_anime("missing")


@pytest.mark.anyio("asyncio")
async def test_anime_lookup_with_unreachable_sources_is_exhausted() -> None:
    primary = ScriptedPrimary(release=NetworkError("aniliberty", "down"))
    legacy = ScriptedLegacy(release=UpstreamTimeout("anilibria", "slow"))
    resolver, _ = build_resolver(primary, legacy)

    with pytest.raises(ChainExhausted):
        await resolver.resolve_anime("9001")


@pytest.mark.anyio("asyncio")
async def test_episode_lookup_supports_fractional_numbers(
    aniliberty_release, aniliberty_episode
) -> None:
    release = aniliberty_release(
        episodes=[
            aniliberty_episode(1, sort_order=1),
            aniliberty_episode(2, sort_order=2),
            aniliberty_episode(2.5, sort_order=3),
            aniliberty_episode(3, sort_order=4),
        ]
    )
    resolver, _ = build_resolver(ScriptedPrimary(release=release))

    special = await resolver.resolve_episode("9001", "2.5")
    regular = await resolver.resolve_episode("9001", "2")

    assert special.number == 2.5
    assert special.id == "ep-2.5"
    assert special.release_id == "9001"
    assert regular.number == 2


@pytest.mark.anyio("asyncio")
async def test_legacy_fractional_episode_is_not_shadowed(anilibria_title) -> None:
    title = anilibria_title()
    title["player"]["list"]["2.5"] = {
        "episode": 2.5,
        "hls": {"hd": "/videos/media/ts/7001/2.5/720/index.m3u8"},
    }
    resolver, _ = build_resolver(
        legacy=ScriptedLegacy(release=title), VIDEO_SOURCE="legacy"
    )

    video = await resolver.resolve_episode_video("7001", "2.5", "720")

    assert video.episode.number == 2.5
    assert video.url == "https://cache.libria.fun/videos/media/ts/7001/2.5/720/index.m3u8"


@pytest.mark.anyio("asyncio")
async def test_episode_list_is_fetched_when_not_embedded(
    aniliberty_release, aniliberty_episode
) -> None:
    primary = ScriptedPrimary(
        release=aniliberty_release(), release_episodes=[aniliberty_episode(1, release_id=None)]
    )
    resolver, _ = build_resolver(primary)

    episode = await resolver.resolve_episode("release-9001", 1)

    assert primary.calls == ["release", "release_episodes"]
    assert episode.release_id == "9001"


@pytest.mark.anyio("asyncio")
async def test_missing_episode_is_not_found(aniliberty_release, aniliberty_episode) -> None:
    resolver, observer = build_resolver(
        ScriptedPrimary(release=aniliberty_release(episodes=[aniliberty_episode(1)]))
    )

    with pytest.raises(NotFound):
        await resolver.resolve_episode("9001", "12")

    assert ("empty", "episode", SourceKind.PRIMARY_V2) in observer.events


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (UpstreamError("aniliberty", 404, "Not found"), NotFound),
        (UpstreamError("aniliberty", 500, "boom"), ChainExhausted),
        (NetworkError("aniliberty", "down"), ChainExhausted),
    ],
)
@pytest.mark.anyio("asyncio")
async def test_episode_source_errors_are_classified(error, expected) -> None:
    resolver, _ = build_resolver(ScriptedPrimary(release=error))

    with pytest.raises(expected):
        await resolver.resolve_episode("9001", 1)


@pytest.mark.anyio("asyncio")
async def test_video_falls_back_to_best_available_quality(
    aniliberty_release, aniliberty_episode
) -> None:
    episode = aniliberty_episode(1, hls_720=None, hls_1080=None)
    resolver, _ = build_resolver(ScriptedPrimary(release=aniliberty_release(episodes=[episode])))

    video = await resolver.resolve_episode_video("9001", 1, "1080")

    assert video.url == "https://cache.example/1/480.m3u8"
    assert [quality.height for quality in video.available_qualities] == [480]
    assert video.type == "hls"


@pytest.mark.anyio("asyncio")
async def test_video_uses_default_quality_when_none_requested(
    aniliberty_release, aniliberty_episode
) -> None:
    resolver, _ = build_resolver(
        ScriptedPrimary(release=aniliberty_release(episodes=[aniliberty_episode(1)])),
        DEFAULT_QUALITY="480",
    )

    video = await resolver.resolve_episode_video("9001", 1)

    assert video.url == "https://cache.example/1/480.m3u8"


@pytest.mark.anyio("asyncio")
async def test_video_without_streams_is_unplayable(aniliberty_release, aniliberty_episode) -> None:
    episode = aniliberty_episode(1, hls_480=None, hls_720=None, hls_1080=None)
    resolver, _ = build_resolver(ScriptedPrimary(release=aniliberty_release(episodes=[episode])))

    with pytest.raises(NoPlayableSource):
        await resolver.resolve_episode_video("9001", 1)


@pytest.mark.anyio("asyncio")
async def test_video_source_can_be_switched_to_legacy(anilibria_title) -> None:
    primary = ScriptedPrimary()
    legacy = ScriptedLegacy(release=anilibria_title())
    resolver, _ = build_resolver(primary, legacy, VIDEO_SOURCE="legacy")

    video = await resolver.resolve_episode_video("7001", 2, "720")

    assert primary.calls == []
    assert video.url == "https://cache.libria.fun/videos/media/ts/7001/2/480/index.m3u8"
    assert video.episode.id == "7001:2"


@pytest.mark.anyio("asyncio")
async def test_get_episode_by_identifier(aniliberty_episode) -> None:
    resolver, _ = build_resolver(ScriptedPrimary(episode=aniliberty_episode(4)))

    episode = await resolver.get_episode("ep-4")

    assert episode.number == 4


@pytest.mark.anyio("asyncio")
async def test_get_episode_unknown_identifier_is_not_found() -> None:
    resolver, _ = build_resolver(ScriptedPrimary(episode=None))

    with pytest.raises(NotFound):
        await resolver.get_episode("nope")
