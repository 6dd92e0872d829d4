"""Multi-source resolution of homepage, search, details and episode intents."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, Sequence, TypeVar

from ..config import Settings
from ..errors import (
    ChainExhausted,
    EmptyResult,
    NoPlayableSource,
    NotFound,
    SourceError,
    UpstreamError,
)
from ..mock_data import mock_anime
from ..models import (
    CanonicalAnime,
    CanonicalEpisode,
    EpisodeVideo,
    HomepageResult,
    ResolutionResult,
    SearchFilters,
    SourceKind,
    SourceStatus,
)
from ..normalizers import available_qualities, find_episode, genre_names, pick_video_url
from ..observability import LoggingObserver, ResolutionObserver
from .local_catalog import LocalCatalog
from .upstream import UpstreamAdapter

T = TypeVar("T")

SEARCH_FAILED_MESSAGE = "Ошибка поиска. Проверьте соединение с сервером."
DETAILS_FAILED_MESSAGE = "Ошибка получения аниме. Попробуйте позже."
EPISODE_FAILED_MESSAGE = "Ошибка получения эпизода. Попробуйте позже."
GENRES_FAILED_MESSAGE = "Ошибка получения жанров. Попробуйте позже."


def _is_present(data: Any) -> bool:
    """Default acceptability: non-empty sequence or a non-null entity."""

    if data is None:
        return False
    if isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
        return len(data) > 0
    return True


def _count(data: Any) -> int:
    if isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
        return len(data)
    return 0 if data is None else 1


@dataclass(frozen=True, slots=True)
class SourceDescriptor(Generic[T]):
    """One link of a fallback chain: where to fetch and what counts as an answer."""

    kind: SourceKind
    name: str
    fetch: Callable[[], Awaitable[T]]
    acceptable: Callable[[T], bool] = _is_present


@dataclass(slots=True)
class ChainOutcome(Generic[T]):
    """Internal record of one chain run before it becomes a ResolutionResult."""

    result: ResolutionResult[T] | None
    failures: list[SourceError] = field(default_factory=list)
    answered_by: SourceKind | None = None


class CatalogResolver:
    """Orchestrates upstream adapters, the local catalog and mock data."""

    def __init__(
        self,
        settings: Settings,
        primary: UpstreamAdapter,
        legacy: UpstreamAdapter,
        local: LocalCatalog | None = None,
        *,
        observer: ResolutionObserver | None = None,
    ) -> None:
        self._settings = settings
        self._upstreams: dict[str, UpstreamAdapter] = {"primary": primary, "legacy": legacy}
        self._local = local
        self._observer: ResolutionObserver = observer or LoggingObserver()

    async def _run_chain(
        self, intent: str, descriptors: Iterable[SourceDescriptor[T]]
    ) -> ChainOutcome[T]:
        """Try each source in order and stop at the first acceptable answer."""

        outcome: ChainOutcome[T] = ChainOutcome(result=None)
        for descriptor in descriptors:
            try:
                data = await descriptor.fetch()
            except SourceError as exc:
                outcome.failures.append(exc)
                self._observer.attempt_failed(intent, descriptor.kind, exc)
                continue

            if descriptor.acceptable(data):
                self._observer.attempt_succeeded(intent, descriptor.kind, _count(data))
                outcome.result = ResolutionResult(
                    data=data, source_used=descriptor.kind, success=True
                )
                return outcome

            outcome.answered_by = descriptor.kind
            outcome.failures.append(EmptyResult(descriptor.name, f"{intent} returned nothing"))
            self._observer.attempt_empty(intent, descriptor.kind)

        self._observer.chain_exhausted(intent, len(outcome.failures))
        return outcome

    def _upstream(self, name: str) -> UpstreamAdapter:
        return self._upstreams[name]

    @staticmethod
    def _animes(adapter: UpstreamAdapter, raws: Iterable[Any]) -> list[CanonicalAnime]:
        animes: list[CanonicalAnime] = []
        seen: set[str] = set()
        for raw in raws:
            anime = adapter.to_anime(raw)
            if anime is None or anime.id in seen:
                continue
            seen.add(anime.id)
            animes.append(anime)
        return animes

    def _listing_descriptor(
        self, name: str, slot: str, count: int
    ) -> SourceDescriptor[list[CanonicalAnime]] | None:
        if name == "local":
            local = self._local
            if local is None:
                return None
            loader = local.popular if slot == "popular" else local.latest
            return SourceDescriptor(local.kind, local.name, lambda: loader(count))

        adapter = self._upstream(name)

        async def fetch() -> list[CanonicalAnime]:
            if slot == "popular":
                raws = await adapter.fetch_popular(count)
            else:
                raws = await adapter.fetch_latest(count)
            return self._animes(adapter, raws)

        return SourceDescriptor(adapter.kind, adapter.name, fetch)

    def _slot_chain(self, slot: str) -> list[SourceDescriptor[list[CanonicalAnime]]]:
        count = self._settings.homepage_item_count
        descriptors = [
            self._listing_descriptor(name, slot, count)
            for name in self._settings.homepage_chain
        ]
        return [descriptor for descriptor in descriptors if descriptor is not None]

    @staticmethod
    def _mock_result() -> ResolutionResult[list[CanonicalAnime]]:
        return ResolutionResult(data=mock_anime(), source_used=SourceKind.MOCK, success=True)

    @staticmethod
    def _unresolved() -> ResolutionResult[list[CanonicalAnime]]:
        return ResolutionResult(data=[], source_used=None, success=False)

    async def resolve_homepage(self) -> HomepageResult:
        """Resolve the popular and latest slots independently; never raises."""

        popular, latest = await asyncio.gather(
            self._run_chain("homepage.popular", self._slot_chain("popular")),
            self._run_chain("homepage.latest", self._slot_chain("latest")),
        )
        if popular.result is None and latest.result is None:
            mock = self._mock_result()
            self._observer.attempt_succeeded("homepage", SourceKind.MOCK, len(mock.data))
            return HomepageResult(popular=mock, latest=self._mock_result())
        return HomepageResult(
            popular=popular.result or self._unresolved(),
            latest=latest.result or self._unresolved(),
        )

    async def resolve_slot(self, slot: str) -> ResolutionResult[list[CanonicalAnime]]:
        """Resolve a single homepage slot, degrading to mock data on its own."""

        if slot not in {"popular", "latest"}:
            raise ValueError(f"Unknown homepage slot: {slot}")
        outcome = await self._run_chain(f"homepage.{slot}", self._slot_chain(slot))
        if outcome.result is not None:
            return outcome.result
        mock = self._mock_result()
        self._observer.attempt_succeeded(f"homepage.{slot}", SourceKind.MOCK, len(mock.data))
        return mock

    @staticmethod
    def _settle(
        intent: str, outcome: ChainOutcome[list[T]], user_message: str
    ) -> ResolutionResult[list[T]]:
        """Turn an unresolved search-like chain into "nothing found" or an error.

        An empty list only counts as an answer when the last source of the
        chain produced it; a chain whose last source raised is exhausted.
        """

        if outcome.result is not None:
            return outcome.result
        last = outcome.failures[-1] if outcome.failures else None
        if isinstance(last, EmptyResult) and outcome.answered_by is not None:
            return ResolutionResult(data=[], source_used=outcome.answered_by, success=True)
        raise ChainExhausted(intent, outcome.failures, user_message=user_message)

    async def search(
        self, query: str | None, filters: SearchFilters | None = None
    ) -> ResolutionResult[list[CanonicalAnime]]:
        """Search the configured upstream, then the local catalog.

        A blank query with no filters short-circuits without touching any
        source; a blank query with filters browses the catalog. Empty results
        are a valid "nothing found" when the local catalog confirms them.
        """

        text = (query or "").strip()
        filters = filters or SearchFilters()
        if not text and filters.is_empty():
            return self._unresolved()

        limit = filters.limit or self._settings.search_limit
        adapter = self._upstream(self._settings.search_source)

        async def remote() -> list[CanonicalAnime]:
            raws = await adapter.fetch_search(text, filters, limit=limit)
            return self._animes(adapter, raws)[:limit]

        descriptors: list[SourceDescriptor[list[CanonicalAnime]]] = [
            SourceDescriptor(adapter.kind, adapter.name, remote)
        ]
        if self._local is not None:
            local = self._local
            descriptors.append(
                SourceDescriptor(
                    local.kind, local.name, lambda: local.search(text, filters, limit=limit)
                )
            )

        intent = "search.filtered" if not filters.is_empty() else "search"
        outcome = await self._run_chain(intent, descriptors)
        return self._settle(intent, outcome, SEARCH_FAILED_MESSAGE)

    async def resolve_genres(self) -> ResolutionResult[list[str]]:
        """List genre names from the search upstream, then the local catalog."""

        adapter = self._upstream(self._settings.search_source)

        async def remote() -> list[str]:
            return genre_names(await adapter.fetch_genres(), unique=True)

        descriptors: list[SourceDescriptor[list[str]]] = [
            SourceDescriptor(adapter.kind, adapter.name, remote)
        ]
        if self._local is not None:
            descriptors.append(SourceDescriptor(self._local.kind, self._local.name, self._local.genres))

        outcome = await self._run_chain("genres", descriptors)
        return self._settle("genres", outcome, GENRES_FAILED_MESSAGE)

    async def resolve_anime(self, id_or_alias: str) -> ResolutionResult[CanonicalAnime]:
        """Look a release up through every configured source in order."""

        descriptors: list[SourceDescriptor[CanonicalAnime | None]] = []
        for name in self._settings.homepage_chain:
            if name == "local":
                if self._local is not None:
                    local = self._local
                    descriptors.append(
                        SourceDescriptor(local.kind, local.name, lambda: local.get(id_or_alias))
                    )
                continue
            adapter = self._upstream(name)

            async def fetch(adapter: UpstreamAdapter = adapter) -> CanonicalAnime | None:
                return adapter.to_anime(await adapter.fetch_release(id_or_alias))

            descriptors.append(SourceDescriptor(adapter.kind, adapter.name, fetch))

        outcome = await self._run_chain("anime", descriptors)
        if outcome.result is not None:
            return outcome.result  # type: ignore[return-value]
        missing = outcome.answered_by is not None or (
            outcome.failures
            and all(
                isinstance(failure, UpstreamError) and failure.status_code == 404
                for failure in outcome.failures
            )
        )
        if missing:
            raise NotFound(f"Anime {id_or_alias} not found", user_message=f"Аниме {id_or_alias} не найдено")
        raise ChainExhausted("anime", outcome.failures, user_message=DETAILS_FAILED_MESSAGE)

    def _single_source_failure(
        self, intent: str, adapter: UpstreamAdapter, exc: SourceError
    ) -> Exception:
        self._observer.attempt_failed(intent, adapter.kind, exc)
        if isinstance(exc, UpstreamError) and exc.status_code == 404:
            return NotFound(str(exc), user_message=NotFound.user_message)
        return ChainExhausted(intent, [exc], user_message=EPISODE_FAILED_MESSAGE)

    async def resolve_episode(self, anime_id: str, episode_number: Any) -> CanonicalEpisode:
        """Find one episode of a release; there is no fallback chain here."""

        adapter = self._upstream(self._settings.video_source)
        intent = "episode"
        try:
            release = await adapter.fetch_release(anime_id, include_episodes=True)
            if release is None:
                raise NotFound(f"Anime {anime_id} not found", user_message=f"Аниме {anime_id} не найдено")
            episodes = adapter.to_episodes(release)
            if not episodes:
                raws = await adapter.fetch_release_episodes(anime_id)
                episodes = [
                    episode
                    for episode in (adapter.to_episode(raw) for raw in raws)
                    if episode is not None
                ]
        except SourceError as exc:
            raise self._single_source_failure(intent, adapter, exc) from exc

        episode = find_episode(episodes, episode_number)
        if episode is None:
            self._observer.attempt_empty(intent, adapter.kind)
            raise NotFound(
                f"Episode {episode_number} of {anime_id} not found",
                user_message=f"Эпизод {episode_number} не найден",
            )
        self._observer.attempt_succeeded(intent, adapter.kind, 1)
        if episode.release_id is None:
            release_id = release.get("id") if isinstance(release, dict) else None
            episode = episode.model_copy(update={"release_id": str(release_id or anime_id)})
        return episode

    async def resolve_episode_video(
        self,
        anime_id: str,
        episode_number: Any,
        preferred_quality: str | None = None,
    ) -> EpisodeVideo:
        """Resolve the stream URL for an episode, preferring ``preferred_quality``."""

        episode = await self.resolve_episode(anime_id, episode_number)
        quality = preferred_quality or self._settings.default_quality
        url = pick_video_url(episode.video_urls, quality)
        if url is None:
            raise NoPlayableSource(
                f"Episode {episode_number} of {anime_id} has no stream in any quality"
            )
        return EpisodeVideo(
            url=url,
            available_qualities=available_qualities(episode.video_urls),
            episode=episode,
        )

    async def get_episode(self, episode_id: str) -> CanonicalEpisode:
        adapter = self._upstream(self._settings.video_source)
        try:
            raw = await adapter.fetch_episode(episode_id)
        except SourceError as exc:
            raise self._single_source_failure("episode.by_id", adapter, exc) from exc
        episode = adapter.to_episode(raw)
        if episode is None:
            raise NotFound(f"Episode {episode_id} not found", user_message="Эпизод не найден")
        return episode

    async def check_status(self) -> list[SourceStatus]:
        """Check every upstream concurrently."""

        adapters = list(self._upstreams.values())
        return list(await asyncio.gather(*(adapter.check_status() for adapter in adapters)))
