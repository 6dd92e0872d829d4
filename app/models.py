"""Canonical payloads shared by every upstream generation."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AnimeStatus = Literal["ongoing", "completed"]
QualityLabel = Literal["480", "720", "1080"]

T = TypeVar("T")


class SourceKind(str, enum.Enum):
    """Identifies which link of a fallback chain produced a result."""

    PRIMARY_V2 = "PrimaryV2"
    LEGACY_V1 = "LegacyV1"
    LOCAL_CACHE = "LocalCache"
    MOCK = "Mock"


class CanonicalModel(BaseModel):
    """Base model serialising to the camelCase keys the frontend reads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class CanonicalAnime(CanonicalModel):
    """A release normalised from any upstream generation."""

    id: str
    title: str
    title_english: str | None = None
    title_alternative: str | None = None
    alias: str | None = None
    year: int | None = None
    type: str | None = None
    status: AnimeStatus = "completed"
    poster_url: str | None = None
    description: str | None = None
    episode_count: int | None = None
    genres: list[str] = Field(default_factory=list)
    rating: float | None = None
    age_rating: str | None = None
    season: str | None = None
    duration_minutes: int | None = None
    publish_day: str | None = None
    favorites: int | None = None
    updated_at: str | None = None


class TimeRange(CanonicalModel):
    """Opening/ending marker in seconds, used by the player skip button."""

    start: int | None = None
    stop: int | None = None


class ExternalPlayerIds(CanonicalModel):
    rutube: str | None = None
    youtube: str | None = None


class CanonicalEpisode(CanonicalModel):
    """A single episode normalised from any upstream generation."""

    id: str
    number: int | float | None = None
    sort_order: int | None = None
    title: str
    title_english: str | None = None
    duration_seconds: int | None = None
    preview_url: str | None = None
    video_urls: dict[str, str | None] = Field(
        default_factory=lambda: {"480": None, "720": None, "1080": None}
    )
    opening: TimeRange | None = None
    ending: TimeRange | None = None
    external_player_ids: ExternalPlayerIds | None = None
    release_id: str | None = None
    updated_at: str | None = None


class VideoQuality(CanonicalModel):
    height: int
    src: str
    label: str


class EpisodeVideo(CanonicalModel):
    """Resolved stream for the player page."""

    url: str
    available_qualities: list[VideoQuality] = Field(default_factory=list)
    type: Literal["hls"] = "hls"
    episode: CanonicalEpisode


class SearchFilters(CanonicalModel):
    """Optional filters applied to search and catalog requests."""

    genre: str | None = None
    year: int | None = None
    status: AnimeStatus | None = None
    rating: float | None = None
    limit: int | None = Field(default=None, ge=1, le=100)

    def upstream_params(self) -> dict[str, str | int | float]:
        """Return only the filters that carry a value."""

        params: dict[str, str | int | float] = {}
        for key in ("genre", "year", "status", "rating"):
            value = getattr(self, key)
            if value is None or value == "":
                continue
            params[key] = value
        return params

    def is_empty(self) -> bool:
        return not self.upstream_params()


class SourceStatus(CanonicalModel):
    source: str
    ok: bool
    latency_ms: int | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ResolutionResult(Generic[T]):
    """Outcome of one pipeline invocation for one data slot."""

    data: T
    source_used: SourceKind | None
    success: bool


@dataclass(frozen=True, slots=True)
class HomepageResult:
    """The two independently resolved homepage slots."""

    popular: ResolutionResult[list[CanonicalAnime]]
    latest: ResolutionResult[list[CanonicalAnime]]
