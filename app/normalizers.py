"""Convert raw upstream records into the canonical anime/episode shape.

Every function here is pure: the same raw record always produces an equal
result, and malformed-but-present fields degrade to ``None`` (or an empty
list) instead of raising. Records without an identifier cannot be addressed
by the frontend and normalise to ``None``.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from .models import (
    CanonicalAnime,
    CanonicalEpisode,
    ExternalPlayerIds,
    TimeRange,
    VideoQuality,
)
from .utils import (
    as_mapping,
    coerce_float,
    coerce_int,
    coerce_text,
    compact_number,
    first_text,
    join_asset_url,
)

UNTITLED = "Без названия"
EPISODE_TITLE_TEMPLATE = "Эпизод {number}"

# Fallback order when the requested quality was not encoded.
QUALITY_FALLBACK_ORDER: tuple[str, ...] = ("1080", "720", "480")

_LEGACY_HLS_KEYS = {"fhd": "1080", "hd": "720", "sd": "480"}


def image_url(image: Any, asset_host: str) -> str | None:
    """Resolve an AniLiberty image object to an absolute URL.

    Priority: ``optimized.preview`` > ``preview`` > ``src`` > ``thumbnail``.
    """

    if isinstance(image, str):
        return join_asset_url(asset_host, image)
    data = as_mapping(image)
    if not data:
        return None
    candidates = (
        as_mapping(data.get("optimized")).get("preview"),
        data.get("preview"),
        data.get("src"),
        data.get("thumbnail"),
    )
    for candidate in candidates:
        url = join_asset_url(asset_host, candidate)
        if url:
            return url
    return None


def _legacy_poster_url(posters: Any, asset_host: str) -> str | None:
    # medium/original/small play the preview/src/thumbnail roles in generation 1
    data = as_mapping(posters)
    for key in ("medium", "original", "small"):
        entry = data.get(key)
        path = entry if isinstance(entry, str) else as_mapping(entry).get("url")
        url = join_asset_url(asset_host, path)
        if url:
            return url
    return None


def genre_names(raw_genres: Any, *, unique: bool = False) -> list[str]:
    """Extract genre names from a list of strings or ``{"name": ...}`` records."""

    if not isinstance(raw_genres, Sequence) or isinstance(raw_genres, (str, bytes)):
        return []
    names: list[str] = []
    for genre in raw_genres:
        name = coerce_text(genre.get("name")) if isinstance(genre, Mapping) else coerce_text(genre)
        if name and not (unique and name in names):
            names.append(name)
    return names


def _time_range(value: Any) -> TimeRange | None:
    if isinstance(value, Mapping):
        start, stop = coerce_int(value.get("start")), coerce_int(value.get("stop"))
    elif isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and len(value) >= 2:
        start, stop = coerce_int(value[0]), coerce_int(value[1])
    else:
        return None
    if start is None and stop is None:
        return None
    return TimeRange(start=start, stop=stop)


def _episode_title(name: Any, name_english: Any, number: int | float | None) -> str:
    title = first_text(name, name_english)
    if title:
        return title
    return EPISODE_TITLE_TEMPLATE.format(number=number if number is not None else "?")


def anime_from_aniliberty(raw: Any, asset_host: str) -> CanonicalAnime | None:
    """Normalise a generation 2 (AniLiberty) release record."""

    if not isinstance(raw, Mapping):
        return None
    anime_id = coerce_text(raw.get("id"))
    if anime_id is None:
        return None

    name = as_mapping(raw.get("name"))
    release_type = as_mapping(raw.get("type"))
    return CanonicalAnime(
        id=anime_id,
        title=first_text(name.get("main"), name.get("english")) or UNTITLED,
        title_english=coerce_text(name.get("english")),
        title_alternative=coerce_text(name.get("alternative")),
        alias=coerce_text(raw.get("alias")),
        year=coerce_int(raw.get("year")),
        type=first_text(release_type.get("description"), release_type.get("value")),
        status="ongoing" if raw.get("is_ongoing") is True else "completed",
        poster_url=image_url(raw.get("poster"), asset_host),
        description=coerce_text(raw.get("description")),
        episode_count=coerce_int(raw.get("episodes_total")),
        genres=genre_names(raw.get("genres")),
        rating=None,
        age_rating=coerce_text(as_mapping(raw.get("age_rating")).get("label")),
        season=coerce_text(as_mapping(raw.get("season")).get("description")),
        duration_minutes=coerce_int(raw.get("average_duration_of_episode")),
        publish_day=coerce_text(as_mapping(raw.get("publish_day")).get("description")),
        favorites=coerce_int(raw.get("added_in_users_favorites")),
        updated_at=first_text(raw.get("fresh_at"), raw.get("updated_at")),
    )


def episode_from_aniliberty(raw: Any, asset_host: str) -> CanonicalEpisode | None:
    """Normalise a generation 2 (AniLiberty) episode record."""

    if not isinstance(raw, Mapping):
        return None
    episode_id = coerce_text(raw.get("id"))
    if episode_id is None:
        return None

    number = compact_number(raw.get("ordinal"))
    rutube_id = coerce_text(raw.get("rutube_id"))
    youtube_id = coerce_text(raw.get("youtube_id"))
    return CanonicalEpisode(
        id=episode_id,
        number=number,
        sort_order=coerce_int(raw.get("sort_order")),
        title=_episode_title(raw.get("name"), raw.get("name_english"), number),
        title_english=coerce_text(raw.get("name_english")),
        duration_seconds=coerce_int(raw.get("duration")),
        preview_url=image_url(raw.get("preview"), asset_host),
        video_urls={
            "480": coerce_text(raw.get("hls_480")),
            "720": coerce_text(raw.get("hls_720")),
            "1080": coerce_text(raw.get("hls_1080")),
        },
        opening=_time_range(raw.get("opening")),
        ending=_time_range(raw.get("ending")),
        external_player_ids=(
            ExternalPlayerIds(rutube=rutube_id, youtube=youtube_id)
            if rutube_id or youtube_id
            else None
        ),
        release_id=coerce_text(raw.get("release_id")),
        updated_at=coerce_text(raw.get("updated_at")),
    )


def anime_from_anilibria(raw: Any, asset_host: str) -> CanonicalAnime | None:
    """Normalise a generation 1 (AniLibria) title record."""

    if not isinstance(raw, Mapping):
        return None
    anime_id = coerce_text(raw.get("id"))
    if anime_id is None:
        return None

    names = as_mapping(raw.get("names"))
    title_type = as_mapping(raw.get("type"))
    season = as_mapping(raw.get("season"))
    status = as_mapping(raw.get("status"))
    ongoing = raw.get("is_ongoing") is True or coerce_int(status.get("code")) == 1
    return CanonicalAnime(
        id=anime_id,
        title=first_text(names.get("ru"), names.get("en")) or UNTITLED,
        title_english=coerce_text(names.get("en")),
        title_alternative=coerce_text(names.get("alternative")),
        alias=coerce_text(raw.get("code")),
        year=coerce_int(season.get("year")),
        type=first_text(title_type.get("string"), title_type.get("full_string")),
        status="ongoing" if ongoing else "completed",
        poster_url=_legacy_poster_url(raw.get("posters"), asset_host),
        description=coerce_text(raw.get("description")),
        episode_count=coerce_int(title_type.get("episodes")),
        genres=genre_names(raw.get("genres")),
        rating=coerce_float(raw.get("rating")),
        age_rating=None,
        season=coerce_text(season.get("string")),
        duration_minutes=coerce_int(title_type.get("length")),
        publish_day=coerce_text(raw.get("announce")),
        favorites=coerce_int(raw.get("in_favorites")),
        updated_at=coerce_text(raw.get("updated")),
    )


def _legacy_episode_entries(player: Mapping[str, Any]) -> Iterable[Any]:
    entries = player.get("list")
    if isinstance(entries, Mapping):
        return entries.values()
    if isinstance(entries, Sequence) and not isinstance(entries, (str, bytes)):
        return entries
    return ()


def legacy_episode_id(release_id: str, number: int | float | None) -> str:
    return f"{release_id}:{number}"


def episodes_from_anilibria(raw: Any, asset_host: str) -> list[CanonicalEpisode]:
    """Normalise the episodes embedded in a generation 1 title's player block."""

    if not isinstance(raw, Mapping):
        return []
    release_id = coerce_text(raw.get("id"))
    if release_id is None:
        return []

    player = as_mapping(raw.get("player"))
    stream_host = coerce_text(player.get("host"))
    stream_base = f"https://{stream_host}" if stream_host else asset_host

    episodes: list[CanonicalEpisode] = []
    for entry in _legacy_episode_entries(player):
        if not isinstance(entry, Mapping):
            continue
        number = compact_number(entry.get("episode"))
        if number is None:
            continue
        hls = as_mapping(entry.get("hls"))
        video_urls: dict[str, str | None] = {"480": None, "720": None, "1080": None}
        for key, label in _LEGACY_HLS_KEYS.items():
            video_urls[label] = join_asset_url(stream_base, hls.get(key))
        skips = as_mapping(entry.get("skips"))
        rutube_id = coerce_text(entry.get("rutube_id"))
        episodes.append(
            CanonicalEpisode(
                id=legacy_episode_id(release_id, number),
                number=number,
                sort_order=number if isinstance(number, int) else None,
                title=_episode_title(entry.get("name"), None, number),
                title_english=None,
                duration_seconds=None,
                preview_url=join_asset_url(asset_host, entry.get("preview")),
                video_urls=video_urls,
                opening=_time_range(skips.get("opening")),
                ending=_time_range(skips.get("ending")),
                external_player_ids=ExternalPlayerIds(rutube=rutube_id) if rutube_id else None,
                release_id=release_id,
                updated_at=coerce_text(entry.get("created_timestamp")),
            )
        )
    episodes.sort(key=lambda episode: (episode.number is None, episode.number or 0))
    return episodes


def pick_video_url(video_urls: Mapping[str, str | None], preferred: str | None) -> str | None:
    """Return the preferred quality or the best available one (1080 > 720 > 480)."""

    if preferred:
        url = video_urls.get(str(preferred))
        if url:
            return url
    for label in QUALITY_FALLBACK_ORDER:
        url = video_urls.get(label)
        if url:
            return url
    return None


def available_qualities(video_urls: Mapping[str, str | None]) -> list[VideoQuality]:
    qualities: list[VideoQuality] = []
    for label in QUALITY_FALLBACK_ORDER:
        url = video_urls.get(label)
        if url:
            qualities.append(VideoQuality(height=int(label), src=url, label=f"{label}p"))
    return qualities


def find_episode(
    episodes: Iterable[CanonicalEpisode], episode_number: Any
) -> CanonicalEpisode | None:
    """Return the episode with the requested ordinal.

    An exact ordinal match anywhere in the list wins. Whole numbers then fall
    back to the integer sort order, so ``"2.5"`` never resolves to episode 2.
    """

    ordinal = coerce_float(str(episode_number).strip()) if episode_number is not None else None
    if ordinal is None:
        return None
    candidates = list(episodes)
    for episode in candidates:
        if episode.number is not None and float(episode.number) == ordinal:
            return episode
    if not ordinal.is_integer():
        return None
    sort_order = int(ordinal)
    for episode in candidates:
        if episode.sort_order == sort_order:
            return episode
    return None
