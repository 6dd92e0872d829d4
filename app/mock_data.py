"""Static homepage dataset shown when every other source is unavailable."""

from __future__ import annotations

from .models import CanonicalAnime


MOCK_ANIME: tuple[CanonicalAnime, ...] = (
    CanonicalAnime(
        id="test1",
        title="Эта фарфоровая кукла влюбилась 2",
        title_english="Sono Bisque Doll wa Koi wo Suru 2",
        year=2025,
        status="ongoing",
        poster_url="https://www.anilibria.tv/storage/releases/posters/9964/medium.jpg",
        genres=["Романтика", "Комедия", "Школа"],
        rating=8.5,
    ),
    CanonicalAnime(
        id="test2",
        title="Кайдзю номер восемь 2",
        title_english="Kaiju No. 8 Season 2",
        year=2025,
        status="ongoing",
        poster_url="https://www.anilibria.tv/storage/releases/posters/9988/medium.jpg",
        genres=["Экшен", "Сёнэн", "Супер сила"],
        rating=8.8,
    ),
)


def mock_anime() -> list[CanonicalAnime]:
    """Return a fresh list so callers never share the module-level tuple."""

    return list(MOCK_ANIME)
