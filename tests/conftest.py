"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def aniliberty_release() -> Callable[..., dict[str, Any]]:
    """Factory for generation 2 release records."""

    def build(release_id: int = 9001, **overrides: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": release_id,
            "alias": f"release-{release_id}",
            "year": 2024,
            "type": {"value": "TV", "description": "ТВ"},
            "name": {
                "main": "Поднятие уровня в одиночку",
                "english": "Solo Leveling",
                "alternative": "Ore dake Level Up na Ken",
            },
            "poster": {
                "src": f"/storage/releases/posters/{release_id}/src.jpg",
                "preview": f"/storage/releases/posters/{release_id}/preview.jpg",
                "thumbnail": f"/storage/releases/posters/{release_id}/thumb.jpg",
                "optimized": {
                    "preview": f"/storage/releases/posters/{release_id}/preview.webp"
                },
            },
            "is_ongoing": True,
            "is_in_production": True,
            "description": "Охотник E-ранга получает второй шанс.",
            "episodes_total": 12,
            "genres": [{"id": 1, "name": "Экшен"}, {"id": 9, "name": "Фэнтези"}],
            "age_rating": {"value": "R16_PLUS", "label": "16+"},
            "season": {"value": "winter", "description": "Зима"},
            "average_duration_of_episode": 24,
            "publish_day": {"value": 6, "description": "Суббота"},
            "added_in_users_favorites": 1500,
            "fresh_at": "2024-03-30T12:00:00+00:00",
            "updated_at": "2024-03-30T12:00:00+00:00",
        }
        record.update(overrides)
        return record

    return build


@pytest.fixture
def aniliberty_episode() -> Callable[..., dict[str, Any]]:
    """Factory for generation 2 episode records."""

    def build(ordinal: float = 1, **overrides: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": f"ep-{ordinal}",
            "ordinal": ordinal,
            "sort_order": int(ordinal),
            "name": None,
            "name_english": None,
            "duration": 1420,
            "preview": {"optimized": {"preview": "/storage/episodes/preview.webp"}},
            "hls_480": f"https://cache.example/{ordinal}/480.m3u8",
            "hls_720": f"https://cache.example/{ordinal}/720.m3u8",
            "hls_1080": f"https://cache.example/{ordinal}/1080.m3u8",
            "opening": {"start": 30, "stop": 120},
            "ending": {"start": None, "stop": None},
            "rutube_id": None,
            "youtube_id": "dQw4w9WgXcQ",
            "release_id": 9001,
            "updated_at": "2024-03-30T12:00:00+00:00",
        }
        record.update(overrides)
        return record

    return build


@pytest.fixture
def anilibria_title() -> Callable[..., dict[str, Any]]:
    """Factory for generation 1 title records."""

    def build(title_id: int = 7001, **overrides: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": title_id,
            "code": f"title-{title_id}",
            "names": {"ru": "Магическая битва", "en": "Jujutsu Kaisen", "alternative": None},
            "announce": "Новая серия каждый четверг",
            "status": {"string": "Завершен", "code": 2},
            "posters": {
                "small": {"url": f"/storage/releases/posters/{title_id}/small.jpg"},
                "medium": {"url": f"/storage/releases/posters/{title_id}/medium.jpg"},
                "original": {"url": f"/storage/releases/posters/{title_id}/original.jpg"},
            },
            "updated": 1711800000,
            "type": {"full_string": "ТВ (24 эп.), 23 мин.", "string": "TV", "episodes": 24, "length": 23},
            "genres": ["Экшен", "Сёнэн"],
            "season": {"string": "осень", "year": 2020},
            "description": "Юдзи Итадори проглатывает палец проклятия.",
            "in_favorites": 4200,
            "player": {
                "host": "cache.libria.fun",
                "list": {
                    "1": {
                        "episode": 1,
                        "name": "Рёмен Сукуна",
                        "uuid": "a1",
                        "created_timestamp": 1601000000,
                        "preview": "/storage/releases/episodes/previews/1.jpg",
                        "skips": {"opening": [90, 180], "ending": []},
                        "hls": {
                            "fhd": "/videos/media/ts/7001/1/1080/index.m3u8",
                            "hd": "/videos/media/ts/7001/1/720/index.m3u8",
                            "sd": "/videos/media/ts/7001/1/480/index.m3u8",
                        },
                    },
                    "2": {
                        "episode": 2,
                        "name": None,
                        "uuid": "a2",
                        "hls": {"fhd": None, "hd": None, "sd": "/videos/media/ts/7001/2/480/index.m3u8"},
                    },
                },
            },
        }
        record.update(overrides)
        return record

    return build
