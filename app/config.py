"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .models import QualityLabel


UpstreamName = Literal["primary", "legacy"]

CHAIN_SOURCES: tuple[str, ...] = ("primary", "legacy", "local")
DEFAULT_HOMEPAGE_CHAIN: tuple[str, ...] = CHAIN_SOURCES


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="AniCatalog", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=5000, alias="PORT")

    primary_api_url: HttpUrl = Field(
        default="https://aniliberty.top/api", alias="PRIMARY_API_URL"
    )
    primary_asset_host: HttpUrl = Field(
        default="https://aniliberty.top", alias="PRIMARY_ASSET_HOST"
    )
    primary_timeout_seconds: float = Field(
        default=15.0, alias="PRIMARY_TIMEOUT", gt=0, le=120
    )

    legacy_api_url: HttpUrl = Field(
        default="https://api.anilibria.tv/api/v1", alias="LEGACY_API_URL"
    )
    legacy_asset_host: HttpUrl = Field(
        default="https://anilibria.tv", alias="LEGACY_ASSET_HOST"
    )
    legacy_timeout_seconds: float = Field(
        default=10.0, alias="LEGACY_TIMEOUT", gt=0, le=120
    )

    homepage_chain: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_HOMEPAGE_CHAIN, alias="HOMEPAGE_CHAIN"
    )
    search_source: UpstreamName = Field(default="primary", alias="SEARCH_SOURCE")
    video_source: UpstreamName = Field(default="primary", alias="VIDEO_SOURCE")

    homepage_item_count: int = Field(
        default=12, alias="HOMEPAGE_ITEM_COUNT", ge=1, le=100
    )
    search_limit: int = Field(default=20, alias="SEARCH_LIMIT", ge=1, le=100)
    default_quality: QualityLabel = Field(
        default="720", alias="DEFAULT_QUALITY"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./anicatalog.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("homepage_chain", mode="before")
    @classmethod
    def _parse_homepage_chain(cls, value: object) -> tuple[str, ...]:
        """Normalise the homepage source order from environment values."""

        if value is None:
            return DEFAULT_HOMEPAGE_CHAIN
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("HOMEPAGE_CHAIN must be a string or iterable of strings")

        cleaned: list[str] = []
        for entry in raw_values:
            name = entry.lower()
            if not name:
                continue
            if name not in CHAIN_SOURCES:
                raise ValueError("Unknown homepage sources configured")
            if name not in cleaned:
                cleaned.append(name)
        if not cleaned:
            return DEFAULT_HOMEPAGE_CHAIN
        return tuple(cleaned)

    @field_validator("search_source", "video_source", mode="before")
    @classmethod
    def _lower_upstream_name(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
