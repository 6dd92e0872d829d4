"""Local catalog source backed by the application's own database."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import AnimeRecord
from ..errors import SourceError
from ..models import CanonicalAnime, SearchFilters, SourceKind

logger = logging.getLogger(__name__)


class LocalCatalog:
    """Reads canonical anime previously stored by the sync jobs."""

    name = "local"
    kind = SourceKind.LOCAL_CACHE

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def popular(self, count: int) -> list[CanonicalAnime]:
        statement = (
            select(AnimeRecord)
            .order_by(AnimeRecord.favorites.desc(), AnimeRecord.id)
            .limit(count)
        )
        return await self._load(statement)

    async def latest(self, count: int) -> list[CanonicalAnime]:
        statement = (
            select(AnimeRecord)
            .order_by(
                AnimeRecord.updated_at.is_(None),
                AnimeRecord.updated_at.desc(),
                AnimeRecord.synced_at.desc(),
            )
            .limit(count)
        )
        return await self._load(statement)

    async def search(
        self, query: str, filters: SearchFilters, *, limit: int
    ) -> list[CanonicalAnime]:
        statement = select(AnimeRecord)
        text = (query or "").strip()
        if text:
            pattern = f"%{_escape_like(text)}%"
            statement = statement.where(
                or_(
                    AnimeRecord.title.ilike(pattern, escape="\\"),
                    AnimeRecord.title_english.ilike(pattern, escape="\\"),
                    AnimeRecord.alias.ilike(pattern, escape="\\"),
                )
            )
        if filters.year is not None:
            statement = statement.where(AnimeRecord.year == filters.year)
        if filters.status is not None:
            statement = statement.where(AnimeRecord.status == filters.status)
        if filters.rating is not None:
            statement = statement.where(AnimeRecord.rating >= filters.rating)
        statement = statement.order_by(AnimeRecord.favorites.desc(), AnimeRecord.id)

        results = await self._load(statement)
        if filters.genre:
            wanted = filters.genre.casefold()
            results = [
                anime
                for anime in results
                if any(genre.casefold() == wanted for genre in anime.genres)
            ]
        return results[:limit]

    async def get(self, id_or_alias: str) -> CanonicalAnime | None:
        statement = (
            select(AnimeRecord)
            .where(or_(AnimeRecord.id == id_or_alias, AnimeRecord.alias == id_or_alias))
            .limit(1)
        )
        results = await self._load(statement)
        return results[0] if results else None

    async def genres(self) -> list[str]:
        """Distinct genre names across the stored catalog, sorted case-insensitively."""

        seen: dict[str, str] = {}
        for anime in await self._load(select(AnimeRecord)):
            for genre in anime.genres:
                seen.setdefault(genre.casefold(), genre)
        return sorted(seen.values(), key=str.casefold)

    async def upsert_many(self, animes: Iterable[CanonicalAnime]) -> int:
        """Insert or refresh records; returns the number written."""

        written = 0
        try:
            async with self._session_factory() as session:
                for anime in animes:
                    record = await session.get(AnimeRecord, anime.id)
                    if record is None:
                        record = AnimeRecord(id=anime.id)
                        session.add(record)
                    record.alias = anime.alias
                    record.title = anime.title
                    record.title_english = anime.title_english
                    record.year = anime.year
                    record.status = anime.status
                    record.rating = anime.rating
                    record.favorites = anime.favorites or 0
                    record.updated_at = anime.updated_at
                    record.payload = anime.model_dump(mode="json")
                    written += 1
                await session.commit()
        except SQLAlchemyError as exc:
            raise SourceError(self.name, f"failed to store anime: {exc}") from exc
        return written

    async def _load(self, statement) -> list[CanonicalAnime]:
        try:
            async with self._session_factory() as session:
                rows: Sequence[AnimeRecord] = (await session.scalars(statement)).all()
        except SQLAlchemyError as exc:
            raise SourceError(self.name, f"query failed: {exc}") from exc

        animes: list[CanonicalAnime] = []
        for row in rows:
            try:
                animes.append(CanonicalAnime.model_validate(row.payload))
            except ValidationError:
                logger.warning("Skipping unreadable local anime record %s", row.id)
        return animes


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
