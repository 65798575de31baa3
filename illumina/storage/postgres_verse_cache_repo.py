"""Postgres-backed verse validation cache using SQLAlchemy."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from illumina.schema.generation import BibleVerseValidation
from illumina.storage.verse_cache_repo import VerseCacheRepository, VerseCacheStats
from illumina.workflow.models import VerseValidationCacheEntry, VerseValidationStatus


class PostgresVerseCacheRepository(VerseCacheRepository):
  """Persist verse validation outcomes to the `bible_verse_validations` table."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def get_entry(self, normalized_reference: str) -> VerseValidationCacheEntry | None:
    async with self._session_factory() as session:
      stmt = select(BibleVerseValidation).where(BibleVerseValidation.normalized_reference == normalized_reference).order_by(BibleVerseValidation.last_validated_at.desc()).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return self._row_to_entry(row)

  async def upsert_entry(self, entry: VerseValidationCacheEntry) -> None:
    values = {
      "reference": entry.reference,
      "normalized_reference": entry.normalized_reference,
      "validation_status": entry.validation_status.value,
      "verse_text": entry.verse_text,
      "translation": entry.translation,
      "api_response": entry.api_response,
      "error_message": entry.error_message,
      "last_validated_at": entry.last_validated_at,
      "cache_expires_at": entry.cache_expires_at,
    }
    stmt = insert(BibleVerseValidation).values(**values)
    stmt = stmt.on_conflict_do_update(index_elements=[BibleVerseValidation.reference], set_={key: stmt.excluded[key] for key in values if key != "reference"})
    async with self._session_factory() as session:
      await session.execute(stmt)
      await session.commit()

  async def delete_expired(self, now: datetime) -> int:
    async with self._session_factory() as session:
      result = await session.execute(delete(BibleVerseValidation).where(BibleVerseValidation.cache_expires_at < now))
      await session.commit()
      return int(result.rowcount or 0)

  async def stats(self, now: datetime) -> VerseCacheStats:
    async with self._session_factory() as session:
      total = await session.scalar(select(func.count()).select_from(BibleVerseValidation))
      valid = await session.scalar(select(func.count()).select_from(BibleVerseValidation).where(BibleVerseValidation.validation_status == VerseValidationStatus.VALID.value))
      expired = await session.scalar(select(func.count()).select_from(BibleVerseValidation).where(BibleVerseValidation.cache_expires_at < now))
      return VerseCacheStats(total=int(total or 0), valid=int(valid or 0), expired=int(expired or 0))

  def _row_to_entry(self, row: BibleVerseValidation) -> VerseValidationCacheEntry:
    return VerseValidationCacheEntry(
      reference=row.reference,
      normalized_reference=row.normalized_reference,
      validation_status=VerseValidationStatus(row.validation_status),
      last_validated_at=row.last_validated_at,
      cache_expires_at=row.cache_expires_at,
      verse_text=row.verse_text,
      translation=row.translation,
      api_response=row.api_response,
      error_message=row.error_message,
    )
