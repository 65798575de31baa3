"""Storage interfaces for the shared scripture verse validation cache."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from illumina.workflow.models import VerseValidationCacheEntry, VerseValidationStatus


@dataclass(frozen=True)
class VerseCacheStats:
  total: int
  valid: int
  expired: int


class VerseCacheRepository(Protocol):
  """Repository contract for the process-wide verse cache."""

  async def get_entry(self, normalized_reference: str) -> VerseValidationCacheEntry | None:
    """Return the most recently validated entry for the normalized reference, expired or not."""

  async def upsert_entry(self, entry: VerseValidationCacheEntry) -> None:
    """Insert or overwrite the entry keyed by its raw reference (last write wins)."""

  async def delete_expired(self, now: datetime) -> int:
    """Delete entries whose expiry has passed and return how many were removed."""

  async def stats(self, now: datetime) -> VerseCacheStats:
    """Summarize cache contents."""


class InMemoryVerseCacheRepository(VerseCacheRepository):
  """Dictionary-backed verse cache for tests and database-less runs."""

  def __init__(self) -> None:
    self._entries: dict[str, VerseValidationCacheEntry] = {}

  async def get_entry(self, normalized_reference: str) -> VerseValidationCacheEntry | None:
    matches = [entry for entry in self._entries.values() if entry.normalized_reference == normalized_reference]
    if not matches:
      return None
    return max(matches, key=lambda entry: entry.last_validated_at)

  async def upsert_entry(self, entry: VerseValidationCacheEntry) -> None:
    self._entries[entry.reference] = entry

  async def delete_expired(self, now: datetime) -> int:
    expired = [reference for reference, entry in self._entries.items() if entry.cache_expires_at is not None and entry.cache_expires_at < now]
    for reference in expired:
      del self._entries[reference]
    return len(expired)

  async def stats(self, now: datetime) -> VerseCacheStats:
    entries = list(self._entries.values())
    return VerseCacheStats(
      total=len(entries),
      valid=sum(1 for entry in entries if entry.validation_status == VerseValidationStatus.VALID),
      expired=sum(1 for entry in entries if entry.cache_expires_at is not None and entry.cache_expires_at < now),
    )
