"""Cache-first validation of scripture references."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from illumina.storage.verse_cache_repo import VerseCacheRepository, VerseCacheStats
from illumina.verses.lookup import ScriptureLookup, ScriptureLookupResult
from illumina.verses.references import normalize_reference
from illumina.workflow.models import VerseValidationCacheEntry, VerseValidationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerseValidationResult:
  reference: str
  normalized_reference: str
  status: VerseValidationStatus
  verse_text: str | None = None
  translation: str | None = None
  error_message: str | None = None
  from_cache: bool = False

  @property
  def is_valid(self) -> bool:
    return self.status == VerseValidationStatus.VALID

  def to_dict(self) -> dict[str, Any]:
    return {
      "reference": self.reference,
      "normalizedReference": self.normalized_reference,
      "isValid": self.is_valid,
      "validationStatus": self.status.value,
      "errorMessage": self.error_message,
      "fromCache": self.from_cache,
    }


class BibleVerseValidator:
  """Validate references through the shared cache, falling back to the lookup service.

  Fresh cache entries are served without a lookup. Valid, invalid and
  not-found outcomes are cached for `ttl_seconds`; API errors are never cached,
  and an expired entry is served instead when one exists.
  """

  def __init__(
    self,
    cache: VerseCacheRepository,
    lookup: ScriptureLookup,
    *,
    ttl_seconds: int = 86400,
    batch_size: int = 5,
    batch_delay_seconds: float = 0.5,
    clock: Callable[[], datetime] | None = None,
  ) -> None:
    if batch_size < 1:
      raise ValueError("batch_size must be at least 1.")
    self._cache = cache
    self._lookup = lookup
    self._ttl = timedelta(seconds=ttl_seconds)
    self._batch_size = batch_size
    self._batch_delay = batch_delay_seconds
    self._clock = clock or (lambda: datetime.now(UTC))

  async def validate_reference(self, reference: str) -> VerseValidationResult:
    normalized = normalize_reference(reference)
    now = self._clock()
    cached = await self._cache.get_entry(normalized)
    if cached is not None and not cached.is_expired(now):
      logger.debug("Using cached validation for %r.", reference)
      return self._from_entry(reference, cached)

    result = await self._lookup.lookup(reference)
    if result.status == VerseValidationStatus.API_ERROR:
      if cached is not None:
        logger.info("Using expired cache for %r after scripture API error.", reference)
        return self._from_entry(reference, cached)
      return self._from_lookup(reference, normalized, result)

    entry = VerseValidationCacheEntry(
      reference=reference,
      normalized_reference=normalized,
      validation_status=result.status,
      last_validated_at=now,
      cache_expires_at=now + self._ttl,
      verse_text=result.verse_text,
      translation=result.translation,
      api_response=result.api_response,
      error_message=result.error_message,
    )
    await self._cache.upsert_entry(entry)
    return self._from_lookup(reference, normalized, result)

  async def validate_references(self, references: Iterable[str]) -> list[VerseValidationResult]:
    """Validate unique references in concurrent batches, pausing between batches."""
    unique = list(dict.fromkeys(reference.strip() for reference in references if reference and reference.strip()))
    results: list[VerseValidationResult] = []

    for start in range(0, len(unique), self._batch_size):
      batch = unique[start : start + self._batch_size]
      results.extend(await asyncio.gather(*(self.validate_reference(reference) for reference in batch)))
      if start + self._batch_size < len(unique) and self._batch_delay > 0:
        await asyncio.sleep(self._batch_delay)

    valid = sum(1 for result in results if result.is_valid)
    logger.info("Validated %d scripture references: %d valid.", len(results), valid)
    return results

  async def clean_expired_cache(self) -> int:
    removed = await self._cache.delete_expired(self._clock())
    logger.info("Removed %d expired verse cache entries.", removed)
    return removed

  async def cache_stats(self) -> VerseCacheStats:
    return await self._cache.stats(self._clock())

  def _from_entry(self, reference: str, entry: VerseValidationCacheEntry) -> VerseValidationResult:
    return VerseValidationResult(
      reference=reference,
      normalized_reference=entry.normalized_reference,
      status=entry.validation_status,
      verse_text=entry.verse_text,
      translation=entry.translation,
      error_message=entry.error_message,
      from_cache=True,
    )

  def _from_lookup(self, reference: str, normalized: str, result: ScriptureLookupResult) -> VerseValidationResult:
    return VerseValidationResult(
      reference=reference,
      normalized_reference=normalized,
      status=result.status,
      verse_text=result.verse_text,
      translation=result.translation,
      error_message=result.error_message,
    )
