"""Generated day content and its two independent lifecycles."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from illumina.ai.pipeline.contracts import DailyStudyContent
from illumina.workflow.errors import IllegalContentTransitionError
from illumina.workflow.models import ContentGenerationStatus, ContentValidationStatus, GeneratedDayContentRecord

if TYPE_CHECKING:
  from illumina.storage.workflow_repo import WorkflowRepository

logger = logging.getLogger(__name__)

GENERATION_TRANSITIONS: dict[ContentGenerationStatus, frozenset[ContentGenerationStatus]] = {
  ContentGenerationStatus.PENDING: frozenset({ContentGenerationStatus.GENERATING}),
  ContentGenerationStatus.GENERATING: frozenset({ContentGenerationStatus.VALIDATING, ContentGenerationStatus.COMPLETED, ContentGenerationStatus.FAILED}),
  ContentGenerationStatus.VALIDATING: frozenset({ContentGenerationStatus.COMPLETED, ContentGenerationStatus.FAILED}),
  ContentGenerationStatus.COMPLETED: frozenset(),
  ContentGenerationStatus.FAILED: frozenset({ContentGenerationStatus.GENERATING}),
}

VALIDATION_TRANSITIONS: dict[ContentValidationStatus, frozenset[ContentValidationStatus]] = {
  ContentValidationStatus.PENDING: frozenset({ContentValidationStatus.VALIDATING}),
  ContentValidationStatus.VALIDATING: frozenset({ContentValidationStatus.APPROVED, ContentValidationStatus.REJECTED, ContentValidationStatus.NEEDS_REVIEW}),
  ContentValidationStatus.APPROVED: frozenset(),
  ContentValidationStatus.REJECTED: frozenset(),
  ContentValidationStatus.NEEDS_REVIEW: frozenset({ContentValidationStatus.VALIDATING}),
}


def day_content_from_model(request_id: str, content: DailyStudyContent, *, week_number: int | None = None, now: datetime | None = None) -> GeneratedDayContentRecord:
  """Flatten a validated `DailyStudyContent` into a storable day record."""
  return GeneratedDayContentRecord(
    request_id=request_id,
    day_number=content.day,
    week_number=week_number,
    title=content.title,
    theme=content.theme,
    opening_prayer=content.opening_prayer,
    study_focus=content.study_focus,
    teaching_content=content.teaching_point,
    bible_passages=[passage.model_dump(mode="json") for passage in content.passages],
    discussion_questions=list(content.discussion_questions or []),
    reflection_question=content.reflection_question,
    application_points=list(content.application_points or []),
    prayer_focus=content.prayer_focus,
    estimated_time=content.estimated_time,
    content_data=content.model_dump(mode="json", by_alias=True),
    generation_status=ContentGenerationStatus.COMPLETED,
    validation_status=ContentValidationStatus.PENDING,
    updated_at=now,
  )


class ContentStore:
  """Persist generated days and move their generation and validation statuses."""

  def __init__(self, repo: WorkflowRepository, *, clock: Callable[[], datetime] | None = None) -> None:
    self._repo = repo
    self._clock = clock or (lambda: datetime.now(UTC))

  async def record_generated_day(self, request_id: str, content: DailyStudyContent, *, week_number: int | None = None) -> GeneratedDayContentRecord:
    record = day_content_from_model(request_id, content, week_number=week_number, now=self._clock())
    saved = await self._repo.save_day_content(record)
    logger.debug("Stored day %d content for request %s.", saved.day_number, request_id)
    return saved

  async def list_days(self, request_id: str) -> list[GeneratedDayContentRecord]:
    return await self._repo.list_day_content(request_id)

  async def mark_generation(self, request_id: str, day_number: int, status: ContentGenerationStatus) -> GeneratedDayContentRecord:
    record = await self._require_day(request_id, day_number)
    if record.generation_status == status:
      return record
    if status not in GENERATION_TRANSITIONS[record.generation_status]:
      raise IllegalContentTransitionError(f"Day {day_number} generation cannot move from {record.generation_status.value} to {status.value}.")
    return await self._repo.save_day_content(replace(record, generation_status=status, updated_at=self._clock()))

  async def mark_validation(self, request_id: str, day_number: int, status: ContentValidationStatus, *, notes: str | None = None) -> GeneratedDayContentRecord:
    """Move the day's review status; `notes` replaces any previous reviewer notes when given."""
    record = await self._require_day(request_id, day_number)
    if record.validation_status == status and notes is None:
      return record
    if record.validation_status != status and status not in VALIDATION_TRANSITIONS[record.validation_status]:
      raise IllegalContentTransitionError(f"Day {day_number} validation cannot move from {record.validation_status.value} to {status.value}.")
    validation_notes = notes if notes is not None else record.validation_notes
    return await self._repo.save_day_content(replace(record, validation_status=status, validation_notes=validation_notes, updated_at=self._clock()))

  async def _require_day(self, request_id: str, day_number: int) -> GeneratedDayContentRecord:
    record = await self._repo.get_day_content(request_id, day_number)
    if record is None:
      raise LookupError(f"No generated content for day {day_number} of request {request_id}.")
    return record
