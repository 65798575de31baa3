from __future__ import annotations

import pytest

from illumina.ai.pipeline.contracts import DailyStudyContent
from illumina.workflow.content import ContentStore
from illumina.workflow.errors import IllegalContentTransitionError
from illumina.workflow.models import ContentGenerationStatus, ContentValidationStatus


def _day(day: int = 1) -> DailyStudyContent:
  return DailyStudyContent.model_validate(
    {
      "day": day,
      "title": f"Day {day}: Rooted in Love",
      "estimatedTime": "20 minutes",
      "theme": "Love",
      "openingPrayer": "Lord, open our hearts.",
      "teachingPoint": "Love is patient and kind.",
      "passages": [{"reference": "1 Corinthians 13:4-7", "verses": [{"verse": 4, "content": "Charity suffereth long, and is kind"}]}],
      "discussionQuestions": ["Where is patience hardest for you?"],
      "applicationPoints": ["Write one encouraging note today."],
    }
  )


@pytest.mark.anyio
async def test_record_generated_day_maps_content_fields(workflow_repo, clock) -> None:
  store = ContentStore(workflow_repo, clock=clock)
  record = await store.record_generated_day("req-1", _day(), week_number=1)

  assert record.day_number == 1
  assert record.week_number == 1
  assert record.teaching_content == "Love is patient and kind."
  assert record.bible_passages[0]["reference"] == "1 Corinthians 13:4-7"
  assert record.discussion_questions == ["Where is patience hardest for you?"]
  assert record.content_data["estimatedTime"] == "20 minutes"
  assert record.generation_status == ContentGenerationStatus.COMPLETED
  assert record.validation_status == ContentValidationStatus.PENDING


@pytest.mark.anyio
async def test_regenerating_a_day_replaces_the_row(workflow_repo, clock) -> None:
  store = ContentStore(workflow_repo, clock=clock)
  await store.record_generated_day("req-1", _day(2))
  await store.record_generated_day("req-1", _day(1))
  await store.record_generated_day("req-1", _day(1))

  days = await store.list_days("req-1")
  assert [day.day_number for day in days] == [1, 2]


@pytest.mark.anyio
async def test_validation_lifecycle_is_independent_of_generation(workflow_repo, clock) -> None:
  store = ContentStore(workflow_repo, clock=clock)
  await store.record_generated_day("req-1", _day())

  await store.mark_validation("req-1", 1, ContentValidationStatus.VALIDATING)
  review = await store.mark_validation("req-1", 1, ContentValidationStatus.NEEDS_REVIEW, notes="Clarify the application point.")
  assert review.generation_status == ContentGenerationStatus.COMPLETED
  assert review.validation_notes == "Clarify the application point."

  await store.mark_validation("req-1", 1, ContentValidationStatus.VALIDATING)
  approved = await store.mark_validation("req-1", 1, ContentValidationStatus.APPROVED)
  assert approved.validation_status == ContentValidationStatus.APPROVED
  assert approved.validation_notes == "Clarify the application point."

  with pytest.raises(IllegalContentTransitionError):
    await store.mark_validation("req-1", 1, ContentValidationStatus.VALIDATING)


@pytest.mark.anyio
async def test_generation_lifecycle_rejects_reopening_completed_day(workflow_repo, clock) -> None:
  store = ContentStore(workflow_repo, clock=clock)
  await store.record_generated_day("req-1", _day())

  assert (await store.mark_generation("req-1", 1, ContentGenerationStatus.COMPLETED)).generation_status == ContentGenerationStatus.COMPLETED
  with pytest.raises(IllegalContentTransitionError):
    await store.mark_generation("req-1", 1, ContentGenerationStatus.GENERATING)
  with pytest.raises(LookupError):
    await store.mark_generation("req-1", 9, ContentGenerationStatus.GENERATING)
