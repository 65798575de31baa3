"""Postgres-backed workflow repository using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from illumina.ai.pipeline.contracts import StudyParameters
from illumina.schema.generation import GeneratedStudyContent, StudyGenerationRequest, WorkflowState
from illumina.storage.workflow_repo import WorkflowRepository
from illumina.workflow.models import (
  ContentGenerationStatus,
  ContentValidationStatus,
  GeneratedDayContentRecord,
  GenerationRequestRecord,
  GenerationStatus,
  StepStatus,
  WorkflowStep,
  WorkflowStepRecord,
)


def _now() -> datetime:
  return datetime.now(UTC)


class PostgresWorkflowRepository(WorkflowRepository):
  """Persist requests, workflow steps and day content to Postgres."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def create_request(self, record: GenerationRequestRecord) -> None:
    params = record.parameters
    async with self._session_factory() as session:
      row = StudyGenerationRequest(
        id=record.request_id,
        user_id=record.user_id,
        title=params.title,
        topic=params.topic,
        duration=params.duration,
        duration_days=params.duration_days,
        study_style=params.study_style,
        difficulty=params.difficulty,
        audience=params.audience,
        special_requirements=params.special_requirements,
        request_details=params.model_dump(mode="json"),
        status=record.status.value,
        progress_percentage=record.progress_percentage,
        error_message=record.error_message,
        completion_date=record.completion_date,
        created_at=record.created_at,
        updated_at=record.updated_at,
      )
      session.add(row)
      await session.commit()

  async def get_request(self, request_id: str) -> GenerationRequestRecord | None:
    async with self._session_factory() as session:
      row = await session.get(StudyGenerationRequest, request_id)
      if row is None:
        return None
      return self._request_to_record(row)

  async def save_request(self, record: GenerationRequestRecord, *, expected_status: GenerationStatus) -> GenerationRequestRecord | None:
    async with self._session_factory() as session:
      row = await session.get(StudyGenerationRequest, record.request_id, with_for_update=True)
      if row is None or row.status != expected_status.value:
        return None
      row.status = record.status.value
      row.progress_percentage = record.progress_percentage
      row.error_message = record.error_message
      row.completion_date = record.completion_date
      row.updated_at = record.updated_at
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._request_to_record(row)

  async def get_step(self, request_id: str, step_name: WorkflowStep) -> WorkflowStepRecord | None:
    async with self._session_factory() as session:
      stmt = select(WorkflowState).where(WorkflowState.request_id == request_id, WorkflowState.current_step == step_name.value).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return self._step_to_record(row)

  async def list_steps(self, request_id: str) -> list[WorkflowStepRecord]:
    async with self._session_factory() as session:
      stmt = select(WorkflowState).where(WorkflowState.request_id == request_id).order_by(WorkflowState.id.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._step_to_record(row) for row in rows]

  async def transition_step(self, record: WorkflowStepRecord, *, expected_status: StepStatus | None) -> WorkflowStepRecord | None:
    async with self._session_factory() as session:
      stmt = select(WorkflowState).where(WorkflowState.request_id == record.request_id, WorkflowState.current_step == record.step_name.value).with_for_update().limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()

      if row is None:
        if expected_status is not None:
          return None
        row = WorkflowState(request_id=record.request_id, current_step=record.step_name.value)
        self._apply_step(row, record)
        session.add(row)
        try:
          await session.commit()
        except IntegrityError:
          # Another writer inserted the same (request, step) row first.
          await session.rollback()
          return None
        await session.refresh(row)
        return self._step_to_record(row)

      if row.step_status != (expected_status.value if expected_status is not None else None):
        return None
      self._apply_step(row, record)
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._step_to_record(row)

  async def save_day_content(self, record: GeneratedDayContentRecord) -> GeneratedDayContentRecord:
    async with self._session_factory() as session:
      stmt = select(GeneratedStudyContent).where(GeneratedStudyContent.request_id == record.request_id, GeneratedStudyContent.day_number == record.day_number).with_for_update().limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        row = GeneratedStudyContent(request_id=record.request_id, day_number=record.day_number)
      self._apply_content(row, record)
      session.add(row)
      try:
        await session.commit()
      except IntegrityError:
        await session.rollback()
        row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
          raise
        self._apply_content(row, record)
        session.add(row)
        await session.commit()
      await session.refresh(row)
      return self._content_to_record(row)

  async def get_day_content(self, request_id: str, day_number: int) -> GeneratedDayContentRecord | None:
    async with self._session_factory() as session:
      stmt = select(GeneratedStudyContent).where(GeneratedStudyContent.request_id == request_id, GeneratedStudyContent.day_number == day_number).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return self._content_to_record(row)

  async def list_day_content(self, request_id: str) -> list[GeneratedDayContentRecord]:
    async with self._session_factory() as session:
      stmt = select(GeneratedStudyContent).where(GeneratedStudyContent.request_id == request_id).order_by(GeneratedStudyContent.day_number.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._content_to_record(row) for row in rows]

  def _apply_step(self, row: WorkflowState, record: WorkflowStepRecord) -> None:
    row.step_status = record.step_status.value
    row.step_data = record.step_data
    row.error_details = record.error_details
    row.retry_count = record.retry_count
    row.started_at = record.started_at
    row.completed_at = record.completed_at
    row.updated_at = record.updated_at or _now()

  def _apply_content(self, row: GeneratedStudyContent, record: GeneratedDayContentRecord) -> None:
    row.week_number = record.week_number
    row.title = record.title
    row.theme = record.theme
    row.opening_prayer = record.opening_prayer
    row.study_focus = record.study_focus
    row.teaching_content = record.teaching_content
    row.bible_passages = record.bible_passages
    row.discussion_questions = record.discussion_questions
    row.reflection_question = record.reflection_question
    row.application_points = record.application_points
    row.prayer_focus = record.prayer_focus
    row.estimated_time = record.estimated_time
    row.content_data = record.content_data
    row.generation_status = record.generation_status.value
    row.validation_status = record.validation_status.value
    row.validation_notes = record.validation_notes
    row.updated_at = record.updated_at or _now()

  def _request_to_record(self, row: StudyGenerationRequest) -> GenerationRequestRecord:
    return GenerationRequestRecord(
      request_id=row.id,
      user_id=row.user_id,
      parameters=StudyParameters.model_validate(row.request_details),
      status=GenerationStatus(row.status),
      progress_percentage=int(row.progress_percentage or 0),
      created_at=row.created_at,
      updated_at=row.updated_at,
      error_message=row.error_message,
      completion_date=row.completion_date,
    )

  def _step_to_record(self, row: WorkflowState) -> WorkflowStepRecord:
    return WorkflowStepRecord(
      request_id=row.request_id,
      step_name=WorkflowStep(row.current_step),
      step_status=StepStatus(row.step_status),
      step_data=dict(row.step_data or {}),
      error_details=row.error_details,
      retry_count=int(row.retry_count or 0),
      started_at=row.started_at,
      completed_at=row.completed_at,
      updated_at=row.updated_at,
    )

  def _content_to_record(self, row: GeneratedStudyContent) -> GeneratedDayContentRecord:
    return GeneratedDayContentRecord(
      request_id=row.request_id,
      day_number=row.day_number,
      title=row.title,
      content_data=dict(row.content_data or {}),
      week_number=row.week_number,
      theme=row.theme,
      opening_prayer=row.opening_prayer,
      study_focus=row.study_focus,
      teaching_content=row.teaching_content,
      bible_passages=list(row.bible_passages or []),
      discussion_questions=list(row.discussion_questions or []),
      reflection_question=row.reflection_question,
      application_points=list(row.application_points or []),
      prayer_focus=row.prayer_focus,
      estimated_time=row.estimated_time,
      generation_status=ContentGenerationStatus(row.generation_status),
      validation_status=ContentValidationStatus(row.validation_status),
      validation_notes=row.validation_notes,
      updated_at=row.updated_at,
    )
