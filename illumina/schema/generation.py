from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from illumina.core.database import Base


class StudyGenerationRequest(Base):
  __tablename__ = "study_generation_requests"
  __table_args__ = (
    CheckConstraint("status IN ('pending', 'processing', 'content_generation', 'validation', 'completed', 'failed', 'cancelled')", name="ck_study_generation_requests_status"),
    CheckConstraint("progress_percentage >= 0 AND progress_percentage <= 100", name="ck_study_generation_requests_progress"),
    CheckConstraint("duration_days >= 1 AND duration_days <= 30", name="ck_study_generation_requests_duration_days"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  title: Mapped[str] = mapped_column(String(255), nullable=False)
  topic: Mapped[str] = mapped_column(String(255), nullable=False)
  duration: Mapped[str] = mapped_column(String(50), nullable=False)
  duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
  study_style: Mapped[str] = mapped_column(String(50), nullable=False)
  difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
  audience: Mapped[str] = mapped_column(String(50), nullable=False)
  special_requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
  request_details: Mapped[dict] = mapped_column(JSONB, nullable=False)
  status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending", index=True)
  progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WorkflowState(Base):
  __tablename__ = "workflow_state"
  __table_args__ = (
    UniqueConstraint("request_id", "current_step", name="ux_workflow_state_request_step"),
    CheckConstraint("step_status IN ('pending', 'in_progress', 'completed', 'failed', 'skipped')", name="ck_workflow_state_step_status"),
    CheckConstraint("retry_count >= 0", name="ck_workflow_state_retry_count"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  request_id: Mapped[str] = mapped_column(ForeignKey("study_generation_requests.id", ondelete="CASCADE"), nullable=False, index=True)
  current_step: Mapped[str] = mapped_column(String(100), nullable=False)
  step_status: Mapped[str] = mapped_column(String(50), nullable=False)
  step_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  error_details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GeneratedStudyContent(Base):
  __tablename__ = "generated_study_content"
  __table_args__ = (
    UniqueConstraint("request_id", "day_number", name="ux_generated_study_content_request_day"),
    CheckConstraint("generation_status IN ('pending', 'generating', 'validating', 'completed', 'failed')", name="ck_generated_study_content_generation_status"),
    CheckConstraint("validation_status IN ('pending', 'validating', 'approved', 'rejected', 'needs_review')", name="ck_generated_study_content_validation_status"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  request_id: Mapped[str] = mapped_column(ForeignKey("study_generation_requests.id", ondelete="CASCADE"), nullable=False, index=True)
  day_number: Mapped[int] = mapped_column(Integer, nullable=False)
  week_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
  title: Mapped[str] = mapped_column(String(255), nullable=False)
  theme: Mapped[str | None] = mapped_column(String(255), nullable=True)
  opening_prayer: Mapped[str | None] = mapped_column(Text, nullable=True)
  study_focus: Mapped[str | None] = mapped_column(Text, nullable=True)
  teaching_content: Mapped[str | None] = mapped_column(Text, nullable=True)
  bible_passages: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  discussion_questions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  reflection_question: Mapped[str | None] = mapped_column(Text, nullable=True)
  application_points: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  prayer_focus: Mapped[str | None] = mapped_column(Text, nullable=True)
  estimated_time: Mapped[str | None] = mapped_column(String(50), nullable=True)
  content_data: Mapped[dict] = mapped_column(JSONB, nullable=False)
  generation_status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
  validation_status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
  validation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BibleVerseValidation(Base):
  __tablename__ = "bible_verse_validations"
  __table_args__ = (
    CheckConstraint("validation_status IN ('valid', 'invalid', 'not_found', 'api_error')", name="ck_bible_verse_validations_status"),
    Index("ix_bible_verse_validations_cache_expires_at", "cache_expires_at"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  reference: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
  normalized_reference: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
  validation_status: Mapped[str] = mapped_column(String(50), nullable=False)
  verse_text: Mapped[str | None] = mapped_column(Text, nullable=True)
  translation: Mapped[str | None] = mapped_column(String(50), nullable=True, default="KJV")
  api_response: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  last_validated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  cache_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
