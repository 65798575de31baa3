"""Domain models for the study generation workflow."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from illumina.ai.pipeline.contracts import StudyParameters


class WorkflowStep(str, Enum):
  PARSE_REQUEST = "parse_request"
  PLAN_STUDY = "plan_study"
  GENERATE_CONTENT = "generate_content"
  VALIDATE_VERSES = "validate_verses"
  THEOLOGICAL_VALIDATION = "theological_validation"
  ASSEMBLY = "assembly"
  COMPLETED = "completed"


class GenerationStatus(str, Enum):
  PENDING = "pending"
  PROCESSING = "processing"
  CONTENT_GENERATION = "content_generation"
  VALIDATION = "validation"
  COMPLETED = "completed"
  FAILED = "failed"
  CANCELLED = "cancelled"


class StepStatus(str, Enum):
  PENDING = "pending"
  IN_PROGRESS = "in_progress"
  COMPLETED = "completed"
  FAILED = "failed"
  SKIPPED = "skipped"


class ContentGenerationStatus(str, Enum):
  PENDING = "pending"
  GENERATING = "generating"
  VALIDATING = "validating"
  COMPLETED = "completed"
  FAILED = "failed"


class ContentValidationStatus(str, Enum):
  PENDING = "pending"
  VALIDATING = "validating"
  APPROVED = "approved"
  REJECTED = "rejected"
  NEEDS_REVIEW = "needs_review"


class VerseValidationStatus(str, Enum):
  VALID = "valid"
  INVALID = "invalid"
  NOT_FOUND = "not_found"
  API_ERROR = "api_error"


# Fixed pipeline order; `completed` is a marker step closing the pipeline.
STEP_ORDER: tuple[WorkflowStep, ...] = tuple(WorkflowStep)
FINAL_STEP = WorkflowStep.COMPLETED

RESOLVED_STEP_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.SKIPPED})

# Request status reported while a step is running.
STEP_REQUEST_STATUS: dict[WorkflowStep, GenerationStatus] = {
  WorkflowStep.PARSE_REQUEST: GenerationStatus.PROCESSING,
  WorkflowStep.PLAN_STUDY: GenerationStatus.PROCESSING,
  WorkflowStep.GENERATE_CONTENT: GenerationStatus.CONTENT_GENERATION,
  WorkflowStep.VALIDATE_VERSES: GenerationStatus.VALIDATION,
  WorkflowStep.THEOLOGICAL_VALIDATION: GenerationStatus.VALIDATION,
  WorkflowStep.ASSEMBLY: GenerationStatus.VALIDATION,
  WorkflowStep.COMPLETED: GenerationStatus.VALIDATION,
}

# Ordering of the forward-only request statuses.
REQUEST_STATUS_RANK: dict[GenerationStatus, int] = {
  GenerationStatus.PENDING: 0,
  GenerationStatus.PROCESSING: 1,
  GenerationStatus.CONTENT_GENERATION: 2,
  GenerationStatus.VALIDATION: 3,
  GenerationStatus.COMPLETED: 4,
}


@dataclass(frozen=True)
class GenerationRequestRecord:
  """One study generation attempt."""

  request_id: str
  user_id: str | None
  parameters: StudyParameters
  status: GenerationStatus
  progress_percentage: int
  created_at: datetime
  updated_at: datetime
  error_message: str | None = None
  completion_date: datetime | None = None


@dataclass(frozen=True)
class WorkflowStepRecord:
  """State of one pipeline step for one request; unique per (request, step)."""

  request_id: str
  step_name: WorkflowStep
  step_status: StepStatus
  step_data: dict[str, Any] = field(default_factory=dict)
  error_details: dict[str, Any] | None = None
  retry_count: int = 0
  started_at: datetime | None = None
  completed_at: datetime | None = None
  updated_at: datetime | None = None


@dataclass(frozen=True)
class GeneratedDayContentRecord:
  """Generated content for a single study day; unique per (request, day_number)."""

  request_id: str
  day_number: int
  title: str
  content_data: dict[str, Any]
  week_number: int | None = None
  theme: str | None = None
  opening_prayer: str | None = None
  study_focus: str | None = None
  teaching_content: str | None = None
  bible_passages: list[dict[str, Any]] = field(default_factory=list)
  discussion_questions: list[str] = field(default_factory=list)
  reflection_question: str | None = None
  application_points: list[str] = field(default_factory=list)
  prayer_focus: str | None = None
  estimated_time: str | None = None
  generation_status: ContentGenerationStatus = ContentGenerationStatus.PENDING
  validation_status: ContentValidationStatus = ContentValidationStatus.PENDING
  validation_notes: str | None = None
  updated_at: datetime | None = None


@dataclass(frozen=True)
class VerseValidationCacheEntry:
  """Cached outcome of validating one scripture reference."""

  reference: str
  normalized_reference: str
  validation_status: VerseValidationStatus
  last_validated_at: datetime
  cache_expires_at: datetime | None
  verse_text: str | None = None
  translation: str | None = None
  api_response: dict[str, Any] | None = None
  error_message: str | None = None

  def is_expired(self, now: datetime) -> bool:
    if self.cache_expires_at is None:
      return True
    return now > self.cache_expires_at


@dataclass(frozen=True)
class StepOutcome:
  """Requested transition for a step, with its payload or diagnostics."""

  status: StepStatus
  data: dict[str, Any] | None = None
  error_details: dict[str, Any] | None = None

  @classmethod
  def started(cls) -> StepOutcome:
    return cls(status=StepStatus.IN_PROGRESS)

  @classmethod
  def completed(cls, data: dict[str, Any] | None = None) -> StepOutcome:
    return cls(status=StepStatus.COMPLETED, data=data)

  @classmethod
  def failed(cls, message: str, **details: Any) -> StepOutcome:
    return cls(status=StepStatus.FAILED, error_details={"message": message, **details})

  @classmethod
  def skipped(cls, reason: str) -> StepOutcome:
    return cls(status=StepStatus.SKIPPED, data={"skip_reason": reason})


@dataclass(frozen=True)
class StepProgress:
  step_name: WorkflowStep
  step_status: StepStatus
  retry_count: int = 0
  started_at: datetime | None = None
  completed_at: datetime | None = None
  error_details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ProgressSnapshot:
  """Request-level view surfaced to the API layer."""

  request_id: str
  status: GenerationStatus
  percentage: int
  steps: tuple[StepProgress, ...]
  error_message: str | None = None
  completion_date: datetime | None = None

  def to_dict(self) -> dict[str, Any]:
    return {
      "requestId": self.request_id,
      "status": self.status.value,
      "percentage": self.percentage,
      "errorMessage": self.error_message,
      "completionDate": self.completion_date.isoformat() if self.completion_date else None,
      "steps": [
        {
          "stepName": step.step_name.value,
          "stepStatus": step.step_status.value,
          "retryCount": step.retry_count,
          "startedAt": step.started_at.isoformat() if step.started_at else None,
          "completedAt": step.completed_at.isoformat() if step.completed_at else None,
          "errorDetails": step.error_details,
        }
        for step in self.steps
      ],
    }
