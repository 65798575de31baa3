"""Storage interfaces for generation requests, workflow steps and day content."""

from __future__ import annotations

from typing import Protocol

from illumina.workflow.models import GeneratedDayContentRecord, GenerationRequestRecord, GenerationStatus, StepStatus, WorkflowStep, WorkflowStepRecord


class WorkflowRepository(Protocol):
  """Repository contract for workflow persistence.

  Implementations must make each call atomic at the single-row level. Request
  status and the derived progress are always written together by `save_request`.
  """

  async def create_request(self, record: GenerationRequestRecord) -> None:
    """Persist a new generation request."""

  async def get_request(self, request_id: str) -> GenerationRequestRecord | None:
    """Fetch a request by identifier."""

  async def save_request(self, record: GenerationRequestRecord, *, expected_status: GenerationStatus) -> GenerationRequestRecord | None:
    """Persist the mutable request fields if the stored status still equals `expected_status`.

    Covers status, progress, error, completion and updated_at. Returns None when
    another writer changed the request status first.
    """

  async def get_step(self, request_id: str, step_name: WorkflowStep) -> WorkflowStepRecord | None:
    """Fetch the record for one (request, step) pair."""

  async def list_steps(self, request_id: str) -> list[WorkflowStepRecord]:
    """Return every step record stored for the request."""

  async def transition_step(self, record: WorkflowStepRecord, *, expected_status: StepStatus | None) -> WorkflowStepRecord | None:
    """Write the step record if the stored status still equals `expected_status`.

    `expected_status=None` means the row must not exist yet. Returns None when
    the stored row no longer matches, so the caller can report the conflict.
    """

  async def save_day_content(self, record: GeneratedDayContentRecord) -> GeneratedDayContentRecord:
    """Insert or replace the content for one (request, day_number) pair."""

  async def get_day_content(self, request_id: str, day_number: int) -> GeneratedDayContentRecord | None:
    """Fetch content for a single day."""

  async def list_day_content(self, request_id: str) -> list[GeneratedDayContentRecord]:
    """Return the request's day content ordered by day number."""
