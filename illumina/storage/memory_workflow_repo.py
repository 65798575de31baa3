"""In-process workflow repository for tests and database-less runs."""

from __future__ import annotations

from dataclasses import replace

from illumina.storage.workflow_repo import WorkflowRepository
from illumina.workflow.models import GeneratedDayContentRecord, GenerationRequestRecord, GenerationStatus, StepStatus, WorkflowStep, WorkflowStepRecord


class InMemoryWorkflowRepository(WorkflowRepository):
  """Keep requests, step records and day content in dictionaries.

  Records are frozen dataclasses, so stored values can be returned directly.
  """

  def __init__(self) -> None:
    self._requests: dict[str, GenerationRequestRecord] = {}
    self._steps: dict[tuple[str, WorkflowStep], WorkflowStepRecord] = {}
    self._content: dict[tuple[str, int], GeneratedDayContentRecord] = {}

  async def create_request(self, record: GenerationRequestRecord) -> None:
    if record.request_id in self._requests:
      raise ValueError(f"Request {record.request_id} already exists.")
    self._requests[record.request_id] = record

  async def get_request(self, request_id: str) -> GenerationRequestRecord | None:
    return self._requests.get(request_id)

  async def save_request(self, record: GenerationRequestRecord, *, expected_status: GenerationStatus) -> GenerationRequestRecord | None:
    current = self._requests.get(record.request_id)
    if current is None or current.status != expected_status:
      return None
    stored = replace(
      current,
      status=record.status,
      progress_percentage=record.progress_percentage,
      error_message=record.error_message,
      completion_date=record.completion_date,
      updated_at=record.updated_at,
    )
    self._requests[record.request_id] = stored
    return stored

  async def get_step(self, request_id: str, step_name: WorkflowStep) -> WorkflowStepRecord | None:
    return self._steps.get((request_id, step_name))

  async def list_steps(self, request_id: str) -> list[WorkflowStepRecord]:
    return [record for (owner, _), record in self._steps.items() if owner == request_id]

  async def transition_step(self, record: WorkflowStepRecord, *, expected_status: StepStatus | None) -> WorkflowStepRecord | None:
    key = (record.request_id, record.step_name)
    current = self._steps.get(key)
    current_status = current.step_status if current is not None else None
    if current_status != expected_status:
      return None
    self._steps[key] = record
    return record

  async def save_day_content(self, record: GeneratedDayContentRecord) -> GeneratedDayContentRecord:
    self._content[(record.request_id, record.day_number)] = record
    return record

  async def get_day_content(self, request_id: str, day_number: int) -> GeneratedDayContentRecord | None:
    return self._content.get((request_id, day_number))

  async def list_day_content(self, request_id: str) -> list[GeneratedDayContentRecord]:
    records = [record for (owner, _), record in self._content.items() if owner == request_id]
    return sorted(records, key=lambda record: record.day_number)
