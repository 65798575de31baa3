"""Drive a study generation request through its ordered pipeline steps."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from illumina.ai.pipeline.contracts import StudyParameters
from illumina.workflow.errors import IllegalStepTransitionError, RequestNotFoundError, RequestTerminalError, StepConflictError, StepOrderViolationError, UnknownStepError
from illumina.workflow.models import (
  FINAL_STEP,
  REQUEST_STATUS_RANK,
  RESOLVED_STEP_STATUSES,
  STEP_ORDER,
  STEP_REQUEST_STATUS,
  GenerationRequestRecord,
  GenerationStatus,
  ProgressSnapshot,
  StepOutcome,
  StepProgress,
  StepStatus,
  WorkflowStep,
  WorkflowStepRecord,
)

if TYPE_CHECKING:
  from illumina.storage.workflow_repo import WorkflowRepository

logger = logging.getLogger(__name__)

CANCELLED_STEP_DETAILS = {"message": "Request cancelled", "reason": "cancelled"}

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
  return datetime.now(UTC)


def coerce_step(step_name: WorkflowStep | str) -> WorkflowStep:
  """Resolve a step name, rejecting anything outside the pipeline."""
  if isinstance(step_name, WorkflowStep):
    return step_name
  try:
    return WorkflowStep(step_name)
  except ValueError as exc:
    raise UnknownStepError(f"Unknown workflow step: {step_name!r}") from exc


def compute_progress(steps: Mapping[WorkflowStep, WorkflowStepRecord]) -> int:
  """Percentage of pipeline steps that are completed or skipped, rounded down."""
  resolved = sum(1 for record in steps.values() if record.step_status in RESOLVED_STEP_STATUSES)
  return resolved * 100 // len(STEP_ORDER)


def error_message_from(details: Mapping[str, Any] | None) -> str:
  if not details:
    return "Step failed"
  for key in ("message", "error", "last_error"):
    value = details.get(key)
    if value:
      return str(value)
  return str(dict(details))


class WorkflowStateMachine:
  """Record step transitions and keep request status and progress in sync.

  Caller mistakes (unknown steps, out-of-order completion, duplicate starts,
  advancing a terminal request) raise `WorkflowContractError` subclasses.
  Step failures are stored on the step record and the request, never raised.
  """

  def __init__(self, repo: WorkflowRepository, *, clock: Clock = _utcnow) -> None:
    self._repo = repo
    self._clock = clock

  async def create_request(self, parameters: StudyParameters, *, user_id: str | None = None, request_id: str | None = None) -> GenerationRequestRecord:
    now = self._clock()
    record = GenerationRequestRecord(
      request_id=request_id or str(uuid.uuid4()),
      user_id=user_id,
      parameters=parameters,
      status=GenerationStatus.PENDING,
      progress_percentage=0,
      created_at=now,
      updated_at=now,
    )
    await self._repo.create_request(record)
    logger.info("Created generation request %s (%s, %d days).", record.request_id, parameters.study_style, parameters.duration_days)
    return record

  async def get_progress(self, request_id: str) -> ProgressSnapshot:
    request = await self._require_request(request_id)
    return self._snapshot(request, await self._load_steps(request_id))

  async def advance(self, request_id: str, step_name: WorkflowStep | str, outcome: StepOutcome) -> ProgressSnapshot:
    """Apply one step transition and return the resulting request state."""
    step = coerce_step(step_name)
    if outcome.status == StepStatus.PENDING:
      raise IllegalStepTransitionError(f"Step {step.value} cannot be moved back to pending.")

    request = await self._require_request(request_id)
    steps = await self._load_steps(request_id)
    current = steps.get(step)

    if request.status == GenerationStatus.CANCELLED:
      raise RequestTerminalError(f"Request {request_id} is cancelled.")
    if request.status == GenerationStatus.COMPLETED:
      if outcome.status == StepStatus.COMPLETED and step in (WorkflowStep.ASSEMBLY, FINAL_STEP):
        return self._snapshot(request, steps)
      raise RequestTerminalError(f"Request {request_id} is already completed.")
    if request.status == GenerationStatus.FAILED:
      is_retry = outcome.status == StepStatus.IN_PROGRESS and current is not None and current.step_status == StepStatus.FAILED
      if not is_retry:
        raise RequestTerminalError(f"Request {request_id} has failed; only a retry of the failed step may be dispatched.")

    if outcome.status == StepStatus.IN_PROGRESS:
      return await self._start(request, step, steps)
    if outcome.status == StepStatus.FAILED:
      return await self._fail(request, step, steps, outcome)
    return await self._resolve(request, step, steps, outcome)

  async def cancel(self, request_id: str) -> ProgressSnapshot:
    """Move the request to cancelled and fail any step still in progress."""
    request = await self._require_request(request_id)
    steps = await self._load_steps(request_id)
    if request.status == GenerationStatus.CANCELLED:
      return self._snapshot(request, steps)
    if request.status == GenerationStatus.COMPLETED:
      raise RequestTerminalError(f"Request {request_id} is already completed and cannot be cancelled.")

    now = self._clock()
    await self._cancel_running_steps(request_id, steps, now)
    updated = replace(request, status=GenerationStatus.CANCELLED, progress_percentage=compute_progress(steps), updated_at=now)
    stored = await self._repo.save_request(updated, expected_status=request.status)
    if stored is None:
      # Status moved underneath us; re-evaluate against the stored request.
      return await self.cancel(request_id)
    logger.info("Cancelled generation request %s.", request_id)
    return self._snapshot(stored, steps)

  async def _start(self, request: GenerationRequestRecord, step: WorkflowStep, steps: dict[WorkflowStep, WorkflowStepRecord]) -> ProgressSnapshot:
    self._check_order(request.request_id, step, steps)
    current = steps.get(step)
    now = self._clock()
    is_retry = False

    if current is None:
      record = WorkflowStepRecord(request_id=request.request_id, step_name=step, step_status=StepStatus.IN_PROGRESS, started_at=now, updated_at=now)
    elif current.step_status == StepStatus.PENDING:
      record = replace(current, step_status=StepStatus.IN_PROGRESS, started_at=now, updated_at=now)
    elif current.step_status == StepStatus.IN_PROGRESS:
      raise StepConflictError(f"Step {step.value} is already in progress for request {request.request_id}.")
    elif current.step_status in (StepStatus.FAILED, StepStatus.SKIPPED):
      # Re-entry: a new attempt with a fresh start time; completed_at is left as history.
      is_retry = True
      record = replace(current, step_status=StepStatus.IN_PROGRESS, retry_count=current.retry_count + 1, started_at=now, error_details=None, updated_at=now)
    else:
      raise IllegalStepTransitionError(f"Step {step.value} is already completed for request {request.request_id}.")

    written = await self._write_step(record, current)
    steps[step] = written

    if is_retry:
      logger.info("Retrying step %s for request %s (attempt %d).", step.value, request.request_id, written.retry_count + 1)
    else:
      logger.info("Started step %s for request %s.", step.value, request.request_id)

    if request.status == GenerationStatus.FAILED:
      # Explicit re-dispatch of the failed step reopens the request at that step's phase.
      status = STEP_REQUEST_STATUS[step]
      error_message = None
    else:
      status = self._forward_status(request.status, STEP_REQUEST_STATUS[step])
      error_message = request.error_message
    updated = replace(request, status=status, error_message=error_message, progress_percentage=compute_progress(steps), updated_at=now)
    return self._snapshot(await self._save_request(request, updated, steps), steps)

  async def _resolve(self, request: GenerationRequestRecord, step: WorkflowStep, steps: dict[WorkflowStep, WorkflowStepRecord], outcome: StepOutcome) -> ProgressSnapshot:
    self._check_order(request.request_id, step, steps)
    current = steps.get(step)
    current_status = current.step_status if current is not None else None

    if current_status == outcome.status:
      return self._snapshot(request, steps)

    # Skips and the closing marker step may resolve without an explicit start.
    may_resolve_unstarted = outcome.status == StepStatus.SKIPPED or step == FINAL_STEP
    allowed = {StepStatus.IN_PROGRESS}
    if may_resolve_unstarted:
      allowed |= {None, StepStatus.PENDING}
    if current_status not in allowed:
      shown = current_status.value if current_status is not None else "not started"
      raise IllegalStepTransitionError(f"Step {step.value} cannot move from {shown} to {outcome.status.value}.")

    now = self._clock()
    steps[step] = await self._write_step(self._resolved_record(request.request_id, step, current, outcome, now), current)
    logger.info("Step %s %s for request %s.", step.value, outcome.status.value, request.request_id)

    finishes_pipeline = outcome.status == StepStatus.COMPLETED and step in (WorkflowStep.ASSEMBLY, FINAL_STEP)
    if finishes_pipeline and step != FINAL_STEP:
      marker = steps.get(FINAL_STEP)
      if marker is None or marker.step_status != StepStatus.COMPLETED:
        steps[FINAL_STEP] = await self._write_step(self._resolved_record(request.request_id, FINAL_STEP, marker, StepOutcome.completed(), now), marker)

    if finishes_pipeline:
      updated = replace(request, status=GenerationStatus.COMPLETED, completion_date=request.completion_date or now, progress_percentage=compute_progress(steps), updated_at=now)
      logger.info("Generation request %s completed.", request.request_id)
    else:
      status = self._forward_status(request.status, STEP_REQUEST_STATUS[step])
      updated = replace(request, status=status, progress_percentage=compute_progress(steps), updated_at=now)
    return self._snapshot(await self._save_request(request, updated, steps), steps)

  async def _fail(self, request: GenerationRequestRecord, step: WorkflowStep, steps: dict[WorkflowStep, WorkflowStepRecord], outcome: StepOutcome) -> ProgressSnapshot:
    current = steps.get(step)
    if current is not None and current.step_status not in (StepStatus.PENDING, StepStatus.IN_PROGRESS):
      raise IllegalStepTransitionError(f"Step {step.value} cannot move from {current.step_status.value} to failed.")

    now = self._clock()
    details = dict(outcome.error_details or {"message": "Step failed"})
    if current is None:
      record = WorkflowStepRecord(request_id=request.request_id, step_name=step, step_status=StepStatus.FAILED, error_details=details, completed_at=now, updated_at=now)
    else:
      record = replace(current, step_status=StepStatus.FAILED, error_details=details, completed_at=now, updated_at=now)
    steps[step] = await self._write_step(record, current)

    message = error_message_from(details)
    logger.warning("Step %s failed for request %s: %s", step.value, request.request_id, message)
    updated = replace(request, status=GenerationStatus.FAILED, error_message=message, progress_percentage=compute_progress(steps), updated_at=now)
    return self._snapshot(await self._save_request(request, updated, steps), steps)

  def _resolved_record(self, request_id: str, step: WorkflowStep, current: WorkflowStepRecord | None, outcome: StepOutcome, now: datetime) -> WorkflowStepRecord:
    if current is None:
      return WorkflowStepRecord(request_id=request_id, step_name=step, step_status=outcome.status, step_data=dict(outcome.data or {}), completed_at=now, updated_at=now)
    data = dict(outcome.data) if outcome.data is not None else current.step_data
    return replace(current, step_status=outcome.status, step_data=data, error_details=None, completed_at=now, updated_at=now)

  async def _save_request(self, request: GenerationRequestRecord, updated: GenerationRequestRecord, steps: dict[WorkflowStep, WorkflowStepRecord]) -> GenerationRequestRecord:
    """Write request status and progress only if nobody changed the status since `request` was read."""
    stored = await self._repo.save_request(updated, expected_status=request.status)
    if stored is not None:
      return stored

    latest = await self._require_request(request.request_id)
    if latest.status == GenerationStatus.CANCELLED:
      # The step we just wrote must not outlive the cancellation.
      await self._cancel_running_steps(request.request_id, steps, self._clock())
      raise RequestTerminalError(f"Request {request.request_id} was cancelled while step state was being written.")
    if latest.status == GenerationStatus.COMPLETED:
      raise RequestTerminalError(f"Request {request.request_id} is already completed.")
    raise StepConflictError(f"Request {request.request_id} moved from {request.status.value} to {latest.status.value} concurrently.")

  async def _cancel_running_steps(self, request_id: str, steps: dict[WorkflowStep, WorkflowStepRecord], now: datetime) -> None:
    for step, record in list(steps.items()):
      if record.step_status != StepStatus.IN_PROGRESS:
        continue
      cancelled = replace(record, step_status=StepStatus.FAILED, error_details=dict(CANCELLED_STEP_DETAILS), completed_at=now, updated_at=now)
      written = await self._repo.transition_step(cancelled, expected_status=StepStatus.IN_PROGRESS)
      if written is None:
        logger.debug("Step %s of request %s changed while cancelling.", step.value, request_id)
        continue
      steps[step] = written

  async def _write_step(self, record: WorkflowStepRecord, current: WorkflowStepRecord | None) -> WorkflowStepRecord:
    expected = current.step_status if current is not None else None
    written = await self._repo.transition_step(record, expected_status=expected)
    if written is None:
      raise StepConflictError(f"Step {record.step_name.value} for request {record.request_id} was changed concurrently.")
    return written

  def _check_order(self, request_id: str, step: WorkflowStep, steps: Mapping[WorkflowStep, WorkflowStepRecord]) -> None:
    for earlier in STEP_ORDER[: STEP_ORDER.index(step)]:
      record = steps.get(earlier)
      if record is None or record.step_status not in RESOLVED_STEP_STATUSES:
        raise StepOrderViolationError(f"Step {step.value} requires {earlier.value} to be completed or skipped first (request {request_id}).")

  def _forward_status(self, current: GenerationStatus, candidate: GenerationStatus) -> GenerationStatus:
    if REQUEST_STATUS_RANK[candidate] > REQUEST_STATUS_RANK[current]:
      return candidate
    return current

  async def _require_request(self, request_id: str) -> GenerationRequestRecord:
    request = await self._repo.get_request(request_id)
    if request is None:
      raise RequestNotFoundError(f"Generation request {request_id} not found.")
    return request

  async def _load_steps(self, request_id: str) -> dict[WorkflowStep, WorkflowStepRecord]:
    return {record.step_name: record for record in await self._repo.list_steps(request_id)}

  def _snapshot(self, request: GenerationRequestRecord, steps: Mapping[WorkflowStep, WorkflowStepRecord]) -> ProgressSnapshot:
    entries = []
    for step in STEP_ORDER:
      record = steps.get(step)
      if record is None:
        entries.append(StepProgress(step_name=step, step_status=StepStatus.PENDING))
        continue
      entries.append(StepProgress(step_name=step, step_status=record.step_status, retry_count=record.retry_count, started_at=record.started_at, completed_at=record.completed_at, error_details=record.error_details))
    return ProgressSnapshot(
      request_id=request.request_id,
      status=request.status,
      percentage=request.progress_percentage,
      steps=tuple(entries),
      error_message=request.error_message,
      completion_date=request.completion_date,
    )
