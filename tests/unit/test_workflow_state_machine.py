from __future__ import annotations

import asyncio

import pytest

from illumina.storage.memory_workflow_repo import InMemoryWorkflowRepository
from illumina.workflow.errors import (
  IllegalStepTransitionError,
  RequestNotFoundError,
  RequestTerminalError,
  StepConflictError,
  StepOrderViolationError,
  UnknownStepError,
)
from illumina.workflow.models import STEP_ORDER, GenerationStatus, StepOutcome, StepStatus, WorkflowStep
from illumina.workflow.state_machine import WorkflowStateMachine, compute_progress


async def _complete(machine: WorkflowStateMachine, request_id: str, step: WorkflowStep, data: dict | None = None):
  await machine.advance(request_id, step, StepOutcome.started())
  return await machine.advance(request_id, step, StepOutcome.completed(data))


@pytest.mark.anyio
async def test_create_request_starts_pending_with_all_steps_listed(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters, user_id="user-1")
  snapshot = await machine.get_progress(request.request_id)

  assert snapshot.status == GenerationStatus.PENDING
  assert snapshot.percentage == 0
  assert [step.step_name for step in snapshot.steps] == list(STEP_ORDER)
  assert all(step.step_status == StepStatus.PENDING for step in snapshot.steps)
  assert snapshot.to_dict()["steps"][0]["stepName"] == "parse_request"


@pytest.mark.anyio
async def test_full_run_completes_request_and_progress_never_decreases(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  percentages = []

  for step in STEP_ORDER[:-1]:
    started = await machine.advance(request.request_id, step, StepOutcome.started())
    percentages.append(started.percentage)
    finished = await machine.advance(request.request_id, step, StepOutcome.completed({"step": step.value}))
    percentages.append(finished.percentage)

  assert percentages == sorted(percentages)
  assert finished.status == GenerationStatus.COMPLETED
  assert finished.percentage == 100
  assert finished.completion_date is not None
  assert finished.steps[-1].step_status == StepStatus.COMPLETED


@pytest.mark.anyio
async def test_request_status_follows_step_phases(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)

  snapshot = await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.started())
  assert snapshot.status == GenerationStatus.PROCESSING

  await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.completed())
  await _complete(machine, request.request_id, WorkflowStep.PLAN_STUDY)
  snapshot = await machine.advance(request.request_id, WorkflowStep.GENERATE_CONTENT, StepOutcome.started())
  assert snapshot.status == GenerationStatus.CONTENT_GENERATION

  await machine.advance(request.request_id, WorkflowStep.GENERATE_CONTENT, StepOutcome.completed())
  snapshot = await machine.advance(request.request_id, WorkflowStep.VALIDATE_VERSES, StepOutcome.started())
  assert snapshot.status == GenerationStatus.VALIDATION


@pytest.mark.anyio
async def test_completing_final_step_twice_is_a_noop(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  for step in STEP_ORDER[:-1]:
    first = await _complete(machine, request.request_id, step)

  again = await machine.advance(request.request_id, WorkflowStep.ASSEMBLY, StepOutcome.completed())
  marker = await machine.advance(request.request_id, WorkflowStep.COMPLETED, StepOutcome.completed())

  assert again == first
  assert marker == first
  assert again.completion_date == first.completion_date


@pytest.mark.anyio
async def test_failed_step_fails_request_with_floor_progress(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  await _complete(machine, request.request_id, WorkflowStep.PARSE_REQUEST)
  await _complete(machine, request.request_id, WorkflowStep.PLAN_STUDY)
  await machine.advance(request.request_id, WorkflowStep.GENERATE_CONTENT, StepOutcome.started())

  snapshot = await machine.advance(request.request_id, WorkflowStep.GENERATE_CONTENT, StepOutcome.failed("Model timed out", attempt=1))

  assert snapshot.percentage == 28
  assert snapshot.status == GenerationStatus.FAILED
  assert snapshot.error_message == "Model timed out"
  failed_step = snapshot.steps[2]
  assert failed_step.step_status == StepStatus.FAILED
  assert failed_step.error_details == {"message": "Model timed out", "attempt": 1}


@pytest.mark.anyio
async def test_retry_increments_retry_count_and_keeps_earlier_timestamps(machine, workflow_repo, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  await _complete(machine, request.request_id, WorkflowStep.PARSE_REQUEST)
  await _complete(machine, request.request_id, WorkflowStep.PLAN_STUDY)
  await machine.advance(request.request_id, WorkflowStep.GENERATE_CONTENT, StepOutcome.started())
  await machine.advance(request.request_id, WorkflowStep.GENERATE_CONTENT, StepOutcome.failed("Model timed out"))

  parse_before = await workflow_repo.get_step(request.request_id, WorkflowStep.PARSE_REQUEST)
  plan_before = await workflow_repo.get_step(request.request_id, WorkflowStep.PLAN_STUDY)
  failed_attempt = await workflow_repo.get_step(request.request_id, WorkflowStep.GENERATE_CONTENT)
  assert failed_attempt.retry_count == 0

  snapshot = await machine.advance(request.request_id, WorkflowStep.GENERATE_CONTENT, StepOutcome.started())

  retried = await workflow_repo.get_step(request.request_id, WorkflowStep.GENERATE_CONTENT)
  assert retried.retry_count == 1
  assert retried.step_status == StepStatus.IN_PROGRESS
  assert retried.started_at > failed_attempt.started_at
  assert retried.completed_at == failed_attempt.completed_at
  assert retried.error_details is None
  assert await workflow_repo.get_step(request.request_id, WorkflowStep.PARSE_REQUEST) == parse_before
  assert await workflow_repo.get_step(request.request_id, WorkflowStep.PLAN_STUDY) == plan_before
  assert snapshot.status == GenerationStatus.CONTENT_GENERATION
  assert snapshot.error_message is None


@pytest.mark.anyio
async def test_failed_request_rejects_anything_but_a_retry(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.started())
  await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.failed("Unreadable request"))

  with pytest.raises(RequestTerminalError):
    await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.completed())
  with pytest.raises(RequestTerminalError):
    await machine.advance(request.request_id, WorkflowStep.PLAN_STUDY, StepOutcome.started())


@pytest.mark.anyio
async def test_completing_step_before_predecessors_violates_order(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  await _complete(machine, request.request_id, WorkflowStep.PARSE_REQUEST)
  await _complete(machine, request.request_id, WorkflowStep.PLAN_STUDY)

  with pytest.raises(StepOrderViolationError):
    await machine.advance(request.request_id, WorkflowStep.ASSEMBLY, StepOutcome.completed())
  with pytest.raises(StepOrderViolationError):
    await machine.advance(request.request_id, WorkflowStep.VALIDATE_VERSES, StepOutcome.started())

  snapshot = await machine.get_progress(request.request_id)
  assert snapshot.percentage == 28
  assert snapshot.status == GenerationStatus.PROCESSING


@pytest.mark.anyio
async def test_starting_step_already_in_progress_conflicts(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.started())

  with pytest.raises(StepConflictError):
    await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.started())


@pytest.mark.anyio
async def test_illegal_transitions_are_rejected(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  await _complete(machine, request.request_id, WorkflowStep.PARSE_REQUEST)

  with pytest.raises(IllegalStepTransitionError):
    await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.started())
  with pytest.raises(IllegalStepTransitionError):
    await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome(status=StepStatus.PENDING))
  with pytest.raises(IllegalStepTransitionError):
    await machine.advance(request.request_id, WorkflowStep.PLAN_STUDY, StepOutcome.completed())
  with pytest.raises(StepConflictError):
    await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.failed("late failure"))


@pytest.mark.anyio
async def test_lost_compare_and_set_surfaces_as_conflict(clock, study_parameters) -> None:
  class RacingRepository(InMemoryWorkflowRepository):
    async def transition_step(self, record, *, expected_status):
      return None

  machine = WorkflowStateMachine(RacingRepository(), clock=clock)
  request = await machine.create_request(study_parameters)

  with pytest.raises(StepConflictError):
    await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.started())


@pytest.mark.anyio
async def test_skipped_steps_count_toward_progress_and_can_be_reentered(machine, workflow_repo, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  for step in STEP_ORDER[:4]:
    await _complete(machine, request.request_id, step)

  skipped = await machine.advance(request.request_id, WorkflowStep.THEOLOGICAL_VALIDATION, StepOutcome.skipped("disabled"))
  assert skipped.percentage == 71
  assert skipped.steps[4].step_status == StepStatus.SKIPPED

  reentered = await machine.advance(request.request_id, WorkflowStep.THEOLOGICAL_VALIDATION, StepOutcome.started())
  record = await workflow_repo.get_step(request.request_id, WorkflowStep.THEOLOGICAL_VALIDATION)
  assert record.retry_count == 1
  assert reentered.percentage == 57

  finished = await machine.advance(request.request_id, WorkflowStep.THEOLOGICAL_VALIDATION, StepOutcome.completed({"approved": True}))
  assert finished.percentage == 71


@pytest.mark.anyio
async def test_cancel_is_terminal_and_fails_running_steps(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  await _complete(machine, request.request_id, WorkflowStep.PARSE_REQUEST)
  await machine.advance(request.request_id, WorkflowStep.PLAN_STUDY, StepOutcome.started())

  snapshot = await machine.cancel(request.request_id)

  assert snapshot.status == GenerationStatus.CANCELLED
  assert snapshot.percentage == 14
  assert snapshot.steps[1].step_status == StepStatus.FAILED
  assert snapshot.steps[1].error_details["reason"] == "cancelled"
  assert snapshot.error_message is None

  with pytest.raises(RequestTerminalError):
    await machine.advance(request.request_id, WorkflowStep.PLAN_STUDY, StepOutcome.started())
  assert await machine.cancel(request.request_id) == snapshot


@pytest.mark.anyio
async def test_completed_request_cannot_be_cancelled(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  for step in STEP_ORDER[:-1]:
    await _complete(machine, request.request_id, step)

  with pytest.raises(RequestTerminalError):
    await machine.cancel(request.request_id)


@pytest.mark.anyio
async def test_step_start_racing_cancel_leaves_request_cancelled(clock, study_parameters) -> None:
  class YieldingRepository(InMemoryWorkflowRepository):
    async def transition_step(self, record, *, expected_status):
      await asyncio.sleep(0)
      return await super().transition_step(record, expected_status=expected_status)

  machine = WorkflowStateMachine(YieldingRepository(), clock=clock)
  request = await machine.create_request(study_parameters)

  started, cancelled = await asyncio.gather(
    machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.started()),
    machine.cancel(request.request_id),
    return_exceptions=True,
  )

  assert isinstance(started, RequestTerminalError)
  assert cancelled.status == GenerationStatus.CANCELLED
  snapshot = await machine.get_progress(request.request_id)
  assert snapshot.status == GenerationStatus.CANCELLED
  assert snapshot.steps[0].step_status == StepStatus.FAILED
  assert snapshot.steps[0].error_details["reason"] == "cancelled"


@pytest.mark.anyio
async def test_request_status_is_written_only_from_the_status_that_was_read(workflow_repo, machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  stale = await workflow_repo.get_request(request.request_id)
  await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome.started())

  assert await workflow_repo.save_request(stale, expected_status=GenerationStatus.PENDING) is None
  assert (await workflow_repo.get_request(request.request_id)).status == GenerationStatus.PROCESSING


@pytest.mark.anyio
async def test_unknown_step_and_missing_request_are_contract_errors(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)

  with pytest.raises(UnknownStepError) as excinfo:
    await machine.advance(request.request_id, "publish", StepOutcome.started())
  assert isinstance(excinfo.value, ValueError)

  with pytest.raises(RequestNotFoundError):
    await machine.advance("missing", WorkflowStep.PARSE_REQUEST, StepOutcome.started())

  snapshot = await machine.advance(request.request_id, "parse_request", StepOutcome.started())
  assert snapshot.steps[0].step_status == StepStatus.IN_PROGRESS


@pytest.mark.anyio
async def test_failing_unstarted_step_is_recorded(machine, study_parameters) -> None:
  request = await machine.create_request(study_parameters)
  snapshot = await machine.advance(request.request_id, WorkflowStep.PARSE_REQUEST, StepOutcome(status=StepStatus.FAILED, error_details={"error": "bad input"}))

  assert snapshot.status == GenerationStatus.FAILED
  assert snapshot.error_message == "bad input"
  assert snapshot.percentage == 0


def test_compute_progress_rounds_down() -> None:
  assert compute_progress({}) == 0
