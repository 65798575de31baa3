"""Run pipeline steps against caller-supplied model calls and record their outcomes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic_core import to_jsonable_python

from illumina.ai.extractor import ResilientJSONExtractor
from illumina.ai.pipeline.contracts import DailyStudyContent, StudyContentBatch, TheologicalReview
from illumina.verses.validator import BibleVerseValidator, VerseValidationResult
from illumina.workflow.content import ContentStore
from illumina.workflow.models import ProgressSnapshot, StepOutcome, StepStatus, WorkflowStep
from illumina.workflow.state_machine import WorkflowStateMachine

T = TypeVar("T")

GenerateFn = Callable[[str], Awaitable[str]]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepRun(Generic[T]):
  """Outcome of running one step: the request state plus the value or the recorded failure."""

  snapshot: ProgressSnapshot
  value: T | None = None
  error_details: dict[str, Any] | None = None

  @property
  def ok(self) -> bool:
    return self.error_details is None


class StepRunner:
  """Execute steps so that model and validation failures become step data, not exceptions.

  Contract violations from the state machine (out-of-order steps, duplicate
  starts, terminal requests) still propagate to the caller.
  """

  def __init__(
    self,
    machine: WorkflowStateMachine,
    extractor: ResilientJSONExtractor,
    verse_validator: BibleVerseValidator,
    content_store: ContentStore,
    *,
    verse_failure_threshold: float = 0.2,
    theological_validation_enabled: bool = True,
    max_concurrent_generations: int = 3,
  ) -> None:
    self._machine = machine
    self._extractor = extractor
    self._verse_validator = verse_validator
    self._content = content_store
    self._verse_failure_threshold = verse_failure_threshold
    self._theological_validation_enabled = theological_validation_enabled
    self._max_concurrent_generations = max_concurrent_generations

  async def run_model_step(self, request_id: str, step: WorkflowStep, *, generate: GenerateFn, prompt: str, schema: type[T]) -> StepRun[T]:
    """Start the step, call the model, extract the response and record the result."""
    return await self._run_model(request_id, step, generate=generate, prompt=prompt, schema=schema)

  async def run_content_generation(self, request_id: str, *, generate: GenerateFn, prompt: str, week_number: int | None = None) -> StepRun[StudyContentBatch]:
    """Generate study days and store each one before the step is marked complete."""

    async def store_days(batch: StudyContentBatch) -> dict[str, Any]:
      for day in batch.days:
        await self._content.record_generated_day(request_id, day, week_number=week_number)
      return {"day_numbers": [day.day for day in batch.days]}

    return await self._run_model(request_id, WorkflowStep.GENERATE_CONTENT, generate=generate, prompt=prompt, schema=StudyContentBatch, persist=store_days)

  async def run_daily_generation(self, request_id: str, *, generate: GenerateFn, day_prompts: Mapping[int, str], week_number: int | None = None) -> StepRun[list[DailyStudyContent]]:
    """Generate each day with its own model call, running at most `max_concurrent_generations` at once.

    Every day is attempted before the step is resolved. The step fails when any
    day could not be generated; the failed days are listed in its error details.
    """
    if not day_prompts:
      raise ValueError("day_prompts must contain at least one day.")

    await self._machine.advance(request_id, WorkflowStep.GENERATE_CONTENT, StepOutcome.started())
    semaphore = asyncio.Semaphore(self._max_concurrent_generations)

    async def generate_day(day_number: int, prompt: str) -> DailyStudyContent | dict[str, Any]:
      async with semaphore:
        try:
          raw_text = await generate(prompt)
        except Exception as exc:  # noqa: BLE001
          return {"day": day_number, "type": "model_error", "message": f"Model call failed: {exc}"}

      outcome = self._extractor.try_extract(raw_text, DailyStudyContent)
      if outcome.error is not None:
        return {"day": day_number, **outcome.error.to_error_details()}
      # The prompt's day number is authoritative over whatever the model wrote.
      return outcome.extraction.value.model_copy(update={"day": day_number})

    logger.info("Request %s: generating %d days (concurrency %d).", request_id, len(day_prompts), self._max_concurrent_generations)
    results = await asyncio.gather(*(generate_day(day_number, prompt) for day_number, prompt in sorted(day_prompts.items())))

    failures = [result for result in results if isinstance(result, dict)]
    if failures:
      details = {
        "type": "content_generation_error",
        "message": f"{len(failures)} of {len(results)} days failed to generate",
        "failed_days": [failure["day"] for failure in failures],
        "errors": failures,
      }
      return await self._record_failure(request_id, WorkflowStep.GENERATE_CONTENT, details)

    days = [result for result in results if isinstance(result, DailyStudyContent)]
    try:
      for day in days:
        await self._content.record_generated_day(request_id, day, week_number=week_number)
    except Exception as exc:  # noqa: BLE001
      details = {"type": "persistence_error", "message": f"Storing step output failed: {exc}", "error_class": type(exc).__name__}
      return await self._record_failure(request_id, WorkflowStep.GENERATE_CONTENT, details)

    snapshot = await self._machine.advance(request_id, WorkflowStep.GENERATE_CONTENT, StepOutcome.completed({"day_numbers": [day.day for day in days]}))
    return StepRun(snapshot=snapshot, value=days)

  async def run_verse_validation(self, request_id: str, references: Iterable[str]) -> StepRun[list[VerseValidationResult]]:
    """Validate the study's references; the step fails when too many are invalid."""
    await self._machine.advance(request_id, WorkflowStep.VALIDATE_VERSES, StepOutcome.started())

    try:
      results = await self._verse_validator.validate_references(references)
    except Exception as exc:  # noqa: BLE001
      details = {"type": "verse_validation_error", "message": f"Verse validation failed: {exc}", "error_class": type(exc).__name__}
      snapshot = await self._machine.advance(request_id, WorkflowStep.VALIDATE_VERSES, StepOutcome(status=StepStatus.FAILED, error_details=details))
      return StepRun(snapshot=snapshot, error_details=details)

    invalid = [result for result in results if not result.is_valid]
    summary = {
      "total": len(results),
      "valid": len(results) - len(invalid),
      "invalid": len(invalid),
      "invalid_references": [result.reference for result in invalid],
      "results": [result.to_dict() for result in results],
    }
    invalid_share = len(invalid) / len(results) if results else 0.0

    if invalid_share > self._verse_failure_threshold:
      outcome = StepOutcome.failed(f"{len(invalid)} of {len(results)} scripture references failed validation", type="verse_validation", **summary)
      snapshot = await self._machine.advance(request_id, WorkflowStep.VALIDATE_VERSES, outcome)
      return StepRun(snapshot=snapshot, value=results, error_details=outcome.error_details)

    if invalid:
      logger.warning("Request %s: %d of %d scripture references failed validation.", request_id, len(invalid), len(results))
    snapshot = await self._machine.advance(request_id, WorkflowStep.VALIDATE_VERSES, StepOutcome.completed(summary))
    return StepRun(snapshot=snapshot, value=results)

  async def run_theological_validation(self, request_id: str, *, generate: GenerateFn, prompt: str) -> StepRun[TheologicalReview]:
    """Review the study, or skip the step when theological validation is disabled."""
    if not self._theological_validation_enabled:
      snapshot = await self.skip_step(request_id, WorkflowStep.THEOLOGICAL_VALIDATION, "Theological validation disabled by configuration")
      return StepRun(snapshot=snapshot)

    run = await self._run_model(request_id, WorkflowStep.THEOLOGICAL_VALIDATION, generate=generate, prompt=prompt, schema=TheologicalReview)
    if run.value is not None and not run.value.is_approved:
      logger.warning("Request %s: theological review did not approve the study (%d concerns).", request_id, len(run.value.concerns))
    return run

  async def assemble(self, request_id: str) -> StepRun[list[int]]:
    """Close the pipeline once generated content exists for the request."""
    await self._machine.advance(request_id, WorkflowStep.ASSEMBLY, StepOutcome.started())
    days = await self._content.list_days(request_id)
    if not days:
      details = {"type": "assembly_error", "message": "No generated content to assemble"}
      snapshot = await self._machine.advance(request_id, WorkflowStep.ASSEMBLY, StepOutcome(status=StepStatus.FAILED, error_details=details))
      return StepRun(snapshot=snapshot, error_details=details)

    day_numbers = [day.day_number for day in days]
    snapshot = await self._machine.advance(request_id, WorkflowStep.ASSEMBLY, StepOutcome.completed({"days": len(days), "day_numbers": day_numbers}))
    return StepRun(snapshot=snapshot, value=day_numbers)

  async def skip_step(self, request_id: str, step: WorkflowStep, reason: str) -> ProgressSnapshot:
    logger.info("Skipping step %s for request %s: %s", step.value, request_id, reason)
    return await self._machine.advance(request_id, step, StepOutcome.skipped(reason))

  async def _run_model(
    self,
    request_id: str,
    step: WorkflowStep,
    *,
    generate: GenerateFn,
    prompt: str,
    schema: type[T],
    persist: Callable[[T], Awaitable[dict[str, Any]]] | None = None,
  ) -> StepRun[T]:
    await self._machine.advance(request_id, step, StepOutcome.started())

    try:
      raw_text = await generate(prompt)
    except Exception as exc:  # noqa: BLE001
      details = {"type": "model_error", "message": f"Model call failed: {exc}", "error_class": type(exc).__name__}
      return await self._record_failure(request_id, step, details)

    outcome = self._extractor.try_extract(raw_text, schema)
    if outcome.error is not None:
      return await self._record_failure(request_id, step, outcome.error.to_error_details())

    extraction = outcome.extraction
    data: dict[str, Any] = {
      "result": to_jsonable_python(extraction.value, by_alias=True),
      "extraction": {"attempt": extraction.attempt, "pass": extraction.pass_name},
    }
    if persist is not None:
      try:
        data.update(await persist(extraction.value))
      except Exception as exc:  # noqa: BLE001
        details = {"type": "persistence_error", "message": f"Storing step output failed: {exc}", "error_class": type(exc).__name__}
        return await self._record_failure(request_id, step, details)

    snapshot = await self._machine.advance(request_id, step, StepOutcome.completed(data))
    return StepRun(snapshot=snapshot, value=extraction.value)

  async def _record_failure(self, request_id: str, step: WorkflowStep, details: dict[str, Any]) -> StepRun[Any]:
    snapshot = await self._machine.advance(request_id, step, StepOutcome(status=StepStatus.FAILED, error_details=details))
    return StepRun(snapshot=snapshot, error_details=details)
