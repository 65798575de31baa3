from __future__ import annotations

import logging

import pytest

from illumina.config import Settings
from illumina.core.lifespan import workflow_runtime
from illumina.core.logging import setup_logging
from illumina.storage.memory_workflow_repo import InMemoryWorkflowRepository
from illumina.storage.verse_cache_repo import InMemoryVerseCacheRepository
from illumina.verses.lookup import ScriptureLookupResult
from illumina.workflow.models import GenerationStatus, StepStatus, VerseValidationStatus, WorkflowStep


class AlwaysValidLookup:
  async def lookup(self, reference: str) -> ScriptureLookupResult:
    return ScriptureLookupResult(status=VerseValidationStatus.VALID, verse_text="text")


@pytest.mark.anyio
async def test_runtime_wires_injected_dependencies(study_parameters) -> None:
  settings = Settings(theological_validation_enabled=False, verse_batch_delay_seconds=0)

  async with workflow_runtime(settings, workflow_repo=InMemoryWorkflowRepository(), verse_cache=InMemoryVerseCacheRepository(), lookup=AlwaysValidLookup(), configure_logging=False) as runtime:
    request = await runtime.machine.create_request(study_parameters)
    for step in (WorkflowStep.PARSE_REQUEST, WorkflowStep.PLAN_STUDY, WorkflowStep.GENERATE_CONTENT):
      await runtime.runner.skip_step(request.request_id, step, "not needed")
    run = await runtime.runner.run_verse_validation(request.request_id, ["John 3:16"])
    review = await runtime.runner.run_theological_validation(request.request_id, generate=None, prompt="")

  assert run.ok
  assert review.snapshot.steps[4].step_status == StepStatus.SKIPPED
  assert review.snapshot.status == GenerationStatus.VALIDATION
  assert review.snapshot.percentage == 71


@pytest.mark.anyio
async def test_runtime_requires_database_when_repositories_are_not_injected() -> None:
  with pytest.raises(RuntimeError):
    async with workflow_runtime(Settings(pg_dsn=None), lookup=AlwaysValidLookup(), configure_logging=False):
      pass


def test_setup_logging_writes_to_configured_directory(tmp_path) -> None:
  root = logging.getLogger()
  previous_handlers, previous_level = root.handlers[:], root.level
  try:
    log_path = setup_logging(Settings(log_dir=str(tmp_path / "logs")))
    assert log_path.exists()
    assert log_path.parent == (tmp_path / "logs").resolve()
    assert log_path.name.startswith("illumina_")
  finally:
    for handler in root.handlers:
      handler.close()
    root.handlers = previous_handlers
    root.setLevel(previous_level)
