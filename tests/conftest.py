"""Shared fixtures for the workflow core tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from illumina.ai.pipeline.contracts import StudyParameters
from illumina.storage.memory_workflow_repo import InMemoryWorkflowRepository
from illumina.workflow.state_machine import WorkflowStateMachine


class FakeClock:
  """Deterministic clock that advances one second per reading."""

  def __init__(self, start: datetime | None = None) -> None:
    self.current = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

  def __call__(self) -> datetime:
    self.current = self.current + timedelta(seconds=1)
    return self.current

  def advance(self, **kwargs: float) -> None:
    self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def workflow_repo() -> InMemoryWorkflowRepository:
  return InMemoryWorkflowRepository()


@pytest.fixture
def machine(workflow_repo: InMemoryWorkflowRepository, clock: FakeClock) -> WorkflowStateMachine:
  return WorkflowStateMachine(workflow_repo, clock=clock)


@pytest.fixture
def study_parameters() -> StudyParameters:
  return StudyParameters(title="Walking in Grace", topic="Grace", duration="1 week", duration_days=7, study_style="devotional", difficulty="beginner", audience="couples")
