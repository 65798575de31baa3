"""Study generation workflow: step state machine and generated content."""

from illumina.workflow.content import ContentStore
from illumina.workflow.errors import (
  IllegalContentTransitionError,
  IllegalStepTransitionError,
  RequestNotFoundError,
  RequestTerminalError,
  StepConflictError,
  StepOrderViolationError,
  UnknownStepError,
  WorkflowContractError,
)
from illumina.workflow.models import GenerationStatus, ProgressSnapshot, StepOutcome, StepStatus, WorkflowStep
from illumina.workflow.state_machine import WorkflowStateMachine

__all__ = [
  "ContentStore",
  "GenerationStatus",
  "IllegalContentTransitionError",
  "IllegalStepTransitionError",
  "ProgressSnapshot",
  "RequestNotFoundError",
  "RequestTerminalError",
  "StepConflictError",
  "StepOrderViolationError",
  "StepOutcome",
  "StepStatus",
  "UnknownStepError",
  "WorkflowContractError",
  "WorkflowStateMachine",
  "WorkflowStep",
]
