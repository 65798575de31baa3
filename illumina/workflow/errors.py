"""Contract violations raised by the workflow state machine.

These indicate caller bugs and are raised immediately; step-level business
failures are recorded on the step record instead.
"""

from __future__ import annotations


class WorkflowContractError(Exception):
  """Base class for workflow programming-contract violations."""


class UnknownStepError(WorkflowContractError, ValueError):
  """The step name is not part of the pipeline."""


class RequestNotFoundError(WorkflowContractError, LookupError):
  """No generation request exists for the identifier."""


class StepConflictError(WorkflowContractError):
  """The step is already in progress for this request, or changed underneath the caller."""


class IllegalStepTransitionError(StepConflictError):
  """The requested step transition is not allowed from the step's current status."""


class StepOrderViolationError(WorkflowContractError):
  """A step was advanced before its predecessors were completed or skipped."""


class RequestTerminalError(WorkflowContractError):
  """The request is completed, cancelled or failed and cannot be advanced."""


class IllegalContentTransitionError(WorkflowContractError):
  """A generated day's generation or validation status cannot move as requested."""
