"""Typed failures for recovering structured data from model output."""

from __future__ import annotations

from typing import Any


def bounded_preview(text: str, limit: int) -> str:
  """Return at most `limit` characters of text, marking truncation."""
  if len(text) <= limit:
    return text
  return text[:limit] + "..."


class ExtractionError(Exception):
  """Base class for responses that could not be turned into schema-valid data."""

  error_type = "extraction_error"

  def __init__(self, message: str, *, preview: str = "") -> None:
    super().__init__(message)
    self.message = message
    self.preview = preview

  def to_error_details(self) -> dict[str, Any]:
    """Serialize the failure for a workflow step's error_details."""
    return {"type": self.error_type, "message": self.message, "preview": self.preview}


class NoJsonFoundError(ExtractionError):
  """The response contained no `{...}` span at all; the caller must re-prompt."""

  error_type = "no_json_found"


class ExtractionFailedError(ExtractionError):
  """A JSON span existed but no repair pass produced schema-valid data."""

  error_type = "extraction_failed"

  def __init__(self, *, attempts: int, last_error: str, preview: str, violations: list[str] | None = None, pass_names: list[str] | None = None) -> None:
    super().__init__(f"Failed to parse AI response after {attempts} attempts: {last_error}", preview=preview)
    self.attempts = attempts
    self.last_error = last_error
    self.violations = list(violations or [])
    self.pass_names = list(pass_names or [])

  def to_error_details(self) -> dict[str, Any]:
    details = super().to_error_details()
    details.update({"attempts": self.attempts, "last_error": self.last_error, "violations": self.violations, "passes": self.pass_names})
    return details
