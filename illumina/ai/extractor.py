"""Recover schema-valid objects from free-text model responses."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from illumina.ai.errors import ExtractionError, ExtractionFailedError, NoJsonFoundError, bounded_preview
from illumina.ai.json_repair import REPAIR_PASSES, RepairPass, iter_repairs

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_CHARS = 800


@dataclass(frozen=True)
class Extraction(Generic[T]):
  """A validated value plus the attempt that produced it."""

  value: T
  attempt: int
  pass_name: str


@dataclass(frozen=True)
class ExtractionOutcome(Generic[T]):
  """Typed result for callers that record failures instead of raising them."""

  extraction: Extraction[T] | None = None
  error: ExtractionError | None = None

  @property
  def ok(self) -> bool:
    return self.extraction is not None

  @property
  def value(self) -> T | None:
    if self.extraction is None:
      return None
    return self.extraction.value


@lru_cache(maxsize=64)
def _adapter_for(schema: Any) -> TypeAdapter[Any]:
  return TypeAdapter(schema)


def _format_violations(exc: ValidationError) -> list[str]:
  violations: list[str] = []
  for err in exc.errors():
    loc = ".".join(str(part) for part in err["loc"])
    violations.append(f"{loc}: {err['msg']}" if loc else err["msg"])
  return violations


def locate_json_candidate(raw_text: str) -> str | None:
  """Return the greedy span from the first `{` to the last `}`, if any."""
  start = raw_text.find("{")
  if start == -1:
    return None
  end = raw_text.rfind("}")
  if end < start:
    return None
  return raw_text[start : end + 1]


class ResilientJSONExtractor:
  """Locate, repair, parse and validate a JSON object embedded in model output."""

  def __init__(self, passes: Sequence[RepairPass] = REPAIR_PASSES, *, preview_chars: int = DEFAULT_PREVIEW_CHARS) -> None:
    if not passes:
      raise ValueError("At least one repair pass is required.")
    self._passes = tuple(passes)
    self._preview_chars = preview_chars

  @property
  def pass_names(self) -> list[str]:
    return [repair_pass.name for repair_pass in self._passes]

  def extract(self, raw_text: str, schema: type[T]) -> T:
    """Return the validated value or raise an `ExtractionError`."""
    return self.extract_detailed(raw_text, schema).value

  def try_extract(self, raw_text: str, schema: type[T]) -> ExtractionOutcome[T]:
    """Like `extract`, but return failures as data."""
    try:
      return ExtractionOutcome(extraction=self.extract_detailed(raw_text, schema))
    except ExtractionError as exc:
      return ExtractionOutcome(error=exc)

  def extract_detailed(self, raw_text: str, schema: type[T]) -> Extraction[T]:
    candidate = locate_json_candidate(raw_text)
    if candidate is None:
      raise NoJsonFoundError("No valid JSON found in AI response", preview=bounded_preview(raw_text, self._preview_chars))

    adapter = _adapter_for(schema)
    attempts = 0
    last_error = ""
    violations: list[str] = []
    cleaned = candidate

    # Try each pass in order; a parse that fails schema validation still counts as a failed attempt.
    for repair_pass, cleaned in iter_repairs(candidate, self._passes):
      attempts += 1
      logger.debug("Parsing attempt %d (%s) preview=%r", attempts, repair_pass.name, cleaned[:200])

      try:
        parsed = json.loads(cleaned)
      except json.JSONDecodeError as exc:
        last_error = f"Invalid JSON: {exc}"
        violations = []
        logger.debug("Parsing attempt %d (%s) failed: %s", attempts, repair_pass.name, last_error)
        continue

      try:
        value = adapter.validate_python(parsed)
      except ValidationError as exc:
        violations = _format_violations(exc)
        last_error = f"Schema validation failed: {'; '.join(violations)}"
        logger.debug("Parsing attempt %d (%s) failed validation: %s", attempts, repair_pass.name, last_error)
        continue

      if attempts > 1:
        logger.info("Recovered AI response on attempt %d (%s pass).", attempts, repair_pass.name)
      return Extraction(value=value, attempt=attempts, pass_name=repair_pass.name)

    logger.warning("All %d parsing attempts failed: %s", attempts, last_error)
    raise ExtractionFailedError(attempts=attempts, last_error=last_error, preview=bounded_preview(cleaned, self._preview_chars), violations=violations, pass_names=self.pass_names)
