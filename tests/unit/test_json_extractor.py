from __future__ import annotations

import pytest
from pydantic import BaseModel

from illumina.ai.errors import ExtractionFailedError, NoJsonFoundError
from illumina.ai.extractor import ResilientJSONExtractor, locate_json_candidate
from illumina.ai.json_repair import RepairPass
from illumina.ai.pipeline.contracts import TheologicalReview


class Pair(BaseModel):
  a: int
  b: int


class Item(BaseModel):
  n: int


class Items(BaseModel):
  items: list[Item]


class Numbers(BaseModel):
  items: list[int]


def test_locate_json_candidate_uses_greedy_span() -> None:
  assert locate_json_candidate('Sure! {"a": {"b": 1}} hope this helps }') == '{"a": {"b": 1}} hope this helps }'
  assert locate_json_candidate("no braces here") is None
  assert locate_json_candidate("} backwards {") is None


def test_trailing_commas_in_wrapped_response_succeed_on_first_pass() -> None:
  raw = 'Here is the plan:\n```json\n{"a": 1, "b": 2,}\n```\nLet me know!'
  extraction = ResilientJSONExtractor().extract_detailed(raw, Pair)

  assert extraction.value == Pair(a=1, b=2)
  assert extraction.attempt == 1
  assert extraction.pass_name == "basic"


def test_bare_ellipsis_between_sibling_objects_is_dropped() -> None:
  raw = '{"items": [{"n": 1}, ... , {"n": 2}]}'
  extraction = ResilientJSONExtractor().extract_detailed(raw, Items)

  assert extraction.attempt <= 2
  assert [item.n for item in extraction.value.items] == [1, 2]


def test_leading_ellipsis_needs_the_elision_pass() -> None:
  extraction = ResilientJSONExtractor().extract_detailed('{"items": [... 1, 2]}', Numbers)

  assert extraction.value.items == [1, 2]
  assert extraction.attempt == 2
  assert extraction.pass_name == "elision"


def test_ellipsis_with_descriptive_text_is_stripped() -> None:
  assert ResilientJSONExtractor().extract('{"a": 1, ... more items, "b": 2}', Pair) == Pair(a=1, b=2)


def test_comment_between_value_and_comma_is_stripped() -> None:
  raw = '{"a": 1 // first\n, "b": 2, /* second */}'
  assert ResilientJSONExtractor().extract(raw, Pair) == Pair(a=1, b=2)


def test_response_without_braces_raises_no_json_found() -> None:
  with pytest.raises(NoJsonFoundError) as excinfo:
    ResilientJSONExtractor().extract("I'm sorry, I cannot produce that study.", Pair)

  assert not isinstance(excinfo.value, ExtractionFailedError)
  assert str(excinfo.value) == "No valid JSON found in AI response"


def test_schema_failure_counts_as_failed_attempt_and_tries_next_pass() -> None:
  passes = [RepairPass(name="noop", transforms=()), RepairPass(name="rename", transforms=(lambda text: text.replace('"bb"', '"b"'),))]
  extraction = ResilientJSONExtractor(passes).extract_detailed('{"a": 1, "bb": 2}', Pair)

  assert extraction.value == Pair(a=1, b=2)
  assert extraction.attempt == 2
  assert extraction.pass_name == "rename"


def test_exhausted_passes_raise_with_bounded_preview() -> None:
  raw = '{"a": 1, "padding": "' + "x" * 2000 + '"}'
  extractor = ResilientJSONExtractor(preview_chars=100)

  with pytest.raises(ExtractionFailedError) as excinfo:
    extractor.extract(raw, Pair)

  error = excinfo.value
  assert error.attempts == 3
  assert "Schema validation failed" in error.last_error
  assert any(violation.startswith("b:") for violation in error.violations)
  assert len(error.preview) <= 103
  details = error.to_error_details()
  assert details["type"] == "extraction_failed"
  assert details["attempts"] == 3
  assert details["passes"] == ["basic", "elision", "structural"]


def test_unparseable_json_reports_last_parse_error() -> None:
  with pytest.raises(ExtractionFailedError) as excinfo:
    ResilientJSONExtractor().extract('{"a": 1, "b": }', Pair)

  assert excinfo.value.last_error.startswith("Invalid JSON")


def test_try_extract_returns_failures_as_data() -> None:
  extractor = ResilientJSONExtractor()

  failed = extractor.try_extract("plain prose", Pair)
  assert not failed.ok
  assert failed.value is None
  assert isinstance(failed.error, NoJsonFoundError)

  succeeded = extractor.try_extract('{"a": 1, "b": 2}', Pair)
  assert succeeded.ok
  assert succeeded.value == Pair(a=1, b=2)


def test_extract_accepts_plain_type_schemas_and_aliases() -> None:
  extractor = ResilientJSONExtractor()

  assert extractor.extract('{"x": 1, "y": 2,}', dict[str, int]) == {"x": 1, "y": 2}
  review = extractor.extract('{"isApproved": true, "readyForPublication": false, "concerns": []}', TheologicalReview)
  assert review.is_approved is True
  assert review.ready_for_publication is False


def test_extractor_requires_at_least_one_pass() -> None:
  with pytest.raises(ValueError):
    ResilientJSONExtractor(passes=())
