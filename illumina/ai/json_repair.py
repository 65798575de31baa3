"""Deterministic repair passes for JSON-ish model output.

Each transform is a pure `str -> str` rewrite. Transforms are grouped into
named passes ordered from least to most aggressive; a pass is always applied
on top of the output of every pass before it, so pass N performs a superset of
pass N-1's rewrites.

Regex rewrites run on a copy of the text whose string literals are masked out,
so prose, URLs and punctuation inside JSON strings are never touched.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass

Transform = Callable[[str], str]

_ELLIPSIS = r"(?:\.{3,}|…)"
# Free-form elision prose: anything up to the next delimiter that is not itself a quoted string.
_PROSE = r"[^,{}\[\]\x00]*"

_PLACEHOLDER_RE = re.compile(r"\x00(\d+)\x00")
_ELIDED_SIBLINGS_RE = re.compile(rf"([}}\]])\s*,\s*{_ELLIPSIS}\s*,?\s*([{{\[])")
_TRAILING_ELISION_RE = re.compile(rf",\s*{_ELLIPSIS}{_PROSE}([}}\]])")
_INLINE_ELISION_RE = re.compile(rf",\s*{_ELLIPSIS}{_PROSE},")
_BARE_ELLIPSIS_RE = re.compile(rf",?\s*{_ELLIPSIS}\s*,?")
_DOUBLE_COMMA_RE = re.compile(r",(?:\s*,)+")
_LEADING_COMMA_RE = re.compile(r"([\[{])\s*,")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][\w$-]*)(\s*):")
_PYTHON_LITERAL_RE = re.compile(r"\b(True|False|None)\b")
_PYTHON_LITERALS = {"True": "true", "False": "false", "None": "null"}


@dataclass(frozen=True)
class RepairPass:
  """A named group of transforms applied together as one extraction attempt."""

  name: str
  transforms: tuple[Transform, ...]

  def apply(self, text: str) -> str:
    for transform in self.transforms:
      text = transform(text)
    return text


def _string_end(text: str, start: int) -> int:
  """Return the index just past the string literal opening at `start`."""
  index = start + 1
  while index < len(text):
    char = text[index]
    if char == "\\":
      index += 2
      continue
    if char == '"':
      return index + 1
    index += 1

  # Unterminated literal (truncated output): it runs to the end of the text.
  return len(text)


def _mask_strings(text: str) -> tuple[str, list[str]]:
  """Swap every string literal for an indexed placeholder."""
  output: list[str] = []
  literals: list[str] = []
  index = 0

  while True:
    quote = text.find('"', index)
    if quote == -1:
      output.append(text[index:])
      break
    output.append(text[index:quote])
    end = _string_end(text, quote)
    output.append(f"\x00{len(literals)}\x00")
    literals.append(text[quote:end])
    index = end

  return "".join(output), literals


def _outside_strings(rewrite: Transform) -> Transform:
  """Run a regex rewrite only on the structural text between string literals."""

  @functools.wraps(rewrite)
  def transform(text: str) -> str:
    masked, literals = _mask_strings(text)
    rewritten = rewrite(masked)
    return _PLACEHOLDER_RE.sub(lambda match: literals[int(match.group(1))], rewritten)

  return transform


def strip_comments(text: str) -> str:
  """Remove `//` and `/* */` comments that sit outside string literals."""
  output: list[str] = []
  index = 0
  length = len(text)

  while index < length:
    char = text[index]

    # Copy string literals verbatim so URLs and slashes inside values survive.
    if char == '"':
      end = _string_end(text, index)
      output.append(text[index:end])
      index = end
      continue

    if char == "/" and index + 1 < length:
      marker = text[index + 1]
      # Line comments run to the end of the line; the newline itself is kept.
      if marker == "/":
        newline = text.find("\n", index)
        index = length if newline == -1 else newline
        continue
      if marker == "*":
        close = text.find("*/", index + 2)
        index = length if close == -1 else close + 2
        continue

    output.append(char)
    index += 1

  return "".join(output)


@_outside_strings
def join_elided_siblings(text: str) -> str:
  """Join two container elements separated by a bare ellipsis: `}, ... ,{` -> `},{`."""
  return _ELIDED_SIBLINGS_RE.sub(r"\1,\2", text)


@_outside_strings
def drop_trailing_elision(text: str) -> str:
  """Drop an ellipsis (and any prose after it) that runs up to a closing bracket."""
  return _TRAILING_ELISION_RE.sub(r"\1", text)


@_outside_strings
def drop_inline_elision(text: str) -> str:
  """Drop an ellipsis (and any prose after it) sitting between two commas."""
  return _INLINE_ELISION_RE.sub(",", text)


@_outside_strings
def strip_trailing_commas(text: str) -> str:
  """Remove commas directly before a closing brace or bracket."""
  return _TRAILING_COMMA_RE.sub(r"\1", text)


@_outside_strings
def drop_bare_elision(text: str) -> str:
  """Replace any remaining ellipsis token with a single separator."""
  return _BARE_ELLIPSIS_RE.sub(",", text)


@_outside_strings
def collapse_double_commas(text: str) -> str:
  return _DOUBLE_COMMA_RE.sub(",", text)


@_outside_strings
def strip_leading_commas(text: str) -> str:
  return _LEADING_COMMA_RE.sub(r"\1", text)


@_outside_strings
def normalize_python_literals(text: str) -> str:
  """Rewrite `True`/`False`/`None` to their JSON spellings."""
  return _PYTHON_LITERAL_RE.sub(lambda match: _PYTHON_LITERALS[match.group(1)], text)


@_outside_strings
def quote_unquoted_keys(text: str) -> str:
  """Wrap bare identifier keys in quotes to handle JS-style output."""
  return _UNQUOTED_KEY_RE.sub(r'\1"\2"\3:', text)


def insert_missing_commas(text: str) -> str:
  """Insert commas when values run together to salvage near-JSON outputs."""
  output: list[str] = []
  value_ended = False
  index = 0
  length = len(text)

  while index < length:
    char = text[index]

    if char == '"':
      end = _string_end(text, index)
      if value_ended:
        output.append(",")
      output.append(text[index:end])
      value_ended = True
      index = end
      continue

    if char in "{[":
      if value_ended:
        output.append(",")
      output.append(char)
      value_ended = False
    elif char in "}]":
      output.append(char)
      value_ended = True
    elif char in ",:":
      output.append(char)
      value_ended = False
    elif char.isalnum() or char in "-+.":
      # Consume numbers and bare literals as a single token.
      start = index
      while index < length and (text[index].isalnum() or text[index] in "-+._"):
        index += 1
      if value_ended:
        output.append(",")
      output.append(text[start:index])
      value_ended = True
      continue
    else:
      output.append(char)

    index += 1

  return "".join(output)


BASIC_PASS = RepairPass(name="basic", transforms=(strip_comments, join_elided_siblings, drop_trailing_elision, drop_inline_elision, strip_trailing_commas))
ELISION_PASS = RepairPass(name="elision", transforms=(drop_bare_elision, collapse_double_commas, strip_leading_commas, strip_trailing_commas))
STRUCTURAL_PASS = RepairPass(name="structural", transforms=(normalize_python_literals, quote_unquoted_keys, insert_missing_commas, strip_trailing_commas))

REPAIR_PASSES: tuple[RepairPass, ...] = (BASIC_PASS, ELISION_PASS, STRUCTURAL_PASS)


def iter_repairs(candidate: str, passes: Sequence[RepairPass] = REPAIR_PASSES) -> Iterator[tuple[RepairPass, str]]:
  """Yield each pass with the cumulative rewrite of the candidate after it."""
  text = candidate
  for repair_pass in passes:
    text = repair_pass.apply(text)
    yield repair_pass, text
