"""Scripture reference normalization and extraction."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from illumina.ai.pipeline.contracts import AIStudyPlanResponse

_BOOKS: tuple[tuple[str, ...], ...] = (
  ("genesis", "gen", "ge", "gn"),
  ("exodus", "exod", "exo", "ex"),
  ("leviticus", "lev", "lv"),
  ("numbers", "num", "nm"),
  ("deuteronomy", "deut", "dt"),
  ("joshua", "josh", "jos"),
  ("judges", "judg", "jdg"),
  ("ruth", "rth", "ru"),
  ("1 samuel", "1sam", "1sa"),
  ("2 samuel", "2sam", "2sa"),
  ("1 kings", "1kgs", "1ki"),
  ("2 kings", "2kgs", "2ki"),
  ("1 chronicles", "1chr", "1ch"),
  ("2 chronicles", "2chr", "2ch"),
  ("ezra", "ezr"),
  ("nehemiah", "neh"),
  ("esther", "esth", "est"),
  ("job",),
  ("psalms", "psalm", "ps", "psa", "pss"),
  ("proverbs", "prov", "prv", "pr"),
  ("ecclesiastes", "eccl", "ecc", "qoh"),
  ("song of solomon", "songofsongs", "song", "sos", "canticles"),
  ("isaiah", "isa"),
  ("jeremiah", "jer"),
  ("lamentations", "lam"),
  ("ezekiel", "ezek", "eze"),
  ("daniel", "dan", "dn"),
  ("hosea", "hos"),
  ("joel",),
  ("amos", "am"),
  ("obadiah", "obad", "ob"),
  ("jonah", "jon"),
  ("micah", "mic"),
  ("nahum", "nah"),
  ("habakkuk", "hab"),
  ("zephaniah", "zeph", "zep"),
  ("haggai", "hag"),
  ("zechariah", "zech", "zec"),
  ("malachi", "mal"),
  ("matthew", "matt", "mt"),
  ("mark", "mk", "mrk"),
  ("luke", "lk", "luk"),
  ("john", "jn", "jhn"),
  ("acts", "act"),
  ("romans", "rom", "ro"),
  ("1 corinthians", "1cor", "1co"),
  ("2 corinthians", "2cor", "2co"),
  ("galatians", "gal"),
  ("ephesians", "eph"),
  ("philippians", "phil", "php"),
  ("colossians", "col"),
  ("1 thessalonians", "1thess", "1th"),
  ("2 thessalonians", "2thess", "2th"),
  ("1 timothy", "1tim", "1ti"),
  ("2 timothy", "2tim", "2ti"),
  ("titus", "tit"),
  ("philemon", "phlm", "phm"),
  ("hebrews", "heb"),
  ("james", "jas", "jm"),
  ("1 peter", "1pet", "1pe"),
  ("2 peter", "2pet", "2pe"),
  ("1 john", "1jn", "1jhn"),
  ("2 john", "2jn", "2jhn"),
  ("3 john", "3jn", "3jhn"),
  ("jude", "jud"),
  ("revelation", "rev", "re", "revelations"),
)


def _book_key(name: str) -> str:
  return re.sub(r"[\s.]", "", name)


BOOK_ALIASES: dict[str, str] = {_book_key(alias): names[0] for names in _BOOKS for alias in names}

_DASHES_RE = re.compile(r"[\u2012-\u2015]")
_WHITESPACE_RE = re.compile(r"\s+")
_COLON_RE = re.compile(r"\s*:\s*")
_HYPHEN_RE = re.compile(r"\s*-\s*")
_ORDINAL_PREFIX_RE = re.compile(r"^(iii|ii|i|3rd|2nd|1st|third|second|first)\s+")
_ORDINALS = {"i": "1", "ii": "2", "iii": "3", "1st": "1", "2nd": "2", "3rd": "3", "first": "1", "second": "2", "third": "3"}
_REFERENCE_RE = re.compile(r"^(?P<book>(?:[1-3]\s*)?[a-z][a-z.\s]*?)\.?\s*(?P<location>\d[\d:,\-\s]*)$")


def canonical_book(name: str) -> str | None:
  """Map a book name or abbreviation (any case or spacing) to its canonical name."""
  text = _ORDINAL_PREFIX_RE.sub(lambda match: f"{_ORDINALS[match.group(1)]} ", name.strip().lower())
  return BOOK_ALIASES.get(_book_key(text))


def normalize_reference(reference: str | None) -> str:
  """Canonical, case/whitespace/abbreviation-insensitive form of a reference.

  `"Jn 3 : 16"`, `"john 3:16"` and `"JOHN  3:16"` all normalize to
  `"john 3:16"`; `"II Cor. 5:17–19"` becomes `"2 corinthians 5:17-19"`.
  Unknown book names are kept as written, lowercased.
  """
  if not reference:
    return ""
  text = _DASHES_RE.sub("-", reference.strip().lower())
  text = _WHITESPACE_RE.sub(" ", text)
  text = _COLON_RE.sub(":", text)
  text = _HYPHEN_RE.sub("-", text)
  text = _ORDINAL_PREFIX_RE.sub(lambda match: f"{_ORDINALS[match.group(1)]} ", text)

  match = _REFERENCE_RE.match(text)
  if match is None:
    return canonical_book(text) or text

  book = match.group("book").strip()
  location = _WHITESPACE_RE.sub("", match.group("location"))
  canonical = canonical_book(book)
  if canonical is None:
    canonical = _WHITESPACE_RE.sub(" ", book.replace(".", "")).strip()
  return f"{canonical} {location}"


def _add(found: dict[str, None], values: Iterable[Any]) -> None:
  for value in values:
    if isinstance(value, str) and value.strip():
      found.setdefault(value.strip(), None)


def extract_references_from_plan(plan: AIStudyPlanResponse | Mapping[str, Any]) -> list[str]:
  """Collect the unique scripture references cited by a study plan, in first-seen order."""
  found: dict[str, None] = {}

  if isinstance(plan, AIStudyPlanResponse):
    for entry in plan.daily_plan:
      _add(found, [entry.focus_passage, *entry.supporting_scriptures])
    return list(found)

  daily = plan.get("dailyPlan") or plan.get("dailyPlans") or []
  for entry in daily:
    _add(found, [entry.get("focusPassage"), entry.get("primaryScripture")])
    _add(found, entry.get("supportingScriptures") or [])
  for week in plan.get("weeklyThemes") or []:
    _add(found, week.get("keyScriptures") or [])
  return list(found)
