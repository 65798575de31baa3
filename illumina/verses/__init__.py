"""Scripture reference handling and verse validation."""

from illumina.verses.lookup import BibleApiClient, ScriptureLookup, ScriptureLookupResult
from illumina.verses.references import extract_references_from_plan, normalize_reference
from illumina.verses.validator import BibleVerseValidator, VerseValidationResult

__all__ = [
  "BibleApiClient",
  "BibleVerseValidator",
  "ScriptureLookup",
  "ScriptureLookupResult",
  "VerseValidationResult",
  "extract_references_from_plan",
  "normalize_reference",
]
