"""Scripture text lookup against an external Bible API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from illumina.workflow.models import VerseValidationStatus

logger = logging.getLogger(__name__)

USER_AGENT = "Illumina Bible Study Generator v1.0"


@dataclass(frozen=True)
class ScriptureLookupResult:
  status: VerseValidationStatus
  verse_text: str | None = None
  translation: str | None = None
  api_response: dict[str, Any] | None = None
  error_message: str | None = None


class ScriptureLookup(Protocol):
  """Resolve a reference to its text, or report that it is unknown or unreachable."""

  async def lookup(self, reference: str) -> ScriptureLookupResult: ...


class BibleApiClient(ScriptureLookup):
  """Query bible-api.com style endpoints (`GET {base}/{reference}?translation=`)."""

  def __init__(self, client: httpx.AsyncClient, *, base_url: str, translation: str = "kjv", timeout_seconds: float = 10.0) -> None:
    self._client = client
    self._base_url = base_url.rstrip("/")
    self._translation = translation
    self._timeout = timeout_seconds

  async def lookup(self, reference: str) -> ScriptureLookupResult:
    url = f"{self._base_url}/{quote(reference, safe=':,')}"
    try:
      response = await self._client.get(url, params={"translation": self._translation}, headers={"User-Agent": USER_AGENT}, timeout=self._timeout)
    except httpx.RequestError as e:
      logger.warning("Scripture lookup for %r failed: %s", reference, e)
      return ScriptureLookupResult(status=VerseValidationStatus.API_ERROR, error_message=str(e) or type(e).__name__)

    if response.status_code == 404:
      return ScriptureLookupResult(status=VerseValidationStatus.NOT_FOUND, error_message=f"HTTP 404: {reference} not found")
    if not response.is_success:
      logger.warning("Scripture lookup for %r returned %d.", reference, response.status_code)
      return ScriptureLookupResult(status=VerseValidationStatus.API_ERROR, error_message=f"HTTP {response.status_code}: {response.reason_phrase}")

    try:
      payload = response.json()
    except ValueError:
      return ScriptureLookupResult(status=VerseValidationStatus.API_ERROR, error_message="Scripture API returned a non-JSON body")
    if not isinstance(payload, dict):
      return ScriptureLookupResult(status=VerseValidationStatus.API_ERROR, error_message=f"Scripture API returned a JSON {type(payload).__name__}, expected an object")

    text = str(payload.get("text") or "").strip()
    translation = str(payload.get("translation_id") or self._translation).upper()
    if not text:
      return ScriptureLookupResult(status=VerseValidationStatus.INVALID, translation=translation, api_response=payload, error_message="Scripture API returned no verse text")
    return ScriptureLookupResult(status=VerseValidationStatus.VALID, verse_text=text, translation=translation, api_response=payload)
