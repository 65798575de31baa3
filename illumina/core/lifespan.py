"""Process-level construction and teardown of the workflow core."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from illumina.ai.extractor import ResilientJSONExtractor
from illumina.config import DatabaseSettings, Settings, get_settings
from illumina.core.database import build_session_factory, create_db_engine
from illumina.core.logging import initialize_logging
from illumina.storage.postgres_verse_cache_repo import PostgresVerseCacheRepository
from illumina.storage.postgres_workflow_repo import PostgresWorkflowRepository
from illumina.storage.verse_cache_repo import VerseCacheRepository
from illumina.storage.workflow_repo import WorkflowRepository
from illumina.verses.lookup import BibleApiClient, ScriptureLookup
from illumina.verses.validator import BibleVerseValidator
from illumina.workflow.content import ContentStore
from illumina.workflow.runner import StepRunner
from illumina.workflow.state_machine import WorkflowStateMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowRuntime:
  """Shared dependencies for one process; built once at startup."""

  settings: Settings
  extractor: ResilientJSONExtractor
  machine: WorkflowStateMachine
  content: ContentStore
  verse_validator: BibleVerseValidator
  runner: StepRunner


@asynccontextmanager
async def workflow_runtime(
  settings: Settings | None = None,
  *,
  workflow_repo: WorkflowRepository | None = None,
  verse_cache: VerseCacheRepository | None = None,
  lookup: ScriptureLookup | None = None,
  configure_logging: bool = True,
) -> AsyncIterator[WorkflowRuntime]:
  """Build the workflow core and release its connections on exit.

  Postgres is only touched when a repository is not injected; the HTTP client
  is only created when no scripture lookup is injected.
  """
  settings = settings or get_settings()
  if configure_logging:
    initialize_logging(settings)

  engine: AsyncEngine | None = None
  http_client: httpx.AsyncClient | None = None

  try:
    if workflow_repo is None or verse_cache is None:
      engine = create_db_engine(DatabaseSettings(debug=settings.debug, pg_dsn=settings.pg_dsn, pg_connect_timeout=settings.pg_connect_timeout))
      session_factory = build_session_factory(engine)
      workflow_repo = workflow_repo or PostgresWorkflowRepository(session_factory)
      verse_cache = verse_cache or PostgresVerseCacheRepository(session_factory)

    if lookup is None:
      http_client = httpx.AsyncClient(trust_env=False)
      lookup = BibleApiClient(http_client, base_url=settings.bible_api_base_url, translation=settings.bible_api_translation, timeout_seconds=settings.bible_api_timeout_seconds)

    extractor = ResilientJSONExtractor(preview_chars=settings.extraction_preview_chars)
    machine = WorkflowStateMachine(workflow_repo)
    content = ContentStore(workflow_repo)
    verse_validator = BibleVerseValidator(verse_cache, lookup, ttl_seconds=settings.verse_cache_ttl_seconds, batch_size=settings.verse_batch_size, batch_delay_seconds=settings.verse_batch_delay_seconds)
    runner = StepRunner(
      machine,
      extractor,
      verse_validator,
      content,
      verse_failure_threshold=settings.verse_failure_threshold,
      theological_validation_enabled=settings.theological_validation_enabled,
      max_concurrent_generations=settings.max_concurrent_generations,
    )
    logger.info("Workflow runtime started (environment=%s).", settings.environment)
    yield WorkflowRuntime(settings=settings, extractor=extractor, machine=machine, content=content, verse_validator=verse_validator, runner=runner)

  finally:
    if http_client is not None:
      await http_client.aclose()
    if engine is not None:
      await engine.dispose()
    logger.info("Workflow runtime stopped.")
