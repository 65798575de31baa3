"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from illumina.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the study generation workflow."""

  environment: str = "development"
  debug: bool = False
  log_dir: str = "./logs"
  log_max_bytes: int = 5242880
  log_backup_count: int = 10
  pg_dsn: str | None = None
  pg_connect_timeout: int = 5
  bible_api_base_url: str = "https://bible-api.com"
  bible_api_translation: str = "kjv"
  bible_api_timeout_seconds: float = 10.0
  verse_cache_ttl_seconds: int = 86400
  verse_batch_size: int = 5
  verse_batch_delay_seconds: float = 0.5
  verse_failure_threshold: float = 0.2
  theological_validation_enabled: bool = True
  extraction_preview_chars: int = 800
  max_concurrent_generations: int = 3


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("ILLUMINA_ENV", "development").lower()
  debug = _parse_bool(os.getenv("ILLUMINA_DEBUG"))

  log_max_bytes = _positive_int("ILLUMINA_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("ILLUMINA_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("ILLUMINA_LOG_BACKUP_COUNT must be zero or a positive integer.")

  pg_connect_timeout = _positive_int("ILLUMINA_PG_CONNECT_TIMEOUT", "5")

  bible_api_timeout_seconds = float(os.getenv("ILLUMINA_BIBLE_API_TIMEOUT_SECONDS", "10"))
  if bible_api_timeout_seconds <= 0:
    raise ValueError("ILLUMINA_BIBLE_API_TIMEOUT_SECONDS must be positive.")

  # Cache TTL is shared by every request that validates the same reference.
  verse_cache_ttl_seconds = _positive_int("ILLUMINA_BIBLE_API_CACHE_TTL", "86400")
  verse_batch_size = _positive_int("ILLUMINA_VERSE_BATCH_SIZE", "5")
  verse_batch_delay_seconds = float(os.getenv("ILLUMINA_VERSE_BATCH_DELAY_SECONDS", "0.5"))
  if verse_batch_delay_seconds < 0:
    raise ValueError("ILLUMINA_VERSE_BATCH_DELAY_SECONDS must be zero or positive.")

  verse_failure_threshold = float(os.getenv("ILLUMINA_VERSE_FAILURE_THRESHOLD", "0.2"))
  if not 0 <= verse_failure_threshold <= 1:
    raise ValueError("ILLUMINA_VERSE_FAILURE_THRESHOLD must be between 0 and 1.")

  extraction_preview_chars = _positive_int("ILLUMINA_EXTRACTION_PREVIEW_CHARS", "800")

  max_concurrent_generations = int(os.getenv("ILLUMINA_MAX_CONCURRENT_GENERATIONS", "3"))
  if not 1 <= max_concurrent_generations <= 10:
    raise ValueError("ILLUMINA_MAX_CONCURRENT_GENERATIONS must be between 1 and 10.")

  return Settings(
    environment=environment,
    debug=debug,
    log_dir=(os.getenv("ILLUMINA_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    pg_dsn=_optional_str(os.getenv("ILLUMINA_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL")),
    pg_connect_timeout=pg_connect_timeout,
    bible_api_base_url=(os.getenv("ILLUMINA_BIBLE_API_BASE_URL") or "https://bible-api.com").strip().rstrip("/"),
    bible_api_translation=(os.getenv("ILLUMINA_BIBLE_API_TRANSLATION") or "kjv").strip().lower(),
    bible_api_timeout_seconds=bible_api_timeout_seconds,
    verse_cache_ttl_seconds=verse_cache_ttl_seconds,
    verse_batch_size=verse_batch_size,
    verse_batch_delay_seconds=verse_batch_delay_seconds,
    verse_failure_threshold=verse_failure_threshold,
    theological_validation_enabled=_parse_bool(os.getenv("ILLUMINA_THEOLOGICAL_VALIDATION_ENABLED"), default=True),
    extraction_preview_chars=extraction_preview_chars,
    max_concurrent_generations=max_concurrent_generations,
  )
