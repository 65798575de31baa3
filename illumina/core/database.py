from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from illumina.config import DatabaseSettings


class Base(DeclarativeBase):
  pass


def database_url(settings: DatabaseSettings) -> str | None:
  """Build the SQLAlchemy database URL for the asyncpg driver."""
  url = settings.pg_dsn
  if url and url.startswith("postgresql://"):
    url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
  if url and url.startswith("postgres://"):
    url = url.replace("postgres://", "postgresql+asyncpg://", 1)

  return url


def create_db_engine(settings: DatabaseSettings) -> AsyncEngine:
  """Create the process-wide async engine; callers own its disposal."""
  url = database_url(settings)
  if not url:
    raise RuntimeError("Database connection is not configured (ILLUMINA_PG_DSN is missing).")

  return create_async_engine(url, echo=settings.debug, future=True, connect_args={"timeout": settings.pg_connect_timeout})


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
  """Return a session factory bound to the given engine."""
  return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
