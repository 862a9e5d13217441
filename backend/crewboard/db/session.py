"""Async engine and sessions for the task board, plus schema bootstrap.

``init_db`` applies the Alembic revisions under ``backend/migrations`` when
``DB_AUTO_MIGRATE`` is on and at least one revision exists. Otherwise it
creates the tables straight from the SQLModel metadata.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

from alembic.config import Config
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from crewboard import models as _models
from crewboard.core.config import BACKEND_ROOT, settings
from crewboard.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

# Every table must be registered on SQLModel.metadata before create_all.
_MODEL_REGISTRY = _models

ALEMBIC_INI = BACKEND_ROOT / "alembic.ini"
MIGRATIONS_DIR = BACKEND_ROOT / "migrations"

_ASYNC_DRIVERS = {
    "postgresql": "postgresql+psycopg",
    "postgres": "postgresql+psycopg",
    "sqlite": "sqlite+aiosqlite",
}

logger = get_logger(__name__)


def _normalize_database_url(database_url: str) -> str:
    """Map bare ``postgresql://`` and ``sqlite://`` URLs onto async drivers."""
    scheme, sep, rest = database_url.partition("://")
    if not sep:
        return database_url
    driver = _ASYNC_DRIVERS.get(scheme)
    return f"{driver}://{rest}" if driver else database_url


def build_engine(database_url: str) -> AsyncEngine:
    url = _normalize_database_url(database_url)
    options: dict[str, Any] = {}
    if url.startswith("sqlite"):
        if ":memory:" in url:
            # One shared connection keeps the in-memory schema alive.
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
    return create_async_engine(url, **options)


async_engine: AsyncEngine = build_engine(settings.database_url)
async_session_maker = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def has_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> bool:
    versions = migrations_dir / "versions"
    return versions.is_dir() and any(
        path.suffix == ".py" and not path.name.startswith("_") for path in versions.iterdir()
    )


def _alembic_config() -> Config:
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    # Keep the application's logging setup instead of alembic.ini's.
    config.attributes["configure_logger"] = False
    return config


def run_migrations() -> None:
    """Upgrade the configured database to the latest revision."""
    from alembic import command

    logger.info("db.migrations.started", extra={"path": str(MIGRATIONS_DIR)})
    command.upgrade(_alembic_config(), "head")
    logger.info("db.migrations.completed")


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("db.schema.created", extra={"tables": len(SQLModel.metadata.tables)})


async def init_db(
    engine: AsyncEngine | None = None,
    *,
    auto_migrate: bool | None = None,
    migrations_dir: Path = MIGRATIONS_DIR,
) -> None:
    """Bring the schema up to date before serving requests or running the worker."""
    target = engine or async_engine
    migrate = settings.db_auto_migrate if auto_migrate is None else auto_migrate
    if migrate:
        if has_migrations(migrations_dir):
            await asyncio.to_thread(run_migrations)
            return
        logger.warning("db.migrations.missing", extra={"path": str(migrations_dir)})
    await create_schema(target)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; uncommitted work is rolled back when the request ends."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                logger.debug("db.session.rollback")
                await session.rollback()
