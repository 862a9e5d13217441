# ruff: noqa: INP001
"""Engine construction and schema bootstrap tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from crewboard.db import session as db_session
from crewboard.db.session import (
    MIGRATIONS_DIR,
    _normalize_database_url,
    build_engine,
    has_migrations,
    init_db,
)

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgresql://u:p@db:5432/crew", "postgresql+psycopg://u:p@db:5432/crew"),
        ("postgres://u:p@db/crew", "postgresql+psycopg://u:p@db/crew"),
        ("sqlite:///./crew.db", "sqlite+aiosqlite:///./crew.db"),
        ("postgresql+psycopg://db/crew", "postgresql+psycopg://db/crew"),
        ("not-a-url", "not-a-url"),
    ],
)
def test_database_url_uses_async_driver(raw: str, expected: str) -> None:
    assert _normalize_database_url(raw) == expected


def test_in_memory_sqlite_shares_one_connection() -> None:
    engine = build_engine("sqlite:///:memory:")

    assert engine.url.drivername == "sqlite+aiosqlite"
    assert isinstance(engine.pool, StaticPool)


def test_bundled_migrations_are_discovered(tmp_path: Path) -> None:
    (tmp_path / "versions").mkdir()
    (tmp_path / "versions" / "__init__.py").write_text("", encoding="utf-8")

    assert has_migrations(MIGRATIONS_DIR) is True
    assert has_migrations(tmp_path) is False
    assert has_migrations(tmp_path / "absent") is False


async def _table_names(engine: AsyncEngine) -> set[str]:
    async with engine.connect() as conn:
        return set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))


@pytest.mark.asyncio
async def test_init_db_creates_tables_without_migrations(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    migrated: list[bool] = []
    monkeypatch.setattr(db_session, "run_migrations", lambda: migrated.append(True))
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    try:
        await init_db(engine, auto_migrate=True, migrations_dir=tmp_path)
        tables = await _table_names(engine)
    finally:
        await engine.dispose()

    assert migrated == []
    assert {"tasks", "agent_profiles", "agent_runs", "api_keys", "comments"} <= tables


@pytest.mark.asyncio
async def test_init_db_runs_migrations_when_available(monkeypatch: pytest.MonkeyPatch) -> None:
    migrated: list[bool] = []
    monkeypatch.setattr(db_session, "run_migrations", lambda: migrated.append(True))
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    try:
        await init_db(engine, auto_migrate=True)
        tables = await _table_names(engine)
    finally:
        await engine.dispose()

    assert migrated == [True]
    assert tables == set()
