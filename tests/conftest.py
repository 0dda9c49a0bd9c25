"""
Pytest configuration for the price feed pipeline.

Provides fixtures for:
- Settings override for unit and integration tests
- Database connection management (integration only)
- Fake async pool / connection / cursor doubles for unit tests
"""

from __future__ import annotations

import json
import os
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator, Iterable

import psycopg
import pytest

from pricefeed.config import Settings
from pricefeed.domain.models import Catalog, DataSource


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "pricefeed_test"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Apply `db/schema.sql` and seed the example catalog (both idempotent).
    """
    from scripts.init_db import _apply_schema, _seed_catalog

    root = Path(__file__).parent.parent
    _apply_schema(db_connection, root / "db" / "schema.sql")
    catalog = json.loads((root / "scripts" / "catalog.example.json").read_text(encoding="utf-8"))
    _seed_catalog(db_connection, catalog)
    return True


@pytest.fixture(scope="function")
def clean_prices_table(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty the prices table before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.prices RESTART IDENTITY;")
    db_connection.commit()
    yield
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.prices RESTART IDENTITY;")
    db_connection.commit()


# ---------------------------------------------------------------------------
# Async pool doubles
# ---------------------------------------------------------------------------


class FakeTransaction(AbstractAsyncContextManager[None]):
    def __init__(self, conn: FakeConnection) -> None:
        self._conn = conn

    async def __aenter__(self) -> None:
        self._conn.transactions += 1
        return None

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        del tb
        if exc_type is None:
            self._conn.commits += 1
        else:
            self._conn.rollbacks += 1
        return False


class FakeCursor(AbstractAsyncContextManager["FakeCursor"]):
    """
    Answers plain-text queries from `responses` (first matching substring wins)
    and records composed statements (the batch INSERT) in `pool.executed`.
    """

    def __init__(self, pool: FakePool) -> None:
        self._pool = pool
        self._rows: list[dict[str, Any]] = []

    async def __aenter__(self) -> FakeCursor:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        del exc_type, exc, tb
        return False

    async def execute(self, query: Any, params: Any = None) -> None:
        self._pool.executed.append((query, params))
        if not isinstance(query, str):
            if self._pool.insert_error is not None:
                raise self._pool.insert_error
            self._rows = []
            return
        for needle, rows in self._pool.responses:
            if needle in query:
                self._rows = [dict(row) for row in rows]
                return
        self._rows = []

    async def fetchall(self) -> list[dict[str, Any]]:
        return self._rows


class FakeConnection:
    def __init__(self, pool: FakePool) -> None:
        self._pool = pool
        self.transactions = 0
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, row_factory: Any = None) -> FakeCursor:
        del row_factory
        return FakeCursor(self._pool)

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)


class _ConnectionContext(AbstractAsyncContextManager[FakeConnection]):
    def __init__(self, conn: FakeConnection) -> None:
        self._conn = conn

    async def __aenter__(self) -> FakeConnection:
        return self._conn

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        del exc_type, exc, tb
        return False


class FakePool:
    """Stand-in for `psycopg_pool.AsyncConnectionPool` with a single connection."""

    def __init__(self, responses: Iterable[tuple[str, list[dict[str, Any]]]] = ()) -> None:
        self.responses = list(responses)
        self.executed: list[tuple[Any, Any]] = []
        self.insert_error: Exception | None = None
        self.conn = FakeConnection(self)

    def connection(self) -> _ConnectionContext:
        return _ConnectionContext(self.conn)

    @property
    def inserts(self) -> list[tuple[Any, Any]]:
        return [(query, params) for query, params in self.executed if not isinstance(query, str)]


@pytest.fixture
def fake_pool_factory():
    """Factory for `FakePool` instances answering the given canned queries."""
    return FakePool


def _make_source(source_id: int, name: str, **fields: Any) -> DataSource:
    return DataSource(id=source_id, name=name, url=f"https://{name}.test/feed", **fields)


def _make_catalog(sources: Iterable[DataSource]) -> Catalog:
    return Catalog(sources=tuple(sources), loaded_at=datetime.now(timezone.utc))


@pytest.fixture
def make_source():
    return _make_source


@pytest.fixture
def make_catalog():
    return _make_catalog
