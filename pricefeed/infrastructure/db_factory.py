"""
Database connection factory utilities for the price feed pipeline.

Provides centralized management of the shared async PostgreSQL pool used by
the persister and the read projections, plus a plain sync connection for
bootstrap scripts. The PoolManager singleton owns the pool lifecycle.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import threading
from typing import Optional

import psycopg
from psycopg import Connection
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pricefeed.config import get_settings


def build_dsn() -> str:
    """Compose a DSN string from settings."""
    settings = get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


class PoolManager:
    """
    Process-wide singleton owning the async connection pool.

    The pool is shared across all runs and all read paths.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._async_pool = None
            return cls._instance

    async def get_async_pool(
        self,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
        dsn: Optional[str] = None,
    ) -> AsyncConnectionPool:
        """
        Get or create (and open) the asynchronous connection pool.

        Parameters
        ----------
        min_size : int | None
            Minimum number of idle connections to keep. Defaults to settings.
        max_size : int | None
            Maximum total connections in the pool. Defaults to settings.
        dsn : str | None
            DSN override; defaults to `build_dsn()`.

        Returns
        -------
        AsyncConnectionPool
            The managed async pool instance.
        """
        if self._async_pool is None:
            settings = get_settings()
            pool = AsyncConnectionPool(
                conninfo=dsn or build_dsn(),
                min_size=min_size or settings.db_pool_min_size,
                max_size=max_size or settings.db_pool_max_size,
                open=False,
            )
            await pool.open()
            self._async_pool = pool
        return self._async_pool

    async def close(self) -> None:
        """Close the managed pool and release its connections."""
        pool, self._async_pool = self._async_pool, None
        if pool is not None:
            await pool.close()


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Used by bootstrap scripts; the pipeline itself uses the async pool.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn())


async def get_async_pool(
    min_size: Optional[int] = None, max_size: Optional[int] = None
) -> AsyncConnectionPool:
    """Get or create the shared async pool via PoolManager."""
    return await PoolManager().get_async_pool(min_size=min_size, max_size=max_size)


async def close_async_pool() -> None:
    """Close the shared async pool, if one was opened."""
    await PoolManager().close()


__all__ = [
    "PoolManager",
    "build_dsn",
    "close_async_pool",
    "get_async_pool",
    "get_sync_connection",
]
