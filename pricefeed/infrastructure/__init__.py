"""
Infrastructure package for the price feed pipeline.

Centralizes database concerns: the shared async pool, catalog queries, the
transactional persister and the read projections. Keep this layer focused on
I/O and resource management, decoupled from orchestration logic.
"""

from pricefeed.infrastructure.catalog import active_source_ids, active_symbol_ids, load_catalog
from pricefeed.infrastructure.db_factory import (
    PoolManager,
    build_dsn,
    close_async_pool,
    get_async_pool,
    get_sync_connection,
)
from pricefeed.infrastructure.history import PriceHistory
from pricefeed.infrastructure.persister import Persister

__all__ = [
    "PoolManager",
    "PriceHistory",
    "Persister",
    "active_source_ids",
    "active_symbol_ids",
    "build_dsn",
    "close_async_pool",
    "get_async_pool",
    "get_sync_connection",
    "load_catalog",
]
