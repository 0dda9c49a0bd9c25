"""
Catalog queries: active data sources, active symbols, categories.

The catalog is owned by out-of-band management and is read-only here.
`load_catalog` builds the point-in-time `Catalog` snapshot the orchestrator
runs against; `active_symbol_ids` / `active_source_ids` give the persister the
name -> id maps it resolves feed items with at write time.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from pricefeed.domain.models import Catalog, Category, DataSource, Symbol
from pricefeed.utils.logging import get_logger

log = get_logger(__name__)

_SOURCES_SQL = """
    SELECT id, name, url, category_id, active, priority,
           parser, parser_config, headers, timeout_ms
    FROM public.data_sources
    WHERE active = TRUE
    ORDER BY priority, id
"""

_SYMBOLS_SQL = """
    SELECT id, name, category_id, unit, active
    FROM public.symbols
    WHERE active = TRUE
    ORDER BY id
"""

_CATEGORIES_SQL = "SELECT id, name FROM public.categories ORDER BY id"

_SYMBOL_IDS_SQL = "SELECT id, name FROM public.symbols WHERE active = TRUE"
_SOURCE_IDS_SQL = "SELECT id, name FROM public.data_sources WHERE active = TRUE"


def symbol_key(name: Any) -> str:
    """Normalize a symbol name for lookups; feeds are inconsistent about case."""
    return str(name).strip().upper()


async def _fetch_dicts(pool: AsyncConnectionPool, sql: str) -> list[dict[str, Any]]:
    async with pool.connection() as conn:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql)
            return await cur.fetchall()


def _source_from_row(row: dict[str, Any]) -> DataSource:
    return DataSource(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        category_id=row.get("category_id"),
        active=row.get("active", True),
        priority=row.get("priority") or 100,
        parser=row.get("parser") or "categorized",
        parser_config=row.get("parser_config") or {},
        headers=row.get("headers") or {},
        timeout_ms=row.get("timeout_ms"),
    )


async def load_catalog(pool: AsyncConnectionPool) -> Catalog:
    """
    Read active sources, active symbols and all categories into a Catalog.
    """
    source_rows = await _fetch_dicts(pool, _SOURCES_SQL)
    symbol_rows = await _fetch_dicts(pool, _SYMBOLS_SQL)
    category_rows = await _fetch_dicts(pool, _CATEGORIES_SQL)

    catalog = Catalog(
        sources=tuple(_source_from_row(row) for row in source_rows),
        symbols=tuple(Symbol(**row) for row in symbol_rows),
        categories=tuple(Category(**row) for row in category_rows),
        loaded_at=datetime.now(timezone.utc),
    )
    log.info(
        "[CATALOG LOADED]",
        extra={
            "sources": len(catalog.sources),
            "symbols": len(catalog.symbols),
            "categories": len(catalog.categories),
        },
    )
    return catalog


async def active_symbol_ids(pool: AsyncConnectionPool) -> Dict[str, int]:
    """Map of normalized active symbol name -> symbol id."""
    rows = await _fetch_dicts(pool, _SYMBOL_IDS_SQL)
    return {symbol_key(row["name"]): row["id"] for row in rows}


async def active_source_ids(pool: AsyncConnectionPool) -> Dict[str, int]:
    """Map of active data source name -> data source id."""
    rows = await _fetch_dicts(pool, _SOURCE_IDS_SQL)
    return {row["name"]: row["id"] for row in rows}


__all__ = ["active_source_ids", "active_symbol_ids", "load_catalog", "symbol_key"]
