"""
Read projections over `prices` for the API layer and the cache gate.

All views share one shape, grouped by category:

    {
        "data": {"gold": [{"symbol", "price", "change_percent", "unit"}, ...]},
        "meta": {"fetched_at", "timestamp", "source_name", "fetch_id", "total_items"},
    }

When two sources quote the same symbol, the source with the lower `priority`
wins; within a day the newest quote of each symbol wins.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from pricefeed.utils.logging import get_logger

log = get_logger(__name__)

PriceView = Dict[str, Any]

_SELECT = """
    SELECT DISTINCT ON ({distinct})
           COALESCE(c.name, 'uncategorized') AS category,
           s.name AS symbol,
           s.unit AS unit,
           p.price,
           p.change_percent,
           p.created_at,
           p.fetch_id::text AS fetch_id,
           ds.name AS source_name
    FROM public.prices p
    JOIN public.symbols s ON s.id = p.symbol_id
    JOIN public.data_sources ds ON ds.id = p.data_source_id
    LEFT JOIN public.categories c ON c.id = s.category_id
"""

_DAY_ROWS_SQL = (
    _SELECT.format(distinct="p.symbol_id")
    + """
    WHERE p.created_at >= %s AND p.created_at < %s
    ORDER BY p.symbol_id, p.created_at DESC, ds.priority, ds.id
"""
)

_RUN_ROWS_SQL = (
    _SELECT.format(distinct="p.fetch_id, p.symbol_id")
    + """
    WHERE p.fetch_id = ANY(%s::uuid[])
    ORDER BY p.fetch_id, p.symbol_id, ds.priority, ds.id
"""
)

_DAY_COUNT_SQL = """
    SELECT COUNT(DISTINCT (created_at AT TIME ZONE 'UTC')::date) AS total
    FROM public.prices
"""

_DAY_PAGE_SQL = """
    SELECT DISTINCT (created_at AT TIME ZONE 'UTC')::date AS day
    FROM public.prices
    ORDER BY day DESC
    LIMIT %s OFFSET %s
"""

_RANGE_COUNT_SQL = """
    SELECT COUNT(DISTINCT fetch_id) AS total
    FROM public.prices
    WHERE created_at BETWEEN %s AND %s
"""

_RANGE_PAGE_SQL = """
    SELECT fetch_id::text AS fetch_id, MIN(created_at) AS started
    FROM public.prices
    WHERE created_at BETWEEN %s AND %s
    GROUP BY fetch_id
    ORDER BY started ASC
    LIMIT %s OFFSET %s
"""


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def build_view(rows: Sequence[Dict[str, Any]]) -> Optional[PriceView]:
    """
    Group price rows by category into the shared view shape.

    Returns None for an empty row set so callers can tell "no data" apart
    from an empty view.
    """
    if not rows:
        return None

    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for row in rows:
        grouped[row["category"]].append(
            {
                "symbol": row["symbol"],
                "price": row["price"],
                "change_percent": row["change_percent"],
                "unit": row["unit"],
            }
        )
    for items in grouped.values():
        items.sort(key=lambda entry: entry["symbol"])

    newest = max(rows, key=lambda row: row["created_at"])
    timestamp = newest["created_at"].isoformat()
    return {
        "data": dict(sorted(grouped.items())),
        "meta": {
            "fetched_at": timestamp,
            "timestamp": timestamp,
            "source_name": ", ".join(sorted({row["source_name"] for row in rows})),
            "fetch_id": newest["fetch_id"],
            "total_items": len(rows),
        },
    }


class PriceHistory:
    """Read-only queries over persisted prices."""

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def _fetch(self, query: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
        async with self._pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, params)
                return await cur.fetchall()

    async def get_today_data(self, day: Optional[date] = None) -> Optional[PriceView]:
        """
        Latest quote of every symbol within the UTC day, or None if nothing was stored.
        """
        day = day or datetime.now(timezone.utc).date()
        rows = await self._fetch(_DAY_ROWS_SQL, day_bounds(day))
        return build_view(rows)

    async def get_all_data(self, limit: int, offset: int) -> Tuple[List[PriceView], int]:
        """
        One view per stored day, newest day first, paginated.

        Returns
        -------
        tuple[list[dict], int]
            Page of views and the total number of days.
        """
        total_rows = await self._fetch(_DAY_COUNT_SQL, ())
        total = int(total_rows[0]["total"]) if total_rows else 0
        day_rows = await self._fetch(_DAY_PAGE_SQL, (limit, offset))

        views: List[PriceView] = []
        for row in day_rows:
            view = await self.get_today_data(row["day"])
            if view is not None:
                views.append(view)
        return views, total

    async def get_data_in_range(
        self, start: datetime, end: datetime, limit: int, offset: int
    ) -> Tuple[List[PriceView], int]:
        """
        One view per run whose rows fall in [start, end], oldest run first.
        """
        total_rows = await self._fetch(_RANGE_COUNT_SQL, (start, end))
        total = int(total_rows[0]["total"]) if total_rows else 0
        page = await self._fetch(_RANGE_PAGE_SQL, (start, end, limit, offset))
        if not page:
            return [], total

        fetch_ids = [row["fetch_id"] for row in page]
        rows = await self._fetch(_RUN_ROWS_SQL, (fetch_ids,))
        by_run: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for row in rows:
            by_run[row["fetch_id"]].append(row)

        views = [build_view(by_run[fetch_id]) for fetch_id in fetch_ids if by_run.get(fetch_id)]
        log.debug("[HISTORY] range page", extra={"runs": len(views), "total": total})
        return [view for view in views if view is not None], total


__all__ = ["PriceHistory", "PriceView", "build_view", "day_bounds"]
