"""
Transactional batch persistence of one run's prices.

`Persister.store_batch` is the single place atomicity matters: either every
valid row of a run lands in `prices`, or none does.

Flow:
1. Query the name -> id maps of active symbols and data sources.
2. Build every insertable row in memory (no connection held). Items naming an
   unknown symbol or source are catalog drift and are dropped; candidates that
   fail validation are dropped.
3. One connection, one transaction, one multi-row INSERT, commit. Any failure
   rolls the whole batch back and re-raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from pricefeed.domain.models import MergedData, PriceCandidate, PriceRecord
from pricefeed.domain.validation import ValidationResult, coerce_decimal, validate_price
from pricefeed.infrastructure.catalog import active_source_ids, active_symbol_ids, symbol_key
from pricefeed.utils.logging import get_logger

log = get_logger(__name__)

_PRICE_COLUMNS = ("symbol_id", "price", "change_percent", "data_source_id", "fetch_id", "created_at")


@dataclass
class BatchStats:
    """Row accounting for one `build_records` call."""

    candidates: int = 0
    dropped_drift: int = 0
    dropped_invalid: int = 0

    @property
    def dropped(self) -> int:
        return self.dropped_drift + self.dropped_invalid


def build_insert(records: List[PriceRecord]) -> Tuple[sql.Composed, List[object]]:
    """Compose a single multi-row INSERT for `records` and its flat parameter list."""
    row_placeholder = sql.SQL("({})").format(
        sql.SQL(", ").join(sql.Placeholder() for _ in _PRICE_COLUMNS)
    )
    query = sql.SQL("INSERT INTO {table} ({columns}) VALUES {values}").format(
        table=sql.Identifier("public", "prices"),
        columns=sql.SQL(", ").join(sql.Identifier(col) for col in _PRICE_COLUMNS),
        values=sql.SQL(", ").join(row_placeholder for _ in records),
    )
    params: List[object] = [value for record in records for value in record.as_row()]
    return query, params


class Persister:
    """
    Resolves feed items to catalog ids and writes them in one transaction.

    Parameters
    ----------
    pool : AsyncConnectionPool
        Shared pool; one connection is borrowed per non-empty batch.
    validator : callable
        Candidate check, `validate_price` by default.
    clock : callable
        Returns the `created_at` stamped on every row of the batch.
    """

    def __init__(
        self,
        pool: AsyncConnectionPool,
        validator: Callable[[PriceCandidate], ValidationResult] = validate_price,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._pool = pool
        self._validator = validator
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_records(
        self,
        merged: MergedData,
        fetch_id: str,
        symbol_ids: Dict[str, int],
        source_ids: Dict[str, int],
    ) -> Tuple[List[PriceRecord], BatchStats]:
        """
        Turn merged feed items into insertable rows. Pure; touches no connection.
        """
        created_at = self._clock()
        stats = BatchStats()
        records: List[PriceRecord] = []

        for category, sourced_items in merged.items():
            for source_name, item in sourced_items:
                stats.candidates += 1
                symbol_id = symbol_ids.get(symbol_key(item.symbol)) if item.symbol else None
                data_source_id = source_ids.get(source_name)
                if symbol_id is None or data_source_id is None:
                    stats.dropped_drift += 1
                    log.debug(
                        "[DRIFT] dropping item not in active catalog",
                        extra={"symbol": item.symbol, "source": source_name, "category": category},
                    )
                    continue

                candidate = PriceCandidate(
                    symbol_id=symbol_id,
                    data_source_id=data_source_id,
                    price=item.price,
                    change_percent=item.change_percent,
                    fetch_id=fetch_id,
                )
                verdict = self._validator(candidate)
                if not verdict.ok:
                    stats.dropped_invalid += 1
                    log.debug(
                        "[INVALID] dropping item",
                        extra={"symbol": item.symbol, "source": source_name, "reason": verdict.reason},
                    )
                    continue

                records.append(
                    PriceRecord(
                        symbol_id=symbol_id,
                        data_source_id=data_source_id,
                        price=coerce_decimal(item.price),
                        change_percent=coerce_decimal(item.change_percent),
                        fetch_id=fetch_id,
                        created_at=created_at,
                    )
                )

        return records, stats

    async def store_batch(self, merged: MergedData, fetch_id: str) -> int:
        """
        Persist every valid item of `merged` tagged with `fetch_id`.

        Returns
        -------
        int
            Number of rows written; 0 when nothing survived resolution and
            validation (no transaction is opened in that case).

        Raises
        ------
        Exception
            Whatever the database raised; the batch has been rolled back.
        """
        symbol_ids = await active_symbol_ids(self._pool)
        source_ids = await active_source_ids(self._pool)
        records, stats = self.build_records(merged, fetch_id, symbol_ids, source_ids)

        if stats.dropped:
            log.warning(
                "[BATCH] dropped items",
                extra={
                    "fetch_id": fetch_id,
                    "candidates": stats.candidates,
                    "dropped_drift": stats.dropped_drift,
                    "dropped_invalid": stats.dropped_invalid,
                },
            )

        if not records:
            log.info("[BATCH EMPTY] nothing to store", extra={"fetch_id": fetch_id})
            return 0

        query, params = build_insert(records)
        async with self._pool.connection() as conn:
            try:
                async with conn.transaction():
                    async with conn.cursor() as cur:
                        await cur.execute(query, params)
            except Exception:
                log.exception(
                    "[BATCH ROLLED BACK]",
                    extra={"fetch_id": fetch_id, "records": len(records)},
                )
                raise

        log.info("[BATCH COMMITTED]", extra={"fetch_id": fetch_id, "records": len(records)})
        return len(records)


__all__ = ["BatchStats", "Persister", "build_insert"]
