"""
Pull-based freshness gate for "today" reads.

There is no background refresh loop: a read that finds no data, or data older
than its TTL, triggers a synchronous fetch run and re-reads. The hourly run
owned by the external scheduler is the only proactive refresh; this gate
covers cold starts and reads that land between scheduled runs.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Union

from pricefeed.domain.models import TriggerType
from pricefeed.exceptions import FreshDataUnavailableError
from pricefeed.infrastructure.history import PriceHistory, PriceView
from pricefeed.orchestrator import FetchOrchestrator
from pricefeed.utils.logging import get_logger

log = get_logger(__name__)

TTL = Union[int, float, timedelta]


def _as_timedelta(ttl: TTL) -> timedelta:
    return ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)


def data_age(view: PriceView, now: datetime) -> timedelta:
    """Age of a persisted view relative to `now`, from its `meta.timestamp`."""
    stamp = view["meta"]["timestamp"]
    if isinstance(stamp, str):
        stamp = datetime.fromisoformat(stamp)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return now - stamp


class CacheGate:
    """
    Serve today's aggregate, refreshing it first when missing or stale.

    Parameters
    ----------
    orchestrator : FetchOrchestrator
        Runs the refresh; its catalog is loaded on first use if needed.
    history : PriceHistory
        Source of the persisted "today" view.
    clock : callable | None
        Returns the current UTC time (swapped out in tests).
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        history: PriceHistory,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.history = history
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _refresh(self, trigger: TriggerType, today: date) -> Optional[PriceView]:
        summary = await self.orchestrator.run_fetch(trigger)
        if not summary.get("success"):
            log.error(
                f"[CACHE] {trigger.value} refresh failed",
                extra={"fetch_id": summary.get("fetch_id"), "error": summary.get("error")},
            )
            raise FreshDataUnavailableError(
                f"Failed to fetch fresh data ({trigger.value}): {summary.get('error') or 'no records stored'}",
                trigger_type=trigger.value,
                fetch_id=summary.get("fetch_id"),
            )
        return await self.history.get_today_data(today)

    async def get_fresh_data(self, ttl: TTL) -> Optional[PriceView]:
        """
        Return today's view, no older than `ttl` at the time of the read.

        Raises
        ------
        FreshDataUnavailableError
            When a refresh was needed and its run did not succeed. Stale data is
            never returned in place of a failed refresh.
        """
        if not self.orchestrator.is_initialized:
            await self.orchestrator.initialize()

        now = self._clock()
        today = now.date()
        view = await self.history.get_today_data(today)

        if view is None:
            log.info("[CACHE MISS] no data for today", extra={"day": today.isoformat()})
            return await self._refresh(TriggerType.CACHE_MISS, today)

        age = data_age(view, now)
        if age > _as_timedelta(ttl):
            log.info(
                "[CACHE EXPIRED] refreshing",
                extra={"age_seconds": int(age.total_seconds()), "ttl_seconds": int(_as_timedelta(ttl).total_seconds())},
            )
            return await self._refresh(TriggerType.CACHE_EXPIRED, today)

        return view


__all__ = ["CacheGate", "data_age"]
