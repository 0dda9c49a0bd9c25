"""
Orchestrator for fetch runs: fan out to every active source, apply the
partial-failure policy, and persist the merged result.

Usage (example from a scheduler hook):
    from pricefeed.orchestrator import FetchOrchestrator

    orchestrator = FetchOrchestrator(persister, catalog_loader=lambda: load_catalog(pool))
    await orchestrator.initialize()
    summary = await orchestrator.run_fetch("hourly")

Each run gets one correlation id (`fetch_id`) that tags every row it writes.
A run either writes all of its valid rows or none of them.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple, Union

from pricefeed.config import get_settings
from pricefeed.domain.models import (
    Catalog,
    DataSource,
    FetchSummary,
    MergedData,
    SourcedItem,
    SourceResult,
    TriggerType,
)
from pricefeed.exceptions import CatalogNotInitializedError
from pricefeed.fetcher import SourceFetcher
from pricefeed.infrastructure.persister import Persister
from pricefeed.utils.logging import get_logger
from pricefeed.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)

MAJORITY_FAILED_ERROR = "more than half of sources failed"

CatalogLoader = Callable[[], Awaitable[Catalog]]
Settled = Union[SourceResult, BaseException]


def merge_results(results: Iterable[SourceResult]) -> MergedData:
    """
    Merge successful source payloads into category -> sourced items.

    Results are merged in source id order so the outcome does not depend on
    which fetch finished first.
    """
    merged: MergedData = {}
    for result in sorted(results, key=lambda r: r.source_id):
        for category, items in result.data.items():
            bucket = merged.setdefault(category, [])
            bucket.extend(SourcedItem(result.source_name, item) for item in items)
    return merged


def split_settled(
    sources: List[DataSource], settled: List[Settled]
) -> Tuple[List[SourceResult], List[str]]:
    """Partition gathered outcomes into successful results and failed source names."""
    succeeded: List[SourceResult] = []
    failed: List[str] = []
    for source, outcome in zip(sources, settled):
        if isinstance(outcome, BaseException):
            failed.append(source.name)
        else:
            succeeded.append(outcome)
    return succeeded, failed


def exceeds_failure_threshold(failed: int, total: int, threshold: float = 0.5) -> bool:
    """Strict majority rule: abort only when failed/total is greater than the threshold."""
    return total > 0 and failed / total > threshold


class FetchOrchestrator:
    """
    Run fetch cycles against a Catalog snapshot.

    Parameters
    ----------
    persister : Persister
        Writes the merged batch of a run.
    fetcher : SourceFetcher | None
        Fetches one source; a default one is built from settings when omitted.
    catalog : Catalog | None
        Pre-loaded catalog. When omitted, `initialize()` must be awaited first.
    catalog_loader : callable | None
        Coroutine factory used by `initialize()` / `reload_catalog()`.
    failure_threshold : float | None
        Failed-source ratio above which a run aborts; settings default 0.5.
    """

    def __init__(
        self,
        persister: Persister,
        fetcher: Optional[SourceFetcher] = None,
        catalog: Optional[Catalog] = None,
        catalog_loader: Optional[CatalogLoader] = None,
        failure_threshold: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.persister = persister
        self.fetcher = fetcher or SourceFetcher(settings=settings)
        self.catalog = catalog
        self._catalog_loader = catalog_loader
        self.failure_threshold = (
            settings.fetch_failure_threshold if failure_threshold is None else failure_threshold
        )
        self.min_active_sources = settings.min_active_sources
        self._run_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self.catalog is not None

    async def initialize(self) -> Catalog:
        """Load the catalog once. Later calls keep the loaded snapshot."""
        if self.catalog is not None:
            log.warning("[INIT] catalog already loaded; use reload_catalog() to refresh")
            return self.catalog
        return await self.reload_catalog()

    async def reload_catalog(self) -> Catalog:
        """Replace the catalog snapshot with a fresh read."""
        if self._catalog_loader is None:
            raise CatalogNotInitializedError("No catalog loader configured for this orchestrator.")
        catalog = await self._catalog_loader()
        self.catalog = catalog
        active = len(catalog.active_sources)
        log.info(f"[INIT] catalog loaded with {active} active sources", extra={"sources": active})
        if active < self.min_active_sources:
            log.warning(
                f"[INIT] fewer than {self.min_active_sources} active data sources",
                extra={"sources": active},
            )
        return catalog

    def _require_sources(self) -> List[DataSource]:
        if self.catalog is None:
            raise CatalogNotInitializedError()
        sources = self.catalog.active_sources
        if not sources:
            raise CatalogNotInitializedError("Source catalog has no active data sources.")
        return sources

    async def _gather(self, sources: List[DataSource], fetch_id: str) -> List[Settled]:
        # Join point: every fetch settles (result or exception) before we continue.
        return await asyncio.gather(
            *(self.fetcher.fetch(source, fetch_id) for source in sources),
            return_exceptions=True,
        )

    def _summary(
        self,
        stats: ProfileStats,
        fetch_id: str,
        trigger: str,
        total: int,
        failed: List[str],
        **fields: object,
    ) -> FetchSummary:
        summary = FetchSummary(
            fetch_id=fetch_id,
            trigger_type=trigger,
            started_at=stats.started_at.isoformat() if stats.started_at else "",
            duration_ms=stats.elapsed_ms,
            records_stored=0,
            sources_total=total,
            sources_failed=len(failed),
            failed_sources=list(failed),
        )
        summary.update(fields)  # type: ignore[typeddict-item]
        return summary

    async def run_fetch(
        self, trigger_type: Union[TriggerType, str] = TriggerType.MANUAL
    ) -> FetchSummary:
        """
        Execute one fetch run.

        Raises
        ------
        CatalogNotInitializedError
            If no catalog was loaded or it has no active sources. Every other
            failure is reported in the returned summary.
        """
        sources = self._require_sources()
        trigger = TriggerType(trigger_type).value
        fetch_id = str(uuid.uuid4())

        async with self._run_lock:
            return await self._run(sources, trigger, fetch_id)

    async def _run(self, sources: List[DataSource], trigger: str, fetch_id: str) -> FetchSummary:
        total = len(sources)
        failed: List[str] = []
        log.info(
            f"[RUN START] {trigger}",
            extra={"fetch_id": fetch_id, "trigger": trigger, "sources": total},
        )

        with profile_block(f"fetch-{fetch_id}") as stats:
            try:
                settled = await self._gather(sources, fetch_id)
                succeeded, failed = split_settled(sources, settled)
                for source_name, outcome in zip((s.name for s in sources), settled):
                    if isinstance(outcome, BaseException):
                        log.warning(
                            f"[SOURCE FAILED] {source_name}",
                            extra={"fetch_id": fetch_id, "source": source_name, "error": str(outcome)},
                        )

                if exceeds_failure_threshold(len(failed), total, self.failure_threshold):
                    log.error(
                        "[RUN ABORTED] majority of sources failed; skipping database update",
                        extra={"fetch_id": fetch_id, "failed": len(failed), "total": total},
                    )
                    return self._summary(
                        stats, fetch_id, trigger, total, failed,
                        success=False, error=MAJORITY_FAILED_ERROR,
                    )

                records_stored = 0
                if succeeded:
                    records_stored = await self.persister.store_batch(
                        merge_results(succeeded), fetch_id
                    )
            except Exception as exc:  # noqa: BLE001 - a run never raises past this point
                log.exception("[RUN FAILED]", extra={"fetch_id": fetch_id, "trigger": trigger})
                return self._summary(
                    stats, fetch_id, trigger, total, failed,
                    success=False, error=str(exc) or type(exc).__name__,
                )

        summary = self._summary(
            stats, fetch_id, trigger, total, failed,
            success=records_stored > 0, records_stored=records_stored,
        )
        log.info(
            f"[RUN COMPLETE] {trigger}",
            extra={
                "fetch_id": fetch_id,
                "records": records_stored,
                "failed": len(failed),
                "duration_ms": summary["duration_ms"],
            },
        )
        return summary


__all__ = [
    "FetchOrchestrator",
    "MAJORITY_FAILED_ERROR",
    "exceeds_failure_threshold",
    "merge_results",
    "split_settled",
]
