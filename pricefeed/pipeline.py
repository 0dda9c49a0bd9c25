"""
Wiring of the pipeline components around one shared pool and HTTP client.

The scheduler hook, the read API and the CLI all enter `open_pipeline()` and
use the components it yields; nothing else constructs them.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from pricefeed.cache import CacheGate
from pricefeed.config import Settings, get_settings
from pricefeed.fetcher import SourceFetcher
from pricefeed.infrastructure.catalog import load_catalog
from pricefeed.infrastructure.db_factory import close_async_pool, get_async_pool
from pricefeed.infrastructure.history import PriceHistory
from pricefeed.infrastructure.persister import Persister
from pricefeed.orchestrator import FetchOrchestrator


@dataclass
class Pipeline:
    orchestrator: FetchOrchestrator
    history: PriceHistory
    cache: CacheGate


@asynccontextmanager
async def open_pipeline(settings: Optional[Settings] = None) -> AsyncIterator[Pipeline]:
    """
    Open the shared pool and HTTP client, yield wired components, close both.

    The catalog is not loaded here; callers `await pipeline.orchestrator.initialize()`
    (the cache gate does so on first use).
    """
    settings = settings or get_settings()
    pool = await get_async_pool()
    try:
        async with httpx.AsyncClient(headers={"User-Agent": settings.http_user_agent}) as client:
            orchestrator = FetchOrchestrator(
                Persister(pool),
                fetcher=SourceFetcher(client=client, settings=settings),
                catalog_loader=lambda: load_catalog(pool),
            )
            history = PriceHistory(pool)
            yield Pipeline(orchestrator, history, CacheGate(orchestrator, history))
    finally:
        await close_async_pool()


__all__ = ["Pipeline", "open_pipeline"]
