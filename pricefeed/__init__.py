"""
PriceFeed - ingestion and aggregation pipeline for live price quotes.

Fetches currency, gold, crypto and silver quotes from several unreliable
external feeds, reconciles them against a fixed symbol/category catalog, and
persists a consistent hourly price history:

- Concurrent fan-out over all active sources with bounded per-source retry
- Partial-failure policy (a majority outage aborts the run)
- Symbol/source resolution against the active catalog
- One atomic batch insert per run, tagged with a correlation id
- A pull-based freshness gate for "today" reads
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from pricefeed.cache import CacheGate
from pricefeed.config import Settings, get_settings
from pricefeed.domain.models import Catalog, FetchSummary, TriggerType
from pricefeed.domain.validation import coerce_decimal, validate_price
from pricefeed.exceptions import (
    CatalogNotInitializedError,
    FreshDataUnavailableError,
    PriceFeedError,
    SourceFetchError,
)
from pricefeed.fetcher import SourceFetcher
from pricefeed.orchestrator import FetchOrchestrator
from pricefeed.pipeline import Pipeline, open_pipeline
from pricefeed.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Pipeline
    "CacheGate",
    "FetchOrchestrator",
    "Pipeline",
    "SourceFetcher",
    "open_pipeline",
    # Domain
    "Catalog",
    "FetchSummary",
    "TriggerType",
    "coerce_decimal",
    "validate_price",
    # Errors
    "CatalogNotInitializedError",
    "FreshDataUnavailableError",
    "PriceFeedError",
    "SourceFetchError",
    # Logging
    "configure_logging",
    "get_logger",
]
