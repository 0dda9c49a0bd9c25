"""
Domain models for the price feed pipeline.

Catalog rows (categories, data sources, symbols) mirror `db/schema.sql` and are
read-only to the pipeline. Feed items travel as `RawItem` inside a
`SourceResult`, become `PriceCandidate` once their names are resolved to ids,
and are written as `PriceRecord` rows.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple, TypedDict

from pydantic import BaseModel, Field, field_validator

# A price as the feed published it. Anything that is not a finite number
# (objects, lists, booleans, garbage text) is rejected by `validate_price`.
PriceInput = Any

# (precision, scale) of the NUMERIC columns of `prices` in db/schema.sql.
PRICE_NUMERIC: Tuple[int, int] = (30, 8)
CHANGE_PERCENT_NUMERIC: Tuple[int, int] = (12, 4)

_FROZEN = {
    "frozen": True,
    "populate_by_name": True,
    "arbitrary_types_allowed": False,
}


class TriggerType(str, Enum):
    """What caused a fetch run."""

    SCHEDULED = "scheduled"
    HOURLY = "hourly"
    MANUAL = "manual"
    CACHE_MISS = "cache-miss"
    CACHE_EXPIRED = "cache-expired"


class Category(BaseModel):
    """A group of symbols (currency, gold, cryptocurrency, ...)."""

    id: int
    name: str

    model_config = _FROZEN


class DataSource(BaseModel):
    """
    One external feed, a row of `data_sources`.
    """

    id: int
    name: str
    url: str
    category_id: Optional[int] = None
    active: bool = True
    priority: int = Field(100, description="Catalog scan order; not fetch order.")
    parser: str = Field("categorized", description="SourceParser variant name.")
    parser_config: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_ms: Optional[int] = Field(None, description="Overrides FETCH_TIMEOUT_MS.")

    model_config = _FROZEN


class Symbol(BaseModel):
    """A canonical tradable instrument, a row of `symbols`."""

    id: int
    name: str
    category_id: Optional[int] = None
    unit: Optional[str] = None
    active: bool = True

    model_config = _FROZEN


class RawItem(BaseModel):
    """
    One quote as normalized from a feed payload, before any validation.

    `price` keeps the feed's own representation ("1,234.50", 1234.5, ...);
    coercion to Decimal happens in `pricefeed.domain.validation`.
    """

    symbol: Optional[str] = None
    category: str
    name: Optional[str] = None
    price: PriceInput = None
    unit: str = "IRR"
    change_percent: PriceInput = None

    model_config = _FROZEN

    @field_validator("symbol", "name", "unit", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        # Feeds sometimes publish tickers as numbers (1234, 7.5).
        if value is None or isinstance(value, str):
            return value
        return str(value)


class SourceResult(BaseModel):
    """Normalized payload of one successfully fetched source."""

    source_id: int
    source_name: str
    category_id: Optional[int] = None
    fetch_id: str
    data: Dict[str, List[RawItem]] = Field(default_factory=dict)

    model_config = _FROZEN

    @property
    def item_count(self) -> int:
        return sum(len(items) for items in self.data.values())


class SourcedItem(NamedTuple):
    """A feed item tagged with the name of the source that produced it."""

    source_name: str
    item: RawItem


# category -> items from every successful source of one run
MergedData = Dict[str, List[SourcedItem]]


class PriceCandidate(BaseModel):
    """A feed item with symbol and source names resolved to catalog ids."""

    symbol_id: Optional[int] = None
    data_source_id: Optional[int] = None
    price: PriceInput = None
    change_percent: PriceInput = None
    fetch_id: str

    model_config = _FROZEN


class PriceRecord(BaseModel):
    """
    A row of `prices`. Written once by the Persister and never updated.
    """

    symbol_id: int
    data_source_id: int
    price: Decimal
    change_percent: Optional[Decimal] = None
    fetch_id: str
    created_at: datetime

    model_config = _FROZEN

    def as_row(self) -> Tuple[Any, ...]:
        """Column order of the `prices` insert."""
        return (
            self.symbol_id,
            self.price,
            self.change_percent,
            self.data_source_id,
            self.fetch_id,
            self.created_at,
        )


class Catalog(BaseModel):
    """
    Point-in-time snapshot of the active catalog.

    Built once by `pricefeed.infrastructure.catalog.load_catalog` and handed to
    the orchestrator; a run never re-reads the catalog. Re-initialization means
    building a new Catalog.
    """

    sources: Tuple[DataSource, ...] = ()
    symbols: Tuple[Symbol, ...] = ()
    categories: Tuple[Category, ...] = ()
    loaded_at: datetime

    model_config = _FROZEN

    @property
    def active_sources(self) -> List[DataSource]:
        return sorted((s for s in self.sources if s.active), key=lambda s: (s.priority, s.id))

    def category_name(self, category_id: Optional[int]) -> Optional[str]:
        for category in self.categories:
            if category.id == category_id:
                return category.name
        return None


class FetchSummary(TypedDict, total=False):
    """
    Result contract of one fetch run.

    Not persisted; returned to the trigger caller and logged. `fetch_id` is the
    join key across every `prices` row written by the run.
    """

    success: bool
    fetch_id: str
    trigger_type: str
    started_at: str
    duration_ms: int
    records_stored: int
    sources_total: int
    sources_failed: int
    failed_sources: List[str]
    error: Optional[str]


__all__ = [
    "TriggerType",
    "Category",
    "DataSource",
    "Symbol",
    "RawItem",
    "SourceResult",
    "SourcedItem",
    "MergedData",
    "PriceCandidate",
    "PriceRecord",
    "Catalog",
    "FetchSummary",
    "PriceInput",
    "PRICE_NUMERIC",
    "CHANGE_PERCENT_NUMERIC",
]
