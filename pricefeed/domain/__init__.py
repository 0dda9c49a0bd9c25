"""
Domain package for the price feed pipeline.

Exports the catalog and price models plus the pure price validator. Keep this
package focused on data definitions and validation concerns; no I/O here.
"""

from pricefeed.domain.models import (
    Catalog,
    Category,
    DataSource,
    FetchSummary,
    PriceCandidate,
    PriceRecord,
    RawItem,
    SourceResult,
    Symbol,
    TriggerType,
)
from pricefeed.domain.validation import ValidationResult, coerce_decimal, validate_price

__all__ = [
    "Catalog",
    "Category",
    "DataSource",
    "FetchSummary",
    "PriceCandidate",
    "PriceRecord",
    "RawItem",
    "SourceResult",
    "Symbol",
    "TriggerType",
    "ValidationResult",
    "coerce_decimal",
    "validate_price",
]
