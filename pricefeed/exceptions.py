"""
Exception hierarchy for the price feed pipeline.

Errors below the run boundary (a single source failing, a single row being
dropped) are recovered where they happen; these classes exist for the few
conditions that have to cross a component boundary.
"""

from __future__ import annotations

from typing import Any, Optional


class PriceFeedError(Exception):
    """Base class for all pipeline errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "GENERAL_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class CatalogNotInitializedError(PriceFeedError):
    """A run was requested before the source catalog was loaded (or it has no active sources)."""

    def __init__(self, message: str = "Source catalog is not initialized; call initialize() first.") -> None:
        super().__init__(message, "CATALOG_NOT_INITIALIZED")


class InvalidPayloadError(PriceFeedError):
    """A feed returned a body that does not match its configured shape."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, "INVALID_PAYLOAD", details)


class SourceFetchError(PriceFeedError):
    """A single source could not be fetched or parsed after all attempts."""

    def __init__(
        self,
        message: str,
        source_name: str,
        attempts: int = 1,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super_details = dict(details or {})
        super_details.setdefault("source", source_name)
        super_details.setdefault("attempts", attempts)
        super().__init__(message, "SOURCE_FETCH_ERROR", super_details)
        self.source_name = source_name
        self.attempts = attempts


class FreshDataUnavailableError(PriceFeedError):
    """A read needed a refresh run and that run did not succeed."""

    def __init__(self, message: str, trigger_type: str, fetch_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            "FRESH_DATA_UNAVAILABLE",
            {"trigger_type": trigger_type, "fetch_id": fetch_id},
        )
        self.trigger_type = trigger_type
        self.fetch_id = fetch_id


__all__ = [
    "PriceFeedError",
    "CatalogNotInitializedError",
    "InvalidPayloadError",
    "SourceFetchError",
    "FreshDataUnavailableError",
]
