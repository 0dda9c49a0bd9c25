"""
Abstract parser interfaces for feed payloads.

Each known payload shape gets one SourceParser implementation. The parser is
chosen by the data source's configured `parser` name, never by sniffing the
payload, so downstream code only ever sees `ParsedPayload`.
"""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Protocol, runtime_checkable

from pricefeed.domain.models import DataSource, RawItem

# category -> normalized items
ParsedPayload = Dict[str, List[RawItem]]


@runtime_checkable
class SourceParser(Protocol):
    """
    Common interface all payload parsers implement.

    Attributes
    ----------
    name : str
        The value a data source puts in its `parser` column.
    description : str
        A human-friendly summary of the payload shape.
    """

    name: str
    description: str

    def parse(self, body: Any, source: DataSource) -> ParsedPayload:
        """
        Normalize a decoded JSON body.

        Raises
        ------
        InvalidPayloadError
            If the body does not have the shape this parser expects.
        """
        ...


class AbstractSourceParser(abc.ABC):
    """
    ABC helper for class-based parsers.

    Subclasses set `name` and `description` and implement `parse`. The
    `default_unit` is applied to items whose feed leaves the unit out.
    """

    name: str
    description: str

    def __init__(self, default_unit: str = "IRR") -> None:
        self.default_unit = default_unit

    @abc.abstractmethod
    def parse(self, body: Any, source: DataSource) -> ParsedPayload:  # pragma: no cover - interface only
        """Normalize the body into category -> items."""
        raise NotImplementedError


__all__ = ["AbstractSourceParser", "ParsedPayload", "SourceParser"]
