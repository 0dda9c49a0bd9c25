"""
Sources package for the price feed pipeline.

Re-exports the parser interfaces and the concrete payload parsers, and holds
the registry that maps a data source's `parser` name to an implementation.
"""

from __future__ import annotations

from typing import Callable, Dict, List

from pricefeed.domain.models import DataSource
from pricefeed.exceptions import InvalidPayloadError
from pricefeed.sources.abstract import AbstractSourceParser, ParsedPayload, SourceParser
from pricefeed.sources.categorized import CategorizedParser
from pricefeed.sources.path_mapping import PathMappingParser


def _parser_factories(default_unit: str) -> Dict[str, Callable[[], SourceParser]]:
    """Registry of available parsers."""
    return {
        "categorized": lambda: CategorizedParser(default_unit=default_unit),
        "path_mapping": lambda: PathMappingParser(default_unit=default_unit),
    }


def available_parsers() -> List[str]:
    """List available parser names."""
    return sorted(_parser_factories("IRR").keys())


def resolve_parser(source: DataSource, default_unit: str = "IRR") -> SourceParser:
    """
    Build the parser a data source is configured with.

    An unknown name is a configuration problem of that one source, so it is
    reported as an invalid payload rather than crashing the run.
    """
    factories = _parser_factories(default_unit)
    if source.parser not in factories:
        raise InvalidPayloadError(
            f"Unknown parser '{source.parser}' for {source.name}. Available: {', '.join(factories)}",
            details={"source": source.name, "parser": source.parser},
        )
    return factories[source.parser]()


__all__ = [
    # Abstracts
    "AbstractSourceParser",
    "ParsedPayload",
    "SourceParser",
    # Concrete parsers
    "CategorizedParser",
    "PathMappingParser",
    # Registry
    "available_parsers",
    "resolve_parser",
]
