"""
Parser driven by a per-category path + field mapping.

For feeds whose quotes sit somewhere inside an arbitrary document, e.g.

    {"current": {"silver_999": {"p": "1,250,000", "dp": "0.8", "t": "..."}}}

the data source carries

    parser_config = {
        "metal": {
            "path": "current.silver_999",
            "mapping": {"symbol": "SILVER", "price": ["p"], "change_percent": ["dp"]},
        }
    }

A mapping value that is a list names keys tried in order (first non-null
wins); any other value is used as-is. A path ending on a list yields one item
per element, a path ending on an object yields one item.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from pricefeed.domain.models import DataSource, RawItem
from pricefeed.exceptions import InvalidPayloadError
from pricefeed.sources.abstract import AbstractSourceParser, ParsedPayload
from pricefeed.utils.logging import get_logger

log = get_logger(__name__)

_FIELDS = ("symbol", "name", "price", "unit", "change_percent")


def get_value_by_path(obj: Any, path: str) -> Any:
    """Walk a dotted path through dicts (and lists, for numeric segments)."""
    current = obj
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return None
        if current is None:
            return None
    return current


def get_mapped_value(item: Any, mapping: Any) -> Any:
    """Resolve one field mapping against an item."""
    if isinstance(mapping, list):
        if not isinstance(item, dict):
            return None
        for key in mapping:
            value = item.get(key)
            if value is not None:
                return value
        return None
    return mapping


class PathMappingParser(AbstractSourceParser):
    """
    Parse arbitrary documents using `parser_config` paths and field mappings.
    """

    name: str = "path_mapping"
    description: str = "Dotted path per category with fallback-key field mapping."

    def _map_item(
        self, source: DataSource, category: str, item: Any, mapping: Mapping[str, Any]
    ) -> Optional[RawItem]:
        mapped: Dict[str, Any] = {field: get_mapped_value(item, mapping.get(field)) for field in _FIELDS}
        try:
            return RawItem(
                symbol=mapped["symbol"],
                category=category,
                name=mapped["name"],
                price=mapped["price"],
                unit=mapped["unit"] or self.default_unit,
                change_percent=mapped["change_percent"],
            )
        except ValidationError as exc:
            log.warning(
                "[PARSE] malformed item, skipping",
                extra={"source": source.name, "category": category, "error": str(exc)},
            )
            return None

    def parse(self, body: Any, source: DataSource) -> ParsedPayload:
        if not source.parser_config:
            raise InvalidPayloadError(
                f"No parser_config for path_mapping source {source.name}",
                details={"source": source.name},
            )

        parsed: ParsedPayload = {}
        for category, config in source.parser_config.items():
            path = config.get("path")
            raw = get_value_by_path(body, path) if path else body
            if raw is None:
                raise InvalidPayloadError(
                    f"No data at path {path!r} for {category} from {source.name}",
                    details={"source": source.name, "category": category, "path": path},
                )
            elements: List[Any] = raw if isinstance(raw, list) else [raw]
            mapping = config.get("mapping", {})
            items = (self._map_item(source, category, element, mapping) for element in elements)
            parsed[category] = [item for item in items if item is not None]
        return parsed


__all__ = ["PathMappingParser", "get_mapped_value", "get_value_by_path"]
