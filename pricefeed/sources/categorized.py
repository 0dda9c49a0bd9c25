"""
Parser for category-envelope feeds.

Payload shape:

    {"data": {"currency": [{"symbol": "USD", "name": ..., "price": ..., "unit": ...}, ...],
              "gold": [...],
              "silver": {"name": ..., "price": ...}}}

Array-valued categories carry one element per symbol. Categories listed under
`parser_config["single_object"]` may instead carry one object that stands for
a single implicit symbol named by the configuration; when such a category
arrives as an array it is read like any other. An element the item model
cannot hold is skipped on its own.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from pydantic import ValidationError

from pricefeed.domain.models import DataSource, RawItem
from pricefeed.exceptions import InvalidPayloadError
from pricefeed.sources.abstract import AbstractSourceParser, ParsedPayload
from pricefeed.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_SINGLE_OBJECT: Dict[str, Dict[str, str]] = {
    "silver": {"symbol": "SILVER999", "unit": "تومان"},
}


class CategorizedParser(AbstractSourceParser):
    """
    Parse `{"data": {<category>: [...] | {...}}}` envelopes.
    """

    name: str = "categorized"
    description: str = "data.<category> arrays, plus configured single-object categories."

    def _single_object_config(self, source: DataSource) -> Mapping[str, Mapping[str, str]]:
        return source.parser_config.get("single_object", DEFAULT_SINGLE_OBJECT)

    def _array_items(self, source: DataSource, category: str, items: List[Any]) -> List[RawItem]:
        parsed: List[RawItem] = []
        for element in items:
            if not isinstance(element, dict):
                continue
            try:
                item = RawItem(
                    symbol=element.get("symbol"),
                    category=category,
                    name=element.get("name"),
                    price=element.get("price"),
                    unit=element.get("unit") or self.default_unit,
                    change_percent=element.get("change_percent"),
                )
            except ValidationError as exc:
                log.warning(
                    "[PARSE] malformed item, skipping",
                    extra={"source": source.name, "category": category, "error": str(exc)},
                )
                continue
            parsed.append(item)
        return parsed

    def _single_item(self, category: str, obj: Dict[str, Any], config: Mapping[str, str]) -> RawItem:
        return RawItem(
            symbol=config.get("symbol", category.upper()),
            category=category,
            name=obj.get("name"),
            price=obj.get("price"),
            unit=config.get("unit") or self.default_unit,
            change_percent=obj.get("change_percent"),
        )

    def parse(self, body: Any, source: DataSource) -> ParsedPayload:
        envelope = body.get("data") if isinstance(body, dict) else None
        if not isinstance(envelope, dict):
            raise InvalidPayloadError(
                f"Invalid response format from {source.name}: missing 'data' object",
                details={"source": source.name},
            )

        single_object = self._single_object_config(source)
        parsed: ParsedPayload = {}
        for category, items in envelope.items():
            if isinstance(items, list):
                parsed[category] = self._array_items(source, category, items)
                continue
            if isinstance(items, dict) and category in single_object:
                parsed[category] = [self._single_item(category, items, single_object[category])]
                continue
            log.warning(
                "[PARSE] unexpected category shape, skipping",
                extra={"source": source.name, "category": category, "type": type(items).__name__},
            )
        return parsed


__all__ = ["CategorizedParser", "DEFAULT_SINGLE_OBJECT"]
