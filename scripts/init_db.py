"""
Schema bootstrap and catalog seeding script for the price feed pipeline.

Applies `db/schema.sql` and upserts categories, data sources and symbols from a
JSON catalog file. Prices are never touched here.
"""

from __future__ import annotations

import json
import sys
import time
from pathlib import Path
from typing import Any

import typer
from psycopg import Connection
from psycopg.types.json import Jsonb

from pricefeed.infrastructure.catalog import symbol_key
from pricefeed.infrastructure.db_factory import get_sync_connection

ROOT = Path(__file__).resolve().parent.parent

app = typer.Typer(help="Create the price feed schema and seed the catalog.")

_UPSERT_CATEGORY = """
INSERT INTO public.categories (name) VALUES (%s)
ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
RETURNING id
"""

_UPSERT_SOURCE = """
INSERT INTO public.data_sources
    (name, url, category_id, active, priority, parser, parser_config, headers, timeout_ms)
VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (name) DO UPDATE SET
    url = EXCLUDED.url,
    category_id = EXCLUDED.category_id,
    active = EXCLUDED.active,
    priority = EXCLUDED.priority,
    parser = EXCLUDED.parser,
    parser_config = EXCLUDED.parser_config,
    headers = EXCLUDED.headers,
    timeout_ms = EXCLUDED.timeout_ms
"""

_UPSERT_SYMBOL = """
INSERT INTO public.symbols (name, category_id, unit, active)
VALUES (%s, %s, %s, %s)
ON CONFLICT (name) DO UPDATE SET
    category_id = EXCLUDED.category_id,
    unit = EXCLUDED.unit,
    active = EXCLUDED.active
"""


def _apply_schema(conn: Connection, schema_path: Path) -> None:
    with conn.cursor() as cur:
        cur.execute(schema_path.read_text(encoding="utf-8"))
    conn.commit()


def _seed_catalog(conn: Connection, catalog: dict[str, Any]) -> tuple[int, int, int]:
    category_ids: dict[str, int] = {}
    with conn.transaction():
        with conn.cursor() as cur:
            for name in catalog.get("categories", []):
                cur.execute(_UPSERT_CATEGORY, (name,))
                row = cur.fetchone()
                category_ids[name] = row[0]

            sources = catalog.get("data_sources", [])
            for source in sources:
                cur.execute(
                    _UPSERT_SOURCE,
                    (
                        source["name"],
                        source["url"],
                        category_ids.get(source.get("category", "")),
                        source.get("active", True),
                        source.get("priority", 100),
                        source.get("parser", "categorized"),
                        Jsonb(source.get("parser_config", {})),
                        Jsonb(source.get("headers", {})),
                        source.get("timeout_ms"),
                    ),
                )

            symbols = catalog.get("symbols", [])
            for symbol in symbols:
                cur.execute(
                    _UPSERT_SYMBOL,
                    (
                        symbol_key(symbol["name"]),
                        category_ids.get(symbol.get("category", "")),
                        symbol.get("unit"),
                        symbol.get("active", True),
                    ),
                )
    return len(category_ids), len(sources), len(symbols)


@app.command()
def main(
    catalog_file: Path = typer.Option(
        ROOT / "scripts" / "catalog.example.json",
        "--catalog",
        "-c",
        help="JSON file with categories, data_sources and symbols.",
    ),
    schema: Path = typer.Option(
        ROOT / "db" / "schema.sql",
        "--schema",
        help="Schema DDL to apply before seeding.",
    ),
    dsn: str | None = typer.Option(
        None,
        "--dsn",
        help="Optional DSN override for Postgres.",
    ),
    skip_seed: bool = typer.Option(
        False,
        "--skip-seed",
        help="Only apply the schema; do not seed the catalog.",
    ),
) -> None:
    """
    Apply the schema and seed the catalog (idempotent).
    """
    start = time.perf_counter()
    with get_sync_connection(dsn) as conn:
        typer.echo(f"Applying schema {schema}...")
        _apply_schema(conn, schema)

        if skip_seed:
            typer.echo("Skipping catalog seed (skip-seed flag set).")
            return

        catalog = json.loads(catalog_file.read_text(encoding="utf-8"))
        categories, sources, symbols = _seed_catalog(conn, catalog)

    typer.echo(
        f"Seeded {categories} categories, {sources} sources, {symbols} symbols "
        f"in {time.perf_counter() - start:.2f}s."
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
