from __future__ import annotations

import asyncio
import uuid
from typing import Any

import pytest

from pricefeed.domain.models import RawItem, SourceResult, TriggerType
from pricefeed.exceptions import CatalogNotInitializedError, SourceFetchError
from pricefeed.infrastructure.persister import Persister
from pricefeed.orchestrator import (
    MAJORITY_FAILED_ERROR,
    FetchOrchestrator,
    exceeds_failure_threshold,
    merge_results,
)

SYMBOLS = [f"SYM{i}" for i in range(12)]
SYMBOL_ROWS = [{"id": index + 1, "name": name} for index, name in enumerate(SYMBOLS)]
SOURCE_ROWS = [{"id": 1, "name": "alpha"}, {"id": 2, "name": "beta"}, {"id": 3, "name": "gamma"}]


def _items(symbols: list[str], category: str = "currency") -> dict[str, list[RawItem]]:
    return {category: [RawItem(symbol=s, category=category, price=str(100 + i)) for i, s in enumerate(symbols)]}


class _ScriptedFetcher:
    """Returns canned payloads per source name; a BaseException value is raised."""

    def __init__(self, script: dict[str, Any]) -> None:
        self.script = script
        self.fetch_ids: list[str] = []

    async def fetch(self, source, fetch_id: str) -> SourceResult:
        self.fetch_ids.append(fetch_id)
        await asyncio.sleep(0)
        outcome = self.script[source.name]
        if isinstance(outcome, BaseException):
            raise outcome
        return SourceResult(
            source_id=source.id, source_name=source.name, fetch_id=fetch_id, data=outcome
        )


def _timeout(name: str) -> SourceFetchError:
    return SourceFetchError(f"{name} timed out", source_name=name, attempts=3)


@pytest.fixture
def sources(make_source):
    return [make_source(1, "alpha"), make_source(2, "beta"), make_source(3, "gamma")]


@pytest.fixture
def pool(fake_pool_factory):
    return fake_pool_factory(
        [
            ("SELECT id, name FROM public.symbols", SYMBOL_ROWS),
            ("SELECT id, name FROM public.data_sources", SOURCE_ROWS),
        ]
    )


def _orchestrator(pool, sources, make_catalog, script) -> FetchOrchestrator:
    return FetchOrchestrator(
        Persister(pool), fetcher=_ScriptedFetcher(script), catalog=make_catalog(sources)
    )


def test_failure_threshold_is_strict_majority() -> None:
    assert exceeds_failure_threshold(2, 3) is True
    assert exceeds_failure_threshold(1, 2) is False
    assert exceeds_failure_threshold(1, 3) is False
    assert exceeds_failure_threshold(0, 0) is False


def test_merge_results_is_order_independent() -> None:
    fid = str(uuid.uuid4())
    first = SourceResult(source_id=2, source_name="beta", fetch_id=fid, data=_items(["SYM1"]))
    second = SourceResult(source_id=1, source_name="alpha", fetch_id=fid, data=_items(["SYM0"]))

    merged = merge_results([first, second])

    assert merged == merge_results([second, first])
    assert [entry.source_name for entry in merged["currency"]] == ["alpha", "beta"]


@pytest.mark.asyncio
async def test_all_sources_succeed_stores_every_item(pool, sources, make_catalog) -> None:
    orchestrator = _orchestrator(
        pool,
        sources,
        make_catalog,
        {"alpha": _items(SYMBOLS[:4]), "beta": _items(SYMBOLS[4:7], "gold"), "gamma": _items(SYMBOLS[7:10])},
    )

    summary = await orchestrator.run_fetch(TriggerType.HOURLY)

    assert summary["success"] is True
    assert summary["records_stored"] == 10
    assert summary["sources_failed"] == 0
    assert summary["trigger_type"] == "hourly"
    assert len(pool.inserts) == 1


@pytest.mark.asyncio
async def test_majority_failure_aborts_without_touching_database(pool, sources, make_catalog) -> None:
    orchestrator = _orchestrator(
        pool,
        sources,
        make_catalog,
        {"alpha": _timeout("alpha"), "beta": _timeout("beta"), "gamma": _items(SYMBOLS[:5])},
    )

    summary = await orchestrator.run_fetch("scheduled")

    assert summary["success"] is False
    assert summary["records_stored"] == 0
    assert summary["error"] == MAJORITY_FAILED_ERROR
    assert summary["failed_sources"] == ["alpha", "beta"]
    assert pool.executed == []


@pytest.mark.asyncio
async def test_minority_failure_stores_the_rest(pool, sources, make_catalog) -> None:
    orchestrator = _orchestrator(
        pool,
        sources,
        make_catalog,
        {"alpha": _items(SYMBOLS[:3]), "beta": _timeout("beta"), "gamma": _items(SYMBOLS[3:5])},
    )

    summary = await orchestrator.run_fetch()

    assert summary["success"] is True
    assert summary["records_stored"] == 5
    assert (summary["sources_total"], summary["sources_failed"]) == (3, 1)
    assert summary["trigger_type"] == "manual"


@pytest.mark.asyncio
async def test_unknown_symbol_is_dropped_alone(pool, sources, make_catalog) -> None:
    orchestrator = _orchestrator(
        pool,
        sources,
        make_catalog,
        {"alpha": _items(["SYM0", "NOT_LISTED", "SYM1"]), "beta": _items(["SYM2"]), "gamma": {}},
    )

    summary = await orchestrator.run_fetch()

    assert summary["success"] is True
    assert summary["records_stored"] == 3


@pytest.mark.asyncio
async def test_every_row_of_a_run_shares_one_fetch_id(pool, sources, make_catalog) -> None:
    script = {"alpha": _items(SYMBOLS[:2]), "beta": _items(SYMBOLS[2:4]), "gamma": _items(SYMBOLS[4:6])}
    orchestrator = _orchestrator(pool, sources, make_catalog, script)

    summary = await orchestrator.run_fetch()

    _, params = pool.inserts[0]
    fetch_id_column = params[4::6]
    assert set(fetch_id_column) == {summary["fetch_id"]}
    assert set(orchestrator.fetcher.fetch_ids) == {summary["fetch_id"]}
    uuid.UUID(summary["fetch_id"])


@pytest.mark.asyncio
async def test_nothing_stored_is_not_a_success(pool, sources, make_catalog) -> None:
    orchestrator = _orchestrator(
        pool, sources, make_catalog, {"alpha": {}, "beta": {}, "gamma": _items(["UNKNOWN"])}
    )

    summary = await orchestrator.run_fetch()

    assert summary["success"] is False
    assert summary["records_stored"] == 0
    assert pool.inserts == []


@pytest.mark.asyncio
async def test_persistence_failure_becomes_failed_summary(pool, sources, make_catalog) -> None:
    pool.insert_error = RuntimeError("connection reset")
    orchestrator = _orchestrator(
        pool, sources, make_catalog, {name: _items(SYMBOLS[:1]) for name in ("alpha", "beta", "gamma")}
    )

    summary = await orchestrator.run_fetch()

    assert summary["success"] is False
    assert summary["records_stored"] == 0
    assert summary["error"] == "connection reset"
    assert pool.conn.rollbacks == 1


@pytest.mark.asyncio
async def test_run_requires_a_loaded_catalog(pool, make_catalog) -> None:
    orchestrator = FetchOrchestrator(Persister(pool), fetcher=_ScriptedFetcher({}))

    with pytest.raises(CatalogNotInitializedError):
        await orchestrator.run_fetch()

    empty = FetchOrchestrator(Persister(pool), fetcher=_ScriptedFetcher({}), catalog=make_catalog([]))
    with pytest.raises(CatalogNotInitializedError, match="no active data sources"):
        await empty.run_fetch()


@pytest.mark.asyncio
async def test_initialize_loads_catalog_once(pool, sources, make_catalog) -> None:
    loads = {"n": 0}

    async def loader():
        loads["n"] += 1
        return make_catalog(sources)

    orchestrator = FetchOrchestrator(Persister(pool), fetcher=_ScriptedFetcher({}), catalog_loader=loader)
    assert orchestrator.is_initialized is False

    await orchestrator.initialize()
    await orchestrator.initialize()

    assert orchestrator.is_initialized is True
    assert loads["n"] == 1

    await orchestrator.reload_catalog()
    assert loads["n"] == 2


@pytest.mark.asyncio
async def test_fetches_run_concurrently_and_failures_do_not_cancel_siblings(
    pool, sources, make_catalog
) -> None:
    started = asyncio.Event()
    in_flight = {"n": 0}
    finished: list[str] = []

    class _BarrierFetcher:
        async def fetch(self, source, fetch_id: str) -> SourceResult:
            in_flight["n"] += 1
            if in_flight["n"] == len(sources):
                started.set()
            if source.name == "alpha":
                raise _timeout("alpha")
            await started.wait()
            await asyncio.sleep(0.01)
            finished.append(source.name)
            return SourceResult(
                source_id=source.id,
                source_name=source.name,
                fetch_id=fetch_id,
                data=_items([SYMBOLS[source.id]]),
            )

    orchestrator = FetchOrchestrator(
        Persister(pool), fetcher=_BarrierFetcher(), catalog=make_catalog(sources)
    )

    summary = await asyncio.wait_for(orchestrator.run_fetch(), timeout=2)

    assert sorted(finished) == ["beta", "gamma"]
    assert summary["failed_sources"] == ["alpha"]
    assert summary["records_stored"] == 2
