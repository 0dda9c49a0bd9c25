from __future__ import annotations

from typing import Any

import httpx
import pytest

from pricefeed.exceptions import SourceFetchError
from pricefeed.fetcher import SourceFetcher

FETCH_ID = "11111111-2222-3333-4444-555555555555"
EXPECTED_ATTEMPTS = 3
EXPECTED_DELAYS = [1.0, 2.0]

GOOD_BODY = {
    "data": {
        "currency": [{"symbol": "USD", "price": "98,500"}, {"symbol": "EUR", "price": 107000}],
        "gold": [{"symbol": "IR_GOLD_18K", "price": "7,250,000"}],
    }
}


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _fetcher(handler, test_settings, sleep: _RecordingSleep) -> tuple[SourceFetcher, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceFetcher(client=client, settings=test_settings, sleep=sleep), client


@pytest.mark.asyncio
async def test_fetch_normalizes_payload_with_run_fetch_id(make_source, test_settings) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=GOOD_BODY)

    sleep = _RecordingSleep()
    fetcher, client = _fetcher(handler, test_settings, sleep)
    source = make_source(7, "brsapi", category_id=1, headers={"X-Api-Key": "k"})
    async with client:
        result = await fetcher.fetch(source, FETCH_ID)

    assert result.source_id == 7
    assert result.source_name == "brsapi"
    assert result.fetch_id == FETCH_ID
    assert result.item_count == 3
    assert [item.symbol for item in result.data["currency"]] == ["USD", "EUR"]
    assert len(seen) == 1
    assert seen[0].headers["X-Api-Key"] == "k"
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_fetch_retries_with_exponential_backoff_then_succeeds(make_source, test_settings) -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        del request
        calls["n"] += 1
        if calls["n"] < EXPECTED_ATTEMPTS:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json=GOOD_BODY)

    sleep = _RecordingSleep()
    fetcher, client = _fetcher(handler, test_settings, sleep)
    async with client:
        result = await fetcher.fetch(make_source(1, "brsapi"), FETCH_ID)

    assert result.item_count == 3
    assert calls["n"] == EXPECTED_ATTEMPTS
    assert sleep.delays == EXPECTED_DELAYS


@pytest.mark.asyncio
async def test_fetch_fails_after_three_attempts_on_transport_error(make_source, test_settings) -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ConnectTimeout("timed out", request=request)

    sleep = _RecordingSleep()
    fetcher, client = _fetcher(handler, test_settings, sleep)
    async with client:
        with pytest.raises(SourceFetchError) as excinfo:
            await fetcher.fetch(make_source(1, "navasan"), FETCH_ID)

    assert calls["n"] == EXPECTED_ATTEMPTS
    assert sleep.delays == EXPECTED_DELAYS
    assert excinfo.value.source_name == "navasan"
    assert excinfo.value.attempts == EXPECTED_ATTEMPTS
    assert isinstance(excinfo.value.__cause__, httpx.ConnectTimeout)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"status": "ok"}),
    ],
)
@pytest.mark.asyncio
async def test_fetch_fails_malformed_payload_without_retry(
    make_source, test_settings, response: httpx.Response
) -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        del request
        calls["n"] += 1
        return response

    sleep = _RecordingSleep()
    fetcher, client = _fetcher(handler, test_settings, sleep)
    async with client:
        with pytest.raises(SourceFetchError, match="Invalid payload from brsapi"):
            await fetcher.fetch(make_source(1, "brsapi"), FETCH_ID)

    assert calls["n"] == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_fetch_uses_per_source_timeout(make_source, test_settings) -> None:
    timeouts: list[Any] = []

    def handler(request: httpx.Request) -> httpx.Response:
        timeouts.append(request.extensions["timeout"])
        return httpx.Response(200, json=GOOD_BODY)

    fetcher, client = _fetcher(handler, test_settings, _RecordingSleep())
    async with client:
        await fetcher.fetch(make_source(1, "slow", timeout_ms=8000), FETCH_ID)
        await fetcher.fetch(make_source(2, "fast"), FETCH_ID)

    assert timeouts[0]["read"] == 8.0
    assert timeouts[1]["read"] == test_settings.fetch_timeout_ms / 1000.0
