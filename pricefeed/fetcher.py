"""
Fetch and normalize one data source.

`SourceFetcher.fetch` performs one HTTP GET per attempt (httpx), retrying
transport errors and non-2xx responses with exponential backoff (tenacity),
then hands the decoded body to the source's configured parser. It never
touches the database.

A body that is not JSON or not in the configured shape fails the source at
once; retrying would only fetch the same malformed document again.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pricefeed.config import Settings, get_settings
from pricefeed.domain.models import DataSource, SourceResult
from pricefeed.exceptions import InvalidPayloadError, SourceFetchError
from pricefeed.sources import resolve_parser
from pricefeed.utils.logging import get_logger

log = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


class SourceFetcher:
    """
    Fetch one source with bounded retry and normalize its payload.

    Parameters
    ----------
    client : httpx.AsyncClient | None
        Shared client. When omitted a short-lived client is opened per fetch.
    settings : Settings | None
        Timeout, attempt and backoff defaults; `get_settings()` when omitted.
    sleep : callable
        Awaitable used between attempts (swapped out in tests).
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        settings = settings or get_settings()
        self.timeout_ms = settings.fetch_timeout_ms
        self.max_attempts = settings.fetch_max_attempts
        self.base_delay_ms = settings.fetch_retry_base_delay_ms
        self.default_unit = settings.default_unit
        self.user_agent = settings.http_user_agent
        self._client = client
        self._sleep = sleep

    def _log_retry(self, source: DataSource) -> Callable[[RetryCallState], None]:
        def before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            log.warning(
                f"[SOURCE RETRY] {source.name} attempt {state.attempt_number}/{self.max_attempts} failed",
                extra={
                    "source": source.name,
                    "attempt": state.attempt_number,
                    "wait_seconds": state.next_action.sleep if state.next_action else None,
                    "error": str(exc),
                },
            )

        return before_sleep

    async def _get(self, client: httpx.AsyncClient, source: DataSource) -> httpx.Response:
        timeout = (source.timeout_ms or self.timeout_ms) / 1000.0
        response = await client.get(source.url, headers=source.headers or {}, timeout=timeout)
        response.raise_for_status()
        return response

    async def _fetch_with(
        self, client: httpx.AsyncClient, source: DataSource, fetch_id: str
    ) -> SourceResult:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay_ms / 1000.0, exp_base=2),
            retry=retry_if_exception_type(httpx.HTTPError),
            before_sleep=self._log_retry(source),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            response = await retrying(self._get, client, source)
        except httpx.HTTPError as exc:
            raise SourceFetchError(
                f"Fetching {source.name} failed after {self.max_attempts} attempts: {exc}",
                source_name=source.name,
                attempts=self.max_attempts,
                details={"url": source.url},
            ) from exc

        try:
            body = response.json()
            data = resolve_parser(source, self.default_unit).parse(body, source)
        except (ValueError, InvalidPayloadError) as exc:
            raise SourceFetchError(
                f"Invalid payload from {source.name}: {exc}",
                source_name=source.name,
                details={"url": source.url},
            ) from exc

        result = SourceResult(
            source_id=source.id,
            source_name=source.name,
            category_id=source.category_id,
            fetch_id=fetch_id,
            data=data,
        )
        log.info(
            f"[SOURCE OK] {source.name}",
            extra={"source": source.name, "fetch_id": fetch_id, "items": result.item_count},
        )
        return result

    async def fetch(self, source: DataSource, fetch_id: str) -> SourceResult:
        """
        Fetch and normalize `source`.

        Raises
        ------
        SourceFetchError
            After the final failed attempt, or at once on a malformed payload.
        """
        log.debug(f"[SOURCE START] {source.name}", extra={"source": source.name, "url": source.url})
        if self._client is not None:
            return await self._fetch_with(self._client, source, fetch_id)
        async with httpx.AsyncClient(headers={"User-Agent": self.user_agent}) as client:
            return await self._fetch_with(client, source, fetch_id)


__all__ = ["SourceFetcher"]
