from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

import httpx
from pydantic import ValidationError

from .config import FinnhubConfig
from .exceptions import (
    FinnhubAPIError,
    FinnhubAuthError,
    FinnhubNotFoundError,
    FinnhubRateLimitError,
)
from .models import LivePrice, Quote

logger = logging.getLogger(__name__)


def split_batches(tickers: list[str], groups: int = 2) -> list[list[str]]:
    """Split tickers into contiguous groups; earlier groups take the remainder."""
    if groups < 1:
        raise ValueError(f"groups must be at least 1, got {groups}")
    size = math.ceil(len(tickers) / groups) if tickers else 0
    return [tickers[i * size:(i + 1) * size] for i in range(groups)]


class FinnhubClient:
    def __init__(
        self,
        api_key: str,
        config: FinnhubConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or FinnhubConfig()
        self.api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> FinnhubClient:
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            limits=limits,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed FinnhubClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "FinnhubClient must be used as async context manager"
            )
        return self._client

    async def _request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        query = dict(params or {})
        query["token"] = self.api_key

        # max_retries counts retries, so there is always at least one attempt
        attempts = self.config.max_retries + 1
        attempt = 0
        last_error: Exception | None = None

        while attempt < attempts:
            attempt += 1
            try:
                response = await self.client.get(endpoint, params=query)

                if response.status_code in (401, 403):
                    raise FinnhubAuthError(
                        "Finnhub rejected the API key", status_code=response.status_code
                    )
                elif response.status_code == 404:
                    raise FinnhubNotFoundError(
                        f"Resource not found: {endpoint}", status_code=404
                    )
                elif response.status_code == 429:
                    # Retrying here only burns more of the per-minute budget
                    raise FinnhubRateLimitError("Rate limited", status_code=429)
                elif response.status_code >= 500:
                    last_error = FinnhubAPIError(
                        f"Server error {response.status_code}",
                        status_code=response.status_code,
                    )
                    if attempt < attempts:
                        wait_time = 2 ** attempt
                        logger.warning(
                            f"Server error {response.status_code}, "
                            f"retrying in {wait_time}s..."
                        )
                        await asyncio.sleep(wait_time)
                    continue

                elif response.status_code >= 400:
                    raise FinnhubAPIError(
                        f"HTTP {response.status_code} for {endpoint}",
                        status_code=response.status_code,
                    )

                try:
                    data = response.json()
                except ValueError as e:
                    raise FinnhubAPIError(f"Invalid JSON from {endpoint}: {e}")

                if not isinstance(data, dict):
                    raise FinnhubAPIError(
                        f"Unexpected payload from {endpoint}: {type(data).__name__}"
                    )
                return data

            except httpx.TimeoutException as e:
                last_error = e
                if attempt < attempts:
                    logger.warning(f"Timeout, retrying ({attempt})...")
                    await asyncio.sleep(2)

            except httpx.RequestError as e:
                last_error = e
                logger.error(f"Network error: {e}")
                break

        raise FinnhubAPIError(
            f"Request failed after {attempt} attempt(s): {last_error}"
        )

    async def get_quote(self, symbol: str) -> Quote | None:
        data = await self._request("quote", params={"symbol": symbol})
        try:
            return Quote.from_api(data)
        except ValidationError as e:
            raise FinnhubAPIError(f"Malformed quote for {symbol}: {e}") from e

    async def fetch_quotes(
        self,
        symbols: list[str],
        delay_seconds: float = 0.0,
    ) -> dict[str, LivePrice]:
        """Quote each symbol in turn, spacing calls by ``delay_seconds``.

        Symbols that fail (transport error, HTTP error, rate limit, malformed
        payload, or the zero-price sentinel) are left out of the result.
        """
        results: dict[str, LivePrice] = {}

        for i, symbol in enumerate(symbols):
            try:
                quote = await self.get_quote(symbol)
            except FinnhubRateLimitError:
                logger.warning(f"Rate limited for {symbol}")
                quote = None
            except FinnhubAPIError as e:
                logger.error(f"Error fetching quote for {symbol}: {e}")
                quote = None

            if quote is not None:
                results[symbol] = LivePrice.from_quote(symbol, quote)
            else:
                logger.debug(f"No quote for {symbol}")

            if delay_seconds > 0 and i < len(symbols) - 1:
                await asyncio.sleep(delay_seconds)

        logger.info(f"Fetched {len(results)}/{len(symbols)} quotes")
        return results


def create_finnhub_client(
    api_key: str,
    base_url: str | None = None,
    timeout_seconds: float | None = None,
    max_retries: int | None = None,
) -> FinnhubClient:
    overrides = {
        "base_url": base_url,
        "timeout_seconds": timeout_seconds,
        "max_retries": max_retries,
    }
    config = FinnhubConfig(**{k: v for k, v in overrides.items() if v is not None})
    return FinnhubClient(api_key, config)
