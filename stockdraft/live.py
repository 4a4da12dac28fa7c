"""Live price orchestration: scheduled refresh, tiered reads, daily close.

Read tiers, in order:
1. market closed -> daily close file ("static")
2. shared cache, if fresh ("redis" or "cron", by store)
3. this process's last direct fetch, if fresh ("local")
4. direct fetch from the provider ("direct")
5. last direct fetch however old ("local-stale"), else the close file
   ("static-fallback")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stockdraft.config import Settings
from stockdraft.exceptions import CacheUnavailableError, ConfigurationError
from stockdraft.market import MarketStatus, get_market_status, trading_date
from stockdraft.services.finnhub import (
    FinnhubClient,
    LivePrice,
    create_finnhub_client,
    split_batches,
)
from stockdraft.standings import PlayerStanding, calculate_standings
from stockdraft.storage.cache import (
    CachedPrice,
    PriceCache,
    PriceSnapshot,
    create_price_store,
)
from stockdraft.storage.contest import Contest, load_contest
from stockdraft.storage.prices import (
    StaticPrices,
    load_current_prices,
    save_daily_close,
)

logger = logging.getLogger(__name__)

PriceSource = Literal[
    "redis", "static", "static-fallback", "cron", "direct", "local", "local-stale"
]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PricePoint(_CamelModel):
    price: float
    updated_at: int | None = None


class LivePricesResponse(_CamelModel):
    prices: dict[str, PricePoint] = Field(default_factory=dict)
    timestamp: int
    market_status: MarketStatus
    cached: bool
    stale: bool = False
    source: PriceSource
    message: str | None = None

    @property
    def price_map(self) -> dict[str, float]:
        return {ticker: point.price for ticker, point in self.prices.items()}


class RefreshResult(_CamelModel):
    success: bool = True
    message: str
    market_status: MarketStatus
    timestamp: int
    group: int | None = None
    requested: int = 0
    updated: int = 0


class CloseResult(_CamelModel):
    date: str
    fetched: int
    filled_from_previous: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    history_written: bool


def _to_cached(prices: dict[str, LivePrice], stamp: int) -> dict[str, CachedPrice]:
    return {
        ticker: CachedPrice(
            price=data.price,
            change=data.change,
            change_percent=data.change_percent,
            updated_at=stamp,
        )
        for ticker, data in prices.items()
    }


class LivePriceService:
    """One per process. Owns the local last-good copy; the shared tier is ``cache``."""

    def __init__(
        self,
        settings: Settings,
        contest: Contest,
        cache: PriceCache,
        client_factory: Callable[[], FinnhubClient] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings
        self.contest = contest
        self.cache = cache
        self._client_factory = client_factory or self._default_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._local: PriceSnapshot | None = None

    def _default_client(self) -> FinnhubClient:
        quotes = self.settings.quotes
        return create_finnhub_client(
            self._require_api_key(),
            base_url=quotes.base_url,
            timeout_seconds=quotes.timeout_seconds,
            max_retries=quotes.max_retries,
        )

    def _require_api_key(self) -> str:
        if not self.settings.finnhub_api_key:
            raise ConfigurationError("Finnhub API key not configured")
        return self.settings.finnhub_api_key

    def now(self) -> datetime:
        return self._clock()

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    async def _fetch(self, tickers: list[str]) -> dict[str, LivePrice]:
        async with self._client_factory() as client:
            return await client.fetch_quotes(
                tickers, delay_seconds=self.settings.quotes.delay_seconds
            )

    def static_prices(self) -> StaticPrices:
        return load_current_prices(self.settings.data_dir)

    # ------------------------------------------------------------------
    # Scheduled refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> RefreshResult:
        """One scheduled fetch cycle; merges whatever was quoted into the cache."""
        self._require_api_key()
        market_status = get_market_status(self._clock())

        if not market_status.is_open:
            return RefreshResult(
                message="Market closed - skipping price fetch",
                market_status=market_status,
                timestamp=self._now_ms(),
            )

        tickers = self.contest.tickers
        group: int | None = None
        if self.settings.quotes.fetch_mode == "alternating":
            groups = self.settings.quotes.batch_groups
            group = await self.cache.next_batch_group(groups)
            tickers = split_batches(tickers, groups)[group]
            logger.info(
                f"[Cron] Fetching group {group + 1}/{groups}: {len(tickers)} stocks..."
            )
        else:
            logger.info(f"[Cron] Fetching {len(tickers)} stocks...")

        quotes = await self._fetch(tickers)
        stamp = self._now_ms()
        await self.cache.update(_to_cached(quotes, stamp), market_status)

        logger.info(f"[Cron] Updated {len(quotes)} prices in {self.cache.source} cache")

        label = f"group {group + 1}/{self.settings.quotes.batch_groups}" if group is not None else "all"
        return RefreshResult(
            message=f"Updated {label}: {len(quotes)} prices",
            market_status=market_status,
            timestamp=stamp,
            group=group,
            requested=len(tickers),
            updated=len(quotes),
        )

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def _static_response(
        self,
        market_status: MarketStatus,
        source: Literal["static", "static-fallback"],
        message: str | None = None,
    ) -> LivePricesResponse:
        static = self.static_prices()
        updated_at = None
        if static.last_updated:
            try:
                updated_at = int(
                    datetime.fromisoformat(static.last_updated.replace("Z", "+00:00")).timestamp()
                    * 1000
                )
            except ValueError:
                logger.warning(f"Unparseable lastUpdated in close file: {static.last_updated}")

        return LivePricesResponse(
            prices={
                ticker: PricePoint(price=price, updated_at=updated_at)
                for ticker, price in static.prices.items()
            },
            timestamp=self._now_ms(),
            market_status=market_status,
            cached=False,
            stale=source == "static-fallback",
            source=source,
            message=message,
        )

    @staticmethod
    def _snapshot_response(
        snapshot: PriceSnapshot,
        source: PriceSource,
        cached: bool,
        stale: bool = False,
    ) -> LivePricesResponse:
        return LivePricesResponse(
            prices={
                ticker: PricePoint(price=p.price, updated_at=p.updated_at)
                for ticker, p in snapshot.prices.items()
            },
            timestamp=snapshot.timestamp,
            market_status=snapshot.market_status,
            cached=cached,
            stale=stale,
            source=source,
        )

    async def get_live_prices(self) -> LivePricesResponse:
        now = self._now_ms()
        market_status = get_market_status(self._clock())

        if not market_status.is_open:
            return self._static_response(
                market_status, "static", message="Market closed - using daily close prices"
            )

        try:
            snapshot = await self.cache.get()
            if self.cache.is_fresh(snapshot, market_status):
                return self._snapshot_response(snapshot, self.cache.source, cached=True)
        except CacheUnavailableError as e:
            logger.warning(f"[API] Shared cache unavailable, falling back: {e}")

        local = self._local
        if local is not None and now - local.timestamp < self.settings.cache.local_ttl_seconds * 1000:
            return self._snapshot_response(local, "local", cached=True)

        if self.settings.cache.direct_fetch_on_miss:
            tickers = self.contest.tickers
            self._require_api_key()
            logger.info(f"[API] Fetching live prices for {len(tickers)} stocks (cache miss)...")

            prices: dict[str, LivePrice] = {}
            try:
                prices = await self._fetch(tickers)
            except Exception as e:
                logger.error(f"[API] Error fetching live prices: {e}")

            if prices:
                self._local = PriceSnapshot(
                    prices=_to_cached(prices, now),
                    timestamp=now,
                    market_status=market_status,
                )
                logger.info(f"[API] Fetched {len(prices)} prices successfully")
                return self._snapshot_response(self._local, "direct", cached=False)

        if self._local is not None:
            return self._snapshot_response(self._local, "local-stale", cached=True, stale=True)

        return self._static_response(
            market_status, "static-fallback", message="Live prices unavailable - using daily close prices"
        )

    async def current_prices(self) -> tuple[dict[str, float], LivePricesResponse]:
        """Close prices overlaid with live ones, plus the live response used."""
        live = await self.get_live_prices()
        merged = dict(self.static_prices().prices)
        merged.update(live.price_map)
        return merged, live

    async def standings(
        self, previous_ranks: dict[str, int] | None = None
    ) -> list[PlayerStanding]:
        prices, _ = await self.current_prices()
        return calculate_standings(self.contest.players, prices, previous_ranks)

    # ------------------------------------------------------------------
    # Daily close
    # ------------------------------------------------------------------

    async def close_prices(self) -> CloseResult:
        """Fetch every ticker and record the day's close; gaps keep yesterday's price."""
        self._require_api_key()
        tickers = self.contest.tickers
        logger.info(f"Fetching close prices for {len(tickers)} stocks...")

        quotes = await self._fetch(tickers)
        prices = {ticker: data.price for ticker, data in quotes.items()}

        previous = self.static_prices().prices
        filled: list[str] = []
        missing: list[str] = []
        for ticker in tickers:
            if ticker in prices:
                continue
            if ticker in previous:
                prices[ticker] = previous[ticker]
                filled.append(ticker)
                logger.info(f"Using cached price for {ticker}: ${previous[ticker]}")
            else:
                missing.append(ticker)

        now = self._clock()
        date = trading_date(now)
        history_written = save_daily_close(
            StaticPrices(
                last_updated=now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
                prices=prices,
            ),
            self.settings.data_dir,
            date,
        )

        logger.info(
            f"Close prices saved: {len(quotes)} fetched, {len(filled)} carried over, "
            f"{len(missing)} missing"
        )
        return CloseResult(
            date=date,
            fetched=len(quotes),
            filled_from_previous=filled,
            missing=missing,
            history_written=history_written,
        )


def build_service(settings: Settings) -> LivePriceService:
    """Wire the process-wide service from settings."""
    contest = load_contest(settings.players_path, settings.contest.stocks_per_player)
    cache = PriceCache(
        create_price_store(settings.redis_url),
        ttl_seconds=settings.cache.shared_ttl_seconds,
    )
    return LivePriceService(settings, contest, cache)
