"""Shared fixtures: a small roster, fixed clocks, and a scripted quote provider."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest

from stockdraft.config import CacheConfig, QuotesConfig, Settings
from stockdraft.exceptions import CacheUnavailableError
from stockdraft.live import LivePriceService
from stockdraft.services.finnhub import FinnhubClient, FinnhubConfig
from stockdraft.storage import (
    Contest,
    ContestInfo,
    MemoryPriceStore,
    Player,
    PriceCache,
    PriceStore,
    Stock,
)

# Wednesday 2025-03-12, 11:00 ET
MARKET_OPEN_AT = datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)
# Saturday 2025-03-15, 11:00 ET
WEEKEND_AT = datetime(2025, 3, 15, 15, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def ms(self) -> int:
        return int(self.now.timestamp() * 1000)

    def advance(self, seconds: float) -> None:
        self.now = datetime.fromtimestamp(self.now.timestamp() + seconds, tz=timezone.utc)


class QuoteProvider:
    """Scripted /quote endpoint. Prices keyed by symbol; anything else is invalid."""

    def __init__(self, prices: dict[str, float]):
        self.prices = dict(prices)
        self.failing: set[str] = set()
        self.status_overrides: dict[str, int] = {}
        self.bodies: dict[str, Any] = {}
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        symbol = request.url.params.get("symbol", "")
        self.calls.append(symbol)

        if symbol in self.failing:
            raise httpx.ConnectError("connection refused", request=request)
        if symbol in self.status_overrides:
            return httpx.Response(self.status_overrides[symbol], json={})
        if symbol in self.bodies:
            return httpx.Response(200, json=self.bodies[symbol])

        price = self.prices.get(symbol)
        if price is None:
            return httpx.Response(
                200, json={"c": 0, "d": None, "dp": None, "h": 0, "l": 0, "o": 0, "pc": 0, "t": 0}
            )
        return httpx.Response(
            200,
            json={
                "c": price,
                "d": 1.5,
                "dp": 0.75,
                "h": price + 1,
                "l": price - 1,
                "o": price - 0.5,
                "pc": price - 1.5,
                "t": 1741791600,
            },
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def client(self, max_retries: int = 0) -> FinnhubClient:
        return FinnhubClient(
            "test-key",
            FinnhubConfig(base_url="https://finnhub.test/api/v1", max_retries=max_retries),
            transport=self.transport(),
        )


class BrokenStore(PriceStore):
    """Shared store that is always unreachable."""

    source = "redis"

    async def get(self, key):
        raise CacheUnavailableError("connection refused")

    async def set(self, key, value, ttl_seconds=None):
        raise CacheUnavailableError("connection refused")

    async def incr(self, key):
        raise CacheUnavailableError("connection refused")


def make_player(player_id: str, position: int, holdings: list[tuple[str, float]]) -> Player:
    return Player(
        id=player_id,
        name=player_id.title(),
        draft_position=position,
        stocks=[Stock(ticker=t, base_price=p) for t, p in holdings],
    )


def make_contest(players: list[Player]) -> Contest:
    return Contest(
        contest_info=ContestInfo(
            name="Test Draft",
            start_date="2025-01-02",
            end_date="2025-12-31",
            prize_amount=100,
            base_price_date="2024-12-31",
            scoring="average return",
        ),
        players=players,
    )


def write_players_file(path: Path, contest: Contest) -> None:
    path.write_text(json.dumps(contest.model_dump(by_alias=True), indent=2))


@pytest.fixture
def players() -> list[Player]:
    # Two stocks each keeps the arithmetic readable
    return [
        make_player("alice", 1, [("AAPL", 100.0), ("MSFT", 200.0)]),
        make_player("bob", 2, [("NVDA", 50.0), ("AMZN", 100.0)]),
        make_player("carol", 3, [("TSLA", 200.0), ("META", 400.0)]),
    ]


@pytest.fixture
def contest(players) -> Contest:
    return make_contest(players)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=tmp_path,
        environment="development",
        finnhub_api_key="test-key",
        cron_secret="",
        quotes=QuotesConfig(delay_seconds=0, fetch_mode="alternating", max_retries=0),
        cache=CacheConfig(shared_ttl_seconds=300, local_ttl_seconds=60),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(MARKET_OPEN_AT)


@pytest.fixture
def provider() -> QuoteProvider:
    return QuoteProvider(
        {
            "AAPL": 110.0,
            "MSFT": 190.0,
            "NVDA": 60.0,
            "AMZN": 100.0,
            "TSLA": 180.0,
            "META": 420.0,
        }
    )


@pytest.fixture
def cache(clock) -> PriceCache:
    return PriceCache(MemoryPriceStore(), ttl_seconds=300, clock=clock.ms)


@pytest.fixture
def service(settings, contest, cache, provider, clock) -> LivePriceService:
    return LivePriceService(
        settings,
        contest,
        cache,
        client_factory=provider.client,
        clock=clock,
    )
