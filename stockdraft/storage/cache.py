"""Live price cache shared between the refresh job and read requests.

The cache holds exactly one value: a snapshot of the whole ticker universe.
Writes merge new tickers over old ones and replace the snapshot as a unit, so
a reader sees either the previous snapshot or the new one, never a mix.

Two backends:
- MemoryPriceStore: process-local, filled by an in-process refresh job
- RedisPriceStore: shared across processes and hosts
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable

import redis.asyncio as aioredis
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from redis.exceptions import RedisError

from stockdraft.exceptions import CacheUnavailableError
from stockdraft.market import MarketStatus

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "stock-prices"
BATCH_GROUP_KEY = "last-batch-group"


def now_ms() -> int:
    return int(time.time() * 1000)


# ============================================================================
# Pydantic Models
# ============================================================================


class CachedPrice(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    price: float
    change: float = 0.0
    change_percent: float = 0.0
    updated_at: int  # epoch ms


class PriceSnapshot(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    prices: dict[str, CachedPrice] = Field(default_factory=dict)
    timestamp: int  # epoch ms
    market_status: MarketStatus


# ============================================================================
# Stores
# ============================================================================


class PriceStore(ABC):
    """Minimal key-value contract: whole-value get/set and an atomic counter."""

    source: str

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    @abstractmethod
    async def incr(self, key: str) -> int: ...

    async def close(self) -> None:
        return None


class MemoryPriceStore(PriceStore):
    source = "cron"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._values: dict[str, tuple[str, float | None]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            self._values.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._values[key] = (value, expires_at)

    async def incr(self, key: str) -> int:
        async with self._lock:
            current = int(await self.get(key) or 0) + 1
            self._values[key] = (str(current), None)
            return current


class RedisPriceStore(PriceStore):
    source = "redis"

    def __init__(self, url: str | None = None, client: aioredis.Redis | None = None):
        if client is None:
            if not url:
                raise ValueError("RedisPriceStore needs a url or a client")
            client = aioredis.from_url(url, decode_responses=True)
        self._redis = client

    async def get(self, key: str) -> str | None:
        try:
            value = await self._redis.get(key)
        except RedisError as e:
            raise CacheUnavailableError(f"Redis GET {key} failed: {e}") from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            await self._redis.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise CacheUnavailableError(f"Redis SET {key} failed: {e}") from e

    async def incr(self, key: str) -> int:
        try:
            return int(await self._redis.incr(key))
        except RedisError as e:
            raise CacheUnavailableError(f"Redis INCR {key} failed: {e}") from e

    async def close(self) -> None:
        await self._redis.aclose()


def create_price_store(redis_url: str = "") -> PriceStore:
    if redis_url:
        logger.info("Using Redis price store")
        return RedisPriceStore(redis_url)
    logger.info("REDIS_URL not set - using in-process price store")
    return MemoryPriceStore()


# ============================================================================
# Cache service
# ============================================================================


class PriceCache:
    def __init__(
        self,
        store: PriceStore,
        ttl_seconds: int = 300,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def source(self) -> str:
        return self.store.source

    async def get(self) -> PriceSnapshot | None:
        raw = await self.store.get(SNAPSHOT_KEY)
        if raw is None:
            return None
        try:
            return PriceSnapshot.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cached snapshot: {e}")
            return None

    async def update(
        self,
        prices: dict[str, CachedPrice],
        market_status: MarketStatus,
    ) -> PriceSnapshot:
        """Merge ``prices`` over the cached set and stamp a new timestamp."""
        existing = await self.get()
        merged = dict(existing.prices) if existing else {}
        merged.update(prices)

        snapshot = PriceSnapshot(
            prices=merged,
            timestamp=self._clock(),
            market_status=market_status,
        )
        await self.store.set(
            SNAPSHOT_KEY,
            snapshot.model_dump_json(by_alias=True),
            ttl_seconds=self.ttl_seconds,
        )
        logger.debug(f"Cached {len(prices)} new prices ({len(merged)} total)")
        return snapshot

    def age_ms(self, snapshot: PriceSnapshot) -> int:
        return self._clock() - snapshot.timestamp

    def is_fresh(
        self,
        snapshot: PriceSnapshot | None,
        market_status: MarketStatus,
        ttl_seconds: int | None = None,
    ) -> bool:
        """Live only while the market is open and the snapshot is younger than the TTL."""
        if snapshot is None or not snapshot.prices:
            return False
        if not market_status.is_open:
            return False
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return self.age_ms(snapshot) < ttl * 1000

    async def next_batch_group(self, groups: int = 2) -> int:
        """Advance the persisted batch counter and return the group to fetch."""
        counter = await self.store.incr(BATCH_GROUP_KEY)
        return counter % groups

    async def close(self) -> None:
        await self.store.close()
