"""Storage layer for Stock Draft - contest roster, close price files, live cache.

This package provides:
- Contest roster loading and draft invariant checks (data/players.json)
- Daily close price files (data/current.json, data/history/)
- The live price cache service over an in-process or Redis store
"""

# Contest roster
from .contest import (
    Contest,
    ContestInfo,
    Player,
    Stock,
    all_tickers,
    load_contest,
    validate_contest,
)

# Close price files
from .prices import (
    StaticPrices,
    load_current_prices,
    load_price_history,
    save_daily_close,
)

# Live cache
from .cache import (
    CachedPrice,
    MemoryPriceStore,
    PriceCache,
    PriceSnapshot,
    PriceStore,
    RedisPriceStore,
    create_price_store,
)

__all__ = [
    # Contest roster
    "Contest",
    "ContestInfo",
    "Player",
    "Stock",
    "all_tickers",
    "load_contest",
    "validate_contest",
    # Close price files
    "StaticPrices",
    "load_current_prices",
    "load_price_history",
    "save_daily_close",
    # Live cache
    "CachedPrice",
    "MemoryPriceStore",
    "PriceCache",
    "PriceSnapshot",
    "PriceStore",
    "RedisPriceStore",
    "create_price_store",
]
