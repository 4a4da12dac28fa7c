class StockDraftError(Exception):
    """Base exception for Stock Draft errors."""

    pass


class ConfigurationError(StockDraftError):
    """Required configuration (API key, cron secret) is missing."""

    pass


class ContestDataError(StockDraftError):
    """Contest data file is missing or violates draft invariants."""

    pass


class CacheUnavailableError(StockDraftError):
    """Shared price cache could not be reached."""

    pass
