from .client import FinnhubClient, create_finnhub_client, split_batches
from .config import FinnhubConfig
from .exceptions import (
    FinnhubAPIError,
    FinnhubAuthError,
    FinnhubNotFoundError,
    FinnhubRateLimitError,
)
from .models import LivePrice, Quote

__all__ = [
    "FinnhubClient",
    "create_finnhub_client",
    "split_batches",
    "FinnhubConfig",
    "FinnhubAPIError",
    "FinnhubAuthError",
    "FinnhubNotFoundError",
    "FinnhubRateLimitError",
    "LivePrice",
    "Quote",
]
