"""US equity market hours (regular session, America/New_York)."""

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

EASTERN = ZoneInfo("America/New_York")

MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)


class MarketStatus(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_open: bool
    message: str


def _to_eastern(now: datetime | None) -> datetime:
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(EASTERN)


def is_market_open(now: datetime | None = None) -> bool:
    """Mon-Fri, 9:30 AM (inclusive) to 4:00 PM (exclusive) Eastern."""
    et = _to_eastern(now)
    if et.weekday() >= 5:
        return False
    return MARKET_OPEN <= et.time() < MARKET_CLOSE


def get_market_status(now: datetime | None = None) -> MarketStatus:
    et = _to_eastern(now)

    if is_market_open(et):
        return MarketStatus(is_open=True, message="Market Open")

    if et.weekday() >= 5:
        return MarketStatus(is_open=False, message="Weekend - Market Closed")

    if et.time() < MARKET_OPEN:
        return MarketStatus(is_open=False, message="Pre-Market")

    return MarketStatus(is_open=False, message="After Hours")


def trading_date(now: datetime | None = None) -> str:
    """ISO date (YYYY-MM-DD) of the Eastern calendar day."""
    return _to_eastern(now).date().isoformat()
