from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Quote(BaseModel):
    """Raw /quote payload. Finnhub uses single-letter keys."""

    c: float  # current price
    d: float | None = None  # change
    dp: float | None = None  # percent change
    h: float = 0.0  # high of day
    l: float = 0.0  # low of day
    o: float = 0.0  # open
    pc: float = 0.0  # previous close
    t: int = 0  # unix timestamp

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Quote | None:
        # Invalid symbols come back as {"c": 0, "d": null, "dp": null, ...}
        price = data.get("c")
        if not price:
            return None
        return cls(
            c=price,
            d=data.get("d"),
            dp=data.get("dp"),
            h=data.get("h") or 0.0,
            l=data.get("l") or 0.0,
            o=data.get("o") or 0.0,
            pc=data.get("pc") or 0.0,
            t=data.get("t") or 0,
        )


class LivePrice(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ticker: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    high: float = 0.0
    low: float = 0.0
    open: float = 0.0
    previous_close: float = 0.0

    @classmethod
    def from_quote(cls, ticker: str, quote: Quote) -> LivePrice:
        return cls(
            ticker=ticker,
            price=quote.c,
            change=quote.d or 0.0,
            change_percent=quote.dp or 0.0,
            high=quote.h,
            low=quote.l,
            open=quote.o,
            previous_close=quote.pc,
        )
