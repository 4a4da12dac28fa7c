"""Standings calculations: per-stock returns, player totals, ranks, and stats.

These pure functions take a roster and a ticker -> price mapping and derive
everything the leaderboard shows. Nothing here is cached or persisted;
standings are recomputed on every read.
"""

import math
from datetime import datetime, timezone
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from stockdraft.storage.contest import Player
from stockdraft.storage.prices import StaticPrices


def _alias(name: str) -> str:
    # "return" is a keyword, so the field is return_ on the Python side
    return "return" if name == "return_" else to_camel(name)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=_alias, populate_by_name=True)


class StockReturn(_CamelModel):
    ticker: str
    base_price: float
    current_price: float
    return_: float


class StockPick(_CamelModel):
    ticker: str
    return_: float


class PlayerStanding(_CamelModel):
    rank: int
    previous_rank: int | None = None
    player: Player
    total_return: float
    stock_returns: list[StockReturn]
    best_stock: StockPick
    worst_stock: StockPick


class OwnedStock(_CamelModel):
    ticker: str
    owner: str
    base_price: float
    current_price: float
    return_: float


class ContestStats(_CamelModel):
    leader: PlayerStanding
    top_stock: OwnedStock
    worst_stock: OwnedStock
    most_volatile: str
    most_volatile_spread: float


Winner = Literal["p1", "p2", "tie"]


class HeadToHead(_CamelModel):
    player1: PlayerStanding
    player2: PlayerStanding
    return_winner: Winner
    best_stock_winner: Winner
    positive_count_p1: int
    positive_count_p2: int
    positive_winner: Winner


class RacePoint(_CamelModel):
    date: str
    returns: dict[str, float]


# ============================================================================
# Core calculations
# ============================================================================


def calculate_stock_return(base_price: float, current_price: float) -> float:
    """Fractional change from base price: (current - base) / base."""
    if base_price <= 0:
        raise ValueError(f"Base price must be positive, got {base_price}")
    return (current_price - base_price) / base_price


def _current_price(prices: Mapping[str, float], ticker: str, base_price: float) -> float:
    price = prices.get(ticker)
    # Missing quotes and the provider's zero sentinel both mean "no move"
    if not price or price <= 0:
        return base_price
    return price


def _winner(p1: float, p2: float) -> Winner:
    if p1 > p2:
        return "p1"
    if p1 < p2:
        return "p2"
    return "tie"


def calculate_player_standing(player: Player, prices: Mapping[str, float]) -> PlayerStanding:
    """Unranked standing for a single player (rank is filled in by the caller)."""
    if not player.stocks:
        raise ValueError(f"Player {player.id} holds no stocks")

    stock_returns = []
    for stock in player.stocks:
        current = _current_price(prices, stock.ticker, stock.base_price)
        stock_returns.append(
            StockReturn(
                ticker=stock.ticker,
                base_price=stock.base_price,
                current_price=current,
                return_=calculate_stock_return(stock.base_price, current),
            )
        )

    total_return = sum(s.return_ for s in stock_returns) / len(stock_returns)

    # max/min keep the first of equal elements, i.e. holding order
    best = max(stock_returns, key=lambda s: s.return_)
    worst = min(stock_returns, key=lambda s: s.return_)

    return PlayerStanding(
        rank=0,
        player=player,
        total_return=total_return,
        stock_returns=stock_returns,
        best_stock=StockPick(ticker=best.ticker, return_=best.return_),
        worst_stock=StockPick(ticker=worst.ticker, return_=worst.return_),
    )


def calculate_standings(
    players: list[Player],
    prices: Mapping[str, float],
    previous_ranks: Mapping[str, int] | None = None,
) -> list[PlayerStanding]:
    """Rank players by average return, highest first.

    Ties keep roster order (stable sort), so ranks are always 1..N.
    """
    standings = [calculate_player_standing(p, prices) for p in players]
    standings.sort(key=lambda s: s.total_return, reverse=True)

    for index, standing in enumerate(standings):
        standing.rank = index + 1
        if previous_ranks is not None:
            standing.previous_rank = previous_ranks.get(standing.player.id)

    return standings


# ============================================================================
# Derived views
# ============================================================================


def contest_stats(standings: list[PlayerStanding]) -> ContestStats:
    """Leader, best and worst stock across all rosters, most volatile portfolio."""
    if not standings:
        raise ValueError("No standings to summarize")

    all_stocks = [
        OwnedStock(
            ticker=sr.ticker,
            owner=s.player.name,
            base_price=sr.base_price,
            current_price=sr.current_price,
            return_=sr.return_,
        )
        for s in standings
        for sr in s.stock_returns
    ]

    volatile = max(
        standings, key=lambda s: s.best_stock.return_ - s.worst_stock.return_
    )

    return ContestStats(
        leader=min(standings, key=lambda s: s.rank),
        top_stock=max(all_stocks, key=lambda s: s.return_),
        worst_stock=min(all_stocks, key=lambda s: s.return_),
        most_volatile=volatile.player.name,
        most_volatile_spread=volatile.best_stock.return_ - volatile.worst_stock.return_,
    )


def compare_players(p1: PlayerStanding, p2: PlayerStanding) -> HeadToHead:
    positive_p1 = sum(1 for s in p1.stock_returns if s.return_ >= 0)
    positive_p2 = sum(1 for s in p2.stock_returns if s.return_ >= 0)

    return HeadToHead(
        player1=p1,
        player2=p2,
        return_winner=_winner(p1.total_return, p2.total_return),
        best_stock_winner=_winner(p1.best_stock.return_, p2.best_stock.return_),
        positive_count_p1=positive_p1,
        positive_count_p2=positive_p2,
        positive_winner=_winner(positive_p1, positive_p2),
    )


def race_series(
    players: list[Player],
    history: list[tuple[str, StaticPrices]],
) -> list[RacePoint]:
    """Total return per player id at each recorded daily close."""
    points = []
    for date, snapshot in history:
        returns = {
            player.id: calculate_player_standing(player, snapshot.prices).total_return
            for player in players
        }
        points.append(RacePoint(date=date, returns=returns))
    return points


def rank_change(current: int, previous: int | None) -> Literal["up", "down", "same"] | None:
    if previous is None:
        return None
    if current < previous:
        return "up"
    if current > previous:
        return "down"
    return "same"


def format_percent(value: float, decimals: int = 2) -> str:
    sign = "+" if value >= 0 else ""
    return f"{sign}{value * 100:.{decimals}f}%"


def days_remaining(end_date: str, now: datetime | None = None) -> int:
    end = datetime.fromisoformat(end_date)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    diff_days = math.ceil((end - now).total_seconds() / 86400)
    return max(0, diff_days)
