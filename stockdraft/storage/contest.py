"""Contest roster: players, their drafted stocks, and contest metadata.

The roster lives in data/players.json (camelCase keys). Draft invariants are
checked here, when the file is loaded, so downstream code can trust them.
"""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from stockdraft.exceptions import ContestDataError

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Stock(_CamelModel):
    """A drafted holding. Base price is fixed at contest start."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    ticker: str
    base_price: float = Field(gt=0)


class Player(_CamelModel):
    id: str
    name: str
    draft_position: int = Field(ge=1)
    stocks: list[Stock]


class ContestInfo(_CamelModel):
    name: str
    start_date: str
    end_date: str
    prize_amount: float = 0.0
    base_price_date: str = ""
    scoring: str = ""


class Contest(_CamelModel):
    """Complete contents of players.json."""

    contest_info: ContestInfo
    players: list[Player]

    def get_player(self, player_id: str) -> Player | None:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    @property
    def tickers(self) -> list[str]:
        return all_tickers(self.players)


def all_tickers(players: list[Player]) -> list[str]:
    """Unique tickers in draft-file order."""
    seen: dict[str, None] = {}
    for player in players:
        for stock in player.stocks:
            seen.setdefault(stock.ticker, None)
    return list(seen)


def validate_contest(contest: Contest, stocks_per_player: int = 10) -> None:
    """Raise ContestDataError if the roster breaks a draft invariant."""
    errors: list[str] = []
    owners: dict[str, str] = {}
    positions: dict[int, str] = {}
    player_count = len(contest.players)

    for player in contest.players:
        if len(player.stocks) != stocks_per_player:
            errors.append(
                f"{player.id} holds {len(player.stocks)} stocks, expected {stocks_per_player}"
            )

        if player.draft_position > player_count:
            errors.append(
                f"{player.id} has draft position {player.draft_position} "
                f"but only {player_count} players"
            )
        elif player.draft_position in positions:
            errors.append(
                f"{player.id} and {positions[player.draft_position]} share "
                f"draft position {player.draft_position}"
            )
        else:
            positions[player.draft_position] = player.id

        for stock in player.stocks:
            owner = owners.get(stock.ticker)
            if owner is not None:
                errors.append(f"{stock.ticker} drafted by both {owner} and {player.id}")
            else:
                owners[stock.ticker] = player.id

    if errors:
        raise ContestDataError("Invalid contest data: " + "; ".join(errors))


def load_contest(path: Path, stocks_per_player: int = 10) -> Contest:
    """Load and validate the contest roster."""
    if not path.exists():
        raise ContestDataError(
            f"Contest file not found: {path}. "
            "Run 'python -m stockdraft init' to create the data directory."
        )

    try:
        with open(path, "r", encoding="utf-8") as f:
            contest = Contest.model_validate(json.load(f))
    except json.JSONDecodeError as e:
        raise ContestDataError(f"Corrupted JSON in {path}: {e}") from e
    except ValidationError as e:
        raise ContestDataError(f"Malformed contest file {path}: {e}") from e

    validate_contest(contest, stocks_per_player)
    logger.debug(
        f"Loaded contest '{contest.contest_info.name}' with {len(contest.players)} players"
    )
    return contest
