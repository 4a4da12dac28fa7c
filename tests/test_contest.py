import json
from pathlib import Path

import pytest

from conftest import make_contest, make_player, write_players_file
from stockdraft.exceptions import ContestDataError
from stockdraft.storage import all_tickers, load_contest, validate_contest


def test_load_round_trips_camel_case_file(tmp_path, contest) -> None:
    path = tmp_path / "players.json"
    write_players_file(path, contest)

    loaded = load_contest(path, stocks_per_player=2)

    assert loaded.contest_info.name == "Test Draft"
    assert loaded.get_player("bob").stocks[0].ticker == "NVDA"
    assert loaded.get_player("nobody") is None
    assert loaded.tickers == ["AAPL", "MSFT", "NVDA", "AMZN", "TSLA", "META"]


def test_bundled_roster_is_valid() -> None:
    path = Path(__file__).resolve().parent.parent / "data" / "players.json"

    contest = load_contest(path)

    assert len(contest.players) == 10
    assert len(contest.tickers) == 100


def test_missing_file(tmp_path) -> None:
    with pytest.raises(ContestDataError, match="not found"):
        load_contest(tmp_path / "players.json")


def test_corrupted_json(tmp_path) -> None:
    path = tmp_path / "players.json"
    path.write_text("{ nope")

    with pytest.raises(ContestDataError, match="Corrupted"):
        load_contest(path)


def test_schema_violation(tmp_path) -> None:
    path = tmp_path / "players.json"
    path.write_text(json.dumps({"contestInfo": {"name": "x"}, "players": []}))

    with pytest.raises(ContestDataError, match="Malformed"):
        load_contest(path)


def test_non_positive_base_price_rejected(tmp_path, contest) -> None:
    data = contest.model_dump(by_alias=True)
    data["players"][0]["stocks"][0]["basePrice"] = 0
    path = tmp_path / "players.json"
    path.write_text(json.dumps(data))

    with pytest.raises(ContestDataError):
        load_contest(path, stocks_per_player=2)


def test_wrong_stock_count(contest) -> None:
    with pytest.raises(ContestDataError, match="expected 10"):
        validate_contest(contest, stocks_per_player=10)


def test_ticker_drafted_twice() -> None:
    contest = make_contest(
        [
            make_player("a", 1, [("AAPL", 1.0)]),
            make_player("b", 2, [("AAPL", 1.0)]),
        ]
    )

    with pytest.raises(ContestDataError, match="AAPL drafted by both a and b"):
        validate_contest(contest, stocks_per_player=1)


def test_shared_draft_position() -> None:
    contest = make_contest(
        [
            make_player("a", 1, [("AAPL", 1.0)]),
            make_player("b", 1, [("MSFT", 1.0)]),
        ]
    )

    with pytest.raises(ContestDataError, match="share draft position 1"):
        validate_contest(contest, stocks_per_player=1)


def test_draft_position_out_of_range() -> None:
    contest = make_contest([make_player("a", 3, [("AAPL", 1.0)])])

    with pytest.raises(ContestDataError, match="only 1 players"):
        validate_contest(contest, stocks_per_player=1)


def test_all_tickers_dedupes_in_order(players) -> None:
    extra = make_player("dave", 4, [("MSFT", 1.0), ("ZZZ", 2.0)])

    assert all_tickers(players + [extra])[-2:] == ["META", "ZZZ"]
