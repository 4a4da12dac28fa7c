import json

import pytest

from stockdraft.storage import (
    StaticPrices,
    load_current_prices,
    load_price_history,
    save_daily_close,
)


def test_missing_current_file_is_empty(tmp_path) -> None:
    prices = load_current_prices(tmp_path)

    assert prices.prices == {}
    assert prices.last_updated == ""


def test_corrupted_current_file_is_empty(tmp_path) -> None:
    (tmp_path / "current.json").write_text("{{{")

    assert load_current_prices(tmp_path).prices == {}


def test_save_writes_current_and_history(tmp_path) -> None:
    prices = StaticPrices(last_updated="2025-03-12T20:30:00Z", prices={"AAPL": 110.0})

    written = save_daily_close(prices, tmp_path, "2025-03-12")

    assert written
    current = json.loads((tmp_path / "current.json").read_text())
    assert current == {"lastUpdated": "2025-03-12T20:30:00Z", "prices": {"AAPL": 110.0}}
    assert (tmp_path / "history" / "2025-03-12.json").exists()
    assert load_current_prices(tmp_path) == prices


def test_history_written_once_per_day(tmp_path) -> None:
    first = StaticPrices(last_updated="a", prices={"AAPL": 110.0})
    second = StaticPrices(last_updated="b", prices={"AAPL": 112.0})

    assert save_daily_close(first, tmp_path, "2025-03-12")
    assert not save_daily_close(second, tmp_path, "2025-03-12")

    history = json.loads((tmp_path / "history" / "2025-03-12.json").read_text())
    assert history["prices"]["AAPL"] == 110.0
    assert load_current_prices(tmp_path).prices["AAPL"] == 112.0


def test_bad_date_rejected(tmp_path) -> None:
    with pytest.raises(ValueError):
        save_daily_close(StaticPrices(), tmp_path, "03/12/2025")


def test_no_temp_files_left_behind(tmp_path) -> None:
    save_daily_close(StaticPrices(prices={"A": 1.0}), tmp_path, "2025-03-12")

    assert sorted(p.name for p in tmp_path.iterdir()) == ["current.json", "history"]


def test_history_sorted_and_filtered(tmp_path) -> None:
    save_daily_close(StaticPrices(prices={"A": 2.0}), tmp_path, "2025-03-11")
    save_daily_close(StaticPrices(prices={"A": 1.0}), tmp_path, "2025-03-10")
    (tmp_path / "history" / "notes.json").write_text("{}")
    (tmp_path / "history" / "2025-03-12.json").write_text("broken")

    history = load_price_history(tmp_path)

    assert [date for date, _ in history] == ["2025-03-10", "2025-03-11"]
    assert history[1][1].prices == {"A": 2.0}


def test_history_missing_dir(tmp_path) -> None:
    assert load_price_history(tmp_path) == []
