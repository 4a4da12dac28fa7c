"""Daily close price files with atomic writes.

Layout under the data directory:
- current.json: most recent close, the default fallback for every read
- history/YYYY-MM-DD.json: one immutable file per trading day
"""

import json
import logging
import re
import shutil
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

CURRENT_FILE = "current.json"
HISTORY_DIR = "history"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class StaticPrices(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    last_updated: str = ""
    prices: dict[str, float] = Field(default_factory=dict)


def _write_json_atomic(path: Path, payload: dict) -> None:
    """Write JSON via tempfile -> rename so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            delete=False,
            suffix=".json",
            encoding="utf-8",
        ) as temp_file:
            json.dump(payload, temp_file, indent=2)
            temp_path = Path(temp_file.name)

        shutil.move(str(temp_path), str(path))
        logger.debug(f"Wrote {path}")

    except Exception as e:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to write {path}: {e}")
        raise


def _read_prices(path: Path) -> StaticPrices:
    with open(path, "r", encoding="utf-8") as f:
        return StaticPrices.model_validate(json.load(f))


def load_current_prices(data_dir: Path) -> StaticPrices:
    """Load the most recent close. Missing or unreadable file yields an empty set."""
    path = data_dir / CURRENT_FILE

    if not path.exists():
        logger.info(f"Price file not found: {path}. Returning empty prices.")
        return StaticPrices()

    try:
        return _read_prices(path)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Corrupted price file {path}: {e}")
        return StaticPrices()


def load_price_history(data_dir: Path) -> list[tuple[str, StaticPrices]]:
    """All daily close files, oldest first."""
    history_dir = data_dir / HISTORY_DIR
    if not history_dir.exists():
        return []

    history: list[tuple[str, StaticPrices]] = []
    for path in sorted(history_dir.glob("*.json")):
        if not _DATE_RE.match(path.stem):
            continue
        try:
            history.append((path.stem, _read_prices(path)))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Skipping unreadable history file {path}: {e}")
    return history


def save_daily_close(prices: StaticPrices, data_dir: Path, date: str) -> bool:
    """Write current.json and, if not already present, history/<date>.json.

    Returns True if a new history file was written.
    """
    if not _DATE_RE.match(date):
        raise ValueError(f"Date must be YYYY-MM-DD, got {date!r}")

    payload = prices.model_dump(by_alias=True)
    _write_json_atomic(data_dir / CURRENT_FILE, payload)

    history_path = data_dir / HISTORY_DIR / f"{date}.json"
    if history_path.exists():
        logger.info(f"History for {date} already recorded, leaving {history_path} as is")
        return False

    _write_json_atomic(history_path, payload)
    logger.info(f"History saved to: {history_path}")
    return True
