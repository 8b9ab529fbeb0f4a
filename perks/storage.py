import json
import logging
import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from .models import Card, Perk


logger = logging.getLogger(__name__)

DATA_DIR = Path(os.environ.get("PERKS_DATA_DIR", "data"))
SNAPSHOT_VERSION = "1.0"
SNAPSHOT_FIELDS = ("cards", "perks", "usage")

CARDS_KEY = "cards"
PERKS_KEY = "perks"
USAGE_KEY = "usage"
FILE_ID_KEY = "gdrive_file_id"
AUTO_SYNC_KEY = "auto_sync"


class SnapshotFormatError(ValueError):
    pass


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        if isinstance(obj, (Card, Perk)):
            return obj.to_dict()
        return super().default(obj)


class JsonFileStore:
    """Flat key-value store: one JSON file per named record.

    Records are read whole and overwritten whole. A record that is missing or
    cannot be read behaves like an empty one.
    """

    def __init__(self, directory=DATA_DIR):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Error loading record '%s': %s", key, e)
            return default

    def save(self, key: str, data: Any) -> bool:
        try:
            json_str = json.dumps(data, cls=EnhancedJSONEncoder, indent=2)
            self._path(key).write_text(json_str, encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            logger.error("Error saving record '%s': %s", key, e)
            return False
        logger.debug("Saved record '%s'", key)
        return True

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Error removing record '%s': %s", key, e)

    def clear(self) -> None:
        for path in self.directory.glob("*.json"):
            self.remove(path.stem)


def load_cards(raw) -> list[Card]:
    """Build cards from a stored record, skipping entries that do not parse."""
    cards = []
    for c_data in raw if isinstance(raw, list) else []:
        try:
            cards.append(Card.from_dict(c_data))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Skipping invalid card %r: %s", c_data, e)
    return cards


def load_perks(raw) -> list[Perk]:
    perks = []
    for p_data in raw if isinstance(raw, list) else []:
        try:
            perks.append(Perk.from_dict(p_data))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Skipping invalid perk %r: %s", p_data, e)
    return perks


def load_usage(raw) -> dict[str, int]:
    usage = {}
    for key, count in (raw.items() if isinstance(raw, dict) else []):
        try:
            usage[str(key)] = int(count)
        except (TypeError, ValueError) as e:
            logger.warning("Skipping invalid usage entry %r: %s", key, e)
    return usage


def make_snapshot(cards: list[Card], perks: list[Perk], usage: dict[str, int]) -> dict:
    return {
        "cards": [c.to_dict() for c in cards],
        "perks": [p.to_dict() for p in perks],
        "usage": dict(usage),
        "exportDate": datetime.now(timezone.utc).isoformat(),
        "version": SNAPSHOT_VERSION,
    }


def parse_snapshot(data) -> tuple[list[Card], list[Perk], dict[str, int]]:
    """
    Validate a snapshot document and build its entities.
    Raises SnapshotFormatError without side effects if anything is off.
    """
    if not isinstance(data, dict):
        raise SnapshotFormatError("Invalid backup file format")
    missing = [f for f in SNAPSHOT_FIELDS if data.get(f) is None]
    if missing:
        raise SnapshotFormatError(f"Invalid backup file format: missing {', '.join(missing)}")
    if not isinstance(data["cards"], list) or not isinstance(data["perks"], list):
        raise SnapshotFormatError("Invalid backup file format: cards and perks must be lists")
    if not isinstance(data["usage"], dict):
        raise SnapshotFormatError("Invalid backup file format: usage must be a mapping")

    try:
        cards = [Card.from_dict(c) for c in data["cards"]]
        perks = [Perk.from_dict(p) for p in data["perks"]]
        usage = {str(k): int(v) for k, v in data["usage"].items()}
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise SnapshotFormatError(f"Invalid backup file format: {e}") from e

    if any(v < 0 for v in usage.values()):
        raise SnapshotFormatError("Invalid backup file format: negative usage count")
    return cards, perks, usage


def backup_file_name(on: date | None = None) -> str:
    on = on or date.today()
    return f"credit-card-perks-backup-{on.isoformat()}.json"


def export_snapshot_file(snapshot: dict, directory=".") -> Path:
    path = Path(directory) / backup_file_name()
    path.write_text(json.dumps(snapshot, cls=EnhancedJSONEncoder, indent=2), encoding="utf-8")
    logger.info("Exported snapshot to %s", path)
    return path


def read_snapshot_file(path) -> dict:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except ValueError as e:
        raise SnapshotFormatError(f"Invalid JSON: {e}") from e
