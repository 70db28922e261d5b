import math
import json
from pathlib import Path
from datetime import date
from typing import Union

from spendtracker.exceptions import SpendTrackerError, StorageError
from spendtracker.logger import get_logger
from spendtracker.logic import normalize_record
from spendtracker.models import transactions, Transaction

logger = get_logger(__name__)

SAVES_DIR = Path("saves")
FORMAT_VERSION = "2.0"


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, date):
            return obj.isoformat()
        return super().default(obj)


def list_save_files(saves_dir: Union[str, Path] = SAVES_DIR):
    saves_dir = Path(saves_dir)
    if not saves_dir.exists():
        return []
    return sorted(f.stem for f in saves_dir.glob("*.json"))


def save_data(save_name="default", saves_dir: Union[str, Path] = SAVES_DIR) -> bool:
    data = {
        "metadata": {
            "version": FORMAT_VERSION,
            "created": date.today().isoformat(),
            "transaction_count": len(transactions)
        },
        "transactions": [
            {
                "id": t.id,
                "amount": t.amount,
                "t_type": t.t_type,
                "t_date": t.t_date,
                "category": t.category,
                "desc": t.desc,
                "receipt": t.receipt
            } for t in transactions
        ]
    }

    try:
        saves_dir = Path(saves_dir)
        saves_dir.mkdir(parents=True, exist_ok=True)
        json_str = json.dumps(data, cls=EnhancedJSONEncoder, indent=2)
        save_path = saves_dir / f"{save_name}.json"
        save_path.write_text(json_str, encoding="utf-8")
        logger.info(f"Saved {len(transactions)} transactions to '{save_name}'")
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Error saving data to '{save_name}': {e}")
        return False


def _restore_date(value):
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        # keep the raw text; the aggregator decides what to do with it
        return value


def load_data(save_name="default", saves_dir: Union[str, Path] = SAVES_DIR) -> bool:
    filepath = Path(saves_dir) / f"{save_name}.json"
    if not filepath.exists():
        logger.warning(f"Save file '{save_name}' not found")
        return False

    try:
        data = json.loads(filepath.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error loading data from '{save_name}': {e}")
        return False

    if not isinstance(data, dict):
        logger.error(f"Error loading data from '{save_name}': expected a JSON object, got {type(data).__name__}")
        return False

    transactions.clear()
    for t_data in data.get("transactions", []):
        try:
            amount = float(t_data["amount"])
            if not math.isfinite(amount):
                raise ValueError(f"amount {amount} is not finite")
            transactions.append(Transaction(
                id=str(t_data["id"]),
                amount=amount,
                t_type=t_data["t_type"],
                t_date=_restore_date(t_data.get("t_date")),
                category=t_data.get("category") or "",
                desc=t_data.get("desc") or "",
                receipt=t_data.get("receipt")
            ))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping invalid transaction {t_data.get('id') if isinstance(t_data, dict) else t_data}: {e}")

    logger.info(f"Loaded {len(transactions)} transactions from '{save_name}'")
    return True


def import_records(path: Union[str, Path]) -> int:
    """Append records from a backend transactions export; returns how many were taken."""
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise StorageError(f"Cannot read export {path}: {e}")

    if isinstance(payload, dict):
        records = payload.get("transactions", [])
    else:
        records = payload
    if not isinstance(records, list):
        raise StorageError(f"Export {path} holds no transaction list")

    imported = 0
    for raw in records:
        try:
            transactions.append(normalize_record(raw))
            imported += 1
        except SpendTrackerError as e:
            logger.warning(f"Skipping record from {path.name}: {e}")

    logger.info(f"Imported {imported} of {len(records)} records from {path}")
    return imported
