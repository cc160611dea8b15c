"""
Device-side progress record

One JSON document (ProgressState minus transient fields) read once at
start and overwritten on every mutation. Reads and writes are best-effort:
a missing or corrupt record means zeroed defaults, a failed write is logged.
"""
import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from sfi_progress.schemas import ProgressState, TRANSIENT_FIELDS

logger = logging.getLogger(__name__)

STORAGE_KEY = "sfi_progress"


class LocalProgressStorage:
    """JSON file storage for the local progress cache"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def load(self) -> Optional[ProgressState]:
        """Read the stored record, or None when absent or unreadable"""
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read progress record {self.path}: {str(e)}")
            return None

        # Accept both the bare record and one wrapped under the storage key
        if isinstance(data, dict) and isinstance(data.get(STORAGE_KEY), dict):
            data = data[STORAGE_KEY]

        try:
            state = ProgressState.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Malformed progress record {self.path}, using defaults: {e.error_count()} errors")
            return None

        # userId is never restored from the device
        return state.model_copy(update={"userId": None})

    def save(self, state: ProgressState) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = state.model_dump(mode="json", exclude=TRANSIENT_FIELDS)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            tmp_path.replace(self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to persist progress to {self.path}: {str(e)}")
            return False

