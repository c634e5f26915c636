"""JSON file-based implementation of the Data Access Layer."""

from __future__ import annotations

import json
import os
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from pixel_pal.config import Settings, settings as default_settings
from pixel_pal.core.errors import PersistenceFailure
from pixel_pal.infra import log_utils
from .dal import DataAccessLayer


class JsonDal(DataAccessLayer):
    """Data Access Layer that persists data to JSON files on disk."""

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _write_json(self, path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename so a crash never leaves a half-written record
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, path)

    # --- Record Operations ---------------------------------------------------
    def _record_path(self, key: str) -> Path:
        return self.config.state_path / f"{key}.json"

    def load_record(self, key: str) -> Optional[Dict[str, Any]]:
        return self._read_json(self._record_path(key))

    def save_record(self, key: str, record: Dict[str, Any]) -> None:
        try:
            self._write_json(self._record_path(key), record)
        except OSError as e:
            log_utils.log_message(f"[JsonDal] Failed to save record '{key}': {e}", "ERROR")
            raise PersistenceFailure(f"Could not save record '{key}'") from e

    # --- Daily Step Summaries ------------------------------------------------
    def _daily_path(self, day: date) -> Path:
        return self.config.daily_steps_path / f"{day.isoformat()}.json"

    def save_daily_summary(self, summary: Dict[str, Any], day: date) -> None:
        try:
            self._write_json(self._daily_path(day), summary)
        except OSError as e:
            log_utils.log_message(f"[JsonDal] Failed to save summary for {day}: {e}", "ERROR")
            raise PersistenceFailure(f"Could not save daily summary for {day}") from e

    def get_daily_summary(self, target_date: date) -> Optional[Dict[str, Any]]:
        return self._read_json(self._daily_path(target_date))

    def get_historical_data(self, start_date: date, end_date: date) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        current = start_date
        while current <= end_date:
            summary = self.get_daily_summary(current)
            if summary is not None:
                out.append(summary)
            current += timedelta(days=1)
        return out
