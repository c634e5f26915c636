import json
from datetime import date
from typing import Any, Dict, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from pixel_pal.config import Settings, settings as default_settings
from pixel_pal.core.errors import PersistenceFailure
from pixel_pal.data_access.dal import DataAccessLayer
from pixel_pal.infra import log_utils


class PostgresDal(DataAccessLayer):
    """
    A Data Access Layer implementation that uses a PostgreSQL database as the backend.
    This class fulfills the contract defined by the DataAccessLayer ABC.

    Engine records live in `engine_record`, one row per fixed key, with the
    schema version in its own column. Step samples live in `daily_summary`.
    """

    def __init__(self, config: Settings | None = None, conninfo: str | None = None):
        config = config or default_settings
        conninfo = conninfo or config.DATABASE_URL
        if not conninfo:
            raise ValueError("PostgresDal needs DATABASE_URL or explicit conninfo")
        # Small pool: the engine is a single-user process
        self.pool = ConnectionPool(
            conninfo=conninfo,
            min_size=1,
            max_size=3,
            kwargs={"row_factory": dict_row},
        )

    def close(self) -> None:
        self.pool.close()

    # --- Record Operations ---------------------------------------------------
    def load_record(self, key: str) -> Optional[Dict[str, Any]]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT schema_version, payload FROM engine_record WHERE record_key = %s;",
                    (key,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return {"schema_version": row["schema_version"], "data": payload}

    def save_record(self, key: str, record: Dict[str, Any]) -> None:
        log_utils.log_message(f"[PostgresDal] Saving record '{key}'")
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO engine_record (record_key, schema_version, payload, updated_at)
                        VALUES (%s, %s, %s, now())
                        ON CONFLICT (record_key) DO UPDATE SET
                            schema_version = EXCLUDED.schema_version,
                            payload = EXCLUDED.payload,
                            updated_at = EXCLUDED.updated_at;
                        """,
                        (key, record["schema_version"], Jsonb(record["data"])),
                    )
        except psycopg.Error as e:
            log_utils.log_message(f"[PostgresDal] Failed to save record '{key}': {e}", "ERROR")
            raise PersistenceFailure(f"Could not save record '{key}'") from e

    # --- Daily Step Summaries ------------------------------------------------
    def save_daily_summary(self, summary: Dict[str, Any], day: date) -> None:
        """Saves a daily summary to the daily_summary table."""
        log_utils.log_message(f"[PostgresDal] Saving daily summary for {day.isoformat()}")
        apple = summary.get("apple", {})
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO daily_summary ("date", steps, exercise_minutes, distance_m)
                        VALUES (%s, %s, %s, %s)
                        ON CONFLICT ("date") DO UPDATE SET
                            steps = EXCLUDED.steps,
                            exercise_minutes = EXCLUDED.exercise_minutes,
                            distance_m = EXCLUDED.distance_m;
                        """,
                        (
                            day,
                            apple.get("steps"),
                            apple.get("exercise_minutes"),
                            apple.get("distance_m"),
                        ),
                    )
        except psycopg.Error as e:
            log_utils.log_message(f"[PostgresDal] Failed to save summary for {day}: {e}", "ERROR")
            raise PersistenceFailure(f"Could not save daily summary for {day}") from e

    @staticmethod
    def _row_to_summary(row: Dict[str, Any]) -> Dict[str, Any]:
        day = row["date"].isoformat()
        return {
            "date": day,
            "apple": {
                "date": day,
                "steps": row["steps"],
                "exercise_minutes": row["exercise_minutes"],
                "distance_m": row["distance_m"],
            },
        }

    def get_daily_summary(self, target_date: date) -> Optional[Dict[str, Any]]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute('SELECT * FROM daily_summary WHERE "date" = %s;', (target_date,))
                row = cur.fetchone()
        return self._row_to_summary(row) if row else None

    def get_historical_data(self, start_date: date, end_date: date) -> List[Dict[str, Any]]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    'SELECT * FROM daily_summary WHERE "date" BETWEEN %s AND %s ORDER BY "date" ASC;',
                    (start_date, end_date),
                )
                rows = cur.fetchall()
        return [self._row_to_summary(r) for r in rows]
