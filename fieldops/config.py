# fieldops/config.py
"""Runtime settings, read from FIELDOPS_* environment variables.

A ``.env`` file in the working directory is loaded first when present.
"""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

gen_folder = "gen"


def _default_db_url() -> str:
    db_path = os.path.abspath(os.path.join(gen_folder, "fieldops.db"))
    return f"sqlite:///{db_path}"


@dataclass
class Settings:
    database_url: str
    db_echo: bool = False
    log_level: str = "INFO"
    # $/hour used to turn labor hours into cost
    labor_rate: float = 65.0
    at_risk_threshold: float = 0.85
    # percent complete at which a cost code counts as essentially done
    completion_threshold: float = 98.0
    trend_window: int = 5
    trend_band: float = 0.03
    hours_per_worker_day: float = 8.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("FIELDOPS_DATABASE_URL") or _default_db_url(),
            db_echo=os.getenv("FIELDOPS_DB_ECHO", "false").lower() in ("1", "true", "yes"),
            log_level=os.getenv("FIELDOPS_LOG_LEVEL", "INFO").upper(),
            labor_rate=float(os.getenv("FIELDOPS_LABOR_RATE", "65")),
            at_risk_threshold=float(os.getenv("FIELDOPS_AT_RISK_THRESHOLD", "0.85")),
            completion_threshold=float(os.getenv("FIELDOPS_COMPLETION_THRESHOLD", "98")),
            trend_window=int(os.getenv("FIELDOPS_TREND_WINDOW", "5")),
            trend_band=float(os.getenv("FIELDOPS_TREND_BAND", "0.03")),
            hours_per_worker_day=float(os.getenv("FIELDOPS_HOURS_PER_WORKER_DAY", "8")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
