# backend/refill_pos/config.py
from __future__ import annotations
import os


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/refill_pos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///refill_pos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for GET /api/sales?limit=
    SALE_LIST_MAX = int(os.environ.get("SALE_LIST_MAX", "500"))


class RegisterConfig:
    """
    Settings for one register (the offline-capable client side).

    Read from the environment at construction time so tests can build
    instances with explicit overrides.
    """

    def __init__(self, **overrides):
        self.server_url = os.environ.get("REFILL_POS_SERVER_URL", "http://127.0.0.1:5000")
        self.state_db = os.environ.get("REFILL_POS_STATE_DB", "sqlite:///register_state.sqlite3")
        self.http_timeout = _env_float("REFILL_POS_HTTP_TIMEOUT", 10.0)
        delays = os.environ.get("REFILL_POS_RETRY_DELAYS", "1,2,4")
        self.retry_delays = tuple(float(d) for d in delays.split(",") if d.strip())
        self.sale_history_limit = int(os.environ.get("REFILL_POS_SALE_HISTORY_LIMIT", "100"))
        self.daily_target = _env_float("REFILL_POS_DAILY_TARGET", 0.0)

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise TypeError(f"Unknown register setting: {key}")
            setattr(self, key, value)
