import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

DB_PATH = os.getenv("DB_PATH", str(BASE_DIR / "timekeeper.sqlite3"))
TIMER_STATE_DIR = os.getenv("TIMER_STATE_DIR", str(BASE_DIR / "timer_state"))

SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DEFAULT_HOURLY_RATE = float(os.getenv("DEFAULT_HOURLY_RATE", "75"))
REFRESH_INTERVAL_SECONDS = int(os.getenv("REFRESH_INTERVAL_SECONDS", "30"))
TIMER_MAX_AGE_HOURS = int(os.getenv("TIMER_MAX_AGE_HOURS", "24"))
ONLINE_WINDOW_MINUTES = int(os.getenv("ONLINE_WINDOW_MINUTES", "5"))
