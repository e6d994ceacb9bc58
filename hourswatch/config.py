# hourswatch/config.py
from dotenv import load_dotenv
import os

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# API Keys
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")

# URLs
PLACES_URL = os.getenv("PLACES_URL", "https://places.googleapis.com/v1/places")
ALERT_WEBHOOK_URL = os.getenv("ALERT_WEBHOOK_URL")

# Remote directory
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "15"))  # seconds
REQUEST_INTERVAL_SECONDS = float(os.getenv("REQUEST_INTERVAL_SECONDS", "1.0"))
CONCURRENCY = int(os.getenv("CONCURRENCY", "10"))

# Freshness (two independent thresholds)
SYNC_STALE_THRESHOLD_HOURS = float(os.getenv("SYNC_STALE_THRESHOLD_HOURS", "24"))
UI_STALE_THRESHOLD_DAYS = float(os.getenv("UI_STALE_THRESHOLD_DAYS", "7"))
CLOSING_SOON_MINUTES = int(os.getenv("CLOSING_SOON_MINUTES", "60"))

# Background refresh
REFRESH_INTERVAL_HOURS = float(os.getenv("REFRESH_INTERVAL_HOURS", "24"))
BACKGROUND_REFRESH_ENABLED = _env_bool("BACKGROUND_REFRESH_ENABLED", True)
BACKGROUND_RUN_BUDGET_SECONDS = float(os.getenv("BACKGROUND_RUN_BUDGET_SECONDS", "30"))

# Dashboard ordering ("LAT,LON")
HOME_LOCATION = os.getenv("HOME_LOCATION")

# Notifications
NOTIFICATIONS_ENABLED = _env_bool("NOTIFICATIONS_ENABLED", True)

# Runtime parameters
FUZZY_THRESHOLD = 50
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# File names
RECORDS_PATH = os.getenv("RECORDS_PATH", "records.json")
INPUT_CSV = "businesses.csv"
OUTPUT_CSV = "refresh_results.csv"
