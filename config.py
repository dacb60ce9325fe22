"""
Central configuration for the Draw Results API.
Values are read once from the environment (a local .env file is loaded
first) and handed to components by the application factory.
"""
import os

from dotenv import load_dotenv

load_dotenv(override=False)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


# ── MongoDB ────────────────────────────────────────────────────────
MONGO_URI = os.getenv("MONGODB_URI", os.getenv("MONGO_URI", "mongodb://localhost:27017"))
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "draw_results")

# Collection names (kept compatible with the documents already in production)
COLLECTION_CATEGORY_KEYS = "categorykeys"
COLLECTION_RESULTS = "results"
COLLECTION_RESULTS_FLAT = "resultscrappers"
COLLECTION_USERS = "batting-users"

# ── Cache ──────────────────────────────────────────────────────────
# Empty REDIS_URL selects the in-process TTL cache.
REDIS_URL = os.getenv("REDIS_URL", "")
RESULT_CACHE_TTL = _env_int("RESULT_CACHE_TTL", 50)
FLAT_UPLOAD_CACHE_TTL = _env_int("FLAT_UPLOAD_CACHE_TTL", 120)
CATEGORY_CACHE_TTL = _env_int("CATEGORY_CACHE_TTL", 50)
MEMORY_CACHE_MAX_SIZE = _env_int("MEMORY_CACHE_MAX_SIZE", 2048)

# ── Categories ─────────────────────────────────────────────────────
KNOWN_CATEGORY_KEYS = (
    "md-del-9281",
    "md-mum-3745",
    "md-kol-5619",
    "md-hyd-8120",
    "shr-2318",
    "4min-4932",
    "ggn-7801",
    "kly-6663",
    "fbd-1577",
    "dsw-4492",
    "gzb-6208",
    "gli-3094",
    "md-9281",
)

# The manual upload path matches category names exactly, the scraper
# upload path ignores case. Both are switchable.
GROUPED_CATEGORY_CASE_INSENSITIVE = _env_bool("GROUPED_CATEGORY_CASE_INSENSITIVE", False)
FLAT_CATEGORY_CASE_INSENSITIVE = _env_bool("FLAT_CATEGORY_CASE_INSENSITIVE", True)

# ── Auth ───────────────────────────────────────────────────────────
JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_EXPIRY_HOURS = _env_int("JWT_EXPIRY_HOURS", 24)
OTP_TTL_MINUTES = _env_int("OTP_TTL_MINUTES", 10)

# ── Mail ───────────────────────────────────────────────────────────
MAIL_BACKEND = os.getenv("MAIL_BACKEND", "smtp").strip().lower()
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = _env_int("SMTP_PORT", 587)
MAIL_USER = os.getenv("MAIL_USER", "")
MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
MAIL_FROM = os.getenv("MAIL_FROM", MAIL_USER)

# ── App version gate ───────────────────────────────────────────────
MINIMUM_REQUIRED_VERSION = os.getenv("MINIMUM_REQUIRED_VERSION", "2.0.0")
LATEST_VERSION = os.getenv("LATEST_VERSION", "2.0.0")
# Only an explicit "false" disables forced updates.
FORCE_UPDATE = os.getenv("FORCE_UPDATE", "true").strip().lower() != "false"
APK_URL = os.getenv("APK_URL", "https://mydomain.com/app-v2.apk")

# ── Auto submit ────────────────────────────────────────────────────
AUTO_SUBMIT_ENABLED = _env_bool("AUTO_SUBMIT_ENABLED", False)
AUTO_SUBMIT_BASE_URL = os.getenv("AUTO_SUBMIT_BASE_URL", "http://localhost:5000/api")
AUTO_SUBMIT_CATEGORY = os.getenv("AUTO_SUBMIT_CATEGORY", "Minidiswar")
AUTO_SUBMIT_KEY = os.getenv("AUTO_SUBMIT_KEY", "md-9281")

# ── Flask ──────────────────────────────────────────────────────────
FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
FLASK_PORT = _env_int("PORT", 5000)
FLASK_DEBUG = _env_bool("FLASK_DEBUG", False)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
