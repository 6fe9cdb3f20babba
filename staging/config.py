"""
Runtime settings read from the environment (and an optional .env file).
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./staging.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

# Used when neither the match nor its stage carries a time limit
DEFAULT_MATCH_DURATION_MINUTES = _int_env("DEFAULT_MATCH_DURATION_MINUTES", 90)
UPCOMING_WINDOW_MINUTES = _int_env("UPCOMING_WINDOW_MINUTES", 30)
NEXT_MATCHES_LIMIT = _int_env("NEXT_MATCHES_LIMIT", 5)
# Strategy used by auto-schedule when the caller names none and the
# tournament has never been ordered
DEFAULT_ORDERING_STRATEGY = os.getenv("DEFAULT_ORDERING_STRATEGY", "court_efficient")
