"""Runtime settings, read once from the environment."""
import os

# Use PostgreSQL in production (from DATABASE_URL env var), SQLite locally
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./retakes.db")

# Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

LOG_LEVEL = os.getenv("RETAKE_LOG_LEVEL", "INFO").upper()

MAX_RECENT_HISTORY_LIMIT = 200


def bounded_history_limit(raw: str) -> int:
    """Parse the default feed size, clamped to 1..MAX_RECENT_HISTORY_LIMIT."""
    return max(1, min(int(raw), MAX_RECENT_HISTORY_LIMIT))


RECENT_HISTORY_LIMIT = bounded_history_limit(os.getenv("RETAKE_RECENT_HISTORY_LIMIT", "50"))

SEED_MANAGEMENT_STATUSES = os.getenv("RETAKE_SEED_MANAGEMENT_STATUSES", "true").lower() in (
    "1",
    "true",
    "yes",
)
