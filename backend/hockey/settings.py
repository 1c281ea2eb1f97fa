"""
Runtime configuration.

Values come from the environment (optionally a .env file). Read once at import;
tests override individual attributes with monkeypatch.
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hockey.db")
SQL_ECHO = _flag("SQL_ECHO", "false")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

# Per-tournament / per-parent mutual exclusion
LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS", "10"))

# Waitlist payment window. Assigning deadlines and enforcing them are separate switches:
# deadlines are stamped on promotion, the sweep only cancels when enforcement is on.
PAYMENT_DEADLINE_HOURS = float(os.getenv("PAYMENT_DEADLINE_HOURS", "2"))
PAYMENT_DEADLINES_ENABLED = _flag("PAYMENT_DEADLINES_ENABLED", "true")
PAYMENT_DEADLINE_ENFORCED = _flag("PAYMENT_DEADLINE_ENFORCED", "false")

# Background maintenance
BACKGROUND_TASKS_ENABLED = _flag("BACKGROUND_TASKS_ENABLED", "true")
WAITLIST_SWEEP_MINUTES = float(os.getenv("WAITLIST_SWEEP_MINUTES", "15"))
REMINDER_INTERVAL_MINUTES = float(os.getenv("REMINDER_INTERVAL_MINUTES", "15"))
NOTIFICATION_CLEANUP_HOURS = float(os.getenv("NOTIFICATION_CLEANUP_HOURS", "24"))
NOTIFICATION_RETENTION_DAYS = int(os.getenv("NOTIFICATION_RETENTION_DAYS", "30"))
PLAYER_REMINDER_HOURS = float(os.getenv("PLAYER_REMINDER_HOURS", "1"))
ORGANIZER_PAYMENT_REMINDER_HOURS = float(os.getenv("ORGANIZER_PAYMENT_REMINDER_HOURS", "5"))

# Expo push delivery
PUSH_ENABLED = _flag("PUSH_ENABLED", "false")
EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
EXPO_ACCESS_TOKEN = os.getenv("EXPO_ACCESS_TOKEN", "")
PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", "5"))
