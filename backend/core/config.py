import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./medical_network.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Wall clock used for "now" and "today"; unset means host local time.
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE") or None

MIN_SLOT_DURATION_MINUTES = 10
MAX_SLOT_DURATION_MINUTES = 120
MAX_TEXT_FIELD_LENGTH = int(os.getenv("MAX_TEXT_FIELD_LENGTH", "2000"))

AUTO_CONFIRM_APPOINTMENTS = _get_bool(os.getenv("AUTO_CONFIRM_APPOINTMENTS"), default=True)

# Zero or negative means the suspension has no end date.
PENALTY_SUSPENSION_DAYS = int(os.getenv("PENALTY_SUSPENSION_DAYS", "30"))
# Zero disables penalties for late cancellations by affiliates.
LATE_CANCELLATION_WINDOW_HOURS = int(os.getenv("LATE_CANCELLATION_WINDOW_HOURS", "0"))

NOTIFICATION_FEED_SIZE = 20


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
