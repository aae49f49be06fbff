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

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./medbook.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# "log" writes notifications to the application log, "ses" sends them through AWS SES.
NOTIFY_BACKEND = os.getenv("NOTIFY_BACKEND", "log").strip().lower()
NOTIFY_SENDER = os.getenv("NOTIFY_SENDER", "")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")

MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "500"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if NOTIFY_BACKEND not in {"log", "ses"}:
        raise RuntimeError(f"Unsupported NOTIFY_BACKEND: {NOTIFY_BACKEND!r}.")
    if NOTIFY_BACKEND == "ses" and not NOTIFY_SENDER:
        raise RuntimeError("NOTIFY_SENDER must be set when NOTIFY_BACKEND is 'ses'.")
