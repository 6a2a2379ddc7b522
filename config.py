import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        session_hours: int,
        max_login_attempts: int,
        lockout_minutes: int,
        notification_retention_days: int,
        scheduler_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.session_hours = session_hours
        self.max_login_attempts = max_login_attempts
        self.lockout_minutes = lockout_minutes
        self.notification_retention_days = notification_retention_days
        self.scheduler_enabled = scheduler_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "America/Sao_Paulo")
    secret_key = os.getenv(
        "FINANCE_SECRET_KEY",
        "3f9c2d7e81b64a05c9e1f27d4b8a6c30e5d71f9a2b4c6e8d0f1a3b5c7d9e2f40",
    )
    session_hours = int(os.getenv("FINANCE_SESSION_HOURS", "24"))
    max_login_attempts = int(os.getenv("FINANCE_MAX_LOGIN_ATTEMPTS", "5"))
    lockout_minutes = int(os.getenv("FINANCE_LOCKOUT_MINUTES", "15"))
    notification_retention_days = int(
        os.getenv("FINANCE_NOTIFICATION_RETENTION_DAYS", "30")
    )
    scheduler_enabled = _env_flag("FINANCE_SCHEDULER_ENABLED", "true")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        session_hours=session_hours,
        max_login_attempts=max_login_attempts,
        lockout_minutes=lockout_minutes,
        notification_retention_days=notification_retention_days,
        scheduler_enabled=scheduler_enabled,
    )
