import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        secret_key: str,
        session_max_age_days: int,
        verify_max_age_hours: int,
        reset_max_age_hours: int,
        cookie_secure: bool,
        mail_backend: str,
        mail_sender: str,
        smtp_host: Optional[str],
        smtp_port: int,
    ) -> None:
        self.database_url = database_url
        self.secret_key = secret_key
        self.session_max_age_days = session_max_age_days
        self.verify_max_age_hours = verify_max_age_hours
        self.reset_max_age_hours = reset_max_age_hours
        self.cookie_secure = cookie_secure
        self.mail_backend = mail_backend
        self.mail_sender = mail_sender
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port

    @property
    def session_max_age_secs(self) -> int:
        return self.session_max_age_days * 24 * 3600


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
    secret_key = os.getenv(
        "FINANCE_SECRET_KEY",
        "6f1c2a9d0b8e47c3a5d4f2e1b0c9d8e7f6a5b4c3d2e1f0a9b8c7d6e5f4a3b2c1",
    )
    session_max_age_days = int(os.getenv("FINANCE_SESSION_MAX_AGE_DAYS", "7"))
    verify_max_age_hours = int(os.getenv("FINANCE_VERIFY_MAX_AGE_HOURS", "48"))
    reset_max_age_hours = int(os.getenv("FINANCE_RESET_MAX_AGE_HOURS", "2"))
    cookie_secure = _env_flag("FINANCE_COOKIE_SECURE", "true")
    mail_backend = os.getenv("FINANCE_MAIL_BACKEND", "log")
    mail_sender = os.getenv("FINANCE_MAIL_SENDER", "no-reply@localhost")
    smtp_host = os.getenv("FINANCE_SMTP_HOST")
    smtp_port = int(os.getenv("FINANCE_SMTP_PORT", "25"))
    return Settings(
        database_url=database_url,
        secret_key=secret_key,
        session_max_age_days=session_max_age_days,
        verify_max_age_hours=verify_max_age_hours,
        reset_max_age_hours=reset_max_age_hours,
        cookie_secure=cookie_secure,
        mail_backend=mail_backend,
        mail_sender=mail_sender,
        smtp_host=smtp_host,
        smtp_port=smtp_port,
    )
