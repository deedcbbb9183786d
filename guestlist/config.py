from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DB_PATH = Path(os.getenv("GUESTLIST_DB", "data/guestlist.db"))
DEFAULT_EMAIL_HOST = "smtp.gmail.com"
DEFAULT_EMAIL_PORT = 587


@dataclass(slots=True)
class EmailSettings:
    host: str
    port: int
    user: str | None
    password: str | None
    sender: str | None

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)


def get_database_url() -> str:
    """Return the SQLAlchemy database URL using the configured path."""

    db_path = DEFAULT_DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path}"


def get_store_backend() -> str:
    return os.getenv("GUESTLIST_STORE", "sql").strip().lower()


def get_baas_url() -> str | None:
    return os.getenv("GUESTLIST_BAAS_URL")


def get_baas_key() -> str | None:
    return os.getenv("GUESTLIST_BAAS_KEY")


def get_baas_service_key() -> str | None:
    """Return the elevated key used when the regular key is refused."""
    return os.getenv("GUESTLIST_BAAS_SERVICE_KEY")


def get_notify_url() -> str | None:
    """Return the notification server base URL, or None to send arrival emails in-process."""
    return os.getenv("GUESTLIST_NOTIFY_URL") or None


def get_notify_user() -> str | None:
    """Return the profile id sent as X-User-Id to the notification server."""
    return os.getenv("GUESTLIST_NOTIFY_USER") or None


def get_building_access_code() -> str | None:
    """Return the code new staff must quote to sign up, or None when sign-up is closed."""
    return os.getenv("GUESTLIST_ACCESS_CODE") or None


def get_log_level() -> str:
    return os.getenv("GUESTLIST_LOG_LEVEL", "INFO").upper()


def get_email_settings() -> EmailSettings:
    user = os.getenv("EMAIL_USER")
    return EmailSettings(
        host=os.getenv("EMAIL_HOST", DEFAULT_EMAIL_HOST),
        port=int(os.getenv("EMAIL_PORT", str(DEFAULT_EMAIL_PORT))),
        user=user,
        password=os.getenv("EMAIL_PASS") or os.getenv("EMAIL_PASSWORD"),
        sender=os.getenv("EMAIL_FROM") or user,
    )
