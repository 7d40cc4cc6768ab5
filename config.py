import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_cookie: str,
        session_max_age_hours: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_cookie = session_cookie
        self.session_max_age_hours = session_max_age_hours


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("EXPENSES_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "expenses.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("EXPENSES_TIMEZONE", "Europe/Berlin")
    session_secret = os.getenv(
        "EXPENSES_SESSION_SECRET",
        "4f1d2c9b7a3e8f60d5b1c2a9e7f3d4b8a6c0e2f19d7b5a3c1e8f6d4b2a0c9e7f",
    )
    session_cookie = os.getenv("EXPENSES_SESSION_COOKIE", "expenses_session")
    session_max_age_hours = int(os.getenv("EXPENSES_SESSION_MAX_AGE_HOURS", "720"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_cookie=session_cookie,
        session_max_age_hours=session_max_age_hours,
    )
