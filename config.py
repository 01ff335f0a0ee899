import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        auth_secret: str,
        token_max_age_hours: int,
        log_level: str = "INFO",
        create_schema: bool = True,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.auth_secret = auth_secret
        self.token_max_age_hours = token_max_age_hours
        self.log_level = log_level
        self.create_schema = create_schema


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINTRACK_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "fintrack.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("FINTRACK_TIMEZONE", "UTC")
    auth_secret = os.getenv(
        "FINTRACK_AUTH_SECRET",
        "dev-secret-change-me",
    )
    token_max_age_hours = int(os.getenv("FINTRACK_TOKEN_MAX_AGE_HOURS", "168"))
    log_level = os.getenv("FINTRACK_LOG_LEVEL", "INFO").upper()
    create_schema = _env_flag("FINTRACK_CREATE_SCHEMA", "1")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        auth_secret=auth_secret,
        token_max_age_hours=token_max_age_hours,
        log_level=log_level,
        create_schema=create_schema,
    )
