import os
from dotenv import load_dotenv

from healthdash.schemas import SLEEP_COUNTING_MODES

load_dotenv()


def _int_list(raw: str) -> list[int]:
    return [int(part) for part in raw.split(",") if part.strip()]


def _counting_mode(raw: str) -> str:
    if raw not in SLEEP_COUNTING_MODES:
        raise ValueError(
            f"SLEEP_COUNTING_MODE must be one of {', '.join(SLEEP_COUNTING_MODES)}, got {raw!r}"
        )
    return raw


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./health_data.db")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    DEFAULT_SOURCE_ID: str = os.getenv("DEFAULT_SOURCE_ID", "withings")

    # Key-value persistence layout
    STORE_NAME: str = os.getenv("STORE_NAME", "healthData")
    STORE_KEY: str = os.getenv("STORE_KEY", "current")
    STORE_VERSION: int = int(os.getenv("STORE_VERSION", "2"))

    # 0 = Sunday ... 6 = Saturday
    DEFAULT_WEEKEND_DAYS: list[int] = _int_list(os.getenv("DEFAULT_WEEKEND_DAYS", "0,6"))
    SLEEP_COUNTING_MODE: str = _counting_mode(os.getenv("SLEEP_COUNTING_MODE", "average"))


settings = Settings()
