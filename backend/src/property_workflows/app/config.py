"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from backend/ regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"

# Statutory eviction notice periods in days, keyed by NoticeReason value.
# Operators override per jurisdiction with NOTICE_PERIODS='{"non_payment": 14, ...}'.
DEFAULT_NOTICE_PERIODS: dict[str, int] = {
    "non_payment": 7,
    "lease_violation": 30,
    "property_damage": 14,
    "illegal_activity": 7,
    "end_of_lease": 30,
    "owner_occupation": 90,
}


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./property_workflows.db"

    # Workflow policy
    notice_periods: dict[str, int] = dict(DEFAULT_NOTICE_PERIODS)
    enforce_bid_cap: bool = False

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
