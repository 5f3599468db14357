"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from backend/ regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./leasehub.db"
    db_echo: bool = False
    db_pool_size: int = 5
    db_max_overflow: int = 10
    sqlite_busy_timeout_seconds: int = 30

    # Auth / JWT (tokens are issued by the auth service, verified here)
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # KPI cache
    redis_url: str = ""
    kpi_cache_ttl_seconds: int = 300
    kpi_response_rate_formula: str = "messages_over_invites"

    # Match scoring weights (must sum to 1.0)
    match_weight_location: float = 0.30
    match_weight_sqft: float = 0.25
    match_weight_price: float = 0.25
    match_weight_asset_type: float = 0.15
    match_weight_amenities: float = 0.05

    # Match scoring curve
    sqft_falloff: float = 1.0
    price_falloff: float = 1.0
    asset_type_partial_credit: float = 40.0
    same_state_score: float = 60.0
    neutral_score: float = 50.0

    # Realtime
    match_notification_top_n: int = 10
    realtime_pull_timeout_seconds: float = 5.0

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"
    frontend_url: str = "http://localhost:3000"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin (LAN IPs, etc.).
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
