"""Application configuration"""

from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Proposal Pricing & Approval API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    # WHY: SQLite keeps local development dependency-free; production
    # deployments point this at PostgreSQL.
    DATABASE_URL: str = "sqlite+aiosqlite:///./proposals.db"

    # Pricing defaults
    DEFAULT_CURRENCY: str = "USD"
    DEFAULT_DISCOUNT_MODE: str = "percentage"
    MAX_PROPOSAL_TOTAL: Decimal = Decimal("1000000")
    MAX_VALIDITY_DAYS: int = 365

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
