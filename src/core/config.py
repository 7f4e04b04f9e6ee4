from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    DATABASE_URL: str
    DB_POOL_TIMEOUT_SECONDS: float = 10.0
    STORAGE_TIMEOUT_SECONDS: float = 5.0  # Hard limit per engine statement

    # Security
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    AUTH_REQUIRED: bool = False  # Dev mode allows unauthenticated requests
    DEV_ACTOR_ID: str = "dev_user"
    DEV_ACTOR_ROLE: str = "staff"

    # Application
    ENVIRONMENT: str = "development"
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    API_VERSION: str = "v1"
    API_TITLE: str = "Housing Subsidy Workflow API"
    API_DESCRIPTION: str = "Application workflow engine for housing subsidy case management"

    # Features
    ENABLE_DOCS: bool = True
    ENABLE_REDOC: bool = True

    # SLA monitoring
    SLA_MONITOR_ENABLED: bool = True
    SLA_SCAN_INTERVAL_SECONDS: int = 30
    SLA_POLICY_OVERRIDES: dict[str, int] = {}  # state -> max dwell hours
    BOTTLENECK_THRESHOLD: int = 10  # applications in one state

    # Gates
    MIN_CONTROL_PHOTOS: int = 4

    # Logging
    LOG_LEVEL: str = "INFO"

    # Monitoring
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
