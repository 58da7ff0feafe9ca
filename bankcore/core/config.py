"""
Configuration settings for the banking core.
Loads environment variables and provides application settings.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # Database
    DATABASE_URL: str = "sqlite:///./bankcore.db"
    DATABASE_ECHO: bool = False

    # Security
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    SIMPLE_PASSWORD_MAX_ATTEMPTS: int = 5
    SIMPLE_PASSWORD_BCRYPT_ROUNDS: int = 12
    SIMPLE_PASSWORD_UNLOCK_ATTEMPT_LIMIT: int = 10
    PROVISIONING_API_KEY: str = "change-me-provisioning"

    # API
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Bank Core Service"
    VERSION: str = "1.0.0"
    DESCRIPTION: str = "Ledger, transfers, QR payments and scheduled transfers"
    LOG_LEVEL: str = "INFO"

    # Concurrency
    LOCK_TIMEOUT_SECONDS: float = 5.0
    IDEMPOTENCY_TTL_HOURS: int = 24
    IDEMPOTENCY_LEASE_SECONDS: int = 300

    # Business limits (KRW, no subunits)
    MIN_TRANSFER_AMOUNT: int = 100
    MIN_QR_AMOUNT: int = 100
    MIN_SELF_DEPOSIT_AMOUNT: int = 1000
    MAX_SCHEDULED_TRANSFER_AMOUNT: int = 1_000_000
    MAX_AMOUNT: int = 1_000_000_000_000
    QR_EXPIRY_MINUTES: int = 10
    SCHEDULE_MIN_LEAD_SECONDS: int = 60
    SCHEDULE_MAX_LEAD_DAYS: int = 365

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_INTERVAL_SECONDS: int = 30
    SCHEDULER_BATCH_SIZE: int = 100
    SCHEDULER_CLAIM_TIMEOUT_SECONDS: int = 300

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create global settings instance
settings = Settings()
