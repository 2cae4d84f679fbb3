from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "vokatra"
    POSTGRES_USER: str = "vokatra"
    POSTGRES_PASSWORD: str = "vokatra"
    # Full SQLAlchemy URL, takes precedence over the POSTGRES_* parts
    DATABASE_URL: Optional[str] = None

    STRIPE_SECRET_KEY: str = "sk_test_change-me"
    STRIPE_WEBHOOK_SECRET: str = "whsec_change-me"
    STRIPE_WEBHOOK_TOLERANCE: int = 300

    SITE_URL: str = "http://localhost:8888"
    STORE_NAME: str = "Projet VOKATRA"
    CURRENCY: str = "eur"
    CHECKOUT_SESSION_TTL_SECONDS: int = 1800
    DONATION_MIN_CENTS: int = 100
    # Acknowledge notifications with 200 even when processing failed
    WEBHOOK_ACK_ON_ERROR: bool = True

    SERVICE_NAME: str = "checkout-service"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

@lru_cache
def get_settings() -> Settings:
    return Settings()
