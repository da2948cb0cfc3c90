"""
Configuration settings for the application
"""
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Single supported billing plan
PLAN_MONTHLY = "monthly"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # Core authentication and security
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")
    jwt_expire_minutes: int = Field(default=50, alias="JWT_EXPIRE_MINUTES")

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./sql_app.db", alias="DATABASE_URL")
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    rate_limit_per_minute: int = Field(default=30, alias="RATE_LIMIT_PER_MINUTE")

    # Frontend / CORS configuration
    frontend_url: Optional[str] = Field(default="http://127.0.0.1:5500", alias="FRONTEND_URL")
    cors_origins: Optional[str] = Field(default=None, alias="CORS_ORIGINS")

    # Email delivery (Resend)
    resend_api_key: Optional[str] = Field(default=None, alias="RESEND_API_KEY")
    from_email: str = Field(default="Assignly <no-reply@assignly.app>", alias="FROM_EMAIL")
    verification_code_minutes: int = Field(default=10, alias="VERIFICATION_CODE_MINUTES")

    # Access gating and billing policy
    max_trials: int = Field(default=7, alias="MAX_TRIALS")
    subscription_days: int = Field(default=30, alias="SUBSCRIPTION_DAYS")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")
    log_dir: str = Field(default="./logs", alias="LOG_DIR")

    def allowed_origins(self) -> List[str]:
        """Origins allowed by CORS: FRONTEND_URL plus any comma-separated CORS_ORIGINS."""
        origins = []
        if self.frontend_url:
            origins.append(self.frontend_url)
        if self.cors_origins:
            origins.extend(o.strip() for o in self.cors_origins.split(",") if o.strip())
        return origins


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.env and settings.env.lower() == "production")

LOGS_DIR = Path(settings.log_dir)
