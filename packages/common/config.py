"""
Application configuration using Pydantic Settings
Reads from environment variables and .env file
"""
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    db_user: str = Field(default="budget_admin", alias="DB_USER")
    db_password: str = Field(default="", alias="DB_PASSWORD")
    db_name: str = Field(default="budget", alias="DB_NAME")
    db_host: str = Field(default="postgres", alias="DB_HOST")
    db_port: int = Field(default=5432, alias="DB_PORT")

    @property
    def database_url(self) -> str:
        """Construct database URL"""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Redis / Celery
    celery_broker_url: str = Field(default="redis://redis:6379/1", alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(default="redis://redis:6379/2", alias="CELERY_RESULT_BACKEND")

    # Application
    environment: str = Field(default="production", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_mask_sensitive: Optional[bool] = Field(default=None, alias="LOG_MASK_SENSITIVE")

    # AI search collaborator (Anthropic)
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    ai_model: str = Field(default="claude-sonnet-4-5", alias="AI_MODEL")
    ai_max_tokens: int = Field(default=2000, alias="AI_MAX_TOKENS")
    ai_temperature: float = Field(default=0.0, alias="AI_TEMPERATURE")
    ai_input_cost_per_1k: Decimal = Field(default=Decimal("0.003"), alias="AI_INPUT_COST_PER_1K")
    ai_output_cost_per_1k: Decimal = Field(default=Decimal("0.015"), alias="AI_OUTPUT_COST_PER_1K")

    # Suggestion cache
    suggestion_cache_ttl_days: int = Field(default=30, ge=1, alias="SUGGESTION_CACHE_TTL_DAYS")

    # Search deadlines
    search_quick_timeout_seconds: float = Field(default=5.0, gt=0, alias="SEARCH_QUICK_TIMEOUT_SECONDS")
    search_full_timeout_seconds: float = Field(default=45.0, gt=0, alias="SEARCH_FULL_TIMEOUT_SECONDS")

    # Bulk analysis
    bulk_max_concurrency: int = Field(default=4, ge=1, alias="BULK_MAX_CONCURRENCY")

    # Cache janitor
    cache_janitor_interval_hours: int = Field(default=24, ge=1, alias="CACHE_JANITOR_INTERVAL_HOURS")
    cache_janitor_timeout_seconds: float = Field(default=30.0, gt=0, alias="CACHE_JANITOR_TIMEOUT_SECONDS")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def mask_sensitive_logs(self) -> bool:
        """Mask amounts and personal data in logs (defaults to on in production)"""
        if self.log_mask_sensitive is None:
            return self.is_production
        return self.log_mask_sensitive

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment"""
        valid_envs = ["development", "test", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT must be one of {valid_envs}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
