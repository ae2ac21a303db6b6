"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    APP_NAME: str = "Flowline Workflow Engine"
    APP_VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./flowline.db"
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis Settings (Celery broker + result backend)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Security Settings
    # Tokens are issued by the hosted auth provider and signed with this key
    SECRET_KEY: str = ""
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # Claude AI Settings
    ANTHROPIC_API_KEY: str = ""
    CLAUDE_MODEL: str = "claude-sonnet-4-5-20250929"
    CLAUDE_MAX_TOKENS: int = 2048
    CLAUDE_TEMPERATURE: float = 0.3
    CLAUDE_TIMEOUT: int = 60
    CLAUDE_SYSTEM_PROMPT: str = (
        "You are an assistant embedded in a workflow automation engine. "
        "Answer precisely and only with the requested content."
    )

    # Email (SMTP) Settings
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_FROM_EMAIL: str = "workflows@flowline.local"
    SMTP_TIMEOUT: int = 20

    # Slack Settings
    SLACK_BOT_TOKEN: str = ""
    SLACK_API_URL: str = "https://slack.com/api"
    SLACK_TIMEOUT: int = 15

    # Workflow execution
    STEP_TIMEOUT_SECONDS: int = 60
    WEBHOOK_BASE_URL: str = "http://localhost:8000"
    SCHEDULE_WINDOW_MINUTES: int = 5
    SCHEDULE_POLL_SECONDS: int = 60
    # Longest a tick waits for its runs; stragglers are cancelled and marked failed
    SCHEDULE_DRAIN_SECONDS: int = 240

    # Rate limits, requests per minute per caller address (0 disables a group)
    RATE_LIMIT_WEBHOOK_PER_MINUTE: int = 60
    RATE_LIMIT_WRITE_PER_MINUTE: int = 120
    RATE_LIMIT_READ_PER_MINUTE: int = 600

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    def validate_secrets(self) -> None:
        """Validate that critical secrets are set in production.

        Raises:
            RuntimeError: If production environment has an empty SECRET_KEY
        """
        if self.is_production and not self.SECRET_KEY:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY environment variable must be set in production. "
                "Do not use default values."
            )

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
