from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration loaded from environment variables / .env file."""

    app_name: str = "Visitgate API"
    app_env: str = "development"
    app_port: int = 8000
    frontend_url: str = "http://localhost:3000"

    # Database (PostgreSQL in production or SQLite for local dev)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./visitgate_dev.db",
        alias="DATABASE_URL",
    )
    auto_create_schema: bool = Field(
        default=True, alias="AUTO_CREATE_SCHEMA",
    )  # create tables on startup; disable when running Alembic migrations

    # Verification tokens
    token_secret_key: str = Field(default="change-me", alias="TOKEN_SECRET_KEY")
    token_algorithm: str = Field(default="HS256", alias="TOKEN_ALGORITHM")
    token_validity_hours: int = Field(
        default=24, alias="TOKEN_VALIDITY_HOURS", ge=1,
    )  # applies to both tokens and pending pre-approvals
    token_mint_attempts: int = Field(default=3, alias="TOKEN_MINT_ATTEMPTS", ge=1)
    token_qr_box_size: int = Field(default=8, alias="TOKEN_QR_BOX_SIZE")

    # Pre-approvals
    pre_approval_max_usage: int = Field(default=1, alias="PRE_APPROVAL_MAX_USAGE", ge=1)

    # Notifications (fire-and-forget)
    notification_webhook_url: str | None = Field(
        default=None, alias="NOTIFICATION_WEBHOOK_URL",
    )
    notification_timeout: float = Field(default=5.0, alias="NOTIFICATION_TIMEOUT")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }

    @property
    def notifications_enabled(self) -> bool:
        """Webhook delivery is active only when a URL is configured."""
        return bool(self.notification_webhook_url)

settings = Settings()
