"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings

_WEAK_SECRETS = frozenset({
    "dev-secret-change-me-in-production",
    "secret",
    "changeme",
    "password",
    "jwt-secret",
})


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    # Database
    # SQLite keeps local development dependency-free; point this at Postgres in production
    database_url: str = "sqlite:///./chat_relay.db"

    # JWT Configuration
    # The session token is issued by the login service and carried in a cookie
    jwt_secret: str = "dev-secret-change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_cookie_name: str = "token"

    # Comma-separated list of allowed origins (empty uses default localhost list)
    allowed_origins: str = ""

    # Server ports
    gateway_port: int = 4000

    # Environment
    environment: str = "development"
    debug: bool = True

    # WebSocket heartbeat
    ws_heartbeat_interval: float = 5.0  # Seconds between liveness probes
    ws_heartbeat_death_timeout: float = 1.0  # Seconds to wait for the pong before reaping
    # Attachments travel inline as base64, so frames are much larger than plain chat
    ws_max_message_size: int = 16 * 1024 * 1024  # 16 MB

    # Attachments
    upload_dir: str = "./uploads"
    # False: blob write runs in the background and delivery does not wait for it.
    # True: the write must finish before the message is forwarded.
    relay_await_attachment_write: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def validate_production_secrets(self) -> list[str]:
        """
        List configuration problems that make a production deploy unsafe.
        An empty list means the settings are fine (always the case outside
        production).
        """
        if self.environment != "production":
            return []

        problems = []
        if self.jwt_secret.lower() in _WEAK_SECRETS or len(self.jwt_secret) < 32:
            problems.append("JWT_SECRET must be at least 32 characters and not a known default")
        if self.debug:
            problems.append("DEBUG must be off in production")
        if not self.allowed_origins.strip():
            problems.append("ALLOWED_ORIGINS must list the browser origins allowed to open /ws/chat")
        return problems


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()

# Direct access to commonly used settings
DATABASE_URL = settings.database_url
