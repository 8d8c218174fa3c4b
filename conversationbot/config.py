"""Application configuration."""
import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


def _default_storage_file() -> str:
    """Use the /data volume when it is mounted, the working directory otherwise."""
    if os.path.isdir("/data"):
        return "/data/conversationbot.json"
    return "conversationbot.json"


class ConfigurationError(Exception):
    """Required bootstrap configuration is missing or invalid."""


class Settings(BaseSettings):
    """Application settings."""

    # Telegram Configuration
    TELEGRAM_TOKEN: str = os.getenv("TELEGRAM_TOKEN", "")
    TELEGRAM_API_URL: str = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")
    POLL_TIMEOUT: int = int(os.getenv("POLL_TIMEOUT", "60"))

    # Gateway selection: "telegram" or "websocket"
    GATEWAY: str = os.getenv("GATEWAY", "telegram")

    # WebSocket Configuration
    WS_HEARTBEAT_INTERVAL: int = int(os.getenv("WS_HEARTBEAT_INTERVAL", "30"))

    # Application Configuration
    APP_ENV: str = os.getenv("APP_ENV", "development")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"

    # Session Storage
    STORAGE_FILE: str = os.getenv("STORAGE_FILE", _default_storage_file())
    CONCURRENT_DISPATCH: bool = os.getenv("CONCURRENT_DISPATCH", "False").lower() == "true"

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR: str = os.getenv("LOG_DIR", "./data/logs")
    LOG_FILE: str = os.getenv("LOG_FILE", "./data/logs/conversationbot.log")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def validate_bootstrap(self):
        """
        Check the values the process cannot start without.

        Raises:
            ConfigurationError: If the gateway is unknown or its credential is absent
        """
        gateway = self.GATEWAY.lower()
        if gateway not in ("telegram", "websocket"):
            raise ConfigurationError(f"Unknown gateway: {self.GATEWAY}")

        if gateway == "telegram" and not self.TELEGRAM_TOKEN:
            raise ConfigurationError("TELEGRAM_TOKEN environment variable is required")


# Create global settings instance
settings = Settings()

# Ensure directories exist
os.makedirs(settings.LOG_DIR, exist_ok=True)
