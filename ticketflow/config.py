"""
TicketFlow configuration.

Loaded from environment variables prefixed with TICKETFLOW_ (or a .env file).
"""

import logging
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TICKETFLOW_",
        env_file=".env",
        extra="ignore",
    )

    # Request layer
    API_URL: str = Field("http://localhost:5005/api", description="Base URL of the TicketFlow server")
    REQUEST_TIMEOUT_SECONDS: float = Field(15.0, description="Per-request timeout")

    # Background refresh
    POLL_INTERVAL_SECONDS: float = Field(7.0, description="Delay between quiet polls")
    NOTICE_TTL_SECONDS: float = Field(2.5, description="How long a transient notice stays up")

    # Presentation surface
    HOST: str = Field("127.0.0.1", description="Bind address for the board API")
    PORT: int = Field(8000, description="Bind port for the board API")

    LOG_LEVEL: str = Field("INFO", description="Root log level")


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """Cached settings, so the environment is read once."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or get_settings().LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
