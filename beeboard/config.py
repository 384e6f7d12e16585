"""Application configuration."""

import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Beeminder
    beeminder_base_url: str = os.getenv(
        "BEEMINDER_BASE_URL", "https://www.beeminder.com/api/v1"
    )
    beeminder_username: str = os.getenv("BEEMINDER_USERNAME", "")
    beeminder_auth_token: str = os.getenv("BEEMINDER_AUTH_TOKEN", "")
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "20"))

    # Local snapshot store (shared by every process on this machine)
    store_path: str = os.getenv("STORE_PATH", "data/beeboard.db")

    # Server
    server_host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    server_port: int = int(os.getenv("SERVER_PORT", "8000"))

    # Refresh cadence
    success_refresh_interval: int = int(
        os.getenv("SUCCESS_REFRESH_INTERVAL", "900")
    )  # 15 minutes after a good fetch
    failure_refresh_interval: int = int(
        os.getenv("FAILURE_REFRESH_INTERVAL", "300")
    )  # 5 minutes after a failed one

    # Dashboard
    image_dir: str = os.getenv("IMAGE_DIR", "static/images")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False


settings = Settings()
