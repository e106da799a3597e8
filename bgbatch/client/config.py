"""
Client Configuration

Settings for the polling client, read from BGBATCH_* environment variables
or a .env file.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """Polling client settings with environment variable support."""

    # ==========================================================================
    # Server
    # ==========================================================================
    SERVER_URL: str = "http://localhost:8000"
    # Results are fetched from <STATIC_ORIGIN>/<job_id>/<file>
    STATIC_ORIGIN: str = "http://localhost:8000/results"
    REQUEST_TIMEOUT_SECONDS: Optional[float] = None  # uploads block until processing ends

    # ==========================================================================
    # Polling
    # ==========================================================================
    POLL_INTERVAL_SECONDS: float = 2.0
    # 1.0 keeps a fixed interval; >1.0 grows it up to POLL_MAX_INTERVAL_SECONDS
    POLL_BACKOFF_FACTOR: float = 1.0
    POLL_MAX_INTERVAL_SECONDS: float = 30.0
    POLL_MAX_ATTEMPTS: Optional[int] = 300
    POLL_TIMEOUT_SECONDS: Optional[float] = 900.0

    # ==========================================================================
    # Result Cache
    # ==========================================================================
    CACHE_PATH: str = "./bgbatch_results.json"
    CACHE_KEY: str = "processedImages"

    class Config:
        env_prefix = "BGBATCH_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"
