"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

import shlex
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "Background Removal Batch Service"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD
    DEBUG: bool = True

    # ==========================================================================
    # Job Ledger
    # ==========================================================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/bgbatch.db"

    # ==========================================================================
    # Job Directories
    # ==========================================================================
    # Each job gets <UPLOAD_ROOT>/<job_id> and <OUTPUT_ROOT>/<job_id>
    UPLOAD_ROOT: str = "./data/uploads"
    OUTPUT_ROOT: str = "./data/outputs"

    # Processed files are served read-only from OUTPUT_ROOT under this path
    RESULTS_MOUNT_PATH: str = "/results"

    # Orphaned/expired job directories older than this are swept at startup.
    # 0 disables the sweep.
    JOB_TTL_HOURS: int = 0

    # ==========================================================================
    # Upload Limits
    # ==========================================================================
    MAX_FILES_PER_BATCH: int = 10
    MAX_IMAGE_SIZE_BYTES: int = 10485760  # 10MB

    # ==========================================================================
    # External Processor
    # ==========================================================================
    # Input and output directories are appended as positional arguments
    PROCESSOR_COMMAND: str = "python3 remove_bg.py"
    PROCESSOR_TIMEOUT_SECONDS: Optional[float] = None

    # Admission control in front of the processor
    MAX_CONCURRENT_PROCESSORS: int = 2
    MAX_QUEUED_PROCESSORS: int = 8

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development

    # ==========================================================================
    # CORS Settings
    # ==========================================================================
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost:8000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def processor_argv(self) -> List[str]:
        """PROCESSOR_COMMAND split into an argv list."""
        return shlex.split(self.PROCESSOR_COMMAND)


# Global settings instance
settings = Settings()

# Ensure critical directories exist
Path(settings.UPLOAD_ROOT).mkdir(parents=True, exist_ok=True)
Path(settings.OUTPUT_ROOT).mkdir(parents=True, exist_ok=True)
Path("./data").mkdir(parents=True, exist_ok=True)
