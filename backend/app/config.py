"""
Application settings.
Read from environment variables, with a local .env file loaded first.
"""

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Settings(BaseModel):
    data_dir: str = "data"
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    # Files processed in parallel within one batch (1 = sequential)
    max_workers: int = 1
    # Batches processed in parallel in the background
    max_batches: int = 2
    max_files: int = 100
    max_upload_mb: int = 500
    cleanup_delay_seconds: float = 5.0
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


ENV_VARS = {
    "data_dir": "DATA_DIR",
    "ffmpeg_path": "FFMPEG_PATH",
    "ffprobe_path": "FFPROBE_PATH",
    "max_workers": "MAX_WORKERS",
    "max_batches": "MAX_BATCHES",
    "max_files": "MAX_FILES",
    "max_upload_mb": "MAX_UPLOAD_MB",
    "cleanup_delay_seconds": "CLEANUP_DELAY_SECONDS",
    "log_level": "LOG_LEVEL",
    "host": "HOST",
    "port": "PORT",
}


def load_settings() -> Settings:
    """Build settings from the environment; unset variables keep their defaults."""
    values = {
        field: os.getenv(env_name)
        for field, env_name in ENV_VARS.items()
        if os.getenv(env_name)
    }
    return Settings(**values)


@lru_cache
def get_settings() -> Settings:
    return load_settings()
