"""Application configuration using Pydantic Settings."""
from pathlib import Path
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Attendance Offline Sync"
    debug: bool = False
    log_level: str = "INFO"

    # MongoDB (remote attendance store)
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "attendance"
    mongodb_timeout_ms: int = 5000

    # Local queue
    storage_dir: Path = Path(".offline")
    sync_queue_key: str = "attendance_sync_queue"
    corrupt_queue_policy: Literal["reset", "fail"] = "reset"

    # Sync behaviour
    retention_days: int = 30
    max_past_days: int = 90
    max_retries: Optional[int] = None  # None = retry until synced or pruned
    dedupe_pending_marks: bool = False

    # Connectivity
    network_source: Literal["probe", "push"] = "probe"
    probe_host: str = "1.1.1.1"
    probe_port: int = 443
    probe_interval_seconds: float = 15.0
    probe_timeout_seconds: float = 3.0

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:8081"

    @model_validator(mode="after")
    def _validate_limits(self):
        if self.retention_days < 1:
            raise ValueError("RETENTION_DAYS must be at least 1")
        if self.max_retries is not None and self.max_retries < 1:
            raise ValueError("MAX_RETRIES must be a positive integer or unset")
        return self


settings = Settings()
