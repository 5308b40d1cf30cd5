from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "ADAShield"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # ── Database ────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./adashield.db"

    # ── Redis (daily AI usage counters) ─────────
    REDIS_URL: str = "redis://localhost:6379/0"
    FORCE_IN_MEMORY_USAGE_STORE: bool = False

    # ── Quotas ──────────────────────────────────
    QUOTA_TIER: str = "free"
    QUOTA_TABLE_PATH: Optional[str] = None  # defaults to the bundled quotas.json
    QUOTA_TABLE_CHECKSUM: Optional[str] = None

    # ── Scan status polling ─────────────────────
    SCAN_POLL_INTERVAL_MS: int = 2000
    API_BASE_URL: str = "http://localhost:8000/api/v1"
    STATUS_FETCH_TIMEOUT: float = 10.0

    # ── Feature flags ───────────────────────────
    # Read from env strings ("true", "1", "yes", "off", ...)
    FEATURE_AI_ENABLED: bool = True
    FEATURE_BATCH_SCANS_ENABLED: bool = True

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
